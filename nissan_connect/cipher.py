"""Password encryption used by the login handshake.

The gateway expects the password encrypted with Blowfish in ECB mode, padded
with PKCS5 and base64 encoded, keyed with the ``baseprm`` value of the session.
Some deployments cannot ship Blowfish; they delegate the operation to an
encryption proxy instead.
"""

from __future__ import annotations

import base64
import logging

from cryptography.hazmat.decrepit.ciphers.algorithms import Blowfish
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from .infrastructure.errors import NissanConnectLoginError
from .infrastructure.transport import Transport

_LOGGER = logging.getLogger(__name__)

BLOWFISH_BLOCK_BITS = 64


class PasswordCipher:
    """Interface of a password cipher."""

    async def encrypt(self, password: str, key: str) -> bytes:
        raise NotImplementedError


class BlowfishCipher(PasswordCipher):
    """Local Blowfish/ECB/PKCS5 encryption, base64 encoded."""

    async def encrypt(self, password: str, key: str) -> bytes:
        return self.encrypt_sync(password, key)

    @staticmethod
    def encrypt_sync(password: str, key: str) -> bytes:
        """Encrypt a password without awaiting.

        Raises:
            NissanConnectLoginError: The key length is outside what Blowfish accepts.

        Example:
            >>> len(base64.b64decode(BlowfishCipher.encrypt_sync("secret", "uyI5Dj9g8VCOFDnBRUbr3g")))
            8
        """
        padder = padding.PKCS7(BLOWFISH_BLOCK_BITS).padder()
        padded = padder.update(password.encode("utf-8")) + padder.finalize()
        raw_key = key.encode("utf-8")
        try:
            algorithm = Blowfish(raw_key)
        except ValueError as err:
            raise NissanConnectLoginError(
                f"Invalid encryption key of {len(raw_key)} bytes, Blowfish needs 4 to 56"
            ) from err
        encryptor = Cipher(algorithm, modes.ECB()).encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(encrypted)


class RemoteCipher(PasswordCipher):
    """Encryption delegated to a remote proxy.

    The proxy receives the password and key as form fields and answers with
    the encoded ciphertext as plain text.
    """

    def __init__(self, transport: Transport, url: str) -> None:
        self._transport = transport
        self.url = url

    async def encrypt(self, password: str, key: str) -> bytes:
        _LOGGER.debug("Encrypting password through proxy %s", self.url)
        response = await self._transport.send(
            "POST",
            self.url,
            data={"password": password, "key": key},
        )
        encrypted = response.body.strip()
        if response.status != 200 or not encrypted:
            raise NissanConnectLoginError(
                f"Encryption proxy returned HTTP {response.status}",
                response=response.body.decode("utf-8", errors="replace"),
                path=self.url,
            )
        return encrypted
