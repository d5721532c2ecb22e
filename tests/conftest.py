"""Common fixtures for NissanConnect tests."""
import pytest

from nissan_connect.models import SessionRecord
from nissan_connect.session_store import MemorySessionStore, session_key
from tests.fakes import TEST_DCMID, TEST_USERNAME, TEST_VIN, FakeClock, FakeTransport


@pytest.fixture
def fake_transport():
    """Create a fake transport."""
    return FakeTransport()


@pytest.fixture
def fake_clock():
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def memory_store():
    """Create an empty in-memory session store."""
    return MemorySessionStore()


@pytest.fixture
def legacy_record():
    """A complete session record for the legacy protocol."""
    return SessionRecord(vin=TEST_VIN, dcm_id=TEST_DCMID, custom_session_id="CACHED-SESSION")


@pytest.fixture
def cached_store(memory_store, legacy_record):
    """A session store already holding a complete legacy record."""
    memory_store.save(session_key(TEST_USERNAME), legacy_record)
    return memory_store
