"""Tests for NissanConnect API."""

import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nissan_connect import (
    PROTOCOL_CURRENT,
    EncryptionMode,
    NissanConnectAPI,
    NissanConnectLoginError,
    NissanConnectMissingResultKeyError,
    NissanConnectRequestError,
    NissanConnectValidationError,
    SessionRecord,
    StatusQueryOption,
)
from nissan_connect.session_store import FileSessionStore, legacy_session_key, session_key
from tests.fakes import (
    TEST_BASE_PRM,
    TEST_DCMID,
    TEST_PASSWORD,
    TEST_USERNAME,
    TEST_VIN,
    add_legacy_login,
    json_response,
)


def make_api(transport, store, clock, **kwargs):
    return NissanConnectAPI(
        TEST_USERNAME,
        TEST_PASSWORD,
        session_store=store,
        transport=transport,
        clock=clock,
        **kwargs,
    )


def battery_payload(operation_time="May 01, 2024 08:00 AM"):
    return {
        "status": 200,
        "BatteryStatusRecords": {
            "OperationResult": "START",
            "OperationDateAndTime": operation_time,
            "PluginState": "CONNECTED",
            "BatteryStatus": {
                "BatteryChargingStatus": "NORMAL_CHARGING",
                "BatteryCapacity": "12",
                "BatteryRemainingAmount": "10",
            },
            "CruisingRangeAcOn": "100000",
            "CruisingRangeAcOff": "110000",
        },
    }


AC_PAYLOAD = {
    "status": 200,
    "RemoteACRecords": {
        "OperationResult": "FINISH",
        "RemoteACOperation": "STOP",
        "PluginState": "CONNECTED",
    },
}


class TestNissanConnectAPIInitialization:
    """Test NissanConnectAPI construction."""

    def test_defaults(self, fake_transport, memory_store, fake_clock):
        """Test the default region, timezone and protocol."""
        api = make_api(fake_transport, memory_store, fake_clock)

        assert api.region == "NNA"
        assert api.tz == "America/New_York"
        assert api.protocol.name == "gworchest_0307C"
        assert api.retry_budget_available is True
        assert api.pending_result_key is None

    def test_vin_and_region_are_normalized(self, fake_transport, memory_store, fake_clock):
        """Test that VIN and region codes are upper-cased."""
        api = make_api(fake_transport, memory_store, fake_clock, region="nci", vin=TEST_VIN.lower())

        assert api.region == "NCI"
        assert api.session.vin == TEST_VIN

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"region": "XX"},
            {"region": ""},
            {"tz": "Nowhere/Special"},
            {"vin": "TOO-SHORT"},
        ],
    )
    def test_invalid_arguments(self, fake_transport, memory_store, fake_clock, kwargs):
        """Test that invalid arguments are rejected before any request."""
        with pytest.raises(NissanConnectValidationError):
            make_api(fake_transport, memory_store, fake_clock, **kwargs)
        assert fake_transport.calls == []

    def test_region_not_served_by_protocol(self, fake_transport, memory_store, fake_clock):
        """Test that a region is checked against the protocol generation."""
        with pytest.raises(NissanConnectValidationError):
            make_api(fake_transport, memory_store, fake_clock, region="NE")

        api = make_api(fake_transport, memory_store, fake_clock, region="NE", protocol=PROTOCOL_CURRENT)
        assert api.region == "NE"

    def test_remote_encryption_needs_proxy(self, fake_transport, memory_store, fake_clock):
        """Test that remote encryption requires a proxy URL."""
        with pytest.raises(NissanConnectValidationError, match="proxy"):
            make_api(fake_transport, memory_store, fake_clock, encryption_mode=EncryptionMode.REMOTE)

    @pytest.mark.asyncio
    async def test_context_manager_leaves_injected_transport_open(self, memory_store, fake_clock):
        """Test that an injected transport is never closed by the client."""
        transport = MagicMock()
        transport.close = AsyncMock()

        async with make_api(transport, memory_store, fake_clock):
            pass

        transport.close.assert_not_awaited()


class TestNissanConnectAPISession:
    """Test session bootstrap through the public operations."""

    @pytest.mark.asyncio
    async def test_first_run_logs_in_and_persists(self, fake_transport, memory_store, fake_clock):
        """Test that a run without cache logs in once and saves the session."""
        add_legacy_login(fake_transport, "NEW-SESSION")
        fake_transport.add("BatteryRemoteChargingRequest.php", json_response({"status": 200, "message": "success"}))
        api = make_api(fake_transport, memory_store, fake_clock)

        result = await api.start_charge()

        assert result == {"status": 200, "message": "success"}
        assert fake_transport.endpoints_called() == [
            "InitialApp.php",
            "UserLoginRequest.php",
            "BatteryRemoteChargingRequest.php",
        ]
        stored = memory_store.load(session_key(TEST_USERNAME))
        assert stored.custom_session_id == "NEW-SESSION"
        assert stored.dcm_id == TEST_DCMID
        assert fake_transport.calls[2].data["custom_sessionid"] == "NEW-SESSION"

    @pytest.mark.asyncio
    async def test_cached_session_skips_login(self, fake_transport, cached_store, fake_clock):
        """Test that a complete cached record avoids the login handshake."""
        fake_transport.add("BatteryRemoteChargingStopRequest.php", json_response({"status": 200}))
        api = make_api(fake_transport, cached_store, fake_clock)

        await api.stop_charge()

        assert fake_transport.endpoints_called() == ["BatteryRemoteChargingStopRequest.php"]
        assert api.session.custom_session_id == "CACHED-SESSION"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("base_prm", ["key", TEST_BASE_PRM])
    async def test_failed_login_saves_nothing(self, fake_transport, memory_store, fake_clock, base_prm):
        """Test that a failed login leaves the store empty, also with an unusable key."""
        fake_transport.add("InitialApp.php", json_response({"status": 200, "baseprm": base_prm}))
        fake_transport.add("UserLoginRequest.php", json_response({"status": 200, "message": "INVALID PARAMS"}))
        api = make_api(fake_transport, memory_store, fake_clock)

        with pytest.raises(NissanConnectLoginError):
            await api.start_charge()

        assert memory_store.load(session_key(TEST_USERNAME)) is None

    @pytest.mark.asyncio
    async def test_expired_session_relogin_and_retry(self, fake_transport, memory_store, fake_clock):
        """Test 404, re-login and retry with exactly three calls."""
        memory_store.save(
            session_key(TEST_USERNAME),
            SessionRecord(vin=TEST_VIN, custom_session_id="OLD-SESSION", cookie="JSESSIONID=old"),
        )
        fake_transport.add(
            "ACRemoteRequest.php",
            json_response({"message": "Not Found"}, status=404),
            json_response({"resultKey": "KEY"}),
        )
        fake_transport.add(
            "UserLoginRequest.php",
            json_response(
                {"vehicleInfo": [{"vin": TEST_VIN, "custom_sessionid": "NEW-SESSION"}]},
                headers={"Set-Cookie": "JSESSIONID=new; Path=/"},
            ),
        )
        api = make_api(fake_transport, memory_store, fake_clock, protocol=PROTOCOL_CURRENT)

        result = await api.start_climate_control()

        assert result["resultKey"] == "KEY"
        assert fake_transport.endpoints_called() == [
            "ACRemoteRequest.php",
            "UserLoginRequest.php",
            "ACRemoteRequest.php",
        ]
        assert fake_transport.calls[2].headers["Cookie"] == "JSESSIONID=new"
        assert api.retry_budget_available is False
        assert memory_store.load(session_key(TEST_USERNAME)).custom_session_id == "NEW-SESSION"

    @pytest.mark.asyncio
    async def test_retry_budget_is_one_shot(self, fake_transport, memory_store, fake_clock):
        """Test that a spent budget turns the next expiry into an error."""
        memory_store.save(
            session_key(TEST_USERNAME),
            SessionRecord(vin=TEST_VIN, custom_session_id="OLD-SESSION", cookie="JSESSIONID=old"),
        )
        fake_transport.add(
            "ACRemoteRequest.php",
            json_response({}, status=401),
            json_response({"resultKey": "KEY"}),
            json_response({}, status=401),
        )
        fake_transport.add(
            "UserLoginRequest.php",
            json_response(
                {"vehicleInfo": [{"vin": TEST_VIN, "custom_sessionid": "NEW-SESSION"}]},
                headers={"Set-Cookie": "JSESSIONID=new"},
            ),
        )
        api = make_api(fake_transport, memory_store, fake_clock, protocol=PROTOCOL_CURRENT)

        await api.start_climate_control()
        with pytest.raises(NissanConnectRequestError) as exc_info:
            await api.start_climate_control()

        assert exc_info.value.status == 401
        assert fake_transport.endpoints_called().count("UserLoginRequest.php") == 1

        api.reset_retry_budget()
        assert api.retry_budget_available is True

    @pytest.mark.asyncio
    async def test_failed_migration_falls_back_to_login(self, fake_transport, tmp_path, fake_clock):
        """Test that a legacy session file that cannot be migrated never blocks the client."""
        store = FileSessionStore(tmp_path)
        store.legacy_path_for(legacy_session_key(TEST_USERNAME)).write_text(
            json.dumps({"vin": TEST_VIN, "dcmid": TEST_DCMID, "sessionid": "LEGACY-SESSION"})
        )
        add_legacy_login(fake_transport, "NEW-SESSION")
        fake_transport.add("BatteryRemoteChargingRequest.php", json_response({"status": 200}))
        api = make_api(fake_transport, store, fake_clock)

        with patch(
            "nissan_connect.session_store.os.link",
            side_effect=PermissionError(1, "Operation not permitted"),
        ) as link:
            await api.start_charge()
            await api.start_charge()

        link.assert_called_once()
        assert fake_transport.endpoints_called() == [
            "InitialApp.php",
            "UserLoginRequest.php",
            "BatteryRemoteChargingRequest.php",
            "BatteryRemoteChargingRequest.php",
        ]
        assert store.load(session_key(TEST_USERNAME)).custom_session_id == "NEW-SESSION"


class TestNissanConnectAPICommands:
    """Test remote commands."""

    @pytest.mark.asyncio
    async def test_start_climate_control_waits_for_result(self, fake_transport, cached_store, fake_clock):
        """Test that waiting polls the result endpoint until the car answers."""
        fake_transport.add("ACRemoteRequest.php", json_response({"status": 200, "resultKey": "AC-KEY"}))
        fake_transport.add(
            "ACRemoteResult.php",
            json_response({"status": 200, "responseFlag": "0"}),
            json_response({"status": 200, "responseFlag": "0"}),
            json_response({"status": 200, "responseFlag": "1", "operationResult": "START_BATTERY"}),
        )
        api = make_api(fake_transport, cached_store, fake_clock)

        result = await api.start_climate_control(wait_for_result=True)

        assert result["operationResult"] == "START_BATTERY"
        assert fake_transport.endpoints_called() == [
            "ACRemoteRequest.php",
            "ACRemoteResult.php",
            "ACRemoteResult.php",
            "ACRemoteResult.php",
        ]
        assert fake_transport.calls[1].data["resultKey"] == "AC-KEY"
        assert fake_clock.sleeps == [1, 1]
        assert api.pending_result_key is None

    @pytest.mark.asyncio
    async def test_stop_climate_control_without_waiting(self, fake_transport, cached_store, fake_clock):
        """Test that not waiting leaves the result key pending."""
        fake_transport.add("ACRemoteOffRequest.php", json_response({"status": 200, "resultKey": "OFF-KEY"}))
        api = make_api(fake_transport, cached_store, fake_clock)

        result = await api.stop_climate_control()

        assert result["resultKey"] == "OFF-KEY"
        assert api.pending_result_key == "OFF-KEY"

    @pytest.mark.asyncio
    async def test_waiting_without_result_key(self, fake_transport, cached_store, fake_clock):
        """Test that a command answer without resultKey cannot be waited for."""
        fake_transport.add("ACRemoteRequest.php", json_response({"status": 200}))
        api = make_api(fake_transport, cached_store, fake_clock)

        with pytest.raises(NissanConnectMissingResultKeyError):
            await api.start_climate_control(wait_for_result=True)

    @pytest.mark.asyncio
    async def test_lock_doors_sends_pin(self, fake_transport, cached_store, fake_clock):
        """Test that the PIN is sent with the lock command."""
        fake_transport.add("RemoteDoorLockRequest.php", json_response({"status": 200, "resultKey": "LOCK"}))
        api = make_api(fake_transport, cached_store, fake_clock)

        await api.lock_doors("0420")

        assert fake_transport.calls[0].data["PIN"] == "0420"

    @pytest.mark.asyncio
    async def test_lock_doors_rejects_invalid_pin(self, fake_transport, cached_store, fake_clock):
        """Test that an invalid PIN fails before any request."""
        api = make_api(fake_transport, cached_store, fake_clock)

        with pytest.raises(NissanConnectValidationError):
            await api.lock_doors("12")

        assert fake_transport.calls == []


class TestNissanConnectAPIStatus:
    """Test status queries."""

    @pytest.mark.asyncio
    async def test_get_status_refreshes_and_waits(self, fake_transport, cached_store, fake_clock):
        """Test the full refresh: request, wait, fresh read, climate read."""
        fake_transport.add("BatteryStatusCheckRequest.php", json_response({"status": 200, "resultKey": "BAT"}))
        fake_transport.add("BatteryStatusCheckResultRequest.php", json_response({"status": 200, "responseFlag": "1"}))
        fake_transport.add("BatteryStatusRecordsRequest.php", json_response(battery_payload()))
        fake_transport.add("RemoteACRecordsRequest.php", json_response(AC_PAYLOAD))
        api = make_api(fake_transport, cached_store, fake_clock)

        status = await api.get_status()

        assert fake_transport.endpoints_called() == [
            "BatteryStatusCheckRequest.php",
            "BatteryStatusCheckResultRequest.php",
            "BatteryStatusRecordsRequest.php",
            "RemoteACRecordsRequest.php",
        ]
        assert status.stale is False
        assert status.plugged_in is True
        assert status.charging is True
        assert status.battery_remaining_amount == 10
        assert status.cruising_range_unit == "miles"
        assert status.remote_ac_running is False

    @pytest.mark.asyncio
    async def test_get_status_flags_stale_data(self, fake_transport, cached_store, fake_clock):
        """Test that data older than the refresh is returned flagged as stale."""
        fake_transport.add("BatteryStatusCheckRequest.php", json_response({"status": 200, "resultKey": "BAT"}))
        fake_transport.add("BatteryStatusCheckResultRequest.php", json_response({"status": 200, "responseFlag": "1"}))
        fake_transport.add(
            "BatteryStatusRecordsRequest.php", json_response(battery_payload("Apr 30, 2024 08:00 AM"))
        )
        fake_transport.add("RemoteACRecordsRequest.php", json_response(AC_PAYLOAD))
        api = make_api(
            fake_transport, cached_store, fake_clock, freshness_ceiling=10, freshness_interval=5
        )

        status = await api.get_status(StatusQueryOption.NONE)

        assert status.stale is True
        assert fake_transport.endpoints_called().count("BatteryStatusRecordsRequest.php") == 3

    @pytest.mark.asyncio
    async def test_get_status_async_only_requests_refresh(self, fake_transport, cached_store, fake_clock):
        """Test that ASYNC sends the refresh request and returns None."""
        fake_transport.add("BatteryStatusCheckRequest.php", json_response({"status": 200, "resultKey": "BAT"}))
        api = make_api(fake_transport, cached_store, fake_clock)

        assert await api.get_status(StatusQueryOption.ASYNC) is None
        assert fake_transport.endpoints_called() == ["BatteryStatusCheckRequest.php"]
        assert api.pending_result_key == "BAT"

    @pytest.mark.asyncio
    async def test_get_status_cached_reads_records(self, fake_transport, cached_store, fake_clock):
        """Test that CACHED reads what the server holds without refreshing."""
        fake_transport.add("BatteryStatusRecordsRequest.php", json_response(battery_payload("Jan 01, 2020 08:00 AM")))
        fake_transport.add("RemoteACRecordsRequest.php", json_response(AC_PAYLOAD))
        api = make_api(fake_transport, cached_store, fake_clock)

        status = await api.get_status(StatusQueryOption.CACHED)

        assert fake_transport.endpoints_called() == [
            "BatteryStatusRecordsRequest.php",
            "RemoteACRecordsRequest.php",
        ]
        assert status.stale is False
        assert status.last_updated.year == 2020

    @pytest.mark.asyncio
    async def test_get_status_reads_utc_timestamp(self, fake_transport, memory_store, fake_clock):
        """Test that the current API dates the status from its UTC TimeStamp."""
        memory_store.save(
            session_key(TEST_USERNAME),
            SessionRecord(vin=TEST_VIN, custom_session_id="SESSION", cookie="JSESSIONID=abc"),
        )
        battery = battery_payload("Jan 01, 2020 08:00 AM")
        battery["BatteryStatusRecords"]["TimeStamp"] = "2024-05-01 12:30:00"
        fake_transport.add("BatteryStatusRecordsRequest.php", json_response(battery))
        fake_transport.add("RemoteACRecordsRequest.php", json_response(AC_PAYLOAD))
        api = make_api(fake_transport, memory_store, fake_clock, protocol=PROTOCOL_CURRENT)

        status = await api.get_status(StatusQueryOption.CACHED)

        assert status.last_updated == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_get_location(self, fake_transport, cached_store, fake_clock):
        """Test locating the car."""
        fake_transport.add("MyCarFinderRequest.php", json_response({"status": 200, "resultKey": "LOC"}))
        fake_transport.add(
            "MyCarFinderResultRequest.php",
            json_response({"status": 200, "responseFlag": "1", "lat": "40.7128", "lng": "-74.0060"}),
        )
        api = make_api(fake_transport, cached_store, fake_clock)

        location = await api.get_location()

        assert location.latitude == pytest.approx(40.7128)
        assert location.longitude == pytest.approx(-74.006)

    @pytest.mark.asyncio
    async def test_get_driving_history(self, fake_transport, cached_store, fake_clock):
        """Test reading the driving summary of one day."""
        fake_transport.add(
            "DriveAnalysisDetailRequest.php",
            json_response(
                {
                    "status": 200,
                    "DriveAnalysisDetailResponsePersonalData": {
                        "DateSummaryDetailInfo": {"TravelDistance": "12.3"},
                    },
                }
            ),
        )
        api = make_api(fake_transport, cached_store, fake_clock)

        history = await api.get_driving_history(date(2024, 5, 1))

        assert fake_transport.calls[0].data["DetailTargetDate"] == "2024-05-01"
        assert history.travel_distance == 12.3
