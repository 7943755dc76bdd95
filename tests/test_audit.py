"""
Tests for the system log.
"""

import pytest
from datetime import timedelta

from authgate.audit import (
    EventStatus,
    FileSystemLogger,
    LogLevel,
    MemorySystemLogger,
    RequestInfo,
    SyncEventType,
    client_ip_from_headers,
    create_system_logger,
    filter_details,
)
from authgate.common import get_current_time


DETAILS = {
    "provider": "oauth2",
    "fields_count": 3,
    "access_token": "secret",
    "nested": {"refresh_token": "secret", "kept": 1},
}


class TestDetailFiltering:
    """Level-dependent detail filtering."""

    def test_basic_keeps_allow_list(self):
        assert filter_details(DETAILS, LogLevel.BASIC) == {"provider": "oauth2", "fields_count": 3}

    def test_detailed_drops_secrets_recursively(self):
        assert filter_details(DETAILS, LogLevel.DETAILED) == {
            "provider": "oauth2",
            "fields_count": 3,
            "nested": {"kept": 1},
        }

    def test_debug_keeps_everything(self):
        assert filter_details(DETAILS, LogLevel.DEBUG) == DETAILS


class TestRequestInfo:
    """Client address extraction."""

    def test_forwarded_header_wins(self):
        headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "pytest"}

        info = RequestInfo.from_headers(headers, "10.0.0.2")

        assert info.ip_address == "203.0.113.9"
        assert info.user_agent == "pytest"

    def test_invalid_values_are_skipped(self):
        assert client_ip_from_headers({"Client-IP": "unknown"}, "192.0.2.1") == "192.0.2.1"
        assert client_ip_from_headers({}, None) == ""


class TestMemorySystemLogger:
    """Recording and querying."""

    @pytest.mark.asyncio
    async def test_none_level_records_nothing(self):
        log = MemorySystemLogger(LogLevel.NONE)

        assert await log.log_event(SyncEventType.PHOTO_SYNC, EventStatus.SUCCESS, "ok") is False
        assert await log.count_logs() == 0

    @pytest.mark.asyncio
    async def test_query_filters_and_paging(self):
        log = MemorySystemLogger(LogLevel.BASIC)
        for i in range(5):
            await log.log_event(SyncEventType.PROFILE_SYNC, EventStatus.SUCCESS, f"sync {i}", user_id=1)
        await log.log_event(SyncEventType.PHOTO_SYNC, EventStatus.FAILURE, "no photo", user_id=2)

        assert await log.count_logs() == 6
        assert await log.count_logs(event_type="profile_sync") == 5
        assert await log.count_logs(user_id="2") == 1
        page = await log.get_logs(event_type=SyncEventType.PROFILE_SYNC, limit=2, offset=1, newest_first=False)
        assert [entry.message for entry in page] == ["sync 1", "sync 2"]

    @pytest.mark.asyncio
    async def test_request_details_are_recorded(self):
        log = MemorySystemLogger()

        await log.log_event("token_acquired", "success", "ok", request=RequestInfo("192.0.2.5", "agent"))

        entry = (await log.get_logs())[0]
        assert entry.ip_address == "192.0.2.5"
        assert entry.user_agent == "agent"

    @pytest.mark.asyncio
    async def test_delete_old_and_clear(self):
        log = MemorySystemLogger()
        await log.log_event("photo_sync", "success", "old")
        await log.log_event("photo_sync", "success", "new")
        log.entries[0].event_time = get_current_time() - timedelta(days=40)

        assert await log.delete_old_logs(30) == 1
        assert [entry.message for entry in await log.get_logs()] == ["new"]
        assert await log.clear_all_logs() == 1
        assert await log.count_logs() == 0

    @pytest.mark.asyncio
    async def test_bounded(self):
        log = MemorySystemLogger(max_entries=2)
        for i in range(3):
            await log.log_event("photo_sync", "success", str(i))

        assert await log.count_logs() == 2

    @pytest.mark.asyncio
    async def test_write_failure_returns_false(self):
        log = MemorySystemLogger()

        async def broken(entry):
            raise OSError("disk full")

        log._write = broken

        assert await log.log_event("photo_sync", "success", "x") is False


class TestFileSystemLogger:
    """JSON lines storage."""

    @pytest.mark.asyncio
    async def test_round_trip_through_file(self, tmp_path):
        path = tmp_path / "system.log"
        log = create_system_logger("file", file_path=str(path), level=LogLevel.DETAILED)

        await log.log_event("groups_sync", "success", "Groups synced", {"groups_count": 2, "access_token": "x"}, "7")
        with open(path, "a", encoding="utf-8") as f:
            f.write("not json\n")

        reopened = FileSystemLogger(str(path))
        entries = await reopened.get_logs()
        assert len(entries) == 1
        assert entries[0].details == {"groups_count": 2}
        assert entries[0].user_id == "7"
        assert await reopened.clear_all_logs() == 1
        assert await reopened.count_logs() == 0

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        assert await FileSystemLogger(str(tmp_path / "absent.log")).count_logs() == 0
