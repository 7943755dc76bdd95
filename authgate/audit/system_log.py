"""
System log for AuthGate.

The system log records token and profile-sync events so administrators
can see what happened after a login. How much of each event's details is
kept depends on the configured level.
"""

import asyncio
import ipaddress
import json
import logging
import os
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

import aiofiles

from ..common.utils import generate_id, get_current_time


logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """How much the system log records"""
    NONE = "none"
    BASIC = "basic"
    DETAILED = "detailed"
    DEBUG = "debug"


class SyncEventType(str, Enum):
    """Event types recorded by the profile-sync pipeline"""
    TOKEN_ACQUIRED = "token_acquired"
    PHOTO_SYNC = "photo_sync"
    PROFILE_SYNC = "profile_sync"
    GROUPS_SYNC = "groups_sync"
    ROLE_ASSIGNED = "role_assigned"


class EventStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


# Keys kept at the basic level
BASIC_DETAIL_KEYS = (
    "provider",
    "sync_photo",
    "sync_fields",
    "fields_count",
    "groups_count",
    "error_message",
    "error_code",
)

# Keys dropped (at any depth) at the detailed level
SENSITIVE_DETAIL_KEYS = ("access_token", "refresh_token", "password", "client_secret")

# Headers consulted for the client address, most specific first
CLIENT_IP_HEADERS = ("Client-IP", "X-Forwarded-For", "X-Forwarded", "Forwarded-For", "Forwarded")


@dataclass
class RequestInfo:
    """Client details attached to a log entry"""
    ip_address: str = ""
    user_agent: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], remote: Optional[str] = None) -> "RequestInfo":
        return cls(
            ip_address=client_ip_from_headers(headers, remote),
            user_agent=headers.get("User-Agent", "") or "",
        )


def client_ip_from_headers(headers: Mapping[str, str], remote: Optional[str] = None) -> str:
    """First valid address from the forwarding headers, then the peer address."""
    candidates = [headers.get(name) for name in CLIENT_IP_HEADERS] + [remote]
    for candidate in candidates:
        if not candidate:
            continue
        address = candidate.split(",")[0].strip()
        try:
            ipaddress.ip_address(address)
        except ValueError:
            continue
        return address
    return ""


def _remove_keys(data: Any, exclude: Iterable[str]) -> Any:
    if not isinstance(data, dict):
        return data
    return {
        key: _remove_keys(value, exclude)
        for key, value in data.items()
        if key not in exclude
    }


def filter_details(details: Optional[Dict[str, Any]], level: LogLevel) -> Dict[str, Any]:
    """Reduce event details to what the log level allows."""
    details = details or {}
    level = LogLevel(level)
    if level == LogLevel.DEBUG:
        return dict(details)
    if level == LogLevel.DETAILED:
        return _remove_keys(details, SENSITIVE_DETAIL_KEYS)
    if level == LogLevel.BASIC:
        return {key: value for key, value in details.items() if key in BASIC_DETAIL_KEYS}
    return {}


@dataclass
class SystemLogEntry:
    """One recorded event"""
    event_type: str
    event_status: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    ip_address: str = ""
    user_agent: str = ""
    id: str = field(default_factory=generate_id)
    event_time: datetime = field(default_factory=get_current_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_time": self.event_time.isoformat(),
            "user_id": self.user_id,
            "user_email": self.user_email,
            "event_type": self.event_type,
            "event_status": self.event_status,
            "message": self.message,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemLogEntry":
        return cls(
            id=data["id"],
            event_time=datetime.fromisoformat(data["event_time"]),
            user_id=data.get("user_id"),
            user_email=data.get("user_email"),
            event_type=data["event_type"],
            event_status=data["event_status"],
            message=data.get("message", ""),
            details=data.get("details") or {},
            ip_address=data.get("ip_address", ""),
            user_agent=data.get("user_agent", ""),
        )


@dataclass
class LogQuery:
    """Filters for reading the log"""
    event_type: Optional[str] = None
    event_status: Optional[str] = None
    user_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def matches(self, entry: SystemLogEntry) -> bool:
        if self.event_type and entry.event_type != self.event_type:
            return False
        if self.event_status and entry.event_status != self.event_status:
            return False
        if self.user_id and entry.user_id != self.user_id:
            return False
        if self.date_from and entry.event_time < self.date_from:
            return False
        if self.date_to and entry.event_time > self.date_to:
            return False
        return True


class SystemLogger(ABC):
    """
    Abstract base class for the system log.

    ``log_event`` never raises: a failed write is logged through the
    standard logger and reported as False.
    """

    def __init__(self, level: LogLevel = LogLevel.BASIC):
        self.level = LogLevel(level)

    def set_level(self, level: LogLevel) -> None:
        self.level = LogLevel(level)

    async def log_event(
        self,
        event_type: str,
        event_status: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        request: Optional[RequestInfo] = None,
    ) -> bool:
        """Record an event. Returns True if it was stored."""
        if self.level == LogLevel.NONE:
            return False
        try:
            request = request or RequestInfo()
            entry = SystemLogEntry(
                event_type=str(getattr(event_type, "value", event_type)),
                event_status=str(getattr(event_status, "value", event_status)),
                message=message,
                details=filter_details(details, self.level),
                user_id=str(user_id) if user_id is not None else None,
                user_email=user_email,
                ip_address=request.ip_address,
                user_agent=request.user_agent,
            )
            await self._write(entry)
            return True
        except Exception as e:
            logger.error(f"Failed to write system log entry {event_type}: {e}")
            return False

    @abstractmethod
    async def _write(self, entry: SystemLogEntry) -> None:
        pass

    @abstractmethod
    async def _entries(self) -> List[SystemLogEntry]:
        """All stored entries, oldest first"""
        pass

    @abstractmethod
    async def _replace(self, entries: List[SystemLogEntry]) -> None:
        pass

    async def get_logs(
        self,
        event_type: Optional[str] = None,
        event_status: Optional[str] = None,
        user_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
        newest_first: bool = True,
    ) -> List[SystemLogEntry]:
        """Read entries matching the filters, one page at a time."""
        query = LogQuery(event_type, event_status, user_id, date_from, date_to)
        matched = [entry for entry in await self._entries() if query.matches(entry)]
        matched.sort(key=lambda entry: entry.event_time, reverse=newest_first)
        return matched[offset:offset + limit]

    async def count_logs(
        self,
        event_type: Optional[str] = None,
        event_status: Optional[str] = None,
        user_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        query = LogQuery(event_type, event_status, user_id, date_from, date_to)
        return sum(1 for entry in await self._entries() if query.matches(entry))

    async def delete_old_logs(self, days: int = 30) -> int:
        """Delete entries older than ``days``; returns how many were removed."""
        cutoff = get_current_time() - timedelta(days=days)
        entries = await self._entries()
        kept = [entry for entry in entries if entry.event_time >= cutoff]
        removed = len(entries) - len(kept)
        if removed:
            await self._replace(kept)
            logger.info(f"Deleted {removed} system log entries older than {days} days")
        return removed

    async def clear_all_logs(self) -> int:
        entries = await self._entries()
        await self._replace([])
        return len(entries)

    async def close(self) -> None:
        """Close the logger and release resources"""
        pass


class MemorySystemLogger(SystemLogger):
    """In-memory system log for development and testing"""

    def __init__(self, level: LogLevel = LogLevel.BASIC, max_entries: int = 1000):
        super().__init__(level)
        self.max_entries = max_entries
        self.entries: deque = deque(maxlen=max_entries)
        self._lock = asyncio.Lock()

    async def _write(self, entry: SystemLogEntry) -> None:
        async with self._lock:
            self.entries.append(entry)

    async def _entries(self) -> List[SystemLogEntry]:
        async with self._lock:
            return list(self.entries)

    async def _replace(self, entries: List[SystemLogEntry]) -> None:
        async with self._lock:
            self.entries = deque(entries, maxlen=self.max_entries)


class FileSystemLogger(SystemLogger):
    """System log kept as JSON lines in a file"""

    def __init__(self, file_path: str, level: LogLevel = LogLevel.BASIC):
        super().__init__(level)
        self.file_path = file_path
        self._lock = asyncio.Lock()

    async def _write(self, entry: SystemLogEntry) -> None:
        async with self._lock:
            async with aiofiles.open(self.file_path, "a", encoding="utf-8") as f:
                await f.write(json.dumps(entry.to_dict(), default=str) + "\n")

    async def _entries(self) -> List[SystemLogEntry]:
        entries = []
        async with self._lock:
            try:
                async with aiofiles.open(self.file_path, "r", encoding="utf-8") as f:
                    async for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            entries.append(SystemLogEntry.from_dict(json.loads(line)))
                        except (json.JSONDecodeError, KeyError, ValueError):
                            logger.debug(f"Skipping malformed system log line in {self.file_path}")
            except FileNotFoundError:
                pass
        return entries

    async def _replace(self, entries: List[SystemLogEntry]) -> None:
        async with self._lock:
            tmp_path = f"{self.file_path}.tmp"
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write("".join(json.dumps(entry.to_dict(), default=str) + "\n" for entry in entries))
            os.replace(tmp_path, self.file_path)


def create_system_logger(logger_type: str = "memory", **kwargs) -> SystemLogger:
    """
    Factory function to create system loggers

    Args:
        logger_type: Type of logger ("memory" or "file")
        **kwargs: Additional arguments for the logger

    Returns:
        SystemLogger instance
    """
    level = kwargs.get("level", LogLevel.BASIC)
    if logger_type == "memory":
        return MemorySystemLogger(level, kwargs.get("max_entries", 1000))
    elif logger_type == "file":
        return FileSystemLogger(kwargs.get("file_path", "authgate-system.log"), level)
    else:
        raise ValueError(f"Unknown logger type: {logger_type}")
