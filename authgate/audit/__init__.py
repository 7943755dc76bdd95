"""
System log for AuthGate.
"""

from .system_log import (
    LogLevel,
    SyncEventType,
    EventStatus,
    RequestInfo,
    SystemLogEntry,
    SystemLogger,
    MemorySystemLogger,
    FileSystemLogger,
    create_system_logger,
    filter_details,
    client_ip_from_headers,
)

__all__ = [
    "LogLevel",
    "SyncEventType",
    "EventStatus",
    "RequestInfo",
    "SystemLogEntry",
    "SystemLogger",
    "MemorySystemLogger",
    "FileSystemLogger",
    "create_system_logger",
    "filter_details",
    "client_ip_from_headers",
]
