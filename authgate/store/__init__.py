"""
Settings and access-list storage for AuthGate.
"""

from .settings import (
    Scope,
    SettingsStore,
    MemorySettingsStore,
    RedisSettingsStore,
    create_settings_store,
)
from .lists import (
    AccessList,
    AccessLists,
    ApprovedEntry,
    BlockedEntry,
    ListScope,
    PendingEntry,
)

__all__ = [
    "Scope",
    "SettingsStore",
    "MemorySettingsStore",
    "RedisSettingsStore",
    "create_settings_store",
    "AccessList",
    "AccessLists",
    "ApprovedEntry",
    "BlockedEntry",
    "ListScope",
    "PendingEntry",
]
