"""
Deferred profile synchronization for AuthGate.
"""

from .deferred import DeferredJob, DeferredTasks, DEFAULT_PRIORITY
from .mappings import (
    DEFAULT_FIELD_MAPPINGS,
    ACCOUNT_RECORD_KEYS,
    parse_field_mappings,
    merge_field_mappings,
    attribute_key,
)
from .scheduler import ProfileSyncScheduler, SyncJob, SYNC_PRIORITY

__all__ = [
    "DeferredJob",
    "DeferredTasks",
    "DEFAULT_PRIORITY",
    "DEFAULT_FIELD_MAPPINGS",
    "ACCOUNT_RECORD_KEYS",
    "parse_field_mappings",
    "merge_field_mappings",
    "attribute_key",
    "ProfileSyncScheduler",
    "SyncJob",
    "SYNC_PRIORITY",
]
