"""
Accounts module initialization
"""

from .models import Account, ProfilePhoto
from .store import AccountStore, MemoryAccountStore, create_account_store, DEFAULT_ROLES

__all__ = [
    "Account",
    "ProfilePhoto",
    "AccountStore",
    "MemoryAccountStore",
    "create_account_store",
    "DEFAULT_ROLES",
]
