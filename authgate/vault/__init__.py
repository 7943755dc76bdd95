"""
Token vault for AuthGate.
"""

from .vault import ProviderToken, TokenRecord, TokenVault, derive_fernet_key

__all__ = ["ProviderToken", "TokenRecord", "TokenVault", "derive_fernet_key"]
