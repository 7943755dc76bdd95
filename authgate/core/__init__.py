"""
Core module initialization.

The engine lives in :mod:`authgate.core.engine`; it is re-exported from the
top-level package.
"""

from .errors import (
    AuthGateError,
    InvalidIdentity,
    AccountCreationFailed,
    TenantJoinFailed,
    InvalidLogin,
    AccountStoreError,
    SettingsStoreError,
    TokenVaultError,
    GraphClientError,
)
from .config import (
    AuthGateConfig,
    ProviderSettings,
    LoginPolicy,
    ViewPolicy,
    RedirectMode,
    UpdateOnLogin,
    provider_key,
    load_config_file,
    expand_config_variables,
)
from .hooks import AuthorizationHooks, call_hook
from .types import (
    AuthProvider,
    ExternalIdentity,
    CustomRole,
    AccessNotice,
    Outcome,
    Authorized,
    Blocked,
    PendingApproval,
)

__all__ = [
    "AuthGateError",
    "InvalidIdentity",
    "AccountCreationFailed",
    "TenantJoinFailed",
    "InvalidLogin",
    "AccountStoreError",
    "SettingsStoreError",
    "TokenVaultError",
    "GraphClientError",
    "AuthGateConfig",
    "ProviderSettings",
    "LoginPolicy",
    "ViewPolicy",
    "RedirectMode",
    "UpdateOnLogin",
    "provider_key",
    "load_config_file",
    "expand_config_variables",
    "AuthorizationHooks",
    "call_hook",
    "AuthProvider",
    "ExternalIdentity",
    "CustomRole",
    "AccessNotice",
    "Outcome",
    "Authorized",
    "Blocked",
    "PendingApproval",
]
