"""
AuthGate Python Package

Access-decision core for sites behind external identity providers.
"""

__version__ = "0.1.0"

from .core import (
    AuthGateConfig,
    ProviderSettings,
    LoginPolicy,
    ViewPolicy,
    RedirectMode,
    AuthorizationHooks,
    AuthProvider,
    ExternalIdentity,
    CustomRole,
    AccessNotice,
    Outcome,
    Authorized,
    Blocked,
    PendingApproval,
    AuthGateError,
    InvalidIdentity,
    AccountCreationFailed,
    TenantJoinFailed,
    InvalidLogin,
)
from .core.engine import AuthorizationEngine
from .rolemap import RoleMappingResolver
from .sync import ProfileSyncScheduler, DeferredTasks
from .vault import TokenVault
from .gate import RouteGate, AccessGateMiddleware

__all__ = [
    "AuthorizationEngine",
    "AuthGateConfig",
    "ProviderSettings",
    "LoginPolicy",
    "ViewPolicy",
    "RedirectMode",
    "AuthorizationHooks",
    "AuthProvider",
    "ExternalIdentity",
    "CustomRole",
    "AccessNotice",
    "Outcome",
    "Authorized",
    "Blocked",
    "PendingApproval",
    "AuthGateError",
    "InvalidIdentity",
    "AccountCreationFailed",
    "TenantJoinFailed",
    "InvalidLogin",
    "RoleMappingResolver",
    "ProfileSyncScheduler",
    "DeferredTasks",
    "TokenVault",
    "RouteGate",
    "AccessGateMiddleware",
]
