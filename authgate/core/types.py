"""
Core types and data structures for AuthGate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..accounts.models import Account


class AuthProvider(str, Enum):
    """External services that can authenticate an identity"""
    NONE = "none"
    CAS = "cas"
    LDAP = "ldap"
    OAUTH2 = "oauth2"
    OIDC = "oidc"
    GOOGLE = "google"


# Providers with a single configured instance (no server id suffix)
SINGLE_INSTANCE_PROVIDERS = (AuthProvider.LDAP, AuthProvider.GOOGLE, AuthProvider.NONE)

# Providers that hand back a bearer token usable against the identity graph
TOKEN_BEARING_PROVIDERS = (AuthProvider.OAUTH2, AuthProvider.OIDC)


@dataclass(frozen=True)
class ExternalIdentity:
    """
    A verified identity produced by an external provider.

    ``emails`` is ordered: the engine tries candidates in this order and
    the last one decides where a pending request lands.
    """
    emails: Tuple[str, ...]
    authenticated_by: AuthProvider = AuthProvider.NONE
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    server_id: int = 1
    username: Optional[str] = None
    token: Any = None
    provider_name: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.emails, str):
            object.__setattr__(self, "emails", (self.emails,))
        else:
            object.__setattr__(self, "emails", tuple(self.emails))
        object.__setattr__(self, "authenticated_by", AuthProvider(self.authenticated_by))

    @property
    def is_token_bearing(self) -> bool:
        """True when the provider supplied a bearer token for profile sync."""
        return self.authenticated_by in TOKEN_BEARING_PROVIDERS and self.token is not None

    @property
    def instance_id(self) -> Optional[int]:
        """Provider instance id, or None for single-instance providers."""
        if self.authenticated_by in SINGLE_INSTANCE_PROVIDERS:
            return None
        return self.server_id or 1


@dataclass
class CustomRole:
    """Structured result of a custom role hook (multi-role support)"""
    default_role: str
    roles_to_add: List[str] = field(default_factory=list)
    roles_to_remove: List[str] = field(default_factory=list)

    @classmethod
    def coerce(cls, value: Union[str, "CustomRole", Dict[str, Any]], fallback: str) -> "CustomRole":
        """Normalize a hook return value (plain role, mapping, or CustomRole)."""
        if isinstance(value, CustomRole):
            return value
        if isinstance(value, dict):
            return cls(
                default_role=value.get("default_role") or fallback,
                roles_to_add=list(value.get("roles_to_add") or []),
                roles_to_remove=list(value.get("roles_to_remove") or []),
            )
        return cls(default_role=value or fallback)

    @property
    def has_deltas(self) -> bool:
        return bool(self.roles_to_add or self.roles_to_remove)


@dataclass
class AccessNotice:
    """User-facing content shown with a blocked or pending outcome"""
    title: str
    message: str
    action_label: str
    action_url: str


class Outcome:
    """Base class for access decisions"""
    allowed: bool = False


@dataclass
class Authorized(Outcome):
    """The identity is admitted; ``account`` carries ``role``."""
    account: Account
    role: str
    allowed: bool = True


@dataclass
class Blocked(Outcome):
    """The identity is blocked; no account was created."""
    reason: str
    email: str
    notice: Optional[AccessNotice] = None
    allowed: bool = False


@dataclass
class PendingApproval(Outcome):
    """The identity awaits approval; an entry sits in the pending list."""
    email: str
    role: str
    newly_added: bool = False
    notified: List[str] = field(default_factory=list)
    notice: Optional[AccessNotice] = None
    allowed: bool = False
