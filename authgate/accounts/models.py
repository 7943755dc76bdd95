"""
Local account model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..common.utils import get_current_time


@dataclass
class ProfilePhoto:
    """Avatar bytes and their content type"""
    data: bytes
    content_type: str = "image/jpeg"


@dataclass
class Account:
    """
    A local account mapped one-to-one to an external identity.

    Roles are kept per site so a multisite deployment can hold different
    roles on each tenant; ``site_roles`` keys are site ids.
    """
    id: str
    login: str
    email: str
    first_name: str = ""
    last_name: str = ""
    description: str = ""
    url: str = ""
    password: str = ""
    registered_at: datetime = field(default_factory=get_current_time)
    super_admin: bool = False
    site_roles: Dict[str, List[str]] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    avatar: Optional[ProfilePhoto] = None

    def roles_for(self, site_id: str) -> List[str]:
        """Roles held on a site (empty when not a member)."""
        return list(self.site_roles.get(site_id, []))

    def is_member(self, site_id: str) -> bool:
        return site_id in self.site_roles

    @property
    def sites(self) -> List[str]:
        return list(self.site_roles.keys())

    def to_dict(self) -> Dict[str, Any]:
        """Convert account to a dictionary (credential and avatar bytes excluded)."""
        return {
            "id": self.id,
            "login": self.login,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "description": self.description,
            "url": self.url,
            "registered_at": self.registered_at.isoformat(),
            "super_admin": self.super_admin,
            "site_roles": {site: list(roles) for site, roles in self.site_roles.items()},
            "meta": dict(self.meta),
        }
