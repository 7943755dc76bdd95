"""
Approved, pending and blocked access lists.

Each list is stored as a single settings value (a list of dicts) and is
always read and written whole. E-mails are compared lower-cased.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .settings import Scope, SettingsStore
from ..common.utils import email_domain, get_current_time, lowercase
from ..core.config import AuthGateConfig


logger = logging.getLogger(__name__)


def _month_stamp() -> str:
    return get_current_time().strftime("%b %Y")


@dataclass
class ApprovedEntry:
    """An approved user, optionally carrying a preassigned attribute override"""
    email: str
    role: str = ""
    date_added: str = field(default_factory=_month_stamp)
    usermeta: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"email": self.email, "role": self.role, "date_added": self.date_added}
        if self.usermeta is not None:
            data["usermeta"] = self.usermeta
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovedEntry":
        return cls(
            email=lowercase(data.get("email")),
            role=data.get("role", "") or "",
            date_added=data.get("date_added", "") or "",
            usermeta=data.get("usermeta"),
        )


@dataclass
class PendingEntry:
    """A user waiting for an administrator to approve access"""
    email: str
    role: str = ""
    date_added: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "role": self.role, "date_added": self.date_added}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingEntry":
        return cls(
            email=lowercase(data.get("email")),
            role=data.get("role", "") or "",
            date_added=data.get("date_added", "") or "",
        )


@dataclass
class BlockedEntry:
    """A blocked e-mail, or a whole domain when ``email`` starts with '@'"""
    email: str
    date_added: str = field(default_factory=_month_stamp)

    @property
    def is_domain(self) -> bool:
        return self.email.startswith("@")

    def matches(self, email: str) -> bool:
        email = lowercase(email)
        if self.is_domain:
            return email_domain(email) == self.email
        return email == self.email

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "date_added": self.date_added}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlockedEntry":
        return cls(email=lowercase(data.get("email")), date_added=data.get("date_added", "") or "")


ListEntry = Union[ApprovedEntry, PendingEntry, BlockedEntry]


class AccessList(str, Enum):
    """The three access lists and their settings keys"""
    APPROVED = "approved"
    PENDING = "pending"
    BLOCKED = "blocked"

    @property
    def settings_key(self) -> str:
        return f"access_users_{self.value}"

    @property
    def entry_type(self):
        return {
            AccessList.APPROVED: ApprovedEntry,
            AccessList.PENDING: PendingEntry,
            AccessList.BLOCKED: BlockedEntry,
        }[self]


class ListScope(str, Enum):
    """Which copies of a list a lookup consults"""
    SINGLE = "single"    # this site only
    NETWORK = "network"  # the network list only
    ALL = "all"          # this site plus the network list, when visible


class AccessLists:
    """
    Typed access to the access lists of one site.

    Only the approved list exists at network scope; pending and blocked
    lookups always consult the site list.
    """

    def __init__(self, settings: SettingsStore, config: AuthGateConfig):
        self.settings = settings
        self.config = config

    def for_site(self, site_id: str) -> "AccessLists":
        """Access lists of another site in the same network."""
        return AccessLists(self.settings.for_site(site_id), self.config)

    @staticmethod
    def sanitize(entries: List[ListEntry]) -> List[ListEntry]:
        """Lower-case e-mails, drop blank ones and keep the first entry per e-mail."""
        seen = set()
        result = []
        for entry in entries:
            entry.email = lowercase(entry.email)
            if not entry.email or entry.email in seen:
                continue
            seen.add(entry.email)
            result.append(entry)
        return result

    async def load(self, which: AccessList, scope: ListScope = ListScope.SINGLE) -> List[ListEntry]:
        """Load a list. ``ListScope.ALL`` concatenates site and visible network entries."""
        which = AccessList(which)
        scope = ListScope(scope)
        if which != AccessList.APPROVED or scope == ListScope.SINGLE:
            return await self._read(which, Scope.SINGLE)
        if scope == ListScope.NETWORK:
            return await self._read(which, Scope.NETWORK)
        entries = await self._read(which, Scope.SINGLE)
        if self.config.network_list_visible:
            entries.extend(await self._read(which, Scope.NETWORK))
        return entries

    async def save(self, which: AccessList, entries: List[ListEntry], scope: ListScope = ListScope.SINGLE) -> None:
        """Replace a whole list."""
        which = AccessList(which)
        storage_scope = Scope.NETWORK if ListScope(scope) == ListScope.NETWORK else Scope.SINGLE
        entries = self.sanitize(list(entries))
        await self.settings.set(which.settings_key, [entry.to_dict() for entry in entries], storage_scope)

    async def find(self, which: AccessList, email: str, scope: ListScope = ListScope.SINGLE) -> Optional[ListEntry]:
        """First entry with this exact e-mail (domain wildcards are not expanded)."""
        email = lowercase(email)
        for entry in await self.load(which, scope):
            if entry.email == email:
                return entry
        return None

    async def add(self, which: AccessList, entry: ListEntry, scope: ListScope = ListScope.SINGLE) -> bool:
        """Append an entry unless its e-mail is already present. Returns True if added."""
        scope = self._writable(scope)
        entries = await self.load(which, scope)
        email = lowercase(entry.email)
        if not email or any(existing.email == email for existing in entries):
            return False
        entry.email = email
        entries.append(entry)
        await self.save(which, entries, scope)
        logger.info(f"Added {email} to {AccessList(which).value} list of site {self.settings.site_id}")
        return True

    async def remove(self, which: AccessList, email: str, scope: ListScope = ListScope.SINGLE) -> bool:
        """Remove every entry with this e-mail. Returns True if anything was removed."""
        scope = self._writable(scope)
        email = lowercase(email)
        entries = await self.load(which, scope)
        kept = [entry for entry in entries if entry.email != email]
        if len(kept) == len(entries):
            return False
        await self.save(which, kept, scope)
        logger.info(f"Removed {email} from {AccessList(which).value} list of site {self.settings.site_id}")
        return True

    async def update_role(self, which: AccessList, email: str, role: str, scope: ListScope = ListScope.SINGLE) -> bool:
        """Rewrite the stored role of an entry. Returns True if the stored value changed."""
        scope = self._writable(scope)
        email = lowercase(email)
        entries = await self.load(which, scope)
        changed = False
        for entry in entries:
            if entry.email == email and getattr(entry, "role", role) != role:
                entry.role = role
                changed = True
        if changed:
            await self.save(which, entries, scope)
        return changed

    async def contains(self, email: str, which: AccessList = AccessList.APPROVED,
                       scope: ListScope = ListScope.SINGLE) -> bool:
        """
        Check whether an e-mail is on a list.

        Blocked lookups also honour ``@domain`` entries, matched against the
        part of the address from its last '@'.
        """
        email = lowercase(email)
        if not email:
            return False
        which = AccessList(which)
        entries = await self.load(which, scope)
        if which == AccessList.BLOCKED:
            return any(entry.matches(email) for entry in entries)
        return any(entry.email == email for entry in entries)

    async def is_blocked(self, email: str) -> bool:
        return await self.contains(email, AccessList.BLOCKED)

    async def is_approved(self, email: str) -> bool:
        return await self.contains(email, AccessList.APPROVED, ListScope.ALL)

    async def is_pending(self, email: str) -> bool:
        return await self.contains(email, AccessList.PENDING)

    @staticmethod
    def _writable(scope: ListScope) -> ListScope:
        # Writes target exactly one stored copy; ALL means this site's copy.
        return ListScope.NETWORK if ListScope(scope) == ListScope.NETWORK else ListScope.SINGLE

    async def _read(self, which: AccessList, scope: Scope) -> List[ListEntry]:
        raw = await self.settings.get(which.settings_key, scope, default=[]) or []
        entries = []
        for item in raw:
            if isinstance(item, dict):
                entries.append(which.entry_type.from_dict(item))
            else:
                logger.warning(f"Skipping malformed {which.value} entry: {item!r}")
        return entries
