"""
Account storage for AuthGate.

The account store is an external collaborator; the in-memory
implementation serves development, tests and single-process deployments.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from .models import Account, ProfilePhoto
from ..common.utils import generate_id, lowercase
from ..core.errors import AccountStoreError


logger = logging.getLogger(__name__)


DEFAULT_ROLES = ("administrator", "editor", "author", "contributor", "subscriber")

# Core account fields that update() may write
ACCOUNT_FIELDS = ("first_name", "last_name", "description", "url", "email", "password", "super_admin")


class AccountStore(ABC):
    """Abstract base class for local account storage"""

    @abstractmethod
    async def create(
        self,
        login: str,
        email: str,
        password: str,
        role: str,
        site_id: str,
        first_name: str = "",
        last_name: str = "",
    ) -> Account:
        """
        Create an account and add it to ``site_id`` with ``role``.

        Raises:
            AccountStoreError: If the login or e-mail is already taken
        """
        pass

    @abstractmethod
    async def get(self, account_id: str) -> Optional[Account]:
        """Get an account by id"""
        pass

    @abstractmethod
    async def get_by_login(self, login: str) -> Optional[Account]:
        """Get an account by login name"""
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Account]:
        """Get an account by e-mail address"""
        pass

    @abstractmethod
    async def update(self, account_id: str, **attrs: Any) -> Account:
        """Update core account fields"""
        pass

    @abstractmethod
    async def set_role(self, account_id: str, role: str, site_id: str) -> None:
        """Replace all roles on a site with ``role``"""
        pass

    @abstractmethod
    async def add_role(self, account_id: str, role: str, site_id: str) -> None:
        """Add ``role`` on a site, keeping existing roles"""
        pass

    @abstractmethod
    async def remove_role(self, account_id: str, role: str, site_id: str) -> None:
        """Remove ``role`` on a site"""
        pass

    @abstractmethod
    async def is_member(self, site_id: str, account_id: str) -> bool:
        """Check tenant membership"""
        pass

    @abstractmethod
    async def join_tenant(self, site_id: str, account_id: str, role: str) -> None:
        """Add an account to a tenant with ``role``"""
        pass

    @abstractmethod
    async def users_with_role(self, role: str, site_id: str) -> List[Account]:
        """List accounts holding ``role`` on a site"""
        pass

    @abstractmethod
    async def get_meta(self, account_id: str, key: str, default: Any = None) -> Any:
        """Read an auxiliary account attribute"""
        pass

    @abstractmethod
    async def set_meta(self, account_id: str, key: str, value: Any, site_id: Optional[str] = None) -> None:
        """Write an auxiliary account attribute, optionally scoped to a site"""
        pass

    @abstractmethod
    async def set_avatar(self, account_id: str, photo: ProfilePhoto) -> None:
        """Store the account's avatar"""
        pass

    @abstractmethod
    def role_exists(self, role: str) -> bool:
        """Check whether a role name is known to the store"""
        pass

    async def roles(self, account_id: str, site_id: str) -> List[str]:
        """Roles an account holds on a site"""
        account = await self.get(account_id)
        return account.roles_for(site_id) if account else []

    async def sites_of(self, account_id: str) -> List[str]:
        """Sites an account is a member of"""
        account = await self.get(account_id)
        return account.sites if account else []

    async def close(self) -> None:
        """Close the account store and release resources"""
        pass


class MemoryAccountStore(AccountStore):
    """In-memory account store for development and testing"""

    def __init__(self, roles: Iterable[str] = DEFAULT_ROLES):
        self._accounts: Dict[str, Account] = {}
        self._roles = set(roles)
        self._lock = asyncio.Lock()

    def add_role_definition(self, role: str) -> None:
        """Make a role name known to the store"""
        self._roles.add(role)

    def role_exists(self, role: str) -> bool:
        return role in self._roles

    async def create(
        self,
        login: str,
        email: str,
        password: str,
        role: str,
        site_id: str,
        first_name: str = "",
        last_name: str = "",
    ) -> Account:
        login = lowercase(login)
        email = lowercase(email)
        if not login or not email:
            raise AccountStoreError("login and email are required", "EMPTY_LOGIN")

        async with self._lock:
            for existing in self._accounts.values():
                if existing.login == login:
                    raise AccountStoreError(f"Login already taken: {login}", "EXISTING_USER_LOGIN")
                if existing.email == email:
                    raise AccountStoreError(f"Email already registered: {email}", "EXISTING_USER_EMAIL")

            account = Account(
                id=generate_id(),
                login=login,
                email=email,
                password=password,
                first_name=first_name or "",
                last_name=last_name or "",
                site_roles={site_id: [role] if role else []},
            )
            self._accounts[account.id] = account

        logger.info(f"Created account {account.login} ({account.id}) on site {site_id}")
        return copy.deepcopy(account)

    async def put(self, account: Account) -> Account:
        """Insert or replace an account as-is (seeding and tests)."""
        async with self._lock:
            self._accounts[account.id] = copy.deepcopy(account)
        return account

    async def get(self, account_id: str) -> Optional[Account]:
        async with self._lock:
            account = self._accounts.get(account_id)
            return copy.deepcopy(account) if account else None

    async def get_by_login(self, login: str) -> Optional[Account]:
        login = lowercase(login)
        async with self._lock:
            for account in self._accounts.values():
                if account.login == login:
                    return copy.deepcopy(account)
        return None

    async def get_by_email(self, email: str) -> Optional[Account]:
        email = lowercase(email)
        async with self._lock:
            for account in self._accounts.values():
                if account.email == email:
                    return copy.deepcopy(account)
        return None

    async def update(self, account_id: str, **attrs: Any) -> Account:
        unknown = set(attrs) - set(ACCOUNT_FIELDS)
        if unknown:
            raise AccountStoreError(f"Unknown account fields: {sorted(unknown)}", "INVALID_FIELD")
        async with self._lock:
            account = self._require(account_id)
            for key, value in attrs.items():
                setattr(account, key, value)
            return copy.deepcopy(account)

    async def set_role(self, account_id: str, role: str, site_id: str) -> None:
        async with self._lock:
            account = self._require(account_id)
            account.site_roles[site_id] = [role] if role else []

    async def add_role(self, account_id: str, role: str, site_id: str) -> None:
        async with self._lock:
            account = self._require(account_id)
            roles = account.site_roles.setdefault(site_id, [])
            if role and role not in roles:
                roles.append(role)

    async def remove_role(self, account_id: str, role: str, site_id: str) -> None:
        async with self._lock:
            account = self._require(account_id)
            roles = account.site_roles.get(site_id, [])
            if role in roles:
                roles.remove(role)

    async def is_member(self, site_id: str, account_id: str) -> bool:
        async with self._lock:
            account = self._accounts.get(account_id)
            return bool(account and account.is_member(site_id))

    async def join_tenant(self, site_id: str, account_id: str, role: str) -> None:
        async with self._lock:
            account = self._require(account_id)
            if not account.is_member(site_id):
                account.site_roles[site_id] = [role] if role else []
        logger.info(f"Account {account_id} joined site {site_id} as {role}")

    async def users_with_role(self, role: str, site_id: str) -> List[Account]:
        async with self._lock:
            return [
                copy.deepcopy(account)
                for account in self._accounts.values()
                if role in account.site_roles.get(site_id, [])
            ]

    async def get_meta(self, account_id: str, key: str, default: Any = None) -> Any:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return default
            return account.meta.get(key, default)

    async def set_meta(self, account_id: str, key: str, value: Any, site_id: Optional[str] = None) -> None:
        async with self._lock:
            account = self._require(account_id)
            if site_id is None:
                account.meta[key] = value
            else:
                account.meta.setdefault("sites", {}).setdefault(site_id, {})[key] = value

    async def set_avatar(self, account_id: str, photo: ProfilePhoto) -> None:
        async with self._lock:
            account = self._require(account_id)
            account.avatar = photo

    def _require(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise AccountStoreError(f"Account not found: {account_id}", "ACCOUNT_NOT_FOUND")
        return account


def create_account_store(store_type: str = "memory", **kwargs) -> AccountStore:
    """
    Factory function to create account stores

    Args:
        store_type: Type of store ("memory")
        **kwargs: Additional arguments for the store

    Returns:
        AccountStore instance
    """
    if store_type == "memory":
        return MemoryAccountStore(kwargs.get("roles", DEFAULT_ROLES))
    raise ValueError(f"Unknown store type: {store_type}")
