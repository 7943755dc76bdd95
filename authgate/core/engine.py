"""
Authorization decision engine.

Given an identity verified by an external provider, the engine decides
whether the identity is blocked, admitted (creating or updating its local
account) or queued for approval. The decision runs in a fixed order:

1. block check (hook and blocked list), for every candidate e-mail
2. administrator bypass
3. role determination (custom role and auto-approve hooks)
4. approved/pending evaluation, one candidate e-mail at a time

List writes are whole-value read-modify-write operations on the settings
store; the engine does no locking of its own.
"""

import logging
from typing import List, Optional

from .config import AuthGateConfig, LoginPolicy, UpdateOnLogin
from .errors import AccountCreationFailed, AccountStoreError, InvalidIdentity, InvalidLogin, TenantJoinFailed
from .hooks import AuthorizationHooks, call_hook
from .types import (
    AccessNotice,
    Authorized,
    Blocked,
    CustomRole,
    ExternalIdentity,
    Outcome,
    PendingApproval,
)
from ..accounts.models import Account
from ..accounts.store import AccountStore
from ..common.utils import email_local_part, generate_password, get_current_time, lowercase, unique
from ..notify.channel import NotificationChannel
from ..store.lists import AccessList, AccessLists, ApprovedEntry, BlockedEntry, ListScope, PendingEntry
from ..store.settings import SettingsStore
from ..sync.scheduler import ProfileSyncScheduler


class AuthorizationEngine:
    """
    Decides access for externally authenticated identities.

    Use :meth:`check_access` when the caller already knows the local account
    mapped to the identity, or :meth:`authorize` to look it up by e-mail.
    """

    def __init__(
        self,
        config: AuthGateConfig,
        settings: SettingsStore,
        accounts: AccountStore,
        notifier: Optional[NotificationChannel] = None,
        scheduler: Optional[ProfileSyncScheduler] = None,
        hooks: Optional[AuthorizationHooks] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Site configuration
            settings: Settings store holding the access lists
            accounts: Local account store
            notifier: Channel for pending-user notifications (optional)
            scheduler: Profile sync scheduler for token-bearing logins (optional)
            hooks: Extension callbacks (optional)
        """
        self.config = config
        self.settings = settings
        self.accounts = accounts
        self.notifier = notifier
        self.scheduler = scheduler
        self.hooks = hooks or AuthorizationHooks()
        self.lists = AccessLists(settings, config)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def new(
        cls,
        config: AuthGateConfig,
        settings: SettingsStore,
        accounts: AccountStore,
        notifier: Optional[NotificationChannel] = None,
        scheduler: Optional[ProfileSyncScheduler] = None,
        hooks: Optional[AuthorizationHooks] = None,
    ) -> "AuthorizationEngine":
        """
        Create an engine after validating the configuration.

        Raises:
            ValueError: If the configuration is invalid
        """
        config.validate()
        return cls(config, settings, accounts, notifier, scheduler, hooks)

    async def is_email_in_list(self, email: str, which: AccessList = AccessList.APPROVED,
                               scope: ListScope = ListScope.ALL) -> bool:
        """Case-insensitive list membership; blocked lookups honour @domain entries."""
        return await self.lists.contains(email, which, scope)

    async def authorize(self, identity: ExternalIdentity) -> Outcome:
        """Look up the account mapped to the identity by e-mail, then decide access."""
        account = None
        for email in identity.emails:
            if lowercase(email):
                account = await self.accounts.get_by_email(email)
                if account is not None:
                    break
        return await self.check_access(identity, account)

    async def check_access(self, identity: ExternalIdentity, account: Optional[Account] = None) -> Outcome:
        """
        Decide access for an identity.

        Args:
            identity: Verified external identity
            account: Local account already mapped to the identity, if any

        Returns:
            Blocked, Authorized or PendingApproval

        Raises:
            InvalidIdentity: If the identity has no usable e-mail address
            AccountCreationFailed: If the account store rejects a new account
            TenantJoinFailed: If joining the current site fails on multisite
            InvalidLogin: If no outcome was reached
        """
        emails = unique(lowercase(email) for email in identity.emails if lowercase(email))
        if not emails:
            raise InvalidIdentity()

        provider = identity.authenticated_by.value
        if account is not None and identity.authenticated_by.value != "none":
            await self.accounts.set_meta(account.id, "authenticated_by", provider)

        blocked = await self._check_blocked(identity, emails, account)
        if blocked is not None:
            return blocked

        if account is not None and self.is_elevated(account):
            await self._update_names(identity, account)
            role = self._first_role(account) or ""
            self.logger.info(f"Administrator {account.login} admitted without list checks")
            return Authorized(account=await self._reload(account), role=role)

        default_role = self._first_role(account) or self.config.default_role
        custom = CustomRole(default_role)
        if self.hooks.custom_role is not None:
            custom = CustomRole.coerce(
                await call_hook(self.hooks.custom_role, default_role, default_role, identity, account),
                default_role,
            )
        approved_role = custom.default_role
        auto_approve = bool(await call_hook(self.hooks.auto_approve, False, identity, account))

        last_email = emails[-1]
        for email in emails:
            entry: Optional[ApprovedEntry] = None

            if not await self.lists.is_approved(email) and (
                self.config.who_can_login == LoginPolicy.EXTERNAL_USERS or auto_approve
            ):
                await self.lists.remove(AccessList.PENDING, email)
                entry = ApprovedEntry(
                    email=email,
                    role=approved_role,
                    date_added=get_current_time().strftime("%Y-%m-%d %H:%M:%S"),
                )
                await self.lists.add(AccessList.APPROVED, entry)
                self.logger.info(f"Approved {email} as {approved_role} on site {self.config.site_id}")

            if entry is None and await self.lists.is_approved(email):
                entry = await self.lists.find(AccessList.APPROVED, email, ListScope.ALL)

            if entry is not None:
                return await self._admit(identity, account, entry, custom)

            if email == last_email:
                return await self._queue_pending(identity, email, approved_role)

        raise InvalidLogin()

    async def _check_blocked(self, identity: ExternalIdentity, emails: List[str],
                             account: Optional[Account]) -> Optional[Blocked]:
        blocked_by_hook = not await call_hook(self.hooks.allow_login, True, identity)

        for email in emails:
            on_list = await self.lists.is_blocked(email)
            if not (blocked_by_hook or on_list):
                continue

            if blocked_by_hook and not on_list:
                await self.lists.add(AccessList.BLOCKED, BlockedEntry(email=email))
            if account is not None:
                await self.accounts.set_meta(account.id, "auth_blocked", "yes")

            message = await call_hook(self.hooks.blocked_message, self.config.blocked_message,
                                      self.config.blocked_message)
            self.logger.info(f"Blocked login for {email}")
            return Blocked(
                reason="allow_login" if blocked_by_hook else "blocked_list",
                email=email,
                notice=AccessNotice(
                    title=f"{self.config.site_name} - Access Restricted",
                    message=message,
                    action_label="Back",
                    action_url=self.config.logout_url,
                ),
            )
        return None

    async def _admit(self, identity: ExternalIdentity, account: Optional[Account],
                     entry: ApprovedEntry, custom: CustomRole) -> Authorized:
        email = entry.email
        role = entry.role or custom.default_role

        if self.hooks.custom_role is not None:
            role = custom.default_role
            await self.lists.update_role(AccessList.APPROVED, email, role, ListScope.SINGLE)
            if self.config.multisite:
                await self.lists.update_role(AccessList.APPROVED, email, role, ListScope.NETWORK)

        # An approved address never stays pending
        await self.lists.remove(AccessList.PENDING, email)

        if account is None:
            account = await self._create_account(identity, entry, role)
        else:
            await self._update_names(identity, account)
            await self._hand_off_token(identity, account)

        if self.config.multisite and not await self.accounts.is_member(self.config.site_id, account.id):
            try:
                await self.accounts.join_tenant(self.config.site_id, account.id, role)
            except AccountStoreError as e:
                raise TenantJoinFailed(
                    f"Could not add {email} to site {self.config.site_id}",
                    {"email": email, "site_id": self.config.site_id},
                ) from e

        await self._reconcile_roles(identity, account, role, custom)

        self.logger.info(f"Authorized {email} as {role} on site {self.config.site_id}")
        return Authorized(account=await self._reload(account), role=role)

    async def _create_account(self, identity: ExternalIdentity, entry: ApprovedEntry, role: str) -> Account:
        username = identity.username or email_local_part(entry.email)
        if await self.accounts.get_by_login(username) is not None:
            username = entry.email

        try:
            account = await self.accounts.create(
                login=lowercase(username),
                email=entry.email,
                password=generate_password(),
                role=role,
                site_id=self.config.site_id,
                first_name=identity.first_name or "",
                last_name=identity.last_name or "",
            )
        except AccountStoreError as e:
            raise AccountCreationFailed(
                f"Could not create an account for {entry.email}: {e.message}",
                {"email": entry.email, "error_code": e.error_code},
            ) from e

        await call_hook(self.hooks.on_user_register, None, account, identity)

        if identity.authenticated_by.value != "none":
            await self.accounts.set_meta(account.id, "authenticated_by", identity.authenticated_by.value)

        await self._hand_off_token(identity, account)

        if self.config.multisite:
            await self._join_approved_sites(account)

        await self._apply_usermeta(account, entry, role)
        return account

    async def _hand_off_token(self, identity: ExternalIdentity, account: Account) -> None:
        if self.scheduler is None or not identity.is_token_bearing:
            return
        await self.scheduler.enqueue(
            account.id,
            identity.token,
            identity.server_id or 1,
            account.email,
            identity.authenticated_by.value,
        )

    async def _join_approved_sites(self, account: Account) -> None:
        """Add a new account to every other site whose approved list names it."""
        member_of = set(await self.accounts.sites_of(account.id))
        for site_id in await self.settings.list_sites():
            if site_id == self.config.site_id or site_id in member_of:
                continue
            other = await self.lists.for_site(site_id).find(AccessList.APPROVED, account.email, ListScope.SINGLE)
            if other is None:
                continue
            try:
                await self.accounts.join_tenant(site_id, account.id, other.role or self.config.default_role)
            except AccountStoreError as e:
                self.logger.warning(f"Could not add {account.email} to site {site_id}: {e}")

    async def _apply_usermeta(self, account: Account, entry: ApprovedEntry, role: str) -> None:
        usermeta = entry.usermeta
        meta_key = self.config.usermeta_key
        if not isinstance(usermeta, dict) or not usermeta or not meta_key:
            return

        if "meta_key" in usermeta and "meta_value" in usermeta:
            # A stale key means the entry predates the current setting
            if usermeta["meta_key"] == meta_key:
                await self.accounts.set_meta(account.id, meta_key, usermeta["meta_value"])
            return

        if not self.config.multisite:
            return
        for site_id, site_meta in usermeta.items():
            if not isinstance(site_meta, dict) or "meta_key" not in site_meta or "meta_value" not in site_meta:
                continue
            site_id = str(site_id)
            if not await self.accounts.is_member(site_id, account.id):
                await self.accounts.join_tenant(site_id, account.id, role)
            await self.accounts.set_meta(account.id, meta_key, site_meta["meta_value"], site_id=site_id)

    async def _reconcile_roles(self, identity: ExternalIdentity, account: Account,
                               role: str, custom: CustomRole) -> None:
        site_id = self.config.site_id
        current = await self.accounts.roles(account.id, site_id)
        if role and role not in current:
            if custom.has_deltas:
                await self.accounts.add_role(account.id, role, site_id)
            else:
                await self.accounts.set_role(account.id, role, site_id)

        # Deltas apply to the current site only
        roles_to_add = await call_hook(self.hooks.roles_to_add, custom.roles_to_add,
                                       list(custom.roles_to_add), identity, account)
        for extra in roles_to_add or []:
            await self.accounts.add_role(account.id, extra, site_id)

        roles_to_remove = await call_hook(self.hooks.roles_to_remove, custom.roles_to_remove,
                                          list(custom.roles_to_remove), identity, account)
        for stale in roles_to_remove or []:
            await self.accounts.remove_role(account.id, stale, site_id)

    async def _queue_pending(self, identity: ExternalIdentity, email: str, role: str) -> PendingApproval:
        newly_added = False
        notified: List[str] = []
        if not await self.lists.is_pending(email):
            newly_added = await self.lists.add(AccessList.PENDING, PendingEntry(email=email, role=role))
            notified = await self._notify_pending(email)

        message = await call_hook(self.hooks.pending_message, self.config.pending_message,
                                  self.config.pending_message)
        logout_url = self.config.logout_url
        if identity.authenticated_by.value != "none":
            separator = "&" if "?" in logout_url else "?"
            logout_url = f"{logout_url}{separator}external={identity.authenticated_by.value}"

        self.logger.info(f"Login for {email} is pending approval on site {self.config.site_id}")
        return PendingApproval(
            email=email,
            role=role,
            newly_added=newly_added,
            notified=notified,
            notice=AccessNotice(
                title=f"{self.config.site_name} - Access Pending",
                message=message,
                action_label="Back",
                action_url=logout_url,
            ),
        )

    async def _notify_pending(self, email: str) -> List[str]:
        """Tell configured recipients about a pending user; returns who was notified."""
        if self.notifier is None:
            return []

        recipients: List[str] = []
        role = self.config.role_receive_pending_emails
        if role:
            for member in await self.accounts.users_with_role(role, self.config.site_id):
                if member.email:
                    recipients.append(lowercase(member.email))
        for login in self.config.users_receive_pending_emails:
            member = await self.accounts.get_by_login(login)
            if member is not None and member.email:
                recipients.append(lowercase(member.email))

        subject = f"Action required: Pending user {email} at {self.config.site_name}"
        body = (
            f"A new user has tried to access the {self.config.site_name} site you manage at:\n"
            f"{self.config.site_url}\n\n"
            f"Please log in to approve or deny their request:\n"
            f"{self.config.settings_url}\n"
        )

        notified = []
        for recipient in unique(recipients):
            try:
                if await self.notifier.send(recipient, subject, body):
                    notified.append(recipient)
            except Exception as e:
                self.logger.warning(f"Failed to notify {recipient} about pending user {email}: {e}")
        return notified

    async def _update_names(self, identity: ExternalIdentity, account: Account) -> None:
        """Refresh first/last name from the provider when its update policy says so."""
        settings = self.config.provider_settings(identity.authenticated_by.value, identity.instance_id)
        policy = settings.attr_update_on_login

        updates = {}
        for field_name in ("first_name", "last_name"):
            incoming = getattr(identity, field_name)
            current = getattr(account, field_name)
            if not incoming or incoming == current:
                continue
            if policy == UpdateOnLogin.ALWAYS or (policy == UpdateOnLogin.UPDATE_IF_EMPTY and not current):
                updates[field_name] = incoming

        if updates:
            await self.accounts.update(account.id, **updates)

    # Members who may manage users skip the access lists
    def is_elevated(self, account: Account) -> bool:
        if account.super_admin:
            return True
        if self.config.multisite:
            return False
        return any(role in self.config.admin_roles for role in account.roles_for(self.config.site_id))

    def _first_role(self, account: Optional[Account]) -> Optional[str]:
        if account is None:
            return None
        roles = account.roles_for(self.config.site_id)
        return roles[0] if roles else None

    async def _reload(self, account: Account) -> Account:
        return await self.accounts.get(account.id) or account
