"""
Profile synchronization after a token-bearing login.

:meth:`ProfileSyncScheduler.enqueue` runs inside the login flow: it stores
the provider token and defers the sync job. :meth:`ProfileSyncScheduler.run_sync`
runs later and performs three independent steps (photo, profile fields and
groups, role mapping); a failing step never stops the next one.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .deferred import DeferredTasks
from .mappings import ACCOUNT_RECORD_KEYS, attribute_key, merge_field_mappings, parse_field_mappings
from ..accounts.store import AccountStore
from ..audit.system_log import EventStatus, SyncEventType, SystemLogger
from ..common.utils import get_timestamp, is_empty_value, json_decode_list, json_encode
from ..core.config import AuthGateConfig
from ..graph.client import IdentityGraphClient
from ..rolemap.resolver import RoleAttributes, parse_role_mappings, resolve_role
from ..vault.vault import ProviderToken, TokenVault


logger = logging.getLogger(__name__)


SYNC_PRIORITY = 999


@dataclass
class SyncJob:
    """Work item for one deferred profile sync"""
    user_id: str
    access_token: str
    server_id: int = 1
    provider: str = "oauth2"
    email: Optional[str] = None


class ProfileSyncScheduler:
    """Stores provider tokens and synchronizes profiles from the identity graph"""

    def __init__(
        self,
        config: AuthGateConfig,
        accounts: AccountStore,
        vault: TokenVault,
        graph: IdentityGraphClient,
        system_log: SystemLogger,
        deferred: DeferredTasks,
        priority: int = SYNC_PRIORITY,
    ):
        self.config = config
        self.accounts = accounts
        self.vault = vault
        self.graph = graph
        self.system_log = system_log
        self.deferred = deferred
        self.priority = priority

    async def enqueue(
        self,
        user_id: str,
        token: Any,
        server_id: int = 1,
        email: Optional[str] = None,
        provider: str = "oauth2",
    ) -> Optional[SyncJob]:
        """
        Store the token now and defer the profile sync.

        Performs no identity-graph I/O. Returns the queued job, or None when
        the token has no usable access token.
        """
        try:
            await self.vault.store(user_id, token)
        except Exception as e:
            logger.error(f"Failed to store provider token for account {user_id}: {e}")

        access_token = ProviderToken.extract(token).access_token if token is not None else None
        if not access_token:
            await self.system_log.log_event(
                SyncEventType.TOKEN_ACQUIRED,
                EventStatus.FAILURE,
                "Failed to extract access token from provider token",
                {"provider": provider},
                user_id,
                email,
            )
            return None

        await self.system_log.log_event(
            SyncEventType.TOKEN_ACQUIRED,
            EventStatus.SUCCESS,
            "Access token acquired",
            {"provider": provider},
            user_id,
            email,
        )

        job = SyncJob(user_id=user_id, access_token=access_token, server_id=server_id or 1,
                      provider=provider, email=email)
        self.deferred.defer(self.run_sync, job, priority=self.priority)
        logger.info(f"Queued profile sync for account {user_id}")
        return job

    async def run_sync(self, job: SyncJob) -> None:
        """Run the deferred sync steps for one job."""
        settings = self.config.provider_settings(job.provider, job.server_id)

        if settings.sync_profile_photo:
            await self._step(SyncEventType.PHOTO_SYNC, job, self.sync_photo(job))

        if settings.sync_profile_fields:
            await self._step(SyncEventType.PROFILE_SYNC, job, self.sync_fields(job))
            await self._step(SyncEventType.GROUPS_SYNC, job, self.sync_groups(job))

        await self._step(SyncEventType.ROLE_ASSIGNED, job, self.apply_role_mapping(job.user_id, job.server_id, job.provider))

    async def _step(self, event_type: SyncEventType, job: SyncJob, step) -> None:
        try:
            await step
        except Exception as e:
            logger.error(f"{event_type.value} failed for account {job.user_id}: {e}")
            await self.system_log.log_event(
                event_type,
                EventStatus.ERROR,
                f"Unexpected error during {event_type.value}",
                {"error_message": str(e), "error_code": getattr(e, "error_code", type(e).__name__)},
                job.user_id,
                job.email,
            )

    async def sync_photo(self, job: SyncJob) -> bool:
        """Fetch the profile photo and store it as the avatar."""
        photo = await self.graph.fetch_photo(job.access_token)
        if photo is None or not photo.data:
            logger.info(f"Profile photo not available for account {job.user_id}")
            await self.system_log.log_event(
                SyncEventType.PHOTO_SYNC, EventStatus.FAILURE,
                "Profile photo not available from identity graph", {}, job.user_id, job.email,
            )
            return False

        await self.accounts.set_avatar(job.user_id, photo)
        await self.accounts.set_meta(job.user_id, "oauth2_profile_photo_synced_at", get_timestamp())
        await self.system_log.log_event(
            SyncEventType.PHOTO_SYNC, EventStatus.SUCCESS, "Profile photo synced",
            {"photo_type": photo.content_type, "photo_size": len(photo.data)}, job.user_id, job.email,
        )
        return True

    async def sync_fields(self, job: SyncJob) -> bool:
        """Fetch profile fields and write them to the account."""
        fields = await self.graph.fetch_fields(job.access_token)
        if not isinstance(fields, dict):
            await self.system_log.log_event(
                SyncEventType.PROFILE_SYNC, EventStatus.FAILURE,
                "Failed to fetch profile fields from identity graph", {}, job.user_id, job.email,
            )
            return False

        settings = self.config.provider_settings(job.provider, job.server_id)
        custom = parse_field_mappings(settings.custom_field_mappings)
        mappings = merge_field_mappings(settings.custom_field_mappings)

        record_updates: Dict[str, Any] = {}
        for graph_field, value in fields.items():
            if is_empty_value(value):
                continue
            key = attribute_key(graph_field, mappings)
            if key in ACCOUNT_RECORD_KEYS:
                record_updates[key] = _record_value(key, value)
            else:
                stored = json_encode(value) if isinstance(value, (list, dict)) else value
                await self.accounts.set_meta(job.user_id, key, stored)

        if record_updates:
            await self.accounts.update(job.user_id, **record_updates)

        await self.accounts.set_meta(job.user_id, "oauth2_profile_fields_synced_at", get_timestamp())
        await self.accounts.set_meta(job.user_id, "oauth2_server_id", job.server_id)

        await self.system_log.log_event(
            SyncEventType.PROFILE_SYNC, EventStatus.SUCCESS, "Profile fields synced",
            {
                "fields_count": len(fields),
                "fields_synced": sorted(fields.keys()),
                "custom_mappings": len(custom),
            },
            job.user_id,
            job.email,
        )
        logger.info(f"Synced {len(fields)} profile fields for account {job.user_id}")
        return True

    async def sync_groups(self, job: SyncJob) -> bool:
        """Fetch group memberships and store them with their display names."""
        groups = await self.graph.fetch_groups(job.access_token)
        if not isinstance(groups, list):
            await self.system_log.log_event(
                SyncEventType.GROUPS_SYNC, EventStatus.FAILURE,
                "Failed to fetch groups from identity graph", {}, job.user_id, job.email,
            )
            return False

        names = [group.get("displayName") for group in groups if group.get("displayName")]
        await self.accounts.set_meta(job.user_id, "oauth2_groups", json_encode(groups))
        await self.accounts.set_meta(job.user_id, "oauth2_group_names", json_encode(names))
        await self.accounts.set_meta(job.user_id, "oauth2_groups_synced_at", get_timestamp())

        await self.system_log.log_event(
            SyncEventType.GROUPS_SYNC, EventStatus.SUCCESS, "Groups synced",
            {"groups_count": len(groups), "group_names": names}, job.user_id, job.email,
        )
        return True

    async def apply_role_mapping(self, user_id: str, server_id: int = 1, provider: str = "oauth2") -> Optional[str]:
        """
        Resolve a role from synchronized attributes and add it to the account.

        The role is added alongside existing roles, never in place of them.
        Returns the role that was added, or None.
        """
        account = await self.accounts.get(user_id)
        if account is None:
            return None

        settings = self.config.provider_settings(provider, server_id)
        default_role = settings.default_role or self.config.default_role
        rules = parse_role_mappings(settings.role_mappings, self.accounts.role_exists)

        job_title = await self.accounts.get_meta(user_id, "oauth2_jobTitle") or \
            await self.accounts.get_meta(user_id, "job_title")
        department = await self.accounts.get_meta(user_id, "oauth2_department")
        groups = [str(name) for name in json_decode_list(await self.accounts.get_meta(user_id, "oauth2_group_names"))]

        attrs = RoleAttributes(email=account.email, job_title=job_title, department=department, groups=groups)
        role = resolve_role(attrs, rules, default_role, self.accounts.role_exists)

        if not role or role in account.roles_for(self.config.site_id):
            return None

        await self.accounts.add_role(user_id, role, self.config.site_id)
        logger.info(f"Assigned role {role} to account {user_id} from profile attributes")
        await self.system_log.log_event(
            SyncEventType.ROLE_ASSIGNED, EventStatus.SUCCESS, "Role assigned from profile attributes",
            {
                "assigned_role": role,
                "email": account.email,
                "job_title": job_title,
                "department": department,
                "groups": groups,
            },
            user_id,
            account.email,
        )
        return role


def _record_value(key: str, value: Any) -> str:
    if isinstance(value, (list, tuple)):
        if key == "description":
            return ", ".join(str(item) for item in value)
        return "" if key == "url" else " ".join(str(item) for item in value)
    return str(value)
