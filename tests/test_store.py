"""
Tests for settings stores and the access-list layer.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from authgate.core.config import AuthGateConfig
from authgate.core.errors import SettingsStoreError
from authgate.store import (
    AccessList,
    AccessLists,
    ApprovedEntry,
    BlockedEntry,
    ListScope,
    MemorySettingsStore,
    PendingEntry,
    RedisSettingsStore,
    Scope,
    create_settings_store,
)


@pytest.fixture
def settings():
    return MemorySettingsStore("1", sites=["1", "2"])


@pytest.fixture
def config():
    return AuthGateConfig()


@pytest.fixture
def lists(settings, config):
    return AccessLists(settings, config)


class TestMemorySettingsStore:
    """In-memory settings."""

    @pytest.mark.asyncio
    async def test_get_default_and_set(self, settings):
        assert await settings.get("missing", default="x") == "x"

        await settings.set("key", {"a": 1})

        assert await settings.get("key") == {"a": 1}

    @pytest.mark.asyncio
    async def test_scopes_are_separate(self, settings):
        await settings.set("key", "site")
        await settings.set("key", "network", Scope.NETWORK)

        assert await settings.get("key") == "site"
        assert await settings.get("key", Scope.NETWORK) == "network"

    @pytest.mark.asyncio
    async def test_site_views_share_network(self, settings):
        other = settings.for_site("2")
        await settings.set("key", "one")
        await settings.set("shared", True, Scope.NETWORK)

        assert await other.get("key") is None
        assert await other.get("shared", Scope.NETWORK) is True
        assert sorted(await other.list_sites()) == ["1", "2"]

    @pytest.mark.asyncio
    async def test_returned_values_are_copies(self, settings):
        await settings.set("key", [1])
        value = await settings.get("key")
        value.append(2)

        assert await settings.get("key") == [1]

    @pytest.mark.asyncio
    async def test_delete(self, settings):
        await settings.set("key", 1)

        assert await settings.delete("key") is True
        assert await settings.delete("key") is False


class TestRedisSettingsStore:
    """Redis settings with a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock(return_value=True)
        client.sadd = AsyncMock(return_value=1)
        client.delete = AsyncMock(return_value=1)
        client.smembers = AsyncMock(return_value={b"2"})
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_set_encodes_json_and_tracks_site(self, redis_client):
        store = RedisSettingsStore(redis_client, "1")

        await store.set("access_users_approved", [{"email": "a@b.c"}])

        redis_client.set.assert_awaited_once_with(
            "authgate:settings:1:access_users_approved", json.dumps([{"email": "a@b.c"}])
        )
        redis_client.sadd.assert_awaited_once_with("authgate:settings:sites", "1")

    @pytest.mark.asyncio
    async def test_network_key(self, redis_client):
        store = RedisSettingsStore(redis_client, "1")

        await store.set("key", 1, Scope.NETWORK)

        redis_client.set.assert_awaited_once_with("authgate:settings:network:key", "1")
        redis_client.sadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, redis_client):
        redis_client.get.return_value = b'{"a": 1}'
        store = RedisSettingsStore(redis_client, "1")

        assert await store.get("key") == {"a": 1}

    @pytest.mark.asyncio
    async def test_get_malformed_returns_default(self, redis_client):
        redis_client.get.return_value = b"not json"
        store = RedisSettingsStore(redis_client, "1")

        assert await store.get("key", default=[]) == []

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, redis_client):
        redis_client.get.side_effect = ConnectionError("refused")
        store = RedisSettingsStore(redis_client, "1")

        with pytest.raises(SettingsStoreError):
            await store.get("key")

    @pytest.mark.asyncio
    async def test_delete_and_list_sites_errors_are_wrapped(self, redis_client):
        redis_client.delete.side_effect = ConnectionError("refused")
        redis_client.smembers.side_effect = ConnectionError("refused")
        store = RedisSettingsStore(redis_client, "1")

        with pytest.raises(SettingsStoreError):
            await store.delete("key")
        with pytest.raises(SettingsStoreError):
            await store.list_sites()

    @pytest.mark.asyncio
    async def test_list_sites_and_close(self, redis_client):
        store = RedisSettingsStore(redis_client, "1")

        assert await store.list_sites() == ["1", "2"]
        await store.close()
        redis_client.aclose.assert_awaited_once()

    def test_factory(self, redis_client):
        assert isinstance(create_settings_store("redis", redis_client=redis_client), RedisSettingsStore)
        assert isinstance(create_settings_store("memory"), MemorySettingsStore)
        with pytest.raises(ValueError):
            create_settings_store("redis")
        with pytest.raises(ValueError):
            create_settings_store("sqlite")


class TestAccessLists:
    """Typed list operations."""

    @pytest.mark.asyncio
    async def test_add_is_idempotent_and_lowercases(self, lists):
        assert await lists.add(AccessList.APPROVED, ApprovedEntry(email="Ann@Example.edu", role="author"))
        assert not await lists.add(AccessList.APPROVED, ApprovedEntry(email="ann@example.edu", role="editor"))

        entries = await lists.load(AccessList.APPROVED)
        assert [(e.email, e.role) for e in entries] == [("ann@example.edu", "author")]

    @pytest.mark.asyncio
    async def test_remove_and_update_role(self, lists):
        await lists.add(AccessList.PENDING, PendingEntry(email="ann@example.edu"))
        await lists.add(AccessList.APPROVED, ApprovedEntry(email="bob@example.edu", role="author"))

        assert await lists.remove(AccessList.PENDING, "ANN@example.edu")
        assert not await lists.remove(AccessList.PENDING, "ann@example.edu")
        assert await lists.update_role(AccessList.APPROVED, "bob@example.edu", "editor")
        assert not await lists.update_role(AccessList.APPROVED, "bob@example.edu", "editor")
        entry = await lists.find(AccessList.APPROVED, "bob@example.edu")
        assert entry.role == "editor"

    @pytest.mark.asyncio
    async def test_stored_shape(self, lists, settings):
        await lists.add(AccessList.BLOCKED, BlockedEntry(email="@spam.com", date_added="Jan 2024"))

        assert await settings.get("access_users_blocked") == [{"email": "@spam.com", "date_added": "Jan 2024"}]

    @pytest.mark.asyncio
    async def test_blocked_domain_matches_last_at(self, lists):
        """Domain entries match the part of the address from its last '@'."""
        await lists.add(AccessList.BLOCKED, BlockedEntry(email="@spam.com"))

        assert await lists.is_blocked("x@spam.com")
        assert await lists.is_blocked("x@evil.org@spam.com")
        assert not await lists.is_blocked("x@spam.com@evil.org")
        assert not await lists.is_blocked("x@notspam.com")

    @pytest.mark.asyncio
    async def test_domain_entries_only_apply_to_blocked(self, lists):
        await lists.add(AccessList.APPROVED, ApprovedEntry(email="@example.edu"))

        assert not await lists.is_approved("ann@example.edu")

    @pytest.mark.asyncio
    async def test_network_list_visibility(self, settings):
        config = AuthGateConfig(multisite=True)
        lists = AccessLists(settings, config)
        await lists.add(AccessList.APPROVED, ApprovedEntry(email="net@example.edu"), ListScope.NETWORK)

        assert await lists.contains("net@example.edu", AccessList.APPROVED, ListScope.ALL)
        assert await lists.contains("net@example.edu", AccessList.APPROVED, ListScope.NETWORK)
        assert not await lists.contains("net@example.edu", AccessList.APPROVED, ListScope.SINGLE)

        config.override_multisite = True
        assert not await lists.contains("net@example.edu", AccessList.APPROVED, ListScope.ALL)

        config.prevent_override_multisite = True
        assert await lists.contains("net@example.edu", AccessList.APPROVED, ListScope.ALL)

    @pytest.mark.asyncio
    async def test_single_site_ignores_network_list(self, lists):
        await lists.add(AccessList.APPROVED, ApprovedEntry(email="net@example.edu"), ListScope.NETWORK)

        assert not await lists.is_approved("net@example.edu")

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, lists, settings):
        await settings.set("access_users_pending", ["junk", {"email": "ok@example.edu"}])

        entries = await lists.load(AccessList.PENDING)

        assert [e.email for e in entries] == ["ok@example.edu"]

    def test_sanitize(self):
        entries = [
            PendingEntry(email=" A@x.edu "),
            PendingEntry(email=""),
            PendingEntry(email="a@x.edu", role="editor"),
        ]

        result = AccessLists.sanitize(entries)

        assert [(e.email, e.role) for e in result] == [("a@x.edu", "")]
