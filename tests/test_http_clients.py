"""
Tests for the HTTP-backed collaborators: the Microsoft Graph client and
the HTTP e-mail channel, both against local aiohttp test servers.
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from authgate.core.errors import GraphClientError
from authgate.graph import MicrosoftGraphClient
from authgate.notify import (
    HttpEmailChannel,
    LoggingNotificationChannel,
    MemoryNotificationChannel,
    create_notification_channel,
)


def _authorized(request):
    return request.headers.get("Authorization") == "Bearer good"


async def photo_handler(request):
    if not _authorized(request):
        return web.Response(status=401)
    return web.Response(body=b"\xff\xd8jpeg", content_type="image/jpeg")


async def me_handler(request):
    if not _authorized(request):
        return web.json_response({"error": "denied"}, status=403)
    return web.json_response({
        "@odata.context": "https://graph.example/$metadata#users",
        "givenName": "Ann",
        "jobTitle": "Librarian",
    })


async def member_of_handler(request):
    if not _authorized(request):
        return web.Response(status=401)
    if request.query.get("page") == "2":
        return web.json_response({"value": [{"id": "g3", "displayName": "Faculty"}]})
    next_link = str(request.url.with_query({"page": "2"}))
    return web.json_response({
        "value": [
            {"id": "g1", "displayName": "Staff", "description": "All staff"},
            {"id": "g2", "displayName": ""},
            {"id": "g4"},
        ],
        "@odata.nextLink": next_link,
    })


async def malformed_handler(request):
    return web.Response(text="not json", content_type="application/json")


@pytest.fixture
async def graph_server():
    app = web.Application()
    app.router.add_get("/v1.0/me/photo/$value", photo_handler)
    app.router.add_get("/v1.0/me", me_handler)
    app.router.add_get("/v1.0/me/memberOf", member_of_handler)
    app.router.add_get("/broken/me", malformed_handler)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
async def graph(graph_server):
    client = MicrosoftGraphClient(str(graph_server.make_url("/v1.0")), timeout=5)
    yield client
    await client.close()


class TestMicrosoftGraphClient:
    """Identity-graph calls."""

    @pytest.mark.asyncio
    async def test_fetch_photo(self, graph):
        photo = await graph.fetch_photo("good")

        assert photo.data == b"\xff\xd8jpeg"
        assert photo.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_photo_unavailable(self, graph):
        assert await graph.fetch_photo("bad") is None

    @pytest.mark.asyncio
    async def test_fetch_fields_drops_odata_keys(self, graph):
        assert await graph.fetch_fields("good") == {"givenName": "Ann", "jobTitle": "Librarian"}

    @pytest.mark.asyncio
    async def test_fields_denied(self, graph):
        assert await graph.fetch_fields("bad") is None

    @pytest.mark.asyncio
    async def test_fetch_groups_follows_next_link(self, graph):
        groups = await graph.fetch_groups("good")

        assert [group["displayName"] for group in groups] == ["Staff", "Faculty"]
        assert groups[0]["description"] == "All staff"

    @pytest.mark.asyncio
    async def test_groups_denied(self, graph):
        assert await graph.fetch_groups("bad") is None

    @pytest.mark.asyncio
    async def test_malformed_body_is_unavailable(self, graph_server):
        client = MicrosoftGraphClient(str(graph_server.make_url("/broken")))
        try:
            assert await client.fetch_fields("good") is None
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, unused_tcp_port):
        client = MicrosoftGraphClient(f"http://127.0.0.1:{unused_tcp_port}", timeout=2)
        try:
            with pytest.raises(GraphClientError):
                await client.fetch_fields("good")
        finally:
            await client.close()


class TestNotificationChannels:
    """Notification delivery."""

    @pytest.fixture
    async def mail_server(self):
        received = []

        async def send_handler(request):
            if request.headers.get("Authorization") != "Bearer key-1":
                return web.Response(status=401, text="bad key")
            received.append(await request.json())
            return web.Response(status=202)

        app = web.Application()
        app.router.add_post("/v3/mail/send", send_handler)
        server = TestServer(app)
        await server.start_server()
        yield server, received
        await server.close()

    @pytest.mark.asyncio
    async def test_http_channel_posts_payload(self, mail_server):
        server, received = mail_server
        channel = HttpEmailChannel(str(server.make_url("/v3/mail/send")), "key-1", sender="gate@site.test")
        try:
            assert await channel.send("admin@site.test", "Subject", "Body") is True
        finally:
            await channel.close()

        payload = received[0]
        assert payload["from"] == {"email": "gate@site.test"}
        assert payload["personalizations"][0]["to"] == [{"email": "admin@site.test"}]
        assert payload["personalizations"][0]["subject"] == "Subject"
        assert payload["content"][0]["value"] == "Body"

    @pytest.mark.asyncio
    async def test_http_channel_rejection(self, mail_server):
        server, received = mail_server
        channel = HttpEmailChannel(str(server.make_url("/v3/mail/send")), "wrong")
        try:
            assert await channel.send("admin@site.test", "Subject", "Body") is False
        finally:
            await channel.close()
        assert received == []

    def test_http_channel_requires_credentials(self):
        with pytest.raises(ValueError):
            HttpEmailChannel("", "")

    @pytest.mark.asyncio
    async def test_memory_and_logging_channels(self):
        memory = create_notification_channel("memory")
        await memory.send("a@site.test", "s", "b")

        assert isinstance(memory, MemoryNotificationChannel)
        assert memory.recipients() == ["a@site.test"]
        assert await LoggingNotificationChannel().send("a@site.test", "s", "b") is True
        with pytest.raises(ValueError):
            create_notification_channel("pigeon")
