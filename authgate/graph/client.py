"""
Identity-graph clients.

A client answers three questions for a bearer token: the profile photo,
the profile fields and the group memberships. ``None`` means "not
available" (no photo, permission denied, malformed reply); transport
failures raise :class:`GraphClientError`.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from ..accounts.models import ProfilePhoto
from ..core.errors import GraphClientError


logger = logging.getLogger(__name__)


PROFILE_FIELDS = (
    "id",
    "displayName",
    "givenName",
    "surname",
    "mail",
    "userPrincipalName",
    "jobTitle",
    "department",
    "companyName",
    "officeLocation",
    "mobilePhone",
    "businessPhones",
    "streetAddress",
    "city",
    "state",
    "country",
    "postalCode",
    "employeeId",
    "preferredLanguage",
)

MAX_GROUP_PAGES = 20


class IdentityGraphClient(ABC):
    """Abstract base class for identity-graph access"""

    @abstractmethod
    async def fetch_photo(self, token: str) -> Optional[ProfilePhoto]:
        """Fetch the profile photo, or None when unavailable"""
        pass

    @abstractmethod
    async def fetch_fields(self, token: str) -> Optional[Dict[str, Any]]:
        """Fetch profile fields, or None when unavailable"""
        pass

    @abstractmethod
    async def fetch_groups(self, token: str) -> Optional[List[Dict[str, Any]]]:
        """Fetch group memberships (each with a ``displayName``), or None when unavailable"""
        pass

    async def close(self) -> None:
        """Close the client and release resources"""
        pass


class MicrosoftGraphClient(IdentityGraphClient):
    """Microsoft Graph client over aiohttp"""

    def __init__(
        self,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    async def _get_json(self, url: str, token: str) -> Optional[Dict[str, Any]]:
        session = await self._get_session()
        try:
            async with session.get(url, headers=self._headers(token)) as response:
                if response.status != 200:
                    logger.warning(f"Graph request {url} returned {response.status}")
                    return None
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    logger.warning(f"Graph request {url} returned a malformed body")
                    return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GraphClientError(f"Graph request failed: {e}") from e
        return payload if isinstance(payload, dict) else None

    async def fetch_photo(self, token: str) -> Optional[ProfilePhoto]:
        session = await self._get_session()
        url = f"{self.base_url}/me/photo/$value"
        try:
            async with session.get(url, headers={"Authorization": f"Bearer {token}"}) as response:
                if response.status != 200:
                    logger.info(f"No profile photo available ({response.status})")
                    return None
                data = await response.read()
                content_type = response.headers.get("Content-Type", "image/jpeg").split(";")[0].strip()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GraphClientError(f"Photo request failed: {e}") from e
        if not data:
            return None
        return ProfilePhoto(data=data, content_type=content_type or "image/jpeg")

    async def fetch_fields(self, token: str) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/me?$select={','.join(PROFILE_FIELDS)}"
        payload = await self._get_json(url, token)
        if payload is None:
            return None
        return {key: value for key, value in payload.items() if not key.startswith("@odata")}

    async def fetch_groups(self, token: str) -> Optional[List[Dict[str, Any]]]:
        url = f"{self.base_url}/me/memberOf?$select=id,displayName,description"
        groups: List[Dict[str, Any]] = []
        pages = 0
        while url and pages < MAX_GROUP_PAGES:
            pages += 1
            payload = await self._get_json(url, token)
            if payload is None:
                # First page failing means the memberships are unavailable
                return None if pages == 1 else groups
            for entry in payload.get("value", []) or []:
                if isinstance(entry, dict) and str(entry.get("displayName") or "").strip():
                    groups.append({
                        "id": entry.get("id"),
                        "displayName": entry["displayName"],
                        "description": entry.get("description"),
                    })
            next_link = payload.get("@odata.nextLink")
            url = next_link.strip() if isinstance(next_link, str) else ""
        return groups

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


class StaticGraphClient(IdentityGraphClient):
    """Returns fixed data; used for development and tests"""

    def __init__(
        self,
        photo: Optional[ProfilePhoto] = None,
        fields: Optional[Dict[str, Any]] = None,
        groups: Optional[List[Dict[str, Any]]] = None,
    ):
        self.photo = photo
        self.fields = fields
        self.groups = groups
        self.calls: List[str] = []

    async def fetch_photo(self, token: str) -> Optional[ProfilePhoto]:
        self.calls.append("photo")
        return self.photo

    async def fetch_fields(self, token: str) -> Optional[Dict[str, Any]]:
        self.calls.append("fields")
        return dict(self.fields) if self.fields is not None else None

    async def fetch_groups(self, token: str) -> Optional[List[Dict[str, Any]]]:
        self.calls.append("groups")
        return list(self.groups) if self.groups is not None else None
