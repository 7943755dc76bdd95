"""
Encrypted storage of provider bearer tokens.

Tokens are written as account attributes; only Fernet ciphertext ever
reaches the account store.
"""

import base64
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from cryptography.fernet import Fernet, InvalidToken

from ..accounts.store import AccountStore
from ..common.utils import get_timestamp
from ..core.errors import TokenVaultError


logger = logging.getLogger(__name__)


ACCESS_TOKEN_KEY = "oauth2_access_token"
REFRESH_TOKEN_KEY = "oauth2_refresh_token"
EXPIRES_KEY = "oauth2_token_expires"
SAVED_AT_KEY = "oauth2_token_saved_at"


@dataclass
class ProviderToken:
    """Token material handed back by an OAuth2/OIDC provider"""
    access_token: Optional[str]
    refresh_token: Optional[str] = None
    expires: Optional[int] = None

    @classmethod
    def extract(cls, token: Any) -> "ProviderToken":
        """
        Pull token fields out of an opaque provider token.

        Accepts a ProviderToken, a plain access-token string, a mapping with
        ``access_token``/``refresh_token``/``expires`` (or ``expires_at``)
        keys, or any object exposing those names as attributes or getters.
        """
        if isinstance(token, ProviderToken):
            return token
        if isinstance(token, str):
            return cls(access_token=token)
        if isinstance(token, Mapping):
            return cls(
                access_token=token.get("access_token") or token.get("token"),
                refresh_token=token.get("refresh_token"),
                expires=token.get("expires") or token.get("expires_at"),
            )
        return cls(
            access_token=_read(token, "access_token", "token", "get_token"),
            refresh_token=_read(token, "refresh_token", "get_refresh_token"),
            expires=_read(token, "expires", "expires_at", "get_expires"),
        )


def _read(obj: Any, *names: str) -> Any:
    for name in names:
        value = getattr(obj, name, None)
        if callable(value):
            value = value()
        if value:
            return value
    return None


def expiry_timestamp(value: Any) -> Optional[int]:
    """Normalise a provider expiry (epoch seconds, datetime or ISO string) to epoch seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        try:
            return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp())
        except ValueError:
            pass
    logger.warning(f"Ignoring unrecognised token expiry {value!r}")
    return None


@dataclass
class TokenRecord:
    """Stored (encrypted) token material for one account"""
    encrypted_access_token: str
    encrypted_refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    saved_at: Optional[int] = None


def derive_fernet_key(secret: str) -> bytes:
    """Turn a site-wide secret into a Fernet key; valid Fernet keys pass through."""
    if not secret or not secret.strip():
        raise ValueError("An encryption secret is required for token storage")
    secret = secret.strip()
    try:
        Fernet(secret.encode())
        return secret.encode()
    except ValueError:
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest)


class TokenVault:
    """Encrypts provider tokens and keeps them with the account"""

    def __init__(self, accounts: AccountStore, secret: str):
        self.accounts = accounts
        self._fernet = Fernet(derive_fernet_key(secret))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            logger.error("Token decryption failed (invalid key or corrupted data)")
            raise TokenVaultError("Failed to decrypt token") from e

    async def store(self, user_id: str, token: Any) -> Optional[TokenRecord]:
        """
        Encrypt and store a provider token for an account.

        Nothing is written when the token carries no access token; in that
        case None is returned.
        """
        if not user_id or token is None:
            return None

        material = ProviderToken.extract(token)
        if not material.access_token:
            logger.debug(f"No access token to store for account {user_id}")
            return None

        expires_at = expiry_timestamp(material.expires)
        record = TokenRecord(encrypted_access_token=self.encrypt(material.access_token))
        await self.accounts.set_meta(user_id, ACCESS_TOKEN_KEY, record.encrypted_access_token)

        if material.refresh_token:
            record.encrypted_refresh_token = self.encrypt(material.refresh_token)
            await self.accounts.set_meta(user_id, REFRESH_TOKEN_KEY, record.encrypted_refresh_token)

        if expires_at is not None:
            record.expires_at = expires_at
            await self.accounts.set_meta(user_id, EXPIRES_KEY, record.expires_at)

        record.saved_at = get_timestamp()
        await self.accounts.set_meta(user_id, SAVED_AT_KEY, record.saved_at)

        logger.info(f"Stored provider token for account {user_id}")
        return record

    async def get_record(self, user_id: str) -> Optional[TokenRecord]:
        """Read the stored ciphertext record, if any."""
        encrypted = await self.accounts.get_meta(user_id, ACCESS_TOKEN_KEY)
        if not encrypted:
            return None
        return TokenRecord(
            encrypted_access_token=encrypted,
            encrypted_refresh_token=await self.accounts.get_meta(user_id, REFRESH_TOKEN_KEY),
            expires_at=await self.accounts.get_meta(user_id, EXPIRES_KEY),
            saved_at=await self.accounts.get_meta(user_id, SAVED_AT_KEY),
        )

    async def retrieve(self, user_id: str) -> Optional[ProviderToken]:
        """Decrypt the stored token for an account."""
        record = await self.get_record(user_id)
        if record is None:
            return None
        refresh = self.decrypt(record.encrypted_refresh_token) if record.encrypted_refresh_token else None
        return ProviderToken(
            access_token=self.decrypt(record.encrypted_access_token),
            refresh_token=refresh,
            expires=record.expires_at,
        )
