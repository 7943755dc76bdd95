"""
Common utilities and helper functions for AuthGate.
"""

import json
import secrets
import time
import uuid
from datetime import datetime
from typing import Any, Iterable, List, Optional


def generate_id(prefix: str = "") -> str:
    """Generate a unique identifier with optional prefix."""
    unique_id = str(uuid.uuid4())
    return f"{prefix}{unique_id}" if prefix else unique_id


def generate_password(length: int = 24) -> str:
    """Generate a random local credential for externally authenticated accounts."""
    return secrets.token_urlsafe(length)


def get_current_time() -> datetime:
    """Get current local time (list entries and logs use local wall time)."""
    return datetime.now()


def get_timestamp() -> int:
    """Get current Unix timestamp in seconds."""
    return int(time.time())


def lowercase(value: Optional[str]) -> str:
    """Lower-case and trim a string, treating None as empty."""
    return (value or "").strip().lower()


def email_local_part(email: str) -> str:
    """Return the part of an e-mail address before the first '@'."""
    return email.split("@", 1)[0]


def email_domain(email: str) -> Optional[str]:
    """
    Return the domain of an e-mail address including its leading '@'.

    The domain is everything from the last '@' on, so ``a@b@c.edu`` has
    domain ``@c.edu``. Returns None when the address has no '@'.
    """
    index = email.rfind("@")
    if index < 0:
        return None
    return email[index:]


def unique(items: Iterable[str]) -> List[str]:
    """De-duplicate while preserving first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def json_encode(value: Any) -> str:
    """Stable JSON encoding for attribute values that are lists or maps."""
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def json_decode_list(raw: Optional[str]) -> List[Any]:
    """Decode a JSON-encoded list attribute, returning [] for anything else."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def is_empty_value(value: Any) -> bool:
    """
    Check whether a synchronized field value counts as empty.

    Zero (numeric or the string "0") is a real value and is kept.
    """
    if value == 0 and not isinstance(value, bool):
        return False
    if value == "0":
        return False
    return not value
