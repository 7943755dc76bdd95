"""
Common utilities for AuthGate.
"""

from .utils import (
    generate_id,
    generate_password,
    get_current_time,
    get_timestamp,
    lowercase,
    email_local_part,
    email_domain,
    unique,
    json_encode,
    json_decode_list,
    is_empty_value,
)

__all__ = [
    "generate_id",
    "generate_password",
    "get_current_time",
    "get_timestamp",
    "lowercase",
    "email_local_part",
    "email_domain",
    "unique",
    "json_encode",
    "json_decode_list",
    "is_empty_value",
]
