"""
Extension points for the authorization flow.

Every hook is optional and may be a plain function or a coroutine
function. An unset hook keeps the documented default behaviour.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class AuthorizationHooks:
    """
    Callbacks consulted while deciding access.

    Attributes:
        allow_login: ``(identity) -> bool``; False blocks the identity (default: allow)
        custom_role: ``(default_role, identity, account) -> str | dict | CustomRole``
        auto_approve: ``(identity, account) -> bool``; True approves on an invite-only site
        roles_to_add: ``(roles, identity, account) -> list`` filter for extra roles
        roles_to_remove: ``(roles, identity, account) -> list`` filter for removed roles
        on_user_register: ``(account, identity) -> None`` after an account is created
        blocked_message: ``(message) -> str`` filter for the blocked notice text
        pending_message: ``(message) -> str`` filter for the pending notice text
        has_access: ``(has_access, request) -> bool`` final say in the route gate
    """
    allow_login: Optional[Callable[..., Any]] = None
    custom_role: Optional[Callable[..., Any]] = None
    auto_approve: Optional[Callable[..., Any]] = None
    roles_to_add: Optional[Callable[..., Any]] = None
    roles_to_remove: Optional[Callable[..., Any]] = None
    on_user_register: Optional[Callable[..., Any]] = None
    blocked_message: Optional[Callable[..., Any]] = None
    pending_message: Optional[Callable[..., Any]] = None
    has_access: Optional[Callable[..., Any]] = None


async def call_hook(hook: Optional[Callable[..., Any]], default: Any, *args: Any) -> Any:
    """Call a hook, awaiting it if needed; returns ``default`` when unset."""
    if hook is None:
        return default
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
