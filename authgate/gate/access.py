"""
Route admission for AuthGate.

:class:`RouteGate` decides whether a resolved request may be served, and
what a denied visitor gets instead: a 401 payload for REST calls, a
branded message with a login link, or a redirect to the login entry point.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, urlparse

from ..accounts.models import Account
from ..core.config import AuthGateConfig, RedirectMode, ViewPolicy
from ..core.errors import AuthGateError
from ..core.hooks import AuthorizationHooks, call_hook
from ..core.types import ExternalIdentity
from ..store.lists import AccessList


logger = logging.getLogger(__name__)


PUBLIC_NOTICE_KEY = "advanced_public_notice"
NOT_FOUND_PAGE = "auth_public_404"
HOME_PAGE = "home"


class DecisionKind(str, Enum):
    """How a gate decision is delivered"""
    ALLOW = "allow"
    REST_ERROR = "rest_error"
    MESSAGE = "message"
    REDIRECT = "redirect"


@dataclass
class RequestContext:
    """
    A request resolved far enough for the gate to judge it.

    Attributes:
        path: Request path
        method: HTTP method
        page_id: Resolved page id ("home" for the site root), or None when
            the page does not exist
        categories: Category slugs of the requested page
        category_name: Requested category path, for category archives
        is_rest: Whether the request targets a REST route
        installing: Whether an installer flow is running
        account: Logged-in account, if any
        request: Underlying framework request, passed to the has_access hook
    """
    path: str = "/"
    method: str = "GET"
    page_id: Optional[str] = HOME_PAGE
    categories: List[str] = field(default_factory=list)
    category_name: Optional[str] = None
    is_rest: bool = False
    installing: bool = False
    account: Optional[Account] = None
    request: Any = None

    @property
    def is_root(self) -> bool:
        return self.path in ("", "/")


@dataclass
class AccessDecision:
    """Result of evaluating a request"""
    kind: DecisionKind
    status: int = 200
    reason: str = ""
    payload: Optional[Dict[str, Any]] = None
    title: str = ""
    message: str = ""
    location: str = ""

    @property
    def allowed(self) -> bool:
        return self.kind == DecisionKind.ALLOW

    @classmethod
    def allow(cls, reason: str = "") -> "AccessDecision":
        return cls(kind=DecisionKind.ALLOW, reason=reason)


class PageClassifier(ABC):
    """Resolves framework requests into :class:`RequestContext` objects."""

    @abstractmethod
    def is_public(self, page_id: Optional[str]) -> bool:
        """Whether a page id is explicitly marked public."""
        pass

    @abstractmethod
    def is_rest_route(self, request: Any) -> bool:
        """Whether the request targets a REST route."""
        pass

    @abstractmethod
    def classify(self, request: Any, account: Optional[Account] = None) -> RequestContext:
        """Resolve a request into a context for the gate."""
        pass


class PathPageClassifier(PageClassifier):
    """
    Classifies requests by path.

    Without a page table every path is an existing page whose id is the
    path without surrounding slashes. With a table, paths missing from it
    resolve to "page not found". Paths under ``category_prefix`` are
    category archives.
    """

    def __init__(
        self,
        config: AuthGateConfig,
        rest_prefix: str = "/api/",
        category_prefix: str = "/category/",
        pages: Optional[Mapping[str, str]] = None,
        page_categories: Optional[Mapping[str, List[str]]] = None,
    ):
        self.config = config
        self.rest_prefix = rest_prefix
        self.category_prefix = category_prefix
        self.pages = pages
        self.page_categories = page_categories or {}

    def is_public(self, page_id: Optional[str]) -> bool:
        return bool(page_id) and page_id in self.config.public_pages

    def is_rest_route(self, request: Any) -> bool:
        return _path_of(request).startswith(self.rest_prefix)

    def classify(self, request: Any, account: Optional[Account] = None) -> RequestContext:
        path = _path_of(request)
        category_name = None
        if path.startswith(self.category_prefix):
            category_name = path[len(self.category_prefix):].strip("/") or None

        page_id = self._page_id(path)
        return RequestContext(
            path=path,
            method=getattr(request, "method", "GET"),
            page_id=page_id,
            categories=list(self.page_categories.get(page_id, [])) if page_id else [],
            category_name=category_name,
            is_rest=self.is_rest_route(request),
            account=account,
            request=request,
        )

    def _page_id(self, path: str) -> Optional[str]:
        if self.pages is not None:
            return self.pages.get(path)
        slug = path.strip("/")
        return slug or HOME_PAGE


def _path_of(request: Any) -> str:
    if isinstance(request, str):
        return request
    return getattr(request, "path", "/") or "/"


def _normalise_path(path: str) -> str:
    return "/" + (path or "").strip("/")


def strip_tags(text: str) -> str:
    """Remove HTML tags from a message."""
    return re.sub(r"<[^>]*>", "", text or "")


def rest_cannot_view(message: str) -> Dict[str, Any]:
    """Structured 401 payload for denied REST requests."""
    return {
        "code": "rest_cannot_view",
        "message": strip_tags(message),
        "data": {"status": 401},
    }


class RouteGate:
    """
    Admits or denies requests according to the site's view policy.

    Args:
        engine: Authorization engine; supplies configuration, lists,
            settings and hooks
    """

    def __init__(self, engine):
        self.engine = engine
        self.config: AuthGateConfig = engine.config
        self.settings = engine.settings
        self.hooks: AuthorizationHooks = engine.hooks

    async def has_access(self, ctx: RequestContext) -> bool:
        """Whether the request passes without further checks."""
        account = ctx.account
        allowed = (
            ctx.installing
            or (account is not None and self.engine.is_elevated(account))
            or self.config.who_can_view == ViewPolicy.EVERYONE
            or (
                self.config.who_can_view == ViewPolicy.LOGGED_IN_USERS
                and account is not None
                and account.is_member(self.config.site_id)
                and await self.engine.is_email_in_list(account.email, AccessList.APPROVED)
            )
            or ctx.is_rest
        )
        return await call_hook(self.hooks.has_access, allowed, allowed, ctx) is True

    async def evaluate(self, ctx: RequestContext) -> AccessDecision:
        """Decide whether the request may be served."""
        # The login and logout entry points are never gated
        if self.is_auth_route(ctx.path):
            return AccessDecision.allow("auth_route")

        if await self.has_access(ctx):
            await self._set_public_notice(False)
            return AccessDecision.allow("has_access")

        # Uptime probes hit the root with HEAD
        if ctx.method.upper() == "HEAD" and ctx.is_root:
            return AccessDecision.allow("head_probe")

        if self.config.multisite and ctx.account is not None:
            decision = await self._admit_network_member(ctx.account)
            if decision is not None:
                return decision

        public = self._public_reason(ctx)
        if public:
            await self._set_public_notice(self.config.public_warning != "no_warning")
            return AccessDecision.allow(public)

        return self._deny(ctx)

    async def restrict_rest_api(self, ctx: RequestContext,
                                errors: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Gate a REST request.

        Returns an earlier error unchanged, the ``rest_cannot_view`` payload
        for anonymous requests on a logged-in-only site, or None.
        """
        if errors:
            return errors

        if ctx.account is None and self.config.who_can_view == ViewPolicy.LOGGED_IN_USERS:
            granted = await call_hook(self.hooks.has_access, False, False, ctx)
            if granted is False:
                return rest_cannot_view(self.config.anonymous_message)

        return errors

    async def _admit_network_member(self, account: Account) -> Optional[AccessDecision]:
        # A network account reaching a site it has not been approved on
        identity = ExternalIdentity(emails=(account.email,))
        try:
            outcome = await self.engine.check_access(identity, account)
        except AuthGateError as e:
            logger.warning(f"Access check failed for {account.email} on site {self.config.site_id}: {e}")
            return None

        if outcome.allowed:
            return AccessDecision.allow("network_member")
        return None

    def _public_reason(self, ctx: RequestContext) -> str:
        public_pages = self.config.public_pages
        if not public_pages:
            return ""

        if ctx.page_id and ctx.page_id in public_pages:
            return "public_page"

        for slug in ctx.categories:
            if f"cat_{slug}" in public_pages:
                return "public_category"

        if not ctx.page_id and NOT_FOUND_PAGE in public_pages:
            return "public_404"

        if ctx.category_name:
            slug = ctx.category_name.rstrip("/").split("/")[-1]
            if f"cat_{slug}" in public_pages:
                return "public_category"

        return ""

    def _deny(self, ctx: RequestContext) -> AccessDecision:
        login_url = self.login_url_for(ctx.path)

        if ctx.is_rest and ctx.method.upper() == "GET":
            return AccessDecision(
                kind=DecisionKind.REST_ERROR,
                status=401,
                reason="rest_cannot_view",
                payload=rest_cannot_view(self.config.anonymous_message),
            )

        if self.config.access_redirect == RedirectMode.MESSAGE:
            return AccessDecision(
                kind=DecisionKind.MESSAGE,
                status=200,
                reason="restricted",
                title=f"{self.config.site_name} - Access Restricted",
                message=self.config.anonymous_message,
                location=login_url,
            )

        return AccessDecision(kind=DecisionKind.REDIRECT, status=302, reason="login_required", location=login_url)

    def is_auth_route(self, path: str) -> bool:
        """Whether a path is the site's login or logout entry point."""
        path = _normalise_path(path)
        for url in (self.config.login_url, self.config.logout_url):
            target = _normalise_path(urlparse(url).path) if url else "/"
            if target != "/" and target == path:
                return True
        return False

    def login_url_for(self, path: str) -> str:
        """Login URL that returns the visitor to ``path`` afterwards."""
        redirect_to = self.config.site_url.rstrip("/") + "/" + path.lstrip("/")
        separator = "&" if "?" in self.config.login_url else "?"
        return f"{self.config.login_url}{separator}redirect_to={quote(redirect_to, safe='')}"

    async def _set_public_notice(self, show: bool) -> None:
        try:
            await self.settings.set(PUBLIC_NOTICE_KEY, show)
        except AuthGateError as e:
            logger.warning(f"Failed to record public notice flag: {e}")
