"""
aiohttp integration for the route gate.

The middleware judges each request with :class:`RouteGate`. Admitted
requests run inside a deferred-task scope: jobs deferred by the handler
(profile sync after a login) are queued only once the response has been
written to the client.
"""

import html
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from aiohttp import web

from .access import AccessDecision, DecisionKind, PageClassifier, PathPageClassifier, RouteGate
from ..accounts.models import Account
from ..sync.deferred import DeferredTasks


logger = logging.getLogger(__name__)


ACCOUNT_KEY = "authgate_account"

AccountLoader = Callable[[web.Request], Any]


MESSAGE_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h1>{title}</h1>
<p>{message}</p>
<p><a class="button" href="{login_url}">Log In</a></p>
</body>
</html>
"""


async def _account_from_request(request: web.Request) -> Optional[Account]:
    return request.get(ACCOUNT_KEY)


def _exception_response(exc: web.HTTPException) -> web.Response:
    """Turn a raised HTTP exception (redirects included) into a response we can write."""
    response = web.Response(status=exc.status, reason=exc.reason, text=exc.text, headers=exc.headers)
    response.cookies.update(exc.cookies)
    return response


class AccessGateMiddleware:
    """Access gate middleware for aiohttp."""

    def __init__(
        self,
        gate: RouteGate,
        deferred: Optional[DeferredTasks] = None,
        classifier: Optional[PageClassifier] = None,
        account_loader: Optional[AccountLoader] = None,
    ):
        """
        Initialize the middleware.

        Args:
            gate: Route gate deciding access
            deferred: Deferred task queue fed after each response (optional)
            classifier: Request classifier (defaults to path based)
            account_loader: ``(request) -> Account | None``, sync or async;
                defaults to ``request["authgate_account"]``
        """
        self.gate = gate
        self.deferred = deferred
        self.classifier = classifier or PathPageClassifier(gate.config)
        self.account_loader = account_loader or _account_from_request

    async def _load_account(self, request: web.Request) -> Optional[Account]:
        account = self.account_loader(request)
        if inspect.isawaitable(account):
            account = await account
        return account

    def render(self, decision: AccessDecision) -> web.StreamResponse:
        """Build the response for a denied request."""
        if decision.kind == DecisionKind.REST_ERROR:
            return web.json_response(decision.payload, status=decision.status)

        if decision.kind == DecisionKind.MESSAGE:
            body = MESSAGE_PAGE.format(
                title=html.escape(decision.title),
                message=decision.message,
                login_url=html.escape(decision.location, quote=True),
            )
            return web.Response(text=body, status=decision.status, content_type="text/html")

        raise web.HTTPFound(decision.location)

    @web.middleware
    async def middleware(self, request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]):
        """aiohttp middleware handler."""
        account = await self._load_account(request)
        ctx = self.classifier.classify(request, account)
        decision = await self.gate.evaluate(ctx)

        if not decision.allowed:
            logger.info(f"Denied {request.method} {request.path}: {decision.reason}")
            return self.render(decision)

        if self.deferred is None:
            return await handler(request)

        with self.deferred.collect() as batch:
            try:
                response = await handler(request)
            except web.HTTPException as exc:
                response = _exception_response(exc)
            except Exception:
                # No response exists for this request, so its jobs never run
                logger.warning(f"Dropping {len(batch)} deferred job(s) for failed request {request.path}")
                raise

        try:
            await response.prepare(request)
            await response.write_eof()
        finally:
            self.deferred.submit(batch)
        return response


def create_aiohttp_access_middleware(gate: RouteGate, **kwargs) -> Callable:
    """Create aiohttp access gate middleware."""
    middleware = AccessGateMiddleware(gate, **kwargs)
    return middleware.middleware
