"""
Route admission and HTTP integration for AuthGate.
"""

from .access import (
    AccessDecision,
    DecisionKind,
    PageClassifier,
    PathPageClassifier,
    RequestContext,
    RouteGate,
    rest_cannot_view,
    strip_tags,
    PUBLIC_NOTICE_KEY,
)
from .middleware import AccessGateMiddleware, create_aiohttp_access_middleware, ACCOUNT_KEY

__all__ = [
    "AccessDecision",
    "DecisionKind",
    "PageClassifier",
    "PathPageClassifier",
    "RequestContext",
    "RouteGate",
    "rest_cannot_view",
    "strip_tags",
    "PUBLIC_NOTICE_KEY",
    "AccessGateMiddleware",
    "create_aiohttp_access_middleware",
    "ACCOUNT_KEY",
]
