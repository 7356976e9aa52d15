"""
Navigation gatekeeper for page routes.

Redirects anonymous visitors away from account pages and signed-in visitors
away from the login pages. The decision rests only on a verified access
token; client-written cookies such as ``auth-storage`` are never consulted.
API routes are not handled here, they check credentials themselves.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from deps import bearer_token
from errors import AuthError

log = logging.getLogger(__name__)

PROTECTED_PATHS = ("/profile", "/orders")
AUTH_PATHS = ("/login", "/register")
ADMIN_PATHS = ("/dashboard",)


def _matches(path: str, prefixes) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)


def redirect_target(path: str, claims: Optional[dict]) -> Optional[str]:
    if path.startswith("/api"):
        return None
    login = "/login?" + urlencode({"redirect": path})
    if _matches(path, PROTECTED_PATHS) and claims is None:
        return login
    if _matches(path, AUTH_PATHS) and claims is not None:
        return "/"
    if _matches(path, ADMIN_PATHS) and (claims is None or claims.get("role") != "ADMIN"):
        return login
    return None


def request_claims(request: Request) -> Optional[dict]:
    token = bearer_token(request)
    if not token:
        return None
    try:
        return request.app.state.tokens.verify(token, "access")
    except AuthError:
        return None


async def gatekeeper(request: Request, call_next):
    path = request.url.path
    if not path.startswith("/api"):
        target = redirect_target(path, request_claims(request))
        if target:
            log.debug("Gatekeeper redirecting %s -> %s", path, target)
            return RedirectResponse(target, status_code=307)
    return await call_next(request)
