"""FastAPI dependencies: application services and the caller's identity."""

from typing import Optional

from fastapi import Depends, HTTPException, Request

from config import Settings
from database import Database
from errors import AuthError, ForbiddenError, RateLimitedError
from rate_limit import RateLimiter, client_identity
from security import TokenService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_gateway(request: Request):
    return request.app.state.payment_gateway


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get("accessToken")


def optional_claims(request: Request, tokens: TokenService = Depends(get_tokens)) -> Optional[dict]:
    """Claims of a valid access token, or None for anonymous callers.

    A token that is present but invalid is still an error.
    """
    token = bearer_token(request)
    if not token:
        return None
    return tokens.verify(token, "access")


def require_claims(claims: Optional[dict] = Depends(optional_claims)) -> dict:
    if claims is None:
        raise AuthError("Authentication required")
    return claims


def require_admin(claims: dict = Depends(require_claims)) -> dict:
    if claims.get("role") != "ADMIN":
        raise ForbiddenError("Admin access required")
    return claims


def development_only(settings: Settings = Depends(get_settings)) -> None:
    if settings.is_production:
        raise ForbiddenError("This endpoint is only available in development mode")


def rate_limit(bucket: str):
    def check(
        request: Request,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        result = limiter.limit(client_identity(request), bucket)
        if not result.success:
            raise RateLimitedError("Too many requests. Please try again later.")

    return check
