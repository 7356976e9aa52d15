import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import EmailStr, Field
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import Database, to_dict
from deps import get_db, get_settings, get_tokens, rate_limit, require_claims
from errors import AuthError, NotFoundError
from schemas import ApiModel, RefreshToken, User
from security import TokenService, hash_password, verify_password

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])

REFRESH_COOKIE = "refreshToken"
ACCESS_COOKIE = "accessToken"


class SignupRequest(ApiModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(ApiModel):
    email: str
    password: str


class RefreshRequest(ApiModel):
    refresh_token: Optional[str] = None


def public_user(doc: dict) -> dict:
    d = to_dict(doc)
    d.pop("password_hash", None)
    return d


def issue_session(db: Database, tokens: TokenService, user: dict, response: Response, settings: Settings) -> dict:
    user_id = str(user["_id"])
    access_token, refresh_token = tokens.issue(user_id, user.get("role", "USER"))
    db.create_document(
        "refresh_token",
        RefreshToken(
            token=refresh_token,
            user_id=user_id,
            expires_at=datetime.utcnow() + tokens.refresh_lifetime,
        ),
    )
    response.set_cookie(
        ACCESS_COOKIE, access_token,
        max_age=settings.access_token_minutes * 60,
        httponly=True, samesite="lax", secure=settings.is_production,
    )
    response.set_cookie(
        REFRESH_COOKIE, refresh_token,
        max_age=settings.refresh_token_days * 24 * 60 * 60,
        httponly=True, samesite="lax", secure=settings.is_production,
        path="/api/auth",
    )
    return {"user": public_user(user), "accessToken": access_token, "refreshToken": refresh_token}


@router.post("/auth/signup", status_code=201, dependencies=[Depends(rate_limit("auth"))])
def signup(
    req: SignupRequest,
    response: Response,
    db: Database = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    email = req.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already in use")
    user = User(name=req.name, email=email, password_hash=hash_password(req.password))
    try:
        user_id = db.create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already in use")
    log.info("New user signed up: %s", email)
    return issue_session(db, tokens, db.find_by_id("user", user_id), response, settings)


@router.post("/auth/login", dependencies=[Depends(rate_limit("auth"))])
def login(
    req: LoginRequest,
    response: Response,
    db: Database = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    user = db["user"].find_one({"email": req.email.lower()})
    if not user or not verify_password(req.password, user.get("password_hash", "")):
        raise AuthError("Invalid email or password")
    return issue_session(db, tokens, user, response, settings)


@router.post("/auth/refresh", dependencies=[Depends(rate_limit("auth"))])
def refresh(
    request: Request,
    response: Response,
    req: Optional[RefreshRequest] = None,
    db: Database = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    token = (req.refresh_token if req else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(status_code=400, detail="Refresh token is required")

    try:
        payload = tokens.verify(token, "refresh")
    except AuthError:
        raise AuthError("Invalid refresh token")

    # Deleting on lookup makes a token redeemable exactly once.
    stored = db["refresh_token"].find_one_and_delete(
        {"token": token, "user_id": payload["userId"], "expires_at": {"$gt": datetime.utcnow()}}
    )
    if not stored:
        raise AuthError("Invalid refresh token")

    user = db.find_by_id("user", payload["userId"])
    if not user:
        raise AuthError("Invalid refresh token")
    return issue_session(db, tokens, user, response, settings)


@router.post("/auth/logout")
def logout(request: Request, response: Response, req: Optional[RefreshRequest] = None, db: Database = Depends(get_db)):
    token = (req.refresh_token if req else None) or request.cookies.get(REFRESH_COOKIE)
    if token:
        db["refresh_token"].delete_one({"token": token})
    response.delete_cookie(REFRESH_COOKIE, path="/api/auth")
    response.delete_cookie(ACCESS_COOKIE)
    return {"message": "Logged out successfully"}


@router.get("/profile")
def profile(claims: dict = Depends(require_claims), db: Database = Depends(get_db)):
    user = db.find_by_id("user", claims["userId"])
    if not user:
        raise NotFoundError("User not found")
    return {"user": public_user(user)}
