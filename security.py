import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import jwt

from config import Settings
from errors import AuthError

PBKDF2_ROUNDS = 120_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(8)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ROUNDS)
    return salt + "$" + digest.hex()


def verify_password(password: str, stored: str) -> bool:
    try:
        salt, _ = stored.split("$")
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt), stored)


class TokenService:
    """Issues and verifies HS256 access and refresh tokens.

    Access and refresh tokens are signed with different secrets so that one
    can never be replayed as the other. Every token carries a random ``jti``,
    which keeps two tokens minted in the same second for the same user
    distinct.
    """

    algorithm = "HS256"

    def __init__(self, settings: Settings):
        self.secrets = {
            "access": settings.jwt_access_secret,
            "refresh": settings.jwt_refresh_secret,
        }
        self.lifetimes = {
            "access": timedelta(minutes=settings.access_token_minutes),
            "refresh": timedelta(days=settings.refresh_token_days),
        }

    @property
    def refresh_lifetime(self) -> timedelta:
        return self.lifetimes["refresh"]

    def _sign(self, user_id: str, role: str, kind: str) -> str:
        now = datetime.utcnow()
        payload = {
            "userId": user_id,
            "role": role,
            "type": kind,
            "jti": secrets.token_hex(8),
            "iat": now,
            "exp": now + self.lifetimes[kind],
        }
        return jwt.encode(payload, self.secrets[kind], algorithm=self.algorithm)

    def issue(self, user_id: str, role: str = "USER") -> Tuple[str, str]:
        return self._sign(user_id, role, "access"), self._sign(user_id, role, "refresh")

    def verify(self, token: str, kind: str = "access") -> Dict:
        try:
            payload = jwt.decode(token, self.secrets[kind], algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthError(f"Invalid {kind} token")
        if payload.get("type") != kind or not payload.get("userId"):
            raise AuthError(f"Invalid {kind} token")
        return payload
