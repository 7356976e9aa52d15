import logging
import os
from typing import List, Optional

from pydantic import BaseModel, model_validator

DEV_ACCESS_SECRET = "dev-access-secret"
DEV_REFRESH_SECRET = "dev-refresh-secret"


class Settings(BaseModel):
    environment: str = "development"
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    jwt_access_secret: str = DEV_ACCESS_SECRET
    jwt_refresh_secret: str = DEV_REFRESH_SECRET
    access_token_minutes: int = 15
    refresh_token_days: int = 7

    admin_secret_key: str = "teelite-admin-secret"

    midtrans_server_key: str = ""
    midtrans_client_key: str = ""
    base_url: str = "http://localhost:8000"

    upstash_redis_rest_url: Optional[str] = None
    upstash_redis_rest_token: Optional[str] = None
    rate_limit_requests: int = 20
    rate_limit_window_seconds: int = 60

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def rate_limit_enabled(self) -> bool:
        return self.environment != "development"

    @model_validator(mode="after")
    def require_production_secrets(self) -> "Settings":
        if self.is_production:
            for secret, default in (
                (self.jwt_access_secret, DEV_ACCESS_SECRET),
                (self.jwt_refresh_secret, DEV_REFRESH_SECRET),
            ):
                if not secret or secret == default:
                    raise ValueError("JWT secrets not configured")
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            environment=os.getenv("APP_ENV", "development"),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            jwt_access_secret=os.getenv("JWT_ACCESS_SECRET", DEV_ACCESS_SECRET),
            jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", DEV_REFRESH_SECRET),
            access_token_minutes=int(os.getenv("ACCESS_TOKEN_MINUTES", 15)),
            refresh_token_days=int(os.getenv("REFRESH_TOKEN_DAYS", 7)),
            admin_secret_key=os.getenv("ADMIN_SECRET_KEY", "teelite-admin-secret"),
            midtrans_server_key=os.getenv("MIDTRANS_SERVER_KEY", ""),
            midtrans_client_key=os.getenv("MIDTRANS_CLIENT_KEY", ""),
            base_url=os.getenv("BASE_URL", "http://localhost:8000"),
            upstash_redis_rest_url=os.getenv("UPSTASH_REDIS_REST_URL"),
            upstash_redis_rest_token=os.getenv("UPSTASH_REDIS_REST_TOKEN"),
            rate_limit_requests=int(os.getenv("RATE_LIMIT_REQUESTS", 20)),
            rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 60)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level.upper())
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(level.upper())
