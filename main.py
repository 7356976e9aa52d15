import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

import admin_routes
import auth_routes
import dev_routes
import order_routes
import payment_routes
import product_routes
from config import Settings, configure_logging
from database import Database, connect
from errors import StorefrontError
from gatekeeper import gatekeeper
from payment import MidtransGateway
from rate_limit import RateLimiter, build_rate_limiter
from security import TokenService

log = logging.getLogger(__name__)


def _field_errors(exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return details


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorefrontError)
    async def storefront_error(request: Request, exc: StorefrontError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": "Invalid input", "details": _field_errors(exc)}, status_code=400)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    payment_gateway=None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.db is None
        if owned:
            app.state.db = connect(settings)
        if app.state.db is not None:
            app.state.db.ensure_indexes()
        log.info("Storefront API started (%s)", settings.environment)
        yield
        if owned and app.state.db is not None:
            app.state.db.close()

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = database
    app.state.tokens = TokenService(settings)
    app.state.payment_gateway = payment_gateway or MidtransGateway(settings)
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)

    app.middleware("http")(gatekeeper)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(auth_routes.router)
    app.include_router(product_routes.router)
    app.include_router(order_routes.router)
    app.include_router(payment_routes.router)
    app.include_router(admin_routes.bootstrap_router)
    app.include_router(admin_routes.router)
    app.include_router(dev_routes.router)

    @app.get("/")
    async def root():
        return {"message": "Storefront API running"}

    @app.get("/api/health")
    def health(request: Request):
        db = request.app.state.db
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "environment": settings.environment,
        }
        try:
            if db is not None:
                response["database"] = "✅ Connected"
                response["collections"] = db.collection_names()[:10]
        except Exception as e:
            response["database"] = f"⚠️ {str(e)[:80]}"
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
