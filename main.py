import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.auth.otp import OTPManager
from app.auth.passwords import PasswordManager
from app.auth.router import build_limiter, otp_request_router, router as auth_router
from app.auth.staff import StaffAuthService
from app.auth.tokens import TokenIssuer
from app.config import Settings, get_settings
from app.database import Database
from app.errors import APIError
from app.provisioning.router import router as hospitals_router
from app.provisioning.service import ProvisioningService
from app.services.sms import SMSService

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def error_body(code: str, message: str, **extra) -> dict:
    return {"success": False, "code": code, "message": message, **extra}


async def api_error_handler(request: Request, exc: APIError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", "Invalid input", errors=errors),
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body("RATE_LIMIT_EXCEEDED", "Too many requests. Please try again later."),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    database = Database(settings.DATABASE_URL)
    database.create_all()
    app.state.database = database
    app.state.sms = await SMSService.open(settings)

    sweeper = None
    if settings.OTP_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(
            app.state.otp.run_periodic_sweep(database, settings.OTP_SWEEP_INTERVAL_SECONDS)
        )
    logger.info("Startup complete")
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await app.state.sms.close()
        database.dispose()
        logger.info("Shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Cureka Auth Service",
        description="Patient OTP login, staff login and staff provisioning",
        version="1.0.0",
        lifespan=lifespan,
    )

    passwords = PasswordManager(settings.BCRYPT_ROUNDS)
    tokens = TokenIssuer(settings)
    app.state.settings = settings
    app.state.tokens = tokens
    app.state.otp = OTPManager(settings)
    app.state.staff_auth = StaffAuthService(settings, passwords, tokens)
    app.state.provisioning = ProvisioningService(settings, passwords)

    limiter = build_limiter(settings)
    app.state.limiter = limiter

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    origins = [
        f"http://{settings.DOMAIN}",
        f"https://{settings.DOMAIN}",
    ]
    if settings.IS_DEV_ENV:
        origins.extend([
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:8081",
            "http://127.0.0.1:8081",
        ])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Admin-Key"],
    )

    app.include_router(otp_request_router(limiter, settings.OTP_REQUEST_RATE_LIMIT), prefix="/auth", tags=["auth"])
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(hospitals_router, prefix="/hospitals", tags=["hospitals"])

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="localhost", port=8000, reload=True)
