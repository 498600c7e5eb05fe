import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from carelink.api.live import LiveChannels
from carelink.api.routes import auth, chat, dashboard, home, patients
from carelink.core.exceptions import CareLinkError
from carelink.core.firebase import init_firebase
from carelink.services.logger import setup_logging
from carelink.services.submission_guard import SubmissionGuard

logger = logging.getLogger("carelink.api")


def _error_body(code: str, message: str) -> dict:
    return {"ok": False, "error": {"code": code, "message": message}}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize Firebase Admin at app startup (reads credentials path from env)."""
    setup_logging()
    init_firebase()
    yield


async def carelink_error_handler(request: Request, exc: CareLinkError):
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    logger.info("%s %s -> invalid_request: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=422, content=_error_body("invalid_request", message))


def create_app() -> FastAPI:
    app = FastAPI(title="CareLink", lifespan=lifespan)
    app.state.submission_guard = SubmissionGuard()
    app.state.live_channels = LiveChannels()

    app.add_exception_handler(CareLinkError, carelink_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Include API routers
    app.include_router(home.router)
    app.include_router(auth.router)
    app.include_router(dashboard.router)
    app.include_router(chat.router)
    app.include_router(patients.router)
    return app


app = create_app()
