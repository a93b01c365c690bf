import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lead_crm_svc.config import FOLLOW_UP_REMINDER_INTERVAL, FRONTEND_URL
from lead_crm_svc.errors import CRMError, Unavailable, ValidationFailed
from lead_crm_svc.models import init_db
from lead_crm_svc.schemas.common import ErrorResponse
from lead_crm_svc.services.reminders import send_follow_up_reminders
from lead_crm_svc.services.unit_of_work import STORE_UNAVAILABLE
from lead_crm_svc.utils.scheduler import FOLLOW_UP_REMINDER_JOB_ID, schedule_interval_job, shutdown_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: create tables, start the scheduler and the reminder job."""
    try:
        try:
            init_db()
            schedule_interval_job(send_follow_up_reminders, FOLLOW_UP_REMINDER_INTERVAL, FOLLOW_UP_REMINDER_JOB_ID)
        except Exception as e:
            logger.error(e, exc_info=True)
            # re-raise so startup fails visibly
            raise
        yield
    finally:
        try:
            await shutdown_scheduler()
            logger.info("Scheduler shutdown complete")
        except Exception as e:
            logger.error(e, exc_info=True)


app = FastAPI(title="lead_crm_svc", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


def _context(request: Request) -> str:
    actor = getattr(request.state, "actor_id", None)
    return f"{request.method} {request.url.path} actor={actor} params={dict(request.path_params)}"


def _envelope(status_code: int, message: str, error: str, errors=None) -> JSONResponse:
    body = ErrorResponse(message=message, error=error, errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s failed: %s %s", _context(request), exc.code, exc.message)
    else:
        logger.warning("%s rejected: %s %s", _context(request), exc.code, exc.message)
    errors = exc.errors if isinstance(exc, ValidationFailed) and exc.errors else None
    response = _envelope(exc.status_code, exc.message, exc.code, errors)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        # drop the leading "body"/"query" segment
        loc = [str(part) for part in err.get("loc", ())[1:]] or [str(p) for p in err.get("loc", ())]
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": ".".join(loc), "message": message})
    logger.warning("%s rejected: ValidationFailed %s", _context(request), errors)
    message = errors[0]["message"] if len(errors) == 1 else "Validation failed"
    return _envelope(400, message, ValidationFailed.__name__, errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = "NotFound" if exc.status_code == 404 else "HTTPError"
    return _envelope(exc.status_code, str(exc.detail), error)


@app.exception_handler(STORE_UNAVAILABLE[0])
@app.exception_handler(STORE_UNAVAILABLE[1])
async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s data store unavailable: %s", _context(request), exc, exc_info=True)
    fallback = Unavailable()
    return _envelope(fallback.status_code, fallback.message, fallback.code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s unhandled error: %s", _context(request), exc, exc_info=True)
    return _envelope(500, "Internal server error", "InternalError")


# Import and register routers directly. Keep app file minimal.
from lead_crm_svc.routers import (  # noqa: E402
    auth_router,
    inquiries_router,
    options_router,
    students_router,
    users_router,
    websocket_router,
)

app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(inquiries_router, prefix="/api/inquiries", tags=["inquiries"])
app.include_router(options_router, prefix="/api/options", tags=["options"])
app.include_router(students_router, prefix="/api/students", tags=["students"])
# websocket router mounted under /api so WS endpoint becomes /api/ws
app.include_router(websocket_router, prefix="/api", tags=["websocket"])


@app.get("/api/health")
def health() -> dict:
    return {"success": True, "message": "Server is running"}
