from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from salesdesk.api.routes import router as api_router
from salesdesk.context import get_correlation_id
from salesdesk.core.config import get_settings
from salesdesk.core.errors import ConflictError, CRMError, InternalError, NotFoundError, ValidationError
from salesdesk.logging import configure_logging
from salesdesk.middleware.correlation_id import CorrelationIdMiddleware
from salesdesk.middleware.rate_limit import ApiRateLimitMiddleware
from salesdesk.middleware.request_logging import RequestLoggingMiddleware
from salesdesk.otel import configure_tracing, server_request_hook


configure_logging()
logger = logging.getLogger("salesdesk.lifecycle")


def error_response(request: Request, error: CRMError) -> JSONResponse:
    payload = error.to_payload()
    payload["correlationId"] = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(payload))


def _field_name(location: tuple[object, ...]) -> str:
    # Drop the "body"/"query"/"path" prefix pydantic reports.
    parts = [str(part) for part in location[1:]] or [str(part) for part in location]
    return ".".join(parts)


async def handle_crm_error(request: Request, exc: CRMError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request.failed", extra={"error": exc.message})
    return error_response(request, exc)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": _field_name(tuple(item.get("loc", ()))), "message": item.get("msg", "Invalid value")}
        for item in exc.errors()
    ]
    return error_response(request, ValidationError(errors=errors))


async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("request.integrity_conflict", extra={"error": str(exc.orig)})
    return error_response(request, ConflictError("Resource already exists"))


async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("request.store_failed", exc_info=exc, extra={"error": str(exc)})
    return error_response(request, InternalError(str(exc)))


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return error_response(request, NotFoundError("Route not found"))
    error = CRMError(str(exc.detail))
    error.status_code = exc.status_code
    error.code = "http_error"
    return error_response(request, error)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("request.unhandled", exc_info=exc, extra={"error": str(exc)})
    return error_response(request, InternalError(str(exc)))


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("app.startup", extra={"environment": settings.app_env})
    yield
    logger.info("app.shutdown")


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(ApiRateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-Id", "Retry-After"],
)
app.add_exception_handler(CRMError, handle_crm_error)
app.add_exception_handler(RequestValidationError, handle_request_validation)
app.add_exception_handler(IntegrityError, handle_integrity_error)
app.add_exception_handler(SQLAlchemyError, handle_store_error)
app.add_exception_handler(StarletteHTTPException, handle_http_error)
app.add_exception_handler(Exception, handle_unexpected_error)
app.include_router(api_router)

configure_tracing(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=server_request_hook)
