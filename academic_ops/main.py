from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from academic_ops.api.v1.promotions.router import router as promotions_router
from academic_ops.api.v1.rollover.router import router as rollover_router
from academic_ops.api.v1.sessions.router import router as sessions_router
from academic_ops.api.v1.student_imports.reaper import start_batch_reaper, stop_batch_reaper
from academic_ops.api.v1.student_imports.router import router as student_imports_router
from academic_ops.core.config import settings
from academic_ops.core.exceptions import ServiceError
from academic_ops.core.logging import get_logger, setup_logging
from academic_ops.db.session import AsyncSessionLocal

logger = get_logger(__name__)

_HTTP_CODES = {
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500 or exc.status_code == status.HTTP_409_CONFLICT:
        logger.warning("%s %s refused (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request body or query: one entry per offending field."""
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "message": "Request is malformed",
            "code": "structural_error",
            "errors": [{k: v for k, v in e.items() if v is not None} for e in errors],
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail), "code": _HTTP_CODES.get(exc.status_code, "http_error")},
        headers=getattr(exc, "headers", None),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting academic operations API")
    reaper = start_batch_reaper(AsyncSessionLocal, settings.batch_reaper_interval_seconds)
    yield
    await stop_batch_reaper(reaper)
    logger.info("Academic operations API stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Academic Operations", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One envelope for every error: {message, code, errors?}
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Routers. Rollover first so /sessions/rollover is not captured by /sessions/{session_id}.
    app.include_router(rollover_router)
    app.include_router(sessions_router)
    app.include_router(promotions_router)
    app.include_router(student_imports_router)

    return app


app = create_app()
