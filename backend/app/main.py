"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.logging import log_error, setup_logging
from app.core.metrics import get_content_type, get_metrics, set_app_info
from app.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
)
from app.core.tracing import setup_tracing, shutdown_tracing
from app.modules.merge import merge_router

logger = logging.getLogger(__name__)

ENVIRONMENT = "development" if settings.DEBUG else "production"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Starting %s v%s", settings.PROJECT_NAME, settings.VERSION)
    yield
    shutdown_tracing()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## FFmpeg Video Merger API

Merge up to 10 remotely hosted videos, in order, into a single MP4 and
upload it to object storage.

* **Size-tiered upload** - direct, asynchronous, chunked or streamed by output size
* **Quality first** - resolution is reduced before bitrate for large outputs
* **Auto delete** - merged videos are removed after the retention window
    """,
    openapi_tags=[
        {"name": "merge", "description": "Video merge operations"},
        {"name": "health", "description": "Health check endpoints"},
        {"name": "monitoring", "description": "Prometheus metrics"},
    ],
    lifespan=lifespan,
)

setup_logging(
    level="INFO" if not settings.DEBUG else "DEBUG",
    json_format=True,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment=ENVIRONMENT,
    enable_console_export=settings.DEBUG,
)

set_app_info(version=settings.VERSION, environment=ENVIRONMENT)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware, log_request_body=False)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "Endpoint not found",
                "message": f"{request.method} {request.url.path} is not a valid endpoint",
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail), "message": "Request failed"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(logger, "Unhandled error", exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )


@app.get("/metrics", response_class=PlainTextResponse, tags=["monitoring"])
async def get_prometheus_metrics() -> Response:
    """Prometheus metrics in text exposition format."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(merge_router)
