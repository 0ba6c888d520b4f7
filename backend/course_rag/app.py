"""FastAPI application setup for the course assistant backend."""

from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from course_rag.api.dependencies import get_app_settings, get_services, set_services
from course_rag.api.routes_chat import router as chat_router
from course_rag.api.routes_courses import router as courses_router
from course_rag.api.routes_embeddings import router as embeddings_router
from course_rag.api.routes_files import router as files_router
from course_rag.core.logging import configure_logging, get_logger
from course_rag.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, metrics_response

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Course RAG",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_app_settings().origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(courses_router, prefix="/courses", tags=["courses"])
app.include_router(files_router, prefix="/files", tags=["files"])
app.include_router(chat_router, prefix="/chat", tags=["chat"])
app.include_router(embeddings_router, prefix="/embeddings", tags=["embeddings"])


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")
    REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - start)
    REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    return response


@app.on_event("startup")
async def startup() -> None:
    """Build services and reload the vector index before serving."""
    services = get_services()
    logger.info("Vector index ready with %d chunks", services.vector_index.size)


@app.on_event("shutdown")
async def shutdown() -> None:
    await get_services().aclose()
    set_services(None)


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}


@app.get("/metrics", tags=["admin"], summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()
