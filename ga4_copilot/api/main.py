"""
FastAPI application entry-point.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ga4_copilot.api.routers import catalog, ga4
from ga4_copilot.backend.credentials import get_credentials
from ga4_copilot.core.config import get_settings, require_startup_config
from ga4_copilot.core.errors import CopilotError
from ga4_copilot.core.logging import get_logger, quiet_third_party
from ga4_copilot.governance.schema_registry import load_registry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing credentials are fatal.
    settings = require_startup_config()
    quiet_third_party()
    registry = load_registry()
    if settings.report_backend.lower() == "ga4":
        get_credentials()
    logger.info(
        "Startup | backend=%s llm=%s metrics=%d dimensions=%d",
        settings.report_backend, settings.llm_provider,
        len(registry.metrics), len(registry.dimensions),
    )
    yield


app = FastAPI(
    title="GA4 Analytics Copilot",
    version="0.1.0",
    description="Structured and natural-language queries over Google Analytics 4",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ga4.router, prefix="/ga4", tags=["GA4"])
app.include_router(catalog.router, tags=["Catalog"])


@app.exception_handler(CopilotError)
async def copilot_error_handler(request: Request, exc: CopilotError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body. " + "; ".join(problems), "category": "validation"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "category": "internal" if exc.status_code >= 500 else "http"},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run("ga4_copilot.api.main:app", host="0.0.0.0", port=get_settings().api_port)
