"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routers import funnel, nlq, predefined
from src.core.config import get_settings
from src.core.logging import get_logger
from src.funnel.builder import UnknownMetricError
from src.funnel.rules import FunnelRulesError
from src.predefined.catalog import CatalogNotFoundError

logger = get_logger(__name__)

app = FastAPI(
    title="Funnel Analytics Copilot",
    version="0.1.0",
    description="Natural-language time ranges, query plans and parameterised funnel SQL",
    debug=get_settings().debug_mode,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(nlq.router, prefix="/nlq", tags=["NLQ"])
app.include_router(funnel.router, prefix="/funnel", tags=["Funnel"])
app.include_router(predefined.router, prefix="/predefined", tags=["Predefined"])


@app.exception_handler(UnknownMetricError)
def unknown_metric_handler(request: Request, exc: UnknownMetricError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(CatalogNotFoundError)
@app.exception_handler(FunnelRulesError)
def config_missing_handler(request: Request, exc: Exception):
    logger.error("Configuration unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.api.main:app", host="0.0.0.0", port=get_settings().api_port)
