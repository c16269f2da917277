"""POST /predefined, GET /predefined/titles -- curated catalog queries."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.copilot.service import CopilotService, get_service
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class PredefinedRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=200, description="Search term matched against query titles")
    start_date: Optional[str] = Field(None, description="FY start, YYYY-MM-DD")
    end_date: Optional[str] = Field(None, description="Period end, YYYY-MM-DD")
    locations: Optional[list[str]] = None
    execute: bool = True


class PredefinedResponse(BaseModel):
    query: str
    query_title: str
    match_score: float
    start_date: str
    end_date: str
    sql: str
    params: list[Any]
    rows: list[dict]
    row_count: int
    safety_errors: list[str]
    execution_errors: list[str]
    success: bool
    latency_ms: int
    cached: bool


@router.post("", response_model=PredefinedResponse)
def predefined_endpoint(req: PredefinedRequest, service: CopilotService = Depends(get_service)):
    result = service.run_predefined(
        req.query, req.start_date, req.end_date, req.locations, execute=req.execute,
    )
    if result.validation_errors:
        detail: dict[str, Any] = {"validation_errors": result.validation_errors}
        if result.candidates:
            detail["candidates"] = result.candidates
        if result.available_queries:
            detail["available_queries"] = result.available_queries
        raise HTTPException(status_code=400, detail=detail)

    return PredefinedResponse(
        query=result.query,
        query_title=result.query_title,
        match_score=result.match_score,
        start_date=result.start_date,
        end_date=result.end_date,
        sql=result.sql,
        params=result.params,
        rows=result.rows,
        row_count=len(result.rows),
        safety_errors=result.safety_errors,
        execution_errors=result.execution_errors,
        success=result.success,
        latency_ms=result.latency_ms,
        cached=result.cached,
    )


@router.get("/titles")
def list_titles(service: CopilotService = Depends(get_service)) -> dict:
    """Return every catalog title."""
    return {"titles": service.catalog.titles()}
