"""POST /funnel -- Leads / Prospects / Accounts / Sales counts (or the Chapter detail funnel)."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.copilot.service import CopilotService, get_service
from src.core.logging import get_logger
from src.core.verticals import get_vertical_display_name, get_vertical_or_default

logger = get_logger(__name__)
router = APIRouter()


class FunnelRequest(BaseModel):
    start_date: str = Field(..., description="YYYY-MM-DD (IST)")
    end_date: str = Field(..., description="YYYY-MM-DD (IST), inclusive")
    vertical: Optional[str] = Field(None, description="isprava | the_chapter | lohono_stays | solene")
    locations: Optional[list[str]] = Field(None, description="Cities matched with ILIKE")
    metric: Optional[str] = Field(None, description="Single metric key; omit for the whole funnel")
    chapter_detail: bool = Field(False, description="Nine-metric Chapter funnel")
    execute: bool = Field(True, description="If false, return SQL + params without running it")


class FunnelResponse(BaseModel):
    vertical: str
    vertical_name: str
    start_date: str
    end_date: str
    locations: list[str]
    metric: Optional[str]
    chapter_detail: bool
    sql: str
    params: list[Any]
    rows: list[dict]
    safety_errors: list[str]
    execution_errors: list[str]
    success: bool
    latency_ms: int
    cached: bool


@router.post("", response_model=FunnelResponse)
def funnel_endpoint(req: FunnelRequest, service: CopilotService = Depends(get_service)):
    result = service.run_funnel(
        req.start_date, req.end_date, req.vertical, req.locations,
        metric=req.metric, chapter_detail=req.chapter_detail, execute=req.execute,
    )
    if result.validation_errors:
        raise HTTPException(status_code=400, detail={"validation_errors": result.validation_errors})

    return FunnelResponse(
        vertical=result.vertical,
        vertical_name=get_vertical_display_name(get_vertical_or_default(result.vertical)),
        start_date=result.start_date,
        end_date=result.end_date,
        locations=result.locations,
        metric=result.metric,
        chapter_detail=result.chapter_detail,
        sql=result.sql,
        params=result.params,
        rows=result.rows,
        safety_errors=result.safety_errors,
        execution_errors=result.execution_errors,
        success=result.success,
        latency_ms=result.latency_ms,
        cached=result.cached,
    )
