"""POST /nlq/resolve -- natural-language question to a structured query plan."""
from __future__ import annotations

from typing import Any, Optional
from zoneinfo import ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.copilot.service import CopilotService, get_service
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class ResolveRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=500, description="Natural-language analytics question")
    now: Optional[str] = Field(None, description="ISO-8601 clock override, e.g. 2026-02-09T12:00:00+05:30")
    timezone: Optional[str] = Field(None, description="IANA zone or fixed offset (default Asia/Kolkata)")
    fiscal_year_start_month: Optional[int] = Field(None, ge=1, le=12)
    week_start: Optional[str] = Field(None, pattern="^(monday|sunday)$")

    def config_overrides(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        if self.now:
            overrides["now"] = self.now
        if self.timezone:
            overrides["timezone"] = self.timezone
        if self.fiscal_year_start_month:
            overrides["fiscal_config"] = {"fiscal_year_start_month": self.fiscal_year_start_month}
        if self.week_start:
            overrides["week_start"] = self.week_start
        return overrides


@router.post("/resolve")
def resolve_endpoint(req: ResolveRequest, service: CopilotService = Depends(get_service)) -> dict[str, Any]:
    """Return the QueryPlan; intent-specific fields that do not apply are omitted."""
    try:
        plan = service.resolve_question(req.question, req.config_overrides())
    except (ValueError, ZoneInfoNotFoundError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid time configuration: {exc}")
    return plan.to_dict()
