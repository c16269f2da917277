"""
QueryPlan -- the structured intermediate representation between a
natural-language funnel question and metric execution.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.nlq.vocabulary import Dimension, FunnelStage, MetricId, QueryIntent
from src.timerange.models import TimeGranularity, TimeRange

AgingOperator = Literal[">", "<", ">=", "<="]
VelocityAggregation = Literal["avg", "median", "p90", "p95"]


class NLQTokens(BaseModel):
    """Raw signals extracted from the query text."""

    stages: list[FunnelStage] = Field(default_factory=list, description="Stage-table order, deduplicated")
    time_expressions: list[str] = Field(default_factory=list)
    dimensions: list[Dimension] = Field(default_factory=list)
    numbers: list[int] = Field(default_factory=list, description="Standalone integers, left to right")
    comparison_keywords: list[str] = Field(default_factory=list)
    aggregation_keywords: list[str] = Field(default_factory=list)
    tokens: list[str] = Field(default_factory=list, description="Whitespace split of the lowercased query")


class StagePair(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_stage: FunnelStage
    to_stage: FunnelStage


class VelocitySpec(StagePair):
    aggregation: VelocityAggregation = "avg"


class AgingSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: FunnelStage
    threshold_days: int = Field(..., ge=0)
    operator: AgingOperator = ">"


class RankingSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_by: Optional[MetricId] = None
    direction: Literal["asc", "desc"] = "desc"
    limit: int = Field(10, ge=1)


class ComparisonSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="WoW | MoM | YoY | DoD | QoQ | SPLY | vs_last_<period>")
    base_range: TimeRange
    compare_range: TimeRange


class OutputMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    disclaimer: Optional[str] = None
    scope: Optional[str] = None


class QueryPlan(BaseModel):
    """
    Resolved plan for one question. Only the intent-specific fields that
    apply to `intent` are set; `to_dict()` omits the rest entirely.
    """

    intent: QueryIntent
    metric_ids: list[MetricId] = Field(default_factory=list)
    stages: list[FunnelStage] = Field(default_factory=list)
    time_range: TimeRange
    original_query: str
    confidence: float = Field(..., ge=0, le=1)
    output_meta: OutputMeta = Field(default_factory=OutputMeta)

    group_by: Optional[list[Dimension]] = None
    trend_granularity: Optional[TimeGranularity] = None
    conversion: Optional[StagePair] = None
    velocity: Optional[VelocitySpec] = None
    aging: Optional[AgingSpec] = None
    ranking: Optional[RankingSpec] = None
    comparison: Optional[ComparisonSpec] = None

    def to_dict(self) -> dict[str, Any]:
        # top level only: open TimeRange bounds stay as explicit nulls
        data = self.model_dump(mode="json")
        return {k: v for k, v in data.items() if v is not None}
