from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PipelineOverviewItem(_CamelModel):
    stage: str
    count: int


class RevenuePerformanceItem(_CamelModel):
    period: str
    quoted: Decimal | str
    invoiced: Decimal | str
    paid: Decimal | str


class WinRate(_CamelModel):
    quotes: int = 0
    paid: int = 0


class VelocityItem(_CamelModel):
    stage: str
    days: float


class UpcomingProject(_CamelModel):
    id: UUID
    name: str
    client: str
    due_in: int


class ActivityFeedItem(_CamelModel):
    id: UUID
    author: str
    description: str
    time_ago: str


class DashboardSectionError(_CamelModel):
    section: str
    message: str


class DashboardRead(_CamelModel):
    pipeline_overview: list[PipelineOverviewItem] = Field(default_factory=list)
    revenue_performance: list[RevenuePerformanceItem] = Field(default_factory=list)
    win_rate: WinRate = Field(default_factory=WinRate)
    velocity_by_stage: list[VelocityItem] = Field(default_factory=list)
    upcoming_projects: list[UpcomingProject] = Field(default_factory=list)
    activity_feed: list[ActivityFeedItem] = Field(default_factory=list)
    errors: list[DashboardSectionError] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> DashboardRead:
        return cls()
