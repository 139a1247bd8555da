from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SummarizedTaskRead(BaseModel):
    task_name: str
    total_time: str = Field(examples=["1.5h"])
    total_ms: int
    rate: int = Field(ge=0, le=100)

    model_config = {
        "from_attributes": True,
    }


class ReportRead(BaseModel):
    generated_at: datetime | None = None
    last_week: list[SummarizedTaskRead] = Field(default_factory=list)
    last_month: list[SummarizedTaskRead] = Field(default_factory=list)
    last_half_year: list[SummarizedTaskRead] = Field(default_factory=list)
    last_year: list[SummarizedTaskRead] = Field(default_factory=list)
    error_message: str | None = None
