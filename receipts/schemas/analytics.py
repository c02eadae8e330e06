from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel


class AnalyticsTotals(BaseModel):
    documents_sent: int
    acknowledged_documents: int
    acknowledgement_rate_percent: int | None = None
    outstanding_acknowledgements: int
    avg_time_to_ack_seconds: int | None = None


class AnalyticsAverages(BaseModel):
    """Means over the completion population; ``None`` when it is empty."""

    completion_count: int
    max_scroll_percent: float | None = None
    time_on_page_seconds: float | None = None
    active_seconds: float | None = None


class SeriesPoint(BaseModel):
    date: dt.date
    sent: int
    acknowledged: int


class BreakdownRow(BaseModel):
    key: str
    total: int
    acknowledged: int


class AttentionItem(BaseModel):
    document_id: UUID
    title: str
    category: str
    recipients: int
    acknowledged: int
    pending: int
    created_at: datetime
    last_activity_at: datetime | None = None


class AnalyticsSnapshot(BaseModel):
    workspace_id: UUID
    start: date
    end: date
    granularity: str
    totals: AnalyticsTotals
    averages: AnalyticsAverages
    series: list[SeriesPoint]
    by_priority: list[BreakdownRow]
    by_label: list[BreakdownRow]
    by_tag: list[BreakdownRow]
    attention: list[AttentionItem]
