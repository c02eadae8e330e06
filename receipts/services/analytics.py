from __future__ import annotations

import copy
import logging
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from threading import Lock
from time import monotonic

from sqlalchemy import select
from sqlalchemy.orm import Session

from receipts.config import settings
from receipts.errors import PolicyViolation, ValidationError
from receipts.models.account import Account
from receipts.models.document import Completion, Document, DocumentPriority, Recipient
from receipts.models.workspace import MemberRole
from receipts.services.common import as_utc, coerce_uuid
from receipts.services.plans import Capability, resolve_entitlements
from receipts.services.workspaces import Workspaces, require_member

logger = logging.getLogger(__name__)

GRANULARITIES = ("day", "week", "month")
MAX_RANGE_DAYS = 366

_CATEGORY_ORDER = ["overdue", "closing", "new", "waiting", "complete", "draft"]

_CACHE: OrderedDict[tuple, tuple[float, dict]] = OrderedDict()
_CACHE_LOCK = Lock()


@dataclass(frozen=True)
class AttentionPolicy:
    overdue_days: int = 7
    closing_ratio: float = 0.75
    new_hours: int = 24

    @classmethod
    def from_settings(cls) -> "AttentionPolicy":
        return cls(
            overdue_days=settings.attention_overdue_days,
            closing_ratio=settings.attention_closing_ratio,
            new_hours=settings.attention_new_hours,
        )


def classify_attention(
    recipients: int,
    acknowledged: int,
    created_at: datetime,
    now: datetime,
    policy: AttentionPolicy,
) -> str:
    if recipients <= 0:
        return "draft"
    pending = max(recipients - acknowledged, 0)
    if pending == 0:
        return "complete"
    age = now - created_at
    if age > timedelta(days=policy.overdue_days):
        return "overdue"
    if acknowledged / recipients >= policy.closing_ratio:
        return "closing"
    if acknowledged == 0 and age <= timedelta(hours=policy.new_hours):
        return "new"
    return "waiting"


def bucket_start(day: date, granularity: str) -> date:
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    if granularity == "month":
        return day.replace(day=1)
    return day


def _buckets(start: date, end: date, granularity: str) -> list[date]:
    keys: list[date] = []
    day = start
    while day <= end:
        key = bucket_start(day, granularity)
        if not keys or keys[-1] != key:
            keys.append(key)
        day += timedelta(days=1)
    return keys


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def clear_cache() -> None:
    with _CACHE_LOCK:
        _CACHE.clear()


def _cache_get(key: tuple, ttl: float) -> dict | None:
    with _CACHE_LOCK:
        cached = _CACHE.get(key)
        if cached is None:
            return None
        if monotonic() - cached[0] >= ttl:
            del _CACHE[key]
            return None
        return copy.deepcopy(cached[1])


def _cache_put(key: tuple, ttl: float, result: dict) -> None:
    now = monotonic()
    with _CACHE_LOCK:
        for stale in [k for k, (stored, _) in _CACHE.items() if now - stored >= ttl]:
            del _CACHE[stale]
        _CACHE[key] = (now, copy.deepcopy(result))
        _CACHE.move_to_end(key)
        while len(_CACHE) > max(settings.analytics_cache_max_entries, 1):
            _CACHE.popitem(last=False)


def require_analytics_access(db: Session, workspace_id, account: Account) -> None:
    workspace = Workspaces.get(db, workspace_id)
    member = require_member(db, workspace.id, account.id)
    resolve_entitlements(db, account, workspace).require(Capability.analytics)
    if member.role in (MemberRole.owner, MemberRole.admin):
        return
    if not (member.can_view_analytics and member.license_active):
        raise PolicyViolation("You do not have access to workspace analytics")


class Analytics:
    @staticmethod
    def snapshot(
        db: Session,
        workspace_id: str,
        start: date,
        end: date,
        granularity: str = "day",
        window_days: int | None = None,
        now: datetime | None = None,
    ) -> dict:
        if granularity not in GRANULARITIES:
            raise ValidationError(f"Invalid granularity. Allowed: {list(GRANULARITIES)}")
        if end < start:
            raise ValidationError("end must not be before start")
        if (end - start).days > MAX_RANGE_DAYS:
            raise ValidationError(f"Range must be at most {MAX_RANGE_DAYS} days")
        if window_days is not None and window_days < 1:
            raise ValidationError("window_days must be positive")

        ws_id = coerce_uuid(workspace_id)
        key = (ws_id, start, end, granularity, window_days)
        ttl = settings.analytics_cache_ttl_seconds
        if now is None and ttl > 0:
            cached = _cache_get(key, ttl)
            if cached is not None:
                return cached

        result = Analytics._compute(
            db,
            ws_id,
            start,
            end,
            granularity,
            window_days,
            now or datetime.now(timezone.utc),
            AttentionPolicy.from_settings(),
        )
        if now is None and ttl > 0:
            _cache_put(key, ttl, result)
        return result

    @staticmethod
    def _compute(
        db: Session,
        ws_id,
        start: date,
        end: date,
        granularity: str,
        window_days: int | None,
        now: datetime,
        policy: AttentionPolicy,
    ) -> dict:
        now = as_utc(now)
        docs = db.scalars(
            select(Document)
            .where(Document.workspace_id == ws_id)
            .where(Document.is_active.is_(True))
            .order_by(Document.created_at.asc(), Document.id.asc())
        ).all()
        doc_ids = [d.id for d in docs]

        completions: list[Completion] = []
        recipient_counts: dict = defaultdict(int)
        if doc_ids:
            completions = db.scalars(
                select(Completion).where(Completion.document_id.in_(doc_ids))
            ).all()
            for recipient in db.scalars(
                select(Recipient).where(Recipient.document_id.in_(doc_ids))
            ).all():
                recipient_counts[recipient.document_id] += 1

        first_ack: dict = {}
        last_activity: dict = {}
        acked_recipients: dict = defaultdict(set)
        anonymous_acks: dict = defaultdict(int)
        for c in completions:
            submitted = as_utc(c.submitted_at)
            if c.document_id not in last_activity or submitted > last_activity[c.document_id]:
                last_activity[c.document_id] = submitted
            if not c.acknowledged:
                continue
            if c.document_id not in first_ack or submitted < first_ack[c.document_id]:
                first_ack[c.document_id] = submitted
            if c.recipient_id is None:
                anonymous_acks[c.document_id] += 1
            else:
                acked_recipients[c.document_id].add(c.recipient_id)

        def ack_count(doc_id) -> int:
            return len(acked_recipients[doc_id]) + anonymous_acks[doc_id]

        in_range = [d for d in docs if start <= as_utc(d.created_at).date() <= end]

        # Totals
        sent = len(in_range)
        acknowledged_docs = [d for d in in_range if d.id in first_ack]
        outstanding = sum(
            max(recipient_counts[d.id] - ack_count(d.id), 0) for d in in_range
        )
        ack_delays = [
            (first_ack[d.id] - as_utc(d.created_at)).total_seconds()
            for d in acknowledged_docs
        ]
        totals = {
            "documents_sent": sent,
            "acknowledged_documents": len(acknowledged_docs),
            "acknowledgement_rate_percent": (
                round(len(acknowledged_docs) / sent * 100) if sent else None
            ),
            "outstanding_acknowledgements": outstanding,
            "avg_time_to_ack_seconds": (
                round(sum(ack_delays) / len(ack_delays)) if ack_delays else None
            ),
        }

        # Averages over the completion population
        population = completions
        if window_days is not None:
            cutoff = now - timedelta(days=window_days)
            population = [c for c in completions if as_utc(c.submitted_at) >= cutoff]
        averages = {
            "completion_count": len(population),
            "max_scroll_percent": _mean([c.max_scroll_percent for c in population]),
            "time_on_page_seconds": _mean([c.time_on_page_seconds for c in population]),
            "active_seconds": _mean([c.active_seconds for c in population]),
        }

        # Series
        series = {
            k: {"date": k, "sent": 0, "acknowledged": 0}
            for k in _buckets(start, end, granularity)
        }
        for d in in_range:
            point = series[bucket_start(as_utc(d.created_at).date(), granularity)]
            point["sent"] += 1
            if d.id in first_ack:
                point["acknowledged"] += 1

        # Breakdowns
        by_priority = {p.value: [0, 0] for p in DocumentPriority}
        by_label: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        by_tag: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        for d in in_range:
            acked = 1 if d.id in first_ack else 0
            priority = (d.priority or DocumentPriority.normal).value
            by_priority[priority][0] += 1
            by_priority[priority][1] += acked
            for label in d.labels or []:
                by_label[label][0] += 1
                by_label[label][1] += acked
            for tag_key, tag_value in sorted((d.tags or {}).items()):
                bucket = by_tag[f"{tag_key}:{tag_value}"]
                bucket[0] += 1
                bucket[1] += acked

        def rows(counts: dict) -> list[dict]:
            return [
                {"key": k, "total": v[0], "acknowledged": v[1]}
                for k, v in counts.items()
            ]

        # Attention
        attention = []
        for d in docs:
            recipients = recipient_counts[d.id]
            acked = min(ack_count(d.id), recipients) if recipients else ack_count(d.id)
            created_at = as_utc(d.created_at)
            attention.append(
                {
                    "document_id": d.id,
                    "title": d.title,
                    "category": classify_attention(
                        recipients, acked, created_at, now, policy
                    ),
                    "recipients": recipients,
                    "acknowledged": acked,
                    "pending": max(recipients - acked, 0),
                    "created_at": created_at,
                    "last_activity_at": last_activity.get(d.id),
                }
            )
        attention.sort(
            key=lambda item: (
                _CATEGORY_ORDER.index(item["category"]),
                -item["created_at"].timestamp(),
            )
        )

        logger.debug(
            "Computed analytics for workspace %s (%s..%s, %s)",
            ws_id,
            start,
            end,
            granularity,
        )
        return {
            "workspace_id": ws_id,
            "start": start,
            "end": end,
            "granularity": granularity,
            "totals": totals,
            "averages": averages,
            "series": list(series.values()),
            "by_priority": rows(by_priority),
            "by_label": sorted(rows(by_label), key=lambda r: r["key"]),
            "by_tag": sorted(rows(by_tag), key=lambda r: r["key"]),
            "attention": attention,
        }


analytics = Analytics()
