"""Resolution-time KPIs for weighted support tickets (pure functions)."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

import numpy as np
import pandas as pd

from jira_rollup.analytics.metrics.binning import DEFAULT_BANDS, BandDefinition
from jira_rollup.core.config import DEFAULT_RESOLUTION_TARGETS_HOURS, WORKING_HOURS_PER_DAY
from jira_rollup.core.errors import ConfigurationError, DataQualityLog
from jira_rollup.core.models import IssueRecord
from jira_rollup.core.status import is_done


@dataclass(frozen=True, slots=True)
class ResolutionRate:
    band: str
    target_hours: float
    resolved_fast: int
    resolved_total: int

    @property
    def percent(self) -> int:
        if self.resolved_total == 0:
            return 0
        return round(self.resolved_fast / self.resolved_total * 100)


def working_days_between(start: datetime, end: datetime) -> int:
    """Count Monday-Friday days from ``start`` to ``end``, both days included.

    Returns 0 when ``end`` falls before ``start``.
    """
    first = pd.Timestamp(start).date()
    last = pd.Timestamp(end).date()
    if last < first:
        return 0
    return int(np.busday_count(first, last + timedelta(days=1)))


def _span(record: IssueRecord) -> tuple[datetime | None, datetime | None]:
    # Only tickets carrying both begin and end dates are measured.
    return record.begin_date, record.end_date


def resolution_working_hours(
    record: IssueRecord,
    working_hours_per_day: float = WORKING_HOURS_PER_DAY,
    *,
    quality: DataQualityLog | None = None,
) -> float | None:
    start, end = _span(record)
    if start is None or end is None:
        return None
    if pd.Timestamp(end) < pd.Timestamp(start) and quality is not None:
        quality.record("negative_duration", record.id, "resolution ends before it begins; counted as zero")
    return working_days_between(start, end) * working_hours_per_day


def compute_fast_resolution_rates(
    records: Iterable[IssueRecord],
    bands: BandDefinition = DEFAULT_BANDS,
    targets_hours: Mapping[str, float] | None = None,
    working_hours_per_day: float = WORKING_HOURS_PER_DAY,
    *,
    quality: DataQualityLog | None = None,
) -> list[ResolutionRate]:
    """Share of resolved tickets per band that were resolved under a target.

    The population is done tickets with a weight and a known begin/end span;
    numerator and denominator are counted together in a single pass.

    Parameters
    ----------
    records : iterable of IssueRecord
        Support tickets.
    bands : BandDefinition
        Severity bands used to place each weight.
    targets_hours : mapping, optional
        Band name -> working-hour target. Defaults to high < 72h and
        very_high < 24h.
    working_hours_per_day : float
        Hours in one working day.

    Returns
    -------
    list[ResolutionRate]
        One entry per targeted band, in band order.
    """
    if not working_hours_per_day > 0:
        raise ConfigurationError(f"working_hours_per_day must be positive, got {working_hours_per_day!r}")
    targets = dict(DEFAULT_RESOLUTION_TARGETS_HOURS if targets_hours is None else targets_hours)
    unknown = [name for name in targets if name not in bands.names]
    if unknown:
        raise ConfigurationError(f"resolution targets reference unknown bands: {unknown!r}")
    if quality is None:
        quality = DataQualityLog()

    fast = dict.fromkeys(targets, 0)
    total = dict.fromkeys(targets, 0)
    for record in records:
        if not is_done(record.status_category) or record.weight is None:
            continue
        hours = resolution_working_hours(record, working_hours_per_day, quality=quality)
        if hours is None:
            continue
        band = bands.band_for(float(record.weight), key=record.id, quality=quality)
        if band not in targets:
            continue
        total[band] += 1
        if hours < targets[band]:
            fast[band] += 1

    return [
        ResolutionRate(band=name, target_hours=float(targets[name]), resolved_fast=fast[name], resolved_total=total[name])
        for name in bands.names
        if name in targets
    ]


def average_resolution_hours(
    records: Iterable[IssueRecord],
    working_hours_per_day: float = WORKING_HOURS_PER_DAY,
) -> float:
    """Mean working-hour resolution time over done tickets with a known span."""
    values = [
        resolution_working_hours(r, working_hours_per_day)
        for r in records
        if is_done(r.status_category)
    ]
    values = [v for v in values if v is not None]
    return float(np.mean(values)) if values else 0.0


def average_first_response_hours(
    records: Iterable[IssueRecord],
    working_hours_per_day: float = WORKING_HOURS_PER_DAY,
) -> float:
    """Mean working hours from creation until work began (``begin_date``)."""
    values = [
        working_days_between(r.created, r.begin_date) * working_hours_per_day
        for r in records
        if r.created is not None and r.begin_date is not None
    ]
    return float(np.mean(values)) if values else 0.0


def resolution_details(
    records: Iterable[IssueRecord],
    working_hours_per_day: float = WORKING_HOURS_PER_DAY,
) -> pd.DataFrame:
    """Per-ticket working days for done tickets, longest first."""
    rows = []
    for record in records:
        if not is_done(record.status_category):
            continue
        start, end = _span(record)
        if start is None or end is None:
            continue
        days = working_days_between(start, end)
        rows.append(
            {
                "key": record.id,
                "summary": record.summary,
                "begin": start,
                "end": end,
                "working_days": days,
                "working_hours": days * working_hours_per_day,
                "weight": record.weight,
            }
        )
    if not rows:
        return pd.DataFrame()
    return (
        pd.DataFrame(rows)
        .sort_values(by=["working_days", "key"], ascending=[False, True], kind="mergesort")
        .reset_index(drop=True)
    )
