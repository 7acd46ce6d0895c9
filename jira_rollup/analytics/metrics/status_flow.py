"""Status flow and duration analysis utilities.

This module computes how long each issue spent in every workflow status
from its ordered transition log, then aggregates those durations across
issues. The reference instant ("now") is always passed in by the caller.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd

from jira_rollup.core.config import UNKNOWN_TYPE_LABEL
from jira_rollup.core.errors import ConfigurationError, DataQualityLog
from jira_rollup.core.models import IssueStatusHistory
from jira_rollup.core.status import clean_status_name

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000.0


@dataclass(slots=True)
class StatusDurationStat:
    status: str
    issue_count: int
    average_hours: float
    min_hours: float
    max_hours: float
    average_days: float
    min_days: float
    max_days: float


@dataclass(slots=True)
class IssueTypeBreakdown:
    issue_type: str
    status_breakdown: list[StatusDurationStat] = field(default_factory=list)


@dataclass(slots=True)
class TimeInStatusSummary:
    total_issues_analyzed: int = 0
    average_total_cycle_hours: float = 0.0
    statuses_found: list[str] = field(default_factory=list)
    issue_types_found: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TimeInStatusMetrics:
    average_time_by_status: list[StatusDurationStat] = field(default_factory=list)
    average_time_by_status_and_type: list[IssueTypeBreakdown] = field(default_factory=list)
    summary: TimeInStatusSummary = field(default_factory=TimeInStatusSummary)
    quality: DataQualityLog = field(default_factory=DataQualityLog)


def _to_ts(value) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts


def _interval_ms(start, end, *, key: str, status: str, quality: DataQualityLog) -> float:
    delta = (_to_ts(end) - _to_ts(start)).total_seconds() * 1000.0
    if delta < 0:
        quality.record(
            "negative_duration",
            key,
            f"interval in {status!r} ends {abs(delta) / 1000.0:.0f}s before it starts; counted as zero",
        )
        return 0.0
    return delta


def compute_issue_time_in_status(
    history: IssueStatusHistory,
    now: datetime,
    *,
    quality: DataQualityLog | None = None,
) -> dict[str, float]:
    """Milliseconds spent in each status for one issue.

    Transitions are walked in the order given. Each interval is attributed
    to the status entered at its start; the last one stays open until the
    resolution time, or ``now`` for unresolved issues. Time between creation
    and the first transition belongs to that transition's ``from_status``.

    Parameters
    ----------
    history : IssueStatusHistory
        Issue creation time, current status and ordered transitions.
    now : datetime
        Reference instant for still-open intervals.
    quality : DataQualityLog, optional
        Receives negative-interval warnings; those intervals count as zero.

    Returns
    -------
    dict[str, float]
        Mapping of status name to milliseconds. The result is also stored on
        ``history.time_in_each_status``.
    """
    if quality is None:
        quality = DataQualityLog()
    key = history.issue_key
    end = history.resolved if history.resolved is not None else now
    durations: defaultdict[str, float] = defaultdict(float)
    transitions = history.transitions

    if not transitions:
        status = clean_status_name(history.status)
        durations[status] += _interval_ms(history.created, end, key=key, status=status, quality=quality)
        history.time_in_each_status = dict(durations)
        return history.time_in_each_status

    first = transitions[0]
    initial = clean_status_name(first.from_status or history.status)
    lead_in = _interval_ms(history.created, first.transition_date, key=key, status=initial, quality=quality)
    if lead_in > 0:
        durations[initial] += lead_in

    for current, following in zip(transitions, transitions[1:]):
        status = clean_status_name(current.to_status)
        durations[status] += _interval_ms(
            current.transition_date, following.transition_date, key=key, status=status, quality=quality
        )

    last = transitions[-1]
    status = clean_status_name(last.to_status)
    durations[status] += _interval_ms(last.transition_date, end, key=key, status=status, quality=quality)

    history.time_in_each_status = dict(durations)
    return history.time_in_each_status


def build_status_duration_frame(
    histories: Iterable[IssueStatusHistory],
    now: datetime,
    *,
    quality: DataQualityLog | None = None,
) -> pd.DataFrame:
    """Build a long-form DataFrame of status durations for all issues.

    Returns
    -------
    pd.DataFrame
        Columns: key, issue_type, status, duration_hours, is_open. ``is_open``
        marks the row holding the still-running interval of an unresolved issue.
        Empty DataFrame when there is nothing to report.
    """
    if quality is None:
        quality = DataQualityLog()
    records: list[dict[str, object]] = []
    for history in histories:
        durations = compute_issue_time_in_status(history, now, quality=quality)
        if history.transitions:
            current = clean_status_name(history.transitions[-1].to_status)
        else:
            current = clean_status_name(history.status)
        for status_name, ms in durations.items():
            records.append(
                {
                    "key": history.issue_key,
                    "issue_type": history.issue_type or UNKNOWN_TYPE_LABEL,
                    "status": status_name,
                    "duration_hours": ms / MS_PER_HOUR,
                    "is_open": history.resolved is None and status_name == current,
                }
            )
    if not records:
        return pd.DataFrame()
    return pd.DataFrame(records)


def _stats(frame: pd.DataFrame, working_hours_per_day: float) -> list[StatusDurationStat]:
    grouped = (
        frame.groupby("status", sort=True)
        .agg(
            issue_count=("key", "nunique"),
            average_hours=("duration_hours", "mean"),
            min_hours=("duration_hours", "min"),
            max_hours=("duration_hours", "max"),
        )
        .reset_index()
        .sort_values(by=["average_hours", "status"], ascending=[False, True], kind="stable")
    )
    out: list[StatusDurationStat] = []
    for row in grouped.itertuples(index=False):
        out.append(
            StatusDurationStat(
                status=row.status,
                issue_count=int(row.issue_count),
                average_hours=float(row.average_hours),
                min_hours=float(row.min_hours),
                max_hours=float(row.max_hours),
                average_days=float(row.average_hours) / working_hours_per_day,
                min_days=float(row.min_hours) / working_hours_per_day,
                max_days=float(row.max_hours) / working_hours_per_day,
            )
        )
    return out


def compute_time_in_status(
    histories: Sequence[IssueStatusHistory],
    now: datetime,
    working_hours_per_day: float,
    *,
    quality: DataQualityLog | None = None,
) -> TimeInStatusMetrics:
    """Aggregate time-in-status across issues, overall and per issue type.

    Days are working days: hours divided by ``working_hours_per_day``.

    Raises
    ------
    ConfigurationError
        If ``working_hours_per_day`` is not strictly positive.
    """
    if working_hours_per_day is None or not working_hours_per_day > 0:
        raise ConfigurationError(f"working_hours_per_day must be positive, got {working_hours_per_day!r}")

    if quality is None:
        quality = DataQualityLog()
    metrics = TimeInStatusMetrics(quality=quality)
    frame = build_status_duration_frame(histories, now, quality=quality)
    if frame.empty:
        return metrics

    # One sample per (issue, status): an issue re-entering a status sums up.
    per_issue = frame.groupby(["key", "issue_type", "status"], as_index=False, sort=False)["duration_hours"].sum()

    metrics.average_time_by_status = _stats(per_issue, working_hours_per_day)
    for issue_type, group in per_issue.groupby("issue_type", sort=True):
        metrics.average_time_by_status_and_type.append(
            IssueTypeBreakdown(issue_type=str(issue_type), status_breakdown=_stats(group, working_hours_per_day))
        )

    cycle = per_issue.groupby("key")["duration_hours"].sum()
    metrics.summary = TimeInStatusSummary(
        total_issues_analyzed=int(cycle.size),
        average_total_cycle_hours=float(cycle.mean()),
        statuses_found=sorted(per_issue["status"].unique().tolist()),
        issue_types_found=sorted(per_issue["issue_type"].unique().tolist()),
    )
    if len(quality):
        logger.info("Time-in-status computed with %s data-quality warning(s)", len(quality))
    return metrics
