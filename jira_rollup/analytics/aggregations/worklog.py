"""Worklog aggregations (time logged per author, day and issue type)."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import pandas as pd

from jira_rollup.core.config import UNKNOWN_TYPE_LABEL
from jira_rollup.core.models import WorklogRecord


@dataclass(slots=True)
class WorklogSummary:
    total_hours: float = 0.0
    total_days: float = 0.0
    worklog_count: int = 0
    unique_authors: int = 0
    unique_issues: int = 0
    average_hours_per_worklog: float = 0.0
    by_author: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_day: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_issue_type: pd.DataFrame = field(default_factory=pd.DataFrame)


def worklogs_to_dataframe(worklogs: Iterable[WorklogRecord]) -> pd.DataFrame:
    rows = [
        {
            "id": w.id,
            "issue_key": w.issue_key,
            "author_id": w.author_id,
            "author": w.author_name or w.author_id,
            "hours": float(w.time_spent_seconds) / 3600.0,
            "started": w.started,
            "issuetype": w.issue_type or UNKNOWN_TYPE_LABEL,
        }
        for w in worklogs
    ]
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    started = pd.to_datetime(df["started"], utc=True, errors="coerce")
    df["work_date"] = started.dt.strftime("%Y-%m-%d")
    return df


def summarize_worklogs(worklogs: Iterable[WorklogRecord], working_hours_per_day: float = 8.0) -> WorklogSummary:
    df = worklogs_to_dataframe(worklogs)
    if df.empty:
        return WorklogSummary()

    by_author = (
        df.groupby(["author_id", "author"], dropna=False)
        .agg(total_hours=("hours", "sum"), worklog_count=("id", "count"), issue_count=("issue_key", "nunique"))
        .reset_index()
        .sort_values(by=["total_hours", "author"], ascending=[False, True], kind="mergesort")
        .reset_index(drop=True)
    )
    by_day = (
        df.groupby("work_date")
        .agg(total_hours=("hours", "sum"), worklog_count=("id", "count"), author_count=("author_id", "nunique"))
        .reset_index()
        .sort_values(by="work_date")
        .reset_index(drop=True)
    )
    by_type = (
        df.groupby("issuetype")
        .agg(total_hours=("hours", "sum"), worklog_count=("id", "count"), issue_count=("issue_key", "nunique"))
        .reset_index()
        .sort_values(by=["total_hours", "issuetype"], ascending=[False, True], kind="mergesort")
        .reset_index(drop=True)
    )
    total_hours = float(df["hours"].sum())
    return WorklogSummary(
        total_hours=total_hours,
        total_days=total_hours / working_hours_per_day if working_hours_per_day > 0 else 0.0,
        worklog_count=int(len(df)),
        unique_authors=int(df["author_id"].nunique()),
        unique_issues=int(df["issue_key"].nunique()),
        average_hours_per_worklog=total_hours / len(df),
        by_author=by_author,
        by_day=by_day,
        by_issue_type=by_type,
    )


def total_time_by_issue(worklogs: Iterable[WorklogRecord]) -> dict[str, float]:
    """Seconds logged per issue key, in first-seen order."""
    totals: dict[str, float] = {}
    for w in worklogs:
        totals[w.issue_key] = totals.get(w.issue_key, 0.0) + float(w.time_spent_seconds or 0)
    return totals
