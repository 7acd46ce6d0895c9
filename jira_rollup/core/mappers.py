"""Mapping raw Jira issue JSON into IssueRecord, status history and worklog models."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

import pandas as pd

from .config import FIELD_IDS, NO_TEAM_LABEL, UNASSIGNED_LABEL, UNKNOWN_TYPE_LABEL
from .errors import DataQualityLog
from .models import IssueRecord, IssueStatusHistory, StatusTransition, WorklogRecord
from .status import clean_status_name, map_status_category


def parse_dt(val: Any) -> datetime | None:
    if not val:
        return None
    ts = pd.to_datetime(val, utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _number(val: Any) -> float | None:
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, dict):
        # Select-list custom fields carry the number in "value"
        val = val.get("value")
    try:
        num = float(val)
    except (TypeError, ValueError):
        return None
    if pd.isna(num):
        return None
    return num


def _seconds(val: Any) -> float:
    num = _number(val)
    return max(num, 0.0) if num is not None else 0.0


def _team_name(val: Any) -> str | None:
    if val is None:
        return None
    if isinstance(val, dict):
        return val.get("name") or val.get("title") or val.get("value")
    if isinstance(val, list):
        for item in val:
            name = _team_name(item)
            if name:
                return name
        return None
    text = str(val).strip()
    return text or None


def _display_name(val: Any) -> str | None:
    if not isinstance(val, dict):
        return None
    return val.get("displayName") or val.get("name")


def map_issue_record(raw: dict[str, Any]) -> IssueRecord:
    """Convert one search result issue into an :class:`IssueRecord`.

    Story points come from the story points field, falling back to the
    "story point estimate" field used by team-managed projects. Time tracking
    values are the issue's own (not Jira's aggregate) seconds.
    """
    fields = raw.get("fields") or {}
    status = fields.get("status") or {}
    status_name = status.get("name")
    category_key = (status.get("statusCategory") or {}).get("key")

    timetracking = fields.get("timetracking") or {}
    estimate = fields.get("timeoriginalestimate")
    if estimate is None:
        estimate = timetracking.get("originalEstimateSeconds")
    spent = fields.get("timespent")
    if spent is None:
        spent = timetracking.get("timeSpentSeconds")

    story_points = _number(fields.get(FIELD_IDS["story_points"]))
    if story_points is None:
        story_points = _number(fields.get(FIELD_IDS["story_point_estimate"]))
    if story_points is not None and story_points < 0:
        story_points = None

    parent = fields.get("parent") or {}
    return IssueRecord(
        id=raw.get("key") or str(raw.get("id")),
        parent_id=parent.get("key") or None,
        issue_type=(fields.get("issuetype") or {}).get("name"),
        status_category=map_status_category(status_name, category_key),
        original_estimate_seconds=_seconds(estimate),
        time_spent_seconds=_seconds(spent),
        story_points=story_points,
        weight=_number(fields.get(FIELD_IDS["ponderation"])),
        assignee=_display_name(fields.get("assignee")),
        team=_team_name(fields.get(FIELD_IDS["team"])),
        labels=frozenset(label for label in fields.get("labels") or [] if label),
        summary=fields.get("summary"),
        status=clean_status_name(status_name),
        created=parse_dt(fields.get("created")),
        resolved=parse_dt(fields.get("resolutiondate")),
        begin_date=parse_dt(fields.get(FIELD_IDS["begin_date"])),
        end_date=parse_dt(fields.get(FIELD_IDS["end_date"])),
    )


def map_status_history(raw: dict[str, Any], *, quality: DataQualityLog | None = None) -> IssueStatusHistory | None:
    """Extract status transitions from an issue fetched with ``expand=changelog``.

    Histories are stable-sorted by their timestamp; entries without a parsable
    date are dropped. An issue without a creation date cannot be placed on a
    timeline: it yields ``None`` and a ``missing_created`` warning.
    """
    fields = raw.get("fields") or {}
    key = raw.get("key") or str(raw.get("id"))
    created = parse_dt(fields.get("created"))
    if created is None:
        if quality is not None:
            quality.record("missing_created", key, "no creation date; excluded from time-in-status")
        return None
    transitions: list[StatusTransition] = []
    for history in (raw.get("changelog") or {}).get("histories") or []:
        when = parse_dt(history.get("created"))
        if when is None:
            continue
        author = _display_name(history.get("author"))
        for item in history.get("items") or []:
            if item.get("field") != "status":
                continue
            transitions.append(
                StatusTransition(
                    issue_key=key,
                    from_status=clean_status_name(item.get("fromString")),
                    to_status=clean_status_name(item.get("toString")),
                    transition_date=when,
                    author=author,
                )
            )
    transitions.sort(key=lambda t: t.transition_date)
    return IssueStatusHistory(
        issue_key=key,
        issue_type=(fields.get("issuetype") or {}).get("name"),
        created=created,
        transitions=transitions,
        status=clean_status_name((fields.get("status") or {}).get("name")),
        resolved=parse_dt(fields.get("resolutiondate")),
    )


def map_worklog(raw: dict[str, Any], issue_key: str, issue_type: str | None = None) -> WorklogRecord:
    author = raw.get("author") or {}
    return WorklogRecord(
        id=str(raw.get("id")),
        issue_key=issue_key,
        author_id=author.get("accountId") or author.get("name") or UNASSIGNED_LABEL,
        author_name=author.get("displayName"),
        time_spent_seconds=_seconds(raw.get("timeSpentSeconds")),
        started=parse_dt(raw.get("started")),
        issue_type=issue_type,
    )


def records_to_dataframe(records: Iterable[IssueRecord]) -> pd.DataFrame:
    rows = []
    for r in records:
        rows.append(
            {
                "key": r.id,
                "parent": r.parent_id,
                "summary": r.summary,
                "issuetype": r.issue_type or UNKNOWN_TYPE_LABEL,
                "status": r.status,
                "status_category": r.status_category.value,
                "assignee": r.assignee or UNASSIGNED_LABEL,
                "team": r.team or NO_TEAM_LABEL,
                "labels": ", ".join(sorted(r.labels, key=str.lower)),
                "weight": r.weight,
                "story_points": r.story_points,
                "estimate_hours": r.original_estimate_seconds / 3600.0,
                "spent_hours": r.time_spent_seconds / 3600.0,
                "created": r.created,
                "resolved": r.resolved,
                "begin_date": r.begin_date,
                "end_date": r.end_date,
            }
        )
    return pd.DataFrame(rows)
