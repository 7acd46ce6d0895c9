"""Sprint board metrics: status buckets, story points per bucket, per-type counts."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from jira_rollup.core.config import STATUS_BUCKETS, UNKNOWN_TYPE_LABEL
from jira_rollup.core.models import IssueRecord
from jira_rollup.core.status import is_done, status_bucket


@dataclass(frozen=True, slots=True)
class TypeBreakdown:
    issue_type: str
    count: int
    story_points: float
    done_count: int


@dataclass(slots=True)
class SprintMetrics:
    issue_count: int = 0
    status_counts: dict[str, int] = field(default_factory=dict)
    story_points_by_status: dict[str, float] = field(default_factory=dict)
    total_story_points: float = 0.0
    completion_rate: int = 0
    by_type: list[TypeBreakdown] = field(default_factory=list)


def count_by_status(records: Iterable[IssueRecord]) -> dict[str, int]:
    """Issue counts per board bucket plus ``total``; every bucket is present."""
    counts = {"total": 0, **{bucket: 0 for bucket in STATUS_BUCKETS}}
    for record in records:
        counts["total"] += 1
        counts[status_bucket(record.status, record.status_category)] += 1
    return counts


def sprint_metrics(records: Iterable[IssueRecord]) -> SprintMetrics:
    """Summarize the issues of one sprint.

    Each issue lands in exactly one bucket (see ``status_bucket``). Missing
    story points count as 0. The completion rate is resolved issues over all
    issues, rounded half-up, and 0 for an empty sprint. ``by_type`` keeps the
    order in which issue types first appear.
    """
    items = list(records)
    points = {"total": 0.0, **{bucket: 0.0 for bucket in STATUS_BUCKETS}}
    types: dict[str, list[IssueRecord]] = {}
    for record in items:
        value = record.story_points or 0.0
        points["total"] += value
        points[status_bucket(record.status, record.status_category)] += value
        types.setdefault(record.issue_type or UNKNOWN_TYPE_LABEL, []).append(record)

    counts = count_by_status(items)
    rate = int(math.floor(counts["resolved"] / counts["total"] * 100 + 0.5)) if counts["total"] else 0
    return SprintMetrics(
        issue_count=counts["total"],
        status_counts=counts,
        story_points_by_status=points,
        total_story_points=points["total"],
        completion_rate=rate,
        by_type=[
            TypeBreakdown(
                issue_type=issue_type,
                count=len(group),
                story_points=sum(r.story_points or 0.0 for r in group),
                done_count=sum(1 for r in group if is_done(r.status_category)),
            )
            for issue_type, group in types.items()
        ],
    )
