"""Domain data models for issues, hierarchy nodes, status histories and worklogs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class StatusCategory(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class IssueRecord:
    id: str
    parent_id: str | None = None
    issue_type: str | None = None
    status_category: StatusCategory = StatusCategory.TODO
    original_estimate_seconds: float = 0
    time_spent_seconds: float = 0
    story_points: float | None = None
    weight: float | None = None
    assignee: str | None = None
    team: str | None = None
    labels: frozenset[str] = field(default_factory=frozenset)
    summary: str | None = None
    status: str | None = None
    created: datetime | None = None
    resolved: datetime | None = None
    begin_date: datetime | None = None
    end_date: datetime | None = None

    def __post_init__(self):
        if self.original_estimate_seconds < 0 or self.time_spent_seconds < 0:
            raise ValueError(f"{self.id}: time tracking values must be non-negative")
        if self.story_points is not None and self.story_points < 0:
            raise ValueError(f"{self.id}: story points must be non-negative")
        if not isinstance(self.labels, frozenset):
            object.__setattr__(self, "labels", frozenset(self.labels or ()))


@dataclass(slots=True, eq=False)
class IssueTree:
    """A hierarchy node. Children are the only ownership edges.

    Rollup fields stay ``None`` until :func:`compute_rollups` has run.
    """

    record: IssueRecord
    children: list[IssueTree] = field(default_factory=list)

    # Derived metrics (populated by compute_rollups)
    rollup_estimate_seconds: float | None = None
    rollup_spent_seconds: float | None = None
    rollup_story_points: float | None = None
    descendant_count: int | None = None
    is_overrun: bool | None = None
    progress_percent: int | None = None

    @property
    def key(self) -> str:
        return self.record.id

    @property
    def own_story_points(self) -> float | None:
        return self.record.story_points

    def __repr__(self) -> str:
        return f"IssueTree({self.record.id!r}, children={len(self.children)})"


@dataclass(frozen=True, slots=True)
class StatusTransition:
    issue_key: str
    from_status: str | None
    to_status: str
    transition_date: datetime
    author: str | None = None


@dataclass(slots=True)
class IssueStatusHistory:
    issue_key: str
    issue_type: str | None
    created: datetime
    transitions: list[StatusTransition] = field(default_factory=list)
    status: str | None = None
    resolved: datetime | None = None

    # Derived metrics (populated by the time-in-status analyzer)
    time_in_each_status: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class WeightedGroupStat:
    group_key: str
    ponderation: float
    ticket_count: int
    weighted_ticket_count: int = 0


@dataclass(frozen=True, slots=True)
class WorklogRecord:
    id: str
    issue_key: str
    author_id: str
    author_name: str | None
    time_spent_seconds: float
    started: datetime
    issue_type: str | None = None


@dataclass(frozen=True, slots=True)
class Page:
    items: list[Any]
    total: int
