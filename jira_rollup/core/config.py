"""Central configuration, constants, and tuning knobs for the rollup engine."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass

# =============================================================================
# Jira Connection Settings
# =============================================================================
TIMEZONE = "UTC"
SEARCH_ENDPOINT = "/rest/api/3/search"
TIME_TRACKING_ENDPOINT = "/rest/api/3/configuration/timetracking/options"
REQUEST_TIMEOUT_SECONDS = 30.0

# =============================================================================
# Batched Retrieval
# =============================================================================
# Jira Cloud caps maxResults at 100 for most search queries.
DEFAULT_PAGE_SIZE: int = 100
# Concurrent page requests per batch; keep low to stay under the rate limit.
MAX_CONCURRENT_BATCHES: int = 3
# Pause between batches (seconds).
INTER_BATCH_DELAY_SECONDS: float = 0.05
# Per-issue worklog requests issued together.
WORKLOG_BATCH_SIZE: int = 10

# =============================================================================
# Time Tracking
# =============================================================================
# Fallbacks when the Jira time tracking configuration endpoint is unavailable.
WORKING_HOURS_PER_DAY: float = float(os.environ.get("JIRA_HOURS_PER_DAY", "8"))
WORKING_DAYS_PER_WEEK: float = float(os.environ.get("JIRA_DAYS_PER_WEEK", "5"))

# =============================================================================
# Grouping Buckets
# =============================================================================
UNASSIGNED_LABEL = "Unassigned"
NO_TEAM_LABEL = "No team"
UNLABELED_LABEL = "Unlabeled"
UNKNOWN_TYPE_LABEL = "Unknown"
UNKNOWN_STATUS = "Unknown"

# =============================================================================
# Severity Weight ("ponderation") Bands
# =============================================================================
WEIGHT_DOMAIN: tuple[float, float] = (0.0, 100.0)

# (name, lower inclusive, upper exclusive); the last band includes its upper bound.
DEFAULT_SEVERITY_BANDS: Sequence[tuple[str, float, float]] = (
    ("low", 0.0, 12.0),
    ("medium", 12.0, 16.0),
    ("high", 16.0, 21.0),
    ("very_high", 21.0, 100.0),
)

# Working-hour targets for "resolved fast" rates, keyed by band name.
DEFAULT_RESOLUTION_TARGETS_HOURS: dict[str, float] = {
    "high": 72.0,
    "very_high": 24.0,
}

# =============================================================================
# Workflow Status Configuration
# =============================================================================
# Jira statusCategory keys
STATUS_CATEGORY_KEYS: dict[str, str] = {
    "new": "todo",
    "indeterminate": "in_progress",
    "done": "done",
}

# Status names mapped to categories when no statusCategory is present.
# Keys should be lowercase for case-insensitive matching.
STATUS_ALIASES: dict[str, str] = {
    "to do": "todo",
    "todo": "todo",
    "open": "todo",
    "new": "todo",
    "backlog": "todo",
    "à faire": "todo",
    "in progress": "in_progress",
    "in-progress": "in_progress",
    "en cours": "in_progress",
    "in review": "in_progress",
    "qa": "in_progress",
    "testing": "in_progress",
    "recette": "in_progress",
    "blocked": "in_progress",
    "done": "done",
    "closed": "done",
    "resolved": "done",
    "terminé": "done",
    "résolu": "done",
    "cancelled": "done",
    "canceled": "done",
}

# Status name keywords marking a not-yet-done issue as being in QA.
QA_STATUS_KEYWORDS: Sequence[str] = ("qa", "test", "testing", "validation", "recette")

# Sprint board buckets, in display order.
STATUS_BUCKETS: Sequence[str] = ("todo", "in_progress", "qa", "resolved")

# =============================================================================
# Jira Custom Field IDs
# =============================================================================
FIELD_IDS = {
    "story_points": os.environ.get("JIRA_STORY_POINTS_FIELD", "customfield_10535"),
    "story_point_estimate": os.environ.get("JIRA_STORY_POINT_ESTIMATE_FIELD", "customfield_10016"),
    "ponderation": os.environ.get("JIRA_PONDERATION_FIELD", "customfield_10727"),
    "team": os.environ.get("JIRA_TEAM_FIELD", "customfield_10001"),
    "begin_date": os.environ.get("JIRA_BEGIN_DATE_FIELD", "customfield_10537"),
    "end_date": os.environ.get("JIRA_END_DATE_FIELD", "customfield_10538"),
}

# Canonical field list for hierarchy fetches.
HIERARCHY_FETCH_FIELDS: Sequence[str] = (
    "summary",
    "issuetype",
    "status",
    "parent",
    "assignee",
    "labels",
    "created",
    "resolutiondate",
    "timeoriginalestimate",
    "timespent",
    FIELD_IDS["story_points"],
    FIELD_IDS["story_point_estimate"],
)

# Field list for support/weighted KPI fetches.
SUPPORT_FETCH_FIELDS: Sequence[str] = (
    "summary",
    "issuetype",
    "status",
    "created",
    "resolutiondate",
    "assignee",
    "labels",
    FIELD_IDS["ponderation"],
    FIELD_IDS["team"],
    FIELD_IDS["begin_date"],
    FIELD_IDS["end_date"],
)

# Field list for status history fetches (changelog is expanded separately).
STATUS_HISTORY_FIELDS: Sequence[str] = (
    "issuetype",
    "status",
    "created",
    "resolutiondate",
)

# Support backlog: unsprinted, not-done tickets of a project.
BACKLOG_JQL_TEMPLATE = 'project = "{project}" AND Sprint is EMPTY AND statusCategory != Done ORDER BY created DESC'


@dataclass(slots=True)
class FetchSettings:
    page_size: int = DEFAULT_PAGE_SIZE
    max_concurrent_batches: int = MAX_CONCURRENT_BATCHES
    batch_delay: float = INTER_BATCH_DELAY_SECONDS
    worklog_batch_size: int = WORKLOG_BATCH_SIZE
    timeout: float | None = None


SETTINGS = FetchSettings()
