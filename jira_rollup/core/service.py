"""IssueService: orchestrates fetching, mapping, hierarchy rollups and KPI aggregation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

import pandas as pd
import pytz

from jira_rollup.analytics.aggregations.weighted import (
    compute_weighted_groups,
    groups_to_frame,
    weight_by_status_category,
)
from jira_rollup.analytics.aggregations.worklog import total_time_by_issue
from jira_rollup.analytics.hierarchy.builder import build_hierarchy
from jira_rollup.analytics.hierarchy.rollup import compute_rollups
from jira_rollup.analytics.metrics.resolution import (
    ResolutionRate,
    average_first_response_hours,
    average_resolution_hours,
    compute_fast_resolution_rates,
)
from jira_rollup.analytics.metrics.sprint import count_by_status
from jira_rollup.analytics.metrics.status_flow import TimeInStatusMetrics, compute_time_in_status

from .config import (
    BACKLOG_JQL_TEMPLATE,
    HIERARCHY_FETCH_FIELDS,
    SETTINGS,
    STATUS_HISTORY_FIELDS,
    SUPPORT_FETCH_FIELDS,
    TIMEZONE,
    FetchSettings,
)
from .errors import DataQualityLog
from .fetcher import ProgressCallback, fetch_all_pages, fetch_in_batches
from .jira_client import JiraAPI
from .mappers import map_issue_record, map_status_history, map_worklog
from .models import IssueRecord, IssueStatusHistory, IssueTree, WeightedGroupStat, WorklogRecord
from .rollup_config import RollupSettings, load_rollup_settings

logger = logging.getLogger(__name__)

SUPPORT_GROUPINGS: Sequence[str] = ("assignee", "team", "label", "band", "issue_type")


@dataclass(frozen=True, slots=True)
class BacklogStats:
    ticket_count: int = 0
    total_ponderation: float = 0.0


@dataclass(slots=True)
class SupportKPIs:
    groups: dict[str, list[WeightedGroupStat]] = field(default_factory=dict)
    weight_by_status: dict[str, float] = field(default_factory=dict)
    fast_resolution: list[ResolutionRate] = field(default_factory=list)
    average_resolution_hours: float = 0.0
    average_first_response_hours: float = 0.0
    status_counts: dict[str, int] = field(default_factory=dict)
    backlog: BacklogStats | None = None
    ticket_count: int = 0
    generated_at: datetime | None = None
    quality: DataQualityLog = field(default_factory=DataQualityLog)


class IssueService:
    def __init__(
        self,
        api: JiraAPI,
        settings: FetchSettings | None = None,
        rollup_settings: RollupSettings | None = None,
    ):
        self.api = api
        self.settings = settings if settings is not None else SETTINGS
        self.rollup_settings = rollup_settings if rollup_settings is not None else load_rollup_settings()
        self._tz = pytz.timezone(TIMEZONE)

    # ------------------ Fetch Methods ------------------
    def _fetch_raw(
        self,
        jql: str,
        fields: Sequence[str],
        *,
        expand: Sequence[str] | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        fetch_page = self.api.page_fetcher(jql, list(fields), expand=list(expand) if expand else None)
        return fetch_all_pages(
            fetch_page,
            self.settings.page_size,
            self.settings.max_concurrent_batches,
            batch_delay=self.settings.batch_delay,
            timeout=self.settings.timeout,
            progress=progress,
        )

    def fetch_records(
        self,
        jql: str,
        fields: Sequence[str] = HIERARCHY_FETCH_FIELDS,
        *,
        progress: ProgressCallback | None = None,
    ) -> list[IssueRecord]:
        raw = self._fetch_raw(jql, fields, progress=progress)
        records = [map_issue_record(r) for r in raw]
        logger.info("Mapped %s issues for %r", len(records), jql)
        return records

    def fetch_issue_forest(
        self,
        jql: str,
        *,
        backfill_worklogs: bool = False,
        quality: DataQualityLog | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[IssueTree]:
        """Fetch every issue matching ``jql`` and return the rolled-up forest.

        Parameters
        ----------
        jql : str
            Query selecting the whole hierarchy (epics plus descendants).
        backfill_worklogs : bool
            Fill ``time_spent_seconds`` from worklogs for issues whose time
            tracking field is empty.
        quality : DataQualityLog, optional
            Receives hierarchy warnings (missing parents, cycles, duplicates).
        """
        records = self.fetch_records(jql, progress=progress)
        if backfill_worklogs:
            records = self.backfill_time_spent(records, progress=progress)
        if progress:
            progress("Building issue hierarchy", None, None)
        forest = build_hierarchy(records, quality=quality)
        return compute_rollups(forest)

    def fetch_status_histories(
        self,
        jql: str,
        *,
        quality: DataQualityLog | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[IssueStatusHistory]:
        """Changelog-expanded fetch; issues without a creation date are skipped."""
        raw = self._fetch_raw(jql, STATUS_HISTORY_FIELDS, expand=["changelog"], progress=progress)
        histories = (map_status_history(r, quality=quality) for r in raw)
        return [h for h in histories if h is not None]

    def fetch_worklogs(
        self,
        issue_keys: Sequence[str],
        *,
        issue_types: dict[str, str | None] | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[WorklogRecord]:
        """Fetch worklogs per issue in bounded batches; result follows key order."""
        by_key = fetch_in_batches(
            list(issue_keys),
            self.api.fetch_issue_worklogs,
            self.settings.worklog_batch_size,
            batch_delay=self.settings.batch_delay,
            timeout=self.settings.timeout,
            progress=progress,
        )
        types = issue_types or {}
        out: list[WorklogRecord] = []
        for key, entries in by_key.items():
            out.extend(map_worklog(entry, key, types.get(key)) for entry in entries)
        logger.info("Fetched %s worklogs for %s issues", len(out), len(by_key))
        return out

    def backfill_time_spent(
        self,
        records: Sequence[IssueRecord],
        *,
        progress: ProgressCallback | None = None,
    ) -> list[IssueRecord]:
        missing = [r.id for r in records if not r.time_spent_seconds]
        if not missing:
            return list(records)
        totals = total_time_by_issue(self.fetch_worklogs(missing, progress=progress))
        return [
            replace(r, time_spent_seconds=totals[r.id]) if not r.time_spent_seconds and totals.get(r.id) else r
            for r in records
        ]

    # ------------------ Analytics ------------------
    def time_in_status(
        self,
        jql: str,
        now: datetime | None = None,
        *,
        progress: ProgressCallback | None = None,
    ) -> TimeInStatusMetrics:
        quality = DataQualityLog()
        histories = self.fetch_status_histories(jql, quality=quality, progress=progress)
        if progress:
            progress("Calculating time in status", None, None)
        return compute_time_in_status(
            histories,
            now if now is not None else datetime.now(self._tz),
            self.rollup_settings.working_hours_per_day,
            quality=quality,
        )

    def support_kpis(
        self,
        jql: str,
        now: datetime | None = None,
        *,
        backlog_jql: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> SupportKPIs:
        """Weighted KPIs of the tickets matching ``jql``.

        When ``backlog_jql`` is given (see :func:`backlog_query`) a second
        query sizes the backlog: ticket count and summed ponderation.
        """
        records = self.fetch_records(jql, SUPPORT_FETCH_FIELDS, progress=progress)
        backlog = None
        if backlog_jql:
            if progress:
                progress("Fetching support backlog", None, None)
            backlog = self.fetch_records(backlog_jql, SUPPORT_FETCH_FIELDS, progress=progress)
        if progress:
            progress("Aggregating weighted KPIs", None, None)
        return self.compute_support_kpis(records, now=now, backlog=backlog)

    def compute_support_kpis(
        self,
        records: Sequence[IssueRecord],
        now: datetime | None = None,
        backlog: Sequence[IssueRecord] | None = None,
    ) -> SupportKPIs:
        cfg = self.rollup_settings
        quality = DataQualityLog()
        groups = {
            group_by: compute_weighted_groups(records, group_by, cfg.bands, quality=quality)
            for group_by in SUPPORT_GROUPINGS
        }
        return SupportKPIs(
            groups=groups,
            weight_by_status=weight_by_status_category(records),
            fast_resolution=compute_fast_resolution_rates(
                records,
                cfg.bands,
                cfg.resolution_targets_hours,
                cfg.working_hours_per_day,
                quality=quality,
            ),
            average_resolution_hours=average_resolution_hours(records, cfg.working_hours_per_day),
            average_first_response_hours=average_first_response_hours(records, cfg.working_hours_per_day),
            status_counts=count_by_status(records),
            backlog=backlog_stats(backlog) if backlog is not None else None,
            ticket_count=len(records),
            generated_at=now if now is not None else datetime.now(self._tz),
            quality=quality,
        )


def backlog_query(project_key: str) -> str:
    return BACKLOG_JQL_TEMPLATE.format(project=project_key)


def backlog_stats(records: Sequence[IssueRecord]) -> BacklogStats:
    # Missing ponderation counts as 0.
    return BacklogStats(
        ticket_count=len(records),
        total_ponderation=float(sum(r.weight or 0.0 for r in records)),
    )


def kpis_to_frames(kpis: SupportKPIs) -> dict[str, pd.DataFrame]:
    return {group_by: groups_to_frame(stats) for group_by, stats in kpis.groups.items()}
