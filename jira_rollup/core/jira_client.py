"""Jira API client wrapper (REST v3 offset pagination, worklogs, time tracking)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from jira import JIRA, JIRAError

from .config import (
    REQUEST_TIMEOUT_SECONDS,
    SEARCH_ENDPOINT,
    TIME_TRACKING_ENDPOINT,
    WORKING_DAYS_PER_WEEK,
    WORKING_HOURS_PER_DAY,
)
from .errors import RetrievalFailure
from .models import Page

logger = logging.getLogger(__name__)


class JiraAPI:
    def __init__(self, server: str, email: str, token: str):
        self.server = server.rstrip("/")
        self.client = JIRA(
            basic_auth=(email, token), options={"server": self.server, "rest_api_version": "3"}
        )

    def _session(self):
        session = getattr(self.client, "_session", None)
        if session is None:
            raise RuntimeError("JIRA session unavailable")
        return session

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.server}{path}"
        try:
            resp = self._session().get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
        except JIRAError as exc:
            raise RetrievalFailure(f"GET {path} failed: {exc}", status_code=exc.status_code) from exc
        except OSError as exc:  # requests.RequestException
            raise RetrievalFailure(f"GET {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise RetrievalFailure(
                f"GET {path} failed {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code
            )
        return resp.json()

    def search_page(
        self,
        jql: str,
        start_at: int,
        max_results: int,
        *,
        fields: Sequence[str] | None = None,
        expand: Sequence[str] | None = None,
    ) -> Page:
        params: dict[str, Any] = {"jql": jql, "startAt": start_at, "maxResults": max_results}
        if fields:
            params["fields"] = ",".join(fields)
        if expand:
            params["expand"] = ",".join(expand)
        data = self._get(SEARCH_ENDPOINT, params)
        issues = data.get("issues") or []
        total = data.get("total")
        if total is None:
            total = start_at + len(issues)
        logger.debug("search page startAt=%s returned %s/%s issues", start_at, len(issues), total)
        return Page(items=issues, total=int(total))

    def page_fetcher(
        self,
        jql: str,
        fields: Sequence[str] | None = None,
        expand: Sequence[str] | None = None,
    ) -> Callable[[int, int], Page]:
        """Bind a JQL query into a ``fetch_page(offset, page_size)`` capability."""

        def fetch_page(offset: int, page_size: int) -> Page:
            return self.search_page(jql, offset, page_size, fields=fields, expand=expand)

        return fetch_page

    def fetch_issue_worklogs(self, issue_key: str) -> list[dict[str, Any]]:
        """All worklog entries of one issue (follows the worklog pagination)."""
        path = f"/rest/api/3/issue/{issue_key}/worklog"
        out: list[dict[str, Any]] = []
        start_at = 0
        while True:
            data = self._get(path, {"startAt": start_at, "maxResults": 1000})
            entries = data.get("worklogs") or []
            out.extend(entries)
            total = int(data.get("total") or len(out))
            if not entries or len(out) >= total:
                break
            start_at = len(out)
        return out

    def get_time_tracking_config(self) -> dict[str, float]:
        """Working hours per day/days per week; falls back to config defaults."""
        try:
            data = self._get(TIME_TRACKING_ENDPOINT)
        except RetrievalFailure as exc:
            logger.info(
                "Using fallback time tracking config (%sh/day, %sd/week): %s",
                WORKING_HOURS_PER_DAY,
                WORKING_DAYS_PER_WEEK,
                exc,
            )
            return {"working_hours_per_day": WORKING_HOURS_PER_DAY, "working_days_per_week": WORKING_DAYS_PER_WEEK}
        return {
            "working_hours_per_day": float(data.get("workingHoursPerDay") or WORKING_HOURS_PER_DAY),
            "working_days_per_week": float(data.get("workingDaysPerWeek") or WORKING_DAYS_PER_WEEK),
        }
