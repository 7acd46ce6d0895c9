from datetime import UTC, datetime

import pytest

from jira_rollup.core.config import FetchSettings
from jira_rollup.core.errors import RetrievalFailure
from jira_rollup.core.jira_client import JiraAPI
from jira_rollup.core.models import Page
from jira_rollup.core.rollup_config import RollupSettings
from jira_rollup.core.service import BacklogStats, IssueService, backlog_query, kpis_to_frames

NOW = datetime(2024, 3, 20, tzinfo=UTC)


def _issue(key, issue_type, parent=None, est=None, spent=None, **extra):
    fields = {
        "summary": f"{key} summary",
        "issuetype": {"name": issue_type},
        "status": {"name": "In Progress", "statusCategory": {"key": "indeterminate"}},
        "parent": {"key": parent} if parent else None,
        "created": "2024-03-04T09:00:00.000+0000",
        "timeoriginalestimate": est,
        "timespent": spent,
        "labels": [],
    }
    fields.update(extra)
    return {"key": key, "fields": fields}


HIERARCHY = [
    _issue("E", "Epic"),
    _issue("S1", "Story", "E", est=14400, spent=7200, customfield_10535=5),
    _issue("S2", "Story", "E", est=7200, spent=3600, customfield_10535=3),
    _issue("T1", "Sub-task", "S1", est=10800, spent=None),
]


class DummyAPI(JiraAPI):
    def __init__(self, issues=None, worklogs=None, fail_on=None, backlog=None):
        self.server = "https://example.atlassian.net"
        self.issues = list(issues or [])
        self.backlog = list(backlog or [])
        self.queries = []
        self.worklogs = worklogs or {}
        self.fail_on = fail_on
        self.page_requests = []
        self.worklog_requests = []

    def search_page(self, jql, start_at, max_results, *, fields=None, expand=None):
        self.page_requests.append((start_at, max_results, tuple(expand or ())))
        self.queries.append(jql)
        if self.fail_on is not None and start_at == self.fail_on:
            raise RetrievalFailure("GET /rest/api/3/search failed 500: boom", status_code=500)
        issues = self.backlog if "Sprint is EMPTY" in jql else self.issues
        return Page(items=issues[start_at : start_at + max_results], total=len(issues))

    def fetch_issue_worklogs(self, issue_key):
        self.worklog_requests.append(issue_key)
        return self.worklogs.get(issue_key, [])


def _service(api, page_size=2):
    return IssueService(
        api,
        settings=FetchSettings(page_size=page_size, max_concurrent_batches=2, batch_delay=0),
        rollup_settings=RollupSettings(),
    )


def test_fetch_issue_forest_end_to_end():
    api = DummyAPI(HIERARCHY)
    forest = _service(api).fetch_issue_forest("project = SHOP")
    assert [r.key for r in forest] == ["E"]
    epic = forest[0]
    assert epic.rollup_estimate_seconds == 32400
    assert epic.rollup_spent_seconds == 10800
    assert epic.rollup_story_points == 8
    assert [start for start, _, _ in api.page_requests] == [0, 2]


def test_backfill_time_spent_from_worklogs():
    worklogs = {
        "T1": [
            {"id": "1", "author": {"accountId": "a"}, "timeSpentSeconds": 3600, "started": "2024-03-05T09:00:00.000+0000"},
            {"id": "2", "author": {"accountId": "b"}, "timeSpentSeconds": 3600, "started": "2024-03-06T09:00:00.000+0000"},
        ]
    }
    api = DummyAPI(HIERARCHY, worklogs=worklogs)
    forest = _service(api).fetch_issue_forest("project = SHOP", backfill_worklogs=True)
    epic = forest[0]
    assert epic.rollup_spent_seconds == 18000
    assert epic.progress_percent == 56
    assert epic.is_overrun is False
    assert sorted(api.worklog_requests) == ["E", "T1"]


def test_page_failure_propagates_without_partial_result():
    api = DummyAPI(HIERARCHY, fail_on=2)
    with pytest.raises(RetrievalFailure) as info:
        _service(api).fetch_issue_forest("project = SHOP")
    assert info.value.status_code == 500
    assert info.value.offset == 2


def test_fetch_status_histories_requests_changelog():
    issue = _issue("B-1", "Bug", resolutiondate="2024-03-05T09:00:00.000+0000")
    issue["changelog"] = {
        "histories": [
            {
                "created": "2024-03-04T17:00:00.000+0000",
                "items": [{"field": "status", "fromString": "To Do", "toString": "Done"}],
            }
        ]
    }
    api = DummyAPI([issue])
    svc = _service(api)
    histories = svc.fetch_status_histories("project = SUP")
    assert api.page_requests[0][2] == ("changelog",)
    assert [t.to_status for t in histories[0].transitions] == ["Done"]

    metrics = svc.time_in_status("project = SUP", now=NOW)
    by_status = {s.status: s.average_hours for s in metrics.average_time_by_status}
    assert by_status["To Do"] == pytest.approx(8.0)
    assert by_status["Done"] == pytest.approx(16.0)


def test_fetch_worklogs_keeps_key_order():
    worklogs = {
        "A": [{"id": "1", "author": {"accountId": "x"}, "timeSpentSeconds": 60, "started": "2024-03-05T09:00:00.000+0000"}],
        "B": [{"id": "2", "author": {"accountId": "y"}, "timeSpentSeconds": 120, "started": "2024-03-05T10:00:00.000+0000"}],
    }
    api = DummyAPI(worklogs=worklogs)
    out = _service(api).fetch_worklogs(["B", "A"], issue_types={"A": "Bug"})
    assert [w.issue_key for w in out] == ["B", "A"]
    assert out[1].issue_type == "Bug"


def test_support_kpis():
    tickets = [
        _issue(
            "SUP-1",
            "Bug",
            customfield_10727=18,
            customfield_10001={"name": "Core"},
            customfield_10537="2024-03-04T09:00:00.000+0000",
            customfield_10538="2024-03-05T09:00:00.000+0000",
            status={"name": "Done", "statusCategory": {"key": "done"}},
            assignee={"displayName": "Alice"},
            labels=["api"],
        ),
        _issue("SUP-2", "Bug", customfield_10727=25, assignee={"displayName": "Bob"}),
        _issue("SUP-3", "Task"),
    ]
    api = DummyAPI(tickets)
    kpis = _service(api, page_size=10).support_kpis("project = SUP", now=NOW)
    assert kpis.ticket_count == 3
    assert kpis.generated_at == NOW
    assert [s.group_key for s in kpis.groups["assignee"]] == ["Bob", "Alice", "Unassigned"]
    assert kpis.groups["team"][0].group_key == "No team"
    assert kpis.weight_by_status == {"total": 43.0, "todo": 0.0, "in_progress": 25.0, "done": 18.0}
    rates = {r.band: r for r in kpis.fast_resolution}
    assert (rates["high"].resolved_fast, rates["high"].resolved_total) == (1, 1)
    assert kpis.average_resolution_hours == pytest.approx(16.0)
    assert [w.issue_key for w in kpis.quality.of_kind("missing_weight")]
    frames = kpis_to_frames(kpis)
    assert list(frames["band"]["group"])[:2] == ["very_high", "high"]


def test_support_kpis_status_counts_and_backlog():
    tickets = [
        _issue("SUP-1", "Bug", customfield_10727=18, status={"name": "Done", "statusCategory": {"key": "done"}}),
        _issue("SUP-2", "Bug", customfield_10727=25, status={"name": "En recette", "statusCategory": {"key": "indeterminate"}}),
        _issue("SUP-3", "Task", status={"name": "To Do", "statusCategory": {"key": "new"}}),
        _issue("SUP-4", "Task"),
    ]
    backlog = [
        _issue("SUP-10", "Bug", customfield_10727=12, status={"name": "To Do", "statusCategory": {"key": "new"}}),
        _issue("SUP-11", "Bug", status={"name": "To Do", "statusCategory": {"key": "new"}}),
        _issue("SUP-12", "Task", customfield_10727=30),
    ]
    api = DummyAPI(tickets, backlog=backlog)
    kpis = _service(api, page_size=10).support_kpis(
        'project = "SUP" AND sprint in openSprints()', now=NOW, backlog_jql=backlog_query("SUP")
    )
    assert kpis.status_counts == {"total": 4, "todo": 1, "in_progress": 1, "qa": 1, "resolved": 1}
    assert kpis.backlog == BacklogStats(ticket_count=3, total_ponderation=42.0)
    assert api.queries[-1] == 'project = "SUP" AND Sprint is EMPTY AND statusCategory != Done ORDER BY created DESC'
    assert kpis.ticket_count == 4


def test_support_kpis_without_backlog_query_fetches_once():
    api = DummyAPI([_issue("SUP-1", "Bug")], backlog=[_issue("SUP-10", "Bug")])
    kpis = _service(api, page_size=10).support_kpis("project = SUP", now=NOW)
    assert kpis.backlog is None
    assert len(api.queries) == 1


def test_time_in_status_skips_issue_without_created_date():
    dated = _issue("B-1", "Bug", resolutiondate="2024-03-05T09:00:00.000+0000")
    dated["changelog"] = {"histories": []}
    undated = _issue("B-2", "Bug", created=None)
    undated["changelog"] = {"histories": []}
    svc = _service(DummyAPI([dated, undated]))
    metrics = svc.time_in_status("project = SUP", now=NOW)
    assert metrics.summary.total_issues_analyzed == 1
    assert [w.issue_key for w in metrics.quality.of_kind("missing_created")] == ["B-2"]
