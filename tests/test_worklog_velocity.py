from datetime import UTC, datetime

import pytest

from jira_rollup.analytics.aggregations.worklog import summarize_worklogs, total_time_by_issue
from jira_rollup.analytics.metrics.velocity import average_velocity, velocity, velocity_trend
from jira_rollup.core.models import WorklogRecord


def _wl(wid, key, author, hours, day, issue_type="Story"):
    return WorklogRecord(
        id=wid,
        issue_key=key,
        author_id=author.lower(),
        author_name=author,
        time_spent_seconds=hours * 3600,
        started=datetime(2024, 5, day, 9, 0, tzinfo=UTC),
        issue_type=issue_type,
    )


def _sample_worklogs():
    return [
        _wl("1", "P-1", "Alice", 2, 6),
        _wl("2", "P-1", "Bob", 3, 6),
        _wl("3", "P-2", "Alice", 4, 7, issue_type="Bug"),
        _wl("4", "P-3", "Alice", 1, 8),
    ]


def test_summarize_worklogs_totals():
    summary = summarize_worklogs(_sample_worklogs(), working_hours_per_day=8)
    assert summary.total_hours == pytest.approx(10.0)
    assert summary.total_days == pytest.approx(1.25)
    assert summary.worklog_count == 4
    assert summary.unique_authors == 2
    assert summary.unique_issues == 3
    assert summary.average_hours_per_worklog == pytest.approx(2.5)


def test_summary_breakdowns_sorted():
    summary = summarize_worklogs(_sample_worklogs())
    assert list(summary.by_author["author"]) == ["Alice", "Bob"]
    assert list(summary.by_author["total_hours"]) == [7.0, 3.0]
    assert list(summary.by_day["work_date"]) == ["2024-05-06", "2024-05-07", "2024-05-08"]
    assert list(summary.by_issue_type["issuetype"]) == ["Story", "Bug"]


def test_summarize_empty():
    summary = summarize_worklogs([])
    assert summary.total_hours == 0.0
    assert summary.by_author.empty


def test_total_time_by_issue():
    assert total_time_by_issue(_sample_worklogs()) == {"P-1": 18000.0, "P-2": 14400.0, "P-3": 3600.0}


def test_velocity_metrics():
    v = velocity(20, 15)
    assert v.completion_rate == 75
    assert v.variance == -5
    assert v.variance_percent == -25
    assert velocity(0, 5).completion_rate == 0


def test_average_velocity_rounds_to_one_decimal():
    sprints = [velocity(10, 10), velocity(10, 11), velocity(10, 12)]
    assert average_velocity(sprints) == 11.0
    assert average_velocity([velocity(3, 1), velocity(3, 1), velocity(3, 2)]) == 1.3
    assert average_velocity([]) == 0.0


@pytest.mark.parametrize(
    "completed,trend",
    [([10, 10, 12], "increasing"), ([10, 10, 8], "decreasing"), ([10, 12, 10.5], "stable"), ([10, 20], "stable")],
)
def test_velocity_trend(completed, trend):
    sprints = [velocity(10, c) for c in completed]
    assert velocity_trend(sprints) == trend
