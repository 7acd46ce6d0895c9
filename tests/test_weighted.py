import random

import pytest

from jira_rollup.analytics.aggregations.weighted import (
    compute_weighted_groups,
    groups_to_frame,
    weight_by_status_category,
    weighted_frame,
)
from jira_rollup.analytics.metrics.binning import DEFAULT_BANDS, BandDefinition, SeverityBand
from jira_rollup.core.errors import ConfigurationError, DataQualityLog
from jira_rollup.core.models import IssueRecord, StatusCategory


def _ticket(key, weight, *, assignee=None, team=None, labels=(), status=StatusCategory.TODO, issue_type="Bug"):
    return IssueRecord(
        id=key,
        weight=weight,
        assignee=assignee,
        team=team,
        labels=frozenset(labels),
        status_category=status,
        issue_type=issue_type,
    )


def _sample_tickets():
    return [
        _ticket("S-1", 10, assignee="Alice", team="Core", labels=["api"]),
        _ticket("S-2", 18, assignee="Bob", labels=["api", "ui"], status=StatusCategory.DONE),
        _ticket("S-3", 22, assignee="Alice", team="Core", status=StatusCategory.IN_PROGRESS),
        _ticket("S-4", None, team="Edge", labels=["ui"]),
        _ticket("S-5", 12, assignee="Bob", team="Edge", issue_type="Task"),
    ]


def _as_dict(stats):
    return {s.group_key: (s.ponderation, s.ticket_count) for s in stats}


def test_group_by_assignee_with_unassigned_bucket():
    stats = compute_weighted_groups(_sample_tickets(), "assignee")
    assert _as_dict(stats) == {"Alice": (32.0, 2), "Bob": (30.0, 2), "Unassigned": (0.0, 1)}
    assert [s.group_key for s in stats] == ["Alice", "Bob", "Unassigned"]


def test_group_by_team_uses_no_team_bucket():
    stats = compute_weighted_groups(_sample_tickets(), "team")
    assert _as_dict(stats)["No team"] == (18.0, 1)
    assert _as_dict(stats)["Core"] == (32.0, 2)


def test_multi_label_ticket_counts_under_each_label():
    stats = compute_weighted_groups(_sample_tickets(), "label")
    assert _as_dict(stats) == {"api": (28.0, 2), "ui": (18.0, 2), "Unlabeled": (34.0, 2)}


def test_group_by_band_lists_every_band():
    stats = compute_weighted_groups(_sample_tickets(), "band")
    assert _as_dict(stats) == {
        "low": (10.0, 2),
        "medium": (12.0, 1),
        "high": (18.0, 1),
        "very_high": (22.0, 1),
    }


def test_band_grouping_reports_empty_bands():
    stats = compute_weighted_groups([_ticket("S-1", 5)], "band")
    assert [s.group_key for s in stats] == ["low", "high", "medium", "very_high"]
    assert [s.ticket_count for s in stats] == [1, 0, 0, 0]


def test_ties_sorted_by_count_then_key():
    tickets = [
        _ticket("T-1", 5, assignee="Zed"),
        _ticket("T-2", 5, assignee="Amy"),
        _ticket("T-3", 3, assignee="Kim"),
        _ticket("T-4", 2, assignee="Kim"),
    ]
    stats = compute_weighted_groups(tickets, "assignee")
    assert [s.group_key for s in stats] == ["Kim", "Amy", "Zed"]


def test_result_independent_of_input_order():
    tickets = _sample_tickets()
    expected = compute_weighted_groups(tickets, "label")
    for seed in range(5):
        shuffled = tickets[:]
        random.Random(seed).shuffle(shuffled)
        assert compute_weighted_groups(shuffled, "label") == expected


def test_missing_weight_logged_and_counted_as_zero():
    quality = DataQualityLog()
    stats = compute_weighted_groups(_sample_tickets(), "issue_type", quality=quality)
    assert [w.issue_key for w in quality.of_kind("missing_weight")] == ["S-4"]
    bug = next(s for s in stats if s.group_key == "Bug")
    assert bug.ticket_count == 4
    assert bug.weighted_ticket_count == 3


def test_empty_input_returns_empty_list():
    assert compute_weighted_groups([], "assignee") == []
    assert groups_to_frame([]).empty


def test_invalid_group_by_rejected():
    with pytest.raises(ConfigurationError):
        weighted_frame(_sample_tickets(), "reporter")


def test_weight_by_status_category():
    totals = weight_by_status_category(_sample_tickets())
    assert totals == {"total": 62.0, "todo": 22.0, "in_progress": 22.0, "done": 18.0}


def test_default_bands_cover_domain_exactly_once():
    for tenth in range(0, 1001):
        weight = tenth / 10
        matches = [b.name for b in DEFAULT_BANDS if b.lower <= weight < b.upper]
        if weight == 100:
            matches = [DEFAULT_BANDS.bands[-1].name]
        assert len(matches) == 1
        assert DEFAULT_BANDS.band_for(weight) == matches[0]


@pytest.mark.parametrize(
    "weight,band",
    [(0, "low"), (11.99, "low"), (12, "medium"), (15.5, "medium"), (16, "high"), (21, "very_high"), (100, "very_high")],
)
def test_band_boundaries(weight, band):
    assert DEFAULT_BANDS.band_for(weight) == band


def test_out_of_domain_weight_clamped_and_logged():
    quality = DataQualityLog()
    assert DEFAULT_BANDS.band_for(150, key="X-1", quality=quality) == "very_high"
    assert DEFAULT_BANDS.band_for(-3, key="X-2", quality=quality) == "low"
    assert len(quality.of_kind("weight_out_of_domain")) == 2


@pytest.mark.parametrize(
    "bands",
    [
        [],
        [("low", 0, 10), ("high", 12, 100)],
        [("low", 0, 15), ("high", 12, 100)],
        [("low", 5, 50), ("high", 50, 100)],
        [("low", 0, 50), ("high", 50, 90)],
        [("low", 0, 50), ("low", 50, 100)],
        [("low", 0, 0), ("high", 0, 100)],
    ],
)
def test_malformed_bands_rejected(bands):
    with pytest.raises(ConfigurationError):
        BandDefinition(bands)


def test_custom_bands_accept_severity_band_objects():
    bands = BandDefinition([SeverityBand("minor", 0, 50), SeverityBand("major", 50, 100)])
    assert bands.names == ["minor", "major"]
    assert bands.band_for(50) == "major"
