"""Weighted ("ponderation") groupings of support tickets.

Null weights count as 0 in every sum and fall in the lowest band; they are
excluded from rate denominators (see ``analytics.metrics.resolution``).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import pandas as pd

from jira_rollup.analytics.metrics.binning import DEFAULT_BANDS, BandDefinition
from jira_rollup.core.config import NO_TEAM_LABEL, UNASSIGNED_LABEL, UNKNOWN_TYPE_LABEL, UNLABELED_LABEL
from jira_rollup.core.errors import ConfigurationError, DataQualityLog
from jira_rollup.core.models import IssueRecord, StatusCategory, WeightedGroupStat

GROUP_BY_CHOICES = ("assignee", "team", "label", "band", "issue_type", "status_category")


def _group_keys(record: IssueRecord, group_by: str, bands: BandDefinition, quality: DataQualityLog) -> list[str]:
    if group_by == "assignee":
        return [record.assignee or UNASSIGNED_LABEL]
    if group_by == "team":
        return [record.team or NO_TEAM_LABEL]
    if group_by == "label":
        labels = sorted(label for label in record.labels if label)
        return labels or [UNLABELED_LABEL]
    if group_by == "band":
        return [bands.band_for(float(record.weight or 0), key=record.id, quality=quality)]
    if group_by == "issue_type":
        return [record.issue_type or UNKNOWN_TYPE_LABEL]
    return [StatusCategory(record.status_category).value]


def weighted_frame(
    records: Iterable[IssueRecord],
    group_by: str,
    bands: BandDefinition = DEFAULT_BANDS,
    *,
    quality: DataQualityLog | None = None,
) -> pd.DataFrame:
    """One row per (ticket, group) with the ticket's weight value.

    Multi-label tickets yield one row per label.
    """
    if group_by not in GROUP_BY_CHOICES:
        raise ConfigurationError(f"group_by must be one of {GROUP_BY_CHOICES}, got {group_by!r}")
    if quality is None:
        quality = DataQualityLog()
    rows = []
    for record in records:
        if record.weight is None:
            quality.record("missing_weight", record.id, "no weight; counted as 0 and excluded from rates")
        for group in _group_keys(record, group_by, bands, quality):
            rows.append(
                {
                    "key": record.id,
                    "group": group,
                    "weight_value": float(record.weight or 0),
                    "has_weight": record.weight is not None,
                }
            )
    return pd.DataFrame(rows, columns=["key", "group", "weight_value", "has_weight"])


def compute_weighted_groups(
    records: Sequence[IssueRecord],
    group_by: str,
    bands: BandDefinition = DEFAULT_BANDS,
    *,
    quality: DataQualityLog | None = None,
) -> list[WeightedGroupStat]:
    """Group tickets and sum their weights.

    Parameters
    ----------
    records : sequence of IssueRecord
        Flat ticket set.
    group_by : str
        One of ``assignee``, ``team``, ``label``, ``band``, ``issue_type``,
        ``status_category``. Missing attributes land in an explicit bucket
        (Unassigned, No team, Unlabeled, Unknown).
    bands : BandDefinition
        Severity bands; validated at construction, so a malformed definition
        never reaches this point.

    Returns
    -------
    list[WeightedGroupStat]
        Sorted by ponderation desc, ticket count desc, then key ascending.
        When grouping by band, every band is listed, including empty ones.
    """
    if not isinstance(bands, BandDefinition):
        bands = BandDefinition(bands)
    frame = weighted_frame(records, group_by, bands, quality=quality)
    if frame.empty:
        agg = pd.DataFrame(columns=["group", "ponderation", "ticket_count", "weighted_ticket_count"])
    else:
        agg = (
            frame.groupby("group", sort=False)
            .agg(
                ponderation=("weight_value", "sum"),
                ticket_count=("key", "nunique"),
                weighted_ticket_count=("has_weight", "sum"),
            )
            .reset_index()
        )
    if group_by == "band":
        missing = [name for name in bands.names if name not in set(agg["group"])]
        if missing:
            filler = pd.DataFrame(
                {"group": missing, "ponderation": 0.0, "ticket_count": 0, "weighted_ticket_count": 0}
            )
            agg = filler if agg.empty else pd.concat([agg, filler], ignore_index=True)
    if agg.empty:
        return []
    agg = agg.sort_values(
        by=["ponderation", "ticket_count", "group"],
        ascending=[False, False, True],
        kind="mergesort",
    )
    return [
        WeightedGroupStat(
            group_key=str(row.group),
            ponderation=float(row.ponderation),
            ticket_count=int(row.ticket_count),
            weighted_ticket_count=int(row.weighted_ticket_count),
        )
        for row in agg.itertuples(index=False)
    ]


def groups_to_frame(stats: Iterable[WeightedGroupStat]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "group": s.group_key,
                "ponderation": s.ponderation,
                "ticket_count": s.ticket_count,
                "weighted_ticket_count": s.weighted_ticket_count,
            }
            for s in stats
        ],
        columns=["group", "ponderation", "ticket_count", "weighted_ticket_count"],
    )


def weight_by_status_category(records: Iterable[IssueRecord]) -> dict[str, float]:
    totals = {"total": 0.0, **{c.value: 0.0 for c in StatusCategory}}
    for record in records:
        value = float(record.weight or 0)
        totals["total"] += value
        totals[StatusCategory(record.status_category).value] += value
    return totals
