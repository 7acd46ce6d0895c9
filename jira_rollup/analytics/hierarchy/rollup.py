"""Subtree rollups of estimate, spent time and story points.

Each node stores only its own values in its record; rollups are attached to
the node so a parent never double counts work already logged on subtasks.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator

import pandas as pd

from jira_rollup.core.models import IssueTree


def progress_percent(spent_seconds: float, estimate_seconds: float) -> int:
    """Spent/estimate as a whole percent, capped at 100; 0 without an estimate."""
    if estimate_seconds <= 0:
        return 0
    ratio = min(100.0, spent_seconds / estimate_seconds * 100.0)
    return int(math.floor(ratio + 0.5))


def is_overrun(spent_seconds: float, estimate_seconds: float) -> bool:
    # Unestimated work is never flagged.
    return estimate_seconds > 0 and spent_seconds > estimate_seconds


def compute_rollups(forest: list[IssueTree]) -> list[IssueTree]:
    """Annotate every node with rollups over its subtree (post-order).

    Uses an explicit stack so depth is unbounded, and a visited set so a node
    reachable twice (corrupt input) is only counted once.

    Parameters
    ----------
    forest : list[IssueTree]
        Roots as returned by :func:`build_hierarchy`.

    Returns
    -------
    list[IssueTree]
        The same forest, with rollup fields populated on every node.
    """
    visited: set[int] = set()
    for root in forest:
        if id(root) in visited:
            continue
        stack: list[tuple[IssueTree, bool]] = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                _finalize(node, visited)
                continue
            if id(node) in visited:
                continue
            stack.append((node, True))
            for child in reversed(node.children):
                if id(child) not in visited:
                    stack.append((child, False))
    return forest


def _finalize(node: IssueTree, visited: set[int]) -> None:
    if id(node) in visited:
        return
    record = node.record
    estimate = float(record.original_estimate_seconds or 0)
    spent = float(record.time_spent_seconds or 0)
    points = float(record.story_points or 0)
    descendants = 0
    for child in node.children:
        if child.rollup_estimate_seconds is None:
            continue
        estimate += child.rollup_estimate_seconds
        spent += child.rollup_spent_seconds
        points += child.rollup_story_points
        descendants += 1 + child.descendant_count
    node.rollup_estimate_seconds = estimate
    node.rollup_spent_seconds = spent
    node.rollup_story_points = points
    node.descendant_count = descendants
    node.is_overrun = is_overrun(spent, estimate)
    node.progress_percent = progress_percent(spent, estimate)
    visited.add(id(node))


def iter_tree(forest: Iterable[IssueTree]) -> Iterator[tuple[IssueTree, int]]:
    """Yield ``(node, depth)`` pairs in pre-order, roots at depth 0."""
    seen: set[int] = set()
    stack: list[tuple[IssueTree, int]] = [(root, 0) for root in reversed(list(forest))]
    while stack:
        node, depth = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node, depth
        for child in reversed(node.children):
            stack.append((child, depth + 1))


def forest_to_frame(forest: Iterable[IssueTree]) -> pd.DataFrame:
    rows = []
    for node, depth in iter_tree(forest):
        rec = node.record
        rows.append(
            {
                "key": rec.id,
                "parent_key": rec.parent_id,
                "depth": depth,
                "issuetype": rec.issue_type,
                "summary": rec.summary,
                "status": rec.status,
                "status_category": rec.status_category.value,
                "original_estimate_seconds": rec.original_estimate_seconds,
                "time_spent_seconds": rec.time_spent_seconds,
                "story_points": rec.story_points,
                "rollup_estimate_seconds": node.rollup_estimate_seconds,
                "rollup_spent_seconds": node.rollup_spent_seconds,
                "rollup_story_points": node.rollup_story_points,
                "descendant_count": node.descendant_count,
                "progress_percent": node.progress_percent,
                "is_overrun": node.is_overrun,
            }
        )
    return pd.DataFrame(rows)


def epic_progress(forest: list[IssueTree], issue_types: Iterable[str] | None = None) -> pd.DataFrame:
    """Summarize root nodes (epics, legends) for a progress table.

    Parameters
    ----------
    forest : list[IssueTree]
        A forest, with or without rollups computed (they are computed if missing).
    issue_types : iterable of str, optional
        Restrict to roots of these issue types (case-insensitive).

    Returns
    -------
    pd.DataFrame
        One row per root sorted by key with columns: key, summary, issuetype,
        status, child_count, estimate_hours, spent_hours, story_points,
        progress_percent, is_overrun.
    """
    if any(root.rollup_estimate_seconds is None for root in forest):
        compute_rollups(forest)
    wanted = {t.lower() for t in issue_types} if issue_types is not None else None
    rows = []
    for root in forest:
        rec = root.record
        if wanted is not None and (rec.issue_type or "").lower() not in wanted:
            continue
        rows.append(
            {
                "key": rec.id,
                "summary": rec.summary,
                "issuetype": rec.issue_type,
                "status": rec.status,
                "child_count": len(root.children),
                "estimate_hours": root.rollup_estimate_seconds / 3600.0,
                "spent_hours": root.rollup_spent_seconds / 3600.0,
                "story_points": root.rollup_story_points,
                "progress_percent": root.progress_percent,
                "is_overrun": root.is_overrun,
            }
        )
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).sort_values(by="key", kind="stable").reset_index(drop=True)
