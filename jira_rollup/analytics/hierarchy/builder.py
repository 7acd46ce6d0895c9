"""Reconstruct issue forests (epic → story → subtask → ...) from flat records."""

from __future__ import annotations

from collections.abc import Iterable

from jira_rollup.core.errors import DataQualityLog
from jira_rollup.core.models import IssueRecord, IssueTree


def _break_cycles(
    parent_of: dict[str, str | None],
    order: dict[str, int],
    quality: DataQualityLog,
) -> None:
    """Cut parent links until every ancestor chain ends at a root (in place).

    Nodes whose chain is known to terminate are remembered, so each node is
    walked once overall. Within a cycle the earliest-listed record loses its
    parent link and becomes a root.
    """
    terminates: set[str] = set()
    for start in order:
        path: list[str] = []
        on_path: set[str] = set()
        node: str | None = start
        while node is not None and node not in terminates:
            if node in on_path:
                cycle = path[path.index(node) :]
                cut = min(cycle, key=order.__getitem__)
                quality.record(
                    "parent_cycle",
                    cut,
                    f"parent chain {' -> '.join(cycle + [node])} loops; promoted to root",
                )
                parent_of[cut] = None
                # Restart from the same start with the link removed.
                path, on_path, node = [], set(), start
                continue
            path.append(node)
            on_path.add(node)
            node = parent_of[node]
        terminates.update(path)


def build_hierarchy(
    records: Iterable[IssueRecord],
    *,
    quality: DataQualityLog | None = None,
) -> list[IssueTree]:
    """Link flat issue records into a forest of :class:`IssueTree` roots.

    Parameters
    ----------
    records : iterable of IssueRecord
        Records in discovery order. Parent references are weak: a record whose
        parent is absent from the set becomes a root.
    quality : DataQualityLog, optional
        Receives dangling-parent, duplicate-id and cycle warnings.

    Returns
    -------
    list[IssueTree]
        Roots in discovery order; children keep discovery order too.
    """
    if quality is None:
        quality = DataQualityLog()

    # Pass 1: id -> node index (first record wins on duplicate ids)
    nodes: dict[str, IssueTree] = {}
    order: dict[str, int] = {}
    for record in records:
        if record.id in nodes:
            quality.record("duplicate_id", record.id, "duplicate issue id ignored; keeping first occurrence")
            continue
        order[record.id] = len(order)
        nodes[record.id] = IssueTree(record=record)

    # Pass 2: resolve parent references against the index
    parent_of: dict[str, str | None] = {}
    for key, node in nodes.items():
        parent_id = node.record.parent_id
        if parent_id is None:
            parent_of[key] = None
        elif parent_id not in nodes:
            quality.record("missing_parent", key, f"parent {parent_id} not in result set; promoted to root")
            parent_of[key] = None
        else:
            parent_of[key] = parent_id

    _break_cycles(parent_of, order, quality)

    roots: list[IssueTree] = []
    for key, node in nodes.items():
        parent_id = parent_of[key]
        if parent_id is None:
            roots.append(node)
        else:
            nodes[parent_id].children.append(node)
    return roots
