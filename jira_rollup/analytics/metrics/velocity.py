"""Sprint velocity metrics."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class VelocityMetrics:
    committed: float
    completed: float
    completion_rate: int
    variance: float
    variance_percent: int


def velocity(committed: float, completed: float) -> VelocityMetrics:
    return VelocityMetrics(
        committed=committed,
        completed=completed,
        completion_rate=round(completed / committed * 100) if committed > 0 else 0,
        variance=completed - committed,
        variance_percent=round((completed - committed) / committed * 100) if committed > 0 else 0,
    )


def average_velocity(sprints: Sequence[VelocityMetrics]) -> float:
    if not sprints:
        return 0.0
    return round(sum(s.completed for s in sprints) / len(sprints), 1)


def velocity_trend(sprints: Sequence[VelocityMetrics], threshold_percent: float = 10.0) -> str:
    """Compare the first and last of the three most recent sprints.

    Returns "increasing", "decreasing" or "stable" (also when fewer than three
    sprints exist or the baseline is zero).
    """
    if len(sprints) < 3:
        return "stable"
    recent = sprints[-3:]
    baseline = recent[0].completed
    if baseline <= 0:
        return "stable"
    change = (recent[-1].completed - baseline) / baseline * 100
    if change > threshold_percent:
        return "increasing"
    if change < -threshold_percent:
        return "decreasing"
    return "stable"
