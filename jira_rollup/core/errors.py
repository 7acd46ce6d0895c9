"""Error taxonomy for retrieval, configuration and data-quality problems."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass


class RetrievalFailure(RuntimeError):
    """A page or per-key fetch was rejected, failed in transport, or timed out.

    Raised as a whole-call failure: callers never receive partial results.
    The underlying exception, when there is one, is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, offset: int | None = None, status_code: int | None = None):
        self.offset = offset
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(ValueError):
    """Invalid aggregation setup (band definitions, working hours, batch sizes)."""


@dataclass(frozen=True, slots=True)
class DataQualityWarning:
    kind: str
    issue_key: str | None
    message: str


class DataQualityLog:
    """Collects non-fatal anomalies and mirrors each one to a logger.

    Components that absorb bad input (negative intervals, dangling parents,
    missing weights) record it here instead of raising.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger("jira_rollup.data_quality")
        self._entries: list[DataQualityWarning] = []

    def record(self, kind: str, issue_key: str | None, message: str) -> DataQualityWarning:
        entry = DataQualityWarning(kind=kind, issue_key=issue_key, message=message)
        self._entries.append(entry)
        self._logger.warning("[%s] %s: %s", kind, issue_key or "-", message)
        return entry

    def of_kind(self, kind: str) -> list[DataQualityWarning]:
        return [e for e in self._entries if e.kind == kind]

    @property
    def entries(self) -> list[DataQualityWarning]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DataQualityWarning]:
        return iter(list(self._entries))
