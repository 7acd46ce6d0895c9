"""Load aggregation settings from YAML (with fallbacks to config.py defaults)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from jira_rollup.analytics.metrics.binning import BandDefinition

from .config import (
    DEFAULT_RESOLUTION_TARGETS_HOURS,
    DEFAULT_SEVERITY_BANDS,
    WEIGHT_DOMAIN,
    WORKING_HOURS_PER_DAY,
)
from .errors import ConfigurationError

_CACHE: RollupSettings | None = None


@dataclass(slots=True)
class RollupSettings:
    working_hours_per_day: float = WORKING_HOURS_PER_DAY
    bands: BandDefinition = field(default_factory=lambda: BandDefinition(DEFAULT_SEVERITY_BANDS))
    resolution_targets_hours: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_RESOLUTION_TARGETS_HOURS)
    )


def _parse(data: dict) -> RollupSettings:
    hours = float(data.get("working_hours_per_day", WORKING_HOURS_PER_DAY))
    if not hours > 0:
        raise ConfigurationError(f"working_hours_per_day must be positive, got {hours}")

    domain = tuple(data.get("weight_domain") or WEIGHT_DOMAIN)
    if len(domain) != 2:
        raise ConfigurationError(f"weight_domain must be [min, max], got {domain!r}")
    raw_bands = data.get("bands")
    if raw_bands is None:
        bands = BandDefinition(DEFAULT_SEVERITY_BANDS, domain=domain)
    else:
        try:
            entries = [(b["name"], float(b["lower"]), float(b["upper"])) for b in raw_bands]
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"malformed band entry: {exc}") from exc
        bands = BandDefinition(entries, domain=domain)

    targets = data.get("resolution_targets_hours")
    if targets is None:
        targets = dict(DEFAULT_RESOLUTION_TARGETS_HOURS)
    targets = {str(k): float(v) for k, v in targets.items()}
    unknown = [name for name in targets if name not in bands.names]
    if unknown:
        raise ConfigurationError(f"resolution targets reference unknown bands: {unknown!r}")
    return RollupSettings(working_hours_per_day=hours, bands=bands, resolution_targets_hours=targets)


def load_rollup_settings(path: str | Path | None = None) -> RollupSettings:
    """Read ``rollup.yaml`` (or ``path``); a missing file yields the defaults.

    An explicit ``path`` bypasses the module cache. Malformed content raises
    ConfigurationError instead of falling back silently.
    """
    global _CACHE
    if path is None and _CACHE is not None:
        return _CACHE
    yaml_path = Path(path) if path is not None else Path(__file__).resolve().parent.parent / "rollup.yaml"
    if not yaml_path.exists():
        settings = RollupSettings()
    else:
        try:
            data = yaml.safe_load(yaml_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"cannot parse {yaml_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{yaml_path} must contain a mapping")
        settings = _parse(data)
    if path is None:
        _CACHE = settings
    return settings
