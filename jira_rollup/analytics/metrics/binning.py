"""Severity band partitioning of the weight ("ponderation") scale.

Bands are half-open ``[lower, upper)`` intervals, except the top band which
also includes its upper bound, so that the whole weight domain is covered
exactly once.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from jira_rollup.core.config import DEFAULT_SEVERITY_BANDS, WEIGHT_DOMAIN
from jira_rollup.core.errors import ConfigurationError, DataQualityLog


@dataclass(frozen=True, slots=True)
class SeverityBand:
    name: str
    lower: float
    upper: float


class BandDefinition:
    """Validated, contiguous and exhaustive partition of a weight domain."""

    def __init__(
        self,
        bands: Iterable[SeverityBand | tuple[str, float, float]],
        domain: tuple[float, float] = WEIGHT_DOMAIN,
    ):
        self.bands: tuple[SeverityBand, ...] = tuple(
            b if isinstance(b, SeverityBand) else SeverityBand(str(b[0]), float(b[1]), float(b[2])) for b in bands
        )
        self.domain = (float(domain[0]), float(domain[1]))
        validate_bands(self.bands, self.domain)

    @property
    def names(self) -> list[str]:
        return [b.name for b in self.bands]

    def band_for(self, weight: float, *, key: str | None = None, quality: DataQualityLog | None = None) -> str:
        """Return the name of the band holding ``weight``.

        Weights outside the domain are clamped into the nearest edge band
        (recorded in ``quality`` when given).
        """
        low, high = self.domain
        if weight < low or weight > high:
            if quality is not None:
                quality.record("weight_out_of_domain", key, f"weight {weight} outside [{low}, {high}]; clamped")
            weight = min(max(weight, low), high)
        for band in self.bands[:-1]:
            if band.lower <= weight < band.upper:
                return band.name
        return self.bands[-1].name

    def __iter__(self):
        return iter(self.bands)

    def __repr__(self) -> str:
        return f"BandDefinition({[(b.name, b.lower, b.upper) for b in self.bands]!r})"


def validate_bands(bands: Sequence[SeverityBand], domain: tuple[float, float]) -> None:
    """Raise ConfigurationError unless ``bands`` tile ``domain`` with no gap or overlap.

    Parameters
    ----------
    bands : sequence of SeverityBand
        Bands in ascending order.
    domain : tuple[float, float]
        Expected weight range ``(min, max)``.
    """
    low, high = domain
    if not math.isfinite(low) or not math.isfinite(high) or low >= high:
        raise ConfigurationError(f"invalid weight domain {domain!r}")
    if not bands:
        raise ConfigurationError("at least one severity band is required")
    names = [b.name for b in bands]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"duplicate band names in {names!r}")
    for band in bands:
        if not band.lower < band.upper:
            raise ConfigurationError(f"band {band.name!r} is empty: [{band.lower}, {band.upper})")
    if bands[0].lower != low:
        raise ConfigurationError(f"first band {bands[0].name!r} starts at {bands[0].lower}, expected {low}")
    for prev, nxt in zip(bands, bands[1:]):
        if nxt.lower > prev.upper:
            raise ConfigurationError(f"gap between {prev.name!r} ({prev.upper}) and {nxt.name!r} ({nxt.lower})")
        if nxt.lower < prev.upper:
            raise ConfigurationError(f"overlap between {prev.name!r} ({prev.upper}) and {nxt.name!r} ({nxt.lower})")
    if bands[-1].upper < high:
        raise ConfigurationError(f"last band {bands[-1].name!r} ends at {bands[-1].upper}, expected {high}")


DEFAULT_BANDS = BandDefinition(DEFAULT_SEVERITY_BANDS)
