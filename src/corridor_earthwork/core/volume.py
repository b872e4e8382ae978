"""
Volume Calculator Module

Turns per-station cross-sections into cut/fill areas and accumulates
them into a mass-haul curve using the average-end-area method.
"""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Tuple, TYPE_CHECKING

import numpy as np

from .alignment import sample_stations
from .cross_section import CrossSection, sample
from .validation import (
    ComputationCancelled,
    CoverageGapWarning,
    EmptyAlignmentError,
    validate_positive,
)

if TYPE_CHECKING:
    from .alignment import Alignment, HorizontalAlignment
    from .surface import Surface

logger = logging.getLogger(__name__)


@dataclass
class StationArea:
    """Cut and fill cross-section areas at one station."""
    station: float
    cut_area: float
    fill_area: float
    valid_samples: int
    total_samples: int

    @property
    def coverage_gap(self) -> bool:
        return self.valid_samples < self.total_samples


@dataclass
class CoverageGap:
    """A station where at least one surface is missing samples."""
    station: float
    missing_design: int
    missing_ground: int
    valid_samples: int
    total_samples: int

    @property
    def empty(self) -> bool:
        """No offset had data on both surfaces; the station's area is zero."""
        return self.valid_samples == 0

    def describe(self) -> str:
        return (
            f"station {self.station:.3f}: {self.missing_design} design and "
            f"{self.missing_ground} ground samples missing of {self.total_samples}"
        )


@dataclass
class MassHaulPoint:
    """
    Earthwork quantities at one station of the mass-haul curve.

    Incremental volumes cover the interval ending at this station; the
    first station always has zero increments.
    """
    station: float
    cut_volume: float
    fill_volume: float
    cumulative_cut: float
    cumulative_fill: float
    cumulative_net: float  # cut - fill


@dataclass
class MassHaulResult:
    """
    Complete mass-haul computation results.

    Behaves as the ordered sequence of MassHaulPoint; station areas,
    cross-sections and coverage gaps are attached alongside.
    All volumes are in cubic units (m³ if coordinates are in meters).
    """
    points: List[MassHaulPoint]
    station_areas: List[StationArea]
    coverage_gaps: List[CoverageGap] = field(default_factory=list)
    cross_sections: List[CrossSection] = field(default_factory=list, repr=False)

    # Adjusted volumes (accounting for soil factors)
    adjusted_cut_volume: Optional[float] = None
    adjusted_fill_volume: Optional[float] = None

    def __iter__(self) -> Iterator[MassHaulPoint]:
        return iter(self.points)

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index):
        return self.points[index]

    @property
    def stations(self) -> np.ndarray:
        return np.array([p.station for p in self.points])

    @property
    def cut_volume(self) -> float:
        return self.points[-1].cumulative_cut if self.points else 0.0

    @property
    def fill_volume(self) -> float:
        return self.points[-1].cumulative_fill if self.points else 0.0

    @property
    def net_volume(self) -> float:
        """Positive = net export, Negative = net import."""
        return self.points[-1].cumulative_net if self.points else 0.0

    def balance_stations(self) -> List[float]:
        """Stations where the mass-haul curve crosses zero after the start."""
        crossings = []
        for prev, curr in zip(self.points[:-1], self.points[1:]):
            a, b = prev.cumulative_net, curr.cumulative_net
            if a * b < 0:
                crossings.append(prev.station + (curr.station - prev.station) * a / (a - b))
            elif b == 0 and a != 0:
                crossings.append(curr.station)
        return crossings

    def summary(self) -> str:
        """Return human-readable summary."""
        length = self.points[-1].station if self.points else 0.0
        lines = [
            "=" * 50,
            "MASS HAUL SUMMARY",
            "=" * 50,
            f"Stations:          {len(self.points)} (0.000 to {length:,.3f})",
            f"",
            f"CUT (Excavation):  {self.cut_volume:,.1f} cubic units",
            f"  Max Area:        {max((a.cut_area for a in self.station_areas), default=0.0):,.2f} sq units",
            f"FILL (Embankment): {self.fill_volume:,.1f} cubic units",
            f"  Max Area:        {max((a.fill_area for a in self.station_areas), default=0.0):,.2f} sq units",
            f"",
            f"NET VOLUME:        {self.net_volume:,.1f} cubic units",
            f"  {'(Export required)' if self.net_volume > 0 else '(Import required)'}",
        ]

        balance = self.balance_stations()
        if balance:
            lines.append(f"")
            lines.append(f"Balance Stations:  {', '.join(f'{s:,.2f}' for s in balance)}")

        if self.adjusted_cut_volume is not None or self.adjusted_fill_volume is not None:
            cut = self.adjusted_cut_volume if self.adjusted_cut_volume is not None else self.cut_volume
            fill = self.adjusted_fill_volume if self.adjusted_fill_volume is not None else self.fill_volume
            lines.extend([
                f"",
                f"ADJUSTED VOLUMES (with soil factors):",
                f"  Cut:             {cut:,.1f} cubic units",
                f"  Fill:            {fill:,.1f} cubic units",
            ])

        if self.coverage_gaps:
            lines.extend([
                f"",
                f"COVERAGE GAPS:     {len(self.coverage_gaps)} stations",
            ])
            lines.extend(f"  {gap.describe()}" for gap in self.coverage_gaps[:5])
            if len(self.coverage_gaps) > 5:
                lines.append(f"  ... and {len(self.coverage_gaps) - 5} more")

        lines.append("=" * 50)
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "cut_volume": self.cut_volume,
            "fill_volume": self.fill_volume,
            "net_volume": self.net_volume,
            "adjusted_cut_volume": self.adjusted_cut_volume,
            "adjusted_fill_volume": self.adjusted_fill_volume,
            "balance_stations": self.balance_stations(),
            "mass_haul": [
                {
                    "station": p.station,
                    "cut_volume": p.cut_volume,
                    "fill_volume": p.fill_volume,
                    "cumulative_cut": p.cumulative_cut,
                    "cumulative_fill": p.cumulative_fill,
                    "cumulative_net": p.cumulative_net,
                }
                for p in self.points
            ],
            "station_areas": [
                {"station": a.station, "cut_area": a.cut_area, "fill_area": a.fill_area}
                for a in self.station_areas
            ],
            "coverage_gaps": [
                {
                    "station": g.station,
                    "missing_design": g.missing_design,
                    "missing_ground": g.missing_ground,
                    "total_samples": g.total_samples,
                }
                for g in self.coverage_gaps
            ],
        }


def section_areas(offsets, differences) -> Tuple[float, float]:
    """
    Cut and fill areas of a difference profile.

    Positive and negative parts are integrated separately with the
    trapezoidal rule. Where the sign changes between two samples the
    segment is split at the linearly interpolated zero crossing. Segments
    with a missing (NaN) end are skipped rather than bridged.

    Args:
        offsets: Sorted sample offsets
        differences: Ground minus design at each offset (positive = cut)

    Returns:
        Tuple of (cut_area, fill_area), both non-negative
    """
    offsets = np.asarray(offsets, dtype=np.float64)
    diff = np.asarray(differences, dtype=np.float64)
    if len(diff) < 2:
        return 0.0, 0.0

    d0, d1, w = diff[:-1], diff[1:], np.diff(offsets)
    ok = ~(np.isnan(d0) | np.isnan(d1))
    d0, d1, w = d0[ok], d1[ok], w[ok]

    cut0, cut1 = np.maximum(d0, 0.0), np.maximum(d1, 0.0)
    fill0, fill1 = np.maximum(-d0, 0.0), np.maximum(-d1, 0.0)

    crossing = d0 * d1 < 0
    # Fraction of the segment before the zero crossing
    t = np.divide(d0, d0 - d1, out=np.zeros_like(d0), where=crossing)

    cut = np.where(
        crossing,
        0.5 * w * (cut0 * t + cut1 * (1.0 - t)),
        0.5 * w * (cut0 + cut1),
    )
    fill = np.where(
        crossing,
        0.5 * w * (fill0 * t + fill1 * (1.0 - t)),
        0.5 * w * (fill0 + fill1),
    )
    return float(cut.sum()), float(fill.sum())


def accumulate(station_areas: List[StationArea]) -> List[MassHaulPoint]:
    """
    Average-end-area volumes and running totals in station order.

    Must run as a single serial pass once all station areas are known.
    """
    points: List[MassHaulPoint] = []
    cumulative_cut = 0.0
    cumulative_fill = 0.0
    previous: Optional[StationArea] = None

    for area in station_areas:
        if previous is None:
            cut = fill = 0.0
        else:
            length = area.station - previous.station
            cut = (previous.cut_area + area.cut_area) / 2 * length
            fill = (previous.fill_area + area.fill_area) / 2 * length

        cumulative_cut += cut
        cumulative_fill += fill
        points.append(MassHaulPoint(
            station=area.station,
            cut_volume=cut,
            fill_volume=fill,
            cumulative_cut=cumulative_cut,
            cumulative_fill=cumulative_fill,
            cumulative_net=cumulative_cut - cumulative_fill,
        ))
        previous = area

    return points


def compute(
    alignment: 'HorizontalAlignment | Alignment',
    design_surface: 'Surface',
    ground_surface: 'Surface',
    interval: float,
    width: float,
    offset_step: float,
    *,
    workers: Optional[int] = None,
    cancel: Optional[Callable[[], bool]] = None,
) -> MassHaulResult:
    """
    Compute cut/fill volumes and the mass-haul curve along an alignment.

    Stations are sampled every `interval` from 0 to the alignment length,
    always including the end station. Cross-sections at each station are
    independent and may be measured on `workers` threads; the running
    totals are then accumulated serially in station order.

    Args:
        alignment: Horizontal alignment (or combined Alignment)
        design_surface: Finished-grade surface
        ground_surface: Existing-ground surface
        interval: Station spacing
        width: Full corridor width, centred on the alignment
        offset_step: Spacing between cross-section samples
        workers: Thread count for the per-station sampling (None/1 = serial)
        cancel: Callable checked once per station; returning True aborts

    Returns:
        MassHaulResult with one MassHaulPoint per sampled station

    Raises:
        InvalidIntervalError: If interval, width or offset_step is <= 0
        EmptyAlignmentError: If the alignment has zero length
        ComputationCancelled: If `cancel` returned True
    """
    interval = validate_positive(interval, "interval")
    width = validate_positive(width, "width")
    offset_step = validate_positive(offset_step, "offset_step")

    length = alignment.length
    if not length > 0:
        raise EmptyAlignmentError(
            "Alignment has zero length; at least one element is required to compute volumes."
        )

    stations = sample_stations(length, interval)
    logger.info(
        "Computing volumes at %d stations (length %.3f, interval %g, width %g, step %g)",
        len(stations), length, interval, width, offset_step,
    )

    def measure(station: float) -> Tuple[CrossSection, StationArea]:
        if cancel is not None and cancel():
            raise ComputationCancelled(f"Volume computation cancelled at station {station:.3f}")

        section = sample(alignment, station, width, offset_step, design_surface, ground_surface)
        cut, fill = section_areas(section.offsets, section.difference)
        return section, StationArea(
            station=float(station),
            cut_area=cut,
            fill_area=fill,
            valid_samples=int(np.sum(section.valid)),
            total_samples=len(section.offsets),
        )

    if workers is not None and workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            measured = list(pool.map(measure, stations))
    else:
        measured = [measure(s) for s in stations]

    sections = [m[0] for m in measured]
    areas = [m[1] for m in measured]

    gaps = [
        CoverageGap(
            station=s.station,
            missing_design=s.missing_design,
            missing_ground=s.missing_ground,
            valid_samples=a.valid_samples,
            total_samples=a.total_samples,
        )
        for s, a in zip(sections, areas)
        if s.has_gap
    ]
    if gaps:
        empty = sum(1 for g in gaps if g.empty)
        logger.info("%d stations with coverage gaps (%d without any data)", len(gaps), empty)
        warnings.warn(
            f"{len(gaps)} of {len(stations)} stations have incomplete surface coverage "
            f"({empty} with no data on both surfaces); missing samples were excluded.",
            CoverageGapWarning,
            stacklevel=2
        )

    return MassHaulResult(
        points=accumulate(areas),
        station_areas=areas,
        coverage_gaps=gaps,
        cross_sections=sections,
    )


class VolumeCalculator:
    """
    Calculates corridor cut/fill volumes between a design and a ground surface.

    Supports:
    - Cross-sections at arbitrary stations
    - Mass-haul curves by average end area
    - Soil swell/shrink factors
    """

    # Typical soil factors (excavated volume vs compacted volume)
    SOIL_SWELL_FACTORS = {
        "sand": 1.12,
        "clay": 1.30,
        "rock": 1.50,
        "topsoil": 1.25,
        "gravel": 1.15,
    }

    SOIL_SHRINK_FACTORS = {
        "sand": 0.95,
        "clay": 0.85,
        "rock": 0.70,
        "topsoil": 0.90,
        "gravel": 0.92,
    }

    def __init__(
        self,
        alignment: 'HorizontalAlignment | Alignment',
        design_surface: 'Surface',
        ground_surface: 'Surface',
        swell_factor: float = 1.0,
        shrink_factor: float = 1.0,
    ):
        """
        Initialize calculator with corridor data.

        Args:
            alignment: Alignment the cross-sections are cut along
            design_surface: Finished-grade surface
            ground_surface: Existing-ground surface
            swell_factor: Multiplier for cut volumes (excavated soil expands)
            shrink_factor: Multiplier for fill volumes (placed soil compacts)

        Raises:
            ValidationError: If soil factors are invalid
        """
        from .validation import validate_soil_factor, check_alignment_overlaps_surface

        self.alignment = alignment
        self.design_surface = design_surface
        self.ground_surface = ground_surface
        self.swell_factor = validate_soil_factor(swell_factor, "swell_factor")
        self.shrink_factor = validate_soil_factor(shrink_factor, "shrink_factor")

        if alignment.length > 0:
            horizontal = getattr(alignment, "horizontal", alignment)
            centreline = horizontal.to_linestring()
            check_alignment_overlaps_surface(centreline, design_surface.hull, "design surface")
            check_alignment_overlaps_surface(centreline, ground_surface.hull, "ground surface")

    def cross_section(self, station: float, width: float, offset_step: float) -> CrossSection:
        """Sample both surfaces across the alignment at one station."""
        return sample(
            self.alignment, station, width, offset_step,
            self.design_surface, self.ground_surface,
        )

    def cross_sections(self, interval: float, width: float, offset_step: float) -> List[CrossSection]:
        """Cross-sections at every sampled station, in station order."""
        interval = validate_positive(interval, "interval")
        if not self.alignment.length > 0:
            raise EmptyAlignmentError("Alignment has zero length")
        return [
            self.cross_section(station, width, offset_step)
            for station in sample_stations(self.alignment.length, interval)
        ]

    def compute(
        self,
        interval: float,
        width: float,
        offset_step: float,
        *,
        workers: Optional[int] = None,
        cancel: Optional[Callable[[], bool]] = None,
    ) -> MassHaulResult:
        """
        Compute the mass-haul curve and apply soil factors.

        See `compute` for argument details.
        """
        result = compute(
            self.alignment,
            self.design_surface,
            self.ground_surface,
            interval=interval,
            width=width,
            offset_step=offset_step,
            workers=workers,
            cancel=cancel,
        )

        if self.swell_factor != 1.0:
            result.adjusted_cut_volume = result.cut_volume * self.swell_factor
        if self.shrink_factor != 1.0:
            result.adjusted_fill_volume = result.fill_volume * self.shrink_factor

        return result
