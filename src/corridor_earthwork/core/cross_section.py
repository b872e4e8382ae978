"""
Cross-Section Sampler Module

Cuts a line perpendicular to the alignment at a station and samples the
design and ground surfaces along it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING

import numpy as np

from .validation import validate_positive

if TYPE_CHECKING:
    from .alignment import HorizontalAlignment
    from .surface import Surface

# Relative slack used when deciding whether the last step lands on the edge
_EDGE_TOLERANCE = 1e-9


@dataclass(frozen=True)
class CrossSectionSample:
    """One offset of a cross-section; None marks a missing surface sample."""
    offset: float
    design: Optional[float]
    ground: Optional[float]

    @property
    def difference(self) -> Optional[float]:
        """Ground minus design (positive = cut), None if either is missing."""
        if self.design is None or self.ground is None:
            return None
        return self.ground - self.design


@dataclass(frozen=True, eq=False)
class CrossSection:
    """
    Design and ground elevations sampled across the alignment at a station.

    Attributes:
        station: Station of the section
        offsets: Sorted offsets, negative = right of centreline
        design: Design elevation per offset (NaN where absent)
        ground: Ground elevation per offset (NaN where absent)
    """
    station: float
    offsets: np.ndarray
    design: np.ndarray
    ground: np.ndarray

    @property
    def design_coverage(self) -> np.ndarray:
        """True where the design surface has data."""
        return ~np.isnan(self.design)

    @property
    def ground_coverage(self) -> np.ndarray:
        """True where the ground surface has data."""
        return ~np.isnan(self.ground)

    @property
    def valid(self) -> np.ndarray:
        """True where both surfaces have data."""
        return self.design_coverage & self.ground_coverage

    @property
    def difference(self) -> np.ndarray:
        """Ground minus design per offset; NaN where either is missing."""
        return self.ground - self.design

    @property
    def has_gap(self) -> bool:
        return not bool(np.all(self.valid))

    @property
    def missing_design(self) -> int:
        return int(np.sum(~self.design_coverage))

    @property
    def missing_ground(self) -> int:
        return int(np.sum(~self.ground_coverage))

    @property
    def samples(self) -> List[CrossSectionSample]:
        def value(z):
            return None if np.isnan(z) else float(z)

        return [
            CrossSectionSample(float(o), value(d), value(g))
            for o, d, g in zip(self.offsets, self.design, self.ground)
        ]

    def to_dict(self) -> dict:
        return {
            "station": self.station,
            "samples": [
                {"offset": s.offset, "design": s.design, "ground": s.ground}
                for s in self.samples
            ],
        }


def offsets_for(width: float, offset_step: float) -> np.ndarray:
    """
    Offsets from -width/2 to +width/2 in `offset_step` increments.

    Offsets are generated outward from the centreline, so 0 is always
    present exactly and the section is symmetric. When the step does not
    divide the half-width evenly, a final offset is added at the edge.
    """
    width = validate_positive(width, "width")
    offset_step = validate_positive(offset_step, "offset_step")

    half = width / 2
    count = int(math.floor(half / offset_step + _EDGE_TOLERANCE))
    right = [k * offset_step for k in range(1, count + 1)]
    if right and half - right[-1] <= _EDGE_TOLERANCE * half:
        right[-1] = half
    elif half > (right[-1] if right else 0.0):
        right.append(half)

    side = np.array(right, dtype=np.float64)
    return np.concatenate([-side[::-1], [0.0], side])


def sample(
    alignment: 'HorizontalAlignment',
    station: float,
    width: float,
    offset_step: float,
    design_surface: 'Surface',
    ground_surface: 'Surface',
) -> CrossSection:
    """
    Sample both surfaces across the alignment at `station`.

    Each offset's world point is station_to_point(station) plus offset
    times normal_at(station). A surface with no data at a point records
    NaN for that offset; sampling never aborts on missing data.

    Raises:
        StationOutOfRangeError: If station is outside the alignment
        InvalidIntervalError: If width or offset_step is not positive
    """
    offsets = offsets_for(width, offset_step)
    cx, cy = alignment.station_to_point(station)
    nx, ny = alignment.normal_at(station)

    xy = np.column_stack([cx + offsets * nx, cy + offsets * ny])
    return CrossSection(
        station=float(station),
        offsets=offsets,
        design=design_surface.elevations_at(xy),
        ground=ground_surface.elevations_at(xy),
    )
