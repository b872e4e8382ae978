"""
Alignment Module

Horizontal geometry (tangent lines and circular arcs), vertical profile
(grade lines with optional parabolic vertical curves) and superelevation
table, with station-based queries.

Offsets are measured along the left-hand normal of the tangent, so a
positive offset lies left of the centreline looking up-station.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union, TYPE_CHECKING

import numpy as np

from .validation import (
    EmptyAlignmentError,
    MalformedAlignmentError,
    StationOutOfRangeError,
    validate_increasing_stations,
)

if TYPE_CHECKING:
    from shapely.geometry import LineString
    from .surface import Surface

logger = logging.getLogger(__name__)

# Allowed gap between consecutive elements and slack on station range checks
CONTINUITY_TOLERANCE = 1e-6
STATION_TOLERANCE = 1e-9


@dataclass(frozen=True)
class LineElement:
    """Straight tangent from `start` to `end`."""
    start_station: float
    start: Tuple[float, float]
    end: Tuple[float, float]

    def __post_init__(self):
        if self.length <= 0:
            raise MalformedAlignmentError(
                f"Line element at station {self.start_station:.3f} has zero length"
            )

    @property
    def length(self) -> float:
        return math.hypot(self.end[0] - self.start[0], self.end[1] - self.start[1])

    @property
    def end_point(self) -> Tuple[float, float]:
        return self.end

    def point_at(self, distance: float) -> Tuple[float, float]:
        t = distance / self.length
        return (
            self.start[0] + t * (self.end[0] - self.start[0]),
            self.start[1] + t * (self.end[1] - self.start[1]),
        )

    def tangent_at(self, distance: float) -> Tuple[float, float]:
        length = self.length
        return (
            (self.end[0] - self.start[0]) / length,
            (self.end[1] - self.start[1]) / length,
        )


@dataclass(frozen=True)
class ArcElement:
    """
    Circular arc leaving `start` with heading `start_heading`.

    Attributes:
        start_station: Station at the beginning of curve
        start: (x, y) beginning of curve
        start_heading: Tangent direction at start, radians CCW from +X
        radius: Curve radius
        length: Arc length
        turn: 'LEFT' (counter-clockwise) or 'RIGHT' (clockwise)
    """
    start_station: float
    start: Tuple[float, float]
    start_heading: float
    radius: float
    length: float
    turn: str = "LEFT"

    def __post_init__(self):
        if self.radius <= 0 or self.length <= 0:
            raise MalformedAlignmentError(
                f"Arc at station {self.start_station:.3f} needs positive radius and length, "
                f"got radius={self.radius}, length={self.length}"
            )
        if self.turn not in ("LEFT", "RIGHT"):
            raise MalformedAlignmentError(f"Arc turn must be 'LEFT' or 'RIGHT', got {self.turn!r}")

    @property
    def _sign(self) -> float:
        return 1.0 if self.turn == "LEFT" else -1.0

    @property
    def center(self) -> Tuple[float, float]:
        h = self.start_heading
        return (
            self.start[0] - self._sign * self.radius * math.sin(h),
            self.start[1] + self._sign * self.radius * math.cos(h),
        )

    def heading_at(self, distance: float) -> float:
        return self.start_heading + self._sign * distance / self.radius

    def point_at(self, distance: float) -> Tuple[float, float]:
        h = self.heading_at(distance)
        cx, cy = self.center
        return (
            cx + self._sign * self.radius * math.sin(h),
            cy - self._sign * self.radius * math.cos(h),
        )

    def tangent_at(self, distance: float) -> Tuple[float, float]:
        h = self.heading_at(distance)
        return (math.cos(h), math.sin(h))

    @property
    def end_point(self) -> Tuple[float, float]:
        return self.point_at(self.length)


Element = Union[LineElement, ArcElement]


def sample_stations(length: float, interval: float) -> np.ndarray:
    """
    Stations 0, interval, 2*interval, ... plus the end station.

    The final partial interval is always included.
    """
    count = int(math.floor(length / interval + STATION_TOLERANCE))
    stations = [k * interval for k in range(count + 1)]
    if length - stations[-1] > STATION_TOLERANCE * max(1.0, length):
        stations.append(length)
    else:
        stations[-1] = length
    return np.array(stations, dtype=np.float64)


@dataclass(frozen=True)
class HorizontalAlignment:
    """
    Ordered sequence of line and arc elements.

    Elements must be positionally continuous and their start stations
    must run from 0 without gaps.
    """
    elements: Tuple[Element, ...] = ()

    _starts: List[float] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self):
        elements = tuple(self.elements)
        object.__setattr__(self, "elements", elements)
        object.__setattr__(self, "_starts", [e.start_station for e in elements])

        expected_station = 0.0
        previous_end = None
        for i, element in enumerate(elements):
            if abs(element.start_station - expected_station) > CONTINUITY_TOLERANCE * max(1.0, expected_station):
                raise MalformedAlignmentError(
                    f"Element {i} starts at station {element.start_station:.6f}, "
                    f"expected {expected_station:.6f}"
                )
            if previous_end is not None:
                gap = math.hypot(element.start[0] - previous_end[0], element.start[1] - previous_end[1])
                if gap > CONTINUITY_TOLERANCE * max(1.0, expected_station):
                    raise MalformedAlignmentError(
                        f"Element {i} starts {gap:.6f} away from the end of element {i - 1}"
                    )
            expected_station = element.start_station + element.length
            previous_end = element.end_point

    @classmethod
    def from_polyline(cls, vertices: Sequence[Sequence[float]]) -> HorizontalAlignment:
        """Alignment of straight tangents through the given (x, y) vertices."""
        pts = [(float(v[0]), float(v[1])) for v in vertices]
        elements: List[Element] = []
        station = 0.0
        for a, b in zip(pts[:-1], pts[1:]):
            if math.hypot(b[0] - a[0], b[1] - a[1]) <= CONTINUITY_TOLERANCE:
                continue
            line = LineElement(station, a, b)
            elements.append(line)
            station += line.length
        return cls(tuple(elements))

    @classmethod
    def from_pis(
        cls,
        pis: Sequence[Sequence[float]],
        radii: Union[float, Sequence[float]],
    ) -> HorizontalAlignment:
        """
        Tangent-arc-tangent alignment from points of intersection.

        Args:
            pis: (x, y) points of intersection, first and last are the ends
            radii: Curve radius at each interior PI (or one radius for all);
                a radius of 0 leaves a sharp angle point

        Raises:
            MalformedAlignmentError: If radii don't match the PIs or
                adjacent curves overlap on a tangent
        """
        pts = [np.array([float(p[0]), float(p[1])]) for p in pis]
        interior = max(len(pts) - 2, 0)
        if np.isscalar(radii):
            radii = [float(radii)] * interior
        radii = [float(r) for r in radii]
        if len(radii) != interior:
            raise MalformedAlignmentError(
                f"Expected {interior} radii for {len(pts)} PIs, got {len(radii)}"
            )

        elements: List[Element] = []
        station = 0.0
        cursor = pts[0] if pts else None
        previous_tangent = 0.0

        def add_line(a, b):
            nonlocal station
            if np.hypot(*(b - a)) > CONTINUITY_TOLERANCE:
                line = LineElement(station, (a[0], a[1]), (b[0], b[1]))
                elements.append(line)
                station += line.length

        for i in range(1, len(pts) - 1):
            t1 = pts[i] - pts[i - 1]
            t2 = pts[i + 1] - pts[i]
            len1, len2 = np.hypot(*t1), np.hypot(*t2)
            if len1 == 0 or len2 == 0:
                raise MalformedAlignmentError(f"PI {i} coincides with a neighbouring PI")
            t1, t2 = t1 / len1, t2 / len2

            angle1 = math.atan2(t1[1], t1[0])
            deflection = math.atan2(t2[1], t2[0]) - angle1
            if deflection > math.pi:
                deflection -= 2 * math.pi
            elif deflection < -math.pi:
                deflection += 2 * math.pi

            radius = radii[i - 1]
            if radius <= 0 or abs(deflection) < 1e-9:
                if previous_tangent > len1 + CONTINUITY_TOLERANCE:
                    raise MalformedAlignmentError(
                        f"Curve before PI {i} extends past it: its tangent needs "
                        f"{previous_tangent:.3f}, segment is {len1:.3f} long"
                    )
                add_line(cursor, pts[i])
                cursor = pts[i]
                previous_tangent = 0.0
                continue

            tangent_length = radius * math.tan(abs(deflection) / 2)
            if previous_tangent + tangent_length > len1 + CONTINUITY_TOLERANCE:
                raise MalformedAlignmentError(
                    f"Curve at PI {i} (R={radius}) overlaps the previous curve: "
                    f"tangents need {previous_tangent + tangent_length:.3f}, "
                    f"segment is {len1:.3f} long"
                )

            bc = pts[i] - t1 * tangent_length
            add_line(cursor, bc)
            arc = ArcElement(
                start_station=station,
                start=(bc[0], bc[1]),
                start_heading=angle1,
                radius=radius,
                length=radius * abs(deflection),
                turn="LEFT" if deflection > 0 else "RIGHT",
            )
            elements.append(arc)
            station += arc.length
            cursor = np.array(arc.end_point)
            previous_tangent = tangent_length

        if len(pts) >= 2:
            if previous_tangent > np.hypot(*(pts[-1] - pts[-2])) + CONTINUITY_TOLERANCE:
                raise MalformedAlignmentError("Last curve extends past the final PI")
            add_line(cursor, pts[-1])

        return cls(tuple(elements))

    @property
    def length(self) -> float:
        """Total length of the alignment."""
        if not self.elements:
            return 0.0
        last = self.elements[-1]
        return last.start_station + last.length

    def _element_at(self, station: float) -> Tuple[Element, float]:
        if not self.elements:
            raise EmptyAlignmentError("Alignment has no elements")

        length = self.length
        slack = STATION_TOLERANCE * max(1.0, length)
        if station < -slack or station > length + slack:
            raise StationOutOfRangeError(
                f"Station {station:.3f} is outside the alignment range [0, {length:.3f}]"
            )

        # At a junction the later element applies; at the end, the last one
        index = bisect.bisect_right(self._starts, station) - 1
        index = min(max(index, 0), len(self.elements) - 1)
        element = self.elements[index]
        distance = min(max(station - element.start_station, 0.0), element.length)
        return element, distance

    def station_to_point(self, station: float) -> Tuple[float, float]:
        """(x, y) of the centreline at `station`."""
        element, distance = self._element_at(station)
        return element.point_at(distance)

    def tangent_at(self, station: float) -> Tuple[float, float]:
        """Unit tangent (direction of increasing station)."""
        element, distance = self._element_at(station)
        return element.tangent_at(distance)

    def normal_at(self, station: float) -> Tuple[float, float]:
        """Unit left-hand normal; radial on arcs."""
        tx, ty = self.tangent_at(station)
        return (-ty, tx)

    def offset_point(self, station: float, offset: float) -> Tuple[float, float]:
        """Point `offset` along the normal from the centreline at `station`."""
        x, y = self.station_to_point(station)
        nx, ny = self.normal_at(station)
        return (x + offset * nx, y + offset * ny)

    def as_points(self, step: float = 1.0) -> np.ndarray:
        """Densified centreline as an Nx2 array (arcs sampled every `step`)."""
        if not self.elements:
            return np.empty((0, 2))

        pts = [self.elements[0].start]
        for element in self.elements:
            if isinstance(element, ArcElement):
                n = max(int(math.ceil(element.length / step)), 1)
                pts.extend(element.point_at(element.length * k / n) for k in range(1, n + 1))
            else:
                pts.append(element.end)
        return np.array(pts, dtype=np.float64)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Spatial bounds (min_x, min_y, max_x, max_y) of the centreline."""
        pts = self.as_points()
        if len(pts) == 0:
            raise EmptyAlignmentError("Alignment has no elements")
        min_x, min_y = pts.min(axis=0)
        max_x, max_y = pts.max(axis=0)
        return (float(min_x), float(min_y), float(max_x), float(max_y))

    def to_linestring(self, step: float = 1.0) -> 'LineString':
        """Centreline as a shapely LineString."""
        from shapely.geometry import LineString

        return LineString(self.as_points(step).tolist())


@dataclass(frozen=True)
class VerticalCurve:
    """Symmetric parabolic curve of `length` centred on the PVI at `pvi_station`."""
    pvi_station: float
    length: float


@dataclass(frozen=True)
class VerticalProfile:
    """
    Station/elevation control points with optional parabolic curves.

    Between control points elevation is linear; inside a vertical curve
    it follows E = E_bvc + g1*x + (g2 - g1) / (2L) * x^2. Beyond the first
    and last control points the end elevation is held.
    """
    points: Tuple[Tuple[float, float], ...]
    curves: Tuple[VerticalCurve, ...] = ()

    _stations: np.ndarray = field(default=None, init=False, repr=False)
    _elevations: np.ndarray = field(default=None, init=False, repr=False)
    _curve_spans: Tuple[Tuple[float, float, float, float, float, float], ...] = field(
        default=(), init=False, repr=False
    )

    def __post_init__(self):
        points = tuple((float(s), float(z)) for s, z in self.points)
        curves = tuple(sorted(self.curves, key=lambda c: c.pvi_station))
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "curves", curves)

        if not points:
            raise MalformedAlignmentError("Vertical profile needs at least one control point")

        stations = np.array([p[0] for p in points])
        elevations = np.array([p[1] for p in points])
        validate_increasing_stations(stations, "Vertical profile")
        stations.setflags(write=False)
        elevations.setflags(write=False)
        object.__setattr__(self, "_stations", stations)
        object.__setattr__(self, "_elevations", elevations)

        spans = []
        previous_end = -math.inf
        for curve in curves:
            index = int(np.argmin(np.abs(stations - curve.pvi_station)))
            if abs(stations[index] - curve.pvi_station) > CONTINUITY_TOLERANCE:
                raise MalformedAlignmentError(
                    f"Vertical curve at station {curve.pvi_station:.3f} is not on a control point"
                )
            if index == 0 or index == len(stations) - 1:
                raise MalformedAlignmentError(
                    f"Vertical curve at station {curve.pvi_station:.3f} needs grades on both sides"
                )
            if curve.length <= 0:
                raise MalformedAlignmentError(
                    f"Vertical curve at station {curve.pvi_station:.3f} has non-positive length"
                )

            pvi, half = stations[index], curve.length / 2
            bvc, evc = pvi - half, pvi + half
            if bvc < max(stations[index - 1], previous_end) - CONTINUITY_TOLERANCE:
                raise MalformedAlignmentError(
                    f"Vertical curve at station {pvi:.3f} starts before the preceding grade break"
                )
            if evc > stations[index + 1] + CONTINUITY_TOLERANCE:
                raise MalformedAlignmentError(
                    f"Vertical curve at station {pvi:.3f} extends past the next control point"
                )

            g1 = (elevations[index] - elevations[index - 1]) / (pvi - stations[index - 1])
            g2 = (elevations[index + 1] - elevations[index]) / (stations[index + 1] - pvi)
            spans.append((bvc, evc, elevations[index] - g1 * half, g1, g2, curve.length))
            previous_end = evc

        object.__setattr__(self, "_curve_spans", tuple(spans))

    @property
    def start_station(self) -> float:
        return float(self._stations[0])

    @property
    def end_station(self) -> float:
        return float(self._stations[-1])

    def _curve_at(self, station: float):
        for span in self._curve_spans:
            if span[0] <= station <= span[1]:
                return span
        return None

    def elevation_at(self, station: float) -> float:
        """Profile elevation at `station`."""
        span = self._curve_at(station)
        if span is not None:
            bvc, _, e_bvc, g1, g2, length = span
            x = station - bvc
            return float(e_bvc + g1 * x + (g2 - g1) / (2 * length) * x * x)
        return float(np.interp(station, self._stations, self._elevations))

    def grade_at(self, station: float) -> float:
        """Grade as a decimal (0.02 = 2%)."""
        span = self._curve_at(station)
        if span is not None:
            bvc, _, _, g1, g2, length = span
            return float(g1 + (g2 - g1) * (station - bvc) / length)

        if station < self._stations[0] or station > self._stations[-1] or len(self._stations) < 2:
            return 0.0
        index = min(int(np.searchsorted(self._stations, station, side='right')) - 1, len(self._stations) - 2)
        ds = self._stations[index + 1] - self._stations[index]
        return float((self._elevations[index + 1] - self._elevations[index]) / ds)


@dataclass(frozen=True)
class SuperelevationRow:
    """Cross-slopes (rise/run) applied outward from the centreline."""
    station: float
    left_slope: float
    right_slope: float


@dataclass(frozen=True)
class SuperelevationTable:
    """
    Station-ordered superelevation rows.

    Lookup uses the last row at or before the station; stations before
    the first row use the first row. An empty table means no cross-slope.
    """
    rows: Tuple[SuperelevationRow, ...] = ()

    def __post_init__(self):
        rows = tuple(self.rows)
        object.__setattr__(self, "rows", rows)
        validate_increasing_stations([r.station for r in rows], "Superelevation table")

    def slopes_at(self, station: float) -> Tuple[float, float]:
        """(left_slope, right_slope) applicable at `station`."""
        if not self.rows:
            return (0.0, 0.0)
        index = bisect.bisect_right([r.station for r in self.rows], station) - 1
        row = self.rows[max(index, 0)]
        return (row.left_slope, row.right_slope)


@dataclass(frozen=True)
class Alignment:
    """Horizontal alignment with its vertical profile and superelevation."""
    horizontal: HorizontalAlignment
    profile: Optional[VerticalProfile] = None
    superelevation: SuperelevationTable = field(default_factory=SuperelevationTable)

    @property
    def length(self) -> float:
        return self.horizontal.length

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.horizontal.bounds

    def station_to_point(self, station: float) -> Tuple[float, float]:
        return self.horizontal.station_to_point(station)

    def tangent_at(self, station: float) -> Tuple[float, float]:
        return self.horizontal.tangent_at(station)

    def normal_at(self, station: float) -> Tuple[float, float]:
        return self.horizontal.normal_at(station)

    def offset_point(self, station: float, offset: float) -> Tuple[float, float]:
        return self.horizontal.offset_point(station, offset)

    def elevation_at(self, station: float) -> float:
        """Profile grade elevation at a station on the alignment."""
        if self.profile is None:
            raise MalformedAlignmentError("Alignment has no vertical profile")
        self.horizontal._element_at(station)
        return self.profile.elevation_at(station)

    def point3_at(self, station: float) -> Tuple[float, float, float]:
        x, y = self.station_to_point(station)
        return (x, y, self.elevation_at(station))

    def slopes_at(self, station: float) -> Tuple[float, float]:
        return self.superelevation.slopes_at(station)

    def design_elevation(self, station: float, offset: float) -> float:
        """Finished-grade elevation at an offset, applying superelevation."""
        left, right = self.slopes_at(station)
        slope = left if offset > 0 else right
        return self.elevation_at(station) + slope * abs(offset)


def build_design_surface(
    alignment: Alignment,
    offsets: Sequence[float],
    interval: float,
) -> 'Surface':
    """
    Build a design TIN by sweeping a cross-section template along an alignment.

    At every sampled station (including the end) a vertex is placed at each
    template offset, at the profile grade plus the superelevation
    cross-slope for that side.

    Args:
        alignment: Alignment with a vertical profile
        offsets: Template offsets (positive = left of centreline)
        interval: Station spacing of template sections

    Returns:
        Surface built from the swept template
    """
    from .surface import Surface
    from .validation import validate_positive

    interval = validate_positive(interval, "interval")
    if alignment.length <= 0:
        raise EmptyAlignmentError("Cannot sweep a template along a zero-length alignment")

    points = []
    for station in sample_stations(alignment.length, interval):
        for offset in offsets:
            x, y = alignment.offset_point(station, offset)
            points.append((x, y, alignment.design_elevation(station, offset)))

    logger.debug("Swept %d template offsets over %d stations", len(offsets), len(points) // max(len(offsets), 1))
    return Surface.build(np.array(points))
