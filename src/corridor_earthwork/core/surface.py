"""
Surface Model Module

Builds a triangulated irregular network (TIN) from scattered 3D points
and answers elevation queries by barycentric interpolation.

The surface is stored as a vertex arena plus a triangle index array;
edge and vertex adjacency are derived lookups built alongside it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import numpy as np
from scipy.spatial import Delaunay, QhullError, cKDTree

from .validation import DegenerateInputError

if TYPE_CHECKING:
    from shapely.geometry import Polygon
    from ..io.point_cloud import PointCloud

logger = logging.getLogger(__name__)

# Points closer than this in XY are merged before triangulation
DEFAULT_MERGE_TOLERANCE = 1e-9

# Barycentric slack for point location. Points on a hull edge are inside.
LOCATE_TOLERANCE = 1e-9

# Multiple of the coordinate rounding error accepted as "on the edge"
ROUNDING_SLACK = 16.0

# Batch queries with every barycentric weight above this skip the tie-break scan
INTERIOR_MARGIN = 1e-6


def _local_origin(xy: np.ndarray) -> np.ndarray:
    """Lower-left XY corner; geometry is computed relative to it."""
    return xy.min(axis=0)


def _triangle_areas(xyz: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Signed planar (XY) area of each triangle; `xyz` may be Nx2 or Nx3."""
    a = xyz[triangles[:, 0], :2]
    b = xyz[triangles[:, 1], :2]
    c = xyz[triangles[:, 2], :2]
    return 0.5 * (
        (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) -
        (c[:, 0] - a[:, 0]) * (b[:, 1] - a[:, 1])
    )


def _merge_near_duplicates(xyz: np.ndarray, tolerance: float) -> np.ndarray:
    """Drop points within `tolerance` (XY) of an earlier kept point."""
    if tolerance <= 0 or len(xyz) < 2:
        return xyz

    tree = cKDTree(xyz[:, :2])
    pairs = tree.query_pairs(r=tolerance, output_type='ndarray')
    if len(pairs) == 0:
        return xyz

    # query_pairs yields i < j; visiting in index order keeps the first occurrence
    pairs = pairs[np.lexsort((pairs[:, 1], pairs[:, 0]))]
    dropped = np.zeros(len(xyz), dtype=bool)
    for i, j in pairs:
        if not dropped[i]:
            dropped[j] = True

    logger.debug("Merged %d near-duplicate points (tolerance %g)", int(dropped.sum()), tolerance)
    return xyz[~dropped]


def _is_collinear(xy: np.ndarray) -> bool:
    centered = xy - xy.mean(axis=0)
    singular = np.linalg.svd(centered, compute_uv=False)
    return singular[0] == 0 or singular[1] <= 1e-10 * singular[0]


@dataclass(frozen=True, eq=False)
class Surface:
    """
    Immutable triangulated surface.

    Attributes:
        vertices: Nx3 array of (x, y, z) vertex coordinates
        triangles: Mx3 array of vertex indices, one row per triangle
        crs: Coordinate reference system the vertices are expressed in

    Arrays are made read-only on construction. Edits go through
    `with_points` / `merge_with`, which return a new Surface.
    """
    vertices: np.ndarray
    triangles: np.ndarray
    crs: Optional[str] = None

    _delaunay: Optional[Delaunay] = field(default=None, init=False, repr=False)
    _simplex_triangle: Optional[np.ndarray] = field(default=None, init=False, repr=False)
    _origin: np.ndarray = field(default=None, init=False, repr=False)
    _local_xy: np.ndarray = field(default=None, init=False, repr=False)
    _weight_slack: np.ndarray = field(default=None, init=False, repr=False)
    _boundary_triangles: np.ndarray = field(default=None, init=False, repr=False)
    _edge_triangles: Dict[Tuple[int, int], Tuple[int, ...]] = field(
        default_factory=dict, init=False, repr=False
    )
    _vertex_triangles: List[np.ndarray] = field(
        default_factory=list, init=False, repr=False
    )

    def __post_init__(self):
        vertices = np.array(self.vertices, dtype=np.float64)
        triangles = np.array(self.triangles, dtype=np.intp)

        if vertices.ndim != 2 or vertices.shape[1] != 3:
            raise DegenerateInputError(f"vertices must be Nx3 array, got shape {vertices.shape}")
        if triangles.ndim != 2 or triangles.shape[1] != 3:
            raise DegenerateInputError(f"triangles must be Mx3 array, got shape {triangles.shape}")
        if len(triangles) == 0:
            raise DegenerateInputError("Surface needs at least one triangle")
        if triangles.min() < 0 or triangles.max() >= len(vertices):
            raise DegenerateInputError("triangle indices reference missing vertices")

        vertices.setflags(write=False)
        triangles.setflags(write=False)
        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "triangles", triangles)

        edges: Dict[Tuple[int, int], List[int]] = {}
        incident: List[List[int]] = [[] for _ in range(len(vertices))]
        for t, (a, b, c) in enumerate(triangles.tolist()):
            for u, v in ((a, b), (b, c), (c, a)):
                edges.setdefault((min(u, v), max(u, v)), []).append(t)
            incident[a].append(t)
            incident[b].append(t)
            incident[c].append(t)

        object.__setattr__(
            self, "_edge_triangles", {k: tuple(v) for k, v in edges.items()}
        )
        object.__setattr__(
            self, "_vertex_triangles", [np.array(v, dtype=np.intp) for v in incident]
        )
        object.__setattr__(self, "_boundary_triangles", np.unique(np.array(
            [tris[0] for tris in self._edge_triangles.values() if len(tris) == 1],
            dtype=np.intp,
        )))

        origin = _local_origin(vertices[:, :2])
        local_xy = vertices[:, :2] - origin
        object.__setattr__(self, "_origin", origin)
        object.__setattr__(self, "_local_xy", local_xy)

        # Query points carry rounding error proportional to the magnitude of
        # their coordinates; convert it to a weight slack using each
        # triangle's heights.
        rounding = ROUNDING_SLACK * np.finfo(np.float64).eps * float(np.abs(vertices[:, :2]).max())
        a, b, c = (local_xy[triangles[:, k]] for k in range(3))
        ab, ac = b - a, c - a
        double_area = np.abs(ab[:, 0] * ac[:, 1] - ac[:, 0] * ab[:, 1])
        opposite = np.column_stack([
            np.hypot(*(c - b).T), np.hypot(*(a - c).T), np.hypot(*(b - a).T),
        ])
        with np.errstate(divide='ignore', invalid='ignore'):
            heights = double_area[:, None] / opposite
            slack = LOCATE_TOLERANCE + np.where(heights > 0, rounding / heights, 0.0)
        object.__setattr__(self, "_weight_slack", slack)

    @classmethod
    def build(
        cls,
        points,
        tolerance: float = DEFAULT_MERGE_TOLERANCE,
        crs: Optional[str] = None,
    ) -> Surface:
        """
        Triangulate the XY projection of a point set (Delaunay).

        Args:
            points: Nx3 array-like of (x, y, z)
            tolerance: XY distance below which points are merged
            crs: Optional CRS label carried on the surface

        Returns:
            Surface instance

        Raises:
            DegenerateInputError: If fewer than 3 non-collinear points remain
        """
        xyz = np.asarray(points, dtype=np.float64)
        if xyz.ndim != 2 or xyz.shape[1] != 3:
            raise DegenerateInputError(f"points must be Nx3 array, got shape {xyz.shape}")

        finite = np.all(np.isfinite(xyz), axis=1)
        if not np.all(finite):
            logger.warning("Ignoring %d points with non-finite coordinates", int((~finite).sum()))
            xyz = xyz[finite]

        xyz = _merge_near_duplicates(xyz, tolerance)

        if len(xyz) < 3:
            raise DegenerateInputError(
                f"At least 3 distinct points are required to build a surface, got {len(xyz)} "
                f"after merging points closer than {tolerance}."
            )
        if _is_collinear(xyz[:, :2]):
            raise DegenerateInputError(
                f"All {len(xyz)} points are collinear in plan; no triangle can be formed."
            )

        local = xyz.copy()
        local[:, :2] -= _local_origin(xyz[:, :2])
        try:
            delaunay = Delaunay(local[:, :2])
        except QhullError as e:
            raise DegenerateInputError(f"Triangulation failed: {e}") from e

        simplices = delaunay.simplices
        scale = float(np.ptp(xyz[:, :2], axis=0).max())
        keep = np.abs(_triangle_areas(local, simplices)) > 1e-12 * scale * scale
        if not np.any(keep):
            raise DegenerateInputError("Triangulation produced no non-degenerate triangles")

        simplex_triangle = np.full(len(simplices), -1, dtype=np.intp)
        simplex_triangle[keep] = np.arange(int(keep.sum()))

        logger.debug("Built TIN: %d vertices, %d triangles", len(xyz), int(keep.sum()))
        surface = cls(vertices=xyz, triangles=simplices[keep], crs=crs)
        object.__setattr__(surface, "_delaunay", delaunay)
        object.__setattr__(surface, "_simplex_triangle", simplex_triangle)
        return surface

    @classmethod
    def from_point_cloud(
        cls,
        point_cloud: 'PointCloud',
        ground_only: bool = True,
        tolerance: float = DEFAULT_MERGE_TOLERANCE,
    ) -> Surface:
        """Build a surface from a PointCloud, optionally keeping ground points only."""
        from ..io.point_cloud import PointCloudLoader

        if ground_only and point_cloud.classification is not None:
            pc = point_cloud.filter_by_classification([PointCloudLoader.CLASS_GROUND])
        else:
            pc = point_cloud

        return cls.build(pc.xyz, tolerance=tolerance, crs=point_cloud.crs)

    @property
    def num_points(self) -> int:
        return len(self.vertices)

    @property
    def num_triangles(self) -> int:
        return len(self.triangles)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Spatial bounds (min_x, min_y, max_x, max_y)."""
        min_x, min_y = self.vertices[:, :2].min(axis=0)
        max_x, max_y = self.vertices[:, :2].max(axis=0)
        return (float(min_x), float(min_y), float(max_x), float(max_y))

    @property
    def hull(self) -> 'Polygon':
        """Convex hull of the XY projection as a shapely Polygon."""
        from shapely.geometry import MultiPoint

        return MultiPoint(self.vertices[:, :2].tolist()).convex_hull

    @property
    def edge_triangles(self) -> Dict[Tuple[int, int], Tuple[int, ...]]:
        """Map of (low vertex, high vertex) edge to the triangles sharing it."""
        return self._edge_triangles

    def boundary_edges(self) -> List[Tuple[int, int]]:
        """Edges used by exactly one triangle."""
        return sorted(e for e, tris in self._edge_triangles.items() if len(tris) == 1)

    def _candidate_triangles(self, lx: float, ly: float) -> np.ndarray:
        if self._delaunay is None:
            return np.arange(len(self.triangles))

        simplex = int(self._delaunay.find_simplex(np.array([[lx, ly]]), tol=LOCATE_TOLERANCE)[0])
        if simplex < 0:
            # Rounding can push a point on the hull just outside; only
            # triangles along the hull can still claim it.
            return self._boundary_triangles

        around = [self._vertex_triangles[v] for v in self._delaunay.simplices[simplex]]
        return np.unique(np.concatenate(around))

    def _barycentric(self, tris: np.ndarray, lx, ly) -> np.ndarray:
        """Weights of local point(s) (lx, ly) in triangles `tris` (broadcast)."""
        corners = self.triangles[tris]
        a = self._local_xy[corners[:, 0]]
        b = self._local_xy[corners[:, 1]]
        c = self._local_xy[corners[:, 2]]

        with np.errstate(divide='ignore', invalid='ignore'):
            det = (b[:, 1] - c[:, 1]) * (a[:, 0] - c[:, 0]) + (c[:, 0] - b[:, 0]) * (a[:, 1] - c[:, 1])
            u = ((b[:, 1] - c[:, 1]) * (lx - c[:, 0]) + (c[:, 0] - b[:, 0]) * (ly - c[:, 1])) / det
            v = ((c[:, 1] - a[:, 1]) * (lx - c[:, 0]) + (a[:, 0] - c[:, 0]) * (ly - c[:, 1])) / det
        return np.column_stack([u, v, 1.0 - u - v])

    def _interpolate(self, tris: np.ndarray, weights: np.ndarray) -> np.ndarray:
        z = self.vertices[self.triangles[tris], 2]
        za, zb, zc = z[:, 0], z[:, 1], z[:, 2]
        return zc + weights[:, 0] * (za - zc) + weights[:, 1] * (zb - zc)

    def locate(self, x: float, y: float) -> Optional[int]:
        """
        Index of the triangle containing (x, y), or None outside the hull.

        Points on an edge or vertex shared by several triangles resolve
        to the lowest triangle index, so repeated queries agree.
        """
        hit = self._locate(float(x), float(y))
        return None if hit is None else hit[0]

    def _locate(self, x: float, y: float) -> Optional[Tuple[int, np.ndarray]]:
        lx, ly = x - self._origin[0], y - self._origin[1]
        candidates = self._candidate_triangles(lx, ly)
        if candidates.size == 0:
            return None

        weights = self._barycentric(candidates, lx, ly)
        inside = np.flatnonzero(np.all(weights >= -self._weight_slack[candidates], axis=1))
        if inside.size == 0:
            return None

        # candidates are sorted, so the first hit is the lowest triangle index
        first = inside[0]
        return int(candidates[first]), weights[first]

    def elevation_at(self, x: float, y: float) -> Optional[float]:
        """
        Interpolated elevation at (x, y), or None outside the convex hull.

        No extrapolation is performed.
        """
        hit = self._locate(float(x), float(y))
        if hit is None:
            return None

        tri, weights = hit
        return float(self._interpolate(np.array([tri]), weights[None, :])[0])

    def elevations_at(self, xy) -> np.ndarray:
        """
        Elevations for an Nx2 array of points; NaN where outside the surface.

        All points are located with one Delaunay walk. Points well inside
        their triangle are interpolated directly; points near an edge or
        outside go through the same scan as `elevation_at`.
        """
        xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
        out = np.full(len(xy), np.nan)
        if len(xy) == 0:
            return out

        local = xy - self._origin
        pending = np.ones(len(xy), dtype=bool)

        if self._delaunay is not None:
            simplex = self._delaunay.find_simplex(local, tol=LOCATE_TOLERANCE)
            found = np.flatnonzero(simplex >= 0)
            tris = self._simplex_triangle[simplex[found]]
            found, tris = found[tris >= 0], tris[tris >= 0]

            weights = self._barycentric(tris, local[found, 0], local[found, 1])
            margin = np.maximum(self._weight_slack[tris], INTERIOR_MARGIN)
            clear = np.all(weights > margin, axis=1)

            out[found[clear]] = self._interpolate(tris[clear], weights[clear])
            pending[found[clear]] = False

        for i in np.flatnonzero(pending):
            z = self.elevation_at(xy[i, 0], xy[i, 1])
            if z is not None:
                out[i] = z
        return out

    def elevation_difference_at(self, other: Surface, x: float, y: float) -> Optional[float]:
        """Elevation of this surface minus `other` at (x, y), or None where either is absent."""
        a = self.elevation_at(x, y)
        b = other.elevation_at(x, y)
        if a is None or b is None:
            return None
        return a - b

    def contains(self, x: float, y: float) -> bool:
        return self._locate(float(x), float(y)) is not None

    def triangle_areas(self) -> np.ndarray:
        """Planar area of each triangle."""
        return np.abs(_triangle_areas(self._local_xy, self.triangles))

    def triangle_slopes(self) -> np.ndarray:
        """Slope of each triangle in degrees."""
        a = self.vertices[self.triangles[:, 0]]
        b = self.vertices[self.triangles[:, 1]]
        c = self.vertices[self.triangles[:, 2]]
        normal = np.cross(b - a, c - a)
        return np.degrees(np.arctan2(np.hypot(normal[:, 0], normal[:, 1]), np.abs(normal[:, 2])))

    def volume_to_elevation(self, base_elevation: float) -> float:
        """Signed volume between the surface and a horizontal plane."""
        mean_z = self.vertices[self.triangles, 2].mean(axis=1)
        return float(np.sum(self.triangle_areas() * (mean_z - base_elevation)))

    def volume_between(self, other: Surface) -> float:
        """
        Net volume of this surface above `other`, measured from the lowest
        elevation of the two. Each surface contributes over its own extent.
        """
        base = min(float(self.vertices[:, 2].min()), float(other.vertices[:, 2].min()))
        return self.volume_to_elevation(base) - other.volume_to_elevation(base)

    def _prisms_over(self, other: Surface) -> Tuple[np.ndarray, np.ndarray]:
        """Plan area and mean (self - other) height of triangles fully covered by `other`."""
        below = other.elevations_at(self.vertices[:, :2])
        dz = self.vertices[:, 2] - below
        per_corner = dz[self.triangles]
        covered = ~np.any(np.isnan(per_corner), axis=1)
        return self.triangle_areas()[covered], per_corner[covered].mean(axis=1)

    def prismoidal_volume_between(self, other: Surface) -> float:
        """
        Net volume of this surface above `other` where both have data.

        Prisms are summed over each surface's triangles against the other
        and the two results averaged, so differing triangulations do not
        bias the answer.
        """
        area_ab, dz_ab = self._prisms_over(other)
        area_ba, dz_ba = other._prisms_over(self)
        return float(np.sum(area_ab * dz_ab) - np.sum(area_ba * dz_ba)) / 2

    def cut_fill_between(self, other: Surface) -> Tuple[float, float]:
        """
        Cut and fill volumes between this surface and `other`.

        Cut is where this surface lies below `other` (material removed to
        reach it), fill where it lies above. Only triangles whose three
        vertices are covered by the other surface contribute; each
        triangle counts as cut or fill by the sign of its mean height.
        The calculation runs in both directions and is averaged.

        Returns:
            Tuple of (cut, fill), both non-negative
        """
        area_ab, dz_ab = self._prisms_over(other)
        area_ba, dz_ba = other._prisms_over(self)

        fill_ab = float(np.sum(area_ab * np.maximum(dz_ab, 0.0)))
        cut_ab = float(np.sum(area_ab * np.maximum(-dz_ab, 0.0)))
        fill_ba = float(np.sum(area_ba * np.maximum(dz_ba, 0.0)))
        cut_ba = float(np.sum(area_ba * np.maximum(-dz_ba, 0.0)))

        return (cut_ab + fill_ba) / 2, (fill_ab + cut_ba) / 2

    def statistics(self) -> dict:
        """Calculate basic statistics for the surface."""
        z = self.vertices[:, 2]
        return {
            "min_elevation": float(np.min(z)),
            "max_elevation": float(np.max(z)),
            "mean_elevation": float(np.mean(z)),
            "std_elevation": float(np.std(z)),
            "elevation_range": float(np.ptp(z)),
            "num_points": self.num_points,
            "num_triangles": self.num_triangles,
            "plan_area": float(np.sum(self.triangle_areas())),
            "mean_slope": float(np.mean(self.triangle_slopes())),
        }

    def with_points(self, points, tolerance: float = DEFAULT_MERGE_TOLERANCE) -> Surface:
        """Return a new surface with extra points added and retriangulated."""
        extra = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return Surface.build(np.vstack([self.vertices, extra]), tolerance=tolerance, crs=self.crs)

    def merge_with(self, other: Surface, tolerance: float) -> Surface:
        """
        Merge another surface into this one.

        Vertices of `other` within `tolerance` of a vertex of this surface
        are discarded; the result is retriangulated from the kept points.
        """
        return self.with_points(other.vertices, tolerance=tolerance)
