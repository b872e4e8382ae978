"""
Alignment Input Module

Readers for horizontal alignment, vertical profile and superelevation
CSV files, and one-shot preparation of all corridor inputs in a common
coordinate system.

File formats (comma-separated, optional header row):
    horizontal:     x, y [, radius]     one row per vertex / PI
    profile:        station, elevation [, curve_length]
    superelevation: station, left_slope, right_slope
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from ..core.alignment import (
    Alignment,
    HorizontalAlignment,
    SuperelevationRow,
    SuperelevationTable,
    VerticalCurve,
    VerticalProfile,
)
from ..core.crs import CrsNormalizer, TransformFn, pyproj_transform
from ..core.surface import Surface
from ..core.validation import MalformedAlignmentError
from .point_cloud import PointCloud, PointCloudLoader, read_numeric_csv

logger = logging.getLogger(__name__)


def read_horizontal_csv(filepath: str | Path) -> np.ndarray:
    """
    Read horizontal alignment vertices.

    Returns:
        Nx2 array of (x, y), or Nx3 of (x, y, radius) when a radius
        column is present
    """
    _, rows = read_numeric_csv(filepath, min_columns=2)
    if len(rows) < 2:
        raise MalformedAlignmentError(
            f"{Path(filepath).name}: horizontal alignment needs at least 2 vertices, got {len(rows)}"
        )

    columns = 3 if all(len(r) >= 3 for r in rows) else 2
    return np.array([r[:columns] for r in rows], dtype=np.float64)


def horizontal_from_rows(rows: np.ndarray) -> HorizontalAlignment:
    """
    Build a horizontal alignment from vertex rows.

    Two columns give a polyline of tangents; a third column gives the
    curve radius at each PI (values at the end points are ignored).
    """
    rows = np.asarray(rows, dtype=np.float64)
    if rows.shape[1] >= 3 and len(rows) > 2:
        return HorizontalAlignment.from_pis(rows[:, :2], rows[1:-1, 2])
    return HorizontalAlignment.from_polyline(rows[:, :2])


def read_profile_csv(filepath: str | Path) -> VerticalProfile:
    """
    Read a vertical profile.

    A third column, where non-zero, is the length of a symmetric vertical
    curve centred on that control point.
    """
    _, rows = read_numeric_csv(filepath, min_columns=2)
    if not rows:
        raise MalformedAlignmentError(f"{Path(filepath).name}: vertical profile is empty")

    points = [(r[0], r[1]) for r in rows]
    curves = [
        VerticalCurve(pvi_station=r[0], length=r[2])
        for r in rows
        if len(r) >= 3 and r[2] > 0
    ]
    return VerticalProfile(points=tuple(points), curves=tuple(curves))


def read_superelevation_csv(filepath: str | Path) -> SuperelevationTable:
    """Read superelevation rows (station, left_slope, right_slope)."""
    _, rows = read_numeric_csv(filepath, min_columns=3)
    return SuperelevationTable(tuple(
        SuperelevationRow(station=r[0], left_slope=r[1], right_slope=r[2])
        for r in rows
    ))


@dataclass(frozen=True)
class CorridorInputs:
    """Surfaces and alignment expressed in one coordinate system."""
    design: Surface
    ground: Surface
    alignment: Alignment
    crs: Optional[str] = None


def prepare_inputs(
    design_points: PointCloud,
    ground_points: PointCloud,
    horizontal_rows: np.ndarray,
    profile: Optional[VerticalProfile] = None,
    superelevation: Optional[SuperelevationTable] = None,
    alignment_crs: Optional[str] = None,
    target_crs: Optional[str] = None,
    transform: TransformFn = pyproj_transform,
    tolerance: float = 1e-9,
) -> CorridorInputs:
    """
    Normalize every input to `target_crs` once, then build the models.

    Point clouds carry their own CRS; alignment vertices use
    `alignment_crs`. Inputs without a declared CRS, or with no target
    given, are taken as already being in the common system. Profile and
    superelevation are station-based and are not transformed.

    Raises:
        UnsupportedCrsError: If a CRS is not recognised
        TransformFailure: If any point fails to transform
        DegenerateInputError: If a surface cannot be triangulated
        MalformedAlignmentError: If the alignment geometry is inconsistent
    """
    design_xyz, ground_xyz = design_points.xyz, ground_points.xyz
    rows = np.asarray(horizontal_rows, dtype=np.float64)

    if target_crs:
        normalizer = CrsNormalizer(target_crs, transform=transform)
        design_xyz = normalizer.normalize_points(design_xyz, design_points.crs)
        ground_xyz = normalizer.normalize_points(ground_xyz, ground_points.crs)
        xy = normalizer.normalize_xy(rows[:, :2], alignment_crs)
        rows = np.column_stack([xy, rows[:, 2:]])

    design = Surface.build(design_xyz, tolerance=tolerance, crs=target_crs or design_points.crs)
    ground_pc = ground_points.with_xyz(ground_xyz, target_crs or ground_points.crs)
    ground = Surface.from_point_cloud(ground_pc, tolerance=tolerance)

    alignment = Alignment(
        horizontal=horizontal_from_rows(rows),
        profile=profile,
        superelevation=superelevation or SuperelevationTable(),
    )
    logger.info(
        "Prepared corridor: design %d pts, ground %d pts, alignment %.3f long",
        design.num_points, ground.num_points, alignment.length,
    )
    return CorridorInputs(design=design, ground=ground, alignment=alignment, crs=target_crs)


def load_inputs(
    design_path: str | Path,
    ground_path: str | Path,
    horizontal_path: str | Path,
    profile_path: Optional[str | Path] = None,
    superelevation_path: Optional[str | Path] = None,
    source_crs: Optional[str] = None,
    target_crs: Optional[str] = None,
) -> CorridorInputs:
    """Read corridor input files and prepare them with `prepare_inputs`."""
    return prepare_inputs(
        design_points=PointCloudLoader.load(design_path, crs=source_crs),
        ground_points=PointCloudLoader.load(ground_path, crs=source_crs),
        horizontal_rows=read_horizontal_csv(horizontal_path),
        profile=read_profile_csv(profile_path) if profile_path else None,
        superelevation=read_superelevation_csv(superelevation_path) if superelevation_path else None,
        alignment_crs=source_crs,
        target_crs=target_crs,
    )
