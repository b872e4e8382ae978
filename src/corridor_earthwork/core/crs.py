"""
CRS Normalization Module

Converts imported geometry into one common planar coordinate system
before any surface or alignment is built. The projection itself is an
injected function; pyproj provides the default.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Callable, Optional, Tuple

import numpy as np

from .validation import CrsError, TransformFailure, UnsupportedCrsError

logger = logging.getLogger(__name__)

Point = Tuple[float, float, float]

# (point, source_crs, target_crs) -> point
TransformFn = Callable[[Point, str, str], Point]


@lru_cache(maxsize=32)
def _transformer(source_crs: str, target_crs: str):
    from pyproj import Transformer
    from pyproj.exceptions import CRSError

    try:
        return Transformer.from_crs(source_crs, target_crs, always_xy=True)
    except CRSError as e:
        raise UnsupportedCrsError(
            f"Cannot transform from '{source_crs}' to '{target_crs}': {e}"
        ) from e


def pyproj_transform(point: Point, source_crs: str, target_crs: str) -> Point:
    """
    Transform one (x, y, z) point with pyproj.

    Axis order is always (easting/longitude, northing/latitude). Elevation
    passes through the transformer, so vertical datum shifts are applied
    where the CRS definitions include them.

    Raises:
        UnsupportedCrsError: If either CRS definition is not recognised
        TransformFailure: If the projection fails for this point
    """
    from pyproj.exceptions import ProjError

    transformer = _transformer(source_crs, target_crs)
    x, y, z = point
    try:
        tx, ty, tz = transformer.transform(x, y, z, errcheck=True)
    except ProjError as e:
        raise TransformFailure(
            f"Failed to transform ({x}, {y}, {z}) from '{source_crs}' to '{target_crs}': {e}"
        ) from e

    if not all(math.isfinite(v) for v in (tx, ty, tz)):
        raise TransformFailure(
            f"Transform of ({x}, {y}, {z}) from '{source_crs}' produced non-finite coordinates"
        )
    return (float(tx), float(ty), float(tz))


class CrsNormalizer:
    """
    Normalizes point sets into a single target CRS.

    Inputs with no declared CRS, or already in the target CRS, pass
    through unchanged.

    Example:
        >>> normalizer = CrsNormalizer("EPSG:32610")
        >>> xyz = normalizer.normalize_points(points, "EPSG:4326")
    """

    def __init__(self, target_crs: str, transform: TransformFn = pyproj_transform):
        if not target_crs:
            raise UnsupportedCrsError("Target CRS must be specified")
        self.target_crs = target_crs
        self.transform = transform

    def _passthrough(self, source_crs: Optional[str]) -> bool:
        return not source_crs or source_crs == self.target_crs

    def _apply(self, point: Point, source_crs: str) -> Point:
        try:
            return self.transform(point, source_crs, self.target_crs)
        except CrsError:
            raise
        except Exception as e:
            raise TransformFailure(
                f"Transform of {point} from '{source_crs}' to '{self.target_crs}' failed: {e}"
            ) from e

    def normalize_points(self, points, source_crs: Optional[str]) -> np.ndarray:
        """
        Normalize an Nx3 array of (x, y, z) points.

        Returns:
            New Nx3 float64 array in the target CRS

        Raises:
            UnsupportedCrsError: If the source CRS is not recognised
            TransformFailure: If any point fails to transform
        """
        xyz = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if self._passthrough(source_crs):
            return xyz.copy()

        logger.info("Normalizing %d points from %s to %s", len(xyz), source_crs, self.target_crs)
        return np.array(
            [self._apply((x, y, z), source_crs) for x, y, z in xyz.tolist()],
            dtype=np.float64,
        ).reshape(-1, 3)

    def normalize_xy(self, vertices, source_crs: Optional[str]) -> np.ndarray:
        """Normalize an Nx2 array of (x, y) vertices (elevation taken as 0)."""
        xy = np.asarray(vertices, dtype=np.float64).reshape(-1, 2)
        if self._passthrough(source_crs):
            return xy.copy()

        xyz = np.column_stack([xy, np.zeros(len(xy))])
        return self.normalize_points(xyz, source_crs)[:, :2]
