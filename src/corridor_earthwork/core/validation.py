"""
Input Validation Module

Provides validation functions and custom exceptions for the corridor_earthwork package.
All validation functions provide clear, actionable error messages.
"""

from __future__ import annotations

import math
import os
import warnings
from pathlib import Path
from typing import TYPE_CHECKING, Sequence, Union

import numpy as np

if TYPE_CHECKING:
    from shapely.geometry import LineString, Polygon


class ValidationError(ValueError):
    """Base exception for validation errors with user-friendly messages."""
    pass


class InputError(ValidationError):
    """Imported geometry cannot be used to build a model."""
    pass


class DegenerateInputError(InputError):
    """Point set has fewer than 3 distinct, non-collinear points."""
    pass


class MalformedAlignmentError(InputError):
    """Alignment, profile or superelevation data is inconsistent."""
    pass


class DomainError(ValidationError):
    """A request falls outside the valid domain of the model."""
    pass


class StationOutOfRangeError(DomainError):
    """Station lies outside [0, total length] of the alignment."""
    pass


class InvalidIntervalError(DomainError):
    """Station interval, offset step or corridor width is not positive."""
    pass


class EmptyAlignmentError(DomainError):
    """Alignment has zero total length."""
    pass


class CrsError(ValidationError):
    """Coordinate reference system problem detected during normalization."""
    pass


class UnsupportedCrsError(CrsError):
    """CRS definition is not recognised by the transform capability."""
    pass


class TransformFailure(CrsError):
    """Transform capability failed for a specific point."""
    pass


class FilePermissionError(ValidationError):
    """Cannot write to specified path."""
    pass


class ComputationCancelled(RuntimeError):
    """Computation was cancelled between stations."""
    pass


class CoverageGapWarning(UserWarning):
    """A surface has no data at one or more sampled offsets."""
    pass


def validate_positive(value: float, context: str) -> float:
    """
    Validate a corridor parameter is a positive, finite number.

    Args:
        value: The value to validate
        context: Name of the parameter (used in error messages)

    Returns:
        The validated value as a float

    Raises:
        InvalidIntervalError: If value is None, not a number, or <= 0
    """
    if value is None:
        raise InvalidIntervalError(f"{context} cannot be None")

    if isinstance(value, bool) or not isinstance(value, (int, float, np.floating, np.integer)):
        raise InvalidIntervalError(
            f"{context} must be a number, got {type(value).__name__}"
        )

    if not math.isfinite(value) or value <= 0:
        raise InvalidIntervalError(
            f"{context} must be positive, got {value}. "
            "Typical values are 5-25 m for station interval and 0.5-2 m for offset step."
        )

    return float(value)


def validate_soil_factor(factor: float, name: str) -> float:
    """
    Validate soil swell/shrink factor is reasonable.

    Args:
        factor: The soil factor to validate
        name: Name of the factor (e.g., "swell_factor", "shrink_factor")

    Returns:
        The validated factor as a float

    Raises:
        ValidationError: If factor is None, not a number, or <= 0
    """
    if factor is None:
        raise ValidationError(f"{name} cannot be None")

    if not isinstance(factor, (int, float)):
        raise ValidationError(
            f"{name} must be a number, got {type(factor).__name__}"
        )

    if factor <= 0:
        raise ValidationError(
            f"{name} must be positive, got {factor}. "
            "Typical swell factors are 1.1-1.5, shrink factors are 0.7-0.95."
        )

    if factor > 3.0 or factor < 0.3:
        warnings.warn(
            f"{name} of {factor} is outside typical range (0.3-3.0). "
            "Verify this is intentional.",
            UserWarning,
            stacklevel=2
        )

    return float(factor)


def validate_increasing_stations(stations: Sequence[float], context: str) -> None:
    """
    Validate that stations are finite and strictly increasing.

    Raises:
        MalformedAlignmentError: If a station is repeated or out of order
    """
    values = np.asarray(stations, dtype=float)

    if not np.all(np.isfinite(values)):
        raise MalformedAlignmentError(f"{context} contains non-finite stations")

    steps = np.diff(values)
    if np.any(steps <= 0):
        bad = int(np.argmax(steps <= 0))
        raise MalformedAlignmentError(
            f"{context} stations must strictly increase: "
            f"station {values[bad + 1]:.3f} follows {values[bad]:.3f} (row {bad + 1})."
        )


def validate_output_path(filepath: Union[str, Path], context: str = "output file") -> Path:
    """
    Validate output path is writable before attempting to write.

    Args:
        filepath: The path to validate
        context: Description of what will be written (used in error messages)

    Returns:
        The validated path as a Path object

    Raises:
        FilePermissionError: If directory doesn't exist or isn't writable
    """
    path = Path(filepath)
    parent = path.parent

    if str(parent) == '.':
        parent = Path.cwd()

    if not parent.exists():
        raise FilePermissionError(
            f"Cannot write {context}: directory '{parent}' does not exist. "
            "Create the directory first or specify a different path."
        )

    if not os.access(parent, os.W_OK):
        raise FilePermissionError(
            f"Cannot write {context}: no write permission for directory '{parent}'."
        )

    if path.exists() and not os.access(path, os.W_OK):
        raise FilePermissionError(
            f"Cannot overwrite {context}: file '{path}' exists but is not writable."
        )

    return path


def check_alignment_overlaps_surface(
    centreline: 'LineString',
    hull: 'Polygon',
    surface_name: str = "surface",
) -> bool:
    """
    Check that an alignment centreline touches a surface's hull.

    A disjoint pair is not an error (every station becomes a coverage gap),
    but it almost always means the inputs were not normalized to the same
    coordinate system, so a CoverageGapWarning is issued.

    Args:
        centreline: Shapely LineString of the alignment
        hull: Shapely Polygon of the surface's convex hull
        surface_name: Name of surface for warning messages

    Returns:
        True if the two geometries intersect
    """
    if centreline.intersects(hull):
        return True

    a_min_x, a_min_y, a_max_x, a_max_y = centreline.bounds
    s_min_x, s_min_y, s_max_x, s_max_y = hull.bounds
    warnings.warn(
        f"The alignment does not overlap the {surface_name}.\n"
        f"  Alignment bounds: X={a_min_x:.1f} to {a_max_x:.1f}, "
        f"Y={a_min_y:.1f} to {a_max_y:.1f}\n"
        f"  Surface bounds: X={s_min_x:.1f} to {s_max_x:.1f}, "
        f"Y={s_min_y:.1f} to {s_max_y:.1f}\n"
        "Ensure both were normalized to the same coordinate system.",
        CoverageGapWarning,
        stacklevel=2
    )
    return False
