"""
Corridor Earthwork

A Python library for road corridor earthwork: triangulated surfaces,
alignments, cross-sections and mass-haul volumes.
"""

__version__ = "0.1.0"

from .core.surface import Surface
from .core.alignment import (
    Alignment,
    HorizontalAlignment,
    VerticalProfile,
    SuperelevationTable,
)
from .core.cross_section import CrossSection
from .core.volume import VolumeCalculator, MassHaulResult, MassHaulPoint, compute
from .core.crs import CrsNormalizer
from .io.point_cloud import PointCloudLoader

__all__ = [
    "Surface",
    "Alignment",
    "HorizontalAlignment",
    "VerticalProfile",
    "SuperelevationTable",
    "CrossSection",
    "VolumeCalculator",
    "MassHaulResult",
    "MassHaulPoint",
    "compute",
    "CrsNormalizer",
    "PointCloudLoader",
]
