"""Core geometry models and earthwork algorithms."""

from .surface import Surface
from .alignment import Alignment, HorizontalAlignment, VerticalProfile, SuperelevationTable
from .cross_section import CrossSection
from .volume import VolumeCalculator, MassHaulResult, MassHaulPoint

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
]
