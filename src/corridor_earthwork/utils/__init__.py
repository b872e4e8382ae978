"""Utility modules."""

from .visualization import plot_mass_haul, plot_cross_section

__all__ = ["plot_mass_haul", "plot_cross_section"]
