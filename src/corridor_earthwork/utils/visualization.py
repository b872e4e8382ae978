"""
Visualization Utilities

Plotting functions for mass-haul curves, station areas, cross-sections
and corridor plan views.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, TYPE_CHECKING
import numpy as np

try:
    import matplotlib.pyplot as plt
    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False

if TYPE_CHECKING:
    from ..core.alignment import HorizontalAlignment
    from ..core.cross_section import CrossSection
    from ..core.surface import Surface
    from ..core.volume import MassHaulResult

logger = logging.getLogger(__name__)

CUT_COLOR = (0.8, 0.2, 0.2)
FILL_COLOR = (0.2, 0.2, 0.8)


def require_matplotlib():
    if not HAS_MATPLOTLIB:
        raise ImportError("matplotlib is required. Install with: pip install matplotlib")


def _figure(ax, figsize):
    if ax is None:
        return plt.subplots(figsize=figsize)
    return ax.figure, ax


def plot_mass_haul(
    result: 'MassHaulResult',
    ax: Optional[plt.Axes] = None,
    title: str = "Mass Haul Diagram",
    show_balance: bool = True,
    figsize: Tuple[int, int] = (12, 5),
) -> plt.Figure:
    """
    Plot cumulative net volume against station.

    Rising segments are in cut, falling segments in fill; zero crossings
    are balance points.

    Args:
        result: MassHaulResult from volume computation
        ax: Optional matplotlib axes (creates new figure if None)
        title: Plot title
        show_balance: Mark balance stations
        figsize: Figure size if creating new figure

    Returns:
        matplotlib Figure
    """
    require_matplotlib()
    fig, ax = _figure(ax, figsize)

    stations = result.stations
    net = np.array([p.cumulative_net for p in result])

    ax.plot(stations, net, 'k-', linewidth=2, label='Cumulative net (cut - fill)')
    ax.fill_between(stations, net, 0, where=net >= 0, color=CUT_COLOR, alpha=0.3, interpolate=True)
    ax.fill_between(stations, net, 0, where=net < 0, color=FILL_COLOR, alpha=0.3, interpolate=True)
    ax.axhline(0, color='gray', linewidth=0.8)

    if show_balance:
        for station in result.balance_stations():
            ax.axvline(station, color='green', linestyle='--', linewidth=1)

    for gap in result.coverage_gaps:
        ax.axvline(gap.station, color='orange', alpha=0.4, linewidth=1)

    ax.set_xlabel('Station')
    ax.set_ylabel('Volume')
    ax.set_title(title)
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)

    return fig


def plot_station_areas(
    result: 'MassHaulResult',
    ax: Optional[plt.Axes] = None,
    title: str = "End Areas",
    figsize: Tuple[int, int] = (12, 4),
) -> plt.Figure:
    """Plot cut (up) and fill (down) cross-section areas by station."""
    require_matplotlib()
    fig, ax = _figure(ax, figsize)

    stations = np.array([a.station for a in result.station_areas])
    cut = np.array([a.cut_area for a in result.station_areas])
    fill = np.array([a.fill_area for a in result.station_areas])

    ax.plot(stations, cut, color=CUT_COLOR, label='Cut area')
    ax.plot(stations, -fill, color=FILL_COLOR, label='Fill area')
    ax.axhline(0, color='gray', linewidth=0.8)

    ax.set_xlabel('Station')
    ax.set_ylabel('Area')
    ax.set_title(title)
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)

    return fig


def plot_cross_section(
    section: 'CrossSection',
    ax: Optional[plt.Axes] = None,
    title: Optional[str] = None,
    figsize: Tuple[int, int] = (12, 4),
) -> plt.Figure:
    """
    Plot design and ground lines of one cross-section.

    Cut is shaded where ground is above design, fill where it is below.
    Missing samples leave breaks in the lines.

    Args:
        section: CrossSection to plot
        ax: Optional axes
        title: Plot title (defaults to the station)
        figsize: Figure size

    Returns:
        matplotlib Figure
    """
    require_matplotlib()
    fig, ax = _figure(ax, figsize)

    offsets = section.offsets
    ax.plot(offsets, section.ground, 'k-', linewidth=2, label='Existing ground')
    ax.plot(offsets, section.design, 'r--', linewidth=2, label='Design')

    valid = section.valid
    ax.fill_between(
        offsets, section.ground, section.design,
        where=valid & (section.ground > section.design),
        color=CUT_COLOR, alpha=0.4, interpolate=True, label='Cut',
    )
    ax.fill_between(
        offsets, section.ground, section.design,
        where=valid & (section.ground < section.design),
        color=FILL_COLOR, alpha=0.4, interpolate=True, label='Fill',
    )

    ax.axvline(0, color='gray', linewidth=0.8)
    ax.set_xlabel('Offset (right - / left +)')
    ax.set_ylabel('Elevation')
    ax.set_title(title or f"Cross Section at Station {section.station:,.2f}")
    ax.legend(loc='upper right')
    ax.grid(True, alpha=0.3)

    return fig


def plot_plan(
    alignment: 'HorizontalAlignment',
    surfaces: Tuple['Surface', ...] = (),
    ax: Optional[plt.Axes] = None,
    title: str = "Corridor Plan",
    figsize: Tuple[int, int] = (10, 8),
) -> plt.Figure:
    """Plot the alignment centreline over the surface hulls."""
    require_matplotlib()
    fig, ax = _figure(ax, figsize)

    for i, surface in enumerate(surfaces):
        x, y = surface.hull.exterior.xy
        ax.plot(x, y, linewidth=1, label=f'Surface {i + 1} extent')

    pts = alignment.as_points()
    ax.plot(pts[:, 0], pts[:, 1], 'r-', linewidth=2, label='Centreline')

    ax.set_aspect('equal')
    ax.set_xlabel('X')
    ax.set_ylabel('Y')
    ax.set_title(title)
    ax.legend(loc='best')

    return fig


def create_report_figure(
    result: 'MassHaulResult',
    alignment: Optional['HorizontalAlignment'] = None,
    surfaces: Tuple['Surface', ...] = (),
    section_index: Optional[int] = None,
) -> plt.Figure:
    """
    Create a report figure with mass haul, end areas, a section and summary.

    Args:
        result: MassHaulResult
        alignment: Optional alignment for the plan view
        surfaces: Surfaces drawn in the plan view
        section_index: Cross-section to show (defaults to the largest cut)

    Returns:
        matplotlib Figure with 4 subplots
    """
    require_matplotlib()

    fig = plt.figure(figsize=(16, 12))

    plot_mass_haul(result, ax=fig.add_subplot(221))
    plot_station_areas(result, ax=fig.add_subplot(222))

    ax3 = fig.add_subplot(223)
    if result.cross_sections:
        if section_index is None:
            section_index = int(np.argmax([a.cut_area for a in result.station_areas]))
        plot_cross_section(result.cross_sections[section_index], ax=ax3)
    elif alignment is not None:
        plot_plan(alignment, surfaces, ax=ax3)

    ax4 = fig.add_subplot(224)
    ax4.axis('off')
    ax4.text(
        0.05, 0.95, result.summary(),
        transform=ax4.transAxes,
        verticalalignment='top',
        fontfamily='monospace',
        fontsize=10,
    )

    plt.tight_layout()
    return fig


def save_report(
    figure: plt.Figure,
    filepath: str,
    dpi: int = 150,
) -> None:
    """Save report figure to file."""
    figure.savefig(filepath, dpi=dpi, bbox_inches='tight')
    logger.info("Report saved to %s", filepath)
