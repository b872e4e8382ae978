"""
Export utilities for corridor earthwork results.

Provides CSV, JSON and GeoJSON exports.
Uses the standard library for CSV/JSON and shapely for geometry.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Dict, Any, List

import numpy as np

from ..core.validation import validate_output_path

if TYPE_CHECKING:
    from ..core.alignment import HorizontalAlignment
    from ..core.cross_section import CrossSection
    from ..core.volume import MassHaulResult

logger = logging.getLogger(__name__)


def export_mass_haul_csv(
    result: 'MassHaulResult',
    filepath: str | Path,
    include_header: bool = True,
) -> None:
    """
    Export the mass-haul table to CSV, one row per station.

    Columns: station, cut_area, fill_area, cut_volume, fill_volume,
             cumulative_cut, cumulative_fill, cumulative_net

    Args:
        result: MassHaulResult from volume computation
        filepath: Output CSV file path
        include_header: Whether to include column header row (default: True)
    """
    filepath = validate_output_path(filepath, "mass-haul CSV")

    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)

        if include_header:
            writer.writerow([
                'station', 'cut_area', 'fill_area',
                'cut_volume', 'fill_volume',
                'cumulative_cut', 'cumulative_fill', 'cumulative_net',
            ])

        for point, area in zip(result.points, result.station_areas):
            writer.writerow([
                f"{point.station:.3f}",
                f"{area.cut_area:.4f}",
                f"{area.fill_area:.4f}",
                f"{point.cut_volume:.4f}",
                f"{point.fill_volume:.4f}",
                f"{point.cumulative_cut:.4f}",
                f"{point.cumulative_fill:.4f}",
                f"{point.cumulative_net:.4f}",
            ])

    logger.info("Wrote %d mass-haul rows to %s", len(result.points), filepath)


def export_cross_sections_csv(
    sections: List['CrossSection'],
    filepath: str | Path,
) -> None:
    """
    Export sampled cross-sections to CSV, one row per offset.

    Missing surface samples are written as empty cells.

    Columns: station, offset, design_elevation, ground_elevation, difference
    """
    filepath = validate_output_path(filepath, "cross-section CSV")

    def cell(value: float) -> str:
        return "" if np.isnan(value) else f"{value:.4f}"

    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(['station', 'offset', 'design_elevation', 'ground_elevation', 'difference'])

        for section in sections:
            for offset, design, ground, diff in zip(
                section.offsets, section.design, section.ground, section.difference
            ):
                writer.writerow([
                    f"{section.station:.3f}",
                    f"{offset:.3f}",
                    cell(design),
                    cell(ground),
                    cell(diff),
                ])


def export_summary_json(
    result: 'MassHaulResult',
    filepath: str | Path,
    include_cross_sections: bool = False,
    metadata: Optional[Dict[str, Any]] = None,
    indent: int = 2,
) -> None:
    """
    Export mass-haul summary to JSON.

    Args:
        result: MassHaulResult from volume computation
        filepath: Output JSON file path
        include_cross_sections: Include every sampled section (can be large)
        metadata: Extra top-level keys (input files, parameters, ...)
        indent: JSON indentation level (default: 2)
    """
    filepath = validate_output_path(filepath, "summary JSON")

    data = result.to_dict()
    if metadata:
        data['metadata'] = metadata
    if include_cross_sections:
        data['cross_sections'] = [s.to_dict() for s in result.cross_sections]

    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent)


def export_alignment_geojson(
    alignment: 'HorizontalAlignment',
    filepath: str | Path,
    result: Optional['MassHaulResult'] = None,
    width: Optional[float] = None,
    crs: Optional[str] = None,
) -> None:
    """
    Export the alignment centreline (and optionally section lines) to GeoJSON.

    When a result and corridor width are given, each sampled station is
    added as a LineString feature across the corridor carrying its cut/fill
    areas and cumulative volume.

    Args:
        alignment: Horizontal alignment to export
        filepath: Output GeoJSON file path
        result: Optional MassHaulResult for station features
        width: Corridor width for station features
        crs: Optional CRS string (added as foreign member)
    """
    from shapely.geometry import LineString, mapping

    filepath = validate_output_path(filepath, "alignment GeoJSON")

    features: List[Dict[str, Any]] = [{
        "type": "Feature",
        "geometry": mapping(alignment.to_linestring()),
        "properties": {"type": "centreline", "length": alignment.length},
    }]

    if result is not None and width:
        half = width / 2
        for point, area in zip(result.points, result.station_areas):
            section_line = LineString([
                alignment.offset_point(point.station, -half),
                alignment.offset_point(point.station, half),
            ])
            features.append({
                "type": "Feature",
                "geometry": mapping(section_line),
                "properties": {
                    "type": "station",
                    "station": point.station,
                    "cut_area": area.cut_area,
                    "fill_area": area.fill_area,
                    "cumulative_net": point.cumulative_net,
                    "coverage_gap": area.coverage_gap,
                },
            })

    geojson: Dict[str, Any] = {
        "type": "FeatureCollection",
        "features": features,
    }

    # CRS as foreign member (GeoJSON 2008 style)
    if crs:
        geojson["crs"] = {
            "type": "name",
            "properties": {"name": crs}
        }

    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(geojson, f, indent=2)
