"""I/O modules for loading inputs and saving results."""

from .point_cloud import PointCloudLoader, PointCloud
from .alignment_io import (
    read_horizontal_csv,
    read_profile_csv,
    read_superelevation_csv,
    prepare_inputs,
    load_inputs,
)
from .exporters import (
    export_mass_haul_csv,
    export_cross_sections_csv,
    export_summary_json,
    export_alignment_geojson,
)

__all__ = [
    "PointCloudLoader",
    "PointCloud",
    "read_horizontal_csv",
    "read_profile_csv",
    "read_superelevation_csv",
    "prepare_inputs",
    "load_inputs",
    "export_mass_haul_csv",
    "export_cross_sections_csv",
    "export_summary_json",
    "export_alignment_geojson",
]
