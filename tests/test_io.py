"""
Tests for input readers, input preparation and exporters.
"""

import json

import pytest
import numpy as np

from conftest import plane_points
from corridor_earthwork.core.alignment import ArcElement
from corridor_earthwork.core.validation import (
    FilePermissionError,
    InputError,
    MalformedAlignmentError,
)
from corridor_earthwork.io.alignment_io import (
    horizontal_from_rows,
    prepare_inputs,
    read_horizontal_csv,
    read_profile_csv,
    read_superelevation_csv,
)
from corridor_earthwork.io.point_cloud import (
    PointCloud,
    PointCloudLoader,
    _epsg_from_geokeys,
    generate_sample_ground,
)


class TestPointLoading:
    """Tests for point file readers."""

    def test_xyz_with_classification(self, tmp_path):
        """Test whitespace XYZ with a class column."""
        path = tmp_path / "ground.xyz"
        path.write_text("0 0 10 2\n10 0 11 2\n0 10 12 1\n")

        pc = PointCloudLoader.load(path)

        assert pc.num_points == 3
        np.testing.assert_array_equal(pc.classification, [2, 2, 1])
        assert pc.xyz[2, 2] == 12.0

    def test_csv_without_header(self, tmp_path):
        """Test bare x,y,z rows."""
        path = tmp_path / "design.csv"
        path.write_text("0,0,100\n\n10,0,100\n0,10,101\n")

        pc = PointCloudLoader.load(path)

        assert pc.num_points == 3
        assert pc.classification is None

    def test_csv_with_survey_header(self, tmp_path):
        """Test header aliases and column order."""
        path = tmp_path / "survey.csv"
        path.write_text("Northing,Easting,Elevation,code\n5,1,100,7\n6,2,101,7\n")

        pc = PointCloudLoader.load(path)

        np.testing.assert_allclose(pc.xyz, [(1, 5, 100), (2, 6, 101)])

    def test_csv_missing_column(self, tmp_path):
        """Test a header without z raises InputError."""
        path = tmp_path / "bad.csv"
        path.write_text("x,y,code\n1,2,3\n")

        with pytest.raises(InputError, match="'z'"):
            PointCloudLoader.load(path)

    def test_csv_bad_value(self, tmp_path):
        """Test a non-numeric value reports its line."""
        path = tmp_path / "bad.csv"
        path.write_text("0,0,1\n1,oops,2\n")

        with pytest.raises(InputError, match="line 2"):
            PointCloudLoader.load(path)

    def test_declared_crs_assigned(self, tmp_path):
        """Test a fallback CRS is attached to files that declare none."""
        path = tmp_path / "pts.xyz"
        path.write_text("0 0 0\n1 0 0\n0 1 0\n")

        assert PointCloudLoader.load(path, crs="EPSG:2193").crs == "EPSG:2193"

    def test_unsupported_format(self, tmp_path):
        """Test unknown extensions raise InputError."""
        path = tmp_path / "points.ply"
        path.write_text("ply\n")

        with pytest.raises(InputError, match="Unsupported"):
            PointCloudLoader.load(path)

    def test_geokeys_epsg(self):
        """Test EPSG extraction from a GeoTIFF key directory."""
        import struct

        data = struct.pack('<HHHH', 1, 1, 0, 2) + struct.pack('<HHHH', 1024, 0, 1, 1) \
            + struct.pack('<HHHH', 3072, 0, 1, 32610)
        assert _epsg_from_geokeys(data) == "EPSG:32610"
        assert _epsg_from_geokeys(b"") is None

    def test_filter_by_classification(self, sample_point_cloud):
        """Test ground filtering keeps classified points."""
        ground = sample_point_cloud.filter_by_classification([PointCloudLoader.CLASS_GROUND])
        assert ground.num_points == sample_point_cloud.num_points

    def test_filter_without_classes_raises(self):
        """Test filtering requires classification data."""
        pc = PointCloud(xyz=np.zeros((3, 3)))
        with pytest.raises(InputError):
            pc.filter_by_classification([2])

    def test_sample_ground_covers_strip(self):
        """Test the sample strip spans the requested length and width."""
        pc = generate_sample_ground(length=40.0, width=20.0, resolution=2.0)
        lo, hi = pc.bounds

        assert lo[0] == 0.0 and hi[0] == pytest.approx(40.0)
        assert lo[1] == pytest.approx(-10.0) and hi[1] == pytest.approx(10.0)

    @pytest.mark.requires_laspy
    def test_las_roundtrip(self, tmp_path, sample_point_cloud):
        """Test reading a LAS file written with laspy."""
        import laspy

        header = laspy.LasHeader(point_format=0, version="1.2")
        header.scales = np.array([0.001, 0.001, 0.001])
        header.offsets = np.array([0.0, 0.0, 0.0])
        las = laspy.LasData(header)
        las.x = sample_point_cloud.xyz[:, 0]
        las.y = sample_point_cloud.xyz[:, 1]
        las.z = sample_point_cloud.xyz[:, 2]
        las.classification = sample_point_cloud.classification
        path = tmp_path / "ground.las"
        las.write(str(path))

        pc = PointCloudLoader.load(path)

        assert pc.num_points == sample_point_cloud.num_points
        np.testing.assert_allclose(pc.xyz, sample_point_cloud.xyz, atol=1e-3)
        assert np.all(pc.classification == 2)


class TestAlignmentReaders:
    """Tests for alignment, profile and superelevation CSV readers."""

    def test_polyline(self, tmp_path):
        """Test two-column vertices build straight tangents."""
        path = tmp_path / "halign.csv"
        path.write_text("0,0\n100,0\n100,50\n")

        rows = read_horizontal_csv(path)
        alignment = horizontal_from_rows(rows)

        assert rows.shape == (3, 2)
        assert alignment.length == pytest.approx(150.0)

    def test_pis_with_radius(self, tmp_path):
        """Test a radius column fits curves at the PIs."""
        path = tmp_path / "halign.csv"
        path.write_text("x,y,radius\n0,0,0\n100,0,20\n100,100,0\n")

        alignment = horizontal_from_rows(read_horizontal_csv(path))

        assert any(isinstance(e, ArcElement) for e in alignment.elements)

    def test_too_few_vertices(self, tmp_path):
        """Test a single vertex raises MalformedAlignmentError."""
        path = tmp_path / "halign.csv"
        path.write_text("0,0\n")

        with pytest.raises(MalformedAlignmentError):
            read_horizontal_csv(path)

    def test_profile_with_curve(self, tmp_path):
        """Test the optional curve length column."""
        path = tmp_path / "valign.csv"
        path.write_text("station,elevation,curve\n0,100,0\n100,110,50\n200,100,0\n")

        profile = read_profile_csv(path)

        assert len(profile.curves) == 1
        assert profile.elevation_at(100.0) == pytest.approx(108.75)

    def test_profile_two_columns(self, tmp_path):
        """Test header-less station,elevation pairs."""
        path = tmp_path / "valign.csv"
        path.write_text("0,100\n100,105\n")

        assert read_profile_csv(path).elevation_at(50.0) == pytest.approx(102.5)

    def test_superelevation(self, tmp_path):
        """Test superelevation rows."""
        path = tmp_path / "super.csv"
        path.write_text("0,-0.02,-0.02\n50,0.04,-0.04\n")

        table = read_superelevation_csv(path)

        assert table.slopes_at(60.0) == (0.04, -0.04)


class TestPrepareInputs:
    """Tests for one-shot input normalization."""

    def _clouds(self, crs=None):
        design = PointCloud(xyz=plane_points(lambda x, y: np.full_like(x, 100.0)), crs=crs)
        ground = PointCloud(xyz=plane_points(lambda x, y: np.full_like(x, 101.0)), crs=crs)
        return design, ground

    def test_without_crs(self):
        """Test inputs used as-is without a target CRS."""
        design, ground = self._clouds()
        inputs = prepare_inputs(design, ground, np.array([(0.0, 0.0), (100.0, 0.0)]))

        assert inputs.alignment.length == pytest.approx(100.0)
        assert inputs.ground.elevation_at(50, 0) == pytest.approx(101.0)
        assert inputs.crs is None

    def test_all_inputs_normalized(self):
        """Test surfaces and alignment move into the target CRS together."""
        def shift(point, source_crs, target_crs):
            x, y, z = point
            return (x + 500.0, y - 300.0, z)

        design, ground = self._clouds(crs="LOCAL")
        inputs = prepare_inputs(
            design, ground,
            np.array([(0.0, 0.0), (100.0, 0.0)]),
            alignment_crs="LOCAL",
            target_crs="GRID",
            transform=shift,
        )

        assert inputs.crs == "GRID"
        assert inputs.design.crs == "GRID"
        assert inputs.alignment.station_to_point(0.0) == pytest.approx((500.0, -300.0))
        assert inputs.ground.elevation_at(550.0, -300.0) == pytest.approx(101.0)
        assert inputs.design.elevation_at(50.0, 0.0) is None


class TestExporters:
    """Tests for result exports."""

    @pytest.fixture
    def result(self, straight_alignment, design_surface, cut_ground_surface):
        from corridor_earthwork.core.volume import compute

        return compute(straight_alignment, design_surface, cut_ground_surface, 25.0, 20.0, 5.0)

    def test_mass_haul_csv(self, tmp_path, result):
        """Test one CSV row per station."""
        from corridor_earthwork.io.exporters import export_mass_haul_csv

        path = tmp_path / "haul.csv"
        export_mass_haul_csv(result, path)
        lines = path.read_text().strip().splitlines()

        assert lines[0].startswith("station,cut_area")
        assert len(lines) == 1 + len(result)
        assert lines[-1].split(",")[-1] == "4000.0000"

    def test_cross_sections_csv(self, tmp_path, result):
        """Test one CSV row per offset per station."""
        from corridor_earthwork.io.exporters import export_cross_sections_csv

        path = tmp_path / "sections.csv"
        export_cross_sections_csv(result.cross_sections, path)
        lines = path.read_text().strip().splitlines()

        assert len(lines) == 1 + 5 * 5

    def test_summary_json(self, tmp_path, result):
        """Test JSON summary content."""
        from corridor_earthwork.io.exporters import export_summary_json

        path = tmp_path / "summary.json"
        export_summary_json(result, path, include_cross_sections=True, metadata={"width": 20.0})
        data = json.loads(path.read_text())

        assert data["cut_volume"] == pytest.approx(4000.0)
        assert data["metadata"]["width"] == 20.0
        assert len(data["cross_sections"]) == 5

    def test_alignment_geojson(self, tmp_path, result, straight_alignment):
        """Test centreline and station features."""
        from corridor_earthwork.io.exporters import export_alignment_geojson

        path = tmp_path / "alignment.geojson"
        export_alignment_geojson(straight_alignment, path, result=result, width=20.0, crs="EPSG:2193")
        data = json.loads(path.read_text())

        assert data["type"] == "FeatureCollection"
        assert data["features"][0]["geometry"]["type"] == "LineString"
        assert len(data["features"]) == 1 + len(result)
        assert data["crs"]["properties"]["name"] == "EPSG:2193"

    def test_unwritable_directory(self, tmp_path, result):
        """Test exporting into a missing directory raises FilePermissionError."""
        from corridor_earthwork.io.exporters import export_mass_haul_csv

        with pytest.raises(FilePermissionError, match="does not exist"):
            export_mass_haul_csv(result, tmp_path / "missing" / "haul.csv")
