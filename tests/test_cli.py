"""
CLI command tests using Click's test runner.
"""

import pytest
import json

from corridor_earthwork.cli import main


@pytest.fixture
def sample_dir(cli_runner, tmp_output_dir):
    """Sample corridor written by the generate-sample command."""
    out = tmp_output_dir / "sample"
    result = cli_runner.invoke(main, ['generate-sample', '-o', str(out), '--length', '100'])
    assert result.exit_code == 0, result.output
    return out


def corridor_args(sample_dir):
    return [
        str(sample_dir / "design.xyz"),
        str(sample_dir / "ground.xyz"),
        str(sample_dir / "halign.csv"),
        str(sample_dir / "valign.csv"),
    ]


class TestCLIGenerateSample:
    """Test 'generate-sample' command."""

    def test_files_written(self, sample_dir):
        """Test all corridor input files are created."""
        for name in ["ground.xyz", "design.xyz", "halign.csv", "valign.csv", "superelevation.csv"]:
            assert (sample_dir / name).exists()

    def test_alignment_file(self, sample_dir):
        """Test the horizontal alignment runs along the X axis."""
        lines = (sample_dir / "halign.csv").read_text().strip().splitlines()
        assert lines == ["0.0,0.0", "100.0,0.0"]


class TestCLIInfo:
    """Test 'info' command."""

    def test_info_surface(self, cli_runner, sample_dir):
        """Test info command on a sample surface."""
        result = cli_runner.invoke(main, ['info', str(sample_dir / "ground.xyz")])

        assert result.exit_code == 0
        assert 'SURFACE INFO' in result.output
        assert 'TIN triangles:' in result.output
        assert 'Ground:' in result.output

    def test_info_missing_file(self, cli_runner):
        """Test info command with missing file."""
        result = cli_runner.invoke(main, ['info', 'nonexistent.xyz'])

        assert result.exit_code != 0

    def test_info_degenerate_surface(self, cli_runner, tmp_output_dir):
        """Test a file with too few points fails cleanly."""
        path = tmp_output_dir / "line.xyz"
        path.write_text("0 0 0\n1 1 0\n")

        result = cli_runner.invoke(main, ['info', str(path)])

        assert result.exit_code == 1
        assert 'Error loading surface' in result.output


class TestCLIVolume:
    """Test 'volume' command."""

    def test_volume_summary(self, cli_runner, sample_dir):
        """Test volume command prints a summary."""
        result = cli_runner.invoke(main, ['volume', *corridor_args(sample_dir), '-w', '20'])

        assert result.exit_code == 0, result.output
        assert 'MASS HAUL SUMMARY' in result.output
        assert 'NET VOLUME' in result.output

    def test_volume_outputs(self, cli_runner, sample_dir, tmp_output_dir):
        """Test JSON, CSV and GeoJSON exports."""
        output_json = tmp_output_dir / "result.json"
        output_csv = tmp_output_dir / "haul.csv"
        output_geojson = tmp_output_dir / "alignment.geojson"

        result = cli_runner.invoke(main, [
            'volume', *corridor_args(sample_dir),
            '--width', '20',
            '--interval', '20',
            '--superelevation', str(sample_dir / "superelevation.csv"),
            '--output', str(output_json),
            '--export-csv', str(output_csv),
            '--export-geojson', str(output_geojson),
        ])

        assert result.exit_code == 0, result.output

        with open(output_json) as f:
            data = json.load(f)
        assert 'cut_volume' in data
        assert 'fill_volume' in data
        assert len(data['mass_haul']) == 6
        assert data['metadata']['width'] == 20.0

        assert len(output_csv.read_text().strip().splitlines()) == 7
        assert output_geojson.exists()

    def test_volume_invalid_width(self, cli_runner, sample_dir):
        """Test a zero width fails with a clear error."""
        result = cli_runner.invoke(main, ['volume', *corridor_args(sample_dir), '-w', '0'])

        assert result.exit_code == 1
        assert 'must be positive' in result.output

    def test_volume_requires_width(self, cli_runner, sample_dir):
        """Test --width is required."""
        result = cli_runner.invoke(main, ['volume', *corridor_args(sample_dir)])
        assert result.exit_code != 0

    def test_volume_bad_alignment(self, cli_runner, sample_dir, tmp_output_dir):
        """Test a malformed alignment file fails cleanly."""
        bad = tmp_output_dir / "bad.csv"
        bad.write_text("0,0\n")
        args = corridor_args(sample_dir)
        args[2] = str(bad)

        result = cli_runner.invoke(main, ['volume', *args, '-w', '20'])

        assert result.exit_code == 1
        assert 'Error loading inputs' in result.output

    @pytest.mark.requires_matplotlib
    def test_volume_report(self, cli_runner, sample_dir, tmp_output_dir):
        """Test saving a PNG report."""
        import matplotlib
        matplotlib.use("Agg")

        report = tmp_output_dir / "report.png"
        result = cli_runner.invoke(main, [
            'volume', *corridor_args(sample_dir), '-w', '20', '--report', str(report),
        ])

        assert result.exit_code == 0, result.output
        assert report.exists()


class TestCLIMassHaul:
    """Test 'mass-haul' command."""

    def test_station_lines(self, cli_runner, sample_dir):
        """Test one 'station,cumulative_net' line per station."""
        result = cli_runner.invoke(main, ['mass-haul', *corridor_args(sample_dir), '-w', '20', '-i', '25'])

        assert result.exit_code == 0, result.output
        rows = [line.split(',') for line in result.output.strip().splitlines()]
        stations = [float(r[0]) for r in rows]

        assert stations == [0.0, 25.0, 50.0, 75.0, 100.0]
        assert float(rows[0][1]) == 0.0

    def test_parallel_matches_serial(self, cli_runner, sample_dir):
        """Test --workers does not change the output."""
        serial = cli_runner.invoke(main, ['mass-haul', *corridor_args(sample_dir), '-w', '20'])
        parallel = cli_runner.invoke(main, ['mass-haul', *corridor_args(sample_dir), '-w', '20',
                                            '--workers', '4'])

        assert serial.exit_code == 0
        assert serial.output == parallel.output
