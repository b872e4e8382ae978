"""
Command Line Interface for Corridor Earthwork

Usage:
    corridor-earthwork info <surface>
    corridor-earthwork volume <design> <ground> <halign> <valign> --width <w>
    corridor-earthwork mass-haul <design> <ground> <halign> <valign> --width <w>
    corridor-earthwork generate-sample --output-dir <dir>
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import numpy as np

from . import __version__
from .core.validation import ValidationError
from .core.volume import VolumeCalculator
from .io.alignment_io import CorridorInputs, load_inputs
from .io.point_cloud import PointCloudLoader, generate_sample_ground

CLASS_NAMES = {
    1: "Unclassified",
    2: "Ground",
    3: "Low Vegetation",
    4: "Medium Vegetation",
    5: "High Vegetation",
    6: "Building",
    7: "Noise",
    9: "Water",
}


def corridor_options(func):
    """Arguments and options shared by the volume commands."""
    decorators = [
        click.argument('design_file', type=click.Path(exists=True)),
        click.argument('ground_file', type=click.Path(exists=True)),
        click.argument('halign_file', type=click.Path(exists=True)),
        click.argument('valign_file', type=click.Path(exists=True)),
        click.option('--width', '-w', required=True, type=float, help='Corridor width'),
        click.option('--interval', '-i', default=10.0, show_default=True, help='Station interval'),
        click.option('--offset-step', '-s', default=1.0, show_default=True,
                     help='Spacing of cross-section samples'),
        click.option('--superelevation', type=click.Path(exists=True),
                     help='Superelevation CSV (station,left_slope,right_slope)'),
        click.option('--source-crs', help='CRS of inputs that declare none (e.g. EPSG:4326)'),
        click.option('--target-crs', help='Common CRS to normalize all inputs into'),
        click.option('--workers', type=int, default=None, help='Threads for station sampling'),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _load(
    design_file: str,
    ground_file: str,
    halign_file: str,
    valign_file: str,
    superelevation: Optional[str],
    source_crs: Optional[str],
    target_crs: Optional[str],
) -> CorridorInputs:
    try:
        return load_inputs(
            design_file,
            ground_file,
            halign_file,
            profile_path=valign_file,
            superelevation_path=superelevation,
            source_crs=source_crs,
            target_crs=target_crs,
        )
    except (ValidationError, OSError, ImportError) as e:
        click.echo(f"Error loading inputs: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Show progress log messages')
def main(verbose: bool):
    """Corridor Earthwork Tool

    Compute cut/fill volumes and mass-haul curves between a design
    surface and existing ground along a road alignment.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument('input_file', type=click.Path(exists=True))
@click.option('--ground-only/--all-points', default=False,
              help='Triangulate only ground-classified points')
def info(input_file: str, ground_only: bool):
    """Display information about a surface point file."""
    from .core.surface import Surface

    click.echo(f"Loading: {input_file}")

    try:
        pc = PointCloudLoader.load(input_file)
        surface = Surface.from_point_cloud(pc, ground_only=ground_only)
    except (ValidationError, OSError, ImportError) as e:
        click.echo(f"Error loading surface: {e}", err=True)
        sys.exit(1)

    stats = surface.statistics()
    min_x, min_y, max_x, max_y = surface.bounds

    click.echo("\n" + "=" * 50)
    click.echo("SURFACE INFO")
    click.echo("=" * 50)
    click.echo(f"File:           {input_file}")
    click.echo(f"CRS:            {pc.crs or 'not declared'}")
    click.echo(f"Points read:    {pc.num_points:,}")
    click.echo(f"TIN vertices:   {stats['num_points']:,}")
    click.echo(f"TIN triangles:  {stats['num_triangles']:,}")
    click.echo(f"")
    click.echo(f"Bounds:")
    click.echo(f"  X:            {min_x:.2f} to {max_x:.2f}")
    click.echo(f"  Y:            {min_y:.2f} to {max_y:.2f}")
    click.echo(f"  Z:            {stats['min_elevation']:.2f} to {stats['max_elevation']:.2f}")
    click.echo(f"")
    click.echo(f"Plan area:      {stats['plan_area']:,.2f}")
    click.echo(f"Mean slope:     {stats['mean_slope']:.2f} deg")

    if pc.classification is not None:
        unique, counts = np.unique(pc.classification, return_counts=True)
        click.echo(f"\nClassifications:")
        for cls, count in zip(unique, counts):
            name = CLASS_NAMES.get(int(cls), f"Class {cls}")
            pct = count / pc.num_points * 100
            click.echo(f"  {name}: {count:,} ({pct:.1f}%)")

    click.echo("=" * 50)


@main.command()
@corridor_options
@click.option('--swell-factor', default=1.0, help='Soil swell factor for cut volumes')
@click.option('--shrink-factor', default=1.0, help='Soil shrink factor for fill volumes')
@click.option('--output', '-o', type=click.Path(), help='Output JSON file for results')
@click.option('--export-csv', type=click.Path(), help='Export mass-haul table to CSV')
@click.option('--export-sections', type=click.Path(), help='Export cross-section samples to CSV')
@click.option('--export-geojson', type=click.Path(), help='Export alignment and stations to GeoJSON')
@click.option('--report', type=click.Path(), help='Save PNG/PDF report to file')
def volume(
    design_file: str,
    ground_file: str,
    halign_file: str,
    valign_file: str,
    width: float,
    interval: float,
    offset_step: float,
    superelevation: Optional[str],
    source_crs: Optional[str],
    target_crs: Optional[str],
    workers: Optional[int],
    swell_factor: float,
    shrink_factor: float,
    output: Optional[str],
    export_csv: Optional[str],
    export_sections: Optional[str],
    export_geojson: Optional[str],
    report: Optional[str],
):
    """Compute corridor cut/fill volumes.

    Example:

        corridor-earthwork volume design.xyz ground.xyz halign.csv valign.csv -w 20
    """
    inputs = _load(design_file, ground_file, halign_file, valign_file,
                   superelevation, source_crs, target_crs)

    click.echo(f"Alignment length: {inputs.alignment.length:,.3f}")
    click.echo(f"Computing volumes (interval {interval}, width {width}, step {offset_step})...")

    try:
        calculator = VolumeCalculator(
            inputs.alignment,
            inputs.design,
            inputs.ground,
            swell_factor=swell_factor,
            shrink_factor=shrink_factor,
        )
        result = calculator.compute(interval, width, offset_step, workers=workers)
    except ValidationError as e:
        click.echo(f"Error calculating volumes: {e}", err=True)
        sys.exit(1)

    click.echo("\n" + result.summary())

    try:
        if output:
            from .io.exporters import export_summary_json
            export_summary_json(result, output, metadata={
                "design": design_file,
                "ground": ground_file,
                "horizontal": halign_file,
                "profile": valign_file,
                "width": width,
                "interval": interval,
                "offset_step": offset_step,
                "crs": inputs.crs,
            })
            click.echo(f"\nResults saved to: {output}")

        if export_csv:
            from .io.exporters import export_mass_haul_csv
            export_mass_haul_csv(result, export_csv)
            click.echo(f"Mass haul exported to: {export_csv}")

        if export_sections:
            from .io.exporters import export_cross_sections_csv
            export_cross_sections_csv(result.cross_sections, export_sections)
            click.echo(f"Cross-sections exported to: {export_sections}")

        if export_geojson:
            from .io.exporters import export_alignment_geojson
            export_alignment_geojson(
                inputs.alignment.horizontal, export_geojson,
                result=result, width=width, crs=inputs.crs,
            )
            click.echo(f"Alignment exported to: {export_geojson}")
    except (ValidationError, OSError) as e:
        click.echo(f"Error exporting results: {e}", err=True)
        sys.exit(1)

    if report:
        try:
            from .utils.visualization import create_report_figure, save_report

            fig = create_report_figure(
                result,
                alignment=inputs.alignment.horizontal,
                surfaces=(inputs.design, inputs.ground),
            )
            save_report(fig, report)
            click.echo(f"Report saved to: {report}")
        except ImportError:
            click.echo("Warning: matplotlib required for reports", err=True)


@main.command('mass-haul')
@corridor_options
def mass_haul(
    design_file: str,
    ground_file: str,
    halign_file: str,
    valign_file: str,
    width: float,
    interval: float,
    offset_step: float,
    superelevation: Optional[str],
    source_crs: Optional[str],
    target_crs: Optional[str],
    workers: Optional[int],
):
    """Print the mass-haul curve as "station,cumulative_net" lines.

    Example:

        corridor-earthwork mass-haul design.xyz ground.xyz halign.csv valign.csv -w 20 > haul.csv
    """
    inputs = _load(design_file, ground_file, halign_file, valign_file,
                   superelevation, source_crs, target_crs)

    try:
        calculator = VolumeCalculator(inputs.alignment, inputs.design, inputs.ground)
        result = calculator.compute(interval, width, offset_step, workers=workers)
    except ValidationError as e:
        click.echo(f"Error calculating mass haul: {e}", err=True)
        sys.exit(1)

    for point in result:
        click.echo(f"{point.station:.3f},{point.cumulative_net:.3f}")


@main.command()
@click.option('--output-dir', '-o', required=True, type=click.Path(file_okay=False),
              help='Directory to write the sample corridor files into')
@click.option('--length', default=200.0, help='Corridor length (default: 200)')
@click.option('--width', default=60.0, help='Width of the surveyed strip (default: 60)')
@click.option('--resolution', '-r', default=2.0, help='Ground point spacing (default: 2)')
@click.option('--grade-elevation', default=100.0, help='Design grade elevation at start (default: 100)')
@click.option('--seed', default=42, help='Random seed (default: 42)')
def generate_sample(
    output_dir: str,
    length: float,
    width: float,
    resolution: float,
    grade_elevation: float,
    seed: int,
):
    """Generate a sample corridor for testing.

    Writes ground.xyz, design.xyz, halign.csv, valign.csv and
    superelevation.csv for a straight road along the X axis with a
    crest vertical curve at mid-length.

    Example:
        corridor-earthwork generate-sample -o sample
        corridor-earthwork volume sample/design.xyz sample/ground.xyz \\
            sample/halign.csv sample/valign.csv -w 20
    """
    from .core.alignment import (
        Alignment, HorizontalAlignment, SuperelevationRow, SuperelevationTable,
        VerticalCurve, VerticalProfile, build_design_surface,
    )

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    click.echo(f"Generating sample corridor...")
    click.echo(f"  Length: {length}")
    click.echo(f"  Strip width: {width}")

    ground = generate_sample_ground(
        length=length,
        width=width,
        resolution=resolution,
        base_elevation=grade_elevation,
        seed=seed,
    )

    mid = length / 2
    profile_rows = [
        (0.0, grade_elevation, 0.0),
        (mid, grade_elevation + 0.02 * mid, min(60.0, length / 2)),
        (length, grade_elevation, 0.0),
    ]
    super_rows = [(0.0, -0.02, -0.02), (mid, 0.02, -0.02)]

    alignment = Alignment(
        horizontal=HorizontalAlignment.from_polyline([(0.0, 0.0), (length, 0.0)]),
        profile=VerticalProfile(
            points=tuple((s, z) for s, z, _ in profile_rows),
            curves=(VerticalCurve(mid, profile_rows[1][2]),),
        ),
        superelevation=SuperelevationTable(tuple(SuperelevationRow(*r) for r in super_rows)),
    )
    half = width / 2
    design = build_design_surface(alignment, offsets=np.linspace(-half, half, 9), interval=resolution * 5)

    with open(out / "ground.xyz", 'w') as f:
        for (x, y, z), cls in zip(ground.xyz, ground.classification):
            f.write(f"{x:.3f} {y:.3f} {z:.3f} {cls}\n")

    with open(out / "design.xyz", 'w') as f:
        for x, y, z in design.vertices:
            f.write(f"{x:.3f} {y:.3f} {z:.3f}\n")

    with open(out / "halign.csv", 'w') as f:
        f.write(f"0.0,0.0\n{length},0.0\n")

    with open(out / "valign.csv", 'w') as f:
        for station, elevation, curve in profile_rows:
            f.write(f"{station},{elevation},{curve}\n")

    with open(out / "superelevation.csv", 'w') as f:
        for row in super_rows:
            f.write(",".join(str(v) for v in row) + "\n")

    click.echo(f"  Ground points: {ground.num_points:,}")
    click.echo(f"  Design points: {design.num_points:,}")
    click.echo(f"Saved to: {out}")


if __name__ == '__main__':
    main()
