"""
Corridor Earthwork Example

This example demonstrates:
1. Generating sample ground points along a road corridor
2. Building a horizontal alignment with a curve, a vertical profile
   and superelevation
3. Sweeping a design surface along the alignment
4. Computing cut/fill volumes and the mass-haul curve
5. Visualizing results

Run from the project root:
    python examples/corridor_volume.py
"""

import sys
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from corridor_earthwork.io.point_cloud import generate_sample_ground, PointCloudLoader
from corridor_earthwork.core.surface import Surface
from corridor_earthwork.core.alignment import (
    Alignment,
    HorizontalAlignment,
    SuperelevationRow,
    SuperelevationTable,
    VerticalCurve,
    VerticalProfile,
    build_design_surface,
)
from corridor_earthwork.core.volume import VolumeCalculator


def main():
    print("=" * 60)
    print("CORRIDOR EARTHWORK ANALYSIS - EXAMPLE")
    print("=" * 60)

    # =========================================================================
    # Step 1: Generate or load existing ground
    # =========================================================================
    print("\n[1] Generating sample ground...")

    # Synthetic 300m x 80m strip (replace with PointCloudLoader.load() for real data)
    point_cloud = generate_sample_ground(
        length=300.0,
        width=80.0,
        resolution=2.0,
        base_elevation=100.0,
        hill_height=6.0,
        seed=42,
    )

    ground = Surface.from_point_cloud(point_cloud, ground_only=True)

    stats = ground.statistics()
    print(f"   Points: {point_cloud.num_points:,}")
    print(f"   Triangles: {stats['num_triangles']:,}")
    print(f"   Elevation range: {stats['min_elevation']:.1f} to {stats['max_elevation']:.1f}")
    print(f"   Mean slope: {stats['mean_slope']:.1f} degrees")

    # =========================================================================
    # Step 2: Define the alignment
    # =========================================================================
    print("\n[2] Defining the alignment...")

    # Gentle bend at the middle PI, 400m radius
    horizontal = HorizontalAlignment.from_pis(
        [(0.0, -10.0), (150.0, 10.0), (300.0, -10.0)],
        radii=400.0,
    )

    # Sag curve at the low point so the road cuts the hill tops
    profile = VerticalProfile(
        points=((0.0, 102.0), (150.0, 99.0), (horizontal.length, 102.0)),
        curves=(VerticalCurve(pvi_station=150.0, length=80.0),),
    )

    # 2% crown, rotated to a 4% one-way crossfall through the bend
    superelevation = SuperelevationTable((
        SuperelevationRow(0.0, -0.02, -0.02),
        SuperelevationRow(110.0, 0.04, -0.04),
        SuperelevationRow(190.0, -0.02, -0.02),
    ))

    alignment = Alignment(horizontal, profile, superelevation)
    print(f"   Length: {alignment.length:.2f}m")
    print(f"   Elements: {len(horizontal.elements)}")
    print(f"   Grade at start: {profile.grade_at(0.0) * 100:.2f}%")

    # =========================================================================
    # Step 3: Sweep the design surface
    # =========================================================================
    print("\n[3] Building design surface...")

    design = build_design_surface(
        alignment,
        offsets=np.linspace(-15.0, 15.0, 7),    # 30m formation
        interval=5.0,
    )
    print(f"   Design vertices: {design.num_points:,}")

    # =========================================================================
    # Step 4: Compute volumes
    # =========================================================================
    print("\n[4] Computing volumes...")

    calculator = VolumeCalculator(
        alignment,
        design,
        ground,
        swell_factor=VolumeCalculator.SOIL_SWELL_FACTORS["clay"],
        shrink_factor=VolumeCalculator.SOIL_SHRINK_FACTORS["clay"],
    )

    result = calculator.compute(
        interval=10.0,       # Cross-section every 10m
        width=30.0,          # Corridor width
        offset_step=1.0,     # Sample every 1m across
        workers=4,
    )

    print("\n" + result.summary())

    # =========================================================================
    # Step 5: Inspect a cross-section
    # =========================================================================
    deepest = int(np.argmax([a.cut_area for a in result.station_areas]))
    section = result.cross_sections[deepest]

    print(f"\n[5] Deepest cut at station {section.station:.1f}")
    print(f"   Cut area:  {result.station_areas[deepest].cut_area:.2f} sq meters")
    print(f"   Fill area: {result.station_areas[deepest].fill_area:.2f} sq meters")
    print(f"   Max depth: {np.nanmax(section.difference):.2f}m")

    # =========================================================================
    # Step 6: Visualization (if matplotlib available)
    # =========================================================================
    print("\n[6] Generating visualization...")

    try:
        from corridor_earthwork.utils.visualization import create_report_figure
        import matplotlib.pyplot as plt

        fig = create_report_figure(
            result,
            alignment=horizontal,
            surfaces=(design, ground),
            section_index=deepest,
        )

        output_path = Path(__file__).parent / "corridor_report.png"
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
        print(f"   Report saved to: {output_path}")

        plt.show()

    except ImportError:
        print("   (matplotlib not available - skipping visualization)")

    print("\n" + "=" * 60)
    print("Analysis complete!")
    print("=" * 60)


def demo_with_real_files():
    """
    Example of analyzing surveyed data.

    Uncomment and modify paths to use with your data.
    """
    # from corridor_earthwork.io.alignment_io import load_inputs
    #
    # # Ground from LIDAR in geographic coordinates, design from the
    # # road designer's export, all normalized to the project grid
    # inputs = load_inputs(
    #     "design.csv",
    #     "terrain.laz",
    #     "halign.csv",
    #     profile_path="valign.csv",
    #     superelevation_path="superelevation.csv",
    #     source_crs="EPSG:4326",
    #     target_crs="EPSG:2193",
    # )
    #
    # calculator = VolumeCalculator(inputs.alignment, inputs.design, inputs.ground)
    # result = calculator.compute(interval=20.0, width=24.0, offset_step=0.5)
    # print(result.summary())
    pass


if __name__ == "__main__":
    main()
