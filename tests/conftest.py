"""
Shared pytest fixtures and configuration for corridor_earthwork tests.
"""

import pytest
import numpy as np


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "requires_laspy: requires laspy to be installed"
    )
    config.addinivalue_line(
        "markers", "requires_matplotlib: requires matplotlib to be installed"
    )
    config.addinivalue_line(
        "markers", "requires_pyproj: requires pyproj for CRS transforms"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-skip tests based on missing dependencies."""
    try:
        import laspy
        laspy_available = True
    except ImportError:
        laspy_available = False

    try:
        import matplotlib
        matplotlib_available = True
    except ImportError:
        matplotlib_available = False

    try:
        import pyproj
        pyproj_available = True
    except ImportError:
        pyproj_available = False

    for item in items:
        if "requires_laspy" in item.keywords and not laspy_available:
            item.add_marker(pytest.mark.skip(reason="laspy not installed"))
        if "requires_matplotlib" in item.keywords and not matplotlib_available:
            item.add_marker(pytest.mark.skip(reason="matplotlib not installed"))
        if "requires_pyproj" in item.keywords and not pyproj_available:
            item.add_marker(pytest.mark.skip(reason="pyproj not installed"))


def plane_points(z_of, x_range=(0.0, 100.0), y_range=(-20.0, 20.0), step=5.0):
    """Grid of (x, y, z_of(x, y)) points covering a rectangle."""
    x = np.arange(x_range[0], x_range[1] + step / 2, step)
    y = np.arange(y_range[0], y_range[1] + step / 2, step)
    xx, yy = np.meshgrid(x, y)
    return np.column_stack([xx.ravel(), yy.ravel(), z_of(xx, yy).ravel()])


@pytest.fixture
def flat_triangle():
    """Single triangle at z=7 over (0,0)-(10,0)-(0,10)."""
    from corridor_earthwork.core.surface import Surface

    return Surface.build([(0, 0, 7), (10, 0, 7), (0, 10, 7)])


@pytest.fixture
def straight_alignment():
    """100 m straight alignment along +X from the origin."""
    from corridor_earthwork.core.alignment import HorizontalAlignment

    return HorizontalAlignment.from_polyline([(0.0, 0.0), (100.0, 0.0)])


@pytest.fixture
def design_surface():
    """Flat design surface at z=100 over x 0..100, y -20..20."""
    from corridor_earthwork.core.surface import Surface

    return Surface.build(plane_points(lambda x, y: np.full_like(x, 100.0)))


@pytest.fixture
def cut_ground_surface():
    """Flat ground at z=102, two metres above the design everywhere."""
    from corridor_earthwork.core.surface import Surface

    return Surface.build(plane_points(lambda x, y: np.full_like(x, 102.0)))


@pytest.fixture
def sample_point_cloud():
    """Small synthetic ground strip for fast tests."""
    from corridor_earthwork.io.point_cloud import generate_sample_ground

    return generate_sample_ground(length=40.0, width=20.0, resolution=2.0, seed=42)


@pytest.fixture
def tmp_output_dir(tmp_path):
    """Temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
