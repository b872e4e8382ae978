"""
Survey Point Loading Module

Reads ground and design points from survey exports (XYZ/TXT, CSV) and
LIDAR files (LAS/LAZ) into a PointCloud ready for Surface.build.
"""

from __future__ import annotations

import csv
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from ..core.validation import InputError

try:
    import laspy
    HAS_LASPY = True
except ImportError:
    HAS_LASPY = False

logger = logging.getLogger(__name__)

# GeoKeyDirectoryTag keys holding an EPSG code
_PROJECTED_CS_KEY = 3072
_GEOGRAPHIC_CS_KEY = 2048


def _decode_wkt(record_data: bytes) -> Optional[str]:
    try:
        wkt = record_data.decode('utf-8').rstrip('\x00').strip()
    except UnicodeDecodeError:
        return None
    return wkt or None


def _epsg_from_geokeys(record_data: bytes) -> Optional[str]:
    """EPSG code from a GeoTIFF key directory, if one is stored inline."""
    if len(record_data) < 8:
        return None

    (num_keys,) = struct.unpack('<H', record_data[6:8])
    for k in range(num_keys):
        start = 8 + 8 * k
        if start + 8 > len(record_data):
            break
        key_id, location, _, value = struct.unpack('<HHHH', record_data[start:start + 8])
        if location == 0 and key_id in (_PROJECTED_CS_KEY, _GEOGRAPHIC_CS_KEY):
            return f"EPSG:{value}"
    return None


def _extract_crs_from_las(las) -> Optional[str]:
    """
    CRS declared in a LAS file's VLRs, as WKT or "EPSG:<code>".

    WKT records (LAS 1.4 "LASF_WKT" and legacy record 2112) take
    precedence over GeoTIFF keys (record 34735).
    """
    vlrs = getattr(las, 'vlrs', None) or []

    for vlr in vlrs:
        if (vlr.user_id, vlr.record_id) in (("LASF_WKT", 1), ("LASF_Projection", 2112)):
            wkt = _decode_wkt(vlr.record_data)
            if wkt:
                return wkt

    for vlr in vlrs:
        if (vlr.user_id, vlr.record_id) == ("LASF_Projection", 34735):
            epsg = _epsg_from_geokeys(bytes(vlr.record_data))
            if epsg:
                return epsg

    return None


@dataclass
class PointCloud:
    """
    Survey point set with optional ASPRS classification.

    Attributes:
        xyz: Nx3 array of point coordinates
        classification: Optional array of point classes (2 = ground)
        crs: Coordinate reference system (EPSG code or WKT) if declared
    """
    xyz: np.ndarray
    classification: Optional[np.ndarray] = None
    crs: Optional[str] = None

    def __post_init__(self):
        self.xyz = np.asarray(self.xyz, dtype=np.float64)
        if self.xyz.ndim != 2 or self.xyz.shape[1] != 3:
            raise InputError(f"xyz must be Nx3 array, got shape {self.xyz.shape}")
        if self.classification is not None and len(self.classification) != len(self.xyz):
            raise InputError("classification length must match xyz")

    @property
    def num_points(self) -> int:
        return len(self.xyz)

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """(min_xyz, max_xyz) bounding box."""
        return np.min(self.xyz, axis=0), np.max(self.xyz, axis=0)

    def filter_by_classification(self, classes: list[int]) -> PointCloud:
        """Keep only points whose class is in `classes` (e.g. [2] for ground)."""
        if self.classification is None:
            raise InputError("Point cloud has no classification data")

        mask = np.isin(self.classification, classes)
        return PointCloud(
            xyz=self.xyz[mask].copy(),
            classification=self.classification[mask].copy(),
            crs=self.crs,
        )

    def with_xyz(self, xyz: np.ndarray, crs: Optional[str]) -> PointCloud:
        """Same points with replaced coordinates, e.g. after CRS normalization."""
        return PointCloud(xyz=xyz, classification=self.classification, crs=crs)


class PointCloudLoader:
    """
    Loads survey points from file, choosing the reader by extension.

    Supported formats:
        - XYZ/TXT (whitespace or delimited: x y z [classification])
        - CSV as bare x,y,z rows or with a named header row
        - LAS/LAZ (requires laspy)
    """

    # ASPRS LAS Classification codes
    CLASS_UNCLASSIFIED = 1
    CLASS_GROUND = 2

    @classmethod
    def load(cls, filepath: str | Path, crs: Optional[str] = None, **kwargs) -> PointCloud:
        """
        Load a point file, auto-detecting format.

        Args:
            filepath: Path to point file
            crs: CRS to assign when the file declares none
            **kwargs: Format-specific options

        Returns:
            PointCloud instance

        Raises:
            InputError: If the format is unsupported or the file is malformed
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        loaders = {
            '.las': cls._load_las,
            '.laz': cls._load_las,
            '.xyz': cls._load_xyz,
            '.txt': cls._load_xyz,
            '.csv': cls._load_csv,
        }

        if suffix not in loaders:
            raise InputError(
                f"Unsupported point file format: {suffix}. "
                f"Supported: {', '.join(sorted(loaders))}"
            )

        pc = loaders[suffix](filepath, **kwargs)
        if pc.crs is None and crs is not None:
            pc.crs = crs
        logger.info("Loaded %d points from %s (crs=%s)", pc.num_points, filepath.name, pc.crs)
        return pc

    @classmethod
    def _load_las(cls, filepath: Path, **kwargs) -> PointCloud:
        """Load LAS/LAZ file using laspy."""
        if not HAS_LASPY:
            raise ImportError(
                "laspy is required to load LAS/LAZ files. "
                "Install with: pip install laspy (add lazrs for LAZ)"
            )

        with laspy.open(filepath) as reader:
            las = reader.read()

        xyz = np.column_stack([las.x, las.y, las.z]).astype(np.float64)
        classification = np.array(las.classification, dtype=np.uint8)

        return PointCloud(
            xyz=xyz,
            classification=classification,
            crs=_extract_crs_from_las(las),
        )

    @classmethod
    def _load_xyz(
        cls,
        filepath: Path,
        delimiter: Optional[str] = None,
        skip_header: int = 0,
        **kwargs
    ) -> PointCloud:
        """
        Load XYZ text file.

        Expected format: x y z [classification] per line
        """
        try:
            data = np.loadtxt(filepath, delimiter=delimiter, skiprows=skip_header, ndmin=2)
        except ValueError as e:
            raise InputError(f"Cannot parse {filepath.name}: {e}") from e

        if data.shape[1] < 3:
            raise InputError(f"{filepath.name} must have at least 3 columns (x y z)")

        classification = None
        if data.shape[1] >= 4:
            classification = data[:, 3].astype(np.uint8)

        return PointCloud(xyz=data[:, :3], classification=classification)

    @classmethod
    def _load_csv(cls, filepath: Path, **kwargs) -> PointCloud:
        """
        Load comma-separated points.

        Either header-less "x,y,z[,classification]" rows, or a header row
        naming the columns. Common survey aliases are accepted for the
        header: easting/northing/elevation.
        """
        header, rows = read_numeric_csv(filepath, min_columns=3)

        if header is None:
            columns = {'x': 0, 'y': 1, 'z': 2}
            class_column = 3 if rows and all(len(r) >= 4 for r in rows) else None
        else:
            aliases = {
                'x': ('x', 'easting', 'e'),
                'y': ('y', 'northing', 'n'),
                'z': ('z', 'elevation', 'elev'),
            }
            names = [h.strip().lower() for h in header]
            columns = {}
            for axis, candidates in aliases.items():
                found = next((names.index(n) for n in candidates if n in names), None)
                if found is None:
                    raise InputError(
                        f"{filepath.name} has no '{axis}' column; "
                        f"expected one of {', '.join(candidates)}"
                    )
                columns[axis] = found
            class_column = names.index('classification') if 'classification' in names else None

        xyz = np.array(
            [[r[columns['x']], r[columns['y']], r[columns['z']]] for r in rows],
            dtype=np.float64,
        ).reshape(-1, 3)
        classification = None
        if class_column is not None:
            classification = np.array([r[class_column] for r in rows], dtype=np.uint8)
        return PointCloud(xyz=xyz, classification=classification)


def read_numeric_csv(
    filepath: str | Path,
    min_columns: int,
) -> Tuple[Optional[List[str]], List[List[float]]]:
    """
    Read a comma-separated file of numbers with an optional header row.

    Blank lines are skipped. The first non-blank row is treated as a header
    when its first field is not a number.

    Returns:
        Tuple of (header or None, rows as lists of floats)

    Raises:
        InputError: If a row is short or holds a non-numeric value
    """
    filepath = Path(filepath)
    header = None
    rows: List[List[float]] = []

    with open(filepath, newline='') as f:
        for line_no, record in enumerate(csv.reader(f), start=1):
            if not record or all(not field.strip() for field in record):
                continue
            if header is None and not rows and not _is_number(record[0]):
                header = record
                continue
            if len(record) < min_columns:
                raise InputError(
                    f"{filepath.name} line {line_no}: expected at least {min_columns} "
                    f"comma-separated values, got {len(record)}"
                )
            try:
                rows.append([float(field) for field in record if field.strip()])
            except ValueError as e:
                raise InputError(f"{filepath.name} line {line_no}: {e}") from e

    return header, rows


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def generate_sample_ground(
    length: float = 200.0,
    width: float = 60.0,
    resolution: float = 2.0,
    base_elevation: float = 100.0,
    hill_height: float = 4.0,
    noise_scale: float = 0.2,
    seed: int = 42,
) -> PointCloud:
    """
    Generate synthetic rolling ground along the +X axis for testing.

    The strip runs from x=0 to `length` and y=-width/2 to +width/2, so a
    straight alignment along the X axis lies inside it.

    Args:
        length: Strip length in meters
        width: Strip width in meters
        resolution: Point spacing in meters
        base_elevation: Base elevation value
        hill_height: Amplitude of the rolling terrain
        noise_scale: Standard deviation of random noise
        seed: Random seed for reproducibility

    Returns:
        PointCloud of ground-classified points
    """
    rng = np.random.default_rng(seed)

    x = np.arange(0.0, length + resolution / 2, resolution)
    y = np.arange(-width / 2, width / 2 + resolution / 2, resolution)
    xx, yy = np.meshgrid(x, y)

    zz = base_elevation + (
        hill_height * np.sin(xx / 30.0) +
        0.5 * hill_height * np.cos(xx / 13.0 + yy / 40.0) +
        0.02 * yy +
        noise_scale * rng.standard_normal(xx.shape)
    )

    xyz = np.column_stack([xx.ravel(), yy.ravel(), zz.ravel()])
    classification = np.full(len(xyz), PointCloudLoader.CLASS_GROUND, dtype=np.uint8)
    return PointCloud(xyz=xyz, classification=classification)
