"""
Crop Health Monitor — Raster Model
===================================
Immutable in-memory raster types shared by every pipeline stage.

Classes:
    GeoGrid     Shape + affine transform + CRS of a raster.
    Raster      Named float bands on one GeoGrid.

Functions:
    read_raster     Load a GeoTIFF into a :class:`Raster`.

No-data is always ``NaN``: integer inputs and declared nodata values are
converted on read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

import numpy as np
import numpy.typing as npt
import rasterio
from rasterio.crs import CRS
from rasterio.errors import RasterioIOError
from rasterio.transform import Affine, array_bounds

from shared.python.exceptions import (
    GridMismatchError,
    InputValidationError,
    OutOfBoundsError,
    RasterError,
)

logger = logging.getLogger("crophealth.raster")

FloatArray = npt.NDArray[np.float64]


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GeoGrid:
    """Georeference of a raster: pixel shape, affine transform and CRS.

    Attributes:
        height: Number of rows.
        width: Number of columns.
        transform: Affine mapping pixel (col, row) → CRS (x, y).
        crs: Coordinate reference system, or ``None`` if unknown.
    """

    height: int
    width: int
    transform: Affine
    crs: CRS | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(left, bottom, right, top)`` in CRS units."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    @property
    def pixel_size(self) -> tuple[float, float]:
        """``(x_size, y_size)`` of one pixel, always positive."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def pixel_area(self) -> float:
        x_size, y_size = self.pixel_size
        return x_size * y_size

    def index(self, x: float, y: float) -> tuple[int, int]:
        """Return the ``(row, col)`` of the pixel containing ``(x, y)``.

        Raises:
            OutOfBoundsError: If the coordinate lies outside the grid.
        """
        col_f, row_f = ~self.transform * (x, y)
        row, col = int(np.floor(row_f)), int(np.floor(col_f))
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise OutOfBoundsError(x, y, self.bounds)
        return row, col

    def xy(self, row: float, col: float) -> tuple[float, float]:
        """Return the CRS coordinate of the centre of pixel ``(row, col)``."""
        x, y = self.transform * (col + 0.5, row + 0.5)
        return float(x), float(y)

    def mismatch(self, other: GeoGrid) -> str | None:
        """Describe how *other* differs from this grid, or ``None``."""
        if self.shape != other.shape:
            return f"shape {self.shape} != {other.shape}"
        if not self.transform.almost_equals(other.transform):
            return f"transform {tuple(self.transform)[:6]} != {tuple(other.transform)[:6]}"
        if self.crs != other.crs:
            return f"CRS {self.crs} != {other.crs}"
        return None

    def assert_matches(self, other: GeoGrid, label_a: str = "raster A", label_b: str = "raster B") -> None:
        """Raise :class:`GridMismatchError` unless *other* is the same grid."""
        detail = self.mismatch(other)
        if detail is not None:
            raise GridMismatchError(label_a, label_b, detail)


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Raster:
    """Immutable set of named float64 bands sharing one :class:`GeoGrid`.

    Band arrays are copied on construction and marked read-only.

    Attributes:
        bands: Read-only mapping of band name → 2-D float64 array.
        grid: Georeference shared by all bands.
    """

    bands: Mapping[str, FloatArray]
    grid: GeoGrid
    name: str = "raster"

    def __post_init__(self) -> None:
        if not self.bands:
            raise RasterError(f"{self.name}: a raster needs at least one band")
        frozen: dict[str, FloatArray] = {}
        for band_name, values in self.bands.items():
            arr = np.array(values, dtype=np.float64, copy=True)
            if arr.shape != self.grid.shape:
                raise GridMismatchError(
                    f"{self.name}:{band_name}",
                    f"{self.name} grid",
                    f"shape {arr.shape} != {self.grid.shape}",
                )
            arr.flags.writeable = False
            frozen[band_name] = arr
        object.__setattr__(self, "bands", MappingProxyType(frozen))

    @property
    def band_names(self) -> tuple[str, ...]:
        return tuple(self.bands)

    @property
    def shape(self) -> tuple[int, int]:
        return self.grid.shape

    def band(self, band_name: str) -> FloatArray:
        """Return one band array.

        Raises:
            RasterError: If the band is not present.
        """
        try:
            return self.bands[band_name]
        except KeyError:
            raise RasterError(
                f"{self.name}: band '{band_name}' not present "
                f"(available: {', '.join(self.band_names)})"
            ) from None

    def select(self, band_names: Iterable[str]) -> Raster:
        """Return a new raster holding *band_names*, in that order."""
        names = list(band_names)
        return Raster({n: self.band(n) for n in names}, self.grid, name=self.name)

    def merge(self, other: Raster) -> Raster:
        """Return a raster with the bands of both rasters.

        Raises:
            GridMismatchError: If the grids differ.
            RasterError: If a band name appears in both rasters.
        """
        self.grid.assert_matches(other.grid, self.name, other.name)
        clash = set(self.band_names) & set(other.band_names)
        if clash:
            raise RasterError(f"Cannot merge {self.name} and {other.name}: duplicate band(s) {sorted(clash)}")
        return Raster({**self.bands, **other.bands}, self.grid, name=self.name)

    def to_array(self) -> FloatArray:
        """Stack bands into a ``(bands, rows, cols)`` array in band order."""
        return np.stack([self.bands[n] for n in self.band_names], axis=0)

    def __repr__(self) -> str:
        return f"Raster(name={self.name!r}, bands={list(self.band_names)}, shape={self.shape})"


def assert_same_grid(rasters: Iterable[Raster]) -> GeoGrid:
    """Return the grid shared by *rasters* or raise :class:`GridMismatchError`."""
    items = list(rasters)
    if not items:
        raise RasterError("No rasters supplied")
    reference = items[0]
    for other in items[1:]:
        reference.grid.assert_matches(other.grid, reference.name, other.name)
    return reference.grid


# ---------------------------------------------------------------------------
# I/O
# ---------------------------------------------------------------------------


def read_raster(path: Path, band_names: Iterable[str] | None = None) -> Raster:
    """Read every band of a GeoTIFF into a :class:`Raster`.

    Band names come from *band_names* when given, else from the band
    descriptions stored in the file, else ``band_1``, ``band_2``, ...

    Raises:
        InputValidationError: If *band_names* has the wrong length.
        RasterError: If the file cannot be opened.
    """
    path = Path(path)
    try:
        with rasterio.open(path) as src:
            data = src.read().astype(np.float64)
            nodata = src.nodata
            descriptions = src.descriptions
            grid = GeoGrid(src.height, src.width, src.transform, src.crs)
    except RasterioIOError as exc:
        raise RasterError(f"Cannot read raster '{path}': {exc}") from exc

    if band_names is not None:
        names = list(band_names)
        if len(names) != data.shape[0]:
            raise InputValidationError(
                f"'{path.name}' has {data.shape[0]} band(s) but {len(names)} name(s) were given"
            )
    else:
        names = [
            desc if desc else f"band_{i}"
            for i, desc in enumerate(descriptions, start=1)
        ]

    if nodata is not None and not np.isnan(nodata):
        data[data == nodata] = np.nan

    logger.debug("Read %s: %d band(s) %s, shape %s", path.name, len(names), names, grid.shape)
    return Raster(dict(zip(names, data)), grid, name=path.stem)
