"""
Crop Health Monitor — Point Sampler
====================================
Extracts composite index values at labeled field points and joins them
with the points' auxiliary attributes into a training table.

Sample point file format (CSV or JSON records)::

    x,y,label,soil_moisture,temperature
    500015.0,4199985.0,healthy,0.31,24.5
    500045.0,4199955.0,stressed,0.12,31.0

Coordinates are in the CRS of the composite raster.  The label column may
have another name (see the ``label_field`` arguments below).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from crop_health_monitor.raster import GeoGrid, Raster
from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

logger = logging.getLogger("crophealth.sampler")

COORDINATE_COLUMNS = ["x", "y"]
AUXILIARY_FIELDS = ("soil_moisture", "temperature")


@dataclass(frozen=True)
class SamplePoint:
    """A labeled field observation.

    Attributes:
        x: X coordinate in the raster CRS.
        y: Y coordinate in the raster CRS.
        label: Health state observed in the field (e.g. ``"stressed"``).
        soil_moisture: Volumetric soil moisture, NaN when not measured.
        temperature: Air or canopy temperature (°C), NaN when not measured.
    """

    x: float
    y: float
    label: str
    soil_moisture: float = math.nan
    temperature: float = math.nan


def neighbourhood_size(grid: GeoGrid, scale: float) -> int:
    """Pixels per side of the sampling window for a ground *scale* in CRS units.

    Halves round up (15 m on 10 m pixels gives 2, 25 m gives 3).  Never
    smaller than one pixel.
    """
    Validators.assert_positive("scale", scale)
    x_size, _ = grid.pixel_size
    return max(1, math.floor(scale / x_size + 0.5))


def sample(raster: Raster, band: str, point: SamplePoint, scale: float) -> float:
    """Mean of *band* over the window of ``scale`` around *point*.

    The window is centred on the pixel that contains the point and
    clipped to the raster.  NaN pixels are ignored; an all-NaN window
    gives NaN.  A one-pixel window returns the pixel value unchanged.

    Raises:
        OutOfBoundsError: If the point is outside the raster.
        RasterError: If *band* is not present.
    """
    values = raster.band(band)
    row, col = raster.grid.index(point.x, point.y)
    n = neighbourhood_size(raster.grid, scale)
    if n == 1:
        return float(values[row, col])

    r0 = max(0, row - (n - 1) // 2)
    c0 = max(0, col - (n - 1) // 2)
    window = values[r0:row + n // 2 + 1, c0:col + n // 2 + 1]
    valid = window[~np.isnan(window)]
    return float(valid.mean()) if valid.size else math.nan


def build_feature_table(
    raster: Raster,
    points: Sequence[SamplePoint],
    scale: float,
    label_field: str = "label",
) -> pd.DataFrame:
    """One row per point: every band of *raster*, auxiliary fields, x, y and
    the point label under the column *label_field*.

    Raises:
        InputValidationError: If *points* is empty, or *label_field* clashes
            with a band or coordinate column.
        OutOfBoundsError: If any point lies outside the raster.
    """
    if not points:
        raise InputValidationError("No sample points supplied")
    reserved = {*raster.band_names, *COORDINATE_COLUMNS}
    if label_field in reserved:
        raise InputValidationError(
            f"label_field '{label_field}' clashes with a band or coordinate column"
        )

    rows = []
    for point in points:
        record: dict[str, object] = {b: sample(raster, b, point, scale) for b in raster.band_names}
        # an auxiliary raster band of the same name takes precedence
        for field_name in AUXILIARY_FIELDS:
            record.setdefault(field_name, getattr(point, field_name))
        record.update(x=point.x, y=point.y)
        record[label_field] = point.label
        rows.append(record)

    table = pd.DataFrame(rows)
    logger.info(
        "Sampled %d point(s) × %d band(s); labels: %s",
        len(table), len(raster.band_names), table[label_field].value_counts().to_dict(),
    )
    return table


def load_sample_points(path: Path, label_field: str = "label") -> list[SamplePoint]:
    """Read sample points from a CSV or JSON (list of records) file.

    Args:
        path: Sample file.
        label_field: Column holding the health label.

    Raises:
        InputValidationError: If the file is missing, unsupported or empty.
        ColumnNotFoundError: If ``x``, ``y`` or *label_field* is missing.
    """
    path = Path(path)
    Validators.assert_file_exists(path)
    Validators.assert_supported_extension(path, [".csv", ".json"])

    if path.suffix.lower() == ".json":
        df = pd.read_json(path, orient="records")
    else:
        df = pd.read_csv(path)
    Validators.assert_columns_exist(df, [*COORDINATE_COLUMNS, label_field])
    if df.empty:
        raise InputValidationError(f"'{path.name}' contains no sample points")

    for field_name in AUXILIARY_FIELDS:
        if field_name not in df.columns:
            df[field_name] = math.nan

    points = [
        SamplePoint(
            x=float(x),
            y=float(y),
            label=str(label),
            soil_moisture=float(moisture),
            temperature=float(temperature),
        )
        for x, y, label, moisture, temperature in zip(
            df["x"], df["y"], df[label_field], df["soil_moisture"], df["temperature"]
        )
    ]
    logger.debug("Loaded %d sample point(s) from %s", len(points), path.name)
    return points
