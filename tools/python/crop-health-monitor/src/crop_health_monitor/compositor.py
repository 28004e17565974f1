"""
Crop Health Monitor — Temporal Compositor
==========================================
Reduces a stack of dated scenes to one median raster per spectral index.

Classes:
    Observation     One dated scene with its cloud-cover percentage.
    ImageStack      Ordered observations over one grid.

Functions:
    median_composite    Per-band, per-pixel NaN-aware median.
    composite           Cloud filter → per-scene indices → median.
    load_stack          Build an :class:`ImageStack` from a scene catalog CSV.

Scene catalog format (CSV)::

    scene_id,date,cloud_cover,path
    S2A_20240601,2024-06-01,5.0,scenes/20240601.tif
    S2B_20240611,2024-06-11,20.0,https://example.org/20240611.tif

``path`` is resolved relative to the catalog, or downloaded through a
:class:`~crop_health_monitor.fetch.SceneFetcher` when it is a URL.  Each
scene GeoTIFF must name its bands (``blue``, ``green``, ``red``, ``nir``,
``swir1``, ``swir2``) in its band descriptions.
"""

from __future__ import annotations

import datetime as dt
import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

import numpy as np
import pandas as pd

from crop_health_monitor.fetch import SceneFetcher, is_remote
from crop_health_monitor.indices import IndexStrategy, compute_indices, resolve_strategies
from crop_health_monitor.raster import FloatArray, GeoGrid, Raster, assert_same_grid, read_raster
from shared.python.exceptions import (
    EmptyStackError,
    InputValidationError,
    RasterError,
)
from shared.python.validators import Validators

logger = logging.getLogger("crophealth.compositor")

CATALOG_COLUMNS = ["scene_id", "date", "cloud_cover", "path"]


@dataclass(frozen=True)
class Observation:
    """One scene acquisition.

    Attributes:
        scene_id: Catalog identifier.
        date: Acquisition date.
        cloud_cover: Percentage (0-100) of the scene obscured by cloud.
        raster: Reflectance bands.
    """

    scene_id: str
    date: dt.date
    cloud_cover: float
    raster: Raster

    def __post_init__(self) -> None:
        Validators.assert_in_range(f"{self.scene_id} cloud_cover", self.cloud_cover, 0.0, 100.0)


@dataclass(frozen=True)
class ImageStack:
    """Ordered sequence of observations over the same region."""

    observations: tuple[Observation, ...]

    def __len__(self) -> int:
        return len(self.observations)

    def __iter__(self) -> Iterator[Observation]:
        return iter(self.observations)

    @property
    def grid(self) -> GeoGrid:
        """The shared grid.

        Raises:
            GridMismatchError: If two observations differ.
        """
        return assert_same_grid(o.raster for o in self.observations)

    def filter_clouds(self, threshold: float) -> ImageStack:
        """Keep observations with ``cloud_cover <= threshold``."""
        kept: list[Observation] = []
        for obs in self.observations:
            if obs.cloud_cover <= threshold:
                kept.append(obs)
            else:
                logger.debug("Dropping %s (cloud %.1f%% > %.1f%%)", obs.scene_id, obs.cloud_cover, threshold)
        return ImageStack(tuple(kept))


def median_composite(rasters: Sequence[Raster], name: str = "composite") -> Raster:
    """Per-pixel median of each band across *rasters*, ignoring NaN.

    A pixel that is NaN in every raster stays NaN.  The result does not
    depend on the order of *rasters*.

    Raises:
        RasterError: If *rasters* is empty or band sets differ.
        GridMismatchError: If grids differ.
    """
    if not rasters:
        raise RasterError("Cannot composite an empty list of rasters")
    grid = assert_same_grid(rasters)
    band_names = rasters[0].band_names
    for raster in rasters[1:]:
        if set(raster.band_names) != set(band_names):
            raise RasterError(
                f"Band sets differ: {rasters[0].name} has {list(band_names)}, "
                f"{raster.name} has {list(raster.band_names)}"
            )

    out: dict[str, FloatArray] = {}
    for band in band_names:
        cube = np.stack([r.band(band) for r in rasters], axis=0)
        with warnings.catch_warnings():
            # all-NaN columns are expected and stay NaN
            warnings.simplefilter("ignore", category=RuntimeWarning)
            out[band] = np.nanmedian(cube, axis=0)
    return Raster(out, grid, name=name)


def composite(
    stack: ImageStack,
    quality_threshold: float,
    strategies: Sequence[IndexStrategy] | None = None,
) -> Raster:
    """Cloud-filter *stack*, compute indices per scene, and median them.

    Args:
        stack: Observations with raw reflectance bands.
        quality_threshold: Maximum cloud-cover percentage to keep.
        strategies: Indices to compute; all four when ``None``.

    Returns:
        A raster with one band per index, on the stack's grid.

    Raises:
        EmptyStackError: If no observation passes the filter.
        GridMismatchError: If observations are on different grids.
        SpectralIndexError: If a scene lacks a required band.
    """
    Validators.assert_in_range("quality_threshold", quality_threshold, 0.0, 100.0)
    strategies = list(strategies) if strategies is not None else resolve_strategies(None)

    kept = stack.filter_clouds(quality_threshold)
    if len(kept) == 0:
        raise EmptyStackError(quality_threshold, len(stack))

    logger.info(
        "Compositing %d of %d scene(s) with cloud cover <= %.1f%%: %s",
        len(kept), len(stack), quality_threshold,
        ", ".join(o.scene_id for o in kept),
    )
    per_scene = [compute_indices(o.raster, strategies) for o in kept]
    return median_composite(per_scene, name="composite")


# ---------------------------------------------------------------------------
# Catalog loading
# ---------------------------------------------------------------------------


def load_stack(catalog_path: Path, fetcher: SceneFetcher | None = None) -> ImageStack:
    """Read a scene catalog CSV and load every scene it lists.

    Raises:
        InputValidationError: If the catalog is malformed, a local scene is
            missing, or a remote scene is listed without a fetcher.
        ColumnNotFoundError: If a catalog column is missing.
        SceneFetchError: If a remote scene cannot be downloaded.
    """
    catalog_path = Path(catalog_path)
    Validators.assert_file_exists(catalog_path)
    Validators.assert_supported_extension(catalog_path, [".csv"])

    df = pd.read_csv(catalog_path, dtype={"scene_id": str, "path": str})
    Validators.assert_columns_exist(df, CATALOG_COLUMNS)
    if df.empty:
        raise InputValidationError(f"Scene catalog '{catalog_path.name}' lists no scenes")

    observations: list[Observation] = []
    for row in df.itertuples(index=False):
        location = str(row.path)
        if is_remote(location):
            if fetcher is None:
                raise InputValidationError(
                    f"Scene {row.scene_id} is remote ({location}) but no cache directory was configured"
                )
            scene_path = fetcher.fetch(location, scene_id=row.scene_id)
        else:
            scene_path = Path(location)
            if not scene_path.is_absolute():
                scene_path = catalog_path.parent / scene_path
            Validators.assert_file_exists(scene_path)

        try:
            date = pd.Timestamp(row.date).date()
        except ValueError as exc:
            raise InputValidationError(f"Scene {row.scene_id}: bad date {row.date!r}") from exc

        raster = read_raster(scene_path)
        observations.append(
            Observation(
                scene_id=str(row.scene_id),
                date=date,
                cloud_cover=float(row.cloud_cover),
                raster=Raster(raster.bands, raster.grid, name=str(row.scene_id)),
            )
        )

    observations.sort(key=lambda o: o.date)
    logger.info("Loaded %d scene(s) from %s", len(observations), catalog_path.name)
    return ImageStack(tuple(observations))
