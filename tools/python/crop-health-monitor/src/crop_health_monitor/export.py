"""
Crop Health Monitor — Output Writers
=====================================
Persists pipeline products:

* composite index raster  → multi-band float32 GeoTIFF
* classification raster   → int16 GeoTIFF (+ optional confidence band)
* alert regions           → GeoJSON FeatureCollection of centroid points
* training feature table  → CSV
* quicklook               → two-panel PNG (composite + classes)

All writers raise :class:`~shared.python.exceptions.OutputWriteError`
on failure.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

import matplotlib
matplotlib.use("Agg")                    # non-interactive backend
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import rasterio
from matplotlib.patches import Patch
from rasterio.errors import RasterioError

from crop_health_monitor.alerts import AlertRegion
from crop_health_monitor.classifier import NODATA_CODE, ClassificationRaster
from crop_health_monitor.raster import GeoGrid, Raster
from shared.python.exceptions import OutputWriteError

logger = logging.getLogger("crophealth.export")


def _base_profile(grid: GeoGrid, dtype: str, count: int, nodata: float) -> dict[str, Any]:
    return {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": count,
        "dtype": dtype,
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": nodata,
        "compress": "lzw",
    }


def write_raster(raster: Raster, output_path: Path) -> Path:
    """Write every band as float32, storing band names as descriptions."""
    output_path = Path(output_path)
    profile = _base_profile(raster.grid, "float32", len(raster.band_names), np.nan)
    try:
        with rasterio.open(output_path, "w", **profile) as dst:
            for i, name in enumerate(raster.band_names, start=1):
                dst.write(raster.band(name).astype(np.float32), i)
                dst.set_band_description(i, name)
    except (OSError, RasterioError) as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc
    logger.debug("Wrote %s (%s)", output_path.name, ", ".join(raster.band_names))
    return output_path


def write_classification(
    classification: ClassificationRaster,
    output_path: Path,
    *,
    include_scores: bool = True,
) -> Path:
    """Write class codes (band 1, int16, nodata -1) and optionally scores.

    The class legend is stored as dataset tags ``class_<code>=<label>``.
    Scores are scaled to 0–10000 in band 2 so the file stays int16.
    """
    output_path = Path(output_path)
    count = 2 if include_scores else 1
    profile = _base_profile(classification.grid, "int16", count, NODATA_CODE)
    try:
        with rasterio.open(output_path, "w", **profile) as dst:
            dst.write(classification.codes.astype(np.int16), 1)
            dst.set_band_description(1, "class")
            if include_scores:
                scaled = np.where(
                    np.isnan(classification.scores),
                    NODATA_CODE,
                    np.round(classification.scores * 10000),
                ).astype(np.int16)
                dst.write(scaled, 2)
                dst.set_band_description(2, "confidence_x10000")
            dst.update_tags(**{f"class_{i}": label for i, label in enumerate(classification.classes)})
    except (OSError, RasterioError) as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc
    logger.debug("Wrote %s", output_path.name)
    return output_path


def write_alerts_geojson(
    alert_regions: Sequence[AlertRegion],
    output_path: Path,
    crs: Any = None,
) -> Path:
    """Write alert regions as a GeoJSON FeatureCollection of centroids."""
    output_path = Path(output_path)
    collection: dict[str, Any] = {
        "type": "FeatureCollection",
        "features": [r.to_geojson_feature() for r in alert_regions],
    }
    if crs is not None:
        collection["crs"] = {"type": "name", "properties": {"name": str(crs)}}
    try:
        output_path.write_text(json.dumps(collection, indent=2), encoding="utf-8")
    except OSError as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc
    logger.debug("Wrote %d alert(s) to %s", len(alert_regions), output_path.name)
    return output_path


def write_feature_table(table: pd.DataFrame, output_path: Path) -> Path:
    output_path = Path(output_path)
    try:
        table.to_csv(output_path, index=False)
    except OSError as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc
    return output_path


def save_quicklook_png(
    layers: Raster,
    classification: ClassificationRaster,
    alert_regions: Sequence[AlertRegion],
    output_path: Path,
    index_band: str = "NDVI",
) -> Path:
    """Two-panel PNG: one index composite, and the classes with alert centroids."""
    output_path = Path(output_path)
    fig, axes = plt.subplots(1, 2, figsize=(14, 6))

    band = index_band if index_band in layers.band_names else layers.band_names[0]
    shown = axes[0].imshow(layers.band(band), cmap="RdYlGn", vmin=-1, vmax=1)
    fig.colorbar(shown, ax=axes[0], fraction=0.046, pad=0.04)
    axes[0].set_title(f"{band} median composite", fontsize=12, fontweight="bold")
    axes[0].axis("off")

    n_cls = max(len(classification.classes), 1)
    colours = plt.colormaps.get_cmap("Set2")(np.linspace(0, 1, n_cls))
    rgba = np.zeros((*classification.grid.shape, 4), dtype=np.float32)
    for code in range(len(classification.classes)):
        mask = classification.codes == code
        rgba[mask, :3] = colours[code][:3]
        rgba[mask, 3] = 1.0
    axes[1].imshow(rgba)

    inverse = ~classification.grid.transform
    for region in alert_regions:
        col, row = inverse * (region.centroid_x, region.centroid_y)
        axes[1].plot(col - 0.5, row - 0.5, marker="x", color="black", markersize=8)
    patches = [
        Patch(facecolor=colours[i][:3], label=label)
        for i, label in enumerate(classification.classes)
    ]
    axes[1].legend(handles=patches, loc="lower right", fontsize=9, framealpha=0.85)
    axes[1].set_title(f"Crop health ({len(alert_regions)} alert(s))", fontsize=12, fontweight="bold")
    axes[1].axis("off")

    plt.tight_layout()
    try:
        fig.savefig(str(output_path), dpi=120, bbox_inches="tight")
    except OSError as exc:
        raise OutputWriteError(str(output_path), str(exc)) from exc
    finally:
        plt.close(fig)
    return output_path
