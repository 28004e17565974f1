"""
Crop Health Monitor — CLI Entry Point
======================================
Exposes :class:`~crop_health_monitor.pipeline.CropHealthMonitor` as the
``geo-crop-health`` command.

Usage::

    geo-crop-health \\
        --catalog data/scenes.csv \\
        --samples data/samples.csv \\
        --output-dir output/ \\
        --cloud-threshold 10 --scale 10 --tree-count 10 --connectivity 8

Run ``geo-crop-health --help`` for the full option list.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from crop_health_monitor.pipeline import CropHealthMonitor, PipelineConfig
from shared.python.exceptions import CropHealthError

logger = logging.getLogger("crophealth.cli")


def _parse_index_list(raw: str) -> tuple[str, ...]:
    """Split ``"NDVI,ndwi"`` into ``("NDVI", "NDWI")``."""
    return tuple(s.strip().upper() for s in raw.split(",") if s.strip())


def _parse_aux(values: tuple[str, ...]) -> dict[str, Path]:
    """Parse repeated ``NAME=PATH`` options."""
    layers: dict[str, Path] = {}
    for item in values:
        name, sep, path = item.partition("=")
        if not sep or not name.strip() or not path.strip():
            raise click.BadParameter(f"expected NAME=PATH, got {item!r}", param_hint="--aux")
        layers[name.strip()] = Path(path.strip())
    return layers


@click.command("geo-crop-health")
@click.option(
    "--catalog", "catalog_path", required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Scene catalog CSV (scene_id,date,cloud_cover,path).",
)
@click.option(
    "--samples", "samples_path", required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Labeled sample points, CSV or JSON (x,y,label,soil_moisture,temperature).",
)
@click.option(
    "--output-dir", default="output", show_default=True,
    help="Directory for composite, classification and alert outputs.",
)
@click.option(
    "--cloud-threshold", default=10.0, show_default=True, type=float,
    help="Drop scenes whose cloud cover (percent) exceeds this value.",
)
@click.option(
    "--scale", default=10.0, show_default=True, type=float,
    help="Sampling neighbourhood size in metres.",
)
@click.option(
    "--tree-count", default=10, show_default=True, type=int,
    help="Number of trees in the random forest.",
)
@click.option(
    "--connectivity", default="8", show_default=True, type=click.Choice(["4", "8"]),
    help="Pixel adjacency used to group alert regions.",
)
@click.option(
    "--seed", default=42, show_default=True, type=int,
    help="Random seed for the classifier.",
)
@click.option(
    "--index", "index_list", default="NDVI,NDWI,NDSI,PIR", show_default=True,
    help="Comma-separated indices to composite.",
)
@click.option(
    "--predictor", "predictors", multiple=True,
    help="Classifier input (repeatable). Defaults to the composited indices.",
)
@click.option(
    "--aux", "aux_layers", multiple=True,
    help="Auxiliary raster as NAME=PATH (repeatable), e.g. soil_moisture=sm.tif.",
)
@click.option(
    "--label-field", default="label", show_default=True,
    help="Sample file column holding the health label.",
)
@click.option(
    "--alert-label", "alert_labels", multiple=True, default=("stressed",), show_default=True,
    help="Predicted label that raises an alert (repeatable).",
)
@click.option(
    "--min-region-pixels", default=1, show_default=True, type=int,
    help="Ignore alert regions smaller than this.",
)
@click.option(
    "--cache-dir", default=None,
    help="Download directory for scenes listed by URL.",
)
@click.option(
    "--quicklook/--no-quicklook", default=True, show_default=True,
    help="Write quicklook.png alongside the rasters.",
)
@click.option(
    "--verbose", is_flag=True, default=False,
    help="Enable DEBUG-level logging.",
)
def cli(
    catalog_path: str,
    samples_path: str,
    output_dir: str,
    cloud_threshold: float,
    scale: float,
    tree_count: int,
    connectivity: str,
    seed: int,
    index_list: str,
    predictors: tuple[str, ...],
    aux_layers: tuple[str, ...],
    label_field: str,
    alert_labels: tuple[str, ...],
    min_region_pixels: int,
    cache_dir: str | None,
    quicklook: bool,
    verbose: bool,
) -> None:
    """Classify crop health from a satellite scene stack and print field alerts.

    \b
    Examples:
        # Defaults: 10% cloud filter, 10 m sampling, 10 trees, 8-connectivity
        geo-crop-health --catalog scenes.csv --samples samples.csv

        # Add a soil moisture layer as a predictor
        geo-crop-health --catalog scenes.csv --samples samples.csv \\
            --aux soil_moisture=sm.tif \\
            --predictor NDVI --predictor NDWI --predictor soil_moisture
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = PipelineConfig(
            cloud_threshold=cloud_threshold,
            scale=scale,
            tree_count=tree_count,
            connectivity=int(connectivity),
            seed=seed,
            indices=_parse_index_list(index_list),
            predictors=tuple(predictors) or None,
            label_field=label_field,
            alert_labels=frozenset(alert_labels),
            min_region_pixels=min_region_pixels,
            quicklook=quicklook,
        )
        tool = CropHealthMonitor(
            catalog_path=Path(catalog_path),
            samples_path=Path(samples_path),
            output_dir=Path(output_dir),
            config=config,
            auxiliary_rasters=_parse_aux(aux_layers),
            cache_dir=Path(cache_dir) if cache_dir else None,
            verbose=verbose,
        )
        tool.run()
    except CropHealthError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    result = tool.result
    if result is None:
        click.echo("Error: pipeline finished without a result", err=True)
        sys.exit(1)
    click.echo(f"\nClass pixel counts: {result.classification.counts()}")
    if not result.alerts:
        click.echo("No alerts.")
    for alert in result.alerts:
        click.echo(f"  {alert.message}")
    click.echo(f"Outputs written to: {output_dir}")


if __name__ == "__main__":
    cli()
