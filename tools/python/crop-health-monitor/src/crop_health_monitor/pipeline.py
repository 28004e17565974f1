"""
Crop Health Monitor — Pipeline
===============================
Runs the full chain from a scene catalog to alert regions.

Classes:
    PipelineConfig      Tunable parameters, validated on construction.
    PipelineResult      In-memory products of one run.
    CropHealthMonitor   Primary tool class (inherits GeoTool).

Usage::

    from pathlib import Path
    from crop_health_monitor import CropHealthMonitor, PipelineConfig

    tool = CropHealthMonitor(
        catalog_path=Path("data/scenes.csv"),
        samples_path=Path("data/samples.csv"),
        output_dir=Path("output"),
        config=PipelineConfig(cloud_threshold=10.0, tree_count=10),
    )
    tool.run()
    for alert in tool.result.alerts:
        print(alert.message)

Outputs written to ``output_dir``:
    composite.tif        one float32 band per index (and auxiliary layer)
    classification.tif   class codes + confidence
    alerts.geojson       alert region centroids
    features.csv         sampled training table
    quicklook.png        composite + class map (when enabled)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import pandas as pd

from crop_health_monitor.alerts import DEFAULT_ADVISORIES, AlertPolicy, AlertRegion, regions
from crop_health_monitor.classifier import ClassificationRaster, TrainedModel, classify, train
from crop_health_monitor.compositor import composite, load_stack
from crop_health_monitor.export import (
    save_quicklook_png,
    write_alerts_geojson,
    write_classification,
    write_feature_table,
    write_raster,
)
from crop_health_monitor.fetch import SceneFetcher
from crop_health_monitor.indices import ALL_STRATEGIES, resolve_strategies
from crop_health_monitor.raster import Raster, read_raster
from crop_health_monitor.sampler import build_feature_table, load_sample_points
from shared.python.base_tool import GeoTool
from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

logger = logging.getLogger("crophealth.pipeline")


_INDEX_NAMES = frozenset(s.name for s in ALL_STRATEGIES)


def _canonical_predictor(name: str) -> str:
    """Upper-case index names (``"ndvi"`` → ``"NDVI"``); leave auxiliary names as given."""
    upper = name.strip().upper()
    return upper if upper in _INDEX_NAMES else name.strip()


@dataclass(frozen=True)
class PipelineConfig:
    """Parameters for one pipeline run.

    Attributes:
        cloud_threshold: Maximum scene cloud cover (percent) to composite.
        scale: Sampling neighbourhood edge length, in CRS units (metres).
        tree_count: Trees in the random forest.
        connectivity: Pixel adjacency for alert regions, 4 or 8.
        seed: Random state for the forest.
        indices: Spectral indices to composite.
        predictors: Classifier inputs; defaults to *indices*.  Names other
                    than index names must be supplied as auxiliary rasters.
        label_field: Sample column holding the health label.
        alert_labels: Labels that raise alerts.
        min_region_pixels: Smallest region reported.
        advisories: Label → advisory text.
        quicklook: Also write a PNG preview.
    """

    cloud_threshold: float = 10.0
    scale: float = 10.0
    tree_count: int = 10
    connectivity: int = 8
    seed: int = 42
    indices: tuple[str, ...] = ("NDVI", "NDWI", "NDSI", "PIR")
    predictors: tuple[str, ...] | None = None
    label_field: str = "label"
    alert_labels: frozenset[str] = frozenset({"stressed"})
    min_region_pixels: int = 1
    advisories: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ADVISORIES))
    quicklook: bool = True

    def __post_init__(self) -> None:
        Validators.assert_in_range("cloud_threshold", self.cloud_threshold, 0.0, 100.0)
        Validators.assert_positive("scale", self.scale)
        Validators.assert_positive("tree_count", self.tree_count)
        Validators.assert_connectivity(self.connectivity)
        if not self.indices:
            raise InputValidationError("At least one index is required")
        # normalise user-supplied names ("ndvi" → "NDVI")
        object.__setattr__(self, "indices", tuple(s.name for s in resolve_strategies(self.indices)))
        if self.predictors:
            object.__setattr__(self, "predictors", tuple(_canonical_predictor(p) for p in self.predictors))
        if not self.label_field.strip():
            raise InputValidationError("label_field must not be empty")
        object.__setattr__(self, "alert_labels", frozenset(self.alert_labels))

    @property
    def predictor_names(self) -> tuple[str, ...]:
        return tuple(self.predictors) if self.predictors else self.indices

    @property
    def alert_policy(self) -> AlertPolicy:
        return AlertPolicy(
            advisories=self.advisories,
            alert_labels=self.alert_labels,
            min_pixels=self.min_region_pixels,
        )


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Products of a :class:`CropHealthMonitor` run."""

    composite: Raster
    features: pd.DataFrame
    model: TrainedModel
    classification: ClassificationRaster
    alerts: list[AlertRegion]


class CropHealthMonitor(GeoTool):
    """Composite, sample, train, classify and alert in one run.

    Args:
        catalog_path: Scene catalog CSV (see :func:`~crop_health_monitor.compositor.load_stack`).
        samples_path: Labeled sample points, CSV or JSON.
        output_dir: Directory for the output files.
        config: Run parameters.
        auxiliary_rasters: Extra single-band layers (e.g. ``soil_moisture``)
                           on the composite grid, keyed by predictor name.
        cache_dir: Where remote scenes are downloaded; required only when
                   the catalog lists URLs.
        verbose: Enable DEBUG-level logging.
    """

    def __init__(
        self,
        catalog_path: Path,
        samples_path: Path,
        output_dir: Path,
        config: PipelineConfig | None = None,
        *,
        auxiliary_rasters: Mapping[str, Path] | None = None,
        cache_dir: Path | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(Path(catalog_path), Path(output_dir), verbose=verbose)
        self.catalog_path = Path(catalog_path)
        self.samples_path = Path(samples_path)
        self.output_dir = Path(output_dir)
        self.config = config or PipelineConfig()
        self.auxiliary_rasters = {k: Path(v) for k, v in (auxiliary_rasters or {}).items()}
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self._result: PipelineResult | None = None

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check input files exist and every predictor has a source layer.

        Raises:
            InputValidationError: On a missing file, a bad extension, or a
                predictor that is neither an index nor an auxiliary raster.
            OutputWriteError: If the output directory cannot be created.
        """
        Validators.assert_file_exists(self.catalog_path)
        Validators.assert_supported_extension(self.catalog_path, [".csv"])
        Validators.assert_file_exists(self.samples_path)
        Validators.assert_supported_extension(self.samples_path, [".csv", ".json"])
        for path in self.auxiliary_rasters.values():
            Validators.assert_file_exists(path)
            Validators.assert_supported_extension(path, [".tif", ".tiff"])

        available = set(self.config.indices) | set(self.auxiliary_rasters)
        missing = [p for p in self.config.predictor_names if p not in available]
        if missing:
            raise InputValidationError(
                f"Predictor(s) {missing} are neither computed indices {list(self.config.indices)} "
                f"nor auxiliary rasters {sorted(self.auxiliary_rasters)}"
            )

        Validators.assert_output_dir_writable(self.output_dir)
        logger.debug("Inputs validated: %r", self.config)

    def process(self) -> None:
        """Run every stage and write the outputs.

        Raises:
            EmptyStackError: If every scene is too cloudy.
            GridMismatchError: If scenes or auxiliary rasters disagree on grid.
            OutOfBoundsError: If a sample point is outside the composite.
            DegenerateTrainingError: If the samples hold a single label.
            OutputWriteError: If an output cannot be written.
        """
        cfg = self.config
        fetcher = SceneFetcher(self.cache_dir) if self.cache_dir else None

        stack = load_stack(self.catalog_path, fetcher=fetcher)
        layers = composite(stack, cfg.cloud_threshold, resolve_strategies(cfg.indices))
        for name, path in self.auxiliary_rasters.items():
            aux = read_raster(path)
            layers = layers.merge(Raster({name: aux.band(aux.band_names[0])}, aux.grid, name=name))
        self._record_artifact(write_raster(layers, self.output_dir / "composite.tif"))

        points = load_sample_points(self.samples_path, label_field=cfg.label_field)
        features = build_feature_table(layers, points, cfg.scale, label_field=cfg.label_field)
        self._record_artifact(write_feature_table(features, self.output_dir / "features.csv"))

        model = train(
            features,
            label=cfg.label_field,
            predictors=cfg.predictor_names,
            tree_count=cfg.tree_count,
            seed=cfg.seed,
        )
        classification = classify(model, layers.select(model.predictors))
        self._record_artifact(write_classification(classification, self.output_dir / "classification.tif"))
        logger.info("Class pixel counts: %s", classification.counts())

        alerts = regions(classification, cfg.alert_policy, connectivity=cfg.connectivity)
        self._record_artifact(
            write_alerts_geojson(alerts, self.output_dir / "alerts.geojson", crs=layers.grid.crs)
        )
        for alert in alerts:
            logger.info("%s", alert.message)

        if cfg.quicklook:
            self._record_artifact(
                save_quicklook_png(layers, classification, alerts, self.output_dir / "quicklook.png")
            )

        self._result = PipelineResult(
            composite=layers,
            features=features,
            model=model,
            classification=classification,
            alerts=alerts,
        )

    @property
    def result(self) -> PipelineResult | None:
        """Products of the last run, or ``None`` before :meth:`run`."""
        return self._result
