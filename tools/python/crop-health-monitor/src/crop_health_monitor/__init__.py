"""
Crop Health Monitor
====================
Median-composite spectral indices from a satellite scene stack, train a
random forest on labeled field points, classify every pixel and report
connected alert regions.

Public API::

    from crop_health_monitor import CropHealthMonitor, PipelineConfig
"""

from crop_health_monitor.alerts import AlertPolicy, AlertRegion, regions
from crop_health_monitor.classifier import (
    ClassificationRaster,
    TrainedModel,
    classify,
    train,
)
from crop_health_monitor.compositor import (
    ImageStack,
    Observation,
    composite,
    load_stack,
    median_composite,
)
from crop_health_monitor.indices import (
    ALL_STRATEGIES,
    IndexStrategy,
    NDSIStrategy,
    NDVIStrategy,
    NDWIStrategy,
    PIRStrategy,
    compute_indices,
    normalized_difference,
)
from crop_health_monitor.pipeline import CropHealthMonitor, PipelineConfig, PipelineResult
from crop_health_monitor.raster import GeoGrid, Raster, read_raster
from crop_health_monitor.sampler import SamplePoint, build_feature_table, load_sample_points, sample

__all__ = [
    "CropHealthMonitor",
    "PipelineConfig",
    "PipelineResult",
    "GeoGrid",
    "Raster",
    "read_raster",
    "normalized_difference",
    "compute_indices",
    "IndexStrategy",
    "NDVIStrategy",
    "NDWIStrategy",
    "NDSIStrategy",
    "PIRStrategy",
    "ALL_STRATEGIES",
    "Observation",
    "ImageStack",
    "composite",
    "median_composite",
    "load_stack",
    "SamplePoint",
    "sample",
    "build_feature_table",
    "load_sample_points",
    "TrainedModel",
    "ClassificationRaster",
    "train",
    "classify",
    "AlertPolicy",
    "AlertRegion",
    "regions",
]
__version__ = "1.0.0"
