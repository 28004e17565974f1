"""
Crop Health Monitor — Alert Generator
======================================
Groups classified pixels into connected regions and attaches a field
advisory to every region whose label the :class:`AlertPolicy` flags.

Connectivity:
    ``8`` (default) joins pixels that touch on an edge or a corner;
    ``4`` joins edge neighbours only.  Both are labelled with
    :func:`scipy.ndimage.label`.

Regions are ordered by class code, then by the raster scan order of
each region's first pixel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np
from scipy import ndimage

from crop_health_monitor.classifier import ClassificationRaster
from shared.python.validators import Validators

logger = logging.getLogger("crophealth.alerts")

DEFAULT_ADVISORIES: Mapping[str, str] = MappingProxyType({
    "stressed": "Water stress detected: schedule irrigation and check soil moisture.",
    "diseased": "Possible disease: scout the area and sample affected leaves.",
    "saline": "Salinity build-up: leach the root zone and review irrigation water quality.",
    "waterlogged": "Waterlogging: clear drainage and delay irrigation.",
    "healthy": "Crop condition normal. No action required.",
})


@dataclass(frozen=True)
class AlertPolicy:
    """Which labels raise alerts, and the advisory text for each label.

    Attributes:
        advisories: Label → advisory text.
        alert_labels: Labels whose regions are reported.
        min_pixels: Regions smaller than this are ignored.
    """

    advisories: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ADVISORIES))
    alert_labels: frozenset[str] = frozenset({"stressed"})
    min_pixels: int = 1

    def __post_init__(self) -> None:
        Validators.assert_positive("min_pixels", self.min_pixels)
        object.__setattr__(self, "alert_labels", frozenset(self.alert_labels))

    def triggers(self, label: str) -> bool:
        return label in self.alert_labels

    def advisory_for(self, label: str) -> str:
        return self.advisories.get(
            label, f"Condition '{label}' detected: inspect the field."
        )


@dataclass(frozen=True)
class AlertRegion:
    """A connected patch of one alerting label.

    Attributes:
        region_id: 1-based id, unique within one :func:`regions` call.
        label: Predicted class shared by all pixels.
        pixel_count: Number of pixels in the region.
        area: ``pixel_count`` × pixel area, in CRS units squared.
        centroid_x: Mean x of the pixel centres.
        centroid_y: Mean y of the pixel centres.
        mean_score: Mean classifier confidence over the region.
        advisory: Text from the policy's lookup table.
    """

    region_id: int
    label: str
    pixel_count: int
    area: float
    centroid_x: float
    centroid_y: float
    mean_score: float
    advisory: str

    @property
    def message(self) -> str:
        return (
            f"[{self.label.upper()}] region {self.region_id} at "
            f"({self.centroid_x:.1f}, {self.centroid_y:.1f}), "
            f"{self.pixel_count} px / {self.area:.0f} m²: {self.advisory}"
        )

    def to_geojson_feature(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [self.centroid_x, self.centroid_y]},
            "properties": {
                "region_id": self.region_id,
                "label": self.label,
                "pixel_count": self.pixel_count,
                "area": self.area,
                "mean_score": self.mean_score,
                "advisory": self.advisory,
            },
        }


def structure_for(connectivity: int) -> np.ndarray:
    """3×3 adjacency structure for 4- or 8-connectivity.

    Raises:
        InputValidationError: For any other connectivity.
    """
    Validators.assert_connectivity(connectivity)
    return ndimage.generate_binary_structure(2, 1 if connectivity == 4 else 2)


def regions(
    classification: ClassificationRaster,
    policy: AlertPolicy | None = None,
    connectivity: int = 8,
) -> list[AlertRegion]:
    """Find connected regions of every alerting label.

    Args:
        classification: Output of :func:`~crop_health_monitor.classifier.classify`.
        policy: Alert predicate and advisory table; default flags ``stressed``.
        connectivity: ``4`` or ``8``.

    Raises:
        InputValidationError: If *connectivity* is not 4 or 8.
    """
    policy = policy or AlertPolicy()
    structure = structure_for(connectivity)
    grid = classification.grid

    found: list[AlertRegion] = []
    for code, label in enumerate(classification.classes):
        if not policy.triggers(label):
            continue
        mask = classification.codes == code
        labeled, n_regions = ndimage.label(mask, structure=structure)
        if n_regions == 0:
            continue

        index = np.arange(1, n_regions + 1)
        sizes = ndimage.sum_labels(mask, labeled, index)
        centres = ndimage.center_of_mass(mask, labeled, index)
        scores = ndimage.mean(classification.scores, labeled, index)

        for size, (row, col), score in zip(sizes, centres, scores):
            pixel_count = int(size)
            if pixel_count < policy.min_pixels:
                continue
            x, y = grid.xy(row, col)
            found.append(AlertRegion(
                region_id=len(found) + 1,
                label=label,
                pixel_count=pixel_count,
                area=pixel_count * grid.pixel_area,
                centroid_x=x,
                centroid_y=y,
                mean_score=float(score),
                advisory=policy.advisory_for(label),
            ))

    logger.info(
        "%d alert region(s) (%d-connectivity) for label(s) %s",
        len(found), connectivity, sorted(policy.alert_labels),
    )
    return found
