"""
Tests for the Alert Generator
==============================
Classification rasters are built by hand so region geometry is exact.

Test classes:
    TestRegions         Connectivity, centroids, filtering.
    TestAlertPolicy     Label predicate and advisory lookup.
    TestAlertRegion     Message and GeoJSON rendering.
"""

from __future__ import annotations

import numpy as np
import pytest
from rasterio.transform import from_origin

from crop_health_monitor.alerts import AlertPolicy, AlertRegion, regions
from crop_health_monitor.classifier import NODATA_CODE, ClassificationRaster
from crop_health_monitor.raster import GeoGrid
from shared.python.exceptions import InputValidationError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CLASSES = ("healthy", "stressed")
HEALTHY, STRESSED = 0, 1


def _classified(codes: list[list[int]], scores: float = 0.9) -> ClassificationRaster:
    arr = np.array(codes, dtype=np.int16)
    grid = GeoGrid(arr.shape[0], arr.shape[1], from_origin(0, 10 * arr.shape[0], 10, 10))
    score_arr = np.where(arr == NODATA_CODE, np.nan, scores)
    return ClassificationRaster(arr, score_arr, CLASSES, grid)


# ---------------------------------------------------------------------------
# regions
# ---------------------------------------------------------------------------


class TestRegions:

    def test_two_disjoint_pixels_make_two_regions(self) -> None:
        cls = _classified([
            [1, 0, 0, 0],
            [0, 0, 0, 0],
            [0, 0, 0, 1],
        ])
        found = regions(cls, connectivity=8)
        assert len(found) == 2
        assert all(r.label == "stressed" and r.pixel_count == 1 for r in found)
        assert [r.region_id for r in found] == [1, 2]

    def test_diagonal_neighbours_depend_on_connectivity(self) -> None:
        cls = _classified([
            [1, 0],
            [0, 1],
        ])
        assert len(regions(cls, connectivity=8)) == 1
        assert len(regions(cls, connectivity=4)) == 2

    def test_default_connectivity_is_eight(self) -> None:
        cls = _classified([
            [1, 0],
            [0, 1],
        ])
        assert len(regions(cls)) == 1

    def test_centroid_is_mean_of_pixel_centres(self) -> None:
        # grid origin (0, 30); pixels (1, 1) and (1, 2) → centres (15, 15), (25, 15)
        cls = _classified([
            [0, 0, 0],
            [0, 1, 1],
            [0, 0, 0],
        ])
        (region,) = regions(cls)
        assert region.centroid_x == pytest.approx(20.0)
        assert region.centroid_y == pytest.approx(15.0)
        assert region.pixel_count == 2
        assert region.area == pytest.approx(200.0)
        assert region.mean_score == pytest.approx(0.9)

    def test_only_alert_labels_reported(self) -> None:
        cls = _classified([
            [0, 0],
            [0, 0],
        ])
        assert regions(cls) == []
        policy = AlertPolicy(alert_labels=frozenset({"healthy"}))
        (region,) = regions(cls, policy)
        assert region.label == "healthy"
        assert region.pixel_count == 4

    def test_nodata_pixels_never_grouped(self) -> None:
        cls = _classified([
            [1, NODATA_CODE, 1],
        ])
        found = regions(cls, connectivity=8)
        assert [r.pixel_count for r in found] == [1, 1]

    def test_small_regions_filtered(self) -> None:
        cls = _classified([
            [1, 1, 0, 1],
        ])
        found = regions(cls, AlertPolicy(min_pixels=2))
        assert [r.pixel_count for r in found] == [2]
        assert found[0].region_id == 1

    @pytest.mark.parametrize("connectivity", [0, 6, 26])
    def test_invalid_connectivity_raises(self, connectivity: int) -> None:
        with pytest.raises(InputValidationError, match="connectivity"):
            regions(_classified([[1]]), connectivity=connectivity)


# ---------------------------------------------------------------------------
# AlertPolicy
# ---------------------------------------------------------------------------


class TestAlertPolicy:

    def test_default_flags_stressed_only(self) -> None:
        policy = AlertPolicy()
        assert policy.triggers("stressed")
        assert not policy.triggers("healthy")

    def test_advisory_lookup_and_fallback(self) -> None:
        policy = AlertPolicy(advisories={"stressed": "Irrigate now."})
        assert policy.advisory_for("stressed") == "Irrigate now."
        assert "frost" in policy.advisory_for("frost")

    def test_min_pixels_must_be_positive(self) -> None:
        with pytest.raises(InputValidationError):
            AlertPolicy(min_pixels=0)


# ---------------------------------------------------------------------------
# AlertRegion
# ---------------------------------------------------------------------------


class TestAlertRegion:

    REGION = AlertRegion(
        region_id=3,
        label="stressed",
        pixel_count=4,
        area=400.0,
        centroid_x=500015.0,
        centroid_y=4199985.0,
        mean_score=0.8,
        advisory="Irrigate now.",
    )

    def test_message_contains_label_location_and_advisory(self) -> None:
        msg = self.REGION.message
        assert msg.startswith("[STRESSED] region 3")
        assert "(500015.0, 4199985.0)" in msg
        assert msg.endswith("Irrigate now.")

    def test_geojson_feature(self) -> None:
        feature = self.REGION.to_geojson_feature()
        assert feature["geometry"] == {"type": "Point", "coordinates": [500015.0, 4199985.0]}
        assert feature["properties"]["pixel_count"] == 4
        assert feature["properties"]["label"] == "stressed"
