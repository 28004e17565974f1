"""
Tests for the Supervised Classifier
====================================
Test classes:
    TestTrain       Fitting, validation and reproducibility.
    TestClassify    Band-schema checks and per-pixel prediction.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin

from crop_health_monitor.classifier import NODATA_CODE, ClassificationRaster, classify, train
from crop_health_monitor.raster import GeoGrid, Raster
from shared.python.exceptions import (
    ColumnNotFoundError,
    DegenerateTrainingError,
    GridMismatchError,
    InputValidationError,
    SchemaMismatchError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

GRID = GeoGrid(4, 4, from_origin(0, 40, 10, 10))
PREDICTORS = ("NDVI", "NDWI")


def _features(n_per_class: int = 10) -> pd.DataFrame:
    """Two well-separated classes: healthy (high NDVI) and stressed (low NDVI)."""
    rng = np.random.default_rng(3)
    healthy = pd.DataFrame({
        "NDVI": rng.uniform(0.7, 0.9, n_per_class),
        "NDWI": rng.uniform(-0.6, -0.4, n_per_class),
        "label": "healthy",
    })
    stressed = pd.DataFrame({
        "NDVI": rng.uniform(0.1, 0.3, n_per_class),
        "NDWI": rng.uniform(-0.2, 0.0, n_per_class),
        "label": "stressed",
    })
    return pd.concat([healthy, stressed], ignore_index=True)


def _field_raster() -> Raster:
    """Left half healthy-looking, right half stressed-looking."""
    ndvi = np.full(GRID.shape, 0.8)
    ndwi = np.full(GRID.shape, -0.5)
    ndvi[:, 2:] = 0.2
    ndwi[:, 2:] = -0.1
    return Raster({"NDVI": ndvi, "NDWI": ndwi}, GRID)


# ---------------------------------------------------------------------------
# train
# ---------------------------------------------------------------------------


class TestTrain:

    def test_fits_with_requested_tree_count(self) -> None:
        model = train(_features(), predictors=PREDICTORS, tree_count=5)
        assert model.tree_count == 5
        assert model.classes == ("healthy", "stressed")
        assert model.predictors == PREDICTORS
        assert model.training_accuracy == pytest.approx(1.0)
        assert set(model.feature_importances) == set(PREDICTORS)

    def test_single_label_raises(self) -> None:
        features = _features()
        features["label"] = "healthy"
        with pytest.raises(DegenerateTrainingError) as exc_info:
            train(features, predictors=PREDICTORS)
        assert exc_info.value.labels == ["healthy"]

    def test_nan_rows_dropped_before_label_check(self) -> None:
        features = _features(3)
        features.loc[features["label"] == "stressed", "NDVI"] = np.nan
        with pytest.raises(DegenerateTrainingError):
            train(features, predictors=PREDICTORS)

    def test_missing_predictor_column_raises(self) -> None:
        with pytest.raises(ColumnNotFoundError, match="soil_moisture"):
            train(_features(), predictors=("NDVI", "soil_moisture"))

    def test_no_predictors_raises(self) -> None:
        with pytest.raises(InputValidationError):
            train(_features(), predictors=())

    def test_zero_trees_raises(self) -> None:
        with pytest.raises(InputValidationError, match="tree_count"):
            train(_features(), predictors=PREDICTORS, tree_count=0)

    def test_same_seed_same_predictions(self) -> None:
        rng = np.random.default_rng(11)
        raster = Raster({
            "NDVI": rng.uniform(0.0, 1.0, GRID.shape),
            "NDWI": rng.uniform(-0.7, 0.1, GRID.shape),
        }, GRID)
        first = classify(train(_features(), predictors=PREDICTORS, seed=1), raster)
        second = classify(train(_features(), predictors=PREDICTORS, seed=1), raster)
        np.testing.assert_array_equal(first.codes, second.codes)
        np.testing.assert_array_equal(first.scores, second.scores)


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:

    def test_separable_field_classified(self) -> None:
        model = train(_features(), predictors=PREDICTORS)
        result = classify(model, _field_raster())

        assert result.label_at(0, 0) == "healthy"
        assert result.label_at(3, 3) == "stressed"
        assert result.counts() == {"healthy": 8, "stressed": 8}
        assert np.all((result.scores > 0.5) & (result.scores <= 1.0))
        assert result.grid == GRID

    def test_missing_band_raises(self) -> None:
        model = train(_features(), predictors=PREDICTORS)
        raster = _field_raster().select(["NDVI"])
        with pytest.raises(SchemaMismatchError) as exc_info:
            classify(model, raster)
        assert exc_info.value.expected == list(PREDICTORS)

    def test_reordered_bands_raise(self) -> None:
        model = train(_features(), predictors=PREDICTORS)
        with pytest.raises(SchemaMismatchError):
            classify(model, _field_raster().select(["NDWI", "NDVI"]))

    def test_extra_band_raises(self) -> None:
        model = train(_features(), predictors=PREDICTORS)
        extra = _field_raster().merge(Raster({"PIR": np.zeros(GRID.shape)}, GRID, name="pir"))
        with pytest.raises(SchemaMismatchError):
            classify(model, extra)

    def test_nan_pixel_is_nodata(self) -> None:
        model = train(_features(), predictors=PREDICTORS)
        ndvi = _field_raster().band("NDVI").copy()
        ndvi[1, 1] = np.nan
        raster = Raster({"NDVI": ndvi, "NDWI": _field_raster().band("NDWI")}, GRID)

        result = classify(model, raster)

        assert result.codes[1, 1] == NODATA_CODE
        assert np.isnan(result.scores[1, 1])
        assert result.label_at(1, 1) is None
        assert sum(result.counts().values()) == 15

    def test_result_is_read_only(self) -> None:
        result = classify(train(_features(), predictors=PREDICTORS), _field_raster())
        with pytest.raises(ValueError):
            result.codes[0, 0] = 1


class TestClassificationRaster:

    def test_shape_must_match_grid(self) -> None:
        with pytest.raises(GridMismatchError):
            ClassificationRaster(
                codes=np.zeros((2, 2), dtype=np.int16),
                scores=np.zeros((4, 4)),
                classes=("a",),
                grid=GRID,
            )

    def test_caller_arrays_stay_writable(self) -> None:
        codes = np.zeros((4, 4), dtype=np.int16)
        scores = np.ones((4, 4))
        result = ClassificationRaster(codes, scores, ("healthy",), GRID)

        codes[0, 0] = 5
        scores[0, 0] = 0.0

        assert result.codes[0, 0] == 0
        assert result.scores[0, 0] == 1.0
        assert not result.codes.flags.writeable

    def test_code_for_unknown_label_raises(self) -> None:
        result = ClassificationRaster(
            codes=np.zeros((4, 4), dtype=np.int16),
            scores=np.ones((4, 4)),
            classes=("healthy", "stressed"),
            grid=GRID,
        )
        assert result.code_for("stressed") == 1
        with pytest.raises(InputValidationError):
            result.code_for("flooded")
