"""
Tests for the Band Math Engine
===============================
Pure numpy tests; no files are written.

Test classes:
    TestNormalizedDifference    Formula, no-data policy, value range.
    TestIndexStrategies         Band pairing for each index.
    TestRegistry                Name lookup.
    TestComputeIndices          Multi-index raster output.
"""

from __future__ import annotations

import warnings

import numpy as np
import pytest
from rasterio.transform import from_origin

from crop_health_monitor.indices import (
    ALL_STRATEGIES,
    NDSIStrategy,
    NDVIStrategy,
    NDWIStrategy,
    PIRStrategy,
    compute_indices,
    get_strategy,
    normalized_difference,
    required_bands,
)
from crop_health_monitor.raster import GeoGrid, Raster
from shared.python.exceptions import GridMismatchError, SpectralIndexError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

GRID = GeoGrid(1, 1, from_origin(0, 10, 10, 10))


def _bands(**values: float) -> Raster:
    """Build a 1×1 raster from scalar band values."""
    return Raster({k: np.array([[v]]) for k, v in values.items()}, GRID)


# ---------------------------------------------------------------------------
# normalized_difference
# ---------------------------------------------------------------------------


class TestNormalizedDifference:

    def test_typical_value(self) -> None:
        """(0.5 - 0.1) / (0.5 + 0.1) ≈ 0.6667."""
        result = normalized_difference([[0.5]], [[0.1]])
        assert result[0, 0] == pytest.approx(0.4 / 0.6)

    def test_zero_sum_is_nan(self) -> None:
        result = normalized_difference([[0.0, 0.3]], [[0.0, 0.1]])
        assert np.isnan(result[0, 0])
        assert result[0, 1] == pytest.approx(0.5)

    def test_nan_input_propagates(self) -> None:
        result = normalized_difference([[np.nan]], [[0.2]])
        assert np.isnan(result[0, 0])

    def test_no_runtime_warning_on_zero_sum(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            normalized_difference(np.zeros((3, 3)), np.zeros((3, 3)))

    def test_output_range(self) -> None:
        """Non-negative inputs with no zero-sum pixel stay within [-1, 1]."""
        rng = np.random.default_rng(0)
        a = rng.uniform(0.001, 1.0, size=(50, 50))
        b = rng.uniform(0.001, 1.0, size=(50, 50))
        result = normalized_difference(a, b)
        assert np.all(result >= -1.0)
        assert np.all(result <= 1.0)

    def test_shape_mismatch_raises(self) -> None:
        with pytest.raises(GridMismatchError, match="shape"):
            normalized_difference(np.ones((2, 2)), np.ones((3, 3)))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class TestIndexStrategies:

    def test_ndvi_uses_nir_and_red(self) -> None:
        result = NDVIStrategy().compute(_bands(nir=0.6, red=0.2))
        assert result[0, 0] == pytest.approx(0.5)

    def test_ndwi_uses_green_and_nir(self) -> None:
        result = NDWIStrategy().compute(_bands(green=0.4, nir=0.1))
        assert result[0, 0] == pytest.approx(0.6)

    def test_ndsi_uses_swir_pair(self) -> None:
        result = NDSIStrategy().compute(_bands(swir1=0.3, swir2=0.1))
        assert result[0, 0] == pytest.approx(0.5)

    def test_pir_uses_red_and_blue(self) -> None:
        result = PIRStrategy().compute(_bands(red=0.1, blue=0.3))
        assert result[0, 0] == pytest.approx(-0.5)

    def test_missing_band_raises(self) -> None:
        with pytest.raises(SpectralIndexError, match="nir"):
            NDVIStrategy().compute(_bands(red=0.2))

    def test_required_bands_union_is_ordered(self) -> None:
        assert required_bands(ALL_STRATEGIES) == ["nir", "red", "green", "swir1", "swir2", "blue"]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:

    def test_lookup_is_case_insensitive(self) -> None:
        assert get_strategy(" ndvi ").name == "NDVI"

    def test_unknown_name_raises(self) -> None:
        with pytest.raises(SpectralIndexError, match="unknown index"):
            get_strategy("EVI")


# ---------------------------------------------------------------------------
# compute_indices
# ---------------------------------------------------------------------------


class TestComputeIndices:

    def test_one_band_per_index_in_order(self) -> None:
        bands = _bands(blue=0.05, green=0.1, red=0.1, nir=0.5, swir1=0.3, swir2=0.2)
        result = compute_indices(bands, ALL_STRATEGIES)
        assert result.band_names == ("NDVI", "NDWI", "NDSI", "PIR")
        assert result.grid == GRID

    def test_empty_strategy_list_raises(self) -> None:
        with pytest.raises(SpectralIndexError):
            compute_indices(_bands(red=0.1), [])
