"""
Crop Health Monitor — Band Math Engine
=======================================
Normalized-difference spectral indices computed from raw reflectance
bands.

Each index is an :class:`IndexStrategy` following the Strategy design
pattern; :func:`compute_indices` runs any list of strategies against a
:class:`~crop_health_monitor.raster.Raster` in one pass.

Supported indices:
    - NDVI   Normalized Difference Vegetation Index   (NIR, Red)
    - NDWI   Normalized Difference Water Index        (Green, NIR)
    - NDSI   Normalized Difference Salinity Index     (SWIR1, SWIR2)
    - PIR    Pigment Index Ratio                      (Red, Blue)

No-data policy:
    A pixel where ``a + b == 0`` or where either input is NaN yields NaN.
    No warning is emitted and no exception is raised.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

import numpy as np
import numpy.typing as npt

from crop_health_monitor.raster import FloatArray, Raster
from shared.python.exceptions import SpectralIndexError
from shared.python.validators import Validators

logger = logging.getLogger("crophealth.indices")


def normalized_difference(a: npt.ArrayLike, b: npt.ArrayLike) -> FloatArray:
    """Return ``(a - b) / (a + b)`` per pixel.

    Pixels whose sum is zero become NaN.  Reflectance artefacts (slightly
    negative values) can push the ratio past ±1; results are clipped to
    ``[-1, 1]``.

    Raises:
        GridMismatchError: If *a* and *b* differ in shape.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    Validators.assert_raster_shapes_match(a.shape, b.shape, "band a", "band b")

    total = a + b
    with np.errstate(invalid="ignore", divide="ignore"):
        nd = np.where(total == 0, np.nan, (a - b) / total)
    return np.clip(nd, -1.0, 1.0)


# ---------------------------------------------------------------------------
# Index strategy ABC + concrete implementations
# ---------------------------------------------------------------------------


class IndexStrategy(ABC):
    """Abstract base for a single spectral index computation."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short name of the index (e.g. ``"NDVI"``)."""

    @property
    @abstractmethod
    def required_bands(self) -> list[str]:
        """Band names this index reads, e.g. ``["nir", "red"]``."""

    @abstractmethod
    def compute(self, bands: Raster) -> FloatArray:
        """Compute the index from *bands*."""

    def missing_bands(self, available: Iterable[str]) -> list[str]:
        present = set(available)
        return [b for b in self.required_bands if b not in present]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class NormalizedDifferenceStrategy(IndexStrategy):
    """An index of the form ``(positive - negative) / (positive + negative)``.

    Subclasses only set the class attributes below.
    """

    index_name: str = ""
    positive_band: str = ""
    negative_band: str = ""

    @property
    def name(self) -> str:
        return self.index_name

    @property
    def required_bands(self) -> list[str]:
        return [self.positive_band, self.negative_band]

    def compute(self, bands: Raster) -> FloatArray:
        missing = self.missing_bands(bands.band_names)
        if missing:
            raise SpectralIndexError(self.name, f"band(s) not present: {', '.join(missing)}")
        return normalized_difference(
            bands.band(self.positive_band), bands.band(self.negative_band)
        )


class NDVIStrategy(NormalizedDifferenceStrategy):
    """NDVI = (NIR - Red) / (NIR + Red).

    Higher values indicate denser, healthier vegetation.
    """

    index_name = "NDVI"
    positive_band = "nir"
    negative_band = "red"


class NDWIStrategy(NormalizedDifferenceStrategy):
    """NDWI = (Green - NIR) / (Green + NIR).  Positive over open water."""

    index_name = "NDWI"
    positive_band = "green"
    negative_band = "nir"


class NDSIStrategy(NormalizedDifferenceStrategy):
    """NDSI = (SWIR1 - SWIR2) / (SWIR1 + SWIR2), a soil salinity proxy."""

    index_name = "NDSI"
    positive_band = "swir1"
    negative_band = "swir2"


class PIRStrategy(NormalizedDifferenceStrategy):
    # Carotenoid/chlorophyll balance; rises as leaves yellow.
    index_name = "PIR"
    positive_band = "red"
    negative_band = "blue"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ALL_STRATEGIES: list[IndexStrategy] = [
    NDVIStrategy(),
    NDWIStrategy(),
    NDSIStrategy(),
    PIRStrategy(),
]

_STRATEGY_REGISTRY: dict[str, IndexStrategy] = {s.name: s for s in ALL_STRATEGIES}


def get_strategy(name: str) -> IndexStrategy:
    """Look up an index strategy by case-insensitive name.

    Raises:
        SpectralIndexError: For an unknown name.
    """
    key = name.strip().upper()
    try:
        return _STRATEGY_REGISTRY[key]
    except KeyError:
        raise SpectralIndexError(
            name, f"unknown index. Valid options: {', '.join(_STRATEGY_REGISTRY)}"
        ) from None


def resolve_strategies(names: Sequence[str] | None) -> list[IndexStrategy]:
    """Map index names to strategies; ``None`` selects all four."""
    if names is None:
        return list(ALL_STRATEGIES)
    return [get_strategy(n) for n in names]


def required_bands(strategies: Iterable[IndexStrategy]) -> list[str]:
    """Union of bands needed by *strategies*, in first-seen order."""
    seen: dict[str, None] = {}
    for strategy in strategies:
        for band in strategy.required_bands:
            seen.setdefault(band, None)
    return list(seen)


def compute_indices(bands: Raster, strategies: Sequence[IndexStrategy]) -> Raster:
    """Run each strategy and return one band per index, on the input grid.

    Raises:
        SpectralIndexError: If a strategy's bands are missing.
    """
    if not strategies:
        raise SpectralIndexError("(none)", "no index strategies requested")
    out: dict[str, FloatArray] = {}
    for strategy in strategies:
        logger.debug("Computing %s for %s", strategy.name, bands.name)
        out[strategy.name] = strategy.compute(bands)
    return Raster(out, bands.grid, name=bands.name)
