"""
Crop Health Monitor — Custom Exception Hierarchy
=================================================
Every pipeline stage raises exceptions from this module so callers can
catch them at the right level of granularity.

Hierarchy::

    CropHealthError                      ← catch-all base
    ├── InputValidationError             ← bad files, bad config values
    │   └── ColumnNotFoundError          ← CSV/table column missing
    ├── RasterError                      ← rasterio / numpy raster issues
    │   ├── GridMismatchError            ← rasters on different grids combined
    │   ├── OutOfBoundsError             ← sample point outside raster extent
    │   └── EmptyStackError              ← no scene passed the cloud filter
    ├── SpectralIndexError               ← unsupported index or missing bands
    ├── ClassifierError                  ← training / prediction failures
    │   ├── DegenerateTrainingError      ← fewer than two classes to learn
    │   └── SchemaMismatchError          ← band set differs from training
    ├── SceneFetchError                  ← remote scene download failed
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import EmptyStackError

    raise EmptyStackError(threshold=10.0, total=3)
"""

from __future__ import annotations

from typing import Sequence


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class CropHealthError(Exception):
    """Base exception for the crop health pipeline.

    Catch this to handle any pipeline error without caring about the
    exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(CropHealthError):
    """Raised when inputs or configuration values fail validation."""


class ColumnNotFoundError(InputValidationError):
    """Raised when an expected column is absent from a tabular dataset.

    Args:
        column: The name of the missing column.
        available: Column names that ARE present, listed in the message.

    Example::

        raise ColumnNotFoundError("cloud_cover", df.columns.tolist())
    """

    def __init__(self, column: str, available: Sequence[str]) -> None:
        available_str = ", ".join(f"'{c}'" for c in available)
        super().__init__(
            f"Column '{column}' not found. Available columns: {available_str}"
        )
        self.column: str = column
        self.available: list[str] = list(available)


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(CropHealthError):
    """Raised for general raster processing failures (rasterio / numpy)."""


class GridMismatchError(RasterError):
    """Raised when rasters with different grids are combined.

    A grid is the (shape, transform, CRS) triple.  Mixing grids is a
    configuration error, never resampled silently.

    Args:
        label_a: Name of the first raster (used in the message).
        label_b: Name of the second raster.
        detail: What differs, e.g. ``"shape (4, 4) != (8, 8)"``.
    """

    def __init__(self, label_a: str, label_b: str, detail: str) -> None:
        super().__init__(
            f"Grid mismatch between {label_a} and {label_b}: {detail}. "
            "All rasters must share shape, transform and CRS."
        )
        self.label_a: str = label_a
        self.label_b: str = label_b
        self.detail: str = detail


class OutOfBoundsError(RasterError):
    """Raised when a coordinate lies outside a raster's extent.

    Args:
        x: X coordinate in the raster CRS.
        y: Y coordinate in the raster CRS.
        bounds: ``(left, bottom, right, top)`` of the raster.
    """

    def __init__(self, x: float, y: float, bounds: tuple[float, float, float, float]) -> None:
        left, bottom, right, top = bounds
        super().__init__(
            f"Point ({x}, {y}) lies outside raster bounds "
            f"[{left}, {bottom}, {right}, {top}]"
        )
        self.x: float = x
        self.y: float = y
        self.bounds: tuple[float, float, float, float] = bounds


class EmptyStackError(RasterError):
    """Raised when no observation survives the cloud-cover filter.

    Args:
        threshold: Cloud-cover threshold (percent) that was applied.
        total: Number of observations in the stack before filtering.
    """

    def __init__(self, threshold: float, total: int) -> None:
        super().__init__(
            f"No observation passed the cloud filter: 0 of {total} scene(s) "
            f"have cloud cover <= {threshold}%"
        )
        self.threshold: float = threshold
        self.total: int = total


# ---------------------------------------------------------------------------
# Spectral index
# ---------------------------------------------------------------------------


class SpectralIndexError(CropHealthError):
    """Raised when a spectral index cannot be calculated.

    Common causes: unsupported index name or a missing band.

    Args:
        index_name: The name of the index that failed (e.g. ``"NDSI"``).
        reason: Short explanation of why calculation failed.

    Example::

        raise SpectralIndexError("NDVI", "band 'nir' not present")
    """

    def __init__(self, index_name: str, reason: str) -> None:
        super().__init__(f"Cannot calculate {index_name}: {reason}")
        self.index_name: str = index_name
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class ClassifierError(CropHealthError):
    """Raised for supervised training and prediction failures."""


class DegenerateTrainingError(ClassifierError):
    """Raised when the training set holds fewer than two distinct labels.

    Args:
        labels: The distinct labels that were present.
    """

    def __init__(self, labels: Sequence[str]) -> None:
        found = ", ".join(repr(label) for label in labels) or "none"
        super().__init__(
            f"Training requires at least 2 distinct labels; found {len(labels)} ({found})"
        )
        self.labels: list[str] = list(labels)


class SchemaMismatchError(ClassifierError):
    """Raised when the bands given at classify time differ from training.

    Args:
        expected: Predictor names, in order, that the model was trained on.
        actual: Band names, in order, of the raster being classified.
    """

    def __init__(self, expected: Sequence[str], actual: Sequence[str]) -> None:
        super().__init__(
            f"Band schema mismatch: model expects {list(expected)} "
            f"but raster provides {list(actual)}"
        )
        self.expected: list[str] = list(expected)
        self.actual: list[str] = list(actual)


# ---------------------------------------------------------------------------
# Remote fetch
# ---------------------------------------------------------------------------


class SceneFetchError(CropHealthError):
    """Raised when a remote scene cannot be downloaded.

    Args:
        url: The scene URL.
        reason: Last error seen.
        attempts: Number of attempts made before giving up.
    """

    def __init__(self, url: str, reason: str, attempts: int = 1) -> None:
        super().__init__(
            f"Failed to fetch scene '{url}' after {attempts} attempt(s): {reason}"
        )
        self.url: str = url
        self.reason: str = reason
        self.attempts: int = attempts


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(CropHealthError):
    """Raised when an output artifact cannot be written to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.

    Example::

        raise OutputWriteError("/read-only/dir/alerts.geojson", "Permission denied")
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
