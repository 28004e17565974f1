"""
Crop Health Monitor — Shared Input Validators
==============================================
Static precondition checks used across the pipeline stages.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans, which
keeps ``validate_inputs`` implementations short::

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_file_exists(self.input_path)
            Validators.assert_supported_extension(self.input_path, [".csv"])
            Validators.assert_in_range("cloud_threshold", 10.0, 0.0, 100.0)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from shared.python.exceptions import (
    ColumnNotFoundError,
    GridMismatchError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks.

    All methods are ``@staticmethod``; this class is never instantiated.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Raises:
            InputValidationError: If *path* does not exist or is a directory.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_dir: Path) -> None:
        """Create *output_dir* (and parents) if needed.

        Raises:
            OutputWriteError: If the directory cannot be created.
        """
        try:
            Path(output_dir).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_dir), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Allowed extensions, each starting with a dot.

        Raises:
            InputValidationError: If the suffix is not in *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # Tabular data checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_columns_exist(
        df: Any,
        required_columns: Sequence[str],
    ) -> None:
        """Assert that all *required_columns* are present in *df*.

        Raises:
            ColumnNotFoundError: On the first missing column found.
        """
        available = list(df.columns)
        for col in required_columns:
            if col not in available:
                raise ColumnNotFoundError(col, available)

    # ------------------------------------------------------------------
    # Numeric / config checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_in_range(name: str, value: float, low: float, high: float) -> None:
        """Assert ``low <= value <= high``.

        Raises:
            InputValidationError: If *value* is outside the closed range.
        """
        if not (low <= value <= high):
            raise InputValidationError(
                f"{name} must be between {low} and {high}, got {value}"
            )

    @staticmethod
    def assert_positive(name: str, value: float) -> None:
        """Assert ``value > 0``.

        Raises:
            InputValidationError: If *value* is zero or negative.
        """
        if value <= 0:
            raise InputValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def assert_connectivity(connectivity: int) -> None:
        """Assert the pixel adjacency rule is 4 or 8.

        Raises:
            InputValidationError: For any other value.
        """
        if connectivity not in (4, 8):
            raise InputValidationError(
                f"connectivity must be 4 or 8, got {connectivity}"
            )

    # ------------------------------------------------------------------
    # Raster checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_raster_shapes_match(
        shape_a: tuple[int, ...],
        shape_b: tuple[int, ...],
        label_a: str = "Band A",
        label_b: str = "Band B",
    ) -> None:
        """Assert that two arrays have identical shapes.

        Required before any pixel-wise arithmetic (e.g. NDVI).

        Raises:
            GridMismatchError: If the shapes differ.
        """
        if tuple(shape_a) != tuple(shape_b):
            raise GridMismatchError(
                label_a, label_b, f"shape {tuple(shape_a)} != {tuple(shape_b)}"
            )
