"""
Crop Health Monitor — Shared Python Package
============================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so pipeline modules can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import GridMismatchError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    ClassifierError,
    ColumnNotFoundError,
    CropHealthError,
    DegenerateTrainingError,
    EmptyStackError,
    GridMismatchError,
    InputValidationError,
    OutOfBoundsError,
    OutputWriteError,
    RasterError,
    SceneFetchError,
    SchemaMismatchError,
    SpectralIndexError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "CropHealthError",
    "InputValidationError",
    "ColumnNotFoundError",
    "RasterError",
    "GridMismatchError",
    "OutOfBoundsError",
    "EmptyStackError",
    "SpectralIndexError",
    "ClassifierError",
    "DegenerateTrainingError",
    "SchemaMismatchError",
    "SceneFetchError",
    "OutputWriteError",
]
