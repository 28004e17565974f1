"""
Crop Health Monitor — Shared Base Tool
=======================================
Abstract base class for the runnable pipeline tools.

Design Pattern:
    Template Method — the public ``run()`` method defines a fixed
    pipeline (validate → process → report) that subclasses fill in
    by implementing ``validate_inputs`` and ``process``.

Usage::

    from shared.python.base_tool import GeoTool

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            ...
        def process(self) -> None:
            ...
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

# Each module gets a child logger, e.g. logging.getLogger("crophealth.sampler").
logger = logging.getLogger("crophealth")


class GeoTool(ABC):
    """Abstract base class for the pipeline tools.

    Calling :meth:`run` executes validation, processing and the success
    report in order.

    Attributes:
        input_path: Path to the primary input file or directory.
        output_path: Path where output will be written.
        verbose: When ``True`` the tool logs DEBUG-level messages.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
    ) -> None:
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose
        self.artifacts: list[Path] = []

        self._configure_logging()

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Validate all inputs before processing begins.

        Raises:
            InputValidationError: If a required file is missing or a
                configuration value is invalid.
        """

    @abstractmethod
    def process(self) -> None:
        """Execute the core processing logic.

        Called by :meth:`run` after :meth:`validate_inputs` succeeds.
        Exceptions propagate through :meth:`run`.
        """

    # ------------------------------------------------------------------
    # Template method
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Validate, process, then log the elapsed time.

        Raises:
            Any exception raised by ``validate_inputs`` or ``process``
            propagates unchanged.
        """
        logger.info("Starting %s", self.__class__.__name__)
        start = time.perf_counter()
        self.artifacts = []

        self.validate_inputs()
        self.process()

        elapsed = time.perf_counter() - start
        self._report_success(elapsed)

    # ------------------------------------------------------------------
    # Protected helpers
    # ------------------------------------------------------------------

    def _record_artifact(self, path: Path) -> None:
        """Remember *path* as an output written during :meth:`process`."""
        self.artifacts.append(Path(path))
        logger.debug("Wrote %s", path)

    def _report_success(self, elapsed: float) -> None:
        logger.info(
            "%s completed in %.2fs → %s (%d artifact(s))",
            self.__class__.__name__,
            elapsed,
            self.output_path,
            len(self.artifacts),
        )
        for artifact in self.artifacts:
            logger.info("  %s", artifact.name)

    def _configure_logging(self) -> None:
        """Attach a console handler to the ``crophealth`` logger once.

        Uses DEBUG level when ``self.verbose`` is ``True``, otherwise INFO.
        """
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="[%(asctime)s] %(levelname)-8s %(name)s — %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"input_path={self.input_path!r}, "
            f"output_path={self.output_path!r})"
        )
