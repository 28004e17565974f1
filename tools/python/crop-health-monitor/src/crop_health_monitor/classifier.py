"""
Crop Health Monitor — Supervised Classifier
============================================
Trains a random forest on the sampled feature table and applies it to
every pixel of a raster whose bands match the training predictors.

Classes:
    TrainedModel            Immutable fitted forest + predictor order.
    ClassificationRaster    Per-pixel class codes and confidence scores.

Functions:
    train       Fit a new model (bootstrap-aggregated decision trees).
    classify    Predict every pixel; probability averaging across trees.

The forest's ``random_state`` is fixed by the ``seed`` argument so runs
are reproducible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt
import pandas as pd
from sklearn.ensemble import RandomForestClassifier

from crop_health_monitor.raster import FloatArray, GeoGrid, Raster
from shared.python.exceptions import (
    DegenerateTrainingError,
    InputValidationError,
    SchemaMismatchError,
)
from shared.python.validators import Validators

logger = logging.getLogger("crophealth.classifier")

NODATA_CODE = -1


@dataclass(frozen=True, eq=False)
class TrainedModel:
    """A fitted random forest and the schema it was trained on.

    Attributes:
        estimator: The fitted :class:`~sklearn.ensemble.RandomForestClassifier`.
        predictors: Predictor names in the column order used for fitting.
        classes: Class labels; position *i* is class code *i*.
        label: Name of the label column that was learned.
        training_accuracy: Accuracy on the training rows.
    """

    estimator: RandomForestClassifier
    predictors: tuple[str, ...]
    classes: tuple[str, ...]
    label: str
    training_accuracy: float

    @property
    def tree_count(self) -> int:
        return len(self.estimator.estimators_)

    @property
    def feature_importances(self) -> dict[str, float]:
        return {
            name: float(weight)
            for name, weight in zip(self.predictors, self.estimator.feature_importances_)
        }


@dataclass(frozen=True, eq=False)
class ClassificationRaster:
    """Per-pixel classification result on the input grid.

    Attributes:
        codes: ``int16`` class codes; ``-1`` where any predictor was NaN.
        scores: Winning-class probability; NaN where ``codes == -1``.
        classes: Label for each code.
        grid: Georeference of the classified raster.
    """

    codes: npt.NDArray[np.int16]
    scores: FloatArray
    classes: tuple[str, ...]
    grid: GeoGrid

    def __post_init__(self) -> None:
        codes = np.array(self.codes, dtype=np.int16, copy=True)
        scores = np.array(self.scores, dtype=np.float64, copy=True)
        Validators.assert_raster_shapes_match(codes.shape, self.grid.shape, "codes", "grid")
        Validators.assert_raster_shapes_match(scores.shape, self.grid.shape, "scores", "grid")
        codes.flags.writeable = False
        scores.flags.writeable = False
        object.__setattr__(self, "codes", codes)
        object.__setattr__(self, "scores", scores)

    def code_for(self, label: str) -> int:
        try:
            return self.classes.index(label)
        except ValueError:
            raise InputValidationError(
                f"Unknown class {label!r}; classes are {list(self.classes)}"
            ) from None

    def label_at(self, row: int, col: int) -> str | None:
        """Label of one pixel, ``None`` for no-data."""
        code = int(self.codes[row, col])
        return None if code == NODATA_CODE else self.classes[code]

    def counts(self) -> dict[str, int]:
        """Pixel count per class label (no-data excluded)."""
        values, counts = np.unique(self.codes[self.codes != NODATA_CODE], return_counts=True)
        return {self.classes[int(v)]: int(c) for v, c in zip(values, counts)}


def train(
    features: pd.DataFrame,
    label: str = "label",
    predictors: Sequence[str] | None = None,
    *,
    tree_count: int = 10,
    seed: int = 42,
) -> TrainedModel:
    """Fit a random forest on *features*.

    Args:
        features: Feature table, one row per sample.
        label: Categorical column to learn.
        predictors: Columns to learn from, in order.
        tree_count: Number of trees in the ensemble.
        seed: Random state for bootstrap sampling and split selection.

    Raises:
        ColumnNotFoundError: If *label* or a predictor column is missing.
        DegenerateTrainingError: If fewer than two labels remain after
            dropping rows with NaN predictors.
        InputValidationError: If *predictors* is empty or *tree_count* < 1.
    """
    if not predictors:
        raise InputValidationError("At least one predictor is required")
    if tree_count < 1:
        raise InputValidationError(f"tree_count must be >= 1, got {tree_count}")
    predictors = tuple(predictors)
    Validators.assert_columns_exist(features, [label, *predictors])

    X = features.loc[:, list(predictors)].to_numpy(dtype=np.float64)
    y = features[label].astype(str).to_numpy()

    complete = ~np.isnan(X).any(axis=1)
    dropped = int((~complete).sum())
    if dropped:
        logger.warning("Dropping %d training row(s) with missing predictor values", dropped)
    X, y = X[complete], y[complete]

    distinct = sorted(set(y))
    if len(distinct) < 2:
        raise DegenerateTrainingError(distinct)
    for cls in distinct:
        if (y == cls).sum() < 2:
            logger.warning("Class %r has a single training example", cls)

    estimator = RandomForestClassifier(
        n_estimators=tree_count,
        bootstrap=True,
        random_state=seed,
    )
    estimator.fit(X, y)
    accuracy = float(estimator.score(X, y))

    model = TrainedModel(
        estimator=estimator,
        predictors=predictors,
        classes=tuple(str(c) for c in estimator.classes_),
        label=label,
        training_accuracy=accuracy,
    )
    logger.info(
        "Trained %d-tree forest on %d row(s), classes %s, training accuracy %.3f",
        tree_count, len(y), list(model.classes), accuracy,
    )
    for name, weight in sorted(model.feature_importances.items(), key=lambda kv: -kv[1]):
        logger.info("  importance %-14s %.3f", name, weight)
    return model


def classify(model: TrainedModel, raster: Raster) -> ClassificationRaster:
    """Predict a class for every pixel of *raster*.

    Args:
        model: Output of :func:`train`.
        raster: Bands named exactly as ``model.predictors``, in that order.

    Raises:
        SchemaMismatchError: If the band names or their order differ from
            the training predictors.
    """
    if raster.band_names != model.predictors:
        raise SchemaMismatchError(model.predictors, raster.band_names)

    height, width = raster.shape
    pixels = raster.to_array().reshape(len(model.predictors), -1).T
    valid = ~np.isnan(pixels).any(axis=1)

    codes = np.full(height * width, NODATA_CODE, dtype=np.int16)
    scores = np.full(height * width, np.nan, dtype=np.float64)
    if valid.any():
        proba = model.estimator.predict_proba(pixels[valid])
        codes[valid] = proba.argmax(axis=1).astype(np.int16)
        scores[valid] = proba.max(axis=1)

    logger.info(
        "Classified %d of %d pixel(s); %d no-data",
        int(valid.sum()), valid.size, int((~valid).sum()),
    )
    return ClassificationRaster(
        codes=codes.reshape(height, width),
        scores=scores.reshape(height, width),
        classes=model.classes,
        grid=raster.grid,
    )
