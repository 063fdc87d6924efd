"""Quality scores for copy-number segments.

Each scoring method is a fixed regression model over a handful of segment
statistics ("predictors"). Coefficients were fitted offline and are constants
here; changing any of them changes the calibration of every emitted score.
"""

from __future__ import annotations

import enum
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Sequence, Tuple

import numpy as np

from .models import Segment
from .utils import clamp, phred_from_error_prob, round_half_away, sigmoid

logger = logging.getLogger(__name__)


class QScoreMethod(enum.Enum):
    BIN_COUNT_LINEAR_FIT = "BinCountLinearFit"
    GENERALIZED_LINEAR_FIT = "GeneralizedLinearFit"
    LOGISTIC = "Logistic"
    LOGISTIC_GERMLINE = "LogisticGermline"


class QScorePredictor(enum.Enum):
    BIN_COUNT = "BinCount"
    LOG_BIN_COUNT = "LogBinCount"
    BIN_MEAN = "BinMean"
    BIN_CV = "BinCv"
    MAF_COUNT = "MafCount"
    MAF_MEAN = "MafMean"
    MAF_CV = "MafCv"
    LOG_MAF_CV = "LogMafCv"
    MODEL_DISTANCE = "ModelDistance"
    RUNNER_UP_MODEL_DISTANCE = "RunnerUpModelDistance"
    DISTANCE_RATIO = "DistanceRatio"
    COPY_NUMBER = "CopyNumber"
    MAJOR_CHROMOSOME_COUNT = "MajorChromosomeCount"


def parse_qscore_method(name: str | QScoreMethod) -> QScoreMethod:
    """Accept an enum member, its value (``Logistic``) or its name (``logistic``)."""
    if isinstance(name, QScoreMethod):
        return name
    if not isinstance(name, str):
        raise ValueError(f"qscore method must be a string, got {name!r}")
    for method in QScoreMethod:
        if name == method.value or name.upper() == method.name:
            return method
    choices = ", ".join(m.value for m in QScoreMethod)
    raise ValueError(f"Unknown qscore method '{name}' (choices: {choices})")


def _mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def _coefficient_of_variation(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    mean = float(arr.mean())
    if mean == 0:
        return 0.0
    return float(arr.std() / mean)


def get_qscore_predictor(segment: Segment, predictor: QScorePredictor) -> float:
    """Compute one predictor from the segment's accumulated statistics.

    Missing data (no variant frequencies, no runner-up distance) yields 0.
    """
    if predictor is QScorePredictor.BIN_COUNT:
        return float(segment.bin_count)
    if predictor is QScorePredictor.LOG_BIN_COUNT:
        return math.log10(1 + segment.bin_count)
    if predictor is QScorePredictor.BIN_MEAN:
        return _mean(segment.counts)
    if predictor is QScorePredictor.BIN_CV:
        return _coefficient_of_variation(segment.counts)
    if predictor is QScorePredictor.MAF_COUNT:
        return float(len(segment.variant_frequencies))
    if predictor is QScorePredictor.MAF_MEAN:
        return _mean(segment.variant_frequencies)
    if predictor is QScorePredictor.MAF_CV:
        return _coefficient_of_variation(segment.variant_frequencies)
    if predictor is QScorePredictor.LOG_MAF_CV:
        return math.log10(1 + get_qscore_predictor(segment, QScorePredictor.MAF_CV))
    if predictor is QScorePredictor.MODEL_DISTANCE:
        return float(segment.model_distance)
    if predictor is QScorePredictor.RUNNER_UP_MODEL_DISTANCE:
        return float(segment.runner_up_model_distance)
    if predictor is QScorePredictor.DISTANCE_RATIO:
        if segment.runner_up_model_distance == 0:
            return 0.0
        return segment.model_distance / segment.runner_up_model_distance
    if predictor is QScorePredictor.COPY_NUMBER:
        return float(segment.copy_number)
    if predictor is QScorePredictor.MAJOR_CHROMOSOME_COUNT:
        if segment.major_chromosome_count is None:
            return float(math.ceil(segment.copy_number / 2))
        return float(segment.major_chromosome_count)
    raise ValueError(f"Unhandled qscore predictor: {predictor!r}")


def qscore_predictors(segment: Segment) -> Dict[str, float]:
    """All predictors for a segment, keyed by predictor name (printed by ``cnvmerge score --predictors``)."""
    return {p.value: get_qscore_predictor(segment, p) for p in QScorePredictor}


Coefficients = Tuple[Tuple[QScorePredictor, float], ...]


def _linear(segment: Segment, intercept: float, coefficients: Coefficients) -> float:
    total = intercept
    for predictor, weight in coefficients:
        total += weight * get_qscore_predictor(segment, predictor)
    return total


class QScoreModel(ABC):
    @abstractmethod
    def score(self, segment: Segment) -> int: ...


@dataclass(frozen=True)
class LogisticModel(QScoreModel):
    """Logistic regression; the predicted probability is reported on the Phred scale."""

    intercept: float
    coefficients: Coefficients
    min_qscore: int
    max_qscore: int

    def score(self, segment: Segment) -> int:
        logit = _linear(segment, self.intercept, self.coefficients)
        # 1 - sigmoid(x) == sigmoid(-x), without cancellation for large x
        q = phred_from_error_prob(sigmoid(-logit))
        if math.isinf(q):
            return self.max_qscore
        return int(clamp(round_half_away(q), self.min_qscore, self.max_qscore))


@dataclass(frozen=True)
class BinCountModel(QScoreModel):
    """Score from the number of bins alone; saturates at ``max_qscore`` for long segments."""

    intercept: float
    slope: float
    saturation_bin_count: int
    max_qscore: int

    def score(self, segment: Segment) -> int:
        if segment.bin_count >= self.saturation_bin_count:
            return self.max_qscore
        # 1 - 1 / (1 + exp(a - b*n)) == sigmoid(a - b*n)
        error = sigmoid(self.intercept - segment.bin_count * self.slope)
        return min(self.max_qscore, round_half_away(phred_from_error_prob(error)))


@dataclass(frozen=True)
class GeneralizedLinearModel(QScoreModel):
    """Generalized linear fit mapped linearly onto the q-score range."""

    intercept: float
    coefficients: Coefficients
    offset: float
    scale: float
    min_qscore: int
    max_qscore: int

    def score(self, segment: Segment) -> int:
        linear_fit = _linear(segment, self.intercept, self.coefficients)
        score = clamp(self.offset + self.scale * linear_fit, self.min_qscore, self.max_qscore)
        return round_half_away(score)


QSCORE_MODELS: Dict[QScoreMethod, QScoreModel] = {
    # ROC AUC 0.921 on germline truth sets
    QScoreMethod.LOGISTIC_GERMLINE: LogisticModel(
        intercept=-5.0123,
        coefficients=(
            (QScorePredictor.LOG_BIN_COUNT, 4.9801),
            (QScorePredictor.MODEL_DISTANCE, -5.5472),
            (QScorePredictor.DISTANCE_RATIO, -1.7914),
        ),
        min_qscore=2,
        max_qscore=40,
    ),
    # ROC AUC 0.8289
    QScoreMethod.LOGISTIC: LogisticModel(
        intercept=-0.5143,
        coefficients=(
            (QScorePredictor.LOG_BIN_COUNT, 0.8596),
            (QScorePredictor.MODEL_DISTANCE, -50.4366),
            (QScorePredictor.DISTANCE_RATIO, -0.6511),
        ),
        min_qscore=2,
        max_qscore=60,
    ),
    QScoreMethod.BIN_COUNT_LINEAR_FIT: BinCountModel(
        intercept=0.5532,
        slope=0.147,
        saturation_bin_count=100,
        max_qscore=61,
    ),
    QScoreMethod.GENERALIZED_LINEAR_FIT: GeneralizedLinearModel(
        intercept=-3.65,
        coefficients=(
            (QScorePredictor.LOG_BIN_COUNT, -1.12),
            (QScorePredictor.MODEL_DISTANCE, 3.89),
            (QScorePredictor.MAJOR_CHROMOSOME_COUNT, 0.47),
            (QScorePredictor.MAF_MEAN, -0.68),
            (QScorePredictor.LOG_MAF_CV, -0.25),
        ),
        offset=-11.9,
        scale=-11.4,
        min_qscore=2,
        max_qscore=61,
    ),
}


def compute_qscore(segment: Segment, method: QScoreMethod) -> int:
    """Quality score of ``segment`` under the given model."""
    try:
        model = QSCORE_MODELS[method]
    except KeyError:
        raise ValueError(f"Unhandled qscore method: {method!r}") from None
    return model.score(segment)


def assign_quality_scores(segments: Iterable[Segment], method: QScoreMethod) -> None:
    """Overwrite ``qscore`` of every segment using ``method``."""
    n = 0
    for segment in segments:
        segment.qscore = compute_qscore(segment, method)
        n += 1
    logger.debug("Assigned %s q-scores to %d segments", method.value, n)
