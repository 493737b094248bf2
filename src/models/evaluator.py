# ============================================================
# src/models/evaluator.py
# Threshold-based evaluation of churn probabilities: confusion
# counts, accuracy/precision/recall/F1, ROC sweep and AUC.
# ============================================================

import numpy as np                                 # NumPy for vectorized comparisons
from dataclasses import dataclass, asdict          # Immutable result records
from sklearn.metrics import confusion_matrix       # Confusion matrix counts
from sklearn.metrics import auc as trapezoid_auc   # Trapezoidal area under a curve
from loguru import logger                          # Structured logging
from typing import Any, Dict, List, Optional, Sequence, Tuple  # Type hints

from src.utils.errors import InvalidInput          # Pipeline error types

# Number of threshold steps used for the ROC sweep when none is configured
DEFAULT_ROC_STEPS = 100


@dataclass(frozen=True)
class ConfusionCounts:
    """The four confusion matrix cells at one decision threshold."""

    true_positive: int
    true_negative: int
    false_positive: int
    false_negative: int

    @property
    def total(self) -> int:
        return self.true_positive + self.true_negative + self.false_positive + self.false_negative


@dataclass(frozen=True)
class ClassificationMetrics:
    """Metrics derived from confusion counts; zero denominators resolve to 0."""

    threshold: float
    accuracy: float
    precision: float
    recall: float
    f1: float
    counts: ConfusionCounts

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RocPoint:
    threshold: float
    false_positive_rate: float
    true_positive_rate: float


@dataclass(frozen=True)
class RocCurve:
    """ROC points ordered by decreasing threshold, plus the trapezoidal AUC."""

    points: Tuple[RocPoint, ...]
    auc: float

    @property
    def thresholds(self) -> List[float]:
        return [p.threshold for p in self.points]

    @property
    def fpr(self) -> List[float]:
        return [p.false_positive_rate for p in self.points]

    @property
    def tpr(self) -> List[float]:
        return [p.true_positive_rate for p in self.points]


@dataclass(frozen=True)
class EvaluatorContext:
    """
    Validated, read-only pair of predicted probabilities and true labels.

    Build it with ``EvaluatorContext.create`` so that alignment, label
    values and probability ranges are checked once.
    """

    probabilities: np.ndarray
    labels: np.ndarray

    @classmethod
    def create(cls, probabilities: Sequence[float], labels: Sequence[float]) -> "EvaluatorContext":
        # Predictors may return an (n, 1) column; flatten to one value per row
        proba = np.asarray(probabilities, dtype=float).ravel()
        y = np.asarray(labels, dtype=float).ravel()

        if len(proba) == 0 or len(y) == 0:
            raise InvalidInput("Probabilities and labels must be non-empty.")
        if len(proba) != len(y):
            raise InvalidInput(
                f"Probabilities ({len(proba)}) and labels ({len(y)}) must have the same length."
            )
        if not np.all(np.isfinite(proba)) or np.any((proba < 0) | (proba > 1)):
            raise InvalidInput("Probabilities must be finite values in [0, 1].")
        if not np.all(np.isin(y, (0.0, 1.0))):
            raise InvalidInput("Labels must be binary (0 or 1).")

        y = y.astype(int)
        # Freeze the arrays so the context can be shared between calls
        proba.setflags(write=False)
        y.setflags(write=False)
        return cls(probabilities=proba, labels=y)


def _check_threshold(threshold: float) -> float:
    if isinstance(threshold, bool):
        raise InvalidInput("Threshold must be a number in [0, 1].")
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidInput(f"Threshold must be a number in [0, 1], got {threshold!r}.")
    # NaN fails both comparisons and is rejected here too
    if not 0.0 <= value <= 1.0:
        raise InvalidInput(f"Threshold must be within [0, 1], got {threshold!r}.")
    return value


def _ratio(numerator: float, denominator: float) -> float:
    return float(numerator) / float(denominator) if denominator > 0 else 0.0


def decide(probabilities: Sequence[float], threshold: float) -> np.ndarray:
    """Apply the decision rule ``probability >= threshold`` -> 1, else 0."""
    threshold = _check_threshold(threshold)
    proba = np.asarray(probabilities, dtype=float).ravel()
    return (proba >= threshold).astype(int)


def _counts(context: EvaluatorContext, threshold: float) -> ConfusionCounts:
    predicted = (context.probabilities >= threshold).astype(int)
    # labels=[0, 1] keeps the matrix 2x2 even when a class is absent
    tn, fp, fn, tp = confusion_matrix(context.labels, predicted, labels=[0, 1]).ravel()
    return ConfusionCounts(
        true_positive=int(tp),
        true_negative=int(tn),
        false_positive=int(fp),
        false_negative=int(fn),
    )


def _metrics(threshold: float, counts: ConfusionCounts) -> ClassificationMetrics:
    tp, tn = counts.true_positive, counts.true_negative
    fp, fn = counts.false_positive, counts.false_negative
    precision = _ratio(tp, tp + fp)
    recall = _ratio(tp, tp + fn)
    return ClassificationMetrics(
        threshold=threshold,
        accuracy=_ratio(tp + tn, counts.total),
        precision=precision,
        recall=recall,
        f1=_ratio(2 * precision * recall, precision + recall),
        counts=counts,
    )


def area_under_curve(points: Sequence[Any]) -> float:
    """
    Trapezoidal area under a ROC curve.

    Accepts ``RocPoint`` objects or ``(fpr, tpr)`` pairs in any order;
    points are sorted by ascending false positive rate (ties by true
    positive rate) before integrating. Fewer than two points give 0.0.
    """
    pairs = [
        (p.false_positive_rate, p.true_positive_rate) if isinstance(p, RocPoint) else (p[0], p[1])
        for p in points
    ]
    if len(pairs) < 2:
        return 0.0
    xy = np.asarray(pairs, dtype=float)
    # lexsort uses the last key as the primary one
    order = np.lexsort((xy[:, 1], xy[:, 0]))
    return float(trapezoid_auc(xy[order, 0], xy[order, 1]))


class ClassificationEvaluator:
    """
    Evaluates predicted churn probabilities against true labels.

    All operations are pure: they take probabilities/labels per call,
    never store them, and resolve every zero-denominator ratio to 0
    so that degenerate splits (e.g. a single class) stay well-formed.
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Parameters
        ----------
        config : dict, optional
            Project configuration; ``evaluation.threshold`` and
            ``evaluation.roc_steps`` provide defaults.
        """
        evaluation = (config or {}).get("evaluation", {})
        # Default decision threshold used by evaluate()
        self.threshold = _check_threshold(evaluation.get("threshold", 0.5))
        # Threshold sweep resolution for roc_curve()
        self.roc_steps = int(evaluation.get("roc_steps", DEFAULT_ROC_STEPS))
        logger.info(
            f"ClassificationEvaluator initialized (threshold={self.threshold}, roc_steps={self.roc_steps})"
        )

    def confusion_at(
        self,
        threshold: float,
        probabilities: Sequence[float],
        labels: Sequence[float],
    ) -> ConfusionCounts:
        """Confusion counts with ``probability >= threshold`` classified positive."""
        threshold = _check_threshold(threshold)
        context = EvaluatorContext.create(probabilities, labels)
        return _counts(context, threshold)

    def metrics_at(
        self,
        threshold: float,
        probabilities: Sequence[float],
        labels: Sequence[float],
    ) -> ClassificationMetrics:
        """
        Accuracy, precision, recall and F1 at a decision threshold.

        Parameters
        ----------
        threshold : float
            Decision threshold in [0, 1] (inclusive boundary).
        probabilities : sequence of float
            Predicted churn probabilities.
        labels : sequence of 0/1
            True labels, aligned with ``probabilities``.

        Returns
        -------
        ClassificationMetrics
        """
        counts = self.confusion_at(threshold, probabilities, labels)
        return _metrics(float(threshold), counts)

    def roc_curve(
        self,
        probabilities: Sequence[float],
        labels: Sequence[float],
        steps: Optional[int] = None,
    ) -> RocCurve:
        """
        Sweep ``steps + 1`` evenly spaced thresholds ``i / steps`` from 1 down to 0.

        Points are ordered by decreasing threshold, so the false positive
        rate is non-decreasing along the curve (ties map to equal points).
        """
        if steps is None:
            steps = self.roc_steps
        if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)) or steps < 1:
            raise InvalidInput(f"steps must be a positive integer, got {steps!r}.")
        context = EvaluatorContext.create(probabilities, labels)

        points = []
        # Integer step index keeps the thresholds exact and reproducible
        for i in range(steps, -1, -1):
            threshold = i / steps
            counts = _counts(context, threshold)
            points.append(RocPoint(
                threshold=threshold,
                false_positive_rate=_ratio(counts.false_positive, counts.false_positive + counts.true_negative),
                true_positive_rate=_ratio(counts.true_positive, counts.true_positive + counts.false_negative),
            ))

        curve = RocCurve(points=tuple(points), auc=area_under_curve(points))
        logger.debug(f"ROC curve computed over {len(points)} thresholds, AUC={curve.auc:.4f}")
        return curve

    @staticmethod
    def auc(roc_points: Sequence[Any]) -> float:
        """Trapezoidal AUC of ``roc_points``; see ``area_under_curve``."""
        return area_under_curve(roc_points)

    def evaluate(
        self,
        probabilities: Sequence[float],
        labels: Sequence[float],
        threshold: Optional[float] = None,
        split_name: str = "validation",
    ) -> Dict[str, Any]:
        """
        Full report at one threshold: metrics, confusion counts and ROC/AUC.

        Returns
        -------
        dict
            Flat dictionary suitable for logging or JSON export.
        """
        if threshold is None:
            threshold = self.threshold
        metrics = self.metrics_at(threshold, probabilities, labels)
        curve = self.roc_curve(probabilities, labels)
        counts = metrics.counts

        report = {
            "split": split_name,
            "threshold": metrics.threshold,
            "accuracy": round(metrics.accuracy, 4),
            "precision": round(metrics.precision, 4),
            "recall": round(metrics.recall, 4),
            "f1": round(metrics.f1, 4),
            "roc_auc": round(curve.auc, 4),
            "true_positives": counts.true_positive,
            "true_negatives": counts.true_negative,
            "false_positives": counts.false_positive,
            "false_negatives": counts.false_negative,
            "roc_fpr": curve.fpr,
            "roc_tpr": curve.tpr,
        }

        logger.info(f"Metrics for '{split_name}' (threshold={metrics.threshold:.2f}):")
        logger.info(f"  Accuracy:  {metrics.accuracy:.2%}")
        logger.info(f"  Precision: {metrics.precision:.3f}")
        logger.info(f"  Recall:    {metrics.recall:.3f}")
        logger.info(f"  F1:        {metrics.f1:.3f}")
        logger.info(f"  ROC-AUC:   {curve.auc:.3f}")
        logger.info(f"  Confusion: TP={counts.true_positive} FN={counts.false_negative} "
                    f"FP={counts.false_positive} TN={counts.true_negative}")
        return report
