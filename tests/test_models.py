# ============================================================
# tests/test_models.py
# Unit tests for evaluation (confusion, metrics, ROC/AUC),
# network training and prediction export.
# ============================================================

import sys                                         # System-specific parameters
from pathlib import Path                           # Object-oriented file paths

# Add the project root to Python path for module imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest                                      # Testing framework
import pandas as pd                                # Data manipulation
import numpy as np                                 # Numerical computing

from src.models.evaluator import (                 # Evaluation module
    ClassificationEvaluator,
    ConfusionCounts,
    EvaluatorContext,
    RocPoint,
    area_under_curve,
    decide,
)
from src.models.trainer import ModelTrainer, split_by_order, split_index, compute_class_weights  # Training module
from src.models.exporter import PredictionExporter  # Export module
from src.features.encoder import FeatureEncoder     # Encoder fitted on the training split
from src.utils.errors import InvalidInput, NotFitted  # Error types


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def evaluator():
    """Evaluator with default settings."""
    return ClassificationEvaluator({"evaluation": {"threshold": 0.5, "roc_steps": 100}})


@pytest.fixture
def train_config():
    """Small, fast network configuration."""
    return {
        "model": {
            "hidden_layer_sizes": [8],
            "learning_rate": 0.01,
            "epochs": 5,
            "batch_size": 16,
            "patience": 2,
            "min_delta": 0.0001,
            "random_state": 0,
        },
    }


@pytest.fixture
def binary_dataset():
    """Separable synthetic dataset, already split 80/20 by order."""
    rng = np.random.default_rng(42)
    X = rng.normal(size=(120, 4))
    y = (X[:, 0] + X[:, 1] > 0).astype(float)
    return split_by_order(X, y, 0.8)


# ============================================================
# Tests for ClassificationEvaluator
# ============================================================

class TestConfusion:
    """Confusion counts and threshold handling."""

    def test_perfect_split(self, evaluator):
        """[0.1, 0.4, 0.6, 0.9] vs [0, 0, 1, 1] at 0.5 is perfect."""
        counts = evaluator.confusion_at(0.5, [0.1, 0.4, 0.6, 0.9], [0, 0, 1, 1])
        assert counts == ConfusionCounts(true_positive=2, true_negative=2, false_positive=0, false_negative=0)

    def test_threshold_is_inclusive(self, evaluator):
        """A probability equal to the threshold counts as positive."""
        counts = evaluator.confusion_at(0.5, [0.5], [1])
        assert counts.true_positive == 1
        assert counts.false_negative == 0

    def test_mixed_counts(self, evaluator):
        """Each cell is counted correctly."""
        counts = evaluator.confusion_at(0.5, [0.9, 0.8, 0.2, 0.1], [1, 0, 1, 0])
        assert (counts.true_positive, counts.false_positive,
                counts.false_negative, counts.true_negative) == (1, 1, 1, 1)
        assert counts.total == 4

    @pytest.mark.parametrize("threshold", [-0.01, 1.01, float("nan"), "high", True])
    def test_invalid_threshold(self, evaluator, threshold):
        with pytest.raises(InvalidInput):
            evaluator.confusion_at(threshold, [0.2], [0])

    def test_misaligned_inputs(self, evaluator):
        with pytest.raises(InvalidInput):
            evaluator.confusion_at(0.5, [0.2, 0.3], [0])

    def test_empty_inputs(self, evaluator):
        with pytest.raises(InvalidInput):
            evaluator.confusion_at(0.5, [], [])

    def test_non_binary_labels(self, evaluator):
        with pytest.raises(InvalidInput):
            evaluator.confusion_at(0.5, [0.2, 0.3], [0, 2])

    def test_column_probabilities_flattened(self, evaluator):
        """(n, 1) predictor output is accepted."""
        counts = evaluator.confusion_at(0.5, [[0.7], [0.2]], [1, 0])
        assert counts.true_positive == 1 and counts.true_negative == 1


class TestMetrics:
    """Derived metrics and zero-denominator handling."""

    def test_perfect_metrics(self, evaluator):
        metrics = evaluator.metrics_at(0.5, [0.1, 0.4, 0.6, 0.9], [0, 0, 1, 1])
        assert metrics.accuracy == 1.0
        assert metrics.precision == 1.0
        assert metrics.recall == 1.0
        assert metrics.f1 == 1.0

    @pytest.mark.parametrize("threshold", [0.0, 0.3, 1.0])
    def test_all_negative_labels(self, evaluator, threshold):
        """No positives: precision and recall resolve to 0, never NaN."""
        metrics = evaluator.metrics_at(threshold, [0.2, 0.5, 0.9], [0, 0, 0])
        assert metrics.precision == 0.0
        assert metrics.recall == 0.0
        assert metrics.f1 == 0.0
        assert not np.isnan(metrics.accuracy)

    def test_partial_metrics(self, evaluator):
        """tp=1, fp=1, fn=1 -> precision 0.5, recall 0.5, f1 0.5."""
        metrics = evaluator.metrics_at(0.5, [0.9, 0.8, 0.2, 0.1], [1, 0, 1, 0])
        assert metrics.accuracy == pytest.approx(0.5)
        assert metrics.precision == pytest.approx(0.5)
        assert metrics.recall == pytest.approx(0.5)
        assert metrics.f1 == pytest.approx(0.5)

    def test_to_dict(self, evaluator):
        data = evaluator.metrics_at(0.5, [0.9], [1]).to_dict()
        assert data["counts"]["true_positive"] == 1


class TestRoc:
    """ROC sweep and AUC."""

    def test_point_count_and_order(self, evaluator):
        """steps + 1 exact thresholds, decreasing."""
        curve = evaluator.roc_curve([0.1, 0.4, 0.6, 0.9], [0, 0, 1, 1], steps=10)
        assert len(curve.points) == 11
        assert curve.thresholds == [i / 10 for i in range(10, -1, -1)]
        assert curve.thresholds[0] == 1.0 and curve.thresholds[-1] == 0.0
        assert all(a <= b for a, b in zip(curve.fpr, curve.fpr[1:]))

    def test_default_steps(self, evaluator):
        curve = evaluator.roc_curve([0.1, 0.9], [0, 1])
        assert len(curve.points) == 101

    def test_endpoints(self, evaluator):
        """Threshold 0 classifies everything positive."""
        curve = evaluator.roc_curve([0.1, 0.4, 0.6, 0.9], [0, 0, 1, 1], steps=4)
        last = curve.points[-1]
        assert (last.false_positive_rate, last.true_positive_rate) == (1.0, 1.0)

    def test_separable_auc(self, evaluator):
        curve = evaluator.roc_curve([0.1, 0.4, 0.6, 0.9], [0, 0, 1, 1])
        assert curve.auc == pytest.approx(1.0)

    @pytest.mark.parametrize("steps", [0, -5, 2.5, None])
    def test_invalid_steps(self, steps):
        evaluator = ClassificationEvaluator()
        if steps is None:
            # None falls back to the configured default
            assert len(evaluator.roc_curve([0.3], [1], steps=steps).points) == 101
        else:
            with pytest.raises(InvalidInput):
                evaluator.roc_curve([0.3], [1], steps=steps)

    def test_perfect_classifier_auc(self):
        assert area_under_curve([(0, 0), (0, 1), (1, 1)]) == pytest.approx(1.0)

    def test_random_classifier_auc(self):
        assert area_under_curve([(0, 0), (1, 1)]) == pytest.approx(0.5)

    def test_auc_sorts_input(self, evaluator):
        """Caller order does not flip the sign."""
        assert evaluator.auc([(1, 1), (0, 1), (0, 0)]) == pytest.approx(1.0)
        points = [RocPoint(1.0, 0.0, 0.0), RocPoint(0.0, 1.0, 1.0)]
        assert evaluator.auc(list(reversed(points))) == pytest.approx(0.5)

    def test_auc_too_few_points(self):
        assert area_under_curve([]) == 0.0
        assert area_under_curve([(0.3, 0.7)]) == 0.0

    def test_auc_in_unit_interval(self, evaluator):
        rng = np.random.default_rng(1)
        proba = rng.random(200)
        labels = (rng.random(200) < 0.3).astype(int)
        curve = evaluator.roc_curve(proba, labels)
        assert 0.0 <= curve.auc <= 1.0


class TestEvaluatorMisc:
    """Context, decide() and the full report."""

    def test_context_is_read_only(self):
        context = EvaluatorContext.create([0.2, 0.8], [0, 1])
        with pytest.raises(ValueError):
            context.probabilities[0] = 0.5

    def test_decide(self):
        np.testing.assert_array_equal(decide([0.2, 0.35, 0.9], 0.35), [0, 1, 1])

    def test_evaluate_report(self, evaluator):
        report = evaluator.evaluate([0.1, 0.4, 0.6, 0.9], [0, 0, 1, 1])
        assert report["threshold"] == 0.5
        assert report["accuracy"] == 1.0
        assert report["roc_auc"] == 1.0
        assert len(report["roc_fpr"]) == 101

    def test_invalid_config_threshold(self):
        with pytest.raises(InvalidInput):
            ClassificationEvaluator({"evaluation": {"threshold": 2}})


# ============================================================
# Tests for ModelTrainer
# ============================================================

class TestModelTrainer:
    """Test suite for the ModelTrainer class."""

    def test_split_by_order(self):
        X = np.arange(20).reshape(10, 2)
        y = np.arange(10)
        X_train, y_train, X_val, y_val = split_by_order(X, y, 0.8)
        assert len(X_train) == 8 and len(X_val) == 2
        np.testing.assert_array_equal(y_val, [8, 9])

    def test_split_rejects_misaligned(self):
        with pytest.raises(InvalidInput):
            split_by_order(np.zeros((3, 2)), np.zeros(2))

    def test_split_index(self):
        assert split_index(10, 0.8) == 8
        assert split_index(7, 0.8) == 5
        with pytest.raises(InvalidInput):
            split_index(10, 1.0)

    def test_encoder_fitted_on_leading_rows_only(self):
        """Validation-only levels stay out of a vocabulary fitted on the training split."""
        rows = [{"Contract": "Month-to-month", "tenure": float(i)} for i in range(8)]
        rows += [{"Contract": "Two year", "tenure": 100.0}, {"Contract": "Two year", "tenure": 200.0}]
        encoder = FeatureEncoder()
        state = encoder.fit(rows[:split_index(len(rows), 0.8)], ["tenure"], ["Contract"], [])
        assert state.vocabularies[0].levels == ("Month-to-month", "NA")
        assert state.numeric_stats[0].mean == pytest.approx(3.5)
        # Validation rows still encode, into the NA slot
        X = encoder.transform_all(rows)
        X_train, _, X_val, _ = split_by_order(X, np.zeros(len(rows)), 0.8)
        assert X_train.shape[1] == X_val.shape[1] == state.width
        assert X_val[:, encoder.feature_names.index("cat__Contract_NA")].tolist() == [1.0, 1.0]

    def test_class_weights(self):
        weights = compute_class_weights(np.array([0, 0, 0, 1]))
        assert weights == {0: pytest.approx(4 / 6), 1: pytest.approx(2.0)}
        # Absent class is floored to a count of 1
        assert compute_class_weights(np.array([0, 0]))[1] == pytest.approx(1.0)

    def test_predict_before_train(self, train_config):
        with pytest.raises(NotFitted):
            ModelTrainer(train_config).predict_proba(np.zeros((1, 4)))

    def test_train_records_history(self, train_config, binary_dataset):
        X_train, y_train, X_val, y_val = binary_dataset
        trainer = ModelTrainer(train_config)
        seen = []
        history = trainer.train(X_train, y_train, X_val, y_val,
                                on_epoch_end=lambda epoch, logs: seen.append(epoch))
        assert 1 <= history.epochs <= 5
        assert seen == list(range(1, history.epochs + 1))
        assert len(history.val_loss) == history.epochs
        assert list(history.to_dataframe().columns) == ["epoch", "loss", "accuracy", "val_loss", "val_accuracy"]
        assert trainer.count_params() == 4 * 8 + 8 + 8 * 1 + 1

    def test_predict_proba_range(self, train_config, binary_dataset):
        X_train, y_train, X_val, y_val = binary_dataset
        trainer = ModelTrainer(train_config)
        trainer.train(X_train, y_train, X_val, y_val)
        proba = trainer.predict_proba(X_val)
        assert proba.shape == (len(X_val),)
        assert np.all((proba >= 0) & (proba <= 1))

    def test_empty_validation_rejected(self, train_config):
        with pytest.raises(InvalidInput):
            ModelTrainer(train_config).train(np.zeros((4, 2)), np.array([0, 1, 0, 1]),
                                             np.zeros((0, 2)), np.array([]))


# ============================================================
# Tests for PredictionExporter
# ============================================================

class TestPredictionExporter:
    """Test suite for the prediction CSV export."""

    def test_build_predictions(self):
        exporter = PredictionExporter()
        df = exporter.build_predictions(["A", "B", "C"], [0.2, 0.35, 0.9], 0.35)
        assert list(df.columns) == ["customerID", "prediction", "probability"]
        assert df["prediction"].tolist() == [0, 1, 1]

    def test_misaligned(self):
        with pytest.raises(InvalidInput):
            PredictionExporter().build_predictions(["A"], [0.2, 0.3], 0.5)

    def test_export_csv(self, tmp_path):
        exporter = PredictionExporter({"export": {"dir": str(tmp_path), "filename": "out.csv"}})
        df = exporter.build_predictions(["A", "B"], [0.123456789, 0.9], 0.5)
        path = exporter.export_predictions(df)
        assert path == tmp_path / "out.csv"
        lines = path.read_text().splitlines()
        assert lines[0] == "customerID,prediction,probability"
        assert lines[1] == "A,0,0.123457"

    def test_preview_rounds(self):
        exporter = PredictionExporter()
        df = exporter.build_predictions([f"C{i}" for i in range(30)], np.linspace(0, 1, 30), 0.5)
        head = exporter.preview(df)
        assert len(head) == 20
        assert head["probability"].iloc[1] == round(1 / 29, 4)
