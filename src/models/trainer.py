# ============================================================
# src/models/trainer.py
# Trains the dense neural churn classifier epoch by epoch,
# with class-balanced resampling, a validation history and
# early stopping on validation loss.
# ============================================================

import numpy as np                                 # NumPy for numerical operations
import pandas as pd                                # Pandas for the history table
from dataclasses import dataclass, field           # Training history record
from sklearn.neural_network import MLPClassifier   # Dense feed-forward network
from sklearn.metrics import log_loss, accuracy_score  # Per-epoch loss and accuracy
from loguru import logger                          # Structured logging
from typing import Callable, Dict, List, Optional, Tuple  # Type hints

from src.utils.errors import InvalidInput, NotFitted  # Pipeline error types

# Signature of the optional per-epoch hook: (epoch_number, logs) -> None
EpochCallback = Callable[[int, Dict[str, float]], None]


def split_index(n_rows: int, train_fraction: float = 0.8) -> int:
    """Number of leading rows that form the training split: ``floor(n * train_fraction)``."""
    if not 0.0 < train_fraction < 1.0:
        raise InvalidInput(f"train_fraction must be in (0, 1), got {train_fraction}")
    return int(np.floor(n_rows * train_fraction))


def split_by_order(
    X: np.ndarray,
    y: np.ndarray,
    train_fraction: float = 0.8,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Split rows into training and validation sets by position (no shuffling).

    The first ``split_index(n, train_fraction)`` rows train, the rest validate.

    Returns
    -------
    tuple of (X_train, y_train, X_val, y_val)
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float).ravel()
    if len(X) != len(y):
        raise InvalidInput(f"Feature rows ({len(X)}) and labels ({len(y)}) must align.")
    cut = split_index(len(X), train_fraction)
    logger.info(f"Data split by row order: Train={cut}, Validation={len(X) - cut}")
    return X[:cut], y[:cut], X[cut:], y[cut:]


def compute_class_weights(y: np.ndarray) -> Dict[int, float]:
    """
    Balanced class weights ``n / (2 * class_count)``.

    An absent class is counted as 1 so the weights stay finite.
    """
    y = np.asarray(y).ravel()
    n = len(y)
    positives = int(np.sum(y == 1))
    negatives = n - positives
    return {0: n / (2 * (negatives or 1)), 1: n / (2 * (positives or 1))}


@dataclass
class TrainingHistory:
    """Per-epoch training curves, in epoch order."""

    loss: List[float] = field(default_factory=list)
    accuracy: List[float] = field(default_factory=list)
    val_loss: List[float] = field(default_factory=list)
    val_accuracy: List[float] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def epochs(self) -> int:
        return len(self.loss)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            "epoch": list(range(1, self.epochs + 1)),
            "loss": self.loss,
            "accuracy": self.accuracy,
            "val_loss": self.val_loss,
            "val_accuracy": self.val_accuracy,
        })


class ModelTrainer:
    """
    Trains a small dense network (128 -> 64 -> sigmoid output by default).

    Each epoch:
    - resamples the training rows with probability proportional to
      their class weight, so both classes contribute equally
    - runs one pass of mini-batch Adam updates (``partial_fit``)
    - records loss/accuracy on train and validation splits
    - stops once validation loss has not improved by ``min_delta``
      for ``patience`` consecutive epochs
    """

    def __init__(self, config: dict):
        """
        Parameters
        ----------
        config : dict
            Project configuration; hyperparameters live under ``model``.
        """
        self.config = config
        params = config.get("model", {})
        self.hidden_layer_sizes = tuple(params.get("hidden_layer_sizes", (128, 64)))
        self.activation = params.get("activation", "relu")
        self.learning_rate = float(params.get("learning_rate", 0.001))
        self.alpha = float(params.get("alpha", 0.0001))
        self.epochs = int(params.get("epochs", 40))
        self.batch_size = int(params.get("batch_size", 64))
        self.patience = int(params.get("patience", 6))
        self.min_delta = float(params.get("min_delta", 0.0001))
        self.random_state = params.get("random_state", 42)

        # The fitted network (None until train() is called)
        self.model: Optional[MLPClassifier] = None
        # Curves from the most recent train() call
        self.history: Optional[TrainingHistory] = None
        logger.info(f"ModelTrainer initialized. Layers: {self.hidden_layer_sizes}, epochs: {self.epochs}")

    def build_model(self) -> MLPClassifier:
        """Create an unfitted network from the configured hyperparameters."""
        model = MLPClassifier(
            hidden_layer_sizes=self.hidden_layer_sizes,
            activation=self.activation,
            solver="adam",
            alpha=self.alpha,
            batch_size=self.batch_size,
            learning_rate_init=self.learning_rate,
            random_state=self.random_state,
        )
        logger.info(f"Built MLPClassifier: hidden={self.hidden_layer_sizes}, lr={self.learning_rate}")
        return model

    def count_params(self) -> int:
        """Number of trainable weights and biases in the fitted network."""
        model = self._require_model()
        return int(sum(w.size for w in model.coefs_) + sum(b.size for b in model.intercepts_))

    def _require_model(self) -> MLPClassifier:
        if self.model is None:
            raise NotFitted("ModelTrainer has not been trained yet. Call train(...) first.")
        return self.model

    def train(
        self,
        X_train: np.ndarray,
        y_train: np.ndarray,
        X_val: np.ndarray,
        y_val: np.ndarray,
        on_epoch_end: Optional[EpochCallback] = None,
    ) -> TrainingHistory:
        """
        Train the network and return its per-epoch history.

        Parameters
        ----------
        X_train, y_train : np.ndarray
            Encoded training features and 0/1 labels.
        X_val, y_val : np.ndarray
            Encoded validation features and labels (used for early stopping).
        on_epoch_end : callable, optional
            Called as ``on_epoch_end(epoch, logs)`` after every epoch.
        """
        X_train = np.asarray(X_train, dtype=float)
        y_train = np.asarray(y_train).ravel().astype(int)
        X_val = np.asarray(X_val, dtype=float)
        y_val = np.asarray(y_val).ravel().astype(int)
        if len(X_train) == 0 or len(X_val) == 0:
            raise InvalidInput("Training and validation splits must both be non-empty.")

        class_weights = compute_class_weights(y_train)
        logger.info(f"Class weights: {class_weights}")
        sample_weights = np.where(y_train == 1, class_weights[1], class_weights[0])
        sample_p = sample_weights / sample_weights.sum()

        rng = np.random.default_rng(self.random_state)
        self.model = self.build_model()
        history = TrainingHistory()
        best_val_loss = np.inf
        wait = 0

        for epoch in range(1, self.epochs + 1):
            idx = rng.choice(len(X_train), size=len(X_train), replace=True, p=sample_p)
            self.model.partial_fit(X_train[idx], y_train[idx], classes=np.array([0, 1]))

            train_proba = self.model.predict_proba(X_train)[:, 1]
            val_proba = self.model.predict_proba(X_val)[:, 1]
            logs = {
                "loss": float(log_loss(y_train, train_proba, labels=[0, 1])),
                "accuracy": float(accuracy_score(y_train, (train_proba >= 0.5).astype(int))),
                "val_loss": float(log_loss(y_val, val_proba, labels=[0, 1])),
                "val_accuracy": float(accuracy_score(y_val, (val_proba >= 0.5).astype(int))),
            }
            history.loss.append(logs["loss"])
            history.accuracy.append(logs["accuracy"])
            history.val_loss.append(logs["val_loss"])
            history.val_accuracy.append(logs["val_accuracy"])

            logger.info(
                f"Epoch {epoch}/{self.epochs} | loss {logs['loss']:.4f} acc {logs['accuracy']:.3f} "
                f"| vloss {logs['val_loss']:.4f} vacc {logs['val_accuracy']:.3f}"
            )
            if on_epoch_end is not None:
                on_epoch_end(epoch, logs)

            if logs["val_loss"] < best_val_loss - self.min_delta:
                best_val_loss = logs["val_loss"]
                wait = 0
            else:
                wait += 1
                if wait >= self.patience:
                    history.stopped_early = True
                    logger.info(f"Early stopped after epoch {epoch} (best val_loss {best_val_loss:.4f})")
                    break

        self.history = history
        logger.info(f"Training complete. Params: {self.count_params()}")
        return history

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Churn probability (positive class) for each encoded row."""
        model = self._require_model()
        return model.predict_proba(np.asarray(X, dtype=float))[:, 1]
