# ============================================================
# src/models/exporter.py
# Turns test-set probabilities into the predictions CSV:
# customerID, prediction (0/1), probability.
# ============================================================

import pandas as pd                                # Pandas for the output table
from pathlib import Path                           # Object-oriented file paths
from loguru import logger                          # Structured logging
from typing import Any, Optional, Sequence         # Type hints

from src.models.evaluator import decide            # probability >= threshold rule
from src.utils.errors import InvalidInput          # Pipeline error types

PREDICTION_COLUMNS = ["customerID", "prediction", "probability"]
DEFAULT_FILENAME = "telco_churn_predictions.csv"


class PredictionExporter:
    """Builds, previews and writes the per-customer prediction table."""

    def __init__(self, config: Optional[dict] = None):
        export = (config or {}).get("export", {})
        # Output directory and file name
        self.output_dir = Path(export.get("dir", "data/processed"))
        self.filename = export.get("filename", DEFAULT_FILENAME)

    @property
    def default_path(self) -> Path:
        return self.output_dir / self.filename

    def build_predictions(
        self,
        customer_ids: Sequence[Any],
        probabilities: Sequence[float],
        threshold: float,
    ) -> pd.DataFrame:
        """
        One row per customer with ``prediction = probability >= threshold``.

        Raises
        ------
        InvalidInput
            If IDs and probabilities are misaligned or the threshold is out of range.
        """
        probabilities = pd.Series(probabilities, dtype=float).reset_index(drop=True)
        if len(customer_ids) != len(probabilities):
            raise InvalidInput(
                f"customer IDs ({len(customer_ids)}) and probabilities ({len(probabilities)}) must align."
            )
        predictions = pd.DataFrame({
            "customerID": list(customer_ids),
            "prediction": decide(probabilities.to_numpy(), threshold),
            "probability": probabilities,
        }, columns=PREDICTION_COLUMNS)

        churners = int(predictions["prediction"].sum())
        logger.info(f"Predictions built for {len(predictions)} customers "
                    f"(threshold={float(threshold):.2f}, predicted churn={churners})")
        return predictions

    def preview(self, predictions: pd.DataFrame, limit: int = 20) -> pd.DataFrame:
        """First ``limit`` predictions with probability rounded to 4 places."""
        head = predictions.head(limit).copy()
        head["probability"] = head["probability"].round(4)
        return head

    def export_predictions(self, predictions: pd.DataFrame, filepath: Optional[str] = None) -> Path:
        """Write predictions to CSV (probability with 6 decimals) and return the path."""
        path = Path(filepath) if filepath else self.default_path
        path.parent.mkdir(parents=True, exist_ok=True)
        predictions.to_csv(path, index=False, columns=PREDICTION_COLUMNS, float_format="%.6f")
        logger.info(f"Predictions exported to: {path}")
        return path
