# ============================================================
# src/data/validator.py
# Ingestion-boundary checks: required keys, missing values,
# target distribution and categorical cardinality.
# ============================================================

import pandas as pd                                # Pandas for column-wise statistics
from loguru import logger                          # Structured logging
from typing import Any, Dict, List, Mapping, Sequence  # Type hints

from src.utils.errors import InvalidInput          # Pipeline error types


class DataValidator:
    """
    Validates normalized rows before they reach the feature encoder.

    Required keys (customer ID, and the target for training rows) are
    enforced here so the encoder itself can stay tolerant of absent
    optional feature columns.
    """

    def __init__(self, config: dict):
        """
        Parameters
        ----------
        config : dict
            Project configuration containing the feature schema.
        """
        self.config = config
        features = config.get("features", {})
        self.target = features.get("target", "Churn")
        self.id_column = features.get("id_column", "customerID")
        self.numeric_columns = list(features.get("numeric_columns", []))
        self.binary_columns = list(features.get("binary_columns", []))
        self.categorical_columns = list(features.get("categorical_columns", []))
        # Feature columns expected by the encoder (absence is tolerated but reported)
        self.feature_columns = self.numeric_columns + self.binary_columns + self.categorical_columns
        # Issues collected by the most recent checks
        self.issues: List[str] = []
        logger.info("DataValidator initialized with expected schema")

    def _columns(self, rows: Sequence[Mapping[str, Any]]) -> set:
        columns = set()
        for row in rows:
            columns.update(row.keys())
        return columns

    def required_columns(self, require_target: bool = True) -> List[str]:
        return [self.id_column] + ([self.target] if require_target else [])

    def validate_schema(self, rows: Sequence[Mapping[str, Any]], require_target: bool = True) -> bool:
        """
        Check that required keys are present and report absent feature columns.

        Returns
        -------
        bool
            True if every required key is present.
        """
        actual = self._columns(rows)
        missing_required = [c for c in self.required_columns(require_target) if c not in actual]
        missing_features = [c for c in self.feature_columns if c not in actual]

        if missing_required:
            issue = f"Missing required columns: {missing_required}"
            self.issues.append(issue)
            logger.error(issue)
        if missing_features:
            # Encoder treats these as missing values in every row
            issue = f"Missing feature columns (encoded as missing): {missing_features}"
            self.issues.append(issue)
            logger.warning(issue)

        return not missing_required

    def require_schema(self, rows: Sequence[Mapping[str, Any]], require_target: bool = True) -> None:
        """Raise ``InvalidInput`` when rows are empty or required keys are absent."""
        if not rows:
            raise InvalidInput("No rows to validate: the CSV file is empty.")
        if not self.validate_schema(rows, require_target=require_target):
            actual = self._columns(rows)
            missing = [c for c in self.required_columns(require_target) if c not in actual]
            raise InvalidInput(f"Rows are missing required columns: {missing}")

    def validate_missing_values(
        self,
        rows: Sequence[Mapping[str, Any]],
        threshold: float = 0.3,
    ) -> Dict[str, float]:
        """
        Fraction of missing values for every column that has any.

        Columns above ``threshold`` are recorded as issues.
        """
        if not rows:
            return {}
        df = pd.DataFrame(list(rows))
        missing_fractions = df.isnull().mean()
        report = {col: float(frac) for col, frac in missing_fractions.items() if frac > 0}

        for col, frac in report.items():
            if frac > threshold:
                issue = f"Column '{col}' has {frac:.1%} missing values (exceeds {threshold:.0%} threshold)"
                self.issues.append(issue)
                logger.error(issue)
            else:
                logger.info(f"Column '{col}' has {frac:.1%} missing values (acceptable)")
        return report

    def validate_target(self, rows: Sequence[Mapping[str, Any]]) -> bool:
        """True when the target is 0/1 everywhere and both classes occur."""
        values = [row.get(self.target) for row in rows]
        if not values or any(v not in (0, 1) for v in values):
            issue = f"Target column '{self.target}' must contain only 0/1 values"
            self.issues.append(issue)
            logger.error(issue)
            return False

        churned = sum(values)
        retained = len(values) - churned
        logger.info(f"Target distribution: churned={churned}, retained={retained}, "
                    f"churn_rate={churned / len(values):.2%}")
        if churned == 0 or retained == 0:
            issue = "Target has a single class; precision/recall will degenerate to 0"
            self.issues.append(issue)
            logger.warning(issue)
            return False
        return True

    def validate_categorical_cardinality(
        self,
        rows: Sequence[Mapping[str, Any]],
        max_levels: int = 20,
    ) -> Dict[str, int]:
        """Number of distinct non-missing levels per categorical column."""
        cardinality = {}
        for col in self.categorical_columns:
            levels = {str(row[col]) for row in rows if row.get(col) is not None}
            cardinality[col] = len(levels)
            if len(levels) > max_levels:
                issue = f"Column '{col}' has high cardinality: {len(levels)} unique values"
                self.issues.append(issue)
                logger.warning(issue)
            else:
                logger.debug(f"Column '{col}' values: {sorted(levels)}")
        return cardinality

    def run_all_validations(self, rows: Sequence[Mapping[str, Any]], require_target: bool = True) -> Dict[str, bool]:
        """
        Execute all checks and return ``{check_name: passed}``.

        The detailed issue messages are available in ``self.issues``.
        """
        self.issues = []
        logger.info("=" * 60)
        logger.info("Starting data validation...")
        logger.info("=" * 60)

        results = {"schema": self.validate_schema(rows, require_target=require_target)}

        issues_before = len(self.issues)
        self.validate_missing_values(rows)
        results["missing_values"] = len(self.issues) == issues_before

        if require_target:
            results["target"] = self.validate_target(rows)

        issues_before = len(self.issues)
        self.validate_categorical_cardinality(rows)
        results["categorical_cardinality"] = len(self.issues) == issues_before

        if self.issues:
            logger.warning(f"Validation complete. {len(self.issues)} issue(s) found:")
            for i, issue in enumerate(self.issues, 1):
                logger.warning(f"  Issue {i}: {issue}")
        else:
            logger.info("All validation checks PASSED. No issues found.")
        return results
