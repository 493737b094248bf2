# ============================================================
# src/data/loader.py
# Loads train/test CSV files into normalized row dictionaries
# (trimmed strings, numeric coercion, Churn as 0/1).
# ============================================================

import pandas as pd                                # Pandas for CSV parsing
from pathlib import Path                           # Object-oriented file paths
from loguru import logger                          # Structured logging
from typing import Any, Dict, List, Optional       # Type hints

from src.utils.helpers import is_missing, to_number  # Cell coercion helpers

# Normalized CSV record: column name -> str / float / int / None
Row = Dict[str, Any]


class DataLoader:
    """
    Loads raw telco customer data from CSV files.

    Every cell is read as text so that blank strings (e.g. TotalCharges
    for zero-tenure customers) survive parsing; normalization then
    trims values, converts blanks to None, coerces numeric columns and
    encodes the Churn target as 0/1.
    """

    def __init__(self, config: dict):
        """
        Initialize the DataLoader with project configuration.

        Parameters
        ----------
        config : dict
            The parsed config.yaml dictionary.
        """
        self.config = config
        # Default file locations
        self.train_path = config.get("data", {}).get("train_path", "data/raw/train.csv")
        self.test_path = config.get("data", {}).get("test_path", "data/raw/test.csv")
        features = config.get("features", {})
        # Target and ID column names
        self.target = features.get("target", "Churn")
        self.id_column = features.get("id_column", "customerID")
        # Columns coerced to float during normalization
        self.numeric_columns = features.get("numeric_columns", ["tenure", "MonthlyCharges", "TotalCharges"])
        logger.info(f"DataLoader initialized. Train: {self.train_path}, Test: {self.test_path}")

    def load_csv(self, filepath: str) -> pd.DataFrame:
        """
        Read a header-driven, comma-delimited CSV file as text.

        Parameters
        ----------
        filepath : str
            Path to the CSV file.

        Returns
        -------
        pd.DataFrame
            Raw DataFrame with stripped column names and string cells.
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")

        logger.info(f"Loading data from: {path}")
        # keep_default_na=False keeps blank cells as "" instead of NaN
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
        # Strip whitespace from column names
        df.columns = df.columns.str.strip()
        logger.info(f"Data loaded successfully. Shape: {df.shape}")
        logger.debug(f"Columns: {list(df.columns)}")
        return df

    def normalize_row(self, record: Dict[str, Any]) -> Row:
        """
        Normalize one raw record.

        - strings are trimmed, blanks become None
        - Churn: "yes" (any case) -> 1, anything else -> 0
        - SeniorCitizen: "1" -> "Yes", anything else -> "No"
        - numeric columns: finite float or None
        """
        row: Row = {}
        for key, value in record.items():
            if isinstance(value, str):
                value = value.strip()
            row[key] = None if is_missing(value) else value

        if self.target in row:
            row[self.target] = 1 if str(row[self.target]).lower() == "yes" else 0

        # SeniorCitizen arrives as 0/1 but is encoded as a yes/no binary column
        if "SeniorCitizen" in row:
            row["SeniorCitizen"] = "Yes" if str(row["SeniorCitizen"]) in ("1", "1.0") else "No"

        for col in self.numeric_columns:
            if col in row:
                row[col] = to_number(row[col])
        return row

    def to_rows(self, df: pd.DataFrame) -> List[Row]:
        """Convert a raw DataFrame into a list of normalized rows."""
        return [self.normalize_row(record) for record in df.to_dict(orient="records")]

    def load_rows(self, filepath: Optional[str] = None, split_name: str = "train") -> List[Row]:
        """
        Complete loading pipeline for one split: read CSV and normalize rows.

        Parameters
        ----------
        filepath : str, optional
            Override path; defaults to the configured path for ``split_name``.
        split_name : str
            "train" or "test", used for the default path and logging.

        Returns
        -------
        list of Row
        """
        if filepath is None:
            filepath = self.train_path if split_name == "train" else self.test_path
        rows = self.to_rows(self.load_csv(filepath))

        message = f"Loaded {split_name}: {len(rows)} rows"
        if rows and self.target in rows[0]:
            rate = sum(row.get(self.target) == 1 for row in rows) / len(rows)
            message += f" | Churn {rate:.2%}"
        logger.info(message)
        return rows

    def customer_ids(self, rows: List[Row]) -> List[Any]:
        """Customer IDs in row order (None where the column is absent)."""
        return [row.get(self.id_column) for row in rows]

    def labels(self, rows: List[Row]) -> List[int]:
        """Churn labels (0/1) in row order; rows without a target count as 0."""
        return [int(row.get(self.target) or 0) for row in rows]
