# ============================================================
# src/data/explorer.py
# Exploratory statistics for the training rows: detected types,
# missing values, numeric summaries, Pearson correlations and
# churn breakdowns by category / histogram bin.
# ============================================================

import numpy as np                                 # NumPy for statistics
import pandas as pd                                # Pandas for tabular summaries
from loguru import logger                          # Structured logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple  # Type hints

from src.utils.helpers import is_missing, to_number  # Cell coercion helpers

# Tokens mapped to 1/0 before computing correlations
POSITIVE_TOKENS = ("yes", "male", "true", "1")
NEGATIVE_TOKENS = ("no", "female", "false", "0")


class DataExplorer:
    """
    Computes the statistics behind the exploratory data analysis view.

    Works on normalized rows (see ``DataLoader.normalize_row``); missing
    cells are None. Rendering is left to the caller.
    """

    def __init__(self, config: dict):
        features = config.get("features", {})
        self.target = features.get("target", "Churn")
        self.id_column = features.get("id_column", "customerID")
        # Breakdown / histogram columns rendered by the EDA view
        eda = config.get("eda", {})
        self.churn_breakdown_columns = list(eda.get("churn_breakdown_columns", ["Contract", "InternetService"]))
        self.histogram_columns = list(eda.get("histogram_columns", ["MonthlyCharges", "tenure"]))
        self.histogram_bins = int(eda.get("histogram_bins", 20))

    def columns(self, rows: Sequence[Mapping[str, Any]]) -> List[str]:
        """Column names of the first non-empty row."""
        for row in rows:
            if row:
                return list(row.keys())
        return []

    def detect_dtypes(self, rows: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        """
        Guess a display type per column from its first non-missing value.

        number: parses as a number; category: yes/no/male/female;
        text: longer than 30 characters; string: anything else;
        missing: no value at all.
        """
        dtypes = {}
        for col in self.columns(rows):
            first = next((row.get(col) for row in rows if not is_missing(row.get(col))), None)
            if first is None:
                dtypes[col] = "missing"
            elif to_number(first) is not None:
                dtypes[col] = "number"
            elif str(first).lower() in ("yes", "no", "male", "female"):
                dtypes[col] = "category"
            elif len(str(first)) > 30:
                dtypes[col] = "text"
            else:
                dtypes[col] = "string"
        return dtypes

    def numeric_like_columns(self, rows: Sequence[Mapping[str, Any]]) -> List[str]:
        """Columns (excluding the customer ID) with at least one numeric value."""
        return [
            col for col in self.columns(rows)
            if col.lower() != self.id_column.lower()
            and any(to_number(row.get(col)) is not None for row in rows)
        ]

    def missing_report(self, rows: Sequence[Mapping[str, Any]]) -> Dict[str, float]:
        """Percentage (one decimal) of missing cells per column."""
        if not rows:
            return {}
        return {
            col: round(100.0 * sum(is_missing(row.get(col)) for row in rows) / len(rows), 1)
            for col in self.columns(rows)
        }

    def numeric_summary(self, rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> pd.DataFrame:
        """Mean, population std, min and max per numeric column."""
        records = []
        for col in columns:
            values = np.array(
                [v for v in (to_number(row.get(col)) for row in rows) if v is not None],
                dtype=float,
            )
            if len(values) == 0:
                continue
            records.append({
                "feature": col,
                "mean": float(values.mean()),
                "std": float(values.std()),
                "min": float(values.min()),
                "max": float(values.max()),
            })
        return pd.DataFrame(records, columns=["feature", "mean", "std", "min", "max"])

    def binarize(self, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Copy of rows with yes/no style tokens replaced by 1/0."""
        processed = []
        for row in rows:
            out = dict(row)
            for key, value in out.items():
                token = str(value).lower()
                if token in POSITIVE_TOKENS:
                    out[key] = 1
                elif token in NEGATIVE_TOKENS:
                    out[key] = 0
            processed.append(out)
        return processed

    def numeric_frame(self, rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> pd.DataFrame:
        """Float frame of ``columns``; non-numeric and missing cells become NaN."""
        return pd.DataFrame(
            {col: pd.Series([to_number(row.get(col)) for row in rows], dtype=float) for col in columns},
            columns=list(columns),
        )

    def correlation_matrix(self, rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> pd.DataFrame:
        """
        Pairwise-complete Pearson correlation between columns.

        Each pair uses only rows where both values are numeric; pairs
        with no usable rows or zero variance are reported as 0.
        """
        # DataFrame.corr drops NaN pairwise, so each pair keeps its own complete rows
        return self.numeric_frame(rows, columns).corr(method="pearson").fillna(0.0)

    def binary_levels(self, rows: Sequence[Mapping[str, Any]], column: str) -> Optional[Dict[str, int]]:
        """Map the two distinct lower-cased levels of a column to 0/1 in first-seen order."""
        tokens = [str(row.get(column)).lower() for row in rows if not is_missing(row.get(column))]
        levels = list(dict.fromkeys(tokens))
        if len(levels) != 2:
            return None
        return {levels[0]: 0, levels[1]: 1}

    def top_binary_correlates(self, rows: Sequence[Mapping[str, Any]], k: int = 5) -> List[Tuple[str, float]]:
        """
        Two-level non-numeric columns most correlated with churn.

        Levels are mapped to 0/1 in first-seen order (case-insensitive);
        columns with five or fewer usable pairs are skipped. Sorted by
        absolute correlation, strongest first.
        """
        if not any(self.target in row for row in rows):
            return []
        numeric = set(self.numeric_like_columns(rows))
        candidates = [c for c in self.columns(rows) if c.lower() != self.target.lower() and c not in numeric]

        target = self.numeric_frame(rows, [self.target])[self.target]
        scored = []
        for col in candidates:
            mapping = self.binary_levels(rows, col)
            if mapping is None:
                continue
            encoded = pd.Series(
                [np.nan if is_missing(row.get(col)) else mapping[str(row.get(col)).lower()] for row in rows],
                dtype=float,
            )
            usable = int((encoded.notna() & target.notna()).sum())
            if usable > 5:
                value = encoded.corr(target)
                scored.append((col, 0.0 if pd.isna(value) else float(value)))

        scored.sort(key=lambda item: abs(item[1]), reverse=True)
        return scored[:k]

    def churn_rate(self, rows: Sequence[Mapping[str, Any]]) -> float:
        if not rows:
            return 0.0
        return sum(row.get(self.target) == 1 for row in rows) / len(rows)

    def churn_by_category(self, rows: Sequence[Mapping[str, Any]], column: str) -> pd.DataFrame:
        """Percent churned / retained per level (missing -> "NA"), one decimal."""
        groups: Dict[str, Dict[str, int]] = {}
        for row in rows:
            value = row.get(column)
            level = "NA" if is_missing(value) else str(value)
            group = groups.setdefault(level, {"yes": 0, "no": 0})
            group["yes" if row.get(self.target) == 1 else "no"] += 1

        records = []
        for level, group in groups.items():
            total = group["yes"] + group["no"] or 1
            records.append({
                "level": level,
                "churn_yes_pct": round(100.0 * group["yes"] / total, 1),
                "churn_no_pct": round(100.0 * group["no"] / total, 1),
                "count": group["yes"] + group["no"],
            })
        return pd.DataFrame(records, columns=["level", "churn_yes_pct", "churn_no_pct", "count"])

    def dual_histogram(
        self,
        rows: Sequence[Mapping[str, Any]],
        column: str,
        bins: int = 20,
    ) -> Optional[Dict[str, Any]]:
        """
        Histogram counts of ``column`` for retained vs churned customers.

        Both groups share the same bin edges spanning the overall min/max.
        Returns None when the column has no numeric values.
        """
        frame = self.numeric_frame(rows, [column, self.target]).dropna(subset=[column])
        values_no = frame.loc[frame[self.target] == 0, column].to_numpy()
        values_yes = frame.loc[frame[self.target] == 1, column].to_numpy()
        if len(values_no) == 0 and len(values_yes) == 0:
            return None

        low = float(min(values_no.min(initial=np.inf), values_yes.min(initial=np.inf)))
        high = float(max(values_no.max(initial=-np.inf), values_yes.max(initial=-np.inf)))
        # A constant column still gets bins of width 1
        bin_edges = np.linspace(low, high if high > low else low + bins, bins + 1)

        no_counts, _ = np.histogram(values_no, bins=bin_edges)
        yes_counts, _ = np.histogram(values_yes, bins=bin_edges)
        return {
            "edges": bin_edges.tolist(),
            "labels": [f"{bin_edges[i]:.0f}-{bin_edges[i + 1]:.0f}" for i in range(bins)],
            "no": no_counts.tolist(),
            "yes": yes_counts.tolist(),
        }

    def run(self, rows: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Full EDA report used by the training script.

        Correlations cover the numeric columns plus the top binary
        columns correlated with churn. Yes/no style tokens become 1/0;
        other two-level columns use their first-seen 0/1 mapping.
        Churn breakdowns and dual histograms cover the configured
        ``eda`` columns present in the rows.
        """
        numeric_cols = self.numeric_like_columns(rows)
        top = self.top_binary_correlates(rows)
        corr_cols = numeric_cols + [col for col, _ in top if col not in numeric_cols]
        present = set(self.columns(rows))

        processed = self.binarize(rows)
        for col, _ in top:
            mapping = self.binary_levels(rows, col)
            for raw, out in zip(rows, processed):
                if not is_missing(raw.get(col)):
                    out[col] = mapping[str(raw.get(col)).lower()]

        histograms = {}
        for col in self.histogram_columns:
            hist = self.dual_histogram(rows, col, bins=self.histogram_bins) if col in present else None
            if hist is not None:
                histograms[col] = hist

        report = {
            "dtypes": self.detect_dtypes(rows),
            "missing_pct": self.missing_report(rows),
            "numeric_summary": self.numeric_summary(rows, numeric_cols),
            "correlation": self.correlation_matrix(processed, corr_cols),
            "top_binary_correlates": top,
            "churn_rate": self.churn_rate(rows),
            "churn_by_category": {
                col: self.churn_by_category(rows, col)
                for col in self.churn_breakdown_columns if col in present
            },
            "histograms": histograms,
        }
        logger.info(f"EDA complete: {len(report['dtypes'])} columns, churn rate {report['churn_rate']:.2%}")
        if top:
            logger.info("Binary columns most correlated with churn:")
            for col, value in top:
                logger.info(f"  {col}: {value:+.3f}")
        return report
