# ============================================================
# src/features/encoder.py
# Feature encoding: z-scored numeric columns, yes/no binary
# columns and one-hot categorical blocks, all fitted once on
# the training rows and frozen afterwards.
# ============================================================

import numpy as np                                 # NumPy for statistics and vectors
import pandas as pd                                # Pandas for labelled feature frames
from dataclasses import dataclass                  # Immutable fit-time records
from loguru import logger                          # Structured logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple  # Type hints

from src.utils.errors import InvalidInput, NotFitted  # Pipeline error types
from src.utils.helpers import is_missing, to_number   # Cell coercion helpers

# A single CSV record: column name -> raw cell value
Row = Mapping[str, Any]

# Reserved vocabulary level for missing and unseen categories
NA_LEVEL = "NA"

# Case-insensitive spellings encoded as 1; no/n/false/0 and anything else encode as 0
TRUTHY = frozenset({"yes", "y", "true", "1"})


@dataclass(frozen=True)
class NumericColumnStats:
    """Training-set statistics for one numeric column."""

    column: str
    mean: float
    std: float                                     # Never zero (floored to 1)
    median: float                                  # Imputation value for missing cells


@dataclass(frozen=True)
class CategoricalVocabulary:
    """Ordered levels of one categorical column, first-seen order plus "NA"."""

    column: str
    levels: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.levels)


@dataclass(frozen=True)
class EncoderState:
    """
    Everything learned by ``FeatureEncoder.fit``.

    The state is a plain immutable value: it can be persisted with
    joblib and handed to a fresh encoder via ``FeatureEncoder.from_state``.
    """

    numeric_columns: Tuple[str, ...]
    binary_columns: Tuple[str, ...]
    categorical_columns: Tuple[str, ...]
    numeric_stats: Tuple[NumericColumnStats, ...]
    vocabularies: Tuple[CategoricalVocabulary, ...]

    @property
    def width(self) -> int:
        """Length of every feature vector produced from this state."""
        return (
            len(self.numeric_columns)
            + len(self.binary_columns)
            + sum(len(vocab) for vocab in self.vocabularies)
        )

    @property
    def feature_names(self) -> List[str]:
        """Human-readable name of each output slot, in vector order."""
        names = [f"num__{col}" for col in self.numeric_columns]
        names += [f"bin__{col}" for col in self.binary_columns]
        for vocab in self.vocabularies:
            names += [f"cat__{vocab.column}_{level}" for level in vocab.levels]
        return names


def stringify(value: Any) -> str:
    """Categorical key for a cell: the trimmed string, or "NA" when missing."""
    if is_missing(value):
        return NA_LEVEL
    # Integral numbers render without a fractional part, so 1.0 and "1" share a level
    if not isinstance(value, (str, bool)):
        number = to_number(value)
        if number is not None and number.is_integer():
            return str(int(number))
    return str(value).strip()


def encode_binary(value: Any) -> float:
    """Map yes/no style values to 1.0/0.0; anything unrecognised is 0.0."""
    if is_missing(value):
        return 0.0
    # Numeric cells (1, 1.0, np.float64(1.0)) compare by value, not by their text
    if not isinstance(value, (str, bool)):
        return 1.0 if to_number(value) == 1.0 else 0.0
    token = str(value).strip().lower()
    return 1.0 if token in TRUTHY else 0.0


def _fit_numeric(rows: Sequence[Row], column: str) -> NumericColumnStats:
    """Compute mean, population std and median over the valid values of a column."""
    values = [to_number(row.get(column)) for row in rows]
    valid = np.array([v for v in values if v is not None], dtype=float)
    skipped = len(values) - len(valid)

    if len(valid) == 0:
        logger.warning(f"Numeric column '{column}' has no valid values; using mean=0, std=1")
        return NumericColumnStats(column=column, mean=0.0, std=1.0, median=0.0)

    mean = float(np.mean(valid))
    std = float(np.std(valid))                      # Population std (ddof=0)
    if std == 0.0:
        std = 1.0
    median = float(np.median(valid))

    if skipped:
        logger.info(f"  {column}: {skipped} missing/non-numeric values imputed with median={median:.4f}")
    return NumericColumnStats(column=column, mean=mean, std=std, median=median)


def _fit_vocabulary(rows: Sequence[Row], column: str) -> CategoricalVocabulary:
    """Collect distinct levels in first-seen order and reserve "NA"."""
    # dict preserves insertion order, which is the first-seen order
    seen: Dict[str, None] = {}
    for row in rows:
        seen.setdefault(stringify(row.get(column)), None)
    seen.setdefault(NA_LEVEL, None)
    return CategoricalVocabulary(column=column, levels=tuple(seen))


class FeatureEncoder:
    """
    Turns raw churn rows into fixed-length numeric feature vectors.

    Output layout is numeric block ++ binary block ++ one-hot blocks,
    each in the column order given to ``fit``:

    - numeric: missing values imputed with the training median, then
      z-scored with the training mean/std
    - binary: yes/y/true/1 -> 1, everything else -> 0
    - categorical: one slot per training level; missing and unseen
      values land in the reserved "NA" slot

    The encoder is fitted exactly once. Validation and test rows are
    only ever transformed with the frozen training statistics, so the
    vector width is identical across every split.
    """

    def __init__(self):
        # Fitted state (None until fit() has been called)
        self.state: Optional[EncoderState] = None
        # level -> slot offset lookups derived from the vocabularies
        self._level_index: Tuple[Dict[str, int], ...] = ()

    @classmethod
    def from_state(cls, state: EncoderState) -> "FeatureEncoder":
        """Build a fitted encoder around a previously computed state."""
        encoder = cls()
        encoder._install(state)
        return encoder

    @property
    def is_fitted(self) -> bool:
        return self.state is not None

    @property
    def width(self) -> int:
        return self._require_state().width

    @property
    def feature_names(self) -> List[str]:
        return self._require_state().feature_names

    def _require_state(self) -> EncoderState:
        if self.state is None:
            raise NotFitted("FeatureEncoder has not been fitted yet. Call fit(train_rows, ...) first.")
        return self.state

    def _install(self, state: EncoderState) -> None:
        self.state = state
        self._level_index = tuple(
            {level: i for i, level in enumerate(vocab.levels)}
            for vocab in state.vocabularies
        )

    def fit(
        self,
        train_rows: Sequence[Row],
        numeric_columns: Iterable[str],
        categorical_columns: Iterable[str],
        binary_columns: Iterable[str],
    ) -> EncoderState:
        """
        Learn numeric statistics and categorical vocabularies from training rows.

        Parameters
        ----------
        train_rows : sequence of Row
            Training rows only. Validation/test rows must never be passed here.
        numeric_columns, categorical_columns, binary_columns : iterable of str
            Column names per encoding kind; their order fixes the vector layout.

        Returns
        -------
        EncoderState
            The frozen fit-time state.
        """
        if self.state is not None:
            raise InvalidInput("FeatureEncoder is already fitted; create a new encoder to refit.")
        train_rows = list(train_rows)
        if not train_rows:
            raise InvalidInput("Cannot fit FeatureEncoder on an empty training set.")

        numeric_columns = tuple(numeric_columns)
        categorical_columns = tuple(categorical_columns)
        binary_columns = tuple(binary_columns)

        logger.info(f"Fitting FeatureEncoder on {len(train_rows)} training rows")
        state = EncoderState(
            numeric_columns=numeric_columns,
            binary_columns=binary_columns,
            categorical_columns=categorical_columns,
            numeric_stats=tuple(_fit_numeric(train_rows, col) for col in numeric_columns),
            vocabularies=tuple(_fit_vocabulary(train_rows, col) for col in categorical_columns),
        )
        self._install(state)

        for vocab in state.vocabularies:
            logger.debug(f"  {vocab.column}: {list(vocab.levels)}")
        logger.info(
            f"FeatureEncoder fitted: {len(numeric_columns)} numeric, "
            f"{len(binary_columns)} binary, {len(categorical_columns)} categorical "
            f"-> {state.width} features"
        )
        return state

    def transform(self, row: Row) -> np.ndarray:
        """
        Encode one row with the frozen training state.

        Columns absent from the row are treated as missing.
        """
        state = self._require_state()
        vector = np.zeros(state.width, dtype=float)

        offset = 0
        for stats in state.numeric_stats:
            value = to_number(row.get(stats.column))
            if value is None:
                value = stats.median
            vector[offset] = (value - stats.mean) / stats.std
            offset += 1

        for column in state.binary_columns:
            vector[offset] = encode_binary(row.get(column))
            offset += 1

        for vocab, index in zip(state.vocabularies, self._level_index):
            level = stringify(row.get(vocab.column))
            # Unseen levels fall back to the reserved NA slot
            slot = index.get(level, index[NA_LEVEL])
            vector[offset + slot] = 1.0
            offset += len(vocab)

        return vector

    def transform_all(self, rows: Iterable[Row]) -> np.ndarray:
        """Encode every row, returning an (n_rows, width) matrix in input order."""
        width = self.width
        vectors = [self.transform(row) for row in rows]
        if not vectors:
            return np.empty((0, width), dtype=float)
        matrix = np.vstack(vectors)
        logger.info(f"Rows encoded. Shape: {matrix.shape}")
        return matrix

    def to_dataframe(self, matrix: np.ndarray) -> pd.DataFrame:
        """Wrap an encoded matrix in a DataFrame labelled with feature names."""
        return pd.DataFrame(matrix, columns=self.feature_names)
