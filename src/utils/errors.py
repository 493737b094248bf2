# ============================================================
# src/utils/errors.py
# Exception types raised by the churn pipeline components.
# ============================================================


class ChurnPipelineError(Exception):
    """Base class for all errors raised by the churn pipeline."""


class InvalidInput(ChurnPipelineError, ValueError):
    """
    Raised when a component receives data it cannot work with:
    empty training sets, misaligned probability/label arrays,
    or an out-of-range decision threshold.
    """


class NotFitted(ChurnPipelineError, RuntimeError):
    """Raised when transform/predict is called before fit/train."""
