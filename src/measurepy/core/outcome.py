"""Outcome classification for completed calls."""

from measurepy.core.models import CallOutcome, Failure, Outcome


def classify(outcome: CallOutcome) -> Outcome:
    """Map a call outcome to its label.

    Args:
        outcome: Success or Failure of the wrapped call.

    Returns:
        Outcome.ERROR for failures, Outcome.SUCCESS otherwise.
    """
    if isinstance(outcome, Failure):
        return Outcome.ERROR
    return Outcome.SUCCESS


def error_category(outcome: CallOutcome) -> str | None:
    """Return the error class name for failures, None for successes."""
    if isinstance(outcome, Failure):
        return type(outcome.error).__name__
    return None
