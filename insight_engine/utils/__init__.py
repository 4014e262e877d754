"""Utility functions and helpers"""

from insight_engine.utils.timeutils import as_utc, elapsed_days, utcnow
from insight_engine.utils.validators import sanitize_user_input, validate_source

__all__ = [
    "as_utc",
    "elapsed_days",
    "utcnow",
    "sanitize_user_input",
    "validate_source",
]
