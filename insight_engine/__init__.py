"""Question lifecycle and personalization engine for analytics dashboards."""

__version__ = "1.0.0"
