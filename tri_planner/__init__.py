"""Multi-sport training plan generation and adaptation engine."""

__version__ = "0.1.0"
