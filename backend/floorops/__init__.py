"""Restaurant floor-operations engine."""

__version__ = "0.1.0"
