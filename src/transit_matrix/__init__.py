"""Public transit travel-time matrix: route computation and analytics."""

__version__ = "0.1.0"
