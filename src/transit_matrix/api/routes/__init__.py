"""Route group exports."""

from . import analytics, health, matrix, status

__all__ = ["analytics", "health", "matrix", "status"]
