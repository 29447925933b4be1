"""Shared pieces of the analytics passes."""

from __future__ import annotations


class AlreadyCalculatedError(ValueError):
    """Raised when a derived dataset exists and recalculation was not forced."""


NO_ROUTES_MESSAGE = "No successful routes found. Please run route calculation first."
