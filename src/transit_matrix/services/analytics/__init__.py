"""Analytics passes over computed routes."""

from .base import AlreadyCalculatedError
from .histograms import calculate_deciles, calculate_time_buckets, compute_deciles, fixed_time_buckets
from .reachability import calculate_reachability, rank_zones

__all__ = [
    "AlreadyCalculatedError",
    "calculate_deciles",
    "calculate_time_buckets",
    "compute_deciles",
    "fixed_time_buckets",
    "calculate_reachability",
    "rank_zones",
]
