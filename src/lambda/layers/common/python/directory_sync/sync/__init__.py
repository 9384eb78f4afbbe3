"""Resumable batch-synchronization primitives shared by the task modules."""

from .batch_writer import BatchWriter, QueueDestination, TableDestination
from .deadline import DeadlineGovernor
from .fetcher import GroupFetcher, GroupMemberFetcher, Page, PaginatedFetcher, TableScanFetcher, UserFetcher
from .rate_limiter import RateLimiter, RateWindow
from .retry import RetryPolicy, compute_delay

__all__ = [
    "BatchWriter",
    "DeadlineGovernor",
    "GroupFetcher",
    "GroupMemberFetcher",
    "Page",
    "PaginatedFetcher",
    "QueueDestination",
    "RateLimiter",
    "RateWindow",
    "RetryPolicy",
    "TableDestination",
    "TableScanFetcher",
    "UserFetcher",
    "compute_delay",
]
