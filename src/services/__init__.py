"""
Google Sheets access services for the NAP registry.

This package provides the resilience layer between callers and the
Google Sheets API:
- TTL cache with pattern invalidation and background sweep
- Exponential backoff retry with per-service retry conditions
- Circuit breaker guarding the Sheets API
- NAP repository built on top of them
"""

from .cache_service import CacheKeys, CacheService
from .nap_sheets_service import NapSheetsService
from .retry_handler import (
    CircuitBreaker,
    CircuitState,
    RetryHandler,
    RetryOptions,
    with_maps_retry,
    with_retry,
    with_sheets_retry,
)

__all__ = [
    "CacheKeys",
    "CacheService",
    "CircuitBreaker",
    "CircuitState",
    "NapSheetsService",
    "RetryHandler",
    "RetryOptions",
    "with_maps_retry",
    "with_retry",
    "with_sheets_retry",
]
