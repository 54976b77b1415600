"""
Error Taxonomy
Hard failures raised by the core. Insufficient-data conditions are NOT
errors; analytics return structured "no result" values instead.
"""

from typing import List, Optional


class PNodeAnalyticsError(Exception):
    """Base class for all errors raised by this package."""


class DiscoveryError(PNodeAnalyticsError):
    """The node discovery source is unreachable, timed out or returned nothing."""

    def __init__(self, message: str, endpoints: Optional[List[str]] = None):
        super().__init__(message)
        self.endpoints = endpoints or []


class StorageError(PNodeAnalyticsError):
    """The time-series store could not complete a read or write."""


class NotFoundError(PNodeAnalyticsError):
    """Unknown node, rule or alert."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class RuleValidationError(PNodeAnalyticsError, ValueError):
    """Malformed alert rule input; raised before any state change."""
