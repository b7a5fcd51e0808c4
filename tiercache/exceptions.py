"""
tiercache exception hierarchy.

All custom exceptions inherit from TierCacheException so callers can
catch a single base type when they want a broad safety net.  A cache
miss is not an error and has no exception type.
"""


class TierCacheException(Exception):
    """Base exception for all tiercache errors."""


class InvalidConfigurationError(TierCacheException, ValueError):
    """Raised when cache configuration is invalid or cannot be loaded."""


class ObservabilityError(TierCacheException):
    """Raised when a metrics recording operation fails."""
