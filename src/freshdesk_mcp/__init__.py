from .client import FreshdeskClient, PaginatedResult
from .config import FreshdeskConfig
from .errors import ApiError, ConfigError, FreshdeskError, InvalidResponseError, PaginationError

__all__ = [
    "ApiError",
    "ConfigError",
    "FreshdeskClient",
    "FreshdeskConfig",
    "FreshdeskError",
    "InvalidResponseError",
    "PaginatedResult",
    "PaginationError",
]
