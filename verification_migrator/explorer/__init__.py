"""Etherscan-style explorer API access."""

from .client import ExplorerClient
from .dialects import BLOCKSCOUT, DIALECTS, ETHERSCAN, ExplorerDialect, get_dialect
from .rate_limiter import RateLimiter, limiter_for

__all__ = [
    "ExplorerClient",
    "ExplorerDialect",
    "ETHERSCAN",
    "BLOCKSCOUT",
    "DIALECTS",
    "get_dialect",
    "RateLimiter",
    "limiter_for",
]
