"""
Exception hierarchy for the arbitrage scanner.

Expected "not viable" outcomes (no quote, no consensus, unprofitable) are
returned as ``None`` and never raised. These types cover the failures that
have to travel further up.
"""

from typing import Any, Dict, Optional


class ArbitrageError(Exception):
    """Base exception for all scanner related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ArbitrageError):
    """Persistent misconfiguration; startup should halt."""

    pass


class MarketDataUnavailable(ArbitrageError):
    """Transient failure of the market-data source; retry with backoff."""

    pass


class RpcError(ArbitrageError):
    """Raised when every configured RPC endpoint failed for a request."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.method = method
