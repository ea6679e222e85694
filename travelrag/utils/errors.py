"""Exception types raised inside provider adapters"""
from typing import Dict


class ProviderError(Exception):
    """Base error for external provider failures"""
    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class CompletionUnavailableError(ProviderError):
    """Completion provider failed after retries, timed out, or returned nothing"""


class OperationCancelledError(ProviderError):
    """Raised when a cancellation token fires during an awaited call"""


class ConfigurationError(ProviderError):
    """Required provider configuration (API key, URL) is missing"""
