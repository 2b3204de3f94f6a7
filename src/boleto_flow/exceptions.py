"""Exception hierarchy for Boleto Flow."""

from typing import Any


class BoletoFlowError(Exception):
    """Base exception for all Boleto Flow errors."""


class ValidationError(BoletoFlowError):
    """Raised when a precondition is not met; nothing is sent to the network."""


class RemoteError(BoletoFlowError):
    """An external service answered with a non-success response."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ConnectivityError(BoletoFlowError):
    """Transport-level failure reaching an external service or the relay."""


class ParseError(BoletoFlowError):
    """Malformed persisted state or malformed model output."""
