"""
errors.py
----------
Error kinds raised by accounting-API sources.

Scan orchestration tells these apart: an expired token needs the user to
reconnect, an unreachable upstream can simply be retried on the next scan.
"""


class IntegrationError(Exception):
    """Base class for failures fetching transactions from an accounting API."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class AuthExpiredError(IntegrationError):
    """The access token was rejected (HTTP 401). The user must reconnect."""


class UpstreamUnavailableError(IntegrationError):
    """The accounting API could not be reached or returned a server error."""
