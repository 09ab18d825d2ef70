"""
Error taxonomy shared by the transport, resolver and decoder.

Transport errors carry the HTTP status and URL of the failed call. ``Cancelled``
deliberately sits outside ``DVIDError`` so that ``except DVIDError`` recovery
paths never treat a cancellation as a failure.
"""

from typing import Optional


class DVIDError(Exception):
    """Base class for all recoverable data source errors."""


class TransportError(DVIDError):
    """A remote call finished with a non-success outcome."""

    def __init__(self, message: str, status: int = 0, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class TransportUnauthorized(TransportError):
    """401/403: the credential must be refreshed before retrying."""


class TransportTransient(TransportError):
    """504 or client timeout: the same call may be retried as-is."""


class TransportFatal(TransportError):
    """Any other failure. Never retried."""


class CredentialsRefreshError(DVIDError):
    """The credentials provider could not obtain a new token."""


class ResolveBranchFailure(DVIDError):
    """A merge graph branch could not be resolved to any leaf."""

    def __init__(self, message: str, key: str):
        super().__init__(message)
        self.key = key


class DecodeMalformed(DVIDError):
    """A binary payload or JSON document does not match its expected layout."""


class Cancelled(Exception):
    """The operation was aborted through its cancellation token."""
