# src/services/errors.py

"""Error taxonomy for calls to external card data services.

"Not found" is never an exception: clients return ``None`` for it.
"""


class PriceSyncError(Exception):
    """Base class for every error raised by the sync pipeline."""


class FetchError(PriceSyncError):
    """A call to an external service failed."""

    def __init__(self, message: str, service: str = "") -> None:
        super().__init__(message)
        self.service = service


class RateLimitError(FetchError):
    """The remote service signalled throttling (HTTP 429)."""


class NetworkError(FetchError):
    """Connection-level failure: DNS, refused, reset."""


class RequestTimeoutError(FetchError, TimeoutError):
    """The request exceeded its time budget."""


class InvalidResponseError(FetchError):
    """Unexpected status code or a payload that cannot be parsed."""


class ResolutionError(PriceSyncError):
    """A card name could not be resolved to a card id."""


class DecklistParseError(PriceSyncError):
    """EDHREC data did not have the expected structure."""
