"""
Error taxonomy for Menu Pal.

Every error that reaches the user carries a readable message. ``retryable``
marks the transient kinds that the retry wrapper may try again.
"""


class MenuPalError(Exception):
    """Base class for all Menu Pal errors."""
    kind = "error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(MenuPalError):
    """Missing or malformed credential, or the user is not entitled."""
    kind = "auth"


class QuotaError(MenuPalError):
    """Upstream rate-limited or temporarily unavailable."""
    kind = "quota"
    retryable = True


class NetworkError(MenuPalError):
    """Connection failure, timeout or unexpected upstream status."""
    kind = "network"
    retryable = True


class ValidationError(MenuPalError):
    """Data does not conform to the expected shape."""
    kind = "validation"


class EncodingError(MenuPalError):
    """An image could not be decoded or re-encoded."""
    kind = "encoding"


class TransitionError(MenuPalError):
    """The order lifecycle refused an event in its current state."""
    kind = "transition"
