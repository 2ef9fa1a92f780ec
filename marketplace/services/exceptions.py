class MarketplaceError(Exception):
    """Base class for errors raised by marketplace services."""
    pass


class ValidationError(MarketplaceError):
    """Exception raised when input has the wrong shape or is out of range."""
    pass


class NotFoundError(MarketplaceError):
    """Exception raised when the requested product doesn't exist."""
    pass


class ForbiddenError(MarketplaceError):
    """Exception raised when the caller's role or ownership doesn't allow the operation."""
    pass


class ConflictError(MarketplaceError):
    """Exception raised when a unique value (e.g. an email) is already taken."""
    pass


class AuthenticationError(MarketplaceError):
    """Exception raised when credentials or tokens are not valid."""
    pass


class InsufficientStockError(MarketplaceError):
    """
    Exception raised when there's not enough stock to fulfill a purchase.

    ``available`` is the stock seen when the check ran; it is informational
    and may already be stale when the caller reads it.
    """

    def __init__(self, available: float, requested: float):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Only {_format_quantity(available)}kg available.")


class StorageError(MarketplaceError):
    """
    Exception raised when the store fails to commit a unit of work.

    ``retryable`` is set for lock timeouts and lost compare-and-swap races,
    where repeating the request may succeed.
    """

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)


def _format_quantity(value: float) -> str:
    return f"{value:g}"
