"""Error taxonomy for the restock notification pipeline.

Every error carries a ``kind`` and a ``retryable`` flag so batch results and
API responses can report whether an administrative retry can help.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Broad classes of pipeline failures."""

    AUTHORIZATION = "authorization"
    DELIVERY = "delivery"
    DATA = "data"


class RestockError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.DELIVERY
    retryable: bool = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(RestockError):
    """Caller lacks the role required to dispatch notifications."""

    kind = ErrorKind.AUTHORIZATION
    retryable = False


class DeliveryError(RestockError):
    """Transient gateway failure (timeout, provider rejection)."""

    kind = ErrorKind.DELIVERY
    retryable = True


class DataError(RestockError):
    """Bad or missing data; retrying reproduces the same failure."""

    kind = ErrorKind.DATA
    retryable = False


class ProductNotFoundError(DataError):
    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class MalformedSubscriptionError(DataError):
    pass


class NotFoundError(RestockError):
    """Requested record does not exist."""

    kind = ErrorKind.DATA
    retryable = False
