from enum import Enum
from typing import Any, Dict, Optional, Sequence


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    EMPTY_CART = "EMPTY_CART"
    INVALID_ITEM = "INVALID_ITEM"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_SHIPPING_METHOD = "INVALID_SHIPPING_METHOD"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ORDER_CANCELLATION_FAILED = "ORDER_CANCELLATION_FAILED"
    ORDER_UPDATE_FAILED = "ORDER_UPDATE_FAILED"
    INVALID_REQUEST = "INVALID_REQUEST"


HTTP_STATUS = {
    ErrorKind.NOT_AUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.EMPTY_CART: 400,
    ErrorKind.INVALID_ITEM: 400,
    ErrorKind.INVALID_ADDRESS: 400,
    ErrorKind.INVALID_SHIPPING_METHOD: 400,
    ErrorKind.OUT_OF_STOCK: 409,
    ErrorKind.ORDER_CREATION_FAILED: 500,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.ORDER_CANCELLATION_FAILED: 500,
    ErrorKind.ORDER_UPDATE_FAILED: 400,
    ErrorKind.INVALID_REQUEST: 400,
}


class ShopError(Exception):
    def __init__(self, kind: ErrorKind, message: str, **details: Any) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: Dict[str, Any] = details

    @property
    def status_code(self) -> int:
        return HTTP_STATUS.get(self.kind, 500)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.kind.value, "message": self.message}
        body.update(self.details)
        return body

    def __repr__(self) -> str:
        return "{0}({1}, {2!r})".format(type(self).__name__, self.kind.value, self.message)


class CheckoutError(ShopError):
    pass


class CancellationError(ShopError):
    pass


class OrderUpdateError(ShopError):
    pass


def not_authenticated(message: Optional[str] = None) -> ShopError:
    return ShopError(ErrorKind.NOT_AUTHENTICATED, message or "Not authenticated")


# first field of the request body -> kind reported for a malformed value there
BODY_FIELD_KINDS = {
    "items": ErrorKind.INVALID_ITEM,
    "shipping_address": ErrorKind.INVALID_ADDRESS,
    "billing_address": ErrorKind.INVALID_ADDRESS,
    "shipping_method": ErrorKind.INVALID_SHIPPING_METHOD,
}


def from_validation_errors(errors: Sequence[Dict[str, Any]]) -> ShopError:
    """Turns the first request validation error into a ShopError naming the field."""
    if not errors:
        return ShopError(ErrorKind.INVALID_REQUEST, "Invalid request")

    first = errors[0]
    loc = [str(part) for part in first.get("loc", ())]
    kind = ErrorKind.INVALID_REQUEST
    if len(loc) > 1 and loc[0] == "body":
        kind = BODY_FIELD_KINDS.get(loc[1], ErrorKind.INVALID_REQUEST)

    field = ".".join(loc[1:]) if len(loc) > 1 else None
    message = "{0}: {1}".format(field, first.get("msg")) if field else str(first.get("msg") or "Invalid request")
    return ShopError(kind, message, field=field)
