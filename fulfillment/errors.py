"""Error taxonomy for order operations.

Every error carries the HTTP status it maps to and a stable ``code`` so the
API layer can render it without knowing about individual failure cases.
"""

from typing import Any


class OrderServiceError(Exception):
    """Base class for all order service failures."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# Validation (caller can fix the request)


class ValidationFailed(OrderServiceError):
    status_code = 400
    code = "validation_error"


class MissingField(ValidationFailed):
    code = "missing_field"


class ItemNotFound(ValidationFailed):
    code = "item_not_found"


class ItemUnavailable(ValidationFailed):
    code = "item_unavailable"


class InvalidQuantity(ValidationFailed):
    code = "invalid_quantity"


class TotalMismatch(ValidationFailed):
    code = "total_mismatch"


class InvalidStatus(ValidationFailed):
    code = "invalid_status"


class InvalidQuery(ValidationFailed):
    code = "invalid_query"


# Lookup


class NotFound(OrderServiceError):
    status_code = 404
    code = "not_found"


class OrderNotFound(NotFound):
    code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__("Order not found", order_id=order_id)


# Conflicts with current order state


class Conflict(OrderServiceError):
    status_code = 409
    code = "conflict"


class InvalidTransition(Conflict):
    code = "invalid_transition"


class AlreadyCancelled(Conflict):
    # The frontend contract answers repeated cancels with 400
    status_code = 400
    code = "already_cancelled"


# Infrastructure


class InternalError(OrderServiceError):
    status_code = 500
    code = "internal_error"


class DuplicateOrderNumber(InternalError):
    code = "duplicate_order_number"


class StoreUnavailable(InternalError):
    code = "store_unavailable"


# Access control


class AuthenticationFailed(OrderServiceError):
    status_code = 401
    code = "authentication_failed"


class PermissionDenied(OrderServiceError):
    status_code = 403
    code = "permission_denied"
