"""Order service exceptions.

Raised by the service layer when a request is rejected. The API layer
renders every one of them as ``{"error": kind, "detail": message}`` with
the status code carried by the class.
"""


class OrderServiceError(Exception):
    kind = "error"
    status_code = 400
    default_detail = "Request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthenticated(OrderServiceError):
    kind = "unauthenticated"
    status_code = 401
    default_detail = "Not authenticated"


class Forbidden(OrderServiceError):
    kind = "forbidden"
    status_code = 403
    default_detail = "Forbidden"


class NotFound(OrderServiceError):
    kind = "not_found"
    status_code = 404
    default_detail = "Not found"


class EmptyOrder(OrderServiceError):
    kind = "empty_order"
    default_detail = "Order has no line items"


class VariantNotFound(OrderServiceError):
    """A line item references a variant the catalog does not know."""
    kind = "variant_not_found"

    def __init__(self, variant_id: int):
        self.variant_id = variant_id
        super().__init__(f"Variant {variant_id} does not exist")


class VoucherInvalid(OrderServiceError):
    """Unknown, inactive or exhausted voucher code."""
    kind = "voucher_invalid"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Voucher {code!r} is not redeemable")


class InsufficientStock(OrderServiceError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, variant_id: int):
        self.variant_id = variant_id
        super().__init__(f"Insufficient stock for variant {variant_id}")


class InvalidStatus(OrderServiceError):
    kind = "invalid_status"
    default_detail = "Invalid status transition"


class Conflict(OrderServiceError):
    kind = "conflict"
    status_code = 409
    default_detail = "Conflict"


class Internal(OrderServiceError):
    kind = "internal"
    status_code = 500
    default_detail = "Internal server error"
