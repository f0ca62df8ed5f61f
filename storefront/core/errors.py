"""Error kinds raised by the order and variant lifecycle core.

Every error carries a stable ``kind`` string and the HTTP status it maps to.
The API layer renders them as ``{"error": {"kind": ..., "message": ...}}``.
"""


class StorefrontError(Exception):
    """Base exception for all storefront domain errors."""

    kind = "StorefrontError"
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or self.kind
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotFound(StorefrontError):
    """Raised when a product, variant, order or coupon does not exist."""

    kind = "NotFound"
    status_code = 404

    def __init__(self, entity: str, ident=None):
        self.entity = entity
        self.ident = ident
        msg = f"{entity} not found"
        if ident is not None:
            msg = f"{entity} not found: {ident}"
        super().__init__(msg)


class OutOfStock(StorefrontError):
    kind = "OutOfStock"
    status_code = 409

    def __init__(self, variant_id: int, requested: int):
        self.variant_id = variant_id
        self.requested = requested
        super().__init__(f"Insufficient stock for variant {variant_id}")


class InvalidQuantity(StorefrontError):
    kind = "InvalidQuantity"
    status_code = 400

    def __init__(self, quantity: int, available: int | None = None):
        self.quantity = quantity
        self.available = available
        if quantity < 1:
            msg = "Quantity must be at least 1"
        else:
            msg = f"Only {available} unit(s) available"
        super().__init__(msg)


class CouponError(StorefrontError):
    """Base for coupon rejections; the subclass names the failing check."""

    kind = "CouponError"
    status_code = 400


class CouponInactive(CouponError):
    kind = "CouponInactive"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon {code} is not active")


class CouponExpired(CouponError):
    kind = "CouponExpired"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon {code} is not valid at this time")


class CouponExhausted(CouponError):
    kind = "CouponExhausted"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon {code} usage limit exceeded")


class CouponMinimumNotMet(CouponError):
    kind = "CouponMinimumNotMet"

    def __init__(self, code: str, min_order_cents: int):
        self.code = code
        self.min_order_cents = min_order_cents
        super().__init__(f"Minimum order amount of {min_order_cents} cents required for {code}")


class InvalidTransition(StorefrontError):
    """Raised when a status change is not in the transition table."""

    kind = "InvalidTransition"
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {current} to {requested}")


class CancellationNotAllowed(StorefrontError):
    kind = "CancellationNotAllowed"
    status_code = 409

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Orders in status {status} cannot be cancelled by the customer")


class ValidationError(StorefrontError):
    kind = "ValidationError"
    status_code = 422
