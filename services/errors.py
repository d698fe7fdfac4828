from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CODE = "invalid_code"
    ALREADY_APPLIED = "already_applied"
    NOT_APPLIED = "not_applied"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    USER_LIMIT_REACHED = "user_limit_reached"
    USER_RESTRICTED = "user_restricted"
    BELOW_MINIMUM = "below_minimum"
    ORDER_LOCKED = "order_locked"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION = "validation"


class StoreError(Exception):
    """A rejected storefront operation: a message for the shopper plus a kind for callers."""

    status_code = 400

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.VALIDATION):
        super().__init__(message)
        self.message = message
        self.kind = kind


class CouponError(StoreError):
    pass


class NotFoundError(StoreError):
    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.NOT_FOUND)


class ForbiddenError(StoreError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, ErrorKind.FORBIDDEN)


class ConflictError(StoreError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.CONFLICT)
