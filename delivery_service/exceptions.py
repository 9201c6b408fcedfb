"""
Domain exceptions

Every error a caller can trigger is a DeliveryError subclass with a stable
machine-readable code and the HTTP status the API maps it to.
"""


class DeliveryError(Exception):
    """Base exception for caller-facing delivery errors"""
    code = "DeliveryError"
    status_code = 400
    
    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFound(DeliveryError):
    """Order, courier or product not found"""
    code = "NotFound"
    status_code = 404


class Unauthenticated(DeliveryError):
    """No principal on a protected operation"""
    code = "Unauthenticated"
    status_code = 401


class Forbidden(DeliveryError):
    """Principal lacks the role or ownership for the operation"""
    code = "Forbidden"
    status_code = 403


class InvalidTransition(DeliveryError):
    """Illegal order status move"""
    code = "InvalidTransition"
    status_code = 409


class PreconditionMismatch(DeliveryError):
    """Concurrent write changed the row first"""
    code = "PreconditionMismatch"
    status_code = 409


class DriverUnavailable(DeliveryError):
    """Courier is not active, available and idle"""
    code = "DriverUnavailable"
    status_code = 409


class OrderNotReady(DeliveryError):
    """Order is not in the status the dispatch step requires"""
    code = "OrderNotReady"
    status_code = 409


class AlreadyOffered(DeliveryError):
    """Order already has an outstanding courier offer"""
    code = "AlreadyOffered"
    status_code = 409


class InvalidOptionSelection(DeliveryError):
    """Option choices violate the group's selection rules"""
    code = "InvalidOptionSelection"
    status_code = 422


class MissingRequiredSelection(DeliveryError):
    """A required option group has too few selections"""
    code = "MissingRequiredSelection"
    status_code = 422


class InvalidOrder(DeliveryError):
    """Checkout payload is inconsistent (empty cart, change fields, ...)"""
    code = "InvalidOrder"
    status_code = 422


class CouponError(DeliveryError):
    """Base for coupon rejections"""
    status_code = 422


class CouponNotFound(CouponError):
    code = "CouponNotFound"
    status_code = 404


class CouponInactive(CouponError):
    code = "CouponInactive"


class CouponExpired(CouponError):
    code = "CouponExpired"


class CouponNotYetStarted(CouponError):
    code = "CouponNotYetStarted"


class CouponBelowMinimum(CouponError):
    code = "CouponBelowMinimum"


class CouponUsageLimitReached(CouponError):
    code = "CouponUsageLimitReached"
    status_code = 409


class DuplicateCoupon(DeliveryError):
    """Coupon code already exists for the merchant"""
    code = "DuplicateCoupon"
    status_code = 409
