"""
Coupon and order-total rules.

Everything here works on plain dicts shaped like the Mongo documents in
schemas.py and never touches the database, so the same rules back the
order endpoints, the coupon preview endpoints and the tests.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from services.errors import CouponError, ErrorKind
from utils import as_utc, round_money, utcnow


def compute_total(subtotal: float, shipping_cost: float, tax: float, total_discount: float) -> float:
    return round_money(max(0.0, subtotal + shipping_cost + tax - total_discount))


def order_amount(order: Dict[str, Any]) -> float:
    """Amount coupons are measured against: the item subtotal."""
    return float(order.get("subtotal", 0))


def payable_amount(order: Dict[str, Any]) -> float:
    gross = float(order.get("subtotal", 0)) + float(order.get("shipping_cost", 0)) + float(order.get("tax", 0))
    return max(0.0, gross - float(order.get("total_discount", 0)))


def recompute_totals(order: Dict[str, Any]) -> Dict[str, Any]:
    applied = order.get("applied_coupons") or []
    order["total_discount"] = round_money(sum(float(c.get("discount_amount", 0)) for c in applied))
    order["total"] = compute_total(
        float(order.get("subtotal", 0)),
        float(order.get("shipping_cost", 0)),
        float(order.get("tax", 0)),
        order["total_discount"],
    )
    return order


def is_expired(coupon: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    expiry = as_utc(coupon.get("expiry_date"))
    if expiry is None:
        return False
    return expiry <= (now or utcnow())


def is_exhausted(coupon: Dict[str, Any]) -> bool:
    limit = coupon.get("usage_limit")
    return limit is not None and int(coupon.get("usage_count", 0)) >= int(limit)


def remaining_uses(coupon: Dict[str, Any]):
    limit = coupon.get("usage_limit")
    if limit is None:
        return "Unlimited"
    return max(0, int(limit) - int(coupon.get("usage_count", 0)))


def coupon_status(coupon: Dict[str, Any], now: Optional[datetime] = None) -> str:
    if not coupon.get("is_active", True):
        return "inactive"
    if is_expired(coupon, now):
        return "expired"
    if is_exhausted(coupon):
        return "exhausted"
    return "active"


def check_eligibility(
    coupon: Dict[str, Any],
    amount: float,
    user_id: Optional[str],
    user_usage_count: int = 0,
    now: Optional[datetime] = None,
) -> None:
    """Raises CouponError with the first rule the coupon fails."""
    if not coupon.get("is_active", True):
        raise CouponError("Coupon is not active", ErrorKind.INACTIVE)
    if is_expired(coupon, now):
        raise CouponError("Coupon has expired", ErrorKind.EXPIRED)
    if is_exhausted(coupon):
        raise CouponError("Coupon usage limit reached", ErrorKind.USAGE_LIMIT_REACHED)

    if user_id is not None:
        if user_id in (coupon.get("restricted_users") or []):
            raise CouponError("You are not eligible for this coupon", ErrorKind.USER_RESTRICTED)
        allowed = coupon.get("allowed_users") or []
        if not coupon.get("is_public", True) and allowed and user_id not in allowed:
            raise CouponError("This coupon is not available for your account", ErrorKind.USER_RESTRICTED)
        if user_usage_count >= int(coupon.get("user_usage_limit") or 1):
            raise CouponError("You have reached the usage limit for this coupon", ErrorKind.USER_LIMIT_REACHED)

    minimum = float(coupon.get("min_purchase_amount") or 0)
    if amount < minimum:
        raise CouponError(f"Minimum purchase amount of ₹{minimum:g} required", ErrorKind.BELOW_MINIMUM)


def calculate_discount(coupon: Dict[str, Any], amount: float) -> float:
    value = float(coupon.get("value", 0))
    if coupon.get("type") == "percentage":
        discount = amount * value / 100
        cap = coupon.get("max_discount_amount")
        if cap is not None and discount > float(cap):
            discount = float(cap)
    else:
        discount = value
    return round_money(max(0.0, min(discount, amount)))


def find_applied(order: Dict[str, Any], code: str) -> Optional[Dict[str, Any]]:
    code = code.strip().upper()
    for entry in order.get("applied_coupons") or []:
        if entry.get("code", "").upper() == code:
            return entry
    return None


def apply_coupon(
    order: Dict[str, Any],
    coupon: Dict[str, Any],
    user_id: Optional[str],
    user_usage_count: int = 0,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Adds coupon to order and recomputes total_discount and total.
    Returns the AppliedCoupon snapshot that was appended.
    """
    now = now or utcnow()
    if find_applied(order, coupon["code"]):
        raise CouponError("Coupon already applied", ErrorKind.ALREADY_APPLIED)

    amount = order_amount(order)
    check_eligibility(coupon, amount, user_id, user_usage_count, now)

    discount = min(calculate_discount(coupon, amount), payable_amount(order))
    snapshot = {
        "coupon_id": str(coupon.get("_id", coupon.get("id", ""))),
        "code": coupon["code"],
        "type": coupon["type"],
        "value": float(coupon["value"]),
        "discount_amount": round_money(discount),
        "applied_at": now,
    }
    order.setdefault("applied_coupons", []).append(snapshot)
    recompute_totals(order)
    return snapshot


def remove_coupon(order: Dict[str, Any], code: str) -> Dict[str, Any]:
    entry = find_applied(order, code)
    if entry is None:
        raise CouponError("Coupon is not applied to this order", ErrorKind.NOT_APPLIED)
    order["applied_coupons"] = [c for c in order["applied_coupons"] if c is not entry]
    recompute_totals(order)
    return entry
