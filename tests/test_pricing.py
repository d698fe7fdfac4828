from datetime import datetime, timedelta, timezone

import pytest

from services import pricing
from services.errors import CouponError, ErrorKind

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_order(subtotal=2000.0, shipping_cost=0.0, tax=0.0):
    order = {
        "subtotal": subtotal,
        "shipping_cost": shipping_cost,
        "tax": tax,
        "applied_coupons": [],
        "total_discount": 0.0,
    }
    return pricing.recompute_totals(order)


def make_coupon(code="SAVE", type="flat", value=100.0, **extra):
    coupon = {
        "_id": f"id-{code}",
        "code": code,
        "type": type,
        "value": value,
        "min_purchase_amount": 0,
        "max_discount_amount": None,
        "expiry_date": NOW + timedelta(days=30),
        "usage_limit": None,
        "usage_count": 0,
        "user_usage_limit": 1,
        "is_active": True,
        "is_public": True,
        "allowed_users": [],
        "restricted_users": [],
    }
    coupon.update(extra)
    return coupon


def assert_totals_consistent(order):
    expected = max(0.0, order["subtotal"] + order["shipping_cost"] + order["tax"] - order["total_discount"])
    assert order["total"] == round(expected, 2)
    assert order["total_discount"] == round(sum(c["discount_amount"] for c in order["applied_coupons"]), 2)


def test_percentage_discount_is_capped():
    order = make_order(subtotal=2000)
    coupon = make_coupon("HALF", "percentage", 50, max_discount_amount=500)

    applied = pricing.apply_coupon(order, coupon, "u1", now=NOW)

    assert applied["discount_amount"] == 500
    assert order["total"] == 1500
    assert_totals_consistent(order)


def test_flat_discount_never_exceeds_order_amount():
    order = make_order(subtotal=300)

    applied = pricing.apply_coupon(order, make_coupon("BIG", value=500), "u1", now=NOW)

    assert applied["discount_amount"] == 300
    assert order["total"] == 0
    assert_totals_consistent(order)


def test_same_code_twice_is_rejected():
    order = make_order()
    coupon = make_coupon("ONCE")
    pricing.apply_coupon(order, coupon, "u1", now=NOW)

    with pytest.raises(CouponError) as exc:
        pricing.apply_coupon(order, dict(coupon, code="once"), "u1", now=NOW)

    assert exc.value.kind == ErrorKind.ALREADY_APPLIED
    assert exc.value.message == "Coupon already applied"
    assert len(order["applied_coupons"]) == 1


def test_removing_unapplied_code_leaves_order_untouched():
    order = make_order(subtotal=1000, shipping_cost=10, tax=80)
    pricing.apply_coupon(order, make_coupon("TEN", value=10), "u1", now=NOW)
    before = (order["total"], order["total_discount"])

    with pytest.raises(CouponError) as exc:
        pricing.remove_coupon(order, "NOPE")

    assert exc.value.kind == ErrorKind.NOT_APPLIED
    assert (order["total"], order["total_discount"]) == before


def test_remove_restores_totals():
    order = make_order(subtotal=1000, shipping_cost=10, tax=80)
    pricing.apply_coupon(order, make_coupon("A", value=100), "u1", now=NOW)
    pricing.apply_coupon(order, make_coupon("B", value=50), "u1", now=NOW)
    assert order["total"] == 940

    removed = pricing.remove_coupon(order, "a")

    assert removed["code"] == "A"
    assert [c["code"] for c in order["applied_coupons"]] == ["B"]
    assert order["total"] == 1040
    assert_totals_consistent(order)


def test_stacked_coupons_are_capped_at_remaining_payable():
    order = make_order(subtotal=100, shipping_cost=10, tax=8)
    pricing.apply_coupon(order, make_coupon("A", value=100), "u1", now=NOW)

    second = pricing.apply_coupon(order, make_coupon("B", value=100), "u1", now=NOW)

    assert second["discount_amount"] == 18
    assert order["total"] == 0
    assert_totals_consistent(order)


def test_totals_stay_consistent_across_apply_remove_sequences():
    order = make_order(subtotal=1500, shipping_cost=0, tax=120)
    coupons = [
        make_coupon("P10", "percentage", 10, max_discount_amount=1000),
        make_coupon("F200", value=200),
        make_coupon("F5000", value=5000),
    ]
    for c in coupons:
        pricing.apply_coupon(order, c, "u1", now=NOW)
        assert_totals_consistent(order)
    for code in ("F200", "P10", "F5000"):
        pricing.remove_coupon(order, code)
        assert_totals_consistent(order)
    assert order["total"] == 1620


@pytest.mark.parametrize(
    "overrides,user_usage,kind",
    [
        ({"is_active": False}, 0, ErrorKind.INACTIVE),
        ({"expiry_date": NOW - timedelta(seconds=1)}, 0, ErrorKind.EXPIRED),
        ({"expiry_date": NOW}, 0, ErrorKind.EXPIRED),
        ({"usage_limit": 5, "usage_count": 5}, 0, ErrorKind.USAGE_LIMIT_REACHED),
        ({"restricted_users": ["u1"]}, 0, ErrorKind.USER_RESTRICTED),
        ({"is_public": False, "allowed_users": ["u2"]}, 0, ErrorKind.USER_RESTRICTED),
        ({}, 1, ErrorKind.USER_LIMIT_REACHED),
        ({"min_purchase_amount": 5000}, 0, ErrorKind.BELOW_MINIMUM),
    ],
)
def test_eligibility_failures(overrides, user_usage, kind):
    order = make_order(subtotal=2000)

    with pytest.raises(CouponError) as exc:
        pricing.apply_coupon(order, make_coupon(**overrides), "u1", user_usage, now=NOW)

    assert exc.value.kind == kind
    assert order["applied_coupons"] == []
    assert order["total"] == 2000


def test_below_minimum_message_names_the_amount():
    with pytest.raises(CouponError) as exc:
        pricing.check_eligibility(make_coupon(min_purchase_amount=999), 500, "u1", now=NOW)
    assert exc.value.message == "Minimum purchase amount of ₹999 required"


def test_private_coupon_for_allowed_user():
    order = make_order(subtotal=500)
    coupon = make_coupon(is_public=False, allowed_users=["u1"], user_usage_limit=2)

    applied = pricing.apply_coupon(order, coupon, "u1", user_usage_count=1, now=NOW)

    assert applied["coupon_id"] == "id-SAVE"
    assert applied["applied_at"] == NOW


def test_coupon_status_and_remaining_uses():
    assert pricing.coupon_status(make_coupon(), NOW) == "active"
    assert pricing.coupon_status(make_coupon(is_active=False), NOW) == "inactive"
    assert pricing.coupon_status(make_coupon(expiry_date=NOW - timedelta(days=1)), NOW) == "expired"
    assert pricing.coupon_status(make_coupon(usage_limit=2, usage_count=2), NOW) == "exhausted"

    assert pricing.remaining_uses(make_coupon()) == "Unlimited"
    assert pricing.remaining_uses(make_coupon(usage_limit=10, usage_count=3)) == 7


def test_naive_expiry_is_read_as_utc():
    coupon = make_coupon(expiry_date=datetime(2025, 6, 1, 11, 0))
    assert pricing.is_expired(coupon, NOW)


def test_compute_total_floors_at_zero():
    assert pricing.compute_total(100, 10, 8, 500) == 0
    assert pricing.compute_total(99.999, 0, 0, 0) == 100.0
