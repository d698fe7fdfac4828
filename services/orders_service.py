import logging
import time
from datetime import timedelta
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from config.settings import settings
from database import (
    abandoned_cart_collection,
    cart_collection,
    coupon_collection,
    order_collection,
    product_collection,
    user_collection,
)
from schemas import ORDER_STATUSES, Order, status_breakdown
from services import pricing
from services.errors import CouponError, ConflictError, ErrorKind, ForbiddenError, NotFoundError, StoreError
from utils import parse_object_id, round_money, utcnow

logger = logging.getLogger(__name__)

# Coupons can only change while the order is still awaiting payment
LOCKED_ORDER_STATUSES = ("cancelled",)
NON_CANCELLABLE_STATUSES = ("shipped", "delivered", "cancelled")
ORDER_NUMBER_ATTEMPTS = 5


def _user_id(user: Dict[str, Any]) -> str:
    return str(user["_id"])


def _generate_order_number() -> str:
    count = order_collection.count_documents({})
    return f"ORD-{int(time.time() * 1000)}-{count + 1:04d}"


def _insert_with_order_number(order: Dict[str, Any]):
    """Inserts order under a fresh order number, regenerating it on a unique-index clash."""
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        order.pop("_id", None)
        order["order_number"] = _generate_order_number()
        try:
            return order_collection.insert_one(order).inserted_id
        except DuplicateKeyError:
            logger.warning(f"Order number {order['order_number']} already taken, regenerating")
    raise ConflictError("Could not allocate an order number. Please try again.")


def load_order(order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """Fetch an order the caller is allowed to see (owner or admin)."""
    order = order_collection.find_one({"_id": parse_object_id(order_id, "order")})
    if not order:
        raise NotFoundError("Order not found")
    if order["user_id"] != _user_id(user) and not user.get("is_admin"):
        raise ForbiddenError()
    return order


# --- Checkout ---
def checkout_cart(
    user: Dict[str, Any],
    shipping_address: Dict[str, Any],
    payment_method: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    user_id = _user_id(user)
    cart = cart_collection.find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise StoreError("Cart is empty")

    order_items = []
    subtotal = 0.0
    for item in cart["items"]:
        product = None
        if ObjectId.is_valid(item["product_id"]):
            product = product_collection.find_one({"_id": ObjectId(item["product_id"])})
        if not product:
            raise NotFoundError(f"Product {item['product_id']} not found")
        if not product.get("in_stock", True):
            raise StoreError(f"Product {product['name']} is out of stock")

        price = float(product["price"])
        qty = int(item.get("quantity", 1))
        subtotal += price * qty
        order_items.append({
            "product_id": str(product["_id"]),
            "name": product["name"],
            "image": product.get("image", ""),
            "price": price,
            "quantity": qty,
            "size": item.get("size"),
            "color": item.get("color"),
        })

    subtotal = round_money(subtotal)
    shipping_cost = 0.0 if subtotal > settings.FREE_SHIPPING_THRESHOLD else settings.FLAT_SHIPPING_COST
    tax = round_money(subtotal * settings.TAX_RATE)
    now = utcnow()

    order = Order(
        user_id=user_id,
        order_number="",
        items=order_items,
        shipping_address=shipping_address,
        payment_method=payment_method,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax=tax,
        total=pricing.compute_total(subtotal, shipping_cost, tax, 0),
        notes=notes,
        estimated_delivery=now + timedelta(days=7),
    ).model_dump()

    order["_id"] = _insert_with_order_number(order)
    order_id = str(order["_id"])

    cart_collection.update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": [], "total": 0, "updated_at": now}},
    )
    user_collection.update_one({"_id": user["_id"]}, {"$inc": {"orders": 1}})
    abandoned_cart_collection.update_many(
        {"user_id": user_id, "status": "active"},
        {"$set": {
            "status": "recovered",
            "recovered_at": now,
            "recovered_order_id": order_id,
            "updated_at": now,
        }},
    )

    logger.info(f"Order {order['order_number']} placed by user {user_id} (total {order['total']})")
    return order


# --- Coupons on orders ---
def _assert_coupons_editable(order: Dict[str, Any]):
    if order.get("order_status") in LOCKED_ORDER_STATUSES or order.get("payment_status") != "pending":
        raise CouponError("Coupons can no longer be changed on this order", ErrorKind.ORDER_LOCKED)


def find_active_coupon(code: str) -> Dict[str, Any]:
    coupon = coupon_collection.find_one({"code": code.strip().upper(), "is_active": True})
    if not coupon:
        raise CouponError("Invalid coupon code", ErrorKind.INVALID_CODE)
    return coupon


def user_coupon_usage(user_id: str, coupon_id: str, exclude_order_id=None) -> int:
    """How many of the user's live orders carry this coupon."""
    query = {
        "user_id": user_id,
        "order_status": {"$ne": "cancelled"},
        "applied_coupons.coupon_id": coupon_id,
    }
    if exclude_order_id is not None:
        query["_id"] = {"$ne": exclude_order_id}
    return order_collection.count_documents(query)


def _reserve_usage(coupon: Dict[str, Any]):
    limit = coupon.get("usage_limit")
    if limit is None:
        coupon_collection.update_one({"_id": coupon["_id"]}, {"$inc": {"usage_count": 1}})
        return
    result = coupon_collection.update_one(
        {"_id": coupon["_id"], "usage_count": {"$lt": int(limit)}},
        {"$inc": {"usage_count": 1}},
    )
    if result.matched_count == 0:
        raise CouponError("Coupon usage limit reached", ErrorKind.USAGE_LIMIT_REACHED)


def _release_usage(coupon_id: str):
    if not ObjectId.is_valid(coupon_id):
        return
    coupon_collection.update_one(
        {"_id": ObjectId(coupon_id), "usage_count": {"$gt": 0}},
        {"$inc": {"usage_count": -1}},
    )


def _save_coupons(order: Dict[str, Any], read_version: int) -> Optional[Dict[str, Any]]:
    """
    Writes the recomputed coupon list only if nobody changed the order's
    coupons, status or payment since it was read. Returns None on a lost race.
    """
    version_match = {"$in": [0, None]} if read_version == 0 else read_version
    return order_collection.find_one_and_update(
        {
            "_id": order["_id"],
            "coupon_version": version_match,
            "order_status": {"$nin": list(LOCKED_ORDER_STATUSES)},
            "payment_status": "pending",
        },
        {
            "$set": {
                "applied_coupons": order["applied_coupons"],
                "total_discount": order["total_discount"],
                "total": order["total"],
                "updated_at": utcnow(),
            },
            "$inc": {"coupon_version": 1},
        },
        return_document=ReturnDocument.AFTER,
    )


def apply_coupon_to_order(order_id: str, code: str, user: Dict[str, Any]) -> Dict[str, Any]:
    order = load_order(order_id, user)
    _assert_coupons_editable(order)
    read_version = order.get("coupon_version", 0)
    coupon = find_active_coupon(code)

    usage = user_coupon_usage(order["user_id"], str(coupon["_id"]), exclude_order_id=order["_id"])
    snapshot = pricing.apply_coupon(order, coupon, order["user_id"], usage)

    _reserve_usage(coupon)
    updated = _save_coupons(order, read_version)
    if updated is None:
        _release_usage(str(coupon["_id"]))
        raise ConflictError("Order was updated by another request. Please try again.")
    logger.info(
        f"Coupon {coupon['code']} applied to order {order['order_number']} "
        f"(discount {snapshot['discount_amount']})"
    )
    return {"order": updated, "applied_coupon": snapshot}


def remove_coupon_from_order(order_id: str, code: str, user: Dict[str, Any]) -> Dict[str, Any]:
    order = load_order(order_id, user)
    _assert_coupons_editable(order)
    read_version = order.get("coupon_version", 0)

    removed = pricing.remove_coupon(order, code)
    updated = _save_coupons(order, read_version)
    if updated is None:
        raise ConflictError("Order was updated by another request. Please try again.")
    _release_usage(removed["coupon_id"])
    logger.info(f"Coupon {removed['code']} removed from order {order['order_number']}")
    return {"order": updated, "removed_coupon": removed}


# --- Lifecycle ---
def _mark_cancelled(order: Dict[str, Any], reason: Optional[str], allowed_from: Any):
    """
    Flips order to cancelled if its status still matches allowed_from and
    releases its coupon slots. Only the request that wins the flip releases them.
    """
    now = utcnow()
    updated = order_collection.find_one_and_update(
        {"_id": order["_id"], "order_status": allowed_from},
        {
            "$set": {
                "order_status": "cancelled",
                "cancelled_at": now,
                "cancel_reason": reason,
                "updated_at": now,
            },
            "$inc": {"coupon_version": 1},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        return None
    for entry in updated.get("applied_coupons") or []:
        _release_usage(entry["coupon_id"])
    return updated


def cancel_order(order_id: str, user: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
    order = load_order(order_id, user)
    if order.get("order_status") in NON_CANCELLABLE_STATUSES:
        raise StoreError("Order cannot be cancelled in current status")

    updated = _mark_cancelled(order, reason, {"$nin": list(NON_CANCELLABLE_STATUSES)})
    if updated is None:
        raise StoreError("Order cannot be cancelled in current status")

    logger.info(f"Order {order['order_number']} cancelled by user {_user_id(user)}")
    return updated


def update_order_status(
    order_id: str,
    order_status: str,
    tracking_number: Optional[str] = None,
    notes: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> Dict[str, Any]:
    if order_status not in ORDER_STATUSES:
        raise StoreError(f"Invalid order status '{order_status}'")

    order = order_collection.find_one({"_id": parse_object_id(order_id, "order")})
    if not order:
        raise NotFoundError("Order not found")
    current = order.get("order_status", "pending")
    # A cancelled order stays cancelled
    if current == "cancelled" and order_status != "cancelled":
        raise StoreError("Cancelled orders cannot be reopened")

    if order_status == "cancelled" and current != "cancelled":
        updated = _mark_cancelled(order, notes, current)
        if updated is None:
            raise ConflictError("Order was updated by another request. Please try again.")
        logger.info(f"Order {order['order_number']} cancelled by an admin")
        return updated

    now = utcnow()
    update = {"order_status": order_status, "updated_at": now}
    if tracking_number:
        update["tracking_number"] = tracking_number
    if notes:
        update["notes"] = notes
    if payment_status:
        update["payment_status"] = payment_status
    if order_status == "delivered":
        update["delivered_at"] = now

    updated = order_collection.find_one_and_update(
        {"_id": order["_id"], "order_status": current},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ConflictError("Order was updated by another request. Please try again.")

    logger.info(f"Order {updated['order_number']} status changed to {order_status}")
    return updated


def order_stats() -> Dict[str, Any]:
    counts: Dict[str, int] = {}
    revenue: Dict[str, float] = {}
    total_revenue = 0.0
    total_orders = 0
    for order in order_collection.find({}, {"order_status": 1, "total": 1}):
        status = order.get("order_status", "pending")
        total = float(order.get("total", 0))
        counts[status] = counts.get(status, 0) + 1
        revenue[status] = revenue.get(status, 0.0) + total
        total_revenue += total
        total_orders += 1

    return {
        "status_breakdown": [
            {"status": s, "count": c, "total_revenue": round_money(revenue.get(s, 0))}
            for s, c in status_breakdown(counts, ORDER_STATUSES).items()
        ],
        "total_orders": total_orders,
        "total_revenue": round_money(total_revenue),
    }
