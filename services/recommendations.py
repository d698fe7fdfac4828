"""
Size, colour and product suggestions drawn from order and cart history.

Frequencies are counted over fetched documents with Counter; ties keep the
order in which a value was first seen, newest orders first.
"""
import logging
import re
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from database import cart_collection, category_collection, order_collection, product_collection
from utils import as_utc, serialize_doc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SIZES = ["8", "9", "10"]
DEFAULT_COLORS = ["Black", "White", "Navy", "Brown", "Gray"]
HISTORY_DAYS = 30
PURCHASED_STATUSES = ["confirmed", "processing", "shipped", "delivered"]
PURCHASE_HISTORY_ORDERS = 20
ORDER_SCAN_LIMIT = 500
PRODUCT_LIMIT = 12
TRENDING_MIN_RATING = 4.0


def _top(values: Iterable[Optional[str]], n: int) -> List[str]:
    return [value for value, _ in Counter(v for v in values if v).most_common(n)]


def _object_ids(ids: Iterable[str]) -> List[ObjectId]:
    return [ObjectId(i) for i in ids if ObjectId.is_valid(i)]


def _recent_orders(query: Dict[str, Any], days: int = HISTORY_DAYS) -> List[Dict[str, Any]]:
    """Non-cancelled orders matching query placed within the last `days` days, newest first."""
    cutoff = utcnow() - timedelta(days=days)
    query = {**query, "order_status": {"$ne": "cancelled"}}
    recent = []
    for order in order_collection.find(query).sort("created_at", DESCENDING).limit(ORDER_SCAN_LIMIT):
        if as_utc(order["created_at"]) < cutoff:
            break
        recent.append(order)
    return recent


def default_recommendations(message: str = "Popular sizes and colors") -> Dict[str, Any]:
    return {
        "recommended_sizes": list(DEFAULT_SIZES),
        "recommended_colors": list(DEFAULT_COLORS),
        "message": message,
    }


# --- Sizes & colours ---
def user_recommendations(user_id: str) -> Dict[str, Any]:
    orders = _recent_orders({"user_id": user_id})
    if not orders:
        return default_recommendations("Popular sizes and colors (no previous orders found)")

    items = [item for order in orders for item in order.get("items", [])]
    sizes = _top((i.get("size") for i in items), 5)
    colors = _top((i.get("color") for i in items), 8)
    if not sizes and not colors:
        return default_recommendations("Popular sizes and colors (no size/color data in order history)")

    plural = "s" if len(orders) > 1 else ""
    return {
        "recommended_sizes": sizes,
        "recommended_colors": colors,
        "message": f"Recommendations based on your {len(orders)} order{plural} from the last {HISTORY_DAYS} days",
    }


def guest_recommendations(session_id: str) -> Dict[str, Any]:
    cart = cart_collection.find_one({"session_id": session_id, "user_id": None})
    items = cart.get("items", []) if cart else []
    if not items:
        return {"recommended_sizes": [], "recommended_colors": [], "message": "No items in cart"}
    return {
        "recommended_sizes": _top((i.get("size") for i in items), 3),
        "recommended_colors": _top((i.get("color") for i in items), 5),
        "message": "Recommendations based on your cart items",
    }


def enhanced_recommendations(user_id: Optional[str] = None, session_id: Optional[str] = None) -> Dict[str, Any]:
    if user_id:
        return user_recommendations(user_id)
    if session_id:
        return guest_recommendations(session_id)
    return default_recommendations()


def category_recommendations(category: str) -> Dict[str, List[str]]:
    """Popular sizes and colours among recent orders of products in a category (by name or slug)."""
    found = category_collection.find_one({
        "$or": [
            {"name": {"$regex": re.escape(category), "$options": "i"}},
            {"slug": category.lower()},
        ]
    })
    if not found:
        return {"popular_sizes": [], "popular_colors": []}

    items = [item for order in _recent_orders({}) for item in order.get("items", [])]
    ids = _object_ids({i["product_id"] for i in items})
    in_category = {
        str(p["_id"]) for p in product_collection.find({"_id": {"$in": ids}, "category": found["slug"]}, {"_id": 1})
    }
    matching = [i for i in items if i["product_id"] in in_category]
    return {
        "popular_sizes": _top((i.get("size") for i in matching), 5),
        "popular_colors": _top((i.get("color") for i in matching), 8),
    }


def product_size_recommendations(product_id: str) -> Dict[str, Any]:
    orders = list(order_collection.find({
        "items.product_id": product_id,
        "order_status": {"$in": PURCHASED_STATUSES},
    }))
    if not orders:
        return {"recommended_sizes": [], "message": "No purchase history available for this product"}

    sizes = [
        item["size"]
        for order in orders
        for item in order.get("items", [])
        if item["product_id"] == product_id and item.get("size")
    ]
    if not sizes:
        return {"recommended_sizes": [], "message": "No size data available for this product"}

    frequency = Counter(sizes)
    customers = len({order["user_id"] for order in orders})
    return {
        "recommended_sizes": [size for size, _ in frequency.most_common(5)],
        "size_frequency": dict(frequency),
        "total_purchases": len(sizes),
        "unique_customers": customers,
        "message": f"Based on {len(sizes)} purchases by {customers} customers",
    }


# --- Products ---
def trending_products() -> Dict[str, Any]:
    """In-stock products that are highly rated or were ordered recently, busiest first."""
    order_counts = Counter()
    for order in _recent_orders({}):
        for item in order.get("items", []):
            order_counts[item["product_id"]] += item.get("quantity", 1)

    candidates = product_collection.find({
        "in_stock": True,
        "$or": [
            {"rating": {"$gte": TRENDING_MIN_RATING}},
            {"_id": {"$in": _object_ids(order_counts)}},
        ],
    })
    products = []
    for product in candidates:
        out = serialize_doc(product)
        out["order_count"] = order_counts.get(out["id"], 0)
        products.append(out)
    products.sort(key=lambda p: (p["order_count"], p.get("rating", 0), p["created_at"]), reverse=True)
    products = products[:PRODUCT_LIMIT]

    return {
        "recommended_products": products,
        "recommendation_type": "trending" if products else "no-trending",
        "message": "Trending products" if products else "No trending products available",
    }


def _similar_products(product_ids: List[str]) -> List[Dict[str, Any]]:
    """In-stock products sharing a category with product_ids, excluding those products."""
    ids = _object_ids(product_ids)
    categories = product_collection.distinct("category", {"_id": {"$in": ids}})
    if not categories:
        return []
    cursor = (
        product_collection.find({"_id": {"$nin": ids}, "category": {"$in": categories}, "in_stock": True})
        .sort([("rating", DESCENDING), ("created_at", DESCENDING)])
        .limit(PRODUCT_LIMIT)
    )
    return [serialize_doc(p) for p in cursor]


def purchase_based_products(user_id: str) -> Dict[str, Any]:
    orders = (
        order_collection.find({"user_id": user_id, "order_status": {"$in": PURCHASED_STATUSES}})
        .sort("created_at", DESCENDING)
        .limit(PURCHASE_HISTORY_ORDERS)
    )
    purchased = [item["product_id"] for order in orders for item in order.get("items", [])]
    if not purchased:
        return trending_products()

    logger.debug(f"Building purchase-based recommendations for user {user_id} from {len(purchased)} items")
    return {
        "recommended_products": _similar_products(purchased),
        "recommendation_type": "purchase-based",
        "message": f"Based on your {len(purchased)} previous purchases",
    }


def cart_based_products(session_id: str) -> Dict[str, Any]:
    cart = cart_collection.find_one({"session_id": session_id, "user_id": None})
    in_cart = [item["product_id"] for item in (cart.get("items", []) if cart else [])]
    if not in_cart:
        return trending_products()
    return {
        "recommended_products": _similar_products(in_cart),
        "recommendation_type": "cart-based",
        "message": f"Based on {len(in_cart)} items in your cart",
    }
