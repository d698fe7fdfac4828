import logging
import secrets
from datetime import timedelta
from typing import Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from auth import utils as auth_utils
from config.settings import settings
from database import abandoned_cart_collection, cart_collection, product_collection
from routers.cart import get_or_create_cart, merge_item, save_items
from schemas import AbandonedCart, DeviceInfo
from utils import as_utc, paginate, parse_object_id, round_money, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/abandoned-carts", tags=["Abandoned Carts"])

CART_STATUSES = ("active", "recovered", "expired", "ignored")


class TrackRequest(BaseModel):
    session_id: Optional[str] = None
    device_info: Optional[DeviceInfo] = None


def recovery_link(token: str) -> str:
    return f"{settings.FRONTEND_URL}/recover-cart/{token}"


def _find_live(token: str) -> Optional[dict]:
    cart = abandoned_cart_collection.find_one({"recovery_token": token, "status": "active"})
    if not cart or as_utc(cart["expires_at"]) <= utcnow():
        return None
    return cart


# --- Public (token) endpoints ---
@router.get("/recover/{token}")
async def recover_cart(token: str):
    """Moves still-available items back into the owner's cart."""
    abandoned = _find_live(token)
    if not abandoned:
        raise HTTPException(status_code=404, detail="Invalid or expired recovery token")

    ids = [ObjectId(i["product_id"]) for i in abandoned["items"] if ObjectId.is_valid(i["product_id"])]
    in_stock = {
        str(p["_id"]) for p in product_collection.find({"_id": {"$in": ids}, "in_stock": True}, {"_id": 1})
    }
    available = [i for i in abandoned["items"] if i["product_id"] in in_stock]
    unavailable = [i for i in abandoned["items"] if i["product_id"] not in in_stock]
    if not available:
        raise HTTPException(status_code=400, detail="All items in abandoned cart are no longer available")

    cart = get_or_create_cart({"user_id": abandoned["user_id"]})
    items = cart.get("items", [])
    for item in available:
        merge_item(items, item["product_id"], int(item["quantity"]))
    priced = save_items(cart, items)

    now = utcnow()
    abandoned_cart_collection.update_one(
        {"_id": abandoned["_id"]},
        {"$set": {"status": "recovered", "recovered_at": now, "updated_at": now}},
    )
    logger.info(f"Abandoned cart {abandoned['_id']} recovered ({len(available)} items)")
    return {
        "message": "Cart recovered successfully",
        "cart": priced,
        "recovered_items": len(available),
        "unavailable_items": unavailable,
    }


@router.post("/ignore/{token}")
async def ignore_cart(token: str):
    updated = abandoned_cart_collection.find_one_and_update(
        {"recovery_token": token, "status": "active"},
        {"$set": {"status": "ignored", "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Abandoned cart not found")
    return {"message": "Abandoned cart marked as ignored"}


# --- Customer endpoints ---
@router.post("/track")
async def track_cart(body: TrackRequest, current_user: dict = Depends(auth_utils.get_current_user)):
    """Snapshots the user's cart; an existing active record is refreshed and keeps its token."""
    user_id = str(current_user["_id"])
    cart = cart_collection.find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise HTTPException(status_code=400, detail="No cart items to track")

    ids = [ObjectId(i["product_id"]) for i in cart["items"] if ObjectId.is_valid(i["product_id"])]
    products = {str(p["_id"]): p for p in product_collection.find({"_id": {"$in": ids}})}
    items = []
    for item in cart["items"]:
        product = products.get(item["product_id"])
        if not product:
            continue
        items.append({
            "product_id": item["product_id"],
            "name": product["name"],
            "image": product.get("image", ""),
            "price": float(product["price"]),
            "quantity": int(item["quantity"]),
        })
    if not items:
        raise HTTPException(status_code=400, detail="No cart items to track")
    total = round_money(sum(i["price"] * i["quantity"] for i in items))
    device_info = body.device_info.model_dump() if body.device_info else None

    now = utcnow()
    existing = abandoned_cart_collection.find_one({"user_id": user_id, "status": "active"})
    if existing:
        abandoned_cart_collection.update_one(
            {"_id": existing["_id"]},
            {"$set": {
                "items": items,
                "total": total,
                "abandoned_at": now,
                "session_id": body.session_id,
                "device_info": device_info,
                "reminder_count": 0,
                "last_reminder_sent": None,
                "expires_at": now + timedelta(days=30),
                "updated_at": now,
            }},
        )
        token = existing["recovery_token"]
    else:
        token = secrets.token_hex(32)
        abandoned_cart_collection.insert_one(AbandonedCart(
            user_id=user_id,
            email=current_user["email"],
            items=items,
            total=total,
            session_id=body.session_id,
            device_info=body.device_info,
            recovery_token=token,
        ).model_dump())

    logger.info(f"Abandoned cart tracked for user {user_id} ({len(items)} items)")
    return {"message": "Abandoned cart tracked successfully", "recovery_token": token}


@router.get("/my-abandoned")
async def my_abandoned_carts(current_user: dict = Depends(auth_utils.get_current_user)):
    cursor = abandoned_cart_collection.find(
        {"user_id": str(current_user["_id"]), "status": {"$in": ["active", "recovered"]}}
    ).sort("abandoned_at", DESCENDING).limit(5)
    return [serialize_doc(c) for c in cursor]


# --- Admin endpoints ---
@router.get("/admin/stats")
async def abandoned_cart_stats(admin: dict = Depends(auth_utils.require_admin)):
    breakdown = {s: {"count": 0, "total_value": 0.0} for s in CART_STATUSES}
    day_ago = utcnow() - timedelta(hours=24)
    recent = 0
    for c in abandoned_cart_collection.find({}, {"status": 1, "total": 1, "abandoned_at": 1}):
        entry = breakdown.setdefault(c["status"], {"count": 0, "total_value": 0.0})
        entry["count"] += 1
        entry["total_value"] = round_money(entry["total_value"] + float(c.get("total", 0)))
        if c["status"] == "active" and as_utc(c.get("abandoned_at")) and as_utc(c["abandoned_at"]) >= day_ago:
            recent += 1

    active = breakdown["active"]["count"]
    recovered = breakdown["recovered"]["count"]
    return {
        "status_breakdown": breakdown,
        "total_abandoned": active,
        "total_recovered": recovered,
        "recovery_rate": round(recovered / (active + recovered) * 100, 2) if (active + recovered) else 0,
        "recent_abandoned": recent,
    }


@router.get("/")
async def list_abandoned_carts(
    cart_status: Literal["active", "recovered", "expired", "ignored"] = Query("active", alias="status"),
    sort_by: Literal["abandoned_at", "total", "reminder_count"] = "abandoned_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {"status": cart_status}
    total = abandoned_cart_collection.count_documents(query)
    cursor = (
        abandoned_cart_collection.find(query)
        .sort(sort_by, ASCENDING if sort_order == "asc" else DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {"abandoned_carts": [serialize_doc(c) for c in cursor], "pagination": paginate(total, page, limit)}


@router.post("/{cart_id}/reminder")
async def send_reminder(cart_id: str, admin: dict = Depends(auth_utils.require_admin)):
    abandoned = abandoned_cart_collection.find_one({"_id": parse_object_id(cart_id, "abandoned cart")})
    if not abandoned:
        raise HTTPException(status_code=404, detail="Abandoned cart not found")
    if abandoned["status"] != "active":
        raise HTTPException(status_code=400, detail="Cannot send reminder for inactive cart")
    if abandoned.get("reminder_count", 0) >= abandoned.get("max_reminders", 3):
        raise HTTPException(status_code=400, detail="Maximum reminders already sent")

    link = recovery_link(abandoned["recovery_token"])
    sent = auth_utils.send_cart_reminder_email(
        abandoned["email"], link, sum(i["quantity"] for i in abandoned["items"]), abandoned["total"]
    )
    if not sent:
        raise HTTPException(status_code=502, detail="Failed to send recovery reminder")
    updated = abandoned_cart_collection.find_one_and_update(
        {"_id": abandoned["_id"]},
        {"$set": {"last_reminder_sent": utcnow(), "updated_at": utcnow()}, "$inc": {"reminder_count": 1}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"Recovery reminder {updated['reminder_count']} sent for abandoned cart {cart_id}")
    return {
        "message": "Recovery reminder sent successfully",
        "reminder_count": updated["reminder_count"],
        "recovery_link": link,
    }
