import logging
import re
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import utils as auth_utils
from database import coupon_collection, order_collection
from schemas import Coupon
from services import orders_service, pricing
from services.errors import CouponError
from utils import as_utc, paginate, parse_object_id, round_money, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/coupons", tags=["Coupons"])

PUBLIC_FIELDS = (
    "code", "name", "description", "type", "value",
    "min_purchase_amount", "max_discount_amount", "expiry_date",
)


# --- 1. SCHEMAS ---
def _upper_code(v):
    return v.strip().upper() if isinstance(v, str) else v


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=20, pattern=r"^[A-Z0-9]+$")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Literal["flat", "percentage"]
    value: float = Field(..., ge=0)
    min_purchase_amount: float = Field(0, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    expiry_date: datetime
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: int = Field(1, ge=1)
    is_active: bool = True
    is_public: bool = True
    applicable_categories: List[str] = []
    applicable_products: List[str] = []
    allowed_users: List[str] = []
    restricted_users: List[str] = []

    @field_validator("code", mode="before")
    @classmethod
    def upper_code(cls, v):
        return _upper_code(v)


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=3, max_length=20, pattern=r"^[A-Z0-9]+$")
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Optional[Literal["flat", "percentage"]] = None
    value: Optional[float] = Field(None, ge=0)
    min_purchase_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    expiry_date: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    is_public: Optional[bool] = None
    applicable_categories: Optional[List[str]] = None
    applicable_products: Optional[List[str]] = None
    allowed_users: Optional[List[str]] = None
    restricted_users: Optional[List[str]] = None

    @field_validator("code", mode="before")
    @classmethod
    def upper_code(cls, v):
        return _upper_code(v)


class CouponValidate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    order_total: float = Field(..., gt=0)


# --- 2. HELPERS ---
def _check_terms(coupon: dict):
    """Cross-field rules shared by create and update."""
    if coupon["type"] == "percentage":
        if coupon["value"] > 100:
            raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100%")
        if coupon.get("max_discount_amount") is None:
            raise HTTPException(status_code=400, detail="Maximum discount amount is required for percentage coupons")
    else:
        coupon["max_discount_amount"] = None


def _load_coupon(coupon_id: str) -> dict:
    coupon = coupon_collection.find_one({"_id": parse_object_id(coupon_id, "coupon")})
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


def _admin_view(coupon: dict) -> dict:
    out = serialize_doc(coupon)
    out["status"] = pricing.coupon_status(coupon)
    out["remaining_uses"] = pricing.remaining_uses(coupon)
    out["is_expired"] = pricing.is_expired(coupon)
    return out


def _visible_to(coupon: dict, user_id: Optional[str]) -> bool:
    if user_id and user_id in (coupon.get("restricted_users") or []):
        return False
    if coupon.get("is_public", True):
        return True
    return bool(user_id) and user_id in (coupon.get("allowed_users") or [])


# --- 3. PUBLIC / CUSTOMER ENDPOINTS ---
@router.get("/active")
async def active_coupons(
    order_amount: Optional[float] = Query(None, gt=0),
    current_user: Optional[dict] = Depends(auth_utils.get_optional_user),
):
    """Coupons a shopper can use right now; with order_amount, only those that apply, with their discount."""
    user_id = str(current_user["_id"]) if current_user else None
    now = utcnow()
    coupons = []
    for coupon in coupon_collection.find({"is_active": True}).sort("created_at", DESCENDING):
        if pricing.coupon_status(coupon, now) != "active" or not _visible_to(coupon, user_id):
            continue
        entry = {k: coupon.get(k) for k in PUBLIC_FIELDS}
        entry["id"] = str(coupon["_id"])
        if order_amount is not None:
            try:
                pricing.check_eligibility(coupon, order_amount, None, now=now)
            except CouponError:
                continue
            entry["discount_amount"] = pricing.calculate_discount(coupon, order_amount)
        coupons.append(entry)
    return {"coupons": coupons}


@router.post("/validate")
async def validate_coupon(body: CouponValidate, current_user: dict = Depends(auth_utils.get_current_user)):
    """Checks a code against an order total without applying it."""
    user_id = str(current_user["_id"])
    coupon = orders_service.find_active_coupon(body.code)
    usage = orders_service.user_coupon_usage(user_id, str(coupon["_id"]))
    pricing.check_eligibility(coupon, body.order_total, user_id, usage)

    return {
        "message": "Coupon is valid",
        "is_valid": True,
        "coupon": {**{k: coupon.get(k) for k in PUBLIC_FIELDS}, "id": str(coupon["_id"])},
        "discount_amount": pricing.calculate_discount(coupon, body.order_total),
    }


@router.get("/my-usage")
async def my_coupon_usage(current_user: dict = Depends(auth_utils.get_current_user)):
    usage = []
    cursor = order_collection.find(
        {"user_id": str(current_user["_id"])}
    ).sort("created_at", DESCENDING)
    for order in cursor:
        for applied in order.get("applied_coupons") or []:
            usage.append({
                "order_number": order["order_number"],
                "coupon_code": applied["code"],
                "discount_amount": applied["discount_amount"],
                "order_total": order["total"],
                "used_at": applied["applied_at"],
                "order_status": order["order_status"],
            })
    return {"usage": usage, "total": len(usage)}


# --- 4. ADMIN ENDPOINTS ---
@router.get("/admin")
async def list_coupons(
    search: Optional[str] = None,
    type: Optional[Literal["flat", "percentage"]] = None,
    coupon_status: Optional[Literal["active", "inactive", "expired", "exhausted"]] = Query(None, alias="status"),
    sort_by: Literal["created_at", "code", "expiry_date", "usage_count"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {}
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"code": {"$regex": pattern, "$options": "i"}},
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if type:
        query["type"] = type

    direction = DESCENDING if sort_order == "desc" else ASCENDING
    coupons = list(coupon_collection.find(query).sort(sort_by, direction))
    if coupon_status:
        now = utcnow()
        coupons = [c for c in coupons if pricing.coupon_status(c, now) == coupon_status]

    start = (page - 1) * limit
    return {
        "coupons": [_admin_view(c) for c in coupons[start:start + limit]],
        "pagination": paginate(len(coupons), page, limit),
    }


@router.get("/admin/{coupon_id}")
async def get_coupon(coupon_id: str, admin: dict = Depends(auth_utils.require_admin)):
    return _admin_view(_load_coupon(coupon_id))


@router.post("/admin", status_code=status.HTTP_201_CREATED)
async def create_coupon(body: CouponCreate, admin: dict = Depends(auth_utils.require_admin)):
    data = body.model_dump()
    _check_terms(data)
    if as_utc(data["expiry_date"]) <= utcnow():
        raise HTTPException(status_code=400, detail="Expiry date must be in the future")
    if coupon_collection.find_one({"code": data["code"]}):
        raise HTTPException(status_code=400, detail="Coupon code already exists")

    doc = Coupon(**data, created_by=str(admin["_id"])).model_dump()
    try:
        doc["_id"] = coupon_collection.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Coupon code already exists")

    logger.info(f"Coupon {doc['code']} created by {admin['email']}")
    return {"message": "Coupon created successfully", "coupon": _admin_view(doc)}


@router.put("/admin/{coupon_id}")
async def update_coupon(coupon_id: str, body: CouponUpdate, admin: dict = Depends(auth_utils.require_admin)):
    coupon = _load_coupon(coupon_id)
    changes = body.model_dump(exclude_unset=True)

    merged = {**coupon, **changes}
    _check_terms(merged)
    changes["max_discount_amount"] = merged["max_discount_amount"]
    if changes.get("code") and changes["code"] != coupon["code"]:
        if coupon_collection.find_one({"code": changes["code"], "_id": {"$ne": coupon["_id"]}}):
            raise HTTPException(status_code=400, detail="Coupon code already exists")
    changes["updated_at"] = utcnow()

    updated = coupon_collection.find_one_and_update(
        {"_id": coupon["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    logger.info(f"Coupon {updated['code']} updated by {admin['email']}")
    return {"message": "Coupon updated successfully", "coupon": _admin_view(updated)}


@router.patch("/admin/{coupon_id}/toggle-status")
async def toggle_coupon_status(coupon_id: str, admin: dict = Depends(auth_utils.require_admin)):
    coupon = _load_coupon(coupon_id)
    updated = coupon_collection.find_one_and_update(
        {"_id": coupon["_id"]},
        {"$set": {"is_active": not coupon.get("is_active", True), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    state = "activated" if updated["is_active"] else "deactivated"
    logger.info(f"Coupon {updated['code']} {state} by {admin['email']}")
    return {"message": f"Coupon {state} successfully", "coupon": _admin_view(updated)}


@router.delete("/admin/{coupon_id}")
async def delete_coupon(coupon_id: str, admin: dict = Depends(auth_utils.require_admin)):
    coupon = _load_coupon(coupon_id)
    if order_collection.count_documents({"applied_coupons.coupon_id": coupon_id}) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete coupon as it has been used in orders. Consider deactivating it instead."
        )
    coupon_collection.delete_one({"_id": coupon["_id"]})
    logger.info(f"Coupon {coupon['code']} deleted by {admin['email']}")
    return {"message": "Coupon deleted successfully"}


@router.get("/admin/{coupon_id}/stats")
async def coupon_stats(coupon_id: str, admin: dict = Depends(auth_utils.require_admin)):
    coupon = _load_coupon(coupon_id)
    orders = list(
        order_collection.find({"applied_coupons.coupon_id": coupon_id}).sort("created_at", DESCENDING)
    )

    def _discount(order):
        return sum(float(a["discount_amount"]) for a in order["applied_coupons"] if a["coupon_id"] == coupon_id)

    total_discount = sum(_discount(o) for o in orders)
    return {
        "coupon": _admin_view(coupon),
        "usage": {
            "total_orders": len(orders),
            "total_discount": round_money(total_discount),
            "average_discount": round_money(total_discount / len(orders)) if orders else 0,
        },
        "recent_orders": [
            {
                "order_number": o["order_number"],
                "user_id": o["user_id"],
                "total": o["total"],
                "discount_amount": round_money(_discount(o)),
                "created_at": o["created_at"],
            }
            for o in orders[:10]
        ],
    }
