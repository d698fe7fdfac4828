import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from pymongo import DESCENDING

from auth import utils as auth_utils
from database import order_collection
from schemas import ShippingAddress
from services import orders_service
from utils import paginate, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


# --- 1. SCHEMAS ---
class OrderCreate(BaseModel):
    shipping_address: ShippingAddress
    payment_method: Literal["credit_card", "debit_card", "paypal", "cash_on_delivery"]
    notes: Optional[str] = Field(None, max_length=500)


class CouponApply(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)


class OrderCancel(BaseModel):
    cancel_reason: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdate(BaseModel):
    order_status: Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    payment_status: Optional[Literal["pending", "paid", "failed", "refunded"]] = None


# --- 2. CUSTOMER ENDPOINTS ---
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_order(body: OrderCreate, current_user: dict = Depends(auth_utils.get_current_user)):
    order = orders_service.checkout_cart(
        current_user,
        body.shipping_address.model_dump(),
        body.payment_method,
        body.notes,
    )
    return serialize_doc(order)


@router.get("/my-orders")
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(auth_utils.get_current_user),
):
    query = {"user_id": str(current_user["_id"])}
    total = order_collection.count_documents(query)
    cursor = order_collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "orders": [serialize_doc(o) for o in cursor],
        "pagination": paginate(total, page, limit),
    }


# --- 3. ADMIN ENDPOINTS ---
@router.get("/admin/all")
async def all_orders(
    order_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {"order_status": order_status} if order_status else {}
    total = order_collection.count_documents(query)
    cursor = order_collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "orders": [serialize_doc(o) for o in cursor],
        "pagination": paginate(total, page, limit),
    }


@router.get("/admin/stats")
async def order_stats(admin: dict = Depends(auth_utils.require_admin)):
    return orders_service.order_stats()


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    admin: dict = Depends(auth_utils.require_admin),
):
    order = orders_service.update_order_status(
        order_id, body.order_status, body.tracking_number, body.notes, body.payment_status
    )
    return serialize_doc(order)


# --- 4. PER-ORDER ENDPOINTS ---
@router.get("/{order_id}")
async def get_order(order_id: str, current_user: dict = Depends(auth_utils.get_current_user)):
    return serialize_doc(orders_service.load_order(order_id, current_user))


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: Optional[OrderCancel] = None,
    current_user: dict = Depends(auth_utils.get_current_user),
):
    reason = body.cancel_reason if body else None
    return serialize_doc(orders_service.cancel_order(order_id, current_user, reason))


@router.post("/{order_id}/coupons")
async def apply_coupon(
    order_id: str,
    body: CouponApply,
    current_user: dict = Depends(auth_utils.get_current_user),
):
    result = orders_service.apply_coupon_to_order(order_id, body.code, current_user)
    return {
        "message": "Coupon applied successfully",
        "order": serialize_doc(result["order"]),
        "applied_coupon": result["applied_coupon"],
    }


@router.delete("/{order_id}/coupons/{code}")
async def remove_coupon(
    order_id: str,
    code: str,
    current_user: dict = Depends(auth_utils.get_current_user),
):
    result = orders_service.remove_coupon_from_order(order_id, code, current_user)
    return {
        "message": "Coupon removed successfully",
        "order": serialize_doc(result["order"]),
        "removed_coupon": result["removed_coupon"],
    }
