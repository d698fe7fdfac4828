import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from pymongo import DESCENDING

from auth import utils as auth_utils
from database import address_collection
from services import address_book
from utils import paginate, parse_object_id, serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/addresses", tags=["Addresses"])


# --- 1. SCHEMAS ---
class AddressCreate(BaseModel):
    type: Literal["home", "office", "other"] = "home"
    label: Optional[str] = Field(None, max_length=50)
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., pattern=r"^\+?[0-9]{10,15}$")
    address_line1: str = Field(..., min_length=5, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    landmark: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    postal_code: str = Field(..., pattern=r"^[0-9]{6}$")
    country: str = Field("India", max_length=50)
    is_default: bool = False


class AddressUpdate(BaseModel):
    type: Optional[Literal["home", "office", "other"]] = None
    label: Optional[str] = Field(None, max_length=50)
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9]{10,15}$")
    address_line1: Optional[str] = Field(None, min_length=5, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    landmark: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, min_length=1, max_length=50)
    state: Optional[str] = Field(None, min_length=1, max_length=50)
    postal_code: Optional[str] = Field(None, pattern=r"^[0-9]{6}$")
    country: Optional[str] = Field(None, max_length=50)
    is_default: Optional[bool] = None


def _out(address: dict) -> dict:
    out = serialize_doc(address)
    out["formatted_address"] = address_book.format_address(address)
    return out


# --- 2. ADMIN ENDPOINTS ---
@router.get("/admin/all")
async def all_addresses(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    include_inactive: bool = False,
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {} if include_inactive else {"is_active": True}
    total = address_collection.count_documents(query)
    cursor = address_collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {"addresses": [_out(a) for a in cursor], "pagination": paginate(total, page, limit)}


@router.get("/admin/stats")
async def address_stats(admin: dict = Depends(auth_utils.require_admin)):
    total = address_collection.count_documents({})
    active = address_collection.count_documents({"is_active": True})
    by_type = {}
    for a in address_collection.find({"is_active": True}, {"type": 1}):
        by_type[a.get("type", "home")] = by_type.get(a.get("type", "home"), 0) + 1
    recent = address_collection.find({"is_active": True}).sort("created_at", DESCENDING).limit(10)
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "by_type": [{"type": t, "count": c} for t, c in sorted(by_type.items(), key=lambda kv: -kv[1])],
        "recent": [
            {"id": str(a["_id"]), "user_id": a["user_id"], "type": a.get("type"),
             "city": a.get("city"), "state": a.get("state"), "created_at": a.get("created_at")}
            for a in recent
        ],
    }


@router.get("/admin/user/{user_id}")
async def addresses_by_user(user_id: str, admin: dict = Depends(auth_utils.require_admin)):
    return {"addresses": [_out(a) for a in address_book.list_addresses(user_id)]}


@router.delete("/admin/{address_id}/permanent")
async def permanent_delete_address(address_id: str, admin: dict = Depends(auth_utils.require_admin)):
    result = address_collection.delete_one({"_id": parse_object_id(address_id, "address")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Address not found")
    logger.info(f"Address {address_id} permanently deleted by {admin['email']}")
    return {"message": "Address permanently deleted successfully"}


# --- 3. CUSTOMER ENDPOINTS ---
@router.get("/")
async def list_addresses(current_user: dict = Depends(auth_utils.get_current_user)):
    addresses = address_book.list_addresses(str(current_user["_id"]))
    return {"addresses": [_out(a) for a in addresses], "count": len(addresses)}


@router.get("/default")
async def default_address(current_user: dict = Depends(auth_utils.get_current_user)):
    address = address_book.get_default(str(current_user["_id"]))
    if not address:
        raise HTTPException(status_code=404, detail="No address found")
    return _out(address)


@router.get("/{address_id}")
async def get_address(address_id: str, current_user: dict = Depends(auth_utils.get_current_user)):
    return _out(address_book.get_address(str(current_user["_id"]), address_id))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_address(body: AddressCreate, current_user: dict = Depends(auth_utils.get_current_user)):
    address = address_book.create_address(str(current_user["_id"]), body.model_dump())
    return {"message": "Address created successfully", "address": _out(address)}


@router.put("/{address_id}")
async def update_address(
    address_id: str,
    body: AddressUpdate,
    current_user: dict = Depends(auth_utils.get_current_user),
):
    address = address_book.update_address(
        str(current_user["_id"]), address_id, body.model_dump(exclude_unset=True)
    )
    return {"message": "Address updated successfully", "address": _out(address)}


@router.patch("/{address_id}/set-default")
async def set_default_address(address_id: str, current_user: dict = Depends(auth_utils.get_current_user)):
    address = address_book.set_default(str(current_user["_id"]), address_id)
    return {"message": "Default address updated successfully", "address": _out(address)}


@router.delete("/{address_id}")
async def delete_address(address_id: str, current_user: dict = Depends(auth_utils.get_current_user)):
    promoted = address_book.delete_address(str(current_user["_id"]), address_id)
    return {
        "message": "Address deleted successfully",
        "new_default": _out(promoted) if promoted else None,
    }
