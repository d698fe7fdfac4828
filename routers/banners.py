import logging
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument

from auth import utils as auth_utils
from database import banner_collection
from schemas import Banner
from utils import as_utc, paginate, parse_object_id, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/banners", tags=["Banners"])

Position = Literal["hero", "secondary", "promotional"]
Audience = Literal["all", "new_users", "returning_users", "premium_users"]


# --- 1. SCHEMAS ---
class BannerCreate(BaseModel):
    title: str = Field(..., min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: str
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    position: Position = "hero"
    is_active: bool = True
    priority: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    background_color: str = "#ffffff"
    text_color: str = "#000000"
    target_audience: Audience = "all"


class BannerUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    position: Optional[Position] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    target_audience: Optional[Audience] = None


class ImpressionBatch(BaseModel):
    banner_ids: List[str]


# --- 2. HELPERS ---
def is_live(banner: dict, now: datetime) -> bool:
    start = as_utc(banner.get("start_date"))
    end = as_utc(banner.get("end_date"))
    return (start is None or start <= now) and (end is None or end >= now)


def _click_through_rate(banner: dict) -> float:
    impressions = banner.get("impression_count", 0)
    return round(banner.get("click_count", 0) / impressions * 100, 2) if impressions else 0


def _check_window(start, end):
    if start and end and as_utc(end) < as_utc(start):
        raise HTTPException(status_code=400, detail="End date must be after start date")


def _load_banner(banner_id: str) -> dict:
    banner = banner_collection.find_one({"_id": parse_object_id(banner_id, "banner")})
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    return banner


# --- 3. PUBLIC ENDPOINTS ---
@router.get("/active")
async def active_banners(position: Optional[Position] = None):
    query = {"is_active": True}
    if position:
        query["position"] = position
    now = utcnow()
    cursor = banner_collection.find(query, {"click_count": 0, "impression_count": 0}).sort(
        [("priority", DESCENDING), ("created_at", DESCENDING)]
    )
    return [serialize_doc(b) for b in cursor if is_live(b, now)]


@router.post("/{banner_id}/click")
async def track_click(banner_id: str):
    result = banner_collection.update_one(
        {"_id": parse_object_id(banner_id, "banner")}, {"$inc": {"click_count": 1}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Banner not found")
    return {"message": "Click tracked successfully"}


@router.post("/impressions")
async def track_impressions(batch: ImpressionBatch):
    ids = [ObjectId(i) for i in batch.banner_ids if ObjectId.is_valid(i)]
    if ids:
        banner_collection.update_many({"_id": {"$in": ids}}, {"$inc": {"impression_count": 1}})
    return {"message": "Impressions tracked successfully", "tracked": len(ids)}


# --- 4. ADMIN ENDPOINTS ---
@router.get("/admin")
async def list_banners(
    position: Optional[Position] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {"position": position} if position else {}
    total = banner_collection.count_documents(query)
    cursor = (
        banner_collection.find(query)
        .sort([("priority", DESCENDING), ("created_at", DESCENDING)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {"banners": [serialize_doc(b) for b in cursor], "pagination": paginate(total, page, limit)}


@router.get("/admin/analytics")
async def banner_analytics(admin: dict = Depends(auth_utils.require_admin)):
    banners = list(banner_collection.find().sort("click_count", DESCENDING))
    total_clicks = sum(b.get("click_count", 0) for b in banners)
    total_impressions = sum(b.get("impression_count", 0) for b in banners)
    return {
        "banners": [
            {
                "id": str(b["_id"]),
                "title": b["title"],
                "position": b.get("position"),
                "is_active": b.get("is_active", True),
                "click_count": b.get("click_count", 0),
                "impression_count": b.get("impression_count", 0),
                "click_through_rate": _click_through_rate(b),
                "created_at": b.get("created_at"),
            }
            for b in banners
        ],
        "summary": {
            "total_banners": len(banners),
            "active_banners": sum(1 for b in banners if b.get("is_active", True)),
            "total_clicks": total_clicks,
            "total_impressions": total_impressions,
            "average_ctr": round(total_clicks / total_impressions * 100, 2) if total_impressions else 0,
        },
    }


@router.get("/admin/{banner_id}")
async def get_banner(banner_id: str, admin: dict = Depends(auth_utils.require_admin)):
    return serialize_doc(_load_banner(banner_id))


@router.post("/admin", status_code=status.HTTP_201_CREATED)
async def create_banner(body: BannerCreate, admin: dict = Depends(auth_utils.require_admin)):
    _check_window(body.start_date, body.end_date)
    doc = Banner(**body.model_dump()).model_dump()
    doc["_id"] = banner_collection.insert_one(doc).inserted_id
    logger.info(f"Banner '{doc['title']}' created by {admin['email']}")
    return serialize_doc(doc)


@router.put("/admin/{banner_id}")
async def update_banner(banner_id: str, body: BannerUpdate, admin: dict = Depends(auth_utils.require_admin)):
    banner = _load_banner(banner_id)
    changes = body.model_dump(exclude_unset=True)
    _check_window(changes.get("start_date", banner.get("start_date")), changes.get("end_date", banner.get("end_date")))
    changes["updated_at"] = utcnow()
    updated = banner_collection.find_one_and_update(
        {"_id": banner["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    logger.info(f"Banner {banner_id} updated by {admin['email']}")
    return serialize_doc(updated)


@router.put("/admin/{banner_id}/toggle")
async def toggle_banner(banner_id: str, admin: dict = Depends(auth_utils.require_admin)):
    banner = _load_banner(banner_id)
    updated = banner_collection.find_one_and_update(
        {"_id": banner["_id"]},
        {"$set": {"is_active": not banner.get("is_active", True), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    state = "activated" if updated["is_active"] else "deactivated"
    logger.info(f"Banner {banner_id} {state} by {admin['email']}")
    return {"message": f"Banner {state} successfully", "banner": serialize_doc(updated)}


@router.delete("/admin/{banner_id}")
async def delete_banner(banner_id: str, admin: dict = Depends(auth_utils.require_admin)):
    result = banner_collection.delete_one({"_id": parse_object_id(banner_id, "banner")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Banner not found")
    logger.info(f"Banner {banner_id} deleted by {admin['email']}")
    return {"message": "Banner deleted successfully"}
