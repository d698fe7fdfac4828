import logging
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, EmailStr
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from auth import utils as auth_utils
from database import newsletter_collection
from schemas import Newsletter, NewsletterPreferences
from utils import as_utc, paginate, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/newsletter", tags=["Newsletter"])


class SubscribeRequest(BaseModel):
    email: EmailStr
    source: Literal["website", "mobile", "social"] = "website"
    preferences: Optional[NewsletterPreferences] = None


class UnsubscribeRequest(BaseModel):
    email: EmailStr


@router.post("/subscribe", status_code=status.HTTP_201_CREATED)
async def subscribe(body: SubscribeRequest, response: Response):
    email = body.email.lower()
    existing = newsletter_collection.find_one({"email": email})
    if existing and existing.get("is_active"):
        raise HTTPException(status_code=409, detail="Email is already subscribed to our newsletter")

    now = utcnow()
    if existing:
        newsletter_collection.update_one(
            {"_id": existing["_id"]},
            {"$set": {"is_active": True, "subscribed_at": now, "unsubscribed_at": None, "updated_at": now}},
        )
        logger.info(f"Newsletter resubscription: {email}")
        response.status_code = status.HTTP_200_OK
        return {
            "message": "Successfully resubscribed to newsletter",
            "email": email,
            "subscribed_at": now,
            "status": "resubscribed",
        }

    doc = Newsletter(
        email=email,
        source=body.source,
        preferences=body.preferences or NewsletterPreferences(),
    ).model_dump()
    try:
        newsletter_collection.insert_one(doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email is already subscribed")

    logger.info(f"New newsletter subscription: {email}")
    return {
        "message": "Successfully subscribed to newsletter",
        "email": email,
        "subscribed_at": doc["subscribed_at"],
        "status": "subscribed",
    }


@router.post("/unsubscribe")
async def unsubscribe(body: UnsubscribeRequest):
    email = body.email.lower()
    subscription = newsletter_collection.find_one({"email": email})
    if not subscription:
        raise HTTPException(status_code=404, detail="Email not found in our newsletter list")
    if not subscription.get("is_active"):
        raise HTTPException(status_code=400, detail="Email is already unsubscribed")

    now = utcnow()
    newsletter_collection.update_one(
        {"_id": subscription["_id"]},
        {"$set": {"is_active": False, "unsubscribed_at": now, "updated_at": now}},
    )
    logger.info(f"Newsletter unsubscription: {email}")
    return {"message": "Successfully unsubscribed from newsletter"}


# --- Admin ---
@router.get("/subscribers")
async def list_subscribers(
    subscriber_status: Literal["all", "active", "inactive"] = Query("all", alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {}
    if subscriber_status != "all":
        query["is_active"] = subscriber_status == "active"
    total = newsletter_collection.count_documents(query)
    cursor = newsletter_collection.find(query).sort("subscribed_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "subscribers": [serialize_doc(s) for s in cursor],
        "pagination": paginate(total, page, limit),
        "active_subscribers": newsletter_collection.count_documents({"is_active": True}),
    }


@router.get("/stats")
async def newsletter_stats(admin: dict = Depends(auth_utils.require_admin)):
    now = utcnow()
    month_ago = now - timedelta(days=30)
    total = active = recent = 0
    by_source = {}
    for s in newsletter_collection.find():
        total += 1
        if s.get("is_active"):
            active += 1
            by_source[s.get("source", "website")] = by_source.get(s.get("source", "website"), 0) + 1
        if as_utc(s.get("subscribed_at")) and as_utc(s["subscribed_at"]) >= month_ago:
            recent += 1
    return {
        "total_subscribers": total,
        "active_subscribers": active,
        "inactive_subscribers": total - active,
        "recent_subscriptions": recent,
        "by_source": by_source,
    }
