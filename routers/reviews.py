import logging
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import utils as auth_utils
from database import order_collection, product_collection, review_collection
from schemas import Review, ReviewEdit
from utils import paginate, parse_object_id, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])

REVIEW_SORTS = {
    "newest": [("created_at", DESCENDING)],
    "helpful": [("helpful", DESCENDING), ("created_at", DESCENDING)],
    "rating_high": [("rating", DESCENDING), ("created_at", DESCENDING)],
    "rating_low": [("rating", 1), ("created_at", DESCENDING)],
}


# --- 1. SCHEMAS ---
class ReviewCreate(BaseModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    comment: str = Field(..., min_length=10, max_length=2000)


class ReviewStatusUpdate(BaseModel):
    status: Literal["pending", "approved", "rejected"]
    moderator_notes: Optional[str] = Field(None, max_length=500)


class ReviewAdminEdit(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    comment: Optional[str] = Field(None, min_length=10, max_length=2000)
    reason: str = "Admin edit"


# --- 2. RATING HELPERS ---
def rating_summary(product_id: str) -> Dict:
    """Average (one decimal) and 1..5 distribution over approved reviews."""
    distribution = {str(r): 0 for r in range(5, 0, -1)}
    ratings = [r["rating"] for r in review_collection.find({"product_id": product_id, "status": "approved"}, {"rating": 1})]
    for r in ratings:
        distribution[str(r)] += 1
    average = round(sum(ratings) / len(ratings), 1) if ratings else 0
    return {"average_rating": average, "total_reviews": len(ratings), "rating_distribution": distribution}


def update_product_rating(product_id: str):
    summary = rating_summary(product_id)
    product_collection.update_one(
        {"_id": parse_object_id(product_id, "product")},
        {"$set": {"rating": summary["average_rating"], "reviews_count": summary["total_reviews"]}},
    )
    return summary


def _load_review(review_id: str) -> dict:
    review = review_collection.find_one({"_id": parse_object_id(review_id, "review")})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


# --- 3. PUBLIC ENDPOINTS ---
@router.get("/product/{product_id}")
async def product_reviews(
    product_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    sort: str = "newest",
    rating: Optional[int] = Query(None, ge=1, le=5),
):
    query = {"product_id": product_id, "status": "approved"}
    if rating:
        query["rating"] = rating
    total = review_collection.count_documents(query)
    cursor = (
        review_collection.find(query, {"user_email": 0, "moderator_notes": 0, "edit_history": 0})
        .sort(REVIEW_SORTS.get(sort, REVIEW_SORTS["newest"]))
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "reviews": [serialize_doc(r) for r in cursor],
        "pagination": paginate(total, page, limit),
        **rating_summary(product_id),
    }


@router.get("/product/{product_id}/stats")
async def product_review_stats(product_id: str):
    return rating_summary(product_id)


# --- 4. CUSTOMER ENDPOINTS ---
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_review(body: ReviewCreate, current_user: dict = Depends(auth_utils.get_current_user)):
    product = product_collection.find_one({"_id": parse_object_id(body.product_id, "product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    user_id = str(current_user["_id"])
    if review_collection.find_one({"user_id": user_id, "product_id": body.product_id}):
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    purchased = order_collection.count_documents({
        "user_id": user_id,
        "order_status": {"$ne": "cancelled"},
        "items.product_id": body.product_id,
    }) > 0
    doc = Review(
        product_id=body.product_id,
        user_id=user_id,
        user_name=current_user["name"],
        user_email=current_user["email"],
        rating=body.rating,
        title=body.title,
        comment=body.comment,
        verified=purchased,
    ).model_dump()
    try:
        doc["_id"] = review_collection.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    logger.info(f"Review submitted for product {body.product_id} by {current_user['email']}")
    return {"message": "Review submitted successfully and is pending approval", "review": serialize_doc(doc)}


@router.get("/my-reviews")
async def my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: dict = Depends(auth_utils.get_current_user),
):
    query = {"user_id": str(current_user["_id"])}
    total = review_collection.count_documents(query)
    cursor = review_collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {"reviews": [serialize_doc(r) for r in cursor], "pagination": paginate(total, page, limit)}


# --- 5. ADMIN ENDPOINTS ---
@router.get("/admin/all")
async def all_reviews(
    review_status: Optional[Literal["pending", "approved", "rejected"]] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(auth_utils.require_admin),
):
    query = {"status": review_status} if review_status else {}
    total = review_collection.count_documents(query)
    cursor = review_collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {"reviews": [serialize_doc(r) for r in cursor], "pagination": paginate(total, page, limit)}


@router.get("/admin/stats")
async def review_stats(admin: dict = Depends(auth_utils.require_admin)):
    counts = {"pending": 0, "approved": 0, "rejected": 0}
    ratings = []
    for r in review_collection.find({}, {"status": 1, "rating": 1}):
        counts[r["status"]] = counts.get(r["status"], 0) + 1
        if r["status"] == "approved":
            ratings.append(r["rating"])
    return {
        "total": sum(counts.values()),
        **counts,
        "average_rating": round(sum(ratings) / len(ratings), 1) if ratings else 0,
    }


@router.put("/admin/{review_id}/status")
async def update_review_status(
    review_id: str,
    body: ReviewStatusUpdate,
    admin: dict = Depends(auth_utils.require_admin),
):
    review = _load_review(review_id)
    now = utcnow()
    changes = {"status": body.status, "moderator_id": str(admin["_id"]), "updated_at": now}
    if body.moderator_notes:
        changes["moderator_notes"] = body.moderator_notes
    if body.status == "approved":
        changes["approved_at"] = now
    elif body.status == "rejected":
        changes["rejected_at"] = now

    updated = review_collection.find_one_and_update(
        {"_id": review["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if review["status"] != body.status and "approved" in (review["status"], body.status):
        update_product_rating(review["product_id"])

    logger.info(f"Review {review_id} {body.status} by {admin['email']}")
    return {"message": f"Review {body.status} successfully", "review": serialize_doc(updated)}


@router.put("/admin/{review_id}/edit")
async def edit_review(
    review_id: str,
    body: ReviewAdminEdit,
    admin: dict = Depends(auth_utils.require_admin),
):
    review = _load_review(review_id)
    edit = ReviewEdit(
        edited_by=str(admin["_id"]),
        previous_comment=review["comment"],
        previous_rating=review["rating"],
        reason=body.reason,
    ).model_dump()
    changes = body.model_dump(exclude_unset=True, exclude={"reason"})
    changes["updated_at"] = utcnow()

    updated = review_collection.find_one_and_update(
        {"_id": review["_id"]},
        {"$set": changes, "$push": {"edit_history": edit}},
        return_document=ReturnDocument.AFTER,
    )
    if updated["status"] == "approved":
        update_product_rating(updated["product_id"])

    logger.info(f"Review {review_id} edited by {admin['email']}")
    return {"message": "Review updated successfully", "review": serialize_doc(updated)}


@router.delete("/admin/{review_id}")
async def delete_review(review_id: str, admin: dict = Depends(auth_utils.require_admin)):
    review = _load_review(review_id)
    review_collection.delete_one({"_id": review["_id"]})
    if review["status"] == "approved":
        update_product_rating(review["product_id"])
    logger.info(f"Review {review_id} deleted by {admin['email']}")
    return {"message": "Review deleted successfully"}


# --- 6. PER-REVIEW ENDPOINTS ---
@router.get("/{review_id}")
async def get_review(review_id: str):
    return serialize_doc(_load_review(review_id))


@router.post("/{review_id}/helpful")
async def mark_helpful(review_id: str):
    review = _load_review(review_id)
    if review["status"] != "approved":
        raise HTTPException(status_code=400, detail="Can only mark approved reviews as helpful")
    updated = review_collection.find_one_and_update(
        {"_id": review["_id"]}, {"$inc": {"helpful": 1}}, return_document=ReturnDocument.AFTER
    )
    return {"message": "Review marked as helpful", "helpful": updated["helpful"]}
