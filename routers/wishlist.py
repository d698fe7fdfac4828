from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from auth import utils as auth_utils
from database import product_collection, wishlist_collection
from schemas import Wishlist, WishlistItem
from utils import parse_object_id, serialize_doc, utcnow

router = APIRouter(prefix="/api/wishlist", tags=["Wishlist"])


class WishlistAdd(BaseModel):
    product_id: str


def _with_products(wishlist: dict) -> dict:
    ids = [ObjectId(i["product_id"]) for i in wishlist.get("items", []) if ObjectId.is_valid(i["product_id"])]
    products = {str(p["_id"]): serialize_doc(p) for p in product_collection.find({"_id": {"$in": ids}})}
    out = serialize_doc({k: v for k, v in wishlist.items() if k != "items"})
    out["items"] = [
        {**item, "product": products.get(item["product_id"])}
        for item in wishlist.get("items", [])
    ]
    return out


def _get_or_create(user_id: str) -> dict:
    wishlist = wishlist_collection.find_one({"user_id": user_id})
    if wishlist:
        return wishlist
    doc = Wishlist(user_id=user_id).model_dump()
    doc["_id"] = wishlist_collection.insert_one(doc).inserted_id
    return doc


@router.get("/")
async def get_wishlist(current_user: dict = Depends(auth_utils.get_current_user)):
    return _with_products(_get_or_create(str(current_user["_id"])))


@router.get("/count")
async def wishlist_count(current_user: dict = Depends(auth_utils.get_current_user)):
    wishlist = wishlist_collection.find_one({"user_id": str(current_user["_id"])})
    return {"count": len(wishlist.get("items", [])) if wishlist else 0}


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def add_to_wishlist(body: WishlistAdd, current_user: dict = Depends(auth_utils.get_current_user)):
    if not product_collection.find_one({"_id": parse_object_id(body.product_id, "product")}):
        raise HTTPException(status_code=404, detail="Product not found")

    wishlist = _get_or_create(str(current_user["_id"]))
    if any(i["product_id"] == body.product_id for i in wishlist.get("items", [])):
        raise HTTPException(status_code=400, detail="Product already in wishlist")
    # Matching on the absent product keeps concurrent adds from duplicating it
    result = wishlist_collection.update_one(
        {"_id": wishlist["_id"], "items.product_id": {"$ne": body.product_id}},
        {
            "$push": {"items": WishlistItem(product_id=body.product_id).model_dump()},
            "$set": {"updated_at": utcnow()},
        },
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=400, detail="Product already in wishlist")
    return _with_products(wishlist_collection.find_one({"_id": wishlist["_id"]}))


@router.delete("/items/{product_id}")
async def remove_from_wishlist(product_id: str, current_user: dict = Depends(auth_utils.get_current_user)):
    wishlist = wishlist_collection.find_one({"user_id": str(current_user["_id"])})
    if not wishlist:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    wishlist_collection.update_one(
        {"_id": wishlist["_id"]},
        {"$pull": {"items": {"product_id": product_id}}, "$set": {"updated_at": utcnow()}},
    )
    return _with_products(wishlist_collection.find_one({"_id": wishlist["_id"]}))


@router.delete("/")
async def clear_wishlist(current_user: dict = Depends(auth_utils.get_current_user)):
    result = wishlist_collection.update_one(
        {"user_id": str(current_user["_id"])},
        {"$set": {"items": [], "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    return {"message": "Wishlist cleared successfully"}
