import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from auth import utils as auth_utils
from database import cart_collection, product_collection, review_collection, wishlist_collection
from schemas import Product
from utils import paginate, parse_object_id, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["Products"])

SORTS = {
    "newest": [("created_at", DESCENDING)],
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
    "rating": [("rating", DESCENDING), ("reviews_count", DESCENDING)],
    "name": [("name", ASCENDING)],
}


# --- 1. SCHEMAS ---
class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    image: str
    images: List[str] = []
    category: str
    description: str
    features: List[str] = []
    sizes: List[str] = []
    colors: List[str] = []
    in_stock: bool = True
    badge: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    description: Optional[str] = None
    features: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    in_stock: Optional[bool] = None
    badge: Optional[str] = None


# --- 2. ENDPOINTS ---
@router.get("/")
async def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    in_stock: Optional[bool] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = {}
    if q:
        pattern = re.escape(q)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        query["category"] = category
    if in_stock is not None:
        query["in_stock"] = in_stock
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price

    total = product_collection.count_documents(query)
    cursor = (
        product_collection.find(query)
        .sort(SORTS.get(sort, SORTS["newest"]))
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "products": [serialize_doc(p) for p in cursor],
        "pagination": paginate(total, page, limit),
    }


@router.get("/{product_id}")
async def get_product(product_id: str):
    product = product_collection.find_one({"_id": parse_object_id(product_id, "product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(product)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_product(product: ProductCreate, admin: dict = Depends(auth_utils.require_admin)):
    doc = Product(**product.model_dump()).model_dump()
    result = product_collection.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info(f"Product '{doc['name']}' created by {admin['email']}")
    return serialize_doc(doc)


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    update: ProductUpdate,
    admin: dict = Depends(auth_utils.require_admin),
):
    changes = update.model_dump(exclude_unset=True)
    changes["updated_at"] = utcnow()
    product = product_collection.find_one_and_update(
        {"_id": parse_object_id(product_id, "product")},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info(f"Product {product_id} updated by {admin['email']}")
    return serialize_doc(product)


@router.delete("/{product_id}")
async def delete_product(product_id: str, admin: dict = Depends(auth_utils.require_admin)):
    result = product_collection.delete_one({"_id": parse_object_id(product_id, "product")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")

    # Drop dangling references; orders keep their own snapshots
    cart_collection.update_many({}, {"$pull": {"items": {"product_id": product_id}}})
    wishlist_collection.update_many({}, {"$pull": {"items": {"product_id": product_id}}})
    review_collection.delete_many({"product_id": product_id})

    logger.info(f"Product {product_id} deleted by {admin['email']}")
    return {"message": "Product deleted successfully"}
