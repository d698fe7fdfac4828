import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError
from slugify import slugify

from auth import utils as auth_utils
from database import category_collection, product_collection
from schemas import Category
from utils import parse_object_id, round_money, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["Categories"])


# --- 1. SCHEMAS ---
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    parent_category: Optional[str] = None
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    parent_category: Optional[str] = None
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)


# --- 2. HELPERS ---
def _sorted(query):
    return category_collection.find(query).sort([("sort_order", ASCENDING), ("name", ASCENDING)])


def _with_product_count(category: dict) -> dict:
    out = serialize_doc(category)
    out["product_count"] = product_collection.count_documents({"category": category["slug"], "in_stock": True})
    return out


def _duplicate_field(error: DuplicateKeyError) -> str:
    return "slug" if "slug" in str(error) else "name"


# --- 3. ENDPOINTS ---
@router.get("/")
async def list_categories(active: bool = True, include_products: bool = False):
    query = {"is_active": True} if active else {}
    categories = list(_sorted(query))
    if include_products:
        return {"categories": [_with_product_count(c) for c in categories]}
    return {"categories": [serialize_doc(c) for c in categories]}


@router.get("/tree")
async def category_tree(active: bool = True):
    """Categories nested under their parent; orphans are treated as roots."""
    query = {"is_active": True} if active else {}
    nodes = {}
    ordered = []
    for c in _sorted(query):
        node = serialize_doc(c)
        node["subcategories"] = []
        nodes[node["id"]] = node
        ordered.append(node)

    roots = []
    for node in ordered:
        parent = nodes.get(node.get("parent_category") or "")
        if parent:
            parent["subcategories"].append(node)
        else:
            roots.append(node)
    return {"categories": roots}


@router.get("/admin/stats")
async def category_stats(admin: dict = Depends(auth_utils.require_admin)):
    details = []
    for c in category_collection.find():
        products = list(product_collection.find({"category": c["slug"]}, {"price": 1, "in_stock": 1}))
        prices = [float(p.get("price", 0)) for p in products]
        details.append({
            "id": str(c["_id"]),
            "name": c["name"],
            "slug": c["slug"],
            "is_active": c.get("is_active", True),
            "product_count": len(products),
            "in_stock_products": sum(1 for p in products if p.get("in_stock", True)),
            "avg_price": round_money(sum(prices) / len(prices)) if prices else 0,
            "total_value": round_money(sum(prices)),
        })
    details.sort(key=lambda d: d["product_count"], reverse=True)
    return {
        "total_categories": category_collection.count_documents({}),
        "active_categories": category_collection.count_documents({"is_active": True}),
        "category_details": details,
    }


@router.get("/{category_id}")
async def get_category(category_id: str):
    category = category_collection.find_one({"_id": parse_object_id(category_id, "category")})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return _with_product_count(category)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_category(category: CategoryCreate, admin: dict = Depends(auth_utils.require_admin)):
    data = category.model_dump()
    data["slug"] = slugify(data.get("slug") or data["name"])
    if data.get("parent_category"):
        parse_object_id(data["parent_category"], "parent category")

    doc = Category(**data).model_dump()
    try:
        result = category_collection.insert_one(doc)
    except DuplicateKeyError as e:
        raise HTTPException(status_code=400, detail=f"Category {_duplicate_field(e)} already exists")
    doc["_id"] = result.inserted_id

    logger.info(f"Category '{doc['name']}' created by {admin['email']}")
    return {"message": "Category created successfully", "category": serialize_doc(doc)}


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    update: CategoryUpdate,
    admin: dict = Depends(auth_utils.require_admin),
):
    oid = parse_object_id(category_id, "category")
    existing = category_collection.find_one({"_id": oid})
    if not existing:
        raise HTTPException(status_code=404, detail="Category not found")

    changes = update.model_dump(exclude_unset=True)
    if "slug" in changes or "name" in changes:
        changes["slug"] = slugify(changes.get("slug") or changes.get("name") or existing["name"])
    if changes.get("parent_category") == category_id:
        raise HTTPException(status_code=400, detail="A category cannot be its own parent")
    changes["updated_at"] = utcnow()

    try:
        updated = category_collection.find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError as e:
        raise HTTPException(status_code=400, detail=f"Category {_duplicate_field(e)} already exists")

    # Products reference categories by slug
    if updated["slug"] != existing["slug"]:
        product_collection.update_many({"category": existing["slug"]}, {"$set": {"category": updated["slug"]}})

    logger.info(f"Category {category_id} updated by {admin['email']}")
    return {"message": "Category updated successfully", "category": serialize_doc(updated)}


@router.delete("/{category_id}")
async def delete_category(category_id: str, admin: dict = Depends(auth_utils.require_admin)):
    oid = parse_object_id(category_id, "category")
    category = category_collection.find_one({"_id": oid})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    product_count = product_collection.count_documents({"category": category["slug"]})
    if product_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete category. It has {product_count} products associated with it."
        )
    sub_count = category_collection.count_documents({"parent_category": category_id})
    if sub_count > 0:
        raise HTTPException(status_code=400, detail=f"Cannot delete category. It has {sub_count} subcategories.")

    category_collection.delete_one({"_id": oid})
    logger.info(f"Category '{category['name']}' deleted by {admin['email']}")
    return {"message": "Category deleted successfully"}
