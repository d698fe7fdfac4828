import logging
import uuid
from datetime import timedelta
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from database import cart_collection, product_collection
from schemas import Cart
from utils import parse_object_id, round_money, serialize_doc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["Cart"])

CART_TTL = timedelta(days=30)


# --- 1. SCHEMAS ---
class CartItemAdd(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartMerge(BaseModel):
    session_id: str = Field(..., min_length=1)


# --- 2. HELPERS ---
def get_or_create_cart(owner: dict) -> dict:
    cart = cart_collection.find_one(owner)
    if cart:
        return cart
    doc = Cart(**owner).model_dump()
    doc["_id"] = cart_collection.insert_one(doc).inserted_id
    return doc


def _load_product(product_id: str) -> dict:
    product = product_collection.find_one({"_id": parse_object_id(product_id, "product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def merge_item(items: list, product_id: str, quantity: int, size=None, color=None) -> list:
    """Adds quantity to the matching line (same product, size and color) or appends a new one."""
    for item in items:
        if item["product_id"] == product_id and item.get("size") == size and item.get("color") == color:
            item["quantity"] += quantity
            return items
    items.append({
        "item_id": uuid.uuid4().hex,
        "product_id": product_id,
        "quantity": quantity,
        "size": size,
        "color": color,
    })
    return items


def save_items(cart: dict, items: list) -> dict:
    """Persists items with a freshly priced total and pushes out the expiry."""
    priced = price_cart({**cart, "items": items})
    now = utcnow()
    cart_collection.update_one(
        {"_id": cart["_id"]},
        {"$set": {
            "items": items,
            "total": priced["total"],
            "updated_at": now,
            "expires_at": now + CART_TTL,
        }},
    )
    return priced


def price_cart(cart: dict) -> dict:
    """Serialised cart with each line's product attached and the total at current prices."""
    ids = [ObjectId(i["product_id"]) for i in cart.get("items", []) if ObjectId.is_valid(i["product_id"])]
    products = {str(p["_id"]): p for p in product_collection.find({"_id": {"$in": ids}})}

    lines = []
    total = 0.0
    for item in cart.get("items", []):
        product = products.get(item["product_id"])
        line = dict(item)
        line["product"] = serialize_doc(product) if product else None
        if product:
            total += float(product["price"]) * int(item["quantity"])
        lines.append(line)

    out = serialize_doc({k: v for k, v in cart.items() if k != "items"})
    out["items"] = lines
    out["total"] = round_money(total)
    out["item_count"] = sum(int(i["quantity"]) for i in cart.get("items", []))
    return out


def _add(owner: dict, item: CartItemAdd) -> dict:
    _load_product(item.product_id)
    cart = get_or_create_cart(owner)
    items = merge_item(cart.get("items", []), item.product_id, item.quantity, item.size, item.color)
    return save_items(cart, items)


def _user_owner(user: dict) -> dict:
    return {"user_id": str(user["_id"])}


# --- 3. GUEST CART ---
@router.get("/guest/{session_id}")
async def get_guest_cart(session_id: str):
    return price_cart(get_or_create_cart({"session_id": session_id}))


@router.post("/guest/{session_id}/items", status_code=status.HTTP_201_CREATED)
async def add_to_guest_cart(session_id: str, item: CartItemAdd):
    return _add({"session_id": session_id}, item)


@router.delete("/guest/{session_id}")
async def clear_guest_cart(session_id: str):
    cart_collection.delete_one({"session_id": session_id})
    return {"message": "Guest cart cleared successfully"}


# --- 4. USER CART ---
@router.get("/")
async def get_cart(current_user: dict = Depends(auth_utils.get_current_user)):
    return price_cart(get_or_create_cart(_user_owner(current_user)))


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def add_to_cart(item: CartItemAdd, current_user: dict = Depends(auth_utils.get_current_user)):
    return _add(_user_owner(current_user), item)


@router.put("/items/{item_id}")
async def update_cart_item(
    item_id: str,
    update: CartItemUpdate,
    current_user: dict = Depends(auth_utils.get_current_user),
):
    cart = cart_collection.find_one(_user_owner(current_user))
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    items = cart.get("items", [])
    for item in items:
        if item["item_id"] == item_id:
            item["quantity"] = update.quantity
            return save_items(cart, items)
    raise HTTPException(status_code=404, detail="Item not found in cart")


@router.delete("/items/{item_id}")
async def remove_from_cart(item_id: str, current_user: dict = Depends(auth_utils.get_current_user)):
    cart = cart_collection.find_one(_user_owner(current_user))
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    items = [i for i in cart.get("items", []) if i["item_id"] != item_id]
    if len(items) == len(cart.get("items", [])):
        raise HTTPException(status_code=404, detail="Item not found in cart")
    return save_items(cart, items)


@router.delete("/")
async def clear_cart(current_user: dict = Depends(auth_utils.get_current_user)):
    cart = cart_collection.find_one(_user_owner(current_user))
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    return {"message": "Cart cleared successfully", "cart": save_items(cart, [])}


@router.post("/merge")
async def merge_guest_cart(body: CartMerge, current_user: dict = Depends(auth_utils.get_current_user)):
    """Folds the guest cart for session_id into the user's cart and drops the guest cart."""
    guest = cart_collection.find_one({"session_id": body.session_id, "user_id": None})
    cart = get_or_create_cart(_user_owner(current_user))
    items = cart.get("items", [])
    if guest:
        for item in guest.get("items", []):
            merge_item(items, item["product_id"], int(item["quantity"]), item.get("size"), item.get("color"))
        cart_collection.delete_one({"_id": guest["_id"]})
        logger.info(f"Merged guest cart {body.session_id} into cart of user {current_user['_id']}")
    return save_items(cart, items)
