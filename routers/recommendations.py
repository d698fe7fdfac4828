from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import utils as auth_utils
from services import recommendations
from utils import parse_object_id

router = APIRouter(prefix="/api/recommendations", tags=["Recommendations"])


# --- 1. SCHEMAS ---
class GuestRecommendationRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=100)


def _user_id(user: Optional[dict]) -> Optional[str]:
    return str(user["_id"]) if user else None


# --- 2. ENDPOINTS ---
@router.get("/user")
async def user_recommendations(current_user: dict = Depends(auth_utils.get_current_user)):
    return recommendations.user_recommendations(_user_id(current_user))


@router.get("/purchase-based")
async def purchase_based(current_user: dict = Depends(auth_utils.get_current_user)):
    return recommendations.purchase_based_products(_user_id(current_user))


@router.get("/products")
async def product_recommendations(
    session_id: Optional[str] = None,
    current_user: Optional[dict] = Depends(auth_utils.get_optional_user),
):
    """Purchase-based for signed-in users, cart-based for guests with a session, trending otherwise."""
    if current_user:
        return recommendations.purchase_based_products(_user_id(current_user))
    if session_id:
        return recommendations.cart_based_products(session_id)
    return recommendations.trending_products()


@router.get("/trending")
async def trending():
    return recommendations.trending_products()


@router.post("/guest")
async def guest_recommendations(body: GuestRecommendationRequest):
    return recommendations.guest_recommendations(body.session_id)


@router.get("/enhanced")
async def enhanced_recommendations(
    session_id: Optional[str] = None,
    current_user: Optional[dict] = Depends(auth_utils.get_optional_user),
):
    return recommendations.enhanced_recommendations(_user_id(current_user), session_id)


@router.get("/category/{category}")
async def category_recommendations(category: str):
    popular = recommendations.category_recommendations(category)
    return {
        "category": category,
        **popular,
        "message": f"Popular sizes and colors for {category} products",
    }


@router.get("/product/{product_id}/sizes")
async def product_sizes(product_id: str):
    parse_object_id(product_id, "product")
    return recommendations.product_size_recommendations(product_id)


@router.get("/default")
async def default_recommendations():
    return recommendations.default_recommendations()
