"""
Record shapes for every collection.

Routers build documents through these models (model_dump() before insert)
so defaults and field rules live in one place. Request bodies that differ
from the stored shape are declared next to their router.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from utils import utcnow

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_METHODS = ("credit_card", "debit_card", "paypal", "cash_on_delivery")


def _in_days(days: int):
    return lambda: utcnow() + timedelta(days=days)


class Timestamped(BaseModel):
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# --- Users ---
class User(Timestamped):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., description="bcrypt hash")
    phone: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{1,14}$")
    avatar: str = "https://images.pexels.com/photos/771742/pexels-photo-771742.jpeg?auto=compress&cs=tinysrgb&w=100"
    orders: int = 0
    join_date: str = Field(default_factory=lambda: utcnow().date().isoformat())
    is_admin: bool = False
    last_login: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


# --- Catalogue ---
class Product(Timestamped):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    image: str
    images: List[str] = []
    category: str = Field(..., description="Category slug")
    description: str
    features: List[str] = []
    sizes: List[str] = []
    colors: List[str] = []
    in_stock: bool = True
    badge: Optional[str] = None
    rating: float = 0
    reviews_count: int = 0


class Category(Timestamped):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    parent_category: Optional[str] = None
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)


# --- Carts ---
class CartItem(BaseModel):
    item_id: str
    product_id: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class Cart(Timestamped):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    items: List[CartItem] = []
    total: float = Field(0, ge=0)
    expires_at: datetime = Field(default_factory=_in_days(30))


class AbandonedCartItem(BaseModel):
    product_id: str
    name: str
    image: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class DeviceInfo(BaseModel):
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    platform: Optional[str] = None


class AbandonedCart(Timestamped):
    user_id: str
    email: EmailStr
    items: List[AbandonedCartItem]
    total: float = Field(..., ge=0)
    abandoned_at: datetime = Field(default_factory=utcnow)
    last_reminder_sent: Optional[datetime] = None
    reminder_count: int = 0
    max_reminders: int = 3
    status: Literal["active", "recovered", "expired", "ignored"] = "active"
    recovered_at: Optional[datetime] = None
    recovered_order_id: Optional[str] = None
    session_id: Optional[str] = None
    device_info: Optional[DeviceInfo] = None
    recovery_token: str
    expires_at: datetime = Field(default_factory=_in_days(30))


class WishlistItem(BaseModel):
    product_id: str
    added_at: datetime = Field(default_factory=utcnow)


class Wishlist(Timestamped):
    user_id: str
    items: List[WishlistItem] = []


# --- Orders & coupons ---
class OrderItem(BaseModel):
    product_id: str
    name: str
    image: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    address: str = Field(..., min_length=5, max_length=200)
    city: str = Field(..., min_length=2, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = None


class AppliedCoupon(BaseModel):
    coupon_id: str
    code: str
    type: Literal["flat", "percentage"]
    value: float
    discount_amount: float = Field(..., ge=0)
    applied_at: datetime


class Order(Timestamped):
    user_id: str
    order_number: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: Literal["credit_card", "debit_card", "paypal", "cash_on_delivery"]
    payment_status: Literal["pending", "paid", "failed", "refunded"] = "pending"
    order_status: Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"] = "pending"
    subtotal: float = Field(..., ge=0)
    shipping_cost: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    applied_coupons: List[AppliedCoupon] = []
    # Bumped on every coupon change; writes match on the value they read
    coupon_version: int = 0
    total_discount: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None


class Coupon(Timestamped):
    code: str = Field(..., min_length=3, max_length=20, pattern=r"^[A-Z0-9]+$")
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Literal["flat", "percentage"]
    value: float = Field(..., ge=0)
    min_purchase_amount: float = Field(0, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    expiry_date: datetime
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_count: int = Field(0, ge=0)
    user_usage_limit: int = Field(1, ge=1)
    is_active: bool = True
    is_public: bool = True
    applicable_categories: List[str] = []
    applicable_products: List[str] = []
    allowed_users: List[str] = []
    restricted_users: List[str] = []
    created_by: str


# --- Addresses ---
class Address(Timestamped):
    user_id: str
    type: Literal["home", "office", "other"] = "home"
    label: Optional[str] = Field(None, max_length=50)
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., pattern=r"^\+?[0-9]{10,15}$")
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    landmark: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    postal_code: str = Field(..., pattern=r"^[0-9]{6}$")
    country: str = Field("India", max_length=50)
    is_default: bool = False
    is_active: bool = True

    def model_post_init(self, __context):
        if not self.label:
            self.label = self.type.capitalize()


# --- Reviews ---
class ReviewEdit(BaseModel):
    edited_at: datetime = Field(default_factory=utcnow)
    edited_by: str
    previous_comment: str
    previous_rating: int
    reason: str = "Admin edit"


class Review(Timestamped):
    product_id: str
    user_id: str
    user_name: str = Field(..., max_length=100)
    user_email: EmailStr
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    comment: str = Field(..., min_length=10, max_length=2000)
    helpful: int = Field(0, ge=0)
    verified: bool = False
    status: Literal["pending", "approved", "rejected"] = "pending"
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = Field(None, max_length=500)
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    edit_history: List[ReviewEdit] = []


# --- Marketing ---
class Banner(Timestamped):
    title: str = Field(..., min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: str
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    position: Literal["hero", "secondary", "promotional"] = "hero"
    is_active: bool = True
    priority: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    background_color: str = "#ffffff"
    text_color: str = "#000000"
    target_audience: Literal["all", "new_users", "returning_users", "premium_users"] = "all"
    click_count: int = 0
    impression_count: int = 0


class NewsletterPreferences(BaseModel):
    new_arrivals: bool = True
    promotions: bool = True
    style_updates: bool = True


class Newsletter(Timestamped):
    email: EmailStr
    subscribed_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    source: Literal["website", "mobile", "social"] = "website"
    preferences: NewsletterPreferences = Field(default_factory=NewsletterPreferences)
    unsubscribed_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


# --- Password resets ---
class PasswordReset(Timestamped):
    user_id: str
    email: EmailStr
    token: str = Field(..., min_length=64, max_length=64)
    expires_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def status_breakdown(counts: Dict[str, int], statuses) -> Dict[str, int]:
    return {s: counts.get(s, 0) for s in statuses}
