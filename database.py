# database.py

import logging

from pymongo import MongoClient, ASCENDING, DESCENDING

from config.settings import settings

logger = logging.getLogger(__name__)

# Connection is lazy; startup pings it (see main.lifespan)
client = MongoClient(settings.MONGO_URI, tz_aware=True, serverSelectionTimeoutMS=5000)
db = client[settings.DATABASE_NAME]

# Collections
user_collection = db["users"]
product_collection = db["products"]
category_collection = db["categories"]
cart_collection = db["carts"]
order_collection = db["orders"]
coupon_collection = db["coupons"]
address_collection = db["addresses"]
review_collection = db["reviews"]
banner_collection = db["banners"]
newsletter_collection = db["newsletters"]
password_reset_collection = db["password_resets"]
abandoned_cart_collection = db["abandoned_carts"]
wishlist_collection = db["wishlists"]


def ensure_indexes():
    """Create the unique, lookup and TTL indexes every collection relies on."""
    user_collection.create_index([("email", ASCENDING)], unique=True)
    user_collection.create_index([("is_admin", ASCENDING)])

    product_collection.create_index([("category", ASCENDING)])
    category_collection.create_index([("slug", ASCENDING)], unique=True)
    category_collection.create_index([("name", ASCENDING)], unique=True)

    cart_collection.create_index([("user_id", ASCENDING)])
    cart_collection.create_index([("session_id", ASCENDING)])
    cart_collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    order_collection.create_index([("order_number", ASCENDING)], unique=True)
    order_collection.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    order_collection.create_index([("applied_coupons.coupon_id", ASCENDING)])

    coupon_collection.create_index([("code", ASCENDING)], unique=True)
    coupon_collection.create_index([("is_active", ASCENDING), ("expiry_date", ASCENDING)])

    address_collection.create_index([("user_id", ASCENDING), ("is_default", ASCENDING)])
    address_collection.create_index([("user_id", ASCENDING), ("is_active", ASCENDING)])

    review_collection.create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    review_collection.create_index([("product_id", ASCENDING), ("status", ASCENDING)])

    banner_collection.create_index([("is_active", ASCENDING), ("priority", DESCENDING)])
    newsletter_collection.create_index([("email", ASCENDING)], unique=True)

    password_reset_collection.create_index([("token", ASCENDING)], unique=True)
    password_reset_collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    abandoned_cart_collection.create_index([("recovery_token", ASCENDING)], unique=True)
    abandoned_cart_collection.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    abandoned_cart_collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    wishlist_collection.create_index([("user_id", ASCENDING)], unique=True)


def db_ping() -> bool:
    try:
        client.admin.command("ping")
        return True
    except Exception as e:
        logger.error(f"Could not reach MongoDB: {e}")
        return False


def run_in_transaction(callback):
    """
    Run callback(session) inside a multi-document transaction when the
    deployment supports it (MONGO_USE_TRANSACTIONS=true, replica set).
    Otherwise callback runs with session=None and its writes are sequential.
    """
    if not settings.MONGO_USE_TRANSACTIONS:
        return callback(None)
    with client.start_session() as session:
        return session.with_transaction(callback)
