# File: main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from database import db_ping, ensure_indexes
from services.errors import StoreError
from auth.router import router as auth_router
from routers.users import router as users_router
from routers.products import router as products_router
from routers.categories import router as categories_router
from routers.cart import router as cart_router
from routers.orders import router as orders_router
from routers.coupons import router as coupons_router
from routers.addresses import router as addresses_router
from routers.reviews import router as reviews_router
from routers.banners import router as banners_router
from routers.newsletter import router as newsletter_router
from routers.abandoned_carts import router as abandoned_carts_router
from routers.wishlist import router as wishlist_router
from routers.recommendations import router as recommendations_router
from routers.status import router as status_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db_ping():
        ensure_indexes()
        logger.info(f"Connected to MongoDB database '{settings.DATABASE_NAME}'")
    else:
        logger.error("Starting without a reachable database; indexes were not created")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Backend services for the Stride shoe storefront.",
    version="1.0.0",
    lifespan=lifespan,
)


# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Domain errors ---
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind.value},
    )


# --- Include Routers ---
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(products_router)
app.include_router(categories_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(coupons_router)
app.include_router(addresses_router)
app.include_router(reviews_router)
app.include_router(banners_router)
app.include_router(newsletter_router)
app.include_router(abandoned_carts_router)
app.include_router(wishlist_router)
app.include_router(recommendations_router)
app.include_router(status_router)


# --- Root Endpoint ---
@app.get("/")
def read_root():
    return {"status": f"{settings.APP_NAME} is online and operational."}
