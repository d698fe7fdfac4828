import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError

from . import schemas, utils
from config.settings import settings
from database import password_reset_collection, user_collection
from schemas import PasswordReset, User
from utils import as_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

RESET_SENT_MESSAGE = "If an account with that email exists, we have sent a password reset link."


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def create_user(user: schemas.UserCreate):
    email = user.email.lower()
    if user_collection.find_one({"email": email}):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered."
        )

    user_doc = User(
        name=user.name,
        email=email,
        password=utils.get_password_hash(user.password),
        phone=user.phone,
        is_admin=utils.is_admin_email(email),
    ).model_dump()
    try:
        result = user_collection.insert_one(user_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered.")
    user_doc["_id"] = result.inserted_id

    logger.info(f"New user registered: {email}")
    access_token = utils.create_access_token(data={"sub": email})
    return {
        "message": "Account created successfully.",
        "token": {"access_token": access_token, "token_type": "bearer"},
        "user": schemas.user_info(user_doc).model_dump(),
    }


@router.post("/login")
async def login_for_access_token(form_data: schemas.UserLogin):
    user = user_collection.find_one({"email": form_data.email.lower()})
    if not user or not utils.verify_password(form_data.password, user["password"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password."
        )

    user_collection.update_one({"_id": user["_id"]}, {"$set": {"last_login": utcnow()}})
    access_token = utils.create_access_token(data={"sub": user["email"]})

    return JSONResponse(content={
        "token": {"access_token": access_token, "token_type": "bearer"},
        "user": schemas.user_info(user).model_dump()
    })


# --- Password reset ---
def _find_valid_reset(token: str):
    reset = password_reset_collection.find_one({"token": token, "used": False})
    if not reset or as_utc(reset["expires_at"]) <= utcnow():
        return None
    return reset


def _invalidate_user_tokens(user_id: str):
    password_reset_collection.update_many(
        {"user_id": user_id, "used": False},
        {"$set": {"used": True, "used_at": utcnow(), "updated_at": utcnow()}},
    )


@router.post("/forgot-password")
async def forgot_password(payload: schemas.ForgotPasswordRequest, request: Request):
    email = payload.email.lower()
    user = user_collection.find_one({"email": email})
    if not user:
        logger.warning(f"Password reset requested for unknown email {email}")
        return {"message": RESET_SENT_MESSAGE}

    # Rate limit: count this email's requests in the last hour
    now = utcnow()
    window_start = now - timedelta(hours=1)
    recent = [
        r for r in password_reset_collection.find({"email": email}, {"created_at": 1})
        if as_utc(r["created_at"]) > window_start
    ]
    if len(recent) >= settings.RESET_REQUESTS_PER_HOUR:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"You have reached the limit of {settings.RESET_REQUESTS_PER_HOUR} requests per hour. Please try again later."
        )

    user_id = str(user["_id"])
    _invalidate_user_tokens(user_id)

    token = secrets.token_hex(32)
    password_reset_collection.insert_one(PasswordReset(
        user_id=user_id,
        email=email,
        token=token,
        expires_at=now + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    ).model_dump())

    if not utils.send_password_reset_email(email, user.get("name", "there"), token):
        logger.error(f"Failed to send password reset email to {email}")

    logger.info(f"Password reset requested for {email}")
    return {"message": RESET_SENT_MESSAGE}


@router.get("/verify-reset-token/{token}")
async def verify_reset_token(token: str):
    if len(token) != 64:
        raise HTTPException(status_code=400, detail="Invalid token format")
    reset = _find_valid_reset(token)
    if not reset or not user_collection.find_one({"email": reset["email"]}):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    remaining = as_utc(reset["expires_at"]) - utcnow()
    return {
        "message": "Token is valid",
        "email": reset["email"],
        "time_remaining_minutes": max(0, int(remaining.total_seconds() // 60)),
    }


@router.post("/reset-password")
async def reset_password(payload: schemas.ResetPasswordRequest):
    reset = _find_valid_reset(payload.token)
    if not reset:
        raise HTTPException(
            status_code=400,
            detail="Invalid or expired reset token. Please request a new password reset."
        )

    user = user_collection.find_one({"email": reset["email"]})
    if not user:
        raise HTTPException(status_code=400, detail="Invalid reset token. Please request a new password reset.")

    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {
            "password": utils.get_password_hash(payload.password),
            "password_changed_at": utcnow(),
            "updated_at": utcnow(),
        }},
    )
    # Marks this token used along with any others still open
    _invalidate_user_tokens(str(user["_id"]))
    utils.send_password_changed_email(user["email"], user.get("name", "there"))

    logger.info(f"Password reset completed for {user['email']}")
    return {"message": "Password has been reset successfully. You can now log in with your new password."}


@router.post("/cancel-reset/{token}")
async def cancel_reset(token: str):
    if len(token) != 64:
        raise HTTPException(status_code=400, detail="Invalid token format")
    result = password_reset_collection.update_one(
        {"token": token, "used": False},
        {"$set": {"used": True, "used_at": utcnow(), "updated_at": utcnow()}},
    )
    if result.modified_count:
        logger.info("Password reset request cancelled")
    return {"message": "Password reset request has been cancelled"}
