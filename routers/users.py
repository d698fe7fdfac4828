# routers/users.py

import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from pymongo import ReturnDocument

from auth import utils as auth_utils, schemas as auth_schemas
from database import user_collection
from utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)


@router.get("/me", response_model=auth_schemas.UserInfo)
async def read_users_me(current_user: Dict = Depends(auth_utils.get_current_user)):
    return auth_schemas.user_info(current_user)


@router.put("/me", response_model=auth_schemas.UserInfo)
async def update_users_me(
    update: auth_schemas.UserUpdate,
    current_user: Dict = Depends(auth_utils.get_current_user),
):
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = utcnow()

    updated = user_collection.find_one_and_update(
        {"_id": current_user["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"Profile updated for {current_user['email']}")
    return auth_schemas.user_info(updated)
