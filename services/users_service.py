"""Service layer for user accounts."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from models.user import UserRegister
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)

USER_EXISTS_MESSAGE = "User already exists"


async def create_user(collection: AsyncIOMotorCollection, payload: UserRegister) -> Dict[str, Any]:
    """
    Stores a new user with a hashed password.
    Raises ValueError when the email is already registered.
    """
    try:
        if await collection.find_one({"email": payload.email}, {"_id": 1}):
            logger.warning(f"Registration rejected, email already in use: {payload.email}")
            raise ValueError(USER_EXISTS_MESSAGE)
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        document = {
            "name": payload.name,
            "email": payload.email,
            "password": hash_password(payload.password),
            "createdAt": now,
            "updatedAt": now,
        }
        result = await collection.insert_one(document)
    except DuplicateKeyError:
        # lost a race with a concurrent registration; the unique index caught it
        logger.warning(f"Registration rejected by unique index: {payload.email}")
        raise ValueError(USER_EXISTS_MESSAGE)
    except PyMongoError as e:
        logger.error(f"Database error creating user: {e}")
        raise ConnectionError(f"Database error creating user: {e}")
    document["_id"] = result.inserted_id
    logger.info(f"Registered user {result.inserted_id}.")
    return document


async def authenticate_user(collection: AsyncIOMotorCollection, email: str, password: str) -> Optional[Dict[str, Any]]:
    """Returns the user document when email and password match, otherwise None."""
    try:
        user = await collection.find_one({"email": email})
    except PyMongoError as e:
        logger.error(f"Database error looking up user for login: {e}")
        raise ConnectionError(f"Database error looking up user: {e}")
    if user is None or not verify_password(password, user.get("password", "")):
        return None
    return user


async def get_user_by_id(collection: AsyncIOMotorCollection, user_id: str) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(user_id):
        return None
    try:
        return await collection.find_one({"_id": ObjectId(user_id)}, {"password": 0})
    except PyMongoError as e:
        logger.error(f"Database error fetching user {user_id}: {e}")
        raise ConnectionError(f"Database error fetching user: {e}")
