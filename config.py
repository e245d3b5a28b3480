"""Environment-driven settings for the expense tracker API"""
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv() # Searches for .env in current dir and parents

# MONGODB_URI kept as fallback for hosting platforms that use that name
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")
DB_NAME = os.getenv("DB_NAME", "expense_tracker")

APP_ENV = os.getenv("APP_ENV", "development").lower()
IS_PRODUCTION = APP_ENV == "production"

_DEV_JWT_SECRET = "dev-secret-change-me"
JWT_SECRET = os.getenv("JWT_SECRET", _DEV_JWT_SECRET)
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "30"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "15/minute")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", "5000"))

EXPENSE_CATEGORIES = (
    "Food",
    "Transportation",
    "Entertainment",
    "Healthcare",
    "Shopping",
    "Bills",
    "Education",
    "Travel",
    "Other",
)


def log_settings() -> None:
    """Logs the effective configuration without leaking secrets."""
    logger.info(f"Environment: {APP_ENV}")
    logger.info(f"MongoDB URI configured: {bool(MONGO_URI)}, database: {DB_NAME}")
    if not MONGO_URI:
        logger.error("MONGO_URI (or MONGODB_URI) environment variable not set! Database connection will fail.")
    if JWT_SECRET == _DEV_JWT_SECRET:
        logger.warning("JWT_SECRET not set, using the development placeholder secret.")
