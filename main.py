"""Main FastAPI application"""
import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from routes import limiter, router as api_router

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            # RichHandler renders time and level itself
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False,
        },
    },
    "loggers": {
        "uvicorn": {
             "handlers": ["default"],
             "level": "INFO",
             "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": { # Root logger for our application
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

config.log_settings()

# Application state to hold the database client and collections
app_state = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Connect to MongoDB
    logger.info(f"Connecting to MongoDB database '{config.DB_NAME}'...")
    try:
        app_state["db_client"] = AsyncIOMotorClient(config.MONGO_URI)
        app_state["db"] = app_state["db_client"][config.DB_NAME]
        await app_state["db_client"].admin.command('ping')
        logger.info("MongoDB ping successful.")
        app_state["users_collection"] = app_state["db"].get_collection("users")
        app_state["expenses_collection"] = app_state["db"].get_collection("expenses")
        await app_state["users_collection"].create_index([("email", ASCENDING)], unique=True)
        await app_state["expenses_collection"].create_index([("user", ASCENDING), ("date", DESCENDING)])
        logger.info(f"Successfully connected to MongoDB database: {config.DB_NAME}")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        app_state["db"] = None
        app_state["users_collection"] = None
        app_state["expenses_collection"] = None

    yield # Application runs here

    # Shutdown: Close MongoDB connection
    if app_state.get("db_client"):
        logger.info("Closing MongoDB connection...")
        app_state["db_client"].close()
        logger.info("MongoDB connection closed.")
    app_state.clear()


app = FastAPI(
    title="Expense Tracker API",
    description="Personal expense tracking with per-user records, filters and statistics.",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# --- Response envelope for errors ---

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        ctx_error = (err.get("ctx") or {}).get("error")
        errors.append({
            "msg": str(ctx_error) if ctx_error is not None else err.get("msg"),
            "path": ".".join(str(part) for part in loc[1:]),
            "location": loc[0] if loc else None,
            "value": err.get("input"),
        })
    logger.info(f"Validation failed on {request.method} {request.url.path}: {[e['msg'] for e in errors]}")
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"success": False, "message": "Validation failed", "errors": errors}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
        if config.IS_PRODUCTION:
            content.pop("error", None)
    else:
        content = {"success": False, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content), headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    content = {"success": False, "message": "Server error"}
    if not config.IS_PRODUCTION:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# --- Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api", tags=["api"])


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "API is running..."}


# Make app state accessible via middleware
@app.middleware("http")
async def add_app_config_to_request(request: Request, call_next):
    """Adds the collection handles to the request state."""
    request.state.users_collection = app_state.get("users_collection")
    request.state.expenses_collection = app_state.get("expenses_collection")
    response = await call_next(request)
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=not config.IS_PRODUCTION
    )
