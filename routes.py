"""API Routes for users and expenses"""
import logging
from datetime import datetime
from typing import Annotated, Any, Dict, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorCollection
from slowapi import Limiter
from slowapi.util import get_remote_address

import config
from models.expense import ExpenseCreate, ExpenseUpdate, INVALID_DATE_MESSAGE, parse_iso_datetime
from models.user import AuthResult, User, UserLogin, UserRegister
from services import expenses_service, users_service
from utils.security import create_access_token, decode_access_token

router = APIRouter()
logger = logging.getLogger(__name__)

# --- Rate Limiter Setup ---
# In-memory storage, keyed on client address
limiter = Limiter(key_func=get_remote_address)

bearer_scheme = HTTPBearer(auto_error=False)

EXPENSE_NOT_FOUND = "Expense not found"


# --- Dependency Functions ---

def _get_collection(request: Request, name: str) -> AsyncIOMotorCollection:
    collection = getattr(request.state, name, None)
    if collection is None:
        logger.error(f"Collection '{name}' not found in application state. Check MongoDB connection.")
        raise HTTPException(status_code=503, detail="Database service not available.")
    return collection


def get_expenses_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB expenses collection from the request state."""
    return _get_collection(request, "expenses_collection")


def get_users_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB users collection from the request state."""
    return _get_collection(request, "users_collection")


ExpensesCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_expenses_collection)]
UsersCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_users_collection)]


async def get_current_user(
    users: UsersCollectionDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Dict[str, Any]:
    """Resolves the bearer token to a user document (without the password hash)."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no token")

    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, token failed")

    try:
        user = await users_service.get_user_by_id(users, user_id)
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, user not found")
    return user


CurrentUserDep = Annotated[Dict[str, Any], Depends(get_current_user)]


def _parse_date_param(name: str, value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise RequestValidationError([
            {"type": "value_error", "loc": ("query", name), "msg": INVALID_DATE_MESSAGE, "input": value}
        ])


def date_range(
    start_date: Annotated[Optional[str], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[str], Query(alias="endDate")] = None,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    return _parse_date_param("startDate", start_date), _parse_date_param("endDate", end_date)


DateRangeDep = Annotated[Tuple[Optional[datetime], Optional[datetime]], Depends(date_range)]


def _server_error(e: Exception, action: str) -> HTTPException:
    logger.exception(f"Unexpected error {action}: {e}")
    return HTTPException(status_code=500, detail={"message": "Server error", "error": str(e)})


def _user_oid(user: Dict[str, Any]) -> ObjectId:
    return user["_id"]


# --- User Routes ---

@router.post("/users/register", status_code=status.HTTP_201_CREATED, summary="Register User")
@limiter.limit(config.AUTH_RATE_LIMIT)
async def register_user(request: Request, payload: UserRegister, users: UsersCollectionDep):
    logger.info(f"POST /users/register called for {payload.email}")
    try:
        user = await users_service.create_user(users, payload)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, "registering user")

    result = AuthResult(
        id=str(user["_id"]),
        name=user["name"],
        email=user["email"],
        token=create_access_token(str(user["_id"])),
    )
    return {"success": True, "message": "User registered successfully", "data": result}


@router.post("/users/login", summary="Log In")
@limiter.limit(config.AUTH_RATE_LIMIT)
async def login_user(request: Request, payload: UserLogin, users: UsersCollectionDep):
    logger.info(f"POST /users/login called for {payload.email}")
    try:
        user = await users_service.authenticate_user(users, payload.email, payload.password)
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, "logging in")

    if user is None:
        logger.warning(f"Failed login attempt for {payload.email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    result = AuthResult(
        id=str(user["_id"]),
        name=user["name"],
        email=user["email"],
        token=create_access_token(str(user["_id"])),
    )
    return {"success": True, "message": "Login successful", "data": result}


@router.get("/users/me", summary="Current User Profile")
async def get_me(user: CurrentUserDep):
    return {"success": True, "message": "User profile retrieved successfully", "data": User.from_document(user)}


# --- Expense Routes ---

@router.post("/expenses", status_code=status.HTTP_201_CREATED, summary="Add Expense")
async def add_expense(payload: ExpenseCreate, collection: ExpensesCollectionDep, user: CurrentUserDep):
    logger.info(f"POST /expenses called by user {user['_id']}")
    try:
        expense = await expenses_service.create_expense(collection, _user_oid(user), payload)
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, "adding expense")
    return {"success": True, "message": "Expense added successfully", "data": expense}


@router.get("/expenses", summary="List Expenses", description="Lists the user's expenses, newest first, with optional category/date filters and pagination.")
async def get_expenses(
    collection: ExpensesCollectionDep,
    user: CurrentUserDep,
    dates: DateRangeDep,
    category: Optional[str] = Query(None, description="Only expenses in this category."),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    start_date, end_date = dates
    logger.info(f"GET /expenses called by user {user['_id']}: category={category} page={page} limit={limit}")
    try:
        result = await expenses_service.list_expenses(
            collection, _user_oid(user), category=category,
            start_date=start_date, end_date=end_date, page=page, limit=limit,
        )
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, "fetching expenses")
    return {
        "success": True,
        "message": "Expenses retrieved successfully",
        "data": result["expenses"],
        "pagination": result["pagination"],
    }


# stats and summary are declared before /expenses/{expense_id} so they are not taken for ids

@router.get("/expenses/stats", summary="Expense Statistics")
async def get_expense_stats(collection: ExpensesCollectionDep, user: CurrentUserDep, dates: DateRangeDep):
    start_date, end_date = dates
    logger.info(f"GET /expenses/stats called by user {user['_id']}")
    try:
        stats = await expenses_service.get_expense_stats(collection, _user_oid(user), start_date, end_date)
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, "computing expense stats")
    return {"success": True, "message": "Expense statistics retrieved successfully", "data": stats}


@router.get("/expenses/summary", summary="Expense Summary", description="All of the user's expenses with totals per category.")
async def get_expense_summary(collection: ExpensesCollectionDep, user: CurrentUserDep):
    logger.info(f"GET /expenses/summary called by user {user['_id']}")
    try:
        summary = await expenses_service.get_expense_summary(collection, _user_oid(user))
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, "building expense summary")
    return {"success": True, "message": "Expense summary retrieved successfully", "data": summary}


@router.get("/expenses/{expense_id}", summary="Expense Details")
async def get_expense_by_id(expense_id: str, collection: ExpensesCollectionDep, user: CurrentUserDep):
    try:
        expense = await expenses_service.get_expense(collection, _user_oid(user), expense_id)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, f"fetching expense {expense_id}")
    if expense is None:
        raise HTTPException(status_code=404, detail=EXPENSE_NOT_FOUND)
    return {"success": True, "message": "Expense details retrieved successfully", "data": expense}


@router.put("/expenses/{expense_id}", summary="Update Expense")
async def update_expense(expense_id: str, payload: ExpenseUpdate, collection: ExpensesCollectionDep, user: CurrentUserDep):
    logger.info(f"PUT /expenses/{expense_id} called by user {user['_id']}")
    try:
        expense = await expenses_service.update_expense(collection, _user_oid(user), expense_id, payload)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, f"updating expense {expense_id}")
    if expense is None:
        raise HTTPException(status_code=404, detail=EXPENSE_NOT_FOUND)
    return {"success": True, "message": "Expense updated successfully", "data": expense}


@router.delete("/expenses/{expense_id}", summary="Delete Expense")
async def delete_expense(expense_id: str, collection: ExpensesCollectionDep, user: CurrentUserDep):
    logger.warning(f"DELETE /expenses/{expense_id} called by user {user['_id']}")
    try:
        expense = await expenses_service.delete_expense(collection, _user_oid(user), expense_id)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    except ConnectionError as ce:
        raise HTTPException(status_code=503, detail=str(ce))
    except Exception as e:
        raise _server_error(e, f"deleting expense {expense_id}")
    if expense is None:
        raise HTTPException(status_code=404, detail=EXPENSE_NOT_FOUND)
    return {"success": True, "message": "Expense deleted successfully", "data": {"deletedExpense": expense}}
