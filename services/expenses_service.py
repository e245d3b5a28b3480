"""Service layer for handling expense-related logic."""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from models.expense import Expense, ExpenseCreate, ExpenseDetails, ExpenseUpdate

logger = logging.getLogger(__name__)

INVALID_ID_MESSAGE = "Invalid expense ID format"
MONTHLY_STATS_LIMIT = 6


def _object_id(expense_id: str) -> ObjectId:
    if not ObjectId.is_valid(expense_id):
        raise ValueError(INVALID_ID_MESSAGE)
    return ObjectId(expense_id)


def _utcnow() -> datetime:
    # Mongo hands datetimes back naive, so store them that way too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_expense_filter(
    user_id: ObjectId,
    category: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Builds the Mongo filter that scopes a query to one user, with optional category and date range."""
    query: Dict[str, Any] = {"user": user_id}
    if category:
        query["category"] = category
    if start_date or end_date:
        query["date"] = {}
        if start_date:
            query["date"]["$gte"] = start_date
        if end_date:
            query["date"]["$lte"] = end_date
    return query


def build_pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit)
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalExpenses": total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


# --- Database Interaction Functions (Depend on collection passed from route) ---

async def create_expense(collection: AsyncIOMotorCollection, user_id: ObjectId, payload: ExpenseCreate) -> Expense:
    now = _utcnow()
    document = {
        "title": payload.title,
        "amount": payload.amount,
        "category": payload.category,
        "date": payload.date or now,
        "user": user_id,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await collection.insert_one(document)
    except PyMongoError as e:
        logger.error(f"Database error inserting expense: {e}")
        raise ConnectionError(f"Database error inserting expense: {e}")
    document["_id"] = result.inserted_id
    logger.info(f"Created expense {result.inserted_id} for user {user_id}.")
    return Expense.from_document(document)


async def list_expenses(
    collection: AsyncIOMotorCollection,
    user_id: ObjectId,
    category: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    """
    Fetches one page of the user's expenses, newest first, plus the pagination block.
    """
    query = build_expense_filter(user_id, category, start_date, end_date)
    skip = (page - 1) * limit
    logger.info(f"Listing expenses for user {user_id} with filter {query}, page {page}, limit {limit}.")
    try:
        cursor = collection.find(query).sort("date", DESCENDING).skip(skip).limit(limit)
        expenses = [Expense.from_document(doc) async for doc in cursor]
        total = await collection.count_documents(query)
    except PyMongoError as e:
        logger.error(f"Database error fetching expenses: {e}")
        raise ConnectionError(f"Database error fetching expenses: {e}")
    return {"expenses": expenses, "pagination": build_pagination(page, limit, total)}


async def get_expense(collection: AsyncIOMotorCollection, user_id: ObjectId, expense_id: str) -> Optional[ExpenseDetails]:
    oid = _object_id(expense_id)
    try:
        doc = await collection.find_one({"_id": oid, "user": user_id})
    except PyMongoError as e:
        logger.error(f"Database error fetching expense {expense_id}: {e}")
        raise ConnectionError(f"Database error fetching expense: {e}")
    if doc is None:
        return None
    return ExpenseDetails.from_document(doc)


async def update_expense(
    collection: AsyncIOMotorCollection,
    user_id: ObjectId,
    expense_id: str,
    payload: ExpenseUpdate,
) -> Optional[ExpenseDetails]:
    """Applies the supplied fields only. Returns None when the user owns no such expense."""
    oid = _object_id(expense_id)
    changes = payload.model_dump(exclude_none=True)
    changes["updatedAt"] = _utcnow()
    try:
        doc = await collection.find_one_and_update(
            {"_id": oid, "user": user_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        logger.error(f"Database error updating expense {expense_id}: {e}")
        raise ConnectionError(f"Database error updating expense: {e}")
    if doc is None:
        return None
    logger.info(f"Updated expense {expense_id} fields: {sorted(changes)}")
    return ExpenseDetails.from_document(doc)


async def delete_expense(collection: AsyncIOMotorCollection, user_id: ObjectId, expense_id: str) -> Optional[ExpenseDetails]:
    oid = _object_id(expense_id)
    logger.warning(f"Deleting expense {expense_id} for user {user_id}.")
    try:
        doc = await collection.find_one_and_delete({"_id": oid, "user": user_id})
    except PyMongoError as e:
        logger.error(f"Database error deleting expense {expense_id}: {e}")
        raise ConnectionError(f"Database error deleting expense: {e}")
    if doc is None:
        return None
    return ExpenseDetails.from_document(doc)


# --- Aggregations ---

async def get_expense_stats(
    collection: AsyncIOMotorCollection,
    user_id: ObjectId,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Runs the three statistics pipelines over the user's (optionally date-bounded) expenses:
    overall totals, totals per category, and the most recent months that have data.
    """
    match = {"$match": build_expense_filter(user_id, start_date=start_date, end_date=end_date)}
    total_pipeline = [
        match,
        {
            "$group": {
                "_id": None,
                "totalAmount": {"$sum": "$amount"},
                "totalExpenses": {"$sum": 1},
                "avgAmount": {"$avg": "$amount"},
            }
        },
        {"$project": {"_id": 0}},
    ]
    category_pipeline = [
        match,
        {
            "$group": {
                "_id": "$category",
                "totalAmount": {"$sum": "$amount"},
                "count": {"$sum": 1},
            }
        },
        {"$sort": {"totalAmount": -1}},
    ]
    monthly_pipeline = [
        match,
        {
            "$group": {
                "_id": {"year": {"$year": "$date"}, "month": {"$month": "$date"}},
                "totalAmount": {"$sum": "$amount"},
                "count": {"$sum": 1},
            }
        },
        {"$sort": {"_id.year": -1, "_id.month": -1}},
        {"$limit": MONTHLY_STATS_LIMIT},
    ]
    try:
        total_stats = await collection.aggregate(total_pipeline).to_list(length=None)
        category_stats = await collection.aggregate(category_pipeline).to_list(length=None)
        monthly_stats = await collection.aggregate(monthly_pipeline).to_list(length=None)
    except PyMongoError as e:
        logger.error(f"Database error computing expense stats: {e}")
        raise ConnectionError(f"Database error computing expense stats: {e}")

    # an empty match yields no group row, or one with a null average depending on the server
    if total_stats and total_stats[0].get("totalExpenses"):
        total = total_stats[0]
    else:
        total = {"totalAmount": 0, "totalExpenses": 0, "avgAmount": 0}

    return {
        "total": total,
        "byCategory": category_stats,
        "monthly": monthly_stats,
    }


def summarize_expenses(expenses: List[ExpenseDetails]) -> Dict[str, Any]:
    """Sums amounts per category and overall. Amounts and percentages are rounded to 2 decimals."""
    category_totals: Dict[str, float] = {}
    total_amount = 0.0
    for expense in expenses:
        category_totals[expense.category] = category_totals.get(expense.category, 0.0) + expense.amount
        total_amount += expense.amount

    breakdown = [
        {
            "category": category,
            "totalAmount": round(amount, 2),
            "percentage": round(amount / total_amount * 100, 2),
        }
        for category, amount in category_totals.items()
    ]
    breakdown.sort(key=lambda item: item["totalAmount"], reverse=True)

    return {
        "totalExpenses": len(expenses),
        "totalAmount": round(total_amount, 2),
        "categoryBreakdown": breakdown,
        "expenses": expenses,
    }


async def get_expense_summary(collection: AsyncIOMotorCollection, user_id: ObjectId) -> Dict[str, Any]:
    logger.info(f"Building expense summary for user {user_id}.")
    try:
        cursor = collection.find({"user": user_id}).sort("date", DESCENDING)
        expenses = [ExpenseDetails.from_document(doc) async for doc in cursor]
    except PyMongoError as e:
        logger.error(f"Database error fetching expenses for summary: {e}")
        raise ConnectionError(f"Database error fetching expenses: {e}")
    return summarize_expenses(expenses)
