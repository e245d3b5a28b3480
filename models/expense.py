"""Pydantic models for Expense data"""
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import EXPENSE_CATEGORIES

TITLE_MAX_LENGTH = 100
MIN_AMOUNT = 0.01
INVALID_DATE_MESSAGE = "Please provide a valid date in ISO format"
# plain decimal strings only: no exponent, padding or digit separators
NUMERIC_STRING = re.compile(r"^[+-]?(\d*\.)?\d+$")


def parse_iso_datetime(value: Any) -> datetime:
    """
    Parses an ISO-8601 date or datetime into a naive UTC datetime, the form Mongo stores.
    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, datetime.min.time())
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(INVALID_DATE_MESSAGE)
    else:
        raise ValueError(INVALID_DATE_MESSAGE)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _clean_title(value: Any, empty_message: str) -> str:
    if value is None:
        raise ValueError(empty_message)
    title = str(value).strip()
    if not title:
        raise ValueError(empty_message)
    if len(title) > TITLE_MAX_LENGTH:
        raise ValueError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    return title


def _clean_amount(value: Any) -> float:
    # bool is an int subclass, but "true" is not an amount
    if value is None or isinstance(value, bool):
        raise ValueError("Amount must be a number")
    if isinstance(value, str) and not NUMERIC_STRING.fullmatch(value):
        raise ValueError("Amount must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError("Amount must be a number")
    if not math.isfinite(amount):
        raise ValueError("Amount must be a number")
    if amount < MIN_AMOUNT:
        raise ValueError("Amount must be greater than 0")
    return amount


def _clean_category(value: Any) -> str:
    if value is None or value == "":
        raise ValueError("Category is required")
    if value not in EXPENSE_CATEGORIES:
        raise ValueError("Please select a valid category")
    return value


class ExpenseCreate(BaseModel):
    """Body of POST /expenses. Missing fields go through the validators so they get readable messages."""
    title: str = Field(default=None, validate_default=True)
    amount: float = Field(default=None, validate_default=True)
    category: str = Field(default=None, validate_default=True)
    date: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value):
        return _clean_title(value, "Title is required")

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, value):
        return _clean_amount(value)

    @field_validator("category", mode="before")
    @classmethod
    def check_category(cls, value):
        return _clean_category(value)

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, value):
        if value is None:
            return None
        return parse_iso_datetime(value)


class ExpenseUpdate(BaseModel):
    """Body of PUT /expenses/{id}. Omitted or null fields keep their stored value."""
    title: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    date: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value):
        if value is None:
            return None
        return _clean_title(value, "Title cannot be empty")

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, value):
        if value is None:
            return None
        return _clean_amount(value)

    @field_validator("category", mode="before")
    @classmethod
    def check_category(cls, value):
        if value is None:
            return None
        if value not in EXPENSE_CATEGORIES:
            raise ValueError("Please select a valid category")
        return value

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, value):
        if value is None:
            return None
        return parse_iso_datetime(value)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExpenseDetails(BaseModel):
    """
    The short form of an expense returned by detail, update, delete and summary.
    """
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    title: str
    amount: float
    category: str
    date: datetime

    @field_validator("date")
    @classmethod
    def mark_utc(cls, value):
        return _as_utc(value)

    @classmethod
    def from_document(cls, doc: dict) -> "ExpenseDetails":
        return cls(
            id=str(doc["_id"]),
            title=doc["title"],
            amount=doc["amount"],
            category=doc["category"],
            date=doc["date"],
        )


class Expense(ExpenseDetails):
    """
    A stored expense with ownership and audit timestamps.
    """
    user: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def mark_timestamps_utc(cls, value):
        return _as_utc(value)

    @classmethod
    def from_document(cls, doc: dict) -> "Expense":
        return cls(
            id=str(doc["_id"]),
            title=doc["title"],
            amount=doc["amount"],
            category=doc["category"],
            date=doc["date"],
            user=str(doc["user"]),
            createdAt=doc.get("createdAt"),
            updatedAt=doc.get("updatedAt"),
        )
