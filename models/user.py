"""Pydantic models for user registration, login and profile data"""
import re
from datetime import datetime, timezone
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, field_validator

NAME_MIN_LENGTH = 2
PASSWORD_MIN_LENGTH = 6
INVALID_EMAIL_MESSAGE = "Please enter a valid email"

# at least one lower-case letter, one upper-case letter and one digit
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def normalize_email(value: Any) -> str:
    """Validates the address syntax (no DNS lookup) and returns it lower-cased."""
    if not isinstance(value, str):
        raise ValueError(INVALID_EMAIL_MESSAGE)
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise ValueError(INVALID_EMAIL_MESSAGE)
    # top-level domain of at least two characters
    if len(result.ascii_domain.rsplit(".", 1)[-1]) < 2:
        raise ValueError(INVALID_EMAIL_MESSAGE)
    return result.normalized.lower()


class UserRegister(BaseModel):
    name: str = Field(default=None, validate_default=True)
    email: str = Field(default=None, validate_default=True)
    password: str = Field(default=None, validate_default=True)

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, value):
        name = str(value).strip() if value is not None else ""
        if not name:
            raise ValueError("Name is required")
        if len(name) < NAME_MIN_LENGTH:
            raise ValueError(f"Name must be at least {NAME_MIN_LENGTH} characters long")
        return name

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, value):
        return normalize_email(value)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, value):
        if not isinstance(value, str) or len(value) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
        if not PASSWORD_PATTERN.match(value):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, and one number"
            )
        return value


class UserLogin(BaseModel):
    email: str = Field(default=None, validate_default=True)
    password: str = Field(default=None, validate_default=True)

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, value):
        return normalize_email(value)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, value):
        if not isinstance(value, str) or not value:
            raise ValueError("Password is required")
        return value


class User(BaseModel):
    """A user as exposed over the API. The password hash never leaves the service layer."""
    id: str
    name: str
    email: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def mark_utc(cls, value):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_document(cls, doc: dict) -> "User":
        return cls(
            id=str(doc["_id"]),
            name=doc["name"],
            email=doc["email"],
            createdAt=doc.get("createdAt"),
        )


class AuthResult(BaseModel):
    id: str
    name: str
    email: str
    token: str
