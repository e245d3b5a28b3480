from datetime import datetime

import pytest
from pydantic import ValidationError

from models.expense import ExpenseCreate, ExpenseUpdate, parse_iso_datetime
from models.user import UserLogin, UserRegister


def _messages(exc_info):
    return [str(err["ctx"]["error"]) for err in exc_info.value.errors()]


def test_expense_create_trims_title_and_parses_amount_string():
    expense = ExpenseCreate(title="  Groceries  ", amount="42.10", category="Food")
    assert expense.title == "Groceries"
    assert expense.amount == pytest.approx(42.10)
    assert expense.date is None


def test_expense_create_reports_every_missing_field():
    with pytest.raises(ValidationError) as exc_info:
        ExpenseCreate()
    assert _messages(exc_info) == [
        "Title is required",
        "Amount must be a number",
        "Category is required",
    ]


@pytest.mark.parametrize("amount, message", [
    ("abc", "Amount must be a number"),
    (True, "Amount must be a number"),
    ("nan", "Amount must be a number"),
    (0, "Amount must be greater than 0"),
    (-3, "Amount must be greater than 0"),
])
def test_expense_create_rejects_bad_amounts(amount, message):
    with pytest.raises(ValidationError) as exc_info:
        ExpenseCreate(title="x", amount=amount, category="Food")
    assert _messages(exc_info) == [message]


def test_expense_create_rejects_long_title_and_unknown_category():
    with pytest.raises(ValidationError) as exc_info:
        ExpenseCreate(title="t" * 101, amount=1, category="Groceries")
    assert _messages(exc_info) == [
        "Title cannot exceed 100 characters",
        "Please select a valid category",
    ]


def test_expense_update_allows_partial_bodies():
    update = ExpenseUpdate(amount=5)
    assert update.model_dump(exclude_none=True) == {"amount": 5.0}


def test_expense_update_rejects_blank_title():
    with pytest.raises(ValidationError) as exc_info:
        ExpenseUpdate(title="   ")
    assert _messages(exc_info) == ["Title cannot be empty"]


def test_parse_iso_datetime_normalizes_to_naive_utc():
    assert parse_iso_datetime("2024-03-10") == datetime(2024, 3, 10)
    assert parse_iso_datetime("2024-03-10T12:30:00+02:00") == datetime(2024, 3, 10, 10, 30)
    assert parse_iso_datetime("2024-03-10T12:30:00Z") == datetime(2024, 3, 10, 12, 30)


@pytest.mark.parametrize("value", ["10/03/2024", "", 12345, None])
def test_parse_iso_datetime_rejects_non_iso(value):
    with pytest.raises(ValueError, match="valid date in ISO format"):
        parse_iso_datetime(value)


def test_user_register_normalizes_email_and_name():
    user = UserRegister(name="  Bob ", email=" Bob@Example.COM ", password="Passw0rd")
    assert user.name == "Bob"
    assert user.email == "bob@example.com"


@pytest.mark.parametrize("password, message", [
    ("Ab1", "Password must be at least 6 characters long"),
    ("alllower1", "Password must contain at least one uppercase letter, one lowercase letter, and one number"),
    ("NoDigitsHere", "Password must contain at least one uppercase letter, one lowercase letter, and one number"),
])
def test_user_register_password_rules(password, message):
    with pytest.raises(ValidationError) as exc_info:
        UserRegister(name="Bob", email="bob@example.com", password=password)
    assert _messages(exc_info) == [message]


def test_user_register_name_rules():
    with pytest.raises(ValidationError) as exc_info:
        UserRegister(name="B", email="bob@example.com", password="Passw0rd")
    assert _messages(exc_info) == ["Name must be at least 2 characters long"]


def test_user_login_requires_password_and_valid_email():
    with pytest.raises(ValidationError) as exc_info:
        UserLogin(email="not-an-email", password="")
    assert _messages(exc_info) == ["Please enter a valid email", "Password is required"]


@pytest.mark.parametrize("email", ["a@b..c", "a@-b.com", "a.@b.com", "a@b.c", "two@@example.com", "no-at-sign.com"])
def test_user_register_rejects_malformed_emails(email):
    with pytest.raises(ValidationError) as exc_info:
        UserRegister(name="Al", email=email, password="Secret123")
    assert _messages(exc_info) == ["Please enter a valid email"]


@pytest.mark.parametrize("amount", ["1e3", " 5 ", "1_000", "0x10", "5\n"])
def test_expense_create_rejects_loose_numeric_strings(amount):
    with pytest.raises(ValidationError) as exc_info:
        ExpenseCreate(title="x", amount=amount, category="Food")
    assert _messages(exc_info) == ["Amount must be a number"]


@pytest.mark.parametrize("amount, expected", [("12", 12.0), ("+3.5", 3.5), (".75", 0.75), (8, 8.0)])
def test_expense_create_accepts_plain_decimals(amount, expected):
    assert ExpenseCreate(title="x", amount=amount, category="Food").amount == expected
