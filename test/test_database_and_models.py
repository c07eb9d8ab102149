# test_database_and_models.py
import asyncio
from datetime import date

import pytest
from pydantic import ValidationError

import errors
from models import MAX_AMOUNT, CategoryIn, ExpenseIn, UserRegister


# DATABASE

def test_init_db_creates_tables(db) -> None:
    with db.connect() as conn:
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
    assert {"users", "categories", "expenses"} <= tables


def test_init_db_is_idempotent(db) -> None:
    db.init_db()


INSERT_USER = "INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)"


def test_unique_violation_is_a_conflict(db) -> None:
    asyncio.run(db.execute(INSERT_USER, ("alice", "alice@example.com", "hash")))

    with pytest.raises(errors.ConflictError):
        asyncio.run(db.execute(INSERT_USER, ("alice", "other@example.com", "hash")))
    assert len(asyncio.run(db.fetch_all("SELECT * FROM users"))) == 1


def test_other_store_failures_are_store_errors(db) -> None:
    with pytest.raises(errors.StoreError):
        asyncio.run(db.fetch_all("SELEC * FROM users"))
    with pytest.raises(errors.StoreError):
        asyncio.run(db.execute("INSERT INTO missing_table VALUES (?)", (1,)))


def test_integer_too_wide_for_the_store_is_rejected(db) -> None:
    with pytest.raises(errors.ValidationError):
        asyncio.run(db.execute(INSERT_USER, (2**70, "wide@example.com", "hash")))


# MODELS

def test_valid_user_registration() -> None:
    user = UserRegister(username="alice", email="alice@example.com", password="SecurePass123!")
    assert user.role.value == "user"


@pytest.mark.parametrize(
    "fields",
    [
        {"username": "ab"},  # Only 2 characters
        {"username": "bob!"},
        {"password": "12345"},  # Only 5 characters
        {"email": "not-an-email"},
        {"role": "owner"},
    ],
)
def test_invalid_user_registration(fields) -> None:
    data = {"username": "bob", "email": "bob@example.com", "password": "password123"}
    data.update(fields)
    with pytest.raises(ValidationError):
        UserRegister(**data)


def test_valid_expense() -> None:
    expense = ExpenseIn(description="Coffee maker", amount=50.25, date=date(2024, 12, 9))
    assert str(expense.amount) == "50.25"
    assert expense.is_fixed is False
    assert expense.is_installment is False


@pytest.mark.parametrize(
    "fields",
    [
        {"amount": -50},  # Negative!
        {"amount": "10.123"},
        {"amount": "10000000000"},
        {"description": "ab"},
        {"date": date(1999, 12, 31)},
        {"category_id": 0},
        {"is_installment": True},
        {"is_installment": True, "total_installments": 3},
        {"is_installment": True, "total_installments": 3, "current_installment": -1},
        {"notes": "x" * 501},
    ],
)
def test_invalid_expense(fields) -> None:
    data = {"description": "Coffee maker", "amount": 50, "date": date(2024, 12, 9)}
    data.update(fields)
    with pytest.raises(ValidationError):
        ExpenseIn(**data)


def test_installment_expense_with_counters() -> None:
    expense = ExpenseIn(
        description="Laptop",
        amount="1200",
        date="2024-12-09",
        is_installment=True,
        total_installments=12,
        current_installment=1,
    )
    assert expense.total_installments == 12


def test_category_name_bounds() -> None:
    assert CategoryIn(name="  Food  ", description="   ").model_dump() == {
        "name": "Food",
        "description": None,
    }
    with pytest.raises(ValidationError):
        CategoryIn(name="F")


def test_largest_amount_is_accepted() -> None:
    expense = ExpenseIn(description="Company car", amount=str(MAX_AMOUNT), date="2024-01-01")
    assert expense.amount == MAX_AMOUNT
