# expense_service.py
"""
Expense bookkeeping: CRUD plus the monthly aggregates and report.

Every read and write takes a Scope. An unrestricted scope (admin) sees all
rows; an owned scope adds `user_id = ?` to the SQL, so a row belonging to
someone else looks exactly like a row that does not exist.

Money is stored as integer cents. Totals are summed by the store as
integers and turned into two-place Decimals here, never floats.

Writes are not transactional with their read-back: if another request
deletes the row between the INSERT/UPDATE and the SELECT that follows, the
caller gets NotFoundError even though the write itself went through.
"""
import asyncio
import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from authorization import Scope
from database import Database
from errors import NotFoundError, ValidationError
from models import MAX_AMOUNT

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
MAX_AMOUNT_CENTS = int(MAX_AMOUNT * 100)

SELECT_EXPENSES = """
    SELECT e.*, c.name AS category_name
    FROM expenses e
    LEFT JOIN categories c ON e.category_id = c.id
"""

IN_MONTH = (
    "CAST(strftime('%m', e.date) AS INTEGER) = ? "
    "AND CAST(strftime('%Y', e.date) AS INTEGER) = ?"
)

INSERT_EXPENSE = """
    INSERT INTO expenses (
        description, amount_cents, date, category_id, is_fixed, is_installment,
        total_installments, current_installment, notes, user_id
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

REQUIRED_FIELDS = ("description", "amount", "date", "user_id")


def to_cents(amount: Any) -> int:
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("Amount must be a number") from None
    if not value.is_finite():
        raise ValidationError("Amount must be a number")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(CENT)


def average_of(total_cents: Optional[int], count: int) -> Optional[Decimal]:
    if not count or total_cents is None:
        return None
    return (Decimal(total_cents) / count / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def _iso_date(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValidationError("Date must use the YYYY-MM-DD format") from None


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _prepare(data: dict, require_owner: bool = True) -> dict:
    """Check an incoming expense and convert it to column values."""
    required = REQUIRED_FIELDS if require_owner else REQUIRED_FIELDS[:-1]
    missing = [name for name in required if not data.get(name)]
    if missing:
        raise ValidationError(f"Invalid data: {', '.join(missing)} required")

    amount_cents = to_cents(data["amount"])
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than 0")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Amount cannot exceed {MAX_AMOUNT}")

    is_installment = bool(data.get("is_installment"))
    total = data.get("total_installments")
    current = data.get("current_installment")
    if is_installment and not (_is_positive_int(total) and _is_positive_int(current)):
        raise ValidationError(
            "total_installments and current_installment must be positive integers "
            "for installment expenses"
        )

    return {
        "description": data["description"],
        "amount_cents": amount_cents,
        "date": _iso_date(data["date"]),
        "category_id": data.get("category_id") or None,
        "is_fixed": int(bool(data.get("is_fixed"))),
        "is_installment": int(is_installment),
        "total_installments": total or None,
        "current_installment": current or None,
        "notes": data.get("notes") or None,
        "user_id": data.get("user_id"),
    }


def _check_month_year(month: Any, year: Any) -> tuple[int, int]:
    if not month or not year:
        raise ValidationError("Month and year are required")
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise ValidationError("Month and year must be integers") from None
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    return month, year


def _shape(row: dict) -> dict:
    expense = dict(row)
    expense["amount"] = from_cents(expense.pop("amount_cents"))
    expense["is_fixed"] = bool(expense["is_fixed"])
    expense["is_installment"] = bool(expense["is_installment"])
    return expense


def partition(expenses: list[dict]) -> dict:
    """
    Split a month's expenses for the report.

    Flags are applied in priority order: a row marked both fixed and
    installment is reported as fixed only.
    """
    fixed, installment, variable = [], [], []
    for expense in expenses:
        if expense["is_fixed"]:
            fixed.append(expense)
        elif expense["is_installment"]:
            installment.append(expense)
        else:
            variable.append(expense)
    return {"all": expenses, "fixed": fixed, "variable": variable, "installment": installment}


class ExpenseService:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def _select(self, scope: Scope, where: str, params: tuple, order_by: str) -> list[dict]:
        clause, scope_params = scope.predicate()
        rows = await self.db.fetch_all(
            f"{SELECT_EXPENSES} WHERE {where}{clause} ORDER BY {order_by}",
            params + scope_params,
        )
        return [_shape(row) for row in rows]

    async def list_all(self, scope: Scope) -> list[dict]:
        return await self._select(scope, "1 = 1", (), "e.date DESC, e.id DESC")

    async def get(self, scope: Scope, expense_id: int) -> dict:
        rows = await self._select(scope, "e.id = ?", (expense_id,), "e.id")
        if not rows:
            raise NotFoundError("Expense not found")
        return rows[0]

    async def list_by_month(self, scope: Scope, month: int, year: int) -> list[dict]:
        month, year = _check_month_year(month, year)
        return await self._select(scope, IN_MONTH, (month, year), "e.date DESC, e.id DESC")

    async def list_fixed(self, scope: Scope) -> list[dict]:
        return await self._select(scope, "e.is_fixed = 1", (), "e.amount_cents DESC, e.id")

    async def list_installments(self, scope: Scope) -> list[dict]:
        return await self._select(scope, "e.is_installment = 1", (), "e.date DESC, e.id DESC")

    async def monthly_summary(self, scope: Scope, month: int, year: int) -> dict:
        """
        Count, total, average, min and max for one month, plus totals per kind.

        variableExpenses only counts rows with neither flag set, so
        fixedExpenses + variableExpenses falls short of totalAmount by any
        non-fixed installment rows.
        """
        month, year = _check_month_year(month, year)
        clause, scope_params = scope.predicate()
        row = await self.db.fetch_one(
            f"""
            SELECT
                COUNT(*) AS total_expenses,
                SUM(e.amount_cents) AS total_cents,
                MIN(e.amount_cents) AS min_cents,
                MAX(e.amount_cents) AS max_cents,
                SUM(CASE WHEN e.is_fixed = 1 THEN e.amount_cents ELSE 0 END) AS fixed_cents,
                SUM(CASE WHEN e.is_fixed = 0 AND e.is_installment = 0
                         THEN e.amount_cents ELSE 0 END) AS variable_cents,
                SUM(CASE WHEN e.is_installment = 1 THEN e.amount_cents ELSE 0 END) AS installment_cents
            FROM expenses e
            WHERE {IN_MONTH}{clause}
            """,
            (month, year) + scope_params,
        )
        count = row["total_expenses"]
        return {
            "totalExpenses": count,
            "totalAmount": from_cents(row["total_cents"] or 0),
            "averageAmount": average_of(row["total_cents"], count),
            "minAmount": from_cents(row["min_cents"]),
            "maxAmount": from_cents(row["max_cents"]),
            "fixedExpenses": from_cents(row["fixed_cents"] or 0),
            "variableExpenses": from_cents(row["variable_cents"] or 0),
            "installmentExpenses": from_cents(row["installment_cents"] or 0),
        }

    async def category_summary(self, scope: Scope, month: int, year: int) -> list[dict]:
        """Per-category count, total and average for one month, biggest total first."""
        month, year = _check_month_year(month, year)
        clause, scope_params = scope.predicate()
        rows = await self.db.fetch_all(
            f"""
            SELECT
                e.category_id AS id,
                c.name AS name,
                COUNT(*) AS count,
                SUM(e.amount_cents) AS total_cents
            FROM expenses e
            LEFT JOIN categories c ON e.category_id = c.id
            WHERE {IN_MONTH}{clause}
            GROUP BY e.category_id
            ORDER BY total_cents DESC, e.category_id
            """,
            (month, year) + scope_params,
        )
        return [
            {
                "id": row["id"],
                "name": row["name"],
                "count": row["count"],
                "total": from_cents(row["total_cents"]),
                "average": average_of(row["total_cents"], row["count"]),
            }
            for row in rows
        ]

    async def monthly_report(self, scope: Scope, month: int, year: int) -> dict:
        """
        Summary, category breakdown and the month's expenses in one response.

        The three queries run concurrently; if any of them fails the whole
        report fails.
        """
        month, year = _check_month_year(month, year)
        summary, categories, expenses = await asyncio.gather(
            self.monthly_summary(scope, month, year),
            self.category_summary(scope, month, year),
            self.list_by_month(scope, month, year),
        )
        return {
            "summary": summary,
            "categories": categories,
            "expenses": partition(expenses),
        }

    async def create(self, data: dict) -> dict:
        """Insert one expense and return the stored row."""
        values = _prepare(data)
        result = await self.db.execute(
            INSERT_EXPENSE,
            (
                values["description"],
                values["amount_cents"],
                values["date"],
                values["category_id"],
                values["is_fixed"],
                values["is_installment"],
                values["total_installments"],
                values["current_installment"],
                values["notes"],
                values["user_id"],
            ),
        )
        logger.info("Created expense id=%s for user id=%s", result.lastrowid, values["user_id"])
        return await self.get(Scope.unrestricted(), result.lastrowid)

    async def create_many(self, items: Iterable[dict]) -> int:
        """Insert several expenses in one statement; returns the inserted row count."""
        if not isinstance(items, list) or not items:
            raise ValidationError("Invalid data: a non-empty list of expenses is required")
        if not all(isinstance(item, dict) for item in items):
            raise ValidationError("Invalid data: every expense must be an object")
        prepared = []
        for index, item in enumerate(items):
            try:
                prepared.append(_prepare(item))
            except ValidationError as e:
                raise ValidationError(f"Expense #{index + 1}: {e.message}") from None

        inserted = await self.db.execute_many(
            INSERT_EXPENSE,
            [
                (
                    v["description"],
                    v["amount_cents"],
                    v["date"],
                    v["category_id"],
                    v["is_fixed"],
                    v["is_installment"],
                    v["total_installments"],
                    v["current_installment"],
                    v["notes"],
                    v["user_id"],
                )
                for v in prepared
            ],
        )
        logger.info("Bulk inserted %s expenses", inserted)
        return inserted

    async def update(self, scope: Scope, expense_id: int, data: dict) -> dict:
        """Replace an expense's fields; the owner never changes."""
        await self.get(scope, expense_id)
        values = _prepare(data, require_owner=False)
        clause, scope_params = scope.predicate(column="user_id")
        await self.db.execute(
            f"""
            UPDATE expenses
            SET description = ?, amount_cents = ?, date = ?, category_id = ?,
                is_fixed = ?, is_installment = ?, total_installments = ?,
                current_installment = ?, notes = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?{clause}
            """,
            (
                values["description"],
                values["amount_cents"],
                values["date"],
                values["category_id"],
                values["is_fixed"],
                values["is_installment"],
                values["total_installments"],
                values["current_installment"],
                values["notes"],
                expense_id,
            )
            + scope_params,
        )
        logger.info("Updated expense id=%s", expense_id)
        return await self.get(scope, expense_id)

    async def delete(self, scope: Scope, expense_id: int) -> None:
        await self.get(scope, expense_id)
        clause, scope_params = scope.predicate(column="user_id")
        await self.db.execute(
            f"DELETE FROM expenses WHERE id = ?{clause}",
            (expense_id,) + scope_params,
        )
        logger.info("Deleted expense id=%s", expense_id)
