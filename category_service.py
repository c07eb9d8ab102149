# category_service.py
import logging
from typing import Optional

from database import Database
from errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def list_all(self) -> list[dict]:
        return await self.db.fetch_all("SELECT * FROM categories ORDER BY name ASC")

    async def get(self, category_id: int) -> dict:
        category = await self.db.fetch_one("SELECT * FROM categories WHERE id = ?", (category_id,))
        if category is None:
            raise NotFoundError("Category not found")
        return category

    async def create(self, name: str, description: Optional[str] = None) -> dict:
        if not name:
            raise ValidationError("Category name is required")
        result = await self.db.execute(
            "INSERT INTO categories (name, description) VALUES (?, ?)",
            (name, description),
        )
        logger.info("Created category %s (id=%s)", name, result.lastrowid)
        return await self.get(result.lastrowid)

    async def update(self, category_id: int, name: str, description: Optional[str] = None) -> dict:
        if not name:
            raise ValidationError("Category name is required")
        await self.get(category_id)
        await self.db.execute(
            """UPDATE categories
               SET name = ?, description = ?, updated_at = CURRENT_TIMESTAMP
               WHERE id = ?""",
            (name, description, category_id),
        )
        return await self.get(category_id)

    async def delete(self, category_id: int) -> None:
        """Delete a category, refusing while any expense still points at it."""
        await self.get(category_id)
        row = await self.db.fetch_one(
            "SELECT COUNT(*) AS count FROM expenses WHERE category_id = ?",
            (category_id,),
        )
        if row["count"] > 0:
            raise ConflictError(
                f"Cannot delete category: it is in use by {row['count']} expense(s)"
            )
        await self.db.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        logger.info("Deleted category id=%s", category_id)
