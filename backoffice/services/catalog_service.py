import logging
from typing import List
from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession
from backoffice.models.catalog import CatalogDish
from backoffice.schemas.catalog import CatalogDishIn

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 50

def title_key(title: str) -> str:
    """Deduplication key: case-insensitive, whitespace-collapsed title."""
    return " ".join(title.split()).casefold()

class CatalogService:
    @staticmethod
    async def upsert(db: AsyncSession, row: CatalogDishIn) -> CatalogDish:
        """Update the row named by ``row.id``, or find/create one by title."""
        title = " ".join(row.title.split())
        if not title:
            raise ValueError("Catalog dish title is required")
        key = title_key(title)

        if row.id is not None:
            dish = await db.get(CatalogDish, row.id)
            if dish is None:
                raise LookupError(f"Catalog dish {row.id} not found")
            clash = await db.scalar(
                select(CatalogDish.id).where(CatalogDish.title_key == key, CatalogDish.id != row.id)
            )
            if clash is not None:
                raise ValueError(f"Another catalog dish is already titled '{title}'")
        else:
            dish = await db.scalar(select(CatalogDish).where(CatalogDish.title_key == key))
            if dish is not None:
                # Shared rows are not rewritten by whoever happens to save next
                logger.debug("Catalog upsert matched existing dish %s", dish.id)
                return dish
            dish = CatalogDish()
            db.add(dish)

        dish.title = title
        dish.title_key = key
        dish.description = row.description.strip()
        dish.allergens = list(row.allergens)
        dish.default_supplement_enabled = row.default_supplement_enabled
        dish.default_supplement_price = row.default_supplement_price if row.default_supplement_enabled else None
        await db.commit()
        await db.refresh(dish)
        logger.info("Catalog dish %s saved (%s)", dish.id, title)
        return dish

    @staticmethod
    async def search(db: AsyncSession, query: str, limit: int = 8) -> List[CatalogDish]:
        """Case-insensitive title search, prefix matches first."""
        term = title_key(query)
        if not term:
            return []
        limit = max(1, min(MAX_SEARCH_LIMIT, limit))
        prefix_first = case((CatalogDish.title_key.startswith(term, autoescape=True), 0), else_=1)
        result = await db.execute(
            select(CatalogDish)
            .where(CatalogDish.title_key.contains(term, autoescape=True))
            .order_by(prefix_first, CatalogDish.title_key)
            .limit(limit)
        )
        return list(result.scalars().all())

catalog_service = CatalogService()
