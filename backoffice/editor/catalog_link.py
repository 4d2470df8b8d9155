"""Link dishes to shared catalog rows.

A dish that already carries a catalog reference keeps it; nothing is sent.
Otherwise its content is upserted into the catalog, which either matches an
existing row by title or creates one, and the returned id becomes the dish's
reference. If the upsert fails the dish is saved unlinked and the rest of
its section carries on.
"""
import logging
from typing import Optional

from backoffice.core.errors import TransportError, WriteRejectedError
from backoffice.editor.tree import EditorDish
from backoffice.schemas.catalog import CatalogDishIn

logger = logging.getLogger(__name__)


def catalog_entry_for(dish: EditorDish) -> CatalogDishIn:
    return CatalogDishIn(
        title=dish.title.strip(),
        description=dish.description.strip(),
        allergens=list(dish.allergens),
        default_supplement_enabled=dish.supplement_enabled,
        default_supplement_price=dish.supplement_price if dish.supplement_enabled else None,
    )


async def resolve_catalog_ref(api, dish: EditorDish) -> Optional[int]:
    """Return the catalog id to send with ``dish``, or None to send it unlinked."""
    if dish.catalog_dish_id is not None:
        return dish.catalog_dish_id
    if not dish.title.strip():
        return None
    try:
        row = await api.upsert_catalog_dish(catalog_entry_for(dish))
    except (TransportError, WriteRejectedError) as exc:
        logger.warning("Catalog link failed for dish %r, saving it unlinked: %s", dish.title.strip(), exc)
        return None
    logger.debug("Dish %s linked to catalog row %s", dish.client_id, row.id)
    return row.id
