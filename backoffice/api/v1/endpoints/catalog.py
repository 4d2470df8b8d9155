from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from backoffice.core.config import settings
from backoffice.core.database import get_db
from backoffice.schemas.catalog import CatalogDishIn, CatalogDishOut, CatalogSearchOut
from backoffice.services.catalog_service import catalog_service

router = APIRouter(prefix="/dish-catalog", tags=["Dish Catalog"])

@router.put("", response_model=CatalogDishOut)
async def upsert_catalog_dish(dish_in: CatalogDishIn, db: AsyncSession = Depends(get_db)):
    try:
        return await catalog_service.upsert(db, dish_in)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

@router.get("/search", response_model=CatalogSearchOut)
async def search_catalog(
    q: str = Query(..., description="Free-text title query"),
    limit: int = Query(settings.CATALOG_SEARCH_LIMIT),
    db: AsyncSession = Depends(get_db)
):
    items = await catalog_service.search(db, q, limit)
    return CatalogSearchOut(items=[CatalogDishOut.model_validate(i) for i in items])
