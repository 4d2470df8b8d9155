from fastapi import APIRouter
from .menus import router as menus_router
from .catalog import router as catalog_router

router = APIRouter()
router.include_router(menus_router)
router.include_router(catalog_router)
