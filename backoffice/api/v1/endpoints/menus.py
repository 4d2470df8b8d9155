from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from backoffice.core.database import get_db
from backoffice.schemas.menu import (
    BasicsPayload,
    DishesOut,
    DishesReplace,
    DishOut,
    DraftCreate,
    DraftCreated,
    MenuOut,
    MenuTypeChange,
    PublishResult,
    SectionOut,
    SectionsOut,
    SectionsReplace,
    WriteResult,
)
from backoffice.services.menu_service import menu_service

router = APIRouter(prefix="/group-menus", tags=["Group Menus"])

@router.post("/drafts", response_model=DraftCreated, status_code=201)
async def create_draft(draft_in: DraftCreate, db: AsyncSession = Depends(get_db)):
    menu = await menu_service.create_draft(db, draft_in.menu_type)
    return DraftCreated(menu_id=menu.id)

@router.get("/{menu_id}", response_model=MenuOut)
async def get_menu(menu_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await menu_service.get_menu(db, menu_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

@router.patch("/{menu_id}/basics", response_model=WriteResult)
async def patch_basics(menu_id: int, payload: BasicsPayload, db: AsyncSession = Depends(get_db)):
    try:
        await menu_service.patch_basics(db, menu_id, payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return WriteResult(success=True)

@router.patch("/{menu_id}/type", response_model=MenuTypeChange)
async def change_menu_type(menu_id: int, change: MenuTypeChange, db: AsyncSession = Depends(get_db)):
    try:
        saved = await menu_service.change_menu_type(db, menu_id, change.menu_type)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return MenuTypeChange(menu_type=saved)

@router.put("/{menu_id}/sections", response_model=SectionsOut)
async def replace_sections(menu_id: int, body: SectionsReplace, db: AsyncSession = Depends(get_db)):
    try:
        sections = await menu_service.replace_sections(db, menu_id, body.sections)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SectionsOut(sections=[SectionOut.model_validate(s) for s in sections])

@router.put("/{menu_id}/sections/{section_id}/dishes", response_model=DishesOut)
async def replace_section_dishes(
    menu_id: int,
    section_id: int,
    body: DishesReplace,
    db: AsyncSession = Depends(get_db)
):
    try:
        dishes = await menu_service.replace_section_dishes(db, menu_id, section_id, body.dishes)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return DishesOut(dishes=[DishOut.model_validate(d) for d in dishes])

@router.post("/{menu_id}/publish", response_model=PublishResult)
async def publish_menu(menu_id: int, db: AsyncSession = Depends(get_db)):
    try:
        await menu_service.publish(db, menu_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return PublishResult(success=True, menu_id=menu_id)
