import logging
from datetime import datetime, timezone
from typing import Dict, List
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from backoffice.models.catalog import CatalogDish
from backoffice.models.menu import GroupMenu, MenuDish, MenuSection, MenuType
from backoffice.schemas.menu import (
    BasicsPayload,
    DishIn,
    DishOut,
    MenuOut,
    MenuSettings,
    SectionIn,
    SectionWithDishes,
)

logger = logging.getLogger(__name__)

DEFAULT_SECTION_TITLE = "Section"

_STANDARD_SECTIONS = [("Starters", "starter"), ("Mains", "main"), ("Desserts", "dessert")]
DEFAULT_SECTIONS = {
    MenuType.CLOSED_CONVENTIONAL: _STANDARD_SECTIONS,
    MenuType.CLOSED_GROUP: _STANDARD_SECTIONS,
    MenuType.A_LA_CARTE: _STANDARD_SECTIONS,
    MenuType.A_LA_CARTE_GROUP: _STANDARD_SECTIONS,
    MenuType.SPECIAL: [("Menu", "custom")],
}

def _touch(menu: GroupMenu) -> None:
    menu.modified_at = datetime.now(timezone.utc)

class MenuService:
    @staticmethod
    async def _get_menu_row(db: AsyncSession, menu_id: int) -> GroupMenu:
        menu = await db.get(GroupMenu, menu_id)
        if menu is None:
            raise LookupError(f"Menu {menu_id} not found")
        return menu

    @staticmethod
    async def create_draft(db: AsyncSession, menu_type: MenuType) -> GroupMenu:
        """Create an empty draft menu of the given kind with its default sections."""
        menu = GroupMenu(
            menu_title="New menu",
            price=0.0,
            active=True,
            is_draft=True,
            menu_type=menu_type,
            menu_subtitle=[],
            show_dish_images=False,
            included_coffee=False,
            beverage={"type": "not_included"},
            comments=[],
            min_party_size=8,
            main_dishes_limit=False,
            main_dishes_limit_number=1,
        )
        db.add(menu)
        await db.flush()
        for position, (title, kind) in enumerate(DEFAULT_SECTIONS[menu_type]):
            db.add(MenuSection(menu_id=menu.id, title=title, kind=kind, position=position))
        await db.commit()
        await db.refresh(menu)
        logger.info("Created draft menu %s of type %s", menu.id, menu_type.value)
        return menu

    @staticmethod
    async def get_menu(db: AsyncSession, menu_id: int) -> MenuOut:
        menu = await MenuService._get_menu_row(db, menu_id)

        result = await db.execute(
            select(MenuSection)
            .where(MenuSection.menu_id == menu_id)
            .order_by(MenuSection.position, MenuSection.id)
        )
        sections = result.scalars().all()

        dishes_by_section: Dict[int, List[DishOut]] = {s.id: [] for s in sections}
        if sections:
            result = await db.execute(
                select(MenuDish)
                .where(MenuDish.section_id.in_(list(dishes_by_section)))
                .order_by(MenuDish.position, MenuDish.id)
            )
            for dish in result.scalars().all():
                dishes_by_section[dish.section_id].append(DishOut.model_validate(dish))

        return MenuOut(
            id=menu.id,
            menu_title=menu.menu_title,
            price=menu.price or 0.0,
            active=menu.active,
            is_draft=menu.is_draft,
            menu_type=menu.menu_type,
            menu_subtitle=menu.menu_subtitle or [],
            show_dish_images=menu.show_dish_images,
            settings=MenuSettings(
                included_coffee=menu.included_coffee,
                beverage=menu.beverage or {"type": "not_included"},
                comments=menu.comments or [],
                min_party_size=menu.min_party_size,
                main_dishes_limit=menu.main_dishes_limit,
                main_dishes_limit_number=menu.main_dishes_limit_number,
            ),
            sections=[
                SectionWithDishes(
                    id=s.id, title=s.title, kind=s.kind, position=s.position,
                    dishes=dishes_by_section[s.id],
                )
                for s in sections
            ],
            created_at=menu.created_at,
            modified_at=menu.modified_at,
        )

    @staticmethod
    async def patch_basics(db: AsyncSession, menu_id: int, payload: BasicsPayload) -> GroupMenu:
        menu = await MenuService._get_menu_row(db, menu_id)
        menu.menu_title = payload.menu_title.strip() or "New menu"
        menu.price = payload.price
        menu.active = payload.active
        menu.menu_type = payload.menu_type
        menu.menu_subtitle = list(payload.menu_subtitle)
        menu.show_dish_images = payload.show_dish_images
        menu.included_coffee = payload.included_coffee
        menu.beverage = payload.beverage.model_dump()
        menu.comments = list(payload.comments)
        menu.min_party_size = payload.min_party_size
        menu.main_dishes_limit = payload.main_dishes_limit
        menu.main_dishes_limit_number = payload.main_dishes_limit_number
        _touch(menu)
        await db.commit()
        return menu

    @staticmethod
    async def change_menu_type(db: AsyncSession, menu_id: int, menu_type: MenuType) -> MenuType:
        menu = await MenuService._get_menu_row(db, menu_id)
        menu.menu_type = menu_type
        if not menu_type.is_price_per_dish:
            # Fixed-price kinds carry no per-dish price
            section_ids = select(MenuSection.id).where(MenuSection.menu_id == menu_id)
            await db.execute(
                update(MenuDish).where(MenuDish.section_id.in_(section_ids)).values(price=None)
            )
        _touch(menu)
        await db.commit()
        return menu_type

    @staticmethod
    async def replace_sections(db: AsyncSession, menu_id: int, rows: List[SectionIn]) -> List[MenuSection]:
        """Make the menu's sections exactly ``rows``, in order.

        Rows with an id update that section, rows without one create a new
        section, and sections missing from ``rows`` are deleted with their
        dishes. Positions are recomputed from the array index. The returned
        list has the same length and order as ``rows``.
        """
        menu = await MenuService._get_menu_row(db, menu_id)
        result = await db.execute(select(MenuSection).where(MenuSection.menu_id == menu_id))
        existing = {s.id: s for s in result.scalars().all()}

        kept = set()
        saved: List[MenuSection] = []
        for position, row in enumerate(rows):
            title = row.title.strip() or DEFAULT_SECTION_TITLE
            if row.id is not None:
                section = existing.get(row.id)
                if section is None:
                    raise ValueError(f"Section {row.id} does not belong to menu {menu_id}")
                if row.id in kept:
                    raise ValueError(f"Section {row.id} appears more than once")
                kept.add(row.id)
                section.title = title
                section.kind = row.kind
                section.position = position
            else:
                section = MenuSection(menu_id=menu_id, title=title, kind=row.kind, position=position)
                db.add(section)
            saved.append(section)

        stale = [sid for sid in existing if sid not in kept]
        if stale:
            await db.execute(delete(MenuDish).where(MenuDish.section_id.in_(stale)))
            await db.execute(delete(MenuSection).where(MenuSection.id.in_(stale)))

        await db.flush()
        _touch(menu)
        await db.commit()
        logger.info("Menu %s: saved %d sections, removed %d", menu_id, len(saved), len(stale))
        return saved

    @staticmethod
    async def replace_section_dishes(
        db: AsyncSession, menu_id: int, section_id: int, rows: List[DishIn]
    ) -> List[MenuDish]:
        """Make the section's dishes exactly ``rows``, in order."""
        menu = await MenuService._get_menu_row(db, menu_id)
        section = await db.get(MenuSection, section_id)
        if section is None or section.menu_id != menu_id:
            raise LookupError(f"Section {section_id} not found in menu {menu_id}")

        refs = {row.catalog_dish_id for row in rows if row.catalog_dish_id is not None}
        if refs:
            found = set((await db.execute(select(CatalogDish.id).where(CatalogDish.id.in_(refs)))).scalars().all())
            missing = sorted(refs - found)
            if missing:
                raise ValueError(f"Unknown catalog dishes: {missing}")

        result = await db.execute(select(MenuDish).where(MenuDish.section_id == section_id))
        existing = {d.id: d for d in result.scalars().all()}
        priced = menu.menu_type.is_price_per_dish

        kept = set()
        saved: List[MenuDish] = []
        for position, row in enumerate(rows):
            title = row.title.strip()
            if not title:
                raise ValueError("Dish title is required")
            if row.id is not None:
                dish = existing.get(row.id)
                if dish is None:
                    raise ValueError(f"Dish {row.id} does not belong to section {section_id}")
                if row.id in kept:
                    raise ValueError(f"Dish {row.id} appears more than once")
                kept.add(row.id)
            else:
                dish = MenuDish(section_id=section_id)
                db.add(dish)
            dish.catalog_dish_id = row.catalog_dish_id
            dish.title = title
            dish.description = row.description
            dish.allergens = list(row.allergens)
            dish.supplement_enabled = row.supplement_enabled
            dish.supplement_price = row.supplement_price if row.supplement_enabled else None
            dish.price = row.price if priced else None
            dish.active = row.active
            dish.position = position
            saved.append(dish)

        stale = [did for did in existing if did not in kept]
        if stale:
            await db.execute(delete(MenuDish).where(MenuDish.id.in_(stale)))

        await db.flush()
        _touch(menu)
        await db.commit()
        logger.info("Menu %s section %s: saved %d dishes", menu_id, section_id, len(saved))
        return saved

    @staticmethod
    async def publish(db: AsyncSession, menu_id: int) -> GroupMenu:
        menu = await MenuService._get_menu_row(db, menu_id)
        dish_count = await db.scalar(
            select(func.count(MenuDish.id))
            .join(MenuSection, MenuSection.id == MenuDish.section_id)
            .where(MenuSection.menu_id == menu_id)
        )
        if not dish_count:
            raise ValueError("A menu needs at least one dish before it can be published")
        menu.is_draft = False
        _touch(menu)
        await db.commit()
        logger.info("Published menu %s", menu_id)
        return menu

menu_service = MenuService()
