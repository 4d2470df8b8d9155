"""Local tree model of the menu being edited: menu -> sections -> dishes.

Every entity is a frozen dataclass and every operation returns a new
``MenuTree``. A snapshot handed to a save therefore never changes under it,
however much the user keeps editing. Unchanged children are shared between
snapshots, which is safe because nothing can mutate them.

Two identifiers coexist on sections and dishes: ``client_id`` is generated
locally at creation and never changes or gets reused; ``id`` is the server id,
absent until the first structural save round-trips. Positions are always the
dense 0..n-1 index among siblings and are recomputed after every add, remove
or reorder.
"""
import uuid
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from backoffice.core.errors import MenuValidationError
from backoffice.editor.numbers import to_price
from backoffice.models.menu import MenuType
from backoffice.schemas.catalog import CatalogDishOut
from backoffice.schemas.menu import DishOut, MenuOut, SectionWithDishes

NEW_SECTION_TITLE = "New section"
NEW_DISH_TITLE = "New dish"

SECTION_FIELDS = frozenset({"title", "kind", "expanded"})
DISH_FIELDS = frozenset({
    "catalog_dish_id",
    "title",
    "description",
    "allergens",
    "supplement_enabled",
    "supplement_price",
    "price",
    "active",
})


def new_client_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class EditorDish:
    client_id: str
    id: Optional[int] = None
    catalog_dish_id: Optional[int] = None
    title: str = NEW_DISH_TITLE
    description: str = ""
    allergens: Tuple[str, ...] = ()
    supplement_enabled: bool = False
    supplement_price: Optional[float] = None
    price: Optional[float] = None
    active: bool = True
    position: int = 0


@dataclass(frozen=True)
class EditorSection:
    client_id: str
    id: Optional[int] = None
    title: str = NEW_SECTION_TITLE
    kind: str = "custom"
    position: int = 0
    dishes: Tuple[EditorDish, ...] = ()
    # UI only: never fingerprinted, never sent
    expanded: bool = True

    def dish(self, client_id: str) -> EditorDish:
        for dish in self.dishes:
            if dish.client_id == client_id:
                return dish
        raise MenuValidationError(f"Unknown dish {client_id} in section {self.client_id}")


@dataclass(frozen=True)
class SectionSummary:
    title: str
    dish_count: int
    active_dish_count: int


@dataclass(frozen=True)
class MenuSummary:
    """Read-only figures derived from a snapshot, for previews."""
    menu_type: MenuType
    sections: Tuple[SectionSummary, ...]

    @property
    def dish_count(self) -> int:
        return sum(s.dish_count for s in self.sections)

    @property
    def active_dish_count(self) -> int:
        return sum(s.active_dish_count for s in self.sections)


def with_positions(items: Sequence) -> tuple:
    return tuple(item if item.position == idx else replace(item, position=idx) for idx, item in enumerate(items))


def _order_by_client_id(items: Sequence, ordered_client_ids: Iterable[str]) -> list:
    """Order ``items`` by the given ids; unknown ids are ignored and
    items the list does not mention keep their relative order at the end."""
    by_id = {item.client_id: item for item in items}
    seen = set()
    ordered = []
    for client_id in ordered_client_ids:
        item = by_id.get(client_id)
        if item is None or client_id in seen:
            continue
        ordered.append(item)
        seen.add(client_id)
    ordered.extend(item for item in items if item.client_id not in seen)
    return ordered


def _checked_changes(changes: Dict, allowed: frozenset, what: str) -> Dict:
    unknown = set(changes) - allowed
    if unknown:
        raise MenuValidationError(f"Cannot edit {what} field(s): {', '.join(sorted(unknown))}")
    if "allergens" in changes:
        changes = dict(changes, allergens=tuple(changes["allergens"]))
    return changes


def _coerce_prices(changes: Dict, price_default: Optional[float]) -> Dict:
    """Prices arrive as typed; blank or unreadable input falls back to the default."""
    if "price" in changes:
        changes = dict(changes, price=to_price(changes["price"], default=price_default))
    if "supplement_price" in changes:
        changes = dict(changes, supplement_price=to_price(changes["supplement_price"], default=None))
    return changes


def _apply(item, changes: Dict):
    if all(getattr(item, key) == value for key, value in changes.items()):
        return item
    return replace(item, **changes)


@dataclass(frozen=True)
class MenuTree:
    menu_type: MenuType = MenuType.CLOSED_CONVENTIONAL
    sections: Tuple[EditorSection, ...] = ()

    @property
    def is_price_per_dish(self) -> bool:
        return self.menu_type.is_price_per_dish

    def _index(self, client_id: str) -> int:
        for idx, section in enumerate(self.sections):
            if section.client_id == client_id:
                return idx
        raise MenuValidationError(f"Unknown section {client_id}")

    def section(self, client_id: str) -> EditorSection:
        return self.sections[self._index(client_id)]

    def _replace_section(self, idx: int, section: EditorSection) -> "MenuTree":
        if section is self.sections[idx]:
            return self
        sections = list(self.sections)
        sections[idx] = section
        return replace(self, sections=tuple(sections))

    # Sections

    def add_section(self, title: str = NEW_SECTION_TITLE, kind: str = "custom") -> "MenuTree":
        section = EditorSection(client_id=new_client_id("section"), title=title, kind=kind)
        return replace(self, sections=with_positions(self.sections + (section,)))

    def remove_section(self, client_id: str) -> "MenuTree":
        idx = self._index(client_id)
        # A menu always keeps one section to put dishes in
        if len(self.sections) <= 1:
            return self
        sections = self.sections[:idx] + self.sections[idx + 1:]
        return replace(self, sections=with_positions(sections))

    def update_section(self, client_id: str, **changes) -> "MenuTree":
        changes = _checked_changes(changes, SECTION_FIELDS, "section")
        idx = self._index(client_id)
        return self._replace_section(idx, _apply(self.sections[idx], changes))

    def move_section(self, from_index: int, to_index: int) -> "MenuTree":
        count = len(self.sections)
        if from_index == to_index or not (0 <= from_index < count and 0 <= to_index < count):
            return self
        sections = list(self.sections)
        sections.insert(to_index, sections.pop(from_index))
        return replace(self, sections=with_positions(sections))

    def reorder_sections(self, ordered_client_ids: Sequence[str]) -> "MenuTree":
        if list(ordered_client_ids) == [s.client_id for s in self.sections]:
            return self
        return replace(self, sections=with_positions(_order_by_client_id(self.sections, ordered_client_ids)))

    # Dishes

    def add_dish(
        self,
        section_client_id: str,
        from_catalog: Optional[CatalogDishOut] = None,
        title: Optional[str] = None,
    ) -> "MenuTree":
        """Append a dish; ``from_catalog`` copies a catalog entry's content once."""
        idx = self._index(section_client_id)
        section = self.sections[idx]
        price = 0.0 if self.is_price_per_dish else None
        if from_catalog is not None:
            dish = EditorDish(
                client_id=new_client_id("dish"),
                catalog_dish_id=from_catalog.id,
                title=title or from_catalog.title,
                description=from_catalog.description,
                allergens=tuple(from_catalog.allergens),
                supplement_enabled=from_catalog.default_supplement_enabled,
                supplement_price=from_catalog.default_supplement_price,
                price=price,
            )
        else:
            dish = EditorDish(client_id=new_client_id("dish"), title=title or NEW_DISH_TITLE, price=price)
        section = replace(section, dishes=with_positions(section.dishes + (dish,)))
        return self._replace_section(idx, section)

    def update_dish(self, section_client_id: str, dish_client_id: str, **changes) -> "MenuTree":
        changes = _checked_changes(changes, DISH_FIELDS, "dish")
        changes = _coerce_prices(changes, 0.0 if self.is_price_per_dish else None)
        idx = self._index(section_client_id)
        section = self.sections[idx]
        section.dish(dish_client_id)
        dishes = tuple(
            _apply(dish, changes) if dish.client_id == dish_client_id else dish
            for dish in section.dishes
        )
        if all(a is b for a, b in zip(dishes, section.dishes)):
            return self
        return self._replace_section(idx, replace(section, dishes=dishes))

    def remove_dish(self, section_client_id: str, dish_client_id: str) -> "MenuTree":
        idx = self._index(section_client_id)
        section = self.sections[idx]
        section.dish(dish_client_id)
        dishes = [dish for dish in section.dishes if dish.client_id != dish_client_id]
        return self._replace_section(idx, replace(section, dishes=with_positions(dishes)))

    def reorder_dishes(self, section_client_id: str, ordered_client_ids: Sequence[str]) -> "MenuTree":
        idx = self._index(section_client_id)
        section = self.sections[idx]
        if list(ordered_client_ids) == [d.client_id for d in section.dishes]:
            return self
        dishes = with_positions(_order_by_client_id(section.dishes, ordered_client_ids))
        return self._replace_section(idx, replace(section, dishes=dishes))

    def with_menu_type(self, menu_type: MenuType) -> "MenuTree":
        if menu_type == self.menu_type:
            return self
        return replace(self, menu_type=menu_type)

    # Derived data

    def summary(self) -> MenuSummary:
        return MenuSummary(
            menu_type=self.menu_type,
            sections=tuple(
                SectionSummary(
                    title=s.title,
                    dish_count=len(s.dishes),
                    active_dish_count=sum(1 for d in s.dishes if d.active),
                )
                for s in self.sections
            ),
        )

    # Server rows -> editor entities

    @classmethod
    def from_menu(cls, menu: MenuOut, previous: Optional["MenuTree"] = None) -> "MenuTree":
        """Build a tree from the authority's read model.

        Entities already known by server id in ``previous`` keep their client
        id and expand flag.
        """
        known = {s.id: s for s in previous.sections if s.id is not None} if previous else {}
        sections = [section_from_row(row, known.get(row.id)) for row in menu.sections]
        return cls(menu_type=menu.menu_type, sections=with_positions(sections))


def dish_from_row(row: DishOut, previous: Optional[EditorDish] = None) -> EditorDish:
    return EditorDish(
        client_id=previous.client_id if previous else new_client_id("dish"),
        id=row.id,
        catalog_dish_id=row.catalog_dish_id,
        title=row.title,
        description=row.description or "",
        allergens=tuple(row.allergens or ()),
        supplement_enabled=row.supplement_enabled,
        supplement_price=row.supplement_price,
        price=row.price,
        active=row.active,
        position=row.position,
    )


def section_from_row(row: SectionWithDishes, previous: Optional[EditorSection] = None) -> EditorSection:
    known: Dict[int, EditorDish] = {}
    if previous is not None:
        known = {d.id: d for d in previous.dishes if d.id is not None}
    dishes: List[EditorDish] = [dish_from_row(d, known.get(d.id)) for d in row.dishes]
    return EditorSection(
        client_id=previous.client_id if previous else new_client_id("section"),
        id=row.id,
        title=row.title,
        kind=row.kind,
        position=row.position,
        dishes=with_positions(dishes),
        expanded=previous.expanded if previous else True,
    )
