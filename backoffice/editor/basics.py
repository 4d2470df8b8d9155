"""Basics: the flat scalar projection of a menu.

The editor keeps what the user typed (``BasicsDraft``, numbers as free text)
and only turns it into a validated ``BasicsPayload`` when fingerprinting or
sending. Numbers coerce leniently: blank or unreadable input falls back to
the field's default instead of failing validation.
"""
from dataclasses import dataclass, replace
from typing import Iterable, Tuple

from backoffice.core.errors import MenuValidationError
from backoffice.editor.numbers import to_count, to_price
from backoffice.models.menu import MenuType
from backoffice.schemas.menu import (
    BEVERAGE_TYPES,
    BasicsPayload,
    BeverageNotIncluded,
    BeverageOptional,
    BeverageUnlimited,
    MenuOut,
)

DEFAULT_MENU_TITLE = "New menu"


def _clean_lines(lines: Iterable[str]) -> Tuple[str, ...]:
    return tuple(line.strip() for line in lines if line and line.strip())


def _text(number) -> str:
    if number is None:
        return ""
    if float(number).is_integer():
        return str(int(number))
    return str(number)


@dataclass(frozen=True)
class BasicsDraft:
    title: str = DEFAULT_MENU_TITLE
    price: str = "0"
    active: bool = True
    menu_type: MenuType = MenuType.CLOSED_CONVENTIONAL
    subtitles: Tuple[str, ...] = ()
    show_dish_images: bool = False
    included_coffee: bool = False
    beverage_type: str = "not_included"
    beverage_price: str = ""
    beverage_has_supplement: bool = False
    beverage_supplement_price: str = ""
    comments: Tuple[str, ...] = ()
    min_party_size: str = "8"
    main_dishes_limit: bool = False
    main_dishes_limit_number: str = "1"

    def update(self, **changes) -> "BasicsDraft":
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise MenuValidationError(f"Cannot edit basics field(s): {', '.join(sorted(unknown))}")
        if "beverage_type" in changes and changes["beverage_type"] not in BEVERAGE_TYPES:
            raise MenuValidationError(f"Unknown beverage policy {changes['beverage_type']!r}")
        if "menu_type" in changes:
            try:
                changes["menu_type"] = MenuType(changes["menu_type"])
            except ValueError:
                raise MenuValidationError(f"Unknown menu type {changes['menu_type']!r}")
        for key in ("subtitles", "comments"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return replace(self, **changes)

    @classmethod
    def from_menu(cls, menu: MenuOut) -> "BasicsDraft":
        beverage = menu.settings.beverage
        return cls(
            title=menu.menu_title,
            price=_text(menu.price),
            active=menu.active,
            menu_type=menu.menu_type,
            subtitles=tuple(menu.menu_subtitle),
            show_dish_images=menu.show_dish_images,
            included_coffee=menu.settings.included_coffee,
            beverage_type=beverage.type,
            beverage_price=_text(beverage.price_per_person),
            beverage_has_supplement=beverage.has_supplement,
            beverage_supplement_price=_text(beverage.supplement_price),
            comments=tuple(menu.settings.comments),
            min_party_size=str(menu.settings.min_party_size),
            main_dishes_limit=menu.settings.main_dishes_limit,
            main_dishes_limit_number=str(menu.settings.main_dishes_limit_number),
        )


def _beverage(draft: BasicsDraft):
    if draft.beverage_type == "optional":
        return BeverageOptional(price_per_person=to_price(draft.beverage_price, default=None))
    if draft.beverage_type == "unlimited":
        return BeverageUnlimited(
            price_per_person=to_price(draft.beverage_price, default=None),
            has_supplement=draft.beverage_has_supplement,
            supplement_price=to_price(draft.beverage_supplement_price, default=None),
        )
    return BeverageNotIncluded()


def build_basics_payload(draft: BasicsDraft) -> BasicsPayload:
    """Project a draft onto the payload the basics endpoint accepts."""
    return BasicsPayload(
        menu_title=draft.title.strip() or DEFAULT_MENU_TITLE,
        price=to_price(draft.price),
        active=draft.active,
        menu_type=draft.menu_type,
        menu_subtitle=list(_clean_lines(draft.subtitles)),
        show_dish_images=draft.show_dish_images,
        included_coffee=draft.included_coffee,
        beverage=_beverage(draft),
        comments=list(_clean_lines(draft.comments)),
        min_party_size=to_count(draft.min_party_size, default=8),
        main_dishes_limit=draft.main_dishes_limit,
        main_dishes_limit_number=to_count(draft.main_dishes_limit_number),
    )
