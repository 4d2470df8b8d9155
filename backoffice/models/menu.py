from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from backoffice.core.database import Base
import enum

class MenuType(str, enum.Enum):
    CLOSED_CONVENTIONAL = "closed_conventional"
    CLOSED_GROUP = "closed_group"
    A_LA_CARTE = "a_la_carte"
    A_LA_CARTE_GROUP = "a_la_carte_group"
    SPECIAL = "special"

    @property
    def is_price_per_dish(self) -> bool:
        # Only the carte kinds price dishes individually; the rest sell a fixed menu price
        return self in (MenuType.A_LA_CARTE, MenuType.A_LA_CARTE_GROUP)

MENUTYPE_ENUM = Enum(
    MenuType,
    name="menutype",
    native_enum=True,
    values_callable=lambda enum_cls: [e.value for e in enum_cls],
)

class GroupMenu(Base):
    __tablename__ = "group_menus"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    menu_title: Mapped[str] = mapped_column(String, nullable=False, default="New menu")
    price: Mapped[float] = mapped_column(Float, default=0.0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_draft: Mapped[bool] = mapped_column(Boolean, default=True)
    menu_type: Mapped[MenuType] = mapped_column(MENUTYPE_ENUM, default=MenuType.CLOSED_CONVENTIONAL)
    menu_subtitle: Mapped[List[str]] = mapped_column(JSON, default=list)
    show_dish_images: Mapped[bool] = mapped_column(Boolean, default=False)
    
    # Settings
    included_coffee: Mapped[bool] = mapped_column(Boolean, default=False)
    beverage: Mapped[dict] = mapped_column(JSON, default=dict)
    comments: Mapped[List[str]] = mapped_column(JSON, default=list)
    min_party_size: Mapped[int] = mapped_column(Integer, default=8)
    main_dishes_limit: Mapped[bool] = mapped_column(Boolean, default=False)
    main_dishes_limit_number: Mapped[int] = mapped_column(Integer, default=1)
    
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

class MenuSection(Base):
    __tablename__ = "group_menu_sections"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    menu_id: Mapped[int] = mapped_column(ForeignKey("group_menus.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, default="custom")
    position: Mapped[int] = mapped_column(Integer, default=0)

class MenuDish(Base):
    __tablename__ = "group_menu_dishes"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    section_id: Mapped[int] = mapped_column(ForeignKey("group_menu_sections.id", ondelete="CASCADE"), index=True)
    catalog_dish_id: Mapped[Optional[int]] = mapped_column(ForeignKey("dish_catalog.id", ondelete="SET NULL"), nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    allergens: Mapped[List[str]] = mapped_column(JSON, default=list)
    supplement_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    supplement_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
