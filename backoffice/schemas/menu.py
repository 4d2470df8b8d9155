from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator
from backoffice.models.menu import MenuType

# Beverage policy: the shape of the dependent fields depends on ``type``

class BeverageNotIncluded(BaseModel):
    type: Literal["not_included"] = "not_included"
    price_per_person: Optional[float] = None
    has_supplement: bool = False
    supplement_price: Optional[float] = None

    @model_validator(mode="after")
    def clear_dependent_fields(self):
        self.price_per_person = None
        self.has_supplement = False
        self.supplement_price = None
        return self

class BeverageOptional(BaseModel):
    type: Literal["optional"] = "optional"
    price_per_person: Optional[float] = Field(None, ge=0)
    has_supplement: bool = False
    supplement_price: Optional[float] = None

    @model_validator(mode="after")
    def clear_supplement(self):
        self.has_supplement = False
        self.supplement_price = None
        return self

class BeverageUnlimited(BaseModel):
    type: Literal["unlimited"] = "unlimited"
    price_per_person: Optional[float] = Field(None, ge=0)
    has_supplement: bool = False
    supplement_price: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def clear_unused_supplement_price(self):
        if not self.has_supplement:
            self.supplement_price = None
        return self

BeveragePolicy = Annotated[
    Union[BeverageNotIncluded, BeverageOptional, BeverageUnlimited],
    Field(discriminator="type"),
]
BEVERAGE_TYPES = ("not_included", "optional", "unlimited")

class MenuSettings(BaseModel):
    included_coffee: bool = False
    beverage: BeveragePolicy = Field(default_factory=BeverageNotIncluded)
    comments: List[str] = []
    min_party_size: int = Field(8, ge=1)
    main_dishes_limit: bool = False
    main_dishes_limit_number: int = Field(1, ge=1)

class BasicsPayload(BaseModel):
    """Flat scalar projection of a menu, written in one shot."""
    menu_title: str = Field(..., min_length=1)
    price: float = Field(0.0, ge=0)
    active: bool = True
    menu_type: MenuType = MenuType.CLOSED_CONVENTIONAL
    menu_subtitle: List[str] = []
    show_dish_images: bool = False
    included_coffee: bool = False
    beverage: BeveragePolicy = Field(default_factory=BeverageNotIncluded)
    comments: List[str] = []
    min_party_size: int = Field(1, ge=1)
    main_dishes_limit: bool = False
    main_dishes_limit_number: int = Field(1, ge=1)

# Sections

class SectionIn(BaseModel):
    id: Optional[int] = None
    title: str
    kind: str = "custom"
    position: int = Field(0, ge=0)

class SectionOut(BaseModel):
    id: int
    title: str
    kind: str
    position: int
    
    class Config:
        from_attributes = True

class SectionsReplace(BaseModel):
    sections: List[SectionIn]

class SectionsOut(BaseModel):
    sections: List[SectionOut]

# Dishes

class DishIn(BaseModel):
    id: Optional[int] = None
    catalog_dish_id: Optional[int] = None
    title: str
    description: str = ""
    allergens: List[str] = []
    supplement_enabled: bool = False
    supplement_price: Optional[float] = None
    price: Optional[float] = None
    active: bool = True

class DishOut(BaseModel):
    id: int
    section_id: int
    catalog_dish_id: Optional[int] = None
    title: str
    description: str = ""
    allergens: List[str] = []
    supplement_enabled: bool = False
    supplement_price: Optional[float] = None
    price: Optional[float] = None
    active: bool = True
    position: int = 0
    
    class Config:
        from_attributes = True

class DishesReplace(BaseModel):
    dishes: List[DishIn]

class DishesOut(BaseModel):
    dishes: List[DishOut]

# Whole menu

class SectionWithDishes(SectionOut):
    dishes: List[DishOut] = []

class MenuOut(BaseModel):
    id: int
    menu_title: str
    price: float
    active: bool
    is_draft: bool
    menu_type: MenuType
    menu_subtitle: List[str] = []
    show_dish_images: bool = False
    settings: MenuSettings
    sections: List[SectionWithDishes] = []
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

class DraftCreate(BaseModel):
    menu_type: MenuType = MenuType.CLOSED_CONVENTIONAL

class DraftCreated(BaseModel):
    menu_id: int

class MenuTypeChange(BaseModel):
    menu_type: MenuType

class WriteResult(BaseModel):
    success: bool = True
    message: Optional[str] = None

class PublishResult(BaseModel):
    success: bool = True
    menu_id: int
