from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

class CatalogDishIn(BaseModel):
    id: Optional[int] = None
    title: str = Field(..., min_length=1)
    description: str = ""
    allergens: List[str] = []
    default_supplement_enabled: bool = False
    default_supplement_price: Optional[float] = None

class CatalogDishOut(BaseModel):
    id: int
    title: str
    description: str = ""
    allergens: List[str] = []
    default_supplement_enabled: bool = False
    default_supplement_price: Optional[float] = None
    updated_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True

class CatalogSearchOut(BaseModel):
    items: List[CatalogDishOut]
