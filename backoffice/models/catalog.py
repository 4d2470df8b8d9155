from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from backoffice.core.database import Base

class CatalogDish(Base):
    __tablename__ = "dish_catalog"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    # Lowercased, whitespace-collapsed title used to deduplicate shared rows
    title_key: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    allergens: Mapped[List[str]] = mapped_column(JSON, default=list)
    default_supplement_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    default_supplement_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
