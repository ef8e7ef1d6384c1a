"""
Product model - catalog entries that customers order and buyers purchase
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, Text
from datetime import datetime

from app.db.base import Base


class Product(Base):
    """
    Catalog item. ``unit`` is the canonical unit its demand and
    procurement progress are tracked in (kg, lb, atado, unidad...).
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)  # Frutas, Verduras, Abarrotes...
    unit = Column(String(20), nullable=True, default="kg")

    # Reference price only; margins are not computed here
    base_price = Column(Numeric(18, 4), nullable=True)

    active = Column(Boolean, default=True)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"
