"""
Product conversion factors

Per-product multipliers from a purchase unit to another unit:
``quantity_in_to_unit = quantity_in_from_unit * factor``.
e.g. product "Papa pastusa": 1 Bulto -> 50 kg  => factor 50
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class ConversionFactor(Base):
    __tablename__ = "product_conversions"
    __table_args__ = (
        UniqueConstraint("product_id", "from_unit", "to_unit", name="uq_product_conversions_units"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    # Stored lower-case; lookups are case-insensitive
    from_unit = Column(String(20), nullable=False)
    to_unit = Column(String(20), nullable=False)
    factor = Column(Numeric(18, 6), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product")

    def __repr__(self):
        return f"<ConversionFactor product {self.product_id}: 1 {self.from_unit} = {self.factor} {self.to_unit}>"
