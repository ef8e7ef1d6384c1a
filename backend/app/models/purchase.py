"""
Purchase model - one buying event recorded against a procurement task
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Purchase(Base):
    """
    Immutable record of a buyer's purchase. Quantity and price are kept in
    the unit the buyer actually bought in; ``converted_quantity`` is what was
    added to the task in the task's canonical unit.
    """
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)

    task_id = Column(Integer, ForeignKey("procurement_tasks.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_label = Column(String(100), nullable=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)

    # As recorded by the buyer
    quantity = Column(Numeric(18, 4), nullable=False)
    purchase_unit = Column(String(20), nullable=False)  # e.g. 'kg', 'Bulto', 'Canastilla'

    # In the task unit at the time of purchase
    converted_quantity = Column(Numeric(18, 4), nullable=False)
    task_unit = Column(String(20), nullable=False)

    # Pricing (per purchase_unit)
    unit_price = Column(Numeric(18, 4), nullable=False)
    total_cost = Column(Numeric(18, 4), nullable=False)  # quantity * unit_price

    # Evidence (voucher / invoice photo reference)
    voucher_image_url = Column(String(1000), nullable=False)

    # Logistics hand-off
    estimated_pickup_time = Column(DateTime, nullable=False)
    pickup_location = Column(String(255), nullable=True)
    # pending_pickup at creation; advanced by the pickup team
    status = Column(String(30), nullable=False, default="pending_pickup", index=True)

    notes = Column(Text, nullable=True)

    # Audit
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    task = relationship("ProcurementTask", back_populates="purchases")
    provider = relationship("Provider")
    product = relationship("Product")

    def __repr__(self):
        return f"<Purchase {self.id}: {self.quantity} {self.purchase_unit} for task {self.task_id}>"
