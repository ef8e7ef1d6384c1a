"""
Procurement Task Model

"How much of product X (variant V) is needed for delivery day D, and how much
has been bought so far." One row per product/variant/day, created by
consolidation and advanced by recorded purchases.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Index, case, func, literal_column
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class ProcurementTask(Base):
    """Consolidated shopping-list entry for one product/variant/delivery day"""
    __tablename__ = "procurement_tasks"

    id = Column(Integer, primary_key=True, index=True)

    # Product currently being bought (the substitute, after a substitution)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    # NULL = no variant
    variant_label = Column(String(100), nullable=True)

    delivery_date = Column(Date, nullable=False, index=True)

    # Quantities in the task's canonical unit
    total_requested = Column(Numeric(18, 4), nullable=False, default=0)
    total_purchased = Column(Numeric(18, 4), nullable=False, default=0)
    unit = Column(String(20), nullable=False)

    # pending | partial | completed, derived from the quantities above
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Set on the first substitution only; later substitutions keep it
    original_product_id = Column(Integer, ForeignKey("products.id"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    product = relationship("Product", foreign_keys=[product_id])
    original_product = relationship("Product", foreign_keys=[original_product_id])
    purchases = relationship("Purchase", back_populates="task", order_by="Purchase.created_at")

    @property
    def demand_product_id(self) -> int:
        """Product whose customer demand this task answers."""
        return self.original_product_id or self.product_id

    def __repr__(self):
        return (
            f"<ProcurementTask {self.id}: product {self.product_id} "
            f"{self.total_purchased}/{self.total_requested} {self.unit} ({self.status})>"
        )


# At most one task per product/variant/day; "no variant" takes part in the key
Index(
    "uq_procurement_tasks_key",
    ProcurementTask.product_id,
    func.coalesce(ProcurementTask.variant_label, literal_column("''")),
    ProcurementTask.delivery_date,
    unique=True,
)


def derived_status_clause(purchased, requested):
    """
    SQL twin of ``derive_task_status`` so status can be written in the same
    UPDATE that changes the quantities.
    """
    return case(
        (purchased <= 0, "pending"),
        (purchased >= requested, "completed"),
        else_="partial",
    )
