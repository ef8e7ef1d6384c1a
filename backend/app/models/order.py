"""
Customer Order Model

Orders are created and edited by the order-intake screens; the procurement
engine only reads approved demand from them.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Order(Base):
    """Customer order for a single delivery day"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=True, index=True)

    customer_name = Column(String(255), nullable=True)
    shipping_address = Column(String(500), nullable=True)

    # Day the goods must reach the customer
    delivery_date = Column(Date, nullable=False, index=True)

    # draft -> pending_approval -> approved -> ready_for_procurement -> in_picking
    #   -> dispatched -> delivered; cancelled from any open state
    status = Column(String(50), nullable=False, default="draft", index=True)

    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    lines = relationship("OrderLine", back_populates="order", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Order {self.id} {self.status} for {self.delivery_date}>"


class OrderLine(Base):
    """One product (and optional variant) requested on an order"""
    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    # e.g. "maduro", "pintón"; NULL when the product has no variants
    variant_label = Column(String(100), nullable=True)

    # In the product's canonical unit
    quantity = Column(Numeric(18, 4), nullable=False)
    unit_price = Column(Numeric(18, 4), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    order = relationship("Order", back_populates="lines")
    product = relationship("Product")

    def __repr__(self):
        return f"<OrderLine {self.id}: product {self.product_id} x {self.quantity}>"
