"""
Provider model - market stalls, wholesalers and farms buyers purchase from
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from datetime import datetime

from app.db.base import Base


class Provider(Base):
    """Purchasing counterpart"""
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    location = Column(String(255), nullable=True)  # Stall / warehouse, used as pickup location
    tax_id = Column(String(50), nullable=True)  # NIT
    contact_phone = Column(String(50), nullable=True)
    email = Column(String(200), nullable=True)
    category = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Provider {self.id}: {self.name}>"
