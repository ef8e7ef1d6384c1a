"""
Application Settings Model

Operator-editable key/value switches stored in the database, e.g.
``enable_cutoff_rules``. Values are strings; readers parse them.
"""
from sqlalchemy import Column, Integer, String, DateTime, func

from app.db.base import Base


class AppSetting(Base):
    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(String(1000), nullable=True)
    description = Column(String(255), nullable=True)

    updated_at = Column(DateTime(timezone=False), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<AppSetting({self.key}={self.value})>"
