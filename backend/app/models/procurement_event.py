"""
Procurement Event Model

Activity history for procurement tasks - demand changes, purchases and
substitutions. Provides the audit trail behind the buyer's task detail.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class ProcurementEvent(Base):
    """Activity log entry for a procurement task"""
    __tablename__ = "procurement_events"

    id = Column(Integer, primary_key=True, index=True)

    task_id = Column(
        Integer,
        ForeignKey("procurement_tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # task_created, demand_updated, purchase_recorded, substituted
    event_type = Column(String(50), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Before/after for quantity and product changes
    old_value = Column(String(100), nullable=True)
    new_value = Column(String(100), nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    task = relationship("ProcurementTask", backref="events")

    def __repr__(self):
        return f"<ProcurementEvent {self.event_type} for task {self.task_id}>"
