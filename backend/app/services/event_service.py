"""
Event Service

Helper for recording procurement task activity (demand changes, purchases,
substitutions) so every service writes the timeline the same way.
"""
from typing import Optional
from sqlalchemy.orm import Session

from app.models.procurement_event import ProcurementEvent


def record_procurement_event(
    db: Session,
    task_id: int,
    event_type: str,
    title: str,
    description: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    created_by: Optional[str] = None,
) -> ProcurementEvent:
    """
    Record an event for a procurement task.

    Args:
        db: Database session
        task_id: ID of the procurement task
        event_type: Type of event (task_created, purchase_recorded, etc.)
        title: Short description of the event
        description: Detailed description (optional)
        old_value: Previous value (quantity, product id)
        new_value: New value
        created_by: Who triggered the event

    Returns:
        The created ProcurementEvent instance
    """
    event = ProcurementEvent(
        task_id=task_id,
        event_type=event_type,
        title=title,
        description=description,
        old_value=old_value,
        new_value=new_value,
        created_by=created_by,
    )
    db.add(event)
    # Don't commit - let the calling function handle the transaction
    return event


def list_task_events(db: Session, task_id: int):
    """Timeline for a task, newest first."""
    return (
        db.query(ProcurementEvent)
        .filter(ProcurementEvent.task_id == task_id)
        .order_by(ProcurementEvent.created_at.desc(), ProcurementEvent.id.desc())
        .all()
    )
