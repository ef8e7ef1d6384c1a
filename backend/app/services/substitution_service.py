"""
Substitution Service

Lets a buyer swap the product of an open procurement task for another one
(e.g. no 'Papa pastusa' at the market, buy 'Papa sabanera' instead).

The task keeps its quantities and purchases. The first substitution stores
the product originally demanded in original_product_id; later ones leave it
alone, so consolidation keeps feeding the task from the original demand.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.status_config import ProcurementEventType, ProcurementTaskStatus
from app.exceptions import (
    BusinessRuleError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models.procurement_task import ProcurementTask
from app.models.product import Product
from app.services.event_service import record_procurement_event

logger = get_logger(__name__)

MIN_SEARCH_LENGTH = 2


def substitute_task_product(
    db: Session,
    task_id: int,
    new_product_id: int,
    created_by: Optional[str] = None,
) -> ProcurementTask:
    """
    Replace the product being bought for a task.

    Raises:
        NotFoundError: task or replacement product does not exist
        BusinessRuleError: replacement is the product already on the task
        InvalidStateError: task already completed
        ConflictError: another task already buys that product for the same variant/day
    """
    task = db.query(ProcurementTask).filter(ProcurementTask.id == task_id).first()
    if not task:
        raise NotFoundError("ProcurementTask", task_id)

    new_product = db.query(Product).filter(Product.id == new_product_id).first()
    if not new_product:
        raise NotFoundError("Product", new_product_id)

    if task.product_id == new_product_id:
        raise BusinessRuleError(
            "Replacement product must differ from the current product",
            rule="substitute_differs",
            details={"task_id": task_id, "product_id": new_product_id},
        )
    if task.status == ProcurementTaskStatus.COMPLETED.value:
        raise InvalidStateError(
            "Completed tasks cannot be substituted",
            current_state=task.status,
            allowed_states=[ProcurementTaskStatus.PENDING.value, ProcurementTaskStatus.PARTIAL.value],
        )

    old_product_id = task.product_id

    try:
        updated = db.query(ProcurementTask).filter(
            ProcurementTask.id == task_id,
            ProcurementTask.status != ProcurementTaskStatus.COMPLETED.value,
        ).update(
            {
                ProcurementTask.original_product_id: func.coalesce(
                    ProcurementTask.original_product_id, ProcurementTask.product_id
                ),
                ProcurementTask.product_id: new_product.id,
                ProcurementTask.unit: new_product.unit,
                ProcurementTask.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    except IntegrityError as e:
        db.rollback()
        logger.warning(
            "Substitution clashes with an existing task",
            extra={"task_id": task_id, "product_id": new_product_id},
        )
        raise ConflictError(
            "Another task already buys this product for the same variant and delivery date",
            details={"task_id": task_id, "product_id": new_product_id},
        ) from e

    if updated != 1:
        # Completed by a purchase between the read and the update
        db.rollback()
        raise InvalidStateError(
            "Completed tasks cannot be substituted",
            current_state=ProcurementTaskStatus.COMPLETED.value,
        )

    record_procurement_event(
        db,
        task_id=task_id,
        event_type=ProcurementEventType.SUBSTITUTED.value,
        title=f"Substituted with {new_product.name}",
        old_value=str(old_product_id),
        new_value=str(new_product.id),
        created_by=created_by,
    )
    db.commit()
    db.refresh(task)

    logger.info(
        "Task product substituted",
        extra={
            "task_id": task_id,
            "old_product_id": old_product_id,
            "new_product_id": new_product.id,
            "original_product_id": task.original_product_id,
        },
    )
    return task


def search_substitutes(db: Session, term: str, limit: int = 5) -> List[Product]:
    """Active products whose name contains ``term`` (case-insensitive)."""
    term = (term or "").strip()
    if len(term) < MIN_SEARCH_LENGTH:
        raise ValidationError(
            f"Search term must be at least {MIN_SEARCH_LENGTH} characters",
            field="q",
            value=term,
        )
    return (
        db.query(Product)
        .filter(
            Product.active == True,  # noqa: E712
            Product.name.ilike(f"%{term}%"),
        )
        .order_by(Product.name)
        .limit(limit)
        .all()
    )
