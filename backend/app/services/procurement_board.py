"""
Procurement Board Service

Builds the buyer-facing view of procurement tasks: display names, category
filtering, work-first ordering and the dashboard counters.
"""
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.status_config import TASK_STATUS_PRIORITY, ProcurementTaskStatus
from app.exceptions import NotFoundError
from app.models.procurement_task import ProcurementTask
from app.models.product import Product
from app.schemas.procurement import BoardSummary, ProcurementTaskResponse

DEFAULT_CATEGORY = "General"

# Category values meaning "no filter"
ALL_CATEGORIES = {"", "ver todo", "all"}


def remaining_quantity(total_purchased: Decimal, total_requested: Decimal) -> Decimal:
    return max(Decimal("0"), Decimal(str(total_requested)) - Decimal(str(total_purchased)))


def extra_quantity(total_purchased: Decimal, total_requested: Decimal) -> Decimal:
    """Bought beyond what was requested (0 when under)."""
    return max(Decimal("0"), Decimal(str(total_purchased)) - Decimal(str(total_requested)))


def progress_percent(total_purchased: Decimal, total_requested: Decimal) -> float:
    requested = Decimal(str(total_requested))
    purchased = Decimal(str(total_purchased))
    if requested <= 0:
        return 100.0 if purchased > 0 else 0.0
    return float(min(Decimal("100"), purchased / requested * 100))


def display_name(product: Optional[Product], product_id: int, variant_label: Optional[str]) -> str:
    """'Tomate chonto (maduro)', or 'Product #12' when the catalog entry is gone."""
    name = product.name if product is not None else f"Product #{product_id}"
    if variant_label:
        return f"{name} ({variant_label})"
    return name


def build_task_view(task: ProcurementTask) -> ProcurementTaskResponse:
    product = task.product
    original = task.original_product
    purchased = Decimal(str(task.total_purchased or 0))
    requested = Decimal(str(task.total_requested or 0))

    return ProcurementTaskResponse(
        id=task.id,
        product_id=task.product_id,
        product_name=product.name if product is not None else f"Product #{task.product_id}",
        display_name=display_name(product, task.product_id, task.variant_label),
        category=(product.category if product is not None and product.category else DEFAULT_CATEGORY),
        variant_label=task.variant_label,
        delivery_date=task.delivery_date,
        total_requested=requested,
        total_purchased=purchased,
        remaining_quantity=remaining_quantity(purchased, requested),
        extra_quantity=extra_quantity(purchased, requested),
        progress_percent=progress_percent(purchased, requested),
        unit=task.unit,
        status=task.status,
        original_product_id=task.original_product_id,
        original_product_name=original.name if original is not None else None,
        is_substituted=task.original_product_id is not None,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def sort_task_views(views: Iterable[ProcurementTaskResponse]) -> List[ProcurementTaskResponse]:
    """Partial first, then pending, then completed; earliest delivery first within a status."""
    return sorted(
        views,
        key=lambda v: (
            TASK_STATUS_PRIORITY.get(ProcurementTaskStatus(v.status).value, len(TASK_STATUS_PRIORITY)),
            v.delivery_date,
            v.display_name.lower(),
        ),
    )


def list_tasks(
    db: Session,
    *,
    category: Optional[str] = None,
    delivery_date: Optional[date] = None,
    status: Optional[str] = None,
) -> List[ProcurementTaskResponse]:
    """
    Tasks for the buyer board.

    Args:
        db: Database session
        category: Product category; blank or 'Ver Todo' shows everything
        delivery_date: Only tasks for this delivery day
        status: Only tasks in this status
    """
    query = db.query(ProcurementTask).options(
        joinedload(ProcurementTask.product),
        joinedload(ProcurementTask.original_product),
    )
    if delivery_date is not None:
        query = query.filter(ProcurementTask.delivery_date == delivery_date)
    if status:
        query = query.filter(ProcurementTask.status == status)

    views = [build_task_view(task) for task in query.all()]

    if category is not None and category.strip().lower() not in ALL_CATEGORIES:
        wanted = category.strip().lower()
        views = [v for v in views if v.category.lower() == wanted]

    return sort_task_views(views)


def get_task_view(db: Session, task_id: int) -> ProcurementTaskResponse:
    task = db.query(ProcurementTask).filter(ProcurementTask.id == task_id).first()
    if not task:
        raise NotFoundError("ProcurementTask", task_id)
    return build_task_view(task)


def summarize_tasks(tasks: Iterable[ProcurementTaskResponse]) -> BoardSummary:
    summary = BoardSummary()
    for task in tasks:
        summary.total += 1
        if task.status == ProcurementTaskStatus.COMPLETED:
            summary.completed += 1
        elif task.status == ProcurementTaskStatus.PARTIAL:
            summary.partial += 1
        else:
            summary.pending += 1
    if summary.total:
        summary.progress_percent = round(summary.completed / summary.total * 100, 1)
    return summary
