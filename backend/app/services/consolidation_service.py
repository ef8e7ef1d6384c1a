"""
Demand Consolidation Service

Collapses approved customer order lines into one procurement task per
(product, variant, delivery date).

The sweep is idempotent and safe to re-run at any time:
1. Read actionable order lines (approved / ready_for_procurement)
2. Sum quantities per demand key
3. Per key: create the task, or overwrite total_requested with the fresh sum
   and re-derive status against what was already purchased

total_purchased is never touched here. Tasks whose demand disappears are left
as they are. Each key is committed on its own, so a failure on one key does
not undo the others.
"""
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.core.status_config import (
    ACTIONABLE_ORDER_STATUSES,
    ProcurementEventType,
    ProcurementTaskStatus,
)
from app.logging_config import get_logger
from app.models.order import Order, OrderLine
from app.models.procurement_task import ProcurementTask, derived_status_clause
from app.models.product import Product
from app.services.cutoff_window import get_target_delivery_date
from app.services.event_service import record_procurement_event

logger = get_logger(__name__)

# (product_id, variant_label, delivery_date)
DemandKey = Tuple[int, Optional[str], date]


class DemandLine(NamedTuple):
    product_id: int
    variant_label: Optional[str]
    quantity: Decimal
    delivery_date: date
    unit: Optional[str]


@dataclass
class DemandGroup:
    """Summed demand for one key"""
    product_id: int
    variant_label: Optional[str]
    delivery_date: date
    total_quantity: Decimal = Decimal("0")
    unit: Optional[str] = None
    line_count: int = 0

    @property
    def key(self) -> DemandKey:
        return (self.product_id, self.variant_label, self.delivery_date)


@dataclass
class ConsolidationKeyError:
    product_id: int
    variant_label: Optional[str]
    delivery_date: date
    error: str


@dataclass
class ConsolidationResult:
    """Outcome of one consolidation sweep"""
    target_date: Optional[date] = None
    lines_considered: int = 0
    groups: int = 0
    tasks_created: int = 0
    tasks_updated: int = 0
    tasks_unchanged: int = 0
    errors: List[ConsolidationKeyError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.errors and not self.cancelled


def normalize_variant(label: Optional[str]) -> Optional[str]:
    """Empty or whitespace-only labels mean "no variant"."""
    if label is None:
        return None
    label = label.strip()
    return label or None


def fetch_actionable_lines(db: Session, delivery_date: Optional[date] = None) -> List[DemandLine]:
    """Order lines that currently generate demand, optionally for a single day."""
    query = (
        db.query(
            OrderLine.product_id,
            OrderLine.variant_label,
            OrderLine.quantity,
            Order.delivery_date,
            Product.unit,
        )
        .join(Order, OrderLine.order_id == Order.id)
        .outerjoin(Product, Product.id == OrderLine.product_id)
        .filter(Order.status.in_(sorted(ACTIONABLE_ORDER_STATUSES)))
    )
    if delivery_date is not None:
        query = query.filter(Order.delivery_date == delivery_date)
    return [DemandLine(*row) for row in query.all()]


def aggregate_demand(
    lines: Iterable[DemandLine], default_unit: Optional[str] = None
) -> Dict[DemandKey, DemandGroup]:
    """
    Sum line quantities per (product, variant, delivery date).

    The task unit is the product's canonical unit; lines for unknown products
    fall back to DEFAULT_PROCUREMENT_UNIT.
    """
    if default_unit is None:
        default_unit = get_settings().DEFAULT_PROCUREMENT_UNIT

    groups: Dict[DemandKey, DemandGroup] = {}
    for line in lines:
        variant = normalize_variant(line.variant_label)
        key = (line.product_id, variant, line.delivery_date)
        group = groups.get(key)
        if group is None:
            group = DemandGroup(
                product_id=line.product_id,
                variant_label=variant,
                delivery_date=line.delivery_date,
                unit=line.unit or default_unit,
            )
            groups[key] = group
        group.total_quantity += Decimal(str(line.quantity or 0))
        group.line_count += 1
    return groups


def find_task_for_key(
    db: Session, product_id: int, variant_label: Optional[str], delivery_date: date
) -> Optional[ProcurementTask]:
    """
    Task answering the demand for a key.

    Matches on the demanded product, which after a substitution lives in
    original_product_id.
    """
    query = db.query(ProcurementTask).filter(
        func.coalesce(ProcurementTask.original_product_id, ProcurementTask.product_id) == product_id,
        ProcurementTask.delivery_date == delivery_date,
    )
    if variant_label is None:
        query = query.filter(ProcurementTask.variant_label.is_(None))
    else:
        query = query.filter(ProcurementTask.variant_label == variant_label)
    return query.first()


class ConsolidationService:
    """Runs consolidation sweeps against one session"""

    def __init__(self, db: Session):
        self.db = db

    def run(
        self,
        delivery_date: Optional[date] = None,
        *,
        filter_by_date: Optional[bool] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ConsolidationResult:
        """
        Sweep actionable demand into procurement tasks.

        Args:
            delivery_date: Restrict the sweep to one delivery day
            filter_by_date: Without an explicit date, restrict to the cutoff
                window's target date (defaults to
                CONSOLIDATION_FILTER_BY_DELIVERY_DATE)
            now: Injected clock for the cutoff window
            cancel_event: Checked between keys; keys already written stay

        Returns:
            ConsolidationResult with counts and per-key errors
        """
        if filter_by_date is None:
            filter_by_date = get_settings().CONSOLIDATION_FILTER_BY_DELIVERY_DATE

        target = delivery_date
        if target is None and filter_by_date:
            target = get_target_delivery_date(self.db, now=now).target_date

        lines = fetch_actionable_lines(self.db, target)
        groups = aggregate_demand(lines)
        result = ConsolidationResult(
            target_date=target,
            lines_considered=len(lines),
            groups=len(groups),
        )

        logger.info(
            "Consolidation started",
            extra={"target_date": str(target) if target else None, "lines": len(lines), "groups": len(groups)},
        )

        for key in sorted(groups, key=lambda k: (k[2], k[0], k[1] or "")):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.warning("Consolidation cancelled", extra={"processed": self._processed(result)})
                break

            group = groups[key]
            try:
                outcome = self._upsert(group)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    "Failed to consolidate demand key",
                    extra={
                        "product_id": group.product_id,
                        "variant_label": group.variant_label,
                        "delivery_date": str(group.delivery_date),
                        "error": str(e),
                    },
                )
                result.errors.append(ConsolidationKeyError(
                    product_id=group.product_id,
                    variant_label=group.variant_label,
                    delivery_date=group.delivery_date,
                    error=str(e.orig) if getattr(e, "orig", None) is not None else str(e),
                ))
                continue

            if outcome == "created":
                result.tasks_created += 1
            elif outcome == "updated":
                result.tasks_updated += 1
            else:
                result.tasks_unchanged += 1

        logger.info(
            "Consolidation finished",
            extra={
                "tasks_created": result.tasks_created,
                "tasks_updated": result.tasks_updated,
                "tasks_unchanged": result.tasks_unchanged,
                "errors": len(result.errors),
                "cancelled": result.cancelled,
            },
        )
        return result

    @staticmethod
    def _processed(result: ConsolidationResult) -> int:
        return result.tasks_created + result.tasks_updated + result.tasks_unchanged + len(result.errors)

    def _upsert(self, group: DemandGroup) -> str:
        task = find_task_for_key(self.db, group.product_id, group.variant_label, group.delivery_date)
        if task is not None:
            return self._update_requested(task, group)

        task = ProcurementTask(
            product_id=group.product_id,
            variant_label=group.variant_label,
            delivery_date=group.delivery_date,
            total_requested=group.total_quantity,
            total_purchased=Decimal("0"),
            unit=group.unit,
            status=ProcurementTaskStatus.PENDING.value,
        )
        self.db.add(task)
        try:
            self.db.flush()
        except IntegrityError:
            # Another sweep inserted the same key first
            self.db.rollback()
            task = find_task_for_key(self.db, group.product_id, group.variant_label, group.delivery_date)
            if task is None:
                raise
            return self._update_requested(task, group)

        record_procurement_event(
            self.db,
            task_id=task.id,
            event_type=ProcurementEventType.TASK_CREATED.value,
            title=f"Task created for {group.total_quantity} {group.unit}",
            description=f"Consolidated from {group.line_count} order line(s)",
            new_value=str(group.total_quantity),
        )
        self.db.commit()
        return "created"

    def _update_requested(self, task: ProcurementTask, group: DemandGroup) -> str:
        old_requested = Decimal(str(task.total_requested))
        if old_requested == group.total_quantity:
            return "unchanged"

        # total_purchased is read inside the UPDATE, never from the loaded row
        self.db.query(ProcurementTask).filter(ProcurementTask.id == task.id).update(
            {
                ProcurementTask.total_requested: group.total_quantity,
                ProcurementTask.status: derived_status_clause(
                    ProcurementTask.total_purchased, group.total_quantity
                ),
                ProcurementTask.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        record_procurement_event(
            self.db,
            task_id=task.id,
            event_type=ProcurementEventType.DEMAND_UPDATED.value,
            title="Requested quantity updated",
            old_value=str(old_requested),
            new_value=str(group.total_quantity),
        )
        self.db.commit()
        return "updated"


def consolidate_demand(
    db: Session,
    delivery_date: Optional[date] = None,
    *,
    filter_by_date: Optional[bool] = None,
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ConsolidationResult:
    """Run one consolidation sweep. See ConsolidationService.run."""
    return ConsolidationService(db).run(
        delivery_date,
        filter_by_date=filter_by_date,
        now=now,
        cancel_event=cancel_event,
    )
