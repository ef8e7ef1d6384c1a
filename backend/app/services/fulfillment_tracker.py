"""
Fulfillment Tracker

Records what buyers actually purchased against procurement tasks.

Recording a purchase:
1. Validate the request (named field errors, nothing written)
2. Resolve the purchase unit into the task unit; no factor means no purchase
3. Store the voucher evidence
4. In one transaction: provider (existing or quick-add), purchase row,
   atomic increment of the task's purchased quantity with status re-derived
   in the same UPDATE, timeline event

The increment is done in SQL (total_purchased = total_purchased + delta) so
that two buyers recording purchases for the same task at the same time both
count.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.status_config import ProcurementEventType, PurchaseStatus, derive_task_status
from app.exceptions import (
    ConflictError,
    DatabaseError,
    FileStorageError,
    FruFrescoException,
    MissingFieldError,
    NotFoundError,
    OperationCancelledError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models.procurement_task import ProcurementTask, derived_status_clause
from app.models.provider import Provider
from app.models.purchase import Purchase
from app.schemas.procurement import PurchaseCreate
from app.services.conversion_service import (
    convert_quantity_with_factor,
    format_conversion_note,
    format_quantity_with_unit,
)
from app.services.event_service import record_procurement_event
from app.services.evidence_storage import EvidenceFile, EvidenceStorage, check_evidence_file
from app.services.procurement_board import extra_quantity
from app.services.provider_service import get_active_provider, get_or_create_provider

logger = get_logger(__name__)


@dataclass
class PurchaseResult:
    purchase: Purchase
    task: ProcurementTask
    converted_quantity: Decimal
    conversion_factor: Decimal

    @property
    def extra_quantity(self) -> Decimal:
        return extra_quantity(self.task.total_purchased, self.task.total_requested)

    @property
    def status(self) -> str:
        return derive_task_status(self.task.total_purchased, self.task.total_requested)


def validate_purchase_request(request: PurchaseCreate, evidence: Optional[EvidenceFile]) -> None:
    """
    Check a purchase request before anything is stored.

    Missing fields are reported one at a time in the order the buyer fills
    the form: quantity, unit price, provider, evidence photo, pickup time,
    purchase unit.
    """
    if request.quantity is None:
        raise MissingFieldError("quantity", "Enter the purchased quantity")
    if request.unit_price is None:
        raise MissingFieldError("unit_price", "Enter the unit price")
    if request.new_provider is not None:
        if not (request.new_provider.name or "").strip():
            raise MissingFieldError("provider", "Enter the new provider's name")
    elif request.provider_id is None:
        raise MissingFieldError("provider", "Select a provider or add a new one")
    if evidence is None or not evidence.content:
        raise MissingFieldError("evidence", "A photo of the voucher or invoice is required")
    if request.pickup_in_minutes is None:
        raise MissingFieldError("pickup_in_minutes", "Enter the estimated pickup time")
    if not (request.purchase_unit or "").strip():
        raise MissingFieldError("purchase_unit", "Select the unit you bought in")

    if request.quantity <= 0:
        raise ValidationError("Quantity must be greater than zero", field="quantity", value=request.quantity)
    if request.unit_price < 0:
        raise ValidationError("Unit price cannot be negative", field="unit_price", value=request.unit_price)
    if request.pickup_in_minutes < 0:
        raise ValidationError(
            "Pickup time cannot be negative", field="pickup_in_minutes", value=request.pickup_in_minutes
        )

    check_evidence_file(evidence)


def _check_cancelled(cancel_event: Optional[threading.Event], task_id: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Purchase recording cancelled", extra={"task_id": task_id})
        raise OperationCancelledError("Purchase recording", details={"task_id": task_id})


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _discard_evidence(storage: EvidenceStorage, reference: str) -> None:
    try:
        storage.discard(reference)
    except FileStorageError as e:
        logger.warning("Orphaned voucher left in storage", extra={"reference": reference, "error": e.message})


def _raise_task_changed(db: Session, task_id: int, product_id: int, task_unit: str) -> None:
    exists = db.query(ProcurementTask.id).filter(ProcurementTask.id == task_id).first()
    if not exists:
        raise NotFoundError("ProcurementTask", task_id)
    raise ConflictError(
        "Task product changed while the purchase was being recorded, please retry",
        details={"task_id": task_id, "product_id": product_id, "task_unit": task_unit},
    )


def record_purchase(
    db: Session,
    task_id: int,
    request: PurchaseCreate,
    evidence: Optional[EvidenceFile],
    storage: EvidenceStorage,
    *,
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
    created_by: Optional[str] = None,
) -> PurchaseResult:
    """
    Record a purchase and advance the task.

    Args:
        db: Database session
        task_id: Procurement task being bought for
        request: Quantity, price, unit, provider and pickup estimate
        evidence: Voucher photo
        storage: Where the voucher is kept
        now: Injected clock for the pickup estimate
        cancel_event: Checked before and after the voucher upload
        created_by: Buyer identifier for the audit trail

    Returns:
        PurchaseResult with the stored purchase and the refreshed task

    Raises:
        MissingFieldError / ValidationError: bad request, nothing written
        NotFoundError: unknown task or provider
        ConflictError: task was substituted while recording, nothing written
        UnresolvedConversionError: no factor from the purchase unit to the task unit
        EvidenceUploadError: voucher not stored, nothing written
        OperationCancelledError: cancelled before the purchase was written
        DatabaseError: purchase could not be written, nothing written
    """
    validate_purchase_request(request, evidence)

    task = db.query(ProcurementTask).filter(ProcurementTask.id == task_id).first()
    if not task:
        raise NotFoundError("ProcurementTask", task_id)

    quantity = Decimal(str(request.quantity))
    unit_price = Decimal(str(request.unit_price))
    purchase_unit = request.purchase_unit.strip()
    product_id = task.product_id
    variant_label = task.variant_label
    task_unit = task.unit
    product_name = task.product.name if task.product is not None else None

    converted, factor = convert_quantity_with_factor(db, product_id, quantity, purchase_unit, task_unit)

    existing_provider: Optional[Provider] = None
    if request.new_provider is None:
        existing_provider = get_active_provider(db, request.provider_id)

    _check_cancelled(cancel_event, task_id)
    voucher_url = storage.store(evidence)
    try:
        _check_cancelled(cancel_event, task_id)
    except OperationCancelledError:
        _discard_evidence(storage, voucher_url)
        raise

    now = now or datetime.now(timezone.utc)

    try:
        provider = existing_provider or get_or_create_provider(db, request.new_provider)

        purchase = Purchase(
            task_id=task_id,
            product_id=product_id,
            variant_label=variant_label,
            provider_id=provider.id,
            quantity=quantity,
            purchase_unit=purchase_unit,
            converted_quantity=converted,
            task_unit=task_unit,
            unit_price=unit_price,
            total_cost=quantity * unit_price,
            voucher_image_url=voucher_url,
            estimated_pickup_time=_naive_utc(now + timedelta(minutes=request.pickup_in_minutes)),
            pickup_location=(request.pickup_location or "").strip() or provider.location,
            status=PurchaseStatus.PENDING_PICKUP.value,
            notes=format_conversion_note(quantity, purchase_unit, converted, task_unit, product_name),
            created_by=created_by,
        )
        db.add(purchase)
        db.flush()

        new_total = ProcurementTask.total_purchased + converted
        # Only count the purchase against the product and unit it was converted for
        updated = db.query(ProcurementTask).filter(
            ProcurementTask.id == task_id,
            ProcurementTask.product_id == product_id,
            ProcurementTask.unit == task_unit,
        ).update(
            {
                ProcurementTask.total_purchased: new_total,
                ProcurementTask.status: derived_status_clause(new_total, ProcurementTask.total_requested),
                ProcurementTask.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        if updated != 1:
            _raise_task_changed(db, task_id, product_id, task_unit)

        record_procurement_event(
            db,
            task_id=task_id,
            event_type=ProcurementEventType.PURCHASE_RECORDED.value,
            title=f"Purchased {format_quantity_with_unit(converted, task_unit)}",
            description=f"{purchase.notes} from {provider.name}",
            new_value=str(converted),
            created_by=created_by,
        )
        db.commit()
    except FruFrescoException:
        db.rollback()
        _discard_evidence(storage, voucher_url)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        _discard_evidence(storage, voucher_url)
        logger.error(
            "Failed to record purchase",
            extra={"task_id": task_id, "error": str(e)},
        )
        raise DatabaseError(
            "Purchase could not be recorded, please retry",
            details={"task_id": task_id},
        ) from e

    db.refresh(task)
    db.refresh(purchase)

    logger.info(
        "Purchase recorded",
        extra={
            "task_id": task.id,
            "purchase_id": purchase.id,
            "converted_quantity": str(converted),
            "task_unit": task_unit,
            "task_status": task.status,
        },
    )
    return PurchaseResult(
        purchase=purchase,
        task=task,
        converted_quantity=converted,
        conversion_factor=factor,
    )


def list_task_purchases(db: Session, task_id: int) -> List[Purchase]:
    task = db.query(ProcurementTask.id).filter(ProcurementTask.id == task_id).first()
    if not task:
        raise NotFoundError("ProcurementTask", task_id)
    return (
        db.query(Purchase)
        .filter(Purchase.task_id == task_id)
        .order_by(Purchase.created_at, Purchase.id)
        .all()
    )
