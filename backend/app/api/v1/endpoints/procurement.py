"""
Procurement API Endpoints

Buyer board, consolidation trigger, purchase recording with voucher upload,
substitutions, unit conversions and providers.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.logging_config import get_logger
from app.schemas.procurement import (
    BoardSummary,
    ConsolidationKeyErrorResponse,
    ConsolidationRequest,
    ConsolidationResponse,
    ConversionFactorCreate,
    ConversionFactorResponse,
    CutoffRulesUpdate,
    CutoffWindowResponse,
    ProcurementEventResponse,
    ProcurementTaskDetailResponse,
    ProcurementTaskResponse,
    ProductSummary,
    ProviderCreate,
    ProviderResponse,
    PurchaseCreate,
    PurchaseResponse,
    PurchaseResultResponse,
    SubstitutionRequest,
)
from app.services import conversion_service, provider_service
from app.services.consolidation_service import consolidate_demand
from app.services.cutoff_window import get_target_delivery_date, set_cutoff_rules_enabled
from app.services.event_service import list_task_events
from app.services.evidence_storage import EvidenceFile, EvidenceStorage, get_evidence_storage
from app.services.fulfillment_tracker import list_task_purchases, record_purchase
from app.services.procurement_board import (
    build_task_view,
    get_task_view,
    list_tasks,
    summarize_tasks,
)
from app.services.substitution_service import search_substitutes, substitute_task_product

router = APIRouter()
logger = get_logger(__name__)


def _window_response(window) -> CutoffWindowResponse:
    return CutoffWindowResponse(
        target_date=window.target_date,
        cutoff_enabled=window.cutoff_enabled,
        cutoff_hour=window.cutoff_hour,
        local_time=window.local_time,
        used_default=window.used_default,
    )


# ============================================================================
# Cutoff Window
# ============================================================================

@router.get("/target-date", response_model=CutoffWindowResponse)
async def get_target_date(db: Session = Depends(get_db)):
    """Delivery date the current buying shift is working on."""
    return _window_response(get_target_delivery_date(db))


@router.put("/cutoff-rules", response_model=CutoffWindowResponse)
async def update_cutoff_rules(payload: CutoffRulesUpdate, db: Session = Depends(get_db)):
    set_cutoff_rules_enabled(db, payload.enabled)
    return _window_response(get_target_delivery_date(db))


# ============================================================================
# Consolidation
# ============================================================================

@router.post("/consolidate", response_model=ConsolidationResponse)
async def run_consolidation(
    payload: Optional[ConsolidationRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Consolidate approved order lines into procurement tasks.

    Safe to call repeatedly; per-key failures are reported in ``errors``.
    """
    payload = payload or ConsolidationRequest()
    result = consolidate_demand(
        db,
        payload.delivery_date,
        filter_by_date=payload.filter_by_date,
    )
    return ConsolidationResponse(
        target_date=result.target_date,
        lines_considered=result.lines_considered,
        groups=result.groups,
        tasks_created=result.tasks_created,
        tasks_updated=result.tasks_updated,
        tasks_unchanged=result.tasks_unchanged,
        errors=[
            ConsolidationKeyErrorResponse(
                product_id=err.product_id,
                variant_label=err.variant_label,
                delivery_date=err.delivery_date,
                error=err.error,
            )
            for err in result.errors
        ],
        cancelled=result.cancelled,
    )


# ============================================================================
# Procurement Tasks
# ============================================================================

@router.get("/tasks", response_model=List[ProcurementTaskResponse])
async def get_tasks(
    category: Optional[str] = Query(None, description="Product category ('Ver Todo' for all)"),
    delivery_date: Optional[date] = Query(None),
    task_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    return list_tasks(db, category=category, delivery_date=delivery_date, status=task_status)


@router.get("/tasks/summary", response_model=BoardSummary)
async def get_tasks_summary(
    category: Optional[str] = Query(None),
    delivery_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    return summarize_tasks(list_tasks(db, category=category, delivery_date=delivery_date))


@router.get("/tasks/{task_id}", response_model=ProcurementTaskDetailResponse)
async def get_task(task_id: int, db: Session = Depends(get_db)):
    task = get_task_view(db, task_id)
    return ProcurementTaskDetailResponse(
        task=task,
        purchases=[PurchaseResponse.model_validate(p) for p in list_task_purchases(db, task_id)],
        events=[ProcurementEventResponse.model_validate(e) for e in list_task_events(db, task_id)],
    )


# ============================================================================
# Purchases
# ============================================================================

@router.post(
    "/tasks/{task_id}/purchases",
    response_model=PurchaseResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_purchase(
    task_id: int,
    quantity: Optional[Decimal] = Form(None),
    unit_price: Optional[Decimal] = Form(None),
    purchase_unit: Optional[str] = Form(None),
    provider_id: Optional[int] = Form(None),
    provider_name: Optional[str] = Form(None, description="Quick-add a provider by name"),
    provider_location: Optional[str] = Form(None),
    pickup_in_minutes: Optional[int] = Form(None),
    pickup_location: Optional[str] = Form(None),
    created_by: Optional[str] = Form(None),
    evidence: Optional[UploadFile] = File(None, description="Voucher or invoice photo"),
    db: Session = Depends(get_db),
    storage: EvidenceStorage = Depends(get_evidence_storage),
):
    """
    Record a purchase against a task.

    Multipart form with the purchase fields and the voucher photo in ``evidence``.
    """
    new_provider = None
    if provider_id is None and provider_name and provider_name.strip():
        new_provider = ProviderCreate(name=provider_name.strip(), location=provider_location)

    request = PurchaseCreate(
        quantity=quantity,
        unit_price=unit_price,
        purchase_unit=purchase_unit,
        provider_id=provider_id,
        new_provider=new_provider,
        pickup_in_minutes=pickup_in_minutes,
        pickup_location=pickup_location,
    )

    evidence_file = None
    if evidence is not None:
        evidence_file = EvidenceFile(
            content=await evidence.read(),
            filename=evidence.filename or "voucher",
            content_type=evidence.content_type,
        )

    result = record_purchase(db, task_id, request, evidence_file, storage, created_by=created_by)
    return PurchaseResultResponse(
        purchase=PurchaseResponse.model_validate(result.purchase),
        task=build_task_view(result.task),
        converted_quantity=result.converted_quantity,
        conversion_factor=result.conversion_factor,
        extra_quantity=result.extra_quantity,
    )


@router.get("/tasks/{task_id}/purchases", response_model=List[PurchaseResponse])
async def get_task_purchases(task_id: int, db: Session = Depends(get_db)):
    return list_task_purchases(db, task_id)


# ============================================================================
# Substitutions
# ============================================================================

@router.post("/tasks/{task_id}/substitute", response_model=ProcurementTaskResponse)
async def substitute_product(
    task_id: int,
    payload: SubstitutionRequest,
    db: Session = Depends(get_db),
):
    task = substitute_task_product(db, task_id, payload.product_id, created_by=payload.created_by)
    return build_task_view(task)


@router.get("/substitutes", response_model=List[ProductSummary])
async def find_substitutes(
    q: str = Query(..., description="Product name fragment (min 2 characters)"),
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return search_substitutes(db, q, limit=limit)


# ============================================================================
# Unit Conversions
# ============================================================================

@router.get("/conversions", response_model=List[ConversionFactorResponse])
async def get_conversions(
    product_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return conversion_service.list_conversions(db, product_id)


@router.post(
    "/conversions",
    response_model=ConversionFactorResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversion(payload: ConversionFactorCreate, db: Session = Depends(get_db)):
    return conversion_service.register_conversion(
        db,
        payload.product_id,
        payload.from_unit,
        payload.to_unit,
        payload.factor,
        with_inverse=payload.with_inverse,
    )


# ============================================================================
# Providers
# ============================================================================

@router.get("/providers", response_model=List[ProviderResponse])
async def get_providers(
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return provider_service.list_providers(db, search=search)


@router.post("/providers", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(payload: ProviderCreate, db: Session = Depends(get_db)):
    return provider_service.create_provider(db, payload)
