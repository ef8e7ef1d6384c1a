"""
Procurement Pydantic Schemas

Covers:
- Cutoff window
- Consolidation
- Procurement tasks and board summary
- Purchases
- Providers
- Substitutions
- Unit conversions
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from app.core.status_config import ProcurementTaskStatus


# ============================================================================
# Cutoff Window
# ============================================================================

class CutoffWindowResponse(BaseModel):
    """Delivery date the current buying shift is working on"""
    target_date: date
    cutoff_enabled: bool
    cutoff_hour: int
    local_time: datetime
    used_default: bool = Field(False, description="Cutoff switch unreadable, default rules applied")


class CutoffRulesUpdate(BaseModel):
    enabled: bool


# ============================================================================
# Consolidation
# ============================================================================

class ConsolidationRequest(BaseModel):
    """Trigger a consolidation sweep"""
    delivery_date: Optional[date] = Field(None, description="Only consolidate this delivery day")
    filter_by_date: Optional[bool] = Field(
        None, description="Restrict to the cutoff target date when no date is given"
    )


class ConsolidationKeyErrorResponse(BaseModel):
    product_id: int
    variant_label: Optional[str] = None
    delivery_date: date
    error: str


class ConsolidationResponse(BaseModel):
    """Outcome of a consolidation sweep"""
    target_date: Optional[date] = None
    lines_considered: int
    groups: int
    tasks_created: int
    tasks_updated: int
    tasks_unchanged: int
    errors: List[ConsolidationKeyErrorResponse] = []
    cancelled: bool = False


# ============================================================================
# Procurement Task Schemas
# ============================================================================

class ProcurementTaskResponse(BaseModel):
    """Procurement task as shown on the buyer board"""
    id: int
    product_id: int
    product_name: str
    display_name: str
    category: str
    variant_label: Optional[str] = None
    delivery_date: date
    total_requested: Decimal
    total_purchased: Decimal
    remaining_quantity: Decimal
    extra_quantity: Decimal
    progress_percent: float
    unit: str
    status: ProcurementTaskStatus
    original_product_id: Optional[int] = None
    original_product_name: Optional[str] = None
    is_substituted: bool = False
    created_at: datetime
    updated_at: datetime


class BoardSummary(BaseModel):
    """Dashboard counters for a set of tasks"""
    total: int = 0
    pending: int = 0
    partial: int = 0
    completed: int = 0
    progress_percent: float = 0.0


# ============================================================================
# Provider Schemas
# ============================================================================

class ProviderCreate(BaseModel):
    """Create a provider (also used for quick-add while recording a purchase)"""
    name: str = Field(..., min_length=1, max_length=200, description="Provider name")
    location: Optional[str] = Field(None, max_length=255)
    tax_id: Optional[str] = Field(None, max_length=50)
    contact_phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, max_length=100)


class ProviderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    location: Optional[str] = None
    tax_id: Optional[str] = None
    contact_phone: Optional[str] = None
    email: Optional[str] = None
    category: Optional[str] = None
    is_active: bool
    created_at: datetime


# ============================================================================
# Purchase Schemas
# ============================================================================

class PurchaseCreate(BaseModel):
    """
    Purchase as submitted by the buyer.

    Fields are optional here so that missing values are reported one at a
    time, by name, when the purchase is validated.
    """
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    purchase_unit: Optional[str] = None

    # Either an existing provider or a quick-add one
    provider_id: Optional[int] = None
    new_provider: Optional[ProviderCreate] = None

    pickup_in_minutes: Optional[int] = Field(None, description="Estimated minutes until pickup")
    pickup_location: Optional[str] = Field(None, max_length=255)


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    product_id: int
    variant_label: Optional[str] = None
    provider_id: int
    quantity: Decimal
    purchase_unit: str
    converted_quantity: Decimal
    task_unit: str
    unit_price: Decimal
    total_cost: Decimal
    voucher_image_url: str
    estimated_pickup_time: datetime
    pickup_location: Optional[str] = None
    status: str
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class PurchaseResultResponse(BaseModel):
    """Recorded purchase plus the task it advanced"""
    purchase: PurchaseResponse
    task: ProcurementTaskResponse
    converted_quantity: Decimal
    conversion_factor: Decimal
    extra_quantity: Decimal


# ============================================================================
# Substitution Schemas
# ============================================================================

class SubstitutionRequest(BaseModel):
    product_id: int = Field(..., description="Replacement product")
    created_by: Optional[str] = None


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sku: Optional[str] = None
    name: str
    category: Optional[str] = None
    unit: str


# ============================================================================
# Unit Conversion Schemas
# ============================================================================

class ConversionFactorCreate(BaseModel):
    product_id: int
    from_unit: str = Field(..., min_length=1, max_length=20, description="e.g. 'Bulto'")
    to_unit: str = Field(..., min_length=1, max_length=20, description="e.g. 'kg'")
    factor: Decimal = Field(..., gt=0, description="1 from_unit = factor to_unit")
    with_inverse: bool = Field(False, description="Also register to_unit -> from_unit")


class ConversionFactorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    from_unit: str
    to_unit: str
    factor: Decimal


# ============================================================================
# Timeline
# ============================================================================

class ProcurementEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    event_type: str
    title: str
    description: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class ProcurementTaskDetailResponse(BaseModel):
    task: ProcurementTaskResponse
    purchases: List[PurchaseResponse]
    events: List[ProcurementEventResponse]
