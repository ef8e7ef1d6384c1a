"""Status Configuration

Valid status values for customer orders, procurement tasks and purchases,
and the rules that derive a task's status from its quantities.
"""
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet


# =============================================================================
# Customer Order Status
# =============================================================================

class OrderStatus(str, Enum):
    """Valid status values for customer orders"""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    READY_FOR_PROCUREMENT = "ready_for_procurement"
    IN_PICKING = "in_picking"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Only these orders contribute demand to procurement tasks
ACTIONABLE_ORDER_STATUSES: FrozenSet[str] = frozenset({
    OrderStatus.APPROVED.value,
    OrderStatus.READY_FOR_PROCUREMENT.value,
})


# =============================================================================
# Procurement Task Status
# =============================================================================

class ProcurementTaskStatus(str, Enum):
    """Derived from total_purchased vs total_requested, never set directly"""
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


# Buyer board ordering: work already started first, finished work last
TASK_STATUS_PRIORITY: Dict[str, int] = {
    ProcurementTaskStatus.PARTIAL.value: 0,
    ProcurementTaskStatus.PENDING.value: 1,
    ProcurementTaskStatus.COMPLETED.value: 2,
}


def derive_task_status(total_purchased: Decimal, total_requested: Decimal) -> str:
    """
    Status of a task given its cumulative quantities.

    - pending: nothing bought yet
    - completed: purchased >= requested (overage included)
    - partial: anything in between
    """
    purchased = Decimal(str(total_purchased or 0))
    requested = Decimal(str(total_requested or 0))
    if purchased <= 0:
        return ProcurementTaskStatus.PENDING.value
    if purchased >= requested:
        return ProcurementTaskStatus.COMPLETED.value
    return ProcurementTaskStatus.PARTIAL.value


# =============================================================================
# Purchase Status
# =============================================================================

class PurchaseStatus(str, Enum):
    """Pickup state of a recorded purchase"""
    PENDING_PICKUP = "pending_pickup"


# =============================================================================
# Procurement Event Types
# =============================================================================

class ProcurementEventType(str, Enum):
    TASK_CREATED = "task_created"
    DEMAND_UPDATED = "demand_updated"
    PURCHASE_RECORDED = "purchase_recorded"
    SUBSTITUTED = "substituted"
