"""Database models"""
from app.models.product import Product
from app.models.order import Order, OrderLine
from app.models.procurement_task import ProcurementTask
from app.models.purchase import Purchase
from app.models.provider import Provider
from app.models.conversion_factor import ConversionFactor
from app.models.app_setting import AppSetting
from app.models.procurement_event import ProcurementEvent

__all__ = [
    # Catalog
    "Product",
    # Customer demand
    "Order",
    "OrderLine",
    # Procurement
    "ProcurementTask",
    "Purchase",
    "Provider",
    "ConversionFactor",
    # Configuration
    "AppSetting",
    # Activity Timeline
    "ProcurementEvent",
]
