"""
Unit Conversion Service

Converts a purchased quantity, recorded in whatever unit the buyer bought in,
into the canonical unit its procurement task is tracked in.

Resolution order:
1. Same unit (case-insensitive) -> identity
2. Product-specific factor (product_conversions)
3. Standard mass/volume table, only when ALLOW_STANDARD_UNIT_CONVERSIONS is on
4. Otherwise UnresolvedConversionError - never assumed 1:1
"""
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.exceptions import NotFoundError, UnresolvedConversionError, ValidationError
from app.logging_config import get_logger
from app.models.conversion_factor import ConversionFactor
from app.models.product import Product

logger = get_logger(__name__)

# Maximum decimal places for quantity formatting
MAX_DECIMAL_PLACES = 4


# ============================================================================
# Standard unit table (opt-in fallback)
# ============================================================================

STANDARD_UNIT_CONVERSIONS = {
    # Mass conversions (to KG)
    'g': {'base': 'kg', 'factor': Decimal('0.001')},
    'kg': {'base': 'kg', 'factor': Decimal('1')},
    'lb': {'base': 'kg', 'factor': Decimal('0.453592')},
    'oz': {'base': 'kg', 'factor': Decimal('0.0283495')},
    # Volume conversions (to L)
    'ml': {'base': 'l', 'factor': Decimal('0.001')},
    'l': {'base': 'l', 'factor': Decimal('1')},
}


def normalize_unit(unit: Optional[str]) -> str:
    """Canonical comparison form of a unit label ('  Kg ' -> 'kg')."""
    return (unit or "").strip().lower()


def _standard_factor(from_unit: str, to_unit: str) -> Optional[Decimal]:
    from_info = STANDARD_UNIT_CONVERSIONS.get(from_unit)
    to_info = STANDARD_UNIT_CONVERSIONS.get(to_unit)
    if not from_info or not to_info:
        return None
    if from_info['base'] != to_info['base']:
        return None
    return from_info['factor'] / to_info['factor']


def find_conversion(
    db: Session, product_id: int, from_unit: str, to_unit: str
) -> Optional[ConversionFactor]:
    """Product-specific conversion row, matched case-insensitively."""
    return db.query(ConversionFactor).filter(
        ConversionFactor.product_id == product_id,
        func.lower(ConversionFactor.from_unit) == normalize_unit(from_unit),
        func.lower(ConversionFactor.to_unit) == normalize_unit(to_unit),
    ).first()


def get_conversion_factor(
    db: Session,
    product_id: int,
    from_unit: str,
    to_unit: str,
    *,
    allow_standard: Optional[bool] = None,
) -> Decimal:
    """
    Get the factor that converts ``from_unit`` into ``to_unit`` for a product.

    Args:
        db: Database session
        product_id: Product the purchase is for
        from_unit: Unit the quantity is expressed in (e.g. 'Bulto')
        to_unit: Target unit, normally the task unit (e.g. 'kg')
        allow_standard: Override ALLOW_STANDARD_UNIT_CONVERSIONS

    Returns:
        Multiplier: quantity_in_to_unit = quantity_in_from_unit * factor

    Raises:
        UnresolvedConversionError: units differ and no factor is on file
    """
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)

    if src == dst:
        return Decimal("1")

    row = find_conversion(db, product_id, src, dst)
    if row is not None:
        return Decimal(str(row.factor))

    if allow_standard is None:
        allow_standard = get_settings().ALLOW_STANDARD_UNIT_CONVERSIONS
    if allow_standard:
        factor = _standard_factor(src, dst)
        if factor is not None:
            return factor

    logger.warning(
        "Unresolved unit conversion",
        extra={"product_id": product_id, "from_unit": from_unit, "to_unit": to_unit},
    )
    raise UnresolvedConversionError(product_id, from_unit, to_unit)


def convert_quantity_with_factor(
    db: Session,
    product_id: int,
    quantity: Decimal,
    from_unit: str,
    to_unit: str,
    *,
    allow_standard: Optional[bool] = None,
) -> Tuple[Decimal, Decimal]:
    """
    Convert a quantity and return both the converted value and the factor used.

    Example:
        >>> convert_quantity_with_factor(db, papa.id, Decimal("40"), "Bulto", "kg")
        (Decimal("2000"), Decimal("50"))
    """
    factor = get_conversion_factor(
        db, product_id, from_unit, to_unit, allow_standard=allow_standard
    )
    qty = Decimal(str(quantity))
    return qty * factor, factor


def convert_quantity(
    db: Session,
    product_id: int,
    quantity: Decimal,
    from_unit: str,
    to_unit: str,
    *,
    allow_standard: Optional[bool] = None,
) -> Decimal:
    """Convert ``quantity`` from ``from_unit`` into ``to_unit`` for a product."""
    converted, _factor = convert_quantity_with_factor(
        db, product_id, quantity, from_unit, to_unit, allow_standard=allow_standard
    )
    return converted


def _upsert_conversion(
    db: Session, product_id: int, from_unit: str, to_unit: str, factor: Decimal
) -> ConversionFactor:
    row = find_conversion(db, product_id, from_unit, to_unit)
    if row is None:
        row = ConversionFactor(
            product_id=product_id,
            from_unit=from_unit,
            to_unit=to_unit,
            factor=factor,
        )
        db.add(row)
    else:
        row.factor = factor
    return row


def register_conversion(
    db: Session,
    product_id: int,
    from_unit: str,
    to_unit: str,
    factor: Decimal,
    *,
    with_inverse: bool = False,
) -> ConversionFactor:
    """
    Create or update the conversion factor for a product.

    With ``with_inverse`` the reverse row (factor 1/x) is written as well, so
    that quantities can be converted back.
    """
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    factor = Decimal(str(factor))

    if not src:
        raise ValidationError("Source unit is required", field="from_unit")
    if not dst:
        raise ValidationError("Target unit is required", field="to_unit")
    if src == dst:
        raise ValidationError("Units must differ", field="to_unit", value=to_unit)
    if factor <= 0:
        raise ValidationError("Conversion factor must be positive", field="factor", value=factor)

    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product", product_id)

    row = _upsert_conversion(db, product_id, src, dst, factor)
    if with_inverse:
        _upsert_conversion(db, product_id, dst, src, Decimal("1") / factor)

    db.commit()
    db.refresh(row)
    logger.info(
        "Conversion factor registered",
        extra={
            "product_id": product_id,
            "from_unit": src,
            "to_unit": dst,
            "factor": str(factor),
            "with_inverse": with_inverse,
        },
    )
    return row


def list_conversions(db: Session, product_id: Optional[int] = None) -> List[ConversionFactor]:
    query = db.query(ConversionFactor)
    if product_id is not None:
        query = query.filter(ConversionFactor.product_id == product_id)
    return query.order_by(ConversionFactor.product_id, ConversionFactor.from_unit).all()


def format_quantity_with_unit(quantity: Decimal, unit: str) -> str:
    """
    Format a quantity with its unit ('80 kg', '2.5 bulto').

    Uses fixed-point notation and strips trailing zeros.
    """
    qty_str = format(Decimal(str(quantity)), f'.{MAX_DECIMAL_PLACES}f')
    if '.' in qty_str:
        qty_str = qty_str.rstrip('0').rstrip('.')
    return f"{qty_str} {normalize_unit(unit)}"


def format_conversion_note(
    original_qty: Decimal,
    original_unit: str,
    converted_qty: Decimal,
    converted_unit: str,
    product_name: Optional[str] = None,
) -> str:
    """
    Note stored on purchases, e.g. "40 bulto (= 80 kg) of Papa pastusa".

    Same-unit purchases produce just the quantity.
    """
    orig = format_quantity_with_unit(original_qty, original_unit)
    if normalize_unit(original_unit) == normalize_unit(converted_unit):
        note = orig
    else:
        note = f"{orig} (= {format_quantity_with_unit(converted_qty, converted_unit)})"
    if product_name:
        note += f" of {product_name}"
    return note
