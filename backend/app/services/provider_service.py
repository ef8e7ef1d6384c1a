"""
Provider directory - lookup and quick-add of the stalls and wholesalers buyers purchase from.
"""
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.exceptions import NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models.provider import Provider
from app.schemas.procurement import ProviderCreate

logger = get_logger(__name__)


def get_active_provider(db: Session, provider_id: int) -> Provider:
    provider = db.query(Provider).filter(
        Provider.id == provider_id,
        Provider.is_active == True,  # noqa: E712
    ).first()
    if not provider:
        raise NotFoundError("Provider", provider_id)
    return provider


def get_or_create_provider(db: Session, data: ProviderCreate) -> Provider:
    """
    Find an active provider by name (case-insensitive) or create it.

    Quick-added providers get PROVIDER_DEFAULT_LOCATION / PROVIDER_DEFAULT_CATEGORY
    when those are not supplied. Flushes only; the caller commits.
    """
    name = (data.name or "").strip()
    if not name:
        raise ValidationError("Provider name is required", field="provider_name")

    existing = db.query(Provider).filter(
        func.lower(Provider.name) == name.lower(),
        Provider.is_active == True,  # noqa: E712
    ).first()
    if existing:
        return existing

    settings = get_settings()
    provider = Provider(
        name=name,
        location=data.location or settings.PROVIDER_DEFAULT_LOCATION,
        category=data.category or settings.PROVIDER_DEFAULT_CATEGORY,
        tax_id=data.tax_id,
        contact_phone=data.contact_phone,
        email=data.email,
        is_active=True,
    )
    db.add(provider)
    db.flush()
    logger.info("Provider created", extra={"provider_id": provider.id, "provider_name": name})
    return provider


def create_provider(db: Session, data: ProviderCreate) -> Provider:
    provider = get_or_create_provider(db, data)
    db.commit()
    db.refresh(provider)
    return provider


def list_providers(db: Session, search: Optional[str] = None, active_only: bool = True) -> List[Provider]:
    query = db.query(Provider)
    if active_only:
        query = query.filter(Provider.is_active == True)  # noqa: E712
    if search:
        query = query.filter(Provider.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Provider.name).all()
