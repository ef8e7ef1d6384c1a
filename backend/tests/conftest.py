"""
Shared test fixtures for FruFresco Ops tests

Provides database setup, client creation, evidence storage and catalog fixtures
"""
import os

# Must be set before app.db.session builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.services.evidence_storage import LocalEvidenceStorage, get_evidence_storage
from tests.factories import reset_sequences


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    from app.models import (  # noqa: F401
        Product, Order, OrderLine, ProcurementTask, Purchase, Provider,
        ConversionFactor, AppSetting, ProcurementEvent,
    )

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def evidence_storage(tmp_path):
    """Voucher storage writing into a per-test directory"""
    return LocalEvidenceStorage(str(tmp_path / "vouchers"), public_base_url="https://files.test/vouchers")


@pytest.fixture
def client(db_session, evidence_storage):
    """Create a test client with database and storage overrides"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_evidence_storage] = lambda: evidence_storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def papa(db_session):
    """Potatoes, tracked in kg"""
    from tests.factories import create_test_product

    product = create_test_product(
        db_session,
        sku="VER-PAPA-001",
        name="Papa pastusa",
        category="Verduras",
        unit="kg",
        base_price=Decimal("2500"),
    )
    db_session.commit()
    return product


@pytest.fixture
def provider(db_session):
    """Market stall in Corabastos"""
    from tests.factories import create_test_provider

    provider = create_test_provider(db_session, name="Don Pedro", location="Bodega 12")
    db_session.commit()
    return provider
