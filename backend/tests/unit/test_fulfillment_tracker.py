"""
Unit Tests for purchase recording

Critical test case:
- Task needs 100 kg
- Buyer records 40 Bulto (1 Bulto = 2 kg) -> 80 kg, partial
- Buyer records 30 kg more -> 110 kg, completed with 10 kg extra
"""
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.exceptions import (
    ConflictError,
    DatabaseError,
    EvidenceUploadError,
    MissingFieldError,
    NotFoundError,
    OperationCancelledError,
    UnresolvedConversionError,
    ValidationError,
)
from app.models.procurement_event import ProcurementEvent
from app.models.procurement_task import ProcurementTask
from app.models.provider import Provider
from app.models.purchase import Purchase
from app.schemas.procurement import ProviderCreate, PurchaseCreate
from app.services import fulfillment_tracker
from app.services.evidence_storage import EvidenceFile, EvidenceStorage
from app.services.fulfillment_tracker import (
    list_task_purchases,
    record_purchase,
    validate_purchase_request,
)
from app.services.substitution_service import substitute_task_product
from tests.factories import create_test_conversion, create_test_product, create_test_task

NOW = datetime(2024, 3, 10, 14, 0, tzinfo=timezone.utc)


class MemoryStorage(EvidenceStorage):
    """Keeps vouchers in memory and remembers discards"""

    def __init__(self, on_store=None):
        self.stored: List[str] = []
        self.discarded: List[str] = []
        self.on_store = on_store

    def store(self, evidence: EvidenceFile) -> str:
        if self.on_store is not None:
            self.on_store()
        reference = f"mem://vouchers/{len(self.stored) + 1}{evidence.extension}"
        self.stored.append(reference)
        return reference

    def discard(self, reference: str) -> None:
        self.discarded.append(reference)


class FailingStorage(EvidenceStorage):

    def store(self, evidence: EvidenceFile) -> str:
        raise EvidenceUploadError("Voucher could not be uploaded, please retry", filename=evidence.filename)


def voucher() -> EvidenceFile:
    return EvidenceFile(content=b"\xff\xd8\xff fake jpeg", filename="voucher.jpg", content_type="image/jpeg")


def purchase_request(provider_id=None, **overrides) -> PurchaseCreate:
    data = {
        "quantity": Decimal("30"),
        "unit_price": Decimal("2400"),
        "purchase_unit": "kg",
        "provider_id": provider_id,
        "pickup_in_minutes": 45,
    }
    data.update(overrides)
    return PurchaseCreate(**data)


@pytest.fixture
def task(db_session: Session, papa):
    task = create_test_task(db_session, papa, total_requested="100")
    db_session.commit()
    return task


@pytest.fixture
def storage():
    return MemoryStorage()


def _task_state(db: Session, task_id: int):
    db.expire_all()
    row = db.query(ProcurementTask).filter(ProcurementTask.id == task_id).one()
    return row.total_purchased, row.status


class TestRecordPurchaseScenario:

    def test_bulto_then_kg_reaches_completed_with_extra(self, db_session: Session, papa, provider, task, storage):
        create_test_conversion(db_session, papa, "bulto", "kg", "2")
        db_session.commit()

        first = record_purchase(
            db_session, task.id,
            purchase_request(provider.id, quantity=Decimal("40"), purchase_unit="Bulto"),
            voucher(), storage, now=NOW,
        )

        assert first.converted_quantity == Decimal("80")
        assert first.task.total_purchased == Decimal("80")
        assert first.task.status == "partial"
        assert first.extra_quantity == Decimal("0")
        assert first.purchase.quantity == Decimal("40")
        assert first.purchase.purchase_unit == "Bulto", "Purchase is stored in the unit bought"

        second = record_purchase(
            db_session, task.id,
            purchase_request(provider.id, quantity=Decimal("30"), purchase_unit="kg"),
            voucher(), storage, now=NOW,
        )

        assert second.task.total_purchased == Decimal("110")
        assert second.task.status == "completed"
        assert second.extra_quantity == Decimal("10")

    def test_purchase_row_contents(self, db_session: Session, papa, provider, task, storage):
        create_test_conversion(db_session, papa, "bulto", "kg", "2")
        db_session.commit()

        result = record_purchase(
            db_session, task.id,
            purchase_request(provider.id, quantity=Decimal("40"), unit_price=Decimal("4800"), purchase_unit="Bulto"),
            voucher(), storage, now=NOW, created_by="comprador1",
        )

        purchase = result.purchase
        assert purchase.task_id == task.id
        assert purchase.product_id == papa.id
        assert purchase.provider_id == provider.id
        assert purchase.converted_quantity == Decimal("80")
        assert purchase.task_unit == "kg"
        assert purchase.total_cost == Decimal("192000")
        assert purchase.voucher_image_url == storage.stored[0]
        assert purchase.status == "pending_pickup"
        assert purchase.estimated_pickup_time == datetime(2024, 3, 10, 14, 45)
        assert purchase.pickup_location == "Bodega 12"
        assert purchase.notes == "40 bulto (= 80 kg) of Papa pastusa"
        assert purchase.created_by == "comprador1"
        assert result.conversion_factor == Decimal("2")

    def test_explicit_pickup_location_wins(self, db_session: Session, provider, task, storage):
        result = record_purchase(
            db_session, task.id,
            purchase_request(provider.id, pickup_location="Puerta 5"),
            voucher(), storage, now=NOW,
        )
        assert result.purchase.pickup_location == "Puerta 5"

    def test_records_timeline_event(self, db_session: Session, provider, task, storage):
        record_purchase(db_session, task.id, purchase_request(provider.id), voucher(), storage, now=NOW)

        event = db_session.query(ProcurementEvent).filter(ProcurementEvent.task_id == task.id).one()
        assert event.event_type == "purchase_recorded"
        assert event.title == "Purchased 30 kg"

    def test_quick_add_provider_gets_defaults(self, db_session: Session, task, storage):
        request = purchase_request(new_provider=ProviderCreate(name="Doña Marta"))

        result = record_purchase(db_session, task.id, request, voucher(), storage, now=NOW)

        provider = db_session.query(Provider).filter(Provider.id == result.purchase.provider_id).one()
        assert provider.name == "Doña Marta"
        assert provider.location == "General"
        assert provider.category == "Varios"
        assert result.purchase.pickup_location == "General"

    def test_quick_add_reuses_provider_with_same_name(self, db_session: Session, provider, task, storage):
        request = purchase_request(new_provider=ProviderCreate(name="don pedro"))

        result = record_purchase(db_session, task.id, request, voucher(), storage, now=NOW)

        assert result.purchase.provider_id == provider.id
        assert db_session.query(Provider).count() == 1

    def test_concurrent_purchase_is_not_lost(self, db_session: Session, provider, task):
        def other_buyer_records_30kg():
            db_session.query(ProcurementTask).filter(ProcurementTask.id == task.id).update(
                {ProcurementTask.total_purchased: ProcurementTask.total_purchased + Decimal("30")},
                synchronize_session=False,
            )
            db_session.commit()

        storage = MemoryStorage(on_store=other_buyer_records_30kg)

        result = record_purchase(
            db_session, task.id,
            purchase_request(provider.id, quantity=Decimal("80")),
            voucher(), storage, now=NOW,
        )

        assert result.task.total_purchased == Decimal("110"), "Both purchases must be counted"
        assert result.task.status == "completed"

    def test_substitution_during_upload_is_a_conflict(self, db_session: Session, provider, task):
        caja = create_test_product(db_session, name="Papa en caja", unit="caja")
        db_session.commit()
        storage = MemoryStorage(on_store=lambda: substitute_task_product(db_session, task.id, caja.id))

        with pytest.raises(ConflictError):
            record_purchase(db_session, task.id, purchase_request(provider.id), voucher(), storage, now=NOW)

        db_session.expire_all()
        stored = db_session.query(ProcurementTask).filter(ProcurementTask.id == task.id).one()
        assert stored.unit == "caja"
        assert stored.total_purchased == Decimal("0"), "Kilograms must not be counted as boxes"
        assert db_session.query(Purchase).count() == 0
        assert storage.discarded == storage.stored

    def test_list_task_purchases(self, db_session: Session, provider, task, storage):
        record_purchase(db_session, task.id, purchase_request(provider.id), voucher(), storage, now=NOW)
        record_purchase(db_session, task.id, purchase_request(provider.id, quantity=Decimal("5")), voucher(), storage, now=NOW)

        purchases = list_task_purchases(db_session, task.id)

        assert [p.quantity for p in purchases] == [Decimal("30"), Decimal("5")]

    def test_list_purchases_unknown_task(self, db_session: Session):
        with pytest.raises(NotFoundError):
            list_task_purchases(db_session, 404)


class TestPurchaseValidation:

    @pytest.mark.parametrize(
        "missing, expected_field",
        [
            ({"quantity": None}, "quantity"),
            ({"unit_price": None}, "unit_price"),
            ({"provider_id": None}, "provider"),
            ({"pickup_in_minutes": None}, "pickup_in_minutes"),
            ({"purchase_unit": "  "}, "purchase_unit"),
        ],
    )
    def test_missing_field_is_named(self, missing, expected_field):
        request = purchase_request(**{"provider_id": 1, **missing})

        with pytest.raises(MissingFieldError) as exc_info:
            validate_purchase_request(request, voucher())

        assert exc_info.value.field == expected_field

    def test_missing_evidence_is_named(self):
        with pytest.raises(MissingFieldError) as exc_info:
            validate_purchase_request(purchase_request(1), None)
        assert exc_info.value.field == "evidence"

    def test_fields_are_reported_in_form_order(self):
        request = PurchaseCreate()

        with pytest.raises(MissingFieldError) as exc_info:
            validate_purchase_request(request, None)

        assert exc_info.value.field == "quantity"

    def test_quick_add_without_name_is_missing_provider(self):
        request = purchase_request(new_provider=ProviderCreate.model_construct(name="  "))

        with pytest.raises(MissingFieldError) as exc_info:
            validate_purchase_request(request, voucher())

        assert exc_info.value.field == "provider"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"quantity": Decimal("0")}, "quantity"),
            ({"quantity": Decimal("-1")}, "quantity"),
            ({"unit_price": Decimal("-100")}, "unit_price"),
            ({"pickup_in_minutes": -5}, "pickup_in_minutes"),
        ],
    )
    def test_out_of_range_values(self, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            validate_purchase_request(purchase_request(1, **overrides), voucher())
        assert exc_info.value.field == field

    def test_free_items_are_allowed(self):
        validate_purchase_request(purchase_request(1, unit_price=Decimal("0")), voucher())

    def test_disallowed_evidence_type(self):
        evidence = EvidenceFile(content=b"MZ", filename="voucher.exe")

        with pytest.raises(ValidationError) as exc_info:
            validate_purchase_request(purchase_request(1), evidence)

        assert exc_info.value.field == "evidence"

    def test_validation_error_writes_nothing(self, db_session: Session, provider, task, storage):
        with pytest.raises(MissingFieldError):
            record_purchase(db_session, task.id, purchase_request(provider.id, quantity=None), voucher(), storage)

        assert storage.stored == []
        assert db_session.query(Purchase).count() == 0


class TestPurchaseFailures:

    def test_unknown_task(self, db_session: Session, provider, storage):
        with pytest.raises(NotFoundError):
            record_purchase(db_session, 404, purchase_request(provider.id), voucher(), storage)
        assert storage.stored == []

    def test_unknown_provider(self, db_session: Session, task, storage):
        with pytest.raises(NotFoundError):
            record_purchase(db_session, task.id, purchase_request(999), voucher(), storage)
        assert storage.stored == []

    def test_unresolved_conversion_blocks_before_any_write(self, db_session: Session, provider, task, storage):
        request = purchase_request(provider.id, quantity=Decimal("3"), purchase_unit="Canastilla")

        with pytest.raises(UnresolvedConversionError):
            record_purchase(db_session, task.id, request, voucher(), storage, now=NOW)

        assert storage.stored == [], "Voucher must not be uploaded when the unit cannot be converted"
        assert db_session.query(Purchase).count() == 0
        assert _task_state(db_session, task.id) == (Decimal("0"), "pending")

    def test_upload_failure_leaves_task_untouched(self, db_session: Session, provider, task):
        with pytest.raises(EvidenceUploadError):
            record_purchase(db_session, task.id, purchase_request(provider.id), voucher(), FailingStorage(), now=NOW)

        assert db_session.query(Purchase).count() == 0
        assert _task_state(db_session, task.id) == (Decimal("0"), "pending")

    def test_cancelled_before_upload(self, db_session: Session, provider, task, storage):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            record_purchase(
                db_session, task.id, purchase_request(provider.id), voucher(), storage, cancel_event=cancel
            )

        assert storage.stored == []
        assert db_session.query(Purchase).count() == 0

    def test_cancelled_during_upload_discards_voucher(self, db_session: Session, provider, task):
        cancel = threading.Event()
        storage = MemoryStorage(on_store=cancel.set)

        with pytest.raises(OperationCancelledError):
            record_purchase(
                db_session, task.id, purchase_request(provider.id), voucher(), storage, cancel_event=cancel
            )

        assert storage.discarded == storage.stored
        assert db_session.query(Purchase).count() == 0
        assert _task_state(db_session, task.id) == (Decimal("0"), "pending")

    def test_storage_failure_rolls_back_everything(self, db_session: Session, task, storage, monkeypatch):
        def broken_event(*args, **kwargs):
            raise OperationalError("INSERT INTO procurement_events", {}, Exception("disk I/O error"))

        monkeypatch.setattr(fulfillment_tracker, "record_procurement_event", broken_event)
        request = purchase_request(new_provider=ProviderCreate(name="Nuevo"))

        with pytest.raises(DatabaseError):
            record_purchase(db_session, task.id, request, voucher(), storage, now=NOW)

        assert db_session.query(Purchase).count() == 0
        assert db_session.query(Provider).count() == 0
        assert _task_state(db_session, task.id) == (Decimal("0"), "pending")
        assert storage.discarded == storage.stored
