"""
Unit Tests for product substitution on procurement tasks
"""
import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.exceptions import (
    BusinessRuleError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.procurement_event import ProcurementEvent
from app.services.substitution_service import search_substitutes, substitute_task_product
from tests.factories import create_test_product, create_test_task

DELIVERY = date(2024, 3, 11)


@pytest.fixture
def sabanera(db_session: Session):
    product = create_test_product(db_session, name="Papa sabanera", unit="kg")
    db_session.commit()
    return product


class TestSubstituteTaskProduct:

    def test_first_substitution_records_original(self, db_session: Session, papa, sabanera):
        task = create_test_task(db_session, papa, total_requested="100", total_purchased="20")
        db_session.commit()

        result = substitute_task_product(db_session, task.id, sabanera.id)

        assert result.product_id == sabanera.id
        assert result.original_product_id == papa.id
        assert result.total_requested == Decimal("100"), "Quantities must survive substitution"
        assert result.total_purchased == Decimal("20")
        assert result.status == "partial"

    def test_second_substitution_keeps_first_original(self, db_session: Session, papa, sabanera):
        criolla = create_test_product(db_session, name="Papa criolla")
        task = create_test_task(db_session, papa)
        db_session.commit()

        substitute_task_product(db_session, task.id, sabanera.id)
        result = substitute_task_product(db_session, task.id, criolla.id)

        assert result.product_id == criolla.id
        assert result.original_product_id == papa.id

    def test_unit_follows_new_product(self, db_session: Session, papa):
        atado = create_test_product(db_session, name="Cebolla larga", unit="atado")
        task = create_test_task(db_session, papa)
        db_session.commit()

        result = substitute_task_product(db_session, task.id, atado.id)

        assert result.unit == "atado"

    def test_same_product_is_rejected(self, db_session: Session, papa):
        task = create_test_task(db_session, papa)
        db_session.commit()

        with pytest.raises(BusinessRuleError):
            substitute_task_product(db_session, task.id, papa.id)

    def test_completed_task_is_rejected(self, db_session: Session, papa, sabanera):
        task = create_test_task(db_session, papa, total_requested="50", total_purchased="50")
        db_session.commit()

        with pytest.raises(InvalidStateError):
            substitute_task_product(db_session, task.id, sabanera.id)

        db_session.refresh(task)
        assert task.product_id == papa.id
        assert task.original_product_id is None

    def test_unknown_task(self, db_session: Session, sabanera):
        with pytest.raises(NotFoundError):
            substitute_task_product(db_session, 404, sabanera.id)

    def test_unknown_product(self, db_session: Session, papa):
        task = create_test_task(db_session, papa)
        db_session.commit()

        with pytest.raises(NotFoundError):
            substitute_task_product(db_session, task.id, 404)

    def test_clash_with_existing_task_is_conflict(self, db_session: Session, papa, sabanera):
        task = create_test_task(db_session, papa, delivery_date=DELIVERY)
        create_test_task(db_session, sabanera, delivery_date=DELIVERY)
        db_session.commit()

        with pytest.raises(ConflictError):
            substitute_task_product(db_session, task.id, sabanera.id)

        db_session.refresh(task)
        assert task.product_id == papa.id

    def test_records_timeline_event(self, db_session: Session, papa, sabanera):
        task = create_test_task(db_session, papa)
        db_session.commit()

        substitute_task_product(db_session, task.id, sabanera.id)

        event = db_session.query(ProcurementEvent).filter(ProcurementEvent.task_id == task.id).one()
        assert event.event_type == "substituted"
        assert event.old_value == str(papa.id)
        assert event.new_value == str(sabanera.id)


class TestSearchSubstitutes:

    def test_case_insensitive_match(self, db_session: Session, papa, sabanera):
        create_test_product(db_session, name="Tomate chonto")
        db_session.commit()

        results = search_substitutes(db_session, "PAPA")

        assert [p.name for p in results] == ["Papa pastusa", "Papa sabanera"]

    def test_limit(self, db_session: Session):
        for i in range(8):
            create_test_product(db_session, name=f"Mango {i}")
        db_session.commit()

        assert len(search_substitutes(db_session, "mango")) == 5
        assert len(search_substitutes(db_session, "mango", limit=2)) == 2

    def test_inactive_products_are_skipped(self, db_session: Session):
        create_test_product(db_session, name="Mango viejo", active=False)
        db_session.commit()

        assert search_substitutes(db_session, "mango") == []

    @pytest.mark.parametrize("term", ["", " ", "p"])
    def test_short_terms_are_rejected(self, db_session: Session, term):
        with pytest.raises(ValidationError):
            search_substitutes(db_session, term)
