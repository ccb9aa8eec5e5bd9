"""
事件处理器测试
"""
import logging
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from app.models.events import EventType
from app.services.event_bus import Event, EventBus
from app.services.event_handlers import EventHandlers
from app.services.folio_service import FolioService
from app.services.reservation_source import SqlReservationSource


@pytest.fixture
def handlers(db_engine):
    test_session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    return EventHandlers(db_session_factory=test_session_factory)


@pytest.fixture
def folio(db_session, make_reservation):
    folios = FolioService(db_session)
    reservation = make_reservation()
    folio = folios.get_or_create_folio(SqlReservationSource(db_session).get(reservation.id), credit_limit=100)
    folios.save(folio)
    return folio


def _payment_event(folio_id):
    return Event(
        event_type=EventType.PAYMENT_RECEIVED,
        timestamp=datetime.now(),
        data={"folio_id": folio_id, "amount": 10.0},
        source="test",
    )


class TestPaymentReceived:

    def test_warns_when_over_credit_limit(self, db_session, handlers, folio, caplog):
        FolioService(db_session).post_charge(folio.id, Decimal("150"), "room", "Room", "tester")

        with caplog.at_level(logging.WARNING, logger="app.services.event_handlers"):
            handlers.handle_payment_received(_payment_event(folio.id))

        assert "exceeds credit limit" in caplog.text

    def test_silent_within_limit(self, handlers, folio, caplog):
        with caplog.at_level(logging.WARNING, logger="app.services.event_handlers"):
            handlers.handle_payment_received(_payment_event(folio.id))
        assert caplog.text == ""

    def test_missing_folio_id(self, handlers, caplog):
        with caplog.at_level(logging.WARNING, logger="app.services.event_handlers"):
            handlers.handle_payment_received(_payment_event(None))
        assert "missing folio_id" in caplog.text


def test_night_audit_failure_logged(handlers, caplog):
    event = Event(
        event_type=EventType.NIGHT_AUDIT_FAILED,
        timestamp=datetime.now(),
        data={"audit_date": "2026-03-10", "step": "room_posting", "error": "timeout"},
        source="test",
    )
    with caplog.at_level(logging.ERROR, logger="app.services.event_handlers"):
        handlers.handle_night_audit_failed(event)
    assert "2026-03-10" in caplog.text
    assert "room_posting" in caplog.text


def test_register_and_unregister(handlers):
    bus = EventBus()
    handlers.register_handlers(bus)
    handlers.register_handlers(bus)

    closed = Event(
        event_type=EventType.FOLIO_CLOSED,
        timestamp=datetime.now(),
        data={"folio_number": "F260310-101-1", "reason": "Done"},
        source="test",
    )
    assert bus.publish(closed) == 1

    handlers.unregister_handlers(bus)
    assert bus.publish(closed) == 0
