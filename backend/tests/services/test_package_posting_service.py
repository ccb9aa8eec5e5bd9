"""
套餐入账服务测试
半膳 2 成人 1 儿童：早餐 62.5 + 税 11.25 = 73.75，晚餐 125 + 税 22.5 = 147.50
"""
import pytest
from datetime import date
from decimal import Decimal

from app.hotel.packages import get_package
from app.models.ontology import FolioTransaction, ReservationPackage, ReservationStatus
from app.services.errors import PackageDefinitionMissing, ReservationLookupFailure
from app.services.package_posting_service import (
    PackagePostingService, component_charge, nightly_rate, package_reference,
)

AUDIT_DATE = date(2026, 3, 10)


@pytest.fixture
def package_service(db_session, publisher):
    return PackagePostingService(db_session, event_publisher=publisher)


@pytest.fixture
def half_board(package_service, make_reservation):
    reservation = make_reservation(adults=2, children=1)
    package_service.assign_package(reservation.id, "PKG-HB")
    return reservation


def test_component_charge_adds_tax_on_top():
    breakfast = get_package("PKG-HB").get_component("HB-BF")
    charge = component_charge(breakfast, adults=2, children=1)
    assert charge["net"] == Decimal("62.50")
    assert charge["tax"] == Decimal("11.25")
    assert charge["gross"] == Decimal("73.75")


def test_nightly_rate():
    assert nightly_rate(get_package("PKG-HB"), 2, 1) == Decimal("221.25")
    assert nightly_rate(get_package("PKG-RO"), 2, 1) == Decimal("0")


class TestAssignPackage:

    def test_defaults_from_reservation(self, db_session, package_service, make_reservation):
        reservation = make_reservation(adults=2, children=1)
        assignment = package_service.assign_package(reservation.id, "PKG-BB")
        assert assignment.adults == 2
        assert assignment.children == 1
        assert assignment.start_date == date(2026, 3, 9)
        assert assignment.end_date == date(2026, 3, 12)
        assert assignment.posted_dates == []

    def test_unknown_package(self, package_service, make_reservation):
        with pytest.raises(PackageDefinitionMissing):
            package_service.assign_package(make_reservation().id, "PKG-XX")

    def test_unknown_reservation(self, package_service):
        with pytest.raises(ReservationLookupFailure):
            package_service.assign_package(404, "PKG-BB")

    def test_cannot_switch_after_posting(self, package_service, half_board):
        package_service.post_package_charges(AUDIT_DATE)
        with pytest.raises(ValueError):
            package_service.assign_package(half_board.id, "PKG-FB")


class TestPostPackageCharges:

    def test_half_board_posting(self, db_session, package_service, half_board):
        summary = package_service.post_package_charges(AUDIT_DATE)

        assert summary.posted == 1
        assert summary.failed == 0
        assert summary.total_amount == Decimal("221.25")

        charges = db_session.query(FolioTransaction).order_by(FolioTransaction.id).all()
        assert [c.reference_id for c in charges] == [
            package_reference(half_board.id, AUDIT_DATE, "HB-BF"),
            package_reference(half_board.id, AUDIT_DATE, "HB-DN"),
        ]
        assert [c.debit for c in charges] == [Decimal("73.75"), Decimal("147.50")]
        assert [c.balance for c in charges] == [Decimal("73.75"), Decimal("221.25")]
        assert charges[0].category == "breakfast"
        assert charges[0].description == "Half Board - Breakfast Buffet (2A/1C)"
        assert charges[0].tax_details == [
            {"tax_type": "VAT", "rate": "18", "amount": "11.25", "base": "62.50"}
        ]

        assignment = db_session.query(ReservationPackage).one()
        assert assignment.posted_dates == ["2026-03-10"]

    def test_rerun_is_skipped(self, db_session, package_service, half_board):
        package_service.post_package_charges(AUDIT_DATE)
        summary = package_service.post_package_charges(AUDIT_DATE)

        assert summary.posted == 0
        assert summary.skipped == 1
        assert db_session.query(FolioTransaction).count() == 2

    def test_partial_previous_posting_only_adds_missing(self, db_session, package_service, half_board):
        """posted_dates 未记录但部分组件已入账时，只补入缺失组件"""
        package_service.post_package_charges(AUDIT_DATE)
        dinner = db_session.query(FolioTransaction).filter(
            FolioTransaction.reference_id == package_reference(half_board.id, AUDIT_DATE, "HB-DN")
        ).one()
        db_session.delete(dinner)
        assignment = db_session.query(ReservationPackage).one()
        assignment.posted_dates = []
        db_session.commit()

        summary = package_service.post_package_charges(AUDIT_DATE)
        assert summary.posted == 1
        assert summary.total_amount == Decimal("147.50")
        assert db_session.query(FolioTransaction).count() == 2

    def test_not_in_house_ignored(self, package_service, make_reservation):
        reservation = make_reservation(status=ReservationStatus.CHECKED_OUT)
        package_service.assign_package(reservation.id, "PKG-BB")
        summary = package_service.post_package_charges(AUDIT_DATE)
        assert (summary.posted, summary.skipped, summary.failed) == (0, 0, 0)

    def test_checkout_day_not_posted(self, package_service, half_board):
        summary = package_service.post_package_charges(date(2026, 3, 12))
        assert summary.posted == 0

    def test_missing_definition_is_failed_item(self, db_session, make_reservation, publisher):
        ok = make_reservation(room_number="101")
        broken = make_reservation(room_number="102")
        db_session.add(ReservationPackage(reservation_id=ok.id, package_id="PKG-BB", adults=2, children=0))
        db_session.add(ReservationPackage(reservation_id=broken.id, package_id="PKG-GONE", adults=1, children=0))
        db_session.commit()

        summary = PackagePostingService(db_session, event_publisher=publisher).post_package_charges(AUDIT_DATE)

        assert summary.posted == 1
        assert summary.failed == 1
        failed = [d for d in summary.details if d["status"] == "failed"][0]
        assert failed["reservation_id"] == broken.id
        assert "PKG-GONE" in failed["error"]
        broken_assignment = db_session.query(ReservationPackage).filter(
            ReservationPackage.reservation_id == broken.id
        ).one()
        assert broken_assignment.posted_dates in (None, [])

    def test_room_only_marks_date_without_charges(self, db_session, package_service, make_reservation):
        reservation = make_reservation()
        package_service.assign_package(reservation.id, "PKG-RO")
        summary = package_service.post_package_charges(AUDIT_DATE)
        assert summary.posted == 1
        assert summary.skipped == 0
        assert summary.total_amount == Decimal("0")
        assert summary.details[0]["components"] == []
        assert db_session.query(FolioTransaction).count() == 0
        assert db_session.query(ReservationPackage).one().posted_dates == ["2026-03-10"]

        rerun = package_service.post_package_charges(AUDIT_DATE)
        assert (rerun.posted, rerun.skipped) == (0, 1)

    def test_consumption_components_not_posted_nightly(self, db_session, package_service, make_reservation):
        reservation = make_reservation(adults=1)
        package_service.assign_package(reservation.id, "PKG-AI")
        package_service.post_package_charges(AUDIT_DATE)
        categories = [t.category for t in db_session.query(FolioTransaction).order_by(FolioTransaction.id)]
        assert "spa" not in categories
        assert categories == ["breakfast", "lunch", "dinner", "beverage"]


class TestRecordConsumption:

    @pytest.fixture
    def all_inclusive(self, package_service, make_reservation):
        reservation = make_reservation(adults=1)
        package_service.assign_package(reservation.id, "PKG-AI")
        return reservation

    def test_spa_consumption(self, db_session, package_service, all_inclusive):
        transaction = package_service.record_consumption(
            all_inclusive.id, "AI-SPA", business_date=AUDIT_DATE, posted_by="spa desk"
        )
        assert transaction.debit == Decimal("23.60")
        assert transaction.category == "spa"
        assert transaction.reference_id == f"PKG-CONS-{all_inclusive.id}-2026-03-10-AI-SPA-1"
        consumptions = db_session.query(ReservationPackage).one().consumptions
        assert consumptions[0]["quantity"] == 1

    def test_max_quantity_per_day(self, package_service, all_inclusive):
        package_service.record_consumption(all_inclusive.id, "AI-SPA", business_date=AUDIT_DATE)
        with pytest.raises(ValueError):
            package_service.record_consumption(all_inclusive.id, "AI-SPA", business_date=AUDIT_DATE)
        # 次日重新计数
        package_service.record_consumption(all_inclusive.id, "AI-SPA", business_date=date(2026, 3, 11))

    def test_nightly_component_rejected(self, package_service, all_inclusive):
        with pytest.raises(ValueError):
            package_service.record_consumption(all_inclusive.id, "AI-BF", business_date=AUDIT_DATE)

    def test_without_assignment(self, package_service, make_reservation):
        with pytest.raises(ValueError):
            package_service.record_consumption(make_reservation().id, "AI-SPA")
