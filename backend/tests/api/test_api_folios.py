"""
账户 API 测试
覆盖 /folios 端点：列表、详情、账单、入账、收款、关闭
"""
import pytest
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient

from app.services.folio_service import FolioService
from app.services.reservation_source import SqlReservationSource


@pytest.fixture
def folio(db_session, make_reservation):
    folios = FolioService(db_session)
    reservation = make_reservation(room_number="305")
    folio = folios.get_or_create_folio(SqlReservationSource(db_session).get(reservation.id), date(2026, 3, 9))
    folios.save(folio)
    return folio


class TestFolioQueries:

    def test_list_folios(self, client: TestClient, receptionist_auth_headers, folio):
        response = client.get("/folios", headers=receptionist_auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["folio_number"] == folio.folio_number
        assert data[0]["status"] == "open"

    def test_list_by_status(self, client: TestClient, receptionist_auth_headers, folio):
        response = client.get("/folios", params={"status": "closed"}, headers=receptionist_auth_headers)
        assert response.json() == []

    def test_detail_with_transactions(self, client: TestClient, db_session, receptionist_auth_headers, folio):
        FolioService(db_session).post_charge(folio.id, Decimal("45.50"), "minibar", "Minibar", "tester")

        response = client.get(f"/folios/{folio.id}", headers=receptionist_auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["balance"]) == Decimal("45.50")
        assert len(data["transactions"]) == 1
        assert data["transactions"][0]["category"] == "minibar"

    def test_detail_not_found(self, client: TestClient, receptionist_auth_headers):
        response = client.get("/folios/999", headers=receptionist_auth_headers)
        assert response.status_code == 404

    def test_statement(self, client: TestClient, db_session, receptionist_auth_headers, folio):
        FolioService(db_session).post_charge(folio.id, Decimal("680"), "room", "Room 305", "tester")
        response = client.get(f"/folios/{folio.id}/statement", headers=receptionist_auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["header"]["room_number"] == "305"
        assert float(data["summary"]["balance"]) == 680.0

    def test_statement_not_found(self, client: TestClient, receptionist_auth_headers):
        response = client.get("/folios/999/statement", headers=receptionist_auth_headers)
        assert response.status_code == 404


class TestFolioPostings:

    def test_post_charge(self, client: TestClient, receptionist_auth_headers, folio):
        response = client.post(f"/folios/{folio.id}/charges", headers=receptionist_auth_headers, json={
            "amount": "120.00",
            "category": "laundry",
            "description": "Laundry bag",
            "business_date": "2026-03-10",
            "reference_id": "LDY-1",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "charge"
        assert Decimal(data["debit"]) == Decimal("120.00")
        assert Decimal(data["balance"]) == Decimal("120.00")
        assert data["posted_by"] == "前台小王"
        assert data["date"] == "2026-03-10"

    def test_duplicate_reference(self, client: TestClient, receptionist_auth_headers, folio):
        body = {"amount": "10", "description": "Phone", "reference_id": "TEL-1"}
        client.post(f"/folios/{folio.id}/charges", headers=receptionist_auth_headers, json=body)
        response = client.post(f"/folios/{folio.id}/charges", headers=receptionist_auth_headers, json=body)
        assert response.status_code == 400

    def test_non_positive_charge_rejected(self, client: TestClient, receptionist_auth_headers, folio):
        response = client.post(f"/folios/{folio.id}/charges", headers=receptionist_auth_headers, json={
            "amount": "0", "description": "Nothing",
        })
        assert response.status_code == 422

    def test_charge_unknown_folio(self, client: TestClient, receptionist_auth_headers):
        response = client.post("/folios/999/charges", headers=receptionist_auth_headers, json={
            "amount": "10", "description": "Phone",
        })
        assert response.status_code == 404

    def test_post_payment(self, client: TestClient, receptionist_auth_headers, folio):
        response = client.post(f"/folios/{folio.id}/payments", headers=receptionist_auth_headers, json={
            "amount": "300", "method": " CARD ", "remark": "deposit",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "payment"
        assert data["payment_method"] == "card"
        assert Decimal(data["credit"]) == Decimal("300.00")
        assert Decimal(data["balance"]) == Decimal("-300.00")


class TestCloseFolio:

    def test_manager_closes_with_adjustment(self, client: TestClient, db_session, manager_auth_headers, folio):
        FolioService(db_session).post_charge(folio.id, Decimal("80"), "misc", "Damage", "tester")

        response = client.post(f"/folios/{folio.id}/close", headers=manager_auth_headers, json={
            "reason": "Waived", "business_date": "2026-03-12",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "closed"
        assert Decimal(data["balance"]) == Decimal("0")
        assert data["closed_by"] == "张经理"
        assert data["closed_date"] == "2026-03-12"

    def test_receptionist_cannot_close(self, client: TestClient, receptionist_auth_headers, folio):
        response = client.post(f"/folios/{folio.id}/close", headers=receptionist_auth_headers, json={
            "reason": "Waived",
        })
        assert response.status_code == 403

    def test_closed_folio_rejects_charge(self, client: TestClient, manager_auth_headers, folio):
        client.post(f"/folios/{folio.id}/close", headers=manager_auth_headers, json={"reason": "Done"})
        response = client.post(f"/folios/{folio.id}/charges", headers=manager_auth_headers, json={
            "amount": "10", "description": "Late",
        })
        assert response.status_code == 400
        assert "已关闭" in response.json()["detail"]
