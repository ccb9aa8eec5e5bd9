"""
套餐 API 测试
"""
from decimal import Decimal
from fastapi.testclient import TestClient


class TestPackageCatalog:

    def test_list_packages(self, client: TestClient, receptionist_auth_headers):
        response = client.get("/packages", headers=receptionist_auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert [p["code"] for p in data] == ["RO", "BB", "HB", "FB", "AI"]
        spa = [c for c in data[-1]["components"] if c["id"] == "AI-SPA"][0]
        assert spa["post_time"] == "consumption"
        assert spa["max_quantity"] == 1


class TestAssignPackage:

    def test_assign(self, client: TestClient, receptionist_auth_headers, make_reservation):
        reservation = make_reservation(adults=2, children=1)
        response = client.post("/packages/assign", headers=receptionist_auth_headers, json={
            "reservation_id": reservation.id, "package_id": "PKG-HB",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["package_id"] == "PKG-HB"
        assert data["children"] == 1
        assert data["start_date"] == "2026-03-09"
        assert data["posted_dates"] == []

    def test_unknown_package(self, client: TestClient, receptionist_auth_headers, make_reservation):
        response = client.post("/packages/assign", headers=receptionist_auth_headers, json={
            "reservation_id": make_reservation().id, "package_id": "PKG-NOPE",
        })
        assert response.status_code == 404

    def test_unknown_reservation(self, client: TestClient, receptionist_auth_headers):
        response = client.post("/packages/assign", headers=receptionist_auth_headers, json={
            "reservation_id": 4040, "package_id": "PKG-BB",
        })
        assert response.status_code == 404


class TestConsumption:

    def test_record_spa(self, client: TestClient, receptionist_auth_headers, make_reservation):
        reservation = make_reservation(adults=1)
        client.post("/packages/assign", headers=receptionist_auth_headers, json={
            "reservation_id": reservation.id, "package_id": "PKG-AI",
        })

        body = {"reservation_id": reservation.id, "component_id": "AI-SPA", "business_date": "2026-03-10"}
        response = client.post("/packages/consumption", headers=receptionist_auth_headers, json=body)

        assert response.status_code == 200
        assert Decimal(response.json()["debit"]) == Decimal("23.60")

        again = client.post("/packages/consumption", headers=receptionist_auth_headers, json=body)
        assert again.status_code == 400
