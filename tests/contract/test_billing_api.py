"""Contract tests for the billing API."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from utility_ledger.api.app import app
from utility_ledger.models.billing_cycle import BillingCycle
from utility_ledger.services.chain import Discrepancy, DiscrepancyKind
from utility_ledger.services.reconciliation_service import ReconciliationAuditor
from utility_ledger.services import get_db


@pytest.fixture
def client(engine):
    """Test client whose requests share the per-test in-memory database."""
    SessionLocal = sessionmaker(bind=engine, autoflush=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id(client):
    response = client.post(
        "/api/billing/tenants",
        json={"name": "Grace Wanjiru", "unit_number": "A1", "meter_number": "WM-1001"},
    )
    assert response.status_code == 201
    return response.json()["id"]


def create_cycle(client, tenant_id, month, current_reading, **extra):
    payload = {
        "tenant_id": tenant_id,
        "month": month,
        "year": 2025,
        "current_reading": str(current_reading),
        "rate_per_unit": "50",
        "standing_charge": "100",
        "due_date": f"2025-{month:02d}-28",
    }
    payload.update(extra)
    return client.post("/api/billing/cycles", json=payload)


def pay(client, tenant_id, cycle_id, amount):
    return client.post(
        "/api/billing/payments",
        json={
            "tenant_id": tenant_id,
            "billing_cycle_id": cycle_id,
            "amount": str(amount),
            "payment_date": "2025-01-20",
            "method": "mobile_money",
        },
    )


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestTenantEndpoints:
    """Tenant references."""

    def test_get_tenant(self, client, tenant_id):
        response = client.get(f"/api/billing/tenants/{tenant_id}")

        assert response.status_code == 200
        assert response.json()["unit_number"] == "A1"
        assert response.json()["status"] == "active"

    def test_blank_name_is_400(self, client):
        response = client.post("/api/billing/tenants", json={"name": "   ", "unit_number": "A1"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_tenant"
        assert response.json()["error"]["field"] == "name"

    def test_unknown_tenant_is_404(self, client):
        response = client.get("/api/billing/tenants/999")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "tenant_not_found"


class TestCycleEndpoints:
    """Cycle creation, correction and deletion."""

    def test_create_returns_derived_fields(self, client, tenant_id):
        response = create_cycle(client, tenant_id, 1, 10)

        assert response.status_code == 201
        cycle = response.json()["cycle"]
        assert Decimal(cycle["units_used"]) == Decimal("10")
        assert Decimal(cycle["bill_amount"]) == Decimal("600")
        assert Decimal(cycle["current_balance"]) == Decimal("600")
        assert cycle["status"] == "outstanding"
        assert cycle["bill_date"] == "2025-01-01"
        assert response.json()["warnings"] == []

    def test_create_returns_warnings(self, client, tenant_id):
        response = create_cycle(client, tenant_id, 1, 75)

        assert response.status_code == 201
        assert response.json()["warnings"][0]["kind"] == "high_consumption"

    def test_derived_fields_cannot_be_supplied(self, client, tenant_id):
        response = create_cycle(client, tenant_id, 1, 10, bill_amount="1")

        assert response.status_code == 422

    def test_duplicate_is_409(self, client, tenant_id):
        first = create_cycle(client, tenant_id, 1, 10).json()["cycle"]

        response = create_cycle(client, tenant_id, 1, 12)

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "duplicate_cycle"
        assert error["existing_cycle_id"] == first["id"]

    def test_backwards_reading_is_400(self, client, tenant_id):
        create_cycle(client, tenant_id, 1, 10)

        response = create_cycle(client, tenant_id, 2, 5)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_reading"
        assert response.json()["error"]["previous_reading"] == "10.00"

    def test_update_readings_cascades(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        feb = create_cycle(client, tenant_id, 2, 25).json()["cycle"]

        response = client.put(
            f"/api/billing/cycles/{jan['id']}/readings",
            json={"previous_reading": "0", "current_reading": "12"},
        )

        assert response.status_code == 200
        assert Decimal(response.json()["cycle"]["bill_amount"]) == Decimal("700")
        feb_after = client.get(f"/api/billing/cycles/{feb['id']}").json()
        assert Decimal(feb_after["previous_balance"]) == Decimal("700")
        assert Decimal(feb_after["current_balance"]) == Decimal("1550")

    def test_update_charges(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]

        response = client.put(
            f"/api/billing/cycles/{jan['id']}/charges",
            json={"rate_per_unit": "40", "standing_charge": "50"},
        )

        assert response.status_code == 200
        assert Decimal(response.json()["bill_amount"]) == Decimal("450")

    def test_delete_with_later_cycle_is_409(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        feb = create_cycle(client, tenant_id, 2, 25).json()["cycle"]

        response = client.delete(f"/api/billing/cycles/{jan['id']}")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "cycle_in_use"
        assert response.json()["error"]["blocking_cycle_id"] == feb["id"]

    def test_delete_latest(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]

        assert client.delete(f"/api/billing/cycles/{jan['id']}").status_code == 204
        assert client.get(f"/api/billing/cycles/{jan['id']}").status_code == 404

    def test_list_cycles(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        feb = create_cycle(client, tenant_id, 2, 25).json()["cycle"]
        pay(client, tenant_id, feb["id"], "1450")

        all_cycles = client.get(f"/api/billing/tenants/{tenant_id}/cycles").json()
        outstanding = client.get(
            f"/api/billing/tenants/{tenant_id}/cycles", params={"outstanding_only": True}
        ).json()

        assert [c["month"] for c in all_cycles] == [2, 1]
        assert [c["id"] for c in outstanding] == [jan["id"]]


class TestPaymentEndpoints:
    """Payment recording."""

    def test_scenario_through_api(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        assert pay(client, tenant_id, jan["id"], "600").status_code == 201
        feb = create_cycle(client, tenant_id, 2, 25).json()["cycle"]
        pay(client, tenant_id, feb["id"], "1000")

        mar = create_cycle(client, tenant_id, 3, 30).json()["cycle"]

        assert Decimal(mar["previous_balance"]) == Decimal("-150")
        assert Decimal(mar["bill_amount"]) == Decimal("350")
        assert Decimal(mar["current_balance"]) == Decimal("200")
        audit = client.get(f"/api/billing/tenants/{tenant_id}/audit").json()
        assert audit == {"tenant_id": tenant_id, "consistent": True, "discrepancies": []}

    def test_non_positive_amount_is_400(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]

        response = pay(client, tenant_id, jan["id"], "0")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_amount"

    def test_auto_allocate(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        feb = create_cycle(client, tenant_id, 2, 25).json()["cycle"]

        response = client.post(
            "/api/billing/payments/auto",
            json={"tenant_id": tenant_id, "amount": "1000", "payment_date": "2025-02-10"},
        )

        assert response.status_code == 201
        assert [(p["billing_cycle_id"], Decimal(p["amount"])) for p in response.json()] == [
            (jan["id"], Decimal("600")),
            (feb["id"], Decimal("400")),
        ]

    def test_update_and_delete_payment(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        payment = pay(client, tenant_id, jan["id"], "600").json()

        updated = client.patch(f"/api/billing/payments/{payment['id']}", json={"amount": "250"})
        assert updated.status_code == 200
        assert Decimal(updated.json()["amount"]) == Decimal("250")

        assert client.delete(f"/api/billing/payments/{payment['id']}").status_code == 204
        cycle = client.get(f"/api/billing/cycles/{jan['id']}").json()
        assert Decimal(cycle["paid_amount"]) == Decimal("0")
        assert Decimal(cycle["current_balance"]) == Decimal("600")

    def test_null_notes_clear_and_omitted_notes_keep(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        payment = pay(client, tenant_id, jan["id"], "600").json()
        client.patch(f"/api/billing/payments/{payment['id']}", json={"notes": "Receipt 17"})

        kept = client.patch(f"/api/billing/payments/{payment['id']}", json={"amount": "550"})
        cleared = client.patch(f"/api/billing/payments/{payment['id']}", json={"notes": None})

        assert kept.json()["notes"] == "Receipt 17"
        assert cleared.status_code == 200
        assert cleared.json()["notes"] is None

    def test_list_payments(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        pay(client, tenant_id, jan["id"], "100")

        payments = client.get(f"/api/billing/tenants/{tenant_id}/payments").json()

        assert len(payments) == 1
        assert payments[0]["method"] == "mobile_money"


class TestReportEndpoints:
    """Statements, summaries and repair."""

    def test_statement(self, client, tenant_id):
        jan = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        pay(client, tenant_id, jan["id"], "700")

        statement = client.get(f"/api/billing/cycles/{jan['id']}/statement").json()

        assert statement["tenant_name"] == "Grace Wanjiru"
        assert statement["status"] == "credited"
        assert len(statement["payments"]) == 1

    def test_summary(self, client, tenant_id):
        create_cycle(client, tenant_id, 1, 10)

        summary = client.get("/api/billing/summary", params={"month": 1, "year": 2025}).json()

        assert summary["cycle_count"] == 1
        assert Decimal(summary["total_outstanding"]) == Decimal("600")

    def test_repair_consistent_tenant(self, client, tenant_id):
        create_cycle(client, tenant_id, 1, 10)

        response = client.post(f"/api/billing/tenants/{tenant_id}/repair")

        assert response.status_code == 200
        assert response.json()["discrepancies"] == []
        assert response.json()["consistent"] is True

    def test_repair_broken_chain(self, client, tenant_id, engine):
        create_cycle(client, tenant_id, 1, 10)
        feb = create_cycle(client, tenant_id, 2, 25).json()["cycle"]
        db = sessionmaker(bind=engine)()
        stored = db.get(BillingCycle, feb["id"])
        stored.previous_balance = Decimal("75")
        stored.current_balance = Decimal("925")
        db.commit()
        db.close()

        response = client.post(f"/api/billing/tenants/{tenant_id}/repair")

        body = response.json()
        assert body["consistent"] is True
        assert [(d["cycle_id"], d["kind"]) for d in body["discrepancies"]] == [(feb["id"], "chain_break")]
        repaired = client.get(f"/api/billing/cycles/{feb['id']}").json()
        assert Decimal(repaired["previous_balance"]) == Decimal("600")

    def test_repair_reports_what_remains_inconsistent(self, client, tenant_id, monkeypatch):
        cycle = create_cycle(client, tenant_id, 1, 10).json()["cycle"]
        leftover = Discrepancy(
            kind=DiscrepancyKind.PAID_MISMATCH,
            cycle_id=cycle["id"],
            year=2025,
            month=1,
            expected=Decimal("10"),
            actual=Decimal("0"),
        )
        monkeypatch.setattr(ReconciliationAuditor, "audit", lambda self, tenant_id: [leftover])

        response = client.post(f"/api/billing/tenants/{tenant_id}/repair")

        assert response.status_code == 200
        assert response.json()["consistent"] is False
