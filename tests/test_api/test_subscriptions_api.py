"""
Tests for Subscriptions API endpoints
"""
import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from recurbill.api.deps import get_db, get_facade
from recurbill.application.subscriptions import build_facade
from recurbill.main import create_app

BASE = "/api/v1/subscriptions"


@pytest.fixture
def app(db_session, clock):
    """App whose routes run on the test session and the frozen clock"""
    application = create_app()
    application.dependency_overrides[get_facade] = lambda: build_facade(db_session, clock=clock)
    application.dependency_overrides[get_db] = lambda: db_session
    return application


@pytest.fixture
def client(app):
    """Test client for FastAPI"""
    return TestClient(app)


@pytest.fixture
def created(client):
    response = client.post(BASE + "/", json={
        "customer_ref": "Acme Corp",
        "plan": "Pro",
        "amount": "50.00",
        "cadence": "monthly",
        "anchor_date": "2024-01-15",
    })
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateAndRead:

    def test_create(self, created):
        assert created["customer_ref"] == "Acme Corp"
        assert created["amount"] == "50.00"
        assert created["status"] == "active"
        assert created["auto_renew"] is True
        assert created["next_charge_date"] == "2024-02-15"
        assert created["last_charge_date"] is None

    def test_create_normalizes_comma_amount(self, client):
        response = client.post(BASE + "/", json={"customer_ref": "A", "plan": "B", "amount": "19,99"})
        assert response.status_code == 201
        assert response.json()["amount"] == "19.99"

    def test_create_rejects_malformed_amount(self, client):
        response = client.post(BASE + "/", json={"customer_ref": "A", "plan": "B", "amount": "1.999"})
        assert response.status_code == 422

    def test_create_validation_errors(self, client):
        response = client.post(BASE + "/", json={
            "customer_ref": " ", "plan": "B", "amount": "0", "cadence": "daily",
        })
        assert response.status_code == 422
        assert response.json()["detail"] == [
            "Customer is required", "Amount must be greater than 0", "Invalid billing cycle",
        ]

    def test_create_past_end_of_calendar(self, client):
        response = client.post(BASE + "/", json={
            "customer_ref": "A", "plan": "B", "amount": "10", "cadence": "yearly", "anchor_date": "9999-06-01",
        })
        assert response.status_code == 422
        assert response.json()["detail"] == ["Next charge date out of range"]
        assert client.get(BASE + "/").json() == []

    def test_create_rejects_null_auto_renew(self, client):
        response = client.post(BASE + "/", json={"customer_ref": "A", "plan": "B", "amount": "10", "auto_renew": None})
        assert response.status_code == 422

    def test_get(self, client, created):
        response = client.get(f"{BASE}/{created['subscription_id']}")
        assert response.status_code == 200
        assert response.json() == created

    def test_get_missing(self, client):
        response = client.get(f"{BASE}/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Subscription not found"


class TestList:

    def test_filters_and_sort(self, client, created, clock):
        clock.advance(minutes=1)
        client.post(BASE + "/", json={"customer_ref": "Globex", "plan": "Basic", "amount": "9.00",
                                      "cadence": "weekly", "anchor_date": "2024-01-01"})

        all_items = client.get(BASE + "/").json()
        assert [s["customer_ref"] for s in all_items] == ["Acme Corp", "Globex"]

        by_date = client.get(BASE + "/", params={"sort_by": "next_charge_date"}).json()
        assert [s["customer_ref"] for s in by_date] == ["Globex", "Acme Corp"]

        by_amount = client.get(BASE + "/", params={"sort_by": "amount", "descending": True}).json()
        assert [s["amount"] for s in by_amount] == ["50.00", "9.00"]

        weekly = client.get(BASE + "/", params={"cadence": "WEEKLY"}).json()
        assert [s["customer_ref"] for s in weekly] == ["Globex"]

        acme = client.get(BASE + "/", params={"customer": "acme"}).json()
        assert [s["subscription_id"] for s in acme] == [created["subscription_id"]]

    def test_billing_due_filter(self, client, created):
        client.post(BASE + "/", json={"customer_ref": "Globex", "plan": "Basic", "amount": "9.00",
                                      "anchor_date": "2023-12-15"})
        due = client.get(BASE + "/", params={"status": "active", "billing_due": True}).json()
        assert [s["customer_ref"] for s in due] == ["Globex"]

    @pytest.mark.parametrize("params", [{"status": "archived"}, {"cadence": "daily"}, {"sort_by": "color"}])
    def test_bad_query_params(self, client, params):
        assert client.get(BASE + "/", params=params).status_code == 422


class TestLifecycle:

    def test_pause_resume_cancel(self, client, created):
        sub_id = created["subscription_id"]

        assert client.post(f"{BASE}/{sub_id}/pause").json()["status"] == "paused"
        assert client.post(f"{BASE}/{sub_id}/resume").json()["status"] == "active"

        cancelled = client.post(f"{BASE}/{sub_id}/cancel").json()
        assert cancelled["status"] == "cancelled"
        assert cancelled["auto_renew"] is False

    def test_invalid_transition_is_409(self, client, created):
        sub_id = created["subscription_id"]
        client.post(f"{BASE}/{sub_id}/cancel")

        response = client.post(f"{BASE}/{sub_id}/resume")

        assert response.status_code == 409
        assert response.json()["detail"] == "Cannot resume a subscription that is cancelled"

    def test_transition_missing_is_404(self, client):
        assert client.post(f"{BASE}/nope/pause").status_code == 404


class TestUpdateDelete:

    def test_patch(self, client, created):
        sub_id = created["subscription_id"]
        response = client.patch(f"{BASE}/{sub_id}", json={"plan": "Enterprise", "cadence": "yearly"})
        assert response.status_code == 200
        data = response.json()
        assert data["plan"] == "Enterprise"
        assert data["next_charge_date"] == "2025-01-15"

    def test_patch_invalid(self, client, created):
        response = client.patch(f"{BASE}/{created['subscription_id']}", json={"amount": "-5"})
        assert response.status_code == 422
        assert response.json()["detail"] == ["Amount must be greater than 0"]

    def test_patch_null_auto_renew_rejected(self, client, created):
        sub_id = created["subscription_id"]
        response = client.patch(f"{BASE}/{sub_id}", json={"auto_renew": None})
        assert response.status_code == 422
        assert response.json()["detail"] == ["Auto-renew must be true or false"]
        assert client.get(f"{BASE}/{sub_id}").json()["auto_renew"] is True

    def test_patch_auto_renew_false(self, client, created):
        response = client.patch(f"{BASE}/{created['subscription_id']}", json={"auto_renew": False})
        assert response.status_code == 200
        assert response.json()["auto_renew"] is False

    def test_delete(self, client, created):
        sub_id = created["subscription_id"]
        assert client.delete(f"{BASE}/{sub_id}").json() == {"status": "deleted"}
        assert client.get(f"{BASE}/{sub_id}").status_code == 404
        assert client.delete(f"{BASE}/{sub_id}").status_code == 404


class TestBilling:

    def test_bill_with_date(self, client, created):
        response = client.post(f"{BASE}/{created['subscription_id']}/bill", json={"billing_date": "2024-02-15"})
        assert response.status_code == 200
        data = response.json()
        assert data["last_charge_date"] == "2024-02-15"
        assert data["next_charge_date"] == "2024-03-15"

    def test_bill_defaults_to_today(self, client, created):
        data = client.post(f"{BASE}/{created['subscription_id']}/bill").json()
        assert data["last_charge_date"] == "2024-01-15"
        assert data["next_charge_date"] == "2024-02-15"

    def test_bill_paused_is_409(self, client, created):
        sub_id = created["subscription_id"]
        client.post(f"{BASE}/{sub_id}/pause")
        response = client.post(f"{BASE}/{sub_id}/bill")
        assert response.status_code == 409
        assert response.json()["detail"] == "Cannot bill a non-active subscription"

    def test_bill_past_end_of_calendar_is_422(self, client):
        sub = client.post(BASE + "/", json={"customer_ref": "A", "plan": "B", "amount": "10",
                                           "cadence": "yearly", "anchor_date": "9998-06-01"}).json()
        response = client.post(f"{BASE}/{sub['subscription_id']}/bill", json={"billing_date": "9999-12-31"})
        assert response.status_code == 422
        assert response.json()["detail"] == ["Next charge date out of range"]
        assert client.get(f"{BASE}/{sub['subscription_id']}").json()["last_charge_date"] is None

    def test_due_and_billing_run(self, client, created):
        client.post(BASE + "/", json={"customer_ref": "Globex", "plan": "Basic", "amount": "1200.00",
                                      "anchor_date": "2023-12-15"})

        due = client.get(BASE + "/due").json()
        assert due["count"] == 1
        assert due["summary"] == ["1 subscription due for billing:", "- Globex - Basic (1,200.00 USD)"]

        run = client.post(BASE + "/billing-run").json()
        assert run["billing_date"] == "2024-01-15"
        assert len(run["processed"]) == 1
        assert run["failed"] == {}

        assert client.get(BASE + "/due").json()["count"] == 0


class TestReporting:

    def test_metrics(self, client, created):
        client.post(BASE + "/", json={"customer_ref": "Globex", "plan": "Annual", "amount": "1200.00",
                                      "cadence": "yearly"})
        m = client.get(BASE + "/metrics").json()
        assert m["active_count"] == 2
        assert m["paused_count"] == 0
        assert m["mrr"] == "150.00"
        assert m["currency"] == "USD"

    def test_forecast(self, client, created):
        response = client.get(f"{BASE}/{created['subscription_id']}/forecast", params={"count": 2})
        assert response.json() == ["2024-02-15", "2024-03-15"]

    @pytest.mark.parametrize("count", [-1, 121, 100000])
    def test_forecast_count_is_bounded(self, client, created, count):
        response = client.get(f"{BASE}/{created['subscription_id']}/forecast", params={"count": count})
        assert response.status_code == 422

    def test_forecast_stops_at_end_of_calendar(self, client):
        sub = client.post(BASE + "/", json={"customer_ref": "A", "plan": "B", "amount": "10",
                                           "cadence": "yearly", "anchor_date": "9998-06-01"}).json()
        response = client.get(f"{BASE}/{sub['subscription_id']}/forecast", params={"count": 120})
        assert response.status_code == 200
        assert response.json() == ["9999-06-01"]

    def test_invoice(self, client, created):
        response = client.get(f"{BASE}/{created['subscription_id']}/invoice", params={"tax_rate": "10"})
        assert response.status_code == 200
        data = response.json()
        assert data["lines"][0]["name"] == "Monthly Subscription: Pro"
        assert data["total"] == "55.00"

    def test_invoice_missing(self, client):
        assert client.get(f"{BASE}/nope/invoice").status_code == 404


class TestSystem:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.text == "ok"

    def test_ready(self, client):
        with patch("recurbill.main.check_db_connection") as check:
            response = client.get("/ready")
        assert response.status_code == 200
        check.assert_called_once()


class TestEvents:

    def test_lists_recorded_events(self, client, created):
        sub_id = created["subscription_id"]
        client.post(f"{BASE}/{sub_id}/pause")

        response = client.get("/api/v1/events/")

        assert response.status_code == 200
        events = response.json()
        assert [e["event_type"] for e in events] == ["subscription_created", "subscription_paused"]
        assert all(e["subscription_id"] == sub_id for e in events)
        assert events[1]["payload"]["previous_status"] == "active"

    def test_checkpoint_and_filters(self, client, created):
        sub_id = created["subscription_id"]
        client.post(f"{BASE}/{sub_id}/bill")
        client.post(BASE + "/", json={"customer_ref": "Globex", "plan": "Basic", "amount": "9.00"})
        first = client.get("/api/v1/events/").json()[0]["event_id"]

        after = client.get("/api/v1/events/", params={"after_id": first}).json()
        assert [e["event_type"] for e in after] == ["subscription_billed", "subscription_created"]

        created_only = client.get("/api/v1/events/", params={"event_type": "subscription_created"}).json()
        assert len(created_only) == 2

        for_sub = client.get("/api/v1/events/", params={"subscription_id": sub_id, "limit": 1}).json()
        assert [e["event_type"] for e in for_sub] == ["subscription_created"]

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 1001}, {"after_id": -1}])
    def test_bad_paging_params(self, client, params):
        assert client.get("/api/v1/events/", params=params).status_code == 422
