"""
Tests for main.py: FastAPI endpoints and error mapping.

Every test runs against a fresh MemoryStore injected through
app.dependency_overrides, so the module-level store is never touched and the
traffic simulator never starts (TestClient is not used as a context manager).

Tests verify:
  1. Settings get/put + validation → 400
  2. Tenant CRUD, channels, batch import (incl. malformed → 400 with line number)
  3. Distributions + revenue endpoints
  4. Withdrawals: success 201, insufficient balance 409, history order, completion
  5. Revenue export download (CSV + XLSX)
  6. Error body shape for 404 / 409 / 503
"""

import io
import pytest
from unittest.mock import patch

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from main import app, get_store
from services.errors import StorageUnavailable


# ===========================================================================
# Fixtures
# ===========================================================================

@pytest.fixture
def client(store, tmp_path):
    app.dependency_overrides[get_store] = lambda: store
    with patch("services.revenue_export.config.OUTPUT_DIR", str(tmp_path)):
        yield TestClient(app)
    app.dependency_overrides.clear()


def error_message(response):
    body = response.json()
    assert body["detail"]["status"] == "error"
    return body["detail"]["message"]


# ===========================================================================
# 1. Settings
# ===========================================================================

class TestSettings:

    def test_default_settings(self, client):
        response = client.get("/api/settings")
        assert response.status_code == 200
        assert response.json() == {"price_per_thousand_views": 0.03, "platform_fee_percent": 0.0}

    def test_update_settings(self, client):
        response = client.put("/api/settings", json={
            "price_per_thousand_views": 0.05, "platform_fee_percent": 10,
        })
        assert response.status_code == 200
        assert client.get("/api/settings").json()["price_per_thousand_views"] == 0.05

    def test_invalid_settings_400(self, client):
        response = client.put("/api/settings", json={
            "price_per_thousand_views": -1, "platform_fee_percent": 0,
        })
        assert response.status_code == 400
        assert "price_per_thousand_views" in error_message(response)


# ===========================================================================
# 2. Tenants, channels, import
# ===========================================================================

class TestTenants:

    def test_list_excludes_operator_by_default(self, client):
        ids = [t["id"] for t in client.get("/api/tenants").json()]
        assert ids == ["u_test1", "u_test2"]

    def test_list_with_operator(self, client):
        ids = [t["id"] for t in client.get("/api/tenants?include_operator=true").json()]
        assert "u_admin" in ids

    def test_create_tenant(self, client):
        response = client.post("/api/tenants", json={
            "display_name": "nova", "secret": "pw", "split_ratio": 60,
        })
        assert response.status_code == 201
        assert response.json()["role"] == "tenant"
        assert len(client.get("/api/tenants").json()) == 3

    def test_secret_never_returned(self, client):
        created = client.post("/api/tenants", json={
            "display_name": "nova", "secret": "pw", "split_ratio": 60,
        }).json()
        listed = client.get("/api/tenants?include_operator=true").json()
        edited = client.patch(f"/api/tenants/{created['id']}/ratio", json={"split_ratio": 50}).json()
        deleted = client.delete(f"/api/tenants/{created['id']}").json()

        for body in [created, edited, deleted, *listed]:
            assert "secret" not in body

    def test_create_tenant_bad_ratio(self, client):
        response = client.post("/api/tenants", json={
            "display_name": "nova", "secret": "pw", "split_ratio": 101,
        })
        assert response.status_code == 400

    def test_edit_ratio(self, client):
        response = client.patch("/api/tenants/u_test1/ratio", json={"split_ratio": 50})
        assert response.status_code == 200
        assert response.json()["split_ratio"] == 50

    def test_edit_ratio_unknown_404(self, client):
        response = client.patch("/api/tenants/u_ghost/ratio", json={"split_ratio": 50})
        assert response.status_code == 404
        assert "u_ghost" in error_message(response)

    def test_delete_tenant(self, client):
        assert client.delete("/api/tenants/u_test2").status_code == 200
        assert [t["id"] for t in client.get("/api/tenants").json()] == ["u_test1"]

    def test_delete_operator_400(self, client):
        assert client.delete("/api/tenants/u_admin").status_code == 400

    def test_bind_and_list_channels(self, client):
        response = client.post("/api/tenants/u_test1/channels", json={
            "platform": "youtube", "external_identifier": "UC42",
        })
        assert response.status_code == 201
        channels = client.get("/api/tenants/u_test1/channels").json()
        assert [c["display_name"] for c in channels] == ["YT Channel (UC42)"]

    def test_channels_unknown_tenant_404(self, client):
        assert client.get("/api/tenants/u_ghost/channels").status_code == 404

    def test_invalid_platform_422(self, client):
        response = client.post("/api/tenants/u_test1/channels", json={
            "platform": "myspace", "external_identifier": "x",
        })
        assert response.status_code == 422


class TestImport:

    def test_import_success(self, client):
        response = client.post("/api/import", json={
            "payload": "username,password,ratio,channel_name,channel_id\n"
                       "demo1,123456,75,MyChannel,UC12345\n"
                       "demo1,123456,75,MyTikTok,demo1_tt\n",
        })
        assert response.status_code == 200
        assert response.json() == {"tenants_created": 1, "channels_created": 2}

    def test_import_malformed_400(self, client):
        response = client.post("/api/import", json={
            "payload": "a,pw,50,A,UCa\nb,pw,50,B,b_tt\nc,pw,50\n",
        })
        assert response.status_code == 400
        assert error_message(response) == "Line 3 invalid format"
        assert len(client.get("/api/tenants").json()) == 2


# ===========================================================================
# 3. Distributions + revenue
# ===========================================================================

class TestRevenue:

    def test_distribute(self, client):
        response = client.post("/api/distributions", json={
            "title": "Night Drive", "tenant_ids": ["u_test1", "u_test2"],
        })
        assert response.status_code == 201
        assert len(response.json()) == 2
        assert len(client.get("/api/distributions?tenant_id=u_test1").json()) == 1

    def test_distribute_to_operator_404(self, client):
        response = client.post("/api/distributions", json={
            "title": "Night Drive", "tenant_ids": ["u_admin"],
        })
        assert response.status_code == 404

    def test_revenue_report(self, client, make_distribution):
        make_distribution("u_test1", 1_000_000)
        rows = {r["tenant_id"]: r for r in client.get("/api/revenue").json()}

        assert set(rows) == {"u_test1", "u_test2"}
        assert rows["u_test1"]["gross_revenue"] == pytest.approx(30.0)
        assert rows["u_test1"]["net_revenue"] == pytest.approx(22.5)
        assert rows["u_test2"]["available_balance"] == 0.0

    def test_tenant_revenue(self, client, make_distribution):
        make_distribution("u_test1", 2_000)
        body = client.get("/api/tenants/u_test1/revenue").json()

        assert body["summary"]["net_revenue"] == pytest.approx(0.045)
        assert len(body["distributions"]) == 1
        assert body["distributions"][0]["gross_revenue"] == pytest.approx(0.06)

    def test_operator_revenue_404(self, client):
        assert client.get("/api/tenants/u_admin/revenue").status_code == 404

    def test_overview(self, client, make_distribution):
        make_distribution("u_test1", 1_000_000)
        body = client.get("/api/overview").json()
        assert body["total_views"] == 1_000_000
        assert body["active_tenants"] == 2

    def test_price_change_reflected_immediately(self, client, make_distribution):
        make_distribution("u_test1", 1_000_000)
        client.put("/api/settings", json={"price_per_thousand_views": 0.06, "platform_fee_percent": 0})
        row = client.get("/api/revenue").json()[0]
        assert row["gross_revenue"] == pytest.approx(60.0)


# ===========================================================================
# 4. Withdrawals
# ===========================================================================

class TestWithdrawals:

    def test_withdraw_then_reject(self, client, make_distribution):
        make_distribution("u_test1", 1_000_000)

        first = client.post("/api/tenants/u_test1/withdrawals")
        second = client.post("/api/tenants/u_test1/withdrawals")

        assert first.status_code == 201
        assert first.json()["amount"] == pytest.approx(22.5)
        assert first.json()["status"] == "pending"
        assert second.status_code == 409
        assert "minimum withdrawal" in error_message(second)

    def test_below_minimum_409(self, client, make_distribution):
        make_distribution("u_test1", 2_000)
        assert client.post("/api/tenants/u_test1/withdrawals").status_code == 409

    def test_history_and_complete(self, client, make_distribution):
        make_distribution("u_test1", 1_000_000)
        w = client.post("/api/tenants/u_test1/withdrawals").json()

        history = client.get("/api/tenants/u_test1/withdrawals").json()
        assert [h["id"] for h in history] == [w["id"]]

        done = client.post(f"/api/withdrawals/{w['id']}/complete")
        assert done.status_code == 200
        assert done.json()["status"] == "completed"

    def test_overview_pending_payout(self, client, make_distribution):
        make_distribution("u_test1", 1_000_000)
        client.post("/api/tenants/u_test1/withdrawals")
        assert client.get("/api/overview").json()["pending_payout"] == pytest.approx(22.5)

    def test_complete_unknown_404(self, client):
        assert client.post("/api/withdrawals/w_ghost/complete").status_code == 404

    def test_history_unknown_tenant_404(self, client):
        assert client.get("/api/tenants/u_ghost/withdrawals").status_code == 404


# ===========================================================================
# 5. Export
# ===========================================================================

class TestExport:

    def test_csv_download(self, client, make_distribution):
        make_distribution("u_test1", 2_000)
        response = client.get("/api/revenue/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "Revenue_Report_" in response.headers["content-disposition"]
        lines = response.text.strip().split("\n")
        assert lines[0] == "Tenant,Ratio,TotalViews,GrossRevenue,PlatformFee,NetRevenue"
        assert lines[1] == "test1,75%,2000,0.0600,0%,0.0450"

    def test_xlsx_download(self, client):
        response = client.get("/api/revenue/export?format=xlsx")
        assert response.status_code == 200
        wb = load_workbook(io.BytesIO(response.content))
        assert wb.active.max_row == 3  # header + 2 tenants

    def test_bad_format_422(self, client):
        assert client.get("/api/revenue/export?format=pdf").status_code == 422


# ===========================================================================
# 6. Storage failures
# ===========================================================================

class TestStorageErrors:

    def test_storage_unavailable_503(self, client):
        with patch("main.get_rate_config", side_effect=StorageUnavailable("store offline")):
            response = client.get("/api/settings")
        assert response.status_code == 503
        assert error_message(response) == "store offline"
