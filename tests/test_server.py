"""Tests for the HTTP server: relay routes, dashboard API and front-end fallback."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from boleto_flow.clients.digisac import TARGET_HEADER, DigiSacClient
from boleto_flow.clients.omie import OmieClient
from boleto_flow.models import ErpConfig, RecordStatus
from boleto_flow.runtime import Runtime
from boleto_flow.server.app import create_app
from conftest import make_record


@pytest.fixture
def upstream_calls():
    """Requests seen by the mocked upstream."""
    return []


@pytest.fixture
def upstream(upstream_calls):
    """Relay HTTP client backed by a mock transport that echoes request details."""

    def handler(request: httpx.Request) -> httpx.Response:
        upstream_calls.append(request)
        if request.url.host == "down.example":
            raise httpx.ConnectError("refused")
        return httpx.Response(
            201,
            json={"url": str(request.url), "method": request.method},
            headers={"x-upstream": "yes"},
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def runtime(session, simulated_gateway_config):
    """Runtime with simulated gateway and ERP."""
    session.replace_gateway_config(simulated_gateway_config)
    session.replace_erp_config(ErpConfig(simulation=True))
    return Runtime(
        session,
        erp=OmieClient(simulation_delay=0),
        gateway=DigiSacClient(simulation_delay=0),
    )


@pytest.fixture
def static_dir(tmp_path):
    """Minimal front-end build."""
    (tmp_path / "index.html").write_text("<html>app</html>", encoding="utf-8")
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "app.js").write_text("console.log(1)", encoding="utf-8")
    return tmp_path


@pytest.fixture
def client(runtime, upstream, static_dir):
    """Test client over an app with injected dependencies."""
    return TestClient(create_app(runtime=runtime, upstream=upstream, static_dir=static_dir))


class TestRelay:
    """Tests for the pass-through relay."""

    def test_digisac_requires_target(self, client, upstream_calls):
        """Test requests without the target header are rejected."""
        response = client.get("/proxy/digisac/v1/services")

        assert response.status_code == 400
        assert response.text == "Missing target URL"
        assert upstream_calls == []

    def test_digisac_forwards(self, client, upstream_calls):
        """Test method, path, query, body and auth reach the target host."""
        response = client.post(
            "/proxy/digisac/v1/messages?x=1",
            headers={
                TARGET_HEADER: "https://empresa.digisac.app/",
                "Authorization": "Bearer token-123",
            },
            json={"text": "Olá"},
        )

        assert response.status_code == 201
        assert response.headers["x-upstream"] == "yes"
        assert response.json()["url"] == "https://empresa.digisac.app/v1/messages?x=1"

        forwarded = upstream_calls[0]
        assert forwarded.headers["authorization"] == "Bearer token-123"
        assert TARGET_HEADER not in forwarded.headers
        assert json.loads(forwarded.content) == {"text": "Olá"}

    def test_digisac_unreachable(self, client):
        """Test transport failures become a 502."""
        response = client.get(
            "/proxy/digisac/v1/users", headers={TARGET_HEADER: "https://down.example"}
        )

        assert response.status_code == 502
        assert response.text == "Proxy Error: Could not reach DigiSac server"

    def test_omie_forwards_to_fixed_root(self, client, upstream_calls):
        """Test Omie calls go to the configured API root."""
        response = client.post("/proxy/omie/financas/contareceber/", json={"call": "X"})

        assert response.status_code == 201
        assert str(upstream_calls[0].url) == "https://app.omie.com.br/api/v1/financas/contareceber/"


class TestApi:
    """Tests for the dashboard API."""

    def test_health(self, client):
        """Test the health endpoint."""
        assert client.get("/health").json() == {"status": "ok"}

    def test_list_and_filter_records(self, client, session):
        """Test the queue listing honours tab and search."""
        session.replace_records(
            [make_record("omie-1"), make_record("omie-2", status=RecordStatus.SENT)]
        )

        everything = client.get("/api/records").json()
        sent = client.get("/api/records", params={"filter": "sent"}).json()

        assert everything["count"] == 2
        assert [r["id"] for r in sent["records"]] == ["omie-2"]

    def test_edit_record(self, client, session):
        """Test phone edits are stored digits-only."""
        session.replace_records([make_record("omie-1", phone="")])

        response = client.patch("/api/records/omie-1", json={"phone": "(11) 98888-7777"})

        assert response.status_code == 200
        assert response.json()["phone"] == "11988887777"

    def test_edit_unknown_record(self, client):
        """Test editing a missing record is a 404."""
        assert client.patch("/api/records/nope", json={"phone": "1"}).status_code == 404

    def test_delete_and_clear(self, client, session):
        """Test single and bulk deletion."""
        session.replace_records([make_record("omie-1"), make_record("omie-2")])

        assert client.delete("/api/records/omie-1").json() == {"deleted": "omie-1"}
        assert client.delete("/api/records/omie-1").status_code == 404
        assert client.delete("/api/records").json() == {"deleted": 1}

    def test_import_then_send_all(self, client, session):
        """Test a simulated ERP import followed by a bulk send."""
        imported = client.post("/api/import/erp").json()
        summary = client.post("/api/send-all").json()

        assert [r["id"] for r in imported["added"]] == ["omie-test-1"]
        assert summary == {"sent": 1, "failed": 0, "total": 1}
        assert session.get_record("omie-test-1").status == RecordStatus.SENT

    def test_import_erp_failure(self, client, session):
        """Test ERP errors come back as 502 with the message."""
        session.replace_erp_config(ErpConfig())

        response = client.post("/api/import/erp")

        assert response.status_code == 502
        assert response.json()["detail"] == "Configure as chaves da Omie."

    def test_send_one(self, client, session):
        """Test sending a single record."""
        session.replace_records([make_record("omie-1")])

        response = client.post("/api/records/omie-1/send")

        assert response.json()["status"] == "sent"
        assert client.post("/api/records/nope/send").status_code == 404

    def test_send_all_while_busy(self, client, runtime):
        """Test a second bulk send is refused while one runs."""
        runtime.dispatcher._busy = True

        assert client.post("/api/send-all").status_code == 409

    def test_import_image_without_model(self, client):
        """Test image import fails cleanly when no model is configured."""
        assert client.post("/api/import/image", content=b"").status_code == 400

        response = client.post(
            "/api/import/image", content=b"\x89PNG", headers={"content-type": "image/png"}
        )

        assert response.status_code == 422

    def test_logs_and_stats(self, client, session):
        """Test the monitor and dashboard endpoints."""
        session.replace_records([make_record("omie-1"), make_record("omie-2")])
        client.post("/api/records/omie-1/send")

        logs = client.get("/api/logs").json()
        stats = client.get("/api/stats", params={"recent": 1}).json()

        assert logs[0]["message"] == "Enviado para: ACME LTDA"
        assert logs[0]["type"] == "success"
        assert stats["sent"] == 1
        assert stats["pending"] == 1
        assert stats["total_amount"] == "300.00"
        assert [r["id"] for r in stats["recent"]] == ["omie-2"]

    def test_config_round_trip(self, client):
        """Test saving and reading back both configurations."""
        gateway = client.get("/api/config/gateway").json()
        gateway["default_channel_id"] = "svc-9"

        assert client.put("/api/config/gateway", json=gateway).status_code == 200
        assert client.get("/api/config/gateway").json()["default_channel_id"] == "svc-9"

        client.put("/api/config/erp", json={"app_key": "k", "app_secret": "s"})
        assert client.get("/api/config/erp").json()["app_key"] == "k"

    def test_catalog_sync_without_credentials(self, client):
        """Test catalog sync reports missing credentials."""
        client.put("/api/config/gateway", json={"simulation": True})

        response = client.post("/api/catalog/sync")

        assert response.status_code == 502
        assert response.json()["detail"] == "Informe URL e Token primeiro."

    def test_backup_round_trip(self, client):
        """Test exporting and restoring configuration."""
        backup = client.get("/api/backup").json()

        response = client.post("/api/backup", content=json.dumps(backup))

        assert response.json() == {"restored": ["gateway_config", "erp_config"]}
        assert client.post("/api/backup", content=b"{nope").status_code == 400


class TestFrontEnd:
    """Tests for serving the built front-end."""

    def test_static_file(self, client):
        """Test existing build files are served."""
        assert client.get("/assets/app.js").text == "console.log(1)"

    def test_unknown_route_falls_back_to_index(self, client):
        """Test client-side routes get the entry document."""
        response = client.get("/settings/gateway")

        assert response.status_code == 200
        assert "app" in response.text

    def test_no_build(self, runtime, upstream, tmp_path):
        """Test a missing build directory is a 404."""
        app = create_app(runtime=runtime, upstream=upstream, static_dir=tmp_path / "missing")

        assert TestClient(app).get("/").status_code == 404
