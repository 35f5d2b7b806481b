"""Tests for the /extensions HTTP endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from extensions import ExtensionHost
from services.extension_endpoints import router, set_host


@pytest.fixture
def client(tmp_path, write_extension):
    write_extension(tmp_path, "gauge", """
        def register(ctx):
            ctx.register_panel(
                "gauge",
                "Gauge",
                config_schema=[
                    {"id": "label", "type": "text", "label": "Label", "required": True},
                    {"id": "max", "type": "number", "label": "Maximum", "min": 1},
                ],
                default_config={"max": 100},
            )
    """, css=".gauge {}")
    write_extension(tmp_path, "broken", "raise RuntimeError('broken build')\n")

    host = ExtensionHost(roots=[tmp_path])
    app = FastAPI()
    app.include_router(router)

    @app.on_event("startup")
    async def startup():
        await host.start()
        set_host(host)

    with TestClient(app) as test_client:
        yield test_client
    set_host(None)


def test_list_extensions(client):
    resp = client.get("/extensions")
    assert resp.status_code == 200

    data = resp.json()
    assert data["count"] == 2
    by_id = {e["id"]: e for e in data["extensions"]}
    assert by_id["gauge"]["status"] == "loaded"
    assert by_id["broken"]["status"] == "failed"
    assert "broken build" in by_id["broken"]["reason"]


def test_get_extension(client):
    resp = client.get("/extensions/gauge")
    assert resp.status_code == 200

    data = resp.json()
    assert data["extension"]["version"] == "1.0.0"
    assert data["state"]["status"] == "loaded"
    assert data["stylesheet"] == ".gauge {}"

    assert client.get("/extensions/nope").status_code == 404


def test_status(client):
    data = client.get("/extensions/status").json()

    assert data["started"] is True
    assert {e["id"] for e in data["extensions"]} == {"gauge", "broken"}
    assert data["registries"]["panel"]["total"] == 6


def test_list_types(client):
    data = client.get("/extensions/types/panel").json()
    ids = {t["id"] for t in data["types"]}
    assert {"chart", "table", "gauge"} <= ids

    assert client.get("/extensions/types/widget").status_code == 404


def test_resolve(client):
    found = client.get("/extensions/resolve/panel/gauge").json()
    assert found["resolved"] is True
    assert found["entry"]["source"] == "gauge"

    missing = client.get("/extensions/resolve/panel/broken").json()
    assert missing["resolved"] is False
    assert missing["fallback"]["reason"] == "registered but its extension failed to load"
    assert missing["placeholder"]["title"] == "Unavailable panel: broken"


def test_form(client):
    data = client.get("/extensions/types/panel/gauge/form").json()

    controls = {c["field_id"]: c for c in data["controls"]}
    assert controls["label"]["widget"] == "input"
    assert controls["label"]["required"] is True
    assert controls["max"]["value"] == 100

    assert client.get("/extensions/types/panel/heatmap/form").status_code == 404


def test_validate(client):
    resp = client.post("/extensions/types/panel/gauge/validate", json={"config": {"max": "0"}})
    assert resp.status_code == 200
    assert resp.json() == {
        "valid": False,
        "errors": {"label": "Label is required", "max": "Maximum must be at least 1"},
    }

    ok = client.post("/extensions/types/panel/table/validate", json={"config": {"dataSource": "tickets"}})
    assert ok.json() == {"valid": True, "errors": {}}


def test_reload(client):
    assert client.post("/extensions/reload", json={"extension_id": "gauge"}).json() == {"count": 1}
    assert client.post("/extensions/reload", json={}).json() == {"count": 1}


def test_host_not_started():
    set_host(None)
    app = FastAPI()
    app.include_router(router)

    resp = TestClient(app).get("/extensions")

    assert resp.status_code == 503
    assert resp.json()["detail"] == "Extension host not started"


def test_status_route_not_shadowed_by_extension(tmp_path, write_extension):
    write_extension(tmp_path, "status")
    host = ExtensionHost(roots=[tmp_path])
    app = FastAPI()
    app.include_router(router)

    @app.on_event("startup")
    async def startup():
        await host.start()
        set_host(host)

    with TestClient(app) as test_client:
        data = test_client.get("/extensions/status").json()
    set_host(None)

    assert data["extensions"] == []
