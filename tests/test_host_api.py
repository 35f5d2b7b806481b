"""Tests for the API server wiring."""

from fastapi.testclient import TestClient

import services.host_api as host_api


def test_startup_loads_bundled_extensions():
    with TestClient(host_api.app) as client:
        health = client.get("/health")
        assert health.status_code == 200
        assert health.json() == {"status": "ok", "started": True}

        notepad = client.get("/extensions/markdown-notepad").json()
        assert notepad["state"]["status"] == "loaded"

        form = client.get("/extensions/types/panel/markdown-notepad/form").json()
        widgets = [c["widget"] for c in form["controls"]]
        assert widgets == ["input", "textarea", "slider", "color", "checkbox"]


def test_shutdown_unloads_extensions():
    with TestClient(host_api.app):
        assert host_api.host.state("time-tracker").is_loaded

    assert host_api.host.loader.states() == {}
    assert not host_api.host.registries.panels.has("markdown-notepad")
