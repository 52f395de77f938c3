"""Tests for the status API with the controller manager replaced by a stub."""

import os
import sys
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient
from kubernetes.client.rest import ApiException

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

os.environ["START_MANAGER"] = "false"

from kubeblade import main
from kubeblade.modules.api import ExperimentStatus

from fixtures.cluster_objects import experiment, make_blade, resource_status


class StubStore:
    """Live reads served by the status route for one object."""

    def __init__(self, blades=()):
        self.blades = {blade.name: blade for blade in blades}

    def get(self, name):
        return self.blades.get(name)


class StubManager:
    """Just enough of ControllerManager for the HTTP layer."""

    def __init__(self, blades=(), running=True):
        self.blades = {blade.name: blade for blade in blades}
        self.store = StubStore(blades)
        self.running = running
        self.watching = True
        self.last_sync = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
        self.queue = []
        self.stopped = False

    def snapshot(self):
        return sorted(self.blades.values(), key=lambda blade: blade.name)

    def stop(self):
        self.stopped = True


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def running_blade():
    spec = experiment("pod", "cpu", "fullload", namespace="default", names="web-1")
    status = ExperimentStatus(
        scope="pod", target="cpu", action="fullload", success=True, state="Success",
        res_statuses=[resource_status("default/node-1/web-1", id="exp-1", name="web-1", kind="pod")],
    )
    return make_blade("cpu-load", experiments=[spec], phase="Running", exp_statuses=[status])


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_lifespan_without_manager():
    with TestClient(main.app) as client:
        assert main.manager is None
        assert client.get("/health").status_code == 503


class TestWithoutManager:

    def test_health_unavailable(self, client, monkeypatch):
        monkeypatch.setattr(main, "manager", None)
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_list_unavailable(self, client, monkeypatch):
        monkeypatch.setattr(main, "manager", None)
        assert client.get("/chaosblades").status_code == 503


class TestWithManager:

    def test_health(self, client, monkeypatch):
        monkeypatch.setattr(main, "manager", StubManager())
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["watch"] == "established"
        assert body["lastSync"] == "2024-05-01T10:00:00+00:00"
        assert body["queued"] == 0

    def test_stopped_manager_unhealthy(self, client, monkeypatch):
        monkeypatch.setattr(main, "manager", StubManager(running=False))
        assert client.get("/health").status_code == 503

    def test_list(self, client, monkeypatch, running_blade):
        initial = make_blade("pending", experiments=[experiment("node", "cpu", "fullload", names="node-1")])
        monkeypatch.setattr(main, "manager", StubManager([running_blade, initial]))

        response = client.get("/chaosblades")

        assert response.status_code == 200
        items = response.json()["items"]
        assert [(item["name"], item["phase"]) for item in items] == [("cpu-load", "Running"), ("pending", "Initial")]
        assert items[0]["expStatuses"][0]["resStatuses"][0]["id"] == "exp-1"

    def test_get(self, client, monkeypatch, running_blade):
        monkeypatch.setattr(main, "manager", StubManager([running_blade]))
        response = client.get("/chaosblades/cpu-load")
        assert response.status_code == 200
        body = response.json()
        assert body["experiments"] == 1
        assert body["deleting"] is False

    def test_get_unknown(self, client, monkeypatch):
        monkeypatch.setattr(main, "manager", StubManager())
        assert client.get("/chaosblades/ghost").status_code == 404

    def test_get_reads_store_not_cache(self, client, monkeypatch, running_blade):
        stub = StubManager([make_blade("cpu-load", experiments=[experiment("node", "cpu", "fullload", names="node-1")])])
        stub.store = StubStore([running_blade])
        monkeypatch.setattr(main, "manager", stub)

        response = client.get("/chaosblades/cpu-load")

        assert response.json()["phase"] == "Running"

    def test_kubernetes_error_handler(self, client, monkeypatch):
        stub = StubManager()

        def broken(name):
            raise ApiException(status=500, reason="Internal Server Error")

        stub.store.get = broken
        monkeypatch.setattr(main, "manager", stub)

        response = client.get("/chaosblades/any")

        assert response.status_code == 502
        assert response.json() == {"error": "Kubernetes API request failed"}
