"""Tests for the deployment HTTP routes."""

import pytest
from dependency_injector import providers
from fastapi import FastAPI
from fastapi.testclient import TestClient

from deploy_lifecycle.core.config import Settings
from deploy_lifecycle.core.container import container
from deploy_lifecycle.routers import deployments

BODY = {
    "account_id": "123456789012",
    "cluster": "prod-cluster",
    "environment_name": "web",
    "environment_revision_id": "rev-1",
    "desired_task_count": 1,
}


@pytest.fixture
def api_settings(tmp_path):
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", admin_delete_enabled=True)


@pytest.fixture
def client(manager, api_settings):
    app = FastAPI()
    app.include_router(deployments.router)
    with container.lifecycle_manager.override(providers.Object(manager)), \
            container.settings.override(providers.Object(api_settings)):
        yield TestClient(app)


class TestCreate:
    def test_created(self, client, trigger):
        response = client.post("/api/deployments", json=BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["workflow_started"] is True
        assert data["deployment"]["status"] == "Pending"
        assert data["deployment"]["cluster_identifier"] == "prod-cluster"
        assert trigger.started == [data["deployment"]["deployment_id"]]

    def test_start_failure_is_accepted(self, client, trigger):
        trigger.fail = True

        response = client.post("/api/deployments", json=BODY)

        assert response.status_code == 202
        assert response.json()["workflow_started"] is False
        assert response.json()["deployment"]["status"] == "Pending"

    def test_delimiter_in_identity_is_rejected(self, client):
        response = client.post("/api/deployments", json={**BODY, "cluster": "a/b"})
        assert response.status_code == 422

    def test_missing_field(self, client):
        body = dict(BODY)
        del body["environment_revision_id"]
        assert client.post("/api/deployments", json=body).status_code == 422


class TestRead:
    def test_get(self, client):
        deployment_id = client.post("/api/deployments", json=BODY).json()["deployment"]["deployment_id"]

        response = client.get(f"/api/deployments/{deployment_id}")

        assert response.status_code == 200
        assert response.json()["deployment"]["deployment_id"] == deployment_id

    def test_get_missing(self, client):
        response = client.get("/api/deployments/ghost")
        assert response.status_code == 404
        assert response.json()["error"] == "DeploymentNotFound"

    def test_list_with_filter(self, client):
        client.post("/api/deployments", json=BODY)

        assert client.get("/api/deployments").json()["count"] == 1
        assert client.get("/api/deployments", params={"status": "Pending"}).json()["count"] == 1
        assert client.get("/api/deployments", params={"status": "Completed"}).json()["count"] == 0

    def test_list_with_bad_filter(self, client):
        assert client.get("/api/deployments", params={"status": "Bogus"}).status_code == 422


class TestSignals:
    def test_start_signal(self, client):
        deployment_id = client.post("/api/deployments", json=BODY).json()["deployment"]["deployment_id"]

        response = client.post(f"/api/deployments/{deployment_id}/signals", json={"signal": "start"})

        assert response.status_code == 200
        assert response.json()["outcome"]["status"] == "InProgress"

    def test_illegal_signal(self, client):
        deployment_id = client.post("/api/deployments", json=BODY).json()["deployment"]["deployment_id"]

        response = client.post(f"/api/deployments/{deployment_id}/signals",
                               json={"signal": "taskAllHealthyAndComplete"})

        assert response.status_code == 422
        assert response.json()["error"] == "IllegalTransition"

    def test_unknown_signal(self, client):
        response = client.post("/api/deployments/x/signals", json={"signal": "explode"})
        assert response.status_code == 422


class TestAdmin:
    def test_sweep(self, client, trigger):
        trigger.fail = True
        client.post("/api/deployments", json=BODY)
        trigger.fail = False

        response = client.post("/api/deployments/sweep")

        assert response.status_code == 200
        assert len(response.json()["report"]["started"]) == 1

    def test_delete_all(self, client):
        client.post("/api/deployments", json=BODY)

        response = client.delete("/api/deployments")

        assert response.status_code == 200
        assert response.json()["result"]["deleted"] == 1

    def test_delete_all_disabled(self, client, api_settings):
        api_settings.admin_delete_enabled = False
        assert client.delete("/api/deployments").status_code == 403
