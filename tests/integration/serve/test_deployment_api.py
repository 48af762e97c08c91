"""Integration tests for the deployment HTTP API.

Tests for:
- Creating deployments from inline files and bundle references
- Polling status, history and logs
- Cancellation
- Problem+json error responses
- Health, readiness and credential diagnostics
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from terradeck.deploy.bundles import DirectoryBundleSource, InMemoryBundleSource
from terradeck.deploy.process import SimulatedProcessRunner, SimulatedResponse
from terradeck.deploy.registry import DeploymentRegistry
from terradeck.models.deployment import ConfigurationBundle
from terradeck.serve.server import DeploymentServer

INLINE_FILES = [{"name": "main.tf", "content": "# inline\n"}]


@pytest.fixture
def bundle_source(sample_bundle: ConfigurationBundle) -> InMemoryBundleSource:
    return InMemoryBundleSource({"web-app": sample_bundle})


@pytest.fixture
def server(
    registry: DeploymentRegistry, bundle_source: InMemoryBundleSource
) -> DeploymentServer:
    return DeploymentServer(registry, bundle_source=bundle_source)


@pytest_asyncio.fixture
async def client(server: DeploymentServer) -> AsyncGenerator[AsyncClient, None]:
    """Async client bound to the app, stopping the server afterwards."""
    app = server.create_app()
    await server.start()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as test_client:
        yield test_client
    await server.stop()


async def _poll_until_finished(client: AsyncClient, job_id: str) -> dict[str, Any]:
    for _ in range(500):
        response = await client.get(f"/deployments/{job_id}")
        assert response.status_code == 200
        body: dict[str, Any] = response.json()
        if body["status"] in ("completed", "failed"):
            return body
        await asyncio.sleep(0.01)
    raise AssertionError(f"Job {job_id} did not finish")


@pytest.mark.integration
class TestCreateDeployment:
    """Tests for POST /deployments."""

    @pytest.mark.asyncio
    async def test_inline_files(self, client: AsyncClient) -> None:
        response = await client.post(
            "/deployments", json={"subject_name": "inline-app", "files": INLINE_FILES}
        )

        assert response.status_code == 202
        job_id = response.json()["job_id"]

        body = await _poll_until_finished(client, job_id)
        assert body["status"] == "completed"
        assert body["subject_name"] == "inline-app"
        assert body["action"] == "deploy"
        assert body["finished_at"] is not None
        assert body["working_directory"]
        assert body["updates"][0]["status"] == "initializing"
        assert "Deployment completed successfully for inline-app" in body["logs"]

    @pytest.mark.asyncio
    async def test_reference_id(self, client: AsyncClient) -> None:
        response = await client.post("/deployments", json={"reference_id": "web-app"})

        assert response.status_code == 202
        body = await _poll_until_finished(client, response.json()["job_id"])
        assert body["status"] == "completed"
        assert body["subject_name"] == "web-app"

    @pytest.mark.asyncio
    async def test_plan_action(self, client: AsyncClient) -> None:
        response = await client.post(
            "/deployments", json={"reference_id": "web-app", "action": "plan"}
        )

        body = await _poll_until_finished(client, response.json()["job_id"])
        assert body["status"] == "completed"
        assert body["plan_output"]
        assert body["outputs"] == {}

    @pytest.mark.asyncio
    async def test_unknown_reference(self, client: AsyncClient) -> None:
        response = await client.post("/deployments", json={"reference_id": "nope"})

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        problem = response.json()
        assert problem["status"] == 404
        assert problem["title"] == "Not Found"
        assert "nope" in problem["detail"]
        assert problem["instance"] == "/deployments"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"reference_id": "web-app", "files": INLINE_FILES, "subject_name": "x"},
            {"files": INLINE_FILES},
            {"reference_id": "web-app", "action": "destroy"},
            {"reference_id": "web-app", "unexpected": True},
        ],
    )
    async def test_invalid_payloads(
        self, client: AsyncClient, payload: dict[str, Any]
    ) -> None:
        response = await client.post("/deployments", json=payload)

        assert response.status_code == 422
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["title"] == "Validation Error"

    @pytest.mark.asyncio
    async def test_reference_without_source(self, registry: DeploymentRegistry) -> None:
        server = DeploymentServer(registry)
        app = server.create_app()
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.post("/deployments", json={"reference_id": "x"})

        assert response.status_code == 404
        assert "inline 'files'" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_binary_file_in_reference(
        self, registry: DeploymentRegistry, tmp_path: Path
    ) -> None:
        bundle = tmp_path / "bundles" / "web-app"
        bundle.mkdir(parents=True)
        (bundle / "main.tf").write_text("# main\n", encoding="utf-8")
        (bundle / "logo.png").write_bytes(b"\x89PNG\xff\xfe\x00")
        server = DeploymentServer(
            registry, bundle_source=DirectoryBundleSource(tmp_path / "bundles")
        )
        app = server.create_app()
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.post(
                "/deployments", json={"reference_id": "web-app"}
            )

        assert response.status_code == 422
        assert response.headers["content-type"].startswith("application/problem+json")
        assert "logo.png" in response.json()["detail"]
        assert registry.list() == []

    @pytest.mark.asyncio
    async def test_failed_deployment_is_reported(
        self, client: AsyncClient, simulated_runner: SimulatedProcessRunner
    ) -> None:
        simulated_runner.set_response(
            "terraform plan",
            SimulatedResponse(output="Error: Missing required argument\n", exit_code=1),
        )

        response = await client.post("/deployments", json={"reference_id": "web-app"})
        body = await _poll_until_finished(client, response.json()["job_id"])

        assert body["status"] == "failed"
        assert body["error"] == "Terraform plan failed with exit code 1"
        assert body["updates"][-1]["details"] == "Error: Missing required argument\n"


@pytest.mark.integration
class TestQueryAndCancel:
    """Tests for GET /deployments and cancellation."""

    @pytest.mark.asyncio
    async def test_unknown_job(self, client: AsyncClient) -> None:
        response = await client.get("/deployments/01UNKNOWN")

        assert response.status_code == 404
        assert response.json()["detail"] == "Unknown job: 01UNKNOWN"

    @pytest.mark.asyncio
    async def test_list(self, client: AsyncClient) -> None:
        first = (await client.post("/deployments", json={"reference_id": "web-app"}))
        await asyncio.sleep(0.01)
        second = (await client.post("/deployments", json={"reference_id": "web-app"}))

        response = await client.get("/deployments")

        assert response.status_code == 200
        ids = [job["id"] for job in response.json()]
        assert ids == [second.json()["job_id"], first.json()["job_id"]]

    @pytest.mark.asyncio
    async def test_cancel(
        self, client: AsyncClient, simulated_runner: SimulatedProcessRunner
    ) -> None:
        simulated_runner.set_response("terraform init", SimulatedResponse(delay=30.0))
        job_id = (
            await client.post("/deployments", json={"reference_id": "web-app"})
        ).json()["job_id"]

        response = await client.post(f"/deployments/{job_id}/cancel")
        assert response.status_code == 200
        assert response.json() == {"job_id": job_id, "cancelled": True}

        body = await _poll_until_finished(client, job_id)
        assert body["status"] == "failed"
        assert body["error"] == "Deployment cancelled"

        again = await client.post(f"/deployments/{job_id}/cancel")
        assert again.json()["cancelled"] is False

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, client: AsyncClient) -> None:
        response = await client.post("/deployments/01UNKNOWN/cancel")
        assert response.status_code == 404


@pytest.mark.integration
class TestHealthAndAuth:
    """Tests for health, readiness and credential diagnostics."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["ready"] is True
        assert body["total_jobs"] == 0
        assert body["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_ready(self, client: AsyncClient) -> None:
        response = await client.get("/ready")
        assert response.json() == {"ready": True}

    @pytest.mark.asyncio
    async def test_auth_status(self, client: AsyncClient) -> None:
        response = await client.get("/auth/status")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["source"] == "azure_cli"
        assert body["identity"] == "demo@example.com"
        assert "Already logged in as: demo@example.com" in body["diagnostic_lines"]
        assert "credentials" not in body

    @pytest.mark.asyncio
    async def test_unmatched_route_is_problem(self, client: AsyncClient) -> None:
        response = await client.get("/nope")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
