"""Integration tests for the admin HTTP API."""

from __future__ import annotations

import shutil
from typing import TYPE_CHECKING

import pytest

from tests.conftest import TEST_ADMIN_TOKEN, create_test_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from httpx import AsyncClient

    from confsync.config import Settings

AUTH = {"Authorization": f"Bearer {TEST_ADMIN_TOKEN}"}
CONTENT = "http:\n  routers:\n    web:\n      service: api\n"


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    async with create_test_client(test_settings) as ac:
        yield ac


async def _create_scope(client: AsyncClient, name: str = "g1", scope_id: str = "S1") -> None:
    resp = await client.post("/api/scopes", json={"id": scope_id, "name": name}, headers=AUTH)
    assert resp.status_code == 201


async def _create_config(client: AsyncClient, **overrides: object) -> str:
    body: dict[str, object] = {"scope_id": "S1", "name": "web", "content": CONTENT}
    body.update(overrides)
    resp = await client.post("/api/configs", json=body, headers=AUTH)
    assert resp.status_code == 201, resp.text
    record_id: str = resp.json()["id"]
    return record_id


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["database"] == "ok"
        assert data["storage"] == "ok"

    @pytest.mark.asyncio
    async def test_missing_config_dir_is_degraded(
        self, client: AsyncClient, config_dir: Path
    ) -> None:
        shutil.rmtree(config_dir)
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["database"] == "ok"
        assert data["storage"] == "error"


class TestAuth:
    @pytest.mark.asyncio
    async def test_mutation_requires_token(self, client: AsyncClient) -> None:
        resp = await client.post("/api/reconcile", json={})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_token_forbidden(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/reconcile", json={}, headers={"Authorization": "Bearer wrong"}
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_reads_are_open(self, client: AsyncClient) -> None:
        resp = await client.get("/api/configs")
        assert resp.status_code == 200
        assert resp.json() == []


class TestConfigsAndReconcile:
    @pytest.mark.asyncio
    async def test_create_reconcile_validate(
        self, client: AsyncClient, config_dir: Path
    ) -> None:
        await _create_scope(client)
        record_id = await _create_config(client)
        assert await _create_config(client) == record_id

        resp = await client.post("/api/reconcile", json={"scope_id": "S1"}, headers=AUTH)
        assert resp.status_code == 200
        summary = resp.json()
        assert summary["total"] == 1
        assert summary["successful"] == 1
        path = summary["results"][0]["file_path"]
        assert path == f"dynamic/groups/g1/dynamic-{record_id}.yaml"
        assert (config_dir / path).read_text() == CONTENT

        resp = await client.get(f"/api/configs/{record_id}")
        assert resp.status_code == 200
        detail = resp.json()
        assert detail["sync_status"] == "synced"
        assert detail["config_content"] == CONTENT
        assert detail["config_path"] == path

        resp = await client.get(f"/api/configs/{record_id}/validation")
        assert resp.json()["is_valid"] is True

    @pytest.mark.asyncio
    async def test_deactivate_then_reconcile_removes(
        self, client: AsyncClient, config_dir: Path
    ) -> None:
        await _create_scope(client)
        record_id = await _create_config(client)
        first = (await client.post("/api/reconcile", json={}, headers=AUTH)).json()
        path = first["results"][0]["file_path"]

        resp = await client.post(f"/api/configs/{record_id}/deactivate", headers=AUTH)
        assert resp.json()["is_active"] is False
        second = (await client.post("/api/reconcile", json={}, headers=AUTH)).json()

        assert second["results"][0]["action"] == "removed"
        assert not (config_dir / path).exists()

        resp = await client.post(f"/api/configs/{record_id}/reactivate", headers=AUTH)
        assert resp.json()["sync_status"] == "pending"

    @pytest.mark.asyncio
    async def test_stopping_scope_removes_files(
        self, client: AsyncClient, config_dir: Path
    ) -> None:
        await _create_scope(client)
        await _create_config(client)
        first = (await client.post("/api/reconcile", json={}, headers=AUTH)).json()
        path = first["results"][0]["file_path"]

        resp = await client.put("/api/scopes/S1/state", json={"state": "stopped"}, headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["state"] == "stopped"
        await client.post("/api/reconcile", json={"scope_id": "S1"}, headers=AUTH)

        assert not (config_dir / path).exists()

    @pytest.mark.asyncio
    async def test_sweep_endpoint(self, client: AsyncClient, config_dir: Path) -> None:
        orphan = config_dir / "dynamic" / "standalone" / "orphan.yaml"
        orphan.parent.mkdir(parents=True)
        orphan.write_text("x")
        resp = await client.post("/api/reconcile/sweep", json={}, headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["removed_orphans"] == ["dynamic/standalone/orphan.yaml"]
        assert not orphan.exists()

    @pytest.mark.asyncio
    async def test_merge_endpoint(self, client: AsyncClient) -> None:
        resp = await client.post("/api/reconcile/merge-duplicates", json={}, headers=AUTH)
        assert resp.status_code == 200
        assert resp.json() == {"groups": 0, "kept": [], "deleted": []}

    @pytest.mark.asyncio
    async def test_list_filters(self, client: AsyncClient) -> None:
        await _create_scope(client)
        await _create_config(client)
        await _create_config(client, scope_id=None, name="other", config_type="static")

        resp = await client.get("/api/configs", params={"scope_id": "S1"})
        assert [c["config_name"] for c in resp.json()] == ["web"]
        resp = await client.get("/api/configs", params={"config_type": "static"})
        assert [c["config_name"] for c in resp.json()] == ["other"]
        resp = await client.get("/api/configs", params={"updated_since": "2999-01-01"})
        assert resp.json() == []
        resp = await client.get("/api/configs", params={"updated_since": "not a date"})
        assert resp.status_code == 422


class TestErrors:
    @pytest.mark.asyncio
    async def test_unknown_record_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/configs/missing")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Configuration not found: missing"

    @pytest.mark.asyncio
    async def test_unknown_scope_is_404(self, client: AsyncClient) -> None:
        resp = await client.post("/api/reconcile", json={"scope_id": "nope"}, headers=AUTH)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_config_in_unknown_scope_is_404(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/configs",
            json={"scope_id": "nope", "name": "web", "content": "x"},
            headers=AUTH,
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_blank_name_is_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/configs", json={"name": "   ", "content": "x"}, headers=AUTH
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_duplicate_scope_name_is_409(self, client: AsyncClient) -> None:
        await _create_scope(client)
        resp = await client.post(
            "/api/scopes", json={"id": "S2", "name": "g1"}, headers=AUTH
        )
        assert resp.status_code == 409
