"""Tests for the confsync-admin CLI client."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from cli.admin_client import AdminClient, build_parser, run, validate_server_url


def _client(responses: dict[str, Any], seen: list[httpx.Request]) -> AdminClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        payload = responses.get(request.url.path)
        if payload is None:
            return httpx.Response(404, json={"detail": "Not found"})
        return httpx.Response(200, json=payload)

    return AdminClient(
        "http://localhost:8000", "secret-token", transport=httpx.MockTransport(handler)
    )


SUMMARY = {
    "scope_id": None,
    "total": 2,
    "successful": 1,
    "failed": 1,
    "results": [
        {"success": True, "record_id": "A", "file_path": "dynamic/a.yaml", "action": "created"},
        {
            "success": False,
            "record_id": "B",
            "file_path": "dynamic/b.yaml",
            "action": "error",
            "message": "permission denied",
        },
    ],
    "removed_orphans": ["dynamic/old.yaml"],
    "cancelled": False,
}


class TestValidateServerUrl:
    def test_rejects_insecure_http_for_remote_hosts(self) -> None:
        with pytest.raises(ValueError, match="HTTPS is required"):
            validate_server_url("http://example.com")

    def test_allows_http_for_localhost(self) -> None:
        assert validate_server_url("http://localhost:8000/") == "http://localhost:8000"

    def test_rejects_missing_scheme(self) -> None:
        with pytest.raises(ValueError, match="scheme and host"):
            validate_server_url("example.com")


class TestAdminClient:
    def test_reconcile_sends_options_and_token(self) -> None:
        seen: list[httpx.Request] = []
        with _client({"/api/reconcile": SUMMARY}, seen) as client:
            result = client.reconcile("S1", full=True, sweep=False)
        assert result["total"] == 2
        request = seen[0]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert json.loads(request.content) == {
            "scope_id": "S1",
            "full": True,
            "force_sync": False,
            "backup_existing": False,
            "sweep": False,
        }

    def test_list_normalizes_since(self) -> None:
        seen: list[httpx.Request] = []
        with _client({"/api/configs": []}, seen) as client:
            client.list_configs("S1", "dynamic", "2026-02-02")
        params = seen[0].url.params
        assert params["scope_id"] == "S1"
        assert params["config_type"] == "dynamic"
        assert params["updated_since"].startswith("2026-02-02T00:00:00")

    def test_http_errors_raise(self) -> None:
        seen: list[httpx.Request] = []
        with _client({}, seen) as client, pytest.raises(httpx.HTTPStatusError):
            client.validate("missing")


class TestRun:
    def test_reconcile_output_and_exit_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = build_parser().parse_args(["reconcile", "--full", "--no-sweep"])
        seen: list[httpx.Request] = []
        with _client({"/api/reconcile": SUMMARY}, seen) as client:
            code = run(args, client)
        out = capsys.readouterr().out
        assert code == 1
        assert "Failed:     1" in out
        assert "permission denied" in out
        assert "orphan removed: dynamic/old.yaml" in out
        assert json.loads(seen[0].content)["sweep"] is False

    def test_validate_invalid(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = build_parser().parse_args(["validate", "A"])
        validation = {"record_id": "A", "is_valid": False, "issues": ["Configuration path not set"]}
        seen: list[httpx.Request] = []
        with _client({"/api/configs/A/validation": validation}, seen) as client:
            code = run(args, client)
        assert code == 1
        assert "Configuration path not set" in capsys.readouterr().out

    def test_sweep_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = build_parser().parse_args(["--json", "sweep", "--scope", "S1"])
        payload = {"scope_id": "S1", "removed_orphans": []}
        seen: list[httpx.Request] = []
        with _client({"/api/reconcile/sweep": payload}, seen) as client:
            assert run(args, client) == 0
        assert json.loads(capsys.readouterr().out) == payload
        assert json.loads(seen[0].content) == {"scope_id": "S1"}
