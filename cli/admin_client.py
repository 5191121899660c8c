"""CLI admin client for a running confsync server."""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
from urllib.parse import urlparse

try:
    import httpx
except ImportError:
    print("Error: httpx is required. Install with: pip install httpx")
    sys.exit(1)

from confsync.services.datetime_service import parse_datetime

DEFAULT_SERVER = "http://localhost:8000"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class AdminClient:
    """Thin wrapper over the confsync admin HTTP API."""

    def __init__(
        self,
        server_url: str,
        token: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(
            base_url=self.server_url,
            headers=headers,
            timeout=120.0,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = self.client.post(path, json=body)
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def reconcile(
        self,
        scope_id: str | None = None,
        *,
        full: bool = False,
        force_sync: bool = False,
        backup_existing: bool = False,
        sweep: bool = True,
    ) -> dict[str, Any]:
        """Run a reconciliation pass and return its summary."""
        return self._post(
            "/api/reconcile",
            {
                "scope_id": scope_id,
                "full": full,
                "force_sync": force_sync,
                "backup_existing": backup_existing,
                "sweep": sweep,
            },
        )

    def sweep(self, scope_id: str | None = None) -> dict[str, Any]:
        """Run the orphan sweeper."""
        return self._post("/api/reconcile/sweep", {"scope_id": scope_id})

    def merge_duplicates(self, scope_id: str | None = None) -> dict[str, Any]:
        """Collapse duplicate records."""
        return self._post("/api/reconcile/merge-duplicates", {"scope_id": scope_id})

    def validate(self, record_id: str) -> dict[str, Any]:
        """Check whether one record's file matches the store."""
        resp = self.client.get(f"/api/configs/{record_id}/validation")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def list_configs(
        self,
        scope_id: str | None = None,
        config_type: str | None = None,
        updated_since: str | None = None,
    ) -> list[dict[str, Any]]:
        """List configuration records."""
        params: dict[str, str] = {}
        if scope_id:
            params["scope_id"] = scope_id
        if config_type:
            params["config_type"] = config_type
        if updated_since:
            params["updated_since"] = parse_datetime(updated_since).isoformat()
        resp = self.client.get("/api/configs", params=params)
        resp.raise_for_status()
        result: list[dict[str, Any]] = resp.json()
        return result


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def print_summary(summary: dict[str, Any]) -> None:
    """Print a reconciliation summary."""
    scope = summary.get("scope_id") or "<global>"
    print(f"Reconciliation of {scope}:")
    print(f"  Total:      {summary.get('total', 0)}")
    print(f"  Successful: {summary.get('successful', 0)}")
    print(f"  Failed:     {summary.get('failed', 0)}")
    for result in summary.get("results", []):
        if result.get("action") == "skipped":
            continue
        marker = "!" if not result.get("success") else " "
        line = f"  {marker} {result.get('action')}: {result.get('file_path') or result['record_id']}"
        if result.get("message") and not result.get("success"):
            line += f" ({result['message']})"
        print(line)
    for path in summary.get("removed_orphans", []):
        print(f"  - orphan removed: {path}")
    if summary.get("cancelled"):
        print("  Pass was cancelled before completion.")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="confsync-admin",
        description="Administer a confsync server",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("CONFSYNC_SERVER", DEFAULT_SERVER),
        help="Server URL (default: $CONFSYNC_SERVER or http://localhost:8000)",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("CONFSYNC_TOKEN"),
        help="Admin bearer token (default: $CONFSYNC_TOKEN)",
    )
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument("--json", action="store_true", help="Print raw JSON responses")

    subparsers = parser.add_subparsers(dest="command")

    reconcile = subparsers.add_parser("reconcile", help="Run a reconciliation pass")
    reconcile.add_argument("--scope", help="Limit the pass to one scope id")
    reconcile.add_argument("--full", action="store_true", help="Check every record")
    reconcile.add_argument("--force", action="store_true", help="Rewrite files even if unchanged")
    reconcile.add_argument(
        "--backup", action="store_true", help="Back up existing files before overwriting"
    )
    reconcile.add_argument("--no-sweep", action="store_true", help="Skip the orphan sweep")

    sweep = subparsers.add_parser("sweep", help="Delete orphaned configuration files")
    sweep.add_argument("--scope", help="Limit the sweep to one scope id")

    merge = subparsers.add_parser("merge", help="Collapse duplicate records")
    merge.add_argument("--scope", help="Limit the merge to one scope id")

    validate = subparsers.add_parser("validate", help="Validate one record's file")
    validate.add_argument("record_id", help="Configuration record id")

    list_cmd = subparsers.add_parser("list", help="List configuration records")
    list_cmd.add_argument("--scope", help="Scope id")
    list_cmd.add_argument("--type", dest="config_type", choices=["static", "dynamic"])
    list_cmd.add_argument("--since", help="Only records updated at or after this time")

    return parser


def run(args: argparse.Namespace, client: AdminClient) -> int:
    """Execute one parsed command. Returns the process exit code."""
    if args.command == "reconcile":
        summary = client.reconcile(
            args.scope,
            full=args.full,
            force_sync=args.force,
            backup_existing=args.backup,
            sweep=not args.no_sweep,
        )
        if args.json:
            print(json.dumps(summary, indent=2))
        else:
            print_summary(summary)
        return 1 if summary.get("failed") else 0

    if args.command == "sweep":
        result = client.sweep(args.scope)
        if args.json:
            print(json.dumps(result, indent=2))
        else:
            removed = result.get("removed_orphans", [])
            print(f"Removed {len(removed)} orphaned file(s).")
            for path in removed:
                print(f"  - {path}")
        return 0

    if args.command == "merge":
        report = client.merge_duplicates(args.scope)
        if args.json:
            print(json.dumps(report, indent=2))
        else:
            print(
                f"Merged {report.get('groups', 0)} duplicate group(s), "
                f"deleted {len(report.get('deleted', []))} record(s)."
            )
        return 0

    if args.command == "validate":
        validation = client.validate(args.record_id)
        if args.json:
            print(json.dumps(validation, indent=2))
        elif validation.get("is_valid"):
            print(f"{args.record_id}: valid")
        else:
            print(f"{args.record_id}: invalid")
            for issue in validation.get("issues", []):
                print(f"  ! {issue}")
        return 0 if validation.get("is_valid") else 1

    if args.command == "list":
        records = client.list_configs(args.scope, args.config_type, args.since)
        if args.json:
            print(json.dumps(records, indent=2))
        else:
            for record in records:
                print(
                    f"{record['id']}  {record['config_type']:<7}  {record['sync_status']:<8}  "
                    f"{record.get('config_path') or '-'}  {record['config_name']}"
                )
        return 0

    return 2


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(2)

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    try:
        with AdminClient(server_url, args.token) as client:
            code = run(args, client)
    except httpx.HTTPStatusError as exc:
        print(f"Error: Server returned {exc.response.status_code}: {exc.response.text}")
        sys.exit(1)
    except httpx.HTTPError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
