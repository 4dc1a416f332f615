"""Rich output helpers — tables and error reporting."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
from rich.console import Console
from rich.table import Table
from rich.text import Text

console = Console()


def status_style(status: str) -> str:
    return {
        "active": "green",
        "success": "green",
        "healthy": "green",
        "expired": "yellow",
        "revoked": "red",
        "failed": "red",
        "unhealthy": "red",
    }.get(status, "white")


def fmt_date(iso: str | None) -> str:
    if not iso:
        return "—"
    try:
        dt = datetime.fromisoformat(iso.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return iso


def token_status(t: dict[str, Any]) -> str:
    if t.get("revoked_at"):
        return "revoked"
    expires = t.get("expires_at")
    if expires:
        expires_at = datetime.fromisoformat(expires.replace("Z", "+00:00"))
        if expires_at.tzinfo and expires_at <= datetime.now(expires_at.tzinfo):
            return "expired"
    return "active"


def scope_params(app_id: str, env_id: str, org_id: str | None) -> dict[str, str]:
    params = {"app_id": app_id, "environment_id": env_id}
    if org_id:
        params["organization_id"] = org_id
    return params


def tokens_table(items: list[dict[str, Any]]) -> Table:
    table = Table(
        title=f"Provisioning tokens ({len(items)})",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Prefix", no_wrap=True)
    table.add_column("Scopes")
    table.add_column("Status")
    table.add_column("Uses", justify="right")
    table.add_column("Last used", style="dim")
    table.add_column("Expires", style="dim")

    for t in items:
        status = token_status(t)
        table.add_row(
            t.get("id", ""),
            t.get("name", ""),
            t.get("token_prefix", ""),
            ", ".join(t.get("scopes") or []),
            Text(status, style=status_style(status)),
            str(t.get("usage_count", 0)),
            fmt_date(t.get("last_used_at")),
            fmt_date(t.get("expires_at")),
        )
    return table


def secret_panel(data: dict[str, Any], action: str) -> None:
    """Print a freshly issued / rotated plaintext exactly once."""
    record = data["record"]
    console.rule(f"[bold cyan]Token {action} — {record.get('name')}")
    console.print(f"  [dim]{'ID':<10}[/dim] {record.get('id')}")
    console.print(f"  [dim]{'Prefix':<10}[/dim] {record.get('token_prefix')}")
    console.print(f"  [dim]{'Expires':<10}[/dim] {fmt_date(record.get('expires_at'))}")
    console.print()
    console.print(f"  [bold green]{data['token']}[/bold green]")
    console.print("[yellow]Store this token now; it will not be shown again.[/yellow]")


def stats_table(stats: dict[str, Any]) -> Table:
    table = Table(title="Provisioning stats", header_style="bold cyan", border_style="dim")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Total operations", str(stats.get("total_operations", 0)))
    table.add_row("Succeeded", Text(str(stats.get("success_count", 0)), style="green"))
    table.add_row("Failed", Text(str(stats.get("failed_count", 0)), style="red"))
    table.add_row("Success rate", f"{stats.get('success_rate', 0.0):.2f}%")
    table.add_row("Avg duration (ms)", f"{stats.get('average_duration_ms', 0.0):.1f}")
    for operation, count in sorted((stats.get("operations_by_type") or {}).items()):
        table.add_row(f"  {operation}", str(count), style="dim")
    return table


def fail(exc: Exception, api_url: str) -> None:
    """Report a failed API call and exit non-zero."""
    if isinstance(exc, httpx.ConnectError):
        console.print(
            f"[red]Cannot connect to API at {api_url}.[/red] "
            "Is the server running? (scimgate serve)"
        )
    elif isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        try:
            detail = exc.response.json().get("detail", exc.response.text)
        except ValueError:
            detail = exc.response.text
        if code in (401, 403):
            console.print(f"[red]Error {code}:[/red] {detail} (check SCIMGATE_ADMIN_TOKEN)")
        elif code == 404:
            console.print(f"[yellow]Not found:[/yellow] {detail}")
        else:
            console.print(f"[red]Error {code}:[/red] {detail}")
    else:
        console.print(f"[red]Error:[/red] {exc}")
    raise SystemExit(1)
