"""CLI commands for provisioning logs."""

from __future__ import annotations

import sys

import click
import httpx

from scimgate.cli.commands.tokens import scope_options
from scimgate.cli.output import console, fail, scope_params, stats_table


@click.group("logs")
def logs_cmd() -> None:
    """Provisioning audit trail: stats and export."""


@logs_cmd.command("stats")
@scope_options
@click.option("--start", default=None, help="ISO-8601 start of the window")
@click.option("--end", default=None, help="ISO-8601 end of the window")
@click.pass_context
def logs_stats(
    ctx: click.Context,
    app_id: str,
    env_id: str,
    org_id: str | None,
    start: str | None,
    end: str | None,
) -> None:
    """Show aggregate provisioning statistics."""
    api_url: str = ctx.obj["api_url"]
    params = scope_params(app_id, env_id, org_id)
    if start:
        params["start"] = start
    if end:
        params["end"] = end
    try:
        r = httpx.get(
            f"{api_url}/api/v1/logs/stats", params=params, headers=ctx.obj["headers"], timeout=30
        )
        r.raise_for_status()
        console.print(stats_table(r.json()))
    except Exception as e:
        fail(e, api_url)


@logs_cmd.command("export")
@scope_options
@click.option("--format", "fmt", type=click.Choice(["csv", "json"]), default="csv",
              show_default=True)
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write to this file instead of stdout")
@click.option("--operation", default=None, help="Only this operation, e.g. CREATE_USER")
@click.option("--failed-only", is_flag=True, default=False, help="Only failed operations")
@click.pass_context
def logs_export(
    ctx: click.Context,
    app_id: str,
    env_id: str,
    org_id: str | None,
    fmt: str,
    output: str | None,
    operation: str | None,
    failed_only: bool,
) -> None:
    """Stream the provisioning log export."""
    api_url: str = ctx.obj["api_url"]
    params = {**scope_params(app_id, env_id, org_id), "format": fmt}
    if operation:
        params["operation"] = operation
    if failed_only:
        params["success"] = "false"
    try:
        with httpx.stream(
            "GET",
            f"{api_url}/api/v1/logs/export",
            params=params,
            headers=ctx.obj["headers"],
            timeout=120,
        ) as r:
            if r.is_error:
                r.read()
            r.raise_for_status()
            if output:
                with open(output, "w", encoding="utf-8", newline="") as fh:
                    for chunk in r.iter_text():
                        fh.write(chunk)
                console.print(f"[green]Export written to {output}[/green]")
            else:
                for chunk in r.iter_text():
                    sys.stdout.write(chunk)
    except Exception as e:
        fail(e, api_url)
