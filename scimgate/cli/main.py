"""scimgate CLI entry point — `scimgate` command group."""

from __future__ import annotations

import click

from scimgate.cli.commands.logs import logs_cmd
from scimgate.cli.commands.tokens import tokens_cmd


@click.group()
@click.version_option(package_name="scimgate")
@click.option(
    "--api-url",
    default="http://localhost:8000",
    envvar="SCIMGATE_API_URL",
    show_default=True,
    help="Base URL of the scimgate API server",
)
@click.option(
    "--admin-token",
    default="",
    envvar="SCIMGATE_ADMIN_TOKEN",
    help="Admin JWT used for the admin API",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str, admin_token: str) -> None:
    """scimgate — SCIM provisioning tokens, mappings and audit.

    \b
    Quick start:
      scimgate tokens issue --app APP --env ENV --name okta
      scimgate tokens list --app APP --env ENV
      scimgate logs stats --app APP --env ENV
      scimgate logs export --app APP --env ENV -o logs.csv

    API docs: http://localhost:8000/docs
    """
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url.rstrip("/")
    ctx.obj["headers"] = {"Authorization": f"Bearer {admin_token}"} if admin_token else {}


# Register sub-commands
cli.add_command(tokens_cmd)
cli.add_command(logs_cmd)


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind host")
@click.option("--port", default=8000, show_default=True, help="Bind port")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload (dev mode)")
def serve(host: str, port: int, reload: bool) -> None:
    """Start the scimgate API server."""
    import uvicorn

    uvicorn.run(
        "scimgate.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    cli()
