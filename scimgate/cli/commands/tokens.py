"""CLI commands for provisioning token management."""

from __future__ import annotations

import click
import httpx

from scimgate.cli.output import console, fail, scope_params, secret_panel, tokens_table


def scope_options(f):
    f = click.option("--org", "org_id", default=None, help="Organization id")(f)
    f = click.option("--env", "env_id", required=True, help="Environment id")(f)
    f = click.option("--app", "app_id", required=True, help="Application id")(f)
    return f


@click.group("tokens")
def tokens_cmd() -> None:
    """Issue, list, rotate and revoke provisioning tokens."""


@tokens_cmd.command("list")
@scope_options
@click.option("--limit", default=50, show_default=True, help="Max rows to display")
@click.option("--all", "include_revoked", is_flag=True, default=False,
              help="Include revoked and expired tokens")
@click.pass_context
def tokens_list(
    ctx: click.Context,
    app_id: str,
    env_id: str,
    org_id: str | None,
    limit: int,
    include_revoked: bool,
) -> None:
    """List provisioning tokens of a scope."""
    api_url: str = ctx.obj["api_url"]
    params: dict[str, str | int] = {**scope_params(app_id, env_id, org_id), "limit": limit}
    if include_revoked:
        params["include_revoked"] = "true"
    try:
        r = httpx.get(
            f"{api_url}/api/v1/tokens", params=params, headers=ctx.obj["headers"], timeout=15
        )
        r.raise_for_status()
        data = r.json()
        console.print(tokens_table(data["items"]))
        console.print(f"[dim]Showing {len(data['items'])} of {data['total']} tokens.[/dim]")
    except Exception as e:
        fail(e, api_url)


@tokens_cmd.command("issue")
@scope_options
@click.option("--name", required=True, help="Token name, e.g. the IdP it is for")
@click.option("--description", default="", help="Free-form description")
@click.option("--scope", "scopes", multiple=True,
              help="Grant (repeatable): users:read, users:write, groups:read, groups:write")
@click.option("--no-expiry", is_flag=True, default=False, help="Issue a token that never expires")
@click.pass_context
def tokens_issue(
    ctx: click.Context,
    app_id: str,
    env_id: str,
    org_id: str | None,
    name: str,
    description: str,
    scopes: tuple[str, ...],
    no_expiry: bool,
) -> None:
    """Issue a token and print its plaintext once."""
    api_url: str = ctx.obj["api_url"]
    payload: dict = {
        "app_id": app_id,
        "environment_id": env_id,
        "organization_id": org_id,
        "name": name,
        "description": description,
        "no_expiry": no_expiry,
    }
    if scopes:
        payload["scopes"] = list(scopes)
    try:
        r = httpx.post(
            f"{api_url}/api/v1/tokens", json=payload, headers=ctx.obj["headers"], timeout=15
        )
        r.raise_for_status()
        secret_panel(r.json(), "issued")
    except Exception as e:
        fail(e, api_url)


@tokens_cmd.command("rotate")
@click.argument("token_id")
@click.pass_context
def tokens_rotate(ctx: click.Context, token_id: str) -> None:
    """Replace a token's secret; the old plaintext stops working immediately."""
    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.post(
            f"{api_url}/api/v1/tokens/{token_id}/rotate", headers=ctx.obj["headers"], timeout=15
        )
        r.raise_for_status()
        secret_panel(r.json(), "rotated")
    except Exception as e:
        fail(e, api_url)


@tokens_cmd.command("revoke")
@click.argument("token_id")
@click.confirmation_option(prompt="Revoke this token? IdP requests using it will fail.")
@click.pass_context
def tokens_revoke(ctx: click.Context, token_id: str) -> None:
    """Revoke a token (idempotent)."""
    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.delete(
            f"{api_url}/api/v1/tokens/{token_id}", headers=ctx.obj["headers"], timeout=15
        )
        r.raise_for_status()
        record = r.json()
        console.print(
            f"[green]Token {record['name']} ({record['token_prefix']}) revoked.[/green]"
        )
    except Exception as e:
        fail(e, api_url)
