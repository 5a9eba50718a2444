"""
Command-line interface for the trust engine.

Usage:
    vc-trust serve --port 3000
    vc-trust verify credential.json
    vc-trust verify --content-address bafy... credential.json
    cat presentation.json | vc-trust verify -
    vc-trust status urn:uuid:1234
    vc-trust list --holder did:example:alice --active
    vc-trust revoke urn:uuid:1234 --reason "Issued in error" --code 123456
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vc_trust.config import get_settings
from vc_trust.documents import parse_document
from vc_trust.engine import TrustEngine
from vc_trust.errors import TrustEngineError
from vc_trust.pipeline import VerificationVerdict
from vc_trust.store import CredentialFilter

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def format_verdict(verdict: VerificationVerdict, subject: str | None) -> None:
    """Format and print a verification verdict."""
    if verdict.valid:
        status_icon = "[bold green]VALID[/]"
        panel_style = "green"
    else:
        status_icon = "[bold red]INVALID[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_icon)
    if subject:
        table.add_row("Credential ID", subject)

    for stage in verdict.stages:
        if stage.invalidates:
            stage_status = "[red]Failed[/]"
        elif stage.reasons:
            stage_status = "[yellow]Inconclusive[/]"
        else:
            stage_status = "[green]Passed[/]"
        table.add_row(stage.stage.capitalize(), stage_status)

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    console.print("\n[bold]Reasons:[/]")
    for reason in verdict.reasons:
        marker = "[green]✓[/]" if verdict.valid else "[red]x[/]"
        console.print(f"  {marker} {reason}")


def load_document(source: str) -> dict[str, Any]:
    """Load a credential or presentation from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.

    Returns:
        Parsed JSON.
    """
    if source == "-":
        return json.loads(sys.stdin.read())

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=30.0) as client:
            response = client.get(
                source,
                headers={"Accept": "application/vc+ld+json, application/json"},
            )
            response.raise_for_status()
            return response.json()

    path = Path(source)
    if not path.exists():
        raise click.ClickException(f"File not found: {source}")

    with path.open() as f:
        return json.load(f)


def _engine(ctx: click.Context) -> TrustEngine:
    obj = ctx.ensure_object(dict)
    if "engine" not in obj:
        obj["engine"] = TrustEngine.from_settings(obj["settings"])
    return obj["engine"]


def _fail(error: Exception, json_output: bool) -> None:
    if isinstance(error, TrustEngineError):
        payload = error.to_dict()
    else:
        payload = {"error": str(error)}
    if json_output:
        console.print_json(data=payload)
    else:
        err_console.print(f"[red]Error:[/] {payload.get('message', payload['error'])}")
    sys.exit(2)


@click.group()
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory with credential records, 2FA config and issuer key",
)
@click.option("--log-level", default=None, help="Logging level (default from settings)")
@click.version_option(package_name="vc-trust")
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, log_level: str | None) -> None:
    """Credential trust and revocation engine."""
    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    configure_logging(log_level or settings.log_level)
    ctx.ensure_object(dict)["settings"] = settings


@main.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", type=int, default=3000, help="Port to listen on")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from vc_trust.api import create_app

    uvicorn.run(create_app(engine=_engine(ctx)), host=host, port=port)


@main.command()
@click.argument("source", required=True)
@click.option(
    "--content-address",
    default=None,
    help="IPFS CID of the credential, for the integrity check",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output result as JSON",
)
@click.pass_context
def verify(ctx: click.Context, source: str, content_address: str | None, json_output: bool) -> None:
    """Verify a credential or presentation.

    SOURCE can be:
    - A file path (e.g., credential.json)
    - A URL (e.g., https://example.com/credentials/123)
    - "-" to read from stdin

    Exits 0 when valid, 1 when invalid and 2 on errors.
    """
    try:
        document = parse_document(load_document(source))
        verdict = _engine(ctx).pipeline.verify(document, content_address)
    except json.JSONDecodeError as e:
        _fail(click.ClickException(f"Invalid JSON: {e}"), json_output)
    except httpx.HTTPError as e:
        _fail(click.ClickException(f"HTTP error: {e}"), json_output)
    except click.ClickException as e:
        _fail(e, json_output)
    except TrustEngineError as e:
        _fail(e, json_output)

    if json_output:
        console.print_json(data=verdict.to_dict())
    else:
        payload = document.payload
        format_verdict(verdict, payload.get("id") if isinstance(payload, dict) else None)

    sys.exit(0 if verdict.valid else 1)


@main.command()
@click.argument("credential_id")
@click.option("--json-output", is_flag=True, help="Output result as JSON")
@click.pass_context
def status(ctx: click.Context, credential_id: str, json_output: bool) -> None:
    """Show whether a credential is active or revoked."""
    try:
        result = _engine(ctx).revocation.status(credential_id)
    except TrustEngineError as e:
        _fail(e, json_output)

    if json_output:
        console.print_json(data=result)
        return

    colour = "green" if result["status"] == "active" else "red"
    console.print(f"{credential_id}: [bold {colour}]{result['status']}[/]")
    if result["status"] == "revoked":
        console.print(f"  revoked at: {result['revokedAt']}")
        console.print(f"  reason:     {result['reason']}")


@main.command(name="list")
@click.option("--holder", default=None, help="Only credentials of this holder")
@click.option("--type", "credential_type", default=None, help="Only credentials of this type")
@click.option("--revoked/--active", default=None, help="Only revoked or only active credentials")
@click.pass_context
def list_credentials(
    ctx: click.Context,
    holder: str | None,
    credential_type: str | None,
    revoked: bool | None,
) -> None:
    """List stored credentials."""
    try:
        records = _engine(ctx).store.list(
            CredentialFilter(holder_id=holder, credential_type=credential_type, revoked=revoked)
        )
    except TrustEngineError as e:
        _fail(e, False)

    table = Table(title=f"Credentials ({len(records)})")
    table.add_column("ID")
    table.add_column("Type")
    table.add_column("Holder")
    table.add_column("Issued")
    table.add_column("Status")
    for record in records:
        status_str = "[red]revoked[/]" if record.revoked else "[green]active[/]"
        table.add_row(
            record.id,
            record.credential_type or "",
            record.holder_id,
            record.issued_at or "",
            status_str,
        )
    console.print(table)


@main.command()
@click.argument("credential_id")
@click.option("--reason", default=None, help="Revocation reason")
@click.option("--code", default=None, help="TOTP or backup code, when 2FA is enabled")
@click.pass_context
def revoke(ctx: click.Context, credential_id: str, reason: str | None, code: str | None) -> None:
    """Revoke a credential."""
    try:
        outcome = _engine(ctx).revocation.revoke(credential_id, code, reason)
    except TrustEngineError as e:
        _fail(e, False)

    console.print(f"[green]Revoked[/] {outcome.record.id} at {outcome.record.revoked_at}")
    console.print(f"  reason: {outcome.record.revocation_reason}")
    if not outcome.authorization.two_factor_validated:
        console.print("[yellow]Warning:[/] revoked without 2FA (2FA is not configured)")


if __name__ == "__main__":
    main()
