"""
Command-line interface for the Status Manager.

Usage:
    vc-status originate --signer tz1... --type revocation
    vc-status resolve slist://KT1...
    vc-status is-revoked credential.json
    cat credential.json | vc-status revoke --signer tz1... -
    vc-status legacy resolve rlist://KT1...
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vc_status_manager import __version__, config
from vc_status_manager.codec import MIN_BITS
from vc_status_manager.errors import StatusManagerError
from vc_status_manager.ledger import Ledger, OperationResult
from vc_status_manager.protocol import (
    Origination,
    RevocationListManager,
    StatusListManager,
)
from vc_status_manager.rpc import HttpInjector, TezosRpcLedger
from vc_status_manager.validator import PURPOSES

console = Console()
err_console = Console(stderr=True)


@dataclass
class Settings:
    """Options shared by every command."""

    rpc: str
    injector_url: str | None
    confirmations: int
    json_output: bool
    verify_ssl: bool


def build_ledger(settings: Settings) -> Ledger:
    """Create the ledger accessor used by a command."""
    injector = None
    if settings.injector_url:
        injector = HttpInjector(settings.injector_url, verify_ssl=settings.verify_ssl)
    return TezosRpcLedger(settings.rpc, injector=injector, verify_ssl=settings.verify_ssl)


def _read_source(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    if source.startswith(("http://", "https://")):
        response = httpx.get(
            source,
            headers={"Accept": "application/vc+ld+json, application/json"},
            timeout=config.HTTP_TIMEOUT_SECONDS,
            follow_redirects=True,
        )
        response.raise_for_status()
        return response.text
    try:
        return Path(source).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise click.ClickException(f"File not found: {source}") from None


def load_credential(source: str) -> dict[str, Any]:
    """Read one credential from a file path, an http(s) URL or "-" (stdin).

    Raises:
        click.ClickException: If the file does not exist or the document
            is not a JSON object.
    """
    credential = json.loads(_read_source(source))
    if not isinstance(credential, dict):
        raise click.ClickException(f"{source} does not hold a credential object")
    return credential


def _credential_fields(vc: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
    status = vc.get("credentialStatus") or {}
    manager = status.get("statusListCredential") or status.get("revocationListCredential")
    index = status.get("statusListIndex") or status.get("revocationListIndex")
    return vc.get("id"), manager, index


def print_operation(
    settings: Settings, result: OperationResult, vcs: list[dict[str, Any]]
) -> None:
    """Print a confirmed operation and the credentials it touched."""
    if settings.json_output:
        console.print_json(
            data={
                "hash": result.hash,
                "status": result.status.value,
                "level": result.level,
                "confirmations": result.confirmations,
                "credentials": [
                    dict(zip(("id", "manager", "index"), _credential_fields(vc)))
                    for vc in vcs
                ],
            }
        )
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Hash", result.hash)
    table.add_row("Status", f"[green]{result.status.value}[/]")
    table.add_row("Level", str(result.level))
    table.add_row("Confirmations", str(result.confirmations))
    for vc in vcs:
        credential_id, manager, index = _credential_fields(vc)
        table.add_row("Credential", f"{credential_id} ({manager} #{index})")

    console.print(Panel(table, title="Operation", border_style="green"))


def print_origination(settings: Settings, origination: Origination) -> None:
    if settings.json_output:
        console.print_json(
            data={
                "id": origination.id,
                "issuer": origination.issuer,
                "hash": origination.operation.hash,
                "level": origination.operation.level,
            }
        )
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Id", origination.id)
    table.add_row("Issuer", origination.issuer)
    table.add_row("Hash", origination.operation.hash)
    table.add_row("Level", str(origination.operation.level))
    console.print(Panel(table, title="Status Manager deployed", border_style="green"))


def print_status(settings: Settings, vc: dict[str, Any], label: str, value: bool) -> None:
    credential_id, manager, index = _credential_fields(vc)
    if settings.json_output:
        console.print_json(
            data={"id": credential_id, "manager": manager, "index": index, label: value}
        )
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Credential ID", str(credential_id))
    table.add_row("Status Manager", str(manager))
    table.add_row("Index", str(index))
    table.add_row(label.capitalize(), "[red]Yes[/]" if value else "[green]No[/]")
    border_style = "red" if value else "green"
    console.print(Panel(table, title="Credential Status", border_style=border_style))


@contextmanager
def handle_errors(settings: Settings) -> Iterator[None]:
    """Report command failures and exit with code 2."""
    try:
        yield
        return
    except click.ClickException as e:
        message = e.format_message()
    except json.JSONDecodeError as e:
        message = f"Invalid JSON: {e}"
    except httpx.HTTPError as e:
        message = f"HTTP error: {e}"
    except (StatusManagerError, ValueError) as e:
        message = str(e)

    if settings.json_output:
        console.print_json(data={"error": message})
    else:
        err_console.print(f"[red]Error:[/] {message}")
    sys.exit(2)


signer_option = click.option(
    "--signer",
    envvar="STATUS_MANAGER_SIGNER",
    required=True,
    help="Address (tz1/tz2/tz3) of the Manager owner signing the operation",
)
sources_argument = click.argument("sources", nargs=-1)


def _load_batch(sources: tuple[str, ...]) -> list[dict[str, Any]]:
    return [load_credential(source) for source in (sources or ("-",))]


@click.group()
@click.option("--rpc", envvar="TEZOS_RPC", default=config.TEZOS_RPC, show_default=True,
              help="RPC url used to interact with the Tezos network")
@click.option("--injector-url", envvar="STATUS_MANAGER_INJECTOR_URL", default=config.INJECTOR_URL,
              help="Signing gateway used to broadcast operations")
@click.option("--confirmations", type=click.IntRange(min=1), default=config.CONFIRMATIONS,
              show_default=True, help="Blocks to wait for before reporting success")
@click.option("--json-output", is_flag=True, help="Output result as JSON")
@click.option("--no-ssl-verify", is_flag=True, help="Disable SSL certificate verification")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(__version__)
@click.pass_context
def main(
    ctx: click.Context,
    rpc: str,
    injector_url: str | None,
    confirmations: int,
    json_output: bool,
    no_ssl_verify: bool,
    verbose: bool,
) -> None:
    """Manage W3C status lists anchored to Tezos Status Manager contracts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    ctx.obj = Settings(
        rpc=rpc,
        injector_url=injector_url,
        confirmations=confirmations,
        json_output=json_output,
        verify_ssl=not no_ssl_verify,
    )


def _status_manager(settings: Settings) -> StatusListManager:
    return StatusListManager(build_ledger(settings), confirmations=settings.confirmations)


def _revocation_manager(settings: Settings) -> RevocationListManager:
    return RevocationListManager(build_ledger(settings), confirmations=settings.confirmations)


@main.command()
@signer_option
@click.option("--type", "purpose", type=click.Choice(PURPOSES), required=True,
              help="Purpose of the status list")
@click.option("--size", type=click.IntRange(min=MIN_BITS), default=MIN_BITS, show_default=True,
              help="Number of bits in the initial list")
@click.pass_obj
def originate(settings: Settings, signer: str, purpose: str, size: int) -> None:
    """Deploy a Status Manager with an initial status list."""
    with handle_errors(settings):
        manager = _status_manager(settings)
        origination = asyncio.run(manager.originate(signer, purpose, size))
    print_origination(settings, origination)


@main.command()
@click.argument("manager_id", metavar="MANAGER")
@click.pass_obj
def resolve(settings: Settings, manager_id: str) -> None:
    """Build a StatusList2021Credential from a Status Manager."""
    with handle_errors(settings):
        document = asyncio.run(_status_manager(settings).resolve(manager_id))
    console.print_json(data=document)


@main.command("is-revoked")
@click.argument("source", default="-")
@click.pass_obj
def is_revoked(settings: Settings, source: str) -> None:
    """Check whether a Verifiable Credential is revoked or not.

    Exits with code 1 when the credential is revoked.
    """
    with handle_errors(settings):
        vc = load_credential(source)
        revoked = asyncio.run(_status_manager(settings).is_revoked(vc))
    print_status(settings, vc, "revoked", revoked)
    sys.exit(1 if revoked else 0)


@main.command("is-suspended")
@click.argument("source", default="-")
@click.pass_obj
def is_suspended(settings: Settings, source: str) -> None:
    """Check whether a Verifiable Credential is suspended or not.

    Exits with code 1 when the credential is suspended.
    """
    with handle_errors(settings):
        vc = load_credential(source)
        suspended = asyncio.run(_status_manager(settings).is_suspended(vc))
    print_status(settings, vc, "suspended", suspended)
    sys.exit(1 if suspended else 0)


def _mutate(
    settings: Settings,
    action: Callable[[StatusListManager, list[dict[str, Any]]], Awaitable[OperationResult]],
    sources: tuple[str, ...],
) -> None:
    with handle_errors(settings):
        vcs = _load_batch(sources)
        result = asyncio.run(action(_status_manager(settings), vcs))
    print_operation(settings, result, vcs)


@main.command()
@signer_option
@sources_argument
@click.pass_obj
def revoke(settings: Settings, signer: str, sources: tuple[str, ...]) -> None:
    """Revoke Verifiable Credentials sharing one Status Manager.

    SOURCES are credential files, URLs or "-" for stdin (the default).
    """
    _mutate(settings, lambda manager, vcs: manager.revoke(signer, vcs), sources)


@main.command()
@signer_option
@sources_argument
@click.pass_obj
def suspend(settings: Settings, signer: str, sources: tuple[str, ...]) -> None:
    """Suspend Verifiable Credentials sharing one Status Manager."""
    _mutate(settings, lambda manager, vcs: manager.suspend(signer, vcs), sources)


@main.command()
@signer_option
@sources_argument
@click.pass_obj
def unsuspend(settings: Settings, signer: str, sources: tuple[str, ...]) -> None:
    """Unsuspend Verifiable Credentials sharing one Status Manager."""
    _mutate(settings, lambda manager, vcs: manager.unsuspend(signer, vcs), sources)


@main.group()
def legacy() -> None:
    """RevocationList2020 Revocation Managers (rlist://)."""


@legacy.command("originate")
@signer_option
@click.pass_obj
def legacy_originate(settings: Settings, signer: str) -> None:
    """Deploy a Revocation Manager with an empty list."""
    with handle_errors(settings):
        origination = asyncio.run(_revocation_manager(settings).originate(signer))
    print_origination(settings, origination)


@legacy.command("resolve")
@click.argument("manager_id", metavar="MANAGER")
@click.pass_obj
def legacy_resolve(settings: Settings, manager_id: str) -> None:
    """Build a RevocationList2020Credential from a Revocation Manager."""
    with handle_errors(settings):
        document = asyncio.run(_revocation_manager(settings).resolve(manager_id))
    console.print_json(data=document)


@legacy.command("is-revoked")
@click.argument("source", default="-")
@click.pass_obj
def legacy_is_revoked(settings: Settings, source: str) -> None:
    """Check whether a Verifiable Credential is revoked or not."""
    with handle_errors(settings):
        vc = load_credential(source)
        revoked = asyncio.run(_revocation_manager(settings).is_revoked(vc))
    print_status(settings, vc, "revoked", revoked)
    sys.exit(1 if revoked else 0)


@legacy.command("revoke")
@signer_option
@click.argument("source", default="-")
@click.pass_obj
def legacy_revoke(settings: Settings, signer: str, source: str) -> None:
    """Revoke a Verifiable Credential."""
    with handle_errors(settings):
        vc = load_credential(source)
        result = asyncio.run(_revocation_manager(settings).revoke(signer, vc))
    print_operation(settings, result, [vc])


@legacy.command("unrevoke")
@signer_option
@click.argument("source", default="-")
@click.pass_obj
def legacy_unrevoke(settings: Settings, signer: str, source: str) -> None:
    """Reinstate a revoked Verifiable Credential."""
    with handle_errors(settings):
        vc = load_credential(source)
        result = asyncio.run(_revocation_manager(settings).unrevoke(signer, vc))
    print_operation(settings, result, [vc])


if __name__ == "__main__":
    main()
