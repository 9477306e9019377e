"""
Command-line interface for veritas-vc.

Usage:
    veritas did address --private-key 0x...
    veritas issue employment --holder did:ethr:polygon:0x... --employer Acme ...
    veritas verify credential.json --rpc-url https://... --registry-address 0x...
    cat credential.json | veritas verify -
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

from veritas_vc.chain import RegistryClient
from veritas_vc.credential import EmploymentClaim, status_entry
from veritas_vc.crypto import private_key_to_address, public_key_from_private
from veritas_vc.did import DEFAULT_NETWORK, DID, decode_key, encode_ethr
from veritas_vc.errors import VeritasError
from veritas_vc.issuer import DEFAULT_STATUS_BASE_URL, issue_credential
from veritas_vc.verifier import VCVerifier, VerificationResult


console = Console()


def format_result(result: VerificationResult) -> None:
    """Format and print verification result."""
    if result.verified:
        status_icon = "[bold green]VALID[/]"
        panel_style = "green"
    else:
        status_icon = "[bold red]INVALID[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_icon)

    if result.credential_id:
        table.add_row("Credential ID", result.credential_id)

    if result.issuer:
        table.add_row("Issuer", result.issuer)

    if result.verified and isinstance(result.subject, dict):
        for key, value in result.subject.items():
            table.add_row(f"Subject {key}", json.dumps(value) if isinstance(value, dict) else str(value))

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    if result.errors:
        console.print("\n[bold red]Errors:[/]")
        for code, message in zip(result.errors, result.messages):
            console.print(f"  [red]x[/] {code}: {message}")

    if result.warnings:
        console.print("\n[bold yellow]Warnings:[/]")
        for warning in result.warnings:
            console.print(f"  [yellow]![/] {warning}")


def load_credential(source: str, timeout: float = 30.0) -> dict[str, Any]:
    """Load credential from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.
        timeout: HTTP timeout when source is a URL.

    Returns:
        Parsed credential JSON.
    """
    if source == "-":
        return json.loads(sys.stdin.read())

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=timeout) as client:
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


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="veritas-vc")
def main(verbose: bool) -> None:
    """Issue and verify Verifiable Credentials."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@main.group()
def did() -> None:
    """Derive addresses and DIDs."""


@did.command("address")
@click.option("--private-key", envvar="VERITAS_ISSUER_PRIVATE_KEY", required=True)
def did_address(private_key: str) -> None:
    """Print the account address for a private key."""
    console.print(private_key_to_address(private_key))


@did.command("ethr")
@click.option("--private-key", envvar="VERITAS_ISSUER_PRIVATE_KEY", default=None)
@click.option("--address", default=None, help="Account address (instead of a key)")
@click.option("--network", envvar="VERITAS_NETWORK", default=DEFAULT_NETWORK, show_default=True)
def did_ethr(private_key: str | None, address: str | None, network: str) -> None:
    """Print the did:ethr for a key or address."""
    if not address:
        if not private_key:
            raise click.UsageError("Provide --private-key or --address")
        address = private_key_to_address(private_key)
    try:
        console.print(encode_ethr(network, address))
    except VeritasError as e:
        raise click.ClickException(str(e)) from e


@did.command("key")
@click.option("--private-key", envvar="VERITAS_ISSUER_PRIVATE_KEY", default=None)
@click.option("--decode", "did_to_decode", default=None, help="did:key to decode instead")
def did_key(private_key: str | None, did_to_decode: str | None) -> None:
    """Print the did:key for a key, or decode a did:key."""
    try:
        if did_to_decode:
            console.print(decode_key(did_to_decode).hex())
            return
        if not private_key:
            raise click.UsageError("Provide --private-key or --decode")
        console.print_json(data=DID.from_public_key(public_key_from_private(private_key)).to_dict())
    except VeritasError as e:
        raise click.ClickException(str(e)) from e


@main.group()
def issue() -> None:
    """Issue signed credentials."""


@issue.command("employment")
@click.option("--private-key", envvar="VERITAS_ISSUER_PRIVATE_KEY", required=True)
@click.option("--network", envvar="VERITAS_NETWORK", default=DEFAULT_NETWORK, show_default=True)
@click.option("--holder", required=True, help="Holder DID")
@click.option("--employer", required=True)
@click.option("--role", required=True)
@click.option("--start-date", required=True)
@click.option("--end-date", default=None)
@click.option("--expires-in-days", type=int, default=365, show_default=True)
@click.option("--status-index", type=int, default=None, help="Status bit (list * 256 + bit)")
@click.option("--status-base-url", default=DEFAULT_STATUS_BASE_URL, show_default=True)
def issue_employment(
    private_key: str,
    network: str,
    holder: str,
    employer: str,
    role: str,
    start_date: str,
    end_date: str | None,
    expires_in_days: int,
    status_index: int | None,
    status_base_url: str,
) -> None:
    """Issue a proof-of-employment credential and print it as JSON."""
    try:
        issuer_did = encode_ethr(network, private_key_to_address(private_key))
        status = None
        if status_index is not None:
            list_index, bit_index = divmod(status_index, 256)
            status = status_entry(status_base_url, list_index, bit_index)
        credential = issue_credential(
            EmploymentClaim(
                employer=employer,
                role=role,
                start_date=start_date,
                end_date=end_date,
            ),
            private_key=private_key,
            issuer_did=issuer_did,
            holder_did=holder,
            expires_in_days=expires_in_days or None,
            status=status,
        )
    except (VeritasError, ValueError) as e:
        raise click.ClickException(str(e)) from e
    click.echo(credential.to_json(indent=2))


@main.command()
@click.argument("source", required=True)
@click.option(
    "--rpc-url",
    envvar="VERITAS_RPC_URL",
    default=None,
    help="JSON-RPC endpoint for the revocation registry",
)
@click.option(
    "--registry-address",
    envvar="VERITAS_REGISTRY_ADDRESS",
    default=None,
    help="Revocation registry contract address",
)
@click.option(
    "--no-status",
    is_flag=True,
    help="Skip credential status (revocation) check",
)
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    help="Disable SSL certificate verification",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output result as JSON",
)
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    help="HTTP request timeout in seconds",
)
def verify(
    source: str,
    rpc_url: str | None,
    registry_address: str | None,
    no_status: bool,
    no_ssl_verify: bool,
    json_output: bool,
    timeout: float,
) -> None:
    """Verify a Verifiable Credential.

    SOURCE can be:
    - A file path (e.g., credential.json)
    - A URL (e.g., https://example.com/credentials/123)
    - "-" to read from stdin

    Revocation is checked when both --rpc-url and --registry-address are set.
    """
    try:
        credential = load_credential(source, timeout=timeout)

        revocation_query = None
        if not no_status and rpc_url and registry_address:
            revocation_query = RegistryClient(
                rpc_url,
                registry_address,
                timeout=timeout,
                verify_ssl=not no_ssl_verify,
            )

        verifier = VCVerifier(revocation_query=revocation_query)
        result = verifier.verify(credential)

        if json_output:
            console.print_json(data=result.to_dict())
        else:
            format_result(result)

        sys.exit(0 if result.verified else 1)

    except json.JSONDecodeError as e:
        if json_output:
            console.print_json(data={"error": f"Invalid JSON: {e}"})
        else:
            console.print(f"[red]Error:[/] Invalid JSON: {e}")
        sys.exit(2)

    except httpx.HTTPError as e:
        if json_output:
            console.print_json(data={"error": f"HTTP error: {e}"})
        else:
            console.print(f"[red]Error:[/] HTTP error: {e}")
        sys.exit(2)

    except (VeritasError, TypeError, click.ClickException) as e:
        if json_output:
            console.print_json(data={"error": str(e)})
        else:
            console.print(f"[red]Error:[/] {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
