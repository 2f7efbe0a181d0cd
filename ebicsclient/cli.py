"""
Command-line interface for the EBICS client.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from ebicsclient.client.client import EbicsClient
from ebicsclient.client.domain.messages import OrderType
from ebicsclient.client.infrastructure.config_loader import ConfigLoader
from ebicsclient.client.infrastructure.transport import HttpTransport
from ebicsclient.common.exceptions import EbicsError
from ebicsclient.common.models import ClientConfig

if TYPE_CHECKING:
    from datetime import datetime

    from ebicsclient.client.domain.messages import Response

DATE = click.DateTime(formats=["%Y-%m-%d"])


def _client(ctx: click.Context) -> tuple[EbicsClient, ConfigLoader]:
    settings = ConfigLoader(ctx.obj)
    try:
        client = EbicsClient(
            bank=settings.load_bank(),
            user=settings.load_user(),
            key_ring=settings.load_key_ring(),
            transport=HttpTransport(settings.http_timeout, settings.verify_tls),
            client_config=ctx.obj,
        )
    except (ValueError, EbicsError) as err:
        raise click.ClickException(str(err)) from err
    return client, settings


def _report(ctx: click.Context, response: Response) -> None:
    click.echo(f"Return code: {response.code} {response.report_text or ''}".rstrip())
    if not response.is_success:
        ctx.exit(1)


def _run_handshake(ctx: click.Context, operation: str) -> None:
    client, settings = _client(ctx)
    try:
        response = getattr(client, operation)()
    except EbicsError as err:
        raise click.ClickException(str(err)) from err
    if response.is_success:
        settings.save_key_ring(client.key_ring)
        click.echo(f"Key ring state: {client.state.value}")
    _report(ctx, response)


@click.group()
@click.option("--url", default=None, help="Bank EBICS URL (default: EBICS_URL env)")
@click.option("--host-id", default=None, help="Bank host id (default: EBICS_HOST_ID env)")
@click.option("--partner-id", default=None, help="Partner id (default: EBICS_PARTNER_ID env)")
@click.option("--user-id", default=None, help="User id (default: EBICS_USER_ID env)")
@click.option(
    "--keyring",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Key ring file (default: EBICS_KEYRING_PATH env or ./keyring.json)",
)
@click.option(
    "--passphrase",
    default=None,
    help="Key ring passphrase (default: EBICS_KEYRING_PASSPHRASE env)",
)
@click.option("--certified", is_flag=True, help="Bank requires issued certificates")
@click.pass_context
def cli(  # noqa: PLR0913
    ctx: click.Context,
    url: str | None,
    host_id: str | None,
    partner_id: str | None,
    user_id: str | None,
    keyring: Path | None,
    passphrase: str | None,
    certified: bool,  # noqa: FBT001
) -> None:
    """EBICS H004 client"""
    ctx.obj = ClientConfig(
        url=url,
        host_id=host_id,
        partner_id=partner_id,
        user_id=user_id,
        certified=certified or None,
        keyring_path=keyring,
        keyring_passphrase=passphrase,
    )


@cli.command()
@click.pass_context
def state(ctx: click.Context) -> None:
    """Show the key ring state"""
    key_ring = ConfigLoader(ctx.obj).load_key_ring()
    click.echo(key_ring.state.value)


@cli.command()
@click.pass_context
def letter(ctx: click.Context) -> None:
    """Print the key hashes for the initialisation letter"""
    key_ring = ConfigLoader(ctx.obj).load_key_ring()
    hashes = key_ring.letter()
    if not hashes:
        msg = "The key ring holds no participant keys yet"
        raise click.ClickException(msg)
    for role, digest in hashes.items():
        grouped = " ".join(digest[i : i + 2] for i in range(0, len(digest), 2))
        click.echo(f"{role.value}{role.version[1:]}: {grouped}")


@cli.command()
@click.pass_context
def hev(ctx: click.Context) -> None:
    """Query the protocol versions supported by the bank"""
    client, _ = _client(ctx)
    try:
        response = client.host_probe()
    except EbicsError as err:
        raise click.ClickException(str(err)) from err
    for protocol, version in sorted(response.protocol_versions.items()):
        click.echo(f"{protocol}: {version}")
    _report(ctx, response)


@cli.command()
@click.pass_context
def ini(ctx: click.Context) -> None:
    """Submit a new signature key"""
    _run_handshake(ctx, "submit_signature_key")


@cli.command()
@click.pass_context
def hia(ctx: click.Context) -> None:
    """Submit new encryption and authentication keys"""
    _run_handshake(ctx, "submit_encryption_auth_keys")


@cli.command()
@click.pass_context
def hpb(ctx: click.Context) -> None:
    """Download and adopt the bank keys"""
    _run_handshake(ctx, "retrieve_bank_keys")


@cli.command()
@click.pass_context
def hpd(ctx: click.Context) -> None:
    """Download the bank parameters"""
    client, _ = _client(ctx)
    try:
        response = client.retrieve_subscriber_info()
    except EbicsError as err:
        raise click.ClickException(str(err)) from err
    for transaction in response.transactions:
        click.echo(transaction.document.model_dump_json(indent=2))
    _report(ctx, response)


@cli.command()
@click.pass_context
def haa(ctx: click.Context) -> None:
    """List the order types available for download"""
    client, _ = _client(ctx)
    try:
        response = client.list_orders()
    except EbicsError as err:
        raise click.ClickException(str(err)) from err
    for transaction in response.transactions:
        click.echo(" ".join(transaction.document))
    _report(ctx, response)


def _statement(
    ctx: click.Context,
    order_type: OrderType,
    start: datetime | None,
    end: datetime | None,
    receipt: bool,  # noqa: FBT001
) -> None:
    client, _ = _client(ctx)
    try:
        response = client.fetch_statement(
            start=start.date() if start else None,
            end=end.date() if end else None,
            order_type=order_type,
        )
        for transaction in response.transactions:
            click.echo(transaction.document)
            if receipt:
                client.send_receipt(transaction)
    except (ValueError, EbicsError) as err:
        raise click.ClickException(str(err)) from err
    _report(ctx, response)


@cli.command()
@click.option("--start", type=DATE, default=None, help="First statement date")
@click.option("--end", type=DATE, default=None, help="Last statement date")
@click.option("--receipt/--no-receipt", default=True, help="Acknowledge the download")
@click.pass_context
def sta(ctx: click.Context, start: datetime | None, end: datetime | None, receipt: bool) -> None:  # noqa: FBT001
    """Download MT940 account statements"""
    _statement(ctx, OrderType.STA, start, end, receipt)


@cli.command()
@click.option("--start", type=DATE, default=None, help="First statement date")
@click.option("--end", type=DATE, default=None, help="Last statement date")
@click.option("--receipt/--no-receipt", default=True, help="Acknowledge the download")
@click.pass_context
def vmk(ctx: click.Context, start: datetime | None, end: datetime | None, receipt: bool) -> None:  # noqa: FBT001
    """Download MT942 intraday statements"""
    _statement(ctx, OrderType.VMK, start, end, receipt)


if __name__ == "__main__":
    cli()
