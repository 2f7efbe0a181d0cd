from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from conftest import MT940, FakeTransport
from ebicsclient.cli import cli
from ebicsclient.client.infrastructure.storage import KeyRingStorage
from ebicsclient.common.crypto import Role


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: Any) -> None:
    for name in ("EBICS_URL", "EBICS_HOST_ID", "EBICS_PARTNER_ID", "EBICS_USER_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def keyring(tmp_path: Path) -> Path:
    return tmp_path / "keyring.json"


@pytest.fixture
def transport(monkeypatch: Any) -> FakeTransport:
    transport = FakeTransport()
    monkeypatch.setattr("ebicsclient.cli.HttpTransport", lambda *args, **kwargs: transport)
    return transport


def options(keyring: Path) -> list[str]:
    return [
        "--url",
        "https://ebics.example.com/ebics",
        "--host-id",
        "EBIXHOST",
        "--partner-id",
        "PARTNER1",
        "--user-id",
        "USER01",
        "--keyring",
        str(keyring),
    ]


def test_cli_help():
    """Test CLI help command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Usage:" in result.output
    for command in ("hev", "ini", "hia", "hpb", "hpd", "haa", "sta", "vmk", "letter", "state"):
        assert command in result.output


def test_cli_sta_help():
    runner = CliRunner()
    result = runner.invoke(cli, ["sta", "--help"])
    assert result.exit_code == 0
    assert "--start" in result.output
    assert "MT940" in result.output


def test_cli_state_of_new_key_ring(keyring: Path):
    runner = CliRunner()
    result = runner.invoke(cli, ["--keyring", str(keyring), "state"])
    assert result.exit_code == 0
    assert result.output.strip() == "Empty"


def test_cli_letter_without_keys(keyring: Path):
    runner = CliRunner()
    result = runner.invoke(cli, ["--keyring", str(keyring), "letter"])
    assert result.exit_code == 1
    assert "no participant keys" in result.output


def test_cli_letter(keyring: Path, submitted_key_ring):
    KeyRingStorage.save(keyring, submitted_key_ring)
    runner = CliRunner()

    result = runner.invoke(cli, ["--keyring", str(keyring), "letter"])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert [line.split(":")[0] for line in lines] == ["A006", "E002", "X002"]
    digest = submitted_key_ring.participant_certificate(Role.SIGNATURE).digest.hex().upper()
    assert lines[0].split(": ")[1].replace(" ", "") == digest


def test_cli_missing_settings(keyring: Path):
    runner = CliRunner()
    result = runner.invoke(cli, ["--keyring", str(keyring), "hev"])
    assert result.exit_code == 1
    assert "EBICS_URL" in result.output


def test_cli_hev(keyring: Path, transport: FakeTransport, fake_bank):
    transport.queue(fake_bank.hev())
    runner = CliRunner()

    result = runner.invoke(cli, [*options(keyring), "hev"])

    assert result.exit_code == 0
    assert "H004: 02.50" in result.output
    assert "Return code: 000000" in result.output


def test_cli_ini_saves_the_key_ring(keyring: Path, transport: FakeTransport, fake_bank):
    transport.queue(fake_bank.key_management())
    runner = CliRunner()

    result = runner.invoke(cli, [*options(keyring), "ini"])

    assert result.exit_code == 0
    assert "Key ring state: SignaturePending" in result.output
    assert KeyRingStorage.load_file(keyring).participant.keys() == {Role.SIGNATURE}


def test_cli_ini_rejected(keyring: Path, transport: FakeTransport, fake_bank):
    transport.queue(fake_bank.key_management("091002"))
    runner = CliRunner()

    result = runner.invoke(cli, [*options(keyring), "ini"])

    assert result.exit_code == 1
    assert "Return code: 091002" in result.output
    assert not keyring.exists()


def test_cli_ini_in_wrong_state(keyring: Path, transport: FakeTransport, submitted_key_ring):
    KeyRingStorage.save(keyring, submitted_key_ring)
    runner = CliRunner()

    result = runner.invoke(cli, [*options(keyring), "ini"])

    assert result.exit_code == 1
    assert "requires key ring state" in result.output
    assert transport.requests == []


def test_cli_sta(keyring: Path, transport: FakeTransport, fake_bank, active_key_ring):
    KeyRingStorage.save(keyring, active_key_ring)
    recipient = active_key_ring.participant_certificate(Role.ENCRYPTION)
    transport.queue(
        fake_bank.download(MT940, recipient, transaction_id="TX01"),
        fake_bank.receipt("TX01", code="000000"),
    )
    runner = CliRunner()

    result = runner.invoke(
        cli, [*options(keyring), "sta", "--start", "2024-02-01", "--end", "2024-02-29"]
    )

    assert result.exit_code == 0
    assert ":20:STARTUMS" in result.output
    assert len(transport.requests) == 2  # noqa: PLR2004


def test_cli_sta_single_bound(keyring: Path, transport: FakeTransport, active_key_ring):
    KeyRingStorage.save(keyring, active_key_ring)
    runner = CliRunner()

    result = runner.invoke(cli, [*options(keyring), "sta", "--start", "2024-02-01"])

    assert result.exit_code == 1
    assert "both" in result.output
    assert transport.requests == []
