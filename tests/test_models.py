import pytest
from pydantic import ValidationError

from ebicsclient.common.models import Bank, BankParameters, ClientConfig, User


def test_bank_model() -> None:
    bank = Bank(host_id="EBIXHOST", url="https://bank.example/ebics")
    assert bank.is_certified is False
    assert bank.authentication_digest is None


@pytest.mark.parametrize("host_id", ["", "HOST ID", "HÖST", "X" * 36])
def test_bank_rejects_invalid_host_id(host_id: str) -> None:
    with pytest.raises(ValidationError):
        Bank(host_id=host_id, url="https://bank.example/ebics")


def test_bank_normalizes_letter_digest() -> None:
    digest = " ".join(["ab"] * 32)
    bank = Bank(host_id="EBIXHOST", url="https://bank.example/ebics", encryption_digest=digest)
    assert bank.encryption_digest == "AB" * 32


@pytest.mark.parametrize("digest", ["AB" * 31, "ZZ" * 32])
def test_bank_rejects_invalid_digest(digest: str) -> None:
    with pytest.raises(ValidationError):
        Bank(host_id="EBIXHOST", url="https://bank.example/ebics", authentication_digest=digest)


def test_user_model() -> None:
    user = User(partner_id="PARTNER1", user_id="USER01")
    assert user.system_id is None
    with pytest.raises(ValidationError):
        User(partner_id="PARTNER1", user_id="")


def test_bank_parameters_defaults() -> None:
    parameters = BankParameters(host_id="EBIXHOST")
    assert parameters.urls == []
    assert parameters.recovery_supported is False


def test_client_config_all_optional() -> None:
    config = ClientConfig()
    assert all(value is None for value in config.model_dump().values())
