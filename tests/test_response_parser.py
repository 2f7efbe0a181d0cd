import pytest
from lxml import etree

from conftest import MT940
from ebicsclient.client.application.response_parser import (
    parse_response,
    verify_auth_signature,
)
from ebicsclient.client.application.xmlsig import h004
from ebicsclient.common.crypto import Role
from ebicsclient.common.exceptions import CryptoError, MalformedResponseError


def test_parse_hev(fake_bank) -> None:
    response = parse_response(fake_bank.hev())

    assert response.is_success
    assert response.protocol_versions == {"H003": "02.40", "H004": "02.50"}
    assert response.report_text == "[EBICS_OK] OK"


def test_parse_key_management_success(fake_bank) -> None:
    response = parse_response(fake_bank.key_management())

    assert response.is_success
    assert response.code == "000000"
    assert response.encrypted_order_data is None


def test_technical_code_wins(fake_bank) -> None:
    response = parse_response(fake_bank.key_management("091002", "090003"))

    assert not response.is_success
    assert response.code == "091002"
    assert response.business_code == "090003"


def test_business_code_reported(fake_bank) -> None:
    response = parse_response(fake_bank.key_management("000000", "090005"))

    assert not response.is_success
    assert response.code == "090005"


def test_parse_download(fake_bank, participant_materials) -> None:
    recipient = participant_materials[Role.ENCRYPTION].certificate

    response = parse_response(fake_bank.download(MT940, recipient, transaction_id="TX01"))

    assert response.is_success
    assert response.transaction_id == "TX01"
    encrypted = response.encrypted_order_data
    assert encrypted.key_digest == recipient.digest
    assert len(encrypted.order_data) % 16 == 0
    verify_auth_signature(response, fake_bank.authentication.key_pair.public_key)


def test_signature_from_other_key(fake_bank, participant_materials) -> None:
    content = fake_bank.download(
        MT940,
        participant_materials[Role.ENCRYPTION].certificate,
        signer=participant_materials[Role.AUTHENTICATION],
    )
    response = parse_response(content)

    with pytest.raises(CryptoError, match="does not verify"):
        verify_auth_signature(response, fake_bank.authentication.key_pair.public_key)


def test_tampered_response(fake_bank, participant_materials) -> None:
    def tamper(root: etree._Element) -> None:
        root.find(f"{h004('header')}/{h004('static')}/{h004('TransactionID')}").text = "OTHER"

    content = fake_bank.download(
        MT940, participant_materials[Role.ENCRYPTION].certificate, tamper=tamper
    )
    response = parse_response(content)

    with pytest.raises(CryptoError, match="Digest"):
        verify_auth_signature(response, fake_bank.authentication.key_pair.public_key)


def test_unsigned_response(fake_bank) -> None:
    response = parse_response(fake_bank.key_management())

    with pytest.raises(MalformedResponseError, match="AuthSignature"):
        verify_auth_signature(response, fake_bank.authentication.key_pair.public_key)


@pytest.mark.parametrize(
    "content",
    [
        b"",
        b"not xml",
        b"<ebicsResponse xmlns='urn:org:ebics:H004'><header>",
        b"<other xmlns='urn:example'/>",
    ],
)
def test_malformed_content(content: bytes) -> None:
    with pytest.raises(MalformedResponseError) as exc_info:
        parse_response(content)
    assert exc_info.value.content == content


def test_missing_return_codes() -> None:
    content = (
        b"<ebicsKeyManagementResponse xmlns='urn:org:ebics:H004'>"
        b"<header><mutable/></header><body/></ebicsKeyManagementResponse>"
    )
    with pytest.raises(MalformedResponseError, match="no ReturnCode"):
        parse_response(content)


def test_invalid_return_code(fake_bank) -> None:
    with pytest.raises(MalformedResponseError, match="six digit"):
        parse_response(fake_bank.key_management("OK"))


def test_missing_body() -> None:
    content = b"<ebicsResponse xmlns='urn:org:ebics:H004'><header/></ebicsResponse>"
    with pytest.raises(MalformedResponseError, match="header or a body"):
        parse_response(content)


def test_invalid_order_data_encoding() -> None:
    content = (
        b"<ebicsResponse xmlns='urn:org:ebics:H004'>"
        b"<header><mutable><ReturnCode>000000</ReturnCode></mutable></header>"
        b"<body><DataTransfer><DataEncryptionInfo>"
        b"<EncryptionPubKeyDigest>AAAA</EncryptionPubKeyDigest>"
        b"<TransactionKey>AAAA</TransactionKey></DataEncryptionInfo>"
        b"<OrderData>***</OrderData></DataTransfer>"
        b"<ReturnCode>000000</ReturnCode></body></ebicsResponse>"
    )
    with pytest.raises(MalformedResponseError, match="OrderData"):
        parse_response(content)
