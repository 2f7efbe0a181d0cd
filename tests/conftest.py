from __future__ import annotations

import base64
import zlib
from collections.abc import Callable
from datetime import datetime, timezone

import pytest
from lxml import etree

from ebicsclient.client.application import xmlsig
from ebicsclient.client.application.order_data import OrderDataCodec
from ebicsclient.client.application.xmlsig import DS_NS, H004_NS, ds, h004
from ebicsclient.client.domain.certificates import CertificateFactory, subject_name
from ebicsclient.client.domain.entities import Certificate, KeyMaterial, KeyRing
from ebicsclient.client.domain.messages import EncryptedOrderData
from ebicsclient.common.crypto import KeyService, Role
from ebicsclient.common.models import Bank, ClientConfig, User

TIMESTAMP = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
NONCE = bytes(range(16))

MT940 = (
    b":20:STARTUMS\r\n:25:10020030/1234567\r\n:28C:00001/001\r\n"
    b":60F:C240301EUR1000,00\r\n:62F:C240301EUR1000,00\r\n-"
)


class FakeBank:
    """Bank side of the protocol, enough to answer every client request."""

    def __init__(self, encryption: KeyMaterial, authentication: KeyMaterial):
        self.encryption = encryption
        self.authentication = authentication

    def certificate(self, role: Role) -> Certificate:
        material = self.encryption if role is Role.ENCRYPTION else self.authentication
        return CertificateFactory.from_public_numbers(
            role,
            material.key_pair.public_key.public_numbers().n,
            material.key_pair.public_key.public_numbers().e,
            created_at=TIMESTAMP,
        )

    @staticmethod
    def _root(tag: str) -> etree._Element:
        return etree.Element(
            h004(tag), nsmap={None: H004_NS, "ds": DS_NS}, Version="H004", Revision="1"
        )

    @staticmethod
    def _header(
        root: etree._Element,
        code: str,
        transaction_id: str | None = None,
        report_text: str = "[EBICS_OK] OK",
    ) -> None:
        header = etree.SubElement(root, h004("header"), authenticate="true")
        static = etree.SubElement(header, h004("static"))
        if transaction_id is not None:
            etree.SubElement(static, h004("TransactionID")).text = transaction_id
        mutable = etree.SubElement(header, h004("mutable"))
        etree.SubElement(mutable, h004("ReturnCode")).text = code
        etree.SubElement(mutable, h004("ReportText")).text = report_text

    @staticmethod
    def _data_transfer(body: etree._Element, encrypted: EncryptedOrderData) -> None:
        data_transfer = etree.SubElement(body, h004("DataTransfer"))
        info = etree.SubElement(data_transfer, h004("DataEncryptionInfo"), authenticate="true")
        etree.SubElement(
            info,
            h004("EncryptionPubKeyDigest"),
            Version=Role.ENCRYPTION.version,
            Algorithm=xmlsig.DIGEST_ALGORITHM,
        ).text = base64.b64encode(encrypted.key_digest).decode()
        etree.SubElement(info, h004("TransactionKey")).text = base64.b64encode(
            encrypted.transaction_key
        ).decode()
        etree.SubElement(data_transfer, h004("OrderData")).text = base64.b64encode(
            encrypted.order_data
        ).decode()

    @staticmethod
    def _tostring(root: etree._Element) -> bytes:
        return etree.tostring(root, xml_declaration=True, encoding="UTF-8")

    def hev(self, code: str = "000000") -> bytes:
        ns = "http://www.ebics.org/H000"
        root = etree.Element(f"{{{ns}}}ebicsHEVResponse", nsmap={None: ns})
        system = etree.SubElement(root, f"{{{ns}}}SystemReturnCode")
        etree.SubElement(system, f"{{{ns}}}ReturnCode").text = code
        etree.SubElement(system, f"{{{ns}}}ReportText").text = "[EBICS_OK] OK"
        for protocol, version in (("H003", "02.40"), ("H004", "02.50")):
            etree.SubElement(
                root, f"{{{ns}}}VersionNumber", ProtocolVersion=protocol
            ).text = version
        return self._tostring(root)

    def key_management(
        self, technical: str = "000000", business: str = "000000"
    ) -> bytes:
        root = self._root("ebicsKeyManagementResponse")
        self._header(root, technical)
        body = etree.SubElement(root, h004("body"))
        etree.SubElement(body, h004("ReturnCode"), authenticate="true").text = business
        return self._tostring(root)

    def bank_keys_document(self, encryption_version: str = "E002") -> bytes:
        root = etree.Element(
            h004("HPBResponseOrderData"), nsmap={None: H004_NS, "ds": DS_NS}
        )
        for role, info_tag, version_tag, version in (
            (Role.AUTHENTICATION, "AuthenticationPubKeyInfo", "AuthenticationVersion", "X002"),
            (Role.ENCRYPTION, "EncryptionPubKeyInfo", "EncryptionVersion", encryption_version),
        ):
            certificate = self.certificate(role)
            info = etree.SubElement(root, h004(info_tag))
            value = etree.SubElement(info, h004("PubKeyValue"))
            rsa_value = etree.SubElement(value, ds("RSAKeyValue"))
            etree.SubElement(rsa_value, ds("Modulus")).text = base64.b64encode(
                certificate.modulus
            ).decode()
            etree.SubElement(rsa_value, ds("Exponent")).text = base64.b64encode(
                certificate.exponent
            ).decode()
            etree.SubElement(info, h004(version_tag)).text = version
        etree.SubElement(root, h004("HostID")).text = "EBIXHOST"
        return self._tostring(root)

    def hpb(
        self,
        recipient: Certificate,
        code: str = "000000",
        order_data: bytes | None = None,
        business: str | None = None,
    ) -> bytes:
        root = self._root("ebicsKeyManagementResponse")
        self._header(root, code)
        body = etree.SubElement(root, h004("body"))
        if code == "000000":
            encrypted = OrderDataCodec.encrypt(
                order_data if order_data is not None else self.bank_keys_document(),
                recipient,
            )
            self._data_transfer(body, encrypted)
        etree.SubElement(body, h004("ReturnCode"), authenticate="true").text = business or code
        return self._tostring(root)

    def download(
        self,
        order_data: bytes,
        recipient: Certificate,
        transaction_id: str = "A1B2C3D4E5F60718293A4B5C6D7E8F90",
        code: str = "000000",
        signer: KeyMaterial | None = None,
        tamper: Callable[[etree._Element], None] | None = None,
    ) -> bytes:
        root = self._root("ebicsResponse")
        self._header(root, code, transaction_id=transaction_id)
        body = etree.SubElement(root, h004("body"))
        if code == "000000":
            self._data_transfer(body, OrderDataCodec.encrypt(order_data, recipient))
        etree.SubElement(body, h004("ReturnCode"), authenticate="true").text = code
        xmlsig.sign(root, (signer or self.authentication).key_pair.private_key)
        if tamper is not None:
            tamper(root)
        return self._tostring(root)

    def receipt(self, transaction_id: str, code: str = "011000") -> bytes:
        root = self._root("ebicsResponse")
        self._header(
            root, code, transaction_id=transaction_id, report_text="[EBICS_DOWNLOAD_POSTPROCESS_DONE]"
        )
        body = etree.SubElement(root, h004("body"))
        etree.SubElement(body, h004("ReturnCode"), authenticate="true").text = "000000"
        xmlsig.sign(root, self.authentication.key_pair.private_key)
        return self._tostring(root)


class FakeTransport:
    """Records every request and answers from a queue of canned replies."""

    def __init__(self, *replies: bytes | Callable[[bytes], bytes]):
        self.replies = list(replies)
        self.requests: list[tuple[str, bytes]] = []

    def queue(self, *replies: bytes | Callable[[bytes], bytes]) -> None:
        self.replies.extend(replies)

    def post(self, url: str, content: bytes) -> bytes:
        self.requests.append((url, content))
        reply = self.replies.pop(0)
        return reply(content) if callable(reply) else reply

    @property
    def last_request(self) -> etree._Element:
        return etree.fromstring(self.requests[-1][1])


def make_material(role: Role, bit_length: int = 2048) -> KeyMaterial:
    key_pair = KeyService.generate_key_pair(role, bit_length)
    return CertificateFactory.from_key_pair(
        key_pair, False, subject_name("USER01", "PARTNER1"), now=TIMESTAMP
    )


@pytest.fixture(scope="session")
def participant_materials() -> dict[Role, KeyMaterial]:
    return {role: make_material(role) for role in Role}


@pytest.fixture(scope="session")
def fake_bank() -> FakeBank:
    return FakeBank(
        encryption=make_material(Role.ENCRYPTION),
        authentication=make_material(Role.AUTHENTICATION),
    )


@pytest.fixture
def bank() -> Bank:
    return Bank(host_id="EBIXHOST", url="https://ebics.example.com/ebics")


@pytest.fixture
def user() -> User:
    return User(partner_id="PARTNER1", user_id="USER01")


@pytest.fixture
def client_config(tmp_path) -> ClientConfig:
    return ClientConfig(key_size=1536, keyring_path=tmp_path / "keyring.json")


@pytest.fixture
def submitted_key_ring(participant_materials: dict[Role, KeyMaterial]) -> KeyRing:
    key_ring = KeyRing()
    for role in (Role.SIGNATURE, Role.ENCRYPTION, Role.AUTHENTICATION):
        key_ring.set_participant_certificate(role, participant_materials[role])
    return key_ring


@pytest.fixture
def active_key_ring(submitted_key_ring: KeyRing, fake_bank: FakeBank) -> KeyRing:
    for role in (Role.AUTHENTICATION, Role.ENCRYPTION):
        submitted_key_ring.set_bank_certificate(role, fake_bank.certificate(role))
    return submitted_key_ring


def order_data_document(tag: str, *children: tuple[str, str]) -> bytes:
    root = etree.Element(h004(tag), nsmap={None: H004_NS})
    for child, text in children:
        etree.SubElement(root, h004(child)).text = text
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


def unsecured_order_data(request: etree._Element) -> etree._Element:
    """Decode the compressed order data of an INI or HIA request."""
    text = request.findtext(f"{h004('body')}/{h004('DataTransfer')}/{h004('OrderData')}")
    return etree.fromstring(zlib.decompress(base64.b64decode(text)))

