"""Application layer: order data encryption and order data documents.

Order data is zlib-compressed before it travels. Key-exchange requests
(INI, HIA) send it as is; everything the bank returns is encrypted with
E002: AES-128-CBC under a fresh transaction key with an all-zero IV and
ANSI X9.23 padding, the transaction key wrapped with the recipient's
encryption key.
"""

from __future__ import annotations

import base64
import logging
import os
import zlib
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from lxml import etree

from ebicsclient.client.application.xmlsig import (
    DS_NS,
    H004_NS,
    ds,
    format_timestamp,
    h004,
    parse_xml,
)
from ebicsclient.client.domain.certificates import CertificateFactory
from ebicsclient.client.domain.messages import EncryptedOrderData, OrderType
from ebicsclient.common.crypto import TRANSACTION_KEY_SIZE, KeyService, Role
from ebicsclient.common.exceptions import CryptoError, MalformedOrderDataError
from ebicsclient.common.models import BankParameters

if TYPE_CHECKING:
    from ebicsclient.client.domain.entities import Certificate, KeyMaterial
    from ebicsclient.common.models import User

S001_NS = "http://www.ebics.org/S001"

BLOCK_SIZE = algorithms.AES.block_size
ZERO_IV = bytes(BLOCK_SIZE // 8)

logger = logging.getLogger(__name__)


def compress(data: bytes) -> bytes:
    return zlib.compress(data)


def decompress(data: bytes, order_type: OrderType | None = None) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error as err:
        msg = f"Order data is not a valid zlib stream: {err}"
        raise MalformedOrderDataError(msg, order_type) from err


class OrderDataCodec:
    """Hybrid encryption shared by every operation that carries order data."""

    @staticmethod
    def encrypt(
        plaintext: bytes,
        recipient: Certificate,
        entropy: Callable[[int], bytes] = os.urandom,
    ) -> EncryptedOrderData:
        """Compress and encrypt order data for the holder of `recipient`."""
        transaction_key = entropy(TRANSACTION_KEY_SIZE)
        padder = padding.ANSIX923(BLOCK_SIZE).padder()
        padded = padder.update(compress(plaintext)) + padder.finalize()
        encryptor = Cipher(algorithms.AES(transaction_key), modes.CBC(ZERO_IV)).encryptor()
        return EncryptedOrderData(
            transaction_key=KeyService.encrypt(recipient.public_key, transaction_key),
            order_data=encryptor.update(padded) + encryptor.finalize(),
            key_digest=recipient.digest,
        )

    @staticmethod
    def decrypt(
        encrypted: EncryptedOrderData,
        material: KeyMaterial,
        order_type: OrderType | None = None,
    ) -> bytes:
        """Decrypt and decompress order data addressed to `material`.

        Raises:
            CryptoError: If the data was encrypted for another key or does
                not decrypt cleanly
            MalformedOrderDataError: If the plaintext is not compressed data
        """
        if encrypted.key_digest != material.certificate.digest:
            msg = "Order data was encrypted for a different encryption key"
            raise CryptoError(msg)
        transaction_key = KeyService.decrypt(
            material.key_pair.private_key,
            encrypted.transaction_key,
        )
        ciphertext = encrypted.order_data
        if not ciphertext or len(ciphertext) % (BLOCK_SIZE // 8):
            msg = "Encrypted order data is not aligned to the cipher block size"
            raise CryptoError(msg)
        decryptor = Cipher(algorithms.AES(transaction_key), modes.CBC(ZERO_IV)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.ANSIX923(BLOCK_SIZE).unpadder()
        try:
            compressed = unpadder.update(padded) + unpadder.finalize()
        except ValueError as err:
            msg = "Invalid padding in decrypted order data"
            raise CryptoError(msg) from err
        return decompress(compressed, order_type)


def encode_unsecured(document: etree._Element) -> str:
    """Base64 of the compressed document, for INI and HIA requests."""
    content = etree.tostring(document, xml_declaration=True, encoding="UTF-8")
    return base64.b64encode(compress(content)).decode()


def _pub_key_info(
    parent: etree._Element,
    tag: str,
    certificate: Certificate,
    timestamp: datetime,
) -> etree._Element:
    info = etree.SubElement(parent, tag)
    cert = certificate.x509_certificate
    if cert is not None:
        x509_data = etree.SubElement(info, ds("X509Data"))
        issuer_serial = etree.SubElement(x509_data, ds("X509IssuerSerial"))
        etree.SubElement(issuer_serial, ds("X509IssuerName")).text = cert.issuer.rfc4514_string()
        etree.SubElement(issuer_serial, ds("X509SerialNumber")).text = str(cert.serial_number)
        etree.SubElement(x509_data, ds("X509Certificate")).text = base64.b64encode(
            certificate.der
        ).decode()
    ns = etree.QName(parent).namespace
    pub_key_value = etree.SubElement(info, f"{{{ns}}}PubKeyValue")
    rsa_key_value = etree.SubElement(pub_key_value, ds("RSAKeyValue"))
    etree.SubElement(rsa_key_value, ds("Modulus")).text = base64.b64encode(
        certificate.modulus
    ).decode()
    etree.SubElement(rsa_key_value, ds("Exponent")).text = base64.b64encode(
        certificate.exponent
    ).decode()
    etree.SubElement(pub_key_value, f"{{{ns}}}TimeStamp").text = format_timestamp(timestamp)
    return info


def _subscriber(parent: etree._Element, user: User) -> None:
    ns = etree.QName(parent).namespace
    etree.SubElement(parent, f"{{{ns}}}PartnerID").text = user.partner_id
    etree.SubElement(parent, f"{{{ns}}}UserID").text = user.user_id


def signature_key_document(
    certificate: Certificate, user: User, timestamp: datetime
) -> etree._Element:
    """SignaturePubKeyOrderData for INI."""
    root = etree.Element(
        f"{{{S001_NS}}}SignaturePubKeyOrderData", nsmap={None: S001_NS, "ds": DS_NS}
    )
    info = _pub_key_info(root, f"{{{S001_NS}}}SignaturePubKeyInfo", certificate, timestamp)
    etree.SubElement(info, f"{{{S001_NS}}}SignatureVersion").text = Role.SIGNATURE.version
    _subscriber(root, user)
    return root


def encryption_auth_keys_document(
    encryption: Certificate,
    authentication: Certificate,
    user: User,
    timestamp: datetime,
) -> etree._Element:
    """HIARequestOrderData for HIA."""
    root = etree.Element(h004("HIARequestOrderData"), nsmap={None: H004_NS, "ds": DS_NS})
    info = _pub_key_info(root, h004("AuthenticationPubKeyInfo"), authentication, timestamp)
    etree.SubElement(info, h004("AuthenticationVersion")).text = Role.AUTHENTICATION.version
    info = _pub_key_info(root, h004("EncryptionPubKeyInfo"), encryption, timestamp)
    etree.SubElement(info, h004("EncryptionVersion")).text = Role.ENCRYPTION.version
    _subscriber(root, user)
    return root


def _document(data: bytes, order_type: OrderType, root_tag: str) -> etree._Element:
    try:
        root = parse_xml(data)
    except etree.XMLSyntaxError as err:
        msg = f"{order_type.value} order data is not well-formed XML: {err}"
        raise MalformedOrderDataError(msg, order_type) from err
    if root.tag != h004(root_tag):
        msg = f"Expected {root_tag} in {order_type.value} order data, got {etree.QName(root).localname}"
        raise MalformedOrderDataError(msg, order_type)
    return root


def _b64_int(element: etree._Element, path: str, order_type: OrderType) -> int:
    text = element.findtext(path)
    if not text:
        msg = f"Missing {path.rsplit('}', 1)[-1]} in {order_type.value} order data"
        raise MalformedOrderDataError(msg, order_type)
    try:
        return int.from_bytes(base64.b64decode("".join(text.split()), validate=True), "big")
    except ValueError as err:
        msg = f"Invalid base64 in {order_type.value} order data"
        raise MalformedOrderDataError(msg, order_type) from err


def parse_bank_keys(data: bytes) -> dict[Role, Certificate]:
    """Bank encryption and authentication certificates from HPB order data."""
    order_type = OrderType.HPB
    root = _document(data, order_type, "HPBResponseOrderData")
    certificates = {}
    for role, info_tag, version_tag in (
        (Role.AUTHENTICATION, "AuthenticationPubKeyInfo", "AuthenticationVersion"),
        (Role.ENCRYPTION, "EncryptionPubKeyInfo", "EncryptionVersion"),
    ):
        info = root.find(h004(info_tag))
        if info is None:
            msg = f"HPB order data carries no {info_tag}"
            raise MalformedOrderDataError(msg, order_type)
        version = info.findtext(h004(version_tag))
        if version != role.version:
            msg = f"Unsupported bank {role.name.lower()} key version {version}"
            raise MalformedOrderDataError(msg, order_type)
        key_value = f"{h004('PubKeyValue')}/{ds('RSAKeyValue')}"
        modulus = _b64_int(info, f"{key_value}/{ds('Modulus')}", order_type)
        exponent = _b64_int(info, f"{key_value}/{ds('Exponent')}", order_type)
        der_text = info.findtext(f"{ds('X509Data')}/{ds('X509Certificate')}")
        try:
            der = base64.b64decode("".join(der_text.split())) if der_text else None
            certificates[role] = CertificateFactory.from_public_numbers(
                role, modulus, exponent, der=der
            )
        except ValueError as err:
            msg = f"Invalid bank {role.name.lower()} key: {err}"
            raise MalformedOrderDataError(msg, order_type) from err
    return certificates


def _supported(params: etree._Element | None, tag: str, attribute: str = "supported") -> bool:
    if params is None:
        return False
    element = params.find(h004(tag))
    return element is not None and element.get(attribute) == "true"


def parse_bank_parameters(data: bytes) -> BankParameters:
    order_type = OrderType.HPD
    root = _document(data, order_type, "HPDResponseOrderData")
    access = root.find(h004("AccessParams"))
    if access is None or not access.findtext(h004("HostID")):
        msg = "HPD order data carries no AccessParams/HostID"
        raise MalformedOrderDataError(msg, order_type)
    protocol = root.find(h004("ProtocolParams"))
    versions = ""
    if protocol is not None:
        versions = protocol.findtext(f"{h004('Version')}/{h004('Protocol')}") or ""
    return BankParameters(
        host_id=access.findtext(h004("HostID")),
        institute=access.findtext(h004("Institute")),
        urls=[url.text.strip() for url in access.findall(h004("URL")) if url.text],
        protocol_versions=versions.split(),
        recovery_supported=_supported(protocol, "Recovery"),
        prevalidation_supported=_supported(protocol, "PreValidation"),
        x509_persistent=_supported(protocol, "X509Data", "persistent"),
        client_data_download_supported=_supported(protocol, "ClientDataDownload"),
        downloadable_order_data_supported=_supported(protocol, "DownloadableOrderData"),
    )


def parse_order_types(data: bytes) -> list[str]:
    order_type = OrderType.HAA
    root = _document(data, order_type, "HAAResponseOrderData")
    order_types = root.findtext(h004("OrderTypes"))
    if order_types is None:
        msg = "HAA order data carries no OrderTypes"
        raise MalformedOrderDataError(msg, order_type)
    return order_types.split()


def parse_statement(data: bytes) -> str:
    """SWIFT MT940/MT942 text; every message opens with a :20: reference."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    if ":20:" not in text:
        msg = "Statement order data contains no SWIFT message"
        raise MalformedOrderDataError(msg)
    return text


DOCUMENT_PARSERS: dict[OrderType, Callable[[bytes], Any]] = {
    OrderType.HPB: parse_bank_keys,
    OrderType.HPD: parse_bank_parameters,
    OrderType.HAA: parse_order_types,
    OrderType.STA: parse_statement,
    OrderType.VMK: parse_statement,
}


def decode_document(order_type: OrderType, data: bytes) -> Any:
    try:
        document = DOCUMENT_PARSERS[order_type](data)
    except MalformedOrderDataError as err:
        err.order_type = err.order_type or order_type
        raise
    logger.debug("Decoded %s order data (%d bytes)", order_type.value, len(data))
    return document
