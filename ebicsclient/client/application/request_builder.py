"""Application layer: composition of outbound EBICS messages.

Four message shapes exist and every order type maps to exactly one:

* ``UNAUTHENTICATED``: ebicsHEVRequest, host id only (HEV)
* ``UNSECURED``: ebicsUnsecuredRequest carrying compressed key order data (INI, HIA)
* ``NO_PUBKEY_DIGESTS``: signed ebicsNoPubKeyDigestsRequest (HPB)
* ``SECURED``: signed ebicsRequest with bank key digests (HPD, HAA, STA, VMK, receipts)
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from lxml import etree

from ebicsclient.client.application import xmlsig
from ebicsclient.client.application.order_data import (
    encode_unsecured,
    encryption_auth_keys_document,
    signature_key_document,
)
from ebicsclient.client.application.xmlsig import DS_NS, H004_NS, format_timestamp, h004
from ebicsclient.client.domain.messages import OrderType, Request
from ebicsclient.common.config import Config
from ebicsclient.common.crypto import Role

if TYPE_CHECKING:
    from ebicsclient.client.domain.entities import Certificate, KeyRing
    from ebicsclient.common.models import Bank, User

HEV_NS = "http://www.ebics.org/H000"


class MessageVariant(str, Enum):
    UNAUTHENTICATED = "ebicsHEVRequest"
    UNSECURED = "ebicsUnsecuredRequest"
    NO_PUBKEY_DIGESTS = "ebicsNoPubKeyDigestsRequest"
    SECURED = "ebicsRequest"


VARIANTS: dict[OrderType, MessageVariant] = {
    OrderType.HEV: MessageVariant.UNAUTHENTICATED,
    OrderType.INI: MessageVariant.UNSECURED,
    OrderType.HIA: MessageVariant.UNSECURED,
    OrderType.HPB: MessageVariant.NO_PUBKEY_DIGESTS,
    OrderType.HPD: MessageVariant.SECURED,
    OrderType.HAA: MessageVariant.SECURED,
    OrderType.STA: MessageVariant.SECURED,
    OrderType.VMK: MessageVariant.SECURED,
}


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    @classmethod
    def from_bounds(cls, start: date | None, end: date | None) -> DateRange | None:
        """Both bounds or neither; a single bound is a usage error."""
        if start is None and end is None:
            return None
        if start is None or end is None:
            msg = "A date range needs both a start and an end date"
            raise ValueError(msg)
        if isinstance(start, datetime):
            start = start.date()
        if isinstance(end, datetime):
            end = end.date()
        if start > end:
            msg = f"Date range start {start} is after its end {end}"
            raise ValueError(msg)
        return cls(start=start, end=end)


class RequestBuilder:
    """Builds one request per order type for a given bank and subscriber."""

    def __init__(self, bank: Bank, user: User, config: Config | None = None):
        self.bank = bank
        self.user = user
        self.config = config or Config()

    def _variant(self, order_type: OrderType, expected: MessageVariant) -> MessageVariant:
        variant = VARIANTS[order_type]
        if variant is not expected:
            msg = f"{order_type.value} is sent as {variant.value}, not {expected.value}"
            raise ValueError(msg)
        return variant

    def _root(self, variant: MessageVariant) -> etree._Element:
        return etree.Element(
            h004(variant.value),
            nsmap={None: H004_NS, "ds": DS_NS},
            Version=self.config.PROTOCOL_VERSION,
            Revision=str(self.config.PROTOCOL_REVISION),
        )

    def _static_header(
        self,
        root: etree._Element,
        nonce: bytes | None = None,
        timestamp: datetime | None = None,
    ) -> tuple[etree._Element, etree._Element]:
        header = etree.SubElement(root, h004("header"), authenticate="true")
        static = etree.SubElement(header, h004("static"))
        etree.SubElement(static, h004("HostID")).text = self.bank.host_id
        if nonce is not None:
            etree.SubElement(static, h004("Nonce")).text = nonce.hex().upper()
        if timestamp is not None:
            etree.SubElement(static, h004("Timestamp")).text = format_timestamp(timestamp)
        etree.SubElement(static, h004("PartnerID")).text = self.user.partner_id
        etree.SubElement(static, h004("UserID")).text = self.user.user_id
        if self.user.system_id:
            etree.SubElement(static, h004("SystemID")).text = self.user.system_id
        etree.SubElement(
            static, h004("Product"), Language=self.config.PRODUCT_LANGUAGE
        ).text = self.config.PRODUCT_NAME
        return header, static

    def _order_details(
        self,
        static: etree._Element,
        order_type: OrderType,
        order_attribute: str,
        date_range: DateRange | None = None,
        standard_params: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        details = etree.SubElement(static, h004("OrderDetails"))
        etree.SubElement(details, h004("OrderType")).text = order_type.value
        etree.SubElement(details, h004("OrderAttribute")).text = order_attribute
        if standard_params:
            params = etree.SubElement(details, h004("StandardOrderParams"))
            if date_range is not None:
                dates = etree.SubElement(params, h004("DateRange"))
                etree.SubElement(dates, h004("Start")).text = date_range.start.isoformat()
                etree.SubElement(dates, h004("End")).text = date_range.end.isoformat()

    def _bank_key_digests(self, static: etree._Element, key_ring: KeyRing) -> None:
        digests = etree.SubElement(static, h004("BankPubKeyDigests"))
        for role, tag in (
            (Role.AUTHENTICATION, "Authentication"),
            (Role.ENCRYPTION, "Encryption"),
        ):
            etree.SubElement(
                digests,
                h004(tag),
                Version=role.version,
                Algorithm=xmlsig.DIGEST_ALGORITHM,
            ).text = base64.b64encode(key_ring.bank_certificate(role).digest).decode()

    def _security_medium(self, static: etree._Element) -> None:
        etree.SubElement(static, h004("SecurityMedium")).text = self.config.SECURITY_MEDIUM

    def _finish(
        self,
        order_type: OrderType,
        root: etree._Element,
        key_ring: KeyRing | None = None,
    ) -> Request:
        if key_ring is not None:
            signer = key_ring.participant_material(Role.AUTHENTICATION).key_pair
            xmlsig.sign(root, signer.private_key)
        content = etree.tostring(root, xml_declaration=True, encoding="UTF-8")
        return Request(order_type=order_type, content=content)

    def build_hev(self) -> Request:
        self._variant(OrderType.HEV, MessageVariant.UNAUTHENTICATED)
        root = etree.Element(f"{{{HEV_NS}}}ebicsHEVRequest", nsmap={None: HEV_NS})
        etree.SubElement(root, f"{{{HEV_NS}}}HostID").text = self.bank.host_id
        return self._finish(OrderType.HEV, root)

    def _build_unsecured(self, order_type: OrderType, document: etree._Element) -> Request:
        variant = self._variant(order_type, MessageVariant.UNSECURED)
        root = self._root(variant)
        header, static = self._static_header(root)
        self._order_details(static, order_type, self.config.UNSECURED_ORDER_ATTRIBUTE)
        self._security_medium(static)
        etree.SubElement(header, h004("mutable"))
        body = etree.SubElement(root, h004("body"))
        data_transfer = etree.SubElement(body, h004("DataTransfer"))
        etree.SubElement(data_transfer, h004("OrderData")).text = encode_unsecured(document)
        return self._finish(order_type, root)

    def build_ini(self, signature: Certificate, timestamp: datetime) -> Request:
        document = signature_key_document(signature, self.user, timestamp)
        return self._build_unsecured(OrderType.INI, document)

    def build_hia(
        self, encryption: Certificate, authentication: Certificate, timestamp: datetime
    ) -> Request:
        document = encryption_auth_keys_document(
            encryption, authentication, self.user, timestamp
        )
        return self._build_unsecured(OrderType.HIA, document)

    def build_hpb(self, key_ring: KeyRing, timestamp: datetime, nonce: bytes) -> Request:
        variant = self._variant(OrderType.HPB, MessageVariant.NO_PUBKEY_DIGESTS)
        root = self._root(variant)
        header, static = self._static_header(root, nonce=nonce, timestamp=timestamp)
        self._order_details(static, OrderType.HPB, self.config.DOWNLOAD_ORDER_ATTRIBUTE)
        self._security_medium(static)
        etree.SubElement(header, h004("mutable"))
        etree.SubElement(root, h004("body"))
        return self._finish(OrderType.HPB, root, key_ring)

    def build_download(
        self,
        order_type: OrderType,
        key_ring: KeyRing,
        timestamp: datetime,
        nonce: bytes,
        date_range: DateRange | None = None,
    ) -> Request:
        """Initialisation request of a download transaction."""
        variant = self._variant(order_type, MessageVariant.SECURED)
        root = self._root(variant)
        header, static = self._static_header(root, nonce=nonce, timestamp=timestamp)
        self._order_details(
            static,
            order_type,
            self.config.DOWNLOAD_ORDER_ATTRIBUTE,
            date_range=date_range,
            standard_params=True,
        )
        self._bank_key_digests(static, key_ring)
        self._security_medium(static)
        mutable = etree.SubElement(header, h004("mutable"))
        etree.SubElement(mutable, h004("TransactionPhase")).text = "Initialisation"
        etree.SubElement(root, h004("body"))
        return self._finish(order_type, root, key_ring)

    def build_receipt(
        self,
        order_type: OrderType,
        key_ring: KeyRing,
        transaction_id: str,
        acknowledged: bool = True,  # noqa: FBT001, FBT002
    ) -> Request:
        """Receipt phase closing a download transaction."""
        variant = self._variant(order_type, MessageVariant.SECURED)
        root = self._root(variant)
        header = etree.SubElement(root, h004("header"), authenticate="true")
        static = etree.SubElement(header, h004("static"))
        etree.SubElement(static, h004("HostID")).text = self.bank.host_id
        etree.SubElement(static, h004("TransactionID")).text = transaction_id
        mutable = etree.SubElement(header, h004("mutable"))
        etree.SubElement(mutable, h004("TransactionPhase")).text = "Receipt"
        body = etree.SubElement(root, h004("body"))
        receipt = etree.SubElement(body, h004("TransferReceipt"), authenticate="true")
        etree.SubElement(receipt, h004("ReceiptCode")).text = "0" if acknowledged else "1"
        return self._finish(order_type, root, key_ring)
