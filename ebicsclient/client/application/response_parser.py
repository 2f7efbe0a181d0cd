"""Application layer: interpretation of bank responses.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import TYPE_CHECKING

from lxml import etree

from ebicsclient.client.application import xmlsig
from ebicsclient.client.application.xmlsig import h004, parse_xml
from ebicsclient.client.domain.messages import EncryptedOrderData, Response
from ebicsclient.common.exceptions import MalformedResponseError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

H000_NS = "urn:org:ebics:H000"
HEV_NAMESPACES = (H000_NS, "http://www.ebics.org/H000")
RETURN_CODE = re.compile(r"^\d{6}$")

logger = logging.getLogger(__name__)


def _return_code(value: str | None, content: bytes) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not RETURN_CODE.match(value):
        msg = f"Return code {value!r} is not a six digit number"
        raise MalformedResponseError(msg, content)
    return value


def _b64(value: str | None, name: str, content: bytes) -> bytes:
    if not value or not value.strip():
        msg = f"Response carries an empty {name}"
        raise MalformedResponseError(msg, content)
    try:
        return base64.b64decode("".join(value.split()), validate=True)
    except ValueError as err:
        msg = f"{name} is not valid base64"
        raise MalformedResponseError(msg, content) from err


def _encrypted_order_data(
    data_transfer: etree._Element | None, content: bytes
) -> EncryptedOrderData | None:
    if data_transfer is None:
        return None
    info = data_transfer.find(h004("DataEncryptionInfo"))
    if info is None:
        return None
    return EncryptedOrderData(
        transaction_key=_b64(info.findtext(h004("TransactionKey")), "TransactionKey", content),
        order_data=_b64(data_transfer.findtext(h004("OrderData")), "OrderData", content),
        key_digest=_b64(
            info.findtext(h004("EncryptionPubKeyDigest")), "EncryptionPubKeyDigest", content
        ),
    )


def _parse_hev(root: etree._Element, content: bytes) -> Response:
    ns = etree.QName(root).namespace
    system = root.find(f"{{{ns}}}SystemReturnCode")
    if system is None:
        msg = "HEV response carries no SystemReturnCode"
        raise MalformedResponseError(msg, content)
    code = _return_code(system.findtext(f"{{{ns}}}ReturnCode"), content)
    if code is None:
        msg = "HEV response carries no ReturnCode"
        raise MalformedResponseError(msg, content)
    versions = {
        element.get("ProtocolVersion"): (element.text or "").strip()
        for element in root.findall(f"{{{ns}}}VersionNumber")
        if element.get("ProtocolVersion")
    }
    return Response(
        content=content,
        document=root,
        technical_code=code,
        report_text=system.findtext(f"{{{ns}}}ReportText"),
        protocol_versions=versions,
    )


def _parse_h004(root: etree._Element, content: bytes) -> Response:
    header = root.find(h004("header"))
    body = root.find(h004("body"))
    if header is None or body is None:
        msg = "Response lacks a header or a body"
        raise MalformedResponseError(msg, content)
    technical_code = _return_code(
        header.findtext(f"{h004('mutable')}/{h004('ReturnCode')}"), content
    )
    business_code = _return_code(body.findtext(h004("ReturnCode")), content)
    if technical_code is None and business_code is None:
        msg = "Response carries no ReturnCode"
        raise MalformedResponseError(msg, content)
    transaction_id = header.findtext(f"{h004('static')}/{h004('TransactionID')}")
    return Response(
        content=content,
        document=root,
        technical_code=technical_code,
        business_code=business_code,
        report_text=header.findtext(f"{h004('mutable')}/{h004('ReportText')}"),
        transaction_id=transaction_id.strip() if transaction_id else None,
        encrypted_order_data=_encrypted_order_data(body.find(h004("DataTransfer")), content),
    )


def parse_response(content: bytes) -> Response:
    """Parse a raw bank reply.

    Raises:
        MalformedResponseError: If the XML is malformed or lacks mandatory
            elements. A failing return code is not an error.
    """
    try:
        root = parse_xml(content)
    except (etree.XMLSyntaxError, ValueError) as err:
        msg = f"Response is not well-formed XML: {err}"
        raise MalformedResponseError(msg, content) from err

    name = etree.QName(root)
    if name.localname == "ebicsHEVResponse" and name.namespace in HEV_NAMESPACES:
        response = _parse_hev(root, content)
    elif name.namespace == xmlsig.H004_NS and name.localname in (
        "ebicsKeyManagementResponse",
        "ebicsResponse",
    ):
        response = _parse_h004(root, content)
    else:
        msg = f"Unexpected response element {name.localname}"
        raise MalformedResponseError(msg, content)

    logger.debug(
        "Parsed %s with return code %s", name.localname, response.code
    )
    return response


def verify_auth_signature(response: Response, public_key: RSAPublicKey) -> None:
    """Check the bank's AuthSignature on a response."""
    xmlsig.verify(response.document, public_key)
