"""Application layer: canonicalization and the X002 authentication signature.

Every element flagged ``authenticate="true"`` is canonicalized with
inclusive C14N 1.0 and the concatenation is digested with SHA-256. The
digest is referenced from ``ds:SignedInfo``, whose own canonical form is
signed with the authentication key. Both directions go through
`canonicalize`, so requests and bank responses are hashed identically.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from lxml import etree

from ebicsclient.common.crypto import KeyService
from ebicsclient.common.exceptions import CryptoError, MalformedResponseError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import (
        RSAPrivateKey,
        RSAPublicKey,
    )

H004_NS = "urn:org:ebics:H004"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
SIGNATURE_ALGORITHM = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
DIGEST_ALGORITHM = "http://www.w3.org/2001/04/xmlenc#sha256"
REFERENCE_URI = "#xpointer(//*[@authenticate='true'])"


XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


def parse_xml(content: bytes) -> etree._Element:
    """Parse untrusted XML without entity expansion or network access."""
    return etree.fromstring(content, parser=XML_PARSER)


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ds(tag: str) -> str:
    return f"{{{DS_NS}}}{tag}"


def h004(tag: str) -> str:
    return f"{{{H004_NS}}}{tag}"


def canonicalize(element: etree._Element) -> bytes:
    return etree.tostring(element, method="c14n", exclusive=False, with_comments=False)


def authenticated_digest(root: etree._Element) -> bytes:
    digest = hashlib.sha256()
    for element in root.xpath("//*[@authenticate='true']"):
        digest.update(canonicalize(element))
    return digest.digest()


def sign(root: etree._Element, private_key: RSAPrivateKey) -> etree._Element:
    """Insert an AuthSignature right after the header of `root`."""
    header = root.find(h004("header"))
    if header is None:
        msg = "Cannot sign a message without header"
        raise ValueError(msg)

    # Created inside the tree so it reuses the root's namespace prefixes.
    auth_signature = etree.SubElement(root, h004("AuthSignature"))
    header.addnext(auth_signature)

    signed_info = etree.SubElement(auth_signature, ds("SignedInfo"))
    etree.SubElement(signed_info, ds("CanonicalizationMethod"), Algorithm=C14N_ALGORITHM)
    etree.SubElement(signed_info, ds("SignatureMethod"), Algorithm=SIGNATURE_ALGORITHM)
    reference = etree.SubElement(signed_info, ds("Reference"), URI=REFERENCE_URI)
    transforms = etree.SubElement(reference, ds("Transforms"))
    etree.SubElement(transforms, ds("Transform"), Algorithm=C14N_ALGORITHM)
    etree.SubElement(reference, ds("DigestMethod"), Algorithm=DIGEST_ALGORITHM)
    etree.SubElement(reference, ds("DigestValue")).text = base64.b64encode(
        authenticated_digest(root)
    ).decode()

    signed_info_digest = hashlib.sha256(canonicalize(signed_info)).digest()
    signature = KeyService.sign(private_key, signed_info_digest)
    etree.SubElement(auth_signature, ds("SignatureValue")).text = base64.b64encode(
        signature
    ).decode()
    return auth_signature


def verify(root: etree._Element, public_key: RSAPublicKey) -> None:
    """Check the AuthSignature of `root` against the signer's public key.

    Raises:
        MalformedResponseError: If the signature elements are missing
        CryptoError: If the digest or the signature does not match
    """
    signed_info = root.find(f"{h004('AuthSignature')}/{ds('SignedInfo')}")
    signature_value = root.findtext(f"{h004('AuthSignature')}/{ds('SignatureValue')}")
    digest_value = (
        signed_info.findtext(f"{ds('Reference')}/{ds('DigestValue')}")
        if signed_info is not None
        else None
    )
    if signed_info is None or not signature_value or not digest_value:
        msg = "Response carries no complete AuthSignature"
        raise MalformedResponseError(msg)

    try:
        expected_digest = base64.b64decode(digest_value, validate=True)
        signature = base64.b64decode("".join(signature_value.split()), validate=True)
    except ValueError as err:
        msg = "AuthSignature values are not valid base64"
        raise MalformedResponseError(msg) from err

    if not hmac.compare_digest(expected_digest, authenticated_digest(root)):
        msg = "Digest of the authenticated elements does not match"
        raise CryptoError(msg)
    signed_info_digest = hashlib.sha256(canonicalize(signed_info)).digest()
    if not KeyService.verify(public_key, signed_info_digest, signature):
        msg = "AuthSignature does not verify with the bank authentication key"
        raise CryptoError(msg)
