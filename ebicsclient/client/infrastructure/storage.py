"""
Key ring persistence utilities.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime
from pathlib import Path  # noqa: TC003
from typing import Any, cast

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from ebicsclient.client.domain.certificates import CertificateFactory
from ebicsclient.client.domain.entities import Certificate, KeyMaterial, KeyRing
from ebicsclient.common.crypto import KeyPair, Role
from ebicsclient.common.exceptions import CryptoError

FORMAT_VERSION = 1


class KeyRingStorage:
    """Serializes a key ring to an opaque JSON blob and back.

    Private keys are stored as PKCS#8 PEM, encrypted with the key ring
    passphrase when one is set.
    """

    @staticmethod
    def _b64(value: bytes | None) -> str | None:
        return base64.b64encode(value).decode() if value is not None else None

    @staticmethod
    def _serialize_material(material: KeyMaterial, passphrase: str | None) -> dict[str, Any]:
        key_pair = material.key_pair
        certificate = material.certificate
        encryption: serialization.KeySerializationEncryption = (
            serialization.BestAvailableEncryption(passphrase.encode())
            if passphrase
            else serialization.NoEncryption()
        )
        request = certificate.signing_request
        return {
            "private_key": key_pair.private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=encryption,
            ).decode(),
            "bit_length": key_pair.bit_length,
            "key_created_at": key_pair.created_at.isoformat(),
            "created_at": certificate.created_at.isoformat(),
            "certificate": KeyRingStorage._b64(certificate.der),
            "signing_request": KeyRingStorage._b64(
                request.public_bytes(serialization.Encoding.DER) if request else None
            ),
        }

    @staticmethod
    def _deserialize_material(
        role: Role, data: dict[str, Any], passphrase: str | None
    ) -> KeyMaterial:
        try:
            private_key = cast(
                "RSAPrivateKey",
                serialization.load_pem_private_key(
                    data["private_key"].encode(),
                    passphrase.encode() if passphrase else None,
                ),
            )
        except (ValueError, TypeError) as err:
            msg = f"Cannot load the participant {role.name.lower()} key: {err}"
            raise CryptoError(msg) from err
        key_pair = KeyPair(
            role=role,
            private_key=private_key,
            bit_length=data["bit_length"],
            created_at=datetime.fromisoformat(data["key_created_at"]),
        )
        der = data.get("certificate")
        request = data.get("signing_request")
        certificate = Certificate(
            role=role,
            public_key=private_key.public_key(),
            created_at=datetime.fromisoformat(data["created_at"]),
            x509_certificate=x509.load_der_x509_certificate(base64.b64decode(der)) if der else None,
            signing_request=x509.load_der_x509_csr(base64.b64decode(request)) if request else None,
        )
        return KeyMaterial(certificate=certificate, key_pair=key_pair)

    @staticmethod
    def _serialize_certificate(certificate: Certificate) -> dict[str, Any]:
        return {
            "modulus": KeyRingStorage._b64(certificate.modulus),
            "exponent": KeyRingStorage._b64(certificate.exponent),
            "certificate": KeyRingStorage._b64(certificate.der),
            "created_at": certificate.created_at.isoformat(),
        }

    @staticmethod
    def _deserialize_certificate(role: Role, data: dict[str, Any]) -> Certificate:
        der = data.get("certificate")
        return CertificateFactory.from_public_numbers(
            role,
            modulus=int.from_bytes(base64.b64decode(data["modulus"]), "big"),
            exponent=int.from_bytes(base64.b64decode(data["exponent"]), "big"),
            der=base64.b64decode(der) if der else None,
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    @staticmethod
    def dump(key_ring: KeyRing) -> bytes:
        """Serialize a key ring."""
        data = {
            "version": FORMAT_VERSION,
            "participant": {
                role.value: KeyRingStorage._serialize_material(material, key_ring.passphrase)
                for role, material in key_ring.participant.items()
            },
            "bank": {
                role.value: KeyRingStorage._serialize_certificate(certificate)
                for role, certificate in key_ring.bank.items()
            },
        }
        return json.dumps(data, indent=2, sort_keys=True).encode()

    @staticmethod
    def load(blob: bytes, passphrase: str | None = None) -> KeyRing:
        """Restore a key ring, replaying the guarded setters in handshake order."""
        try:
            data = json.loads(blob)
        except json.JSONDecodeError as err:
            msg = f"Key ring blob is not valid JSON: {err}"
            raise ValueError(msg) from err
        if data.get("version") != FORMAT_VERSION:
            msg = f"Unsupported key ring format version {data.get('version')}"
            raise ValueError(msg)

        key_ring = KeyRing(passphrase=passphrase)
        for role_value, material in sorted(data.get("participant", {}).items()):
            role = Role(role_value)
            key_ring.set_participant_certificate(
                role, KeyRingStorage._deserialize_material(role, material, passphrase)
            )
        for role_value, certificate in sorted(data.get("bank", {}).items()):
            role = Role(role_value)
            key_ring.set_bank_certificate(
                role, KeyRingStorage._deserialize_certificate(role, certificate)
            )
        return key_ring

    @staticmethod
    def save(file_path: Path, key_ring: KeyRing) -> None:
        """Save a key ring to file."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with file_path.open("wb") as f:
            f.write(KeyRingStorage.dump(key_ring))

    @staticmethod
    def load_file(file_path: Path, passphrase: str | None = None) -> KeyRing:
        """Load a key ring from file; a missing file gives an empty ring."""
        try:
            with file_path.open("rb") as f:
                return KeyRingStorage.load(f.read(), passphrase)
        except FileNotFoundError:
            return KeyRing(passphrase=passphrase)
