"""Domain layer: key ring, certificates and key material.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import serialization

from ebicsclient.common.crypto import KeyPair, KeyService, Role, int_to_bytes
from ebicsclient.common.exceptions import InvalidStateError

if TYPE_CHECKING:
    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

BANK_ROLES = (Role.ENCRYPTION, Role.AUTHENTICATION)


@dataclass(frozen=True, eq=False)
class Certificate:
    """Public half of a key, optionally wrapped in X.509 or a signing request."""

    role: Role
    public_key: RSAPublicKey = field(compare=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    x509_certificate: x509.Certificate | None = None
    signing_request: x509.CertificateSigningRequest | None = None

    @property
    def modulus(self) -> bytes:
        return int_to_bytes(self.public_key.public_numbers().n)

    @property
    def exponent(self) -> bytes:
        return int_to_bytes(self.public_key.public_numbers().e)

    @property
    def digest(self) -> bytes:
        """The H004 public key hash, as sent in BankPubKeyDigests."""
        return KeyService.public_key_digest(self.public_key)

    @property
    def der(self) -> bytes | None:
        if self.x509_certificate is None:
            return None
        return self.x509_certificate.public_bytes(serialization.Encoding.DER)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Certificate):
            return NotImplemented
        return (
            self.role == other.role
            and self.public_key.public_numbers() == other.public_key.public_numbers()
            and self.created_at == other.created_at
            and self.der == other.der
        )

    def __hash__(self) -> int:
        return hash((self.role, self.digest))


@dataclass(frozen=True)
class KeyMaterial:
    """A participant certificate together with the key pair it wraps."""

    certificate: Certificate
    key_pair: KeyPair = field(compare=False)

    def __post_init__(self) -> None:
        if self.certificate.role != self.key_pair.role:
            msg = (
                f"Certificate role {self.certificate.role.name} does not match "
                f"key pair role {self.key_pair.role.name}"
            )
            raise ValueError(msg)
        key_numbers = self.key_pair.public_key.public_numbers()
        if key_numbers != self.certificate.public_key.public_numbers():
            msg = "The certificate and the key pair do not match each other"
            raise ValueError(msg)


class KeyRingState(str, Enum):
    EMPTY = "Empty"
    SIGNATURE_PENDING = "SignaturePending"
    KEYS_SUBMITTED = "KeysSubmitted"
    ACTIVE = "Active"


@dataclass
class KeyRing:
    """Aggregate root holding participant and bank key material.

    Participant entries are only added by a successful handshake step and
    never replaced; bank entries are only added after participant E and X
    keys are known to the bank.
    """

    passphrase: str | None = None
    participant: dict[Role, KeyMaterial] = field(default_factory=dict, init=False)
    bank: dict[Role, Certificate] = field(default_factory=dict, init=False)

    @property
    def state(self) -> KeyRingState:
        if all(role in self.bank for role in BANK_ROLES):
            return KeyRingState.ACTIVE
        if all(role in self.participant for role in BANK_ROLES):
            return KeyRingState.KEYS_SUBMITTED
        if Role.SIGNATURE in self.participant:
            return KeyRingState.SIGNATURE_PENDING
        return KeyRingState.EMPTY

    def participant_material(self, role: Role) -> KeyMaterial:
        try:
            return self.participant[role]
        except KeyError:
            msg = f"No participant {role.name.lower()} key in the key ring"
            raise InvalidStateError(msg) from None

    def participant_certificate(self, role: Role) -> Certificate:
        return self.participant_material(role).certificate

    def bank_certificate(self, role: Role) -> Certificate:
        try:
            return self.bank[role]
        except KeyError:
            msg = f"No bank {role.name.lower()} key in the key ring"
            raise InvalidStateError(msg) from None

    def set_participant_certificate(self, role: Role, material: KeyMaterial) -> None:
        if material.certificate.role != role:
            msg = f"Cannot store a {material.certificate.role.name} key as {role.name}"
            raise InvalidStateError(msg)
        if role in self.participant:
            msg = f"Participant {role.name.lower()} key is already set"
            raise InvalidStateError(msg)
        self.participant[role] = material

    def _check_bank_certificate(self, role: Role, certificate: Certificate) -> None:
        if role not in BANK_ROLES:
            msg = f"The bank holds no {role.name.lower()} key"
            raise InvalidStateError(msg)
        if certificate.role != role:
            msg = f"Cannot store a {certificate.role.name} key as {role.name}"
            raise InvalidStateError(msg)
        if not all(r in self.participant for r in Role):
            msg = "Bank keys can only be adopted after all participant keys were submitted"
            raise InvalidStateError(msg)
        if role in self.bank:
            msg = f"Bank {role.name.lower()} key is already set"
            raise InvalidStateError(msg)

    def set_bank_certificate(self, role: Role, certificate: Certificate) -> None:
        self._check_bank_certificate(role, certificate)
        self.bank[role] = certificate

    def set_bank_certificates(self, certificates: dict[Role, Certificate]) -> None:
        """Adopt several bank keys at once, or none of them."""
        for role, certificate in certificates.items():
            self._check_bank_certificate(role, certificate)
        self.bank.update(certificates)

    def letter(self) -> dict[Role, str]:
        """Hex key hashes of the participant keys, for the initialisation letter."""
        return {
            role: base64.b16encode(material.certificate.digest).decode()
            for role, material in sorted(self.participant.items(), key=lambda i: i[0].value)
        }
