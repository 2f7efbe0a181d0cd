"""Domain layer: certificate construction for participant and bank keys.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from ebicsclient.client.domain.entities import Certificate, KeyMaterial
from ebicsclient.common.config import Config
from ebicsclient.common.crypto import KeyPair, Role


def subject_name(common_name: str, organization: str | None = None) -> x509.Name:
    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if organization:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
    return x509.Name(attributes)


class CertificateFactory:
    """Wraps key pairs into certificates."""

    @staticmethod
    def from_key_pair(
        key_pair: KeyPair,
        certified: bool,  # noqa: FBT001
        subject: x509.Name,
        now: datetime | None = None,
    ) -> KeyMaterial:
        """Build the certificate for a freshly generated participant key.

        A self-signed X.509 certificate is issued unless the deployment is
        certified, in which case only a signing request is produced and the
        bank-side issuance happens out of band.
        """
        now = now or datetime.now(timezone.utc)
        if certified:
            request = (
                x509.CertificateSigningRequestBuilder()
                .subject_name(subject)
                .add_extension(_key_usage(key_pair.role), critical=True)
                .sign(key_pair.private_key, hashes.SHA256())
            )
            certificate = Certificate(
                role=key_pair.role,
                public_key=key_pair.public_key,
                created_at=now,
                signing_request=request,
            )
        else:
            validity = timedelta(days=Config().CERTIFICATE_VALIDITY_DAYS)
            cert = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(subject)
                .public_key(key_pair.public_key)
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + validity)
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .add_extension(_key_usage(key_pair.role), critical=True)
                .sign(key_pair.private_key, hashes.SHA256())
            )
            certificate = Certificate(
                role=key_pair.role,
                public_key=key_pair.public_key,
                created_at=now,
                x509_certificate=cert,
            )
        return KeyMaterial(certificate=certificate, key_pair=key_pair)

    @staticmethod
    def from_public_numbers(
        role: Role,
        modulus: int,
        exponent: int,
        der: bytes | None = None,
        created_at: datetime | None = None,
    ) -> Certificate:
        """Build a public-only certificate, as received from the bank."""
        public_key = rsa.RSAPublicNumbers(exponent, modulus).public_key()
        cert = None
        if der is not None:
            cert = x509.load_der_x509_certificate(der)
            if cert.public_key().public_numbers() != public_key.public_numbers():
                msg = f"X.509 data of the {role.name.lower()} key does not match its RSA key value"
                raise ValueError(msg)
        return Certificate(
            role=role,
            public_key=public_key,
            created_at=created_at or datetime.now(timezone.utc),
            x509_certificate=cert,
        )


def _key_usage(role: Role) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=role is not Role.ENCRYPTION,
        content_commitment=role is Role.SIGNATURE,
        key_encipherment=role is Role.ENCRYPTION,
        data_encipherment=role is Role.ENCRYPTION,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
