"""Common cryptographic utilities.

Raw RSA primitives with the H004 choices baked in: PKCS#1 v1.5 signatures
over SHA-256 digests (X002) and PKCS#1 v1.5 key transport (E002). Nothing
here knows about XML.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils

from ebicsclient.common.config import Config
from ebicsclient.common.exceptions import CryptoError, KeyGenerationError

PUBLIC_EXPONENT = 65537
TRANSACTION_KEY_SIZE = 16

_CONFIG = Config()
KEY_VERSIONS = {
    "A": _CONFIG.SIGNATURE_VERSION,
    "E": _CONFIG.ENCRYPTION_VERSION,
    "X": _CONFIG.AUTHENTICATION_VERSION,
}


class Role(str, Enum):
    """Key role, valued by the EBICS letter naming the key."""

    SIGNATURE = "A"
    ENCRYPTION = "E"
    AUTHENTICATION = "X"

    @property
    def version(self) -> str:
        return KEY_VERSIONS[self.value]


@dataclass(frozen=True, eq=False)
class KeyPair:
    """An RSA key pair bound to one role."""

    role: Role
    private_key: rsa.RSAPrivateKey
    bit_length: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()


def int_to_bytes(value: int) -> bytes:
    """Big-endian unsigned encoding without leading zero bytes."""
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


class KeyService:
    """Key generation and raw sign/verify/encrypt/decrypt primitives."""

    @staticmethod
    def generate_key_pair(role: Role, bit_length: int | None = None) -> KeyPair:
        """Generate a fresh RSA key pair for the given role."""
        config = Config()
        bit_length = bit_length or config.KEY_SIZE
        if not config.MIN_KEY_SIZE <= bit_length <= config.MAX_KEY_SIZE:
            msg = (
                f"Key size {bit_length} outside of "
                f"[{config.MIN_KEY_SIZE}, {config.MAX_KEY_SIZE}]"
            )
            raise KeyGenerationError(msg)
        try:
            private_key = rsa.generate_private_key(
                public_exponent=PUBLIC_EXPONENT, key_size=bit_length
            )
        except (ValueError, UnsupportedAlgorithm) as err:
            msg = f"Unable to generate {role.name.lower()} key: {err}"
            raise KeyGenerationError(msg) from err
        return KeyPair(role=role, private_key=private_key, bit_length=bit_length)

    @staticmethod
    def sign(private_key: rsa.RSAPrivateKey, digest: bytes) -> bytes:
        """Sign a SHA-256 digest with RSASSA-PKCS1-v1_5."""
        try:
            return private_key.sign(
                digest, padding.PKCS1v15(), utils.Prehashed(hashes.SHA256())
            )
        except (ValueError, TypeError) as err:
            msg = f"Signing failed: {err}"
            raise CryptoError(msg) from err

    @staticmethod
    def verify(public_key: rsa.RSAPublicKey, digest: bytes, signature: bytes) -> bool:
        """Check a signature produced by `sign`."""
        try:
            public_key.verify(
                signature,
                digest,
                padding.PKCS1v15(),
                utils.Prehashed(hashes.SHA256()),
            )
        except (InvalidSignature, ValueError):
            return False
        return True

    @staticmethod
    def encrypt(public_key: rsa.RSAPublicKey, plaintext: bytes) -> bytes:
        """Encrypt a short plaintext (a transaction key) with RSAES-PKCS1-v1_5."""
        try:
            return public_key.encrypt(plaintext, padding.PKCS1v15())
        except ValueError as err:
            msg = f"Encryption failed: {err}"
            raise CryptoError(msg) from err

    @staticmethod
    def decrypt(
        private_key: rsa.RSAPrivateKey, ciphertext: bytes, length: int = TRANSACTION_KEY_SIZE
    ) -> bytes:
        """Decrypt an RSAES-PKCS1-v1_5 ciphertext.

        Args:
            private_key: The recipient's private key
            ciphertext: The encrypted bytes
            length: Expected plaintext size, a transaction key by default. Any
                other size is treated as a key mismatch, since PKCS#1 v1.5
                decryption under a wrong key yields random bytes

        Raises:
            CryptoError: On malformed ciphertext or key mismatch
        """
        if len(ciphertext) != (private_key.key_size + 7) // 8:
            msg = "Ciphertext size does not match the key size"
            raise CryptoError(msg)
        try:
            plaintext = private_key.decrypt(ciphertext, padding.PKCS1v15())
        except ValueError as err:
            msg = "Decryption failed"
            raise CryptoError(msg) from err
        if len(plaintext) != length:
            msg = f"Decrypted {len(plaintext)} bytes, expected {length}"
            raise CryptoError(msg)
        return plaintext

    @staticmethod
    def public_key_digest(public_key: rsa.RSAPublicKey) -> bytes:
        """SHA-256 over "<exponent hex> <modulus hex>" (lower-case, no leading zeros)."""
        numbers = public_key.public_numbers()
        return hashlib.sha256(f"{numbers.e:x} {numbers.n:x}".encode()).digest()
