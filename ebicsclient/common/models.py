"""
Pydantic models for bank, subscriber and client configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

EBICS_ID_PATTERN = r"^[a-zA-Z0-9,=]+$"


class Bank(BaseModel):
    host_id: str = Field(min_length=1, max_length=35, pattern=EBICS_ID_PATTERN)
    url: str
    is_certified: bool = False
    # Hex SHA-256 key hashes from the bank's initialisation letter.
    authentication_digest: str | None = None
    encryption_digest: str | None = None

    @field_validator("authentication_digest", "encryption_digest")
    @classmethod
    def normalize_digest(cls, value: str | None) -> str | None:
        if value is None:
            return None
        digest = "".join(value.split()).upper()
        if len(digest) != 64:  # noqa: PLR2004
            msg = f"Expected a 32 byte hex digest, got {len(digest) // 2} bytes"
            raise ValueError(msg)
        bytes.fromhex(digest)
        return digest


class User(BaseModel):
    partner_id: str = Field(min_length=1, max_length=35, pattern=EBICS_ID_PATTERN)
    user_id: str = Field(min_length=1, max_length=35, pattern=EBICS_ID_PATTERN)
    system_id: str | None = None


class BankParameters(BaseModel):
    """Decoded HPD order data."""

    host_id: str
    institute: str | None = None
    urls: list[str] = Field(default_factory=list)
    protocol_versions: list[str] = Field(default_factory=list)
    recovery_supported: bool = False
    prevalidation_supported: bool = False
    x509_persistent: bool = False
    client_data_download_supported: bool = False
    downloadable_order_data_supported: bool = False


class ClientConfig(BaseModel):
    url: str | None = None
    host_id: str | None = None
    partner_id: str | None = None
    user_id: str | None = None
    certified: bool | None = None
    independent_hia: bool | None = None
    key_size: int | None = None
    log_level: int | None = None
    http_timeout: float | None = None
    verify_tls: bool | None = None
    keyring_path: Path | None = None
    keyring_passphrase: str | None = None
