"""
Configuration settings for the EBICS client.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


class Config:
    """Central configuration class for all client settings."""

    def __init__(self) -> None:
        # Protocol constants
        self.PROTOCOL_VERSION: str = "H004"
        self.PROTOCOL_REVISION: int = 1
        self.SIGNATURE_VERSION: str = "A006"
        self.ENCRYPTION_VERSION: str = "E002"
        self.AUTHENTICATION_VERSION: str = "X002"
        self.SUCCESS_CODE: str = "000000"
        self.SECURITY_MEDIUM: str = "0000"
        self.UNSECURED_ORDER_ATTRIBUTE: str = "DZNNN"
        self.DOWNLOAD_ORDER_ATTRIBUTE: str = "DZHNN"
        self.PRODUCT_NAME: str = "ebicsclient"
        self.PRODUCT_LANGUAGE: str = "en"

        # Key material
        self.KEY_SIZE: int = 2048
        self.MIN_KEY_SIZE: int = 1536  # H004 lower bound
        self.MAX_KEY_SIZE: int = 4096
        self.CERTIFICATE_VALIDITY_DAYS: int = 365 * 3
        self.NONCE_SIZE: int = 16

        # Bank and subscriber settings
        self.URL: str | None = os.getenv("EBICS_URL")
        self.HOST_ID: str | None = os.getenv("EBICS_HOST_ID")
        self.PARTNER_ID: str | None = os.getenv("EBICS_PARTNER_ID")
        self.USER_ID: str | None = os.getenv("EBICS_USER_ID")
        self.CERTIFIED: bool = os.getenv("EBICS_CERTIFIED", "0") in ("1", "true")
        self.INDEPENDENT_HIA: bool = False

        # Transport
        self.HTTP_TIMEOUT: float = float(os.getenv("EBICS_HTTP_TIMEOUT", "30"))
        self.VERIFY_TLS: bool = os.getenv("EBICS_VERIFY_TLS", "1") not in ("0", "false")

        # File paths
        self.BASE_DIR: Path = Path.cwd()
        self.KEYRING_PATH: Path = Path(
            os.getenv("EBICS_KEYRING_PATH", str(self.BASE_DIR / "keyring.json"))
        )
        self.KEYRING_PASSPHRASE: str | None = os.getenv("EBICS_KEYRING_PASSPHRASE")

        # Logging
        self.LOG_LEVEL: int = getattr(
            logging, os.getenv("EBICS_LOG_LEVEL", "INFO").upper(), logging.INFO
        )
