"""
Custom exceptions for the EBICS client.
"""

from __future__ import annotations


class EbicsError(Exception):
    """Base exception for all client failures."""


class KeyGenerationError(EbicsError):
    """Exception for key generation failures (entropy or parameters)."""


class CryptoError(EbicsError):
    """Exception for sign/verify/encrypt/decrypt primitive failures."""


class MalformedResponseError(EbicsError):
    """Exception for bank responses that violate the expected structure."""

    def __init__(self, message: str, content: bytes | None = None) -> None:
        super().__init__(message)
        self.content = content


class MalformedOrderDataError(EbicsError):
    """Exception for decrypted order data that does not match its schema."""

    def __init__(self, message: str, order_type: str | None = None) -> None:
        super().__init__(message)
        self.order_type = order_type


class InvalidStateError(EbicsError):
    """Exception for operations the key ring state does not permit."""


class TransportError(EbicsError):
    """Exception for network or HTTP-layer failures."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url
