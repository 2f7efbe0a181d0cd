# EBICS H004 client

from ebicsclient.client.client import EbicsClient
from ebicsclient.client.domain.entities import KeyRing, KeyRingState
from ebicsclient.client.domain.messages import OrderType, Response, Transaction
from ebicsclient.client.infrastructure.storage import KeyRingStorage
from ebicsclient.common.crypto import Role
from ebicsclient.common.exceptions import (
    CryptoError,
    EbicsError,
    InvalidStateError,
    KeyGenerationError,
    MalformedOrderDataError,
    MalformedResponseError,
    TransportError,
)
from ebicsclient.common.models import Bank, ClientConfig, User

__all__ = [
    "Bank",
    "ClientConfig",
    "CryptoError",
    "EbicsClient",
    "EbicsError",
    "InvalidStateError",
    "KeyGenerationError",
    "KeyRing",
    "KeyRingState",
    "KeyRingStorage",
    "MalformedOrderDataError",
    "MalformedResponseError",
    "OrderType",
    "Response",
    "Role",
    "Transaction",
    "TransportError",
    "User",
]
