"""Domain layer: request, response and transaction value objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ebicsclient.common.config import Config

if TYPE_CHECKING:
    from lxml import etree

SUCCESS_CODE = Config().SUCCESS_CODE


class OrderType(str, Enum):
    HEV = "HEV"
    INI = "INI"
    HIA = "HIA"
    HPB = "HPB"
    HPD = "HPD"
    HAA = "HAA"
    STA = "STA"
    VMK = "VMK"


STATEMENT_ORDER_TYPES = (OrderType.STA, OrderType.VMK)


@dataclass(frozen=True)
class EncryptedOrderData:
    """Hybrid-encrypted order data as carried in a DataTransfer element."""

    transaction_key: bytes
    order_data: bytes
    key_digest: bytes


@dataclass(frozen=True)
class Request:
    order_type: OrderType
    content: bytes


@dataclass
class Transaction:
    """One unit of business data extracted from a response."""

    order_type: OrderType
    transaction_id: str | None = None
    order_data: bytes | None = None
    document: Any = None


@dataclass
class Response:
    content: bytes
    document: etree._Element = field(repr=False)
    technical_code: str | None = None
    business_code: str | None = None
    report_text: str | None = None
    transaction_id: str | None = None
    encrypted_order_data: EncryptedOrderData | None = None
    protocol_versions: dict[str, str] = field(default_factory=dict)
    order_data: bytes | None = None
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def code(self) -> str:
        """First failing return code, technical before business."""
        for code in (self.technical_code, self.business_code):
            if code is not None and code != SUCCESS_CODE:
                return code
        return SUCCESS_CODE

    @property
    def is_success(self) -> bool:
        return self.code == SUCCESS_CODE
