"""
EBICS client facade: one method per protocol operation.
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Callable

from ebicsclient.client.application.order_data import OrderDataCodec, decode_document
from ebicsclient.client.application.request_builder import DateRange, RequestBuilder
from ebicsclient.client.application.response_parser import (
    parse_response,
    verify_auth_signature,
)
from ebicsclient.client.application.xmlsig import h004
from ebicsclient.client.domain.certificates import CertificateFactory, subject_name
from ebicsclient.client.domain.entities import KeyMaterial, KeyRing, KeyRingState
from ebicsclient.client.domain.messages import (
    STATEMENT_ORDER_TYPES,
    OrderType,
    Request,
    Response,
    Transaction,
)
from ebicsclient.client.infrastructure.config_loader import ConfigLoader
from ebicsclient.client.infrastructure.transport import HttpTransport
from ebicsclient.common.crypto import KeyService, Role
from ebicsclient.common.decorators import requires_state, serialized
from ebicsclient.common.exceptions import (
    CryptoError,
    InvalidStateError,
    MalformedResponseError,
)

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

    from ebicsclient.common.interfaces import ITransport
    from ebicsclient.common.models import Bank, ClientConfig, User

logger = logging.getLogger(__name__)


class EbicsClient:
    """EBICS H004 client bound to one bank, one subscriber and one key ring.

    Handshake operations (INI, HIA, HPB) mutate the key ring and are
    serialized on an internal lock. Business operations only read an
    Active key ring. Failing return codes are returned, not raised.
    """

    def __init__(
        self,
        bank: Bank,
        user: User,
        key_ring: KeyRing,
        transport: ITransport | None = None,
        client_config: ClientConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        entropy: Callable[[int], bytes] | None = None,
    ):
        self.bank = bank
        self.user = user
        self.key_ring = key_ring
        self.settings = ConfigLoader(client_config)
        self.config = self.settings.config
        self.transport: ITransport = transport or HttpTransport(
            timeout=self.settings.http_timeout,
            verify_tls=self.settings.verify_tls,
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.entropy = entropy or os.urandom
        self.builder = RequestBuilder(bank, user, self.config)
        self.subject = subject_name(user.user_id, user.partner_id)

        # HIA may precede INI on banks that accept the key letters in any order
        independent = self.settings.independent_hia
        self.ini_extra_states = (KeyRingState.KEYS_SUBMITTED,) if independent else ()
        self.hia_extra_states = (KeyRingState.EMPTY,) if independent else ()

        self._lock = threading.Lock()

    @property
    def state(self) -> KeyRingState:
        return self.key_ring.state

    def _now(self, timestamp: datetime | None) -> datetime:
        return timestamp if timestamp is not None else self.clock()

    def _exchange(self, request: Request) -> Response:
        logger.info("Sending %s to %s", request.order_type.value, self.bank.host_id)
        content = self.transport.post(self.bank.url, request.content)
        response = parse_response(content)
        logger.info(
            "%s returned %s %s",
            request.order_type.value,
            response.code,
            response.report_text or "",
        )
        return response

    def _generate(self, role: Role, timestamp: datetime) -> KeyMaterial:
        key_pair = KeyService.generate_key_pair(role, self.settings.key_size)
        return CertificateFactory.from_key_pair(
            key_pair, self.bank.is_certified, self.subject, now=timestamp
        )

    def host_probe(self) -> Response:
        """HEV: protocol versions supported by the bank."""
        return self._exchange(self.builder.build_hev())

    @serialized()
    @requires_state(KeyRingState.EMPTY, extra_states="ini_extra_states")
    def submit_signature_key(self, timestamp: datetime | None = None) -> Response:
        """INI: send a fresh signature key, kept only if the bank accepts it."""
        if Role.SIGNATURE in self.key_ring.participant:
            msg = "The signature key was already submitted"
            raise InvalidStateError(msg)
        timestamp = self._now(timestamp)
        signature = self._generate(Role.SIGNATURE, timestamp)
        response = self._exchange(self.builder.build_ini(signature.certificate, timestamp))
        if response.is_success:
            self.key_ring.set_participant_certificate(Role.SIGNATURE, signature)
            logger.info("Signature key committed, key ring is %s", self.state.value)
        return response

    @serialized()
    @requires_state(KeyRingState.SIGNATURE_PENDING, extra_states="hia_extra_states")
    def submit_encryption_auth_keys(self, timestamp: datetime | None = None) -> Response:
        """HIA: send fresh encryption and authentication keys."""
        timestamp = self._now(timestamp)
        encryption = self._generate(Role.ENCRYPTION, timestamp)
        authentication = self._generate(Role.AUTHENTICATION, timestamp)
        request = self.builder.build_hia(
            encryption.certificate, authentication.certificate, timestamp
        )
        response = self._exchange(request)
        if response.is_success:
            self.key_ring.set_participant_certificate(Role.ENCRYPTION, encryption)
            self.key_ring.set_participant_certificate(Role.AUTHENTICATION, authentication)
            logger.info(
                "Encryption and authentication keys committed, key ring is %s",
                self.state.value,
            )
        return response

    def _check_bank_digests(self, certificates: dict) -> None:
        expected = {
            Role.AUTHENTICATION: self.bank.authentication_digest,
            Role.ENCRYPTION: self.bank.encryption_digest,
        }
        for role, digest in expected.items():
            if digest is None:
                continue
            actual = base64.b16encode(certificates[role].digest).decode()
            if actual != digest:
                msg = f"Bank {role.name.lower()} key hash {actual} does not match the letter"
                raise CryptoError(msg)

    @serialized()
    @requires_state(KeyRingState.KEYS_SUBMITTED)
    def retrieve_bank_keys(self, timestamp: datetime | None = None) -> Response:
        """HPB: download the bank's public keys and adopt them."""
        if Role.SIGNATURE not in self.key_ring.participant:
            msg = "The signature key must be submitted before the bank keys are adopted"
            raise InvalidStateError(msg)
        request = self.builder.build_hpb(
            self.key_ring, self._now(timestamp), self.entropy(self.config.NONCE_SIZE)
        )
        response = self._exchange(request)
        if not response.is_success:
            return response

        transaction = self._decrypt(OrderType.HPB, response)
        certificates = transaction.document
        self._check_bank_digests(certificates)
        self.key_ring.set_bank_certificates(
            {role: certificates[role] for role in (Role.AUTHENTICATION, Role.ENCRYPTION)}
        )
        logger.info("Bank keys adopted, key ring is %s", self.state.value)
        return response

    def _decrypt(self, order_type: OrderType, response: Response) -> Transaction:
        if response.encrypted_order_data is None:
            msg = f"Successful {order_type.value} response carries no order data"
            raise MalformedResponseError(msg, response.content)
        order_data = OrderDataCodec.decrypt(
            response.encrypted_order_data,
            self.key_ring.participant_material(Role.ENCRYPTION),
            order_type,
        )
        transaction = Transaction(
            order_type=order_type,
            transaction_id=response.transaction_id,
            order_data=order_data,
            document=decode_document(order_type, order_data),
        )
        response.order_data = order_data
        response.transactions.append(transaction)
        return transaction

    def _bank_authentication_key(self) -> RSAPublicKey:
        return self.key_ring.bank_certificate(Role.AUTHENTICATION).public_key

    def _download(
        self,
        order_type: OrderType,
        timestamp: datetime | None = None,
        date_range: DateRange | None = None,
    ) -> Response:
        request = self.builder.build_download(
            order_type,
            self.key_ring,
            self._now(timestamp),
            self.entropy(self.config.NONCE_SIZE),
            date_range=date_range,
        )
        response = self._exchange(request)
        if response.is_success:
            verify_auth_signature(response, self._bank_authentication_key())
            self._decrypt(order_type, response)
        return response

    @requires_state(KeyRingState.ACTIVE)
    def retrieve_subscriber_info(self, timestamp: datetime | None = None) -> Response:
        """HPD: bank parameters and capabilities."""
        return self._download(OrderType.HPD, timestamp)

    @requires_state(KeyRingState.ACTIVE)
    def list_orders(self, timestamp: datetime | None = None) -> Response:
        """HAA: order types available for download."""
        return self._download(OrderType.HAA, timestamp)

    @requires_state(KeyRingState.ACTIVE)
    def fetch_statement(
        self,
        start: date | None = None,
        end: date | None = None,
        order_type: OrderType = OrderType.STA,
        timestamp: datetime | None = None,
    ) -> Response:
        """STA (MT940 end of day) or VMK (MT942 intraday) statements."""
        if order_type not in STATEMENT_ORDER_TYPES:
            msg = f"{order_type.value} is not a statement order type"
            raise ValueError(msg)
        date_range = DateRange.from_bounds(start, end)
        return self._download(order_type, timestamp, date_range)

    @requires_state(KeyRingState.ACTIVE)
    def send_receipt(
        self,
        transaction: Transaction,
        acknowledged: bool = True,  # noqa: FBT001, FBT002
    ) -> Response:
        """Close a download transaction so the bank stops offering its data."""
        if transaction.transaction_id is None:
            msg = "Transaction has no id to acknowledge"
            raise ValueError(msg)
        request = self.builder.build_receipt(
            transaction.order_type, self.key_ring, transaction.transaction_id, acknowledged
        )
        response = self._exchange(request)
        if response.document.find(h004("AuthSignature")) is not None:
            verify_auth_signature(response, self._bank_authentication_key())
        return response
