"""Infrastructure layer: configuration loading and key ring files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ebicsclient.client.domain.entities import KeyRing
from ebicsclient.client.infrastructure.storage import KeyRingStorage
from ebicsclient.common import Configurable, setup_logger
from ebicsclient.common.config import Config
from ebicsclient.common.models import Bank, ClientConfig, User

if TYPE_CHECKING:
    from ebicsclient.common.interfaces import IKeyRingStorage

SETTINGS = [
    "url",
    "host_id",
    "partner_id",
    "user_id",
    "certified",
    "independent_hia",
    "key_size",
    "log_level",
    "http_timeout",
    "verify_tls",
    "keyring_path",
    "keyring_passphrase",
]


class ConfigLoader(Configurable):
    """Merges client overrides over the environment-driven defaults."""

    url: str | None
    host_id: str | None
    partner_id: str | None
    user_id: str | None
    certified: bool
    independent_hia: bool
    key_size: int
    log_level: int
    http_timeout: float
    verify_tls: bool
    keyring_path: Path
    keyring_passphrase: str | None

    def __init__(
        self,
        client_config: ClientConfig | None = None,
        storage: IKeyRingStorage | None = None,
    ):
        self.config: Config = Config()
        client_config = client_config or ClientConfig()
        self.apply_overrides(client_config.model_dump(), self.config, SETTINGS)
        self.keyring_path = Path(self.keyring_path)
        self.storage: IKeyRingStorage = storage or KeyRingStorage()

        # Setup logging
        self.logger = logging.getLogger("ebicsclient")
        setup_logger(self.logger, self.log_level)

    def _require(self, *names: str) -> None:
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            env = ", ".join(f"EBICS_{name.upper()}" for name in missing)
            msg = f"Missing client settings: {', '.join(missing)} (set {env})"
            raise ValueError(msg)

    def load_bank(self) -> Bank:
        self._require("url", "host_id")
        return Bank(host_id=self.host_id, url=self.url, is_certified=self.certified)

    def load_user(self) -> User:
        self._require("partner_id", "user_id")
        return User(partner_id=self.partner_id, user_id=self.user_id)

    def load_key_ring(self) -> KeyRing:
        """Load the key ring file, or start an empty ring if there is none."""
        key_ring = self.storage.load_file(self.keyring_path, self.keyring_passphrase)
        self.logger.debug(
            "Key ring %s loaded in state %s", self.keyring_path, key_ring.state.value
        )
        return key_ring

    def save_key_ring(self, key_ring: KeyRing) -> None:
        self.storage.save(self.keyring_path, key_ring)
