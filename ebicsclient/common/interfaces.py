"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from ebicsclient.client.domain.entities import KeyRing


class ITransport(Protocol):
    """Protocol for the HTTP collaborator.

    Any body the bank answers with is returned, whatever the HTTP status;
    network failures raise `TransportError`.
    """

    def post(self, url: str, content: bytes) -> bytes: ...


class IKeyRingStorage(Protocol):
    """Protocol for at-rest key ring persistence."""

    def dump(self, key_ring: KeyRing) -> bytes: ...

    def load(self, blob: bytes, passphrase: str | None) -> KeyRing: ...

    def save(self, file_path: Path, key_ring: KeyRing) -> None: ...

    def load_file(self, file_path: Path, passphrase: str | None) -> KeyRing: ...
