"""Infrastructure layer: HTTP transport to the bank server.
"""

from __future__ import annotations

import logging

import requests

from ebicsclient.common.config import Config
from ebicsclient.common.exceptions import TransportError

HTTP_OK = 200
CONTENT_TYPE = "text/xml; charset=UTF-8"

logger = logging.getLogger(__name__)


class HttpTransport:
    """Posts XML to the bank and hands back whatever body it answers with.

    The EBICS return code lives inside the XML, so a non-200 status with a
    body is still protocol payload. Nothing is retried here.
    """

    def __init__(
        self,
        timeout: float | None = None,
        verify_tls: bool | None = None,
        session: requests.Session | None = None,
    ):
        config = Config()
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT
        self.verify_tls = verify_tls if verify_tls is not None else config.VERIFY_TLS
        self.session = session or requests.Session()

    def post(self, url: str, content: bytes) -> bytes:
        logger.debug("POST %s (%d bytes)", url, len(content))
        try:
            r = self.session.post(
                url,
                data=content,
                headers={"Content-Type": CONTENT_TYPE},
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except requests.RequestException as err:
            msg = f"Request to {url} failed: {err}"
            raise TransportError(msg, url) from err

        if not r.content:
            msg = f"Empty response from {url} (HTTP {r.status_code})"
            raise TransportError(msg, url)
        if r.status_code != HTTP_OK:
            logger.warning("Bank answered HTTP %s, reading body anyway", r.status_code)
        return r.content
