from unittest.mock import Mock

import pytest
import requests

from ebicsclient.client.infrastructure.transport import CONTENT_TYPE, HttpTransport
from ebicsclient.common.exceptions import TransportError

URL = "https://bank.example/ebics"


def make_session(status_code: int = 200, content: bytes = b"<ok/>") -> Mock:
    session = Mock(spec=requests.Session)
    session.post.return_value = Mock(status_code=status_code, content=content)
    return session


def test_post_returns_body() -> None:
    session = make_session()
    transport = HttpTransport(timeout=5, verify_tls=False, session=session)

    assert transport.post(URL, b"<request/>") == b"<ok/>"
    session.post.assert_called_once_with(
        URL,
        data=b"<request/>",
        headers={"Content-Type": CONTENT_TYPE},
        timeout=5,
        verify=False,
    )


def test_error_status_with_body_is_returned() -> None:
    transport = HttpTransport(session=make_session(500, b"<error/>"))

    assert transport.post(URL, b"<request/>") == b"<error/>"


def test_empty_body_raises() -> None:
    transport = HttpTransport(session=make_session(502, b""))

    with pytest.raises(TransportError, match="Empty response") as exc_info:
        transport.post(URL, b"<request/>")
    assert exc_info.value.url == URL


def test_network_failure_raises() -> None:
    session = make_session()
    session.post.side_effect = requests.ConnectionError("refused")
    transport = HttpTransport(session=session)

    with pytest.raises(TransportError, match="refused"):
        transport.post(URL, b"<request/>")
