# Common utilities
from ebicsclient.common.crypto import KeyPair as KeyPair
from ebicsclient.common.crypto import KeyService as KeyService
from ebicsclient.common.crypto import Role as Role
from ebicsclient.common.logging_utils import setup_logger as setup_logger
from ebicsclient.common.mixins import Configurable as Configurable

__all__ = ["Configurable", "KeyPair", "KeyService", "Role", "setup_logger"]
