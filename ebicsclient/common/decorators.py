"""Key ring guards for client operations.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from ebicsclient.client.domain.entities import KeyRingState

from ebicsclient.common.exceptions import InvalidStateError

logger = logging.getLogger(__name__)


def requires_state(
    *states: KeyRingState,
    key_ring: str = "key_ring",
    extra_states: str | None = None,
) -> Callable:
    """Decorator that runs a method only when the key ring is in one of `states`.

    The check happens before the method body, so a refused call never
    reaches the network.

    Args:
        states: Accepted key ring states
        key_ring: Attribute name of the key ring on `self`
        extra_states: Optional attribute name of a tuple of states on `self`
            accepted in addition to `states` (deployment dependent)

    Returns:
        Decorated method raising InvalidStateError in any other state
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            accepted = states
            if extra_states is not None:
                accepted += tuple(getattr(self, extra_states, ()))
            current = getattr(self, key_ring).state
            if current not in accepted:
                expected = ", ".join(state.value for state in accepted)
                msg = (
                    f"{func.__name__} requires key ring state {expected}, "
                    f"current state is {current.value}"
                )
                logger.warning(msg)
                raise InvalidStateError(msg)
            return func(self, *args, **kwargs)

        return wrapper

    return decorator


def serialized(lock: str = "_lock") -> Callable:
    """Decorator that runs a method while holding the lock stored on `self`.

    Args:
        lock: Attribute name of a threading.Lock on `self`

    Returns:
        Decorated method
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            with getattr(self, lock):
                return func(self, *args, **kwargs)

        return wrapper

    return decorator
