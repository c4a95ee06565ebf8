"""The size ceiling that limits how large a serialized document may be."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Final, Protocol, runtime_checkable

from bsonserialize._errors import InvalidArgumentError
from bsonserialize.constants import DEFAULT_MAX_BSON_SIZE

logger = logging.getLogger(__name__)


@runtime_checkable
class SupportsMaxBSONSize(Protocol):
    """An object that knows the size ceiling, such as a database connection
    that has negotiated it with a server."""

    @property
    def max_bson_size(self) -> int: ...


@dataclass(init=False)
class SizeGuard:
    """Holds the largest number of bytes a serialized document may have.

    The ceiling is shared by every encoder using the guard, and updated when a
    connection learns the limit a server accepts. Updates are made under a
    lock. Encoders read the ceiling once at the start of each call, so a
    concurrent update affects later calls only.

    Parameters
    ----------
    max_size
        The initial ceiling in bytes.

    Examples
    --------
    >>> guard = SizeGuard()
    >>> guard.current()
    4194304
    >>> guard.update(16 * 1024 * 1024)
    16777216
    """

    _max_size: int
    _lock: threading.Lock = field(repr=False, compare=False)

    def __init__(self, max_size: int = DEFAULT_MAX_BSON_SIZE) -> None:
        self._lock = threading.Lock()
        self._max_size = _check_max_size(max_size)

    def current(self) -> int:
        """Get the current ceiling in bytes."""
        return self._max_size

    def update(self, new_value: int | SupportsMaxBSONSize) -> int:
        """Replace the ceiling.

        Parameters
        ----------
        new_value
            The new ceiling in bytes, or an object with a `max_bson_size`
            attribute to take the ceiling from.

        Returns
        -------
        :
            The new ceiling.
        """
        if isinstance(new_value, SupportsMaxBSONSize) and not isinstance(
            new_value, int
        ):
            new_value = new_value.max_bson_size
        max_size = _check_max_size(new_value)
        with self._lock:
            previous, self._max_size = self._max_size, max_size
        logger.debug("Max BSON size changed from %d to %d bytes", previous, max_size)
        return max_size


def _check_max_size(value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgumentError(
            f"Max BSON size must be an int, not {type(value).__name__}"
        )
    if value <= 0:
        raise InvalidArgumentError(f"Max BSON size must be positive: {value}")
    return value


default_size_guard: Final = SizeGuard()
"""The process-wide size ceiling used when an encoder is not given a guard."""


def max_size() -> int:
    """Get the process-wide size ceiling in bytes."""
    return default_size_guard.current()


def update_max_size(new_value: int | SupportsMaxBSONSize) -> int:
    """Replace the process-wide size ceiling, and return the new value.

    `new_value` can be an object with a `max_bson_size` attribute, such as a
    connection that has negotiated the ceiling with a server.
    """
    return default_size_guard.update(new_value)
