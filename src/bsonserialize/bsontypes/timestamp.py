from __future__ import annotations

from dataclasses import dataclass

from bsonserialize._errors import IntegerRangeError, InvalidArgumentError
from bsonserialize.constants import UINT32_RANGE


@dataclass(frozen=True, order=True, slots=True)
class Timestamp:
    """The internal BSON timestamp used by replication, not a general date.

    Timestamps order by `seconds`, then by `increment`. On the wire the
    increment is written before the seconds.

    >>> Timestamp(100, 2) < Timestamp(101, 1)
    True
    """

    seconds: int
    """Seconds since the Unix epoch."""
    increment: int
    """Orders operations within the same second."""

    def __post_init__(self) -> None:
        for name in ("seconds", "increment"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidArgumentError(
                    f"Timestamp {name} must be an int, not {type(value).__name__}"
                )
            if value not in UINT32_RANGE:
                raise IntegerRangeError(
                    f"Timestamp {name} must be in {UINT32_RANGE}", value=value
                )
