from __future__ import annotations

from bsonserialize._errors import IntegerRangeError
from bsonserialize.constants import INT64_RANGE


class Int64(int):
    """An `int` that is always written as a 64-bit BSON integer.

    Plain `int` values use the 32-bit representation when they fit in it.
    Decoded 64-bit integers are `Int64`, so re-serializing a decoded document
    produces the same bytes.

    >>> Int64(5) == 5
    True
    """

    __slots__ = ()

    def __new__(cls, value: int = 0) -> Int64:
        obj = super().__new__(cls, value)
        if obj not in INT64_RANGE:
            raise IntegerRangeError(
                f"Int64 value must be in {INT64_RANGE}", value=int(obj)
            )
        return obj

    def __repr__(self) -> str:
        return f"Int64({int(self)})"
