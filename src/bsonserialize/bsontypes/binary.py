from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from bsonserialize._errors import IntegerRangeError, InvalidArgumentError
from bsonserialize.constants import UINT8_RANGE, BinarySubtype

if TYPE_CHECKING:
    from typing_extensions import Buffer


@dataclass(init=False, eq=False)
class Binary:
    """Binary data with a subtype describing its contents.

    `Binary` is an append-only buffer: data can be added with `put()` and
    `extend()`, but existing bytes cannot be changed. Plain `bytes`,
    `bytearray` and `memoryview` values serialize as `Binary` with the
    `Generic` subtype.

    Parameters
    ----------
    data
        The initial content.
    subtype
        A `BinarySubtype` or any other int from 0 to 255. Subtypes from `0x80`
        up are user-defined.

    >>> b = Binary(b"ab", BinarySubtype.UserDefined)
    >>> b.put(0x63)
    >>> b.extend(b"de")
    >>> b
    Binary(b'abcde', subtype=128)
    """

    _data: bytearray
    subtype: int

    def __init__(
        self, data: Buffer = b"", subtype: BinarySubtype | int = BinarySubtype.Generic
    ) -> None:
        if not isinstance(subtype, int) or isinstance(subtype, bool):
            raise InvalidArgumentError(
                f"Binary subtype must be an int, not {type(subtype).__name__}"
            )
        if subtype not in UINT8_RANGE:
            raise InvalidArgumentError(
                f"Binary subtype must be in {UINT8_RANGE}: subtype={subtype}"
            )
        try:
            self._data = bytearray(memoryview(data))
        except TypeError as e:
            raise InvalidArgumentError(
                f"Binary data must be a bytes-like object, not {type(data).__name__}"
            ) from e
        self.subtype = subtype

    @property
    def data(self) -> bytes:
        """A copy of the current content."""
        return bytes(self._data)

    def put(self, byte: int) -> None:
        """Append a single byte."""
        if not isinstance(byte, int) or isinstance(byte, bool):
            raise InvalidArgumentError(
                f"Binary byte must be an int, not {type(byte).__name__}"
            )
        if byte not in UINT8_RANGE:
            raise IntegerRangeError(f"Binary byte must be in {UINT8_RANGE}", value=byte)
        self._data.append(byte)

    def extend(self, data: Buffer) -> None:
        """Append a sequence of bytes."""
        try:
            view = memoryview(data)
        except TypeError as e:
            raise InvalidArgumentError(
                f"Binary data must be a bytes-like object, not {type(data).__name__}"
            ) from e
        self._data.extend(view)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Binary):
            return self.subtype == other.subtype and self._data == other._data
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Binary({bytes(self._data)!r}, subtype={int(self.subtype)})"
