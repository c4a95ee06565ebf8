"""Constant values related to the BSON format."""

from __future__ import annotations

import operator
import re
from collections.abc import Mapping
from enum import IntEnum, IntFlag
from functools import lru_cache, reduce
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from bsonserialize._errors import InvalidArgumentError

if TYPE_CHECKING:
    from typing_extensions import Self

INT32_RANGE: Final = range(-(2**31), 2**31)
INT64_RANGE: Final = range(-(2**63), 2**63)
UINT32_RANGE: Final = range(0, 2**32)
UINT8_RANGE: Final = range(0, 2**8)

DEFAULT_MAX_BSON_SIZE: Final = 4 * 1024 * 1024
"""The size ceiling in bytes used until a connection negotiates another."""

MIN_DOCUMENT_SIZE: Final = 5
"""An empty document: the int32 length header and the trailing NUL."""

MAX_NESTING_DEPTH: Final = 100
"""The most documents and arrays that may be nested inside each other,
counting the top-level document."""

PRIMARY_KEY: Final = "_id"


class BSONType(IntEnum):
    """1-byte tags used to identify the type of an element's value.

    Notes
    -----
    These tags are defined by the [BSON specification](https://bsonspec.org/spec.html).
    """

    # 8 bytes (64-bit IEEE 754-2008 binary floating point)
    Double = 0x01
    # int32 byte count (including NUL), UTF-8 bytes, NUL
    String = 0x02
    # Embedded document
    Document = 0x03
    # Embedded document with keys "0", "1", ...
    Array = 0x04
    # int32 byte count, subtype byte, bytes
    Binary = 0x05
    # Deprecated. No data.
    Undefined = 0x06
    # 12 bytes
    ObjectId = 0x07
    # 0x00 false, 0x01 true
    Boolean = 0x08
    # int64 milliseconds since the Unix epoch
    UTCDatetime = 0x09
    # No data.
    Null = 0x0A
    # cstring pattern, cstring flags
    Regex = 0x0B
    # Deprecated. string namespace, 12 byte ObjectId
    DBPointer = 0x0C
    # string
    JavaScript = 0x0D
    # Deprecated. string
    Symbol = 0x0E
    # int32 total byte count, string, document
    JavaScriptWithScope = 0x0F
    # 4 bytes
    Int32 = 0x10
    # uint32 increment, uint32 seconds
    Timestamp = 0x11
    # 8 bytes
    Int64 = 0x12
    # No data.
    MaxKey = 0x7F
    # No data.
    MinKey = 0xFF

    @classmethod
    def lookup(cls, value: int) -> BSONType | None:
        """Get the `BSONType` with a tag value, or None if no type uses it."""
        return cls._value2member_map_.get(value)  # type: ignore[return-value]


class BinarySubtype(IntEnum):
    """The subtype byte that qualifies the content of Binary data."""

    Generic = 0x00
    Function = 0x01
    OldBinary = 0x02
    """Deprecated. The payload is preceded by a second int32 length."""
    UUID = 0x03
    MD5 = 0x05
    UserDefined = 0x80
    """The first user-defined subtype. All subtypes >= 0x80 are user-defined."""


class RegExpFlag(IntFlag):
    """
    The option characters of a BSON regular expression.

    This is a an [IntFlag enum](`enum.IntFlag`). `str()` of a value gives its
    characters in the canonical (alphabetically-sorted) order used on the
    wire.

    >>> str(RegExpFlag.from_chars("mi"))
    'im'
    """

    IgnoreCase = "i", 0, re.IGNORECASE
    Locale = "l", 1, re.LOCALE
    Multiline = "m", 2, re.MULTILINE
    DotAll = "s", 3, re.DOTALL
    Unicode = "u", 4, re.UNICODE
    Verbose = "x", 5, re.VERBOSE
    NoFlag = "", None, re.NOFLAG

    __char: str  # only present on defined values, not combinations
    __python_flag: re.RegexFlag

    if not TYPE_CHECKING:  # this __new__ breaks the default Enum types if mypy sees it

        def __new__(
            cls, char: str, bit_index: int | None, python_flag: re.RegexFlag
        ) -> Self:
            value = 0 if bit_index is None else (1 << bit_index)
            obj = int.__new__(cls, value)
            obj._value_ = value
            obj.__char = char
            obj.__python_flag = python_flag
            return obj

    @staticmethod
    @lru_cache(maxsize=1)  # noqa: B019
    def _char_mapping() -> Mapping[str, RegExpFlag]:
        return MappingProxyType({f.__char: f for f in RegExpFlag if f.__char})

    @staticmethod
    def from_chars(chars: str) -> RegExpFlag:
        """Parse option characters in any order, such as `"mi"`.

        Raises
        ------
        InvalidArgumentError
            If a character is not a BSON regular expression option.
        """
        mapping = RegExpFlag._char_mapping()
        unknown = sorted(set(chars) - mapping.keys())
        if unknown:
            raise InvalidArgumentError(
                f"Unknown regular expression option(s): {''.join(unknown)!r}"
            )
        return reduce(
            operator.or_, (mapping[c] for c in chars), RegExpFlag.NoFlag
        )

    @staticmethod
    def from_python_flags(python_flags: int) -> RegExpFlag:
        """Get the BSON options equivalent to Python `re` module flags.

        Note that Python sets `re.UNICODE` on every `str` pattern by default,
        so compiled `str` patterns always include the `u` option.
        """
        flags = RegExpFlag.NoFlag
        for f in RegExpFlag:
            if f.__python_flag and python_flags & f.__python_flag:
                flags |= f
        return flags

    def as_python_flags(self) -> re.RegexFlag:
        """Get the Python `re` module flags that correspond to these options."""
        flags = re.NOFLAG
        for f in RegExpFlag:
            if f.__char and f in self:
                flags |= f.__python_flag
        return flags

    def __str__(self) -> str:
        # Members are declared in alphabetical order of their characters
        return "".join(f.__char for f in RegExpFlag if f.__char and f in self)
