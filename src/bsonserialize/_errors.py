from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, cast

if TYPE_CHECKING:
    from bsonserialize.constants import BSONType


class ErrorKind(Enum):
    """The distinct kinds of failure reported by bsonserialize.

    Every `BSONSerializeError` has a `kind`, so callers can branch on the kind
    of failure (e.g. sanitise keys and retry vs. give up) without matching on
    exception types.
    """

    InvalidDocument = "InvalidDocument"
    """The value can't be represented as a BSON document."""
    InvalidKeyName = "InvalidKeyName"
    """A key starts with `$` or contains `.` while keys are being checked."""
    InvalidStringEncoding = "InvalidStringEncoding"
    """A string or key is not (or can't be converted to) well-formed UTF-8."""
    Range = "Range"
    """An integer is outside the signed 64-bit range."""
    Argument = "Argument"
    """An extended type was constructed from a value of the wrong shape."""
    Decode = "Decode"
    """Data being deserialized is not well-formed BSON."""

    def __repr__(self) -> str:
        return f"ErrorKind.{self.name}"


@dataclass(init=False)
class BSONSerializeError(Exception):
    """The base class that all bsonserialize errors are subclasses of."""

    kind: ClassVar[ErrorKind]

    if not TYPE_CHECKING:
        message: str  # needed to have dataclass include message in the repr, etc

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)

    @property
    def message(self) -> str:
        return cast(str, self.args[0])

    def __str__(self) -> str:
        field_values = [
            (f.name, getattr(self, f.name))
            for f in fields(self)
            if f.repr and f.name != "message"
        ]
        values_fmt = ", ".join(f"{f}={v!r}" for (f, v) in field_values)

        if values_fmt:
            return f"{self.message}: {values_fmt}"
        return self.message


@dataclass(init=False)
class InvalidDocumentError(BSONSerializeError, ValueError):
    """A value cannot be written as a BSON document."""

    kind: ClassVar[ErrorKind] = ErrorKind.InvalidDocument


@dataclass(init=False)
class UnhandledValueError(InvalidDocumentError):
    """
    No [encode step] is able to represent a Python value in BSON.

    Raised when attempting to serialize an object that none of the configured
    encode steps know how to write, such as a `Decimal`, a `complex` number or
    a `date` that is not a point in time.

    [encode step]: `bsonserialize.encode.EncodeStep`
    """

    value: object

    def __init__(self, message: str, *args: object, value: object) -> None:
        super().__init__(message, value, *args)

    @property  # type: ignore[no-redef]
    def value(self) -> object:
        return self.args[1]


@dataclass(init=False)
class DocumentTooLargeError(InvalidDocumentError):
    """An encoded document is larger than the current size ceiling."""

    size: int
    max_size: int

    def __init__(self, message: str, *, size: int, max_size: int) -> None:
        super().__init__(message)
        self.size = size
        self.max_size = max_size


@dataclass(init=False)
class InvalidKeyNameError(BSONSerializeError, ValueError):
    """A key is not a legal field name for a stored document."""

    kind: ClassVar[ErrorKind] = ErrorKind.InvalidKeyName
    key: str

    def __init__(self, message: str, *, key: str) -> None:
        super().__init__(message)
        self.key = key


@dataclass(init=False)
class InvalidStringEncodingError(BSONSerializeError, ValueError):
    """A string or key is not valid UTF-8 text."""

    kind: ClassVar[ErrorKind] = ErrorKind.InvalidStringEncoding
    value: object

    def __init__(self, message: str, *, value: object) -> None:
        super().__init__(message)
        self.value = value


@dataclass(init=False)
class IntegerRangeError(BSONSerializeError, OverflowError):
    """An int is outside the range of the BSON field it is written to."""

    kind: ClassVar[ErrorKind] = ErrorKind.Range
    value: int

    def __init__(self, message: str, *, value: int) -> None:
        super().__init__(message)
        self.value = value


@dataclass(init=False)
class InvalidArgumentError(BSONSerializeError, TypeError):
    """An extended BSON type was created with an argument of the wrong type."""

    kind: ClassVar[ErrorKind] = ErrorKind.Argument


@dataclass(init=False)
class DecodeError(BSONSerializeError, ValueError):
    """BSON data is malformed and can't be deserialized."""

    kind: ClassVar[ErrorKind] = ErrorKind.Decode
    position: int
    data: bytes | bytearray | memoryview = field(repr=False)
    """The whole input. Not included in str() or repr()."""

    def __init__(
        self,
        message: str,
        *args: object,
        position: int,
        data: bytes | bytearray | memoryview,
    ) -> None:
        super().__init__(message, *args)
        self.position = position
        self.data = data


@dataclass(init=False)
class UnhandledTagError(DecodeError):
    """
    No decode step is able to handle an element's `BSONType` tag.

    Raised when the data contains a type tag that is not defined by the BSON
    specification, or that none of the configured decode steps can read.
    """

    if not TYPE_CHECKING:
        tag: int

    def __init__(
        self,
        message: str,
        *args: object,
        tag: BSONType | int,
        position: int,
        data: bytes | bytearray | memoryview,
    ) -> None:
        super().__init__(message, tag, *args, position=position, data=data)

    @property
    def tag(self) -> BSONType | int:
        return cast("BSONType | int", self.args[1])
