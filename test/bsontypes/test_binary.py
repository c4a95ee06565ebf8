from __future__ import annotations

import pytest

from bsonserialize._errors import ErrorKind, IntegerRangeError, InvalidArgumentError
from bsonserialize.bsontypes.binary import Binary
from bsonserialize.constants import BinarySubtype


def test_Binary__defaults() -> None:
    b = Binary()
    assert b.data == b""
    assert b.subtype == BinarySubtype.Generic
    assert len(b) == 0


def test_Binary__put_and_extend() -> None:
    b = Binary(b"a")
    b.put(ord("b"))
    b.extend(b"cd")
    b.extend(bytearray(b"e"))
    b.extend(memoryview(b"f"))

    assert b.data == b"abcdef"
    assert len(b) == 6


def test_Binary__data_is_a_copy() -> None:
    source = bytearray(b"ab")
    b = Binary(source)
    source.extend(b"cd")
    data = b.data

    assert data == b"ab"
    assert isinstance(data, bytes)


@pytest.mark.parametrize("byte", [256, -1, 300])
def test_Binary__put_rejects_out_of_range_bytes(byte: int) -> None:
    b = Binary()
    with pytest.raises(IntegerRangeError, match="must be in range") as exc_info:
        b.put(byte)
    assert exc_info.value.kind is ErrorKind.Range
    assert exc_info.value.value == byte
    assert b.data == b""


def test_Binary__put_and_extend_reject_invalid_types() -> None:
    b = Binary()
    with pytest.raises(InvalidArgumentError, match="must be an int, not str"):
        b.put("a")  # type: ignore[arg-type]
    with pytest.raises(InvalidArgumentError, match="must be a bytes-like object"):
        b.extend("a")  # type: ignore[arg-type]
    assert b.data == b""


@pytest.mark.parametrize(
    "subtype", [0, 0x80, 0xFF, BinarySubtype.OldBinary, BinarySubtype.UUID]
)
def test_Binary__accepts_subtypes(subtype: int) -> None:
    assert Binary(b"", subtype).subtype == subtype


@pytest.mark.parametrize(
    "subtype,message",
    [
        (-1, "must be in range"),
        (256, "must be in range"),
        ("0", "must be an int, not str"),
        (True, "must be an int, not bool"),
    ],
)
def test_Binary__rejects_invalid_subtypes(subtype: object, message: str) -> None:
    with pytest.raises(InvalidArgumentError, match=message):
        Binary(b"", subtype)  # type: ignore[arg-type]


def test_Binary__rejects_non_buffers() -> None:
    with pytest.raises(InvalidArgumentError, match="must be a bytes-like object"):
        Binary("text")  # type: ignore[arg-type]


def test_Binary__equality() -> None:
    assert Binary(b"ab") == Binary(b"ab")
    assert Binary(b"ab") == Binary(bytearray(b"ab"), BinarySubtype.Generic)
    assert Binary(b"ab") != Binary(b"ab", 0x80)
    assert Binary(b"ab") != Binary(b"abc")
    assert Binary(b"ab") != b"ab"


def test_Binary__is_unhashable() -> None:
    with pytest.raises(TypeError):
        hash(Binary(b"ab"))


def test_Binary__repr() -> None:
    assert repr(Binary(b"ab", 0x80)) == "Binary(b'ab', subtype=128)"
