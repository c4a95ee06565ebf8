from __future__ import annotations

import re
import struct
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from fractions import Fraction

import pytest
from hypothesis import given

from bsonserialize._cycles import CyclicContainerError
from bsonserialize._errors import (
    DocumentTooLargeError,
    ErrorKind,
    IntegerRangeError,
    InvalidDocumentError,
    InvalidKeyNameError,
    InvalidStringEncodingError,
    UnhandledValueError,
)
from bsonserialize.bsontypes import (
    Binary,
    BSONRegExp,
    Code,
    CodeWithScope,
    DBRef,
    Int64,
    MaxKey,
    MinKey,
    ObjectId,
    Symbol,
    Timestamp,
)
from bsonserialize.constants import MAX_NESTING_DEPTH, BinarySubtype
from bsonserialize.document import Document
from bsonserialize.encode import (
    EncodeContext,
    EncodeNextFn,
    Encoder,
    TagWriter,
    WritableTagStream,
    document_items,
    serialize,
)
from bsonserialize.size import SizeGuard, max_size, update_max_size

from .strategies import any_document

OID = ObjectId("5f0c8e2a1b2c3d4e5f607182")


def element(tag: int, name: bytes, payload: bytes) -> bytes:
    return bytes([tag]) + name + b"\0" + payload


def document(*elements: bytes) -> bytes:
    body = b"".join(elements)
    return struct.pack("<i", len(body) + 5) + body + b"\0"


def test_serialize__empty_document() -> None:
    assert serialize({}) == b"\x05\x00\x00\x00\x00"


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, element(0x0A, b"x", b"")),
        (True, element(0x08, b"x", b"\x01")),
        (False, element(0x08, b"x", b"\x00")),
        (1, element(0x10, b"x", b"\x01\x00\x00\x00")),
        (-(2**31), element(0x10, b"x", struct.pack("<i", -(2**31)))),
        (2**31, element(0x12, b"x", struct.pack("<q", 2**31))),
        (Int64(1), element(0x12, b"x", struct.pack("<q", 1))),
        (1.5, element(0x01, b"x", struct.pack("<d", 1.5))),
        ("", element(0x02, b"x", b"\x01\x00\x00\x00\x00")),
        ("é", element(0x02, b"x", b"\x03\x00\x00\x00\xc3\xa9\x00")),
        ("a\0b", element(0x02, b"x", b"\x04\x00\x00\x00a\x00b\x00")),
        (Symbol("s"), element(0x0E, b"x", b"\x02\x00\x00\x00s\x00")),
        (OID, element(0x07, b"x", OID.binary)),
        (b"ab", element(0x05, b"x", b"\x02\x00\x00\x00\x00ab")),
        (bytearray(b"ab"), element(0x05, b"x", b"\x02\x00\x00\x00\x00ab")),
        (memoryview(b"ab"), element(0x05, b"x", b"\x02\x00\x00\x00\x00ab")),
        (
            Binary(b"ab", BinarySubtype.UUID),
            element(0x05, b"x", b"\x02\x00\x00\x00\x03ab"),
        ),
        (
            Binary(b"ab", BinarySubtype.OldBinary),
            element(0x05, b"x", b"\x06\x00\x00\x00\x02\x02\x00\x00\x00ab"),
        ),
        (BSONRegExp("a.c", "xmi"), element(0x0B, b"x", b"a.c\x00imx\x00")),
        (re.compile("a.c", re.I), element(0x0B, b"x", b"a.c\x00iu\x00")),
        (Code("f()"), element(0x0D, b"x", b"\x04\x00\x00\x00f()\x00")),
        (Timestamp(20, 4), element(0x11, b"x", struct.pack("<II", 4, 20))),
        (MinKey, element(0xFF, b"x", b"")),
        (MaxKey, element(0x7F, b"x", b"")),
        (
            datetime(1970, 1, 1, 0, 0, 1, 999, tzinfo=timezone.utc),
            element(0x09, b"x", struct.pack("<q", 1000)),
        ),
        (
            datetime(1969, 12, 31, 23, 59, 59, 999500, tzinfo=timezone.utc),
            element(0x09, b"x", struct.pack("<q", -1)),
        ),
        (
            DBRef("ns", OID),
            element(
                0x03,
                b"x",
                document(
                    element(0x02, b"$ref", b"\x03\x00\x00\x00ns\x00"),
                    element(0x07, b"$id", OID.binary),
                ),
            ),
        ),
        ([], element(0x04, b"x", document())),
        ((1,), element(0x04, b"x", document(element(0x10, b"0", b"\x01\0\0\0")))),
        ({}, element(0x03, b"x", document())),
    ],
)
def test_serialize__values(value: object, expected: bytes) -> None:
    assert serialize({"x": value}) == document(expected)


def test_serialize__hello_world() -> None:
    assert (
        serialize({"hello": "world"})
        == b"\x16\x00\x00\x00\x02hello\x00\x06\x00\x00\x00world\x00\x00"
    )


def test_serialize__array_element_names() -> None:
    data = serialize({"doc": [1, 2, "a", "b"]})

    assert [chr(data[i]) for i in (14, 21, 28, 37)] == ["0", "1", "2", "3"]


def test_serialize__code_with_scope() -> None:
    scope = document(element(0x10, b"$x", b"\x01\0\0\0"))
    code = b"\x04\x00\x00\x00f()\x00"
    payload = struct.pack("<i", 4 + len(code) + len(scope)) + code + scope

    # Scope keys are not checked
    data = serialize({"c": CodeWithScope("f()", {"$x": 1})}, check_keys=True)
    assert data == document(element(0x0F, b"c", payload))


def test_serialize__datetimes_are_converted_to_utc() -> None:
    naive = datetime(2020, 1, 1, 12)
    aware = datetime(2020, 1, 1, 14, tzinfo=timezone(timedelta(hours=2)))

    assert serialize({"t": naive}) == serialize({"t": aware})
    assert serialize({"t": naive}) == serialize(
        {"t": naive.replace(tzinfo=timezone.utc)}
    )


def test_serialize__move_id() -> None:
    doc = {"text": "abc", "key": "abc", "_id": 1}

    assert serialize(doc, move_id=True) == (
        b")\0\0\0\x10_id\0\x01\0\0\0\x02text\0\x04\0\0\0abc\0\x02key\0\x04\0\0\0abc\0\0"
    )
    assert serialize(doc) == (
        b")\0\0\0\x02text\0\x04\0\0\0abc\0\x02key\0\x04\0\0\0abc\0\x10_id\0\x01\0\0\0\0"
    )


def test_serialize__move_id_does_not_reorder_nested_documents() -> None:
    doc = Document(text="abc", hash={"text": "abc", "_id": 2}, _id=3)

    assert serialize(doc, move_id=True) == (
        b">\0\0\0\x10_id\0\x03\0\0\0\x02text\0\x04\0\0\0abc\0\x03hash\0\x1c\0\0\0"
        b"\x02text\0\x04\0\0\0abc\0\x10_id\0\x02\0\0\0\0\0"
    )


@pytest.mark.parametrize("move_id", [True, False])
def test_serialize__writes_one_primary_key_preferring_str(move_id: bool) -> None:
    doc = Document([(Symbol("_id"), 1), ("a", 2), ("_id", 3)])

    expected_items = [("_id", 3), ("a", 2)] if move_id else [("a", 2), ("_id", 3)]
    assert list(document_items(doc, move_id=move_id)) == expected_items
    assert serialize(doc, move_id=move_id) == serialize(
        dict(expected_items), move_id=False
    )


def test_serialize__symbol_primary_key_is_moved() -> None:
    doc = Document([("a", 1), (Symbol("_id"), 2)])

    assert serialize(doc, move_id=True) == serialize({"_id": 2, "a": 1})


def test_serialize__duplicate_primary_key_is_skipped_in_nested_documents() -> None:
    doc = {"a": Document([(Symbol("_id"), 1), ("_id", 2)])}

    assert serialize(doc) == serialize({"a": {"_id": 2}})


def test_serialize__none_primary_key() -> None:
    assert serialize({"_id": None}, move_id=True) == document(element(0x0A, b"_id", b""))


def test_serialize__does_not_modify_input() -> None:
    doc = Document([("a", [1, {"b": 2}]), (Symbol("_id"), 1), ("_id", 2)])
    before = Document(
        [("a", [1, {"b": 2}]), (Symbol("_id"), 1), ("_id", 2)]
    )

    serialize(doc, check_keys=True, move_id=True)

    assert doc == before
    assert list(doc) == list(before)


@pytest.mark.parametrize("key", ["$hello", ".hello", "hello.", "hel.lo"])
def test_serialize__check_keys(key: str) -> None:
    with pytest.raises(InvalidKeyNameError):
        serialize({key: 1}, check_keys=True)
    with pytest.raises(InvalidKeyNameError):
        serialize({"nested": {key: 1}}, check_keys=True)
    with pytest.raises(InvalidKeyNameError):
        serialize({"array": [{key: 1}]}, check_keys=True)

    serialize({key: 1}, check_keys=False)
    serialize({"nested": {key: 1}}, check_keys=False)


def test_serialize__check_keys_allows_dollar_after_first_char() -> None:
    serialize({"he$llo": 1}, check_keys=True)


def test_serialize__check_keys_does_not_apply_to_dbref_fields() -> None:
    serialize({"ref": DBRef("ns", OID)}, check_keys=True)


def test_serialize__check_keys_is_restored_after_code_with_scope() -> None:
    doc = {"c": CodeWithScope("f()", {"$x": 1}), "$y": 2}
    with pytest.raises(InvalidKeyNameError) as exc_info:
        serialize(doc, check_keys=True)
    assert exc_info.value.key == "$y"


@pytest.mark.parametrize("check_keys", [True, False])
def test_serialize__nul_in_key_is_invalid_document(check_keys: bool) -> None:
    with pytest.raises(InvalidDocumentError, match="NUL") as exc_info:
        serialize({"he\0llo": 1}, check_keys=check_keys)
    assert exc_info.value.kind is ErrorKind.InvalidDocument


def test_serialize__nul_in_regexp_is_invalid_document() -> None:
    with pytest.raises(InvalidDocumentError, match="NUL"):
        serialize({"r": BSONRegExp("a\0b")})


def test_serialize__invalid_utf8() -> None:
    with pytest.raises(InvalidStringEncodingError):
        serialize({"s": "\ud800"})
    with pytest.raises(InvalidStringEncodingError):
        serialize({"\ud800": 1})


@pytest.mark.parametrize("value", [2**63 - 1, -(2**63)])
def test_serialize__int64_limits(value: int) -> None:
    assert serialize({"n": value}) == document(
        element(0x12, b"n", struct.pack("<q", value))
    )


@pytest.mark.parametrize("value", [2**63, -(2**63) - 1, 2**75])
def test_serialize__ints_out_of_range(value: int) -> None:
    with pytest.raises(IntegerRangeError) as exc_info:
        serialize({"n": value})
    assert exc_info.value.kind is ErrorKind.Range


@pytest.mark.parametrize(
    "value",
    [
        date(2020, 1, 1),
        Decimal("1.5"),
        Fraction(1, 3),
        complex(1, 2),
        {1, 2},
        object(),
    ],
)
def test_serialize__unsupported_values(value: object) -> None:
    with pytest.raises(UnhandledValueError, match="^Cannot serialize") as exc_info:
        serialize({"v": value})
    assert exc_info.value.value is value
    assert exc_info.value.kind is ErrorKind.InvalidDocument


def test_serialize__date_error_mentions_utc_time() -> None:
    with pytest.raises(InvalidDocumentError, match="UTC Time"):
        serialize({"d": date(2020, 1, 1)})


@pytest.mark.parametrize("value", [[("a", 1)], "a", 1, None])
def test_serialize__requires_a_mapping(value: object) -> None:
    with pytest.raises(InvalidDocumentError, match="takes a Mapping"):
        serialize(value)  # type: ignore[arg-type]


def test_serialize__non_string_keys() -> None:
    with pytest.raises(InvalidDocumentError, match="must be str or Symbol"):
        serialize({1: "a"})  # type: ignore[dict-item]


def test_serialize__cyclic_containers() -> None:
    doc: dict[str, object] = {}
    doc["self"] = doc
    with pytest.raises(CyclicContainerError):
        serialize(doc)

    array: list[object] = []
    array.append(array)
    with pytest.raises(InvalidDocumentError, match="cannot contain itself"):
        serialize({"a": array})


def test_serialize__repeated_non_cyclic_containers() -> None:
    shared = {"a": 1}
    assert serialize({"x": shared, "y": [shared, shared]}) == serialize(
        {"x": {"a": 1}, "y": [{"a": 1}, {"a": 1}]}
    )


def nested_documents(depth: int) -> dict[str, object]:
    doc: dict[str, object] = {}
    for _ in range(depth - 1):
        doc = {"a": doc}
    return doc


def test_serialize__max_nesting_depth() -> None:
    data = serialize(nested_documents(MAX_NESTING_DEPTH))
    assert len(data) == 5 + (MAX_NESTING_DEPTH - 1) * 8


@pytest.mark.parametrize("depth", [MAX_NESTING_DEPTH + 1, 150])
def test_serialize__rejects_deeper_nesting(depth: int) -> None:
    with pytest.raises(InvalidDocumentError, match="nested more than 100 deep"):
        serialize(nested_documents(depth))


def test_serialize__nesting_depth_counts_arrays_and_scopes() -> None:
    value: object = {}
    for i in range(MAX_NESTING_DEPTH):
        value = [value] if i % 2 else CodeWithScope("f()", {"a": value})

    with pytest.raises(InvalidDocumentError, match="nested more than 100 deep"):
        serialize({"v": value})


def test_serialize__string_of_max_size_is_too_large() -> None:
    with pytest.raises(DocumentTooLargeError) as exc_info:
        serialize({"a": "x" * max_size()})

    assert exc_info.value.max_size == max_size()
    assert exc_info.value.size > max_size()
    assert exc_info.value.kind is ErrorKind.InvalidDocument


def test_serialize__uses_updated_max_size() -> None:
    data = serialize({"a": "x" * 100})
    update_max_size(len(data))
    assert serialize({"a": "x" * 100}) == data

    update_max_size(len(data) - 1)
    with pytest.raises(DocumentTooLargeError):
        serialize({"a": "x" * 100})


def test_Encoder__uses_its_size_guard() -> None:
    encoder = Encoder(size_guard=SizeGuard(10))
    encoder.encode({})
    with pytest.raises(DocumentTooLargeError):
        encoder.encode({"a": "b"})
    # The default guard is not affected
    serialize({"a": "b"})


def test_Encoder__is_reusable() -> None:
    encoder = Encoder(check_keys=True, move_id=True)
    doc = {"a": 1, "_id": 2}
    assert encoder.encode(doc) == encoder.encode(doc)
    assert encoder.encode(doc) == serialize(doc, check_keys=True, move_id=True)
    assert type(encoder.encode(doc)) is bytes


def test_encode_steps__can_represent_unsupported_values() -> None:
    def serialize_decimal(
        value: object, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        if isinstance(value, Decimal):
            return next(str(value))
        next(value)

    encoder = Encoder(encode_steps=[serialize_decimal, TagWriter()])
    assert encoder.encode({"d": Decimal("1.5")}) == serialize({"d": "1.5"})


def test_encode_steps__unhandled_values_are_reported() -> None:
    def ignore(value: object, /, ctx: EncodeContext, next: EncodeNextFn) -> None:
        next(value)

    with pytest.raises(UnhandledValueError):
        Encoder(encode_steps=[ignore]).encode({"a": 1})


def test_WritableTagStream__tag_requires_element_name() -> None:
    stream = WritableTagStream()
    stream.element_name = b"a\0"
    stream.write_null()
    with pytest.raises(InvalidDocumentError, match="without an element name"):
        stream.write_null()


def test_WritableTagStream__keys_unchecked_restores_setting() -> None:
    stream = WritableTagStream(check_keys=True)
    with stream.keys_unchecked():
        assert not stream.check_keys
    assert stream.check_keys


@given(any_document())
def test_serialize__length_header_is_byte_count(doc: Mapping[str, object]) -> None:
    data = serialize(doc)
    assert struct.unpack_from("<i", data)[0] == len(data)
    assert data[-1] == 0
