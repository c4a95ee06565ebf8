"""Write Python values as BSON documents."""

from __future__ import annotations

import logging
import re
import struct
from collections import abc
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from functools import partial, singledispatchmethod
from types import NoneType, TracebackType
from typing import TYPE_CHECKING, Any, AnyStr, Final, Protocol, cast

from bsonserialize._cycles import ContainerLog
from bsonserialize._errors import (
    DocumentTooLargeError,
    InvalidDocumentError,
    UnhandledValueError,
)
from bsonserialize.bsontypes.binary import Binary
from bsonserialize.bsontypes.code import Code, CodeWithScope
from bsonserialize.bsontypes.dbref import ID_KEY, REF_KEY, DBRef
from bsonserialize.bsontypes.int64 import Int64
from bsonserialize.bsontypes.minmax import BSONBoundEnum
from bsonserialize.bsontypes.objectid import ObjectId
from bsonserialize.bsontypes.regexp import BSONRegExp
from bsonserialize.bsontypes.symbol import Symbol
from bsonserialize.bsontypes.timestamp import Timestamp
from bsonserialize.constants import (
    INT32_RANGE,
    INT64_RANGE,
    PRIMARY_KEY,
    BinarySubtype,
    BSONType,
)
from bsonserialize.document import DocumentKey, is_primary_key
from bsonserialize.size import SizeGuard, default_size_guard
from bsonserialize.validate import (
    validate_cstring,
    validate_integer,
    validate_key,
    validate_string,
)

if TYPE_CHECKING:
    from typing_extensions import Buffer, Never, TypeAlias

logger = logging.getLogger(__name__)

EPOCH: Final = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND: Final = timedelta(milliseconds=1)


def document_items(
    document: Mapping[DocumentKey, object], *, move_id: bool = False
) -> Iterator[tuple[DocumentKey, object]]:
    """Get the items of a document in the order they are written.

    A document can hold its primary key as both `"_id"` and `Symbol("_id")`,
    but only one of them is written; the literal `"_id"` is preferred. With
    `move_id`, the primary key is written first, otherwise it keeps its place.

    >>> list(document_items({"a": 1, "_id": 2}, move_id=True))
    [('_id', 2), ('a', 1)]
    >>> list(document_items({Symbol("_id"): 1, "_id": 2}))
    [('_id', 2)]
    """
    if PRIMARY_KEY in document:
        primary_key: DocumentKey | None = PRIMARY_KEY
    elif Symbol(PRIMARY_KEY) in document:
        primary_key = Symbol(PRIMARY_KEY)
    else:
        primary_key = None

    if move_id and primary_key is not None:
        yield primary_key, document[primary_key]
    for key, value in document.items():
        if is_primary_key(key) and (move_id or key != primary_key):
            continue
        yield key, value


@dataclass(slots=True)
class KeyCheckRestorer(AbstractContextManager[None]):
    """Context manager that restores a stream's `check_keys` setting."""

    stream: WritableTagStream
    check_keys: bool

    def __enter__(self) -> None:
        pass

    def __exit__(
        self,
        exc_cls: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
        /,
    ) -> None:
        self.stream.check_keys = self.check_keys


@dataclass(slots=True)
class WritableTagStream:
    """Write individual BSON elements and documents.

    This is a low-level interface to incrementally generate BSON data. An
    element is written by setting the `element_name` it will have, then
    calling one of the `write_*` methods, which writes the element's type
    tag, its name and its value.
    """

    data: bytearray = field(default_factory=bytearray)
    containers: ContainerLog = field(default_factory=ContainerLog)
    check_keys: bool = False
    """Reject keys that start with `$` or contain `.`."""
    element_name: bytes | None = field(default=None, repr=False)
    """The NUL-terminated name of the element the next tag starts."""

    @property
    def pos(self) -> int:
        return len(self.data)

    def keys_unchecked(self) -> KeyCheckRestorer:
        """Disable `check_keys` until the returned context manager exits."""
        restorer = KeyCheckRestorer(self, self.check_keys)
        self.check_keys = False
        return restorer

    def write_tag(self, tag: BSONType) -> None:
        """Start an element with a type tag, followed by its `element_name`."""
        name = self.element_name
        if name is None:
            raise InvalidDocumentError(
                f"Attempted to write tag {tag.name} without an element name; "
                f"an encode step may have written more than one value"
            )
        self.element_name = None
        self.data.append(tag)
        self.data.extend(name)

    def _pack_int32(self, value: int) -> None:
        self.data.extend(struct.pack("<i", value))

    def _pack_string(self, encoded: bytes) -> None:
        self._pack_int32(len(encoded) + 1)
        self.data.extend(encoded)
        self.data.append(0)

    def write_null(self) -> None:
        self.write_tag(BSONType.Null)

    def write_boolean(self, value: bool) -> None:
        self.write_tag(BSONType.Boolean)
        self.data.append(1 if value else 0)

    def write_int32(self, value: int) -> None:
        if value not in INT32_RANGE:
            raise ValueError(
                f"Python int is too large to represent as Int32: value must be "
                f"in {INT32_RANGE}"
            )
        self.write_tag(BSONType.Int32)
        self._pack_int32(value)

    def write_int64(self, value: int) -> None:
        validate_integer(value)
        self.write_tag(BSONType.Int64)
        self.data.extend(struct.pack("<q", value))

    def write_double(self, value: float) -> None:
        self.write_tag(BSONType.Double)
        self.data.extend(struct.pack("<d", value))

    def write_string(self, value: str, *, tag: BSONType = BSONType.String) -> None:
        """Write a length-prefixed UTF-8 string, or another type with its layout."""
        encoded = validate_string(value)
        self.write_tag(tag)
        self._pack_string(encoded)

    def write_object_id(self, value: ObjectId) -> None:
        self.write_tag(BSONType.ObjectId)
        self.data.extend(value.binary)

    def write_binary(
        self, data: Buffer, subtype: BinarySubtype | int = BinarySubtype.Generic
    ) -> None:
        with memoryview(data) as view:
            content = view.cast("B") if view.ndim != 1 or view.format != "B" else view
            self.write_tag(BSONType.Binary)
            if subtype == BinarySubtype.OldBinary:
                self._pack_int32(content.nbytes + 4)
                self.data.append(subtype)
                self._pack_int32(content.nbytes)
            else:
                self._pack_int32(content.nbytes)
                self.data.append(subtype)
            self.data.extend(content)

    def write_regexp(self, value: BSONRegExp) -> None:
        pattern = validate_cstring(value.pattern)
        flags = validate_cstring(str(value.flags))
        self.write_tag(BSONType.Regex)
        self.data.extend(pattern)
        self.data.extend(flags)

    def write_timestamp(self, value: Timestamp) -> None:
        self.write_tag(BSONType.Timestamp)
        self.data.extend(struct.pack("<II", value.increment, value.seconds))

    def write_utc_datetime(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        milliseconds = (value - EPOCH) // _ONE_MILLISECOND
        if milliseconds not in INT64_RANGE:
            raise InvalidDocumentError(
                f"datetime is outside the range of a BSON UTC Time: {value!r}"
            )
        self.write_tag(BSONType.UTCDatetime)
        self.data.extend(struct.pack("<q", milliseconds))

    def write_bound(self, value: BSONBoundEnum) -> None:
        self.write_tag(
            BSONType.MinKey if value is BSONBoundEnum.MinKey else BSONType.MaxKey
        )

    def write_document_body(
        self,
        items: Iterable[tuple[DocumentKey, object]],
        ctx: EncodeContext,
    ) -> None:
        """Write the length, elements and terminating NUL of a document."""
        start = self.pos
        self._pack_int32(0)
        for key, value in items:
            ctx.encode_element(validate_key(key, check_keys=self.check_keys), value)
        self.data.append(0)
        struct.pack_into("<i", self.data, start, self.pos - start)

    def write_document(
        self, value: Mapping[DocumentKey, object], ctx: EncodeContext
    ) -> None:
        self.write_tag(BSONType.Document)
        with self.containers.record_acyclic_container(value):
            self.write_document_body(document_items(value), ctx)

    def write_array(self, value: Sequence[object], ctx: EncodeContext) -> None:
        self.write_tag(BSONType.Array)
        with self.containers.record_acyclic_container(value):
            self.write_document_body(
                ((str(i), element) for i, element in enumerate(value)), ctx
            )

    def write_dbref(self, value: DBRef, ctx: EncodeContext) -> None:
        self.write_tag(BSONType.Document)
        with self.keys_unchecked():
            self.write_document_body(
                [(REF_KEY, value.namespace), (ID_KEY, value.object_id)], ctx
            )

    def write_code_with_scope(self, value: CodeWithScope, ctx: EncodeContext) -> None:
        source = validate_string(value.source)
        self.write_tag(BSONType.JavaScriptWithScope)
        start = self.pos
        self._pack_int32(0)
        self._pack_string(source)
        with self.keys_unchecked(), self.containers.record_acyclic_container(
            value.scope
        ):
            self.write_document_body(document_items(value.scope), ctx)
        struct.pack_into("<i", self.data, start, self.pos - start)


class EncodeContext(Protocol):
    """Maintains the state needed to write Python objects as BSON."""

    if TYPE_CHECKING:

        @property
        def stream(self) -> WritableTagStream:
            """The `WritableTagStream` this context writes to."""

    else:
        stream: WritableTagStream
        """The `WritableTagStream` this context writes to."""

    def encode_object(self, value: object) -> None:
        """Encode and write a single Python value as the current element."""

    def encode_element(self, name: bytes, value: object) -> None:
        """Encode and write a Python value as an element with a name."""


class EncodeNextFn(Protocol):
    """
    Delegate to the next encode step in the sequence to write a value.

    Raises
    ------
    UnhandledValueError
        If none of the following steps were able to handle a value.
    """

    def __call__(self, value: object, /) -> None: ...


class EncodeStepFn(Protocol):
    """
    The signature of a function that writes BSON elements to represent objects.

    Encode steps can either write the `ctx.stream` directly, or delegate to the
    next encode step by calling `next()`. Steps can change how an object is
    represented by passing a different `value` to next than the one they
    received.
    """

    def __call__(
        self, value: object, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None: ...


class EncodeStepObject(Protocol):
    encode: EncodeStepFn
    """The same as `EncodeStepFn`."""


EncodeStep: TypeAlias = "EncodeStepObject | EncodeStepFn"
"""Either an `EncodeStepObject` or `EncodeStepFn`."""


def _unhandled_value_message(value: object) -> str:
    message = f"Cannot serialize an object of type {type(value).__qualname__}"
    if isinstance(value, date):
        message = (
            f"{message}: only datetime values are points in time that can be "
            f"written as a UTC Time"
        )
    return message


@dataclass(init=False, slots=True)
class DefaultEncodeContext(EncodeContext):
    encode_steps: Sequence[EncodeStep]
    stream: WritableTagStream

    def __init__(
        self,
        encode_steps: Iterable[EncodeStep] | None = None,
        *,
        stream: WritableTagStream | None = None,
    ) -> None:
        self.encode_steps = list(
            default_encode_steps if encode_steps is None else encode_steps
        )
        self.stream = WritableTagStream() if stream is None else stream

    def __encode_object_with_step(self, value: object, *, i: int) -> None:
        if i < len(self.encode_steps):
            om = self.encode_steps[i]
            next = partial(self.__encode_object_with_step, i=i + 1)
            if callable(om):
                return om(value, ctx=self, next=next)
            else:
                return om.encode(value, ctx=self, next=next)
        self._report_unmapped_value(value)
        raise AssertionError("report_unmapped_value returned")

    def encode_object(self, value: object) -> None:
        """Serialize a single Python value as the stream's current element.

        The encode_steps decide how the Python value is represented, and the
        stream writes out its BSON element.
        """
        return self.__encode_object_with_step(value, i=0)

    def encode_element(self, name: bytes, value: object) -> None:
        self.stream.element_name = name
        self.encode_object(value)

    def _report_unmapped_value(self, value: object) -> Never:
        raise UnhandledValueError(_unhandled_value_message(value), value=value)


@dataclass(slots=True)
class TagWriter(EncodeStepObject):
    """Defines the conversion of Python types into BSON elements.

    TagWriters are responsible for making suitable calls to a
    WritableTagStream to represent Python objects with the BSON types.

    The stream delegates back to the `EncodeContext` when writing documents
    and arrays, to let the context pass their values through the sequence of
    encode steps, typically ending with a `TagWriter` as the final step.
    """

    @singledispatchmethod
    def encode(  # type: ignore[override]
        self, value: object, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        next(value)

    # Must use explicit type in register() as singledispatchmethod does not
    # reliably read the first positional argument's type annotation.

    @encode.register(cast(Any, NoneType))  # None confuses the register() type
    def serialize_none(
        self, value: None, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_null()

    @encode.register(bool)
    def serialize_bool(
        self, value: bool, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_boolean(value)

    @encode.register(int)
    def serialize_int(
        self, value: int, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        if value in INT32_RANGE:
            ctx.stream.write_int32(value)
        else:
            ctx.stream.write_int64(value)

    @encode.register(Int64)
    def serialize_int64(
        self, value: Int64, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_int64(value)

    @encode.register(float)
    def serialize_float(
        self, value: float, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_double(value)

    @encode.register(str)
    def serialize_str(
        self, value: str, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_string(value)

    @encode.register(Symbol)
    def serialize_symbol(
        self, value: Symbol, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_string(value.name, tag=BSONType.Symbol)

    @encode.register(abc.Mapping)
    def serialize_mapping(
        self,
        value: Mapping[DocumentKey, object],
        /,
        ctx: EncodeContext,
        next: EncodeNextFn,
    ) -> None:
        ctx.stream.write_document(value, ctx)

    @encode.register(list)
    @encode.register(tuple)
    def serialize_sequence(
        self, value: Sequence[object], /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_array(value, ctx)

    @encode.register(ObjectId)
    def serialize_object_id(
        self, value: ObjectId, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_object_id(value)

    @encode.register(Binary)
    def serialize_binary(
        self, value: Binary, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_binary(value.data, value.subtype)

    @encode.register(bytes)
    @encode.register(bytearray)
    @encode.register(memoryview)
    def serialize_buffer(
        self, value: Buffer, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_binary(value)

    @encode.register(BSONRegExp)
    def serialize_regexp(
        self, value: BSONRegExp, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_regexp(value)

    @encode.register(re.Pattern)
    def serialize_python_regexp(
        self, value: re.Pattern[AnyStr], /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_regexp(BSONRegExp.from_python_pattern(value))

    @encode.register(Code)
    def serialize_code(
        self, value: Code, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_string(value.source, tag=BSONType.JavaScript)

    @encode.register(CodeWithScope)
    def serialize_code_with_scope(
        self, value: CodeWithScope, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_code_with_scope(value, ctx)

    @encode.register(Timestamp)
    def serialize_timestamp(
        self, value: Timestamp, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_timestamp(value)

    @encode.register(datetime)
    def serialize_datetime(
        self, value: datetime, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        # date objects are not handled because a date is a calendar day, not a
        # point in time. It needs a timezone and time of day to be one.
        ctx.stream.write_utc_datetime(value)

    @encode.register(BSONBoundEnum)
    def serialize_bound(
        self, value: BSONBoundEnum, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_bound(value)

    @encode.register(DBRef)
    def serialize_dbref(
        self, value: DBRef, /, ctx: EncodeContext, next: EncodeNextFn
    ) -> None:
        ctx.stream.write_dbref(value, ctx)


default_encode_steps: tuple[EncodeStep, ...] = (TagWriter(),)
"""
The default sequence of [encode steps] used to write Python objects as BSON.

This sequence contains an instance of [`TagWriter`](`bsonserialize.encode.TagWriter`).

[encode steps]: `bsonserialize.encode.EncodeStep`
"""


@dataclass(init=False)
class Encoder:
    """
    A re-usable configuration for serializing documents as BSON.

    The arguments behave as described for [`serialize()`]. The `encode()`
    method behaves like `serialize()` without needing to pass the arguments
    for every call.

    [`serialize()`]: `bsonserialize.serialize`

    Parameters
    ----------
    check_keys
        Reject keys that start with `$` or contain `.`.
    move_id
        Write the primary key, `_id`, as the first element of the top-level
        document.
    size_guard
        Holds the size ceiling that encoded documents must not exceed.
        Defaults to the process-wide guard.
    encode_steps
        The sequence of encode steps that control how values are written.
    """

    check_keys: bool
    move_id: bool
    size_guard: SizeGuard
    encode_steps: Sequence[EncodeStep]

    def __init__(
        self,
        *,
        check_keys: bool = False,
        move_id: bool = False,
        size_guard: SizeGuard | None = None,
        encode_steps: Iterable[EncodeStep] | None = default_encode_steps,
    ) -> None:
        self.check_keys = check_keys
        self.move_id = move_id
        self.size_guard = default_size_guard if size_guard is None else size_guard
        self.encode_steps = (
            default_encode_steps if encode_steps is None else tuple(encode_steps)
        )

    def encode(self, document: Mapping[DocumentKey, object]) -> bytes:
        """
        Serialize a document as BSON.

        Parameters
        ----------
        document
            The Mapping to serialize. It is not modified.

        Returns
        -------
        :
            The encoded bytes.
        """
        if not isinstance(document, Mapping):
            raise InvalidDocumentError(
                f"serialize takes a Mapping, not {type(document).__name__}"
            )
        max_size = self.size_guard.current()
        ctx = DefaultEncodeContext(
            stream=WritableTagStream(check_keys=self.check_keys),
            encode_steps=self.encode_steps,
        )
        with ctx.stream.containers.record_acyclic_container(document):
            ctx.stream.write_document_body(
                document_items(document, move_id=self.move_id), ctx
            )

        size = ctx.stream.pos
        if size > max_size:
            logger.debug(
                "Rejected document of %d bytes, max size is %d bytes", size, max_size
            )
            raise DocumentTooLargeError(
                f"Document is too large: {size} bytes is larger than the max "
                f"size of {max_size} bytes",
                size=size,
                max_size=max_size,
            )
        return bytes(ctx.stream.data)


def serialize(
    document: Mapping[DocumentKey, object],
    check_keys: bool = False,
    move_id: bool = False,
    *,
    size_guard: SizeGuard | None = None,
    encode_steps: Iterable[EncodeStep] | None = default_encode_steps,
) -> bytes:
    """
    Serialize a document as BSON.

    Parameters
    ----------
    document
        The Mapping to serialize. Its values can be built-in Python values or
        the types in `bsonserialize.bsontypes`. The document is not modified.
    check_keys
        Reject keys that start with `$` or contain `.`, which databases
        reserve for operators and paths into nested documents.
    move_id
        Write the primary key, `_id`, as the first element of the top-level
        document. Nested documents keep their order.
    size_guard
        Holds the size ceiling that the encoded document must not exceed.
        Defaults to the process-wide guard.
    encode_steps
        The sequence of [encode steps] that control how values are written.

    [encode steps]: `bsonserialize.encode.EncodeStep`

    Returns
    -------
    :
        The serialized data.

    Raises
    ------
    InvalidDocumentError
        When `document` is not a Mapping, contains a key with a NUL character,
        contains itself, nests containers too deeply, or is larger than the size
        ceiling.
    UnhandledValueError
        When a value in the document is not supported by the `encode_steps`.
    InvalidKeyNameError
        When `check_keys` is true and a key is not a legal field name.
    InvalidStringEncodingError
        When a string is not valid UTF-8.
    IntegerRangeError
        When an int does not fit in 64 bits.

    Examples
    --------
    >>> serialize({"hello": "world"})
    b'\\x16\\x00\\x00\\x00\\x02hello\\x00\\x06\\x00\\x00\\x00world\\x00\\x00'
    """
    encoder = Encoder(
        check_keys=check_keys,
        move_id=move_id,
        size_guard=size_guard,
        encode_steps=encode_steps,
    )
    return encoder.encode(document)
