"""Read BSON documents into Python values."""

from __future__ import annotations

import operator
import struct
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import partial
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Final, Literal, Protocol, cast

from bsonserialize._errors import (
    BSONSerializeError,
    DecodeError,
    UnhandledTagError,
)
from bsonserialize.bsontypes.binary import Binary
from bsonserialize.bsontypes.code import Code, CodeWithScope
from bsonserialize.bsontypes.dbref import ID_KEY, REF_KEY, DBRef
from bsonserialize.bsontypes.int64 import Int64
from bsonserialize.bsontypes.minmax import MaxKey, MinKey
from bsonserialize.bsontypes.objectid import OBJECT_ID_SIZE, ObjectId
from bsonserialize.bsontypes.regexp import BSONRegExp
from bsonserialize.bsontypes.symbol import Symbol
from bsonserialize.bsontypes.timestamp import Timestamp
from bsonserialize.constants import (
    MAX_NESTING_DEPTH,
    MIN_DOCUMENT_SIZE,
    BinarySubtype,
    BSONType,
    RegExpFlag,
)
from bsonserialize.document import Document, DocumentKey

if TYPE_CHECKING:
    from typing_extensions import Buffer, Never, TypeAlias

    from _typeshed import SupportsRead

EPOCH: Final = datetime(1970, 1, 1, tzinfo=timezone.utc)

AnyTag: TypeAlias = "BSONType | int"
"""A tag read from the data, which is an `int` if it's not a known `BSONType`."""

DocumentType = Callable[[], MutableMapping[DocumentKey, object]]


@dataclass(slots=True)
class ReadableTagStream:
    """Read individual BSON values from a buffer.

    Reads are bounded by `end`, which is narrowed to the extent of a document
    while its elements are read, so a malformed element can't read past the
    end of the document that contains it.
    """

    data: bytes
    pos: int = field(default=0)
    end: int = field(default=-1)
    depth: int = field(default=0)
    """The number of documents and arrays currently being read."""

    def __post_init__(self) -> None:
        if self.end < 0:
            self.end = len(self.data)

    @property
    def eof(self) -> bool:
        return self.pos >= self.end

    def ensure_capacity(self, count: int) -> None:
        if self.pos + count > self.end:
            available = max(0, self.end - self.pos)
            self.throw(
                f"Data truncated: Expected {count} bytes at position {self.pos} but "
                f"{available} available"
            )

    def throw(self, message: str, *, cause: BaseException | None = None) -> Never:
        raise DecodeError(message, data=self.data, position=self.pos) from cause

    def read_tag(self) -> AnyTag:
        """Read an element's type tag.

        Returns
        -------
        :
            The `BSONType` if the byte is a known tag, otherwise the byte's
            `int` value.
        """
        self.ensure_capacity(1)
        value = self.data[self.pos]
        self.pos += 1
        tag = BSONType.lookup(value)
        return value if tag is None else tag

    def read_bytes(self, count: int) -> bytes:
        self.ensure_capacity(count)
        self.pos += count
        return self.data[self.pos - count : self.pos]

    def _unpack(self, fmt: struct.Struct) -> tuple[int | float, ...]:
        self.ensure_capacity(fmt.size)
        values = fmt.unpack_from(self.data, self.pos)
        self.pos += fmt.size
        return values

    def _decode_utf8(self, raw: bytes, start: int) -> str:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            self.pos = start
            self.throw("String is not valid UTF-8", cause=e)

    def read_int32(self) -> int:
        return cast(int, self._unpack(_INT32)[0])

    def read_int64(self) -> Int64:
        return Int64(cast(int, self._unpack(_INT64)[0]))

    def read_double(self) -> float:
        return cast(float, self._unpack(_DOUBLE)[0])

    def read_boolean(self) -> bool:
        self.ensure_capacity(1)
        value = self.data[self.pos]
        if value not in (0, 1):
            self.throw(f"Boolean byte must be 0 or 1, not {value}")
        self.pos += 1
        return value == 1

    def read_cstring(self) -> str:
        start = self.pos
        nul = self.data.find(b"\0", start, self.end)
        if nul < 0:
            self.throw("Data truncated: Null-terminated string has no NUL byte")
        self.pos = nul + 1
        return self._decode_utf8(self.data[start:nul], start)

    def read_string(self) -> str:
        start = self.pos
        length = self.read_int32()
        if length < 1:
            self.pos = start
            self.throw(f"String length must be at least 1, not {length}")
        raw = self.read_bytes(length)
        if raw[-1] != 0:
            self.pos = start
            self.throw("String is not terminated by a NUL byte")
        return self._decode_utf8(raw[:-1], start)

    def read_object_id(self) -> ObjectId:
        return ObjectId(self.read_bytes(OBJECT_ID_SIZE))

    def read_binary(self) -> Binary:
        start = self.pos
        length = self.read_int32()
        if length < 0:
            self.pos = start
            self.throw(f"Binary length must not be negative: {length}")
        self.ensure_capacity(1)
        subtype = self.data[self.pos]
        self.pos += 1
        if subtype == BinarySubtype.OldBinary:
            inner_length = self.read_int32()
            if inner_length < 0 or inner_length != length - 4:
                self.pos = start
                self.throw(
                    f"Binary subtype {subtype} has an inner length of "
                    f"{inner_length} but its outer length {length} implies "
                    f"{length - 4}"
                )
            length = inner_length
        return Binary(self.read_bytes(length), subtype)

    def read_regexp(self) -> BSONRegExp:
        pattern = self.read_cstring()
        start = self.pos
        chars = self.read_cstring()
        try:
            flags = RegExpFlag.from_chars(chars)
        except BSONSerializeError as e:
            self.pos = start
            self.throw(f"Regular expression options are invalid: {chars!r}", cause=e)
        return BSONRegExp(pattern, flags)

    def read_timestamp(self) -> Timestamp:
        increment, seconds = cast(tuple[int, int], self._unpack(_TIMESTAMP))
        return Timestamp(seconds, increment)

    def read_utc_datetime(self, *, tz_aware: bool = True) -> datetime:
        start = self.pos
        milliseconds = cast(int, self._unpack(_INT64)[0])
        try:
            value = EPOCH + timedelta(milliseconds=milliseconds)
        except OverflowError as e:
            self.pos = start
            self.throw(
                f"UTC Time is outside the range of a Python datetime: "
                f"{milliseconds} milliseconds",
                cause=e,
            )
        return value if tz_aware else value.replace(tzinfo=None)

    def read_db_pointer(self) -> DBRef:
        namespace = self.read_string()
        return DBRef(namespace, self.read_object_id())

    def read_document_items(self, ctx: DecodeContext) -> list[tuple[str, object]]:
        """Read the length, elements and terminating NUL of a document."""
        start = self.pos
        if self.depth >= MAX_NESTING_DEPTH:
            self.throw(
                f"Documents and arrays must not be nested more than "
                f"{MAX_NESTING_DEPTH} deep"
            )
        length = self.read_int32()
        if length < MIN_DOCUMENT_SIZE:
            self.pos = start
            self.throw(
                f"Document length must be at least {MIN_DOCUMENT_SIZE}, not {length}"
            )
        self.pos = start
        self.ensure_capacity(length)
        end = start + length
        if self.data[end - 1] != 0:
            self.throw("Document is not terminated by a NUL byte")
        self.pos = start + 4

        items: list[tuple[str, object]] = []
        parent_end, self.end = self.end, end - 1
        self.depth += 1
        try:
            while not self.eof:
                tag = self.read_tag()
                if tag == 0:
                    self.pos -= 1
                    self.throw("Document ended before its declared length")
                name = self.read_cstring()
                items.append((name, ctx.decode_object(tag=tag)))
        finally:
            self.end = parent_end
            self.depth -= 1
        self.pos = end
        return items


_INT32: Final = struct.Struct("<i")
_INT64: Final = struct.Struct("<q")
_DOUBLE: Final = struct.Struct("<d")
_TIMESTAMP: Final = struct.Struct("<II")


class TagReaderFn(Protocol):
    """
    The type of a function that reads tags on behalf of a `TagReader`.

    Typically this is an unbound method of `TagReader`.
    """

    def __call__(
        self,
        tag_reader: TagReader,
        tag: BSONType,
        ctx: DecodeContext,
        /,
    ) -> object: ...


@dataclass(init=False, slots=True)
class TagReaderRegistry:
    """
    A registry of `BSONType` tags and the functions that can read them.

    `TagReader` uses this to dispatch decode calls to an appropriate function.
    """

    index: Mapping[BSONType, TagReaderFn]
    _index: dict[BSONType, TagReaderFn]

    def __init__(self, entries: TagReaderRegistry | None = None) -> None:
        self._index = {}
        self.index = MappingProxyType(self._index)
        if entries:
            self.register_all(entries)

    def register(self, tag: BSONType, tag_reader: TagReaderFn) -> None:
        """Associate a function with a tag, so that `match()` will return it."""
        self._index[tag] = tag_reader

    def register_all(self, registry: TagReaderRegistry) -> None:
        """
        Copy the registrations of another registry into this one.

        Existing registrations that also occur in `registry` are overwritten.
        """
        self._index.update(registry.index)

    def match(self, tag: AnyTag) -> TagReaderFn | None:
        """Get the `TagReaderFn` function registered for a tag, or `None`."""
        return self._index.get(cast(BSONType, tag))


class ReadableTagStreamReadFunction(Protocol):
    """The type of an unbound, argument-less `ReadableTagStream` method."""

    def __call__(self, cls: ReadableTagStream, /) -> object: ...

    @property
    def __name__(self) -> str: ...


def read_stream(rts_fn: ReadableTagStreamReadFunction) -> TagReaderFn:
    """Create a `TagReaderFn` that calls a `read_xxx` function on the stream."""
    read_fn = operator.methodcaller(rts_fn.__name__)

    def read_stream__tag_reader(
        tag_mapper: TagReader, tag: BSONType, ctx: DecodeContext
    ) -> object:
        return read_fn(ctx.stream)

    read_stream__tag_reader.__name__ = (
        f"{read_stream__tag_reader.__name__}#{rts_fn.__name__}"
    )
    read_stream__tag_reader.__qualname__ = (
        f"{read_stream__tag_reader.__qualname__}#{rts_fn.__name__}"
    )

    return read_stream__tag_reader


class DecodeContext(Protocol):
    if TYPE_CHECKING:

        @property
        def stream(self) -> ReadableTagStream:
            """The `ReadableTagStream` this context reads from."""

    else:
        stream: ReadableTagStream
        """The `ReadableTagStream` this context reads from."""

    def decode_object(self, *, tag: AnyTag) -> object:
        """
        Return a value by reading a tag's data from this context's stream.

        The stream is positioned on the value of an element with type `tag`,
        after its tag and name.

        Raises
        ------
        UnhandledTagError
            If it's not possible to read the tag.
        """


class DecodeNextFn(Protocol):
    """
    Delegate to the next decode step in the sequence to read a tag from the stream.

    Returns
    -------
    :
        The value representing the tag the next decode step read.

    Raises
    ------
    UnhandledTagError
        If none of the following decode steps were able to read the tag.
    """

    def __call__(self, tag: AnyTag, /) -> object: ...


class DecodeStepFn(Protocol):
    """
    The signature of a function that returns objects to reflect BSON data.

    Decode steps can either read the `ctx.stream` directly, or delegate to the
    next decode step by calling `next()`. Steps can modify the value decoded
    by the next step before returning it.
    """

    def __call__(
        self, tag: AnyTag, /, ctx: DecodeContext, next: DecodeNextFn
    ) -> object: ...


class DecodeStepObject(Protocol):
    decode: DecodeStepFn
    """The same as `DecodeStepFn`."""


DecodeStep: TypeAlias = "DecodeStepObject | DecodeStepFn"
"""Either a `DecodeStepObject` or `DecodeStepFn`."""


@dataclass(init=False, slots=True)
class DefaultDecodeContext(DecodeContext):
    """
    The default implementation of [`DecodeContext`].

    [`DecodeContext`]: `bsonserialize.decode.DecodeContext`
    """

    decode_steps: Sequence[DecodeStep]
    stream: ReadableTagStream

    def __init__(
        self,
        *,
        data: bytes | None = None,
        stream: ReadableTagStream | None = None,
        decode_steps: Iterable[DecodeStep] | None = None,
    ) -> None:
        if stream is None:
            if data is None:
                raise ValueError("data or stream must be provided")
            stream = ReadableTagStream(data)
        elif data is not None:
            raise ValueError("data and stream cannot both be provided")

        self.stream = stream
        self.decode_steps = list(
            default_decode_steps if decode_steps is None else decode_steps
        )

    def __decode_tag_with_step(self, tag: AnyTag, *, i: int) -> object:
        if i < len(self.decode_steps):
            tm = self.decode_steps[i]
            next = partial(self.__decode_tag_with_step, i=i + 1)
            if callable(tm):
                return tm(tag, ctx=self, next=next)
            else:
                return tm.decode(tag, ctx=self, next=next)
        self._report_unhandled_tag(tag)
        raise AssertionError("report_unhandled_tag returned")

    def decode_object(self, *, tag: AnyTag) -> object:
        return self.__decode_tag_with_step(tag, i=0)

    def _report_unhandled_tag(self, tag: AnyTag) -> Never:
        name = tag.name if isinstance(tag, BSONType) else f"0x{tag:02X}"
        raise UnhandledTagError(
            f"No decode step was able to read the tag {name}",
            tag=tag,
            position=self.stream.pos,
            data=self.stream.data,
        )


@dataclass(init=False, slots=True)
class TagReader(DecodeStepObject):
    """
    Controls how BSON data is converted to Python values when deserializing.

    Customise the way BSON values are represented in Python by creating a
    `TagReader` instance with non-default options, and passing it to the
    `decode_steps` option of `bsonserialize.Decoder()`.

    [Document]: `bsonserialize.Document`

    Parameters
    ----------
    tag_readers
        Override the tag reader functions implied by other arguments.
        Default: no overrides.
    document_type
        A function returning an empty `dict` to represent documents.
        Default: [Document].
    tz_aware
        If true, UTC Time values are `datetime`s with the UTC timezone,
        otherwise they are naive `datetime`s in UTC. Default: true.
    """

    tag_readers: TagReaderRegistry
    document_type: DocumentType
    tz_aware: bool

    def __init__(
        self,
        tag_readers: TagReaderRegistry | None = None,
        document_type: DocumentType | None = None,
        tz_aware: bool = True,
    ) -> None:
        self.document_type = document_type or Document
        self.tz_aware = tz_aware

        self.tag_readers = TagReaderRegistry()
        self.register_tag_readers(self.tag_readers)
        if tag_readers:
            self.tag_readers.register_all(tag_readers)

    def register_tag_readers(self, tag_readers: TagReaderRegistry) -> None:
        r = tag_readers.register

        # fmt: off

        # primitives, just read the stream directly
        r(BSONType.Double, read_stream(ReadableTagStream.read_double))
        r(BSONType.String, read_stream(ReadableTagStream.read_string))
        r(BSONType.ObjectId, read_stream(ReadableTagStream.read_object_id))
        r(BSONType.Boolean, read_stream(ReadableTagStream.read_boolean))
        r(BSONType.Regex, read_stream(ReadableTagStream.read_regexp))
        r(BSONType.DBPointer, read_stream(ReadableTagStream.read_db_pointer))
        r(BSONType.Binary, read_stream(ReadableTagStream.read_binary))
        r(BSONType.Int32, read_stream(ReadableTagStream.read_int32))
        r(BSONType.Timestamp, read_stream(ReadableTagStream.read_timestamp))
        r(BSONType.Int64, read_stream(ReadableTagStream.read_int64))

        # Tags which require tag-specific behaviour
        r(BSONType.Null, TagReader.deserialize_constant)
        r(BSONType.Undefined, TagReader.deserialize_constant)
        r(BSONType.MinKey, TagReader.deserialize_constant)
        r(BSONType.MaxKey, TagReader.deserialize_constant)
        r(BSONType.Document, TagReader.deserialize_document)
        r(BSONType.Array, TagReader.deserialize_array)
        r(BSONType.UTCDatetime, TagReader.deserialize_utc_datetime)
        r(BSONType.JavaScript, TagReader.deserialize_code)
        r(BSONType.Symbol, TagReader.deserialize_symbol)
        r(BSONType.JavaScriptWithScope, TagReader.deserialize_code_with_scope)

        # fmt: on

    def decode(self, tag: AnyTag, /, ctx: DecodeContext, next: DecodeNextFn) -> object:
        read_tag = self.tag_readers.match(tag)
        if not read_tag:
            return next(tag)
        return read_tag(self, cast(BSONType, tag), ctx)

    def deserialize_constant(self, tag: BSONType, ctx: DecodeContext) -> object:
        return _CONSTANTS[tag]

    def deserialize_document(
        self, tag: Literal[BSONType.Document], ctx: DecodeContext
    ) -> Mapping[DocumentKey, object] | DBRef:
        assert tag == BSONType.Document
        items = ctx.stream.read_document_items(ctx)
        if len(items) == 2:
            fields = dict(items)
            namespace, object_id = fields.get(REF_KEY), fields.get(ID_KEY)
            if isinstance(namespace, str) and isinstance(object_id, ObjectId):
                return DBRef(namespace, object_id)
        document = self.document_type()
        document.update(items)
        return document

    def deserialize_array(
        self, tag: Literal[BSONType.Array], ctx: DecodeContext
    ) -> list[object]:
        assert tag == BSONType.Array
        start = ctx.stream.pos
        items = ctx.stream.read_document_items(ctx)
        for i, (name, _) in enumerate(items):
            if name != str(i):
                ctx.stream.pos = start
                ctx.stream.throw(
                    f"Array element {i} has the name {name!r} instead of {str(i)!r}"
                )
        return [value for _, value in items]

    def deserialize_utc_datetime(
        self, tag: Literal[BSONType.UTCDatetime], ctx: DecodeContext
    ) -> datetime:
        return ctx.stream.read_utc_datetime(tz_aware=self.tz_aware)

    def deserialize_code(
        self, tag: Literal[BSONType.JavaScript], ctx: DecodeContext
    ) -> Code:
        return Code(ctx.stream.read_string())

    def deserialize_symbol(
        self, tag: Literal[BSONType.Symbol], ctx: DecodeContext
    ) -> Symbol:
        return Symbol(ctx.stream.read_string())

    def deserialize_code_with_scope(
        self, tag: Literal[BSONType.JavaScriptWithScope], ctx: DecodeContext
    ) -> CodeWithScope:
        stream = ctx.stream
        start = stream.pos
        length = stream.read_int32()
        source = stream.read_string()
        scope = self.document_type()
        scope.update(stream.read_document_items(ctx))
        if stream.pos - start != length:
            stream.pos = start
            stream.throw(
                f"JavaScript code with scope has a declared length of {length} "
                f"but its content is {stream.pos - start} bytes"
            )
        return CodeWithScope(source, scope)


_CONSTANTS: Final[Mapping[BSONType, object]] = MappingProxyType(
    {
        BSONType.Null: None,
        BSONType.Undefined: None,
        BSONType.MinKey: MinKey,
        BSONType.MaxKey: MaxKey,
    }
)

default_decode_steps: Final[Sequence[DecodeStep]] = (TagReader(),)
"""
The default sequence of decode steps used to map BSON tags to Python objects.

This is an instance of [`TagReader`](`bsonserialize.decode.TagReader`) with no
options changed from the defaults.
"""


@dataclass(init=False)
class Decoder:
    """
    A re-usable configuration for deserializing BSON documents.

    [`deserialize()`]: `bsonserialize.deserialize`

    Parameters
    ----------
    decode_steps
        A sequence of decode steps, which are responsible for creating Python
        values to represent the BSON values found when decoding data. Default:
        a [`TagReader`](`bsonserialize.decode.TagReader`) created with
        `document_type` and `tz_aware`.
    document_type
        A function returning an empty `dict` to represent documents.
    tz_aware
        Whether UTC Time values are timezone-aware `datetime`s.

    Examples
    --------
    >>> data = bytes.fromhex("0c0000001061000100000000")
    >>> Decoder().decodes(data)
    Document({'a': 1})
    >>> Decoder(document_type=dict).decodes(data)
    {'a': 1}
    """

    decode_steps: Sequence[DecodeStep]
    """The sequence of decode steps that define how to create Python values."""

    def __init__(
        self,
        decode_steps: Iterable[DecodeStep] | None = None,
        *,
        document_type: DocumentType | None = None,
        tz_aware: bool = True,
    ) -> None:
        if decode_steps is None:
            if document_type is None and tz_aware:
                decode_steps = default_decode_steps
            else:
                decode_steps = (
                    TagReader(document_type=document_type, tz_aware=tz_aware),
                )
        self.decode_steps = tuple(decode_steps)

    def decode(self, fp: SupportsRead[bytes]) -> Mapping[DocumentKey, object]:
        """
        Deserialize a BSON document from a file.

        Parameters
        ----------
        fp
            The file-like object to read and deserialize.

        Returns
        -------
        :
            The document in `fp`.
        """
        return self.decodes(fp.read())

    def decodes(self, data: Buffer) -> Mapping[DocumentKey, object]:
        """
        Deserialize a BSON document from a bytes-like object.

        `data` must contain exactly one complete document.

        Parameters
        ----------
        data
            The bytes-like object to deserialize.

        Returns
        -------
        :
            The document in `data`.

        Raises
        ------
        DecodeError
            If the data is not a well-formed BSON document.
        UnhandledTagError
            If the data contains a type tag that the decode steps can't read.
        """
        if not isinstance(data, bytes):
            data = bytes(memoryview(data))
        ctx = DefaultDecodeContext(data=data, decode_steps=self.decode_steps)
        stream = ctx.stream
        if len(data) < MIN_DOCUMENT_SIZE:
            stream.throw(
                f"Data truncated: A document is at least {MIN_DOCUMENT_SIZE} "
                f"bytes but the data is {len(data)} bytes"
            )
        length = stream.read_int32()
        if length != len(data):
            stream.pos = 0
            stream.throw(
                f"Document length is {length} but the data is {len(data)} bytes"
            )
        stream.pos = 0

        # The top-level document is never read as a DBRef
        document = self._new_document()
        document.update(stream.read_document_items(ctx))
        return document

    def _new_document(self) -> MutableMapping[DocumentKey, object]:
        for step in self.decode_steps:
            if isinstance(step, TagReader):
                return step.document_type()
        return Document()


def deserialize(
    data: Buffer,
    *,
    document_type: DocumentType | None = None,
    tz_aware: bool = True,
    decode_steps: Iterable[DecodeStep] | None = None,
) -> Mapping[DocumentKey, object]:
    """
    Deserialize a BSON document.

    Parameters
    ----------
    data
        A bytes-like object containing exactly one complete BSON document.
    document_type
        A function returning an empty `dict` to represent documents.
        Default: `bsonserialize.Document`.
    tz_aware
        If true, UTC Time values are `datetime`s with the UTC timezone,
        otherwise they are naive `datetime`s in UTC.
    decode_steps
        A sequence of decode steps, which create Python values to represent
        the BSON values found in the data. When set, `document_type` and
        `tz_aware` are not used.

    Returns
    -------
    :
        The deserialized document.

    Raises
    ------
    DecodeError
        If the data is not a well-formed BSON document, or nests documents and
        arrays more than `MAX_NESTING_DEPTH` deep.
    UnhandledTagError
        If the data contains a type tag that the decode steps can't read.

    Examples
    --------
    >>> from bsonserialize import serialize
    >>> deserialize(serialize({"hello": "world"}))
    Document({'hello': 'world'})
    """
    decoder = Decoder(decode_steps, document_type=document_type, tz_aware=tz_aware)
    return decoder.decodes(data)
