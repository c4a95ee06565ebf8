from __future__ import annotations

from datetime import timezone
from functools import cache
from typing import Final, TypeVar

from hypothesis import strategies as st

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
from bsonserialize.constants import INT32_RANGE, INT64_RANGE, BinarySubtype
from bsonserialize.document import Document

T = TypeVar("T")

UINT32_MAX: Final = 2**32 - 1
uint32s = st.integers(min_value=0, max_value=UINT32_MAX)

int32s = st.integers(min_value=INT32_RANGE.start, max_value=INT32_RANGE.stop - 1)
int64s = st.integers(min_value=INT64_RANGE.start, max_value=INT64_RANGE.stop - 1)

texts = st.text(st.characters(exclude_categories=["Cs"]))
"""Strings that can be encoded as UTF-8. They may contain NUL characters."""

cstrings = st.text(st.characters(exclude_categories=["Cs"], exclude_characters="\0"))
"""Strings that can be written as BSON null-terminated strings."""

keys = cstrings.filter(lambda k: not k.startswith("$"))
"""Document keys. Keys starting with $ are excluded, as `{"$ref": ..., "$id": ...}`
documents are read as DBRefs."""

object_ids = st.binary(min_size=12, max_size=12).map(ObjectId)

binaries = st.builds(
    Binary,
    st.binary(max_size=32),
    st.one_of(st.sampled_from(BinarySubtype), st.integers(0, 255)),
)

regexps = st.builds(
    BSONRegExp,
    cstrings,
    st.sets(st.sampled_from("ilmsux")).map("".join),
)

timestamps = st.builds(Timestamp, uint32s, uint32s)

utc_datetimes = st.datetimes(timezones=st.just(timezone.utc)).map(
    lambda dt: dt.replace(microsecond=dt.microsecond // 1000 * 1000)
)
"""Timezone-aware UTC datetimes with millisecond precision."""

dbrefs = st.builds(DBRef, texts, object_ids)


def documents(
    values: st.SearchStrategy[object], *, max_size: int | None = None
) -> st.SearchStrategy[Document[object]]:
    return st.dictionaries(keys, values, max_size=max_size).map(
        lambda d: Document(d.items())
    )


def any_atomic() -> st.SearchStrategy[object]:
    """Values that are not containers, and that deserialize as an equal value."""
    return st.one_of(
        st.none(),
        st.booleans(),
        int32s,
        int64s.map(Int64),
        st.floats(allow_nan=False),
        texts,
        texts.map(Symbol),
        texts.map(Code),
        object_ids,
        binaries,
        regexps,
        timestamps,
        utc_datetimes,
        dbrefs,
        st.sampled_from([MinKey, MaxKey]),
    )


# https://hypothesis.works/articles/recursive-data/
@cache
def any_value(max_leaves: int = 5) -> st.SearchStrategy[object]:
    return st.recursive(
        any_atomic(),
        lambda children: st.one_of(
            st.lists(children, max_size=4),
            documents(children, max_size=4),
            st.builds(CodeWithScope, texts, documents(children, max_size=3)),
        ),
        max_leaves=max_leaves,
    )


def any_document(max_leaves: int = 5) -> st.SearchStrategy[Document[object]]:
    return documents(any_value(max_leaves=max_leaves), max_size=6)
