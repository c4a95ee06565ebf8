from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union, cast, overload

from bsonserialize.bsontypes.symbol import Symbol
from bsonserialize.constants import PRIMARY_KEY

if TYPE_CHECKING:
    from typing_extensions import TypeAlias, TypeGuard, TypeVar

    from _typeshed import SupportsKeysAndGetItem

    VT = TypeVar("VT", default=object)
else:
    from typing import TypeVar

    VT = TypeVar("VT")
U = TypeVar("U")

DocumentKey: TypeAlias = Union[str, Symbol]
"""The types a Document can be keyed by."""

_SYMBOL_PRIMARY_KEY = Symbol(PRIMARY_KEY)


def is_primary_key(key: object) -> bool:
    """Check if a key is either representation of the primary key, `_id`.

    >>> is_primary_key("_id"), is_primary_key(Symbol("_id")), is_primary_key("id")
    (True, True, False)
    """
    return key == PRIMARY_KEY or key == _SYMBOL_PRIMARY_KEY


@dataclass(init=False, eq=False)
class Document(MutableMapping[DocumentKey, VT]):
    """An ordered key-value document, the unit of BSON serialization.

    `Document` is a [Mapping] that remembers the order keys were first
    inserted in. Assigning to an existing key replaces its value without
    moving it. Keys are `str` or [`Symbol`]; `"_id"` and `Symbol("_id")` are
    separate keys, but both are the document's primary key and they are
    written as the same field name, so only one of them is serialized.

    [Mapping]: https://docs.python.org/3/glossary.html#term-mapping
    [`Symbol`]: `bsonserialize.bsontypes.Symbol`

    Parameters
    ----------
    init
        Another Mapping to copy items from, or a series of `(key, value)` pairs.
    kwargs
        Keyword arguments become items, and override items from `init` if
        names occur in both.

    Examples
    --------
    >>> doc = Document([("b", 1), ("a", 2)])
    >>> doc["b"] = 3
    >>> doc
    Document({'b': 3, 'a': 2})

    Equality between two Documents works like comparing their lists of items,
    so order matters:

    >>> Document(a=1, b=2) == Document(b=2, a=1)
    False

    Equality with other Mappings works like `dict` equality, order does not
    matter:

    >>> Document(a=1, b=2) == {"b": 2, "a": 1}
    True
    """

    __keys: list[DocumentKey]
    __index: dict[DocumentKey, VT]

    @overload
    def __init__(self, /) -> None: ...

    @overload
    def __init__(self: Document[VT], /, **kwargs: VT) -> None: ...

    @overload
    def __init__(
        self, map: SupportsKeysAndGetItem[DocumentKey, VT], /, **kwargs: VT
    ) -> None: ...

    @overload
    def __init__(
        self, iterable: Iterable[tuple[DocumentKey, VT]], /, **kwargs: VT
    ) -> None: ...

    def __init__(  # type: ignore[misc]
        self,
        init: (
            SupportsKeysAndGetItem[DocumentKey, VT]
            | Iterable[tuple[DocumentKey, VT]]
            | None
        ) = None,
        /,
        **kwargs: VT,
    ) -> None:
        self.__keys = []
        self.__index = {}
        if init is not None:
            self.update(init)
        if kwargs:
            self.update(kwargs)

    def __setitem__(self, key: DocumentKey, value: VT, /) -> None:
        if key not in self.__index:
            self.__keys.append(key)
        self.__index[key] = value

    def __delitem__(self, key: DocumentKey, /) -> None:
        del self.__index[key]
        self.__keys.remove(key)

    def __getitem__(self, key: DocumentKey, /) -> VT:
        return self.__index[key]

    def __contains__(self, key: object, /) -> bool:
        try:
            return key in self.__index
        except TypeError:  # unhashable
            return False

    def __iter__(self) -> Iterator[DocumentKey]:
        return iter(self.__keys)

    def __len__(self) -> int:
        return len(self.__keys)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if isinstance(other, Document):
            if len(self) != len(other):
                return False
            # Two Documents are equal if they contain equal items in the same order
            return all(x == y for x, y in zip(self.items(), other.items()))
        if isinstance(other, Mapping):
            return self.__index == dict(other.items())
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self.items())
        return f"{type(self).__name__}({{{items}}})"

    def clear(self) -> None:
        self.__keys.clear()
        self.__index.clear()

    def update(  # type: ignore[override]
        self,
        other: (
            SupportsKeysAndGetItem[DocumentKey, VT] | Iterable[tuple[DocumentKey, VT]]
        ) = (),
        /,
        **kwds: VT,
    ) -> None:
        if isinstance(other, Mapping):
            pairs: Iterable[tuple[DocumentKey, VT]] = other.items()
        elif _supports_keys_and_get_item(other):
            pairs = ((k, other[k]) for k in other.keys())
        else:
            pairs = cast(Iterable[tuple[DocumentKey, VT]], other)
        for k, v in pairs:
            self[k] = v
        for k, v in kwds.items():
            self[k] = v

    def copy(self) -> Document[VT]:
        """Get a shallow copy of the document, with the same key order."""
        return type(self)(self.items())

    def primary_key(self) -> DocumentKey | None:
        """Get the key the document's primary key is stored under, if any.

        The literal `"_id"` is preferred when both `"_id"` and `Symbol("_id")`
        are present.

        >>> Document([("a", 1), (Symbol("_id"), 2)]).primary_key()
        Symbol(name='_id')
        >>> Document([(Symbol("_id"), 2), ("_id", 1)]).primary_key()
        '_id'
        >>> Document(a=1).primary_key() is None
        True
        """
        if PRIMARY_KEY in self.__index:
            return PRIMARY_KEY
        if _SYMBOL_PRIMARY_KEY in self.__index:
            return _SYMBOL_PRIMARY_KEY
        return None

    @staticmethod
    def is_primary_key(key: object) -> bool:
        """Check if a key is either representation of the primary key, `_id`."""
        return is_primary_key(key)


def _supports_keys_and_get_item(
    x: SupportsKeysAndGetItem[DocumentKey, VT] | Iterable[tuple[DocumentKey, VT]],
) -> TypeGuard[SupportsKeysAndGetItem[DocumentKey, VT]]:
    return hasattr(x, "keys")
