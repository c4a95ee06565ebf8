from __future__ import annotations

from dataclasses import dataclass

from bsonserialize._errors import InvalidArgumentError


@dataclass(frozen=True, order=True, slots=True)
class Symbol:
    """An interned name, the deprecated BSON Symbol type.

    A Symbol is never equal to a `str`, so `Symbol("_id")` and `"_id"` can
    both be keys of the same document. Both serialize as the field name
    `_id`, which is why the encoder only ever writes one of them.

    >>> Symbol("foo") == "foo"
    False
    >>> str(Symbol("foo"))
    'foo'
    """

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise InvalidArgumentError(
                f"Symbol name must be a str, not {type(self.name).__name__}"
            )

    def __str__(self) -> str:
        return self.name
