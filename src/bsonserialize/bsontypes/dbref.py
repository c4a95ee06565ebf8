from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from bsonserialize._errors import InvalidArgumentError
from bsonserialize.bsontypes.objectid import ObjectId

REF_KEY: Final = "$ref"
ID_KEY: Final = "$id"


@dataclass(frozen=True, order=True, slots=True)
class DBRef:
    """A reference to a document in another collection.

    DBRefs are serialized as an embedded document with `$ref` and `$id`
    fields, and documents of exactly that shape deserialize as `DBRef`.

    >>> DBRef("users", ObjectId("5f0c8e2a1b2c3d4e5f607182")).namespace
    'users'
    """

    namespace: str
    """The name of the collection the referenced document is in."""
    object_id: ObjectId
    """The `_id` of the referenced document."""

    def __post_init__(self) -> None:
        if not isinstance(self.namespace, str):
            raise InvalidArgumentError(
                f"DBRef namespace must be a str, not {type(self.namespace).__name__}"
            )
        if not isinstance(self.object_id, ObjectId):
            raise InvalidArgumentError(
                f"DBRef object_id must be an ObjectId, not "
                f"{type(self.object_id).__name__}"
            )
