"""Python types for the BSON values that have no built-in Python equivalent."""

from __future__ import annotations

from bsonserialize.bsontypes.binary import Binary
from bsonserialize.bsontypes.code import Code, CodeWithScope
from bsonserialize.bsontypes.dbref import DBRef
from bsonserialize.bsontypes.int64 import Int64
from bsonserialize.bsontypes.minmax import (
    BSONBoundEnum,
    MaxKey,
    MaxKeyType,
    MinKey,
    MinKeyType,
)
from bsonserialize.bsontypes.objectid import (
    ObjectId,
    ObjectIdGenerator,
    default_object_id_generator,
)
from bsonserialize.bsontypes.regexp import BSONRegExp
from bsonserialize.bsontypes.symbol import Symbol
from bsonserialize.bsontypes.timestamp import Timestamp

__all__ = [
    "Binary",
    "BSONBoundEnum",
    "BSONRegExp",
    "Code",
    "CodeWithScope",
    "DBRef",
    "default_object_id_generator",
    "Int64",
    "MaxKey",
    "MaxKeyType",
    "MinKey",
    "MinKeyType",
    "ObjectId",
    "ObjectIdGenerator",
    "Symbol",
    "Timestamp",
]
