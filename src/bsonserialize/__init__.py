"""The main public API of bsonserialize."""

from __future__ import annotations

from bsonserialize._cycles import CyclicContainerError as CyclicContainerError
from bsonserialize._errors import BSONSerializeError as BSONSerializeError
from bsonserialize._errors import DecodeError as DecodeError
from bsonserialize._errors import DocumentTooLargeError as DocumentTooLargeError
from bsonserialize._errors import ErrorKind as ErrorKind
from bsonserialize._errors import IntegerRangeError as IntegerRangeError
from bsonserialize._errors import InvalidArgumentError as InvalidArgumentError
from bsonserialize._errors import InvalidDocumentError as InvalidDocumentError
from bsonserialize._errors import InvalidKeyNameError as InvalidKeyNameError
from bsonserialize._errors import (
    InvalidStringEncodingError as InvalidStringEncodingError,
)
from bsonserialize._errors import UnhandledTagError as UnhandledTagError
from bsonserialize._errors import UnhandledValueError as UnhandledValueError
from bsonserialize.bsontypes import Binary as Binary
from bsonserialize.bsontypes import BSONRegExp as BSONRegExp
from bsonserialize.bsontypes import Code as Code
from bsonserialize.bsontypes import CodeWithScope as CodeWithScope
from bsonserialize.bsontypes import DBRef as DBRef
from bsonserialize.bsontypes import Int64 as Int64
from bsonserialize.bsontypes import MaxKey as MaxKey
from bsonserialize.bsontypes import MinKey as MinKey
from bsonserialize.bsontypes import ObjectId as ObjectId
from bsonserialize.bsontypes import ObjectIdGenerator as ObjectIdGenerator
from bsonserialize.bsontypes import Symbol as Symbol
from bsonserialize.bsontypes import Timestamp as Timestamp
from bsonserialize.constants import DEFAULT_MAX_BSON_SIZE as DEFAULT_MAX_BSON_SIZE
from bsonserialize.constants import BinarySubtype as BinarySubtype
from bsonserialize.constants import BSONType as BSONType
from bsonserialize.constants import RegExpFlag as RegExpFlag
from bsonserialize.decode import Decoder as Decoder
from bsonserialize.decode import DecodeStep as DecodeStep
from bsonserialize.decode import DecodeStepFn as DecodeStepFn
from bsonserialize.decode import DecodeStepObject as DecodeStepObject
from bsonserialize.decode import TagReader as TagReader
from bsonserialize.decode import default_decode_steps as default_decode_steps
from bsonserialize.decode import deserialize as deserialize
from bsonserialize.document import Document as Document
from bsonserialize.encode import Encoder as Encoder
from bsonserialize.encode import EncodeStep as EncodeStep
from bsonserialize.encode import EncodeStepFn as EncodeStepFn
from bsonserialize.encode import EncodeStepObject as EncodeStepObject
from bsonserialize.encode import TagWriter as TagWriter
from bsonserialize.encode import default_encode_steps as default_encode_steps
from bsonserialize.encode import serialize as serialize
from bsonserialize.size import SizeGuard as SizeGuard
from bsonserialize.size import default_size_guard as default_size_guard
from bsonserialize.size import max_size as max_size
from bsonserialize.size import update_max_size as update_max_size
from bsonserialize.validate import validate_cstring as validate_cstring
from bsonserialize.validate import validate_integer as validate_integer
from bsonserialize.validate import validate_key as validate_key
from bsonserialize.validate import validate_string as validate_string
