"""Checks applied to keys, strings and integers before they are written."""

from __future__ import annotations

from bsonserialize._errors import (
    IntegerRangeError,
    InvalidArgumentError,
    InvalidDocumentError,
    InvalidKeyNameError,
    InvalidStringEncodingError,
)
from bsonserialize.bsontypes.symbol import Symbol
from bsonserialize.constants import INT64_RANGE


def validate_string(value: str | bytes | bytearray, encoding: str = "utf-8") -> bytes:
    """Get the well-formed UTF-8 encoding of a string.

    `str` values are encoded directly. `bytes` values are first decoded from
    `encoding`, so that text in any encoding is converted to UTF-8.

    Raises
    ------
    InvalidStringEncodingError
        If `value` contains lone surrogates, or its bytes are not valid in
        `encoding`.

    Examples
    --------
    >>> validate_string("héllo")
    b'h\\xc3\\xa9llo'
    >>> validate_string(b"h\\xe9llo", encoding="latin-1")
    b'h\\xc3\\xa9llo'
    """
    if isinstance(value, (bytes, bytearray)):
        try:
            value = bytes(value).decode(encoding)
        except UnicodeDecodeError as e:
            raise InvalidStringEncodingError(
                f"String is not valid {encoding}: {e.reason}", value=value
            ) from e
        except LookupError as e:
            raise InvalidArgumentError(f"Unknown encoding: {encoding!r}") from e
    elif not isinstance(value, str):
        raise InvalidArgumentError(
            f"Expected a str or bytes, not {type(value).__name__}"
        )
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidStringEncodingError(
            f"String is not valid UTF-8: {e.reason}", value=value
        ) from e


def validate_cstring(value: str | bytes | bytearray) -> bytes:
    """Get the NUL-terminated UTF-8 encoding of a string.

    Raises
    ------
    InvalidDocumentError
        If the string contains a NUL character.
    InvalidStringEncodingError
        As `validate_string()`.

    >>> validate_cstring("a.c")
    b'a.c\\x00'
    """
    encoded = validate_string(value)
    if b"\0" in encoded:
        raise InvalidDocumentError(
            f"Null-terminated strings must not contain the NUL byte: {value!r}"
        )
    return encoded + b"\0"


def validate_key(key: object, *, check_keys: bool) -> bytes:
    """Get the NUL-terminated field name a document key is written as.

    Parameters
    ----------
    key
        A `str`, `Symbol` or UTF-8 `bytes` document key.
    check_keys
        When true, reject keys that start with `$` or contain `.`, which
        databases reserve for operators and paths into nested documents.

    Raises
    ------
    InvalidDocumentError
        If the key contains a NUL character, or is not a string type.
    InvalidKeyNameError
        If `check_keys` is true and the key starts with `$` or contains `.`.
    InvalidStringEncodingError
        If the key is not valid UTF-8.

    Examples
    --------
    >>> validate_key("he$llo", check_keys=True)
    b'he$llo\\x00'
    >>> validate_key("$hello", check_keys=False)
    b'$hello\\x00'
    """
    if isinstance(key, Symbol):
        name: str | bytes = key.name
    elif isinstance(key, (str, bytes)):
        name = key
    else:
        raise InvalidDocumentError(
            f"Document keys must be str or Symbol, not {type(key).__name__}: {key!r}"
        )

    encoded = validate_string(name)
    if b"\0" in encoded:
        raise InvalidDocumentError(f"Key names must not contain the NUL byte: {key!r}")
    if check_keys:
        text = encoded.decode("utf-8")
        if text.startswith("$"):
            raise InvalidKeyNameError("Key names must not start with '$'", key=text)
        if "." in text:
            raise InvalidKeyNameError("Key names must not contain '.'", key=text)
    return encoded + b"\0"


def validate_integer(value: int) -> int:
    """Check that an int can be represented as a signed 64-bit integer.

    Raises
    ------
    IntegerRangeError
        If the value is outside the signed 64-bit range.

    >>> validate_integer(2**63 - 1)
    9223372036854775807
    """
    if value not in INT64_RANGE:
        raise IntegerRangeError(
            f"Python int is too large to represent as a 64-bit integer: value "
            f"must be in {INT64_RANGE}",
            value=value,
        )
    return value
