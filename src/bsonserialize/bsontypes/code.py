from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bsonserialize._errors import InvalidArgumentError

if TYPE_CHECKING:
    from bsonserialize.document import DocumentKey


@dataclass(frozen=True, slots=True)
class Code:
    """JavaScript source code.

    >>> Code("function() { return 1; }")
    Code(source='function() { return 1; }')
    >>> Code(1)
    Traceback (most recent call last):
    ...
    bsonserialize._errors.InvalidArgumentError: Code must be in the form of a String
    """

    source: str

    def __post_init__(self) -> None:
        if not isinstance(self.source, str):
            raise InvalidArgumentError("Code must be in the form of a String")


@dataclass(frozen=True, slots=True)
class CodeWithScope(Code):
    """JavaScript source code with a document of variables it can refer to.

    The scope document's keys are not checked against key-name rules when
    serialized.
    """

    scope: Mapping[DocumentKey, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super(CodeWithScope, self).__post_init__()
        if not isinstance(self.scope, Mapping):
            raise InvalidArgumentError(
                f"CodeWithScope scope must be a Mapping, not "
                f"{type(self.scope).__name__}"
            )
