from __future__ import annotations

import re
from dataclasses import dataclass, field
from re import Pattern, compile
from typing import AnyStr, Literal, overload

from bsonserialize._errors import InvalidArgumentError
from bsonserialize.constants import RegExpFlag


@dataclass(frozen=True, order=True, slots=True)
class BSONRegExp:
    """A regular expression pattern with BSON option characters.

    BSON stores the pattern text and its options, it does not define which
    regular expression dialect the pattern is written in. Patterns using
    syntax that is shared with Python can be compiled with
    [`as_python_pattern()`].

    [`as_python_pattern()`]: `bsonserialize.bsontypes.BSONRegExp.as_python_pattern`

    Parameters
    ----------
    pattern
        The expression's text.
    flags
        A `RegExpFlag`, or option characters like `"im"` in any order.

    >>> str(BSONRegExp("^a.c$", "mi").flags)
    'im'
    """

    pattern: str
    flags: RegExpFlag = field(default=RegExpFlag.NoFlag)

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, str):
            raise InvalidArgumentError(
                f"BSONRegExp pattern must be a str, not {type(self.pattern).__name__}"
            )
        if isinstance(self.flags, str):
            object.__setattr__(self, "flags", RegExpFlag.from_chars(self.flags))
        elif not isinstance(self.flags, RegExpFlag):
            object.__setattr__(self, "flags", RegExpFlag(self.flags))

    @staticmethod
    def from_python_pattern(pattern: re.Pattern[AnyStr]) -> BSONRegExp:
        """Create a BSONRegExp with the text and flags of a Python re.Pattern.

        The pattern text is not translated, so the result only behaves the
        same in other regular expression dialects if it uses compatible syntax.
        """
        if isinstance(pattern.pattern, bytes):
            source = pattern.pattern.decode()
        else:
            source = pattern.pattern
        return BSONRegExp(source, RegExpFlag.from_python_flags(pattern.flags))

    @overload
    def as_python_pattern(self, throw: Literal[False]) -> Pattern[str] | None: ...

    @overload
    def as_python_pattern(self, throw: Literal[True] = True) -> Pattern[str]: ...

    def as_python_pattern(self, throw: bool = True) -> Pattern[str] | None:
        """Naively compile the pattern as a Python re.Pattern.

        The pattern may fail to compile due to syntax Python doesn't support,
        or may compile but behave differently than it would in other dialects.
        """
        try:
            return compile(self.pattern, self.flags.as_python_flags())
        except (re.error, ValueError) as e:
            if throw:
                raise InvalidArgumentError(
                    f"BSONRegExp is not a valid Python re.Pattern: {e}"
                ) from e
            return None
