from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Final, Literal

if TYPE_CHECKING:
    from typing_extensions import TypeAlias


class BSONBoundEnum(Enum):
    """Defines the MinKey and MaxKey enum values.

    MinKey compares lower than, and MaxKey higher than, every other value.
    """

    MinKey = "MinKey"
    """Represents the BSON MinKey value."""
    MaxKey = "MaxKey"
    """Represents the BSON MaxKey value."""

    def __repr__(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    def __lt__(self, other: object) -> bool:
        if self is other:
            return False
        return self is BSONBoundEnum.MinKey

    def __le__(self, other: object) -> bool:
        return self is other or self < other

    def __gt__(self, other: object) -> bool:
        if self is other:
            return False
        return self is BSONBoundEnum.MaxKey

    def __ge__(self, other: object) -> bool:
        return self is other or self > other


MinKeyType: TypeAlias = Literal[BSONBoundEnum.MinKey]
MaxKeyType: TypeAlias = Literal[BSONBoundEnum.MaxKey]
MinKey: Final = BSONBoundEnum.MinKey
"""Represents the BSON MinKey value."""
MaxKey: Final = BSONBoundEnum.MaxKey
"""Represents the BSON MaxKey value."""
