from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field

from bsonserialize._errors import InvalidDocumentError
from bsonserialize.constants import MAX_NESTING_DEPTH


@dataclass(init=False)
class CyclicContainerError(InvalidDocumentError):
    """A document or array contains itself, directly or through others."""

    container: object

    def __init__(self, message: str, *, container: object) -> None:
        super(CyclicContainerError, self).__init__(message)
        self.container = container


@dataclass(slots=True)
class ContainerLog:
    """The documents and arrays that are being written, outer-most first.

    BSON has no way to reference a value that occurs earlier in the data, so
    a container that is written inside itself would never terminate.
    """

    _open: dict[int, object] = field(default_factory=dict)
    max_depth: int = MAX_NESTING_DEPTH

    def __contains__(self, obj: object) -> bool:
        return id(obj) in self._open

    @property
    def depth(self) -> int:
        return len(self._open)

    @contextmanager
    def record_acyclic_container(self, obj: object) -> Generator[None]:
        """Record a container as being written until the block ends.

        Raises
        ------
        CyclicContainerError
            If the container is already being written.
        InvalidDocumentError
            If the container would be nested deeper than `max_depth`.
        """
        if id(obj) in self._open:
            raise CyclicContainerError(
                "A document or array cannot contain itself", container=obj
            )
        if len(self._open) >= self.max_depth:
            raise InvalidDocumentError(
                f"Documents and arrays must not be nested more than "
                f"{self.max_depth} deep"
            )
        self._open[id(obj)] = obj
        try:
            yield
        finally:
            del self._open[id(obj)]
