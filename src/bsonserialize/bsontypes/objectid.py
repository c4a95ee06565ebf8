from __future__ import annotations

import hashlib
import logging
import os
import socket
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Final

from bsonserialize._errors import InvalidArgumentError

if TYPE_CHECKING:
    from typing_extensions import Buffer

logger = logging.getLogger(__name__)

OBJECT_ID_SIZE: Final = 12
COUNTER_LIMIT: Final = 2**24
"""The counter field is 3 bytes, it wraps back to 0 when it reaches this."""


def _machine_id() -> bytes:
    hostname = socket.gethostname().encode("utf-8", errors="replace")
    return hashlib.md5(hostname, usedforsecurity=False).digest()[:3]


@dataclass(init=False)
class ObjectIdGenerator:
    """Generates the bytes of new ObjectIds.

    Each id is the current time in seconds, a 3 byte machine id, the 2 byte
    process id and a 3 byte counter. The counter is shared by all threads
    using the generator; it is incremented under a lock and wraps at 2^24.
    Ids generated in the same second by the same machine and process are
    distinct unless the counter wraps within that second.

    The process id is re-read when it changes, so a forked child process does
    not generate the same ids as its parent.
    """

    machine_id: bytes
    _pid: int = field(repr=False)
    _counter: int = field(repr=False)
    _lock: threading.Lock = field(repr=False)

    def __init__(self, *, machine_id: bytes | None = None, counter: int = 0) -> None:
        if machine_id is None:
            machine_id = _machine_id()
        if len(machine_id) != 3:
            raise InvalidArgumentError("machine_id must be 3 bytes")
        self.machine_id = bytes(machine_id)
        self._pid = os.getpid()
        self._counter = counter % COUNTER_LIMIT
        self._lock = threading.Lock()

    def next_counter(self) -> int:
        """Get the next value of the counter."""
        with self._lock:
            value = self._counter
            self._counter = wrapped = (value + 1) % COUNTER_LIMIT
        if wrapped == 0:
            logger.debug("ObjectId counter wrapped around to 0")
        return value

    def generate(self, seconds: int | None = None) -> bytes:
        """Get the 12 bytes of a new ObjectId."""
        if seconds is None:
            seconds = int(time.time())
        pid = os.getpid()
        if pid != self._pid:
            logger.debug("Process id changed from %d to %d", self._pid, pid)
            self._pid = pid
        return (
            (seconds & 0xFFFFFFFF).to_bytes(4, "big")
            + self.machine_id
            + (pid & 0xFFFF).to_bytes(2, "big")
            + self.next_counter().to_bytes(3, "big")
        )


default_object_id_generator: Final = ObjectIdGenerator()
"""The process-wide generator used when an ObjectId is created without one."""


@dataclass(frozen=True, order=True, slots=True, init=False)
class ObjectId:
    """A 12 byte identifier, unique to the machine, process and moment it
    was created in.

    Parameters
    ----------
    oid
        The 12 bytes of an existing id, its 24 character hex string, or
        another `ObjectId`. A new id is generated if this is `None`.
    generator
        Generates a new id when `oid` is `None`. Defaults to the process-wide
        generator.

    Examples
    --------
    >>> oid = ObjectId("5f0c8e2a1b2c3d4e5f607182")
    >>> str(oid)
    '5f0c8e2a1b2c3d4e5f607182'
    >>> oid == ObjectId(bytes.fromhex("5f0c8e2a1b2c3d4e5f607182"))
    True
    >>> ObjectId() != ObjectId()
    True
    """

    binary: bytes
    """The 12 bytes of the id."""

    def __init__(
        self,
        oid: ObjectId | Buffer | str | None = None,
        *,
        generator: ObjectIdGenerator | None = None,
    ) -> None:
        if oid is None:
            binary = (generator or default_object_id_generator).generate()
        elif isinstance(oid, ObjectId):
            binary = oid.binary
        elif isinstance(oid, str):
            if len(oid) != OBJECT_ID_SIZE * 2:
                raise InvalidArgumentError(
                    f"ObjectId hex string must have {OBJECT_ID_SIZE * 2} "
                    f"characters: {oid!r}"
                )
            try:
                binary = bytes.fromhex(oid)
            except ValueError as e:
                raise InvalidArgumentError(
                    f"ObjectId string is not hexadecimal: {oid!r}"
                ) from e
        else:
            try:
                binary = bytes(memoryview(oid))
            except TypeError as e:
                raise InvalidArgumentError(
                    f"ObjectId must be created from bytes, a hex str or an "
                    f"ObjectId, not {type(oid).__name__}"
                ) from e
            if len(binary) != OBJECT_ID_SIZE:
                raise InvalidArgumentError(
                    f"ObjectId must be {OBJECT_ID_SIZE} bytes: {binary!r}"
                )
        object.__setattr__(self, "binary", binary)

    @classmethod
    def from_datetime(cls, generation_time: datetime) -> ObjectId:
        """Create an id that sorts before all ids generated at or after a time.

        The id has zero machine, process and counter fields, so it's only
        useful as a boundary when querying by id. Naive datetimes are taken to
        be UTC.

        >>> from datetime import datetime, timezone
        >>> ObjectId.from_datetime(datetime(2020, 1, 1, tzinfo=timezone.utc))
        ObjectId('5e0be1000000000000000000')
        """
        if generation_time.tzinfo is None:
            generation_time = generation_time.replace(tzinfo=timezone.utc)
        seconds = int(generation_time.timestamp())
        return cls((seconds & 0xFFFFFFFF).to_bytes(4, "big") + bytes(8))

    @property
    def generation_time(self) -> datetime:
        """The UTC time the id was generated at, to the second."""
        seconds = int.from_bytes(self.binary[:4], "big")
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    def __str__(self) -> str:
        return self.binary.hex()

    def __repr__(self) -> str:
        return f"ObjectId({self.binary.hex()!r})"
