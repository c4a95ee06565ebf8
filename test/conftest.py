from __future__ import annotations

from collections.abc import Generator

import pytest

from bsonserialize.constants import DEFAULT_MAX_BSON_SIZE
from bsonserialize.size import default_size_guard


@pytest.fixture(autouse=True)
def reset_default_size_guard() -> Generator[None]:
    """Tests that change the process-wide size ceiling don't affect others."""
    yield
    default_size_guard.update(DEFAULT_MAX_BSON_SIZE)
