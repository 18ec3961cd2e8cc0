"""Unit tests for imgrelay.utils.ulid — request id generation.

  #1: generate_ulid() returns a 26-character Crockford Base32 string
  #2: ids are unique across a burst of calls
  #3: ids sort by creation time
"""

from __future__ import annotations

import re
import time

from imgrelay.utils.ulid import generate_ulid

# Crockford Base32 charset: 0-9 and A-Z, excluding I, L, O, U
ULID_CHARSET = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def test_generate_ulid_format() -> None:
    result = generate_ulid()
    assert isinstance(result, str)
    assert ULID_CHARSET.match(result), f"{result!r} is not a ULID"


def test_generate_ulid_unique() -> None:
    ids = [generate_ulid() for _ in range(1000)]
    assert len(set(ids)) == 1000


def test_generate_ulid_time_ordered() -> None:
    first = generate_ulid()
    time.sleep(0.002)
    second = generate_ulid()
    # The first 10 characters encode the millisecond timestamp.
    assert first[:10] < second[:10]
