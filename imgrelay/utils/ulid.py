"""Request ID generation for imgrelay.

Every incoming request gets a ULID (26 characters, Crockford Base32,
lexicographically sortable by creation time). It is bound to the logging
context for the lifetime of the request and echoed to the client as the
``X-Request-ID`` response header, so a browser-side failure can be matched
to the server-side log lines that explain it.

Uses the ``python-ulid`` library — do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Example::

        request_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
        assert len(request_id) == 26
    """
    return str(ULID())
