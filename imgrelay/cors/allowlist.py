"""Origin allowlist for imgrelay.

Holds the configured set of origins permitted to use the relay and answers
membership queries. Built once at startup from configuration and never
mutated afterwards — request handlers only read it.

Origins are compared in their normalized ``scheme://host[:port]`` form:
scheme and host lower-cased, IDN hosts in their ASCII (punycode) form, and the
default port for the scheme dropped. Matching is exact string equality; there
is no wildcard or suffix matching. An empty allowlist allows nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Union

import httpx


def origin_of(value: str) -> str:
    """Return the normalized origin of an absolute URL.

    Accepts a bare origin (``https://example.com``) or any absolute URL such as
    a ``Referer`` value (``https://example.com/page?x=1`` → ``https://example.com``).

    Raises:
        ValueError: ``value`` cannot be parsed, or has no scheme or no host.
    """
    try:
        url = httpx.URL(value.strip())
    except httpx.InvalidURL as exc:
        raise ValueError(f"Unparseable URL: {value!r}") from exc

    if not url.scheme or not url.host:
        raise ValueError(f"Not an absolute URL: {value!r}")

    host = url.raw_host.decode("ascii")
    if ":" in host:
        # IPv6 literal
        host = f"[{host}]"

    origin = f"{url.scheme}://{host}"
    # httpx reports the scheme's default port as None
    if url.port is not None:
        origin = f"{origin}:{url.port}"
    return origin


def parse_origins(entries: Union[str, Iterable[str], None]) -> tuple[str, ...]:
    """Normalize configured origins, preserving order and dropping duplicates.

    ``entries`` may be a comma-separated string (``ALLOWED_ORIGINS`` env var) or
    a list (YAML). Blank entries are skipped.

    Raises:
        ValueError: An entry is not a valid origin.
    """
    if entries is None:
        return ()
    if isinstance(entries, str):
        entries = entries.split(",")

    seen: dict[str, None] = {}
    for raw in entries:
        entry = str(raw).strip()
        if not entry:
            continue
        seen.setdefault(origin_of(entry), None)
    return tuple(seen)


@dataclass(frozen=True)
class OriginAllowlist:
    """Immutable set of allowed origins.

    ``origins`` keeps configuration order — the first entry is the value the
    CORS composer falls back to when a request's origin is not echoed.
    """

    origins: tuple[str, ...] = ()
    _members: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_members", frozenset(self.origins))

    @classmethod
    def from_config(cls, entries: Union[str, Iterable[str], None]) -> "OriginAllowlist":
        return cls(origins=parse_origins(entries))

    def is_allowed(self, origin: Optional[str]) -> bool:
        """Exact membership test against a normalized origin string."""
        if not origin:
            return False
        return origin in self._members

    @property
    def first(self) -> Optional[str]:
        return self.origins[0] if self.origins else None

    def __len__(self) -> int:
        return len(self.origins)

    def __bool__(self) -> bool:
        return bool(self.origins)

    def __iter__(self) -> Iterator[str]:
        return iter(self.origins)
