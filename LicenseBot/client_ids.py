from __future__ import annotations

import logging
import re
import secrets
import string
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Set

log = logging.getLogger("license-bot")

POLICIES = ("sequential", "random")
RANDOM_ALPHABET = string.ascii_uppercase + string.digits
_NUMERIC_SUFFIX = re.compile(r"(\d+)$")


class ClientIdAllocator:
    """Derive the next client id from the ids already in the sheet.

    sequential: highest numeric suffix + 1, zero-padded (``CLT-00042`` -> ``CLT-00043``).
    random:     5 uppercase alphanumerics, retried on collision; after ``max_attempts``
                collisions falls back to ``<prefix>ERR-<utc timestamp>``.

    The caller must pass the ids as they are right now; nothing here locks the sheet.
    """

    def __init__(
        self,
        policy: str = "sequential",
        prefix: str = "",
        *,
        width: int = 5,
        max_attempts: int = 15,
        choice: Callable[[str], str] = secrets.choice,
        now: Optional[Callable[[], datetime]] = None,
    ):
        if policy not in POLICIES:
            raise ValueError(f"Unknown client id policy: {policy!r} (expected one of {', '.join(POLICIES)})")
        self.policy = policy
        self.prefix = prefix or ""
        self.width = int(width)
        self.max_attempts = max(1, int(max_attempts))
        self._choice = choice
        self._now = now or (lambda: datetime.now(timezone.utc))

    def next_id(self, existing_ids: Iterable[str]) -> str:
        existing: Set[str] = {str(i or "").strip() for i in existing_ids}
        existing.discard("")
        if self.policy == "sequential":
            return self._next_sequential(existing)
        return self._next_random(existing)

    def _next_sequential(self, existing: Set[str]) -> str:
        highest = 0
        for cid in existing:
            m = _NUMERIC_SUFFIX.search(cid)
            if m:
                highest = max(highest, int(m.group(1)))
        return f"{self.prefix}{highest + 1:0{self.width}d}"

    def _random_suffix(self) -> str:
        return "".join(self._choice(RANDOM_ALPHABET) for _ in range(self.width))

    def _next_random(self, existing: Set[str]) -> str:
        for _ in range(self.max_attempts):
            candidate = f"{self.prefix}{self._random_suffix()}"
            if candidate not in existing:
                return candidate
        stamp = self._now().strftime("%Y%m%d%H%M%S%f")
        fallback = f"{self.prefix}ERR-{stamp}"
        n = 1
        while fallback in existing:
            fallback = f"{self.prefix}ERR-{stamp}-{n}"
            n += 1
        log.error(f"[ClientIds] Random allocation exhausted {self.max_attempts} attempts; using fallback {fallback}")
        return fallback
