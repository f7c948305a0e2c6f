"""Per-transfer progress throttling shared by uploads and downloads."""

from __future__ import annotations

import time
from typing import Callable, Optional

__all__ = ["DEFAULT_PROGRESS_INTERVAL_S", "TransferSession"]

DEFAULT_PROGRESS_INTERVAL_S = 0.1


class TransferSession:
    """Rate-limit progress events for one upload or download invocation.

    A session is created per logical transfer and discarded with its worker,
    so concurrent transfers never share a timestamp. Intermediate events are
    emitted at most once per ``interval_s`` and only when they move past the
    highest byte count already reported; that keeps the sequence
    non-decreasing even when a failed attempt restarts from byte 0. Events
    flagged ``final`` bypass both checks.

    Examples:
        >>> ticks = iter([0.0, 0.05, 0.2])
        >>> seen = []
        >>> session = TransferSession(lambda done, total: seen.append(done), clock=lambda: next(ticks))
        >>> [session.update(n, 30) for n in (10, 20)]
        [True, False]
        >>> session.update(30, 30, final=True)
        True
        >>> seen
        [10, 30]
    """

    def __init__(
        self,
        emit: Callable[[int, int], object],
        *,
        interval_s: float = DEFAULT_PROGRESS_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._emit = emit
        self._interval_s = max(0.0, float(interval_s))
        self._clock = clock
        self._last_emit: Optional[float] = None
        self._high_water = -1

    @property
    def bytes_reported(self) -> int:
        return max(self._high_water, 0)

    def update(self, bytes_processed: int, bytes_total: int, *, final: bool = False) -> bool:
        """Report progress; returns ``True`` when an event was emitted."""

        now = self._clock()
        if not final:
            if bytes_processed <= self._high_water:
                return False
            if self._last_emit is not None and now - self._last_emit < self._interval_s:
                return False
        self._last_emit = now
        self._high_water = max(self._high_water, bytes_processed)
        self._emit(bytes_processed, bytes_total)
        return True
