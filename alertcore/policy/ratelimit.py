from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Iterable, Optional

RATE_WINDOW = timedelta(hours=1)


class SendLedger:
    """Time-ordered record of delivery timestamps.

    Entries older than the rate window are pruned when counted, never on a
    timer.
    """

    def __init__(
        self, window: timedelta = RATE_WINDOW, entries: Optional[Iterable[datetime]] = None
    ) -> None:
        self.window = window
        self._entries: Deque[datetime] = deque(sorted(entries or []))

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, ts: datetime) -> None:
        # keep ordering if a caller records out of order (clock skew)
        if self._entries and ts < self._entries[-1]:
            self._entries = deque(sorted([*self._entries, ts]))
            return
        self._entries.append(ts)

    def sends_in_last_hour(self, now: datetime) -> int:
        cutoff = now - self.window
        while self._entries and self._entries[0] < cutoff:
            self._entries.popleft()
        return sum(1 for ts in self._entries if ts <= now)


def sends_in_last_hour(ledger: SendLedger, now: datetime) -> int:
    return ledger.sends_in_last_hour(now)
