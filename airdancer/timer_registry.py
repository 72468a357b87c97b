"""Timer registry: at most one pending delayed action per target.

Each target key (a switch or group name) owns a single timer slot.
Arming a key that already has a pending timer cancels the old one and
starts a new one, so rapid re-arms coalesce into the last request::

    timers = TimerRegistry()
    timers.arm("lamp", 30.0, lambda: engine.turn_off("lamp"))
    timers.arm("lamp", 60.0, lambda: engine.turn_off("lamp"))  # replaces
    timers.cancel("fan")                                        # no-op

Timers run on daemon :class:`threading.Timer` threads.  Access to one
key is serialised by a per-key re-entrant lock; a firing timer checks
under that lock that it is still the live entry for its key, so a fire
and a concurrent cancel (or re-arm) never both take effect.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class TimerEntry:
    """One pending delayed action."""

    key: str
    delay: float
    action: Callable[[], None] = field(repr=False)
    deadline: float
    description: str = ""
    cancelled: bool = False
    _timer: Optional[threading.Timer] = field(
        default=None, repr=False, compare=False
    )

    @property
    def remaining(self) -> float:
        """Seconds until the action runs (``0`` once overdue)."""
        return max(0.0, self.deadline - time.monotonic())


class TimerRegistry:
    """Mapping from target key to a single cancellable timer."""

    def __init__(self) -> None:
        self._entries: Dict[str, TimerEntry] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, key: str) -> threading.RLock:
        """Return the re-entrant lock serialising access to *key*."""
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    # ---- public API --------------------------------------------------

    def arm(
        self,
        key: str,
        delay: float,
        action: Callable[[], None],
        description: str = "",
    ) -> TimerEntry:
        """Run *action* after *delay* seconds, replacing any pending timer.

        Raises
        ------
        ValueError
            If *delay* is negative.
        """
        if delay < 0:
            raise ValueError(f"timer delay must be non-negative, got {delay}")
        with self.lock_for(key):
            self._cancel_locked(key)
            entry = TimerEntry(
                key=key,
                delay=delay,
                action=action,
                deadline=time.monotonic() + delay,
                description=description,
            )
            timer = threading.Timer(delay, self._fire, args=(entry,))
            timer.daemon = True
            entry._timer = timer
            self._entries[key] = entry
            timer.start()
            logger.debug(
                "Armed timer for %s in %.3fs %s", key, delay, description
            )
            return entry

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for *key*.

        Returns ``True`` if a timer was cancelled, ``False`` if there was
        none (which is not an error).
        """
        with self.lock_for(key):
            return self._cancel_locked(key)

    def get(self, key: str) -> Optional[TimerEntry]:
        with self.lock_for(key):
            return self._entries.get(key)

    def is_armed(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> List[str]:
        """Keys with a pending timer (snapshot)."""
        return list(self._entries)

    def cancel_all(self) -> int:
        """Cancel every pending timer; return how many were cancelled."""
        return sum(1 for key in self.keys() if self.cancel(key))

    # ---- internals ---------------------------------------------------

    def _cancel_locked(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        entry.cancelled = True
        if entry._timer is not None:
            entry._timer.cancel()
        logger.debug("Cancelled timer for %s", key)
        return True

    def _fire(self, entry: TimerEntry) -> None:
        """Timer thread body: run *entry* if it is still the live one."""
        with self.lock_for(entry.key):
            if entry.cancelled or self._entries.get(entry.key) is not entry:
                return
            del self._entries[entry.key]
            logger.debug("Timer for %s fired %s", entry.key, entry.description)
            try:
                entry.action()
            except Exception:
                logger.exception("Timer action for %s failed", entry.key)

    # ---- dunder ------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TimerRegistry(keys={self.keys()!r})"
