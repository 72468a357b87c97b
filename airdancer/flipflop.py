"""Rotating output: one member of a group on at a time.

A :class:`Flipflop` walks through its switches in order.  Each step
waits ``period * (1 - duty_cycle)`` seconds with everything off, then
turns the next switch on for ``period * duty_cycle`` seconds and off
again::

    flipflop = Flipflop(group.list_switches(), period=0.5)
    flipflop.start()
    ...
    flipflop.stop()    # every member is left off

Runs on a daemon thread, like :class:`~airdancer.blink.Blink`.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional, Tuple

from airdancer.blink import DEFAULT_DUTY_CYCLE, Switchable
from airdancer.exceptions import DriverStateError, SwitchOperationError

logger = logging.getLogger(__name__)


class Flipflop:
    """Cycle through *switches*, one at a time.

    Parameters
    ----------
    switches:
        Members to rotate through, in order.  At least one is required.
    period:
        Length of one step in seconds (must be > 0).
    duty_cycle:
        Fraction of each step the current member is on,
        ``0 <= duty_cycle <= 1``.
    name:
        Label used in log messages.
    """

    def __init__(
        self,
        switches: Iterable[Switchable],
        period: float,
        duty_cycle: float = DEFAULT_DUTY_CYCLE,
        name: str = "",
    ) -> None:
        members: Tuple[Switchable, ...] = tuple(switches)
        if not members:
            raise ValueError("flipflop needs at least one switch")
        if not period > 0:
            raise ValueError("flipflop period must be a positive value")
        if not 0 <= duty_cycle <= 1:
            raise ValueError("flipflop duty cycle must be between 0 and 1")
        self._switches = members
        self._period = float(period)
        self._duty_cycle = float(duty_cycle)
        self._name = name or "flipflop"
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._current: Optional[int] = None

    # ---- properties --------------------------------------------------

    @property
    def switches(self) -> List[Switchable]:
        return list(self._switches)

    @property
    def period(self) -> float:
        return self._period

    @property
    def duty_cycle(self) -> float:
        return self._duty_cycle

    @property
    def current(self) -> Optional[int]:
        """Position of the member stepped to last, ``None`` before the first step."""
        return self._current

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    # ---- public API --------------------------------------------------

    def start(self) -> None:
        """Start rotating.

        Raises
        ------
        DriverStateError
            If the flipflop is already running.
        """
        with self._lock:
            if self._thread is not None:
                raise DriverStateError(f"flipflop on {self._name} is already running")
            self._stop_event.clear()
            self._current = None
            self._thread = threading.Thread(
                target=self._run,
                name=f"flipflop-{self._name}",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "Started flipflop on %s (%d switches, period=%.3fs, duty_cycle=%.2f)",
            self._name, len(self._switches), self._period, self._duty_cycle,
        )

    def stop(self) -> None:
        """Stop rotating, wait for the thread and turn every member off.

        Does nothing if not running.  Members that fail to turn off are
        logged and the remaining ones are still turned off.
        """
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            if thread is not threading.current_thread():
                thread.join()
            self._thread = None
            self._current = None
        logger.info("Stopped flipflop on %s", self._name)
        for switch in self._switches:
            self._drive(switch, False)

    # ---- internals ---------------------------------------------------

    def _drive(self, switch: Switchable, on: bool) -> None:
        try:
            switch.set_state(on)
        except SwitchOperationError as exc:
            logger.warning(
                "Flipflop %s failed to turn %s %s: %s",
                self._name, "on" if on else "off", switch, exc,
            )

    def _run(self) -> None:
        on_time = self._period * self._duty_cycle
        off_time = self._period - on_time
        position = -1
        while not self._stop_event.wait(off_time):
            if on_time <= 0:
                continue
            position = (position + 1) % len(self._switches)
            self._current = position
            switch = self._switches[position]
            self._drive(switch, True)
            if self._stop_event.wait(on_time):
                break
            self._drive(switch, False)

    def __repr__(self) -> str:
        return (
            f"Flipflop({self._name!r}, switches={len(self._switches)}, "
            f"period={self._period}, duty_cycle={self._duty_cycle}, "
            f"running={self.is_running})"
        )
