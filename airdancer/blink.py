"""Periodic on/off toggling of a switch or group.

A :class:`Blink` drives its target on for ``period * duty_cycle``
seconds, then off for the rest of the period, on a daemon thread until
stopped.  Stopping waits for the thread and leaves the target off::

    blinker = Blink(engine.get("lamp"), period=1.0, duty_cycle=0.25)
    blinker.start()
    ...
    blinker.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from airdancer.exceptions import DriverStateError, SwitchOperationError

logger = logging.getLogger(__name__)

DEFAULT_DUTY_CYCLE = 0.5


class Switchable(Protocol):
    """Anything that can be driven on and off (switch or group)."""

    def set_state(self, on: bool) -> None: ...


class Blink:
    """Toggle *target* with the given *period* and *duty_cycle*.

    Parameters
    ----------
    target:
        Switch or group to toggle.
    period:
        Length of one on/off cycle in seconds (must be > 0).
    duty_cycle:
        Fraction of the period spent on, ``0 <= duty_cycle <= 1``.
    name:
        Label used in log messages.
    """

    def __init__(
        self,
        target: Switchable,
        period: float,
        duty_cycle: float = DEFAULT_DUTY_CYCLE,
        name: str = "",
    ) -> None:
        if target is None:
            raise ValueError("blink target is required")
        if not period > 0:
            raise ValueError("blink period must be a positive value")
        if not 0 <= duty_cycle <= 1:
            raise ValueError("blink duty cycle must be between 0 and 1")
        self._target = target
        self._period = float(period)
        self._duty_cycle = float(duty_cycle)
        self._name = name or str(target)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---- properties --------------------------------------------------

    @property
    def target(self) -> Switchable:
        return self._target

    @property
    def period(self) -> float:
        return self._period

    @property
    def duty_cycle(self) -> float:
        return self._duty_cycle

    @property
    def frequency(self) -> float:
        return 1.0 / self._period

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    # ---- public API --------------------------------------------------

    def start(self) -> None:
        """Start toggling.

        Raises
        ------
        DriverStateError
            If the blink is already running.
        """
        with self._lock:
            if self._thread is not None:
                raise DriverStateError(f"blink on {self._name} is already running")
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name=f"blink-{self._name}",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "Started blinking %s (period=%.3fs, duty_cycle=%.2f)",
            self._name, self._period, self._duty_cycle,
        )

    def stop(self) -> None:
        """Stop toggling, wait for the thread and turn the target off.

        Does nothing if the blink is not running.  A failure to turn the
        target off propagates.
        """
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            if thread is not threading.current_thread():
                thread.join()
            self._thread = None
        logger.info("Stopped blinking %s", self._name)
        self._target.set_state(False)

    # ---- internals ---------------------------------------------------

    def _drive(self, on: bool) -> None:
        try:
            self._target.set_state(on)
        except SwitchOperationError as exc:
            logger.warning(
                "Blinker failed to turn %s %s: %s",
                "on" if on else "off", self._name, exc,
            )

    def _run(self) -> None:
        on_time = self._period * self._duty_cycle
        off_time = self._period - on_time
        while not self._stop_event.is_set():
            if on_time > 0:
                self._drive(True)
                if self._stop_event.wait(on_time):
                    break
            if off_time > 0:
                self._drive(False)
                if self._stop_event.wait(off_time):
                    break

    def __repr__(self) -> str:
        return (
            f"Blink({self._name!r}, period={self._period}, "
            f"duty_cycle={self._duty_cycle}, running={self.is_running})"
        )
