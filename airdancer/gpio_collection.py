"""GPIO output switch collection.

One :class:`gpiozero.DigitalOutputDevice` is opened per configured pin
spec.  The device applies the configured polarity, so the collection
works purely in logical on/off terms::

    lines = GPIOSwitchCollection(["GPIO17", "GPIO27:active-low"])
    lines.init()                 # both outputs driven off
    lines.set_state(1, True)     # GPIO27 pulled low
    lines.close()                # off again, then released

Pass a gpiozero pin factory (e.g. ``MockFactory()``) to run without
hardware.
"""

from __future__ import annotations

import logging
from typing import Any, List, Sequence

from gpiozero import DigitalOutputDevice, GPIOZeroError

from airdancer.enums import DriverKind
from airdancer.exceptions import (
    DriverInitError,
    DuplicateNameError,
    SwitchIOError,
)
from airdancer.pinspec import PinSpec, parse_pin
from airdancer.switch_collection import SwitchCollection

logger = logging.getLogger(__name__)


class GPIOSwitchCollection(SwitchCollection):
    """Switch collection backed by GPIO output lines.

    Parameters
    ----------
    pins:
        Pin specs (``"GPIO18"``, ``"18"``, ``"GPIO18:active-low"``), one
        per switch, in index order.  Parsed eagerly so that bad specs
        fail at configuration time.
    off_on_close:
        Drive every output off before releasing the lines.
    pin_factory:
        Optional gpiozero pin factory used for every output device.
    name:
        Configured collection name.
    """

    kind = DriverKind.GPIO

    def __init__(
        self,
        pins: Sequence[str],
        off_on_close: bool = True,
        pin_factory: Any = None,
        name: str = "",
    ) -> None:
        self._pins: List[PinSpec] = [parse_pin(p) for p in pins]
        seen = set()
        for spec in self._pins:
            if spec.line in seen:
                raise DuplicateNameError(
                    f"pin {spec.name} is configured more than once"
                )
            seen.add(spec.line)
        self._off_on_close = off_on_close
        self._pin_factory = pin_factory
        self._devices: List[DigitalOutputDevice] = []
        super().__init__(name)

    @property
    def pins(self) -> List[PinSpec]:
        return list(self._pins)

    def count_switches(self) -> int:
        return len(self._pins)

    def switch_label(self, index: int) -> str:
        return self._pins[index].name

    # ---- lifecycle ---------------------------------------------------

    def init(self) -> None:
        """Open every output line and drive it off.

        On failure every line opened so far is released again and
        :class:`DriverInitError` is raised.
        """
        logger.info("Initializing gpio driver for %s", self)
        with self._lock:
            devices: List[DigitalOutputDevice] = []
            for spec in self._pins:
                try:
                    devices.append(
                        DigitalOutputDevice(
                            spec.line,
                            active_high=spec.polarity.active_level,
                            initial_value=False,
                            pin_factory=self._pin_factory,
                        )
                    )
                except (GPIOZeroError, OSError) as exc:
                    for device in devices:
                        device.close()
                    raise DriverInitError(
                        f"failed to open output line {spec.name}: {exc}"
                    ) from exc
            self._devices = devices
            self._initialized = True

    def _release(self) -> None:
        for spec, device in zip(self._pins, self._devices):
            if self._off_on_close:
                try:
                    device.off()
                except GPIOZeroError:
                    logger.warning(
                        "Failed to reset %s to off state", spec.name,
                        exc_info=True,
                    )
            device.close()
        self._devices = []

    # ---- backend hooks -----------------------------------------------

    def _device(self, index: int) -> DigitalOutputDevice:
        if not self._devices:
            raise SwitchIOError(
                f"switch {self.switch_label(index)} is not available "
                f"({'closed' if self._closed else 'not initialized'})"
            )
        return self._devices[index]

    def _read(self, index: int) -> bool:
        device = self._device(index)
        try:
            return bool(device.value)
        except GPIOZeroError as exc:
            raise SwitchIOError(
                f"failed to read state of {self.switch_label(index)}: {exc}"
            ) from exc

    def _write(self, index: int, on: bool) -> None:
        device = self._device(index)
        try:
            if on:
                device.on()
            else:
                device.off()
        except GPIOZeroError as exc:
            raise SwitchIOError(
                f"failed to turn {'on' if on else 'off'} "
                f"{self.switch_label(index)}: {exc}"
            ) from exc

    def __str__(self) -> str:
        return (
            f"gpio switch collection {self.name!r} "
            f"with {len(self._pins)} switches"
        )
