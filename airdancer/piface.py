"""PiFace Digital switch collection.

The PiFace board is an MCP23S17 port expander on the SPI bus: port A
drives the eight relay/LED outputs, port B reads the eight inputs.
Register access uses the three-byte MCP23S17 frame::

    write:  [0x40, register, value]
    read:   [0x41, register, 0x00]  -> value in the third reply byte

The SPI link is a :class:`gpiozero.SPIDevice`; any object with
``transfer(list) -> list`` and ``close()`` can be injected instead
(tests use an in-process fake).
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Protocol, Tuple

from gpiozero import GPIOZeroError, SPIDevice

from airdancer.enums import DriverKind
from airdancer.exceptions import (
    ConfigurationError,
    DriverInitError,
    SwitchIOError,
)
from airdancer.switch_collection import SwitchCollection

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# MCP23S17 protocol constants
# ---------------------------------------------------------------------------

OPCODE_WRITE = 0x40
OPCODE_READ = 0x41

IODIRA = 0x00
IODIRB = 0x01
IOCON = 0x0A
GPPUA = 0x0C
GPPUB = 0x0D
GPIOA = 0x12
GPIOB = 0x13

#: Register writes performed by :meth:`MCP23S17.setup`, in order.
INIT_SEQUENCE: Tuple[Tuple[int, int, str], ...] = (
    (IOCON, 0x08, "configure IOCON"),
    (IODIRA, 0x00, "set port A as outputs"),
    (IODIRB, 0xFF, "set port B as inputs"),
    (GPPUB, 0xFF, "enable port B pullups"),
)

NUMBER_OF_OUTPUTS = 8
DEFAULT_SPIDEV = "/dev/spidev0.0"

_SPIDEV_RE = re.compile(r"^/dev/spidev(\d+)\.(\d+)$")


class SPITransport(Protocol):
    """Minimal full-duplex SPI link used by :class:`MCP23S17`."""

    def transfer(self, data: List[int]) -> List[int]: ...

    def close(self) -> None: ...


def parse_spidev(path: str) -> Tuple[int, int]:
    """Map ``/dev/spidev<port>.<device>`` to ``(port, device)``."""
    match = _SPIDEV_RE.match(path)
    if match is None:
        raise ConfigurationError(
            f"invalid spidev path: {path!r} "
            f"(expected format: /dev/spidev<port>.<device>)"
        )
    return int(match.group(1)), int(match.group(2))


class PiFaceSPI(SPIDevice):
    """gpiozero SPI device exposing raw transfers for the MCP23S17."""

    def transfer(self, data: List[int]) -> List[int]:
        return self._spi.transfer(data)


# ---------------------------------------------------------------------------
# MCP23S17 register access
# ---------------------------------------------------------------------------


class MCP23S17:
    """Register-level access to an MCP23S17 behind *transport*.

    Errors raised by the transport are wrapped in
    :class:`~airdancer.exceptions.SwitchIOError`.
    """

    def __init__(self, transport: SPITransport) -> None:
        self._transport = transport

    def write_register(self, register: int, value: int) -> None:
        try:
            self._transport.transfer([OPCODE_WRITE, register, value & 0xFF])
        except (GPIOZeroError, OSError) as exc:
            raise SwitchIOError(
                f"failed to write register 0x{register:02x}: {exc}"
            ) from exc

    def read_register(self, register: int) -> int:
        try:
            reply = self._transport.transfer([OPCODE_READ, register, 0x00])
        except (GPIOZeroError, OSError) as exc:
            raise SwitchIOError(
                f"failed to read register 0x{register:02x}: {exc}"
            ) from exc
        if len(reply) < 3:
            raise SwitchIOError(
                f"short reply reading register 0x{register:02x}: {reply!r}"
            )
        return reply[2]

    def setup(self) -> None:
        """Run the PiFace initialisation sequence."""
        for register, value, desc in INIT_SEQUENCE:
            logger.debug("MCP23S17: %s (0x%02x <- 0x%02x)", desc, register, value)
            self.write_register(register, value)

    def read_outputs(self) -> int:
        return self.read_register(GPIOA)

    def write_outputs(self, value: int) -> None:
        self.write_register(GPIOA, value)

    def read_inputs(self) -> int:
        """Input vector with pressed inputs as 1 (port B is pulled up)."""
        return self.read_register(GPIOB) ^ 0xFF

    def close(self) -> None:
        self._transport.close()


# ---------------------------------------------------------------------------
# PiFaceCollection
# ---------------------------------------------------------------------------


class PiFaceCollection(SwitchCollection):
    """Switch collection for the PiFace outputs.

    Parameters
    ----------
    spidev:
        SPI device path, ``/dev/spidev<port>.<device>``.
    max_switches:
        Expose only the first *max_switches* outputs (``None`` or ``0``
        means all eight).
    off_on_close:
        Drive every output off before closing the SPI link.
    transport:
        Pre-opened SPI transport; when omitted a :class:`PiFaceSPI` is
        opened on ``init()``.
    pin_factory:
        gpiozero pin factory for the SPI device.
    name:
        Configured collection name.
    """

    kind = DriverKind.PIFACE

    def __init__(
        self,
        spidev: str = DEFAULT_SPIDEV,
        max_switches: Optional[int] = None,
        off_on_close: bool = True,
        transport: Optional[SPITransport] = None,
        pin_factory: Any = None,
        name: str = "",
    ) -> None:
        self._spidev = spidev or DEFAULT_SPIDEV
        self._port, self._device = parse_spidev(self._spidev)
        if max_switches is not None and (
            isinstance(max_switches, bool)
            or not isinstance(max_switches, int)
            or max_switches < 0
        ):
            raise ConfigurationError("max_switches must be non-negative")
        if not max_switches or max_switches > NUMBER_OF_OUTPUTS:
            max_switches = NUMBER_OF_OUTPUTS
        self._count = max_switches
        self._off_on_close = off_on_close
        self._transport = transport
        self._pin_factory = pin_factory
        self._chip: Optional[MCP23S17] = None
        super().__init__(name)

    @property
    def spidev(self) -> str:
        return self._spidev

    def count_switches(self) -> int:
        return self._count

    def switch_label(self, index: int) -> str:
        return f"piface:{self._spidev}:{index}"

    # ---- lifecycle ---------------------------------------------------

    def init(self) -> None:
        logger.info("Initializing piface %s", self)
        with self._lock:
            transport = self._transport
            if transport is None:
                try:
                    transport = PiFaceSPI(
                        port=self._port,
                        device=self._device,
                        pin_factory=self._pin_factory,
                    )
                except (GPIOZeroError, OSError) as exc:
                    raise DriverInitError(
                        f"failed to open SPI device {self._spidev}: {exc}"
                    ) from exc
            chip = MCP23S17(transport)
            try:
                chip.setup()
            except SwitchIOError as exc:
                transport.close()
                raise DriverInitError(
                    f"failed to initialize piface on {self._spidev}: {exc}"
                ) from exc
            self._chip = chip
            self._initialized = True

    def _release(self) -> None:
        if self._chip is None:
            return
        if self._off_on_close:
            try:
                self._set_all(False)
            except SwitchIOError:
                logger.warning(
                    "Failed to turn off outputs of %s during close", self,
                    exc_info=True,
                )
        self._chip.close()
        self._chip = None

    # ---- backend hooks -----------------------------------------------

    def _require_chip(self) -> MCP23S17:
        if self._chip is None:
            raise SwitchIOError(
                f"piface {self._spidev} is not available "
                f"({'closed' if self._closed else 'not initialized'})"
            )
        return self._chip

    def _read(self, index: int) -> bool:
        return bool((self._require_chip().read_outputs() >> index) & 1)

    def _write(self, index: int, on: bool) -> None:
        chip = self._require_chip()
        outputs = chip.read_outputs()
        if on:
            outputs |= 1 << index
        else:
            outputs &= ~(1 << index)
        chip.write_outputs(outputs & 0xFF)

    # ---- whole-collection access -------------------------------------

    def get_detailed_state(self) -> List[bool]:
        with self._lock:
            outputs = self._require_chip().read_outputs()
        return [bool((outputs >> i) & 1) for i in range(self._count)]

    def _set_all(self, on: bool) -> None:
        mask = (1 << self._count) - 1
        with self._lock:
            logger.debug(
                "Turning %s all switches of %s", "on" if on else "off", self
            )
            chip = self._require_chip()
            outputs = chip.read_outputs()
            outputs = outputs | mask if on else outputs & ~mask
            chip.write_outputs(outputs & 0xFF)

    def read_inputs(self) -> int:
        """Current input vector (bit *n* set while input *n* is pressed)."""
        with self._lock:
            return self._require_chip().read_inputs()

    def __str__(self) -> str:
        return f"piface:{self._spidev}"
