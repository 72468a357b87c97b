"""GPIO push-button monitoring with software debounce.

Buttons are described by spec strings::

    name:pin[:active-high|active-low][:pull-none|pull-up|pull-down|pull-auto]

e.g. ``"btn1:GPIO16:active-low:pull-up"``.  Options are case-insensitive
and default to active-high with ``pull-auto``; ``pull-auto`` is resolved
immediately to ``pull-up`` for active-low buttons and ``pull-down`` for
active-high ones.

:class:`GpioButtonDriver` opens one :class:`gpiozero.DigitalInputDevice`
per button when started.  gpiozero reports raw edges from its own
thread; they are handed to the event loop with
``loop.call_soon_threadsafe`` and processed by a single monitoring task,
the only writer of the per-button :class:`Debouncer` state.

Debounce state machine (one per button)
---------------------------------------

::

    IDLE ── raw press ──► PENDING_PRESS ── stable for delay ──► PRESSED
      ▲                        │                               (emit PRESSED)
      └──── raw release ───────┘
                                    PRESSED ── raw release ──► PENDING_RELEASE
                                       ▲                            │
                                       └──────── raw press ─────────┤
                                                      stable for delay
                                                                    ▼
                                                        IDLE (emit RELEASED)

Polarity is applied before the state machine sees a level, so
"pressed" always means logically active.

Usage::

    driver = GpioButtonDriver(debounce_delay=0.05)
    driver.add_button("btn1:GPIO16:active-low")
    await driver.start()
    async for event in driver.events():
        print(event.source, event.type.value)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from gpiozero import DigitalInputDevice, GPIOZeroError

from airdancer.enums import (
    ButtonEventType,
    DebounceState,
    Polarity,
    PullMode,
)
from airdancer.exceptions import (
    ConfigurationError,
    DriverInitError,
    DriverNotReadyError,
    DuplicateButtonError,
    InvalidButtonSpecError,
)
from airdancer.pinspec import (
    PIN_SPEC_SEPARATOR,
    PinSpec,
    apply_option,
    parse_pin_number,
)

logger = logging.getLogger(__name__)

#: Default time (seconds) a level must stay stable to count.
DEFAULT_DEBOUNCE_DELAY: float = 0.05

#: Default capacity of the event buffer.
DEFAULT_EVENT_BUFFER: int = 100

#: Separator between several button specs in one string.
BUTTON_SPEC_SEPARATOR = ","

# Marks the end of a start/stop cycle in the event buffer.
_END_OF_STREAM = object()


# ---------------------------------------------------------------------------
# Button specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ButtonSpec:
    """A configured button.

    ``pin.pull`` is always concrete (never ``PullMode.AUTO``).
    ``debounce_delay`` overrides the driver default when set.
    """

    name: str
    pin: PinSpec
    debounce_delay: Optional[float] = None

    @property
    def pin_name(self) -> str:
        return self.pin.name

    @property
    def polarity(self) -> Polarity:
        return self.pin.polarity

    @property
    def pull(self) -> PullMode:
        return self.pin.pull

    def is_pressed(self, level: bool) -> bool:
        """Map a raw electrical *level* to the logical pressed state."""
        return bool(level) == self.pin.polarity.active_level

    def __str__(self) -> str:
        return f"{self.name}{PIN_SPEC_SEPARATOR}{self.pin}"


def parse_button_spec(spec: str) -> ButtonSpec:
    """Parse one ``name:pin[:polarity][:pull]`` button spec.

    Raises
    ------
    InvalidButtonSpecError
        If the name is missing or the pin, polarity or pull token does
        not parse.
    """
    parts = [p.strip() for p in str(spec).strip().split(PIN_SPEC_SEPARATOR)]
    if len(parts) < 2 or not parts[0]:
        raise InvalidButtonSpecError(
            f"invalid button spec format: {spec!r} (expected format: "
            f"name:pin[:active-high|active-low][:pull-none|pull-up|"
            f"pull-down|pull-auto])"
        )
    name = parts[0]
    polarity = Polarity.ACTIVE_HIGH
    pull = PullMode.AUTO
    try:
        line = parse_pin_number(parts[1])
        for token in parts[2:]:
            polarity, pull = apply_option(token, polarity, pull)
    except ConfigurationError as exc:
        raise InvalidButtonSpecError(
            f"invalid button spec {spec!r}: {exc}"
        ) from None
    return ButtonSpec(
        name=name,
        pin=PinSpec(line=line, polarity=polarity, pull=pull.resolve(polarity)),
    )


def parse_button_specs(specs: Union[str, Iterable[str]]) -> List[ButtonSpec]:
    """Parse a comma-separated string (or a list) of button specs."""
    if isinstance(specs, str):
        items = specs.split(BUTTON_SPEC_SEPARATOR)
    else:
        items = [str(s) for s in specs]
    return [parse_button_spec(item) for item in items if item.strip()]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ButtonEvent:
    """A debounced press or release."""

    source: str
    type: ButtonEventType
    timestamp: datetime
    device: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def pressed(self) -> bool:
        return self.type is ButtonEventType.PRESSED

    @property
    def released(self) -> bool:
        return self.type is ButtonEventType.RELEASED


# ---------------------------------------------------------------------------
# Debouncer: pure state machine, clock supplied by the caller
# ---------------------------------------------------------------------------


class Debouncer:
    """Debounce state machine for one button.

    The debouncer never reads a clock: callers pass the current
    monotonic time to :meth:`feed` and :meth:`poll`.  Both return the
    new stable pressed state when a transition commits, else ``None``.

    Parameters
    ----------
    delay:
        Seconds a level must stay stable before it is committed.
    pressed:
        Initial stable (and raw) logical state.
    """

    def __init__(self, delay: float, pressed: bool = False) -> None:
        if delay < 0:
            raise ValueError("debounce delay must be non-negative")
        self._delay = delay
        self._state = DebounceState.PRESSED if pressed else DebounceState.IDLE
        self._raw = pressed
        self._last_transition: Optional[float] = None
        self._pending_since: Optional[float] = None

    # ---- properties --------------------------------------------------

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def state(self) -> DebounceState:
        return self._state

    @property
    def pressed(self) -> bool:
        """Current debounced (stable) logical state."""
        return self._state in (
            DebounceState.PRESSED,
            DebounceState.PENDING_RELEASE,
        )

    @property
    def is_pending(self) -> bool:
        return self._pending_since is not None

    @property
    def last_transition(self) -> Optional[float]:
        """Time of the last raw level change."""
        return self._last_transition

    @property
    def pending_since(self) -> Optional[float]:
        return self._pending_since

    @property
    def deadline(self) -> Optional[float]:
        """Time at which the pending level commits, if one is pending."""
        if self._pending_since is None:
            return None
        return self._pending_since + self._delay

    # ---- transitions -------------------------------------------------

    def feed(self, pressed: bool, now: float) -> Optional[bool]:
        """Process a raw logical level sampled at *now*."""
        pressed = bool(pressed)
        if pressed != self._raw:
            self._raw = pressed
            self._last_transition = now

        stable = self.pressed
        if pressed == stable:
            if self._pending_since is not None:
                # Reverted before the delay elapsed: no event.
                self._state = (
                    DebounceState.PRESSED if stable else DebounceState.IDLE
                )
                self._pending_since = None
            return None

        if self._pending_since is None:
            self._state = (
                DebounceState.PENDING_PRESS
                if pressed
                else DebounceState.PENDING_RELEASE
            )
            self._pending_since = now
        return self.poll(now)

    def poll(self, now: float) -> Optional[bool]:
        """Commit the pending level if it has been stable long enough."""
        if self._pending_since is None:
            return None
        if now - self._pending_since < self._delay:
            return None
        self._pending_since = None
        if self._state is DebounceState.PENDING_PRESS:
            self._state = DebounceState.PRESSED
            return True
        self._state = DebounceState.IDLE
        return False

    def __repr__(self) -> str:
        return f"Debouncer(state={self._state.value}, delay={self._delay})"


# ---------------------------------------------------------------------------
# GpioButtonDriver
# ---------------------------------------------------------------------------


class GpioButtonDriver:
    """Watch GPIO push-buttons and publish debounced events.

    Parameters
    ----------
    debounce_delay:
        Default debounce interval in seconds.
    buffer_size:
        Capacity of the event buffer.  When it is full the oldest event
        is dropped (and a warning logged) to make room.
    pin_factory:
        gpiozero pin factory used for the input devices.
    """

    def __init__(
        self,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        buffer_size: int = DEFAULT_EVENT_BUFFER,
        pin_factory: Any = None,
    ) -> None:
        if debounce_delay < 0:
            raise ConfigurationError("debounce_delay must be non-negative")
        if buffer_size < 1:
            raise ConfigurationError("buffer_size must be at least 1")
        self._debounce_delay = debounce_delay
        self._buffer_size = buffer_size
        self._pin_factory = pin_factory

        self._buttons: Dict[str, ButtonSpec] = {}
        self._devices: Dict[str, DigitalInputDevice] = {}
        self._debouncers: Dict[str, Debouncer] = {}
        self._raw: Optional[asyncio.Queue] = None
        self._events: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._dropped = 0

    @classmethod
    def from_config(cls, config: Any, pin_factory: Any = None) -> "GpioButtonDriver":
        """Build a driver from a :class:`~airdancer.config.ButtonDriverConfig`."""
        driver = cls(debounce_delay=config.debounce_delay, pin_factory=pin_factory)
        for spec in config.buttons:
            driver.add_button(spec)
        return driver

    # ---- properties --------------------------------------------------

    @property
    def debounce_delay(self) -> float:
        return self._debounce_delay

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def dropped_events(self) -> int:
        """Events discarded because the buffer was full (this cycle)."""
        return self._dropped

    def get_buttons(self) -> List[str]:
        """Names of the configured buttons, in registration order."""
        return list(self._buttons)

    def get_button(self, name: str) -> ButtonSpec:
        return self._buttons[name]

    def get_state(self, name: str) -> Optional[DebounceState]:
        """Debounce state of *name* while running, else ``None``."""
        debouncer = self._debouncers.get(name)
        return debouncer.state if debouncer is not None else None

    # ---- configuration -----------------------------------------------

    def add_button(
        self,
        spec: Union[str, ButtonSpec],
        debounce_delay: Optional[float] = None,
    ) -> ButtonSpec:
        """Register a button (a spec string or a :class:`ButtonSpec`).

        *debounce_delay*, when given, overrides the driver default for
        this button only.

        Raises
        ------
        DriverNotReadyError
            If the driver is running.
        InvalidButtonSpecError
            If a spec string does not parse.
        ConfigurationError
            If *debounce_delay* is not a non-negative number.
        DuplicateButtonError
            If the name or the pin is already registered.
        """
        if self._task is not None:
            raise DriverNotReadyError(
                "cannot add buttons while the driver is running"
            )
        if not isinstance(spec, ButtonSpec):
            spec = parse_button_spec(spec)
        if debounce_delay is not None:
            if (
                isinstance(debounce_delay, bool)
                or not isinstance(debounce_delay, (int, float))
                or debounce_delay < 0
            ):
                raise ConfigurationError(
                    f"debounce_delay for button {spec.name} must be a "
                    f"non-negative number, got {debounce_delay!r}"
                )
            spec = replace(spec, debounce_delay=float(debounce_delay))
        if spec.name in self._buttons:
            raise DuplicateButtonError(f"button {spec.name} already exists")
        for other in self._buttons.values():
            if other.pin.line == spec.pin.line:
                raise DuplicateButtonError(
                    f"pin {spec.pin_name} is already used by button {other.name}"
                )
        self._buttons[spec.name] = spec
        logger.info(
            "Added button %s on %s (%s, %s)",
            spec.name, spec.pin_name, spec.polarity.value, spec.pull.value,
        )
        return spec

    # ---- lifecycle ---------------------------------------------------

    async def start(self) -> None:
        """Open the input lines and start the monitoring task.

        Raises
        ------
        DriverNotReadyError
            If already running or no buttons are configured.
        DriverInitError
            If an input line cannot be opened.
        """
        if self._task is not None:
            raise DriverNotReadyError("button driver is already running")
        if not self._buttons:
            raise DriverNotReadyError("no buttons configured")

        loop = asyncio.get_running_loop()
        raw: asyncio.Queue = asyncio.Queue()
        devices: Dict[str, DigitalInputDevice] = {}
        for spec in self._buttons.values():
            try:
                devices[spec.name] = self._open_device(spec)
            except (GPIOZeroError, OSError) as exc:
                for device in devices.values():
                    device.close()
                raise DriverInitError(
                    f"failed to open input line {spec.pin_name} "
                    f"for button {spec.name}: {exc}"
                ) from exc

        debouncers: Dict[str, Debouncer] = {}
        for name, device in devices.items():
            spec = self._buttons[name]
            delay = (
                spec.debounce_delay
                if spec.debounce_delay is not None
                else self._debounce_delay
            )
            debouncers[name] = Debouncer(
                delay, pressed=spec.is_pressed(device.pin.state)
            )
            callback = self._make_edge_callback(loop, raw, name)
            device.when_activated = callback
            device.when_deactivated = callback

        self._devices = devices
        self._debouncers = debouncers
        self._raw = raw
        self._events = asyncio.Queue(maxsize=self._buffer_size)
        self._dropped = 0
        self._task = loop.create_task(self._monitor(raw))
        logger.info("Started monitoring %d buttons", len(devices))

    async def stop(self) -> None:
        """Stop monitoring, release the input lines, end the event stream.

        Does nothing if the driver is not running.
        """
        task = self._task
        if task is None:
            return
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            for name, device in self._devices.items():
                device.when_activated = None
                device.when_deactivated = None
                device.close()
                logger.debug("Released input line for button %s", name)
            self._devices = {}
            self._debouncers = {}
            self._raw = None
            if self._events is not None:
                self._put(_END_OF_STREAM)
            logger.info("Stopped monitoring buttons")

    async def events(self) -> AsyncIterator[ButtonEvent]:
        """Iterate over the events of the current start/stop cycle.

        The iterator ends once :meth:`stop` has completed and every
        event buffered before it has been delivered.  If the driver has
        not been started it ends immediately.
        """
        queue = self._events
        if queue is None:
            return
        while True:
            item = await queue.get()
            if item is _END_OF_STREAM:
                # Leave the marker for other consumers of this cycle.
                queue.put_nowait(_END_OF_STREAM)
                return
            yield item

    # ---- internals ---------------------------------------------------

    def _open_device(self, spec: ButtonSpec) -> DigitalInputDevice:
        pull_up: Optional[bool] = {
            PullMode.UP: True,
            PullMode.DOWN: False,
            PullMode.NONE: None,
        }[spec.pull]
        return DigitalInputDevice(
            spec.pin.line,
            pull_up=pull_up,
            active_state=spec.polarity.active_level if pull_up is None else None,
            pin_factory=self._pin_factory,
        )

    @staticmethod
    def _make_edge_callback(
        loop: asyncio.AbstractEventLoop, raw: asyncio.Queue, name: str
    ) -> Callable[[DigitalInputDevice], None]:
        def on_edge(device: DigitalInputDevice) -> None:
            sample: Tuple[str, bool, float] = (
                name, bool(device.pin.state), time.monotonic()
            )
            try:
                loop.call_soon_threadsafe(raw.put_nowait, sample)
            except RuntimeError:
                logger.debug("Event loop closed, dropping edge on %s", name)

        return on_edge

    def _next_timeout(self, now: float) -> Optional[float]:
        deadlines = [
            d.deadline for d in self._debouncers.values()
            if d.deadline is not None
        ]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - now)

    async def _monitor(self, raw: asyncio.Queue) -> None:
        """Monitoring task: feed raw edges and commit due transitions."""
        while True:
            try:
                name, level, stamp = await asyncio.wait_for(
                    raw.get(), self._next_timeout(time.monotonic())
                )
            except asyncio.TimeoutError:
                pass
            else:
                debouncer = self._debouncers.get(name)
                if debouncer is not None:
                    spec = self._buttons[name]
                    committed = debouncer.feed(spec.is_pressed(level), stamp)
                    if committed is not None:
                        self._emit(name, committed)
            now = time.monotonic()
            for name, debouncer in self._debouncers.items():
                committed = debouncer.poll(now)
                if committed is not None:
                    self._emit(name, committed)

    def _emit(self, name: str, pressed: bool) -> None:
        spec = self._buttons[name]
        event = ButtonEvent(
            source=name,
            type=ButtonEventType.PRESSED if pressed else ButtonEventType.RELEASED,
            timestamp=datetime.now(timezone.utc),
            device=spec.pin_name,
            metadata={"gpio_pin": spec.pin_name, "pressed": pressed},
        )
        logger.debug("Button %s %s", name, event.type.value)
        self._put(event)

    def _put(self, item: Any) -> None:
        queue = self._events
        if queue.full():
            dropped = queue.get_nowait()
            self._dropped += 1
            logger.warning("Event buffer full, dropped oldest event %s", dropped)
        queue.put_nowait(item)

    def __repr__(self) -> str:
        return (
            f"GpioButtonDriver(buttons={self.get_buttons()!r}, "
            f"debounce_delay={self._debounce_delay}, "
            f"running={self.is_running})"
        )
