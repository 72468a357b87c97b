"""Switch engine: the call contract used by control front-ends.

:class:`SwitchEngine` owns the collections, the resolved switches, the
groups, the timer registry and the running tasks (blinks and
flipflops).  Switches and groups share one namespace and are addressed
by name::

    engine = SwitchEngine.from_config(load_config("airdancer.yaml"))
    engine.turn_on("lamp", duration=30)    # auto-off after 30 s
    engine.blink("all", period=1.0)
    engine.status("all")
    # {'state': 'blink', 'current_state': False,
    #  'detailed_state': [False, False], 'period': 1.0, 'duty_cycle': 0.5}
    engine.flipflop("all", period=0.5)     # members take turns
    engine.close()

Every operation on one name runs under that name's timer lock, so a
direct request, a firing timer and a task start/stop on the same
target never interleave.  An explicit ``turn_on`` / ``turn_off``
cancels the target's pending timer and running task; starting a task
cancels the pending timer and replaces any running task.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from airdancer.blink import DEFAULT_DUTY_CYCLE, Blink
from airdancer.config import EngineConfig
from airdancer.drivers import create_collection
from airdancer.enums import SwitchAction
from airdancer.exceptions import (
    AirdancerError,
    ConfigurationError,
    DriverError,
    DriverInitError,
    SwitchOperationError,
    UnknownSwitchError,
)
from airdancer.flipflop import Flipflop
from airdancer.pinspec import parse_switch_spec
from airdancer.resolver import ResolvedSwitch, resolve_switches
from airdancer.switch_collection import SwitchCollection
from airdancer.switch_group import SwitchGroup
from airdancer.timer_registry import TimerEntry, TimerRegistry

logger = logging.getLogger(__name__)

#: Anything addressable by name: a single switch or a group.
Target = Union[ResolvedSwitch, SwitchGroup]

#: Background activity on a name; at most one per name.
Task = Union[Blink, Flipflop]


class SwitchEngine:
    """Named switches and groups with timers, blinking and flipflops.

    Parameters
    ----------
    collections:
        Initialised collections, keyed by name.  The engine takes
        ownership and closes them in :meth:`close`.
    switches:
        Resolved switches, keyed by name.
    groups:
        Switch groups, keyed by name.  Group names must not collide
        with switch names.
    """

    def __init__(
        self,
        collections: Mapping[str, SwitchCollection],
        switches: Mapping[str, ResolvedSwitch],
        groups: Optional[Mapping[str, SwitchGroup]] = None,
    ) -> None:
        self._collections: Dict[str, SwitchCollection] = dict(collections)
        self._switches: Dict[str, ResolvedSwitch] = dict(switches)
        self._groups: Dict[str, SwitchGroup] = dict(groups or {})
        clash = set(self._switches) & set(self._groups)
        if clash:
            raise AirdancerError(
                f"names used for both a switch and a group: "
                f"{', '.join(sorted(clash))}"
            )
        self._timers = TimerRegistry()
        self._tasks: Dict[str, Task] = {}
        self._closed = False

    # ---- construction ------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        pin_factory: Any = None,
        allow_partial: Optional[bool] = None,
    ) -> "SwitchEngine":
        """Build collections, resolve switches and groups from *config*.

        Parameters
        ----------
        config:
            Validated configuration.
        pin_factory:
            gpiozero pin factory handed to the hardware drivers.
        allow_partial:
            Override ``config.allow_partial``.  When true a collection
            whose driver fails to initialise is skipped, together with
            every switch and group that refers to it.

        Raises
        ------
        DriverInitError
            If a collection fails to initialise and partial startup is
            not allowed.
        ConfigurationError
            If a switch spec or a group member does not resolve.
        """
        partial = config.allow_partial if allow_partial is None else allow_partial
        collections: Dict[str, SwitchCollection] = {}
        try:
            for name, cc in config.collections.items():
                collection = create_collection(
                    cc.driver, cc.driver_config, name=name,
                    pin_factory=pin_factory,
                )
                try:
                    collection.init()
                except DriverInitError as exc:
                    if not partial:
                        raise
                    logger.warning(
                        "Skipping collection %s: %s", name, exc
                    )
                    continue
                collections[name] = collection

            # Only collections that failed to initialise may be skipped;
            # anything else that does not resolve is a configuration error.
            skipped = set(config.collections) - set(collections)
            specs: Dict[str, str] = {}
            for name, sc in config.switches.items():
                collection_name, _ = parse_switch_spec(sc.spec)
                if partial and collection_name in skipped:
                    logger.warning(
                        "Skipping switch %s: collection %s is unavailable",
                        name, collection_name,
                    )
                    continue
                specs[name] = sc.spec
            switches = resolve_switches(specs, collections)
            dropped = set(config.switches) - set(switches)

            groups: Dict[str, SwitchGroup] = {}
            for name, gc in config.groups.items():
                unknown = [m for m in gc.switches if m not in config.switches]
                if unknown:
                    raise ConfigurationError(
                        f"unknown switch {unknown[0]} in group {name}"
                    )
                missing = [m for m in gc.switches if m in dropped]
                if missing:
                    logger.warning(
                        "Skipping group %s: switch(es) %s unavailable",
                        name, ", ".join(missing),
                    )
                    continue
                groups[name] = SwitchGroup(
                    name, [switches[m] for m in gc.switches], policy=gc.policy
                )
        except Exception:
            for collection in collections.values():
                collection.close()
            raise

        logger.info(
            "Switch engine ready: %d collections, %d switches, %d groups",
            len(collections), len(switches), len(groups),
        )
        return cls(collections, switches, groups)

    # ---- accessors ---------------------------------------------------

    @property
    def collections(self) -> Dict[str, SwitchCollection]:
        return dict(self._collections)

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    def get(self, name: str) -> Target:
        """Return the switch or group called *name*.

        Raises
        ------
        UnknownSwitchError
            If neither a switch nor a group has that name.
        """
        target = self._switches.get(name)
        if target is None:
            target = self._groups.get(name)
        if target is None:
            raise UnknownSwitchError(f"unknown switch or group: {name}")
        return target

    def list_switches(self) -> List[str]:
        return list(self._switches)

    def list_groups(self) -> List[str]:
        return list(self._groups)

    # ---- switching ---------------------------------------------------

    def turn_on(self, name: str, duration: Optional[float] = None) -> None:
        """Turn *name* on, optionally turning it off after *duration* s.

        Any pending timer and running task on *name* are cancelled
        first.  A *duration* of ``None`` or ``0`` means no auto-off.
        """
        if duration is not None and duration < 0:
            raise ValueError(f"duration must be non-negative, got {duration}")
        target = self.get(name)
        with self._timers.lock_for(name):
            self._cancel_activity(name)
            target.turn_on()
            if duration:
                self._timers.arm(
                    name, duration, lambda: self.turn_off(name),
                    description="(auto-off)",
                )

    def turn_off(self, name: str) -> None:
        """Turn *name* off, cancelling its timer and task."""
        target = self.get(name)
        with self._timers.lock_for(name):
            self._cancel_activity(name)
            target.turn_off()

    def set_state(self, name: str, on: bool) -> None:
        if on:
            self.turn_on(name)
        else:
            self.turn_off(name)

    def get_state(self, name: str) -> bool:
        return self.get(name).get_state()

    def get_detailed_state(self, name: str) -> List[bool]:
        return self.get(name).get_detailed_state()

    def _cancel_activity(self, name: str) -> None:
        self._timers.cancel(name)
        self._stop_task_locked(name)

    # ---- timers ------------------------------------------------------

    def arm_timer(self, name: str, delay: float, state: bool = False) -> TimerEntry:
        """Set *name* to *state* after *delay* seconds.

        Replaces any pending timer on *name*.  When the timer fires the
        change is applied exactly like :meth:`turn_on` / :meth:`turn_off`.
        """
        self.get(name)
        action = (lambda: self.turn_on(name)) if state else (lambda: self.turn_off(name))
        return self._timers.arm(
            name, delay, action,
            description=f"(turn {'on' if state else 'off'})",
        )

    def cancel_timer(self, name: str) -> bool:
        """Cancel the pending timer on *name*; ``False`` if there was none."""
        self.get(name)
        return self._timers.cancel(name)

    # ---- blinking and flipflop ---------------------------------------

    def blink(
        self,
        name: str,
        period: float,
        duty_cycle: float = DEFAULT_DUTY_CYCLE,
    ) -> Blink:
        """Start blinking *name*, replacing any running blink or flipflop.

        Raises
        ------
        ValueError
            If *period* is not positive or *duty_cycle* is outside
            ``[0, 1]``.
        """
        target = self.get(name)
        blinker = Blink(target, period, duty_cycle, name=name)
        self._start_task(name, blinker)
        return blinker

    def flipflop(
        self,
        name: str,
        period: float,
        duty_cycle: float = DEFAULT_DUTY_CYCLE,
    ) -> Flipflop:
        """Rotate through the members of *name*, one switch on at a time.

        A single switch is treated as a group of one.  Replaces any
        running blink or flipflop on *name* and cancels its timer.

        Raises
        ------
        ValueError
            If *period* is not positive or *duty_cycle* is outside
            ``[0, 1]``.
        """
        target = self.get(name)
        if isinstance(target, SwitchGroup):
            members: List[ResolvedSwitch] = target.list_switches()
        else:
            members = [target]
        flipflop = Flipflop(members, period, duty_cycle, name=name)
        self._start_task(name, flipflop)
        return flipflop

    def stop_task(self, name: str) -> bool:
        """Stop the blink or flipflop on *name*, leaving it off.

        Returns ``False`` if nothing was running.
        """
        self.get(name)
        with self._timers.lock_for(name):
            return self._stop_task_locked(name)

    def is_blinking(self, name: str) -> bool:
        return isinstance(self._tasks.get(name), Blink)

    def is_flipflopping(self, name: str) -> bool:
        return isinstance(self._tasks.get(name), Flipflop)

    def _start_task(self, name: str, task: Task) -> None:
        with self._timers.lock_for(name):
            self._timers.cancel(name)
            self._stop_task_locked(name)
            task.start()
            self._tasks[name] = task

    def _stop_task_locked(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        task.stop()
        return True

    # ---- status ------------------------------------------------------

    def status(self, name: str) -> Dict[str, Any]:
        """Return a status report for *name*.

        Keys: ``state`` (a :class:`~airdancer.enums.SwitchAction` value:
        ``"on"``, ``"off"``, ``"blink"`` or ``"flipflop"``),
        ``current_state``, ``detailed_state``, and when applicable
        ``duration`` (armed timer delay), ``period`` and ``duty_cycle``.
        """
        target = self.get(name)
        with self._timers.lock_for(name):
            current = target.get_state()
            action = SwitchAction.ON if current else SwitchAction.OFF
            report: Dict[str, Any] = {
                "state": action.value,
                "current_state": current,
                "detailed_state": target.get_detailed_state(),
            }
            task = self._tasks.get(name)
            if task is not None:
                action = (
                    SwitchAction.FLIPFLOP
                    if isinstance(task, Flipflop)
                    else SwitchAction.BLINK
                )
                report["state"] = action.value
                report["period"] = task.period
                report["duty_cycle"] = task.duty_cycle
            entry = self._timers.get(name)
            if entry is not None:
                report["duration"] = entry.delay
            return report

    # ---- lifecycle ---------------------------------------------------

    def reset(self) -> None:
        """Turn every collection off; failures are logged, not raised."""
        for name, collection in self._collections.items():
            try:
                collection.turn_off()
            except SwitchOperationError as exc:
                logger.error("Failed to turn off collection %s: %s", name, exc)

    def close(self) -> None:
        """Stop tasks, cancel timers and close every collection.

        Idempotent.  Every collection is closed even if an earlier step
        fails; all failures are reported together as a
        :class:`DriverError`.
        """
        if self._closed:
            return
        self._closed = True
        failures: List[str] = []
        for name in list(self._tasks):
            try:
                with self._timers.lock_for(name):
                    self._stop_task_locked(name)
            except AirdancerError as exc:
                failures.append(f"task {name}: {exc}")
        self._timers.cancel_all()
        for name, collection in self._collections.items():
            try:
                collection.close()
            except AirdancerError as exc:
                failures.append(f"collection {name}: {exc}")
        logger.info("Switch engine closed")
        if failures:
            raise DriverError("errors closing switch engine: " + "; ".join(failures))

    def __repr__(self) -> str:
        return (
            f"SwitchEngine(collections={list(self._collections)!r}, "
            f"switches={len(self._switches)}, groups={len(self._groups)})"
        )
