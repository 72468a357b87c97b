"""Switch groups: named, ordered aggregates of resolved switches.

A group may span several collections.  Members are fixed at
construction and kept in insertion order, which is the order used by
bulk operations and by :meth:`SwitchGroup.get_detailed_state`.

Bulk ``turn_on()`` / ``turn_off()`` never roll back.  With the default
:attr:`~airdancer.enums.GroupFailurePolicy.CONTINUE` policy every member
is tried and all failures are reported together; with ``ABORT`` the
operation stops at the first failure.  Either way a failure surfaces as
:class:`~airdancer.exceptions.GroupOperationError`; re-query
:meth:`SwitchGroup.get_detailed_state` to see what actually changed.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Tuple

from airdancer.enums import GroupFailurePolicy
from airdancer.exceptions import (
    ConfigurationError,
    DuplicateNameError,
    GroupOperationError,
    IndexOutOfRangeError,
    SwitchOperationError,
)
from airdancer.resolver import ResolvedSwitch

logger = logging.getLogger(__name__)


class SwitchGroup:
    """A named, ordered set of :class:`ResolvedSwitch` members.

    Parameters
    ----------
    name:
        Group name.
    members:
        Resolved switches in group order.  Switch names must be unique.
    policy:
        Reaction of bulk operations to a failing member.
    """

    def __init__(
        self,
        name: str,
        members: Iterable[ResolvedSwitch],
        policy: GroupFailurePolicy = GroupFailurePolicy.CONTINUE,
    ) -> None:
        if not name:
            raise ConfigurationError("group name must not be empty")
        self._name = name
        self._policy = policy
        self._members: Dict[str, ResolvedSwitch] = {}
        for member in members:
            if member.name in self._members:
                raise DuplicateNameError(
                    f"switch {member.name} listed twice in group {name}"
                )
            self._members[member.name] = member
        self._lock = threading.RLock()

    # ---- properties --------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> GroupFailurePolicy:
        return self._policy

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # ---- lifecycle (groups do not own their collections) -------------

    def init(self) -> None:
        pass

    def close(self) -> None:
        pass

    # ---- accessors ---------------------------------------------------

    def count_switches(self) -> int:
        return len(self._members)

    def list_switches(self) -> List[ResolvedSwitch]:
        """Members in group order."""
        return list(self._members.values())

    def get_switches(self) -> Dict[str, ResolvedSwitch]:
        """Copy of the ``name -> member`` mapping, in group order."""
        return dict(self._members)

    def get_switch(self, index: int) -> ResolvedSwitch:
        """Member at position *index* of the group order."""
        members = self.list_switches()
        if isinstance(index, bool) or not 0 <= index < len(members):
            raise IndexOutOfRangeError(
                f"invalid switch index {index} for group {self._name} "
                f"(has {len(members)} switches)"
            )
        return members[index]

    # ---- bulk operations ---------------------------------------------

    def turn_on(self) -> None:
        self._set_all(True)

    def turn_off(self) -> None:
        self._set_all(False)

    def set_state(self, on: bool) -> None:
        self._set_all(bool(on))

    def _set_all(self, on: bool) -> None:
        action = "on" if on else "off"
        failures: List[Tuple[str, BaseException]] = []
        with self._lock:
            logger.debug("Turning %s group %s", action, self._name)
            for member in self._members.values():
                try:
                    member.set_state(on)
                except SwitchOperationError as exc:
                    logger.warning(
                        "Failed to turn %s switch %s in group %s: %s",
                        action, member.name, self._name, exc,
                    )
                    failures.append((member.name, exc))
                    if self._policy is GroupFailurePolicy.ABORT:
                        break
        if failures:
            raise GroupOperationError(
                self._name,
                failures,
                f"errors turning {action} group {self._name}: "
                + "; ".join(f"switch {n}: {e}" for n, e in failures),
            ) from failures[0][1]

    # ---- state queries -----------------------------------------------

    def get_state(self) -> bool:
        """``True`` iff every member is on; a read failure propagates."""
        with self._lock:
            for member in self._members.values():
                if not member.get_state():
                    return False
            return True

    def get_detailed_state(self) -> List[bool]:
        with self._lock:
            return [m.get_state() for m in self._members.values()]

    # ---- dunder ------------------------------------------------------

    def __len__(self) -> int:
        return len(self._members)

    def __str__(self) -> str:
        return f"group {self._name} with {len(self._members)} switches"

    def __repr__(self) -> str:
        return (
            f"SwitchGroup(name={self._name!r}, "
            f"members={list(self._members)!r}, policy={self._policy.name})"
        )
