"""Switch collections — fixed-size, 0-indexed sets of on/off outputs.

A :class:`SwitchCollection` represents every output of one backend:
a set of simulated switches, a list of GPIO lines, or the eight relay
outputs of a PiFace board.  The concrete backends form a closed set
(see :class:`~airdancer.enums.DriverKind`) and all implement the same
small capability interface:

* ``init()`` / ``close()`` — acquire and release the backend.
* ``get_switch(index)`` — a :class:`Switch` handle on one output.
* ``set_state(index, on)`` / ``get_state(index)`` — per-output access.
* ``get_state()`` / ``get_detailed_state()`` — whole-collection queries.
* ``turn_on()`` / ``turn_off()`` — drive every output at once.

Every read and write goes through the collection's re-entrant lock, so
concurrent requests against the same collection never interleave
partially (important for backends that update a shared register).

Subclasses only provide :meth:`SwitchCollection.count_switches`,
:meth:`~SwitchCollection._read` and :meth:`~SwitchCollection._write`
plus, where needed, ``init`` / ``_release``.

Usage::

    relay = DummySwitchCollection(switch_count=4, name="relay")
    relay.init()
    lamp = relay.get_switch(2)
    lamp.turn_on()
    assert relay.get_detailed_state() == [False, False, True, False]
    relay.close()
"""

from __future__ import annotations

import abc
import logging
import threading
from typing import ClassVar, List, Optional

from airdancer.enums import DriverKind
from airdancer.exceptions import ConfigurationError, IndexOutOfRangeError

logger = logging.getLogger(__name__)

#: Switch count of a dummy collection when the configuration omits it.
DEFAULT_DUMMY_SWITCH_COUNT: int = 4


# ---------------------------------------------------------------------------
# Switch: handle on a single output
# ---------------------------------------------------------------------------


class Switch:
    """Handle on one output of a :class:`SwitchCollection`.

    Handles are cheap and hold no state of their own: every call is
    forwarded to the owning collection, so all handles on the same
    output observe the same value.
    """

    def __init__(self, collection: SwitchCollection, index: int) -> None:
        self._collection = collection
        self._index = index

    @property
    def collection(self) -> SwitchCollection:
        """The owning collection."""
        return self._collection

    @property
    def index(self) -> int:
        """Index of this output within its collection."""
        return self._index

    def turn_on(self) -> None:
        self._collection.set_state(self._index, True)

    def turn_off(self) -> None:
        self._collection.set_state(self._index, False)

    def set_state(self, on: bool) -> None:
        self._collection.set_state(self._index, on)

    def get_state(self) -> bool:
        return self._collection.get_state(self._index)

    def __str__(self) -> str:
        return self._collection.switch_label(self._index)

    def __repr__(self) -> str:
        return f"Switch({str(self)!r})"


# ---------------------------------------------------------------------------
# SwitchCollection: common behaviour of all backends
# ---------------------------------------------------------------------------


class SwitchCollection(abc.ABC):
    """Base class for all switch collection backends.

    Parameters
    ----------
    name:
        Configured collection name (used in log messages only; the
        engine keys collections by this name).
    """

    #: Backend implemented by the subclass.
    kind: ClassVar[DriverKind]

    def __init__(self, name: str = "") -> None:
        self._name = name or self.kind.value
        self._lock = threading.RLock()
        self._initialized = False
        self._closed = False

    # ---- properties --------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def lock(self) -> threading.RLock:
        """Lock serialising every read and write on this collection."""
        return self._lock

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ---- lifecycle ---------------------------------------------------

    def init(self) -> None:
        """Acquire the backend's resources.

        Raises
        ------
        DriverInitError
            If the backend is unavailable.
        """
        logger.info("Initializing %s", self)
        self._initialized = True

    def close(self) -> None:
        """Release the backend's resources.

        Idempotent: the second and later calls do nothing.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            logger.info("Closing %s", self)
            self._release()

    def _release(self) -> None:
        """Backend-specific cleanup (called once by :meth:`close`)."""

    # ---- backend hooks -----------------------------------------------

    @abc.abstractmethod
    def count_switches(self) -> int:
        """Number of addressable outputs."""

    @abc.abstractmethod
    def _read(self, index: int) -> bool:
        """Return the logical state of output *index* (lock held)."""

    @abc.abstractmethod
    def _write(self, index: int, on: bool) -> None:
        """Drive output *index* to *on* (lock held)."""

    def switch_label(self, index: int) -> str:
        """Human-readable identifier of output *index*."""
        return f"{self.kind.value}:{index}"

    # ---- per-switch access -------------------------------------------

    def _check_index(self, index: int) -> None:
        count = self.count_switches()
        if (
            isinstance(index, bool)
            or not isinstance(index, int)
            or not 0 <= index < count
        ):
            raise IndexOutOfRangeError(
                f"invalid switch id {index!r} for {self} "
                f"(must be 0-{count - 1})"
                if count
                else f"invalid switch id {index!r} for {self} "
                f"(collection is empty)"
            )

    def get_switch(self, index: int) -> Switch:
        """Return a :class:`Switch` handle on output *index*.

        Raises
        ------
        IndexOutOfRangeError
            If *index* is not in ``[0, count_switches())``.
        """
        self._check_index(index)
        return Switch(self, index)

    def list_switches(self) -> List[Switch]:
        """Handles on every output, in index order."""
        return [Switch(self, i) for i in range(self.count_switches())]

    def set_state(self, index: int, on: bool) -> None:
        """Drive output *index* on or off."""
        self._check_index(index)
        with self._lock:
            logger.debug(
                "Turning %s switch %s", "on" if on else "off",
                self.switch_label(index),
            )
            self._write(index, bool(on))

    def get_state(self, index: Optional[int] = None) -> bool:
        """Return the state of output *index*.

        Without an index, return the aggregate state of the collection:
        ``True`` iff every output is on.
        """
        if index is None:
            return all(self.get_detailed_state())
        self._check_index(index)
        with self._lock:
            return self._read(index)

    # ---- whole-collection access -------------------------------------

    def get_detailed_state(self) -> List[bool]:
        """Per-output states in index order."""
        with self._lock:
            return [self._read(i) for i in range(self.count_switches())]

    def turn_on(self) -> None:
        """Turn every output on; stops at the first failure."""
        self._set_all(True)

    def turn_off(self) -> None:
        """Turn every output off; stops at the first failure."""
        self._set_all(False)

    def _set_all(self, on: bool) -> None:
        with self._lock:
            logger.debug(
                "Turning %s all switches of %s", "on" if on else "off", self
            )
            for i in range(self.count_switches()):
                self._write(i, on)

    # ---- dunder ------------------------------------------------------

    def __str__(self) -> str:
        return (
            f"{self.kind.value} switch collection {self._name!r} "
            f"with {self.count_switches()} switches"
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, "
            f"switches={self.count_switches()})"
        )


# ---------------------------------------------------------------------------
# DummySwitchCollection: simulated outputs
# ---------------------------------------------------------------------------


class DummySwitchCollection(SwitchCollection):
    """In-memory collection for testing and demos.

    Parameters
    ----------
    switch_count:
        Number of simulated outputs.  ``0`` is a valid (empty)
        collection; negative counts are rejected.
    name:
        Configured collection name.
    """

    kind = DriverKind.DUMMY

    def __init__(
        self,
        switch_count: int = DEFAULT_DUMMY_SWITCH_COUNT,
        name: str = "",
    ) -> None:
        if isinstance(switch_count, bool) or not isinstance(switch_count, int):
            raise ConfigurationError(
                f"switch_count must be an integer, got {switch_count!r}"
            )
        if switch_count < 0:
            raise ConfigurationError("switch_count must be non-negative")
        self._states: List[bool] = [False] * switch_count
        super().__init__(name)

    def count_switches(self) -> int:
        return len(self._states)

    def init(self) -> None:
        logger.info(
            "Initializing dummy switch collection %r with %d switches",
            self.name,
            len(self._states),
        )
        self._initialized = True

    def _read(self, index: int) -> bool:
        return self._states[index]

    def _write(self, index: int, on: bool) -> None:
        self._states[index] = on
