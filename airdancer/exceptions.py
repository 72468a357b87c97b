"""Exception hierarchy for airdancer.

Every error raised by the package derives from :class:`AirdancerError`.
The four families mirror the points at which things can go wrong:

* :class:`ConfigurationError` — bad specs or names, detected while the
  engine or button driver is being configured.  Fatal at startup.
* :class:`DriverError` — a hardware backend could not be brought up.
* :class:`SwitchOperationError` — a live operation on a switch or group
  failed.
* :class:`DriverStateError` — an API was used in the wrong lifecycle
  state (double start, adding buttons while running, ...).

Where callers would naturally catch a built-in exception the matching
built-in is mixed in (``ValueError``, ``IndexError``, ``KeyError``,
``RuntimeError``).
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class AirdancerError(Exception):
    """Base class for all airdancer errors."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(AirdancerError, ValueError):
    """Invalid configuration; raised before any engine is brought up."""


class MalformedSpecError(ConfigurationError):
    """A switch spec is not of the form ``<collection>.<index>``."""


class UnknownCollectionError(ConfigurationError):
    """A switch spec names a collection that is not configured."""


class InvalidIndexError(ConfigurationError):
    """A switch spec index is not a non-negative integer or is out of range."""


class DuplicateNameError(ConfigurationError):
    """A name that must be unique was registered twice."""


class DuplicateButtonError(DuplicateNameError):
    """A button name or pin is already registered with the driver."""


class InvalidButtonSpecError(ConfigurationError):
    """A button spec has an unparsable pin, polarity or pull token."""


class UnknownDriverError(ConfigurationError):
    """A collection names a driver kind that does not exist."""


# ---------------------------------------------------------------------------
# Driver errors
# ---------------------------------------------------------------------------


class DriverError(AirdancerError):
    """A hardware backend failed."""


class DriverInitError(DriverError):
    """A backend could not acquire its resources (device missing, ...)."""


# ---------------------------------------------------------------------------
# Runtime operation errors
# ---------------------------------------------------------------------------


class SwitchOperationError(AirdancerError):
    """A live switch or group operation failed."""


class IndexOutOfRangeError(SwitchOperationError, IndexError):
    """A switch index is outside ``[0, count)``."""


class SwitchIOError(SwitchOperationError):
    """Reading or writing an output failed at the hardware level."""


class UnknownSwitchError(SwitchOperationError, KeyError):
    """No switch or group is registered under the requested name."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return Exception.__str__(self)


class GroupOperationError(SwitchOperationError):
    """One or more members failed during a group bulk operation.

    The group may now be in a mixed state: members changed before (and,
    with the ``CONTINUE`` policy, after) the failure keep their new
    value.  Callers should re-query the detailed state to reconcile.

    Parameters
    ----------
    group:
        Name of the group.
    failures:
        ``(switch name, exception)`` pairs in member order.  The first
        entry is the reported failure.
    """

    partial: bool = True

    def __init__(
        self,
        group: str,
        failures: List[Tuple[str, BaseException]],
        message: Optional[str] = None,
    ) -> None:
        self.group = group
        self.failures = list(failures)
        if message is None:
            details = "; ".join(
                f"switch {name}: {exc}" for name, exc in self.failures
            )
            message = f"errors in group {group}: {details}"
        super().__init__(message)

    @property
    def first_error(self) -> Optional[BaseException]:
        """The first member failure, or ``None`` if there is none."""
        return self.failures[0][1] if self.failures else None


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------


class DriverStateError(AirdancerError, RuntimeError):
    """An operation was called in the wrong lifecycle state."""


class DriverNotReadyError(DriverStateError):
    """The button driver cannot perform the request in its current state."""
