"""airdancer enumerations.

Small closed value sets shared by the switch engine and the button
driver.  String-valued enums use the exact tokens accepted in
configuration files and button spec strings so that ``Enum(token)``
doubles as the parser.
"""

import enum
from enum import unique


# ---------------------------------------------------------------------------
#  Switch drivers
# ---------------------------------------------------------------------------


@unique
class DriverKind(str, enum.Enum):
    """Backend used by a switch collection."""

    DUMMY = "dummy"
    GPIO = "gpio"
    PIFACE = "piface"


@unique
class SwitchAction(str, enum.Enum):
    """State requested from a switch or group (control surface tokens)."""

    ON = "on"
    OFF = "off"
    BLINK = "blink"
    FLIPFLOP = "flipflop"


@unique
class GroupFailurePolicy(enum.Enum):
    """How a group bulk operation reacts to a failing member.

    ``CONTINUE`` tries every remaining member and reports the first
    failure afterwards.  ``ABORT`` stops at the first failure.  Neither
    policy rolls back members that were already changed.
    """

    CONTINUE = "continue"
    ABORT = "abort"


# ---------------------------------------------------------------------------
#  GPIO lines
# ---------------------------------------------------------------------------


@unique
class Polarity(str, enum.Enum):
    """Electrical level that corresponds to the logically active state."""

    ACTIVE_HIGH = "active-high"
    ACTIVE_LOW = "active-low"

    @property
    def active_level(self) -> bool:
        """Raw line level that means *active*."""
        return self is Polarity.ACTIVE_HIGH


@unique
class PullMode(str, enum.Enum):
    """Idle-bias resistor configuration of an input line.

    ``AUTO`` is never applied to hardware; it is resolved with
    :meth:`resolve` once, at configuration time.
    """

    NONE = "pull-none"
    UP = "pull-up"
    DOWN = "pull-down"
    AUTO = "pull-auto"

    def resolve(self, polarity: Polarity) -> "PullMode":
        """Return the concrete pull mode for *polarity*.

        ``AUTO`` becomes ``UP`` for active-low inputs (idle high) and
        ``DOWN`` for active-high inputs (idle low).  Concrete modes are
        returned unchanged.
        """
        if self is not PullMode.AUTO:
            return self
        if polarity is Polarity.ACTIVE_LOW:
            return PullMode.UP
        return PullMode.DOWN


# ---------------------------------------------------------------------------
#  Buttons
# ---------------------------------------------------------------------------


@unique
class ButtonEventType(enum.Enum):
    """Kind of a normalised button event."""

    PRESSED = "pressed"
    RELEASED = "released"


@unique
class DebounceState(enum.Enum):
    """States of the per-button debounce state machine."""

    IDLE = "idle"
    PENDING_PRESS = "pending_press"
    PRESSED = "pressed"
    PENDING_RELEASE = "pending_release"
