"""Parsing helpers for the small spec strings used in configuration.

Three formats are understood:

* **Pin numbers** — ``"GPIO18"`` or ``"18"`` (BCM line number).
* **Pin specs** — ``"pin[:active-high|active-low][:pull-none|pull-up|pull-down|pull-auto]"``,
  e.g. ``"GPIO18:active-low"``.  Used for GPIO output collections.
* **Switch specs** — ``"<collection>.<index>"``, e.g. ``"relay.2"``.

All parsers raise a :class:`~airdancer.exceptions.ConfigurationError`
subclass naming the offending token.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from airdancer.enums import Polarity, PullMode
from airdancer.exceptions import (
    ConfigurationError,
    InvalidIndexError,
    MalformedSpecError,
)

#: Separator between the collection name and the index of a switch spec.
SWITCH_SPEC_SEPARATOR = "."

#: Separator between the fields of a pin or button spec.
PIN_SPEC_SEPARATOR = ":"

_GPIO_PREFIX = "GPIO"


@dataclass(frozen=True)
class PinSpec:
    """A parsed GPIO pin specification."""

    line: int
    polarity: Polarity = Polarity.ACTIVE_HIGH
    pull: PullMode = PullMode.AUTO

    @property
    def name(self) -> str:
        """Canonical pin name (``GPIO<n>``)."""
        return f"{_GPIO_PREFIX}{self.line}"

    def __str__(self) -> str:
        return f"{self.name}:{self.polarity.value}:{self.pull.value}"


def parse_pin_number(pin: str) -> int:
    """Return the BCM line number of ``"GPIO<n>"`` or ``"<n>"``.

    Raises
    ------
    ConfigurationError
        If *pin* is in neither format or the number is negative.
    """
    token = str(pin).strip()
    digits = token
    if token.upper().startswith(_GPIO_PREFIX):
        digits = token[len(_GPIO_PREFIX):]
    if not (digits.isascii() and digits.isdigit()):
        raise ConfigurationError(
            f"invalid GPIO pin format: {pin!r} "
            f"(expected format: GPIO<number> or <number>)"
        )
    return int(digits)


def apply_option(
    token: str, polarity: Polarity, pull: PullMode
) -> Tuple[Polarity, PullMode]:
    """Apply one optional polarity/pull *token* and return the new pair.

    Tokens are case-insensitive.  Raises :class:`ConfigurationError` for
    anything that is neither a :class:`Polarity` nor a :class:`PullMode`
    value.
    """
    param = token.strip().lower()
    try:
        return Polarity(param), pull
    except ValueError:
        pass
    try:
        return polarity, PullMode(param)
    except ValueError:
        raise ConfigurationError(f"unknown parameter: {token!r}") from None


def parse_pin(spec: str) -> PinSpec:
    """Parse a pin spec such as ``"GPIO18:active-low:pull-up"``.

    Defaults are active-high and ``pull-auto``.
    """
    parts = str(spec).split(PIN_SPEC_SEPARATOR)
    line = parse_pin_number(parts[0])
    polarity = Polarity.ACTIVE_HIGH
    pull = PullMode.AUTO
    for token in parts[1:]:
        polarity, pull = apply_option(token, polarity, pull)
    return PinSpec(line=line, polarity=polarity, pull=pull)


def parse_switch_spec(spec: str) -> Tuple[str, int]:
    """Split a ``"<collection>.<index>"`` spec into its two parts.

    Only the format is checked here; whether the collection exists and
    the index is in range is decided by the resolver.

    Raises
    ------
    MalformedSpecError
        If the spec does not have exactly two non-empty components.
    InvalidIndexError
        If the index is not a non-negative integer.
    """
    parts = str(spec).split(SWITCH_SPEC_SEPARATOR)
    if len(parts) != 2 or not parts[0]:
        raise MalformedSpecError(
            f"invalid switch spec format: {spec!r} "
            f"(expected format: collection.index)"
        )
    collection, index_str = parts
    if not (index_str.isascii() and index_str.isdigit()):
        raise InvalidIndexError(
            f"invalid switch index {index_str!r} in spec {spec!r}"
        )
    return collection, int(index_str)
