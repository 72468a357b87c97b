"""Switch resolver: bind logical switch names to collection outputs.

Configuration names every switch with a ``"<collection>.<index>"``
spec.  Resolution happens once, at startup, and is all-or-nothing::

    switches = resolve_switches(
        {"lamp": "relay.2", "fan": "relay.3"},
        {"relay": relay},
    )
    switches["lamp"].turn_on()

The resulting :class:`ResolvedSwitch` holds a reference to the owning
collection (never a copy), so every switch bound to the same output
observes the same state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from airdancer.exceptions import (
    InvalidIndexError,
    MalformedSpecError,
    UnknownCollectionError,
)
from airdancer.pinspec import parse_switch_spec
from airdancer.switch_collection import Switch, SwitchCollection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedSwitch:
    """A logical switch name bound to one output of a collection."""

    name: str
    collection: SwitchCollection = field(repr=False)
    collection_name: str
    index: int
    switch: Switch = field(repr=False, compare=False)

    @property
    def spec(self) -> str:
        """The ``"<collection>.<index>"`` spec this switch was bound from."""
        return f"{self.collection_name}.{self.index}"

    def turn_on(self) -> None:
        self.switch.turn_on()

    def turn_off(self) -> None:
        self.switch.turn_off()

    def set_state(self, on: bool) -> None:
        self.switch.set_state(on)

    def get_state(self) -> bool:
        return self.switch.get_state()

    def get_detailed_state(self) -> List[bool]:
        return [self.get_state()]

    def count_switches(self) -> int:
        return 1

    def __str__(self) -> str:
        return f"{self.name} ({self.switch})"


def resolve_switch(
    name: str, spec: str, collections: Mapping[str, SwitchCollection]
) -> ResolvedSwitch:
    """Resolve a single switch *spec* against *collections*.

    Raises
    ------
    MalformedSpecError
        If *name* is empty or *spec* is not ``"<collection>.<index>"``.
    UnknownCollectionError
        If the collection is not configured.
    InvalidIndexError
        If the index is not a non-negative integer or is out of range.
    """
    if not name:
        raise MalformedSpecError(f"empty switch name for spec {spec!r}")
    try:
        collection_name, index = parse_switch_spec(spec)
    except (MalformedSpecError, InvalidIndexError) as exc:
        raise type(exc)(f"{exc} for switch {name}") from None
    collection = collections.get(collection_name)
    if collection is None:
        raise UnknownCollectionError(
            f"collection {collection_name} not found for switch {name}"
        )
    count = collection.count_switches()
    if index >= count:
        raise InvalidIndexError(
            f"switch index {index} out of range for collection "
            f"{collection_name} (max: {count - 1}) for switch {name}"
        )
    return ResolvedSwitch(
        name=name,
        collection=collection,
        collection_name=collection_name,
        index=index,
        switch=collection.get_switch(index),
    )


def resolve_switches(
    specs: Mapping[str, str], collections: Mapping[str, SwitchCollection]
) -> Dict[str, ResolvedSwitch]:
    """Resolve every ``name -> spec`` entry of *specs*.

    The first failure aborts the whole resolution; no partial table is
    ever returned.  The returned dict preserves the order of *specs*.
    """
    resolved: Dict[str, ResolvedSwitch] = {}
    for name, spec in specs.items():
        resolved[name] = resolve_switch(name, spec, collections)
        logger.debug("Resolved switch %s -> %s", name, resolved[name].switch)
    logger.info("Resolved %d switches", len(resolved))
    return resolved
