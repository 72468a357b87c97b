"""YAML configuration for the switch engine and the button driver.

The configuration file is a mapping with up to five top-level keys::

    collections:
      relay:
        driver: dummy
        driverconfig:
          switch-count: 4
      board:
        driver: piface
        driverconfig: {spidev: /dev/spidev0.0}
    switches:
      lamp: {spec: relay.2}
      fan: relay.3               # short form
    groups:
      all:
        switches: [lamp, fan]
        policy: continue         # or abort
    allow-partial: false
    buttons:
      - "btn1:GPIO16:active-low:pull-up"
      - {spec: "btn2:GPIO20", debounce-delay: 0.1}
    debounce-delay: 0.05

Keys may be written with dashes or underscores.  Everything is checked
by :meth:`EngineConfig.from_dict`; any problem raises
:class:`~airdancer.exceptions.ConfigurationError` naming the offending
entry.  No hardware is touched while loading.

Usage::

    config = load_config("/etc/airdancer/airdancer.yaml")
    engine = SwitchEngine.from_config(config)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from airdancer.button_driver import (
    DEFAULT_DEBOUNCE_DELAY,
    ButtonSpec,
    parse_button_spec,
    parse_button_specs,
)
from airdancer.drivers import driver_kind, normalize_keys, validate_driver_config
from airdancer.enums import DriverKind, GroupFailurePolicy
from airdancer.exceptions import ConfigurationError, DuplicateNameError
from airdancer.pinspec import parse_switch_spec

logger = logging.getLogger(__name__)

_TOP_LEVEL_KEYS = (
    "collections",
    "switches",
    "groups",
    "allow_partial",
    "buttons",
    "debounce_delay",
)


def _section(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(
            f"{key} must be a mapping, got {type(value).__name__}"
        )
    return dict(value)


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollectionConfig:
    """One switch collection: driver kind plus driver options."""

    name: str
    driver: DriverKind
    driver_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "CollectionConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"collection {name} must be a mapping with a driver"
            )
        entry = normalize_keys(data)
        if "driver" not in entry:
            raise ConfigurationError(f"collection {name} has no driver")
        kind = driver_kind(entry["driver"])
        options = normalize_keys(
            entry.get("driverconfig", entry.get("driver_config"))
        )
        try:
            validate_driver_config(kind, options)
        except ConfigurationError as exc:
            raise type(exc)(f"collection {name}: {exc}") from exc
        return cls(name=name, driver=kind, driver_config=options)


@dataclass(frozen=True)
class SwitchConfig:
    """A logical switch name and its ``"<collection>.<index>"`` spec."""

    name: str
    spec: str

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "SwitchConfig":
        spec = data.get("spec") if isinstance(data, Mapping) else data
        if not isinstance(spec, str) or not spec:
            raise ConfigurationError(f"switch {name} has no spec")
        return cls(name=name, spec=spec)


@dataclass(frozen=True)
class GroupConfig:
    """A named, ordered list of switch names."""

    name: str
    switches: Tuple[str, ...]
    policy: GroupFailurePolicy = GroupFailurePolicy.CONTINUE

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "GroupConfig":
        members = data.get("switches") if isinstance(data, Mapping) else data
        if (
            not isinstance(members, (list, tuple))
            or not members
            or not all(isinstance(m, str) for m in members)
        ):
            raise ConfigurationError(
                f"group {name} needs a non-empty list of switch names"
            )
        policy = GroupFailurePolicy.CONTINUE
        if isinstance(data, Mapping) and data.get("policy") is not None:
            try:
                policy = GroupFailurePolicy(str(data["policy"]).lower())
            except ValueError:
                raise ConfigurationError(
                    f"group {name}: unknown failure policy {data['policy']!r}"
                ) from None
        return cls(name=name, switches=tuple(members), policy=policy)


def _debounce_delay(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigurationError(
            f"{what} must be a non-negative number, got {value!r}"
        )
    return float(value)


def _button_entries(raw: Any) -> List[ButtonSpec]:
    if isinstance(raw, str):
        return parse_button_specs(raw)
    buttons: List[ButtonSpec] = []
    for item in raw:
        if not isinstance(item, Mapping):
            buttons.extend(parse_button_specs([item]))
            continue
        entry = normalize_keys(item)
        if "spec" not in entry:
            raise ConfigurationError(f"button entry {dict(item)!r} has no spec")
        spec = parse_button_spec(entry["spec"])
        if entry.get("debounce_delay") is not None:
            spec = replace(
                spec,
                debounce_delay=_debounce_delay(
                    entry["debounce_delay"], f"debounce_delay of button {spec.name}"
                ),
            )
        buttons.append(spec)
    return buttons


@dataclass(frozen=True)
class ButtonDriverConfig:
    """Buttons to monitor and the default debounce delay (seconds).

    A list entry may be a mapping with ``spec`` and ``debounce-delay``
    keys to override the delay for that button.
    """

    buttons: Tuple[ButtonSpec, ...] = ()
    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ButtonDriverConfig":
        entry = normalize_keys(data)
        raw = entry.get("buttons") or ()
        if not isinstance(raw, (str, list, tuple)):
            raise ConfigurationError(
                "buttons must be a list of button specs or a "
                "comma-separated string"
            )
        delay = _debounce_delay(
            entry.get("debounce_delay", DEFAULT_DEBOUNCE_DELAY), "debounce_delay"
        )
        return cls(buttons=tuple(_button_entries(raw)), debounce_delay=delay)


@dataclass(frozen=True)
class EngineConfig:
    """Validated configuration of a :class:`~airdancer.engine.SwitchEngine`."""

    collections: Dict[str, CollectionConfig] = field(default_factory=dict)
    switches: Dict[str, SwitchConfig] = field(default_factory=dict)
    groups: Dict[str, GroupConfig] = field(default_factory=dict)
    allow_partial: bool = False
    button_driver: ButtonDriverConfig = field(
        default_factory=ButtonDriverConfig
    )

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "EngineConfig":
        """Build and validate an :class:`EngineConfig` from plain data.

        Raises
        ------
        ConfigurationError
            On any structural problem.  Switch indices are range-checked
            later, when the engine resolves switches against the
            collections it built.
        """
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"configuration must be a mapping, got {type(data).__name__}"
            )
        top = normalize_keys(data)
        unknown = sorted(set(top) - set(_TOP_LEVEL_KEYS))
        if unknown:
            raise ConfigurationError(
                f"unknown configuration key(s): {', '.join(unknown)}"
            )

        collections = {
            name: CollectionConfig.from_dict(name, entry)
            for name, entry in _section(top, "collections").items()
        }

        switches: Dict[str, SwitchConfig] = {}
        for name, entry in _section(top, "switches").items():
            switch = SwitchConfig.from_dict(name, entry)
            collection_name, _ = parse_switch_spec(switch.spec)
            if collection_name not in collections:
                raise ConfigurationError(
                    f"collection {collection_name} not found for switch {name}"
                )
            switches[name] = switch

        groups: Dict[str, GroupConfig] = {}
        for name, entry in _section(top, "groups").items():
            if name in switches:
                raise DuplicateNameError(
                    f"group {name} has the same name as a switch"
                )
            group = GroupConfig.from_dict(name, entry)
            _check_members(group, switches)
            groups[name] = group

        allow_partial = top.get("allow_partial", False)
        if not isinstance(allow_partial, bool):
            raise ConfigurationError("allow_partial must be a boolean")

        config = cls(
            collections=collections,
            switches=switches,
            groups=groups,
            allow_partial=allow_partial,
            button_driver=ButtonDriverConfig.from_dict(top),
        )
        logger.debug(
            "Loaded configuration: %d collections, %d switches, %d groups, "
            "%d buttons",
            len(collections), len(switches), len(groups),
            len(config.button_driver.buttons),
        )
        return config


def _check_members(group: GroupConfig, switches: Mapping[str, Any]) -> None:
    seen: List[str] = []
    for member in group.switches:
        if member not in switches:
            raise ConfigurationError(
                f"unknown switch {member} in group {group.name}"
            )
        if member in seen:
            raise DuplicateNameError(
                f"switch {member} listed twice in group {group.name}"
            )
        seen.append(member)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Read and validate the YAML configuration file at *path*.

    Raises
    ------
    ConfigurationError
        If the file cannot be read, is not valid YAML or fails
        validation.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"failed to load configuration from {path}: {exc}"
        ) from exc
    logger.info("Loading configuration from %s", path)
    return EngineConfig.from_dict(data)
