"""Switch driver factory.

Maps every :class:`~airdancer.enums.DriverKind` to the collection class
that implements it.  The set of drivers is closed; selecting one is a
plain dictionary lookup made once, when the configuration is loaded.

Driver configuration is a flat mapping whose keys may be spelled with
dashes or underscores (``switch-count`` / ``switch_count``):

============  ==============================================  =========
Driver        Keys                                            Defaults
============  ==============================================  =========
``dummy``     ``switch_count``                                4
``gpio``      ``pins`` (required), ``off_on_close``           ``True``
``piface``    ``spidev``, ``max_switches``, ``off_on_close``  ``/dev/spidev0.0``, 8
============  ==============================================  =========
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from airdancer.enums import DriverKind
from airdancer.exceptions import ConfigurationError, UnknownDriverError
from airdancer.gpio_collection import GPIOSwitchCollection
from airdancer.piface import DEFAULT_SPIDEV, PiFaceCollection
from airdancer.switch_collection import (
    DEFAULT_DUMMY_SWITCH_COUNT,
    DummySwitchCollection,
    SwitchCollection,
)

logger = logging.getLogger(__name__)


def normalize_keys(config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of *config* with ``-`` in keys replaced by ``_``."""
    if config is None:
        return {}
    if not isinstance(config, Mapping):
        raise ConfigurationError(
            f"driver configuration must be a mapping, got {type(config).__name__}"
        )
    return {str(k).replace("-", "_"): v for k, v in config.items()}


def _check_keys(kind: DriverKind, config: Dict[str, Any], allowed) -> None:
    unknown = sorted(set(config) - set(allowed))
    if unknown:
        raise ConfigurationError(
            f"unknown {kind.value} driver option(s): {', '.join(unknown)}"
        )


def _check_bool(kind: DriverKind, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(
            f"{kind.value} driver option {key} must be a boolean"
        )
    return value


# ---------------------------------------------------------------------------
# Per-driver factories
# ---------------------------------------------------------------------------


def _create_dummy(
    config: Dict[str, Any], name: str, pin_factory: Any
) -> SwitchCollection:
    _check_keys(DriverKind.DUMMY, config, ("switch_count",))
    count = config.get("switch_count") or DEFAULT_DUMMY_SWITCH_COUNT
    return DummySwitchCollection(switch_count=count, name=name)


def _create_gpio(
    config: Dict[str, Any], name: str, pin_factory: Any
) -> SwitchCollection:
    _check_keys(DriverKind.GPIO, config, ("pins", "off_on_close"))
    pins = config.get("pins")
    if not pins or isinstance(pins, str) or not isinstance(pins, (list, tuple)):
        raise ConfigurationError(
            "gpio driver requires a non-empty list of pins"
        )
    off_on_close = _check_bool(
        DriverKind.GPIO, "off_on_close", config.get("off_on_close", True)
    )
    return GPIOSwitchCollection(
        [str(p) for p in pins],
        off_on_close=off_on_close,
        pin_factory=pin_factory,
        name=name,
    )


def _create_piface(
    config: Dict[str, Any], name: str, pin_factory: Any
) -> SwitchCollection:
    _check_keys(
        DriverKind.PIFACE, config, ("spidev", "max_switches", "off_on_close")
    )
    spidev = config.get("spidev") or DEFAULT_SPIDEV
    if not isinstance(spidev, str):
        raise ConfigurationError("piface driver option spidev must be a string")
    off_on_close = _check_bool(
        DriverKind.PIFACE, "off_on_close", config.get("off_on_close", True)
    )
    return PiFaceCollection(
        spidev=spidev,
        max_switches=config.get("max_switches"),
        off_on_close=off_on_close,
        pin_factory=pin_factory,
        name=name,
    )


DRIVER_FACTORIES: Dict[
    DriverKind, Callable[[Dict[str, Any], str, Any], SwitchCollection]
] = {
    DriverKind.DUMMY: _create_dummy,
    DriverKind.GPIO: _create_gpio,
    DriverKind.PIFACE: _create_piface,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def driver_kind(kind: Union[str, DriverKind]) -> DriverKind:
    """Return the :class:`DriverKind` for *kind*.

    Raises
    ------
    UnknownDriverError
        If *kind* does not name a supported driver.
    """
    try:
        return DriverKind(kind)
    except ValueError:
        raise UnknownDriverError(f"unknown driver: {kind}") from None


def available_drivers() -> List[str]:
    """Names of all supported drivers."""
    return [kind.value for kind in DRIVER_FACTORIES]


def create_collection(
    kind: Union[str, DriverKind],
    config: Optional[Mapping[str, Any]] = None,
    name: str = "",
    pin_factory: Any = None,
) -> SwitchCollection:
    """Validate *config* and build an (uninitialised) collection.

    Parameters
    ----------
    kind:
        Driver name or :class:`DriverKind`.
    config:
        Driver options (see the module docstring).
    name:
        Collection name, used in log messages.
    pin_factory:
        gpiozero pin factory handed to hardware drivers.

    Raises
    ------
    UnknownDriverError
        If *kind* is not a supported driver.
    ConfigurationError
        If *config* is invalid for the driver.
    """
    driver = driver_kind(kind)
    collection = DRIVER_FACTORIES[driver](
        normalize_keys(config), name, pin_factory
    )
    logger.debug("Created %r", collection)
    return collection


def validate_driver_config(
    kind: Union[str, DriverKind], config: Optional[Mapping[str, Any]] = None
) -> None:
    """Raise :class:`ConfigurationError` if *config* is invalid for *kind*.

    Building a collection touches no hardware, so validation simply
    builds one and discards it.
    """
    create_collection(kind, config)
