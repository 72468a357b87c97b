"""airdancer - named switches, groups, timers and debounced GPIO buttons."""

__version__ = "0.1.0"

from airdancer.enums import (  # noqa: F401 – re-export for convenience
    ButtonEventType,
    DebounceState,
    DriverKind,
    GroupFailurePolicy,
    Polarity,
    PullMode,
    SwitchAction,
)

from airdancer.exceptions import (  # noqa: F401
    AirdancerError,
    ConfigurationError,
    DriverError,
    DriverInitError,
    DriverNotReadyError,
    DriverStateError,
    DuplicateButtonError,
    DuplicateNameError,
    GroupOperationError,
    IndexOutOfRangeError,
    InvalidButtonSpecError,
    InvalidIndexError,
    MalformedSpecError,
    SwitchIOError,
    SwitchOperationError,
    UnknownCollectionError,
    UnknownDriverError,
    UnknownSwitchError,
)

from airdancer.pinspec import PinSpec, parse_pin, parse_switch_spec  # noqa: F401

from airdancer.switch_collection import (  # noqa: F401
    DummySwitchCollection,
    Switch,
    SwitchCollection,
)

from airdancer.gpio_collection import GPIOSwitchCollection  # noqa: F401

from airdancer.piface import MCP23S17, PiFaceCollection  # noqa: F401

from airdancer.drivers import (  # noqa: F401
    available_drivers,
    create_collection,
)

from airdancer.resolver import (  # noqa: F401
    ResolvedSwitch,
    resolve_switch,
    resolve_switches,
)

from airdancer.switch_group import SwitchGroup  # noqa: F401

from airdancer.timer_registry import TimerEntry, TimerRegistry  # noqa: F401

from airdancer.blink import Blink  # noqa: F401
from airdancer.flipflop import Flipflop  # noqa: F401

from airdancer.button_driver import (  # noqa: F401
    DEFAULT_DEBOUNCE_DELAY,
    ButtonEvent,
    ButtonSpec,
    Debouncer,
    GpioButtonDriver,
    parse_button_spec,
    parse_button_specs,
)

from airdancer.config import (  # noqa: F401
    ButtonDriverConfig,
    CollectionConfig,
    EngineConfig,
    GroupConfig,
    SwitchConfig,
    load_config,
)

from airdancer.engine import SwitchEngine  # noqa: F401
