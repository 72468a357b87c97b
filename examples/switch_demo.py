#!/usr/bin/env python3
"""Switch engine demo on dummy collections.

No hardware is needed.  The script:

  1. Builds a switch engine from an inline YAML configuration (two
     dummy collections, four switches, two groups).
  2. Switches single outputs and groups and prints their status.
  3. Turns a switch on with an auto-off duration and waits for it.
  4. Blinks a group for a few cycles.
  5. Flipflops a group, one member at a time.
  6. Resets and closes the engine.

Run from the project root::

    python examples/switch_demo.py [config.yaml]
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

import yaml

# ---------------------------------------------------------------------------
# Ensure the package is importable when running from the repo root.
# ---------------------------------------------------------------------------
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from airdancer import EngineConfig, SwitchEngine, load_config  # noqa: E402

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEMO_CONFIG = """\
collections:
  relay:
    driver: dummy
    driverconfig: {switch-count: 4}
  spare:
    driver: dummy
    driverconfig: {switch-count: 2}
switches:
  lamp: relay.0
  fan: relay.1
  heater: relay.2
  pump: spare.0
groups:
  living_room:
    switches: [lamp, fan]
  everything:
    switches: [lamp, fan, heater, pump]
    policy: abort
"""

#: Auto-off duration for the timer demo (seconds).
AUTO_OFF = 1.0

#: Blink period (seconds) and number of cycles to watch.
BLINK_PERIOD = 0.4
BLINK_CYCLES = 3

#: Flipflop step length (seconds) and number of steps to watch.
FLIPFLOP_PERIOD = 0.4
FLIPFLOP_STEPS = 4

# ---------------------------------------------------------------------------
# Logging: colourful, timestamped, to stdout
# ---------------------------------------------------------------------------

BOLD = "\033[1m"
GREEN = "\033[32m"
CYAN = "\033[36m"
YELLOW = "\033[33m"
RED = "\033[31m"
RESET = "\033[0m"


class ColourFormatter(logging.Formatter):
    LEVEL_COLOURS = {
        logging.DEBUG: CYAN,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED + BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelno, "")
        ts = self.formatTime(record, "%H:%M:%S")
        return (
            f"{BOLD}{ts}{RESET} "
            f"{colour}{record.levelname:<8s}{RESET} "
            f"{record.name}: {record.getMessage()}"
        )


def setup_logging() -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColourFormatter())
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.handlers.clear()
    root.addHandler(handler)


def banner(text: str) -> None:
    print(f"\n{BOLD}{'=' * 60}\n  {text}\n{'=' * 60}{RESET}")


def show(engine: SwitchEngine, name: str) -> None:
    logging.getLogger("demo").info("%-12s %s", name, engine.status(name))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main() -> None:
    setup_logging()

    if len(sys.argv) > 1:
        config = load_config(sys.argv[1])
    else:
        config = EngineConfig.from_dict(yaml.safe_load(DEMO_CONFIG))

    engine = SwitchEngine.from_config(config)
    try:
        engine.reset()

        banner("Single switches")
        engine.turn_on("lamp")
        engine.turn_on("pump")
        for name in engine.list_switches():
            show(engine, name)

        banner("Groups")
        engine.turn_on("living_room")
        show(engine, "living_room")
        show(engine, "everything")
        engine.turn_off("everything")
        show(engine, "everything")

        banner(f"Auto-off after {AUTO_OFF}s")
        engine.turn_on("heater", duration=AUTO_OFF)
        show(engine, "heater")
        time.sleep(AUTO_OFF + 0.2)
        show(engine, "heater")

        banner("Blinking")
        engine.blink("living_room", period=BLINK_PERIOD, duty_cycle=0.5)
        for _ in range(BLINK_CYCLES * 2):
            time.sleep(BLINK_PERIOD / 2)
            show(engine, "living_room")
        engine.stop_task("living_room")
        show(engine, "living_room")

        banner("Flipflop")
        engine.flipflop("everything", period=FLIPFLOP_PERIOD, duty_cycle=0.5)
        for _ in range(FLIPFLOP_STEPS):
            time.sleep(FLIPFLOP_PERIOD)
            show(engine, "everything")
        engine.stop_task("everything")
        show(engine, "everything")
    finally:
        engine.close()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n{YELLOW}Interrupted by user.{RESET}")
