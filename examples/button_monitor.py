#!/usr/bin/env python3
"""Print debounced button events from GPIO lines.

Each command-line argument is a button spec::

    name:pin[:active-high|active-low][:pull-none|pull-up|pull-down|pull-auto]

Run on a Raspberry Pi from the project root::

    python examples/button_monitor.py btn1:GPIO16:active-low btn2:GPIO20

Without arguments two buttons are simulated on gpiozero's mock pin
factory, so the script also runs on a desktop machine.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from gpiozero.pins.mock import MockFactory

# ---------------------------------------------------------------------------
# Ensure the package is importable when running from the repo root.
# ---------------------------------------------------------------------------
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from airdancer import GpioButtonDriver  # noqa: E402

#: Default debounce delay (seconds).
DEBOUNCE_DELAY = 0.05

#: Buttons used when no specs are given.
MOCK_BUTTONS = ["btn1:GPIO16:active-low", "btn2:GPIO20"]

#: Interval (seconds) between simulated presses.
MOCK_INTERACTION_INTERVAL = 1.0

BOLD = "\033[1m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RESET = "\033[0m"


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def simulate(factory: MockFactory) -> None:
    """Press and release the mock buttons, with a bounce on each press."""
    log = logging.getLogger("demo.mock")
    # (line, raw level while pressed)
    lines = [(16, False), (20, True)]
    for cycle in range(3):
        for line, active in lines:
            pin = factory.pin(line)
            press = pin.drive_high if active else pin.drive_low
            release = pin.drive_low if active else pin.drive_high
            log.info("Cycle %d: pressing GPIO%d", cycle + 1, line)
            # contact bounce
            for _ in range(3):
                press()
                release()
            press()
            await asyncio.sleep(MOCK_INTERACTION_INTERVAL / 2)
            release()
            await asyncio.sleep(MOCK_INTERACTION_INTERVAL / 2)


async def main() -> None:
    setup_logging()
    log = logging.getLogger("demo")

    specs = sys.argv[1:]
    factory = None
    if not specs:
        factory = MockFactory()
        specs = MOCK_BUTTONS
        log.info("No button specs given, simulating %s", ", ".join(specs))

    driver = GpioButtonDriver(debounce_delay=DEBOUNCE_DELAY, pin_factory=factory)
    for spec in specs:
        driver.add_button(spec)
    await driver.start()

    async def consume() -> None:
        async for event in driver.events():
            colour = GREEN if event.pressed else YELLOW
            print(
                f"{BOLD}{event.timestamp:%H:%M:%S.%f}{RESET} "
                f"{colour}{event.source:<8s} {event.type.value:<8s}{RESET} "
                f"({event.device})"
            )

    consumer = asyncio.create_task(consume())
    try:
        if factory is not None:
            await simulate(factory)
        else:
            await asyncio.Event().wait()
    finally:
        await driver.stop()
        await consumer
        if driver.dropped_events:
            log.warning("%d events were dropped", driver.dropped_events)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print(f"\n{YELLOW}Interrupted by user.{RESET}")
