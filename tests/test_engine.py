"""Tests for the switch engine (end-to-end over dummy collections)."""

import threading
import time
from unittest.mock import patch

import pytest

from airdancer.config import CollectionConfig, EngineConfig, GroupConfig, SwitchConfig
from airdancer.drivers import create_collection
from airdancer.engine import SwitchEngine
from airdancer.enums import DriverKind, SwitchAction
from airdancer.exceptions import (
    AirdancerError,
    ConfigurationError,
    DriverInitError,
    GroupOperationError,
    InvalidIndexError,
    SwitchIOError,
    UnknownCollectionError,
    UnknownSwitchError,
)
from airdancer.resolver import ResolvedSwitch
from airdancer.switch_group import SwitchGroup

WAIT = 2.0

CONFIG = {
    "collections": {
        "relay": {"driver": "dummy", "driverconfig": {"switch-count": 4}},
    },
    "switches": {
        "lamp": {"spec": "relay.0"},
        "fan": {"spec": "relay.1"},
        "heater": {"spec": "relay.2"},
    },
    "groups": {
        "all": {"switches": ["lamp", "fan"]},
    },
}


def _make_engine(data=None, **kwargs) -> SwitchEngine:
    return SwitchEngine.from_config(EngineConfig.from_dict(data or CONFIG), **kwargs)


def _wait_until(predicate, timeout=WAIT):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def engine():
    eng = _make_engine()
    yield eng
    eng.close()


# ===========================================================================
# Construction
# ===========================================================================


class TestFromConfig:

    def test_names(self, engine):
        assert engine.list_switches() == ["lamp", "fan", "heater"]
        assert engine.list_groups() == ["all"]
        assert list(engine.collections) == ["relay"]

    def test_get_switch_and_group(self, engine):
        assert isinstance(engine.get("lamp"), ResolvedSwitch)
        assert isinstance(engine.get("all"), SwitchGroup)

    def test_unknown_name(self, engine):
        with pytest.raises(UnknownSwitchError, match="nothing"):
            engine.get("nothing")

    def test_unknown_name_is_key_error(self, engine):
        with pytest.raises(KeyError):
            engine.turn_on("nothing")

    def test_out_of_range_spec(self):
        data = {
            "collections": {"relay": {"driver": "dummy", "driverconfig": {"switch_count": 4}}},
            "switches": {"lamp": {"spec": "relay.9"}},
        }
        with pytest.raises(InvalidIndexError):
            _make_engine(data)

    def test_switch_group_name_clash(self, engine):
        lamp = engine.get("lamp")
        with pytest.raises(AirdancerError):
            SwitchEngine({}, {"lamp": lamp}, {"lamp": SwitchGroup("lamp", [lamp])})


class TestPartialStartup:

    DATA = {
        "collections": {
            "relay": {"driver": "dummy"},
            "board": {"driver": "piface"},
        },
        "switches": {"lamp": "relay.0", "pump": "board.1"},
        "groups": {
            "lights": {"switches": ["lamp"]},
            "mixed": {"switches": ["lamp", "pump"]},
        },
    }

    def test_failed_collection_is_fatal_by_default(self):
        with patch(
            "airdancer.piface.PiFaceSPI", side_effect=OSError("no such device")
        ):
            with pytest.raises(DriverInitError) as excinfo:
                _make_engine(self.DATA)
        assert isinstance(excinfo.value.__cause__, OSError)

    def test_allow_partial_skips_dependents(self, caplog):
        with patch(
            "airdancer.piface.PiFaceSPI", side_effect=OSError("no such device")
        ):
            engine = _make_engine(self.DATA, allow_partial=True)
        try:
            assert list(engine.collections) == ["relay"]
            assert engine.list_switches() == ["lamp"]
            assert engine.list_groups() == ["lights"]
            assert "Skipping collection board" in caplog.text
        finally:
            engine.close()

    def test_allow_partial_from_config(self):
        data = dict(self.DATA, **{"allow-partial": True})
        with patch(
            "airdancer.piface.PiFaceSPI", side_effect=OSError("no such device")
        ):
            engine = _make_engine(data)
        assert engine.list_switches() == ["lamp"]
        engine.close()

    @staticmethod
    def _direct_config(**groups):
        return EngineConfig(
            collections={"relay": CollectionConfig("relay", DriverKind.DUMMY, {})},
            switches={
                "lamp": SwitchConfig("lamp", "relay.0"),
                "ghost": SwitchConfig("ghost", "nosuch.0"),
            },
            groups={
                name: GroupConfig(name, tuple(members))
                for name, members in groups.items()
            },
        )

    @pytest.mark.parametrize("allow_partial", [False, True])
    def test_unknown_collection_is_fatal(self, allow_partial):
        config = self._direct_config(all=("lamp", "ghost"))
        with pytest.raises(UnknownCollectionError, match="nosuch"):
            SwitchEngine.from_config(config, allow_partial=allow_partial)

    def test_unknown_collection_closes_built_collections(self):
        config = self._direct_config()
        created = []

        def _create(*args, **kwargs):
            created.append(create_collection(*args, **kwargs))
            return created[-1]

        with patch("airdancer.engine.create_collection", side_effect=_create):
            with pytest.raises(UnknownCollectionError):
                SwitchEngine.from_config(config)
        assert len(created) == 1
        assert created[0].is_closed

    def test_group_with_unknown_switch_is_fatal(self):
        config = EngineConfig(
            collections={"relay": CollectionConfig("relay", DriverKind.DUMMY, {})},
            switches={"lamp": SwitchConfig("lamp", "relay.0")},
            groups={"all": GroupConfig("all", ("lamp", "nobody"))},
        )
        with pytest.raises(ConfigurationError, match="nobody"):
            SwitchEngine.from_config(config, allow_partial=True)


# ===========================================================================
# Switching
# ===========================================================================


class TestSwitching:

    def test_switch_on_off(self, engine):
        engine.turn_on("lamp")
        assert engine.get_state("lamp") is True
        engine.turn_off("lamp")
        assert engine.get_state("lamp") is False

    def test_group_state_follows_members(self, engine):
        engine.turn_on("all")
        engine.collections["relay"].set_state(1, False)
        assert engine.get_state("all") is False
        assert engine.get_detailed_state("all") == [True, False]

    def test_switch_detailed_state(self, engine):
        engine.turn_on("fan")
        assert engine.get_detailed_state("fan") == [True]

    def test_set_state(self, engine):
        engine.set_state("heater", True)
        assert engine.get_state("heater")
        engine.set_state("heater", False)
        assert not engine.get_state("heater")

    def test_group_failure_propagates(self, engine):
        relay = engine.collections["relay"]
        with patch.object(
            type(relay), "_write", side_effect=SwitchIOError("stuck")
        ):
            with pytest.raises(GroupOperationError) as excinfo:
                engine.turn_on("all")
        assert excinfo.value.partial


# ===========================================================================
# Timers
# ===========================================================================


class TestTimers:

    def test_turn_on_with_duration(self, engine):
        engine.turn_on("lamp", duration=0.02)
        assert engine.get_state("lamp")
        assert _wait_until(lambda: not engine.get_state("lamp"))
        assert not engine.timers.is_armed("lamp")

    def test_status_reports_duration(self, engine):
        engine.turn_on("lamp", duration=30)
        status = engine.status("lamp")
        assert status["state"] == "on"
        assert status["duration"] == 30

    def test_turn_off_cancels_timer(self, engine):
        engine.turn_on("lamp", duration=30)
        engine.turn_off("lamp")
        assert not engine.timers.is_armed("lamp")

    def test_turn_on_without_duration_cancels_timer(self, engine):
        engine.turn_on("lamp", duration=30)
        engine.turn_on("lamp")
        assert not engine.timers.is_armed("lamp")
        assert "duration" not in engine.status("lamp")

    def test_negative_duration(self, engine):
        with pytest.raises(ValueError):
            engine.turn_on("lamp", duration=-1)

    def test_arm_timer_turn_on(self, engine):
        engine.arm_timer("fan", 0.02, state=True)
        assert _wait_until(lambda: engine.get_state("fan"))

    def test_arm_timer_on_group(self, engine):
        engine.turn_on("all")
        engine.arm_timer("all", 0.02)
        assert _wait_until(lambda: engine.get_detailed_state("all") == [False, False])

    def test_rearm_supersedes(self, engine):
        engine.turn_on("lamp")
        engine.arm_timer("lamp", 0.02)
        engine.arm_timer("lamp", 30)
        time.sleep(0.1)
        assert engine.get_state("lamp")
        assert engine.status("lamp")["duration"] == 30

    def test_cancel_timer(self, engine):
        engine.turn_on("lamp")
        engine.arm_timer("lamp", 0.05)
        assert engine.cancel_timer("lamp") is True
        time.sleep(0.1)
        assert engine.get_state("lamp")

    def test_cancel_absent_timer(self, engine):
        assert engine.cancel_timer("lamp") is False

    def test_cancel_timer_unknown_name(self, engine):
        with pytest.raises(UnknownSwitchError):
            engine.cancel_timer("ghost")


# ===========================================================================
# Blinking and status
# ===========================================================================


class TestBlinkAndStatus:

    def test_status_off(self, engine):
        assert engine.status("lamp") == {
            "state": "off",
            "current_state": False,
            "detailed_state": [False],
        }

    def test_status_group_on(self, engine):
        engine.turn_on("all")
        status = engine.status("all")
        assert status["state"] == "on"
        assert status["detailed_state"] == [True, True]

    def test_blink_status(self, engine):
        engine.blink("lamp", period=10.0, duty_cycle=0.25)
        status = engine.status("lamp")
        assert status["state"] == "blink"
        assert status["period"] == 10.0
        assert status["duty_cycle"] == 0.25
        assert engine.is_blinking("lamp")

    def test_blink_cancels_timer(self, engine):
        engine.turn_on("lamp", duration=30)
        engine.blink("lamp", period=10.0)
        assert not engine.timers.is_armed("lamp")

    def test_turn_on_stops_blink(self, engine):
        engine.blink("lamp", period=10.0)
        engine.turn_on("lamp")
        assert not engine.is_blinking("lamp")
        assert engine.get_state("lamp")

    def test_stop_task_leaves_blink_off(self, engine):
        engine.blink("lamp", period=10.0, duty_cycle=1.0)
        assert _wait_until(lambda: engine.get_state("lamp"))
        assert engine.stop_task("lamp") is True
        assert not engine.get_state("lamp")
        assert engine.stop_task("lamp") is False

    def test_reblink_replaces(self, engine):
        first = engine.blink("lamp", period=10.0)
        second = engine.blink("lamp", period=5.0)
        assert not first.is_running
        assert second.is_running
        assert engine.status("lamp")["period"] == 5.0

    def test_blink_validation(self, engine):
        with pytest.raises(ValueError):
            engine.blink("lamp", period=0)
        assert not engine.is_blinking("lamp")


# ===========================================================================
# Flipflop
# ===========================================================================


class TestFlipflop:

    def test_flipflop_status(self, engine):
        flipflop = engine.flipflop("all", period=10.0, duty_cycle=0.25)
        status = engine.status("all")
        assert status["state"] == SwitchAction.FLIPFLOP.value
        assert status["period"] == 10.0
        assert status["duty_cycle"] == 0.25
        assert engine.is_flipflopping("all")
        assert not engine.is_blinking("all")
        assert [s.name for s in flipflop.switches] == ["lamp", "fan"]

    def test_one_member_on_at_a_time(self, engine):
        engine.flipflop("all", period=0.02, duty_cycle=0.5)
        seen = set()
        deadline = time.monotonic() + WAIT
        while len(seen) < 2 and time.monotonic() < deadline:
            state = engine.get_detailed_state("all")
            assert state.count(True) <= 1
            if True in state:
                seen.add(state.index(True))
            time.sleep(0.001)
        assert seen == {0, 1}

    def test_turn_on_stops_flipflop(self, engine):
        flipflop = engine.flipflop("all", period=10.0)
        engine.turn_on("all")
        assert not flipflop.is_running
        assert not engine.is_flipflopping("all")
        assert engine.get_detailed_state("all") == [True, True]

    def test_turn_off_stops_flipflop(self, engine):
        engine.flipflop("all", period=0.02, duty_cycle=1.0)
        engine.turn_off("all")
        assert not engine.is_flipflopping("all")
        assert engine.status("all")["state"] == SwitchAction.OFF.value

    def test_blink_replaces_flipflop(self, engine):
        flipflop = engine.flipflop("all", period=10.0)
        engine.blink("all", period=10.0)
        assert not flipflop.is_running
        assert engine.is_blinking("all")
        assert engine.status("all")["state"] == SwitchAction.BLINK.value

    def test_flipflop_replaces_blink(self, engine):
        blinker = engine.blink("all", period=10.0)
        engine.flipflop("all", period=10.0)
        assert not blinker.is_running
        assert engine.is_flipflopping("all")

    def test_flipflop_cancels_timer(self, engine):
        engine.turn_on("all", duration=30)
        engine.flipflop("all", period=10.0)
        assert not engine.timers.is_armed("all")
        assert "duration" not in engine.status("all")

    def test_single_switch(self, engine):
        engine.flipflop("lamp", period=0.02, duty_cycle=1.0)
        assert _wait_until(lambda: engine.get_state("lamp"))
        assert engine.stop_task("lamp") is True
        assert not engine.get_state("lamp")

    def test_stop_task_leaves_members_off(self, engine):
        engine.flipflop("all", period=0.02, duty_cycle=1.0)
        assert _wait_until(lambda: True in engine.get_detailed_state("all"))
        assert engine.stop_task("all") is True
        assert engine.get_detailed_state("all") == [False, False]
        assert engine.stop_task("all") is False

    @pytest.mark.parametrize(
        "period, duty_cycle", [(0, 0.5), (-1, 0.5), (1.0, 1.5), (1.0, -0.1)]
    )
    def test_flipflop_validation(self, engine, period, duty_cycle):
        with pytest.raises(ValueError):
            engine.flipflop("all", period=period, duty_cycle=duty_cycle)
        assert not engine.is_flipflopping("all")

    def test_flipflop_unknown_name(self, engine):
        with pytest.raises(UnknownSwitchError):
            engine.flipflop("ghost", period=1.0)

    def test_close_stops_flipflop(self):
        engine = _make_engine()
        flipflop = engine.flipflop("all", period=0.02, duty_cycle=1.0)
        engine.close()
        assert not flipflop.is_running
        assert not engine.is_flipflopping("all")


# ===========================================================================
# Concurrency
# ===========================================================================


class TestConcurrentGroupAccess:

    ROUNDS = 200

    def test_group_state_stays_uniform(self, engine):
        failures = []
        done = threading.Event()

        def _switch(action):
            try:
                for _ in range(self.ROUNDS):
                    action()
            except Exception as exc:  # reported by the assertion below
                failures.append(repr(exc))

        def _read():
            while not done.is_set():
                state = engine.get_detailed_state("all")
                if len(set(state)) != 1:
                    failures.append(f"mixed group state {state}")
                pending = engine.timers.keys()
                if pending not in ([], ["all"]):
                    failures.append(f"unexpected timers {pending}")

        writers = [
            threading.Thread(target=_switch, args=(lambda: engine.turn_on("all"),)),
            threading.Thread(target=_switch, args=(lambda: engine.turn_off("all"),)),
            threading.Thread(
                target=_switch,
                args=(lambda: engine.arm_timer("all", 0.001, state=True),),
            ),
            threading.Thread(
                target=_switch,
                args=(lambda: engine.arm_timer("all", 0.001, state=False),),
            ),
        ]
        reader = threading.Thread(target=_read)
        reader.start()
        for thread in writers:
            thread.start()
        for thread in writers:
            thread.join(WAIT * 5)
        assert _wait_until(lambda: not engine.timers.is_armed("all"))
        done.set()
        reader.join(WAIT)

        assert failures == []
        assert len(set(engine.get_detailed_state("all"))) == 1


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestLifecycle:

    def test_reset_turns_everything_off(self, engine):
        engine.turn_on("all")
        engine.turn_on("heater")
        engine.reset()
        assert engine.collections["relay"].get_detailed_state() == [False] * 4

    def test_reset_logs_failures(self, engine, caplog):
        relay = engine.collections["relay"]
        with patch.object(
            type(relay), "_write", side_effect=SwitchIOError("stuck")
        ):
            engine.reset()
        assert "Failed to turn off collection relay" in caplog.text

    def test_close_stops_everything(self):
        engine = _make_engine()
        relay = engine.collections["relay"]
        engine.blink("all", period=10.0)
        engine.turn_on("heater", duration=30)
        engine.close()
        assert not engine.is_blinking("all")
        assert engine.timers.keys() == []
        assert relay.is_closed

    def test_close_is_idempotent(self):
        engine = _make_engine()
        engine.close()
        engine.close()

    def test_close_reports_failures(self):
        engine = _make_engine()
        relay = engine.collections["relay"]
        with patch.object(
            relay, "_release", side_effect=SwitchIOError("bus hung")
        ):
            with pytest.raises(AirdancerError, match="collection relay"):
                engine.close()
