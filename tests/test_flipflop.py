"""Tests for rotating flipflop output."""

import threading
import time

import pytest

from airdancer.exceptions import DriverStateError, SwitchIOError
from airdancer.flipflop import Flipflop
from airdancer.resolver import resolve_switches
from airdancer.switch_collection import DummySwitchCollection


class Member:
    """Switchable that appends ``(label, state)`` to a shared log."""

    def __init__(self, label, log, fail: bool = False) -> None:
        self.label = label
        self.log = log
        self.fail = fail
        self.on = False

    def set_state(self, on: bool) -> None:
        self.log.append((self.label, on))
        if self.fail and on:
            raise SwitchIOError("relay stuck")
        self.on = on

    def __str__(self) -> str:
        return self.label


def _members(*labels, log=None):
    log = [] if log is None else log
    return [Member(label, log) for label in labels], log


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)
    return predicate()


def _switched_on(log):
    return [label for label, on in list(log) if on]


# ===========================================================================
# Validation
# ===========================================================================


class TestValidation:

    def test_needs_switches(self):
        with pytest.raises(ValueError, match="at least one"):
            Flipflop([], 1.0)

    @pytest.mark.parametrize("period", [0, -1, float("nan")])
    def test_period_must_be_positive(self, period):
        members, _ = _members("a", "b")
        with pytest.raises(ValueError, match="period"):
            Flipflop(members, period)

    @pytest.mark.parametrize("duty", [-0.1, 1.5])
    def test_duty_cycle_range(self, duty):
        members, _ = _members("a", "b")
        with pytest.raises(ValueError, match="duty"):
            Flipflop(members, 1.0, duty)

    def test_properties(self):
        members, _ = _members("a", "b", "c")
        flipflop = Flipflop(iter(members), 0.5, 0.25, name="row")
        assert flipflop.switches == members
        assert flipflop.period == 0.5
        assert flipflop.duty_cycle == 0.25
        assert flipflop.current is None
        assert not flipflop.is_running


# ===========================================================================
# Running
# ===========================================================================


class TestRunning:

    def test_rotates_in_order(self):
        members, log = _members("a", "b", "c")
        flipflop = Flipflop(members, 0.02)
        flipflop.start()
        try:
            assert _wait_for(lambda: len(_switched_on(log)) >= 4)
        finally:
            flipflop.stop()
        assert _switched_on(log)[:4] == ["a", "b", "c", "a"]

    def test_each_member_off_before_next_on(self):
        members, log = _members("a", "b")
        flipflop = Flipflop(members, 0.02)
        flipflop.start()
        try:
            assert _wait_for(lambda: len(_switched_on(log)) >= 3)
        finally:
            flipflop.stop()
        lit = set()
        for label, on in log:
            if on:
                assert not lit
                lit.add(label)
            else:
                lit.discard(label)

    def test_current_tracks_position(self):
        members, log = _members("a", "b")
        flipflop = Flipflop(members, 10.0, duty_cycle=1.0)
        flipflop.start()
        try:
            assert _wait_for(lambda: flipflop.current == 0)
            assert members[0].on
        finally:
            flipflop.stop()
        assert flipflop.current is None

    def test_stop_leaves_all_off(self):
        members, _ = _members("a", "b", "c")
        flipflop = Flipflop(members, 10.0, duty_cycle=1.0)
        flipflop.start()
        assert _wait_for(lambda: members[0].on)
        flipflop.stop()
        assert not any(m.on for m in members)
        assert not flipflop.is_running

    def test_zero_duty_never_turns_on(self):
        members, log = _members("a", "b")
        flipflop = Flipflop(members, 0.01, duty_cycle=0.0)
        flipflop.start()
        time.sleep(0.05)
        flipflop.stop()
        assert _switched_on(log) == []

    def test_double_start(self):
        members, _ = _members("a")
        flipflop = Flipflop(members, 10.0)
        flipflop.start()
        try:
            with pytest.raises(DriverStateError):
                flipflop.start()
        finally:
            flipflop.stop()

    def test_stop_when_not_running_is_noop(self):
        members, log = _members("a", "b")
        Flipflop(members, 1.0).stop()
        assert log == []

    def test_restart_starts_from_first_member(self):
        members, log = _members("a", "b")
        flipflop = Flipflop(members, 0.02)
        flipflop.start()
        assert _wait_for(lambda: len(_switched_on(log)) >= 1)
        flipflop.stop()
        del log[:]
        flipflop.start()
        try:
            assert _wait_for(lambda: len(_switched_on(log)) >= 1)
        finally:
            flipflop.stop()
        assert _switched_on(log)[0] == "a"

    def test_failing_member_is_skipped(self, caplog):
        log = []
        members = [Member("a", log, fail=True), Member("b", log)]
        flipflop = Flipflop(members, 0.02, name="row")
        flipflop.start()
        try:
            assert _wait_for(lambda: len(_switched_on(log)) >= 3)
        finally:
            flipflop.stop()
        assert _switched_on(log)[:3] == ["a", "b", "a"]
        assert "Flipflop row failed to turn on a" in caplog.text

    def test_stop_from_another_thread(self):
        members, _ = _members("a", "b")
        flipflop = Flipflop(members, 10.0)
        flipflop.start()
        stopper = threading.Thread(target=flipflop.stop)
        stopper.start()
        stopper.join(2.0)
        assert not stopper.is_alive()
        assert not flipflop.is_running

    def test_rotates_real_switches(self):
        relay = DummySwitchCollection(switch_count=3, name="relay")
        relay.init()
        switches = resolve_switches(
            {"red": "relay.0", "amber": "relay.1", "green": "relay.2"},
            {"relay": relay},
        )
        flipflop = Flipflop(switches.values(), 10.0, duty_cycle=1.0, name="lights")
        flipflop.start()
        assert _wait_for(lambda: relay.get_state(0))
        assert relay.get_detailed_state() == [True, False, False]
        flipflop.stop()
        assert relay.get_detailed_state() == [False, False, False]
