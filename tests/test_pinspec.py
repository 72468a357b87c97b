"""Tests for pin, pin-spec and switch-spec parsing."""

import pytest

from airdancer.enums import Polarity, PullMode
from airdancer.exceptions import (
    ConfigurationError,
    InvalidIndexError,
    MalformedSpecError,
)
from airdancer.pinspec import (
    PinSpec,
    apply_option,
    parse_pin,
    parse_pin_number,
    parse_switch_spec,
)


# ---------------------------------------------------------------------------
# Pin numbers
# ---------------------------------------------------------------------------

class TestParsePinNumber:

    def test_gpio_prefix(self):
        assert parse_pin_number("GPIO18") == 18

    def test_bare_number(self):
        assert parse_pin_number("18") == 18

    def test_prefix_is_case_insensitive(self):
        assert parse_pin_number("gpio4") == 4

    @pytest.mark.parametrize("pin", ["", "GPIO", "GPIOx", "pin18", "-3", "1.5"])
    def test_invalid(self, pin):
        with pytest.raises(ConfigurationError, match="invalid GPIO pin format"):
            parse_pin_number(pin)

    def test_non_ascii_digits_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_pin_number("GPIO١")


# ---------------------------------------------------------------------------
# Options and pin specs
# ---------------------------------------------------------------------------

class TestApplyOption:

    def test_polarity(self):
        assert apply_option("active-low", Polarity.ACTIVE_HIGH, PullMode.AUTO) == (
            Polarity.ACTIVE_LOW,
            PullMode.AUTO,
        )

    def test_pull(self):
        assert apply_option("pull-up", Polarity.ACTIVE_HIGH, PullMode.AUTO) == (
            Polarity.ACTIVE_HIGH,
            PullMode.UP,
        )

    def test_case_insensitive(self):
        polarity, _ = apply_option("Active-Low", Polarity.ACTIVE_HIGH, PullMode.AUTO)
        assert polarity is Polarity.ACTIVE_LOW

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="unknown parameter"):
            apply_option("inverted", Polarity.ACTIVE_HIGH, PullMode.AUTO)


class TestParsePin:

    def test_defaults(self):
        spec = parse_pin("GPIO18")
        assert spec == PinSpec(line=18)
        assert spec.polarity is Polarity.ACTIVE_HIGH
        assert spec.pull is PullMode.AUTO

    def test_active_low(self):
        spec = parse_pin("GPIO18:active-low")
        assert spec.line == 18
        assert spec.polarity is Polarity.ACTIVE_LOW

    def test_name_and_str(self):
        spec = parse_pin("27:active-low:pull-up")
        assert spec.name == "GPIO27"
        assert str(spec) == "GPIO27:active-low:pull-up"

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError):
            parse_pin("GPIO18:sideways")


# ---------------------------------------------------------------------------
# Switch specs
# ---------------------------------------------------------------------------

class TestParseSwitchSpec:

    def test_valid(self):
        assert parse_switch_spec("relay.2") == ("relay", 2)

    def test_zero_index(self):
        assert parse_switch_spec("relay.0") == ("relay", 0)

    @pytest.mark.parametrize("spec", ["relay", "relay.1.2", ".1", ""])
    def test_malformed(self, spec):
        with pytest.raises(MalformedSpecError, match="collection.index"):
            parse_switch_spec(spec)

    @pytest.mark.parametrize("spec", ["relay.x", "relay.-1", "relay.", "relay.+1"])
    def test_invalid_index(self, spec):
        with pytest.raises(InvalidIndexError):
            parse_switch_spec(spec)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            parse_switch_spec("nope")
