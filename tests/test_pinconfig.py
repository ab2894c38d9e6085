import pytest

from pinmon.pinconfig import ConfigurationError, PinConfig, parse_template, resolve_pin, resolve_pins


def test_bare_pin_takes_hard_defaults():
    pins = resolve_pins(None, ["2"])
    assert pins == {2: PinConfig(pin=2, name="", mode="input", strategy="instant",
                                 trigger="none", frequency=1.0, unit="")}


def test_full_override():
    cfg = resolve_pin("3:water:pullup:debounce:falling:1000:m3")
    assert cfg.name == "water"
    assert cfg.mode == "pullup"
    assert cfg.strategy == "debounce"
    assert cfg.trigger == "falling"
    assert cfg.frequency == 1000.0
    assert cfg.unit == "m3"
    assert cfg.debounced is True
    assert cfg.pattern == frozenset({0})


def test_empty_fields_fall_back_to_template():
    pins = resolve_pins(":pullup:debounce:falling:1000:kW", ["2", "4::::::W", "5:heat::instant"])
    assert pins[2] == PinConfig(2, "", "pullup", "debounce", "falling", 1000.0, "kW")
    # unit only
    assert pins[4] == PinConfig(4, "", "pullup", "debounce", "falling", 1000.0, "W")
    assert pins[5].name == "heat"
    assert pins[5].mode == "pullup"
    assert pins[5].strategy == "instant"


def test_enumerations_are_case_insensitive_and_trimmed():
    cfg = resolve_pin(" 7 : gate : PullUp : Debounce : ANY ")
    assert (cfg.pin, cfg.name, cfg.mode, cfg.strategy, cfg.trigger) == (7, "gate", "pullup", "debounce", "any")


def test_resolution_is_idempotent():
    template = parse_template("::debounce:rising:500")
    a = resolve_pin("9:meter", template)
    b = resolve_pin("9:meter", template)
    assert a == b
    assert hash(a) == hash(b)


def test_trigger_patterns():
    assert resolve_pin("1").pattern == frozenset()
    assert resolve_pin("1::::rising").pattern == frozenset({1})
    assert resolve_pin("1::::any").pattern == frozenset({0, 1})


@pytest.mark.parametrize("override", ["-1", "x", "2.5", "", ":meter"])
def test_invalid_pin_number(override):
    with pytest.raises(ConfigurationError, match="invalid pin number"):
        resolve_pins(None, [override])


@pytest.mark.parametrize(
    "override, field",
    [
        ("2::output", "mode"),
        ("2:::sometimes", "strategy"),
        ("2::::sideways", "trigger"),
        ("2:::::0", "frequency"),
        ("2:::::-3", "frequency"),
        ("2:::::abc", "frequency"),
        ("2:::::nan", "frequency"),
        ("2:my meter", "name"),
        ("2:a\tb", "name"),
        ("2::::::k W", "unit"),
    ],
)
def test_invalid_field_names_field_and_pin(override, field):
    with pytest.raises(ConfigurationError) as exc:
        resolve_pins(None, [override])
    msg = str(exc.value)
    assert "pin 2" in msg
    assert f"invalid {field}" in msg


def test_invalid_template_fails_even_without_pins():
    with pytest.raises(ConfigurationError, match="template: invalid trigger"):
        resolve_pins(":::bogus", [])


def test_template_label_with_whitespace_rejected():
    with pytest.raises(ConfigurationError, match="template: invalid unit 'k W'"):
        resolve_pins("::::1000:k W", ["2"])


def test_too_many_fields():
    with pytest.raises(ConfigurationError, match="too many fields"):
        resolve_pins(None, ["2:a:input:instant:none:1:W:extra"])


def test_duplicate_pin_rejected():
    with pytest.raises(ConfigurationError, match="more than once"):
        resolve_pins(None, ["2", "2:again"])


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)
