import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / 'scripts'))

import numpy as np
import pytest
from characterization import (
    calculate_ka,
    calculate_kg,
    calculate_kv,
    calculate_loaded_battery_voltage,
    calculate_stall_load,
    limiting_current,
    supply_limit_to_stator_limit,
)
from motor import INDUCTANCE, MotorModel, MotorRules, generate_motor_curves, motor_spec
from units import GRAVITY, rad_s_to_rpm, rpm_to_rad_s


def test_derived_constants():
    neo = motor_spec("NEO")
    assert neo.resistance == pytest.approx(12 / 105)
    assert neo.kT == pytest.approx(2.6 / 105)
    assert neo.free_speed == pytest.approx(rpm_to_rad_s(5676))
    assert neo.kV == pytest.approx(neo.free_speed / (12 - neo.resistance * 1.8))
    assert neo.b == pytest.approx(neo.kT * 1.8 / neo.free_speed)
    assert rad_s_to_rpm(neo.free_speed) == pytest.approx(5676)


def test_every_model_has_datasheet_and_inductance():
    for model in MotorModel:
        spec = motor_spec(model, quantity=3)
        assert spec.quantity == 3
        assert spec.inductance == INDUCTANCE[model] > 0
        assert spec.identifier == model.value


def test_unknown_motor_name_raises():
    with pytest.raises(ValueError, match="Unknown motor"):
        motor_spec("Warp Drive")


def test_with_quantity_keeps_constants():
    single = motor_spec("Falcon 500")
    pair = single.with_quantity(2)
    assert pair.quantity == 2
    assert pair.kV == single.kV and pair.resistance == single.resistance


def test_stall_state():
    neo = motor_spec("NEO")
    state = MotorRules(neo, current_limit=200, voltage=12, speed=0.0).solve()
    assert state.current == pytest.approx(105)
    assert state.torque == pytest.approx(2.6)
    assert state.power == 0.0
    assert state.efficiency == 0.0


def test_current_limit_binds_and_lowers_voltage():
    neo = motor_spec("NEO")
    state = MotorRules(neo, current_limit=40, voltage=12, speed=0.0).solve()
    assert state.current == 40
    assert state.voltage == pytest.approx(40 * neo.resistance)


def test_free_speed_draws_free_current():
    neo = motor_spec("NEO")
    state = MotorRules(neo, current_limit=40, voltage=12, speed=neo.free_speed).solve()
    assert state.current == pytest.approx(1.8)
    assert state.voltage == pytest.approx(12)


def test_overspeed_current_clamps_to_zero():
    neo = motor_spec("NEO")
    state = MotorRules(neo, current_limit=40, voltage=12, speed=2 * neo.free_speed).solve()
    assert state.current == 0.0
    assert state.torque == 0.0


def test_current_input_gives_speed():
    neo = motor_spec("NEO")
    state = MotorRules(neo, current_limit=60, voltage=12, current=40).solve()
    assert state.speed == pytest.approx(neo.kV * (12 - 40 * neo.resistance))
    assert 0 < state.efficiency < 1


def test_motor_rules_needs_speed_or_current():
    with pytest.raises(ValueError):
        MotorRules(motor_spec("NEO"), current_limit=40, voltage=12)


def test_motor_curve_is_current_limited():
    neo = motor_spec("NEO")
    curve = generate_motor_curves(neo, stator_limit=40, supply_limit=90)
    assert curve[0].speed == 0.0
    assert curve[0].stator_current == pytest.approx(40)
    assert curve[-1].speed <= neo.free_speed
    currents = np.array([p.stator_current for p in curve])
    assert np.all(np.diff(currents) <= 1e-9)
    assert all(0 <= p.efficiency < 1 for p in curve)


def test_feedforward_gains():
    assert calculate_kv(10, 0.5) == pytest.approx(2.4)
    assert calculate_ka(2.0, 0.5, 1.0) == pytest.approx(3.0)
    assert calculate_kg(2.0, 0.5, 1.0) == pytest.approx(3.0 * GRAVITY)


def test_current_limits():
    assert supply_limit_to_stator_limit(40, 12, 6) == pytest.approx(80)
    assert supply_limit_to_stator_limit(40, 12, 0) == 0.0
    assert limiting_current(60, 90, 12.6, 10) == 60
    assert limiting_current(60, 40, 12, 12) == pytest.approx(40)


def test_stall_load():
    neo = motor_spec("NEO", 2)
    load = calculate_stall_load(neo, 40, 0.0381, 10, 90, 12)
    expected = neo.kT * 40 * 2 * 10 * 0.9 / 0.01905 / GRAVITY
    assert load == pytest.approx(expected)
    assert calculate_stall_load(neo, 40, 0.0, 10, 90, 12) == 0.0


def test_loaded_battery_voltage():
    assert calculate_loaded_battery_voltage(12.6, 0.015, [100, 50]) == pytest.approx(10.35)
    assert calculate_loaded_battery_voltage(12.6, 0.015, []) == 12.6
