import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / 'scripts'))

from dataclasses import replace

import numpy as np
import pytest
from mechanism import elevator, shooter, turret
from simulator import (
    FlywheelSimulator,
    LinearSimulator,
    MotorODEWorker,
    RotarySimulator,
    _stop_predicate,
    mechanism_to_request,
    run_motor_ode_request,
)


def test_linear_summary():
    sim = LinearSimulator(elevator, dt=0.005)
    summary = sim.compute_summary()
    assert set(summary) == {
        "Time to goal", "Max velocity", "Max current", "Stall load",
        "Min battery voltage", "Battery sag",
    }
    assert 0.5 < summary["Time to goal"] < 5.0
    assert summary["Max current"] <= sim.limiting_current() + 1e-9
    assert summary["Max velocity"] <= sim.profile().constraints.max_velocity() + 1e-9
    assert summary["Stall load"] > elevator.load
    assert summary["Battery sag"] == pytest.approx(
        elevator.supply_voltage - summary["Min battery voltage"]
    )


def test_linear_trace_reaches_travel():
    t, x, v, current, battery = LinearSimulator(elevator, dt=0.01).simulate_arrays()
    assert len(t) == len(x) == len(v) == len(current) == len(battery)
    assert t[0] == 0.0
    np.testing.assert_allclose(np.diff(t), 0.01)
    assert x[-1] == pytest.approx(elevator.travel_distance)
    assert v[-1] == pytest.approx(0.0, abs=1e-3)


def test_feedforward_gravity_term_follows_angle():
    vertical = LinearSimulator(elevator).feedforward()
    flat = LinearSimulator(replace(elevator, angle=0)).feedforward()
    assert vertical["kG"] > 0
    assert flat["kG"] == pytest.approx(0.0, abs=1e-12)
    assert flat["kV"] == vertical["kV"]


def test_linear_profile_rejects_unholdable_load():
    with pytest.raises(ValueError):
        LinearSimulator(replace(elevator, load=1000)).profile()


def test_flywheel_spin_up():
    sim = FlywheelSimulator(shooter, dt=0.01)
    profile = sim.simulate()
    target = shooter.target_surface_speed
    assert profile.samples[-1].v >= target
    assert all(s.v < target for s in profile.samples[:-1])
    assert 0.5 < sim.spin_up_time() < 3.0


def test_flywheel_exponential_cross_check():
    samples = FlywheelSimulator(shooter, dt=0.01).simulate_exponential()
    assert samples[0].time == 0.0
    assert samples[-1].velocity >= shooter.target_surface_speed
    assert samples[-1].speed == pytest.approx(samples[-1].velocity / shooter.radius)


def test_flywheel_exponential_rejects_unreachable_speed():
    too_fast = replace(shooter, target_speed=shooter.target_speed * 100)
    with pytest.raises(ValueError):
        FlywheelSimulator(too_fast).simulate_exponential()


def test_rotary_time_to_target():
    t = RotarySimulator(turret).time_to_target()
    assert t is not None
    assert 0.1 < t < 2.0


def test_rotary_target_out_of_reach():
    short = replace(turret, duration=0.05)
    assert RotarySimulator(short).time_to_target() is None


def test_request_round_trip_matches_direct_simulation():
    direct = RotarySimulator(turret).simulate()
    remote = run_motor_ode_request(mechanism_to_request(turret))
    assert len(remote) == len(direct)
    assert remote[-1]["position"] == direct[-1].position
    assert set(remote[0]) == {
        "time", "position", "velocity", "stator_current",
        "power", "losses", "efficiency", "torque",
    }


def test_unknown_stop_condition():
    with pytest.raises(ValueError, match="Unknown stop condition"):
        _stop_predicate({"kind": "never"})


def test_worker_runs_in_separate_process():
    request = mechanism_to_request(replace(turret, duration=0.2))
    with MotorODEWorker() as worker:
        results = worker.submit(request).result(timeout=60)
    assert results
    assert results[0]["time"] == 0.0


def test_rotary_already_at_target():
    assert RotarySimulator(replace(turret, target_angle=0.0)).time_to_target() == 0.0


def test_flywheel_speed_is_capped_by_free_speed():
    profile = FlywheelSimulator(shooter).simulate()
    assert FlywheelSimulator.MAX_SURFACE_SPEED == float("inf")
    assert profile.top_speed == profile.v_free
