import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / 'scripts'))

import math

import numpy as np
import pytest
import phase_profile
from motor import motor_spec
from phase_profile import (
    NOT_ENTERED,
    Phase,
    PhaseCondition,
    exp_decel_intercept,
    generate_profile,
    newtons_method,
    phase2_transitions,
    sample_point,
)


def neo_profile(target_distance=1.0, max_velocity=2.0, **kwargs):
    params = dict(
        target_distance=target_distance,
        max_velocity=max_velocity,
        motor=motor_spec("NEO", 2),
        efficiency=90,
        ratio=10,
        mass=10,
        stator_limit=40,
        gravity=9.81,
        diameter=0.0381,
    )
    params.update(kwargs)
    return generate_profile(**params)


@pytest.mark.parametrize("target,max_velocity,sequence", [
    (1.0, 2.0, (1, 2, 4)),
    (1.0, 0.9, (1, 2, 3, 4)),
    (1.0, 0.5, (1, 3, 4)),
    (0.001, 2.0, (1, 4)),
])
def test_phase_sequence(target, max_velocity, sequence):
    profile = neo_profile(target, max_velocity)
    assert profile.sequence == sequence
    assert profile.enter_exp == (2 in sequence)
    assert profile.enter_coast == (3 in sequence)


@pytest.mark.parametrize("max_velocity", [2.0, 0.9, 0.5])
def test_phases_chain_and_end_at_rest_on_target(max_velocity):
    profile = neo_profile(1.0, max_velocity)
    phases = [p for p in (profile.phase1, profile.phase2, profile.phase3, profile.phase4)
              if p is not NOT_ENTERED]
    for previous, following in zip(phases, phases[1:]):
        assert following.initial == previous.final
    assert profile.phase4.final.x == pytest.approx(1.0)
    assert profile.phase4.final.v == 0.0
    assert profile.total_time == profile.phase4.final.t


@pytest.mark.parametrize("max_velocity", [2.0, 0.9, 0.5])
def test_samples_respect_top_speed_and_advance(max_velocity):
    profile = neo_profile(1.0, max_velocity, dt=0.001)
    x = np.array([s.x for s in profile.samples])
    v = np.array([s.v for s in profile.samples])
    assert np.all(v <= profile.top_speed + 1e-9)
    assert np.all(v >= -1e-9)
    assert np.all(np.diff(x) >= -1e-9)
    assert x[-1] == pytest.approx(1.0)
    ts = [s.t for s in profile.samples]
    assert ts[1] == pytest.approx(0.001)


def test_sample_point_is_continuous_across_boundaries():
    profile = neo_profile(1.0, 0.9)
    for phase in (profile.phase1, profile.phase2, profile.phase3):
        t = phase.final.t
        before = sample_point(profile, t - 1e-9)
        after = sample_point(profile, t + 1e-9)
        assert before[0] == pytest.approx(after[0], abs=1e-6)
        assert before[1] == pytest.approx(after[1], abs=1e-4)


def test_first_sample_is_current_limited():
    profile = neo_profile()
    first = profile.samples[0]
    assert (first.t, first.x, first.v) == (0.0, 0.0, 0.0)
    assert first.current == pytest.approx(40.0)
    assert first.power == 0.0


def test_stop_at_velocity_ends_sampling():
    profile = neo_profile(100.0, 100.0, gravity=0.0, stop_at_velocity=0.6, dt=0.001)
    assert profile.samples[-1].v >= 0.6
    assert all(s.v < 0.6 for s in profile.samples[:-1])
    assert profile.samples[-1].x < 100.0


def test_overloaded_drive_raises():
    with pytest.raises(ValueError):
        neo_profile(mass=1000)


def test_newtons_method_finds_root():
    root = newtons_method(lambda x: x * x - 2, lambda x: 2 * x, 1.0)
    assert root == pytest.approx(math.sqrt(2), abs=1e-9)


def test_newtons_method_flat_derivative(caplog):
    with caplog.at_level("WARNING"):
        assert newtons_method(lambda x: 1.0, lambda x: 0.0, 0.0) is None
    assert "Derivative too close to zero" in caplog.text


def test_newtons_method_without_real_root():
    assert newtons_method(lambda x: x * x + 1, lambda x: 2 * x, 1.0) is None


def test_no_coast_transition_when_top_speed_is_free_speed():
    start = PhaseCondition(0.01, 0.003, 0.7)
    transitions = phase2_transitions(
        a_lim=80.0, v_lim=0.7, v_free=1.05, top_speed=1.05, a_stop=100.0,
        target_distance=1.0, phase2_start=start,
    )
    assert transitions.t_23 is None
    assert transitions.t_24 > 0


def test_exp_decel_intercept_brakes_onto_target():
    v_free, v_lim, a_lim, a_stop = 1.05, 0.7, 80.0, 100.0
    t = exp_decel_intercept(v_free, v_lim, a_lim, a_stop, x_f=1.0, x_20=0.0)
    decay = math.exp(-a_lim / (v_free - v_lim) * t)
    x = v_free * t + (v_free - v_lim) ** 2 / a_lim * (decay - 1)
    v = v_free - (v_free - v_lim) * decay
    assert x + v * v / (2 * a_stop) == pytest.approx(1.0, abs=1e-6)


def test_phase_types():
    profile = neo_profile(1.0, 0.5)
    assert isinstance(profile.phase1, Phase)
    assert profile.phase2 is NOT_ENTERED
    assert profile.phase2_transitions.t_23 is None
    assert profile.phase2_transitions.t_24 is None


def assert_samples_continuous(profile, dt):
    x = np.array([s.x for s in profile.samples])
    assert np.all(np.abs(np.diff(x)) <= profile.top_speed * dt + 1e-9)
    assert x[-1] == pytest.approx(1.0)


def test_no_exp_exit_extends_the_ramp(monkeypatch, caplog):
    monkeypatch.setattr(phase_profile, "newtons_method", lambda *args, **kwargs: None)
    with caplog.at_level("WARNING"):
        profile = neo_profile(1.0, 2.0, dt=0.001)
    assert "extending the ramp" in caplog.text
    assert profile.sequence == (1, 3, 4)
    assert not profile.enter_exp
    assert profile.phase1.final.t == pytest.approx(profile.phase1_transitions.t_13)
    assert profile.phase1.final.v == pytest.approx(profile.top_speed)
    assert profile.phase4.final.x == 1.0
    assert_samples_continuous(profile, 0.001)


def test_no_brake_intercept_coasts_after_exp(monkeypatch):
    monkeypatch.setattr(phase_profile, "newtons_method", lambda *args, **kwargs: None)
    profile = neo_profile(1.0, 0.9, dt=0.001)
    assert profile.phase2_transitions.t_24 is None
    assert profile.sequence == (1, 2, 3, 4)
    assert profile.phase2.final.v == pytest.approx(0.9)
    assert_samples_continuous(profile, 0.001)
