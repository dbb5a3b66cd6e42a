import math
from concurrent.futures import Future, ProcessPoolExecutor
from typing import List, Optional

import numpy as np

from characterization import (
    calculate_ka,
    calculate_kg,
    calculate_kv,
    calculate_stall_load,
    limiting_current,
)
from exponential_profile import (
    ExponentialProfile,
    ProfileSample,
    State,
    from_characteristics,
    sim_flywheel_profile,
    sim_profile,
)
from mechanism import FlywheelMechanism, LinearMechanism, RotaryMechanism
from motor import MotorRules, motor_spec
from ode import ODEResult, solve_motor_ode, stop_at_position, stop_when_settled
from phase_profile import PhaseProfile, generate_profile
from units import inches


class LinearSimulator:
    """Elevator/arm-style linear travel using the exponential profile."""

    def __init__(self, mechanism: LinearMechanism, dt: float = 0.005):
        self.mechanism = mechanism
        self.motor = mechanism.motor_spec()
        self.dt = dt

    def limiting_current(self) -> float:
        m = self.mechanism
        return limiting_current(m.stator_limit, m.supply_limit, m.supply_voltage, m.stator_voltage)

    def feedforward(self) -> dict:
        """kV (V s/m), kA (V s^2/m) and kG (V) of the mechanism."""
        m = self.mechanism
        r = m.spool_diameter / 2
        current_limit = self.limiting_current()
        drive = self.motor.quantity * m.ratio * (m.efficiency / 100)

        kV = 0.0 if m.ratio == 0 else calculate_kv(self.motor.free_speed / m.ratio, r)
        kA = calculate_ka(self.motor.kT * current_limit * drive, r, m.load)
        holding_torque = MotorRules(
            self.motor, current_limit, voltage=m.stator_voltage, current=current_limit
        ).solve().torque
        kG = calculate_kg(holding_torque * drive, r, m.load) * math.sin(math.radians(m.angle))
        return {"kV": kV, "kA": kA, "kG": kG}

    def profile(self) -> ExponentialProfile:
        ff = self.feedforward()
        max_input = self.mechanism.stator_voltage - ff["kG"]
        if max_input <= 0 or ff["kV"] == 0:
            raise ValueError(
                f"{self.mechanism.name}: {self.mechanism.stator_voltage} V cannot hold "
                f"the load (kG={ff['kG']:.3f} V, ratio={self.mechanism.ratio})"
            )
        return ExponentialProfile(from_characteristics(max_input, ff["kV"], ff["kA"]))

    def simulate(self) -> List[ProfileSample]:
        m = self.mechanism
        return sim_profile(
            self.profile(),
            State(0.0, 0.0),
            State(m.travel_distance, 0.0),
            self.dt,
            self.motor,
            self.limiting_current(),
            m.stator_voltage,
            m.spool_diameter,
            m.ratio,
            m.supply_voltage,
            m.battery_resistance,
        )

    def simulate_arrays(self):
        """Returns: time, position, velocity, current, battery voltage."""
        samples = self.simulate()
        return (
            np.array([s.time for s in samples]),
            np.array([s.position for s in samples]),
            np.array([s.velocity for s in samples]),
            np.array([s.current for s in samples]),
            np.array([s.battery_voltage for s in samples]),
        )

    def compute_summary(self) -> dict:
        m = self.mechanism
        samples = self.simulate()
        time_to_goal = next(
            (s.time for s in samples if s.position >= m.travel_distance), 0.0
        )
        min_battery = min(s.battery_voltage for s in samples)
        return {
            "Time to goal": time_to_goal,
            "Max velocity": max(s.velocity for s in samples),
            "Max current": max(s.current for s in samples),
            "Stall load": calculate_stall_load(
                self.motor,
                self.limiting_current(),
                m.spool_diameter,
                m.ratio,
                m.efficiency,
                m.stator_voltage,
            ),
            "Min battery voltage": min_battery,
            "Battery sag": m.supply_voltage - min_battery,
        }


class FlywheelSimulator:
    """Flywheel spin-up: the four-phase profile with an exponential-profile cross-check."""

    # Effectively unbounded travel; spin-up ends on the velocity target instead.
    TRAVEL = inches(100000)
    # No commanded ceiling, so the free speed caps the profile.
    MAX_SURFACE_SPEED = float("inf")

    def __init__(self, mechanism: FlywheelMechanism, dt: float = 0.01):
        self.mechanism = mechanism
        self.motor = mechanism.motor_spec()
        self.dt = dt

    def simulate(self) -> PhaseProfile:
        m = self.mechanism
        return generate_profile(
            target_distance=self.TRAVEL,
            max_velocity=self.MAX_SURFACE_SPEED,
            motor=self.motor,
            efficiency=m.efficiency,
            ratio=m.ratio,
            mass=m.equivalent_mass,
            stator_limit=m.stator_limit,
            gravity=0.0,
            diameter=m.shooter_diameter,
            stop_at_velocity=m.target_surface_speed,
            dt=self.dt,
        )

    def spin_up_time(self) -> float:
        return self.simulate().samples[-1].t

    def exponential_profile(self) -> ExponentialProfile:
        m = self.mechanism
        stall_torque = MotorRules(
            self.motor, m.stator_limit, voltage=self.motor.voltage, speed=0.0
        ).solve().torque
        kV = calculate_kv(self.motor.free_speed / m.ratio, m.radius)
        kA = calculate_ka(
            stall_torque * self.motor.quantity * m.ratio * (m.efficiency / 100),
            m.radius,
            m.equivalent_mass,
        )
        return ExponentialProfile(from_characteristics(self.motor.voltage, kV, kA))

    def simulate_exponential(self) -> List[ProfileSample]:
        m = self.mechanism
        profile = self.exponential_profile()
        if m.target_surface_speed >= profile.constraints.max_velocity():
            raise ValueError(
                f"{m.name}: target speed is above what the motor can reach"
            )
        return sim_flywheel_profile(
            profile,
            State(0.0, 0.0),
            State(self.TRAVEL, m.target_surface_speed),
            self.dt,
            lambda v: v / m.radius,
        )


class RotarySimulator:
    """Current-limited rotary move integrated with winding inductance."""

    def __init__(self, mechanism: RotaryMechanism):
        self.mechanism = mechanism
        self.motor = mechanism.motor_spec()

    def simulate(self, should_stop=None) -> List[ODEResult]:
        m = self.mechanism
        return solve_motor_ode(
            self.motor,
            m.stator_voltage,
            m.supply_voltage,
            m.supply_limit,
            m.stator_limit,
            should_stop or stop_at_position(m.motor_target_angle),
            J=m.reflected_moi,
            anti_torque=m.reflected_anti_torque,
            efficiency=m.efficiency,
            duration=m.duration,
            steps_per_second=m.steps_per_second,
        )

    def time_to_target(self) -> Optional[float]:
        """None when the target is not reached within the simulated duration."""
        results = self.simulate()
        if not results:
            # stopped on the very first evaluation: already at the target
            return 0.0
        steps = int(self.mechanism.duration * self.mechanism.steps_per_second)
        if len(results) > steps:
            return None
        return results[-1].time


def mechanism_to_request(mechanism: RotaryMechanism, stop: Optional[dict] = None) -> dict:
    """Plain-data description of a rotary simulation, safe to send to a worker process."""
    return {
        "motor": mechanism.motor,
        "motor_count": mechanism.motor_count,
        "stator_voltage": mechanism.stator_voltage,
        "supply_voltage": mechanism.supply_voltage,
        "supply_limit": mechanism.supply_limit,
        "stator_limit": mechanism.stator_limit,
        "inertia": mechanism.reflected_moi,
        "anti_torque": mechanism.reflected_anti_torque,
        "efficiency": mechanism.efficiency,
        "duration": mechanism.duration,
        "steps_per_second": mechanism.steps_per_second,
        "stop": stop or {"kind": "position", "target": mechanism.motor_target_angle},
    }


def _stop_predicate(stop: dict):
    if stop["kind"] == "position":
        return stop_at_position(stop["target"])
    if stop["kind"] == "settled":
        return stop_when_settled(stop["min_steps"], stop.get("tolerance", 1e-3))
    raise ValueError(f"Unknown stop condition: {stop['kind']!r}")


def run_motor_ode_request(request: dict) -> List[dict]:
    results = solve_motor_ode(
        motor_spec(request["motor"], request.get("motor_count", 1)),
        request["stator_voltage"],
        request["supply_voltage"],
        request["supply_limit"],
        request["stator_limit"],
        _stop_predicate(request["stop"]),
        J=request["inertia"],
        anti_torque=request["anti_torque"],
        efficiency=request["efficiency"],
        duration=request.get("duration", 30),
        steps_per_second=request.get("steps_per_second", 1000),
    )
    return [r.to_dict() for r in results]


class MotorODEWorker:
    """Runs motor ODE simulations in a separate process.

    Requests and results are plain dicts. Submitted work always runs to
    completion; callers that fire several requests must discard stale
    results themselves.
    """

    def __init__(self, max_workers: int = 1):
        self._executor = ProcessPoolExecutor(max_workers=max_workers)

    def submit(self, request: dict) -> Future:
        return self._executor.submit(run_motor_ode_request, request)

    def shutdown(self):
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
