"""Minimum-time exponential motion profile for a back-EMF-limited drive.

The plant is the saturating first-order system

    dv/dt = A*v + B*u,    |u| <= max_input

which is what a voltage-driven DC motor looks like once inductance is
ignored. A trajectory is bang-bang: full input towards the goal up to the
inflection point, then full reverse input until the goal state is reached.
Every segment has a closed-form exponential solution, so nothing here is
stepped numerically.

All arithmetic runs on numpy float64 values under ``np.errstate``: a log or
sqrt outside its domain yields NaN and a division by zero yields inf, both
of which the case analysis relies on instead of raising.
"""
from dataclasses import dataclass
from typing import Callable, List

import numpy as np

from characterization import calculate_loaded_battery_voltage
from motor import NOMINAL_VOLTAGE, MotorRules, MotorSpec

EPSILON = 1e-9


@dataclass(frozen=True)
class State:
    position: float
    velocity: float


@dataclass(frozen=True)
class Constraints:
    max_input: float
    A: float
    B: float

    def __post_init__(self):
        object.__setattr__(self, "max_input", np.float64(self.max_input))
        object.__setattr__(self, "A", np.float64(self.A))
        object.__setattr__(self, "B", np.float64(self.B))

    def max_velocity(self) -> float:
        return -self.max_input * self.B / self.A


@dataclass(frozen=True)
class ProfileTiming:
    inflection_time: float
    total_time: float

    def is_finished(self, t: float) -> bool:
        return t >= self.inflection_time


def from_characteristics(max_input: float, kV: float, kA: float) -> Constraints:
    """Constraints from feed-forward gains: A = -kV/kA, B = 1/kA."""
    return Constraints(max_input, -kV / kA, 1.0 / kA)


def from_state_space(max_input: float, A: float, B: float) -> Constraints:
    return Constraints(max_input, A, B)


# The plant is odd-symmetric, so every query is solved heading in the positive
# direction and mirrored back. Opposite moves are then exact negatives.
def _is_reversed(current: State, goal: State) -> bool:
    return (goal.position - current.position, goal.velocity - current.velocity) < (0, 0)


def _mirror(state: State) -> State:
    return State(-state.position, -state.velocity)


class ExponentialProfile:
    def __init__(self, constraints: Constraints):
        self.constraints = constraints

    def calculate(self, t: float, current: State, goal: State) -> State:
        """State of the trajectory from ``current`` to ``goal`` after ``t`` seconds."""
        if _is_reversed(current, goal):
            return _mirror(self.calculate(t, _mirror(current), _mirror(goal)))
        with np.errstate(all="ignore"):
            u = self._input_towards(current, goal)
            inflection_point = self._inflection_point(current, goal, u)
            timing = self._profile_timing(current, inflection_point, goal, u)

            if t < 0:
                return State(current.position, current.velocity)
            if t < timing.inflection_time:
                return State(
                    float(self._distance_from_time(t, u, current)),
                    float(self._velocity_from_time(t, u, current)),
                )
            if t < timing.total_time:
                return State(
                    float(self._distance_from_time(t - timing.total_time, -u, goal)),
                    float(self._velocity_from_time(t - timing.total_time, -u, goal)),
                )
            return State(goal.position, goal.velocity)

    def calculate_inflection_point(self, current: State, goal: State) -> State:
        if _is_reversed(current, goal):
            return _mirror(self.calculate_inflection_point(_mirror(current), _mirror(goal)))
        with np.errstate(all="ignore"):
            u = self._input_towards(current, goal)
            return self._inflection_point(current, goal, u)

    def time_left_until(self, current: State, goal: State) -> float:
        return self.calculate_profile_timing(current, goal).total_time

    def calculate_profile_timing(self, current: State, goal: State) -> ProfileTiming:
        if _is_reversed(current, goal):
            return self.calculate_profile_timing(_mirror(current), _mirror(goal))
        with np.errstate(all="ignore"):
            u = self._input_towards(current, goal)
            inflection_point = self._inflection_point(current, goal, u)
            return self._profile_timing(current, inflection_point, goal, u)

    def compute_distance_from_velocity(
        self, velocity: float, u: float, initial: State
    ) -> float:
        """Position reached when the velocity hits ``velocity`` under constant input ``u``."""
        A = self.constraints.A
        B = self.constraints.B
        with np.errstate(all="ignore"):
            return (
                initial.position
                + (velocity - initial.velocity) / A
                - B * u / (A * A)
                * np.log((A * velocity + B * u) / (A * initial.velocity + B * u))
            )

    @staticmethod
    def are_states_equal(state1: State, state2: State) -> bool:
        return (
            state1.position == state2.position and state1.velocity == state2.velocity
        )

    def _input_towards(self, current: State, goal: State) -> float:
        direction = -1 if self._should_flip_input(current, goal) else 1
        return direction * self.constraints.max_input

    def _inflection_point(self, current: State, goal: State, u: float) -> State:
        if self.are_states_equal(current, goal):
            return current

        inflection_velocity = self._solve_for_inflection_velocity(u, current, goal)
        inflection_position = self.compute_distance_from_velocity(
            inflection_velocity, -u, goal
        )
        return State(float(inflection_position), float(inflection_velocity))

    def _profile_timing(
        self, current: State, inflection_point: State, goal: State, u: float
    ) -> ProfileTiming:
        max_velocity = self.constraints.max_velocity()

        if abs(np.sign(u) * max_velocity - inflection_point.velocity) < EPSILON:
            # Inflection sits on the velocity asymptote, where the time-from-velocity
            # log blows up. Solve to just short of it, then cruise at max velocity.
            solvable_v = inflection_point.velocity

            if abs(current.velocity - inflection_point.velocity) < EPSILON:
                t_to_solvable_v = 0.0
                x_at_solvable_v = current.position
            else:
                if abs(current.velocity) > max_velocity:
                    solvable_v += np.sign(u) * EPSILON
                else:
                    solvable_v -= np.sign(u) * EPSILON

                t_to_solvable_v = self._time_from_velocity(
                    solvable_v, u, current.velocity
                )
                x_at_solvable_v = self.compute_distance_from_velocity(
                    solvable_v, u, current
                )

            inflection_t_forward = (
                t_to_solvable_v
                + np.sign(u) * (inflection_point.position - x_at_solvable_v) / max_velocity
            )
        else:
            inflection_t_forward = self._time_from_velocity(
                inflection_point.velocity, u, current.velocity
            )

        inflection_t_backward = self._time_from_velocity(
            inflection_point.velocity, -u, goal.velocity
        )

        return ProfileTiming(
            float(inflection_t_forward),
            float(inflection_t_forward - inflection_t_backward),
        )

    def _distance_from_time(self, t: float, u: float, initial: State) -> float:
        A = self.constraints.A
        B = self.constraints.B
        return initial.position + (
            -B * u * t + (initial.velocity + B * u / A) * (np.exp(A * t) - 1)
        ) / A

    def _velocity_from_time(self, t: float, u: float, initial: State) -> float:
        A = self.constraints.A
        B = self.constraints.B
        return (initial.velocity + B * u / A) * np.exp(A * t) - B * u / A

    def _time_from_velocity(self, velocity: float, u: float, initial: float) -> float:
        A = self.constraints.A
        B = self.constraints.B
        return np.log((A * velocity + B * u) / (A * initial + B * u)) / A

    def _solve_for_inflection_velocity(
        self, u: float, current: State, goal: State
    ) -> float:
        A = self.constraints.A
        B = self.constraints.B

        position_delta = goal.position - current.position
        velocity_delta = goal.velocity - current.velocity

        scalar = (A * current.velocity + B * u) * (A * goal.velocity - B * u)
        power = -A / B / u * (A * position_delta - velocity_delta)

        a = -A * A
        c = B * B * (u * u) + scalar * np.exp(power)

        # Floating-point noise around a zero radicand.
        if -1e-9 < c < 0:
            return 0.0

        return np.sign(u) * np.sqrt(-c / a)

    def _should_flip_input(self, current: State, goal: State) -> bool:
        u = self.constraints.max_input
        max_velocity = self.constraints.max_velocity()

        xf = goal.position
        v0 = current.velocity
        vf = goal.velocity

        x_forward = self.compute_distance_from_velocity(vf, u, current)
        x_reverse = self.compute_distance_from_velocity(vf, -u, current)

        if v0 >= max_velocity:
            return bool(xf < x_reverse)

        if v0 <= -max_velocity:
            return bool(xf < x_forward)

        a = v0 >= 0
        b = vf >= 0
        c = xf >= x_forward
        d = xf >= x_reverse

        return bool((a and not d) or (b and not c) or (not c and not d))


@dataclass(frozen=True)
class ProfileSample:
    time: float  # s
    position: float  # m
    velocity: float  # m/s
    speed: float  # motor rad/s
    voltage: float  # V
    current: float  # A
    torque: float  # N m
    power: float  # W
    efficiency: float  # percent
    losses: float  # W
    battery_voltage: float  # V


def sim_profile(
    profile: ExponentialProfile,
    current: State,
    goal: State,
    dt: float,
    motor: MotorSpec,
    current_limit: float,
    stator_voltage: float,
    spool_diameter: float,
    ratio: float,
    supply_voltage: float,
    battery_resistance: float,
) -> List[ProfileSample]:
    """Step a linear mechanism along the profile, annotating each step with motor load."""
    results = [
        ProfileSample(
            time=0.0,
            position=current.position,
            velocity=current.velocity,
            speed=0.0,
            voltage=stator_voltage,
            current=0.0,
            torque=0.0,
            power=0.0,
            efficiency=0.0,
            losses=0.0,
            battery_voltage=supply_voltage,
        )
    ]

    while current.position < goal.position:
        current = profile.calculate(dt, current, goal)

        if len(results) == 1 and ExponentialProfile.are_states_equal(current, goal):
            break

        speed = 0.0 if ratio == 0 else 2 * current.velocity * ratio / spool_diameter
        motor_state = MotorRules(
            motor, current_limit, voltage=stator_voltage, speed=speed
        ).solve()

        results.append(
            ProfileSample(
                time=len(results) * dt,
                position=current.position,
                velocity=current.velocity,
                speed=motor_state.speed,
                voltage=motor_state.voltage,
                current=motor_state.current,
                torque=motor_state.torque,
                power=motor_state.power,
                efficiency=motor_state.efficiency * 100,
                losses=motor_state.losses,
                battery_voltage=calculate_loaded_battery_voltage(
                    supply_voltage, battery_resistance, [motor_state.current]
                ),
            )
        )

    return results


def sim_flywheel_profile(
    profile: ExponentialProfile,
    current: State,
    goal: State,
    dt: float,
    radialize: Callable[[float], float],
) -> List[ProfileSample]:
    """Spin a flywheel up to ``goal.velocity``; only kinematics are reported.

    ``radialize`` converts surface speed (m/s) into shaft speed (rad/s).
    """
    results = [
        ProfileSample(
            time=0.0,
            position=current.position,
            velocity=current.velocity,
            speed=radialize(current.velocity),
            voltage=0.0,
            current=0.0,
            torque=0.0,
            power=0.0,
            efficiency=0.0,
            losses=0.0,
            battery_voltage=NOMINAL_VOLTAGE,
        )
    ]

    while current.velocity < goal.velocity:
        current = profile.calculate(dt, current, goal)

        if len(results) == 1 and ExponentialProfile.are_states_equal(current, goal):
            break

        results.append(
            ProfileSample(
                time=len(results) * dt,
                position=current.position,
                velocity=current.velocity,
                speed=radialize(current.velocity),
                voltage=0.0,
                current=0.0,
                torque=0.0,
                power=0.0,
                efficiency=0.0,
                losses=0.0,
                battery_voltage=0.0,
            )
        )
    return results
