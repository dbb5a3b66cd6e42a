"""Fixed-step ODE integration and the inductive DC motor model built on it."""
import logging
from dataclasses import asdict, dataclass
from typing import Callable, List, NamedTuple, Sequence, Tuple

import numpy as np

from motor import MotorSpec

# Rotor inertia of a typical FRC brushless motor (kg m^2), added to every load.
INHERENT_MOTOR_INERTIA = 0.00005822569


class VectorFieldResult(NamedTuple):
    change_rates: Sequence[float]
    should_stop: bool


ODEFunction = Callable[[float, np.ndarray], VectorFieldResult]


class ODESolver:
    """Integrate dy/dt = f(t, y) over [t0, t1] with a fixed step.

    Every method splits the interval into ``resolution`` steps of size
    h = (t1 - t0) / resolution and returns ``(ts, ys)`` with ``ys[k]`` the
    state at ``ts[k]``.
    """

    def __init__(self, ode: ODEFunction, y0: Sequence[float], t0: float, t1: float):
        self.ode = ode
        self.y0 = np.asarray(y0, dtype=float)
        self.t0 = t0
        self.t1 = t1

    def _grid(self, resolution: int) -> Tuple[float, np.ndarray, np.ndarray]:
        h = (self.t1 - self.t0) / resolution
        ts = self.t0 + h * np.arange(resolution + 1)
        ys = np.zeros((resolution + 1, len(self.y0)))
        ys[0] = self.y0
        return h, ts, ys

    def euler(self, resolution: int) -> Tuple[np.ndarray, np.ndarray]:
        """Forward Euler. Always runs all ``resolution`` steps; ``should_stop`` is ignored."""
        h, ts, ys = self._grid(resolution)
        for i in range(resolution):
            k1 = np.asarray(self.ode(ts[i], ys[i]).change_rates)
            ys[i + 1] = ys[i] + k1 * h
        return ts, ys

    def midpoint(self, resolution: int) -> Tuple[np.ndarray, np.ndarray]:
        """Explicit midpoint. Always runs all ``resolution`` steps; ``should_stop`` is ignored."""
        h, ts, ys = self._grid(resolution)
        for i in range(resolution):
            k1 = np.asarray(self.ode(ts[i], ys[i]).change_rates)
            k2 = np.asarray(self.ode(ts[i] + h / 2, ys[i] + k1 * h / 2).change_rates)
            ys[i + 1] = ys[i] + k2 * h
        return ts, ys

    def rk4(self, resolution: int) -> Tuple[np.ndarray, np.ndarray]:
        """Classical 4th-order Runge-Kutta with early stopping.

        If any of the four stage evaluations of step ``i`` reports
        ``should_stop``, integration ends and only the ``i`` points completed
        before that step are returned. Without a stop the full
        ``resolution + 1`` points come back.
        """
        h, ts, ys = self._grid(resolution)

        if np.isnan(self.y0).any():
            logging.warning(f"y0 contains invalid starting value: {self.y0}")

        for i in range(resolution):
            stage = self.ode(ts[i], ys[i])
            if stage.should_stop:
                return ts[:i], ys[:i]
            k1 = np.asarray(stage.change_rates)

            stage = self.ode(ts[i] + h / 2, ys[i] + k1 * h / 2)
            if stage.should_stop:
                return ts[:i], ys[:i]
            k2 = np.asarray(stage.change_rates)

            stage = self.ode(ts[i] + h / 2, ys[i] + k2 * h / 2)
            if stage.should_stop:
                return ts[:i], ys[:i]
            k3 = np.asarray(stage.change_rates)

            stage = self.ode(ts[i] + h, ys[i] + k3 * h)
            if stage.should_stop:
                return ts[:i], ys[:i]
            k4 = np.asarray(stage.change_rates)

            ys[i + 1] = ys[i] + (k1 / 6 + k2 / 3 + k3 / 3 + k4 / 6) * h

        return ts, ys


@dataclass(frozen=True)
class StoppingInfo:
    position: float  # rad
    velocity: float  # rad/s
    current_draw: float  # A
    step_number: float


@dataclass(frozen=True)
class ODEResult:
    time: float  # s
    position: float  # rad
    velocity: float  # rad/s
    stator_current: float  # A
    power: float  # W
    losses: float  # W
    efficiency: float  # fraction
    torque: float  # N m

    def to_dict(self) -> dict:
        return asdict(self)


def solve_motor_ode(
    motor: MotorSpec,
    stator_voltage: float,
    supply_voltage: float,
    supply_limit: float,
    stator_limit: float,
    should_stop: Callable[[StoppingInfo], bool],
    J: float,
    anti_torque: float,
    efficiency: float,
    duration: float = 30,
    steps_per_second: int = 1000,
) -> List[ODEResult]:
    """Simulate a current-limited motor with winding inductance using RK4.

    State vector: [angular velocity, stator current, current-limit tracker,
    position]. The tracker follows the stator current until either the
    supply-equivalent or the stator limit is reached, then freezes; torque
    is produced by min(current, tracker), which models a closed-loop
    controller cap without a discontinuity in the integrated state.

    Args:
        J: Load inertia reflected to the motor shaft (kg m^2).
        anti_torque: Opposing load torque at the motor shaft (N m).
        efficiency: Drivetrain efficiency in percent (0-100).
    """
    L = motor.inductance
    R = motor.resistance
    kT = motor.kT
    B = motor.b
    inertia = J + INHERENT_MOTOR_INERTIA

    steps = int(duration * steps_per_second)
    # RK4 on the current equation is unstable once h*R/L exceeds ~2.78.
    if R / L / steps_per_second > 2.78:
        logging.warning(
            f"{motor.identifier}: {steps_per_second} steps/s is too coarse for its "
            f"electrical time constant ({L / R * 1e6:.0f} us); results will diverge"
        )
    supply_limit_in_stator_amps = supply_limit * supply_voltage / stator_voltage

    voltage_ratio = stator_voltage / supply_voltage
    stall_current = motor.stall_current * voltage_ratio
    free_current = motor.free_current * voltage_ratio

    def motor_ode(t, y) -> VectorFieldResult:
        velocity, current, current_limit, position = y

        current_to_use = current_limit if current >= current_limit else current
        limited = current >= supply_limit_in_stator_amps or current >= current_limit

        current_rate = (stator_voltage - R * current - velocity / motor.kV) / L
        net_torque = max(0.0, kT * (efficiency / 100) * current_to_use - anti_torque - B * velocity)
        acceleration = net_torque / inertia * motor.quantity

        return VectorFieldResult(
            change_rates=[
                acceleration,
                current_rate,
                0.0 if limited else current_rate,
                velocity,
            ],
            should_stop=should_stop(
                StoppingInfo(
                    position=position,
                    velocity=velocity,
                    current_draw=current_to_use,
                    step_number=t * steps_per_second,
                )
            ),
        )

    solver = ODESolver(
        motor_ode,
        [0.0, stall_current, min(stator_limit, supply_limit_in_stator_amps), 0.0],
        0,
        duration,
    )
    ts, ys = solver.rk4(steps)

    results = []
    for t, (velocity, current, current_limit, position) in zip(ts, ys):
        current_draw = current_limit if current >= current_limit else current
        power = kT * (current_draw - free_current) * velocity
        losses = current_draw * current_draw * R + stator_voltage * free_current
        total = power + losses
        results.append(
            ODEResult(
                time=float(t),
                position=float(position),
                velocity=float(velocity),
                stator_current=float(current_draw),
                power=float(power),
                losses=float(losses),
                efficiency=float(power / total) if total != 0 else 0.0,
                torque=float(kT * current_draw),
            )
        )
    return results


def stop_at_position(target: float) -> Callable[[StoppingInfo], bool]:
    """Stop once the shaft has turned ``target`` radians."""
    def should_stop(info: StoppingInfo) -> bool:
        return info.position >= target
    return should_stop


def stop_when_settled(min_steps: float, tolerance: float = 1e-3) -> Callable[[StoppingInfo], bool]:
    """Stop after ``min_steps`` once consecutive evaluations agree on velocity."""
    last = {"velocity": None}

    def should_stop(info: StoppingInfo) -> bool:
        previous = last["velocity"]
        last["velocity"] = info.velocity
        if info.step_number < min_steps or previous is None:
            return False
        return abs(info.velocity - previous) <= tolerance
    return should_stop
