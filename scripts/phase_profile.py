"""Four-phase closed-form profile for a current-limited, gravity-loaded mechanism.

Phases, in time order:
    1. ramp   - constant acceleration a_lim from rest while the current limit binds
    2. exp    - back-EMF roll-off, velocity approaches v_free exponentially
    3. coast  - constant velocity at the commanded top speed
    4. stop   - constant deceleration a_stop to rest at the target distance

Phases 2 and 3 are optional, so the valid sequences are 1-4, 1-2-4, 1-3-4
and 1-2-3-4. At each decision point the earliest candidate transition time
wins, with strict ``<`` so ties go to the earlier-listed phase.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from motor import NOMINAL_VOLTAGE, MotorRules, MotorSpec


@dataclass(frozen=True)
class PhaseCondition:
    t: float  # s
    x: float  # m
    v: float  # m/s


@dataclass(frozen=True)
class Phase:
    initial: PhaseCondition
    final: PhaseCondition


@dataclass(frozen=True)
class NotEntered:
    """Marker for a phase the trajectory skips."""


NOT_ENTERED = NotEntered()

OptionalPhase = Union[Phase, NotEntered]


@dataclass(frozen=True)
class Phase1Transitions:
    t_12: float
    t_13: float
    t_14: float


@dataclass(frozen=True)
class Phase2Transitions:
    """Durations measured from the start of phase 2. None means unreachable."""
    t_23: Optional[float] = None
    t_24: Optional[float] = None


@dataclass(frozen=True)
class PhaseSample:
    t: float  # s
    x: float  # m
    v: float  # m/s
    motor_speed: float  # rad/s
    current: float  # A
    torque: float  # N m
    power: float  # W
    efficiency: float  # fraction


@dataclass
class PhaseProfile:
    a_lim: float
    a_stop: float
    v_lim: float
    v_free: float
    top_speed: float
    phase1_transitions: Phase1Transitions
    phase2_transitions: Phase2Transitions
    enter_exp: bool
    enter_coast: bool
    phase1: Phase
    phase2: OptionalPhase
    phase3: OptionalPhase
    phase4: Phase
    samples: List[PhaseSample] = field(default_factory=list)

    @property
    def sequence(self) -> Tuple[int, ...]:
        phases = [(1, self.phase1), (2, self.phase2), (3, self.phase3), (4, self.phase4)]
        return tuple(n for n, phase in phases if isinstance(phase, Phase))

    @property
    def total_time(self) -> float:
        return self.phase4.final.t


def newtons_method(
    f: Callable[[float], float],
    f_prime: Callable[[float], float],
    initial_guess: float,
    tolerance: float = 1e-9,
    max_iterations: int = 100,
) -> Optional[float]:
    """Newton-Raphson root. Returns None when no root is found."""
    x = initial_guess
    for i in range(max_iterations):
        fx = f(x)
        fpx = f_prime(x)

        if abs(fpx) < 1e-12:
            logging.warning("Derivative too close to zero. Stopping.")
            return None

        next_x = x - fx / fpx
        if abs(next_x - x) < tolerance:
            logging.debug(f"Converged in {i} iterations")
            return next_x
        x = next_x

    logging.warning("Maximum iterations reached without convergence.")
    return None


def evaluate_exp(A, B, C, D, delta_x, t):
    """Stopping-distance residual along the exp phase, scaled by D = 2*a_stop.

    With v(t) = A + B*exp(C*t) and x(t) = A*t + B/C*(exp(C*t) - 1), this is
    v(t)^2 + D*x(t) - D*delta_x, which is zero where braking at a_stop from
    the current state lands exactly on the target.
    """
    with np.errstate(all="ignore"):
        e = np.exp(C * t)
        return (
            B * B * np.exp(2 * C * t)
            + (D * B / C + 2 * A * B) * e
            + A * D * t
            - D * B / C
            - delta_x * D
            + A * A
        )


def evaluate_exp_derivative(A, B, C, D, delta_x, t):
    with np.errstate(all="ignore"):
        e2 = np.exp(2 * C * t)
        total = (B * D / C + 2 * A * B) * C * np.exp(C * t) + A * D
        if np.isfinite(e2):
            total += 2 * B * B * C * e2
        return total


def exp_decel_intercept(
    v_free: float, v_lim: float, a_lim: float, a_stop: float, x_f: float, x_20: float
) -> Optional[float]:
    """Time into the exp phase at which braking must begin, or None."""
    A = v_free
    B = -(v_free - v_lim)
    C = -a_lim / (v_free - v_lim)
    D = 2 * a_stop
    delta_x = x_f - x_20

    root = newtons_method(
        lambda t: evaluate_exp(A, B, C, D, delta_x, t),
        lambda t: evaluate_exp_derivative(A, B, C, D, delta_x, t),
        0.0,
    )
    return None if root is None else float(root)


def phase1_transitions(
    v_lim: float, a_lim: float, top_speed: float, target_distance: float, a_stop: float
) -> Phase1Transitions:
    return Phase1Transitions(
        t_12=v_lim / a_lim,
        t_13=top_speed / a_lim,
        t_14=math.sqrt(2 * target_distance / (a_lim + a_lim * a_lim / a_stop)),
    )


def phase2_transitions(
    a_lim: float,
    v_lim: float,
    v_free: float,
    top_speed: float,
    a_stop: float,
    target_distance: float,
    phase2_start: PhaseCondition,
) -> Phase2Transitions:
    ratio = (v_free - top_speed) / (v_free - v_lim)
    t_23 = None if ratio <= 0 else -(v_free - v_lim) / a_lim * math.log(ratio)

    t_24 = exp_decel_intercept(v_free, v_lim, a_lim, a_stop, target_distance, phase2_start.x)
    return Phase2Transitions(t_23=t_23, t_24=t_24)


def exp_phase_state(
    dt: float, start: PhaseCondition, v_free: float, v_lim: float, a_lim: float
) -> Tuple[float, float]:
    """Position and velocity ``dt`` seconds into the exp phase."""
    decay = math.exp(-a_lim / (v_free - v_lim) * dt)
    x = start.x + v_free * dt + (v_free - v_lim) ** 2 / a_lim * (decay - 1)
    v = v_free - (v_free - v_lim) * decay
    return x, v


def _ramp(duration: float, a_lim: float) -> Phase:
    return Phase(
        initial=PhaseCondition(0.0, 0.0, 0.0),
        final=PhaseCondition(duration, a_lim * duration * duration / 2, a_lim * duration),
    )


def generate_profile(
    target_distance: float,
    max_velocity: float,
    motor: MotorSpec,
    efficiency: float,
    ratio: float,
    mass: float,
    stator_limit: float,
    gravity: float,
    diameter: float,
    stop_at_velocity: Optional[float] = None,
    dt: float = 0.01,
) -> PhaseProfile:
    """Build the phase plan for a move of ``target_distance`` and sample it every ``dt``.

    Args:
        target_distance: Travel distance (m).
        max_velocity: Commanded velocity ceiling (m/s).
        efficiency: Drivetrain efficiency in percent (0-100).
        ratio: Gear reduction (motor turns per output turn).
        mass: Moving mass, or inertia reflected to the wheel radius (kg).
        stator_limit: Stator current limit per motor (A).
        gravity: Opposing acceleration (m/s^2), 0 for horizontal motion.
        diameter: Wheel, spool or pulley diameter (m).
        stop_at_velocity: Optional velocity at which sampling ends early.
    """
    r = diameter / 2

    limit_fraction = (stator_limit - motor.free_current) / (
        motor.stall_current - motor.free_current
    )
    torque_lim = motor.stall_torque * motor.quantity * (efficiency / 100) * limit_fraction
    force_lim = torque_lim * ratio / r
    a_lim = force_lim / mass - gravity
    a_stop = a_lim + 2 * gravity

    v_lim = motor.free_speed * (1 - limit_fraction) * r / ratio
    v_free = motor.free_speed * r / ratio * (
        1 - mass * gravity * r / (motor.stall_torque * ratio)
    )
    top_speed = min(v_free, max_velocity)

    if not a_lim > 0:
        raise ValueError(
            f"Current-limited acceleration is {a_lim:.3f} m/s^2; the drive cannot move the load"
        )

    transitions = phase1_transitions(v_lim, a_lim, top_speed, target_distance, a_stop)
    t1f = min(transitions.t_12, transitions.t_13, transitions.t_14)
    phase1 = _ramp(t1f, a_lim)

    enter_exp = transitions.t_12 < transitions.t_13 and transitions.t_12 < transitions.t_14

    p2_transitions = Phase2Transitions()
    phase2: OptionalPhase = NOT_ENTERED
    if not enter_exp:
        enter_coast = transitions.t_13 < transitions.t_14
    else:
        p2_transitions = phase2_transitions(
            a_lim, v_lim, v_free, top_speed, a_stop, target_distance, phase1.final
        )
        t_23, t_24 = p2_transitions.t_23, p2_transitions.t_24
        if t_23 is None and t_24 is None:
            # Without an exp exit the ramp runs on until it must coast or brake.
            logging.warning("Exp phase has no reachable exit; extending the ramp instead.")
            enter_exp = False
            t1f = min(transitions.t_13, transitions.t_14)
            phase1 = _ramp(t1f, a_lim)
            enter_coast = transitions.t_13 < transitions.t_14
        else:
            if t_24 is None:
                enter_coast = True
                duration = t_23
            elif t_23 is None:
                enter_coast = False
                duration = t_24
            else:
                enter_coast = t_23 < t_24
                duration = min(t_23, t_24)
            x2f, v2f = exp_phase_state(duration, phase1.final, v_free, v_lim, a_lim)
            phase2 = Phase(
                initial=phase1.final,
                final=PhaseCondition(phase1.final.t + duration, x2f, v2f),
            )

    previous = phase2.final if isinstance(phase2, Phase) else phase1.final

    phase3: OptionalPhase = NOT_ENTERED
    if enter_coast:
        dt34 = (target_distance - previous.x) / top_speed - top_speed / 2 / a_stop
        phase3 = Phase(
            initial=previous,
            final=PhaseCondition(previous.t + dt34, previous.x + top_speed * dt34, top_speed),
        )
        previous = phase3.final

    phase4 = Phase(
        initial=previous,
        final=PhaseCondition(previous.t + previous.v / a_stop, target_distance, 0.0),
    )

    profile = PhaseProfile(
        a_lim=a_lim,
        a_stop=a_stop,
        v_lim=v_lim,
        v_free=v_free,
        top_speed=top_speed,
        phase1_transitions=transitions,
        phase2_transitions=p2_transitions,
        enter_exp=enter_exp,
        enter_coast=enter_coast,
        phase1=phase1,
        phase2=phase2,
        phase3=phase3,
        phase4=phase4,
    )

    if not math.isfinite(phase4.final.t):
        raise ValueError(
            f"Profile has no finite stopping time (a_lim={a_lim}, a_stop={a_stop}); "
            "check current limit, ratio and load"
        )

    profile.samples = sample_profile(profile, motor, ratio, r, stator_limit, target_distance,
                                     stop_at_velocity, dt)
    return profile


def sample_point(profile: PhaseProfile, t: float) -> Tuple[float, float]:
    """Position and velocity at time ``t``."""
    if t <= 0:
        return 0.0, 0.0

    final = profile.phase4.final
    if t >= final.t:
        return final.x, final.v

    if t <= profile.phase1.final.t:
        return profile.a_lim * t * t / 2, profile.a_lim * t

    phase2 = profile.phase2
    if isinstance(phase2, Phase) and t <= phase2.final.t:
        return exp_phase_state(
            t - phase2.initial.t, phase2.initial, profile.v_free, profile.v_lim, profile.a_lim
        )

    phase3 = profile.phase3
    if isinstance(phase3, Phase) and t <= phase3.final.t:
        return phase3.initial.x + profile.top_speed * (t - phase3.initial.t), profile.top_speed

    start = profile.phase4.initial
    elapsed = t - start.t
    return (
        start.x + start.v * elapsed - profile.a_stop * elapsed * elapsed / 2,
        start.v - profile.a_stop * elapsed,
    )


def sample_profile(
    profile: PhaseProfile,
    motor: MotorSpec,
    ratio: float,
    radius: float,
    stator_limit: float,
    target_distance: float,
    stop_at_velocity: Optional[float] = None,
    dt: float = 0.01,
) -> List[PhaseSample]:
    """Sample until the target is reached, the profile ends or ``stop_at_velocity`` is hit."""
    samples = []
    k = 0
    while True:
        t = k * dt
        x, v = sample_point(profile, t)

        motor_speed = v * ratio / radius
        motor_state = MotorRules(
            motor, stator_limit, voltage=NOMINAL_VOLTAGE, speed=motor_speed
        ).solve()

        samples.append(PhaseSample(
            t=t,
            x=x,
            v=v,
            motor_speed=motor_speed,
            current=motor_state.current,
            torque=motor_state.torque,
            power=motor_state.power,
            efficiency=motor_state.efficiency,
        ))

        if (
            x >= target_distance
            or t >= profile.total_time
            or (stop_at_velocity is not None and v >= stop_at_velocity)
        ):
            break
        k += 1
    return samples
