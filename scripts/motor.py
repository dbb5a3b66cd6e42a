"""Motor specifications and the steady-state motor solver."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from units import MICROHENRY, MILLIHENRY, rpm_to_rad_s


class MotorModel(Enum):
    KRAKEN_X60 = "Kraken X60"
    KRAKEN_X60_FOC = "Kraken X60 (FOC)"
    KRAKEN_X44 = "Kraken X44"
    FALCON_500 = "Falcon 500"
    NEO = "NEO"
    NEO_VORTEX = "NEO Vortex"
    NEO_550 = "NEO 550"
    CIM = "CIM"
    MINI_CIM = "miniCIM"
    BAG = "BAG"
    PRO_775 = "775pro"
    REDLINE_775 = "775 RedLine"
    CORE_HEX = "Core Hex"

    @classmethod
    def from_name(cls, name: str) -> "MotorModel":
        """Look a model up by its display name, e.g. ``"NEO 550"``."""
        for model in cls:
            if model.value == name:
                return model
        raise ValueError(f"Unknown motor identifier: {name!r}")


# Winding inductance per motor model (H).
INDUCTANCE: Dict[MotorModel, float] = {
    MotorModel.KRAKEN_X60: 35 * MICROHENRY,
    MotorModel.KRAKEN_X60_FOC: 35 * MICROHENRY,
    MotorModel.KRAKEN_X44: 35 * MICROHENRY,
    MotorModel.FALCON_500: 35 * MICROHENRY,
    MotorModel.NEO: 35 * MICROHENRY,
    MotorModel.NEO_VORTEX: 35 * MICROHENRY,
    MotorModel.NEO_550: 10 * MICROHENRY,
    MotorModel.CIM: 132 * MICROHENRY,
    MotorModel.MINI_CIM: 145 * MICROHENRY,
    MotorModel.BAG: 138 * MICROHENRY,
    MotorModel.PRO_775: 47 * MICROHENRY,
    MotorModel.REDLINE_775: 47 * MICROHENRY,
    MotorModel.CORE_HEX: 52 * MILLIHENRY,
}

# (stall torque N m, stall current A, free current A, free speed rpm) at 12 V
_DATASHEET = {
    MotorModel.KRAKEN_X60: (7.09, 366, 2, 6000),
    MotorModel.KRAKEN_X60_FOC: (9.37, 483, 2, 5800),
    MotorModel.KRAKEN_X44: (4.05, 275, 1.4, 7530),
    MotorModel.FALCON_500: (4.69, 257, 1.5, 6380),
    MotorModel.NEO: (2.6, 105, 1.8, 5676),
    MotorModel.NEO_VORTEX: (3.6, 211, 3.6, 6784),
    MotorModel.NEO_550: (0.97, 100, 1.4, 11000),
    MotorModel.CIM: (2.42, 133, 2.7, 5330),
    MotorModel.MINI_CIM: (1.41, 89, 3, 5840),
    MotorModel.BAG: (0.43, 53, 1.8, 13180),
    MotorModel.PRO_775: (0.71, 134, 0.7, 18730),
    MotorModel.REDLINE_775: (0.7, 134, 0.7, 21020),
    MotorModel.CORE_HEX: (3.2, 4.4, 0.18, 125),
}

NOMINAL_VOLTAGE = 12.0  # V


@dataclass(frozen=True)
class MotorSpec:
    """Datasheet motor constants plus the quantities derived from them.

    Attributes:
        model: Motor model, used for the inductance lookup.
        free_speed: Unloaded speed at ``voltage`` (rad/s).
        stall_torque: Torque at zero speed (N m).
        stall_current: Current at zero speed (A).
        free_current: Current at free speed (A).
        voltage: Datasheet voltage (V).
        quantity: Number of identical motors driving the mechanism.
    """
    model: MotorModel
    free_speed: float
    stall_torque: float
    stall_current: float
    free_current: float
    voltage: float = NOMINAL_VOLTAGE
    quantity: int = 1

    resistance: float = field(init=False)  # Ohm
    kV: float = field(init=False)  # rad/s per V
    kT: float = field(init=False)  # N m per A
    b: float = field(init=False)  # N m per rad/s

    def __post_init__(self):
        resistance = self.voltage / self.stall_current
        kT = self.stall_torque / self.stall_current
        object.__setattr__(self, "resistance", resistance)
        object.__setattr__(
            self, "kV", self.free_speed / (self.voltage - resistance * self.free_current)
        )
        object.__setattr__(self, "kT", kT)
        object.__setattr__(self, "b", kT * self.free_current / self.free_speed)

    @property
    def identifier(self) -> str:
        return self.model.value

    @property
    def inductance(self) -> float:
        return INDUCTANCE[self.model]

    def with_quantity(self, quantity: int) -> "MotorSpec":
        return replace(self, quantity=quantity)


def motor_spec(model, quantity: int = 1) -> MotorSpec:
    """Build a MotorSpec from the datasheet table. Accepts a model or its name."""
    if isinstance(model, str):
        model = MotorModel.from_name(model)
    stall_torque, stall_current, free_current, free_speed_rpm = _DATASHEET[model]
    return MotorSpec(
        model=model,
        free_speed=rpm_to_rad_s(free_speed_rpm),
        stall_torque=stall_torque,
        stall_current=stall_current,
        free_current=free_current,
        quantity=quantity,
    )


@dataclass(frozen=True)
class MotorState:
    speed: float  # rad/s
    voltage: float  # V
    current: float  # A
    torque: float  # N m
    power: float  # W
    losses: float  # W
    efficiency: float  # fraction 0..1


class MotorRules:
    """Steady-state operating point of a single motor.

    Give a voltage plus either a speed or a current. The stator current is
    capped at ``current_limit``; when the cap binds, the reported voltage is
    the reduced voltage a current-limiting controller would apply.
    """

    def __init__(
        self,
        motor: MotorSpec,
        current_limit: float,
        voltage: float,
        speed: Optional[float] = None,
        current: Optional[float] = None,
    ):
        if speed is None and current is None:
            raise ValueError("MotorRules needs either a speed or a current")
        self.motor = motor
        self.current_limit = current_limit
        self.voltage = voltage
        self.speed = speed
        self.current = current

    def solve(self) -> MotorState:
        m = self.motor
        if self.speed is not None:
            speed = self.speed
            back_emf = speed / m.kV
            current = (self.voltage - back_emf) / m.resistance
            current = max(min(current, self.current_limit), 0.0)
            voltage = min(self.voltage, current * m.resistance + back_emf)
        else:
            current = min(self.current, self.current_limit)
            speed = max(m.kV * (self.voltage - current * m.resistance), 0.0)
            voltage = self.voltage

        torque = m.kT * current
        power = torque * speed
        speed_fraction = max(speed / m.free_speed, 0.0)
        losses = current * current * m.resistance + m.voltage * m.free_current * speed_fraction
        total = power + losses
        efficiency = power / total if total > 0 else 0.0

        return MotorState(
            speed=speed,
            voltage=voltage,
            current=current,
            torque=torque,
            power=power,
            losses=losses,
            efficiency=efficiency,
        )


@dataclass(frozen=True)
class MotorCurvePoint:
    speed: float
    speed_fraction: float
    free_current: float
    max_stator: float
    stator_current: float
    torque: float
    output_power: float
    losses: float
    efficiency: float


def generate_motor_curves(
    motor: MotorSpec,
    stator_limit: float,
    supply_limit: float,
    speed_step: float = rpm_to_rad_s(10),
) -> List[MotorCurvePoint]:
    """Sweep 0..free speed and return the current-limited torque/power curve.

    The stator current at each speed is the smaller of the stator limit, the
    unloaded current capability ``(1 - speed%) * I_stall`` and the stator
    current that keeps input power under ``V * supply_limit``.
    """
    curve = []
    speed = 0.0
    while speed <= motor.free_speed:
        fraction = speed / motor.free_speed
        free_current = motor.free_current * fraction

        # Largest stator current whose electrical input fits under the supply limit:
        # R*I^2 + (fraction*V)*I - (V*I_supply - V*I_free) = 0
        a = motor.resistance
        b = fraction * motor.voltage
        c = -(motor.voltage * supply_limit) + motor.voltage * free_current
        max_stator = abs((-b + (b * b - 4 * a * c) ** 0.5) / (2 * a))

        stator_current = max(min(stator_limit, (1 - fraction) * motor.stall_current), 0.0)
        stator_current = min(stator_current, max_stator - free_current)

        torque = stator_current * motor.kT
        output_power = torque * speed
        losses = stator_current ** 2 * motor.resistance + motor.voltage * free_current
        total = output_power + losses

        curve.append(MotorCurvePoint(
            speed=speed,
            speed_fraction=fraction,
            free_current=free_current,
            max_stator=max_stator,
            stator_current=stator_current,
            torque=torque,
            output_power=output_power,
            losses=losses,
            efficiency=output_power / total if total > 0 else 0.0,
        ))
        speed += speed_step
    return curve
