"""Mechanism definitions for motor-driven simulations. SI units throughout."""
import math
from dataclasses import dataclass

from motor import MotorSpec, motor_spec
from units import inches, lb_in2, pounds, rpm_to_rad_s


@dataclass
class LinearMechanism:
    name: str
    motor: str
    motor_count: int = 2
    ratio: float = 10.0
    spool_diameter: float = 0.0381  # m
    load: float = 10.0  # kg
    travel_distance: float = 1.5  # m
    angle: float = 90.0  # deg from horizontal
    efficiency: float = 90.0  # %
    stator_limit: float = 60.0  # A
    supply_limit: float = 90.0  # A
    supply_voltage: float = 12.6  # V
    stator_voltage: float = 10.0  # V
    battery_resistance: float = 0.015  # Ohm
    color: str = "blue"

    def motor_spec(self) -> MotorSpec:
        return motor_spec(self.motor, self.motor_count)


@dataclass
class FlywheelMechanism:
    name: str
    motor: str
    motor_count: int = 1
    ratio: float = 1.0
    efficiency: float = 100.0  # %
    stator_limit: float = 30.0  # A
    shooter_diameter: float = 0.1016  # m
    shooter_moi: float = 0.0  # kg m^2
    flywheel_moi: float = 0.0  # kg m^2
    flywheel_to_shooter_ratio: float = 1.0
    target_speed: float = rpm_to_rad_s(3000)  # shooter rad/s
    color: str = "orange"

    def motor_spec(self) -> MotorSpec:
        return motor_spec(self.motor, self.motor_count)

    @property
    def radius(self) -> float:
        return self.shooter_diameter / 2

    @property
    def total_moi(self) -> float:
        """Inertia seen at the shooter shaft."""
        reduction = self.flywheel_to_shooter_ratio or 1.0
        return self.shooter_moi + self.flywheel_moi / reduction ** 2

    @property
    def equivalent_mass(self) -> float:
        return self.total_moi / self.radius ** 2

    @property
    def target_surface_speed(self) -> float:
        return self.target_speed * self.radius


@dataclass
class RotaryMechanism:
    name: str
    motor: str
    motor_count: int = 1
    ratio: float = 50.0
    moi: float = 0.5  # kg m^2 at the output
    anti_torque: float = 0.0  # N m at the output
    efficiency: float = 90.0  # %
    stator_limit: float = 40.0  # A
    supply_limit: float = 60.0  # A
    supply_voltage: float = 12.6  # V
    stator_voltage: float = 12.0  # V
    target_angle: float = math.pi / 2  # rad at the output
    duration: float = 30.0  # s
    steps_per_second: int = 1000
    color: str = "green"

    def motor_spec(self) -> MotorSpec:
        return motor_spec(self.motor, self.motor_count)

    @property
    def reflected_moi(self) -> float:
        return self.moi / self.ratio ** 2

    @property
    def reflected_anti_torque(self) -> float:
        return self.anti_torque / self.ratio

    @property
    def motor_target_angle(self) -> float:
        return self.target_angle * self.ratio


# Example mechanisms used in quick runs and tests
elevator = LinearMechanism(
    name="Elevator",
    motor="Kraken X60",
    motor_count=2,
    ratio=9.0,
    spool_diameter=inches(1.5),
    load=pounds(15),
    travel_distance=inches(60),
)

shooter = FlywheelMechanism(
    name="Shooter",
    motor="Kraken X60",
    motor_count=1,
    ratio=1.0,
    shooter_diameter=inches(4),
    shooter_moi=lb_in2(4.5),
    flywheel_moi=lb_in2(3),
    target_speed=rpm_to_rad_s(3000),
)

turret = RotaryMechanism(
    name="Turret",
    motor="Kraken X60",
    ratio=60.0,
    moi=0.2,
    target_angle=math.pi,
)
