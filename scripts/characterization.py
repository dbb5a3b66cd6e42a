"""Feed-forward characterization and current-limit helpers.

kV, kA and kG are expressed against the 12 V nominal bus so they can be fed
straight into ``exponential_profile.from_characteristics``:
    kV: V per (m/s)
    kA: V per (m/s^2)
    kG: V to hold the load against gravity
"""
from typing import Iterable

from motor import NOMINAL_VOLTAGE, MotorRules, MotorSpec
from units import GRAVITY


def calculate_kv(max_speed: float, radius: float) -> float:
    """max_speed is the output shaft free speed in rad/s."""
    return NOMINAL_VOLTAGE / (max_speed * radius)


def calculate_ka(torque: float, radius: float, mass: float) -> float:
    return NOMINAL_VOLTAGE / (torque / radius / mass)


def calculate_kg(torque: float, radius: float, mass: float) -> float:
    return NOMINAL_VOLTAGE * GRAVITY / (torque / radius / mass)


def supply_limit_to_stator_limit(
    supply_limit: float, supply_voltage: float, stator_voltage: float
) -> float:
    """Equivalent stator current for a supply (battery side) current limit."""
    if stator_voltage == 0:
        return 0.0
    return supply_limit * supply_voltage / stator_voltage


def limiting_current(
    stator_limit: float, supply_limit: float, supply_voltage: float, stator_voltage: float
) -> float:
    """Whichever of the stator limit and the converted supply limit binds first."""
    return min(
        stator_limit,
        supply_limit_to_stator_limit(supply_limit, supply_voltage, stator_voltage),
    )


def calculate_stall_load(
    motor: MotorSpec,
    current_limit: float,
    spool_diameter: float,
    ratio: float,
    efficiency: float,
    stator_voltage: float,
) -> float:
    """Mass (kg) the mechanism can hold at the current limit."""
    if spool_diameter == 0:
        return 0.0

    torque = MotorRules(
        motor, current_limit, voltage=stator_voltage, current=current_limit
    ).solve().torque
    force = torque * motor.quantity * ratio * (efficiency / 100) / (spool_diameter / 2)
    return force / GRAVITY


def calculate_loaded_battery_voltage(
    supply_voltage: float, battery_resistance: float, currents: Iterable[float]
) -> float:
    voltage = supply_voltage
    for current in currents:
        voltage -= current * battery_resistance
    return voltage
