"""Unit conversion constants. Everything inside the engine is SI floats."""
import math

GRAVITY = 9.80665  # m/s^2

RPM_TO_RAD_S = 2 * math.pi / 60
INCH = 0.0254  # m
POUND = 0.45359237  # kg
LB_IN2 = POUND * INCH ** 2  # kg m^2
MICROHENRY = 1e-6
MILLIHENRY = 1e-3


def rpm_to_rad_s(rpm: float) -> float:
    return rpm * RPM_TO_RAD_S


def rad_s_to_rpm(rad_s: float) -> float:
    return rad_s / RPM_TO_RAD_S


def inches(value: float) -> float:
    return value * INCH


def pounds(value: float) -> float:
    return value * POUND


def lb_in2(value: float) -> float:
    return value * LB_IN2
