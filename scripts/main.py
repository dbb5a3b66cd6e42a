"""
Mechanism Motion Simulation Main Script
=======================================

CLI-driven runner for the motion-profile and motor-dynamics engine.

Major use-cases (selectable via CLI or run all):
    1. linear       - exponential-profile travel of a linear mechanism (elevator)
    2. flywheel     - four-phase spin-up of a flywheel, cross-checked against the exponential profile
    3. motor_ode    - RK4 motor simulation including winding inductance (rotary mechanism)
    4. ratio_sweep  - parametric sweeps of gear ratio and current limit
    5. motor_table  - motor configuration comparison from data/motors.csv

To add new use-cases, define a new function and add to the USE_CASES dict.
CLI Usage Examples:

# Run the default linear use-case with config/baseline.json
python scripts/main.py

# Run ALL use-cases
python scripts/main.py --usecase all

# Run sweeps with a specific config file and write a PDF report
python scripts/main.py --usecase ratio_sweep --config heavy_elevator.json --pdf-report

# Change logging verbosity
python scripts/main.py --loglevel DEBUG

NOTE:
- All config files should be placed in the config/ directory at the project base.
- The motor comparison table lives in data/motors.csv.
- Charts and PDF reports are stored in the results/ directory.
"""

import argparse
import logging
import json
from pathlib import Path
import datetime
import sys

import numpy as np
import pandas as pd
from fpdf import FPDF

from analysis import (
    sweep_ratio, sweep_current_limit, sweep_ratio_current_limit,
    analyze_motors_from_csv,
)
from mechanism import FlywheelMechanism, LinearMechanism, RotaryMechanism
from motor import generate_motor_curves, motor_spec
from plotter import (
    plot_ratio_vs_time,
    plot_current_limit_sweep,
    plot_ratio_current_surface,
    plot_linear_trace,
    plot_flywheel_spinup,
    plot_motor_ode,
    plot_motor_table_bar,
    plot_motor_curves,
)
from simulator import FlywheelSimulator, LinearSimulator, RotarySimulator
from units import rad_s_to_rpm, rpm_to_rad_s

# =============================
# DEFAULT RUN SETTINGS
# =============================
DEFAULT_SETTINGS = {
    "base_dir": Path(__file__).resolve().parents[1],
    "config": "baseline.json",
    "usecase": ["linear"],
    "pdf_report": False,
    "loglevel": "INFO",
}


# =======================
# 1. CONFIGURATION UTILS
# =======================

def load_config(config_path: Path) -> dict:
    """Load and validate a JSON configuration file."""
    try:
        with open(config_path, "r") as f:
            config = json.load(f)
    except FileNotFoundError:
        logging.error(f"Config file not found: {config_path}")
        sys.exit(1)
    except json.JSONDecodeError:
        logging.error(f"Config file is not valid JSON: {config_path}")
        sys.exit(1)

    missing = [k for k in ("linear", "flywheel", "rotary") if k not in config]
    if missing:
        logging.error(f"Config file {config_path} is missing sections: {', '.join(missing)}")
        sys.exit(1)
    return config


def setup_dirs(base_dir: Path) -> dict:
    """Create and return all working subdirectories."""
    dirs = {
        "config": base_dir / "config",
        "results": base_dir / "results",
        "parametric": base_dir / "results" / "parametric",
        "single_run": base_dir / "results" / "single_run",
        "data": base_dir / "data",
    }
    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)
    return dirs


# ==============================
# 2. MECHANISM BUILDERS
# ==============================

def build_linear(config: dict) -> LinearMechanism:
    return LinearMechanism(**config["linear"])


def build_flywheel(config: dict) -> FlywheelMechanism:
    params = dict(config["flywheel"])
    params["target_speed"] = rpm_to_rad_s(params.pop("target_speed_rpm", 3000))
    return FlywheelMechanism(**params)


def build_rotary(config: dict) -> RotaryMechanism:
    params = dict(config["rotary"])
    params["target_angle"] = np.radians(params.pop("target_angle_deg", 90))
    return RotaryMechanism(**params)


def print_summary(title, summary: dict, units: dict):
    print(f"\n[{title}]")
    for k, v in summary.items():
        print(f"  {k:20s}: {v:10.4f} {units.get(k, '')}")


# ==========================
# 3. USE-CASE IMPLEMENTATION
# ==========================

def usecase_linear(config, dirs, params):
    """Simulate linear travel with the exponential profile."""
    logging.info("Running use-case: Linear Mechanism Travel")
    mechanism = build_linear(config)
    sim = LinearSimulator(mechanism, dt=params["linear_dt"])

    ff = sim.feedforward()
    print_summary(f"{mechanism.name} FEED-FORWARD", ff, {"kV": "V s/m", "kA": "V s²/m", "kG": "V"})
    summary = sim.compute_summary()
    print_summary(f"{mechanism.name} Travel Summary", summary, {
        "Time to goal": "s",
        "Max velocity": "m/s",
        "Max current": "A",
        "Stall load": "kg",
        "Min battery voltage": "V",
        "Battery sag": "V",
    })
    plot_linear_trace([mechanism], [sim], dirs["single_run"])
    return summary


def usecase_flywheel(config, dirs, params):
    """Spin a flywheel up with the four-phase profile."""
    logging.info("Running use-case: Flywheel Spin-up")
    mechanism = build_flywheel(config)
    sim = FlywheelSimulator(mechanism, dt=params["flywheel_dt"])
    profile = sim.simulate()
    logging.debug(f"Phase sequence: {profile.sequence}")

    try:
        exp_samples = sim.simulate_exponential()
    except ValueError as e:
        logging.warning(str(e))
        exp_samples = []

    summary = {
        "Spin-up time": profile.samples[-1].t,
        "Final speed": rad_s_to_rpm(profile.samples[-1].v / mechanism.radius),
        "Peak current": max(s.current for s in profile.samples),
        "Current-limit accel": profile.a_lim,
    }
    if exp_samples:
        summary["Exp. spin-up time"] = exp_samples[-1].time
    print_summary(f"{mechanism.name} Spin-up (phases {profile.sequence})", summary, {
        "Spin-up time": "s",
        "Final speed": "rpm",
        "Peak current": "A",
        "Current-limit accel": "m/s²",
        "Exp. spin-up time": "s",
    })
    plot_flywheel_spinup(mechanism, profile, exp_samples, dirs["single_run"])
    summary["Phase sequence"] = "-".join(str(n) for n in profile.sequence)
    return summary


def usecase_motor_ode(config, dirs, params):
    """Integrate the inductive motor model for a rotary move."""
    logging.info("Running use-case: Motor ODE Simulation")
    mechanism = build_rotary(config)
    sim = RotarySimulator(mechanism)
    results = sim.simulate()
    if not results:
        logging.info(f"{mechanism.name}: already at the target angle")
        return {"Time to target": 0.0}

    steps = int(mechanism.duration * mechanism.steps_per_second)
    reached = len(results) <= steps
    if not reached:
        logging.warning(f"{mechanism.name}: target not reached within {mechanism.duration} s")

    summary = {
        "Time to target": results[-1].time,
        "Final output angle": np.degrees(results[-1].position / mechanism.ratio),
        "Peak stator current": max(r.stator_current for r in results),
        "Peak motor speed": rad_s_to_rpm(max(r.velocity for r in results)),
    }
    print_summary(f"{mechanism.name} RK4 Simulation", summary, {
        "Time to target": "s",
        "Final output angle": "deg",
        "Peak stator current": "A",
        "Peak motor speed": "rpm",
    })
    plot_motor_ode(mechanism, results, dirs["single_run"])
    return summary


def usecase_ratio_sweep(config, dirs, params):
    """
    Run parametric sweeps for gear ratio, current limit and the 2D ratio/limit surface.
    """
    logging.info("Running use-case: Parametric Sweep Analysis")
    mechanism = build_linear(config)
    dt = params["linear_dt"]

    ratio_range = np.linspace(*config["ratio_sweep"])
    r_vals, t_vals = sweep_ratio(mechanism, ratio_range, dt=dt)
    plot_ratio_vs_time([r_vals], [t_vals], [mechanism.name], [mechanism.color], dirs["parametric"])

    limit_range = np.linspace(*config["current_limit_sweep"])
    l_vals, t_lim_vals, sag_vals = sweep_current_limit(mechanism, limit_range, dt=dt)
    plot_current_limit_sweep(l_vals, t_lim_vals, sag_vals, mechanism.name, mechanism.color,
                             dirs["parametric"])

    if "ratio_2d_sweep" in config and "current_limit_2d_sweep" in config:
        R, L, Z = sweep_ratio_current_limit(
            mechanism,
            np.linspace(*config["ratio_2d_sweep"]),
            np.linspace(*config["current_limit_2d_sweep"]),
            dt=dt,
        )
        plot_ratio_current_surface(R, L, Z, mechanism.name, dirs["parametric"],
                                   "ratio_current_surface.png")

    best = int(np.nanargmin(t_vals))
    print(f"\nFastest ratio for {mechanism.name}: {r_vals[best]:.2f}:1 ({t_vals[best]:.3f} s)")
    return {"Fastest ratio": float(r_vals[best]), "Time to goal": float(t_vals[best])}


def usecase_motor_table(config, dirs, params):
    """
    Compare motor configurations listed in data/motors.csv on the linear mechanism.
    """
    logging.info("Running use-case: Motor Table Analysis")
    csv_path = dirs["data"] / "motors.csv"
    mechanism = build_linear(config)
    df = analyze_motors_from_csv(csv_path, mechanism, dt=params["linear_dt"])
    print(df.to_string(index=False, float_format=lambda v: f"{v:.3f}"))
    plot_motor_table_bar(df, dirs["parametric"])

    for motor_name in df["Motor"].unique():
        spec = motor_spec(motor_name)
        curve = generate_motor_curves(spec, mechanism.stator_limit, mechanism.supply_limit)
        plot_motor_curves(motor_name, curve, dirs["parametric"])
    return df


# Register use-cases
USE_CASES = {
    "linear": usecase_linear,
    "flywheel": usecase_flywheel,
    "motor_ode": usecase_motor_ode,
    "ratio_sweep": usecase_ratio_sweep,
    "motor_table": usecase_motor_table,
}


# ========================
# 4. REPORT GENERATION
# ========================

def format_results(results: dict) -> dict:
    """Flatten use-case outputs into printable lines per use-case."""
    lines = {}
    for name, outcome in results.items():
        if isinstance(outcome, pd.DataFrame):
            lines[name] = [
                f"{row['Label']}: {row['Time to goal']:.3f} s"
                for _, row in outcome.head(3).iterrows()
            ]
        elif outcome:
            lines[name] = [
                f"{k}: {v:.4g}" if isinstance(v, float) else f"{k}: {v}"
                for k, v in outcome.items()
            ]
    return lines


def generate_pdf_report(
    parameters_dict,
    charts_dirs,
    output_pdf_path,
    results=None,
    notes=None,
):
    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, "Mechanism Motion Simulation Report", ln=True, align="C")
    pdf.set_font("Helvetica", "I", 10)
    pdf.cell(0, 8, datetime.datetime.now().strftime("%Y-%m-%d %H:%M"), ln=True, align="C")
    pdf.ln(4)

    sections = {"Mechanisms and Settings": [f"{k}: {v}" for k, v in parameters_dict.items()]}
    for name, lines in format_results(results or {}).items():
        sections[f"Results - {name}"] = lines
    if notes:
        sections["Notes"] = [notes]
    for title, lines in sections.items():
        pdf.set_font("Helvetica", "B", 13)
        pdf.cell(0, 8, title, ln=True)
        pdf.set_font("Helvetica", size=11)
        for line in lines:
            pdf.multi_cell(0, 6, line)
        pdf.ln(3)

    for charts_dir in charts_dirs:
        for img_path in sorted(Path(charts_dir).glob("*.png")):
            pdf.add_page()
            pdf.set_font("Helvetica", "B", 12)
            pdf.cell(0, 10, img_path.stem.replace("_", " ").title(), ln=True, align="C")
            pdf.image(str(img_path), x=15, w=180)
    pdf.output(str(output_pdf_path))
    print(f"PDF report saved to: {output_pdf_path}")


# ================
# 5. MAIN ENTRYPOINT
# ================

def main():
    parser = argparse.ArgumentParser(
        description="Mechanism motion simulation: exponential and multi-phase profiles, motor ODE"
    )
    parser.add_argument(
        "--base-dir",
        type=str,
        default=str(DEFAULT_SETTINGS['base_dir']),
        help="Project base directory containing config/, data/ and results/"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_SETTINGS["config"],
        help="Name of config file to load from the config/ directory"
    )
    parser.add_argument(
        "--usecase",
        type=str,
        nargs="*",
        choices=list(USE_CASES.keys()) + ["all", "none"],
        default=DEFAULT_SETTINGS["usecase"],
        help="Which use-case(s) to run (default: linear)"
    )
    parser.add_argument(
        "--pdf-report",
        action="store_true", default=DEFAULT_SETTINGS["pdf_report"],
        help="Generate PDF report from latest results"
    )
    parser.add_argument(
        "--loglevel",
        type=str,
        default=DEFAULT_SETTINGS["loglevel"],
        help="Set logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.loglevel.upper()), format="%(levelname)s: %(message)s")
    base_dir = Path(args.base_dir)
    dirs = setup_dirs(base_dir)
    config_path = dirs["config"] / args.config
    config = load_config(config_path)

    params = dict(
        linear_dt=config.get("linear_dt", 0.005),
        flywheel_dt=config.get("flywheel_dt", 0.01),
    )

    if "all" in args.usecase:
        run_cases = list(USE_CASES)
    else:
        run_cases = [uc for uc in args.usecase if uc != "none"]
    results = {}
    for name in run_cases:
        results[name] = USE_CASES[name](config, dirs, params)

    if args.pdf_report:
        linear = config["linear"]
        parameters_dict = {
            "Config File": str(config_path),
            "Linear Mechanism": f"{linear.get('name')} ({linear.get('motor_count', 2)}x {linear.get('motor')})",
            "Flywheel Mechanism": f"{config['flywheel'].get('name')} ({config['flywheel'].get('motor')})",
            "Rotary Mechanism": f"{config['rotary'].get('name')} ({config['rotary'].get('motor')})",
            "Linear Time Step (s)": params["linear_dt"],
            "Flywheel Time Step (s)": params["flywheel_dt"],
        }
        if "ratio_sweep" in config:
            parameters_dict["Ratio Sweep Range"] = f"{config['ratio_sweep'][0]} to {config['ratio_sweep'][1]}"
        if "current_limit_sweep" in config:
            parameters_dict["Current Limit Sweep Range (A)"] = (
                f"{config['current_limit_sweep'][0]} to {config['current_limit_sweep'][1]}"
            )
        config_name = config.get("name", "simulation")
        generate_pdf_report(
            parameters_dict=parameters_dict,
            charts_dirs=[dirs["single_run"], dirs["parametric"]],
            output_pdf_path=dirs["results"] / f"{config_name}_simulation_report.pdf",
            results=results,
            notes=config.get("notes"),
        )


if __name__ == "__main__":
    main()
