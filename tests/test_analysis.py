import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / 'scripts'))

import json

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest
from analysis import (
    analyze_motors_from_csv,
    sweep_current_limit,
    sweep_ratio,
    sweep_ratio_current_limit,
)
from main import (
    build_flywheel,
    build_linear,
    build_rotary,
    format_results,
    generate_pdf_report,
    load_config,
    setup_dirs,
    usecase_linear,
)
from mechanism import elevator
from plotter import plot_ratio_vs_time

BASE_DIR = Path(__file__).resolve().parents[1]


def test_sweep_ratio_returns_one_time_per_ratio():
    ratios, times = sweep_ratio(elevator, [6, 9, 12], dt=0.01)
    assert list(ratios) == [6, 9, 12]
    assert np.all(np.isfinite(times))
    assert np.all(times > 0)


def test_sweep_marks_unusable_ratio_as_nan():
    ratios, times = sweep_ratio(elevator, [0.5, 9], dt=0.01)
    assert np.isnan(times[0])
    assert np.isfinite(times[1])


def test_higher_current_limit_is_not_slower():
    limits, times, sags = sweep_current_limit(elevator, [20, 60], dt=0.01)
    assert times[1] <= times[0]
    assert sags[1] >= sags[0]


def test_two_dimensional_sweep_shapes():
    R, L, Z = sweep_ratio_current_limit(elevator, [6, 9, 12], [30, 60], dt=0.01)
    assert R.shape == L.shape == Z.shape == (2, 3)
    assert L[1, 0] == 60 and R[0, 2] == 12


def test_motor_table_from_csv(tmp_path):
    csv_path = tmp_path / "motors.csv"
    csv_path.write_text(
        "Motor,Motor Count,Ratio,Stator Limit (A)\n"
        "Kraken X60,2,9,60\n"
        "NEO,1,9,20\n"
    )
    df = analyze_motors_from_csv(csv_path, elevator, dt=0.01)
    assert list(df["Motor"]) == ["Kraken X60", "NEO"]
    assert df["Time to goal"].is_monotonic_increasing
    assert df.loc[0, "Label"] == "2x Kraken X60 9:1"


def test_motor_table_unknown_motor(tmp_path):
    csv_path = tmp_path / "motors.csv"
    csv_path.write_text("Motor,Motor Count,Ratio,Stator Limit (A)\nWarp Drive,1,9,40\n")
    with pytest.raises(ValueError):
        analyze_motors_from_csv(csv_path, elevator)


def test_load_config_missing_file_exits(tmp_path):
    with pytest.raises(SystemExit):
        load_config(tmp_path / "nope.json")


def test_load_config_requires_mechanism_sections(tmp_path):
    path = tmp_path / "partial.json"
    path.write_text(json.dumps({"linear": {}}))
    with pytest.raises(SystemExit):
        load_config(path)


def test_baseline_config_builds_mechanisms():
    config = load_config(BASE_DIR / "config" / "baseline.json")
    linear = build_linear(config)
    flywheel = build_flywheel(config)
    rotary = build_rotary(config)
    assert linear.motor == "Kraken X60"
    assert flywheel.target_speed == pytest.approx(3000 * 2 * np.pi / 60)
    assert rotary.target_angle == pytest.approx(np.pi)


def test_setup_dirs_and_linear_usecase(tmp_path):
    dirs = setup_dirs(tmp_path)
    assert all(d.is_dir() for d in dirs.values())
    config = load_config(BASE_DIR / "config" / "baseline.json")
    summary = usecase_linear(config, dirs, {"linear_dt": 0.01, "flywheel_dt": 0.01})
    assert summary["Time to goal"] > 0
    assert (dirs["single_run"] / "linear_trace.png").exists()


def test_pdf_report_includes_charts(tmp_path):
    ratios, times = sweep_ratio(elevator, [6, 9], dt=0.01)
    plot_ratio_vs_time([ratios], [times], ["Elevator"], ["blue"], tmp_path)
    out = tmp_path / "report.pdf"
    results = {"flywheel": {"Spin-up time": 1.25, "Phase sequence": "1-2-4"}}
    generate_pdf_report({"Ratio": "6 to 9"}, [tmp_path], out, results=results, notes="smoke")
    assert out.exists() and out.stat().st_size > 0


def test_format_results_lists_summaries_and_best_motors(tmp_path):
    csv_path = tmp_path / "motors.csv"
    csv_path.write_text("Motor,Motor Count,Ratio,Stator Limit (A)\nKraken X60,2,9,60\n")
    table = analyze_motors_from_csv(csv_path, elevator, dt=0.01)
    lines = format_results({
        "flywheel": {"Spin-up time": 1.23456, "Phase sequence": "1-2-4"},
        "motor_table": table,
        "ratio_sweep": None,
    })
    assert lines["flywheel"] == ["Spin-up time: 1.235", "Phase sequence: 1-2-4"]
    assert lines["motor_table"][0].startswith("2x Kraken X60 9:1: ")
    assert "ratio_sweep" not in lines
