import logging
from dataclasses import replace

import numpy as np
import pandas as pd

from mechanism import LinearMechanism
from simulator import LinearSimulator


def _summarize(mechanism: LinearMechanism, dt: float) -> dict:
    """Summary for one configuration, NaN-filled when it cannot move the load."""
    sim = LinearSimulator(mechanism, dt=dt)
    try:
        return sim.compute_summary()
    except ValueError as e:
        logging.warning(str(e))
        return {"Time to goal": np.nan, "Battery sag": np.nan}


def sweep_ratio(mechanism: LinearMechanism, ratio_range, dt=0.005):
    """
    Sweep gear ratio, return ratio_list and time_to_goal_list for this mechanism.
    """
    results = []
    for ratio in ratio_range:
        summary = _summarize(replace(mechanism, ratio=float(ratio)), dt)
        results.append((ratio, summary["Time to goal"]))
    ratios, times = zip(*results)
    return np.array(ratios), np.array(times)


def sweep_current_limit(mechanism: LinearMechanism, limit_range, dt=0.005):
    """
    Sweep stator current limit, return limit_list, time_to_goal_list and battery_sag_list.
    """
    results = []
    for limit in limit_range:
        summary = _summarize(replace(mechanism, stator_limit=float(limit)), dt)
        results.append((limit, summary["Time to goal"], summary["Battery sag"]))
    limits, times, sags = zip(*results)
    return np.array(limits), np.array(times), np.array(sags)


def sweep_ratio_current_limit(mechanism: LinearMechanism, ratio_range, limit_range, dt=0.005):
    """
    2D sweep: For each (ratio, limit) pair, compute time to goal. Returns meshgrid and Z.
    """
    Z = np.zeros((len(limit_range), len(ratio_range)))
    for i, limit in enumerate(limit_range):
        for j, ratio in enumerate(ratio_range):
            candidate = replace(mechanism, ratio=float(ratio), stator_limit=float(limit))
            Z[i, j] = _summarize(candidate, dt)["Time to goal"]
    R, L = np.meshgrid(ratio_range, limit_range)
    return R, L, Z


def analyze_motors_from_csv(csv_path, mechanism: LinearMechanism, dt=0.005) -> pd.DataFrame:
    """
    Reads CSV with columns:
        Motor, Motor Count, Ratio, Stator Limit (A)
    Simulates each row against ``mechanism`` and returns one summary row per
    configuration, sorted by time to goal.
    """
    try:
        df = pd.read_csv(csv_path, encoding="utf-8-sig")
    except UnicodeDecodeError:
        df = pd.read_csv(csv_path, encoding="cp1252")

    rows = []
    for _, row in df.iterrows():
        label = f"{int(row['Motor Count'])}x {row['Motor']} {row['Ratio']}:1"
        candidate = replace(
            mechanism,
            name=label,
            motor=row["Motor"],
            motor_count=int(row["Motor Count"]),
            ratio=float(row["Ratio"]),
            stator_limit=float(row["Stator Limit (A)"]),
        )
        rows.append({"Label": label, "Motor": row["Motor"], **_summarize(candidate, dt)})

    return pd.DataFrame(rows).sort_values("Time to goal").reset_index(drop=True)
