import matplotlib.pyplot as plt
import numpy as np

from phase_profile import Phase
from units import rad_s_to_rpm


def plot_ratio_vs_time(ratios_list, times_list, labels, colors, out_dir):
    plt.figure(figsize=(10, 6))
    for r, t, label, color in zip(ratios_list, times_list, labels, colors):
        plt.plot(r, t, label=label, color=color, marker='o')
    plt.xlabel("Gear Ratio (:1)")
    plt.ylabel("Time to Goal (s)")
    plt.title("Gear Ratio vs. Time to Goal")
    plt.legend()
    plt.grid(True, which='both')
    plt.tight_layout()
    plt.savefig(out_dir / "ratio_vs_time.png")
    plt.close()


def plot_current_limit_sweep(limits, times, sags, label, color, out_dir):
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(limits, times, color=color, marker='o', label=f"{label} time to goal")
    ax.set_xlabel("Stator Current Limit (A)")
    ax.set_ylabel("Time to Goal (s)")
    ax.grid(True, which='both')
    ax2 = ax.twinx()
    ax2.plot(limits, sags, color="gray", ls="--", marker='x', label=f"{label} battery sag")
    ax2.set_ylabel("Battery Sag (V)")
    handles = ax.get_legend_handles_labels()[0] + ax2.get_legend_handles_labels()[0]
    ax.legend(handles, [h.get_label() for h in handles], loc="upper center")
    ax.set_title("Current Limit vs. Time to Goal and Battery Sag")
    plt.tight_layout()
    plt.savefig(out_dir / "current_limit_sweep.png")
    plt.close(fig)


def plot_ratio_current_surface(R, L, Z, label, out_dir, fname):
    fig = plt.figure(figsize=(10, 8))
    ax = fig.add_subplot(111, projection='3d')
    surf = ax.plot_surface(R, L, Z, cmap='viridis', edgecolor='none', alpha=0.9)
    ax.set_xlabel('Gear Ratio (:1)')
    ax.set_ylabel('Stator Limit (A)')
    ax.set_zlabel('Time to Goal (s)')
    ax.set_title(f'Time to Goal vs Ratio and Current Limit ({label})')
    fig.colorbar(surf, shrink=0.5, aspect=5)
    plt.tight_layout()
    plt.savefig(out_dir / fname)
    plt.close(fig)


def plot_linear_trace(mechanisms, simulators, out_dir):
    """Position, velocity and current vs. time for each linear mechanism."""
    fig, axes = plt.subplots(3, 1, figsize=(10, 9), sharex=True)
    for m, sim in zip(mechanisms, simulators):
        t, x, v, current, battery = sim.simulate_arrays()
        axes[0].plot(t, x, label=m.name, color=m.color, lw=2)
        axes[1].plot(t, v, label=m.name, color=m.color, lw=2)
        axes[2].plot(t, current, label=f"{m.name} current", color=m.color, lw=2)
        axes[0].axhline(m.travel_distance, color=m.color, ls=':', lw=1, alpha=0.7)
    axes[0].set_ylabel("Position (m)")
    axes[1].set_ylabel("Velocity (m/s)")
    axes[2].set_ylabel("Motor Current (A)")
    axes[2].set_xlabel("Time (s)")
    for ax in axes:
        ax.grid(True)
        ax.legend()
    axes[0].set_title("Exponential Profile: Linear Travel")
    plt.tight_layout()
    plt.savefig(out_dir / "linear_trace.png")
    plt.close(fig)


def plot_flywheel_spinup(mechanism, profile, exp_samples, out_dir):
    """Surface speed during spin-up, with the phase boundaries marked."""
    plt.figure(figsize=(10, 6))
    t = np.array([s.t for s in profile.samples])
    v = np.array([s.v for s in profile.samples])
    plt.plot(t, v, label=f"{mechanism.name} (phase profile)", color=mechanism.color, lw=2)
    if exp_samples:
        plt.plot(
            [s.time for s in exp_samples],
            [s.velocity for s in exp_samples],
            label=f"{mechanism.name} (exponential profile)",
            color="black", lw=1, ls="--",
        )
    for n, phase in ((1, profile.phase1), (2, profile.phase2), (3, profile.phase3)):
        if isinstance(phase, Phase) and phase.final.t <= t[-1]:
            plt.axvline(phase.final.t, color=mechanism.color, ls=':', lw=1, alpha=0.7)
            plt.text(phase.final.t, np.max(v) * 0.5, f"end {n}", rotation=90,
                     color=mechanism.color, ha="right", va="center")
    plt.axhline(mechanism.target_surface_speed, color="gray", ls="--", lw=1)
    plt.xlabel("Time (s)")
    plt.ylabel("Surface Speed (m/s)")
    plt.title(f"Flywheel Spin-up to {rad_s_to_rpm(mechanism.target_speed):.0f} rpm")
    plt.legend()
    plt.grid(True)
    plt.tight_layout()
    plt.savefig(out_dir / "flywheel_spinup.png")
    plt.close()


def plot_motor_ode(mechanism, results, out_dir):
    t = np.array([r.time for r in results])
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(t, [rad_s_to_rpm(r.velocity) for r in results], color=mechanism.color,
            lw=2, label="Motor speed")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Motor Speed (rpm)")
    ax.grid(True)
    ax2 = ax.twinx()
    ax2.plot(t, [r.stator_current for r in results], color="red", lw=1, label="Stator current")
    ax2.set_ylabel("Stator Current (A)")
    handles = ax.get_legend_handles_labels()[0] + ax2.get_legend_handles_labels()[0]
    ax.legend(handles, [h.get_label() for h in handles], loc="center right")
    ax.set_title(f"{mechanism.name}: RK4 Motor Simulation")
    plt.tight_layout()
    plt.savefig(out_dir / "motor_ode.png")
    plt.close(fig)


def plot_motor_table_bar(df, out_dir):
    fig, ax = plt.subplots(figsize=(10, 2 + 0.4 * len(df)))
    ind = np.arange(len(df))
    ax.barh(ind, df["Time to goal"], color="#1976D2")
    for idx, total in enumerate(df["Time to goal"]):
        ax.text(total * 1.01, idx, f"{total:.2f}s", va="center", ha="left", fontweight="bold")
    ax.set_yticks(ind)
    ax.set_yticklabels(df["Label"], fontsize=8)
    ax.invert_yaxis()
    ax.set_xlabel("Time to Goal (s)")
    ax.set_title("Motor Configuration Comparison")
    plt.tight_layout()
    plt.savefig(out_dir / "motor_table_time_to_goal.png")
    plt.close(fig)


def plot_motor_curves(label, curve, out_dir):
    speed = [rad_s_to_rpm(p.speed) for p in curve]
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(speed, [p.torque for p in curve], label="Torque (N m)", lw=2)
    ax.plot(speed, [p.stator_current / 10 for p in curve], label="Stator current (A/10)", lw=1)
    ax.plot(speed, [p.output_power / 100 for p in curve], label="Output power (W/100)", lw=1)
    ax.plot(speed, [p.efficiency for p in curve], label="Efficiency", lw=1, ls="--")
    ax.set_xlabel("Speed (rpm)")
    ax.set_title(f"{label} Current-Limited Motor Curve")
    ax.legend()
    ax.grid(True)
    plt.tight_layout()
    plt.savefig(out_dir / f"motor_curve_{label.replace(' ', '_')}.png")
    plt.close(fig)
