"""
Headless food chain run.

Usage:
    python -m foodchain.run_headless --steps 2000 --seed 7
    python -m foodchain.run_headless --config my_world.json --log-every 50

Prints one progress line every `log_every` ticks and an ecosystem summary
(health, oscillation cycles, extinction analysis) at the end.
"""
from __future__ import annotations

import argparse
from typing import Dict, List, Optional

from foodchain.config.config_foodchain import build_config, load_config
from foodchain.engine.simulation import FoodChainSimulation

# Edit these for quick runs without CLI arguments.
RUN_SETTINGS = {
    "steps": 1000,
    "log_every": 10,
    "seed": 1,
    "stop_on_extinction": True,
}

# Optional config overrides (leave empty to use config_env defaults).
CONFIG_OVERRIDES: Dict[str, object] = {
    # "width": 50,
    # "height": 50,
    # "sheep": {"reproduction_rate": 0.2},
}


def run_simulation(
    steps: int = 1000,
    log_every: int = 10,
    seed: Optional[int] = 1,
    config: Optional[dict] = None,
    stop_on_extinction: bool = True,
) -> Dict[str, List[float]]:
    cfg = build_config(base=config) if config is not None else build_config(CONFIG_OVERRIDES)
    cfg["debug"]["pause_on_extinction"] = stop_on_extinction
    sim = FoodChainSimulation(cfg, seed=seed)
    history: Dict[str, List[float]] = {"tick": [], "grass": [], "sheep": [], "wolf": []}

    sim.start()
    for step_idx in range(steps):
        if sim.is_paused():
            print(f"Stopped at t={sim.get_current_tick():04d}: extinction")
            break
        sim.step()
        stats = sim.world.statistics
        history["tick"].append(sim.get_current_tick())
        history["grass"].append(stats.grass_count)
        history["sheep"].append(stats.sheep_count)
        history["wolf"].append(stats.wolf_count)
        if log_every > 0 and (step_idx % log_every == 0 or step_idx == steps - 1):
            print(
                f"t={sim.get_current_tick():04d} grass={stats.grass_count:5d} sheep={stats.sheep_count:4d} "
                f"wolf={stats.wolf_count:3d} sheep_e={stats.average_sheep_energy:4.2f} "
                f"wolf_e={stats.average_wolf_energy:4.2f} deaths={stats.death_stats.total_deaths:5d} "
                f"season={sim.world.season.value}"
            )

    _print_summary(sim)
    return history


def _print_summary(sim: FoodChainSimulation) -> None:
    print("\nPopulation health")
    for health in sim.get_population_health():
        eta = f", extinction in ~{health.time_to_extinction} ticks" if health.time_to_extinction else ""
        print(
            f"  {health.species.value:5s} count={health.current_count:5d} trend={health.trend:10s} "
            f"score={health.health_score:5.1f}{eta}"
        )
        for factor in health.risk_factors:
            print(f"    - {factor}")

    oscillation = sim.get_oscillation_analysis()
    print(
        f"\nOscillation: {oscillation.total_cycles} cycles {oscillation.cycles_by_species}, "
        f"health={oscillation.oscillation_health}, stability={oscillation.stability_score:.1f}"
    )

    for alert in sim.get_active_alerts():
        print(f"[{alert.severity.upper()}] t={alert.tick} {alert.message}")

    analysis = sim.get_latest_extinction_analysis()
    if analysis is not None:
        result = analysis.cause_analysis
        print(f"\nExtinction of {analysis.species.value} at t={analysis.tick}: {result.primary_cause}")
        for factor in result.contributing_factors:
            print(f"  - {factor}")
        print(f"  confidence: {result.confidence:.2f}")
        print(f"  recommendation: {result.recommendation}")
        print(f"  prevention: {result.prevention_strategy}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the grass-sheep-wolf food chain without rendering.")
    parser.add_argument("--steps", type=int, default=RUN_SETTINGS["steps"], help="Ticks to simulate.")
    parser.add_argument("--log-every", type=int, default=RUN_SETTINGS["log_every"], help="Progress line interval.")
    parser.add_argument("--seed", type=int, default=RUN_SETTINGS["seed"], help="RNG seed.")
    parser.add_argument("--config", type=str, default=None, help="JSON file with config overrides.")
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Continue after a species goes extinct.",
    )
    args = parser.parse_args()

    config = load_config(args.config) if args.config else None
    run_simulation(
        steps=args.steps,
        log_every=args.log_every,
        seed=args.seed,
        config=config,
        stop_on_extinction=RUN_SETTINGS["stop_on_extinction"] and not args.keep_going,
    )


if __name__ == "__main__":
    main()
