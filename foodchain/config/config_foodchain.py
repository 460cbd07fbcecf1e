"""
Configuration for the grass -> sheep -> wolf food chain.

`config_env` is the default 70x70 world. Ranges that depend on the world size
(movement, hunting radius) are scaled against a 50x50 baseline by
`create_config_env`, so smaller or larger worlds keep comparable dynamics.
"""
from __future__ import annotations

import copy
import json
import math
from pathlib import Path
from typing import Any, Dict, Optional


def create_config_env(width: int = 70, height: int = 70) -> Dict[str, Any]:
    total_cells = width * height
    world_scale = math.sqrt(total_cells) / 50  # relative to a 50x50 baseline
    sheep_movement = max(1, math.floor(2 * world_scale))
    wolf_movement = max(2, math.floor(8 * world_scale))
    wolf_hunting_radius = max(6, math.floor(8 * world_scale))

    return {
        "seed": 42,  # RNG seed (None for OS entropy)
        "debug_mode": False,  # Default for every verbose_* flag
        "verbose_deaths": False,  # Print every recorded death
        "verbose_hunting": False,  # Print kills
        "verbose_reproduction": False,  # Print matings, births, miscarriages and dropped offspring
        "verbose_oscillation": False,  # Print detected oscillation cycles
        "verbose_extinction": False,  # Print extinction events and their analysis
        # Grid and seeding
        "width": width,  # Grid width (cells)
        "height": height,  # Grid height (cells)
        "initial_grass_coverage": 0.8,  # Fraction of cells seeded with grass
        "initial_sheep_count": math.floor(total_cells * 0.025),  # 2.5% of cells
        "initial_wolf_count": math.floor(total_cells * 0.003),  # 0.3% of cells
        "empty_position_attempts": 100,  # Random draws when seeding an organism
        "grass": {
            "growth_rate": 0.08,  # Base chance per tick of a growth increment
            "growth_increment": 0.05,  # Density added by a successful growth roll
            "max_density": 1.0,  # Density cap per cell
            "consumption_rate": 0.6,  # Density a sheep removes per meal
            "spreading_radius": 1,  # Neighbourhood colonised by dense grass
            "spread_threshold": 0.8,  # Density at which grass starts to spread
            "spread_attempts": 3,  # Random neighbour draws per spreading grass
            "spread_density": 0.1,  # Density of freshly spread grass
            "seasonal_growth": True,  # Scale growth by season
            "seasonal_growth_modifier": {  # Growth multiplier per season
                "spring": 1.0,
                "summer": 0.15,
                "autumn": 0.8,
                "winter": 0.05,
            },
            "reproduction": {
                "min_density": 0.6,  # Minimum density to produce seeds
                "spread_radius": 2,  # How far seeds can land
                "spread_probability": 0.3,  # Chance per tick to produce seeds
                "spread_interval": 5,  # Ticks between two seedings of one plant
                "max_seeds_per_step": 3,  # Seeds produced per seeding tick
                "seed_viability": 0.7,  # Probability a seed takes root
                "seed_density": 0.1,  # Density of a rooted seed
                "placement_attempts": 10,  # Random landing spots tried per seed
            },
        },
        "sheep": {
            "movement_range": sheep_movement,  # Cells moved per tick (scaled)
            "hunger_threshold": 12,  # Ticks without food before a sheep forages
            "reproduction_rate": 0.16,  # Base mating success probability
            "lifespan": 100,  # Default maximum age (ticks)
            "energy_per_grass": 1.6,  # Energy per unit of grass consumed
            "energy_per_step": 0.025,  # Metabolic cost per tick
            "grazing_efficiency": 0.98,  # Initial grazing efficiency trait
            "initial_energy": 0.8,  # Energy of seeded sheep
            "initial_max_age": 20,  # Seeded sheep get an age in [0, initial_max_age)
            "max_energy": 2.0,  # Energy at which mating success saturates
            "flee_radius": 6,  # Wolf detection radius
            "forage_radius": 3,  # Grass search radius when hungry
            "move_attempts": 3,  # Retries for a random move onto a free cell
            "reproduction": {
                "min_age": 4,  # Sexual maturity
                "max_age": 80,  # Fertility decline age
                "min_energy": 0.35,  # Minimum energy to mate
                "cooldown_period": 6,  # Ticks between matings
                "gestation_period": 5,  # Ticks from mating to birth
                "energy_cost": 0.15,  # Total energy cost of one pregnancy
                "partner_proximity": 5,  # Mate search radius
                "litter_size_min": 2,  # Minimum offspring per birth
                "litter_size_max": 5,  # Maximum offspring per birth
                "inheritance_variation": 0.1,  # Trait variation in offspring
                "miscarriage_energy": 0.2,  # Energy floor below which a pregnancy aborts
                "birth_radius": 2,  # Search radius for an offspring's cell
                "newborn_energy": 0.6,  # Energy of a newborn
            },
        },
        "wolf": {
            "movement_range": wolf_movement,  # Cells moved per tick (scaled)
            "hunger_threshold": 50,  # Ticks without food before a wolf hunts
            "reproduction_rate": 0.15,  # Base mating success probability
            "lifespan": 200,  # Default maximum age (ticks)
            "energy_per_sheep": 5.0,  # Energy per kill
            "energy_per_step": 0.005,  # Metabolic cost per tick
            "hunting_radius": wolf_hunting_radius,  # Prey search radius when hungry (scaled)
            "hunting_skill": 0.8,  # Initial hunting skill trait
            "initial_energy": 0.9,  # Energy of seeded wolves
            "initial_max_age": 30,  # Seeded wolves get an age in [0, initial_max_age)
            "initial_alpha_count": 2,  # Seeded wolves flagged alpha
            "max_energy": 6.0,  # Energy at which mating success saturates
            "scout_hunger_fraction": 0.4,  # Hunger fraction at which scouting uses the full radius
            "scout_radius_factor": 0.7,  # Reduced scouting radius factor
            "scout_max_move": 4,  # Cells moved per tick while scouting
            "move_attempts": 3,  # Retries for a random move onto a free cell
            "reproduction": {
                "min_age": 10,  # Sexual maturity
                "max_age": 150,  # Fertility decline age
                "min_energy": 0.10,  # Minimum energy to mate
                "cooldown_period": 12,  # Ticks between matings
                "gestation_period": 10,  # Ticks from mating to birth
                "energy_cost": 0.15,  # Total energy cost of one pregnancy
                "territory_radius": 8,  # Mate search radius
                "litter_size_min": 2,  # Minimum offspring per birth
                "litter_size_max": 4,  # Maximum offspring per birth
                "alpha_breeding_only": False,  # Restrict breeding to the alpha pair
                "inheritance_variation": 0.15,  # Trait variation in offspring
                "miscarriage_energy": 0.2,  # Energy floor below which a pregnancy aborts
                "birth_radius": 2,  # Search radius for an offspring's cell
                "newborn_energy": 0.6,  # Energy of a newborn
            },
        },
        "world": {
            "enable_seasons": True,  # Cycle spring/summer/autumn/winter
            "season_length": 150,  # Ticks per season
            "base_temperature": 20.0,  # Temperature without seasonal offset
            "season_temperature_offset": {  # Added to base temperature per season
                "spring": 5.0,
                "summer": 15.0,
                "autumn": 5.0,
                "winter": -10.0,
            },
            "temperature_effect": 0.1,  # Growth change per degree from base temperature
            "death_ledger_capacity": 50,  # Death records kept in the ledger
            "death_context_radius": 5,  # Radius of the environmental snapshot on death
            "population_history_size": 1000,  # Population snapshots kept in statistics
        },
        "analysis": {
            "history_size": 100,  # Population records kept for trend analysis
            "trend_window": 5,  # Window compared against the previous window
            "trend_threshold": 0.1,  # Relative change classifying a trend
            "oscillation_window": 5,  # Records inspected for an oscillation trend
            "oscillation_threshold": 0.15,  # Relative change classifying an oscillation trend
            "min_cycle_duration": 3,  # Cycles must last longer than this
            "min_cycle_amplitude": 5,  # Cycles must swing more than this
            "near_extinction_floor": 10,  # Trough below which a recovery is near-extinction
            "max_cycles": 50,  # Oscillation cycles kept
            "alert_window": 20,  # Ticks an alert stays active
            "min_viable": {  # Population counted as fully sustainable
                "grass_fraction": 0.1,  # Fraction of grid cells
                "sheep": 50,
                "wolf": 10,
            },
        },
        "debug": {
            "pause_on_extinction": True,  # Pause the controller when a species dies out
            "check_invariants": True,  # Validate the grid after every tick
        },
    }


config_env = create_config_env()


def _deep_update(target: Dict[str, Any], overrides: Dict[str, Any], path: str = "") -> None:
    for key, value in overrides.items():
        if key not in target:
            raise ValueError(f"Unknown config key: {path}{key}")
        if isinstance(target[key], dict) and isinstance(value, dict):
            _deep_update(target[key], value, f"{path}{key}.")
        else:
            target[key] = value


def build_config(overrides: Optional[Dict[str, Any]] = None, base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Return a fresh config dict with nested overrides merged in.
    When the overrides change the grid size, size-dependent ranges are rescaled
    before the remaining overrides are applied.
    """
    overrides = copy.deepcopy(overrides) if overrides else {}
    if base is not None:
        cfg = copy.deepcopy(base)
    elif "width" in overrides or "height" in overrides:
        cfg = create_config_env(int(overrides.get("width", 70)), int(overrides.get("height", 70)))
    else:
        cfg = copy.deepcopy(config_env)
    _deep_update(cfg, overrides)
    return cfg


def load_config(path: str | Path) -> Dict[str, Any]:
    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return build_config(data)
