"""
Per-tick behaviour pipeline.

One call to `process_step` runs, in this order:
Grass -> Sheep -> Wolves -> Reproduction -> Statistics -> Tick.
Each pass works on a snapshot of its organisms taken at the start of the pass,
so organisms born or killed during the pass are never processed twice.
"""
from __future__ import annotations

import math
from typing import List, Optional, Tuple

# external libraries
import numpy as np

from foodchain.engine.organisms import Animal, Grass, Season, Sheep, Species, Wolf, create_grass
from foodchain.engine.reproduction_processor import ReproductionProcessor
from foodchain.engine.world_grid import WorldCell, WorldGrid


def _sign(x: float) -> int:
    if x > 0:
        return 1
    if x < 0:
        return -1
    return 0


class StepProcessor:
    def __init__(
        self,
        world: WorldGrid,
        config: dict,
        rng: Optional[np.random.Generator] = None,
        reproduction_processor: Optional[ReproductionProcessor] = None,
    ):
        if config is None:
            raise ValueError("Step processor config must be provided explicitly.")
        self.world = world
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng(config.get("seed"))
        self.reproduction_processor = reproduction_processor or ReproductionProcessor(world, config, self.rng)
        self._in_step = False
        self._initialize_from_config()

    def _initialize_from_config(self) -> None:
        config = self.config
        self.debug_mode = config.get("debug_mode", False)
        self.verbose_hunting = config.get("verbose_hunting", self.debug_mode)
        self.check_invariants = config.get("debug", {}).get("check_invariants", True)

        grass_cfg = config["grass"]
        self.grass_growth_rate = grass_cfg.get("growth_rate", 0.08)
        self.grass_growth_increment = grass_cfg.get("growth_increment", 0.05)
        self.grass_max_density = grass_cfg.get("max_density", 1.0)
        self.grass_consumption_rate = grass_cfg.get("consumption_rate", 0.6)
        self.grass_spreading_radius = grass_cfg.get("spreading_radius", 1)
        self.grass_spread_threshold = grass_cfg.get("spread_threshold", 0.8)
        self.grass_spread_attempts = grass_cfg.get("spread_attempts", 3)
        self.grass_spread_density = grass_cfg.get("spread_density", 0.1)
        self.grass_seasonal_growth = grass_cfg.get("seasonal_growth", True)
        self.grass_seasonal_modifier = grass_cfg.get("seasonal_growth_modifier", {})

        world_cfg = config.get("world", {})
        self.temperature_effect = world_cfg.get("temperature_effect", 0.1)
        self.base_temperature = world_cfg.get("base_temperature", 20.0)

        sheep_cfg = config["sheep"]
        self.sheep_movement_range = sheep_cfg.get("movement_range", 1)
        self.sheep_hunger_threshold = sheep_cfg.get("hunger_threshold", 12)
        self.sheep_energy_per_step = sheep_cfg.get("energy_per_step", 0.025)
        self.sheep_energy_per_grass = sheep_cfg.get("energy_per_grass", 1.6)
        self.sheep_flee_radius = sheep_cfg.get("flee_radius", 6)
        self.sheep_forage_radius = sheep_cfg.get("forage_radius", 3)
        self.sheep_move_attempts = sheep_cfg.get("move_attempts", 3)

        wolf_cfg = config["wolf"]
        self.wolf_movement_range = wolf_cfg.get("movement_range", 2)
        self.wolf_hunger_threshold = wolf_cfg.get("hunger_threshold", 50)
        self.wolf_energy_per_step = wolf_cfg.get("energy_per_step", 0.005)
        self.wolf_energy_per_sheep = wolf_cfg.get("energy_per_sheep", 5.0)
        self.wolf_hunting_radius = wolf_cfg.get("hunting_radius", 6)
        self.wolf_scout_hunger_fraction = wolf_cfg.get("scout_hunger_fraction", 0.4)
        self.wolf_scout_radius_factor = wolf_cfg.get("scout_radius_factor", 0.7)
        self.wolf_scout_max_move = wolf_cfg.get("scout_max_move", 4)
        self.wolf_move_attempts = wolf_cfg.get("move_attempts", 3)

    def process_step(self) -> None:
        if self._in_step:
            raise RuntimeError("process_step called while a tick is already running")
        self._in_step = True
        try:
            self._process_grass()
            self._process_sheep()
            self._process_wolves()
            self.reproduction_processor.process_reproduction()
            self.world.update_statistics()
            self.world.increment_tick()
            self.world.record_population_snapshot()
            if self.check_invariants:
                self.world.check_invariants()
        finally:
            self._in_step = False

    # -------------------------------------------------------------------------
    # Grass
    # -------------------------------------------------------------------------
    def _seasonal_growth_modifier(self, season: Season) -> float:
        if not self.grass_seasonal_growth or not self.world.enable_seasons:
            return 1.0
        return self.grass_seasonal_modifier.get(season.value, 1.0)

    def _process_grass(self) -> None:
        grass = self.world.get_organisms_by_type(Species.GRASS)
        if not grass:
            return
        for g in grass:
            g.age += 1

        temperature_modifier = 1 + self.temperature_effect * (self.world.temperature - self.base_temperature)
        growth_chance = self.grass_growth_rate * self._seasonal_growth_modifier(self.world.season) * temperature_modifier
        for g in grass:
            if not g.is_alive or g.density >= self.grass_max_density:
                continue
            if self.rng.random() < growth_chance:
                g.density = min(g.density + self.grass_growth_increment, self.grass_max_density)
                g.energy = g.density

        for g in grass:
            if g.is_alive and g.density >= self.grass_spread_threshold:
                self._spread_grass(g)

    def _spread_grass(self, grass: Grass) -> None:
        radius = self.grass_spreading_radius
        for _ in range(self.grass_spread_attempts):
            x = grass.x + int(self.rng.integers(-radius, radius + 1))
            y = grass.y + int(self.rng.integers(-radius, radius + 1))
            cell = self.world.get_cell(x, y)
            if cell is not None and cell.grass is None:
                new_grass = create_grass(
                    self.world.next_organism_id(Species.GRASS), x, y, self.grass_spread_density, self.world.current_tick
                )
                self.world.place_organism(new_grass)
                return

    # -------------------------------------------------------------------------
    # Shared animal helpers
    # -------------------------------------------------------------------------
    @staticmethod
    def _metabolize(animal: Animal, energy_per_step: float) -> None:
        animal.age += 1
        animal.hunger += 1
        if animal.reproduction_cooldown > 0:
            animal.reproduction_cooldown -= 1
        animal.energy -= energy_per_step

    @staticmethod
    def _death_cause(animal: Animal, hunger_threshold: int) -> Tuple[Optional[str], str]:
        # Fixed order: age, starvation, hunger. Only the first match is recorded.
        if animal.age >= animal.max_lifespan:
            return "age", f"Reached max age of {animal.max_lifespan}"
        if animal.energy <= 0:
            return "starvation", f"Energy depleted ({animal.energy:.2f})"
        if animal.hunger >= hunger_threshold * 2:
            return "hunger", f"Hunger threshold exceeded ({animal.hunger}/{hunger_threshold * 2})"
        return None, ""

    def _cull(self, animals: List[Animal], hunger_threshold: int) -> List[Animal]:
        survivors = []
        for animal in animals:
            if not animal.is_alive:
                continue
            cause, details = self._death_cause(animal, hunger_threshold)
            if cause is None:
                survivors.append(animal)
                continue
            animal.is_alive = False
            self.world.remove_organism(animal)
            self.world.record_death(animal, cause, details)
        return survivors

    def _target_is_free(self, animal: Animal, cell: Optional[WorldCell]) -> bool:
        if cell is None:
            return False
        if animal.species is Species.SHEEP:
            return cell.is_free_for_animals()
        return cell.wolf is None

    def _try_move(self, animal: Animal, x: int, y: int) -> bool:
        if not self._target_is_free(animal, self.world.get_cell(x, y)):
            return False
        return self.world.move_organism(animal, x, y)

    def _random_move(self, animal: Animal, movement_range: int, attempts: int) -> bool:
        for _ in range(attempts):
            dx = int(self.rng.integers(-movement_range, movement_range + 1))
            dy = int(self.rng.integers(-movement_range, movement_range + 1))
            if self._try_move(animal, animal.x + dx, animal.y + dy):
                return True
        return False

    # -------------------------------------------------------------------------
    # Sheep
    # -------------------------------------------------------------------------
    def _process_sheep(self) -> None:
        sheep = self.world.get_organisms_by_type(Species.SHEEP)
        if not sheep:
            return
        for s in sheep:
            self._metabolize(s, self.sheep_energy_per_step)
        for s in self._cull(sheep, self.sheep_hunger_threshold):
            if s.is_alive:
                self._act_sheep(s)

    def _act_sheep(self, sheep: Sheep) -> None:
        threat = self.world.find_nearby(sheep.x, sheep.y, self.sheep_flee_radius, Species.WOLF)
        if threat is not None:
            reach = self.sheep_movement_range
            x = sheep.x + _sign(sheep.x - threat.x) * reach
            y = sheep.y + _sign(sheep.y - threat.y) * reach
            if self._try_move(sheep, x, y):
                return

        if sheep.hunger >= self.sheep_hunger_threshold:
            cell = self.world.get_cell(sheep.x, sheep.y)
            if cell.grass is not None and cell.grass.density > 0:
                self._graze(sheep, cell.grass)
                return
            grass = self.world.find_nearby(sheep.x, sheep.y, self.sheep_forage_radius, Species.GRASS)
            if grass is not None:
                x = sheep.x + _sign(grass.x - sheep.x)
                y = sheep.y + _sign(grass.y - sheep.y)
                if self._try_move(sheep, x, y):
                    return

        self._random_move(sheep, self.sheep_movement_range, self.sheep_move_attempts)

    def _graze(self, sheep: Sheep, grass: Grass) -> None:
        consumed = min(self.grass_consumption_rate, grass.density)
        grass.density -= consumed
        grass.energy = grass.density
        grass.last_grazed = self.world.current_tick
        sheep.energy += consumed * self.sheep_energy_per_grass
        sheep.hunger = 0
        if grass.density <= 0:
            grass.is_alive = False
            self.world.remove_organism(grass)
            self.world.record_death(grass, "grazing", f"Grazed by sheep {sheep.id}")

    # -------------------------------------------------------------------------
    # Wolves
    # -------------------------------------------------------------------------
    def _process_wolves(self) -> None:
        wolves = self.world.get_organisms_by_type(Species.WOLF)
        if not wolves:
            return
        for w in wolves:
            self._metabolize(w, self.wolf_energy_per_step)
        for w in self._cull(wolves, self.wolf_hunger_threshold):
            if not w.is_alive:
                continue
            if w.hunger >= self.wolf_hunger_threshold and self._hunt(w):
                continue
            self._scout(w)

    def _hunt(self, wolf: Wolf) -> bool:
        """Chase or eat the first sheep in the hunting radius. False when none is in range."""
        target = self.world.find_nearby(wolf.x, wolf.y, self.wolf_hunting_radius, Species.SHEEP)
        if target is None:
            wolf.hunting_target = None
            return False
        wolf.hunting_target = target.id

        dx, dy = target.x - wolf.x, target.y - wolf.y
        if math.hypot(dx, dy) <= 1:
            self._eat_sheep(wolf, target)
            return True

        # Close in on the orthogonal neighbour of the target along the longer axis.
        if abs(dx) >= abs(dy):
            goal_x, goal_y = target.x - _sign(dx), target.y
        else:
            goal_x, goal_y = target.x, target.y - _sign(dy)
        gx, gy = goal_x - wolf.x, goal_y - wolf.y
        step_x = _sign(gx) * min(self.wolf_movement_range, abs(gx))
        step_y = _sign(gy) * min(self.wolf_movement_range, abs(gy))
        if not self._try_move(wolf, wolf.x + step_x, wolf.y + step_y):
            self._try_move(wolf, wolf.x + _sign(gx), wolf.y + _sign(gy))
        return True

    def _eat_sheep(self, wolf: Wolf, sheep: Sheep) -> None:
        if self.verbose_hunting:
            print(
                f"[Hunt] t={self.world.current_tick} {wolf.id} caught {sheep.id} "
                f"(energy: {wolf.energy:.2f} -> {wolf.energy + self.wolf_energy_per_sheep:.2f}, hunger: {wolf.hunger} -> 0)"
            )
        sheep.is_alive = False
        self.world.remove_organism(sheep)
        self.world.record_death(sheep, "hunting", f"Hunted by wolf {wolf.id}")
        wolf.energy += self.wolf_energy_per_sheep
        wolf.hunger = 0
        wolf.hunting_target = None

    def _scout(self, wolf: Wolf) -> None:
        if wolf.hunger >= self.wolf_hunger_threshold * self.wolf_scout_hunger_fraction:
            radius = self.wolf_hunting_radius
        else:
            radius = math.floor(self.wolf_hunting_radius * self.wolf_scout_radius_factor)
        target = self.world.find_nearby(wolf.x, wolf.y, radius, Species.SHEEP)
        if target is not None:
            reach = min(self.wolf_scout_max_move, self.wolf_movement_range)
            x = wolf.x + _sign(target.x - wolf.x) * reach
            y = wolf.y + _sign(target.y - wolf.y) * reach
            if self._try_move(wolf, x, y):
                return
        self._random_move(wolf, self.wolf_movement_range, self.wolf_move_attempts)
