"""
Reproduction for the food chain.

Sheep and wolves follow the same state machine:
    Idle -> Pregnant -> (Birth | Miscarriage) -> Idle (cooldown)
Wolves only pair up inside their pack ("lone" for wolves without one).
Grass reproduces asexually by scattering seeds around dense, mature plants.
"""
from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, List, Optional, Set

# external libraries
import numpy as np

from foodchain.engine.organisms import (
    Animal,
    Grass,
    GrowthStage,
    PackRole,
    Sheep,
    Species,
    Wolf,
    create_grass,
    create_sheep,
    create_wolf,
)
from foodchain.engine.world_grid import WorldGrid


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class ReproductionProcessor:
    def __init__(self, world: WorldGrid, config: dict, rng: Optional[np.random.Generator] = None):
        if config is None:
            raise ValueError("Reproduction config must be provided explicitly.")
        self.world = world
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng(config.get("seed"))
        self.debug_mode = config.get("debug_mode", False)
        self.verbose_reproduction = config.get("verbose_reproduction", self.debug_mode)
        self._mated_this_tick: Set[str] = set()

    def process_reproduction(self) -> None:
        tick = self.world.current_tick
        self._mated_this_tick = set()
        self._process_sheep(tick)
        self._process_wolves(tick)
        self._process_grass(tick)

    # -------------------------------------------------------------------------
    # Eligibility and mating
    # -------------------------------------------------------------------------
    def can_reproduce(self, animal: Animal, tick: int) -> bool:
        cfg = self.config[animal.species.value]["reproduction"]
        state = animal.reproduction_state
        if not animal.is_alive or state.is_pregnant or animal.id in self._mated_this_tick:
            return False
        if not cfg["min_age"] <= animal.age <= cfg["max_age"]:
            return False
        if animal.energy < cfg["min_energy"]:
            return False
        return state.last_mating_tick is None or tick - state.last_mating_tick >= cfg["cooldown_period"]

    def mating_probability(self, first: Animal, second: Animal) -> float:
        """Base rate scaled by the squared average parent energy relative to max_energy."""
        species_cfg = self.config[first.species.value]
        max_energy = species_cfg.get("max_energy", 1.0)
        energy_ratio = clamp((first.energy + second.energy) / 2 / max_energy, 0.0, 1.0)
        return species_cfg["reproduction_rate"] * energy_ratio**2

    def _find_mate(self, animal: Animal, radius: float, tick: int, group: Optional[str] = None) -> Optional[Animal]:
        def is_mate(other: Animal) -> bool:
            if other is animal or not self.can_reproduce(other, tick):
                return False
            if group is not None and self._pack_key(other) != group:
                return False
            return math.hypot(other.x - animal.x, other.y - animal.y) <= radius

        return self.world.find_nearby(animal.x, animal.y, math.ceil(radius), animal.species, is_mate)

    def _try_mating(self, first: Animal, second: Animal, tick: int) -> bool:
        if self.rng.random() >= self.mating_probability(first, second):
            return False
        cfg = self.config[first.species.value]["reproduction"]
        carrier, mate = (first, second) if self.rng.random() < 0.5 else (second, first)
        litter_size = int(self.rng.integers(cfg["litter_size_min"], cfg["litter_size_max"] + 1))

        state = carrier.reproduction_state
        state.is_pregnant = True
        state.gestation_remaining = cfg["gestation_period"]
        state.expected_litter_size = litter_size
        state.pregnancy_energy_cost = cfg["energy_cost"] / cfg["gestation_period"]
        state.mate_id = mate.id
        state.last_mating_tick = tick
        mate.reproduction_state.last_mating_tick = tick
        self._mated_this_tick.update((carrier.id, mate.id))

        if self.verbose_reproduction:
            print(f"[Mating] t={tick} {carrier.id} is pregnant by {mate.id} ({litter_size} offspring expected)")
        return True

    # -------------------------------------------------------------------------
    # Pregnancy and birth
    # -------------------------------------------------------------------------
    def _process_pregnancy(self, parent: Animal, tick: int) -> None:
        cfg = self.config[parent.species.value]["reproduction"]
        state = parent.reproduction_state
        parent.energy -= state.pregnancy_energy_cost
        if parent.energy <= cfg.get("miscarriage_energy", 0.2):
            self.world.record_pregnancy_loss(parent, "Miscarriage due to low energy")
            if self.verbose_reproduction:
                print(f"[Miscarriage] t={tick} {parent.id} lost its litter (energy: {parent.energy:.2f})")
            state.reset()
            return
        state.gestation_remaining -= 1
        if state.gestation_remaining <= 0:
            self._give_birth(parent, tick)

    def _give_birth(self, parent: Animal, tick: int) -> List[Animal]:
        cfg = self.config[parent.species.value]["reproduction"]
        state = parent.reproduction_state
        offspring = []
        for _ in range(state.expected_litter_size):
            child = self._create_offspring(parent, cfg)
            if child is None:
                # Placement failure drops the offspring.
                if self.verbose_reproduction:
                    print(f"[Birth] t={tick} no space for offspring of {parent.id}")
                continue
            offspring.append(child)
            self.world.record_birth(parent.species)
            if self.verbose_reproduction:
                print(f"[Birth] t={tick} {parent.id} gave birth to {child.id} at ({child.x}, {child.y})")
        state.reset()
        state.last_mating_tick = tick
        parent.reproduction_cooldown = cfg["cooldown_period"]
        return offspring

    def vary_trait(self, base_value: float, variation: float) -> float:
        change = (self.rng.random() - 0.5) * 2 * variation
        return clamp(base_value + change, 0.1, 1.0)

    def _create_offspring(self, parent: Animal, cfg: dict) -> Optional[Animal]:
        cell = self.world.find_nearby_empty_cell(parent.x, parent.y, cfg.get("birth_radius", 2))
        if cell is None:
            return None
        variation = cfg["inheritance_variation"]
        lifespan_change = (self.rng.random() - 0.5) * variation
        attributes = {
            "energy": cfg.get("newborn_energy", 0.6),
            "energy_efficiency": self.vary_trait(parent.energy_efficiency, variation),
            "max_lifespan": max(1, math.floor(parent.max_lifespan * (1 + lifespan_change))),
        }
        child_id = self.world.next_organism_id(parent.species)
        if isinstance(parent, Sheep):
            attributes["grazing_efficiency"] = self.vary_trait(parent.grazing_efficiency, variation)
            attributes["flock_id"] = parent.flock_id
            child = create_sheep(child_id, cell.x, cell.y, self.config, **attributes)
        else:
            attributes["hunting_skill"] = self.vary_trait(parent.hunting_skill, variation)
            attributes["pack_id"] = parent.pack_id
            attributes["territory_id"] = parent.territory_id
            attributes["territory_center"] = parent.territory_center
            child = create_wolf(child_id, cell.x, cell.y, self.config, **attributes)
        self.world.place_organism(child)
        return child

    # -------------------------------------------------------------------------
    # Sheep
    # -------------------------------------------------------------------------
    def _process_sheep(self, tick: int) -> None:
        proximity = self.config["sheep"]["reproduction"]["partner_proximity"]
        for sheep in self.world.get_organisms_by_type(Species.SHEEP):
            if not sheep.is_alive or sheep.id in self._mated_this_tick:
                continue
            if sheep.reproduction_state.is_pregnant:
                self._process_pregnancy(sheep, tick)
            elif self.can_reproduce(sheep, tick):
                mate = self._find_mate(sheep, proximity, tick)
                if mate is not None:
                    self._try_mating(sheep, mate, tick)

    # -------------------------------------------------------------------------
    # Wolves
    # -------------------------------------------------------------------------
    @staticmethod
    def _pack_key(wolf: Wolf) -> str:
        return wolf.pack_id or "lone"

    def group_wolves_by_pack(self, wolves: List[Wolf]) -> Dict[str, List[Wolf]]:
        packs: Dict[str, List[Wolf]] = defaultdict(list)
        for wolf in wolves:
            packs[self._pack_key(wolf)].append(wolf)
        return dict(packs)

    def _process_wolves(self, tick: int) -> None:
        wolves = self.world.get_organisms_by_type(Species.WOLF)
        for wolf in wolves:
            if wolf.is_alive and wolf.reproduction_state.is_pregnant:
                self._process_pregnancy(wolf, tick)

        cfg = self.config["wolf"]["reproduction"]
        for pack_key, pack in self.group_wolves_by_pack(wolves).items():
            if cfg.get("alpha_breeding_only", False):
                alphas = [w for w in pack if w.pack_role is PackRole.ALPHA and w.is_alive]
                if len(alphas) >= 2 and self.can_reproduce(alphas[0], tick) and self.can_reproduce(alphas[1], tick):
                    self._try_mating(alphas[0], alphas[1], tick)
                continue
            for wolf in pack:
                if not self.can_reproduce(wolf, tick):
                    continue
                mate = self._find_mate(wolf, cfg["territory_radius"], tick, group=pack_key)
                if mate is not None:
                    self._try_mating(wolf, mate, tick)

    # -------------------------------------------------------------------------
    # Grass
    # -------------------------------------------------------------------------
    def _process_grass(self, tick: int) -> None:
        cfg = self.config["grass"]["reproduction"]
        for grass in self.world.get_organisms_by_type(Species.GRASS):
            if self._can_spread_seeds(grass, tick, cfg):
                self._spread_seeds(grass, tick, cfg)

    def _can_spread_seeds(self, grass: Grass, tick: int, cfg: dict) -> bool:
        return (
            grass.is_alive
            and grass.density >= cfg["min_density"]
            and grass.growth_stage is GrowthStage.MATURE
            and tick - grass.last_spread_tick >= cfg.get("spread_interval", 5)
            and self.rng.random() < cfg["spread_probability"]
        )

    def _spread_seeds(self, grass: Grass, tick: int, cfg: dict) -> None:
        for _ in range(cfg["max_seeds_per_step"]):
            if self.rng.random() >= cfg["seed_viability"]:
                continue
            location = self._find_seed_location(grass, cfg["spread_radius"], cfg.get("placement_attempts", 10))
            if location is None:
                continue
            seed = create_grass(
                self.world.next_organism_id(Species.GRASS), location[0], location[1], cfg.get("seed_density", 0.1), tick
            )
            self.world.place_organism(seed)
        grass.last_spread_tick = tick

    def _find_seed_location(self, grass: Grass, radius: float, attempts: int):
        for _ in range(attempts):
            angle = self.rng.random() * 2 * math.pi
            distance = self.rng.random() * radius
            x = math.floor(grass.x + math.cos(angle) * distance + 0.5)
            y = math.floor(grass.y + math.sin(angle) * distance + 0.5)
            cell = self.world.get_cell(x, y)
            if cell is not None and cell.grass is None:
                return x, y
        return None
