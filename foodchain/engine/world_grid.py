"""
WorldGrid: the single owned store of simulation state.

Cells live in a flat list indexed by `y * width + x`. Each cell holds at most
one grass, one sheep and one wolf at the same time. Besides the cells the grid
owns the tick counter, season and temperature, aggregate statistics and the
death ledger. Out-of-range coordinates never raise; they return None/False.
"""
from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

# external libraries
import numpy as np

from foodchain.engine.organisms import (
    SEASON_ORDER,
    Animal,
    Grass,
    Organism,
    Season,
    Sheep,
    Species,
    Wolf,
    direction_from_delta,
)
from foodchain.engine.records import (
    DeathRecord,
    DeathStatistics,
    EnvironmentalContext,
    ExtinctionEvent,
    PopulationSnapshot,
    ReproductionSnapshot,
    SimulationStatistics,
)


class SimulationInvariantError(RuntimeError):
    """Raised at a tick boundary when the grid state is corrupt."""


@dataclass
class WorldCell:
    x: int
    y: int
    temperature: float = 20.0
    season: Season = Season.SPRING
    grass: Optional[Grass] = None
    sheep: Optional[Sheep] = None
    wolf: Optional[Wolf] = None

    def get(self, species: Species) -> Optional[Organism]:
        return getattr(self, species.value)

    def is_free_for_animals(self) -> bool:
        return self.sheep is None and self.wolf is None


class WorldGrid:
    def __init__(self, config: dict):
        if config is None:
            raise ValueError("World config must be provided explicitly.")
        self.config = config
        self.width = int(config.get("width", 70))
        self.height = int(config.get("height", 70))
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Grid size must be positive, got {self.width}x{self.height}")

        world_cfg = config.get("world", {})
        self.enable_seasons = world_cfg.get("enable_seasons", True)
        self.season_length = int(world_cfg.get("season_length", 150))
        if self.season_length <= 0:
            raise ValueError(f"season_length must be positive, got {self.season_length}")
        self.base_temperature = float(world_cfg.get("base_temperature", 20.0))
        self.season_offsets = {
            Season(name): float(offset)
            for name, offset in world_cfg.get(
                "season_temperature_offset", {"spring": 5.0, "summer": 15.0, "autumn": 5.0, "winter": -10.0}
            ).items()
        }
        self.death_context_radius = int(world_cfg.get("death_context_radius", 5))
        ledger_capacity = int(world_cfg.get("death_ledger_capacity", 50))
        history_size = int(world_cfg.get("population_history_size", 1000))

        self.debug_mode = config.get("debug_mode", False)
        self.verbose_deaths = config.get("verbose_deaths", self.debug_mode)

        self.cells: List[WorldCell] = [WorldCell(x, y) for y in range(self.height) for x in range(self.width)]
        self.current_tick = 0
        self.season = Season.SPRING
        self.temperature = self.base_temperature
        self.statistics = SimulationStatistics(
            death_stats=DeathStatistics(capacity=ledger_capacity),
            population_history=deque(maxlen=history_size),
        )
        self._id_counters: Dict[Species, int] = {species: 0 for species in Species}
        self._update_climate()

    # -------------------------------------------------------------------------
    # Cells
    # -------------------------------------------------------------------------
    def is_valid_position(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_cell(self, x: int, y: int) -> Optional[WorldCell]:
        if not self.is_valid_position(x, y):
            return None
        return self.cells[y * self.width + x]

    def set_cell_content(
        self,
        x: int,
        y: int,
        grass: Optional[Grass] = None,
        sheep: Optional[Sheep] = None,
        wolf: Optional[Wolf] = None,
        temperature: Optional[float] = None,
        season: Optional[Season] = None,
    ) -> bool:
        """Merge the given references into a cell; omitted species are left untouched."""
        cell = self.get_cell(x, y)
        if cell is None:
            return False
        if grass is not None:
            cell.grass = grass
        if sheep is not None:
            cell.sheep = sheep
        if wolf is not None:
            cell.wolf = wolf
        if temperature is not None:
            cell.temperature = temperature
        if season is not None:
            cell.season = season
        return True

    def clear_cell_content(self, x: int, y: int, species: Optional[Species] = None) -> bool:
        cell = self.get_cell(x, y)
        if cell is None:
            return False
        if species is None:
            cell.grass = cell.sheep = cell.wolf = None
        else:
            setattr(cell, species.value, None)
        return True

    def place_organism(self, organism: Organism) -> bool:
        """Seeding entry point: False for out-of-range or same-species-occupied cells."""
        cell = self.get_cell(organism.x, organism.y)
        if cell is None or cell.get(organism.species) is not None:
            return False
        setattr(cell, organism.species.value, organism)
        return True

    def remove_organism(self, organism: Organism) -> None:
        cell = self.get_cell(organism.x, organism.y)
        if cell is not None and cell.get(organism.species) is organism:
            setattr(cell, organism.species.value, None)

    def move_organism(self, organism: Animal, x: int, y: int) -> bool:
        target = self.get_cell(x, y)
        if target is None or target.get(organism.species) is not None:
            return False
        dx, dy = x - organism.x, y - organism.y
        self.remove_organism(organism)
        organism.x, organism.y = x, y
        setattr(target, organism.species.value, organism)
        direction = direction_from_delta(dx, dy)
        if direction is not None:
            organism.last_direction = direction
        return True

    def get_organisms_by_type(self, species: Species) -> List[Organism]:
        attr = species.value
        return [getattr(cell, attr) for cell in self.cells if getattr(cell, attr) is not None]

    def iter_cells_around(self, x: int, y: int, radius: int) -> Iterator[WorldCell]:
        """In-bounds cells of the square window around (x, y), in raster order."""
        for ny in range(max(0, y - radius), min(self.height, y + radius + 1)):
            row = ny * self.width
            for nx in range(max(0, x - radius), min(self.width, x + radius + 1)):
                yield self.cells[row + nx]

    def find_nearby(
        self,
        x: int,
        y: int,
        radius: int,
        species: Species,
        predicate: Optional[Callable[[Organism], bool]] = None,
    ) -> Optional[Organism]:
        """First organism of `species` in the window, raster order, no distance sort."""
        attr = species.value
        for cell in self.iter_cells_around(x, y, radius):
            organism = getattr(cell, attr)
            if organism is not None and (predicate is None or predicate(organism)):
                return organism
        return None

    def find_nearby_empty_cell(self, x: int, y: int, radius: int) -> Optional[WorldCell]:
        """Closest cell by Manhattan ring that holds neither a sheep nor a wolf."""
        for r in range(1, radius + 1):
            for dx in range(-r, r + 1):
                for dy in range(-r, r + 1):
                    if abs(dx) + abs(dy) != r:
                        continue
                    cell = self.get_cell(x + dx, y + dy)
                    if cell is not None and cell.is_free_for_animals():
                        return cell
        return None

    def next_organism_id(self, species: Species) -> str:
        self._id_counters[species] += 1
        return f"{species.value}_{self._id_counters[species]}"

    # -------------------------------------------------------------------------
    # Time
    # -------------------------------------------------------------------------
    def season_for_tick(self, tick: int) -> Season:
        if not self.enable_seasons:
            return Season.SPRING
        return SEASON_ORDER[(tick % (4 * self.season_length)) // self.season_length]

    def _update_climate(self) -> None:
        self.season = self.season_for_tick(self.current_tick)
        offset = self.season_offsets.get(self.season, 0.0) if self.enable_seasons else 0.0
        self.temperature = self.base_temperature + offset
        for cell in self.cells:
            cell.season = self.season
            cell.temperature = self.temperature

    def increment_tick(self) -> None:
        self.current_tick += 1
        self.statistics.total_ticks += 1
        self._update_climate()

    # -------------------------------------------------------------------------
    # Death ledger and statistics
    # -------------------------------------------------------------------------
    def _environmental_context(self, organism: Organism) -> EnvironmentalContext:
        nearby_prey = nearby_predators = 0
        grass_total = 0.0
        grass_cells = 0
        for cell in self.iter_cells_around(organism.x, organism.y, self.death_context_radius):
            if cell.grass is not None:
                grass_total += cell.grass.density
                grass_cells += 1
            if organism.species is Species.WOLF and cell.sheep is not None:
                nearby_prey += 1
            elif organism.species is Species.SHEEP and cell.wolf is not None:
                nearby_predators += 1
        return EnvironmentalContext(
            nearby_prey=nearby_prey,
            nearby_predators=nearby_predators,
            local_grass_density=grass_total / grass_cells if grass_cells else 0.0,
            temperature=self.temperature,
            season=self.season,
        )

    def _make_death_record(self, organism: Organism, cause: str, details: str) -> DeathRecord:
        reproduction = None
        if isinstance(organism, Animal):
            reproduction = ReproductionSnapshot(
                is_pregnant=organism.reproduction_state.is_pregnant,
                cooldown_remaining=organism.reproduction_cooldown,
            )
        return DeathRecord(
            organism_id=organism.id,
            organism_type=organism.species,
            cause=cause,
            tick=self.current_tick,
            energy=organism.energy,
            age=organism.age,
            x=organism.x,
            y=organism.y,
            details=details,
            population_at_death={
                "grass": self.statistics.grass_count,
                "sheep": self.statistics.sheep_count,
                "wolf": self.statistics.wolf_count,
            },
            environment=self._environmental_context(organism),
            reproduction=reproduction,
        )

    def record_death(self, organism: Organism, cause: str, details: str = "") -> DeathRecord:
        record = self._make_death_record(organism, cause, details)
        self.statistics.death_stats.add(record)
        if self.verbose_deaths:
            print(
                f"[Death] t={self.current_tick} {organism.species.value} {organism.id} died of {cause} "
                f"(energy: {organism.energy:.2f}, age: {organism.age}) {details}"
            )
        return record

    def record_pregnancy_loss(self, parent: Animal, details: str = "") -> DeathRecord:
        """Ledger entry against a pregnancy; the parent itself stays alive."""
        record = self._make_death_record(parent, "starvation", details)
        record.organism_id = f"{parent.id}/pregnancy"
        record.pregnancy_loss = True
        self.statistics.death_stats.add(record)
        if self.verbose_deaths:
            print(f"[Death] t={self.current_tick} pregnancy of {parent.id} lost ({details})")
        return record

    def record_birth(self, species: Species) -> None:
        births = self.statistics.births_by_type
        births[species.value] = births.get(species.value, 0) + 1

    def update_statistics(self) -> None:
        grass_count = sheep_count = wolf_count = 0
        grass_density = sheep_energy = wolf_energy = 0.0
        for cell in self.cells:
            if cell.grass is not None:
                grass_count += 1
                grass_density += cell.grass.density
            if cell.sheep is not None:
                sheep_count += 1
                sheep_energy += cell.sheep.energy
            if cell.wolf is not None:
                wolf_count += 1
                wolf_energy += cell.wolf.energy
        stats = self.statistics
        stats.grass_count = grass_count
        stats.sheep_count = sheep_count
        stats.wolf_count = wolf_count
        stats.total_energy = grass_density + sheep_energy + wolf_energy
        stats.average_grass_density = grass_density / grass_count if grass_count else 0.0
        stats.average_sheep_energy = sheep_energy / sheep_count if sheep_count else 0.0
        stats.average_wolf_energy = wolf_energy / wolf_count if wolf_count else 0.0

    def record_population_snapshot(self) -> PopulationSnapshot:
        stats = self.statistics
        snapshot = PopulationSnapshot(
            tick=self.current_tick,
            grass_count=stats.grass_count,
            sheep_count=stats.sheep_count,
            wolf_count=stats.wolf_count,
            average_sheep_energy=stats.average_sheep_energy,
            average_wolf_energy=stats.average_wolf_energy,
        )
        stats.population_history.append(snapshot)
        return snapshot

    def has_extinction_event(self, species: Species) -> bool:
        return any(event.species is species for event in self.statistics.extinction_events)

    def add_extinction_event(self, species: Species, cause: str) -> ExtinctionEvent:
        event = ExtinctionEvent(species=species, tick=self.current_tick, cause=cause)
        self.statistics.extinction_events.append(event)
        return event

    def get_statistics(self) -> SimulationStatistics:
        return copy.deepcopy(self.statistics)

    def get_death_statistics(self) -> DeathStatistics:
        return copy.deepcopy(self.statistics.death_stats)

    def grid_world_state(self) -> np.ndarray:
        """
        Channels (C, W, H):
        0: grass density
        1: sheep energy
        2: wolf energy
        """
        state = np.zeros((3, self.width, self.height), dtype=np.float32)
        for cell in self.cells:
            if cell.grass is not None:
                state[0, cell.x, cell.y] = cell.grass.density
            if cell.sheep is not None:
                state[1, cell.x, cell.y] = cell.sheep.energy
            if cell.wolf is not None:
                state[2, cell.x, cell.y] = cell.wolf.energy
        return state

    def check_invariants(self) -> None:
        seen = set()
        for index, cell in enumerate(self.cells):
            if index != cell.y * self.width + cell.x:
                raise SimulationInvariantError(f"Cell ({cell.x}, {cell.y}) stored at index {index}")
            for species in Species:
                organism = cell.get(species)
                if organism is None:
                    continue
                if organism.species is not species:
                    raise SimulationInvariantError(
                        f"{organism.id} tagged {organism.species.value} stored in {species.value} slot"
                    )
                if not organism.is_alive:
                    raise SimulationInvariantError(f"Dead organism {organism.id} still on the grid")
                if (organism.x, organism.y) != (cell.x, cell.y):
                    raise SimulationInvariantError(
                        f"{organism.id} at ({organism.x}, {organism.y}) stored in cell ({cell.x}, {cell.y})"
                    )
                if id(organism) in seen:
                    raise SimulationInvariantError(f"{organism.id} occupies more than one cell")
                seen.add(id(organism))
                if isinstance(organism, Animal):
                    state = organism.reproduction_state
                    if state.is_pregnant and (state.gestation_remaining < 0 or state.expected_litter_size < 1):
                        raise SimulationInvariantError(f"{organism.id} has a broken pregnancy {state}")
