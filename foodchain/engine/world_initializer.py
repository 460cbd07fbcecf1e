from __future__ import annotations

from typing import Optional, Tuple

# external libraries
import numpy as np

from foodchain.engine.organisms import PackRole, Species, create_grass, create_sheep, create_wolf
from foodchain.engine.world_grid import WorldGrid


class WorldInitializer:
    """Seeds a world through `WorldGrid.place_organism`, drawing positions from the shared rng."""

    def __init__(self, config: dict, rng: Optional[np.random.Generator] = None):
        if config is None:
            raise ValueError("Initializer config must be provided explicitly.")
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng(config.get("seed"))
        self.max_attempts = config.get("empty_position_attempts", 100)

    def initialize_world(
        self,
        world: WorldGrid,
        grass_coverage: Optional[float] = None,
        sheep_count: Optional[int] = None,
        wolf_count: Optional[int] = None,
    ) -> None:
        self.initialize_grass(world, grass_coverage)
        self.initialize_sheep(world, sheep_count)
        self.initialize_wolves(world, wolf_count)
        world.update_statistics()

    def find_empty_position(self, world: WorldGrid) -> Optional[Tuple[int, int]]:
        for _ in range(self.max_attempts):
            x = int(self.rng.integers(0, world.width))
            y = int(self.rng.integers(0, world.height))
            cell = world.get_cell(x, y)
            if cell.grass is None and cell.sheep is None and cell.wolf is None:
                return x, y
        return None

    def initialize_grass(self, world: WorldGrid, coverage: Optional[float] = None) -> int:
        if coverage is None:
            coverage = self.config.get("initial_grass_coverage", 0.8)
        placed = 0
        for _ in range(int(world.width * world.height * coverage)):
            position = self.find_empty_position(world)
            if position is None:
                continue
            density = self.rng.random() * 0.6 + 0.4
            grass = create_grass(world.next_organism_id(Species.GRASS), position[0], position[1], density)
            placed += world.place_organism(grass)
        return placed

    def initialize_sheep(self, world: WorldGrid, count: Optional[int] = None) -> int:
        if count is None:
            count = self.config.get("initial_sheep_count", 0)
        max_age = self.config["sheep"].get("initial_max_age", 20)
        placed = 0
        for _ in range(count):
            position = self.find_empty_position(world)
            if position is None:
                continue
            sheep = create_sheep(
                world.next_organism_id(Species.SHEEP),
                position[0],
                position[1],
                self.config,
                age=int(self.rng.integers(0, max_age)),
            )
            placed += world.place_organism(sheep)
        return placed

    def initialize_wolves(self, world: WorldGrid, count: Optional[int] = None) -> int:
        if count is None:
            count = self.config.get("initial_wolf_count", 0)
        wolf_cfg = self.config["wolf"]
        max_age = wolf_cfg.get("initial_max_age", 30)
        alpha_count = wolf_cfg.get("initial_alpha_count", 2)
        placed = 0
        for i in range(count):
            position = self.find_empty_position(world)
            if position is None:
                continue
            wolf = create_wolf(
                world.next_organism_id(Species.WOLF),
                position[0],
                position[1],
                self.config,
                age=int(self.rng.integers(0, max_age)),
                pack_role=PackRole.ALPHA if i < alpha_count else PackRole.OMEGA,
            )
            placed += world.place_organism(wolf)
        return placed

    def create_stable_test_ecosystem(self, world: WorldGrid) -> None:
        """Dense grass with a few well spaced animals."""
        self.initialize_grass(world, 0.9)
        self.initialize_sheep(world, 15)
        self.initialize_wolves(world, 3)
        world.update_statistics()
