"""
Organisms living on the food chain grid.

Every organism carries an explicit `Species` tag; code dispatches on the tag,
never on which attributes an object happens to have.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

Vec2 = Tuple[int, int]


class Species(str, Enum):
    GRASS = "grass"
    SHEEP = "sheep"
    WOLF = "wolf"


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


SEASON_ORDER = (Season.SPRING, Season.SUMMER, Season.AUTUMN, Season.WINTER)


class GrowthStage(str, Enum):
    SEED = "seed"
    SPROUT = "sprout"
    MATURE = "mature"
    DYING = "dying"


class PackRole(str, Enum):
    ALPHA = "alpha"
    OMEGA = "omega"


class Direction(str, Enum):
    NORTH = "north"
    NORTHEAST = "northeast"
    EAST = "east"
    SOUTHEAST = "southeast"
    SOUTH = "south"
    SOUTHWEST = "southwest"
    WEST = "west"
    NORTHWEST = "northwest"


_DIRECTIONS = {
    (0, -1): Direction.NORTH,
    (1, -1): Direction.NORTHEAST,
    (1, 0): Direction.EAST,
    (1, 1): Direction.SOUTHEAST,
    (0, 1): Direction.SOUTH,
    (-1, 1): Direction.SOUTHWEST,
    (-1, 0): Direction.WEST,
    (-1, -1): Direction.NORTHWEST,
}


def direction_from_delta(dx: int, dy: int) -> Optional[Direction]:
    key = ((dx > 0) - (dx < 0), (dy > 0) - (dy < 0))
    return _DIRECTIONS.get(key)


def growth_stage_for(density: float) -> GrowthStage:
    if density < 0.3:
        return GrowthStage.SEED
    if density < 0.6:
        return GrowthStage.SPROUT
    if density < 0.9:
        return GrowthStage.MATURE
    return GrowthStage.DYING


@dataclass
class ReproductionState:
    is_pregnant: bool = False
    gestation_remaining: int = 0
    expected_litter_size: int = 0
    pregnancy_energy_cost: float = 0.0
    mate_id: Optional[str] = None
    last_mating_tick: Optional[int] = None  # None: never mated

    def reset(self) -> None:
        self.is_pregnant = False
        self.gestation_remaining = 0
        self.expected_litter_size = 0
        self.pregnancy_energy_cost = 0.0
        self.mate_id = None


@dataclass
class Organism:
    id: str
    x: int
    y: int
    energy: float
    age: int = 0
    is_alive: bool = True
    species: Species = field(init=False)

    @property
    def position(self) -> Vec2:
        return self.x, self.y


@dataclass
class Grass(Organism):
    density: float = 0.5
    last_grazed: Optional[int] = None
    last_spread_tick: int = 0

    def __post_init__(self) -> None:
        self.species = Species.GRASS

    @property
    def growth_stage(self) -> GrowthStage:
        return growth_stage_for(self.density)


@dataclass
class Animal(Organism):
    hunger: int = 0
    reproduction_cooldown: int = 0
    reproduction_state: ReproductionState = field(default_factory=ReproductionState)
    last_direction: Optional[Direction] = None
    energy_efficiency: float = 1.0
    max_lifespan: int = 100


@dataclass
class Sheep(Animal):
    grazing_efficiency: float = 0.98
    flock_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.species = Species.SHEEP


@dataclass
class Wolf(Animal):
    pack_id: Optional[str] = None
    pack_role: Optional[PackRole] = None
    territory_id: Optional[str] = None
    territory_center: Optional[Vec2] = None
    hunting_target: Optional[str] = None
    hunting_skill: float = 0.8

    def __post_init__(self) -> None:
        self.species = Species.WOLF


def create_grass(organism_id: str, x: int, y: int, density: float, tick: int = 0) -> Grass:
    return Grass(
        id=organism_id,
        x=x,
        y=y,
        energy=density,
        density=density,
        last_spread_tick=tick,
    )


def create_sheep(organism_id: str, x: int, y: int, config: dict, **attributes) -> Sheep:
    """Sheep with defaults from the `sheep` config block; `attributes` override any field."""
    sheep_cfg = config["sheep"]
    values = {
        "energy": sheep_cfg.get("initial_energy", 0.8),
        "grazing_efficiency": sheep_cfg.get("grazing_efficiency", 0.98),
        "max_lifespan": sheep_cfg.get("lifespan", 100),
    }
    values.update(attributes)
    return Sheep(id=organism_id, x=x, y=y, **values)


def create_wolf(organism_id: str, x: int, y: int, config: dict, **attributes) -> Wolf:
    """Wolf with defaults from the `wolf` config block; `attributes` override any field."""
    wolf_cfg = config["wolf"]
    values = {
        "energy": wolf_cfg.get("initial_energy", 0.9),
        "hunting_skill": wolf_cfg.get("hunting_skill", 0.8),
        "max_lifespan": wolf_cfg.get("lifespan", 200),
        "pack_role": PackRole.OMEGA,
        "territory_center": (x, y),
    }
    values.update(attributes)
    return Wolf(id=organism_id, x=x, y=y, **values)
