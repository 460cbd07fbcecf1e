from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from foodchain.engine.organisms import Season, Species


@dataclass
class EnvironmentalContext:
    nearby_prey: int = 0
    nearby_predators: int = 0
    local_grass_density: float = 0.0
    temperature: float = 20.0
    season: Season = Season.SPRING


@dataclass
class ReproductionSnapshot:
    is_pregnant: bool
    cooldown_remaining: int


@dataclass
class DeathRecord:
    organism_id: str
    organism_type: Species
    cause: str  # age | starvation | hunger | grazing | hunting
    tick: int
    energy: float
    age: int
    x: int
    y: int
    details: str = ""
    population_at_death: Dict[str, int] = field(default_factory=dict)
    environment: Optional[EnvironmentalContext] = None
    reproduction: Optional[ReproductionSnapshot] = None
    pregnancy_loss: bool = False


@dataclass
class DeathStatistics:
    capacity: int = 50
    total_deaths: int = 0
    deaths_by_cause: Dict[str, int] = field(default_factory=dict)
    deaths_by_type: Dict[str, int] = field(default_factory=dict)
    recent_deaths: Deque[DeathRecord] = field(default_factory=deque)
    grass_deaths: int = 0
    sheep_deaths: int = 0
    wolf_deaths: int = 0
    miscarriages: int = 0

    def __post_init__(self) -> None:
        self.recent_deaths = deque(self.recent_deaths, maxlen=self.capacity)

    def add(self, record: DeathRecord) -> None:
        self.recent_deaths.append(record)
        self.total_deaths += 1
        self.deaths_by_cause[record.cause] = self.deaths_by_cause.get(record.cause, 0) + 1
        kind = record.organism_type.value
        self.deaths_by_type[kind] = self.deaths_by_type.get(kind, 0) + 1
        if record.pregnancy_loss:
            self.miscarriages += 1
        elif record.organism_type is Species.GRASS:
            self.grass_deaths += 1
        elif record.organism_type is Species.SHEEP:
            self.sheep_deaths += 1
        else:
            self.wolf_deaths += 1


@dataclass
class ExtinctionEvent:
    species: Species
    tick: int
    cause: str  # starvation | predation | environmental


@dataclass
class PopulationSnapshot:
    tick: int
    grass_count: int
    sheep_count: int
    wolf_count: int
    average_sheep_energy: float
    average_wolf_energy: float


@dataclass
class SimulationStatistics:
    total_ticks: int = 0
    grass_count: int = 0
    sheep_count: int = 0
    wolf_count: int = 0
    total_energy: float = 0.0
    average_grass_density: float = 0.0
    average_sheep_energy: float = 0.0
    average_wolf_energy: float = 0.0
    births_by_type: Dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in Species})
    extinction_events: List[ExtinctionEvent] = field(default_factory=list)
    population_history: Deque[PopulationSnapshot] = field(default_factory=deque)
    death_stats: DeathStatistics = field(default_factory=DeathStatistics)

    def count(self, species: Species) -> int:
        if species is Species.GRASS:
            return self.grass_count
        if species is Species.SHEEP:
            return self.sheep_count
        return self.wolf_count
