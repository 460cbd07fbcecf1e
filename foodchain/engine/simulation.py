"""
FoodChainSimulation: the controller composing grid, processors and analyzer.

The controller owns the single random generator of a run and hands it to the
initializer and both processors, so a seed fully determines the run. It does
not run a timer loop; callers drive ticks through `step()` or `run()`.
"""
from __future__ import annotations

import copy
from typing import List, Optional

# external libraries
import numpy as np

from foodchain.analysis.ecological_analyzer import (
    EcologicalAnalyzer,
    EcosystemAlert,
    ExtinctionAnalysis,
    OscillationAnalysis,
    PopulationHealth,
)
from foodchain.config.config_foodchain import config_env
from foodchain.engine.organisms import Organism, Species, create_grass, create_sheep, create_wolf
from foodchain.engine.records import SimulationStatistics
from foodchain.engine.reproduction_processor import ReproductionProcessor
from foodchain.engine.step_processor import StepProcessor
from foodchain.engine.world_grid import WorldGrid
from foodchain.engine.world_initializer import WorldInitializer

EXTINCTION_CAUSES = {
    Species.GRASS: "environmental",
    Species.SHEEP: "predation",
    Species.WOLF: "starvation",
}


class FoodChainSimulation:
    def __init__(self, config: Optional[dict] = None, seed: Optional[int] = None, initialize: bool = True):
        self.config = copy.deepcopy(config) if config is not None else copy.deepcopy(config_env)
        self.seed = seed if seed is not None else self.config.get("seed")
        self.initialize = initialize
        self.debug_mode = self.config.get("debug_mode", False)
        self.verbose_extinction = self.config.get("verbose_extinction", self.debug_mode)
        self.pause_on_extinction = self.config.get("debug", {}).get("pause_on_extinction", True)
        self._build()

    def _build(self) -> None:
        self.rng = np.random.default_rng(self.seed)
        self.world = WorldGrid(self.config)
        self.reproduction_processor = ReproductionProcessor(self.world, self.config, self.rng)
        self.step_processor = StepProcessor(self.world, self.config, self.rng, self.reproduction_processor)
        self.analyzer = EcologicalAnalyzer(self.config)
        self.running = False
        self.paused = False
        if self.initialize:
            WorldInitializer(self.config, self.rng).initialize_world(self.world)

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------
    def start(self) -> None:
        self.running = True
        self.paused = False

    def pause(self) -> None:
        if self.running:
            self.paused = True

    def resume(self) -> None:
        if self.running and self.paused:
            self.paused = False

    def stop(self) -> None:
        self.running = False
        self.paused = False

    def is_running(self) -> bool:
        return self.running

    def is_paused(self) -> bool:
        return self.paused

    def reset(self, seed: Optional[int] = None) -> None:
        """Rebuild the world from config; the same seed replays the same run."""
        self.stop()
        if seed is not None:
            self.seed = seed
        self._build()

    def step(self) -> None:
        self.step_processor.process_step()
        tick = self.world.current_tick
        self.analyzer.record_population(tick, self.world.statistics)
        self._check_extinction_events(tick)

    def run(self, steps: int) -> int:
        """Advance up to `steps` ticks while running and not paused. Returns the ticks executed."""
        self.start()
        executed = 0
        while executed < steps and self.running and not self.paused:
            self.step()
            executed += 1
        return executed

    def _check_extinction_events(self, tick: int) -> None:
        stats = self.world.statistics
        for species, cause in EXTINCTION_CAUSES.items():
            if stats.count(species) > 0 or self.world.has_extinction_event(species):
                continue
            self.world.add_extinction_event(species, cause)
            analysis = self.analyzer.analyze_extinction(species, tick, stats.death_stats)
            if self.verbose_extinction:
                result = analysis.cause_analysis
                print(
                    f"[Extinction] t={tick} {species.value} extinct ({cause}); primary cause: {result.primary_cause}, "
                    f"confidence: {result.confidence:.2f}, factors: {result.contributing_factors}"
                )
        if self.pause_on_extinction and stats.extinction_events:
            self.pause()

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------
    def place_organism(self, species: Species, x: int, y: int, **attributes) -> Optional[Organism]:
        """Create and place an organism. None when the cell is out of range or taken by the same species."""
        species = Species(species)
        organism_id = attributes.pop("id", None) or self.world.next_organism_id(species)
        if species is Species.GRASS:
            organism = create_grass(organism_id, x, y, attributes.pop("density", 1.0), self.world.current_tick)
            for name, value in attributes.items():
                setattr(organism, name, value)
        elif species is Species.SHEEP:
            organism = create_sheep(organism_id, x, y, self.config, **attributes)
        else:
            organism = create_wolf(organism_id, x, y, self.config, **attributes)
        if not self.world.place_organism(organism):
            return None
        self.world.update_statistics()
        return organism

    # -------------------------------------------------------------------------
    # Read API
    # -------------------------------------------------------------------------
    def get_current_tick(self) -> int:
        return self.world.current_tick

    def get_statistics(self) -> SimulationStatistics:
        return self.world.get_statistics()

    def get_population_health(self) -> List[PopulationHealth]:
        return self.analyzer.get_population_health()

    def get_active_alerts(self) -> List[EcosystemAlert]:
        return self.analyzer.get_active_alerts()

    def get_oscillation_analysis(self) -> OscillationAnalysis:
        return self.analyzer.get_oscillation_analysis()

    def get_latest_extinction_analysis(self) -> Optional[ExtinctionAnalysis]:
        return self.analyzer.get_latest_extinction_analysis()

    def get_grid_world_state(self) -> np.ndarray:
        return self.world.grid_world_state()
