"""
Population analysis for the food chain.

The analyzer only reads statistics snapshots handed to it once per tick. It
keeps a bounded population history and derives from it:
- per-species health scores (stability, sustainability, trend)
- oscillation cycles (boom/bust swings) with a heuristic trigger
- extinction root-cause analyses
- ecosystem alerts
"""
from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional

# external libraries
import numpy as np

from foodchain.engine.organisms import Species
from foodchain.engine.records import DeathRecord, DeathStatistics, SimulationStatistics

INCREASING = "increasing"
DECREASING = "decreasing"
DECLINING = "declining"
STABLE = "stable"
EXTINCT = "extinct"


@dataclass
class PopulationRecord:
    tick: int
    grass: int
    sheep: int
    wolf: int

    def count(self, species: Species) -> int:
        return getattr(self, species.value)


@dataclass
class PopulationHealth:
    species: Species
    current_count: int
    trend: str  # increasing | stable | declining | extinct
    health_score: float
    risk_factors: List[str]
    time_to_extinction: Optional[int] = None


@dataclass
class EcosystemAlert:
    id: str
    severity: str  # info | warning | critical
    type: str
    species: Species
    message: str
    tick: int
    data: Dict[str, object] = field(default_factory=dict)


@dataclass
class OscillationCycle:
    species: Species
    cycle_type: str  # growth_to_decline | decline_to_growth | near_extinction_recovery
    start_tick: int
    end_tick: int
    start_population: int
    end_population: int
    peak_population: int
    min_population: int
    duration: int
    amplitude: int
    trigger_factor: Optional[str] = None


@dataclass
class OscillationAnalysis:
    total_cycles: int
    cycles_by_species: Dict[str, int]
    average_cycle_duration: float
    average_amplitude: float
    oscillation_health: str  # healthy | damped | chaotic | extinct
    recent_cycles: List[OscillationCycle]
    near_extinction_recoveries: int
    overgrowth_corrections: int
    stability_score: float


@dataclass
class CauseAnalysis:
    primary_cause: str
    contributing_factors: List[str]
    confidence: float
    recommendation: str
    prevention_strategy: str


@dataclass
class ExtinctionAnalysis:
    species: Species
    tick: int
    last_population: int
    cause_analysis: CauseAnalysis
    population_history: List[Dict[str, int]]
    environmental_context: Dict[str, float]


@dataclass
class _TrendState:
    trend: str = STABLE
    start_tick: int = 0
    start_population: int = 0
    peak: Optional[int] = None
    minimum: Optional[int] = None


_RECOMMENDATIONS = {
    Species.WOLF: {
        "hunger": "Increase sheep population or reduce wolf energy consumption rate",
        "starvation": "Lower wolf energy_per_step or raise energy_per_sheep",
        "age": "Raise wolf reproduction rate so younger wolves replace old ones",
    },
    Species.SHEEP: {
        "hunting": "Reduce wolf hunting radius or increase sheep reproduction rate",
        "hunger": "Increase grass growth rate or sheep forage radius",
        "starvation": "Increase energy_per_grass or reduce sheep energy_per_step",
        "age": "Lower sheep reproduction min_age or shorten gestation",
    },
    Species.GRASS: {
        "grazing": "Increase grass growth or spread rate, or reduce sheep consumption rate",
    },
}

_PREVENTION = {
    "hunger": "Monitor prey-to-predator ratios and adjust reproduction rates dynamically",
    "starvation": "Add energy-dependent reproduction scaling to prevent breeding during scarcity",
    "hunting": "Give prey refuges or stronger flight responses when predators are dense",
    "grazing": "Protect a share of the grass from grazing so it can reseed",
    "age": "Keep reproduction rates high enough to sustain population turnover",
}


class EcologicalAnalyzer:
    def __init__(self, config: dict):
        if config is None:
            raise ValueError("Analyzer config must be provided explicitly.")
        self.config = config
        analysis_cfg = config.get("analysis", {})
        self.history_size = analysis_cfg.get("history_size", 100)
        self.trend_window = analysis_cfg.get("trend_window", 5)
        self.trend_threshold = analysis_cfg.get("trend_threshold", 0.1)
        self.oscillation_window = analysis_cfg.get("oscillation_window", 5)
        self.oscillation_threshold = analysis_cfg.get("oscillation_threshold", 0.15)
        self.min_cycle_duration = analysis_cfg.get("min_cycle_duration", 3)
        self.min_cycle_amplitude = analysis_cfg.get("min_cycle_amplitude", 5)
        self.near_extinction_floor = analysis_cfg.get("near_extinction_floor", 10)
        self.max_cycles = analysis_cfg.get("max_cycles", 50)
        self.alert_window = analysis_cfg.get("alert_window", 20)
        self.grid_cells = int(config.get("width", 70)) * int(config.get("height", 70))
        min_viable = analysis_cfg.get("min_viable", {})
        self.min_viable = {
            Species.GRASS: self.grid_cells * min_viable.get("grass_fraction", 0.1),
            Species.SHEEP: min_viable.get("sheep", 50),
            Species.WOLF: min_viable.get("wolf", 10),
        }

        self.debug_mode = config.get("debug_mode", False)
        self.verbose_oscillation = config.get("verbose_oscillation", self.debug_mode)

        self.population_history: Deque[PopulationRecord] = deque(maxlen=self.history_size)
        self.alerts: List[EcosystemAlert] = []
        self._alert_ids = set()
        self.extinction_analyses: List[ExtinctionAnalysis] = []
        self.oscillation_cycles: Deque[OscillationCycle] = deque(maxlen=self.max_cycles)
        self._trend_states: Dict[Species, _TrendState] = {species: _TrendState() for species in Species}

    def reset(self) -> None:
        self.population_history.clear()
        self.alerts.clear()
        self._alert_ids.clear()
        self.extinction_analyses.clear()
        self.oscillation_cycles.clear()
        self._trend_states = {species: _TrendState() for species in Species}

    def record_population(self, tick: int, stats: SimulationStatistics) -> None:
        record = PopulationRecord(tick=tick, grass=stats.grass_count, sheep=stats.sheep_count, wolf=stats.wolf_count)
        self.population_history.append(record)
        for species in Species:
            self._detect_oscillation(species, record.count(species), tick)
        self._check_for_alerts(tick, stats)

    def _series(self, species: Species, last: Optional[int] = None) -> List[int]:
        history = list(self.population_history)
        if last is not None:
            history = history[-last:]
        return [record.count(species) for record in history]

    # -------------------------------------------------------------------------
    # Trend and health
    # -------------------------------------------------------------------------
    def calculate_trend(self, counts: List[int]) -> str:
        """Mean of the last window against the window before it."""
        if len(counts) < 3:
            return STABLE
        recent = counts[-self.trend_window:]
        older = counts[-2 * self.trend_window:-self.trend_window]
        if not older:
            return STABLE
        recent_avg = float(np.mean(recent))
        older_avg = float(np.mean(older))
        if older_avg == 0:
            return INCREASING if recent_avg > 0 else STABLE
        change = (recent_avg - older_avg) / older_avg
        if change > self.trend_threshold:
            return INCREASING
        if change < -self.trend_threshold:
            return DECLINING
        return STABLE

    @staticmethod
    def calculate_stability(counts: List[int]) -> float:
        if len(counts) < 3:
            return 0.5
        values = np.asarray(counts, dtype=float)
        mean = values.mean()
        if mean == 0:
            return 0.0
        cv = values.std() / mean
        return max(0.0, 1.0 - cv)

    def calculate_sustainability(self, species: Species, current: int) -> float:
        threshold = self.min_viable.get(species) or 1
        return min(1.0, current / threshold)

    def calculate_health_score(self, species: Species, current: int, recent: List[int]) -> float:
        if current == 0:
            return 0.0
        score = 50.0
        score += self.calculate_stability(recent) * 30
        score += self.calculate_sustainability(species, current) * 20
        trend = self.calculate_trend(recent)
        if trend == INCREASING:
            score += 10
        elif trend == DECLINING:
            score -= 20
        return max(0.0, min(100.0, score))

    def _risk_factors(self, species: Species, current: int, recent: List[int]) -> List[str]:
        factors = []
        if current < 10 and species is not Species.GRASS:
            factors.append("Critically low population")
        if self.calculate_trend(recent) == DECLINING:
            factors.append("Declining population trend")
        if self.calculate_stability(recent) < 0.3:
            factors.append("High population volatility")
        return factors

    @staticmethod
    def _decline_rate(counts: List[int]) -> float:
        declines = [prev - curr for prev, curr in zip(counts, counts[1:]) if prev > curr]
        return sum(declines) / len(declines) if declines else 0.0

    def estimate_time_to_extinction(self, counts: List[int]) -> Optional[int]:
        if len(counts) < 5 or self.calculate_trend(counts) != DECLINING:
            return None
        rate = self._decline_rate(counts[-5:])
        if rate <= 0:
            return None
        return int(np.ceil(counts[-1] / rate))

    def get_population_health(self) -> List[PopulationHealth]:
        if len(self.population_history) < 5:
            return []
        result = []
        for species in Species:
            recent = self._series(species, last=2 * self.trend_window)
            current = recent[-1]
            result.append(
                PopulationHealth(
                    species=species,
                    current_count=current,
                    trend=EXTINCT if current == 0 else self.calculate_trend(recent),
                    health_score=self.calculate_health_score(species, current, recent),
                    risk_factors=self._risk_factors(species, current, recent),
                    time_to_extinction=self.estimate_time_to_extinction(recent),
                )
            )
        return result

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------
    def _add_alert(self, alert: EcosystemAlert) -> None:
        # Only alerts inside the active window are kept.
        if self.alerts and alert.tick - self.alerts[0].tick > self.alert_window:
            self.alerts = [a for a in self.alerts if alert.tick - a.tick <= self.alert_window]
            self._alert_ids = {a.id for a in self.alerts}
        if alert.id in self._alert_ids:
            return
        self._alert_ids.add(alert.id)
        self.alerts.append(alert)

    def _check_for_alerts(self, tick: int, stats: SimulationStatistics) -> None:
        for species in Species:
            if stats.count(species) == 0 and len(self.population_history) > 1 and self.population_history[-2].count(species) > 0:
                self._add_alert(
                    EcosystemAlert(
                        id=f"{species.value}-extinct-{tick}",
                        severity="critical",
                        type="extinction",
                        species=species,
                        message=f"{species.value.capitalize()} population went extinct.",
                        tick=tick,
                    )
                )
        if len(self.population_history) < 5:
            return
        if 0 < stats.wolf_count <= 5:
            self._add_alert(
                EcosystemAlert(
                    id=f"wolf-extinction-risk-{tick}",
                    severity="critical",
                    type="extinction_risk",
                    species=Species.WOLF,
                    message=f"Wolf population critically low ({stats.wolf_count}). Extinction imminent!",
                    tick=tick,
                    data={"count": stats.wolf_count, "trend": self.calculate_trend(self._series(Species.WOLF, last=5))},
                )
            )
        abundant_grass = self.grid_cells * 0.5
        if stats.sheep_count < 50 and stats.grass_count > abundant_grass:
            self._add_alert(
                EcosystemAlert(
                    id=f"sheep-starvation-paradox-{tick}",
                    severity="warning",
                    type="starvation_event",
                    species=Species.SHEEP,
                    message="Sheep population declining despite abundant grass. Check predation pressure.",
                    tick=tick,
                    data={"sheep_count": stats.sheep_count, "grass_count": stats.grass_count},
                )
            )

    def get_active_alerts(self) -> List[EcosystemAlert]:
        latest = self.population_history[-1].tick if self.population_history else 0
        return [alert for alert in self.alerts if latest - alert.tick <= self.alert_window]

    # -------------------------------------------------------------------------
    # Oscillations
    # -------------------------------------------------------------------------
    def detect_trend(self, recent: List[int]) -> str:
        """Average of the first two points against the last two."""
        if len(recent) < 3:
            return STABLE
        first = (recent[0] + recent[1]) / 2
        last = (recent[-2] + recent[-1]) / 2
        if first == 0:
            return INCREASING if last > 0 else STABLE
        change = (last - first) / first
        if change > self.oscillation_threshold:
            return INCREASING
        if change < -self.oscillation_threshold:
            return DECREASING
        return STABLE

    def _recent_average(self, species: Species) -> float:
        recent = self._series(species, last=3)
        return float(np.mean(recent)) if recent else 0.0

    def _detect_oscillation(self, species: Species, population: int, tick: int) -> None:
        state = self._trend_states[species]
        if len(self.population_history) < self.oscillation_window:
            state.start_tick = tick
            state.start_population = population
            return

        new_trend = self.detect_trend(self._series(species, last=self.oscillation_window))
        if state.peak is None or population > state.peak:
            state.peak = population
        if state.minimum is None or population < state.minimum:
            state.minimum = population

        if new_trend != state.trend and new_trend != STABLE:
            self._record_cycle(species, state, population, tick, new_trend)
            state.trend = new_trend
            state.start_tick = tick
            state.start_population = population
            state.peak = population
            state.minimum = population

    def _record_cycle(self, species: Species, state: _TrendState, population: int, tick: int, new_trend: str) -> None:
        trigger = None
        if state.trend == INCREASING and new_trend == DECREASING:
            cycle_type = "growth_to_decline"
            if species is Species.SHEEP and self._recent_average(Species.WOLF) > 20:
                trigger = "Predation pressure from wolves"
            elif species is Species.WOLF and self._recent_average(Species.SHEEP) < 50:
                trigger = "Prey depletion"
            elif species is Species.GRASS and self._recent_average(Species.SHEEP) > 200:
                trigger = "Overgrazing by sheep"
        elif state.trend == DECREASING and new_trend == INCREASING:
            cycle_type = "decline_to_growth"
            if state.minimum is not None and state.minimum < self.near_extinction_floor:
                cycle_type = "near_extinction_recovery"
                trigger = "Recovery from near extinction"
            elif species is Species.SHEEP and self._recent_average(Species.WOLF) < 10:
                trigger = "Reduced predation pressure"
            elif species is Species.WOLF and self._recent_average(Species.SHEEP) > 100:
                trigger = "Increased prey availability"
        else:
            return

        duration = tick - state.start_tick
        amplitude = (state.peak or 0) - (state.minimum or 0)
        if duration <= self.min_cycle_duration or amplitude <= self.min_cycle_amplitude:
            return

        cycle = OscillationCycle(
            species=species,
            cycle_type=cycle_type,
            start_tick=state.start_tick,
            end_tick=tick,
            start_population=state.start_population,
            end_population=population,
            peak_population=state.peak,
            min_population=state.minimum,
            duration=duration,
            amplitude=amplitude,
            trigger_factor=trigger,
        )
        self.oscillation_cycles.append(cycle)
        if self.verbose_oscillation:
            suffix = f" - {trigger}" if trigger else ""
            print(f"[Oscillation] t={tick} {species.value} {cycle_type} ({duration} ticks, amplitude: {amplitude}){suffix}")

    def _oscillation_health(self) -> str:
        if not self.oscillation_cycles:
            return EXTINCT
        recent = list(self.oscillation_cycles)[-10:]
        recoveries = sum(1 for c in recent if c.cycle_type == "near_extinction_recovery")
        corrections = sum(1 for c in recent if c.cycle_type == "growth_to_decline")
        if recoveries >= 2 and corrections >= 2:
            return "healthy"
        if recoveries >= 1 or corrections >= 1:
            return "damped"
        return "chaotic"

    def _oscillation_stability(self) -> float:
        if len(self.oscillation_cycles) < 4:
            return 0.0
        recent = list(self.oscillation_cycles)[-10:]
        score = min(40, len(recent) * 4)
        score += 15 * sum(1 for c in recent if c.cycle_type == "near_extinction_recovery")
        score += 10 * sum(1 for c in recent if c.cycle_type == "growth_to_decline")
        durations = np.array([c.duration for c in recent], dtype=float)
        consistency = max(0.0, 1 - durations.var() / durations.mean())
        score += consistency * 20
        return float(min(100.0, score))

    def get_oscillation_analysis(self) -> OscillationAnalysis:
        cycles = list(self.oscillation_cycles)
        by_species = Counter(c.species.value for c in cycles)
        return OscillationAnalysis(
            total_cycles=len(cycles),
            cycles_by_species=dict(by_species),
            average_cycle_duration=float(np.mean([c.duration for c in cycles])) if cycles else 0.0,
            average_amplitude=float(np.mean([c.amplitude for c in cycles])) if cycles else 0.0,
            oscillation_health=self._oscillation_health(),
            recent_cycles=cycles[-20:],
            near_extinction_recoveries=sum(1 for c in cycles if c.cycle_type == "near_extinction_recovery"),
            overgrowth_corrections=sum(1 for c in cycles if c.cycle_type == "growth_to_decline" and c.amplitude > 100),
            stability_score=self._oscillation_stability(),
        )

    # -------------------------------------------------------------------------
    # Extinction analysis
    # -------------------------------------------------------------------------
    def _contributing_factors(self, species: Species, deaths: List[DeathRecord], history: List[PopulationRecord]) -> List[str]:
        factors = []
        total = len(deaths)
        if total == 0:
            return factors
        causes = Counter(d.cause for d in deaths)

        if causes["hunger"] / total > 0.7:
            factors.append("Widespread starvation - unable to find sufficient food")
        if species is Species.WOLF:
            ratios = [p.sheep / p.wolf if p.wolf > 0 else 0.0 for p in history]
            if ratios and np.mean(ratios) < 5:
                factors.append("Insufficient prey density - too few sheep per wolf for sustainable hunting")
            isolated = sum(1 for d in deaths if d.environment is not None and d.environment.nearby_prey < 2)
            if isolated > total * 0.4:
                factors.append("Isolation - wolves unable to find prey in their territory")
        elif species is Species.SHEEP:
            if causes["hunting"] / total > 0.5:
                factors.append("Predation pressure - most sheep were taken by wolves")
            hungry = sum(1 for d in deaths if d.environment is not None and d.environment.local_grass_density < 0.2)
            if hungry > total * 0.4:
                factors.append("Grass depletion - sheep died in overgrazed areas")
        else:
            if causes["grazing"] / total > 0.7:
                factors.append("Overgrazing - grass consumed faster than it regrows")

        if species is not Species.GRASS:
            blocked = sum(1 for d in deaths if d.reproduction is not None and d.reproduction.cooldown_remaining > 20)
            if blocked > total * 0.3:
                factors.append("Reproduction failure - unable to breed successfully")
            if sum(1 for d in deaths if d.energy < 0.3) > total * 0.6:
                factors.append("Energy inefficiency - burning more energy than gained from feeding")
        return factors

    @staticmethod
    def _confidence(deaths: List[DeathRecord], factors: List[str]) -> float:
        confidence = 0.5 + min(0.3, len(deaths) * 0.05) + min(0.2, len(factors) * 0.05)
        return min(1.0, confidence)

    @staticmethod
    def _recommendation(species: Species, primary_cause: str, factors: Iterable[str]) -> str:
        base = _RECOMMENDATIONS.get(species, {}).get(
            primary_cause, f"Review {species.value} parameters and environmental conditions"
        )
        if any("prey density" in f for f in factors):
            return f"{base}. Critical: Increase sheep reproduction rate or reduce wolf hunting efficiency."
        return base

    def analyze_extinction(self, species: Species, tick: int, death_stats: DeathStatistics) -> ExtinctionAnalysis:
        deaths = [d for d in death_stats.recent_deaths if d.organism_type is species and not d.pregnancy_loss]
        history = list(self.population_history)[-20:]
        causes = Counter(d.cause for d in deaths)
        primary_cause = causes.most_common(1)[0][0] if causes else "unknown"
        factors = self._contributing_factors(species, deaths, history)

        cause_analysis = CauseAnalysis(
            primary_cause=primary_cause,
            contributing_factors=factors,
            confidence=self._confidence(deaths, factors),
            recommendation=self._recommendation(species, primary_cause, factors),
            prevention_strategy=_PREVENTION.get(primary_cause, "Implement early warning system for population decline"),
        )
        initial_wolves = max(1, self.config.get("initial_wolf_count", 1))
        latest = history[-1] if history else None
        analysis = ExtinctionAnalysis(
            species=species,
            tick=tick,
            last_population=latest.count(species) if latest else 0,
            cause_analysis=cause_analysis,
            population_history=[{"tick": p.tick, "count": p.count(species)} for p in history],
            environmental_context={
                "grass_availability": latest.grass if latest else 0,
                "prey_availability": latest.sheep if latest else 0,
                "competition_level": min(1.0, float(np.mean([p.wolf for p in history])) / (initial_wolves * 1.5))
                if history
                else 0.0,
            },
        )
        self.extinction_analyses.append(analysis)
        return analysis

    def get_latest_extinction_analysis(self) -> Optional[ExtinctionAnalysis]:
        return self.extinction_analyses[-1] if self.extinction_analyses else None
