import numpy as np
import pytest

from foodchain.config.config_foodchain import build_config
from foodchain.engine.organisms import PackRole, Species, create_grass, create_sheep, create_wolf
from foodchain.engine.reproduction_processor import ReproductionProcessor
from foodchain.engine.step_processor import StepProcessor
from foodchain.engine.world_grid import WorldGrid


def _make_world(width=20, height=20, overrides=None):
    cfg = build_config({"width": width, "height": height})
    if overrides:
        for block, values in overrides.items():
            cfg[block]["reproduction"].update(values.pop("reproduction", {}))
            cfg[block].update(values)
    return WorldGrid(cfg)


def _pregnant(animal, gestation=1, litter=3, cost=0.03):
    state = animal.reproduction_state
    state.is_pregnant = True
    state.gestation_remaining = gestation
    state.expected_litter_size = litter
    state.pregnancy_energy_cost = cost
    return animal


def test_two_eligible_sheep_produce_offspring_within_one_gestation():
    found_offspring = False
    for seed in range(10):
        world = _make_world(overrides={"sheep": {"reproduction_rate": 1.0}})
        max_energy = world.config["sheep"]["max_energy"]
        parents = {"a", "b"}
        world.place_organism(create_sheep("a", 10, 10, world.config, age=10, energy=max_energy))
        world.place_organism(create_sheep("b", 11, 10, world.config, age=10, energy=max_energy))
        processor = StepProcessor(world, world.config, np.random.default_rng(seed))

        for _ in range(world.config["sheep"]["reproduction"]["gestation_period"] + 2):
            processor.process_step()

        ids = {s.id for s in world.get_organisms_by_type(Species.SHEEP)}
        if ids - parents:
            found_offspring = True
            break

    assert found_offspring


def test_mating_probability_is_quadratic_in_energy():
    world = _make_world()
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(0))
    first = create_sheep("a", 1, 1, world.config, energy=1.0)
    second = create_sheep("b", 2, 1, world.config, energy=1.0)

    rate = world.config["sheep"]["reproduction_rate"]
    assert processor.mating_probability(first, second) == pytest.approx(rate * 0.25)
    first.energy = second.energy = 10.0
    assert processor.mating_probability(first, second) == pytest.approx(rate)


def test_eligibility_rules():
    world = _make_world()
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(0))
    cfg = world.config["sheep"]["reproduction"]
    sheep = create_sheep("s", 1, 1, world.config, age=cfg["min_age"], energy=cfg["min_energy"])

    assert processor.can_reproduce(sheep, tick=0)
    sheep.age = cfg["max_age"] + 1
    assert not processor.can_reproduce(sheep, tick=0)
    sheep.age = cfg["min_age"]
    sheep.energy = cfg["min_energy"] - 0.01
    assert not processor.can_reproduce(sheep, tick=0)
    sheep.energy = 1.0
    sheep.reproduction_state.last_mating_tick = 10
    assert not processor.can_reproduce(sheep, tick=10 + cfg["cooldown_period"] - 1)
    assert processor.can_reproduce(sheep, tick=10 + cfg["cooldown_period"])
    _pregnant(sheep)
    assert not processor.can_reproduce(sheep, tick=100)


def test_mating_makes_one_parent_pregnant_and_stamps_both():
    world = _make_world(overrides={"sheep": {"reproduction_rate": 1.0}})
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(2))
    max_energy = world.config["sheep"]["max_energy"]
    a = create_sheep("a", 3, 3, world.config, age=10, energy=max_energy)
    b = create_sheep("b", 5, 4, world.config, age=10, energy=max_energy)
    world.place_organism(a)
    world.place_organism(b)
    world.current_tick = 7

    processor.process_reproduction()

    carriers = [s for s in (a, b) if s.reproduction_state.is_pregnant]
    assert len(carriers) == 1
    state = carriers[0].reproduction_state
    cfg = world.config["sheep"]["reproduction"]
    assert cfg["litter_size_min"] <= state.expected_litter_size <= cfg["litter_size_max"]
    assert state.gestation_remaining == cfg["gestation_period"]
    assert state.pregnancy_energy_cost == pytest.approx(cfg["energy_cost"] / cfg["gestation_period"])
    assert a.reproduction_state.last_mating_tick == b.reproduction_state.last_mating_tick == 7
    # A fresh pregnancy is not charged in the tick it starts.
    assert carriers[0].energy == pytest.approx(max_energy)


def test_mates_out_of_proximity_do_not_pair():
    world = _make_world(overrides={"sheep": {"reproduction_rate": 1.0}})
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(0))
    proximity = world.config["sheep"]["reproduction"]["partner_proximity"]
    a = create_sheep("a", 0, 0, world.config, age=10, energy=2.0)
    b = create_sheep("b", proximity, proximity, world.config, age=10, energy=2.0)
    world.place_organism(a)
    world.place_organism(b)

    processor.process_reproduction()

    assert not a.reproduction_state.is_pregnant
    assert not b.reproduction_state.is_pregnant


def test_miscarriage_keeps_parent_alive():
    world = _make_world()
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(0))
    sheep = _pregnant(create_sheep("s", 4, 4, world.config, energy=0.25), gestation=3, cost=0.1)
    world.place_organism(sheep)

    processor.process_reproduction()

    assert sheep.is_alive
    assert world.get_cell(4, 4).sheep is sheep
    assert not sheep.reproduction_state.is_pregnant
    stats = world.statistics.death_stats
    assert stats.miscarriages == 1
    assert stats.deaths_by_cause == {"starvation": 1}
    assert stats.recent_deaths[-1].organism_id == "s/pregnancy"


def test_birth_places_offspring_and_starts_cooldown():
    world = _make_world()
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(4))
    parent = _pregnant(create_sheep("p", 8, 8, world.config, energy=1.5, flock_id="f1"), gestation=1, litter=3)
    world.place_organism(parent)
    world.current_tick = 30

    processor.process_reproduction()

    offspring = [s for s in world.get_organisms_by_type(Species.SHEEP) if s is not parent]
    assert len(offspring) == 3
    cfg = world.config["sheep"]["reproduction"]
    for child in offspring:
        assert abs(child.x - 8) + abs(child.y - 8) <= cfg["birth_radius"]
        assert child.energy == pytest.approx(cfg["newborn_energy"])
        assert child.age == 0
        assert child.flock_id == "f1"
        assert 0.1 <= child.grazing_efficiency <= 1.0
        assert 0.1 <= child.energy_efficiency <= 1.0
        assert child.max_lifespan >= 1
    assert not parent.reproduction_state.is_pregnant
    assert parent.reproduction_state.last_mating_tick == 30
    assert parent.reproduction_cooldown == cfg["cooldown_period"]
    assert world.statistics.births_by_type["sheep"] == 3


def test_offspring_without_space_are_dropped():
    world = _make_world(width=3, height=3)
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(0))
    parent = _pregnant(create_sheep("p", 1, 1, world.config, energy=1.5), gestation=1, litter=2)
    world.place_organism(parent)
    for y in range(3):
        for x in range(3):
            if (x, y) != (1, 1):
                world.place_organism(create_sheep(f"n{x}{y}", x, y, world.config, age=0))

    processor.process_reproduction()

    assert len(world.get_organisms_by_type(Species.SHEEP)) == 9
    assert world.statistics.births_by_type["sheep"] == 0
    assert not parent.reproduction_state.is_pregnant


def test_wolf_pregnancy_gives_birth_inside_the_pack():
    world = _make_world()
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(1))
    mother = _pregnant(
        create_wolf("m", 5, 5, world.config, energy=3.0, pack_id="pack-1", pack_role=PackRole.ALPHA), litter=2
    )
    world.place_organism(mother)

    processor.process_reproduction()

    pups = [w for w in world.get_organisms_by_type(Species.WOLF) if w is not mother]
    assert len(pups) == 2
    assert all(p.pack_id == "pack-1" and p.pack_role is PackRole.OMEGA for p in pups)
    assert all(p.territory_center == (5, 5) for p in pups)


def test_wolves_only_mate_within_their_pack():
    world = _make_world(overrides={"wolf": {"reproduction_rate": 1.0}})
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(0))
    max_energy = world.config["wolf"]["max_energy"]
    a = create_wolf("a", 5, 5, world.config, age=20, energy=max_energy, pack_id="north")
    b = create_wolf("b", 6, 5, world.config, age=20, energy=max_energy, pack_id="south")
    world.place_organism(a)
    world.place_organism(b)

    processor.process_reproduction()

    assert not a.reproduction_state.is_pregnant and not b.reproduction_state.is_pregnant

    c = create_wolf("c", 7, 5, world.config, age=20, energy=max_energy, pack_id="north")
    world.place_organism(c)
    processor.process_reproduction()

    assert a.reproduction_state.is_pregnant or c.reproduction_state.is_pregnant
    assert not b.reproduction_state.is_pregnant


def test_alpha_breeding_only_restricts_to_alpha_pair():
    world = _make_world(
        overrides={"wolf": {"reproduction_rate": 1.0, "reproduction": {"alpha_breeding_only": True}}}
    )
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(3))
    max_energy = world.config["wolf"]["max_energy"]
    omegas = [create_wolf(f"o{i}", 2 + i, 2, world.config, age=20, energy=max_energy) for i in range(2)]
    alphas = [
        create_wolf("alpha1", 15, 15, world.config, age=20, energy=max_energy, pack_role=PackRole.ALPHA),
        create_wolf("alpha2", 2, 15, world.config, age=20, energy=max_energy, pack_role=PackRole.ALPHA),
    ]
    for wolf in omegas + alphas:
        world.place_organism(wolf)

    processor.process_reproduction()

    assert sum(w.reproduction_state.is_pregnant for w in alphas) == 1
    assert not any(w.reproduction_state.is_pregnant for w in omegas)


def test_mature_grass_spreads_seeds():
    world = _make_world(
        width=10,
        height=10,
        overrides={"grass": {"reproduction": {"spread_probability": 1.0, "seed_viability": 1.0}}},
    )
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(5))
    mature = create_grass("g", 5, 5, 0.7)
    dying = create_grass("d", 1, 1, 0.95)
    world.place_organism(mature)
    world.place_organism(dying)
    world.current_tick = 10

    processor.process_reproduction()

    grass = world.get_organisms_by_type(Species.GRASS)
    seeds = [g for g in grass if g.id not in ("g", "d")]
    assert 1 <= len(seeds) <= world.config["grass"]["reproduction"]["max_seeds_per_step"]
    assert mature.last_spread_tick == 10
    assert dying.last_spread_tick == 0
    for seed in seeds:
        assert abs(seed.x - 5) <= 2 and abs(seed.y - 5) <= 2
        assert seed.density == pytest.approx(0.1)


def test_grass_waits_between_spreads():
    world = _make_world(
        width=10,
        height=10,
        overrides={"grass": {"reproduction": {"spread_probability": 1.0, "seed_viability": 1.0}}},
    )
    processor = ReproductionProcessor(world, world.config, np.random.default_rng(5))
    grass = create_grass("g", 5, 5, 0.7, tick=8)
    world.place_organism(grass)
    world.current_tick = 10

    processor.process_reproduction()

    assert len(world.get_organisms_by_type(Species.GRASS)) == 1
