import copy

import numpy as np
import pytest

from foodchain.config.config_foodchain import build_config
from foodchain.engine.organisms import Species, create_grass, create_sheep, create_wolf
from foodchain.engine.step_processor import StepProcessor
from foodchain.engine.world_grid import WorldGrid
from foodchain.engine.world_initializer import WorldInitializer


def _make_processor(overrides=None, seed=0):
    cfg = build_config({"width": 12, "height": 12})
    if overrides:
        for key, value in overrides.items():
            if isinstance(value, dict):
                cfg[key].update(value)
            else:
                cfg[key] = value
    world = WorldGrid(cfg)
    processor = StepProcessor(world, cfg, np.random.default_rng(seed))
    return world, processor


def test_hungry_wolf_adjacent_to_sheep_eats_it():
    world, processor = _make_processor({"sheep": {"movement_range": 0}})
    sheep = create_sheep("s", 5, 5, world.config)
    wolf = create_wolf("w", 6, 5, world.config, energy=1.0, age=0)
    wolf.hunger = world.config["wolf"]["hunger_threshold"]
    world.place_organism(sheep)
    world.place_organism(wolf)
    prior_energy = wolf.energy

    processor.process_step()

    assert world.get_organisms_by_type(Species.SHEEP) == []
    assert wolf.hunger == 0
    expected = prior_energy - world.config["wolf"]["energy_per_step"] + world.config["wolf"]["energy_per_sheep"]
    assert wolf.energy == pytest.approx(expected)
    record = world.statistics.death_stats.recent_deaths[-1]
    assert record.cause == "hunting"
    assert record.organism_id == "s"


def test_sheep_with_zero_energy_starves():
    world, processor = _make_processor()
    sheep = create_sheep("s", 3, 3, world.config, energy=0.0)
    world.place_organism(sheep)

    processor.process_step()

    assert sheep not in world.get_organisms_by_type(Species.SHEEP)
    causes = [(r.organism_id, r.cause) for r in world.statistics.death_stats.recent_deaths]
    assert ("s", "starvation") in causes


def test_death_checks_age_before_starvation():
    world, processor = _make_processor()
    sheep = create_sheep("s", 3, 3, world.config, energy=0.0, age=world.config["sheep"]["lifespan"])
    world.place_organism(sheep)

    processor.process_step()

    record = world.statistics.death_stats.recent_deaths[-1]
    assert record.cause == "age"
    assert world.statistics.death_stats.deaths_by_cause == {"age": 1}


def test_hunger_death_after_twice_the_threshold():
    world, processor = _make_processor()
    threshold = world.config["sheep"]["hunger_threshold"]
    sheep = create_sheep("s", 3, 3, world.config, energy=5.0)
    sheep.hunger = threshold * 2 - 1
    world.place_organism(sheep)

    processor.process_step()

    assert world.statistics.death_stats.deaths_by_cause == {"hunger": 1}


def test_hungry_sheep_grazes_in_place():
    world, processor = _make_processor({"sheep": {"movement_range": 0}, "grass": {"growth_rate": 0.0}})
    sheep = create_sheep("s", 4, 4, world.config, energy=1.0)
    sheep.hunger = world.config["sheep"]["hunger_threshold"]
    grass = create_grass("g", 4, 4, 0.4)
    world.place_organism(sheep)
    world.place_organism(grass)

    processor.process_step()

    cfg = world.config
    expected = 1.0 - cfg["sheep"]["energy_per_step"] + 0.4 * cfg["sheep"]["energy_per_grass"]
    assert sheep.energy == pytest.approx(expected)
    assert sheep.hunger == 0
    assert world.get_cell(4, 4).grass is None
    assert world.statistics.death_stats.deaths_by_cause.get("grazing") == 1


def test_sheep_flees_from_wolf():
    world, processor = _make_processor({"sheep": {"movement_range": 2}})
    sheep = create_sheep("s", 5, 5, world.config)
    wolf = create_wolf("w", 8, 5, world.config, age=0)
    world.place_organism(sheep)
    world.place_organism(wolf)

    processor.process_step()

    assert sheep.x == 3
    assert sheep.y == 5


def test_energy_only_decays_without_food():
    world, processor = _make_processor()
    initializer = WorldInitializer(world.config, processor.rng)
    initializer.initialize_sheep(world, 10)
    previous = {s.id: s.energy for s in world.get_organisms_by_type(Species.SHEEP)}

    for _ in range(5):
        processor.process_step()
        for s in world.get_organisms_by_type(Species.SHEEP):
            if s.id in previous:
                assert s.energy <= previous[s.id]
        previous = {s.id: s.energy for s in world.get_organisms_by_type(Species.SHEEP)}


def test_grass_survives_alone_on_50x50():
    cfg = build_config({"width": 50, "height": 50})
    world = WorldGrid(cfg)
    rng = np.random.default_rng(3)
    processor = StepProcessor(world, cfg, rng)
    for y in range(0, 50, 2):
        for x in range(0, 50, 2):
            world.place_organism(create_grass(world.next_organism_id(Species.GRASS), x, y, 0.85))

    for _ in range(100):
        processor.process_step()

    assert world.statistics.grass_count > 0
    assert world.current_tick == 100


def test_positions_stay_in_bounds_and_unique():
    world, processor = _make_processor(seed=11)
    WorldInitializer(world.config, processor.rng).initialize_world(world, 0.6, 25, 4)

    for _ in range(40):
        processor.process_step()
        for species in Species:
            seen = set()
            for organism in world.get_organisms_by_type(species):
                assert world.is_valid_position(organism.x, organism.y)
                assert organism.position not in seen
                seen.add(organism.position)


def test_same_seed_replays_the_same_run():
    def run(seed):
        world, processor = _make_processor(seed=seed)
        WorldInitializer(world.config, processor.rng).initialize_world(world, 0.5, 20, 3)
        for _ in range(30):
            processor.process_step()
        return [(o.id, o.x, o.y, round(o.energy, 9)) for s in Species for o in world.get_organisms_by_type(s)]

    assert run(5) == run(5)


def test_process_step_is_not_reentrant():
    world, processor = _make_processor()
    processor._in_step = True

    with pytest.raises(RuntimeError):
        processor.process_step()


def test_missing_config_raises():
    world, _ = _make_processor()
    with pytest.raises(ValueError):
        StepProcessor(world, None)


def test_grass_growth_follows_season_and_temperature():
    cfg = build_config({"width": 5, "height": 5})
    cfg["grass"]["growth_rate"] = 1.0
    cfg["grass"]["seasonal_growth_modifier"]["spring"] = 1.0
    cfg["grass"]["spread_threshold"] = 2.0
    cfg["grass"]["reproduction"]["spread_probability"] = 0.0
    cfg["world"]["temperature_effect"] = 0.0
    world = WorldGrid(copy.deepcopy(cfg))
    processor = StepProcessor(world, world.config, np.random.default_rng(1))
    grass = create_grass("g", 2, 2, 0.5)
    world.place_organism(grass)

    processor.process_step()

    assert grass.density == pytest.approx(0.55)
    assert grass.age == 1


def test_wolf_does_not_eat_diagonal_sheep():
    world, processor = _make_processor({"sheep": {"movement_range": 0}})
    sheep = create_sheep("s", 5, 5, world.config)
    wolf = create_wolf("w", 6, 6, world.config, energy=1.0, age=0)
    wolf.hunger = world.config["wolf"]["hunger_threshold"]
    world.place_organism(sheep)
    world.place_organism(wolf)

    processor.process_step()

    assert sheep.is_alive
    assert wolf.hunger == world.config["wolf"]["hunger_threshold"] + 1
    assert wolf.position == (6, 5)

    processor.process_step()

    assert not sheep.is_alive
    assert wolf.hunger == 0


def test_hungry_wolf_closes_in_without_eating():
    world, processor = _make_processor({"sheep": {"movement_range": 0}, "wolf": {"movement_range": 2}})
    sheep = create_sheep("s", 1, 5, world.config)
    wolf = create_wolf("w", 6, 5, world.config, age=0)
    wolf.hunger = world.config["wolf"]["hunger_threshold"]
    world.place_organism(sheep)
    world.place_organism(wolf)

    processor.process_step()

    assert wolf.position == (4, 5)
    assert wolf.hunting_target == "s"
    assert sheep.is_alive
    assert world.statistics.death_stats.total_deaths == 0


def test_hungry_sheep_steps_toward_nearby_grass():
    world, processor = _make_processor({"sheep": {"movement_range": 1}, "grass": {"growth_rate": 0.0}})
    sheep = create_sheep("s", 4, 4, world.config, energy=1.0)
    sheep.hunger = world.config["sheep"]["hunger_threshold"]
    grass = create_grass("g", 7, 6, 0.5)
    world.place_organism(sheep)
    world.place_organism(grass)

    processor.process_step()

    assert sheep.position == (5, 5)
    assert sheep.hunger == world.config["sheep"]["hunger_threshold"] + 1
    assert grass.density == pytest.approx(0.5)


def _scouting_wolf(hunger, overrides=None):
    wolf_overrides = {"movement_range": 3, "scout_max_move": 4, "move_attempts": 0}
    wolf_overrides.update(overrides or {})
    world, processor = _make_processor(
        {"sheep": {"movement_range": 0, "move_attempts": 0}, "wolf": wolf_overrides}
    )
    wolf = create_wolf("w", 1, 5, world.config, age=0)
    wolf.hunger = hunger
    world.place_organism(wolf)
    return world, processor, wolf


def test_scouting_wolf_moves_by_the_smaller_of_scout_and_movement_range():
    world, processor, wolf = _scouting_wolf(hunger=0)
    world.place_organism(create_sheep("s", 5, 5, world.config))

    processor.process_step()

    assert wolf.position == (4, 5)

    world, processor, wolf = _scouting_wolf(hunger=0, overrides={"scout_max_move": 2})
    world.place_organism(create_sheep("s", 5, 5, world.config))

    processor.process_step()

    assert wolf.position == (3, 5)


def test_scouting_radius_shrinks_when_wolf_is_fed():
    # hunting_radius 6 on a 12x12 grid, reduced scouting radius floor(6 * 0.7) = 4
    world, processor, wolf = _scouting_wolf(hunger=0)
    world.place_organism(create_sheep("s", 6, 5, world.config))

    processor.process_step()

    assert wolf.position == (1, 5)

    threshold = world.config["wolf"]["hunger_threshold"]
    world, processor, wolf = _scouting_wolf(hunger=int(threshold * 0.4))
    world.place_organism(create_sheep("s", 6, 5, world.config))

    processor.process_step()

    assert wolf.position == (4, 5)


def test_dense_grass_spreads_to_one_neighbour():
    world, processor = _make_processor({"grass": {"growth_rate": 0.0, "spread_attempts": 60}})
    grass = create_grass("g", 5, 5, 0.85)
    world.place_organism(grass)

    processor.process_step()

    grass_list = world.get_organisms_by_type(Species.GRASS)
    assert len(grass_list) == 2
    seedling = next(g for g in grass_list if g is not grass)
    assert max(abs(seedling.x - 5), abs(seedling.y - 5)) == 1
    assert seedling.density == pytest.approx(world.config["grass"]["spread_density"])


def test_grass_below_spread_threshold_does_not_spread():
    world, processor = _make_processor({"grass": {"growth_rate": 0.0, "spread_attempts": 60}})
    world.place_organism(create_grass("g", 5, 5, 0.79))

    processor.process_step()

    assert len(world.get_organisms_by_type(Species.GRASS)) == 1
