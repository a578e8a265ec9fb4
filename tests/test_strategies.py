"""
Tests for the solving strategies.
"""

import pytest
import numpy as np

from ik_planning.actuation import SimulatedServo
from ik_planning.collision import CollisionItem, CollisionResult, CollisionWorld
from ik_planning.genetic import Chromosome
from ik_planning.geometry import Pose
from ik_planning.kinematics import InvalidStateError, Joint, KinematicChain
from ik_planning.strategies import (
    ComputeMethod, GeneticStrategy, GradientStrategy, fitness, make_strategy
)
from ik_planning.utils import PlanningConfig


def planar_arm(*angles_deg, length=100.0, low=-180.0, high=180.0, velocity=0.0):
    """Planar arm whose joints start at ``angles_deg``, each limited to [low, high] around its start."""
    return KinematicChain([
        Joint(f"j{i}", r=length, theta=np.radians(angle),
              min_angle=np.radians(angle + low), max_angle=np.radians(angle + high),
              velocity=velocity, actuator=f"servo{i}")
        for i, angle in enumerate(angles_deg)
    ])


def genome_for(*values):
    """Genome whose 8-bit genes decode to ``values``."""
    bits = []
    for value in values:
        bits.extend(bool(value >> i & 1) for i in range(8))
    return np.array(bits, dtype=bool)


@pytest.fixture
def config():
    return PlanningConfig(compute_method="genetic", genetic_pool_size=60,
                          genetic_generations=60, link_radius=0.0, random_seed=3)


class TestComputeMethod:
    """Test strategy selection."""

    def test_from_value(self):
        """Test names, values and members are accepted."""
        assert ComputeMethod.from_value("genetic") is ComputeMethod.GENETIC
        assert ComputeMethod.from_value("JACOBIAN") is ComputeMethod.JACOBIAN
        assert ComputeMethod.from_value(ComputeMethod.GENETIC) is ComputeMethod.GENETIC

        with pytest.raises(ValueError):
            ComputeMethod.from_value("annealing")

    def test_make_strategy(self, config):
        """Test the configured strategy is built."""
        world = CollisionWorld()

        assert isinstance(make_strategy(config, world), GeneticStrategy)
        config.compute_method = "jacobian"
        assert isinstance(make_strategy(config, world), GradientStrategy)


class TestFitness:
    """Test the fitness function."""

    def test_non_negative_and_monotonic(self):
        """Test fitness grows as the distance shrinks."""
        distances = [500.0, 100.0, 10.0, 1.0, 0.01]
        scores = [fitness(d) for d in distances]

        assert all(score > 0 for score in scores)
        assert scores == sorted(scores)

    def test_zero_distance_is_finite(self):
        """Test an exact hit does not divide by zero."""
        assert np.isfinite(fitness(0.0))
        assert fitness(0.0) > fitness(1e-3)


class TestGradientStrategy:
    """Test the pseudo-inverse Jacobian solver."""

    def test_reaches_reachable_goal(self):
        """Test convergence on a reachable planar goal."""
        chain = planar_arm(10, 20)
        strategy = GradientStrategy(tolerance=0.5)

        assert strategy.solve(chain, Pose(100, 100, 0))
        assert chain.forward_kinematics().distance_to(Pose(100, 100, 0)) <= 0.5

    def test_unreachable_goal(self):
        """Test failure outside the workspace."""
        chain = planar_arm(10, 20)

        assert not GradientStrategy(max_iterations=200).solve(chain, Pose(1000, 0, 0))

    def test_jacobian_shape(self):
        """Test one column per joint."""
        J = GradientStrategy().jacobian(planar_arm(0, 45, 90))

        assert J.shape == (3, 3)
        assert np.allclose(J[2], 0)


class TestGeneticDecode:
    """Test decoding through the range policy."""

    def test_out_of_range_gene_keeps_current_angle(self, config):
        """Test a gene decoding outside the range is replaced by the current angle."""
        chain = KinematicChain([Joint("j", r=10, min_angle=0.0, max_angle=np.radians(90))])
        chain.joint(0).position = 10
        strategy = GeneticStrategy(config, CollisionWorld())
        strategy.prepare(chain, Pose())
        chromosome = Chromosome(genome_for(150))

        strategy.decode([chromosome])

        assert chromosome.decoded == [pytest.approx(10)]

    def test_decode_is_range_safe(self, config):
        """Test every decoded value lies within its joint's range."""
        chain = planar_arm(0, 0, 0, low=0, high=120)
        strategy = GeneticStrategy(config, CollisionWorld())
        strategy.prepare(chain, Pose())
        rng = np.random.default_rng(11)
        pool = [Chromosome(rng.random(24) < 0.5) for _ in range(200)]

        strategy.decode(pool)

        for chromosome in pool:
            for joint, value in zip(chain, chromosome.decoded):
                assert joint.in_range(value)

    def test_fitness_prefers_closer_candidates(self, config):
        """Test a candidate at the goal outscores one away from it."""
        chain = planar_arm(0, 0, low=0, high=180)
        goal = planar_arm(30, 60).forward_kinematics()
        strategy = GeneticStrategy(config, CollisionWorld())
        strategy.prepare(chain, goal)
        near, far = Chromosome(genome_for(30, 60)), Chromosome(genome_for(100, 0))

        strategy.decode([near, far])
        strategy.calc_fitness([near, far])

        assert near.fitness > far.fitness

    def test_simulated_fitness(self, config):
        """Test scoring through the simulator reaches the same pose without obstacles."""
        config.genetic_compute_simulation = True
        chain = planar_arm(0, 0, low=0, high=180, velocity=50)
        goal = Pose(0, 200, 0)
        strategy = GeneticStrategy(config, CollisionWorld())
        strategy.prepare(chain, goal)
        candidate = Chromosome(genome_for(90, 0))

        strategy.decode([candidate])
        strategy.calc_fitness([candidate])

        assert candidate.fitness > fitness(1e-3)


class TestGeneticSolve:
    """Test the attempt loop."""

    def test_goal_already_reached(self, config):
        """Test a zero-length solve succeeds without actuation."""
        chain = planar_arm(0, 30, 60, velocity=60)
        servos = {f"servo{i}": SimulatedServo(f"servo{i}") for i in range(3)}
        strategy = GeneticStrategy(config, CollisionWorld(), servos)
        before = chain.positions()

        assert strategy.solve(chain, chain.forward_kinematics())
        assert np.allclose(chain.positions(), before)
        assert all(servo.commands == [] for servo in servos.values())

    def test_reaches_goal_and_actuates(self, config):
        """Test a free-space goal is approached and every servo commanded."""
        chain = planar_arm(0, 0, low=0, high=180)
        goal = planar_arm(40, 50).forward_kinematics()
        servos = {f"servo{i}": SimulatedServo(f"servo{i}") for i in range(2)}
        strategy = GeneticStrategy(config, CollisionWorld(), servos,
                                   rng=np.random.default_rng(5))

        assert strategy.solve(chain, goal)
        assert chain.forward_kinematics().distance_to(goal) < 10
        for i, joint in enumerate(chain):
            assert servos[f"servo{i}"].commands[-1][1] == round(joint.position)

    def test_unresolvable_collision(self, config):
        """Test two overlapping obstacles abort the solve."""
        world = CollisionWorld()
        world.add_obstacle(CollisionItem("rock", [500, 0, 0], [500, 10, 0], radius=5))
        world.add_obstacle(CollisionItem("stone", [495, 5, 0], [505, 5, 0], radius=5))
        chain = planar_arm(0, 0, low=0, high=180)
        before = chain.positions()

        assert not GeneticStrategy(config, world).solve(chain, Pose(0, 150, 0))
        assert np.allclose(chain.positions(), before)

    def test_gives_up_after_retries(self, config):
        """Test a collision that repair cannot clear exhausts the retries."""
        config.max_retries = 3
        config.genetic_generations = 5
        world = CollisionWorld()
        world.add_obstacle(CollisionItem("post", [0, 0, 0], [0, 0, 0], radius=5))
        chain = planar_arm(0, 0, low=0, high=180)

        assert not GeneticStrategy(config, world).solve(chain, Pose(0, 150, 0))

    def test_empty_chain(self, config):
        """Test solving an empty chain is an invalid state."""
        with pytest.raises(InvalidStateError):
            GeneticStrategy(config, CollisionWorld()).solve(KinematicChain(), Pose())


class TestRepair:
    """Test the local collision repair step."""

    def _collision(self, chain, other_point):
        link = CollisionItem("j1", chain.joint_position(0), chain.joint_position(1))
        obstacle = CollisionItem("wall", other_point, other_point)
        return CollisionResult(obstacle, link, np.asarray(other_point, dtype=float),
                               chain.joint_position(1), 0.0)

    def test_repair_moves_away_from_contact(self, config):
        """Test the repaired targets move the joint away from the contact point."""
        chain = planar_arm(0, 45, low=-90, high=90)
        strategy = GeneticStrategy(config, CollisionWorld())
        contact = chain.joint_position(1) + np.array([0.0, 5.0, 0.0])

        targets = strategy.repair(chain, self._collision(chain, contact))

        trial = chain.copy()
        trial.set_positions(targets)
        assert len(targets) == 2
        assert (np.linalg.norm(trial.joint_position(1) - contact)
                > np.linalg.norm(chain.joint_position(1) - contact))

    def test_repair_keeps_step_when_distance_unchanged(self, config):
        """Test joints past the colliding link keep the step instead of reversing it."""
        chain = planar_arm(0, 45)
        strategy = GeneticStrategy(config, CollisionWorld())
        own = chain.joint_position(0)
        contact = own - np.array([10.0, 10.0, 10.0])
        link = CollisionItem("j0", np.zeros(3), own)
        obstacle = CollisionItem("wall", contact, contact)
        collision = CollisionResult(obstacle, link, contact, own, 0.0)

        targets = strategy.repair(chain, collision)

        assert targets == pytest.approx([15.0, 15.0])

    def test_repair_works_on_a_copy(self, config):
        """Test repair proposes targets without moving the chain."""
        chain = planar_arm(0, 45)
        before = chain.positions()
        strategy = GeneticStrategy(config, CollisionWorld())

        strategy.repair(chain, self._collision(chain, [150, 80, 0]))

        assert np.allclose(chain.positions(), before)

    def test_repair_respects_ranges(self, config):
        """Test repaired targets pass through the range policy."""
        chain = planar_arm(0, 45, low=0, high=1)
        strategy = GeneticStrategy(config, CollisionWorld())

        targets = strategy.repair(chain, self._collision(chain, [150, 80, 0]))

        for joint, value in zip(chain, targets):
            assert joint.in_range(value)

    def test_repair_without_chain_joint(self, config):
        """Test a collision between foreign items cannot be repaired."""
        chain = planar_arm(0, 45)
        a = CollisionItem("rock", [0, 0, 0], [1, 0, 0])
        b = CollisionItem("stone", [0, 0, 0], [0, 1, 0])
        collision = CollisionResult(a, b, np.zeros(3), np.zeros(3), 0.0)

        assert GeneticStrategy(config, CollisionWorld()).repair(chain, collision) is None


if __name__ == "__main__":
    pytest.main([__file__])
