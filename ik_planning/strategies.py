"""
Interchangeable solving strategies for moving a chain's end-effector to a goal.

Both strategies implement ``solve(chain, goal) -> bool`` and mutate the
chain's joint angles:

- GradientStrategy: damped pseudo-inverse Jacobian descent, purely numeric.
- GeneticStrategy: genetic search scored by forward kinematics or motion
  simulation, committed through the simulator, paced to the actuators and
  repaired locally when the committed state collides.
"""

import logging
import numpy as np
from enum import Enum
from typing import Dict, List, Optional, Protocol

from .actuation import ActuationScheduler, Actuator
from .collision import CollisionResult, CollisionWorld
from .genetic import Chromosome, GeneticAlgorithm, decode_genome
from .geometry import Pose
from .kinematics import InvalidStateError, KinematicChain
from .simulation import MotionSimulator
from .utils import PlanningConfig

logger = logging.getLogger(__name__)

FITNESS_SCALE = 1000.0
MIN_DISTANCE = 1e-9
# seconds; move time is advisory and does not enter the fitness
MIN_MOVE_TIME = 0.1


class ComputeMethod(Enum):
    """Available solving strategies."""
    JACOBIAN = "jacobian"
    GENETIC = "genetic"

    @classmethod
    def from_value(cls, value) -> 'ComputeMethod':
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for method in cls:
            if key in (method.value, method.name.lower()):
                return method
        raise ValueError(f"Unknown compute method: {value}")


class SolveStrategy(Protocol):
    """Contract shared by all strategies."""

    def solve(self, chain: KinematicChain, goal: Pose) -> bool: ...


def fitness(distance: float) -> float:
    """Score of an end-effector ``distance`` away from the goal; never negative."""
    return abs(FITNESS_SCALE / max(distance, MIN_DISTANCE))


class GradientStrategy:
    """Pseudo-inverse Jacobian gradient descent on the end-effector position."""

    def __init__(self, max_iterations: int = 1000, tolerance: float = 0.5,
                 damping: float = 0.05, max_step_deg: float = 5.0,
                 epsilon_deg: float = 1e-3):
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.damping = damping
        self.max_step_deg = max_step_deg
        self.epsilon_deg = epsilon_deg

    def jacobian(self, chain: KinematicChain) -> np.ndarray:
        """Finite-difference position Jacobian, 3 x n, per degree of joint motion."""
        base = chain.forward_kinematics().position
        J = np.zeros((3, len(chain)))
        nudged = chain.copy()
        step = np.radians(self.epsilon_deg)
        for i in range(len(nudged)):
            nudged.apply_angle_delta(i, step)
            J[:, i] = (nudged.forward_kinematics().position - base) / self.epsilon_deg
            nudged.apply_angle_delta(i, -step)
        return J

    def solve(self, chain: KinematicChain, goal: Pose) -> bool:
        target = goal.position
        with chain.lock:
            for iteration in range(self.max_iterations):
                error = target - chain.forward_kinematics().position
                distance = float(np.linalg.norm(error))
                if distance <= self.tolerance:
                    logger.debug(f"Gradient solve converged in {iteration} iterations")
                    return True

                J = self.jacobian(chain)
                JJt = J @ J.T
                dq = J.T @ np.linalg.solve(JJt + (self.damping ** 2) * np.eye(3), error)
                largest = np.max(np.abs(dq))
                if largest > self.max_step_deg:
                    dq *= self.max_step_deg / largest

                before = chain.positions()
                for joint, delta in zip(chain, dq):
                    joint.position = joint.position + float(delta)
                if np.allclose(before, chain.positions()):
                    logger.debug(f"Gradient solve stalled at distance {distance:.3f}")
                    break

            distance = chain.forward_kinematics().distance_to(goal)
        converged = distance <= self.tolerance
        if not converged:
            logger.info(f"Gradient solve did not converge, distance to goal {distance:.3f}")
        return converged


class GeneticStrategy:
    """Genetic search with simulated commit, paced actuation and collision repair."""

    def __init__(self, config: PlanningConfig, world: CollisionWorld,
                 actuators: Optional[Dict[str, Actuator]] = None,
                 scheduler: Optional[ActuationScheduler] = None,
                 rng: Optional[np.random.Generator] = None, arm: str = "arm"):
        self.config = config
        self.world = world
        self.actuators = actuators if actuators is not None else {}
        self.scheduler = scheduler or ActuationScheduler()
        self.rng = rng if rng is not None else np.random.default_rng(config.random_seed)
        self.simulator = MotionSimulator(world, config.sim_initial_step,
                                         config.sim_step_increment, config.link_radius, owner=arm)

        self._chain: Optional[KinematicChain] = None
        self._goal: Optional[Pose] = None
        self.settle_time = 0.0

    # Genetic problem interface

    def prepare(self, chain: KinematicChain, goal: Pose):
        """Bind the chain and goal that decoding and scoring refer to."""
        self._chain, self._goal = chain, goal

    def decode(self, pool: List[Chromosome]):
        chain = self._chain
        for chromosome in pool:
            raw = decode_genome(chromosome.genome, self.config.gene_bits)
            chromosome.decoded = [chain.accept_target(i, value) for i, value in enumerate(raw)]

    def calc_fitness(self, pool: List[Chromosome]):
        chain = self._chain
        for chromosome in pool:
            if self.config.genetic_compute_simulation:
                candidate = self.simulator.simulate(chain, chromosome.decoded).chain
            else:
                candidate = chain.copy()
                candidate.set_positions(chromosome.decoded)
            distance = candidate.forward_kinematics().distance_to(self._goal)
            chromosome.fitness = fitness(distance)

    # Solve loop

    def solve(self, chain: KinematicChain, goal: Pose) -> bool:
        if not len(chain):
            raise InvalidStateError("Cannot solve for an empty chain")

        distance = chain.forward_kinematics().distance_to(goal)
        if distance <= self.config.goal_tolerance:
            logger.info("Goal already reached, nothing to move")
            return True

        self.prepare(chain, goal)
        self.settle_time = 0.0
        ga = GeneticAlgorithm(self, self.config.genetic_pool_size, len(chain),
                              self.config.gene_bits, self.config.genetic_recombination_rate,
                              self.config.genetic_mutation_rate, self.rng)
        try:
            for attempt in range(1, self.config.max_retries + 1):
                best = ga.do_generation(self.config.genetic_generations)
                logger.debug(f"Attempt {attempt}: best candidate {best.decoded} (fitness {best.fitness:.4g})")

                collision = self.commit(chain, best.decoded)
                if collision is None:
                    logger.info(f"Genetic solve committed after {attempt} attempt(s), "
                                f"distance to goal {chain.forward_kinematics().distance_to(goal):.3f}")
                    return True

                repaired = self.repair(chain, collision)
                if repaired is None:
                    logger.info(f"Collision between uncontrolled items {collision.names[0]} "
                                f"and {collision.names[1]}, aborting")
                    return False

                collision = self.commit(chain, repaired)
                if collision is None:
                    logger.info(f"Genetic solve committed after repair on attempt {attempt}")
                    return True

            logger.warning(f"Genetic solve gave up after {self.config.max_retries} attempts")
            return False
        finally:
            self._chain, self._goal = None, None

    def commit(self, chain: KinematicChain, targets: List[float]) -> Optional[CollisionResult]:
        """
        Simulate the move to ``targets``, adopt the reached state and actuate it.

        Actuators are paced with the settle time of the previous commit; this
        commit's move time becomes the settle time of the next one.

        Returns:
            The collision left in the world after actuation, or None
        """
        with chain.lock:
            move_time = chain.move_time(targets)
            result = self.simulator.simulate(chain, targets)
            chain.adopt(result.chain)
        logger.debug(f"Committed {chain.positions().round(1).tolist()} "
                     f"(move time {max(move_time, MIN_MOVE_TIME):.2f}s, {result.steps} steps)")

        self.scheduler.actuate(chain, self.actuators, self.settle_time)
        self.settle_time = move_time
        return self.world.evaluate()

    def repair(self, chain: KinematicChain, collision: CollisionResult) -> Optional[List[float]]:
        """
        Propose joint targets that move the chain away from a collision.

        The controlled side is the first chain joint (in chain order) named in
        the collision. A step of ``repair_step_deg`` per axis is signed by
        comparing that side's contact point with the other side's, and summed.
        Each joint in turn is rotated by the step; when that brings the
        controlled joint closer to the opposing contact point, the joint is
        rotated back by twice the step. A step that leaves the distance
        unchanged is kept.

        Returns:
            Target positions in degrees, or None when neither side is a joint
        """
        names = collision.names
        link_index = item_index = None
        for i, name in enumerate(chain.names):
            if name in names:
                link_index, item_index = i, names.index(name)
                break
        if link_index is None:
            return None

        points = collision.points()
        own_point, other_point = points[item_index], points[1 - item_index]
        step = self.config.repair_step_deg
        delta = sum(step if own_point[axis] >= other_point[axis] else -step for axis in range(3))

        trial = chain.copy()
        targets = []
        for i in range(len(trial)):
            before = np.linalg.norm(trial.joint_position(link_index) - other_point)
            trial.apply_angle_delta(i, np.radians(delta))
            after = np.linalg.norm(trial.joint_position(link_index) - other_point)
            if after < before:
                trial.apply_angle_delta(i, np.radians(-2 * delta))
            targets.append(chain.accept_target(i, trial.joint(i).position))
        logger.debug(f"Repair of '{chain.names[link_index]}' by {delta:+.0f} deg -> {np.round(targets, 1).tolist()}")
        return targets


def make_strategy(config: PlanningConfig, world: CollisionWorld,
                  actuators: Optional[Dict[str, Actuator]] = None,
                  scheduler: Optional[ActuationScheduler] = None,
                  rng: Optional[np.random.Generator] = None, arm: str = "arm") -> SolveStrategy:
    """Build the strategy selected by ``config.compute_method`` for the arm named ``arm``."""
    method = ComputeMethod.from_value(config.compute_method)
    if method is ComputeMethod.GENETIC:
        return GeneticStrategy(config, world, actuators, scheduler, rng, arm)
    return GradientStrategy(config.gradient_max_iterations, config.gradient_tolerance,
                            config.gradient_damping, config.gradient_max_step_deg)
