"""
Time-stepped motion simulation.

Moves every joint toward its target at its own velocity limit and checks the
collision world after each step, so a candidate can be scored or committed
with a realistic arrival state.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence

from .collision import CollisionResult, CollisionWorld
from .kinematics import KinematicChain

logger = logging.getLogger(__name__)

# degrees; radian round trips are not exact
POSITION_TOLERANCE = 1e-9


@dataclass
class SimulationResult:
    """Outcome of a simulated move."""
    chain: KinematicChain
    collision: Optional[CollisionResult] = None
    elapsed: float = 0.0
    steps: int = 0

    @property
    def collided(self) -> bool:
        return self.collision is not None


class MotionSimulator:
    """Simulates joint motion toward a target vector in growing time steps."""

    def __init__(self, world: CollisionWorld, initial_step: float = 0.1,
                 step_increment: float = 0.2, link_radius: float = 0.0, owner: str = "arm"):
        self.world = world
        self.owner = owner
        self.initial_step = initial_step
        self.step_increment = step_increment
        self.link_radius = link_radius

    def step(self, chain: KinematicChain, targets: Sequence[float], step_time: float) -> bool:
        """
        Move each joint of ``chain`` toward its target for ``step_time`` seconds.

        Joints never overshoot; a joint without a velocity limit jumps to its
        target.

        Returns:
            True if any joint moved
        """
        moved = False
        for joint, target in zip(chain, targets):
            current = joint.position
            remaining = float(target) - current
            if abs(remaining) < POSITION_TOLERANCE:
                continue
            if joint.velocity > 0:
                delta = min(abs(remaining), step_time * joint.velocity)
            else:
                delta = abs(remaining)
            new_position = current + np.sign(remaining) * delta
            joint.theta = joint.theta0 + np.radians(new_position)
            moved = True
        return moved

    def refresh_world(self, chain: KinematicChain) -> Optional[CollisionResult]:
        """Rebuild this owner's link segments from ``chain`` and evaluate the world."""
        items = CollisionWorld.link_items(chain.names, chain.joint_positions(), self.link_radius)
        with self.world.lock:
            self.world.update_links(items, self.owner)
            return self.world.evaluate()

    def simulate(self, chain: KinematicChain, targets: Sequence[float]) -> SimulationResult:
        """
        Simulate the move of ``chain`` to ``targets`` (degrees).

        The input chain is not modified. On a collision the last collision-free
        state is returned together with the collision that stopped the move.

        Args:
            chain: Chain in its current state
            targets: Target positions in degrees, one per joint

        Returns:
            SimulationResult
        """
        if len(targets) != len(chain):
            raise ValueError(f"Expected {len(chain)} targets, got {len(targets)}")

        last_free = chain.copy()
        step_time = self.initial_step
        elapsed = 0.0
        steps = 0
        while True:
            candidate = last_free.copy()
            moved = self.step(candidate, targets, step_time)
            steps += 1
            collision = self.refresh_world(candidate)
            if collision is not None:
                logger.debug(f"Collision {collision.names} after {steps} steps, keeping last free state")
                return SimulationResult(last_free, collision, elapsed, steps)
            last_free = candidate
            if not moved:
                break
            elapsed += step_time
            step_time += self.step_increment
        return SimulationResult(last_free, None, elapsed, steps)
