#!/usr/bin/env python3
"""
Inverse kinematics planner service.

Ties the chain registry, collision world, solving strategies, actuator pacing,
telemetry and velocity tracking together behind one facade. Every operation
works on an explicit chain (by name) or on the registry's active chain.
"""

import logging
import threading
import time
import numpy as np
from typing import Callable, Dict, List, Optional, Sequence, Union

from .actuation import ActuationInterrupted, ActuationScheduler, Actuator
from .collision import CollisionItem, CollisionWorld
from .geometry import Pose, Transform, apply_transform, input_transform
from .kinematics import ChainRegistry, InvalidStateError, Joint, KinematicChain
from .strategies import ComputeMethod, SolveStrategy, make_strategy
from .telemetry import LoggingPublisher, TelemetryPublisher, joint_position_map, publish_chain
from .tracking import JoystickMapper, VelocityTracker
from .utils import PlanningConfig

logger = logging.getLogger(__name__)

PoseLike = Union[Pose, Sequence[float]]


class InverseKinematicsPlanner:
    """DH-chain inverse kinematics service with collision-aware genetic search."""

    def __init__(self, config: Optional[PlanningConfig] = None,
                 telemetry: Optional[TelemetryPublisher] = None,
                 clock: Callable[[], float] = time.monotonic,
                 rng: Optional[np.random.Generator] = None,
                 name: str = "ik3d"):
        self.name = name
        self.config = config or PlanningConfig()
        self.telemetry = telemetry or LoggingPublisher()
        self.registry = ChainRegistry()
        self.world = CollisionWorld()
        self.scheduler = ActuationScheduler(clock=clock)
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        self.input_matrix: Optional[Transform] = None

        self.tracker = VelocityTracker(self, self.config.tracking_interval, name=f"{name}_tracking")
        self.joystick = JoystickMapper(self.tracker, self.config.joystick_threshold,
                                       self.config.joystick_gain)

        self._solve_locks: Dict[str, threading.Lock] = {}

        logger.info(f"Inverse kinematics planner '{name}' initialized "
                    f"(compute method: {self.config.compute_method})")

    # ==========================================================================
    # CHAINS
    # ==========================================================================

    def add_arm(self, name: str, chain: KinematicChain,
                actuators: Optional[Dict[str, Actuator]] = None) -> KinematicChain:
        """Register ``chain`` under ``name`` and make it the current arm."""
        self._solve_locks.setdefault(name, threading.Lock())
        return self.registry.register(name, chain, actuators)

    def new_arm(self, name: str) -> KinematicChain:
        return self.add_arm(name, KinematicChain())

    def change_arm(self, name: str) -> bool:
        return self.registry.select(name)

    @property
    def current_arm(self) -> Optional[KinematicChain]:
        return self.registry.active

    def get_arm(self, name: Optional[str] = None) -> Optional[KinematicChain]:
        return self.registry.get(name)

    def _resolve(self, arm: Optional[str]) -> Optional[str]:
        if arm is not None and self.change_arm(arm):
            return arm
        return self.registry.active_name

    def _chain(self, arm: Optional[str] = None) -> KinematicChain:
        chain = self.registry.get(arm)
        if chain is None:
            raise InvalidStateError("No arm registered")
        return chain

    def add_joint(self, name: str, d: float, theta: float, r: float, alpha: float,
                  arm: Optional[str] = None, actuator: Optional[Actuator] = None,
                  min_deg: Optional[float] = None, max_deg: Optional[float] = None,
                  velocity: Optional[float] = None) -> Joint:
        """
        Append a DH joint to an arm.

        With an actuator, the joint range is ``theta`` plus the actuator's input
        range, and its position and velocity are taken from the actuator.

        Args:
            name: Joint name
            d: Link offset
            theta: Initial joint angle in degrees
            r: Link length
            alpha: Link twist in degrees
            arm: Arm to extend (current arm if None; created if unknown)
            actuator: Actuator driving the joint
            min_deg: Lower limit in degrees relative to theta
            max_deg: Upper limit in degrees relative to theta
            velocity: Velocity limit in degrees/second

        Returns:
            The new joint
        """
        if arm is not None and arm not in self.registry:
            logger.info(f"No arm named '{arm}', creating it for joint '{name}'")
            self.new_arm(arm)
        arm_name = self._resolve(arm)
        if arm_name is None:
            arm_name = "default"
            logger.info(f"No arm registered, creating '{arm_name}' for joint '{name}'")
            self.new_arm(arm_name)
        chain = self.registry.get(arm_name)

        if actuator is not None:
            limits = (getattr(actuator, 'min_input', -np.inf), getattr(actuator, 'max_input', np.inf))
            low = min(limits) if min_deg is None else min_deg
            high = max(limits) if max_deg is None else max_deg
            velocity = actuator.velocity if velocity is None else velocity
        else:
            low = -np.inf if min_deg is None else min_deg
            high = np.inf if max_deg is None else max_deg

        joint = Joint(name, d=d, r=r, theta=np.radians(theta), alpha=np.radians(alpha),
                      min_angle=np.radians(theta + low), max_angle=np.radians(theta + high),
                      velocity=velocity or 0.0,
                      actuator=actuator.name if actuator is not None else None)
        if actuator is not None:
            joint.position = actuator.current_angle
            self.registry.bind_actuator(arm_name, actuator.name, actuator)
            if hasattr(actuator, 'add_listener'):
                actuator.add_listener(self.on_actuator_feedback)
        chain.add_joint(joint)
        return joint

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def current_position(self, arm: Optional[str] = None) -> Pose:
        """
        End-effector pose of ``arm`` (current arm if None).

        An unknown arm name is logged and reported as the origin.

        Raises:
            InvalidStateError: If no arm is registered or the arm has no joints
        """
        if arm is not None and arm not in self.registry:
            logger.info(f"IK service has no data for {arm}")
            return Pose()
        return self._chain(arm).forward_kinematics()

    def joint_position_map(self, arm: Optional[str] = None) -> np.ndarray:
        return joint_position_map(self._chain(arm))

    def publish_telemetry(self, arm: Optional[str] = None):
        publish_chain(self.telemetry, self._chain(arm))

    def center_all_joints(self, arm: Optional[str] = None):
        if arm is not None and arm not in self.registry:
            logger.info(f"IK service has no data for {arm}")
            return
        chain = self.registry.get(arm)
        if chain is None:
            logger.info("No arm registered, nothing to center")
            return
        chain.center_all_joints()
        self.publish_telemetry(arm)

    # ==========================================================================
    # MOTION
    # ==========================================================================

    def create_input_matrix(self, dx: float, dy: float, dz: float,
                            roll: float, pitch: float, yaw: float) -> Transform:
        """Set the transform applied to every target (angles in degrees)."""
        self.input_matrix = input_transform(dx, dy, dz, roll, pitch, yaw)
        return self.input_matrix

    def clear_input_matrix(self):
        self.input_matrix = None

    def rotate_and_translate(self, pose: Pose) -> Pose:
        if self.input_matrix is None:
            return pose
        return apply_transform(self.input_matrix, pose)

    def strategy_for(self, arm: str) -> SolveStrategy:
        return make_strategy(self.config, self.world, self.registry.actuators(arm),
                             self.scheduler, self.rng, arm)

    def move_to(self, target: PoseLike, arm: Optional[str] = None) -> bool:
        """
        Move the end-effector of ``arm`` (current arm if None) to ``target``.

        Args:
            target: Pose or [x, y, z(, roll, pitch, yaw)]
            arm: Arm name; switches the current arm when known

        Returns:
            True when the strategy reported success (telemetry is published)

        Raises:
            ActuationInterrupted: If a pacing wait was interrupted
        """
        pose = target if isinstance(target, Pose) else Pose.from_array(target)
        pose = self.rotate_and_translate(pose)

        arm_name = self._resolve(arm)
        if arm_name is None:
            logger.warning("No arm registered, ignoring move")
            return False
        chain = self.registry.get(arm_name)
        strategy = self.strategy_for(arm_name)

        with self._solve_locks.setdefault(arm_name, threading.Lock()):
            try:
                success = strategy.solve(chain, pose)
            except ActuationInterrupted:
                logger.error(f"Move of '{arm_name}' to {pose} interrupted")
                self.scheduler.reset()
                raise

        if success:
            self.publish_telemetry(arm_name)
        return success

    def on_points(self, points: List[PoseLike]):
        """Follow a point source; only the first point is used."""
        if points:
            self.move_to(points[0])

    def on_actuator_feedback(self, actuator_name: str, position_deg: float):
        """Update the joint driven by ``actuator_name`` in the arm the actuator is bound to."""
        owners = [name for name in self.registry.names if actuator_name in self.registry.actuators(name)]
        if not owners:
            logger.debug(f"Feedback from unbound actuator '{actuator_name}' ignored")
            return
        for arm in owners:
            chain = self.registry.get(arm)
            with chain.lock:
                for joint in chain:
                    if joint.actuator == actuator_name:
                        joint.position = position_deg

    def interrupt(self):
        """Interrupt the pacing wait of an in-flight move."""
        self.scheduler.interrupt()

    # ==========================================================================
    # OBSTACLES
    # ==========================================================================

    def add_object(self, origin: Sequence[float], end: Sequence[float], name: str,
                   radius: float = 0.0) -> str:
        """Register a static capsule obstacle; returns its name."""
        return self.world.add_obstacle(CollisionItem(name, origin, end, radius))

    def add_sphere(self, center: Sequence[float], name: str, radius: float) -> str:
        return self.add_object(center, center, name, radius)

    def clear_objects(self):
        self.world.clear()

    def object_add_ignore(self, name_a: str, name_b: str):
        self.world.add_ignore_pair(name_a, name_b)

    # ==========================================================================
    # TUNING
    # ==========================================================================

    def set_compute_method(self, method: Union[str, ComputeMethod]):
        self.config.compute_method = ComputeMethod.from_value(method).value

    def set_compute_method_jacobian(self):
        self.set_compute_method(ComputeMethod.JACOBIAN)

    def set_compute_method_genetic(self):
        self.set_compute_method(ComputeMethod.GENETIC)

    def set_genetic_pool_size(self, size: int):
        self.config.genetic_pool_size = size

    def set_genetic_mutation_rate(self, rate: float):
        self.config.genetic_mutation_rate = rate

    def set_genetic_recombination_rate(self, rate: float):
        self.config.genetic_recombination_rate = rate

    def set_genetic_generation(self, generations: int):
        self.config.genetic_generations = generations

    def set_genetic_compute_simulation(self, compute: bool):
        self.config.genetic_compute_simulation = compute

    # ==========================================================================
    # TRACKING
    # ==========================================================================

    def start_tracking(self):
        self.tracker.start()

    def stop_tracking(self):
        self.tracker.stop()

    def on_joystick_input(self, input_id: str, value: float = 0.0):
        self.joystick.on_input(input_id, value)
