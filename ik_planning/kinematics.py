"""
Kinematic chain model: DH joints, forward kinematics and the chain registry.

Joint angles are held in radians (absolute DH theta). The "position" of a
joint is the same angle in degrees relative to the joint's initial theta,
which is the unit actuators are commanded in.
"""

import copy
import logging
import threading
import numpy as np
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .geometry import Pose, Transform, Point3, dh_transform, transform_to_pose

logger = logging.getLogger(__name__)


class KinematicsError(Exception):
    """Base error for the planning core."""


class InvalidStateError(KinematicsError):
    """Raised when a query has no meaningful answer for the current state."""


class Joint:
    """Revolute joint described by DH parameters."""

    def __init__(self, name: str, d: float = 0.0, r: float = 0.0,
                 theta: float = 0.0, alpha: float = 0.0,
                 min_angle: float = -np.inf, max_angle: float = np.inf,
                 velocity: float = 0.0, actuator: Optional[str] = None,
                 rest: Optional[float] = None):
        """
        Initialize a joint.

        Args:
            name: Joint name, unique within its chain
            d: Link offset
            r: Link length
            theta: Initial (zero) joint angle in radians
            alpha: Link twist in radians
            min_angle: Lower angle limit in radians (absolute theta)
            max_angle: Upper angle limit in radians (absolute theta)
            velocity: Angular velocity limit in degrees/second (<= 0: instantaneous)
            actuator: Name of the bound actuator, if any
            rest: Neutral position in degrees relative to theta; defaults to
                the middle of the range
        """
        self.name = name
        self.d = float(d)
        self.r = float(r)
        self.theta0 = float(theta)
        self.alpha = float(alpha)
        self.theta = float(theta)
        self.min_angle = float(min_angle)
        self.max_angle = float(max_angle)
        self.velocity = float(velocity)
        self.actuator = actuator
        if rest is None:
            low, high = self.range_deg()
            rest = (low + high) / 2.0 if np.isfinite(low) and np.isfinite(high) else 0.0
        self.rest = float(rest)

    @property
    def position(self) -> float:
        """Joint angle in degrees relative to the initial theta."""
        return float(np.degrees(self.theta - self.theta0))

    @position.setter
    def position(self, value_deg: float):
        if not self.in_range(value_deg):
            logger.debug(f"Joint {self.name}: {value_deg:.2f} deg outside {self.range_deg()}, keeping {self.position:.2f}")
            return
        self.theta = self.theta0 + np.radians(value_deg)

    def range_deg(self) -> Tuple[float, float]:
        """Angle range in degrees relative to the initial theta."""
        return (float(np.degrees(self.min_angle - self.theta0)),
                float(np.degrees(self.max_angle - self.theta0)))

    def in_range(self, value_deg: float) -> bool:
        low, high = self.range_deg()
        return low <= value_deg <= high

    def rotate(self, delta_rad: float):
        self.theta += delta_rad

    def transform(self) -> Transform:
        return dh_transform(self.d, self.theta, self.r, self.alpha)

    def copy(self) -> 'Joint':
        return copy.copy(self)

    def __repr__(self) -> str:
        return (f"Joint(name={self.name!r}, d={self.d}, r={self.r}, "
                f"alpha={self.alpha:.3f}, position={self.position:.2f})")


class KinematicChain:
    """Ordered sequence of joints, base to tip."""

    def __init__(self, joints: Optional[Sequence[Joint]] = None):
        self._joints: List[Joint] = []
        self.lock = threading.RLock()
        for joint in joints or []:
            self.add_joint(joint)

    def add_joint(self, joint: Joint) -> Joint:
        if any(j.name == joint.name for j in self._joints):
            raise ValueError(f"Joint '{joint.name}' already exists in chain")
        self._joints.append(joint)
        return joint

    def __len__(self) -> int:
        return len(self._joints)

    def __iter__(self) -> Iterator[Joint]:
        return iter(self._joints)

    @property
    def names(self) -> List[str]:
        return [j.name for j in self._joints]

    def joint(self, index: int) -> Joint:
        if not 0 <= index < len(self._joints):
            raise IndexError(f"Joint index {index} outside chain of {len(self._joints)} joints")
        return self._joints[index]

    def joint_by_name(self, name: str) -> Joint:
        for joint in self._joints:
            if joint.name == name:
                return joint
        raise KeyError(f"No joint named '{name}'")

    def positions(self) -> np.ndarray:
        """Current joint positions in degrees."""
        return np.array([j.position for j in self._joints], dtype=float)

    def set_positions(self, values_deg: Sequence[float]):
        """Set every joint position; out-of-range values keep the prior angle."""
        if len(values_deg) != len(self._joints):
            raise ValueError(f"Expected {len(self._joints)} positions, got {len(values_deg)}")
        with self.lock:
            for joint, value in zip(self._joints, values_deg):
                joint.position = float(value)

    def accept_target(self, index: int, value_deg: float) -> float:
        """
        Range policy for proposed joint targets.

        A proposal inside the joint's range is accepted as is; anything else
        is replaced by the joint's current position (not the nearest limit).

        Args:
            index: Joint index
            value_deg: Proposed position in degrees

        Returns:
            The position to use for this joint
        """
        joint = self.joint(index)
        if joint.in_range(value_deg):
            return float(value_deg)
        return joint.position

    def move_time(self, targets_deg: Sequence[float]) -> float:
        """Time for all joints to reach targets in parallel, bounded by the slowest."""
        worst = 0.0
        for joint, target in zip(self._joints, targets_deg):
            if joint.velocity <= 0:
                continue
            worst = max(worst, abs(target - joint.position) / joint.velocity)
        return worst

    def forward_transforms(self) -> List[Transform]:
        """Accumulated transforms, starting with the identity at the base."""
        T = np.eye(4)
        transforms = [T]
        for joint in self._joints:
            T = T @ joint.transform()
            transforms.append(T)
        return transforms

    def joint_position(self, index: int) -> Point3:
        """3D position at the end of joint ``index``'s link."""
        if not self._joints:
            raise InvalidStateError("Chain has no joints")
        self.joint(index)
        return self.forward_transforms()[index + 1][:3, 3].copy()

    def joint_positions(self) -> np.ndarray:
        """Link endpoints as an (n+1)x3 array, origin first."""
        return np.array([T[:3, 3] for T in self.forward_transforms()], dtype=float)

    def forward_kinematics(self) -> Pose:
        """End-effector pose of the chain."""
        if not self._joints:
            raise InvalidStateError("Cannot compute the pose of an empty chain")
        return transform_to_pose(self.forward_transforms()[-1])

    def center_all_joints(self):
        with self.lock:
            for joint in self._joints:
                joint.position = joint.rest

    def apply_angle_delta(self, index: int, delta_rad: float):
        with self.lock:
            self.joint(index).rotate(delta_rad)

    def copy(self) -> 'KinematicChain':
        return KinematicChain([j.copy() for j in self._joints])

    def adopt(self, other: 'KinematicChain'):
        """Take over the joint angles of another chain with the same joints."""
        with self.lock:
            for joint, source in zip(self._joints, other):
                joint.theta = source.theta


class ChainRegistry:
    """Named chains with their actuator bindings; one chain is active."""

    def __init__(self):
        self._chains: Dict[str, KinematicChain] = {}
        self._actuators: Dict[str, Dict[str, object]] = {}
        self._active: Optional[str] = None

    def register(self, name: str, chain: KinematicChain,
                 actuators: Optional[Dict[str, object]] = None) -> KinematicChain:
        """Register a chain under ``name`` and make it the active one."""
        self._chains[name] = chain
        self._actuators[name] = dict(actuators or {})
        self._active = name
        logger.info(f"Registered chain '{name}' with {len(chain)} joints")
        return chain

    def select(self, name: str) -> bool:
        if name not in self._chains:
            logger.info(f"No chain registered as '{name}', keeping '{self._active}'")
            return False
        self._active = name
        return True

    def __contains__(self, name: str) -> bool:
        return name in self._chains

    @property
    def names(self) -> List[str]:
        return list(self._chains)

    @property
    def active_name(self) -> Optional[str]:
        return self._active

    @property
    def active(self) -> Optional[KinematicChain]:
        return self._chains.get(self._active) if self._active is not None else None

    def get(self, name: Optional[str] = None) -> Optional[KinematicChain]:
        """Chain registered as ``name``; the active chain when unknown or None."""
        if name is None:
            return self.active
        if name not in self._chains:
            logger.info(f"No chain registered as '{name}'")
            return self.active
        return self._chains[name]

    def actuators(self, name: Optional[str] = None) -> Dict[str, object]:
        key = self._active if name is None else name
        return self._actuators.get(key, {})

    def bind_actuator(self, name: str, actuator_name: str, actuator: object):
        self._actuators.setdefault(name, {})[actuator_name] = actuator
