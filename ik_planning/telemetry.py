"""
Telemetry published after successful moves and tracking ticks.
"""

import logging
import numpy as np
from typing import Callable, Dict, List, Protocol

from .geometry import Pose
from .kinematics import KinematicChain

logger = logging.getLogger(__name__)


class TelemetryPublisher(Protocol):
    """Sink for joint angles, link endpoints and tracked targets."""

    def publish_joint_angles(self, angles: Dict[str, float]) -> None: ...

    def publish_joint_positions(self, positions: np.ndarray) -> None: ...

    def publish_tracking(self, target: Pose) -> None: ...


def joint_angle_map(chain: KinematicChain) -> Dict[str, float]:
    """Joint name -> absolute joint angle in degrees, wrapped to [0, 360)."""
    return {joint.name: float(np.degrees(joint.theta) % 360.0) for joint in chain}


def joint_position_map(chain: KinematicChain) -> np.ndarray:
    """(n+1)x3 array of link endpoints, origin first."""
    return chain.joint_positions()


class LoggingPublisher:
    """Publisher that only logs what it is given."""

    def publish_joint_angles(self, angles: Dict[str, float]):
        logger.debug(f"Joint angles: {angles}")

    def publish_joint_positions(self, positions: np.ndarray):
        logger.debug(f"Joint positions: {positions.round(3).tolist()}")

    def publish_tracking(self, target: Pose):
        logger.debug(f"Tracking target: {target}")


class RecordingPublisher:
    """Publisher keeping every message, with optional listeners per topic."""

    def __init__(self):
        self.joint_angles: List[Dict[str, float]] = []
        self.joint_positions: List[np.ndarray] = []
        self.tracking: List[Pose] = []
        self._listeners: Dict[str, List[Callable]] = {
            'joint_angles': [],
            'joint_positions': [],
            'tracking': [],
        }

    def add_listener(self, topic: str, callback: Callable):
        if topic not in self._listeners:
            raise ValueError(f"Unknown telemetry topic: {topic}")
        self._listeners[topic].append(callback)

    def _notify(self, topic: str, message):
        for callback in self._listeners[topic]:
            callback(message)

    def publish_joint_angles(self, angles: Dict[str, float]):
        self.joint_angles.append(dict(angles))
        self._notify('joint_angles', angles)

    def publish_joint_positions(self, positions: np.ndarray):
        self.joint_positions.append(np.array(positions, copy=True))
        self._notify('joint_positions', positions)

    def publish_tracking(self, target: Pose):
        self.tracking.append(target)
        self._notify('tracking', target)


def publish_chain(publisher: TelemetryPublisher, chain: KinematicChain):
    """Publish the joint angles and joint positions of ``chain``."""
    publisher.publish_joint_angles(joint_angle_map(chain))
    publisher.publish_joint_positions(joint_position_map(chain))
