"""
Geometry kernel for the planning core.

Poses are position + roll/pitch/yaw triples; transforms are plain 4x4
homogeneous numpy arrays composed by matrix product.
"""

import numpy as np
from dataclasses import dataclass
from typing import Sequence, Union
from scipy.spatial.transform import Rotation

# Type aliases
Transform = np.ndarray
Point3 = np.ndarray


@dataclass
class Pose:
    """Position (x, y, z) plus orientation (roll, pitch, yaw)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    @property
    def position(self) -> Point3:
        return np.array([self.x, self.y, self.z], dtype=float)

    @property
    def orientation(self) -> np.ndarray:
        return np.array([self.roll, self.pitch, self.yaw], dtype=float)

    def __add__(self, other: 'Pose') -> 'Pose':
        return Pose.from_array(self.as_array() + other.as_array())

    def multiply_xyz(self, factor: float) -> 'Pose':
        """Scale the position part only; orientation is carried over."""
        return Pose(self.x * factor, self.y * factor, self.z * factor,
                    self.roll, self.pitch, self.yaw)

    def distance_to(self, other: Union['Pose', Sequence[float]]) -> float:
        """Euclidean distance between positions (orientation is ignored)."""
        other_pos = other.position if isinstance(other, Pose) else np.asarray(other, dtype=float)[:3]
        return float(np.linalg.norm(self.position - other_pos))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.roll, self.pitch, self.yaw], dtype=float)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> 'Pose':
        """
        Build a pose from 3 (position only) or 6 values.

        Args:
            values: [x, y, z] or [x, y, z, roll, pitch, yaw]

        Returns:
            Pose
        """
        values = np.asarray(values, dtype=float).ravel()
        if values.shape in ((3,), (6,)):
            return cls(*values.tolist())
        raise ValueError(f"Invalid pose format: {values.shape}")

    def __str__(self) -> str:
        return (f"Pose(x={self.x:.3f}, y={self.y:.3f}, z={self.z:.3f}, "
                f"roll={self.roll:.3f}, pitch={self.pitch:.3f}, yaw={self.yaw:.3f})")


def translation(dx: float, dy: float, dz: float) -> Transform:
    T = np.eye(4)
    T[:3, 3] = [dx, dy, dz]
    return T


def rotation_x(angle: float) -> Transform:
    T = np.eye(4)
    T[:3, :3] = Rotation.from_euler('x', angle).as_matrix()
    return T


def rotation_y(angle: float) -> Transform:
    T = np.eye(4)
    T[:3, :3] = Rotation.from_euler('y', angle).as_matrix()
    return T


def rotation_z(angle: float) -> Transform:
    T = np.eye(4)
    T[:3, :3] = Rotation.from_euler('z', angle).as_matrix()
    return T


def dh_transform(d: float, theta: float, r: float, alpha: float) -> Transform:
    """
    Standard Denavit-Hartenberg link transform Rz(theta) Tz(d) Tx(r) Rx(alpha).

    Args:
        d: Link offset along the previous z axis
        theta: Joint angle about the previous z axis (radians)
        r: Link length along the new x axis
        alpha: Link twist about the new x axis (radians)

    Returns:
        4x4 homogeneous transform
    """
    ct, st = np.cos(theta), np.sin(theta)
    ca, sa = np.cos(alpha), np.sin(alpha)
    return np.array([
        [ct, -st * ca, st * sa, r * ct],
        [st, ct * ca, -ct * sa, r * st],
        [0.0, sa, ca, d],
        [0.0, 0.0, 0.0, 1.0],
    ], dtype=float)


def compose(*transforms: Transform) -> Transform:
    """Multiply transforms left to right; identity when called without arguments."""
    T = np.eye(4)
    for step in transforms:
        T = T @ step
    return T


def input_transform(dx: float, dy: float, dz: float,
                    roll: float, pitch: float, yaw: float) -> Transform:
    """
    Build the global input transform applied to incoming target poses.

    Roll rotates about z, pitch about x and yaw about y; the rotation is
    Rz(roll) Ry(yaw) Rx(pitch) and is applied before the translation.

    Args:
        dx, dy, dz: Translation
        roll, pitch, yaw: Rotation angles in degrees

    Returns:
        4x4 homogeneous transform
    """
    T = translation(dx, dy, dz)
    T[:3, :3] = Rotation.from_euler('ZYX', [roll, yaw, pitch], degrees=True).as_matrix()
    return T


def apply_transform(T: Transform, pose: Pose) -> Pose:
    """Transform the position of a pose; its orientation is kept as given."""
    p = T @ np.append(pose.position, 1.0)
    return Pose(p[0], p[1], p[2], pose.roll, pose.pitch, pose.yaw)


def matrix_to_rpy(R: np.ndarray) -> np.ndarray:
    """Roll/pitch/yaw (radians, xyz convention) of a 3x3 rotation matrix."""
    return Rotation.from_matrix(R).as_euler('xyz', degrees=False)


def transform_to_pose(T: Transform) -> Pose:
    rpy = matrix_to_rpy(T[:3, :3])
    return Pose(T[0, 3], T[1, 3], T[2, 3], rpy[0], rpy[1], rpy[2])
