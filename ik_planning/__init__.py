"""
IK Planning Library

Inverse kinematics for DH-parameterized arms, with a collision-aware genetic
solver, paced actuation and velocity tracking.
"""

__version__ = "1.0.0"
__author__ = "Robot Planning Team"

# Import main classes for easy access
from .geometry import Pose, dh_transform, input_transform
from .kinematics import Joint, KinematicChain, ChainRegistry, KinematicsError, InvalidStateError
from .collision import CollisionItem, CollisionResult, CollisionWorld
from .genetic import Chromosome, GeneticAlgorithm
from .simulation import MotionSimulator, SimulationResult
from .actuation import ActuationScheduler, ActuationInterrupted, SimulatedServo
from .strategies import ComputeMethod, GeneticStrategy, GradientStrategy, make_strategy
from .telemetry import LoggingPublisher, RecordingPublisher
from .tracking import JoystickMapper, VelocityTracker
from .planner import InverseKinematicsPlanner
from .utils import PlanningConfig, load_config, save_config

__all__ = [
    "Pose",
    "dh_transform",
    "input_transform",
    "Joint",
    "KinematicChain",
    "ChainRegistry",
    "KinematicsError",
    "InvalidStateError",
    "CollisionItem",
    "CollisionResult",
    "CollisionWorld",
    "Chromosome",
    "GeneticAlgorithm",
    "MotionSimulator",
    "SimulationResult",
    "ActuationScheduler",
    "ActuationInterrupted",
    "SimulatedServo",
    "ComputeMethod",
    "GeneticStrategy",
    "GradientStrategy",
    "make_strategy",
    "LoggingPublisher",
    "RecordingPublisher",
    "JoystickMapper",
    "VelocityTracker",
    "InverseKinematicsPlanner",
    "PlanningConfig",
    "load_config",
    "save_config",
]
