"""
Velocity tracking: a periodic task integrating a linear velocity into a
moving target and sending the planner after it.
"""

import logging
import threading
import time
from typing import Optional

from .actuation import ActuationInterrupted
from .geometry import Pose
from .kinematics import KinematicsError

logger = logging.getLogger(__name__)


class VelocityTracker:
    """Cancellable periodic task driving ``planner.move_to`` from a velocity."""

    def __init__(self, planner, interval: float = 0.25, name: str = "ik_tracking"):
        """
        Initialize the tracker.

        Args:
            planner: Object exposing ``current_position()``, ``move_to(pose)``
                and ``telemetry``
            interval: Tick period in seconds
            name: Name of the background thread
        """
        self.planner = planner
        self.interval = interval
        self.name = name
        self._velocity = Pose()
        self._velocity_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def velocity(self) -> Pose:
        with self._velocity_lock:
            return Pose(**vars(self._velocity))

    @velocity.setter
    def velocity(self, value: Pose):
        with self._velocity_lock:
            self._velocity = Pose(value.x, value.y, value.z)

    def set_axis(self, axis: str, value: float):
        """Set one linear velocity component ('x', 'y' or 'z')."""
        if axis not in ('x', 'y', 'z'):
            raise ValueError(f"Unknown velocity axis: {axis}")
        with self._velocity_lock:
            setattr(self._velocity, axis, float(value))

    @property
    def is_tracking(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            self.stop()
        logger.info(f"Starting velocity tracking thread {self.name}")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, wait: bool = True, timeout: Optional[float] = None):
        """Ask the loop to exit after its current tick."""
        self._stop.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info(f"Velocity tracking {self.name} stopped")

    def tick(self) -> Pose:
        """Run one tracking step and return the target it moved to."""
        current = self.planner.current_position()
        # velocities carry no orientation
        target = current + self.velocity.multiply_xyz(self.interval)
        if target.distance_to(current) > 0:
            logger.info(f"Velocity: {self.velocity} Old: {current} New: {target}")
        self.planner.telemetry.publish_tracking(target)
        self.planner.move_to(target)
        return target

    def _run(self):
        next_tick = time.monotonic() + self.interval
        while not self._stop.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.tick()
            except ActuationInterrupted:
                logger.error("Tracking tick interrupted, stopping tracking")
                self._stop.set()
                break
            except KinematicsError as e:
                logger.error(f"Tracking tick failed: {e}, stopping tracking")
                self._stop.set()
                break
            next_tick = time.monotonic() + self.interval


class JoystickMapper:
    """Maps joystick axes and buttons onto a velocity tracker."""

    AXES = {'x': ('x', 1.0), 'y': ('y', -1.0), 'ry': ('z', 1.0)}

    def __init__(self, tracker: VelocityTracker, threshold: float = 0.1, gain: float = 100.0):
        self.tracker = tracker
        self.threshold = threshold
        self.gain = gain

    def on_input(self, input_id: str, value: float = 0.0):
        """
        Handle one joystick event.

        Button "0" starts tracking, button "1" stops it. Axis values below the
        threshold are zeroed, then scaled by the gain; x and ry drive x and z,
        y drives y inverted.
        """
        if input_id == "0":
            logger.info("Start tracking button pushed")
            self.tracker.start()
        elif input_id == "1":
            self.tracker.stop(wait=False)

        if abs(value) < self.threshold:
            value = 0.0
        if input_id in self.AXES:
            axis, sign = self.AXES[input_id]
            self.tracker.set_axis(axis, value * sign * self.gain)
