"""
Actuator contract and command pacing.

Actuators do not acknowledge completion. A command is only sent once the
actuator's previous command had time to finish, i.e. once the clock passes
``last_activity_time + settle_time``.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .kinematics import KinematicChain, KinematicsError

logger = logging.getLogger(__name__)


class ActuationInterrupted(KinematicsError):
    """Raised when a pacing wait is interrupted; the current cycle is abandoned."""


class Actuator(Protocol):
    """Per-joint actuator as seen by the planner."""

    name: str

    @property
    def current_angle(self) -> float: ...

    @property
    def last_activity_time(self) -> float: ...

    @property
    def velocity(self) -> float: ...

    def move_to(self, angle_deg: float) -> None: ...


class SimulatedServo:
    """In-memory actuator that records the commands it receives."""

    def __init__(self, name: str, position: float = 0.0, velocity: float = 60.0,
                 min_input: float = 0.0, max_input: float = 180.0,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self._position = float(position)
        self._velocity = float(velocity)
        self.min_input = min_input
        self.max_input = max_input
        self._clock = clock
        self._last_activity = clock()
        self.commands: List[Tuple[float, float]] = []
        self.listeners: List[Callable[[str, float], None]] = []

    @property
    def current_angle(self) -> float:
        return self._position

    @property
    def last_activity_time(self) -> float:
        return self._last_activity

    @last_activity_time.setter
    def last_activity_time(self, value: float):
        self._last_activity = value

    @property
    def velocity(self) -> float:
        return self._velocity

    @velocity.setter
    def velocity(self, value: float):
        self._velocity = float(value)

    def move_to(self, angle_deg: float):
        now = self._clock()
        self._position = float(angle_deg)
        self._last_activity = now
        self.commands.append((now, float(angle_deg)))
        for listener in self.listeners:
            listener(self.name, self._position)

    def add_listener(self, listener: Callable[[str, float], None]):
        """Register a position feedback callback ``listener(name, position_deg)``."""
        self.listeners.append(listener)

    def __repr__(self) -> str:
        return f"SimulatedServo(name={self.name!r}, position={self._position:.1f})"


class ActuationScheduler:
    """Paces actuator commands against each actuator's last activity."""

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 interrupt: Optional[threading.Event] = None):
        self.clock = clock
        self.interrupt_event = interrupt if interrupt is not None else threading.Event()
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, actuator: Actuator) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(id(actuator), threading.Lock())

    def interrupt(self):
        self.interrupt_event.set()

    def reset(self):
        self.interrupt_event.clear()

    def wait_for(self, actuator: Actuator, settle_time: float) -> float:
        """
        Block until ``actuator`` has been idle for ``settle_time`` seconds.

        Args:
            actuator: Actuator about to be commanded
            settle_time: Expected duration of its previous command, in seconds

        Returns:
            Seconds spent waiting

        Raises:
            ActuationInterrupted: If the interrupt event is set while waiting
        """
        start = self.clock()
        while True:
            if self.interrupt_event.is_set():
                logger.error(f"Pacing wait for '{actuator.name}' interrupted")
                raise ActuationInterrupted(f"Pacing wait for '{actuator.name}' interrupted")
            remaining = actuator.last_activity_time + settle_time - self.clock()
            if remaining <= 0:
                return self.clock() - start
            self.interrupt_event.wait(remaining)

    def command(self, actuator: Actuator, angle_deg: float, settle_time: float) -> float:
        """Wait out the settle window of ``actuator`` and send it ``angle_deg``."""
        with self._lock_for(actuator):
            waited = self.wait_for(actuator, settle_time)
            actuator.move_to(angle_deg)
        return waited

    def actuate(self, chain: KinematicChain, actuators: Dict[str, Actuator],
                settle_time: float) -> int:
        """
        Command every joint of ``chain`` to its current position.

        Joints are paced one at a time in chain order. The chain's lock is
        not held while waiting.

        Args:
            chain: Chain whose positions are sent
            actuators: Actuators by name
            settle_time: Settle window applied to each actuator, in seconds

        Returns:
            Number of commands issued
        """
        with chain.lock:
            targets = [(joint.actuator or joint.name, int(round(joint.position))) for joint in chain]

        issued = 0
        for actuator_name, angle in targets:
            actuator = actuators.get(actuator_name)
            if actuator is None:
                logger.debug(f"No actuator bound for '{actuator_name}', skipping")
                continue
            self.command(actuator, angle, settle_time)
            issued += 1
        return issued
