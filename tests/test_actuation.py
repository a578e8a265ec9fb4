"""
Tests for actuator pacing.
"""

import threading
import time
import pytest
import numpy as np

from ik_planning.actuation import ActuationInterrupted, ActuationScheduler, SimulatedServo
from ik_planning.kinematics import Joint, KinematicChain


class TestSimulatedServo:
    """Test the in-memory actuator."""

    def test_move_records_command(self):
        """Test commands update position and activity time."""
        clock = iter([0.0, 5.0]).__next__
        servo = SimulatedServo("s", position=90, clock=clock)
        servo.move_to(30)

        assert servo.current_angle == 30
        assert servo.last_activity_time == 5.0
        assert servo.commands == [(5.0, 30.0)]

    def test_listener_feedback(self):
        """Test listeners receive the new position."""
        servo = SimulatedServo("s")
        seen = []
        servo.add_listener(lambda name, position: seen.append((name, position)))
        servo.move_to(12)

        assert seen == [("s", 12.0)]


class TestActuationScheduler:
    """Test settle windows and interruption."""

    def test_waits_out_settle_window(self):
        """Test a command is delayed until last activity plus settle time."""
        scheduler = ActuationScheduler()
        servo = SimulatedServo("s")
        servo.last_activity_time = time.monotonic()
        ready_at = servo.last_activity_time + 0.05

        scheduler.command(servo, 45, settle_time=0.05)

        issued_at, angle = servo.commands[-1]
        assert issued_at >= ready_at
        assert angle == 45

    def test_no_wait_when_idle(self):
        """Test an idle actuator is commanded immediately."""
        scheduler = ActuationScheduler()
        servo = SimulatedServo("s")
        servo.last_activity_time = time.monotonic() - 10

        assert scheduler.wait_for(servo, 1.0) < 0.05

    def test_interrupt_raises(self):
        """Test an interrupted wait abandons the command."""
        scheduler = ActuationScheduler()
        servo = SimulatedServo("s")
        servo.last_activity_time = time.monotonic()
        timer = threading.Timer(0.05, scheduler.interrupt)
        timer.start()

        with pytest.raises(ActuationInterrupted):
            scheduler.command(servo, 10, settle_time=5.0)
        timer.join()

        assert servo.commands == []
        scheduler.reset()
        scheduler.command(servo, 10, settle_time=0.0)
        assert servo.commands[-1][1] == 10

    def test_actuate_chain(self):
        """Test each bound joint receives its rounded position in chain order."""
        chain = KinematicChain([
            Joint("a", actuator="servo_a"),
            Joint("b"),
            Joint("c", actuator="servo_c"),
        ])
        chain.set_positions([39.9999999, 5, -20.4])
        servos = {"servo_a": SimulatedServo("servo_a"), "servo_c": SimulatedServo("servo_c")}

        issued = ActuationScheduler().actuate(chain, servos, settle_time=0.0)

        assert issued == 2
        assert servos["servo_a"].commands[-1][1] == 40
        assert servos["servo_c"].commands[-1][1] == -20

    def test_actuate_does_not_hold_chain_lock(self):
        """Test the chain stays usable while a joint is being paced."""
        chain = KinematicChain([Joint("a", actuator="s")])
        servo = SimulatedServo("s")
        servo.last_activity_time = time.monotonic()
        scheduler = ActuationScheduler()
        worker = threading.Thread(target=scheduler.actuate, args=(chain, {"s": servo}, 0.2))
        worker.start()
        time.sleep(0.05)

        acquired = chain.lock.acquire(timeout=0.1)
        if acquired:
            chain.lock.release()
        worker.join()

        assert acquired
        assert len(servo.commands) == 1
        assert np.isclose(servo.commands[0][1], 0)


if __name__ == "__main__":
    pytest.main([__file__])
