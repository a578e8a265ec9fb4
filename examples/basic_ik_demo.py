#!/usr/bin/env python3
"""
Basic inverse kinematics demonstration: gradient and genetic solves, obstacles
and joystick-driven velocity tracking on a simulated three-joint arm.
"""

import time
import logging

from ik_planning import InverseKinematicsPlanner, RecordingPublisher, SimulatedServo, load_config

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_planner():
    """Create a planner with a base, shoulder and elbow driven by simulated servos."""
    planner = InverseKinematicsPlanner(load_config(), telemetry=RecordingPublisher())
    planner.new_arm("demo")
    planner.add_joint("base", d=80, theta=-90, r=0, alpha=90,
                      actuator=SimulatedServo("base", position=90, velocity=180))
    planner.add_joint("shoulder", d=0, theta=-90, r=120, alpha=0,
                      actuator=SimulatedServo("shoulder", position=90, velocity=120))
    planner.add_joint("elbow", d=0, theta=-90, r=100, alpha=0,
                      actuator=SimulatedServo("elbow", position=90, velocity=120))
    return planner


def demo_gradient_solve(planner):
    """Demonstrate the pseudo-inverse Jacobian strategy."""
    print("\n" + "="*50)
    print("GRADIENT SOLVE DEMO")
    print("="*50)

    planner.set_compute_method_jacobian()
    goal = [120, 60, 150]
    print(f"Start: {planner.current_position()}")
    print(f"Goal:  {goal}")

    if planner.move_to(goal):
        print(f"✅ Reached {planner.current_position()}")
    else:
        print("❌ Gradient solve did not converge")


def demo_genetic_solve(planner):
    """Demonstrate the genetic strategy around an obstacle."""
    print("\n" + "="*50)
    print("GENETIC SOLVE DEMO")
    print("="*50)

    planner.set_compute_method_genetic()
    planner.set_genetic_pool_size(100)
    planner.set_genetic_generation(60)
    planner.add_object([150, -50, 0], [150, 50, 0], "bar", radius=10)

    goal = [100, 100, 100]
    print(f"Goal: {goal} (obstacle 'bar' registered)")
    start = time.time()
    success = planner.move_to(goal)
    elapsed = time.time() - start

    if success:
        distance = planner.current_position().distance_to(goal)
        print(f"✅ Committed in {elapsed:.2f}s, {distance:.1f} away from the goal")
        for joint in planner.get_arm():
            print(f"  {joint.name}: {joint.position:.0f} deg")
    else:
        print(f"❌ Genetic solve failed after {elapsed:.2f}s")
    planner.clear_objects()


def demo_tracking(planner):
    """Demonstrate joystick-driven velocity tracking."""
    print("\n" + "="*50)
    print("VELOCITY TRACKING DEMO")
    print("="*50)

    planner.set_genetic_generation(20)
    planner.on_joystick_input("x", 0.3)
    planner.on_joystick_input("0")
    time.sleep(1.0)
    planner.on_joystick_input("1")
    planner.stop_tracking()

    tracked = planner.telemetry.tracking
    print(f"Tracked {len(tracked)} targets")
    if tracked:
        print(f"Last target: {tracked[-1]}")


def main():
    """Run all demonstrations."""
    print("🤖 IK Planning Library - Basic Demonstrations")

    planner = build_planner()
    demo_gradient_solve(planner)
    demo_genetic_solve(planner)
    demo_tracking(planner)

    print("\n" + "="*50)
    print("🎉 ALL DEMONSTRATIONS COMPLETED!")
    print("="*50)
    print("\n💡 Next steps:")
    print("- Customize solver parameters in ik_planning/config/default_config.yaml")
    print("- Try different goals and obstacles")


if __name__ == "__main__":
    main()
