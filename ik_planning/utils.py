"""
Configuration management for the planning core.
"""

import os
import yaml
from typing import Dict, Any, Optional
from dataclasses import dataclass, fields
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'config', 'default_config.yaml')


@dataclass
class PlanningConfig:
    """Configuration class for solver, simulation and tracking parameters."""

    # Strategy selection: "jacobian" or "genetic"
    compute_method: str = "jacobian"

    # Genetic search parameters
    genetic_pool_size: int = 200
    genetic_mutation_rate: float = 0.01
    genetic_recombination_rate: float = 0.7
    genetic_generations: int = 300
    genetic_compute_simulation: bool = False
    gene_bits: int = 8
    max_retries: int = 100
    goal_tolerance: float = 1e-6
    random_seed: Optional[int] = None

    # Collision repair
    repair_step_deg: float = 5.0

    # Motion simulation
    sim_initial_step: float = 0.1
    sim_step_increment: float = 0.2
    link_radius: float = 10.0

    # Gradient (pseudo-inverse Jacobian) parameters
    gradient_max_iterations: int = 1000
    gradient_tolerance: float = 0.5
    gradient_damping: float = 0.05
    gradient_max_step_deg: float = 5.0

    # Velocity tracking
    tracking_interval: float = 0.25
    joystick_threshold: float = 0.1
    joystick_gain: float = 100.0

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PlanningConfig':
        """Create config from dictionary; unknown keys are logged and skipped."""
        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in config_dict.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(config_path: Optional[str] = None) -> PlanningConfig:
    """
    Load planning configuration from YAML file.

    Args:
        config_path: Path to configuration file. If None, uses default config.

    Returns:
        PlanningConfig object
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
            return PlanningConfig.from_dict(config_dict)
        except (OSError, yaml.YAMLError, TypeError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")

    logger.info("Using default configuration")
    return PlanningConfig()


def save_config(config: PlanningConfig, config_path: str):
    """
    Save planning configuration to YAML file.

    Args:
        config: PlanningConfig object to save
        config_path: Path where to save the configuration
    """
    try:
        directory = os.path.dirname(config_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False)
        logger.info(f"Saved configuration to {config_path}")
    except OSError as e:
        logger.error(f"Failed to save config to {config_path}: {e}")
