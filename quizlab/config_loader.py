"""
Configuration loader for author-defined engine parameters.

Handles loading and validating quizlab configuration files.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from .config import EngineConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "quizlab.json"


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from a JSON file.

    Args:
        config_path: Path to the configuration file. If None, looks for
                    'quizlab.json' in the current directory.

    Returns:
        EngineConfig object with validated configuration

    Raises:
        ValueError: If config is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_NAME
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning("Config file '%s' not found. Using default configuration.", config_path)
        return EngineConfig.default()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ValueError(f"Error reading config file: {e}")

    if not isinstance(data, dict):
        raise ValueError("Invalid configuration: top level must be a JSON object")

    config = EngineConfig.from_dict(data)

    is_valid, error_message = config.validate()
    if not is_valid:
        raise ValueError(f"Invalid configuration: {error_message}")

    logger.debug("Loaded configuration from %s", config_path)
    return config


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file for course authors.

    Args:
        output_path: Path where to save the sample config
    """
    sample_config = EngineConfig.default().to_dict()
    sample_config["_comment"] = "This is a sample quizlab configuration. Adjust values as needed."
    sample_config["_instructions"] = {
        "sandbox.memory_limit_bytes": "Address-space limit for one submission run (at least 16 MiB)",
        "sandbox.timeout_ms": "Wall-clock limit for one run; test cases may only lower it",
        "sandbox.max_output_bytes": "Largest standard output accepted from a submission",
        "sandbox.max_steps": "Optional budget of executed lines for Python submissions (null = off)",
        "sandbox.compile_timeout_ms": "Wall-clock limit for compiling Rust submissions",
        "checker": "Default output comparison: exact_match, ignore_case, float_isclose, unordered_list_equal",
        "review_before_finish": "Let learners review all answers before finishing a quiz",
        "shuffle_seed": "Integer mixed into shuffled question order (null = fixed seed 0)",
        "log_level": "DEBUG, INFO, WARNING, ERROR or CRITICAL",
    }
    sample_config["_examples"] = [
        {
            "description": "Strict limits for short exercises",
            "sandbox": {"memory_limit_bytes": 33554432, "timeout_ms": 2000,
                        "max_output_bytes": 65536, "max_steps": 1000000,
                        "compile_timeout_ms": 30000},
        },
        {
            "description": "Numeric labs with tolerant comparison",
            "checker": "float_isclose",
        },
    ]

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(sample_config, f, indent=2)

    logger.info("Sample configuration created at: %s", output_path)
