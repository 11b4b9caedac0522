# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Configuration validation for cmdutils.

Validates YAML configuration structure and provides helpful error messages.
"""

import logging
from typing import Any, Dict, List, Set

from cmdutils.config import META_OPTIONS

logger = logging.getLogger(__name__)

# Valid top-level keys in config
VALID_TOP_LEVEL_KEYS = {"defaults", "tasks"}

# Recognized fields per task
TASK_REQUIRED_FIELDS = {"command"}
TASK_OPTIONAL_FIELDS = {"description"}


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration structure and return list of warnings/errors.

    Args:
        config: Configuration dictionary loaded from YAML

    Returns:
        List of warning/error messages (empty if valid)
    """
    issues = []

    if not isinstance(config, dict):
        return [f"Config must be a dictionary, got {type(config).__name__}"]

    unknown_keys = set(config.keys()) - VALID_TOP_LEVEL_KEYS
    if unknown_keys:
        issues.append(
            f"Unknown top-level config keys: {', '.join(sorted(unknown_keys))}. "
            f"Valid keys are: {', '.join(sorted(VALID_TOP_LEVEL_KEYS))}"
        )

    defaults = config.get("defaults")
    if defaults is not None:
        issues.extend(_validate_defaults(defaults))

    tasks = config.get("tasks")
    if tasks is not None:
        if not isinstance(tasks, dict):
            issues.append(f"'tasks' must be a dictionary, got {type(tasks).__name__}")
        else:
            for task_name, task_config in tasks.items():
                issues.extend(_validate_task(f"tasks.{task_name}", task_config))

    return issues


def _validate_defaults(defaults: Any) -> List[str]:
    """Check that `defaults` only uses recognized option names and valid values."""
    if not isinstance(defaults, dict):
        return [f"'defaults' must be a dictionary, got {type(defaults).__name__}"]

    issues = []
    for key, value in defaults.items():
        if key not in META_OPTIONS:
            suggestion = suggest_fix(str(key), set(META_OPTIONS))
            hint = f" Did you mean '{suggestion}'?" if suggestion else ""
            issues.append(f"defaults.{key}: Unknown option.{hint}")
            continue

        _, parse = META_OPTIONS[key]
        try:
            parse(key, value)
        except ValueError as e:
            issues.append(f"defaults.{key}: {e}")

    return issues


def _validate_task(task_path: str, task_config: Any) -> List[str]:
    """
    Validate a single task configuration.

    Args:
        task_path: Dotted path to task (e.g. "tasks.release")
        task_config: Task configuration dictionary

    Returns:
        List of validation issues for this task
    """
    if not isinstance(task_config, dict):
        return [
            f"{task_path}: Task config must be a dictionary, "
            f"got {type(task_config).__name__}"
        ]

    issues = []

    if "command" not in task_config:
        issues.append(f"{task_path}: Missing required field 'command'")
    elif not isinstance(task_config["command"], str):
        issues.append(
            f"{task_path}: 'command' must be a string, "
            f"got {type(task_config['command']).__name__}"
        )

    unknown_fields = set(task_config.keys()) - TASK_REQUIRED_FIELDS - TASK_OPTIONAL_FIELDS
    if unknown_fields:
        logger.debug(
            f"{task_path}: Unrecognized fields: {', '.join(sorted(unknown_fields))}. "
            "These will be ignored."
        )

    return issues


def _edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two strings."""
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def suggest_fix(typo: str, valid_options: Set[str], max_distance: int = 2) -> str:
    """
    Return the valid option closest to `typo` (ignoring case).

    Ties go to the alphabetically first option. Returns an empty string if no
    option is within `max_distance` edits.
    """
    scored = sorted(
        (_edit_distance(typo.lower(), option.lower()), option) for option in valid_options
    )
    if scored and scored[0][0] <= max_distance:
        return scored[0][1]
    return ""
