"""
Configuration for cmdutils.

Defines RunConfig (the options that control expansion and spawning), the
`--gkcu-` meta-argument preprocessing, and the YAML config file loader.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

# Meta arguments look like `--gkcu-debug` or `--gkcu-returnOutput=2`
META_ARG_RE = re.compile(r"^--gkcu-(?=[a-z])")
WHITESPACE_RE = re.compile(r"\s")

CONFIG_FILE_NAME = "cmdutils.yml"


class ParsingMode(str, Enum):
    """How a command string is turned into pipeline stages."""

    TOKENIZED = "tokenized"
    OPAQUE_SHELL = "opaque-shell"


@dataclass(frozen=True)
class RunConfig:
    """
    Options controlling expand_cmd(), run() and spawn().

    Attributes:
        debug: Produce verbose, debug-friendly output
        dryrun: Print the command instead of running it
        return_output: If True, return the output instead of printing it. If a
            number (n), print the output but also return its last n lines.
        parsing_mode: TOKENIZED splits pipes and spawns one process per stage,
            OPAQUE_SHELL hands the whole command to the shell
        suppress_terminate_confirmation: Suppress the "Terminate batch job
            (Y/N)?" prompt (Windows only)
    """

    debug: bool = False
    dryrun: bool = False
    return_output: Union[bool, int, float] = False
    parsing_mode: ParsingMode = ParsingMode.TOKENIZED
    suppress_terminate_confirmation: bool = False

    @property
    def captures_output(self) -> bool:
        return bool(self.return_output)

    @property
    def returns_output_subset(self) -> bool:
        """True if only the last n lines are returned (and everything is printed)."""
        return isinstance(self.return_output, (int, float)) and not isinstance(
            self.return_output, bool
        )


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("", "true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValueError(f"Invalid value for '{key}': {value!r} (expected a boolean)")


def _parse_return_output(key: str, value: Any) -> Union[bool, int]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return _parse_bool(key, text)


def _parse_parsing_mode(key: str, value: Any) -> ParsingMode:
    try:
        return ParsingMode(str(value))
    except ValueError:
        valid = ", ".join(mode.value for mode in ParsingMode)
        raise ValueError(f"Invalid value for '{key}': {value!r} (valid: {valid})")


def _parse_sap_version(key: str, value: Any) -> ParsingMode:
    # Legacy numeric spelling of parsingMode
    versions = {"1": ParsingMode.TOKENIZED, "2": ParsingMode.OPAQUE_SHELL}
    mode = versions.get(str(value).strip())
    if mode is None:
        raise ValueError(f"Unknown '{key}' ({value}).")
    return mode


# Recognized option name -> (RunConfig field, value parser)
META_OPTIONS: Dict[str, Tuple[str, Callable[[str, Any], Any]]] = {
    "debug": ("debug", _parse_bool),
    "dryrun": ("dryrun", _parse_bool),
    "returnOutput": ("return_output", _parse_return_output),
    "parsingMode": ("parsing_mode", _parse_parsing_mode),
    "sapVersion": ("parsing_mode", _parse_sap_version),
    "suppressTbj": ("suppress_terminate_confirmation", _parse_bool),
    "suppressTerminateConfirmation": ("suppress_terminate_confirmation", _parse_bool),
}


def apply_options(base: RunConfig, options: Mapping[str, Any]) -> RunConfig:
    """
    Return a copy of `base` with the named options applied.

    Unknown option names are logged and ignored.

    Args:
        base: Configuration to start from (not modified)
        options: Option name (as used in `--gkcu-<name>`) -> raw value

    Returns:
        New RunConfig

    Raises:
        ValueError: If a recognized option has an invalid value
    """
    overrides: Dict[str, Any] = {}
    for key, value in options.items():
        if key not in META_OPTIONS:
            logger.warning(f"Ignoring unknown option '{key}'")
            continue
        field_name, parse = META_OPTIONS[key]
        overrides[field_name] = parse(key, value)
    return replace(base, **overrides)


def preprocess_args(
    raw_args: Sequence[str],
    base: Optional[RunConfig] = None,
) -> Tuple[List[str], RunConfig]:
    """
    Split raw cli arguments into runtime arguments and a RunConfig.

    `--gkcu-`-prefixed arguments are removed and used to populate the config.
    To pass a value, use `=` (not a space), e.g. `--gkcu-returnOutput=2`. The
    remaining arguments are wrapped in double quotes if they contain
    whitespace.

    Example:
        >>> preprocess_args(["foo", "bar baz", "--gkcu-debug"])
        (['foo', '"bar baz"'], RunConfig(debug=True, ...))
    """
    args: List[str] = []
    options: Dict[str, str] = {}

    for arg in raw_args:
        if META_ARG_RE.match(arg):
            key, _, value = META_ARG_RE.sub("", arg, count=1).partition("=")
            options[key] = value
        elif WHITESPACE_RE.search(arg):
            args.append(f'"{arg}"')
        else:
            args.append(arg)

    return args, apply_options(base or RunConfig(), options)


def config_search_paths() -> List[Path]:
    """Locations tried, in order, when no config path is given."""
    return [Path.home() / CONFIG_FILE_NAME, Path.cwd() / CONFIG_FILE_NAME]


def _find_config_file(config_path: Optional[str]) -> Path:
    if config_path:
        return Path(config_path).expanduser()

    candidates = config_search_paths()
    for candidate in candidates:
        if candidate.exists():
            return candidate

    tried = "\n".join(f"  - {candidate}" for candidate in candidates)
    raise FileNotFoundError(
        f"No config file found. Tried:\n{tried}\nUse --config to specify a custom location."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the YAML config file.

    Structure problems are logged as warnings but do not prevent loading;
    `cmdutils config validate` reports them in full.

    Args:
        config_path: Explicit path. If None, the first existing file among
            config_search_paths() is used.

    Raises:
        FileNotFoundError: If there is no config file
        yaml.YAMLError: If the file is not valid YAML
        ValueError: If the file does not hold a mapping
    """
    path = _find_config_file(config_path)

    try:
        config = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML in {path}: {e}")
    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(config).__name__}")

    from cmdutils.validation import validate_config
    for issue in validate_config(config):
        logger.warning(f"Config issue in {path}: {issue}")

    return config


def get_defaults(config: Dict[str, Any]) -> RunConfig:
    """Build the base RunConfig from the config file's `defaults` section."""
    defaults = config.get("defaults") or {}
    if not isinstance(defaults, dict):
        return RunConfig()
    return apply_options(RunConfig(), defaults)


def get_tasks(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Get the named command templates from the config file's `tasks` section."""
    tasks = config.get("tasks") or {}
    if not isinstance(tasks, dict):
        return {}
    return {
        name: task for name, task in tasks.items() if isinstance(task, dict) and "command" in task
    }
