"""
Argument placeholder expansion.

Substitutes argument placeholders in a command template with runtime
arguments. Supported placeholders (independent of the underlying OS):

- `$*`, `${*}`: all arguments
- `$n`, `${n}`: the nth argument (1-based; `$0` never has an argument)
- `$n*`, `${n*}`: all arguments starting at the nth one
- `${*:value}`, `${n:value}`, `${n*:value}`: as above, falling back to
  `value` if there is no argument
- `${*:::command}`, `${n:::command}`, `${n*:::command}`: as above, falling
  back to the trimmed output of `command`

A `$` may be escaped as `\\$` (the backslash is removed), which keeps a POSIX
shell from expanding the placeholder before it reaches us.

`${0:::command}` is always substituted with the output of `command`.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from cmdutils.config import RunConfig
from cmdutils.terminal import clean_up_output, last_lines

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(
    r"(?P<ws>\s?)(?P<escape>\\?)\$(?:"
    r"(?P<all>\*)|(?P<from>[1-9]+)\*|(?P<at>\d+)|"
    r"\{(?:(?P<b_all>\*)|(?P<b_from>[1-9]+)\*|(?P<b_at>\d+))(?::(?P<fallback>[^}]*))?\}"
    r")"
)
COMMAND_FALLBACK_RE = re.compile(r"::(.+)")
RETURN_OUTPUT_MARKER_RE = re.compile(r" --gkcu-returnOutput(?:=(\d+))?\Z")
WHITESPACE_RE = re.compile(r"\s")

# Runs a (fallback) command and returns its output
RunFn = Callable[[str, Sequence[str], RunConfig], str]


class PlaceholderKind(Enum):
    ALL = "all"
    FROM = "from"
    AT = "at"


@dataclass(frozen=True)
class Placeholder:
    """A parsed placeholder occurrence."""

    kind: PlaceholderKind
    index: int
    leading_whitespace: str = ""
    escaped: bool = False
    fallback: Optional[str] = None

    def value_from(self, runtime_args: Sequence[str]) -> str:
        """The value bound from runtime arguments (empty if there is none)."""
        if self.kind == PlaceholderKind.ALL:
            return " ".join(runtime_args)
        if self.index == 0:
            return ""
        if self.kind == PlaceholderKind.FROM:
            return " ".join(runtime_args[self.index - 1:])
        return runtime_args[self.index - 1] if self.index <= len(runtime_args) else ""


@dataclass(frozen=True)
class SubCommandRef:
    """A placeholder whose value comes from a fallback command."""

    command: str
    line_limit: Optional[int]
    leading_whitespace: str

    def render(self, output: str, dryrun: bool = False) -> str:
        value = output if self.line_limit is None else last_lines(output, self.line_limit)
        if dryrun:
            value = "{{" + WHITESPACE_RE.sub("_", value) + "}}"
        return with_leading_whitespace(self.leading_whitespace, value)


Node = Union[str, Placeholder]


def with_leading_whitespace(whitespace: str, value: str) -> str:
    return f"{whitespace}{value}" if value else ""


def parse_template(template: str) -> List[Node]:
    """
    Split a template into literal text and placeholders.

    Example:
        >>> parse_template("echo ${1:foo}!")
        ['echo', Placeholder(kind=<PlaceholderKind.AT: 'at'>, index=1,
         leading_whitespace=' ', escaped=False, fallback='foo'), '!']
    """
    nodes: List[Node] = []
    pos = 0

    for match in PLACEHOLDER_RE.finditer(template):
        if match.start() > pos:
            nodes.append(template[pos:match.start()])
        nodes.append(_to_placeholder(match))
        pos = match.end()

    if pos < len(template):
        nodes.append(template[pos:])

    return nodes


def _to_placeholder(match: "re.Match[str]") -> Placeholder:
    groups = match.groupdict()
    if groups["all"] or groups["b_all"]:
        kind, index = PlaceholderKind.ALL, 0
    elif groups["from"] or groups["b_from"]:
        kind, index = PlaceholderKind.FROM, int(groups["from"] or groups["b_from"])
    else:
        kind, index = PlaceholderKind.AT, int(groups["at"] or groups["b_at"])

    return Placeholder(
        kind=kind,
        index=index,
        leading_whitespace=groups["ws"],
        escaped=bool(groups["escape"]),
        fallback=groups["fallback"],
    )


def split_return_output_marker(command: str) -> Tuple[str, Optional[int]]:
    """
    Strip a trailing ` --gkcu-returnOutput[=n]` from a fallback command.

    Returns:
        The command without the marker and the requested line count (None for
        the whole output)
    """
    match = RETURN_OUTPUT_MARKER_RE.search(command)
    if not match:
        return command, None
    line_limit = int(match.group(1)) if match.group(1) is not None else None
    return command[:match.start()], line_limit


def expand_cmd(
    cmd: str,
    runtime_args: Sequence[str],
    config: RunConfig,
    run: RunFn,
) -> str:
    """
    Expand a command, substituting placeholders with runtime arguments.

    Fallback commands are run (concurrently, each distinct command at most
    once) with `run`, inheriting `config` except for `return_output`, which is
    forced on. They are themselves expanded with the same runtime arguments.

    Args:
        cmd: The command template
        runtime_args: Arguments used for substitution
        config: RunConfig (not modified)
        run: Callable used to run fallback commands

    Returns:
        The expanded command

    Raises:
        Whatever `run` raises for a failing fallback command
    """
    pieces: List[Union[str, SubCommandRef]] = []
    sub_commands: Dict[str, List[SubCommandRef]] = {}

    for node in parse_template(cmd):
        if isinstance(node, str):
            pieces.append(node)
            continue

        value = node.value_from(runtime_args)

        if not value and node.fallback:
            match = COMMAND_FALLBACK_RE.fullmatch(node.fallback)
            if match is None:
                value = node.fallback
            else:
                sub_cmd, line_limit = split_return_output_marker(match.group(1))
                ref = SubCommandRef(sub_cmd, line_limit, node.leading_whitespace)
                sub_commands.setdefault(sub_cmd, []).append(ref)
                pieces.append(ref)
                continue

        pieces.append(with_leading_whitespace(node.leading_whitespace, value))

    outputs = _run_sub_commands(sub_commands, runtime_args, config, run) if sub_commands else {}

    return "".join(
        piece if isinstance(piece, str) else piece.render(outputs[piece.command], config.dryrun)
        for piece in pieces
    )


def _run_sub_commands(
    sub_commands: Dict[str, List[SubCommandRef]],
    runtime_args: Sequence[str],
    config: RunConfig,
    run: RunFn,
) -> Dict[str, str]:
    """Run each distinct fallback command once; return its cleaned-up output."""
    outputs: Dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=len(sub_commands)) as executor:
        futures = {}
        for sub_cmd, refs in sub_commands.items():
            # A numeric limit means "print everything but capture it too"
            wants_subset = any(ref.line_limit is not None for ref in refs)
            sub_config = replace(config, return_output=math.inf if wants_subset else True)
            logger.debug(f"Running fallback command ({len(refs)} reference(s)): {sub_cmd}")
            futures[executor.submit(run, sub_cmd, runtime_args, sub_config)] = sub_cmd

        for future in as_completed(futures):
            outputs[futures[future]] = clean_up_output(future.result())

    return outputs
