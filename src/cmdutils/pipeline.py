"""
Parsing of (possibly piped) commands into pipeline stages.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import os
import re
import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from typing import List, Sequence

from cmdutils.config import ParsingMode

PIPE_RE = re.compile(r"\s+\|\s+")

# Prints its first argument verbatim
_PRINT_ARG_SCRIPT = "import sys; print(sys.argv[1])"


@dataclass
class PipelineStage:
    """One `|`-separated part of a command."""

    executable: str
    args: List[str] = field(default_factory=list)

    @property
    def command_line(self) -> str:
        """The stage as a single string, for running through the shell."""
        return " ".join([self.executable, *self.args])


def parse_raw_cmd(
    raw_cmd: str,
    parsing_mode: ParsingMode = ParsingMode.TOKENIZED,
    dryrun: bool = False,
) -> List[PipelineStage]:
    """
    Split a command into the stages to spawn.

    Args:
        raw_cmd: The (already expanded) command
        parsing_mode: TOKENIZED splits on ` | ` and tokenizes each stage,
            OPAQUE_SHELL leaves everything to the shell
        dryrun: Rewrite the stages so that they print instead of run

    Returns:
        List of PipelineStage, in pipe order
    """
    if parsing_mode == ParsingMode.TOKENIZED:
        return [parse_single_cmd(cmd, dryrun) for cmd in PIPE_RE.split(raw_cmd)]

    if parsing_mode == ParsingMode.OPAQUE_SHELL:
        if dryrun:
            executable = join_for_shell([sys.executable, "-c", _PRINT_ARG_SCRIPT, raw_cmd])
        else:
            executable = raw_cmd
        return [PipelineStage(executable=executable)]

    raise ValueError(f"Unknown parsing mode ({parsing_mode}).")


def parse_single_cmd(cmd: str, dryrun: bool = False) -> PipelineStage:
    """
    Tokenize one stage, respecting double-quoted values.

    Text between double quotes is kept as a single token (quotes included) and
    is glued to the token right before it, so `--foo="bar baz"` stays whole. A
    token starting with `(` is split into `(` and the rest.

    Example:
        >>> parse_single_cmd('foo --bar="a b" (baz')
        PipelineStage(executable='foo', args=['--bar="a b"', '(', 'baz'])
    """
    tokens: List[str] = []
    for idx, segment in enumerate(cmd.split('"')):
        new_tokens = [f'"{segment}"'] if idx % 2 else segment.split(" ")
        if tokens and tokens[-1]:
            tokens[-1] += new_tokens.pop(0)
        tokens.extend(new_tokens)

    split_tokens: List[str] = []
    for token in tokens:
        if not token:
            continue
        if token[0] == "(" and len(token) > 1:
            split_tokens.extend(["(", token[1:]])
        else:
            split_tokens.append(token)

    if dryrun:
        transform_for_dryrun(split_tokens)

    if not split_tokens:
        return PipelineStage(executable="")
    return PipelineStage(executable=split_tokens[0], args=split_tokens[1:])


def transform_for_dryrun(tokens: List[str]) -> None:
    """Prefix `echo` to the command and to every command chained with `&&`/`||`."""
    _insert_at(tokens, "echo", 0)
    _insert_after(tokens, "echo", "&&")
    _insert_after(tokens, "echo", "||")


def _insert_after(tokens: List[str], new_token: str, after_token: str) -> None:
    idx = 0
    while idx < len(tokens):
        if tokens[idx] == after_token:
            idx += 1
            _insert_at(tokens, new_token, idx)
        idx += 1


def _insert_at(tokens: List[str], new_token: str, idx: int) -> None:
    if idx < len(tokens) and tokens[idx] == "(":
        idx += 1
    tokens.insert(idx, new_token)


def join_for_shell(args: Sequence[str]) -> str:
    """Quote and join arguments for the platform's shell."""
    if os.name == "nt":
        return subprocess.list2cmdline(args)
    return shlex.join(args)
