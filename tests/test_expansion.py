# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Tests for argument placeholder expansion."""

import math
import threading

import pytest

from cmdutils.config import RunConfig
from cmdutils.expansion import (
    Placeholder,
    PlaceholderKind,
    expand_cmd,
    parse_template,
    split_return_output_marker,
)
from cmdutils.runner import CommandFailedError

ARGS = ["baz", '"q u x"']


class RecordingRun:
    """Fake `run` callable that records calls and wraps the command in `{{...}}`."""

    def __init__(self, output=None):
        self.calls = []
        self.output = output
        self.lock = threading.Lock()

    def __call__(self, cmd, runtime_args, config):
        with self.lock:
            self.calls.append((cmd, list(runtime_args), config))
        if self.output is not None:
            return self.output(cmd) if callable(self.output) else self.output
        return "{{" + cmd + "}}"

    @property
    def commands(self):
        return [cmd for cmd, _, _ in self.calls]


@pytest.fixture
def run():
    return RecordingRun()


def expand(cmd, args=(), config=None, run=None):
    return expand_cmd(cmd, list(args), config or RunConfig(), run or RecordingRun())


class TestArgumentPlaceholders:
    """Tests for placeholders bound to runtime arguments."""

    def test_no_placeholders(self):
        """Test a command without placeholders is returned unchanged."""
        assert expand("foo --bar") == "foo --bar"
        assert expand('foo "bar baz" | qux', ARGS) == 'foo "bar baz" | qux'

    def test_missing_arguments_are_removed(self):
        """Test placeholders without arguments disappear along with one leading space."""
        cmd = "foo $1 --bar ${2} $k $* $$ ${*} || _$* && $3*-${3*}"

        assert expand(cmd) == "foo --bar $k $$ || _ &&-"

    def test_all_arguments(self):
        assert expand("foo $* | ${*}", ARGS) == 'foo baz "q u x" | baz "q u x"'

    def test_argument_at_index(self):
        assert expand("foo $1 | ${2} | $3 | ${1}", ARGS) == 'foo baz | "q u x" | | baz'

    def test_arguments_from_index(self):
        """Test `$n*` takes all arguments starting at n."""
        result = expand("foo $0* | $1* | ${0*} | ${2*}", ARGS)

        assert result == 'foo* | baz "q u x" | ${0*} | "q u x"'

    def test_zero_never_has_an_argument(self):
        assert expand("foo $0 ${0}", ARGS) == "foo"

    def test_multi_digit_index(self):
        args = [str(i) for i in range(1, 13)]

        assert expand("foo $12 ${11} $11*", args) == "foo 12 11 11 12"

    def test_escaped_dollar(self):
        """Test `\\$` behaves like `$` (the backslash is removed)."""
        escaped = expand("foo \\$1 \\${2} \\$* \\${1*:bar}", ARGS)
        plain = expand("foo $1 ${2} $* ${1*:bar}", ARGS)

        assert escaped == plain == 'foo baz "q u x" baz "q u x" baz "q u x"'

    def test_not_preceded_by_whitespace(self):
        """Test placeholders glued to other text keep no extra whitespace."""
        assert expand("foo=$1,bar=${2}!", ARGS) == 'foo=baz,bar="q u x"!'

    def test_whitespace_kept_only_for_values(self):
        assert expand("foo\t$1\n$3 end", ARGS) == "foo\tbaz end"

    def test_arguments_are_not_re_expanded(self):
        """Test placeholders inside substituted values are left alone."""
        assert expand("foo $1", ["$2", "bar"]) == "foo $2"

    def test_idempotent_without_placeholders(self):
        once = expand("foo $1 ${2:bar}", ["baz"])

        assert expand(once, ["qux"]) == once


class TestStaticFallbacks:
    """Tests for `${...:value}` fallbacks."""

    def test_fallback_used_without_argument(self):
        result = expand("foo ${1:bar} ${2*:baz qux} ${*:all}")

        assert result == "foo bar baz qux all"

    def test_argument_wins_over_fallback(self):
        assert expand("foo ${1:bar} ${2*:qux} ${*:all}", ARGS) == (
            'foo baz "q u x" baz "q u x"'
        )

    def test_mixed_fallbacks(self):
        cmd = 'foo ${0:zero} | ${1} | ${0*:ooops} | $* | "${0:nil}"'

        assert expand(cmd, ARGS) == 'foo zero | baz | ${0*:ooops} | baz "q u x" | "nil"'

    def test_empty_fallback(self):
        assert expand("foo ${1:} bar") == "foo bar"

    def test_quoted_colons_are_static(self):
        """Test `::` only marks a command at the very start of the fallback."""
        result = expand("foo ${3:\"::three\"} ${4:'::4'} ${5: ::five}")

        assert result == "foo \"::three\" '::4'  ::five"


class TestCommandFallbacks:
    """Tests for `${...:::command}` fallbacks."""

    def test_command_output_substituted(self, run):
        result = expand("foo ${1:::bar} ${2*:::baz --qux} ${*:::quux}", run=run)

        assert result == "foo {{bar}} {{baz --qux}} {{quux}}"

    def test_not_run_when_argument_given(self, run):
        """Test a fallback command only runs if it is needed."""
        result = expand("foo ${1:::bar} ${2:::baz}", ["qux"], run=run)

        assert result == "foo qux {{baz}}"
        assert run.commands == ["baz"]

    def test_zero_always_runs(self, run):
        assert expand("foo ${0:::bar}", ARGS, run=run) == "foo {{bar}}"

    def test_runs_each_command_once(self, run):
        """Test identical fallback commands share a single run."""
        result = expand("foo ${1:::bar} ${2:::bar} ${3*:::bar} ${4:::baz}", run=run)

        assert result == "foo {{bar}} {{bar}} {{bar}} {{baz}}"
        assert sorted(run.commands) == ["bar", "baz"]

    def test_runtime_args_passed_along(self, run):
        expand("foo ${3:::bar $1}", ARGS, run=run)

        assert run.calls[0][1] == ARGS

    def test_return_output_forced(self, run):
        """Test fallback commands inherit the config but return their output."""
        config = RunConfig(debug=True, dryrun=False)

        expand("foo ${1:::bar}", config=config, run=run)

        sub_config = run.calls[0][2]
        assert sub_config.return_output is True
        assert sub_config.debug is True
        assert config.return_output is False

    def test_leading_whitespace(self):
        """Test leading whitespace is kept only for non-empty output."""
        run = RecordingRun(output=lambda cmd: "" if cmd == "empty" else "out")

        result = expand("foo ${1:::bar}\t${2:::empty} baz${3:::qux}", run=run)

        assert result == "foo out bazout"

    def test_output_is_trimmed(self):
        """Test escape sequences and surrounding whitespace are removed."""
        output = " \n\x1b[1a\r\x1B[987B\t {{test}} \t\x1b[23C\r\x1B[00d\n "
        run = RecordingRun(output=output)

        assert expand("foo ${1:::bar}", run=run) == "foo {{test}}"

    def test_output_style_resets_removed(self):
        run = RecordingRun(output="\x1b[0mtest\x1b[?25h\n")

        assert expand("foo ${1:::bar}", run=run) == "foo test"

    def test_dryrun_marks_output(self):
        """Test dry-run wraps command output in `{{...}}` with whitespace replaced."""
        run = RecordingRun(output=" foo bar\tbaz\nqux ")

        result = expand("echo ${1:::bar}", config=RunConfig(dryrun=True), run=run)

        assert result == "echo {{foo_bar_baz_qux}}"

    def test_dryrun_empty_output(self):
        run = RecordingRun(output="")

        result = expand("echo ${1:::bar}!", config=RunConfig(dryrun=True), run=run)

        assert result == "echo {{}}!"

    def test_failure_propagates(self):
        def failing_run(cmd, runtime_args, config):
            raise CommandFailedError(cmd, code=3)

        with pytest.raises(CommandFailedError) as exc_info:
            expand("foo ${1:::bar}", run=failing_run)

        assert exc_info.value.code == 3

    def test_commands_run_concurrently(self):
        """Test distinct fallback commands are in flight at the same time."""
        barrier = threading.Barrier(2, timeout=5)

        def waiting_run(cmd, runtime_args, config):
            barrier.wait()
            return cmd.upper()

        assert expand("${1:::foo} ${2:::bar}", run=waiting_run) == "FOO BAR"

    def test_fallback_command_with_braces_not_supported(self, run):
        """Test a `}` ends the fallback, even inside the command."""
        result = expand("foo ${1:::echo {bar}}", run=run)

        assert result == "foo {{echo {bar}}}"


class TestReturnOutputMarker:
    """Tests for ` --gkcu-returnOutput=n` at the end of fallback commands."""

    def test_last_lines_of_output(self):
        run = RecordingRun(output=".\n" * 50)

        result = expand("foo ${1:::bar --gkcu-returnOutput=33}", run=run)

        assert result == "foo " + "\n".join(["."] * 33)
        assert run.commands == ["bar"]
        assert run.calls[0][2].return_output == math.inf

    def test_different_limits_share_one_run(self):
        """Test references with different limits each get their own last lines."""
        run = RecordingRun(output="\n".join(str(i) for i in range(10)))

        result = expand(
            "foo ${1:::bar} ${2:::bar --gkcu-returnOutput=4} ${3:::bar --gkcu-returnOutput=2}",
            run=run,
        )

        assert result == "foo " + "\n".join(map(str, range(10))) + " 6\n7\n8\n9 8\n9"
        assert run.commands == ["bar"]
        assert run.calls[0][2].return_output == math.inf

    def test_marker_only_at_end(self, run):
        """Test the marker is left alone anywhere but at the end."""
        expand("foo ${1:::bar --gkcu-returnOutput=33 --baz} ${2:::qux--gkcu-returnOutput=3}", run=run)

        assert sorted(run.commands) == [
            "bar --gkcu-returnOutput=33 --baz",
            "qux--gkcu-returnOutput=3",
        ]
        assert all(config.return_output is True for _, _, config in run.calls)

    def test_space_separated_value_not_supported(self, run):
        expand("foo ${1:::bar --gkcu-returnOutput 3}", run=run)

        assert run.commands == ["bar --gkcu-returnOutput 3"]

    def test_bare_marker_removed(self, run):
        expand("foo ${1:::bar --gkcu-returnOutput}", run=run)

        assert run.commands == ["bar"]
        assert run.calls[0][2].return_output is True


class TestParseTemplate:
    """Tests for parse_template() and split_return_output_marker()."""

    def test_nodes(self):
        nodes = parse_template("echo ${1:foo}!")

        assert nodes == [
            "echo",
            Placeholder(PlaceholderKind.AT, 1, leading_whitespace=" ", fallback="foo"),
            "!",
        ]

    def test_escaped_placeholder(self):
        (placeholder,) = parse_template("\\$2*")

        assert placeholder.kind == PlaceholderKind.FROM
        assert placeholder.index == 2
        assert placeholder.escaped is True

    def test_split_marker(self):
        assert split_return_output_marker("foo --gkcu-returnOutput=12") == ("foo", 12)
        assert split_return_output_marker("foo --gkcu-returnOutput") == ("foo", None)
        assert split_return_output_marker("foo") == ("foo", None)
