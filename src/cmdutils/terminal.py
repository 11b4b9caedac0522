"""
Terminal escape sequence helpers.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import re
from typing import TextIO, Union

ESCAPE_SEQUENCES = {
    "reset_bold": "\x1b[0m",
    "show_cursor": "\x1b[?25h",
}

ESCAPE_SEQUENCE_RES = {
    "move_cursor": re.compile(r"\x1b\[\d+[a-d]", re.IGNORECASE),
    "reset_bold": re.compile(r"\x1b\[0m", re.IGNORECASE),
    "show_cursor": re.compile(r"\x1b\[\?25h", re.IGNORECASE),
}

# Written (in this order) after a command that may have messed up the terminal
OUTPUT_STYLE_RESET_SEQUENCES = ("reset_bold", "show_cursor")


def reset_output_style(stream: TextIO) -> None:
    """Reset the output style (e.g. bold) and show the cursor."""
    for name in OUTPUT_STYLE_RESET_SEQUENCES:
        stream.write(ESCAPE_SEQUENCES[name])
    stream.flush()


def strip_output_style_reset_sequences(text: str) -> str:
    for name in OUTPUT_STYLE_RESET_SEQUENCES:
        text = ESCAPE_SEQUENCE_RES[name].sub("", text)
    return text


def clean_up_output(text: str) -> str:
    """
    Strip style-reset and cursor-move sequences from command output and trim it.

    Example:
        >>> clean_up_output(" \\x1b[1a foo \\x1b[0m\\n")
        'foo'
    """
    text = strip_output_style_reset_sequences(text)
    return ESCAPE_SEQUENCE_RES["move_cursor"].sub("", text).strip()


def last_lines(text: str, count: Union[int, float]) -> str:
    """
    Return the last `count` lines of `text` (trimmed).

    A `count` of 0, or one larger than the number of lines, keeps everything.
    """
    lines = text.split("\n")
    if count < len(lines):
        lines = lines[-int(count):]
    return "\n".join(lines).strip()
