from __future__ import annotations
from typing import Iterable, Optional, TextIO


def short_string(s: str, max_length: int) -> str:
    """Trim s to max_length chars, ending in "..." if it was longer."""
    if len(s) <= max_length:
        return s
    if max_length < 4:
        return s[:max_length]
    return s[: max_length - 3] + "..."


def node_summary(content: str, lines: int, width: int) -> str:
    """Preview of a node's content.

    At most ``lines`` lines, each cut to ``width`` chars. Multi-line previews
    are joined with a newline plus tab (to line up under the id column) and
    end in ``[...]`` when lines were left out.
    """
    all_lines = content.splitlines()
    shown = [short_string(line, width) for line in all_lines[:lines]]
    if lines <= 1:
        return shown[0] if shown else ""
    if len(all_lines) > lines:
        shown.append("[...]")
    return "\n\t".join(shown)


def read_ids(values: Optional[Iterable[int]], stream: TextIO) -> tuple[list[int], list[str]]:
    """Node ids from the command line or, if none were given, one per line from stream.

    Returns the ids and the lines that could not be parsed.
    """
    if values:
        return list(values), []

    ids: list[int] = []
    invalid: list[str] = []
    for line in stream:
        line = line.strip()
        if not line:
            continue
        try:
            ids.append(int(line))
        except ValueError:
            invalid.append(line)
    return ids, invalid
