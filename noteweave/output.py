"""Helpers for formatting CLI output safely across terminals."""

from __future__ import annotations

import re
import sys

from rich.console import Console

from .entries import ExternalEntry
from .nearest import Neighbor

_URL_SCHEME = re.compile(r"(^\w+:|^)//")


def _encoding_supports(text: str, encoding: str | None) -> bool:
    if not encoding:
        return False
    try:
        text.encode(encoding)
    except (LookupError, UnicodeEncodeError):
        return False
    return True


def supports_unicode_output(console: Console | None = None) -> bool:
    sample = "✓✗»"
    if console is not None and _encoding_supports(sample, console.encoding):
        return True
    return _encoding_supports(sample, sys.stdout.encoding)


def format_status_icon(passed: bool, console: Console | None = None) -> str:
    if supports_unicode_output(console):
        return "[green]✓[/green]" if passed else "[red]✗[/red]"
    return "[green]OK[/green]" if passed else "[red]X[/red]"


def render_link_text(path: str, show_full_path: bool = False, *, separator: str = " » ") -> str:
    """Return the display text of a note or block link.

    ``folder/note.md#A#B`` becomes ``note » A » B``; plain notes lose ``.md``.
    """

    link = path if show_full_path else path.split("/")[-1]
    if "#" in link:
        return "".join(link.split(".md")).replace("#", separator)
    return link.replace(".md", "", 1)


def render_external_text(entry: ExternalEntry) -> str:
    """Return ``source: title`` or ``domain: title`` for an external entry."""

    if entry.source_label:
        return f"{entry.source_label}: {entry.title}"
    domain = _URL_SCHEME.sub("", entry.path, count=1).split("/")[0]
    return f"{domain}: {entry.title}"


def render_neighbor(neighbor: Neighbor, show_full_path: bool = False, console: Console | None = None) -> str:
    if neighbor.external is not None:
        return render_external_text(neighbor.external)
    separator = " » " if supports_unicode_output(console) else " > "
    return render_link_text(neighbor.path, show_full_path, separator=separator)
