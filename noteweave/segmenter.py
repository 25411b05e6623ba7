"""Split markdown notes into heading-addressed blocks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

from .fingerprint import MAX_EMBED_STRING_LENGTH, document_breadcrumbs

MIN_BLOCK_LENGTH = 50
_EMPTY_PLACEHOLDERS = ("", "- [ ] ", "- ")


@dataclass(frozen=True, slots=True)
class Block:
    """One section of a note.

    ``text`` is the embedding input (breadcrumb line plus body), ``path`` the
    logical block path ``note.md#Heading#Sub`` and ``length`` the body size.
    """

    text: str
    path: str
    length: int


def is_heading_line(line: str) -> bool:
    # "#tag" at the start of a line is a tag, not a heading.
    return line.startswith("#") and len(line) > 1 and line[1] in ("#", " ")


def heading_level(line: str) -> int:
    return line.count("#")


def heading_text(line: str) -> str:
    return line.replace("#", "").strip()


def headings_allowed(
    block_headings: str,
    header_exclusions: Sequence[str],
    on_exclusion: Callable[[str], None] | None = None,
) -> bool:
    for exclusion in header_exclusions:
        if exclusion in block_headings:
            if on_exclusion is not None:
                on_exclusion(f"heading: {exclusion}")
            return False
    return True


def iter_blocks(
    markdown: str,
    path: str,
    *,
    header_exclusions: Sequence[str] = (),
    on_exclusion: Callable[[str], None] | None = None,
) -> Iterator[Block]:
    """Yield the embeddable sections of *markdown*.

    Text before the first heading belongs to the whole-note embedding only.
    A section is emitted when the next heading (or the end of the note) is
    reached, provided it has a body of at least ``MIN_BLOCK_LENGTH`` characters
    and none of its headings is excluded.
    """

    lines = markdown.split("\n")
    breadcrumbs = document_breadcrumbs(path)
    stack: list[tuple[int, str]] = []
    block = ""
    block_headings = ""
    block_path = path
    last_heading_line = 0
    index = 0

    def ready(current: int) -> bool:
        return (
            last_heading_line != current - 1
            and "\n" in block
            and headings_allowed(block_headings, header_exclusions, on_exclusion)
        )

    for index, line in enumerate(lines):
        if not is_heading_line(line):
            if line in _EMPTY_PLACEHOLDERS or not stack:
                continue
            block += "\n" + line
            continue
        if index > 0 and ready(index):
            emitted = _finish_block(block, block_path)
            if emitted is not None:
                yield emitted
        last_heading_line = index
        level = heading_level(line)
        stack = [entry for entry in stack if entry[0] < level]
        stack.append((level, heading_text(line)))
        names = [name for _, name in stack]
        block = f"{breadcrumbs}: " + " > ".join(names)
        block_headings = "#" + "#".join(names)
        block_path = path + block_headings

    if ready(index + 1):
        emitted = _finish_block(block, block_path)
        if emitted is not None:
            yield emitted


def _finish_block(block: str, block_path: str) -> Block | None:
    breadcrumbs_length = block.index("\n") + 1
    length = len(block) - breadcrumbs_length
    if length < MIN_BLOCK_LENGTH:
        return None
    if len(block) > MAX_EMBED_STRING_LENGTH:
        block = block[:MAX_EMBED_STRING_LENGTH]
    return Block(text=block.strip(), path=block_path, length=length)


def retrieve_block(markdown: str, block_path: str, limit: int | None = None) -> str | None:
    """Return the body lines of the section addressed by *block_path*.

    Headings are matched in order; the body ends at the next heading. With
    *limit*, at most ``limit + 1`` lines are kept and ``...`` marks the cut.
    """

    if "#" not in block_path:
        return None
    wanted = block_path.split("#")[1:]
    lines = markdown.split("\n")
    matched: list[str] = []
    begin_line = 0
    for index, line in enumerate(lines):
        if not is_heading_line(line):
            continue
        text = heading_text(line)
        if text not in wanted:
            continue
        if len(matched) != wanted.index(text):
            continue
        matched.append(text)
        if len(matched) == len(wanted):
            begin_line = index + 1
            break
    if begin_line == 0:
        return None
    body: list[str] = []
    for line in lines[begin_line:]:
        if limit is not None and len(body) > limit:
            body.append("...")
            break
        if is_heading_line(line):
            break
        body.append(line)
    return "\n".join(body).strip()
