"""Utility helpers for filesystem access and path handling."""

from __future__ import annotations

from pathlib import Path
from typing import List
import os

MARKDOWN_EXTENSIONS = (".md",)


def resolve_directory(path: Path | str) -> Path:
    """Resolve and validate a user supplied directory path."""
    dir_path = Path(path).expanduser().resolve()
    if not dir_path.exists():
        raise FileNotFoundError(f"Directory does not exist: {dir_path}")
    if not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    return dir_path


def _relative_posix(path: Path, root: Path) -> str:
    rel = path.relative_to(root)
    if rel == Path("."):
        return ""
    return rel.as_posix()


def _read_gitignore_lines(path: Path) -> list[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return []


def _load_gitignore_spec(root: Path):
    from pathspec.gitignore import GitIgnoreSpec

    gitignore_file = root / ".gitignore"
    if not gitignore_file.is_file():
        return None
    return GitIgnoreSpec.from_lines(_read_gitignore_lines(gitignore_file))


def collect_markdown_files(root: Path | str, respect_gitignore: bool = True) -> List[Path]:
    """Collect markdown notes under *root*, skipping hidden entries.

    The vault's top-level ``.gitignore`` is honoured when *respect_gitignore*
    is set.
    """

    directory = resolve_directory(root)
    spec = _load_gitignore_spec(directory) if respect_gitignore else None
    files: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(directory, topdown=True):
        current_dir = Path(dirpath)
        kept: list[str] = []
        for dirname in dirnames:
            if dirname.startswith("."):
                continue
            rel_dir = _relative_posix(current_dir / dirname, directory)
            if spec is not None and spec.check_file(f"{rel_dir}/").include is True:
                continue
            kept.append(dirname)
        dirnames[:] = kept
        for filename in filenames:
            if filename.startswith("."):
                continue
            if not filename.lower().endswith(MARKDOWN_EXTENSIONS):
                continue
            candidate = current_dir / filename
            if spec is not None:
                rel_file = _relative_posix(candidate, directory)
                if spec.check_file(rel_file).include is True:
                    continue
            files.append(candidate)
    files.sort()
    return files


def ensure_positive(value: int, name: str) -> int:
    """Validate that *value* is positive."""
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0")
    return value
