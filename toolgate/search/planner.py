from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

_GLOB_CHARS = frozenset("*?[")


class MatchCase(StrEnum):
    smart = "smart"
    insensitive = "insensitive"
    sensitive = "sensitive"


@dataclass(frozen=True)
class SearchRequest:
    """Caller-facing search arguments, shared by every backend."""

    pattern: str
    files: str
    case_insensitive: bool = True
    recursive: bool = False
    line_numbers: bool = False
    timeout_s: float | None = None
    match_case: MatchCase | None = None
    literal: bool = False
    no_messages: bool = False

    @property
    def case_mode(self) -> MatchCase:
        if self.match_case is not None:
            return self.match_case
        return MatchCase.insensitive if self.case_insensitive else MatchCase.sensitive

    @property
    def effective_insensitive(self) -> bool:
        """Smart mode is insensitive unless the pattern has an uppercase letter."""
        mode = self.case_mode
        if mode is MatchCase.smart:
            return not any(ch.isupper() for ch in self.pattern)
        return mode is MatchCase.insensitive


@dataclass(frozen=True)
class SearchPlan:
    """Where and how deep to search, relative to the search cwd.

    search_root: directory handed to the tool, or None when ``target`` names
    a single file (or nothing usable was given and ``.`` is implied).
    """

    search_root: str | None
    rel_glob: str | None
    use_glob: bool
    allow_recursive: bool
    target: str

    @property
    def anchor(self) -> str:
        """Path prefix that must stay inside the root being searched."""
        return self.search_root or self.target


def has_glob_chars(value: str) -> bool:
    return any(ch in _GLOB_CHARS for ch in value)


def split_glob_root(pattern: str) -> tuple[str, str]:
    """Split into the longest glob-free directory prefix and the remaining glob.

    ``src/**/*.py`` → (``src``, ``**/*.py``); ``*.md`` → (``.``, ``*.md``).
    """
    if not pattern:
        return ".", ""
    parts = pattern.replace("\\", "/").split("/")
    root_parts: list[str] = []
    for part in parts:
        if has_glob_chars(part):
            break
        root_parts.append(part)
    if len(root_parts) == len(parts):
        # no glob segment at all; the last part is a name, not a directory
        root_parts = root_parts[:-1]
    root = "/".join(root_parts) if root_parts else "."
    rel = "/".join(parts[len(root_parts):]) if root != "." else "/".join(parts)
    return root, rel


def plan_search(files: str, *, cwd: str | Path, recursive: bool) -> SearchPlan:
    """Turn a directory, file or glob into a root + glob pair."""

    def _resolve(p: str) -> Path:
        return Path(p) if os.path.isabs(p) else Path(cwd) / p

    def _is_dir(p: str) -> bool:
        try:
            return _resolve(p).is_dir()
        except OSError:
            return False

    def _exists(p: str) -> bool:
        try:
            return _resolve(p).exists()
        except OSError:
            return False

    if files and _is_dir(files):
        return SearchPlan(
            search_root=files,
            rel_glob=None,
            use_glob=False,
            allow_recursive=recursive,
            target=files,
        )

    if has_glob_chars(files):
        root, rel = split_glob_root(files)
        if root != "." and not _is_dir(root):
            root, rel = ".", files
        rel = rel or files
        return SearchPlan(
            search_root=root,
            rel_glob=rel,
            use_glob=True,
            allow_recursive="**" in rel,
            target=root,
        )

    target = files if files and _exists(files) else "."
    return SearchPlan(
        search_root=None,
        rel_glob=None,
        use_glob=False,
        allow_recursive=False,
        target=target,
    )
