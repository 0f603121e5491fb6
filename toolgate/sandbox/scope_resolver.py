"""Map agent-supplied path strings onto the permitted roots.

Pure functions over a ToolContext. Nothing is cached: roots may change
between calls, so every call re-reads the filesystem.

Containment is checked on real paths (symlinks followed, ``..`` collapsed)
for both the root and the candidate, so a link inside the workspace that
points elsewhere does not count as inside.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext

WORKSPACE_PREFIX = "workspace:"
ADDITIONAL_PREFIX = "additional:"


class PathScope(StrEnum):
    workspace = "workspace"
    additional = "additional"


class RootKind(StrEnum):
    workspace = "workspace"
    additional = "additional"
    external = "external"


class PathIntent(StrEnum):
    read = "read"
    write = "write"
    search = "search"


@dataclass(frozen=True)
class ScopedPath:
    """Caller path split into an optional scope tag and the remainder."""

    scope: PathScope | None
    path: str


@dataclass(frozen=True)
class ResolvedPath:
    path: Path
    root: RootKind

    ok = True


@dataclass(frozen=True)
class ResolveFailure:
    error: str
    error_code: str = "ACCESS_DENIED"

    ok = False


def parse_scoped_path(raw: str) -> ScopedPath:
    """Split a ``workspace:``/``additional:`` prefix off a caller path.

    Prefix matching is case-insensitive; leading slashes after the prefix
    are dropped so ``workspace:/a`` means ``a`` relative to the workspace.
    """
    trimmed = str(raw or "").strip()
    lower = trimmed.lower()
    if lower.startswith(WORKSPACE_PREFIX):
        return ScopedPath(PathScope.workspace, _strip_leading_seps(trimmed[len(WORKSPACE_PREFIX):]))
    if lower.startswith(ADDITIONAL_PREFIX):
        return ScopedPath(PathScope.additional, _strip_leading_seps(trimmed[len(ADDITIONAL_PREFIX):]))
    return ScopedPath(None, trimmed)


def _strip_leading_seps(value: str) -> str:
    return value.strip().lstrip("/\\")


def real_path(path: str | os.PathLike[str]) -> Path:
    """Absolute path with symlinks resolved; works for paths that do not exist."""
    return Path(os.path.realpath(os.path.abspath(path)))


def is_inside(root: Path, target: Path) -> bool:
    """True when ``target`` equals ``root`` or lies in its subtree (real paths)."""
    real_root = real_path(root)
    real_target = real_path(target)
    return real_target == real_root or real_root in real_target.parents


def looks_absolute(value: str) -> bool:
    """Absolute POSIX path or a Windows drive-rooted path."""
    if os.path.isabs(value):
        return True
    return len(value) >= 3 and value[0].isalpha() and value[1] == ":" and value[2] in "/\\"


def _escape(input_path: str) -> ResolveFailure:
    return ResolveFailure(f"Path escapes allowed directories: {input_path}")


def _checked(
    candidate: Path, root: Path, kind: RootKind, context: ToolContext, input_path: str
) -> ResolvedPath | ResolveFailure:
    if context.allow_external or is_inside(root, candidate):
        return ResolvedPath(path=real_path(candidate), root=kind)
    return _escape(input_path)


def resolve_tool_path(
    context: ToolContext, input_path: str, intent: PathIntent | str
) -> ResolvedPath | ResolveFailure:
    """Resolve a caller path against the context roots for the given intent.

    read/search prefer the root where the path exists (workspace on ties,
    workspace when missing everywhere). write additionally falls back to the
    root whose parent directory exists, so new files land next to siblings.
    """
    intent = PathIntent(intent)
    workspace_root = real_path(context.workspace_root)
    additional_root = (
        real_path(context.additional_root) if context.additional_root else None
    )

    parsed = parse_scoped_path(input_path)
    raw = parsed.path
    if not raw:
        return ResolveFailure("path is required.", error_code="INVALID_ARGS")

    if looks_absolute(raw):
        absolute = Path(os.path.abspath(raw))
        if context.allow_external:
            return ResolvedPath(path=real_path(absolute), root=RootKind.external)
        if is_inside(workspace_root, absolute):
            return ResolvedPath(path=real_path(absolute), root=RootKind.workspace)
        if additional_root and is_inside(additional_root, absolute):
            return ResolvedPath(path=real_path(absolute), root=RootKind.additional)
        return _escape(input_path)

    if parsed.scope is PathScope.workspace:
        return _checked(workspace_root / raw, workspace_root, RootKind.workspace, context, input_path)
    if parsed.scope is PathScope.additional:
        if additional_root is None:
            return ResolveFailure(
                "No additional working directory is set.", error_code="INVALID_ARGS"
            )
        return _checked(additional_root / raw, additional_root, RootKind.additional, context, input_path)

    in_workspace = workspace_root / raw
    in_additional = additional_root / raw if additional_root else None
    exists_workspace = _exists(in_workspace)
    exists_additional = in_additional is not None and _exists(in_additional)

    use_additional = exists_additional and not exists_workspace
    if (
        intent is PathIntent.write
        and not exists_workspace
        and not exists_additional
        and in_additional is not None
    ):
        use_additional = not _exists(in_workspace.parent) and _exists(in_additional.parent)

    if use_additional and in_additional is not None and additional_root is not None:
        return _checked(in_additional, additional_root, RootKind.additional, context, input_path)
    return _checked(in_workspace, workspace_root, RootKind.workspace, context, input_path)


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False
