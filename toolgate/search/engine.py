"""Run searches through the process runner and merge results across roots.

Return-code contract from the backends: 0 = matches, 1 = no matches (not a
failure), anything else = hard failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog

from toolgate.config.settings import ToolSettings
from toolgate.infra.errors import ScopeViolationError
from toolgate.sandbox.runner import (
    EXIT_NOT_FOUND,
    CommandOptions,
    CommandResult,
    ProcessRunner,
)
from toolgate.sandbox.scope_resolver import RootKind, is_inside
from toolgate.search.backends import SearchBackend, select_backend
from toolgate.search.planner import SearchPlan, SearchRequest, plan_search

logger = structlog.get_logger()


@dataclass(frozen=True)
class SearchTarget:
    label: RootKind
    cwd: Path


@dataclass(frozen=True)
class RootSearch:
    target: SearchTarget
    result: CommandResult


@dataclass(frozen=True)
class MergedSearch:
    """Per-root results concatenated in root order (workspace first)."""

    stdout: str
    stderr: str
    any_match: bool
    timed_out: bool
    truncated: bool
    omitted_bytes: int
    hard_error: str | None
    runs: tuple[RootSearch, ...]


class SearchEngine:
    def __init__(
        self,
        *,
        runner: ProcessRunner | None = None,
        backend: SearchBackend | None = None,
        settings: ToolSettings | None = None,
    ) -> None:
        self._settings = settings or ToolSettings()
        self._runner = runner or ProcessRunner(settings=self._settings)
        self._backend = backend or select_backend()

    @property
    def backend(self) -> SearchBackend:
        return self._backend

    def plan(self, request: SearchRequest, *, cwd: Path) -> SearchPlan:
        """Plan a search of one root. Raises ScopeViolationError if ``files`` leaves it."""
        plan = plan_search(request.files, cwd=cwd, recursive=request.recursive)
        if plan.anchor != "." and not is_inside(cwd, cwd / plan.anchor):
            raise ScopeViolationError(f"Path escapes allowed directories: {request.files}")
        return plan

    async def search(
        self,
        request: SearchRequest,
        *,
        cwd: Path,
        cancel_event: asyncio.Event | None = None,
    ) -> CommandResult:
        """Search one root. Raises ScopeViolationError if ``files`` leaves it."""
        plan = self.plan(request, cwd=cwd)
        return await self._run_plan(request, plan, cwd=cwd, cancel_event=cancel_event)

    async def _run_plan(
        self,
        request: SearchRequest,
        plan: SearchPlan,
        *,
        cwd: Path,
        cancel_event: asyncio.Event | None,
    ) -> CommandResult:
        timeout_s = (
            self._settings.grep_timeout_seconds
            if request.timeout_s is None
            else request.timeout_s
        )
        command = self._backend.build_command(request, plan)
        result = await self._runner.run(
            command,
            CommandOptions(
                cwd=cwd,
                timeout_ms=max(0, int(timeout_s * 1000)),
                cancel_event=cancel_event,
                audit_label="grep_search",
            ),
        )
        if result.returncode == EXIT_NOT_FOUND and result.stderr.startswith("Executable not found"):
            logger.warning("search_tool_missing", executable=self._backend.executable)
            return CommandResult.failure(self._backend.not_installed_message, EXIT_NOT_FOUND)
        return result

    async def search_roots(
        self,
        request: SearchRequest,
        targets: list[SearchTarget],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> MergedSearch:
        """Search every target in parallel; merge in the order given.

        All roots are planned and scope-checked before any search starts.
        If one search raises, the others are cancelled and awaited before
        the error propagates.
        """
        plans = [self.plan(request, cwd=t.cwd) for t in targets]
        tasks = [
            asyncio.create_task(
                self._run_plan(request, plan, cwd=t.cwd, cancel_event=cancel_event)
            )
            for t, plan in zip(targets, plans, strict=True)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        runs = tuple(RootSearch(t, r) for t, r in zip(targets, results, strict=True))
        return merge_runs(runs)


def section_header(target: SearchTarget, targets: list[SearchTarget]) -> str:
    """``--- <basename> ---``, with a scope suffix when root basenames collide."""
    base = target.cwd.name or target.label.value
    names = [t.cwd.name or t.label.value for t in targets]
    suffix = f" ({target.label.value})" if len(targets) > 1 and len(set(names)) < len(names) else ""
    return f"--- {base}{suffix} ---"


def merge_runs(runs: tuple[RootSearch, ...]) -> MergedSearch:
    targets = [run.target for run in runs]
    out_sections: list[str] = []
    err_sections: list[str] = []
    any_match = False
    timed_out = False
    truncated = False
    hard_error: str | None = None

    for run in runs:
        result = run.result
        header = section_header(run.target, targets)
        stdout_text = result.stdout.rstrip()
        stderr_text = result.stderr.rstrip()

        if result.returncode == 0:
            any_match = True
        elif result.returncode != 1 or stderr_text.strip():
            hard_error = hard_error or stderr_text or (
                f"grep search failed with code {result.returncode}."
            )
        timed_out = timed_out or result.timed_out
        truncated = truncated or result.truncated

        if stdout_text:
            out_sections.extend([header, stdout_text])
        if stderr_text:
            err_sections.extend([header, stderr_text])

    return MergedSearch(
        stdout="\n".join(out_sections) + ("\n" if out_sections else ""),
        stderr="\n".join(err_sections) + ("\n" if err_sections else ""),
        any_match=any_match,
        timed_out=timed_out,
        truncated=truncated,
        omitted_bytes=sum(run.result.omitted_bytes for run in runs),
        hard_error=hard_error,
        runs=runs,
    )
