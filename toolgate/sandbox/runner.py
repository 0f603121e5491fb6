"""Secured, bounded process runner.

``run_command`` never raises for expected failures (blocked command, missing
executable, timeout, cancellation); those are encoded in the CommandResult.
Lifecycle per call: preparing → spawned → running → {timed out | aborted |
exited} → resolved. Timeout and cancellation tear down the whole process
tree before the result is returned.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import subprocess
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from toolgate.config.settings import DEFAULT_MAX_BUFFER_BYTES, ToolSettings
from toolgate.infra.errors import CommandPolicyError
from toolgate.sandbox.policy import (
    CommandDescriptor,
    CommandPolicy,
    audit,
    is_windows,
    resolve_executable,
    sanitize_environment,
)
from toolgate.sandbox.process_tree import TreeKiller, default_tree_killer

logger = structlog.get_logger()

EXIT_GENERIC_FAILURE = 1
EXIT_TIMED_OUT = 124
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127
EXIT_CANCELED = 130

_READ_CHUNK_BYTES = 64 * 1024
_KILL_GRACE_S = 2.0
_DRAIN_GRACE_S = 1.0


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    returncode: int
    success: bool
    timed_out: bool = False
    signal: str | None = None
    truncated: bool = False
    omitted_bytes: int = 0

    @classmethod
    def failure(cls, message: str, returncode: int) -> CommandResult:
        return cls(stdout="", stderr=message, returncode=returncode, success=False)


@dataclass(frozen=True)
class CommandOptions:
    """Per-call runner options.

    timeout_ms: None = settings default (``AGENT_COMMAND_TIMEOUT_MS``), 0 = none.
    max_buffer_bytes: per-stream capture cap; excess output is drained and dropped.
    cancel_event: external abort signal; setting it kills the process tree.
    """

    cwd: str | Path | None = None
    env: Mapping[str, str | None] | None = None
    timeout_ms: int | None = None
    shell: bool = False
    encoding: str = "utf-8"
    max_buffer_bytes: int | None = None
    kill_signal: int | None = None
    cancel_event: asyncio.Event | None = None
    denied_commands: Collection[str] = field(default_factory=frozenset)
    allow_unsafe: bool = False
    inherit_env: bool = False
    env_allowlist: Collection[str] = ()
    env_blocklist: Collection[str] = ()
    audit_label: str | None = None


class _StreamBuffer:
    """Byte-capped accumulator. Never blocks the producer: overflow is discarded."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._chunks: list[bytes] = []
        self.size = 0
        self.total = 0
        self.truncated = False

    def feed(self, chunk: bytes) -> None:
        self.total += len(chunk)
        room = self._limit - self.size
        if room <= 0:
            self.truncated = True
            return
        if len(chunk) > room:
            chunk = chunk[:room]
            self.truncated = True
        self._chunks.append(chunk)
        self.size += len(chunk)

    @property
    def omitted(self) -> int:
        return self.total - self.size

    def text(self, encoding: str) -> str:
        return b"".join(self._chunks).decode(encoding, errors="replace")


async def _drain(stream: asyncio.StreamReader | None, buffer: _StreamBuffer) -> None:
    if stream is None:
        return
    while chunk := await stream.read(_READ_CHUNK_BYTES):
        buffer.feed(chunk)


def spawn_error_code(exc: OSError) -> int:
    """Map spawn-level OS errors onto POSIX-like exit codes."""
    if isinstance(exc, FileNotFoundError):
        return EXIT_NOT_FOUND
    if isinstance(exc, PermissionError):
        return EXIT_NOT_EXECUTABLE
    return EXIT_GENERIC_FAILURE


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"


def _normalize_cwd(cwd: str | Path | None) -> str:
    base = os.path.abspath(os.getcwd())
    raw = str(cwd).strip() if cwd is not None else ""
    if not raw:
        return base
    return os.path.abspath(raw if os.path.isabs(raw) else os.path.join(base, raw))


class ProcessRunner:
    """Spawn, bound, audit and tear down child processes."""

    def __init__(
        self,
        *,
        settings: ToolSettings | None = None,
        tree_killer: TreeKiller | None = None,
    ) -> None:
        self._settings = settings
        self._killer = tree_killer or default_tree_killer()

    def _default_timeout_ms(self) -> int:
        settings = self._settings or ToolSettings()
        return settings.command_timeout_ms

    def _default_max_buffer(self) -> int:
        if self._settings is None:
            return DEFAULT_MAX_BUFFER_BYTES
        return self._settings.command_max_buffer_bytes

    async def run(
        self, command: str | Sequence[str], options: CommandOptions | None = None
    ) -> CommandResult:
        opts = options or CommandOptions()
        descriptor = CommandDescriptor.build(command)
        policy = CommandPolicy(
            allow_unsafe=opts.allow_unsafe,
            shell=opts.shell,
            denied_commands=frozenset(opts.denied_commands),
        )
        cwd = _normalize_cwd(opts.cwd)
        timeout_ms = self._default_timeout_ms() if opts.timeout_ms is None else max(0, opts.timeout_ms)
        label = opts.audit_label or descriptor.primary
        audit_fields = {
            "label": label,
            "cwd": cwd,
            "timeout_ms": timeout_ms,
            "allow_unsafe": opts.allow_unsafe,
        }

        try:
            policy.evaluate(descriptor)
        except CommandPolicyError as exc:
            audit("command_blocked", argv=descriptor.audit_argv, reason=str(exc), **audit_fields)
            return CommandResult.failure(str(exc), exc.returncode)

        env = sanitize_environment(
            inherit_env=opts.inherit_env,
            env=opts.env,
            allowlist=opts.env_allowlist,
            blocklist=opts.env_blocklist,
            allow_unsafe=opts.allow_unsafe,
        )

        argv = descriptor.argv
        if not descriptor.uses_shell:
            resolved = resolve_executable(descriptor.primary, env=env, cwd=cwd)
            if resolved is None:
                audit("command_not_found", argv=descriptor.audit_argv, **audit_fields)
                return CommandResult.failure(
                    f"Executable not found: {descriptor.primary}", EXIT_NOT_FOUND
                )
            argv = (resolved, *descriptor.argv[1:])

        # resolved argv; shell strings are logged as given
        audit_argv = descriptor.audit_argv if descriptor.uses_shell else list(argv)
        audit("command_spawn", argv=audit_argv, **audit_fields)

        try:
            proc = await self._spawn(descriptor, argv, cwd=cwd, env=env)
        except OSError as exc:
            rc = spawn_error_code(exc)
            audit("command_spawn_error", argv=audit_argv, rc=rc, message=str(exc), **audit_fields)
            return CommandResult.failure(str(exc), rc)

        result = await self._supervise(proc, opts, timeout_ms)
        audit(
            "command_exit",
            argv=audit_argv,
            rc=result.returncode,
            timed_out=result.timed_out,
            signal=result.signal,
            truncated=result.truncated,
            **audit_fields,
        )
        return result

    async def _spawn(
        self,
        descriptor: CommandDescriptor,
        argv: Sequence[str],
        *,
        cwd: str,
        env: dict[str, str],
    ) -> asyncio.subprocess.Process:
        kwargs: dict = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.PIPE,
            "stderr": subprocess.PIPE,
            "cwd": cwd,
            "env": env,
        }
        if is_windows():
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # own process group, so the whole tree can be signalled at once
            kwargs["start_new_session"] = True
        if descriptor.uses_shell:
            return await asyncio.create_subprocess_shell(str(descriptor.raw), **kwargs)
        return await asyncio.create_subprocess_exec(*argv, **kwargs)

    async def _supervise(
        self,
        proc: asyncio.subprocess.Process,
        opts: CommandOptions,
        timeout_ms: int,
    ) -> CommandResult:
        limit = opts.max_buffer_bytes or self._default_max_buffer()
        out_buf = _StreamBuffer(limit)
        err_buf = _StreamBuffer(limit)
        drains = [
            asyncio.create_task(_drain(proc.stdout, out_buf)),
            asyncio.create_task(_drain(proc.stderr, err_buf)),
        ]
        exit_task = asyncio.create_task(proc.wait())
        cancel_task = (
            asyncio.create_task(opts.cancel_event.wait())
            if opts.cancel_event is not None
            else None
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000 if timeout_ms > 0 else None

        timed_out = False
        aborted = False
        try:
            outcome = await _watch({exit_task, *drains}, cancel_task, deadline, loop)
            if outcome != "done":
                timed_out = outcome == "timeout"
                aborted = outcome == "cancel"
                await self._terminate(proc, opts.kill_signal)
                await _reap(proc, exit_task, drains)
        except asyncio.CancelledError:
            await self._terminate(proc, opts.kill_signal)
            await _reap(proc, exit_task, drains)
            raise
        finally:
            if cancel_task is not None:
                cancel_task.cancel()

        rc = proc.returncode
        signal_name = None
        own_exit = rc is not None and rc >= 0
        if rc is None:
            rc = EXIT_TIMED_OUT if timed_out else EXIT_CANCELED if aborted else EXIT_GENERIC_FAILURE
        elif rc < 0:
            signal_name = _signal_name(-rc)
            rc = EXIT_TIMED_OUT if timed_out else EXIT_CANCELED if aborted else 128 - rc

        stderr = err_buf.text(opts.encoding)
        if aborted and not own_exit and not stderr:
            stderr = "Command canceled"

        return CommandResult(
            stdout=out_buf.text(opts.encoding),
            stderr=stderr,
            returncode=rc,
            success=rc == 0 and not timed_out and not aborted,
            timed_out=timed_out,
            signal=signal_name,
            truncated=out_buf.truncated or err_buf.truncated,
            omitted_bytes=out_buf.omitted + err_buf.omitted,
        )

    async def _terminate(self, proc: asyncio.subprocess.Process, sig: int | None) -> None:
        if proc.returncode is not None and is_windows():
            return
        if not await self._killer.kill_tree(proc.pid, sig):
            logger.warning("process_tree_kill_fallback", pid=proc.pid)


async def _watch(
    tasks: set[asyncio.Task],
    cancel_task: asyncio.Task | None,
    deadline: float | None,
    loop: asyncio.AbstractEventLoop,
) -> str:
    """Wait until every task finishes. Returns "done", "timeout" or "cancel"."""
    pending = set(tasks)
    while pending:
        watched = set(pending)
        if cancel_task is not None:
            watched.add(cancel_task)
        remaining = None if deadline is None else deadline - loop.time()
        if remaining is not None and remaining <= 0:
            return "timeout"
        done, _ = await asyncio.wait(
            watched, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
        )
        if cancel_task is not None and cancel_task in done:
            return "cancel"
        if not done:
            return "timeout"
        pending -= done
    return "done"


async def _reap(
    proc: asyncio.subprocess.Process,
    exit_task: asyncio.Task,
    drains: list[asyncio.Task],
) -> None:
    """Collect the killed child and whatever output is still buffered."""
    try:
        await asyncio.wait_for(asyncio.shield(exit_task), _KILL_GRACE_S)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        try:
            await asyncio.wait_for(asyncio.shield(exit_task), _KILL_GRACE_S)
        except TimeoutError:
            logger.error("process_unkillable", pid=proc.pid)
            exit_task.cancel()
    _, pending = await asyncio.wait(drains, timeout=_DRAIN_GRACE_S)
    for task in pending:
        task.cancel()


async def run_command(
    command: str | Sequence[str], options: CommandOptions | None = None
) -> CommandResult:
    """Run a command with env-derived settings and the platform tree killer."""
    return await ProcessRunner().run(command, options)
