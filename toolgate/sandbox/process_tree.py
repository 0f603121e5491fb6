"""Terminate a spawned process together with all of its descendants.

POSIX children are started in their own session (process group id == pid),
so one ``killpg`` reaches the whole tree. Windows has no process groups we
can signal, so ``taskkill /T /F`` walks the tree instead. Either way a
failed tree kill falls back to killing the direct child only.
"""

from __future__ import annotations

import asyncio
import os
import signal
import subprocess
import sys
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger()

_TASKKILL_TIMEOUT_S = 5.0


class TreeKiller(ABC):
    @abstractmethod
    async def kill_tree(self, pid: int, sig: int | None = None) -> bool:
        """Kill ``pid`` and its descendants. Returns False if only a fallback ran."""
        ...


class PosixTreeKiller(TreeKiller):
    async def kill_tree(self, pid: int, sig: int | None = None) -> bool:
        sig = signal.SIGKILL if sig is None else sig
        try:
            os.killpg(pid, sig)
            return True
        except ProcessLookupError:
            return True
        except OSError:
            logger.warning("process_group_kill_failed", pid=pid, signal=int(sig))
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.warning("process_kill_failed", pid=pid, error=str(exc))
        return False


class WindowsTreeKiller(TreeKiller):
    async def kill_tree(self, pid: int, sig: int | None = None) -> bool:
        try:
            stopper = await asyncio.create_subprocess_exec(
                "taskkill", "/PID", str(pid), "/T", "/F",
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            await asyncio.wait_for(stopper.wait(), timeout=_TASKKILL_TIMEOUT_S)
            if stopper.returncode == 0:
                return True
        except (OSError, TimeoutError):
            logger.warning("taskkill_failed", pid=pid)
        try:
            os.kill(pid, signal.SIGTERM if sig is None else sig)
        except OSError as exc:
            logger.warning("process_kill_failed", pid=pid, error=str(exc))
        return False


def default_tree_killer() -> TreeKiller:
    if sys.platform == "win32":
        return WindowsTreeKiller()
    return PosixTreeKiller()


async def kill_tree(pid: int, sig: int | None = None) -> bool:
    """Kill a process tree with the platform's strategy."""
    return await default_tree_killer().kill_tree(pid, sig)
