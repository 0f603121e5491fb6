"""Platform-specific search invocations behind one SearchBackend interface."""

from __future__ import annotations

import ntpath
import sys
from abc import ABC, abstractmethod

from toolgate.search.planner import MatchCase, SearchPlan, SearchRequest


class SearchBackend(ABC):
    """Builds the argv for one external search tool."""

    @property
    @abstractmethod
    def executable(self) -> str:
        ...

    @property
    @abstractmethod
    def not_installed_message(self) -> str:
        """stderr reported when the tool binary is missing."""
        ...

    @abstractmethod
    def build_command(self, request: SearchRequest, plan: SearchPlan) -> list[str]:
        ...


class RipgrepBackend(SearchBackend):
    """ripgrep on POSIX hosts. Exit codes: 0 match, 1 no match, 2 error."""

    @property
    def executable(self) -> str:
        return "rg"

    @property
    def not_installed_message(self) -> str:
        return (
            "ripgrep (rg) not found. Install ripgrep: "
            "https://github.com/BurntSushi/ripgrep#installation"
        )

    def build_command(self, request: SearchRequest, plan: SearchPlan) -> list[str]:
        command = [self.executable, "--with-filename", "--color=never"]

        mode = request.case_mode
        if mode is MatchCase.smart:
            command.append("-S")
        elif mode is MatchCase.insensitive:
            command.append("-i")

        if request.literal:
            command.append("-F")
        if request.no_messages:
            command.append("--no-messages")

        command.append("-n" if request.line_numbers else "--no-line-number")

        if not plan.allow_recursive:
            command.extend(["--max-depth", "1"])
        if plan.use_glob and plan.rel_glob:
            command.extend(["-g", plan.rel_glob])

        command.extend(["-e", request.pattern])
        command.append(plan.search_root or plan.target)
        return command


class FindstrBackend(SearchBackend):
    """Built-in findstr on Windows. Same exit code contract as grep."""

    @property
    def executable(self) -> str:
        return "findstr"

    @property
    def not_installed_message(self) -> str:
        return "findstr was not found. It should be available by default on Windows."

    @staticmethod
    def _sanitize_glob(glob: str) -> str:
        # findstr has no recursive wildcard; /S provides the recursion
        return glob.replace("**", "*").replace("/", "\\")

    def build_command(self, request: SearchRequest, plan: SearchPlan) -> list[str]:
        command = [self.executable, "/L" if request.literal else "/R"]
        if request.effective_insensitive:
            command.append("/I")
        if request.line_numbers:
            command.append("/N")
        if plan.allow_recursive:
            command.append("/S")
        command.append(f"/C:{request.pattern}")

        if plan.search_root:
            glob = self._sanitize_glob(plan.rel_glob or "*") if plan.use_glob else "*"
            command.append(ntpath.join(plan.search_root.replace("/", "\\"), glob or "*"))
        elif plan.target != ".":
            command.append(plan.target)
        else:
            command.append(ntpath.join(".", "*"))
        return command


def select_backend(platform: str | None = None) -> SearchBackend:
    """Pick the backend for the host (or the given ``sys.platform`` value)."""
    if (platform or sys.platform) == "win32":
        return FindstrBackend()
    return RipgrepBackend()
