"""Command security policy evaluated by the process runner before spawn.

Rules:
- argv form only, unless the caller passes ``shell=True`` and ``allow_unsafe=True``
- destructive/administrative executables are denied by basename
- ``rm`` with recursive+force flags is denied unless ``allow_unsafe``
- the child environment is a sanitized allow-list copy of the parent's
"""

from __future__ import annotations

import os
import re
import shutil
import sys
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

import structlog

from toolgate.infra.errors import CommandPolicyError
from toolgate.infra.logging import AUDIT_LOGGER_NAME

audit_logger = structlog.get_logger(AUDIT_LOGGER_NAME)

_WINDOWS_EXECUTABLE_SUFFIXES = (".exe", ".cmd", ".bat", ".com")

DEFAULT_BLOCKED_COMMANDS: frozenset[str] = frozenset({
    # filesystem formatting / destruction
    "mkfs", "mkfs.ext2", "mkfs.ext3", "mkfs.ext4", "mkfs.btrfs", "mkfs.xfs",
    "mkfs.fat", "mkfs.vfat", "mkfs.ntfs", "wipefs", "dd", "shred", "truncate",
    "format",
    # partitioning
    "fdisk", "sfdisk", "parted", "diskutil", "diskpart",
    # mount
    "mount", "umount",
    # power control
    "shutdown", "reboot", "poweroff", "halt", "init", "telinit",
    # service management
    "systemctl", "service", "launchctl", "sc",
    # users and groups
    "useradd", "userdel", "usermod", "groupadd", "groupdel", "passwd",
    # firewall
    "iptables", "ip6tables", "ufw", "firewall-cmd", "netsh",
    # process killing
    "kill", "killall", "pkill", "taskkill",
    # privilege escalation
    "sudo", "doas", "su", "runas",
    # permission changes
    "chmod", "chown", "chgrp",
})

SENSITIVE_ENV_PATTERN = re.compile(
    r"key|secret|token|passwd|password|session|cookie|aws|azure|openai|anthropic|gemini|google",
    re.IGNORECASE,
)

DEFAULT_ENV_BASELINE_KEYS: tuple[str, ...] = (
    "PATH", "HOME", "TMPDIR", "TEMP", "TMP", "SHELL",
    "LANG", "LC_ALL", "LC_CTYPE", "USER", "USERNAME",
)
_WINDOWS_ENV_BASELINE_KEYS = ("SYSTEMROOT", "COMSPEC", "PATHEXT", "WINDIR")

_RM_SHORT_FLAGS = re.compile(r"^-[a-zA-Z]+$")


def is_windows() -> bool:
    return sys.platform == "win32"


def has_path_separator(value: str) -> bool:
    return "/" in value or "\\" in value


def normalize_command_name(value: str | None) -> str:
    """Lower-cased basename with Windows executable suffixes stripped."""
    if not value:
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""
    base = re.split(r"[\\/]", trimmed)[-1].lower()
    for suffix in _WINDOWS_EXECUTABLE_SUFFIXES:
        if base.endswith(suffix) and len(base) > len(suffix):
            return base[: -len(suffix)]
    return base


@dataclass(frozen=True)
class CommandDescriptor:
    """Normalized view of a command request, derived once per run."""

    argv: tuple[str, ...]
    raw: str | tuple[str, ...]
    primary: str
    primary_name: str
    uses_shell: bool
    has_path: bool

    @classmethod
    def build(cls, command: str | Sequence[str]) -> CommandDescriptor:
        if isinstance(command, str):
            trimmed = command.strip()
            first = trimmed.split(maxsplit=1)[0] if trimmed else ""
            return cls(
                argv=(trimmed,),
                raw=trimmed,
                primary=first,
                primary_name=normalize_command_name(first),
                uses_shell=True,
                has_path=has_path_separator(first) or os.path.isabs(first),
            )
        argv = tuple(str(part) for part in command)
        primary = argv[0] if argv else ""
        return cls(
            argv=argv,
            raw=argv,
            primary=primary,
            primary_name=normalize_command_name(primary),
            uses_shell=False,
            has_path=has_path_separator(primary) or os.path.isabs(primary),
        )

    @property
    def audit_argv(self) -> list[str]:
        return [self.raw] if isinstance(self.raw, str) else list(self.raw)


def is_recursive_force_rm(args: Iterable[str]) -> bool:
    """True for rm flag sets that combine recursive and force, or skip root protection."""
    recursive = False
    force = False
    for arg in args:
        if arg == "--":
            break
        lowered = arg.lower()
        if lowered == "--no-preserve-root":
            return True
        if lowered == "--recursive":
            recursive = True
        elif lowered == "--force":
            force = True
        elif _RM_SHORT_FLAGS.match(arg):
            letters = arg[1:]
            recursive = recursive or "r" in letters or "R" in letters
            force = force or "f" in letters
    return recursive and force


@dataclass(frozen=True)
class CommandPolicy:
    """Per-call policy knobs. Stateless: evaluate() only reads its inputs."""

    allow_unsafe: bool = False
    shell: bool = False
    denied_commands: frozenset[str] = frozenset()

    def blocked_commands(self) -> frozenset[str]:
        extra = {normalize_command_name(name) for name in self.denied_commands}
        return DEFAULT_BLOCKED_COMMANDS | {name for name in extra if name}

    def evaluate(self, descriptor: CommandDescriptor) -> None:
        """Raise CommandPolicyError if the command may not be spawned."""
        if not descriptor.primary:
            raise CommandPolicyError("No executable provided", returncode=127, code="INVALID_ARGS")

        if descriptor.uses_shell:
            if not self.shell:
                raise CommandPolicyError(
                    "String commands require shell=True to avoid implicit shell execution."
                )
            if not self.allow_unsafe:
                raise CommandPolicyError(
                    "String commands executed via shell are disabled by default. "
                    "Provide allow_unsafe or use argv form."
                )
            return

        if self.allow_unsafe:
            return

        if descriptor.primary_name in self.blocked_commands():
            raise CommandPolicyError(
                f"Command '{descriptor.primary}' is blocked. Provide allow_unsafe to override."
            )

        if descriptor.primary_name == "rm" and is_recursive_force_rm(descriptor.argv[1:]):
            raise CommandPolicyError(
                "'rm' with recursive force flags is blocked without allow_unsafe."
            )


def sanitize_environment(
    *,
    inherit_env: bool = False,
    env: Mapping[str, str | None] | None = None,
    allowlist: Iterable[str] = (),
    blocklist: Iterable[str] = (),
    allow_unsafe: bool = False,
    source: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the child environment.

    Baseline keys only unless ``inherit_env``. Sensitive-looking keys are
    stripped unless allow-listed by name; explicit ``env`` overrides that look
    sensitive are dropped unless allow-listed or ``allow_unsafe``.
    """
    parent = dict(os.environ if source is None else source)
    allowed = {key.upper() for key in allowlist}
    blocked = {key.upper() for key in blocklist}

    if inherit_env:
        child = dict(parent)
    else:
        keys = DEFAULT_ENV_BASELINE_KEYS
        if is_windows():
            keys = keys + _WINDOWS_ENV_BASELINE_KEYS
        child = {key: parent[key] for key in keys if key in parent}

    for key in list(child):
        upper = key.upper()
        if upper in allowed:
            continue
        if upper in blocked or SENSITIVE_ENV_PATTERN.search(key):
            del child[key]

    for key, value in (env or {}).items():
        if value is None:
            child.pop(key, None)
            continue
        upper = key.upper()
        if upper not in allowed and not allow_unsafe and (
            upper in blocked or SENSITIVE_ENV_PATTERN.search(key)
        ):
            continue
        child[key] = str(value)

    if not child.get("PATH") and parent.get("PATH"):
        child["PATH"] = parent["PATH"]

    return child


def resolve_executable(exe: str, *, env: Mapping[str, str], cwd: str) -> str | None:
    """Locate the executable the way the OS would, honouring PATHEXT on Windows.

    Path-bearing names are checked relative to ``cwd``; bare names are looked
    up on the sanitized PATH.
    """
    if not exe:
        return None
    if os.path.isabs(exe) or has_path_separator(exe):
        candidate = exe if os.path.isabs(exe) else os.path.join(cwd, exe)
        return shutil.which(candidate)
    return shutil.which(exe, path=env.get("PATH", ""))


def audit(event: str, **details: object) -> None:
    audit_logger.info(event, **details)
