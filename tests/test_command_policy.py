"""Command security policy: descriptor parsing, denylist, rm pattern, env sanitizing."""

from __future__ import annotations

import pytest

from toolgate.infra.errors import CommandPolicyError
from toolgate.sandbox.policy import (
    CommandDescriptor,
    CommandPolicy,
    is_recursive_force_rm,
    normalize_command_name,
    resolve_executable,
    sanitize_environment,
)


def _evaluate(command, **policy_kwargs) -> None:
    CommandPolicy(**policy_kwargs).evaluate(CommandDescriptor.build(command))


class TestNormalizeCommandName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("/usr/bin/SUDO", "sudo"),
            ("C:\\Windows\\System32\\taskkill.exe", "taskkill"),
            ("shutdown.BAT", "shutdown"),
            ("  ls  ", "ls"),
            ("", ""),
            (None, ""),
            (".exe", ".exe"),
        ],
    )
    def test_normalization(self, raw, expected) -> None:
        assert normalize_command_name(raw) == expected


class TestCommandDescriptor:
    def test_argv_form(self) -> None:
        d = CommandDescriptor.build(["/bin/echo", "hi"])
        assert d.primary == "/bin/echo"
        assert d.primary_name == "echo"
        assert d.has_path
        assert not d.uses_shell
        assert d.audit_argv == ["/bin/echo", "hi"]

    def test_string_form(self) -> None:
        d = CommandDescriptor.build("  echo hi | wc -l ")
        assert d.uses_shell
        assert d.primary == "echo"
        assert d.audit_argv == ["echo hi | wc -l"]


class TestDenylist:
    @pytest.mark.parametrize(
        "command",
        [
            ["sudo", "ls"],
            ["/sbin/shutdown", "-h", "now"],
            ["KILL", "-9", "1"],
            ["mkfs.ext4", "/dev/sda1"],
            ["chmod", "777", "x"],
            ["taskkill.exe", "/F"],
        ],
    )
    def test_blocked(self, command) -> None:
        with pytest.raises(CommandPolicyError, match="is blocked") as exc_info:
            _evaluate(command)
        assert exc_info.value.returncode == 126
        assert exc_info.value.code == "COMMAND_BLOCKED"

    def test_allow_unsafe_overrides(self) -> None:
        _evaluate(["sudo", "ls"], allow_unsafe=True)

    def test_caller_extension(self) -> None:
        with pytest.raises(CommandPolicyError):
            _evaluate(["curl", "example.com"], denied_commands=frozenset({"CURL.exe"}))

    def test_plain_rm_allowed(self) -> None:
        _evaluate(["rm", "file.txt"])
        _evaluate(["rm", "-r", "build"])

    def test_harmless_command_allowed(self) -> None:
        _evaluate(["ls", "-la"])


class TestRmPattern:
    @pytest.mark.parametrize(
        "args",
        [
            ["-rf", "/"],
            ["-fr", "x"],
            ["-r", "-f", "x"],
            ["-Rf", "x"],
            ["--recursive", "--force", "x"],
            ["-vrfi", "x"],
            ["--no-preserve-root", "/"],
        ],
    )
    def test_detected(self, args) -> None:
        assert is_recursive_force_rm(args)

    @pytest.mark.parametrize(
        "args",
        [["-r", "x"], ["-f", "x"], ["--", "-rf"], ["x", "y"]],
    )
    def test_not_detected(self, args) -> None:
        assert not is_recursive_force_rm(args)

    def test_rm_rf_blocked_by_policy(self) -> None:
        with pytest.raises(CommandPolicyError, match="recursive force"):
            _evaluate(["rm", "-rf", "/"])


class TestShellStrings:
    def test_string_without_shell(self) -> None:
        with pytest.raises(CommandPolicyError, match="shell=True"):
            _evaluate("ls -la")

    def test_shell_without_unsafe(self) -> None:
        with pytest.raises(CommandPolicyError, match="disabled by default"):
            _evaluate("ls -la", shell=True)

    def test_shell_with_unsafe(self) -> None:
        _evaluate("ls -la", shell=True, allow_unsafe=True)

    def test_empty_command(self) -> None:
        with pytest.raises(CommandPolicyError) as exc_info:
            _evaluate([])
        assert exc_info.value.returncode == 127
        assert str(exc_info.value) == "No executable provided"


class TestSanitizeEnvironment:
    SOURCE = {
        "PATH": "/usr/bin",
        "HOME": "/home/agent",
        "OPENAI_API_KEY": "sk-secret",
        "GITHUB_TOKEN": "ghp",
        "EDITOR": "vim",
    }

    def test_baseline_only(self) -> None:
        env = sanitize_environment(source=self.SOURCE)
        assert env == {"PATH": "/usr/bin", "HOME": "/home/agent"}

    def test_inherit_strips_sensitive(self) -> None:
        env = sanitize_environment(inherit_env=True, source=self.SOURCE)
        assert "EDITOR" in env
        assert "OPENAI_API_KEY" not in env
        assert "GITHUB_TOKEN" not in env

    def test_allowlist_keeps_sensitive(self) -> None:
        env = sanitize_environment(
            inherit_env=True, allowlist=["github_token"], source=self.SOURCE
        )
        assert env["GITHUB_TOKEN"] == "ghp"

    def test_blocklist(self) -> None:
        env = sanitize_environment(inherit_env=True, blocklist=["EDITOR"], source=self.SOURCE)
        assert "EDITOR" not in env

    def test_explicit_sensitive_override_needs_unsafe(self) -> None:
        env = sanitize_environment(env={"MY_SECRET": "x"}, source=self.SOURCE)
        assert "MY_SECRET" not in env
        env = sanitize_environment(env={"MY_SECRET": "x"}, allow_unsafe=True, source=self.SOURCE)
        assert env["MY_SECRET"] == "x"

    def test_none_deletes_key(self) -> None:
        env = sanitize_environment(env={"HOME": None}, source=self.SOURCE)
        assert "HOME" not in env

    def test_path_restored(self) -> None:
        env = sanitize_environment(env={"PATH": ""}, source=self.SOURCE)
        assert env["PATH"] == "/usr/bin"


class TestResolveExecutable:
    def test_missing_bare_name(self, tmp_path) -> None:
        assert resolve_executable("definitely-not-a-real-binary-xyz", env={"PATH": str(tmp_path)}, cwd=str(tmp_path)) is None

    def test_relative_path_against_cwd(self, tmp_path) -> None:
        script = tmp_path / "run.sh"
        script.write_text("#!/bin/sh\necho hi\n", encoding="utf-8")
        script.chmod(0o755)
        resolved = resolve_executable("./run.sh", env={"PATH": ""}, cwd=str(tmp_path))
        assert resolved is not None
        assert resolved.endswith("run.sh")
