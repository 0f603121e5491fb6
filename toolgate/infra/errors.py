"""Custom exception hierarchy for toolgate.

All application-specific exceptions inherit from ToolgateError,
which carries an error code that tool envelopes expose as ``error_code``.
"""

from __future__ import annotations


class ToolgateError(Exception):
    """Base exception for all toolgate errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ToolError(ToolgateError):
    """Errors during tool execution."""

    def __init__(self, message: str, *, code: str = "TOOL_ERROR") -> None:
        super().__init__(message, code=code)


class ScopeViolationError(ToolgateError):
    """A path resolved outside of the permitted roots."""

    def __init__(self, message: str, *, code: str = "ACCESS_DENIED") -> None:
        super().__init__(message, code=code)


class CommandPolicyError(ToolgateError):
    """Command rejected by the security policy before spawn.

    ``returncode`` is the POSIX-like exit code reported to the caller.
    """

    def __init__(
        self, message: str, *, returncode: int = 126, code: str = "COMMAND_BLOCKED"
    ) -> None:
        super().__init__(message, code=code)
        self.returncode = returncode


class TodoError(ToolError):
    """Invalid todo operation (bad index, unknown status, empty content)."""

    def __init__(self, message: str, *, code: str = "INVALID_ARGS") -> None:
        super().__init__(message, code=code)


class ProviderError(ToolgateError):
    """Errors from external provider collaborators (image, web search)."""

    def __init__(self, message: str, *, code: str = "PROVIDER_ERROR") -> None:
        super().__init__(message, code=code)


class ProviderNotConfiguredError(ProviderError):
    """Provider credentials are missing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="NOT_CONFIGURED")
