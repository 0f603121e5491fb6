from __future__ import annotations

import math
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env once at module import so every BaseSettings subclass sees its values
load_dotenv()

DEFAULT_WAIT_TOOL_MAX_MS = 5 * 60 * 1000
DEFAULT_GREP_TIMEOUT_SECONDS = 120
DEFAULT_COMMAND_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_MAX_BUFFER_BYTES = 5 * 1024 * 1024
DEFAULT_TEXT_RESPONSE_LIMIT = 120_000
DEFAULT_TODO_ITEM_LIMIT = 2_000
DEFAULT_TODO_LIST_LIMIT = 200


def parse_duration(value: object, fallback: int) -> int:
    """Lenient duration parsing: unset/unparsable → fallback, <= 0 → 0 (no limit)."""
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, int | float):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return fallback
        try:
            number = float(text)
        except ValueError:
            return fallback
    if not math.isfinite(number):
        return fallback
    if number <= 0:
        return 0
    return math.floor(number)


class ToolSettings(BaseSettings):
    """Tool adapter and process runner limits. Env vars prefixed with AGENT_.

    Duration fields accept several legacy env names; values that are unset or
    unparsable fall back to the default instead of failing startup.
    """

    model_config = SettingsConfigDict(env_prefix="AGENT_", populate_by_name=True)

    wait_tool_max_ms: int = Field(
        DEFAULT_WAIT_TOOL_MAX_MS,
        validation_alias=AliasChoices(
            "AGENT_WAIT_TOOL_MAX_MS", "AGENT_WAIT_MAX_MS", "AGENT_WAIT_TOOL_CLAMP_MS"
        ),
    )
    grep_timeout_seconds: int = Field(
        DEFAULT_GREP_TIMEOUT_SECONDS,
        validation_alias=AliasChoices(
            "AGENT_GREP_DEFAULT_TIMEOUT_SECONDS",
            "AGENT_GREP_TIMEOUT_SECONDS",
            "AGENT_GREP_TIMEOUT_SEC",
        ),
    )
    command_timeout_ms: int = Field(
        DEFAULT_COMMAND_TIMEOUT_MS,
        validation_alias=AliasChoices("AGENT_COMMAND_TIMEOUT_MS", "AGENT_CMD_TIMEOUT_MS"),
    )
    command_max_buffer_bytes: int = Field(DEFAULT_MAX_BUFFER_BYTES, gt=0)
    text_response_limit: int = Field(DEFAULT_TEXT_RESPONSE_LIMIT, gt=0)
    grep_stderr_limit: int = Field(6_000, gt=0)
    todo_max_sessions: int = Field(256, gt=0)
    todo_item_limit: int = Field(DEFAULT_TODO_ITEM_LIMIT, gt=0)
    todo_list_limit: int = Field(DEFAULT_TODO_LIST_LIMIT, gt=0)

    @field_validator(
        "wait_tool_max_ms", "grep_timeout_seconds", "command_timeout_ms", mode="before"
    )
    @classmethod
    def _lenient_duration(cls, v: object, info: ValidationInfo) -> int:
        return parse_duration(v, cls.model_fields[info.field_name].default)


class WorkspaceSettings(BaseSettings):
    """Default roots used to build a ToolContext. Env vars prefixed with WORKSPACE_."""

    model_config = SettingsConfigDict(env_prefix="WORKSPACE_")

    root: Path = Path(".")
    additional_root: Path | None = None
    allow_external: bool = False


class ImageSettings(BaseSettings):
    """Image generation credentials: OpenAI first, Azure OpenAI as fallback."""

    model_config = SettingsConfigDict(populate_by_name=True)

    openai_api_key: str = Field("", validation_alias=AliasChoices("OPENAI_API_KEY"))
    openai_model: str = Field(
        "gpt-image-1", validation_alias=AliasChoices("OPENAI_IMAGE_MODEL")
    )
    azure_endpoint: str = Field(
        "",
        validation_alias=AliasChoices(
            "AZURE_OPENAI_IMAGES_ENDPOINT",
            "AZURE_OPENAI_IMAGE_ENDPOINT",
            "AZURE_OPENAI_ENDPOINT",
        ),
    )
    azure_api_key: str = Field(
        "",
        validation_alias=AliasChoices(
            "AZURE_OPENAI_IMAGES_API_KEY",
            "AZURE_OPENAI_IMAGE_API_KEY",
            "AZURE_OPENAI_API_KEY",
        ),
    )
    azure_api_version: str = Field(
        "2025-04-01-preview",
        validation_alias=AliasChoices(
            "AZURE_OPENAI_IMAGE_API_VERSION", "AZURE_OPENAI_API_VERSION"
        ),
    )
    azure_deployment: str = Field(
        "gpt-image-1",
        validation_alias=AliasChoices(
            "AZURE_OPENAI_IMAGE_DEPLOYMENT",
            "AZURE_OPENAI_IMAGE_MODEL",
            "AZURE_OPENAI_IMAGE_NAME",
        ),
    )


class GoogleSearchSettings(BaseSettings):
    """Google Custom Search credentials. Empty values = provider disabled."""

    model_config = SettingsConfigDict(env_prefix="GOOGLE_CSE_", populate_by_name=True)

    api_key: str = Field(
        "", validation_alias=AliasChoices("GOOGLE_CSE_API_KEY", "GOOGLE_API_KEY")
    )
    engine_id: str = Field(
        "",
        validation_alias=AliasChoices(
            "GOOGLE_CSE_ID", "GOOGLE_CSE_CX", "GOOGLE_CSE_ENGINE_ID"
        ),
    )
    endpoint: str = "https://www.googleapis.com/customsearch/v1"
    timeout_s: float = 30.0


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    tools: ToolSettings = Field(default_factory=ToolSettings)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    image: ImageSettings = Field(default_factory=ImageSettings)
    google: GoogleSearchSettings = Field(default_factory=GoogleSearchSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
