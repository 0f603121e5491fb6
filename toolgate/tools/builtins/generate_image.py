from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from toolgate.infra.errors import ToolgateError
from toolgate.providers.image import IMAGE_QUALITIES, IMAGE_SIZES, ImageGenerator
from toolgate.sandbox.scope_resolver import PathIntent, resolve_tool_path
from toolgate.tools.base import BaseTool, ToolGroup, ToolMode
from toolgate.tools.envelope import failure

if TYPE_CHECKING:
    from toolgate.tools.context import ToolContext

logger = structlog.get_logger()


def _pick(value: object, allowed: frozenset[str]) -> str | None:
    """Normalized option if allowed, else None (the provider default applies)."""
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    return normalized if normalized in allowed else None


class GenerateImageTool(BaseTool):
    """Generate an image from a prompt and save it inside the permitted roots.

    Only the saved path, mime type and byte count are returned; the image
    payload itself stays on disk.
    """

    def __init__(self, generator: ImageGenerator) -> None:
        self._generator = generator

    @property
    def name(self) -> str:
        return "generate_image_tool"

    @property
    def description(self) -> str:
        return "Generate an image from a text prompt and save it to output_path."

    @property
    def group(self) -> ToolGroup:
        return ToolGroup.world

    @property
    def allowed_modes(self) -> frozenset[ToolMode]:
        return frozenset({ToolMode.coding})

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "Description of the image."},
                "output_path": {
                    "type": "string",
                    "description": "Where to save the image, e.g. 'assets/logo.png'.",
                },
                "size": {
                    "type": "string",
                    "enum": sorted(IMAGE_SIZES),
                    "description": "Image size; unsupported values are ignored.",
                },
                "quality": {
                    "type": "string",
                    "enum": sorted(IMAGE_QUALITIES),
                    "description": "Image quality; unsupported values are ignored.",
                },
            },
            "required": ["prompt", "output_path"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> dict:
        prompt = str(arguments.get("prompt") or "").strip()
        if not prompt:
            return failure("prompt is required.", "INVALID_ARGS")
        raw_path = str(arguments.get("output_path") or "").strip()
        if not raw_path:
            return failure("output_path is required.", "INVALID_ARGS")

        resolved = resolve_tool_path(context, raw_path, PathIntent.write)
        if not resolved.ok:
            return failure(resolved.error, resolved.error_code)

        try:
            image = await self._generator.generate(
                prompt,
                resolved.path,
                size=_pick(arguments.get("size"), IMAGE_SIZES),
                quality=_pick(arguments.get("quality"), IMAGE_QUALITIES),
            )
        except ToolgateError as e:
            logger.warning("generate_image_failed", error=str(e), error_code=e.code)
            return failure(str(e), e.code)
        except OSError as e:
            return failure(f"Failed to save image: {e}", "WRITE_ERROR")

        return {
            "ok": True,
            "path": str(image.path),
            "message": f"Image saved to {image.path}",
            "mime": image.mime,
            "bytes": image.size_bytes,
        }
