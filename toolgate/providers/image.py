"""Image generation provider: OpenAI first, Azure OpenAI as fallback.

The caller resolves and scopes the output path; this module only talks to
the API, decodes the base64 payload and writes the bytes.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from pathlib import Path

import structlog
from openai import APIError, AsyncAzureOpenAI, AsyncOpenAI

from toolgate.config.settings import ImageSettings
from toolgate.infra.errors import ProviderError, ProviderNotConfiguredError

logger = structlog.get_logger()

IMAGE_SIZES = frozenset({
    "auto",
    "256x256",
    "512x512",
    "1024x1024",
    "1536x1024",
    "1024x1536",
    "1792x1024",
    "1024x1792",
})
IMAGE_QUALITIES = frozenset({"standard", "high"})

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
}


@dataclass(frozen=True)
class GeneratedImage:
    path: Path
    mime: str
    size_bytes: int


def detect_image_mime(data: bytes, path: str | Path | None = None) -> str:
    """Sniff the mime type from magic bytes, then the extension, default PNG."""
    if len(data) >= 12:
        if data.startswith(b"\x89PNG"):
            return "image/png"
        if data.startswith(b"\xff\xd8\xff"):
            return "image/jpeg"
        if data.startswith(b"GIF"):
            return "image/gif"
        if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
            return "image/webp"
        if data.startswith(b"BM"):
            return "image/bmp"
    suffix = Path(path).suffix.lower() if path else ""
    return _EXTENSION_MIME.get(suffix, "image/png")


class ImageGenerator:
    """Generate one image per call and save it to disk.

    ``client``/``model`` can be injected (tests, custom gateways); otherwise
    the client is built from ImageSettings on first use.
    """

    def __init__(
        self,
        settings: ImageSettings | None = None,
        *,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
    ) -> None:
        self._settings = settings or ImageSettings()
        self._client = client
        self._model = model

    def _resolve_client(self) -> tuple[AsyncOpenAI, str]:
        s = self._settings
        if self._client is not None:
            return self._client, self._model or s.openai_model
        if s.openai_api_key.strip():
            self._client = AsyncOpenAI(api_key=s.openai_api_key.strip())
            self._model = self._model or s.openai_model
            logger.info("image_provider_selected", provider="openai", model=self._model)
        elif s.azure_endpoint.strip() and s.azure_api_key.strip():
            self._client = AsyncAzureOpenAI(
                azure_endpoint=s.azure_endpoint.strip(),
                api_key=s.azure_api_key.strip(),
                api_version=s.azure_api_version,
            )
            self._model = self._model or s.azure_deployment
            logger.info("image_provider_selected", provider="azure", model=self._model)
        else:
            raise ProviderNotConfiguredError(
                "Image generation is not configured. Set OPENAI_API_KEY (recommended) "
                "or AZURE_OPENAI_* image credentials."
            )
        return self._client, self._model

    async def generate(
        self,
        prompt: str,
        target: Path,
        *,
        size: str | None = None,
        quality: str | None = None,
    ) -> GeneratedImage:
        """Generate an image for ``prompt`` and write it to ``target``.

        Raises ProviderNotConfiguredError without credentials, ProviderError
        for API failures or an empty payload.
        """
        client, model = self._resolve_client()
        kwargs: dict = {"model": model, "prompt": prompt}
        if size:
            kwargs["size"] = size
        if quality:
            kwargs["quality"] = quality
        if model.startswith("dall-e"):
            # gpt-image models always return base64 and reject response_format
            kwargs["response_format"] = "b64_json"

        logger.info("image_generate_request", model=model, size=size, quality=quality)
        try:
            response = await client.images.generate(**kwargs)
        except APIError as e:
            raise ProviderError(f"Image generation failed: {e.message}") from e

        payload = response.data[0].b64_json if response.data else None
        if not payload:
            raise ProviderError("Image generation response missing base64 payload.")
        try:
            data = base64.b64decode(payload)
        except (binascii.Error, ValueError) as e:
            raise ProviderError(f"Image payload is not valid base64: {e}") from e

        await asyncio.to_thread(_write_image, target, data)
        mime = detect_image_mime(data, target)
        logger.info("image_saved", path=str(target), mime=mime, size_bytes=len(data))
        return GeneratedImage(path=target, mime=mime, size_bytes=len(data))


def _write_image(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
