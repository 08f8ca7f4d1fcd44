"""OpenAI Images API client returning base64 payloads.

Wraps ``client.images.generate()`` for one image per call.  The base64 field
is requested directly; when the service answers with a hosted URL instead,
the image is downloaded with httpx, checked with Pillow and encoded.

Results are tagged (see :mod:`toolforge.core.results`):

- ``Ok(ImagePayload)``: a usable image
- ``ParseError``: the service answered but gave nothing usable
- ``UpstreamError``: the service call or the URL download failed
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from io import BytesIO

import httpx
from openai import AsyncOpenAI, OpenAIError
from PIL import Image, UnidentifiedImageError

from toolforge.core.results import Ok, ParseError, Result, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImagePayload:
    """One generated image."""

    base64: str
    url: str | None = None


def _verify_image_bytes(raw: bytes) -> bool:
    """Return True if ``raw`` decodes as an image."""
    try:
        with Image.open(BytesIO(raw)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False
    return True


class ImageGenerationClient:
    """Async client for single-image generation.

    Args:
        client: AsyncOpenAI client instance.
        http: httpx client used to download hosted image URLs.
        model: Image model name.
        size: Requested size, e.g. ``"1024x1024"``.
        quality: Requested quality, e.g. ``"standard"``.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        http: httpx.AsyncClient,
        *,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
    ) -> None:
        self._client = client
        self._http = http
        self._model = model
        self._size = size
        self._quality = quality

    async def generate(self, prompt: str) -> Result[ImagePayload]:
        """Generate one image for ``prompt``."""
        started = time.monotonic()
        try:
            response = await self._client.images.generate(
                model=self._model,
                prompt=prompt,
                size=self._size,  # type: ignore[arg-type]
                quality=self._quality,  # type: ignore[arg-type]
                n=1,
                response_format="b64_json",
            )
        except OpenAIError as e:
            logger.error(f"Image generation request failed: {e}")
            return UpstreamError(f"image request failed: {e}", cause=e)

        data = getattr(response, "data", None) or []
        first = data[0] if data else None
        logger.info(
            f"Image service responded in {(time.monotonic() - started) * 1000:.0f} ms "
            f"(has_data={first is not None}, has_url={bool(getattr(first, 'url', None))}, "
            f"has_b64={bool(getattr(first, 'b64_json', None))})"
        )
        if first is None:
            return ParseError("No image generated")

        url = getattr(first, "url", None) or None
        b64 = getattr(first, "b64_json", None)
        if b64:
            return Ok(ImagePayload(base64=b64, url=url))
        if url:
            return await self._download(url)
        return ParseError("No image data returned")

    async def _download(self, url: str) -> Result[ImagePayload]:
        """Fetch a hosted image and encode it as base64."""
        try:
            resp = await self._http.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Image download failed: {e}")
            return UpstreamError(f"image download failed: {e}", cause=e)

        raw = resp.content
        if not raw or not _verify_image_bytes(raw):
            return ParseError("Downloaded content is not an image")
        return Ok(ImagePayload(base64=base64.b64encode(raw).decode("ascii"), url=url))
