"""Sequential image pipeline runner.

After payment confirms, one ``POST /api/generate-image`` is issued per
variant, strictly in the declared order, with a fixed pause between
requests to stay under upstream rate limits.

The first failing request ends the run: no further requests are issued and
:class:`PipelineError` carries the images already retrieved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import httpx

from toolforge.client.models import GeneratedImageAsset, PipelineProgress
from toolforge.core.variants import VariantTag

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PipelineProgress, list[GeneratedImageAsset]], None]


class PipelineError(Exception):
    """A variant request failed; the run was aborted.

    Attributes:
        variant: The variant whose request failed.
        status_code: HTTP status, when the server answered.
        partial: Images retrieved before the failure, in order.
    """

    def __init__(
        self,
        message: str,
        *,
        variant: VariantTag,
        status_code: int | None = None,
        partial: list[GeneratedImageAsset] | None = None,
    ) -> None:
        super().__init__(message)
        self.variant = variant
        self.status_code = status_code
        self.partial = list(partial or [])


class ImagePipelineRunner:
    """Issues one generation request per variant, in order.

    Args:
        http: httpx client used for the requests.
        endpoint_url: Absolute URL of ``/api/generate-image``.
        variants: Ordered variants to generate.
        delay_seconds: Pause between consecutive requests.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        endpoint_url: str,
        variants: tuple[VariantTag, ...],
        *,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = http
        self._endpoint_url = endpoint_url
        self._variants = variants
        self._delay_seconds = delay_seconds
        self._sleep = sleep

    @property
    def variants(self) -> tuple[VariantTag, ...]:
        return self._variants

    async def run(
        self,
        prompt: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[GeneratedImageAsset]:
        """Generate every variant for ``prompt``.

        Args:
            prompt: Prompt sent with each request.
            on_progress: Called with a progress snapshot and the images so
                far, before each request and after each success.

        Returns:
            One image per variant, in variant order.

        Raises:
            PipelineError: On the first failed request.
        """
        total = len(self._variants)
        images: list[GeneratedImageAsset] = []

        def _emit(current: int, status: str) -> None:
            if on_progress is not None:
                on_progress(PipelineProgress(current=current, total=total, status=status), list(images))

        logger.info(f"[Images] generation start ({total} variants, prompt_length={len(prompt)})")
        _emit(0, "Starting image generation...")

        for i, tag in enumerate(self._variants):
            _emit(i, f"Generating {tag.value} image... ({i + 1}/{total})")
            started = time.monotonic()

            image = await self._request(prompt, tag, images)
            images.append(image)
            _emit(i + 1, f"{tag.value} image completed! ({i + 1}/{total})")
            logger.info(
                f"[Images] {tag.value} done in {(time.monotonic() - started) * 1000:.0f} ms "
                f"({len(images)}/{total})"
            )

            if i < total - 1 and self._delay_seconds > 0:
                await self._sleep(self._delay_seconds)

        _emit(total, "All images generated successfully!")
        return images

    async def _request(
        self, prompt: str, tag: VariantTag, images: list[GeneratedImageAsset]
    ) -> GeneratedImageAsset:
        try:
            response = await self._http.post(
                self._endpoint_url,
                json={"prompt": prompt, "imageType": tag.value},
            )
        except httpx.HTTPError as e:
            logger.error(f"[Images] request for {tag.value} failed: {e}")
            raise PipelineError(
                f"Failed to generate {tag.value} image ({e})", variant=tag, partial=images
            ) from e

        if not response.is_success:
            logger.error(
                f"[Images] request for {tag.value} failed with {response.status_code}: "
                f"{response.text[:200]}"
            )
            raise PipelineError(
                f"Failed to generate {tag.value} image ({response.status_code})",
                variant=tag,
                status_code=response.status_code,
                partial=images,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PipelineError(
                f"Invalid response for {tag.value} image",
                variant=tag,
                status_code=response.status_code,
                partial=images,
            ) from e

        image = data.get("image") if isinstance(data, dict) else None
        if not isinstance(image, dict) or not image.get("base64"):
            logger.error(f"[Images] no image in response for {tag.value}")
            raise PipelineError(
                f"No image in response for {tag.value}",
                variant=tag,
                status_code=response.status_code,
                partial=images,
            )
        return GeneratedImageAsset.from_response(tag, image)
