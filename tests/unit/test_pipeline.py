"""Unit tests for the sequential image pipeline runner."""

import json

import httpx
import pytest

from toolforge.client.pipeline import ImagePipelineRunner, PipelineError
from toolforge.core.variants import VariantTag, variants_for

ENDPOINT = "https://toolforge.test/api/generate-image"
MANIFEST = variants_for("manifest")


class ScriptedEndpoint:
    """Answers generate-image requests, optionally failing one variant."""

    def __init__(self, fail_on: str | None = None, status: int = 500, body: dict | None = None):
        self.fail_on = fail_on
        self.status = status
        self.body = body
        self.requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        if payload["imageType"] == self.fail_on:
            if self.body is not None:
                return httpx.Response(200, json=self.body)
            return httpx.Response(self.status, json={"error": "Failed to generate image"})
        return httpx.Response(
            200,
            json={
                "image": {
                    "base64": f"b64-{payload['imageType']}",
                    "type": payload["imageType"],
                    "originalPrompt": payload["prompt"],
                    "projectTemplate": "T",
                    "optimizedPrompt": f"{payload['imageType']} prompt",
                    "spec": {"type": payload["imageType"]},
                }
            },
        )

    def types(self) -> list[str]:
        return [payload["imageType"] for payload in self.requests]


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _runner(endpoint: ScriptedEndpoint, sleep=None, variants=MANIFEST, delay=1.0) -> ImagePipelineRunner:
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint.handler))
    return ImagePipelineRunner(http, ENDPOINT, variants, delay_seconds=delay, sleep=sleep or RecordingSleep())


class TestSuccessfulRun:
    """A run where every request succeeds."""

    @pytest.mark.asyncio
    async def test_requests_in_order(self):
        endpoint = ScriptedEndpoint()
        images = await _runner(endpoint).run("a sunset over mountains")
        assert endpoint.types() == ["icon", "hero", "og", "splash"]
        assert [image.variant for image in images] == list(MANIFEST)

    @pytest.mark.asyncio
    async def test_request_body(self):
        endpoint = ScriptedEndpoint()
        await _runner(endpoint).run("a sunset over mountains")
        assert endpoint.requests[0] == {"prompt": "a sunset over mountains", "imageType": "icon"}

    @pytest.mark.asyncio
    async def test_response_fields_mapped(self):
        images = await _runner(ScriptedEndpoint()).run("robots")
        icon = images[0]
        assert icon.base64 == "b64-icon"
        assert icon.original_prompt == "robots"
        assert icon.style_template == "T"
        assert icon.derived_prompt == "icon prompt"

    @pytest.mark.asyncio
    async def test_delay_between_requests_only(self):
        sleep = RecordingSleep()
        await _runner(ScriptedEndpoint(), sleep=sleep).run("robots")
        assert sleep.calls == [1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self):
        sleep = RecordingSleep()
        await _runner(ScriptedEndpoint(), sleep=sleep, delay=0).run("robots")
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_screenshot_set(self):
        endpoint = ScriptedEndpoint()
        images = await _runner(endpoint, variants=variants_for("manifest-with-screenshot")).run("robots")
        assert len(images) == 5
        assert endpoint.types()[1] == "screenshot"


class TestProgress:
    """Progress callbacks."""

    @pytest.mark.asyncio
    async def test_progress_sequence(self):
        events = []
        await _runner(ScriptedEndpoint()).run(
            "robots", on_progress=lambda progress, images: events.append((progress, len(images)))
        )
        statuses = [progress.status for progress, _ in events]
        assert statuses[0] == "Starting image generation..."
        assert "Generating icon image... (1/4)" in statuses
        assert "icon image completed! (1/4)" in statuses
        assert "splash image completed! (4/4)" in statuses
        assert statuses[-1] == "All images generated successfully!"

        final, count = events[-1]
        assert (final.current, final.total, count) == (4, 4, 4)

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self):
        currents = []
        await _runner(ScriptedEndpoint()).run("robots", on_progress=lambda p, images: currents.append(p.current))
        assert currents == sorted(currents)


class TestFailedRun:
    """The first failure aborts the run."""

    @pytest.mark.asyncio
    async def test_server_error_aborts(self):
        endpoint = ScriptedEndpoint(fail_on="og", status=500)
        with pytest.raises(PipelineError) as exc_info:
            await _runner(endpoint).run("robots")
        error = exc_info.value
        assert error.variant is VariantTag.OG
        assert error.status_code == 500
        assert str(error) == "Failed to generate og image (500)"
        assert [image.variant for image in error.partial] == [VariantTag.ICON, VariantTag.HERO]
        assert endpoint.types() == ["icon", "hero", "og"]

    @pytest.mark.asyncio
    async def test_validation_error_aborts(self):
        endpoint = ScriptedEndpoint(fail_on="icon", status=400)
        with pytest.raises(PipelineError) as exc_info:
            await _runner(endpoint).run("robots")
        assert exc_info.value.partial == []
        assert endpoint.types() == ["icon"]

    @pytest.mark.asyncio
    async def test_missing_payload_aborts(self):
        endpoint = ScriptedEndpoint(fail_on="hero", body={"image": {"type": "hero"}})
        with pytest.raises(PipelineError, match="No image in response for hero"):
            await _runner(endpoint).run("robots")
        assert endpoint.types() == ["icon", "hero"]

    @pytest.mark.asyncio
    async def test_no_delay_after_failure(self):
        sleep = RecordingSleep()
        with pytest.raises(PipelineError):
            await _runner(ScriptedEndpoint(fail_on="hero"), sleep=sleep).run("robots")
        assert sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        runner = ImagePipelineRunner(http, ENDPOINT, MANIFEST, sleep=RecordingSleep())
        with pytest.raises(PipelineError) as exc_info:
            await runner.run("robots")
        assert exc_info.value.variant is VariantTag.ICON
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
