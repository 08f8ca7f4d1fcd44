"""Unit tests for frame rendering and hub verification."""

import httpx
import pytest

from toolforge.api.frames import (
    FOLLOWUP_BUTTONS,
    FrameVerifier,
    HubUnavailableError,
    followup_frame,
    initial_frame,
    render_frame_html,
)
from toolforge.api.models import FrameActionPayload

HUB_URL = "https://hub.test:2281"


def _payload(message_bytes: str = "0a0b0c") -> FrameActionPayload:
    return FrameActionPayload.model_validate(
        {
            "untrustedData": {"fid": 1, "buttonIndex": 2},
            "trustedData": {"messageBytes": message_bytes},
        }
    )


class TestRenderFrame:
    """Tests for frame document rendering."""

    def test_meta_tags(self):
        doc = initial_frame("https://toolforge.test")
        assert '<meta property="fc:frame" content="vNext" />' in doc
        assert 'content="https://toolforge.test/api/frame/image"' in doc
        assert '<meta property="fc:frame:post_url" content="https://toolforge.test/api/frame" />' in doc

    def test_initial_buttons(self):
        doc = initial_frame("https://toolforge.test")
        assert '<meta property="fc:frame:button:1" content="Open ToolForge" />' in doc
        assert '<meta property="fc:frame:button:2" content="Learn More" />' in doc

    def test_followup_buttons(self):
        doc = followup_frame("https://toolforge.test")
        assert f'<meta property="fc:frame:button:1" content="{FOLLOWUP_BUTTONS[0]}" />' in doc
        assert "ToolForge - Asset Creator" in doc

    def test_trailing_slash_in_app_url(self):
        doc = initial_frame("https://toolforge.test/")
        assert "https://toolforge.test//api" not in doc

    def test_labels_escaped(self):
        doc = render_frame_html("https://x.test", ('Say "hi" & <go>',), "H", "B")
        assert "Say &quot;hi&quot; &amp; &lt;go&gt;" in doc


class TestFrameVerifier:
    """Tests for FrameVerifier.verify against a fake hub."""

    @pytest.mark.asyncio
    async def test_valid_message(self, hub):
        hub.button_index = 2
        message = await FrameVerifier(hub.client(), HUB_URL).verify(_payload())
        assert message.button_index == 2
        assert message.fid == 4242

    @pytest.mark.asyncio
    async def test_posts_raw_bytes(self, hub):
        await FrameVerifier(hub.client(), HUB_URL + "/").verify(_payload("0x0a0b0c"))
        request = hub.requests[0]
        assert str(request.url) == f"{HUB_URL}/v1/validateMessage"
        assert request.content == bytes.fromhex("0a0b0c")
        assert request.headers["content-type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_untrusted_button_ignored(self, hub):
        """Dispatch uses the signed button index, not the client-reported one."""
        hub.button_index = 1
        message = await FrameVerifier(hub.client(), HUB_URL).verify(_payload())
        assert message.button_index == 1

    @pytest.mark.asyncio
    async def test_invalid_message(self, hub):
        hub.valid = False
        assert await FrameVerifier(hub.client(), HUB_URL).verify(_payload()) is None

    @pytest.mark.asyncio
    async def test_bad_hex(self, hub):
        assert await FrameVerifier(hub.client(), HUB_URL).verify(_payload("not-hex")) is None
        assert hub.requests == []

    @pytest.mark.asyncio
    async def test_hub_rejects_malformed(self, hub):
        hub.status_code = 400
        assert await FrameVerifier(hub.client(), HUB_URL).verify(_payload()) is None

    @pytest.mark.asyncio
    async def test_missing_button_index(self, hub):
        hub.button_index = None
        assert await FrameVerifier(hub.client(), HUB_URL).verify(_payload()) is None

    @pytest.mark.asyncio
    async def test_hub_error_status(self, hub):
        hub.status_code = 503
        with pytest.raises(HubUnavailableError):
            await FrameVerifier(hub.client(), HUB_URL).verify(_payload())

    @pytest.mark.asyncio
    async def test_hub_unreachable(self, hub):
        hub.raise_error = True
        with pytest.raises(HubUnavailableError):
            await FrameVerifier(hub.client(), HUB_URL).verify(_payload())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[{"valid": True}], "valid", 1])
    async def test_hub_body_not_an_object(self, body):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)))
        with pytest.raises(HubUnavailableError, match="unexpected JSON body"):
            await FrameVerifier(http, HUB_URL).verify(_payload())
