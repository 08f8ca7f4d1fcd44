"""Shared pytest fixtures for ToolForge tests."""

import base64
import shutil
import tempfile
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from typing import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from PIL import Image

from toolforge.api.frames import FrameVerifier
from toolforge.core.config import ToolforgeConfig
from toolforge.core.image_client import ImageGenerationClient
from toolforge.core.prompt_deriver import PromptDeriver
from toolforge.client.payment import ContractCall, TransactionReceipt, TransactionRejectedError

PAYER = "0x1111111111111111111111111111111111111111"
CONTRACT = "0x2222222222222222222222222222222222222222"
HUB_URL = "https://hub.test:2281"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config() -> ToolforgeConfig:
    """Create a test configuration that ignores any local .env file.

    Receipt polling and the pipeline delay are shortened so that payment
    and pipeline tests finish quickly.
    """
    return ToolforgeConfig(
        app_url="https://toolforge.test",
        network="base-sepolia",
        contract_address=CONTRACT,
        openai_api_key="test-key",
        frame_hub_url=HUB_URL,
        confirmation_timeout_seconds=1.0,
        receipt_poll_interval_seconds=0.01,
        request_delay_seconds=0.0,
        _env_file=None,
    )


# ---------------------------------------------------------------------------
# Images and upstream fakes.
# ---------------------------------------------------------------------------


@pytest.fixture
def png_bytes() -> bytes:
    """A small, valid PNG image."""
    buffer = BytesIO()
    Image.new("RGB", (8, 8), "purple").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_b64(png_bytes: bytes) -> str:
    return base64.b64encode(png_bytes).decode("ascii")


def make_completion(content):
    """Build an object shaped like a chat completion with one choice."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_images_response(b64_json=None, url=None):
    """Build an object shaped like an Images API response with one item."""
    return SimpleNamespace(data=[SimpleNamespace(b64_json=b64_json, url=url)])


@pytest.fixture
def completion():
    return make_completion


@pytest.fixture
def images_response():
    return make_images_response


@pytest.fixture
def fake_openai(png_b64: str) -> MagicMock:
    """AsyncOpenAI stand-in.

    Text calls fail by default so derivation falls back; image calls return
    a valid PNG.  Tests override ``side_effect`` / ``return_value`` as needed.
    """
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion(None))
    client.images.generate = AsyncMock(return_value=make_images_response(b64_json=png_b64))
    return client


# ---------------------------------------------------------------------------
# Farcaster hub fake.
# ---------------------------------------------------------------------------


class FakeHub:
    """Scripted ``/v1/validateMessage`` endpoint."""

    def __init__(self) -> None:
        self.status_code = 200
        self.valid = True
        self.button_index: int | None = 1
        self.fid = 4242
        self.raise_error = False
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error:
            raise httpx.ConnectError("hub down", request=request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="error")
        body = {"valid": self.valid}
        if self.valid:
            body["message"] = {
                "data": {
                    "fid": self.fid,
                    "frameActionBody": {"buttonIndex": self.button_index, "url": "https://toolforge.test"},
                }
            }
        return httpx.Response(200, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


# ---------------------------------------------------------------------------
# Wallet fake.
# ---------------------------------------------------------------------------


class FakeWallet:
    """In-memory wallet provider.

    Attributes:
        reject: Function names the wallet refuses to submit.
        revert: Function names whose receipts report failure.
        pending: Function names that are never mined.
        mismatch: Function names whose receipt reports another hash.
    """

    def __init__(self, address: str | None = PAYER) -> None:
        self._address = address
        self.calls: list[ContractCall] = []
        self.reject: set[str] = set()
        self.revert: set[str] = set()
        self.pending: set[str] = set()
        self.mismatch: set[str] = set()
        self.receipt_polls = 0
        self._functions: dict[str, str] = {}

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def is_connected(self) -> bool:
        return self._address is not None

    def submitted(self) -> list[str]:
        return [call.function_name for call in self.calls]

    async def write_contract(self, call: ContractCall) -> str:
        if call.function_name in self.reject:
            raise TransactionRejectedError("User rejected the request.")
        self.calls.append(call)
        tx_hash = f"0x{len(self.calls):064x}"
        self._functions[tx_hash] = call.function_name
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        self.receipt_polls += 1
        function_name = self._functions.get(tx_hash)
        if function_name is None or function_name in self.pending:
            return None
        reported = f"0x{'f' * 64}" if function_name in self.mismatch else tx_hash
        return TransactionReceipt(
            tx_hash=reported,
            success=function_name not in self.revert,
            block_number=len(self.calls),
        )


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def disconnected_wallet() -> FakeWallet:
    return FakeWallet(address=None)


# ---------------------------------------------------------------------------
# API fixtures.
# ---------------------------------------------------------------------------


@pytest.fixture
def api_services(test_config: ToolforgeConfig, fake_openai: MagicMock, hub: FakeHub, png_bytes: bytes):
    """Service objects wired to the fakes, as installed on ``app.state``."""

    def image_host(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=png_bytes, headers={"Content-Type": "image/png"})

    image_http = httpx.AsyncClient(transport=httpx.MockTransport(image_host))
    return SimpleNamespace(
        prompt_deriver=PromptDeriver(fake_openai, model=test_config.text_model, cache_size=8),
        image_client=ImageGenerationClient(fake_openai, image_http, model=test_config.image_model),
        frame_verifier=FrameVerifier(hub.client(), HUB_URL),
    )


def install_services(app, services) -> None:
    app.state.prompt_deriver = services.prompt_deriver
    app.state.image_client = services.image_client
    app.state.frame_verifier = services.frame_verifier


@pytest.fixture
def test_client(test_config: ToolforgeConfig, api_services):
    """FastAPI TestClient with the upstream services replaced by fakes."""
    from fastapi.testclient import TestClient

    from toolforge.api.main import app

    with patch("toolforge.api.main.config", test_config):
        with TestClient(app) as client:
            install_services(app, api_services)
            yield client


@pytest.fixture
def asgi_http(test_config: ToolforgeConfig, api_services):
    """httpx client routed straight into the FastAPI app, for client-side runs."""
    from toolforge.api.main import app

    install_services(app, api_services)
    with patch("toolforge.api.main.config", test_config):
        yield httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="https://toolforge.test")
