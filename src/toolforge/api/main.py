"""ToolForge asset generator: FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The application is stateless apart from a bounded derivation cache:

- **Configuration** comes from :data:`~toolforge.core.config.config` and is
  partially exposed to the front-end via ``GET /api/config``.
- **Image generation** is performed per variant by
  :class:`~toolforge.core.image_client.ImageGenerationClient`, after
  :class:`~toolforge.core.prompt_deriver.PromptDeriver` has derived the
  shared style template and per-variant prompts.
- **Frames** are answered from :mod:`toolforge.api.frames`; clicks are
  verified against a Farcaster hub before dispatch.
- Nothing is persisted.  Payment happens on-chain before the front-end calls
  ``POST /api/generate-image`` once per variant.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/``                         Serve the main HTML page
GET       ``/api/config``               Payment, network and variant settings
POST      ``/api/generate-image``       Generate one image variant
GET       ``/api/frame``                Initial frame document
POST      ``/api/frame``                Frame button dispatch
GET       ``/api/frame/image``          Frame SVG image
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    toolforge

Direct invocation::

    python -m toolforge.api.main
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from openai import AsyncOpenAI

from toolforge import __version__
from toolforge.api.frames import (
    FRAME_IMAGE_SVG,
    FrameVerifier,
    HubUnavailableError,
    followup_frame,
    initial_frame,
)
from toolforge.api.models import FrameActionPayload, GeneratedImage, GenerateImageRequest
from toolforge.core.config import config
from toolforge.core.image_client import ImageGenerationClient
from toolforge.core.prompt_deriver import PromptDeriver
from toolforge.core.results import Ok, ParseError
from toolforge.core.variants import VARIANT_SPECS, parse_variant, variants_for

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle: upstream clients setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Creates one shared httpx client and one AsyncOpenAI client and builds
        the prompt deriver, image client and frame verifier on ``app.state``.
        No upstream call is made here; a missing API key only surfaces on
        the first generation request.

    On shutdown:
        Closes both clients.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    http = httpx.AsyncClient(follow_redirects=True)
    openai_client = AsyncOpenAI(api_key=config.openai_api_key or "")

    app.state.prompt_deriver = PromptDeriver(
        openai_client,
        model=config.text_model,
        cache_size=config.template_cache_size,
    )
    app.state.image_client = ImageGenerationClient(
        openai_client,
        http,
        model=config.image_model,
        size=config.image_size,
        quality=config.image_quality,
    )
    app.state.frame_verifier = FrameVerifier(http, config.frame_hub_url)
    if not config.has_openai:
        logger.warning("No OpenAI API key configured; generation requests will fail.")
    logger.info(f"Upstream clients initialised (network={config.network}, variants={config.variant_set}).")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await openai_client.close()
    await http.aclose()
    logger.info("Upstream clients closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="ToolForge",
    description="Payment-gated AI asset generation for Farcaster mini apps.",
    version=__version__,
    lifespan=lifespan,
)

# The front-end may be served from a different origin during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve the main application HTML page.

    Raises:
        HTTPException: 404 if ``index.html`` is not found.
    """
    index_path = config.templates_dir / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise HTTPException(status_code=404, detail="index.html not found")


@app.get("/api/config")
async def get_config() -> dict:
    """Return the settings the front-end needs to pay and generate.

    Returns:
        Dictionary with the version, network, contract addresses, fee,
        WalletConnect project id, ordered variants and prompt bound.
    """
    variants = variants_for(config.variant_set)
    return {
        "version": __version__,
        "network": config.network,
        "network_name": config.preset.name,
        "chain_id": config.chain_id,
        "token_address": config.token_address,
        "contract_address": config.contract_address,
        "payment_amount": str(config.payment_amount),
        "payment_amount_units": config.payment_amount_units,
        "token_decimals": config.token_decimals,
        "walletconnect_project_id": config.walletconnect_project_id,
        "variant_set": config.variant_set,
        "variants": [VARIANT_SPECS[tag].to_dict() for tag in variants],
        "prompt_max_length": config.prompt_max_length,
    }


@app.post("/api/generate-image")
async def generate_image(req: GenerateImageRequest) -> dict:
    """Generate one image variant for a prompt.

    This endpoint:

    1. Validates the prompt and the variant tag; no upstream call is made
       for an invalid request.
    2. Derives (or reuses) the shared style template and the variant prompt.
       Text-service failures are replaced by deterministic fallbacks.
    3. Generates the image and returns it base64-encoded.

    Args:
        req: Validated :class:`GenerateImageRequest` payload.

    Returns:
        Dictionary with a single ``image`` key (see :class:`GeneratedImage`).

    Raises:
        HTTPException: 400 for a missing/oversized prompt or unknown image
            type, 500 if the image service call failed, 502 if the image
            service returned nothing usable.
    """
    started = time.monotonic()
    prompt = (req.prompt or "").strip()
    logger.info(f"generate-image request (type={req.image_type}, prompt_length={len(prompt)})")

    # --- Validate before touching any upstream service ---------------------
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")
    if len(prompt) > config.prompt_max_length:
        raise HTTPException(
            status_code=400,
            detail=f"Prompt must be at most {config.prompt_max_length} characters",
        )
    variants = variants_for(config.variant_set)
    try:
        tag = parse_variant(req.image_type, variants)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    # --- Resolve the prompt for this variant -------------------------------
    template: str | None = None
    if config.derive_prompts:
        derived = await app.state.prompt_deriver.derive(prompt, variants)
        template = derived.template
        optimized_prompt = derived.prompt_for(tag)
    else:
        optimized_prompt = f"{prompt}, {VARIANT_SPECS[tag].fallback_suffix}"

    # --- Generate ----------------------------------------------------------
    result = await app.state.image_client.generate(optimized_prompt)
    if isinstance(result, ParseError):
        logger.warning(f"generate-image: no usable image for {tag.value}: {result.reason}")
        raise HTTPException(status_code=502, detail="No image data returned")
    if not isinstance(result, Ok):
        logger.error(f"generate-image: upstream failure for {tag.value}: {result.reason}")
        raise HTTPException(status_code=500, detail="Failed to generate image")

    payload = result.value
    image = GeneratedImage(
        url=payload.url,
        base64=payload.base64,
        type=tag.value,
        original_prompt=prompt,
        project_template=template,
        optimized_prompt=optimized_prompt,
        spec=VARIANT_SPECS[tag].to_dict(),
    )
    logger.info(
        f"generate-image success (type={tag.value}, "
        f"total_ms={(time.monotonic() - started) * 1000:.0f}, base64_len={len(payload.base64)})"
    )
    return {"image": image.model_dump(by_alias=True)}


@app.get("/api/frame", response_class=HTMLResponse)
async def frame() -> HTMLResponse:
    """Serve the initial frame document."""
    return HTMLResponse(content=initial_frame(config.app_url))


@app.post("/api/frame")
async def frame_action(payload: FrameActionPayload) -> Response:
    """Dispatch a verified frame button click.

    Button 1 returns the follow-up frame, button 2 redirects to the site
    root, anything else is rejected.

    Raises:
        HTTPException: 502 if the hub cannot be reached.
    """
    try:
        message = await app.state.frame_verifier.verify(payload)
    except HubUnavailableError as e:
        logger.error(f"Frame verification unavailable: {e}")
        raise HTTPException(status_code=502, detail="Frame verification unavailable") from e

    if message is None:
        return PlainTextResponse("Unauthorized", status_code=401)

    if message.button_index == 1:
        return HTMLResponse(content=followup_frame(config.app_url))
    if message.button_index == 2:
        return RedirectResponse(url=f"{config.app_url.rstrip('/')}/", status_code=302)
    return PlainTextResponse("Invalid button", status_code=400)


@app.get("/api/frame/image")
async def frame_image() -> Response:
    """Serve the fixed frame image, cacheable for an hour."""
    return Response(
        content=FRAME_IMAGE_SVG,
        media_type="image/svg+xml",
        headers={"Cache-Control": "public, max-age=3600"},
    )


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~toolforge.core.config.config`
    (``TOOLFORGE_SERVER_HOST`` / ``TOOLFORGE_SERVER_PORT``).  Defaults to
    ``0.0.0.0:3000``.

    This function is registered as the ``toolforge`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "toolforge.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
