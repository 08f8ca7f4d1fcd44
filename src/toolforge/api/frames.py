"""Farcaster frame responder helpers.

A frame is an HTML document whose ``fc:frame`` meta tags advertise an image,
up to four buttons and a post URL.  Button clicks arrive as signed messages;
the signature is checked by a Farcaster hub before the click is acted on.

This module renders the two frame documents, holds the static frame image,
and wraps hub verification.  The route handlers live in
:mod:`toolforge.api.main`.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass

import httpx

from toolforge.api.models import FrameActionPayload

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frame documents.
# ---------------------------------------------------------------------------

INITIAL_BUTTONS = ("Open ToolForge", "Learn More")
FOLLOWUP_BUTTONS = ("Create Assets", "Learn More")

FRAME_IMAGE_SVG = """<svg width="1200" height="630" viewBox="0 0 1200 630" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <linearGradient id="bg" x1="0%" y1="0%" x2="100%" y2="100%">
      <stop offset="0%" style="stop-color:#3B82F6;stop-opacity:1" />
      <stop offset="100%" style="stop-color:#1E40AF;stop-opacity:1" />
    </linearGradient>
  </defs>
  <rect width="1200" height="630" fill="url(#bg)"/>
  <g transform="translate(100, 100)">
    <rect x="0" y="0" width="120" height="120" rx="20" fill="white" opacity="0.9"/>
    <text x="60" y="80" font-family="Arial, sans-serif" font-size="60" font-weight="bold" text-anchor="middle" fill="#3B82F6">TF</text>
    <text x="160" y="60" font-family="Arial, sans-serif" font-size="48" font-weight="bold" fill="white">ToolForge</text>
    <text x="160" y="100" font-family="Arial, sans-serif" font-size="24" fill="white" opacity="0.9">Base &amp; Farcaster Mini App Asset Creator</text>
    <g transform="translate(0, 150)">
      <text x="0" y="0" font-family="Arial, sans-serif" font-size="20" fill="white" opacity="0.8">Create Icons, Splash Screens, Banners</text>
      <text x="0" y="35" font-family="Arial, sans-serif" font-size="20" fill="white" opacity="0.8">Optimized for Base &amp; Farcaster</text>
      <text x="0" y="70" font-family="Arial, sans-serif" font-size="20" fill="white" opacity="0.8">Perfect Mini App Assets</text>
    </g>
    <rect x="0" y="280" width="300" height="60" rx="30" fill="white" opacity="0.2"/>
    <text x="150" y="320" font-family="Arial, sans-serif" font-size="24" font-weight="bold" text-anchor="middle" fill="white">Start Creating Assets</text>
  </g>
  <circle cx="1000" cy="100" r="50" fill="white" opacity="0.1"/>
  <circle cx="1100" cy="200" r="30" fill="white" opacity="0.1"/>
  <circle cx="1050" cy="400" r="40" fill="white" opacity="0.1"/>
</svg>
"""


def render_frame_html(app_url: str, buttons: tuple[str, ...], heading: str, body: str) -> str:
    """Render a frame document.

    Args:
        app_url: Public base URL; image and post URLs are built from it.
        buttons: Button labels, in index order (1-based on the wire).
        heading: Fallback ``<h1>`` for browsers.
        body: Fallback paragraph for browsers.

    Returns:
        The HTML document.
    """
    base = app_url.rstrip("/")
    meta = [
        '<meta property="fc:frame" content="vNext" />',
        f'<meta property="fc:frame:image" content="{html.escape(base)}/api/frame/image" />',
    ]
    for index, label in enumerate(buttons, 1):
        meta.append(f'<meta property="fc:frame:button:{index}" content="{html.escape(label)}" />')
    meta.append(f'<meta property="fc:frame:post_url" content="{html.escape(base)}/api/frame" />')

    head = "\n    ".join(meta)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "  <head>\n"
        f"    {head}\n"
        "  </head>\n"
        "  <body>\n"
        f"    <h1>{html.escape(heading)}</h1>\n"
        f"    <p>{html.escape(body)}</p>\n"
        "  </body>\n"
        "</html>\n"
    )


def initial_frame(app_url: str) -> str:
    return render_frame_html(
        app_url,
        INITIAL_BUTTONS,
        "ToolForge",
        "Create visual assets for Base and Farcaster mini apps",
    )


def followup_frame(app_url: str) -> str:
    return render_frame_html(
        app_url,
        FOLLOWUP_BUTTONS,
        "ToolForge - Asset Creator",
        "Create visual assets for your Base and Farcaster mini apps!",
    )


# ---------------------------------------------------------------------------
# Hub verification.
# ---------------------------------------------------------------------------


class HubUnavailableError(Exception):
    """The hub could not be reached or answered with an error status."""


@dataclass(frozen=True)
class FrameMessage:
    """The verified contents of a frame action."""

    fid: int | None
    button_index: int
    url: str | None = None


class FrameVerifier:
    """Validates signed frame messages against a Farcaster hub.

    The hub's ``POST /v1/validateMessage`` takes the raw protobuf bytes and
    answers ``{"valid": bool, "message": {...}}``.
    """

    def __init__(self, http: httpx.AsyncClient, hub_url: str) -> None:
        self._http = http
        self._hub_url = hub_url.rstrip("/")

    async def verify(self, payload: FrameActionPayload) -> FrameMessage | None:
        """Return the verified message, or ``None`` if it is not valid.

        Raises:
            HubUnavailableError: If the hub cannot be consulted.
        """
        try:
            message_bytes = bytes.fromhex(payload.trusted_data.message_bytes.removeprefix("0x"))
        except ValueError:
            logger.warning("Frame message bytes are not valid hex")
            return None

        try:
            resp = await self._http.post(
                f"{self._hub_url}/v1/validateMessage",
                content=message_bytes,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as e:
            raise HubUnavailableError(f"hub request failed: {e}") from e

        if resp.status_code == 400:
            # Hubs answer malformed messages with 400.
            return None
        if resp.status_code >= 400:
            raise HubUnavailableError(f"hub returned {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise HubUnavailableError("hub returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise HubUnavailableError("hub returned an unexpected JSON body")

        if not body.get("valid"):
            return None

        data = (body.get("message") or {}).get("data") or {}
        action = data.get("frameActionBody") or {}
        button_index = action.get("buttonIndex")
        if not isinstance(button_index, int):
            return None
        return FrameMessage(fid=data.get("fid"), button_index=button_index, url=action.get("url"))
