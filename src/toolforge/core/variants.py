"""Image variant catalogue.

A paid run produces one image per variant of the configured variant set.
Each variant carries the display metadata shown next to the result and the
fixed prompt suffix used whenever derived prompts are unavailable.

Variant Sets
------------
``manifest``
    icon, hero, og, splash (default)
``manifest-with-screenshot``
    icon, screenshot, hero, og, splash

Order matters: the pipeline runner generates variants strictly in the order
returned by :func:`variants_for`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class VariantTag(str, Enum):
    """Image-purpose labels used in the asset manifest."""

    ICON = "icon"
    SCREENSHOT = "screenshot"
    HERO = "hero"
    OG = "og"
    SPLASH = "splash"


@dataclass(frozen=True)
class VariantSpec:
    """Display and prompt metadata for one variant."""

    tag: VariantTag
    description: str
    fallback_suffix: str
    width: int = 1024
    height: int = 1024

    def to_dict(self) -> dict:
        return {
            "type": self.tag.value,
            "width": self.width,
            "height": self.height,
            "description": self.description,
        }


VARIANT_SPECS: dict[VariantTag, VariantSpec] = {
    VariantTag.ICON: VariantSpec(
        tag=VariantTag.ICON,
        description="1024x1024px - App icon (square format)",
        fallback_suffix=(
            "Farcaster app icon design, square format, minimalist, clean lines, professional, "
            "centered composition, high contrast, no text, vector-style, modern UI icon, "
            "1024x1024 pixels, crisp edges, solid background, icon fills entire frame, "
            "purple and blue theme, decentralized social media"
        ),
    ),
    VariantTag.SCREENSHOT: VariantSpec(
        tag=VariantTag.SCREENSHOT,
        description="1024x1024px - App screenshot (in-app preview)",
        fallback_suffix=(
            "Farcaster mini app screenshot, in-app interface preview, clean mobile UI layout, "
            "readable hierarchy, cards and buttons, professional, modern, 1024x1024 pixels, "
            "high quality, purple and blue theme, decentralized social media"
        ),
    ),
    VariantTag.HERO: VariantSpec(
        tag=VariantTag.HERO,
        description="1024x1024px - Promotional banner (landscape style)",
        fallback_suffix=(
            "Farcaster cast promotional banner design, landscape format, social media visual, "
            "eye-catching, professional, modern design, high impact, 1024x1024 pixels, "
            "vibrant colors, engaging composition, purple and blue theme, decentralized social media"
        ),
    ),
    VariantTag.OG: VariantSpec(
        tag=VariantTag.OG,
        description="1024x1024px - Social media sharing (Open Graph style)",
        fallback_suffix=(
            "Farcaster Open Graph card design, social media optimized, shareable visual, "
            "engaging design, professional, modern, 1024x1024 pixels, high quality, "
            "eye-catching, purple and blue theme, decentralized social media"
        ),
    ),
    VariantTag.SPLASH: VariantSpec(
        tag=VariantTag.SPLASH,
        description="1024x1024px - Loading screen (simple design)",
        fallback_suffix=(
            "Farcaster app loading screen, splash screen design, minimal, clean, centered logo, "
            "simple background, professional, modern, 1024x1024 pixels, calming colors, elegant, "
            "purple theme, decentralized social media"
        ),
    ),
}

VARIANT_SETS: dict[str, tuple[VariantTag, ...]] = {
    "manifest": (VariantTag.ICON, VariantTag.HERO, VariantTag.OG, VariantTag.SPLASH),
    "manifest-with-screenshot": (
        VariantTag.ICON,
        VariantTag.SCREENSHOT,
        VariantTag.HERO,
        VariantTag.OG,
        VariantTag.SPLASH,
    ),
}


def variants_for(variant_set: str) -> tuple[VariantTag, ...]:
    """Return the ordered variants of a named set.

    Raises:
        KeyError: If the set name is unknown.
    """
    return VARIANT_SETS[variant_set]


def parse_variant(value: str | None, allowed: tuple[VariantTag, ...]) -> VariantTag:
    """Resolve a raw ``imageType`` string against the allowed variants.

    Args:
        value: Raw value from the request body.
        allowed: Variants of the active set.

    Returns:
        The matching :class:`VariantTag`.

    Raises:
        ValueError: If the value is missing or not part of ``allowed``.
    """
    for tag in allowed:
        if tag.value == value:
            return tag
    raise ValueError(f"Invalid image type: {value}")
