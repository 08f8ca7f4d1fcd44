"""Style template and per-variant prompt derivation.

A single free-text style template is derived from the user's prompt, then
used to derive one prompt per variant.  Sharing the template keeps the icon,
hero, og and splash images on the same palette, motif and tone instead of
producing unrelated generations.

Two chat-completion calls are made:

1. **Template**: system instructions steer the model toward a themed visual
   identity; the reply is the template text.
2. **Variant prompts**: the model must reply with a JSON object whose keys
   are exactly the variant tags of the active set.

Each call returns a tagged :mod:`~toolforge.core.results` value.  Anything
other than :class:`~toolforge.core.results.Ok` selects the deterministic
fallback (:func:`fallback_template` / :func:`fallback_prompts`), so a failing
text service never stalls image generation.

Generated derivations are memoised per ``(prompt, variants)`` in a small LRU
so every variant request of one paid run reuses the same template.  A
derivation that used either fallback is not cached; the next request retries
the text service.
"""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass

from openai import AsyncOpenAI, OpenAIError

from toolforge.core.results import Ok, ParseError, Result, UpstreamError
from toolforge.core.variants import VARIANT_SPECS, VariantTag

logger = logging.getLogger(__name__)

_TEMPLATE_SYSTEM_PROMPT = """You are a creative director and brand strategist specializing in Farcaster ecosystem projects.
Given a user's prompt, create a comprehensive project template that defines the visual theme, style, and branding elements.

The template should include:
- Visual theme and aesthetic direction
- Color palette and mood
- Style characteristics (minimalist, modern, playful, etc.)
- Key visual elements and motifs
- Brand personality and tone
- Target audience and use case

This template will be used to generate {count} consistent, themed images for a Farcaster project.
Focus on creating a cohesive visual identity that works across different image types.

Return a detailed template description (150-200 words) that captures the essence of the project."""

_VARIANT_BRIEFS: dict[VariantTag, str] = {
    VariantTag.ICON: "Farcaster app icon design (square, minimalist, clean, no text, fills entire frame, purple/blue theme)",
    VariantTag.SCREENSHOT: "Farcaster mini app screenshot (in-app interface preview, clean mobile layout)",
    VariantTag.HERO: "Farcaster cast promotional banner (landscape, social media visual, eye-catching, engaging)",
    VariantTag.OG: "Farcaster Open Graph card (shareable, social media optimized, engaging design)",
    VariantTag.SPLASH: "Farcaster app loading screen (minimal, clean, centered, calming, purple theme)",
}

_PROMPTS_SYSTEM_PROMPT = """You are a prompt engineering expert for AI image generation, specializing in Farcaster ecosystem content.
Given a project template, create {count} optimized prompts for different Farcaster use cases:

{briefs}

Each prompt should:
- Follow the project template's visual theme and style
- Maintain consistency across all {count} images
- Include Farcaster branding elements: purple/blue color schemes, decentralized social media themes
- Be 50-100 words, specific to Farcaster ecosystem
- Include technical details like "1024x1024 pixels", "professional", "high quality"

Return ONLY a JSON object with keys: {keys}"""


def fallback_template(user_prompt: str) -> str:
    """Deterministic template used when template derivation fails."""
    return (
        "Modern, minimalist design with a focus on clean lines and professional aesthetics. "
        f"The visual theme centers around {user_prompt} with a sophisticated color palette "
        "featuring deep purples, electric blues, and subtle gradients. The style emphasizes "
        "geometric shapes, contemporary typography, and a tech-forward approach that resonates "
        "with the Farcaster ecosystem. Key visual elements include abstract patterns, subtle "
        "animations, and a balance between digital innovation and human connection. The brand "
        "personality is confident, innovative, and community-focused, targeting decentralized "
        "social media enthusiasts and blockchain-savvy users."
    )


def fallback_prompts(template: str, variants: tuple[VariantTag, ...]) -> dict[VariantTag, str]:
    """Template plus the fixed per-variant suffix, for every variant."""
    return {tag: f"{template}, {VARIANT_SPECS[tag].fallback_suffix}" for tag in variants}


@dataclass(frozen=True)
class DerivedPrompts:
    """Outcome of a derivation, including whether fallbacks were used."""

    template: str
    prompts: dict[VariantTag, str]
    template_generated: bool
    prompts_generated: bool

    def prompt_for(self, tag: VariantTag) -> str:
        return self.prompts[tag]


class PromptDeriver:
    """Derives the shared style template and per-variant prompts.

    Args:
        client: Async OpenAI client.
        model: Chat model name.
        cache_size: Number of derivations kept in memory; ``0`` disables
            memoisation.
    """

    def __init__(self, client: AsyncOpenAI, *, model: str = "gpt-4", cache_size: int = 64) -> None:
        self._client = client
        self._model = model
        self._cache_size = cache_size
        self._cache: OrderedDict[tuple[str, tuple[VariantTag, ...]], DerivedPrompts] = OrderedDict()

    async def request_template(self, user_prompt: str, count: int) -> Result[str]:
        """Ask the text service for a style template."""
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": _TEMPLATE_SYSTEM_PROMPT.format(count=count)},
                    {"role": "user", "content": f'User prompt: "{user_prompt}"'},
                ],
                temperature=0.8,
                max_tokens=400,
            )
        except OpenAIError as e:
            return UpstreamError(f"template request failed: {e}", cause=e)

        content = _first_message_content(completion)
        if not content or not content.strip():
            return ParseError("template response was empty")
        return Ok(content.strip())

    async def request_variant_prompts(
        self, template: str, variants: tuple[VariantTag, ...]
    ) -> Result[dict[VariantTag, str]]:
        """Ask the text service for one prompt per variant, as a JSON object."""
        briefs = "\n".join(
            f"{i}. {tag.value.upper()}: {_VARIANT_BRIEFS[tag]}" for i, tag in enumerate(variants, 1)
        )
        system_prompt = _PROMPTS_SYSTEM_PROMPT.format(
            count=len(variants),
            briefs=briefs,
            keys=", ".join(tag.value for tag in variants),
        )
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": f'Project template: "{template}"'},
                ],
                temperature=0.7,
                max_tokens=800,
            )
        except OpenAIError as e:
            return UpstreamError(f"prompt request failed: {e}", cause=e)

        content = _first_message_content(completion)
        if not content:
            return ParseError("prompt response was empty")
        return parse_variant_prompts(content, variants)

    async def derive(self, user_prompt: str, variants: tuple[VariantTag, ...]) -> DerivedPrompts:
        """Derive the template and prompts, substituting fallbacks as needed.

        Never raises for upstream problems; the returned value says which
        parts were generated and which came from the fallback.
        """
        key = (user_prompt, variants)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            logger.debug("Using cached derivation for prompt")
            return cached

        template_result = await self.request_template(user_prompt, len(variants))
        if isinstance(template_result, Ok):
            template = template_result.value
            template_generated = True
        else:
            logger.warning(f"Template derivation unavailable, using fallback: {template_result.reason}")
            template = fallback_template(user_prompt)
            template_generated = False

        prompts_result = await self.request_variant_prompts(template, variants)
        if isinstance(prompts_result, Ok):
            prompts = prompts_result.value
            prompts_generated = True
        else:
            logger.warning(f"Prompt derivation unavailable, using fallback: {prompts_result.reason}")
            prompts = fallback_prompts(template, variants)
            prompts_generated = False

        derived = DerivedPrompts(
            template=template,
            prompts=prompts,
            template_generated=template_generated,
            prompts_generated=prompts_generated,
        )
        if template_generated and prompts_generated:
            self._remember(key, derived)
        return derived

    def _remember(self, key: tuple[str, tuple[VariantTag, ...]], derived: DerivedPrompts) -> None:
        if self._cache_size <= 0:
            return
        self._cache[key] = derived
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)


def parse_variant_prompts(content: str, variants: tuple[VariantTag, ...]) -> Result[dict[VariantTag, str]]:
    """Parse the JSON reply of the variant-prompt call.

    Every variant must map to a non-empty string and no two variants may
    share a prompt; extra keys are ignored.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        return ParseError(f"prompt response is not JSON: {e.msg}", raw=content)
    if not isinstance(data, dict):
        return ParseError("prompt response is not a JSON object", raw=content)

    prompts: dict[VariantTag, str] = {}
    for tag in variants:
        value = data.get(tag.value)
        if not isinstance(value, str) or not value.strip():
            return ParseError(f"Missing {tag.value} prompt", raw=content)
        prompts[tag] = value.strip()
    if len(set(prompts.values())) < len(prompts):
        return ParseError("Variant prompts are not distinct", raw=content)
    return Ok(prompts)


def _first_message_content(completion) -> str | None:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)
