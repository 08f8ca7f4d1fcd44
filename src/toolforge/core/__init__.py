"""Core server-side functionality for the ToolForge asset generator.

- **ToolforgeConfig / config**: configuration via Pydantic Settings
  (``TOOLFORGE_*`` environment variables)
- **variants**: the variant catalogue and the named variant sets
- **results**: tagged ``Ok | ParseError | UpstreamError`` boundary results
- **PromptDeriver**: shared style template and per-variant prompt derivation
- **ImageGenerationClient**: single-image generation returning base64 payloads

Usage Example
-------------
    from toolforge.core import config, variants_for

    for tag in variants_for(config.variant_set):
        print(tag.value)
"""

from toolforge.core.config import NETWORKS, ToolforgeConfig, config
from toolforge.core.image_client import ImageGenerationClient, ImagePayload
from toolforge.core.prompt_deriver import DerivedPrompts, PromptDeriver
from toolforge.core.results import Ok, ParseError, Result, UpstreamError
from toolforge.core.variants import VARIANT_SPECS, VariantTag, parse_variant, variants_for

__all__ = [
    "NETWORKS",
    "ToolforgeConfig",
    "config",
    "ImageGenerationClient",
    "ImagePayload",
    "DerivedPrompts",
    "PromptDeriver",
    "Ok",
    "ParseError",
    "Result",
    "UpstreamError",
    "VARIANT_SPECS",
    "VariantTag",
    "parse_variant",
    "variants_for",
]
