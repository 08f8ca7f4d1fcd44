"""ToolForge - payment-gated AI asset generation for Farcaster mini apps."""

__version__ = "0.3.0"

from toolforge.core.config import ToolforgeConfig, config
from toolforge.core.variants import VariantTag, variants_for

__all__ = [
    "ToolforgeConfig",
    "config",
    "VariantTag",
    "variants_for",
]
