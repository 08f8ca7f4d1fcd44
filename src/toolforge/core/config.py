"""Configuration management for the ToolForge asset generator.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the TOOLFORGE_ prefix,
allowing the payment network, variant set and upstream credentials to change
without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (TOOLFORGE_* prefix)
2. .env file in the project root
3. Default values defined in ToolforgeConfig

The OpenAI key is additionally read from the conventional ``OPENAI_API_KEY``
variable so an existing shell setup keeps working.

Example .env file:
    TOOLFORGE_APP_URL=https://toolforge.example.com
    TOOLFORGE_NETWORK=base
    TOOLFORGE_CONTRACT_ADDRESS=0x5FbDB2315678afecb367f032d93F642f64180aa3
    TOOLFORGE_VARIANT_SET=manifest
    OPENAI_API_KEY=sk-...

Credentials
-----------
Missing credentials never fail at startup.  An empty ``openai_api_key`` only
surfaces when the generation endpoint calls upstream: text derivation falls
back to deterministic prompts and image generation returns a server error.

Network Presets
---------------
``network`` selects one of :data:`NETWORKS`.  The USDC token address and the
JSON-RPC URL default to the preset values but can each be overridden with
``usdc_address`` / ``rpc_url``.

Usage Example
-------------
    from toolforge.core.config import config

    print(config.payment_amount_units)   # 1000000
    print(config.token_address)
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class NetworkPreset:
    """Chain parameters for a supported network."""

    name: str
    chain_id: int
    usdc_address: str
    rpc_url: str


NETWORKS: dict[str, NetworkPreset] = {
    "base": NetworkPreset(
        name="Base Mainnet",
        chain_id=8453,
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        rpc_url="https://mainnet.base.org",
    ),
    "base-sepolia": NetworkPreset(
        name="Base Sepolia",
        chain_id=84532,
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        rpc_url="https://sepolia.base.org",
    ),
}


class ToolforgeConfig(BaseSettings):
    """Main configuration for the ToolForge asset generator.

    Attributes
    ----------
    Site Settings:
        app_url : str
            Public base URL, used to build frame image/post links
        walletconnect_project_id : str
            WalletConnect project identifier handed to the front-end
        templates_dir : Path
            Directory holding ``index.html``

    Payment Settings:
        network : Literal["base", "base-sepolia"]
            Network preset (see :data:`NETWORKS`)
        contract_address : str
            Payment contract exposing ``payForImages()``; also the ERC-20 spender
        usdc_address : str | None
            Token override; ``None`` uses the network preset
        rpc_url : str | None
            JSON-RPC override; ``None`` uses the network preset
        payment_amount : Decimal
            Human-readable fee in token units (1 USDC)
        token_decimals : int
            Token decimals (6 for USDC)
        confirmation_timeout_seconds : float
            Upper bound on waiting for one transaction receipt
        receipt_poll_interval_seconds : float
            Delay between receipt polls

    Generation Settings:
        variant_set : Literal["manifest", "manifest-with-screenshot"]
            Which ordered list of variants one paid run produces
        openai_api_key : str
            Credential for text and image generation
        text_model / image_model : str
            Upstream model names
        image_size / image_quality : str
            Image request parameters
        derive_prompts : bool
            Derive a style template and per-variant prompts before generating
        template_cache_size : int
            Derivations kept in memory (0 disables the cache)
        prompt_max_length : int
            Maximum prompt length after trimming
        request_delay_seconds : float
            Pause between variant requests in the pipeline runner

    Frame Settings:
        frame_hub_url : str
            Farcaster hub used to validate signed frame messages

    Server Settings:
        server_host / server_port
            uvicorn bind address
        log_level : str
            Root logging level for the entry points
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TOOLFORGE_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Site
    app_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL used for frame callback links",
    )
    walletconnect_project_id: str = Field(
        default="",
        description="WalletConnect project identifier",
    )
    templates_dir: Path = Field(
        default=Path(__file__).resolve().parent.parent / "templates",
        description="Directory holding index.html",
    )

    # Payment
    network: Literal["base", "base-sepolia"] = Field(
        default="base-sepolia",
        description="Network preset for token address, chain id and RPC",
    )
    contract_address: str = Field(
        default="",
        description="Payment contract address (payForImages)",
    )
    usdc_address: str | None = Field(
        default=None,
        description="USDC token address override",
    )
    rpc_url: str | None = Field(
        default=None,
        description="JSON-RPC endpoint override",
    )
    payment_amount: Decimal = Field(
        default=Decimal("1"),
        description="Fee in whole token units",
        gt=0,
    )
    token_decimals: int = Field(default=6, ge=0, le=36)
    confirmation_timeout_seconds: float = Field(default=180.0, gt=0)
    receipt_poll_interval_seconds: float = Field(default=2.0, gt=0)

    # Generation
    variant_set: Literal["manifest", "manifest-with-screenshot"] = Field(
        default="manifest",
        description="Ordered list of variants produced per paid run",
    )
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("TOOLFORGE_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="OpenAI API key for text and image generation",
    )
    text_model: str = Field(default="gpt-4")
    image_model: str = Field(default="dall-e-3")
    image_size: str = Field(default="1024x1024")
    image_quality: str = Field(default="standard")
    derive_prompts: bool = Field(
        default=True,
        description="Derive a shared style template and per-variant prompts",
    )
    template_cache_size: int = Field(default=64, ge=0)
    prompt_max_length: int = Field(default=300, ge=1)
    request_delay_seconds: float = Field(default=1.0, ge=0)

    # Frames
    frame_hub_url: str = Field(
        default="https://nemes.farcaster.xyz:2281",
        description="Farcaster hub HTTP API used to validate frame messages",
    )

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @property
    def preset(self) -> NetworkPreset:
        """Network preset selected by ``network``."""
        return NETWORKS[self.network]

    @property
    def chain_id(self) -> int:
        return self.preset.chain_id

    @property
    def token_address(self) -> str:
        """USDC address: the explicit override, else the network preset."""
        return self.usdc_address or self.preset.usdc_address

    @property
    def resolved_rpc_url(self) -> str:
        return self.rpc_url or self.preset.rpc_url

    @property
    def payment_amount_units(self) -> int:
        """Fee in token base units (1 USDC at 6 decimals is 1_000_000)."""
        return int(self.payment_amount * (Decimal(10) ** self.token_decimals))

    @property
    def generate_endpoint_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/generate-image"

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)


# Global configuration instance
# Loaded once at import time from TOOLFORGE_* environment variables and .env.
config = ToolforgeConfig()
