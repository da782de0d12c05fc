"""Configuration management for the Blinkmint service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the BLINKMINT_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (BLINKMINT_* prefix)
2. .env file in the project root
3. Default values defined in BlinkmintConfig

Example .env file:
    BLINKMINT_RPC_URL=https://api.mainnet-beta.solana.com
    BLINKMINT_MINTER_PRIVATE_KEY=12,34,56,...
    BLINKMINT_OPENAI_API_KEY=sk-...
    BLINKMINT_PINATA_JWT=eyJhbGciOi...
    BLINKMINT_PUBLIC_BASE_URL=https://mint.example.com

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Secrets default to empty values so importing the package never fails; the
service context refuses to start when a required secret is missing.

Usage Example
-------------
    from blinkmint.core.config import config

    print(config.rpc_url)
    print(config.poll_attempts)

    # Configuration is read once at startup
    # To change values, set environment variables and restart

Polling and Retry Budgets
-------------------------
- poll_attempts / poll_interval_seconds / poll_window: payment watcher budget
  (10 polls, 5 seconds apart, 5 most recent signatures each)
- transfer_attempts / transfer_delay_seconds: token transfer retry budget
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BlinkmintConfig(BaseSettings):
    """Main configuration for the Blinkmint service.

    Values are loaded from environment variables with the BLINKMINT_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Ledger Settings:
        rpc_url : str
            Solana JSON-RPC endpoint
        minter_private_key : SecretStr
            Service wallet secret key, as comma-separated bytes or a JSON array
        compute_unit_limit : int
            Compute unit limit attached to the payment transaction
        compute_unit_price : int
            Priority fee in micro-lamports per compute unit

    Language and Image Model Settings:
        openai_api_key : SecretStr
            API key for chat, moderation and image endpoints
        chat_model : str
            Model used for prompt rewriting, attributes and structured safety
        image_model, image_size, image_quality : str
            Text-to-image request parameters
        safety_strategy : Literal["moderation", "structured"]
            Which content safety gate to use

    Storage Settings:
        pinata_jwt : SecretStr
            Pinata API token
        pinata_api_url, pinata_gateway_url : str
            Pinning API and public gateway base URLs

    Pricing:
        price_api_url : str
            CoinGecko simple price endpoint for SOL/USD
        mint_price_usd : float
            Target mint price in USD
        fallback_fee_sol : float
            Fee used when the price lookup fails

    Paths:
        upload_dir : Path
            Transient directory for generated images

    Action Document:
        public_base_url, action_icon_url, action_title, action_label,
        action_description : str

    Server:
        server_host : str
        server_port : int
        log_level : str

    Notes
    -----
    - Configuration is immutable after initialization
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BLINKMINT_",
        case_sensitive=False,
    )

    # Ledger
    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Solana JSON-RPC endpoint",
    )
    minter_private_key: SecretStr = Field(
        default=SecretStr(""),
        description="Service wallet secret key (comma-separated bytes or JSON array)",
    )
    compute_unit_limit: int = Field(default=20_000, ge=1)
    compute_unit_price: int = Field(
        default=100,
        ge=0,
        description="Priority fee in micro-lamports per compute unit",
    )

    # Language / image models
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    chat_model: str = Field(default="gpt-4o-2024-08-06")
    image_model: str = Field(default="dall-e-3")
    image_size: str = Field(default="1024x1024")
    image_quality: str = Field(default="standard")
    safety_strategy: Literal["moderation", "structured"] = Field(
        default="moderation",
        description="Content safety gate: moderation classifier or structured LLM verdict",
    )

    # Storage
    pinata_jwt: SecretStr = Field(default=SecretStr(""))
    pinata_api_url: str = Field(default="https://api.pinata.cloud")
    pinata_gateway_url: str = Field(default="https://gateway.pinata.cloud")

    # Pricing
    price_api_url: str = Field(
        default="https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd",
    )
    mint_price_usd: float = Field(default=3.0, gt=0)
    fallback_fee_sol: float = Field(default=0.02, gt=0)

    # Payment watcher
    poll_attempts: int = Field(default=10, ge=1)
    poll_interval_seconds: float = Field(default=5.0, ge=0)
    poll_window: int = Field(default=5, ge=1, le=1000)

    # Token transfer
    transfer_attempts: int = Field(default=10, ge=1)
    transfer_delay_seconds: float = Field(default=3.0, ge=0)

    # Paths
    upload_dir: Path = Field(
        default=Path("image"),
        description="Transient directory for generated images",
    )

    # Action document
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Public URL used to build the action href",
    )
    action_icon_url: str = Field(default="https://i.imgur.com/02jEt0P.png")
    action_title: str = Field(default="Astrophant")
    action_label: str = Field(default="Mint NFT")
    action_description: str = Field(default="AI-Powered NFT Mint")

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = Field(default="INFO")


# Global configuration instance
config = BlinkmintConfig()
