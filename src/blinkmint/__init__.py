"""Blinkmint - Solana Action that mints AI-generated art as NFTs."""

__version__ = "0.1.0"

from blinkmint.core.config import BlinkmintConfig, config

__all__ = [
    "BlinkmintConfig",
    "config",
]
