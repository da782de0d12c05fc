"""Core pipeline stages for the Blinkmint service.

Stages, in the order a mint runs through them:

- **payments**: fee lookup, unsigned payment transaction, memo watcher
- **safety**: content safety gate (moderation or structured verdict)
- **prompting**: prompt enhancement and attribute synthesis
- **imaging**: text-to-image generation saved as PNG
- **publishing**: image and metadata pinned to IPFS
- **minting**: Metaplex Core asset creation and transfer
- **pipeline**: the post-payment job that drives the stages above

Supporting modules: **config** (Pydantic Settings), **context** (shared
clients), **retry** (bounded retry helpers), **metadata** (NFT models) and
**errors** (exception hierarchy).
"""

from blinkmint.core.config import BlinkmintConfig, config
from blinkmint.core.errors import BlinkmintError

__all__ = [
    "BlinkmintConfig",
    "BlinkmintError",
    "config",
]
