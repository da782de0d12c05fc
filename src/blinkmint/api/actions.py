"""Solana Actions documents, CORS headers and the action error type.

Wallets and "blink" clients discover the mint through ``GET /get_action``
and call ``POST /post_action`` to receive a transaction to sign.  Both
responses must carry the Actions CORS headers, including error responses.
"""

from __future__ import annotations

from blinkmint.core.config import BlinkmintConfig

ACTIONS_CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,PUT,OPTIONS",
    "Access-Control-Allow-Headers": (
        "Content-Type, Authorization, Content-Encoding, Accept-Encoding, "
        "X-Accept-Action-Version, X-Accept-Blockchain-Ids"
    ),
    "Access-Control-Expose-Headers": "X-Action-Version, X-Blockchain-Ids",
}

PAYMENT_MESSAGE = (
    "Your NFT is on the way! Wait a few minutes then check your wallet with https://solana.fm/."
)


class ActionError(Exception):
    """Error rendered as ``{"error": message}`` with the Actions CORS headers.

    Attributes:
        status_code: HTTP status of the response.
        message: Human-readable reason shown by the wallet.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def build_action_document(settings: BlinkmintConfig) -> dict:
    """Build the ``GET /get_action`` discovery document.

    The single linked action posts back to ``/post_action`` with the
    ``prompt`` and ``memo`` parameters filled in by the client.
    """
    base_url = settings.public_base_url.rstrip("/")
    return {
        "type": "action",
        "icon": settings.action_icon_url,
        "label": settings.action_label,
        "title": settings.action_title,
        "description": settings.action_description,
        "links": {
            "actions": [
                {
                    "type": "transaction",
                    "label": settings.action_label,
                    "href": f"{base_url}/post_action?user_prompt={{prompt}}&memo={{memo}}",
                    "parameters": [
                        {"name": "prompt", "label": "Describe your NFT", "required": True},
                        {"name": "memo", "label": "Add a personal note", "required": True},
                    ],
                }
            ]
        },
        "error": {
            "message": f"A single mint costs ${settings.mint_price_usd:g} USD, payable in SOL."
        },
    }


def build_actions_rules() -> dict:
    """Build the ``/actions.json`` rules mapping every path on the host to the action."""
    return {
        "rules": [
            {"pathPattern": "/**", "apiPath": "/get_action"},
        ]
    }
