"""Payment side of the mint flow: fee, unsigned transaction, memo watcher.

The buyer pays by signing a transaction that this service builds but never
submits.  The transaction carries two meaningful instructions:

1. a system transfer of the mint fee from the buyer to the service wallet
2. a memo instruction carrying the *salted* memo

The salted memo is the correlation token between the HTTP request and the
on-chain payment.  After the response has been sent, the payment watcher
polls the buyer's recent signatures until one of them carries that memo.

Watcher Policy
--------------
- ``attempts`` polls, ``interval`` seconds apart, no sleep after the last
- each poll fetches the ``window`` most recent signatures at ``confirmed``
- the RPC reports memos as ``"[<len>] <text>"``, several joined by ``"; "``;
  a signature matches when one of those entries is exactly the target memo
- the salt is zero-padded to a fixed width, so one salted memo is never the
  prefix of another for the same note
- an RPC or transport error is logged and consumes the attempt; anything
  else propagates
"""

from __future__ import annotations

import asyncio
import base64
import logging
import random
import re
import time
from dataclasses import dataclass

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from blinkmint.core.errors import InvalidAccountError
from blinkmint.core.retry import Sleep, retry_until

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
MAX_SALT = 100_000
SALT_WIDTH = len(str(MAX_SALT - 1))

# Errors a poll may recover from; the attempt is spent and polling goes on.
WATCH_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError)


@dataclass(frozen=True)
class PendingPayment:
    """A payment the watcher is waiting for.

    Attributes:
        payer_account: Wallet expected to sign and pay.
        memo: Salted memo the payment must carry.
        fee_lamports: Amount requested in the transfer instruction.
        expiry_deadline: Unix time after which the watcher will have given up.
    """

    payer_account: Pubkey
    memo: str
    fee_lamports: int
    expiry_deadline: float


def parse_account(account: str | None) -> Pubkey:
    """Parse a base58 wallet address.

    Raises:
        InvalidAccountError: If the string is empty or not a valid public key.
    """
    if not account:
        raise InvalidAccountError("Invalid account")
    try:
        return Pubkey.from_string(account.strip())
    except ValueError as exc:
        raise InvalidAccountError("Invalid account") from exc


def salt_memo(note: str, salt: int | None = None) -> tuple[str, int]:
    """Append a random, zero-padded number to the user's memo.

    Returns:
        Tuple of ``(salted_memo, salt)``.
    """
    if salt is None:
        salt = random.randrange(MAX_SALT)
    return f"{note}{salt:0{SALT_WIDTH}d}", salt


def memo_matches(reported: str | None, memo: str) -> bool:
    """Whether the RPC ``memo`` field of a signature carries ``memo``.

    ``reported`` holds one ``"[<len>] <text>"`` entry per memo instruction,
    joined by ``"; "``.  The length prefix is optional so plain memos match
    too.
    """
    if not reported:
        return False
    pattern = rf"(?:^|; )(?:\[\d+\] )?{re.escape(memo)}(?=; |$)"
    return re.search(pattern, reported) is not None


async def get_fee_in_lamports(
    http: httpx.AsyncClient,
    price_url: str,
    *,
    target_usd: float,
    fallback_sol: float,
) -> int:
    """Convert a USD mint price into lamports at the current SOL price.

    Any failure of the price lookup, or a non-positive price, falls back to
    ``fallback_sol``.
    """
    try:
        response = await http.get(price_url, timeout=10.0)
        response.raise_for_status()
        sol_price = response.json()["solana"]["usd"]
        if not isinstance(sol_price, (int, float)) or sol_price <= 0:
            raise ValueError(f"Invalid SOL price data: {sol_price!r}")
    except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
        lamports = round(fallback_sol * LAMPORTS_PER_SOL)
        logger.warning("Price lookup failed (%s), using fallback fee %d lamports", exc, lamports)
        return lamports

    sol_amount = target_usd / sol_price
    lamports = round(sol_amount * LAMPORTS_PER_SOL)
    logger.info("Dynamic fee: %d lamports (%.4f SOL)", lamports, sol_amount)
    return lamports


def memo_instruction(memo: str) -> Instruction:
    """Build an SPL memo instruction carrying ``memo`` as UTF-8."""
    return Instruction(MEMO_PROGRAM_ID, memo.encode("utf-8"), [])


def build_payment_transaction(
    payer: Pubkey,
    treasury: Pubkey,
    lamports: int,
    memo: str,
    blockhash: Hash,
    *,
    compute_unit_limit: int = 20_000,
    compute_unit_price: int = 100,
) -> Transaction:
    """Build the unsigned payment transaction returned to the wallet.

    The buyer is the fee payer.  The transaction is left unsigned; the
    wallet signs and submits it.
    """
    instructions = [
        transfer(TransferParams(from_pubkey=payer, to_pubkey=treasury, lamports=lamports)),
        memo_instruction(memo),
        set_compute_unit_limit(compute_unit_limit),
        set_compute_unit_price(compute_unit_price),
    ]
    message = Message.new_with_blockhash(instructions, payer, blockhash)
    return Transaction.new_unsigned(message)


def serialize_unsigned(transaction: Transaction) -> str:
    """Serialize a transaction with empty signatures as base64."""
    return base64.b64encode(bytes(transaction)).decode("ascii")


def new_pending_payment(
    payer: Pubkey, memo: str, fee_lamports: int, *, attempts: int, interval: float
) -> PendingPayment:
    return PendingPayment(
        payer_account=payer,
        memo=memo,
        fee_lamports=fee_lamports,
        expiry_deadline=time.time() + attempts * interval,
    )


async def find_transaction_with_memo(
    rpc,
    payment: PendingPayment,
    *,
    attempts: int = 10,
    interval: float = 5.0,
    window: int = 5,
    sleep: Sleep = asyncio.sleep,
) -> str | None:
    """Poll the payer's recent signatures for one carrying the payment memo.

    Args:
        rpc: Solana ``AsyncClient`` (or any object with the same
            ``get_signatures_for_address`` coroutine).
        payment: The pending payment; its payer's history is searched for
            its memo.
        attempts: Maximum number of polls.
        interval: Seconds between polls.
        window: Number of most recent signatures fetched per poll.
        sleep: Awaitable sleep function.

    Returns:
        The matching signature as a string, or ``None`` when the budget is
        exhausted.
    """
    memo = payment.memo
    logger.info(
        "Searching for memo %r on %s (%d lamports, expires %.0f)",
        memo,
        payment.payer_account,
        payment.fee_lamports,
        payment.expiry_deadline,
    )

    async def poll() -> str | None:
        response = await rpc.get_signatures_for_address(
            payment.payer_account, limit=window, commitment=Confirmed
        )
        for status in response.value:
            if memo_matches(status.memo, memo):
                logger.info("Memo match found in %s", status.signature)
                return str(status.signature)
        return None

    signature = await retry_until(
        poll,
        lambda sig: sig is not None,
        attempts=attempts,
        delay=interval,
        label=f"memo watch {memo}",
        sleep=sleep,
        retry_on=WATCH_ERRORS,
    )
    if signature is None:
        logger.info("No transaction with memo %r after %d checks", memo, attempts)
    return signature
