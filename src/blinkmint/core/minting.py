"""Token minter and transferor for Metaplex Core assets.

Assets are created with the Metaplex Core ``CreateV1`` instruction and moved
to the buyer with ``TransferV1``.  There is no Python SDK for the program, so
the two instructions are encoded here directly.

Instruction Layout
------------------
Both instructions use Borsh encoding with a one-byte discriminator:

- ``CreateV1`` (0): ``data_state: u8`` (0 = account state), ``name: string``,
  ``uri: string``, ``plugins: Option<Vec<..>>`` (always ``None`` here)
- ``TransferV1`` (14): ``compression_proof: Option<..>`` (always ``None``)

Borsh strings are a little-endian ``u32`` byte length followed by UTF-8.
Optional accounts that are not supplied are replaced by the program id,
read-only and unsigned, which the program interprets as "absent".
"""

from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import Sequence
from dataclasses import dataclass

from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.models import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from blinkmint.core.errors import MintError, TransferError
from blinkmint.core.retry import Sleep, retry_call

logger = logging.getLogger(__name__)

MPL_CORE_PROGRAM_ID = Pubkey.from_string("CoREENxT6tW1HoK8ypY1SxRMZTcVPm7R94rH4PZNhX7d")

CREATE_V1_DISCRIMINATOR = 0
TRANSFER_V1_DISCRIMINATOR = 14
DATA_STATE_ACCOUNT = 0

_RPC_ERRORS = (SolanaRpcException, RPCException, UnconfirmedTxError)


@dataclass(frozen=True)
class MintedAsset:
    asset_address: str
    metadata_uri: str
    signature: str


def _borsh_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def _absent() -> AccountMeta:
    return AccountMeta(MPL_CORE_PROGRAM_ID, is_signer=False, is_writable=False)


def create_asset_instruction(asset: Pubkey, payer: Pubkey, name: str, uri: str) -> Instruction:
    """Encode a ``CreateV1`` instruction owned and paid for by ``payer``."""
    data = (
        bytes([CREATE_V1_DISCRIMINATOR, DATA_STATE_ACCOUNT])
        + _borsh_string(name)
        + _borsh_string(uri)
        + b"\x00"
    )
    accounts = [
        AccountMeta(asset, is_signer=True, is_writable=True),
        _absent(),  # collection
        _absent(),  # authority, defaults to payer
        AccountMeta(payer, is_signer=True, is_writable=True),
        _absent(),  # owner, defaults to payer
        _absent(),  # update authority, defaults to payer
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        _absent(),  # log wrapper
    ]
    return Instruction(MPL_CORE_PROGRAM_ID, data, accounts)


def transfer_asset_instruction(asset: Pubkey, payer: Pubkey, new_owner: Pubkey) -> Instruction:
    """Encode a ``TransferV1`` instruction signed by the current owner ``payer``."""
    data = bytes([TRANSFER_V1_DISCRIMINATOR]) + b"\x00"
    accounts = [
        AccountMeta(asset, is_signer=False, is_writable=True),
        _absent(),  # collection
        AccountMeta(payer, is_signer=True, is_writable=True),
        _absent(),  # authority, defaults to payer
        AccountMeta(new_owner, is_signer=False, is_writable=False),
        _absent(),  # system program
        _absent(),  # log wrapper
    ]
    return Instruction(MPL_CORE_PROGRAM_ID, data, accounts)


async def send_and_confirm(rpc, instructions: Sequence[Instruction], signers: Sequence[Keypair]) -> str:
    """Sign ``instructions`` with ``signers`` (first one pays), send and confirm.

    Returns:
        The transaction signature.

    Raises:
        MintError: If the RPC rejects the transaction, confirmation times
            out, or the confirmed transaction carries an error.
    """
    payer = signers[0]
    try:
        blockhash = (await rpc.get_latest_blockhash(commitment=Confirmed)).value.blockhash
        message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
        transaction = Transaction(list(signers), message, blockhash)
        sent = await rpc.send_raw_transaction(
            bytes(transaction), opts=TxOpts(preflight_commitment=Confirmed)
        )
        signature = sent.value
        confirmation = await rpc.confirm_transaction(signature, commitment=Confirmed)
    except _RPC_ERRORS as exc:
        raise MintError(f"Transaction failed: {exc}") from exc

    statuses = confirmation.value
    status = statuses[0] if statuses else None
    if status is None:
        raise MintError(f"Transaction {signature} was not confirmed")
    if status.err is not None:
        raise MintError(f"Transaction {signature} failed: {status.err}")
    return str(signature)


async def mint_asset(rpc, payer: Keypair, metadata_uri: str, name: str) -> MintedAsset:
    """Create a new Core asset pointing at ``metadata_uri``.

    A fresh keypair is generated for the asset account; it signs the
    creation transaction alongside the service wallet and is then discarded.
    """
    asset = Keypair()
    logger.info("Creating asset %s with metadata %s", asset.pubkey(), metadata_uri)
    instruction = create_asset_instruction(asset.pubkey(), payer.pubkey(), name, metadata_uri)
    signature = await send_and_confirm(rpc, [instruction], [payer, asset])
    logger.info("Asset created: %s (tx %s)", asset.pubkey(), signature)
    return MintedAsset(
        asset_address=str(asset.pubkey()),
        metadata_uri=metadata_uri,
        signature=signature,
    )


async def transfer_asset(
    rpc,
    payer: Keypair,
    asset_address: str,
    new_owner: Pubkey,
    *,
    attempts: int = 10,
    delay: float = 3.0,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """Transfer a freshly minted asset to ``new_owner``.

    Retries cover the window in which the new asset account is not yet
    visible to the RPC node that receives the transfer.

    Raises:
        TransferError: After every attempt has failed, whatever the last
            error was.  The asset stays in the service wallet.
    """
    asset = Pubkey.from_string(asset_address)
    instruction = transfer_asset_instruction(asset, payer.pubkey(), new_owner)

    try:
        signature = await retry_call(
            lambda: send_and_confirm(rpc, [instruction], [payer]),
            attempts=attempts,
            delay=delay,
            label=f"transfer {asset_address}",
            sleep=sleep,
        )
    except Exception as exc:
        raise TransferError(
            f"Transfer of {asset_address} to {new_owner} failed after {attempts} attempts: {exc}",
            asset_address,
        ) from exc

    logger.info("Asset %s transferred to %s (tx %s)", asset_address, new_owner, signature)
    return signature
