"""Native SOL transfer transactions built with solders."""

from __future__ import annotations

from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction


def build_sol_transfer(sender: str, recipient: str, lamports: int, blockhash: str) -> Transaction:
    """Unsigned single-instruction transfer; ``sender`` pays the fee."""

    if lamports <= 0:
        raise ValueError("Transfer amount must be positive")

    payer = Pubkey.from_string(sender)
    instruction = transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=Pubkey.from_string(recipient),
            lamports=lamports,
        )
    )
    message = Message.new_with_blockhash([instruction], payer, Hash.from_string(blockhash))
    return Transaction.new_unsigned(message)


def serialize(transaction) -> bytes:
    """Wire bytes of a legacy or versioned transaction, signed or not."""

    return bytes(transaction)
