"""Wallet signer interface plus the two implementations the service ships with."""

from __future__ import annotations

from typing import Any, Optional, Protocol, Union, runtime_checkable

from solders.keypair import Keypair
from solders.transaction import Transaction, VersionedTransaction

from ..recovery.errors import SigningRejectedError

SignableTransaction = Union[Transaction, VersionedTransaction]


@runtime_checkable
class WalletSigner(Protocol):
    """What the transfer and swap services need from a connected wallet."""

    @property
    def connected(self) -> bool: ...

    @property
    def public_key(self) -> Optional[str]: ...

    @property
    def can_sign(self) -> bool: ...

    async def sign_transaction(self, transaction: SignableTransaction) -> SignableTransaction: ...

    async def send_transaction(self, transaction: SignableTransaction, connection: Any) -> str: ...


class ReadOnlyWallet:
    """An address-only session: balances and history work, signing does not."""

    def __init__(self, address: Optional[str] = None):
        self._address = address

    @property
    def connected(self) -> bool:
        return bool(self._address)

    @property
    def public_key(self) -> Optional[str]:
        return self._address

    @property
    def can_sign(self) -> bool:
        return False

    async def sign_transaction(self, transaction: SignableTransaction) -> SignableTransaction:
        raise SigningRejectedError("Read-only wallet cannot sign transactions")

    async def send_transaction(self, transaction: SignableTransaction, connection: Any) -> str:
        raise SigningRejectedError("Read-only wallet cannot sign transactions")


class KeypairWallet:
    """Signs locally with a solders ``Keypair``; used by the CLI and tests."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairWallet":
        return cls(Keypair.from_base58_string(secret))

    @property
    def connected(self) -> bool:
        return True

    @property
    def public_key(self) -> Optional[str]:
        return str(self.keypair.pubkey())

    @property
    def can_sign(self) -> bool:
        return True

    async def sign_transaction(self, transaction: SignableTransaction) -> SignableTransaction:
        if isinstance(transaction, VersionedTransaction):
            return VersionedTransaction(transaction.message, [self.keypair])
        return Transaction([self.keypair], transaction.message, transaction.message.recent_blockhash)

    async def send_transaction(self, transaction: SignableTransaction, connection: Any) -> str:
        signed = await self.sign_transaction(transaction)
        return await connection.send_raw_transaction(bytes(signed))
