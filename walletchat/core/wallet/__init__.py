from .data_provider import WalletDataProvider
from .history import TransactionHistoryService, format_transactions_for_display, parse_date_query
from .signer import KeypairWallet, ReadOnlyWallet, WalletSigner

__all__ = [
    "KeypairWallet",
    "ReadOnlyWallet",
    "TransactionHistoryService",
    "WalletDataProvider",
    "WalletSigner",
    "format_transactions_for_display",
    "parse_date_query",
]
