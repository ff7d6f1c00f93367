#!/usr/bin/env python3
"""Simple CLI for talking to the wallet assistant locally"""

import argparse
import asyncio
import os
from typing import Optional

from walletchat.core.models import SwapRequest, WalletSnapshot
from walletchat.core.wallet.history import TransactionQuery, format_transactions_for_display, parse_date_query
from walletchat.core.wallet.signer import KeypairWallet, ReadOnlyWallet
from walletchat.dependencies import Services, build_services
from walletchat.logging_config import setup_logging
from walletchat.services.address import is_valid_solana_address


def print_snapshot(address: str, snapshot: WalletSnapshot):
    """Pretty print a wallet snapshot"""
    print("\n🔄 Wallet Balance")
    print("=" * 50)
    print(f"Address: {address}")
    if snapshot.degraded:
        print("⚠️  Network unavailable; showing fallback values")
    print(f"SOL: {snapshot.native_balance:,.6f}")
    print(f"Total Value: ${snapshot.total_value_usd:,.2f} USD")

    tokens = [t for t in snapshot.tokens if not t.is_native]
    if tokens:
        print("\nTokens:")
        print("-" * 50)
        for i, token in enumerate(tokens, 1):
            value_str = f"${token.usd_value:,.2f}" if token.usd_value is not None else "No price"
            print(f"{i:2d}. {token.balance.normalize():>14f} {token.symbol:<8} {value_str:>12}")


async def cli_balance(services: Services, address: str):
    print(f"🔍 Fetching balance for {address}...")
    snapshot = await services.wallet_data.get_wallet_data(address)
    print_snapshot(address, snapshot)


async def cli_history(services: Services, address: str, period: Optional[str]):
    query = TransactionQuery(limit=10)
    if period:
        query.date_range = parse_date_query(period)
        query.limit = 50
    records = await services.assistant.history.get_transactions(address, query)
    print(format_transactions_for_display(records))


async def cli_estimate(services: Services, amount: str, from_token: str, to_token: str):
    try:
        estimate = await services.swaps.get_swap_estimate(SwapRequest(from_token, to_token, amount))
    except ValueError as e:
        print(f"❌ {e}")
        return
    to_amount = f"{estimate.to_amount:.6f}" if estimate.to_amount is not None else "unknown"
    print(f"{estimate.from_amount} {from_token.upper()} ≈ {to_amount} {to_token.upper()} (via {estimate.source})")
    if estimate.usd_value is not None:
        print(f"Value: ${estimate.usd_value:,.2f}")
    if estimate.price_impact is not None:
        print(f"Price impact: {estimate.price_impact:.4f}%")
    print(f"Trend: {estimate.trend}")


def _wallet_for(address: Optional[str], keypair_env: Optional[str]):
    secret = os.environ.get(keypair_env) if keypair_env else None
    if secret:
        return KeypairWallet.from_base58(secret)
    return ReadOnlyWallet(address)


async def cli_chat(services: Services, address: Optional[str], keypair_env: Optional[str]):
    """Interactive chat mode"""
    wallet = _wallet_for(address, keypair_env)
    print("🤖 Wallet Chat")
    if wallet.public_key:
        mode = "signing" if wallet.can_sign else "read-only"
        print(f"Wallet: {wallet.public_key} ({mode})")
    else:
        print("No wallet connected; price and token analysis only")
    print("Type 'exit' to quit")
    print("-" * 40)

    while True:
        try:
            user_input = input("\n💬 You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye! 👋")
            break

        if user_input.lower() in ["exit", "quit", "q"]:
            print("Goodbye! 👋")
            break
        if not user_input:
            continue

        response = await services.assistant.process_request(user_input, wallet)
        print(f"🤖 Assistant: {response.message}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Wallet Chat CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    balance_parser = subparsers.add_parser("balance", help="Show wallet balances")
    balance_parser.add_argument("address", help="Wallet address")

    history_parser = subparsers.add_parser("history", help="Show recent transactions")
    history_parser.add_argument("address", help="Wallet address")
    history_parser.add_argument("period", nargs="?", help='Period such as "today", "last week" or "3/14/2024"')

    estimate_parser = subparsers.add_parser("estimate", help="Preview a swap")
    estimate_parser.add_argument("amount", help="Amount to swap")
    estimate_parser.add_argument("from_token", help="Token to sell")
    estimate_parser.add_argument("to_token", help="Token to buy")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat mode")
    chat_parser.add_argument("--address", help="Wallet address for read-only sessions")
    chat_parser.add_argument(
        "--keypair-env",
        help="Environment variable holding a base58 secret key; enables sends and swaps",
    )

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.log_level)

    address = getattr(args, "address", None)
    if address and not is_valid_solana_address(address):
        print(f"❌ Invalid Solana address: {address}")
        return

    services = build_services()
    try:
        if args.command == "balance":
            await cli_balance(services, args.address)
        elif args.command == "history":
            await cli_history(services, args.address, args.period)
        elif args.command == "estimate":
            await cli_estimate(services, args.amount, args.from_token, args.to_token)
        elif args.command == "chat":
            await cli_chat(services, args.address, args.keypair_env)
    finally:
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
