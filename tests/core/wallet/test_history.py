"""Transaction history: classification, date ranges and display."""

from datetime import datetime

import pytest

from walletchat.core.recovery.errors import NetworkError
from walletchat.core.wallet.history import (
    TransactionHistoryService,
    TransactionQuery,
    TransactionRecord,
    determine_transaction_type,
    extract_counterparty,
    extract_token_info,
    format_transactions_for_display,
    parse_date_query,
)

OWNER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
OTHER = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
JUPITER_V6 = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
NOW = datetime(2024, 3, 14, 15, 30)  # a Thursday


def sol_transfer(source=OWNER, destination=OTHER, lamports=250_000_000, err=None, fee=5000):
    return {
        "meta": {"err": err, "fee": fee},
        "transaction": {
            "message": {
                "instructions": [
                    {
                        "program": "system",
                        "programId": "11111111111111111111111111111111",
                        "parsed": {
                            "type": "transfer",
                            "info": {"source": source, "destination": destination, "lamports": lamports},
                        },
                    }
                ]
            }
        },
    }


def jupiter_swap():
    return {
        "meta": {
            "err": None,
            "fee": 5000,
            "preTokenBalances": [
                {"owner": OWNER, "mint": USDC_MINT, "uiTokenAmount": {"uiAmountString": "0"}},
            ],
            "postTokenBalances": [
                {"owner": OWNER, "mint": USDC_MINT, "uiTokenAmount": {"uiAmountString": "14.5"}},
            ],
        },
        "transaction": {"message": {"instructions": [{"programId": JUPITER_V6}]}},
    }


class TestClassification:
    def test_transaction_types(self):
        assert determine_transaction_type(jupiter_swap()) == "swap"
        assert determine_transaction_type(sol_transfer()) == "transfer"
        assert determine_transaction_type({"transaction": {"message": {"instructions": []}}}) == "unknown"

    def test_sol_transfer_details(self):
        tx = sol_transfer()
        assert extract_token_info(tx, OWNER) == ("SOL", None, "0.2500")
        assert extract_counterparty(tx, OWNER) == OTHER
        assert extract_counterparty(sol_transfer(source=OTHER, destination=OWNER), OWNER) == OTHER

    def test_swap_uses_owner_token_deltas(self):
        from_token, to_token, amount = extract_token_info(jupiter_swap(), OWNER)
        assert (from_token, to_token) == ("SOL", "USDC")
        assert amount == "0"


class TestParseDateQuery:
    def test_today_and_yesterday(self):
        today = parse_date_query("today", NOW)
        assert today.start == datetime(2024, 3, 14)
        assert today.end == datetime(2024, 3, 15)

        yesterday = parse_date_query("what did I do yesterday", NOW)
        assert yesterday.start == datetime(2024, 3, 13)
        assert yesterday.end == datetime(2024, 3, 14)

    def test_this_week_starts_on_monday(self):
        assert parse_date_query("this week", NOW).start == datetime(2024, 3, 11)

    def test_last_week_and_month(self):
        assert parse_date_query("last week", NOW).start == datetime(2024, 3, 7, 15, 30)
        assert parse_date_query("last month", NOW).start == datetime(2024, 2, 14, 15, 30)
        assert parse_date_query("this month", NOW).start == datetime(2024, 3, 1)

    def test_last_month_clamps_day(self):
        end_of_march = datetime(2024, 3, 31, 12, 0)
        assert parse_date_query("last month", end_of_march).start == datetime(2024, 2, 29, 12, 0)

    def test_last_month_in_january(self):
        assert parse_date_query("last month", datetime(2024, 1, 10)).start == datetime(2023, 12, 10)

    @pytest.mark.parametrize(
        "query,start",
        [
            ("3/5/2024", datetime(2024, 3, 5)),
            ("3/5", datetime(2024, 3, 5)),
            ("25/12/23", datetime(2023, 12, 25)),
        ],
    )
    def test_numeric_dates(self, query, start):
        date_range = parse_date_query(query, NOW)
        assert date_range.start == start
        assert (date_range.end - date_range.start).days == 1

    def test_invalid_or_unknown_is_unbounded(self):
        assert parse_date_query("2/31/2024", NOW).start is None
        assert parse_date_query("whenever", NOW).start is None


class FakeConnections:
    def __init__(self, signatures, transactions, failing=()):
        self.signatures = signatures
        self.transactions = transactions
        self.failing = set(failing)
        self.cache_keys = []

    async def make_request(self, fn, cache_key=None, max_attempts=3, kind="default"):
        self.cache_keys.append(cache_key)
        return await fn(self)

    async def get_signatures_for_address(self, address, limit=10):
        return self.signatures[:limit]

    async def get_parsed_transaction(self, signature):
        if signature in self.failing:
            raise NetworkError("node unavailable")
        return self.transactions.get(signature)


class TestHistoryService:
    @pytest.mark.asyncio
    async def test_recent_transactions(self):
        connections = FakeConnections(
            [
                {"signature": "sig1", "blockTime": int(datetime(2024, 3, 14, 10).timestamp())},
                {"signature": "sig2", "blockTime": int(datetime(2024, 3, 13, 9).timestamp())},
                {"signature": "sig3", "blockTime": int(datetime(2024, 3, 12, 9).timestamp())},
            ],
            {"sig1": sol_transfer(), "sig2": jupiter_swap(), "sig3": sol_transfer(err={"InstructionError": [0, 1]})},
        )
        service = TransactionHistoryService(connections, now=lambda: NOW)

        records = await service.get_recent_transactions(OWNER, limit=10)

        assert [r.signature for r in records] == ["sig1", "sig2", "sig3"]
        assert records[0].fee == "0.000005"
        assert records[1].type == "swap"
        assert records[2].failed
        assert "tx:sig1" in connections.cache_keys

    @pytest.mark.asyncio
    async def test_unloadable_transactions_are_skipped(self):
        connections = FakeConnections(
            [{"signature": "sig1"}, {"signature": "sig2"}],
            {"sig1": sol_transfer(), "sig2": sol_transfer()},
            failing={"sig2"},
        )
        service = TransactionHistoryService(connections, now=lambda: NOW)

        records = await service.get_recent_transactions(OWNER)
        assert [r.signature for r in records] == ["sig1"]

    @pytest.mark.asyncio
    async def test_filters(self):
        connections = FakeConnections(
            [
                {"signature": "sig1", "blockTime": int(datetime(2024, 3, 14, 10).timestamp())},
                {"signature": "sig2", "blockTime": int(datetime(2024, 3, 13, 9).timestamp())},
            ],
            {"sig1": sol_transfer(), "sig2": jupiter_swap()},
        )
        service = TransactionHistoryService(connections, now=lambda: NOW)

        swaps = await service.get_transactions(OWNER, TransactionQuery(type="swap"))
        assert [r.signature for r in swaps] == ["sig2"]

        usdc = await service.get_transactions(OWNER, TransactionQuery(token="usdc"))
        assert [r.signature for r in usdc] == ["sig2"]

        today = await service.get_transactions(OWNER, TransactionQuery(date_range=parse_date_query("today", NOW)))
        assert [r.signature for r in today] == ["sig1"]


class TestDisplay:
    def test_empty(self):
        assert format_transactions_for_display([]) == "No transactions found for the specified criteria."

    def test_grouped_by_day_with_summary(self):
        records = [
            TransactionRecord("a", datetime(2024, 3, 14, 10, 5), "transfer", "SOL", "0.2500", "confirmed", "0.000005",
                              counterparty=OTHER),
            TransactionRecord("b", datetime(2024, 3, 14, 9, 0), "swap", "SOL", "1", "failed", "0.000005",
                              to_token="USDC"),
            TransactionRecord("c", datetime(2024, 3, 13, 8, 0), "transfer", "USDC", "5", "confirmed", "0.000005"),
        ]

        text = format_transactions_for_display(records)

        assert "2024-03-14:" in text
        assert "2024-03-13:" in text
        assert "10:05 Transfer: 0.2500 SOL (counterparty 7xKX...gAsU) [success]" in text
        assert "09:00 Swap: 1 SOL -> USDC [failed]" in text
        assert text.endswith("Total: 3 transactions, 2 successful, 1 failed")
