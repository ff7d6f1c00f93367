"""Recent transaction history: fetching, classification, date filters and display."""

from __future__ import annotations

import asyncio
import calendar
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from ...services.address import format_address_short
from ..connection import ConnectionManager
from ..models import NATIVE_SYMBOL, lamports_to_sol
from ..recovery.errors import RecoverableError
from ..tokens import metadata_for_mint

logger = logging.getLogger(__name__)

JUPITER_PROGRAM_IDS = frozenset(
    {
        "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB",
        "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",
    }
)
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

_DATE_RE = re.compile(r"(\d{1,2})[/\-.](\d{1,2})(?:[/\-.](\d{2,4}))?")


@dataclass
class DateRange:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


@dataclass
class TransactionQuery:
    date_range: Optional[DateRange] = None
    type: Optional[str] = None
    token: Optional[str] = None
    limit: int = 50


@dataclass
class TransactionRecord:
    signature: str
    timestamp: datetime
    type: str
    from_token: str
    amount: str
    status: str
    fee: str
    to_token: Optional[str] = None
    counterparty: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"


def _instructions(tx: Dict[str, Any]) -> List[Dict[str, Any]]:
    message = ((tx or {}).get("transaction") or {}).get("message") or {}
    return list(message.get("instructions") or [])


def determine_transaction_type(tx: Dict[str, Any]) -> str:
    """Classify a parsed transaction as ``swap``, ``transfer`` or ``unknown``."""

    program_ids = {str(ix.get("programId")) for ix in _instructions(tx)}
    if program_ids & JUPITER_PROGRAM_IDS:
        return "swap"
    if TOKEN_PROGRAM_ID in program_ids or SYSTEM_PROGRAM_ID in program_ids:
        return "transfer"
    return "unknown"


def _symbol_for_mint(mint: Optional[str]) -> str:
    meta = metadata_for_mint(mint or "")
    return str(meta["symbol"]) if meta else "Unknown"


def _owner_token_deltas(tx: Dict[str, Any], owner: str) -> Dict[str, Decimal]:
    meta = tx.get("meta") or {}

    def amounts(key: str) -> Dict[str, Decimal]:
        result: Dict[str, Decimal] = {}
        for entry in meta.get(key) or []:
            if entry.get("owner") != owner:
                continue
            ui = (entry.get("uiTokenAmount") or {}).get("uiAmountString") or "0"
            result[entry.get("mint")] = result.get(entry.get("mint"), Decimal(0)) + Decimal(ui)
        return result

    pre, post = amounts("preTokenBalances"), amounts("postTokenBalances")
    return {mint: post.get(mint, Decimal(0)) - pre.get(mint, Decimal(0)) for mint in set(pre) | set(post)}


def extract_token_info(tx: Dict[str, Any], owner: Optional[str] = None) -> Tuple[str, Optional[str], str]:
    """Return ``(from_token, to_token, amount)`` for display."""

    tx_type = determine_transaction_type(tx)

    if tx_type == "swap" and owner:
        deltas = _owner_token_deltas(tx, owner)
        sent = [(m, d) for m, d in deltas.items() if d < 0]
        received = [(m, d) for m, d in deltas.items() if d > 0]
        from_token = _symbol_for_mint(sent[0][0]) if sent else NATIVE_SYMBOL
        to_token = _symbol_for_mint(received[0][0]) if received else NATIVE_SYMBOL
        amount = f"{abs(sent[0][1]):f}" if sent else "0"
        return from_token, to_token, amount

    if tx_type == "transfer":
        for ix in _instructions(tx):
            parsed = ix.get("parsed")
            if not isinstance(parsed, dict) or parsed.get("type") not in ("transfer", "transferChecked"):
                continue
            info = parsed.get("info") or {}
            program_id = str(ix.get("programId"))
            if program_id == TOKEN_PROGRAM_ID:
                token_amount = info.get("tokenAmount") or {}
                amount = token_amount.get("uiAmountString") or info.get("amount") or "0"
                return _symbol_for_mint(info.get("mint")), None, str(amount)
            if program_id == SYSTEM_PROGRAM_ID and info.get("lamports"):
                return NATIVE_SYMBOL, None, f"{lamports_to_sol(int(info['lamports'])):.4f}"

    return "Unknown", None, "0"


def extract_counterparty(tx: Dict[str, Any], owner: str) -> Optional[str]:
    """The other side of the first native transfer involving ``owner``."""

    for ix in _instructions(tx):
        parsed = ix.get("parsed")
        if ix.get("program") != "system" or not isinstance(parsed, dict) or parsed.get("type") != "transfer":
            continue
        info = parsed.get("info") or {}
        if info.get("source") == owner:
            return info.get("destination")
        if info.get("destination") == owner:
            return info.get("source")
    return None


def parse_date_query(query: str, now: Optional[datetime] = None) -> DateRange:
    """
    Turn phrases such as "today", "last week" or "3/14/2024" into a range.

    Numeric dates are read month-first unless the first part exceeds 12.
    Two-digit years are taken as 20xx. Unrecognized input yields an empty
    (unbounded) range.
    """
    text = (query or "").lower()
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if "today" in text:
        return DateRange(midnight, midnight + timedelta(days=1))
    if "yesterday" in text:
        return DateRange(midnight - timedelta(days=1), midnight)
    if "last week" in text:
        return DateRange(now - timedelta(days=7), now)
    if "last month" in text:
        month = now.month - 1 or 12
        year = now.year - 1 if now.month == 1 else now.year
        day = min(now.day, calendar.monthrange(year, month)[1])
        return DateRange(now.replace(year=year, month=month, day=day), now)
    if "this month" in text:
        return DateRange(midnight.replace(day=1), now)
    if "this week" in text:
        return DateRange(midnight - timedelta(days=now.weekday()), now)

    match = _DATE_RE.search(text)
    if match:
        first, second, year_text = match.groups()
        if int(first) > 12:
            day, month = int(first), int(second)
        else:
            month, day = int(first), int(second)
        year = now.year
        if year_text:
            year = 2000 + int(year_text) if len(year_text) == 2 else int(year_text)
        try:
            start = datetime(year, month, day)
        except ValueError:
            return DateRange()
        return DateRange(start, start + timedelta(days=1))

    return DateRange()


class TransactionHistoryService:
    def __init__(
        self,
        connections: ConnectionManager,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.connections = connections
        self._now = now

    async def _load_record(self, address: str, signature_info: Dict[str, Any]) -> Optional[TransactionRecord]:
        signature = signature_info.get("signature")
        if not signature:
            return None
        try:
            tx = await self.connections.make_request(
                lambda c: c.get_parsed_transaction(signature),
                cache_key=f"tx:{signature}",
            )
        except RecoverableError as e:
            logger.warning("Could not load transaction %s: %s", signature, e)
            return None
        if not tx:
            return None

        block_time = signature_info.get("blockTime") or tx.get("blockTime")
        timestamp = datetime.fromtimestamp(block_time) if block_time else self._now()
        from_token, to_token, amount = extract_token_info(tx, address)
        meta = tx.get("meta") or {}

        return TransactionRecord(
            signature=signature,
            timestamp=timestamp,
            type=determine_transaction_type(tx),
            from_token=from_token,
            to_token=to_token,
            amount=amount,
            status="failed" if meta.get("err") else "confirmed",
            fee=f"{lamports_to_sol(int(meta.get('fee') or 0)):.6f}",
            counterparty=extract_counterparty(tx, address),
        )

    async def get_recent_transactions(self, address: str, limit: int = 10) -> List[TransactionRecord]:
        return await self.get_transactions(address, TransactionQuery(limit=limit))

    async def get_transactions(self, address: str, query: TransactionQuery) -> List[TransactionRecord]:
        """Fetch, classify and filter the latest ``query.limit`` signatures."""
        if not address:
            return []

        signatures = await self.connections.make_request(
            lambda c: c.get_signatures_for_address(address, limit=query.limit),
            cache_key=f"signatures:{address}:{query.limit}",
        )
        loaded = await asyncio.gather(*(self._load_record(address, s) for s in signatures))
        records = [r for r in loaded if r is not None]

        if query.type:
            records = [r for r in records if r.type.lower() == query.type.lower()]
        if query.token:
            token = query.token.lower()
            records = [
                r for r in records
                if r.from_token.lower() == token or (r.to_token or "").lower() == token
            ]
        if query.date_range:
            records = [r for r in records if query.date_range.contains(r.timestamp)]

        return records[: query.limit] if query.limit > 0 else records


def format_transactions_for_display(records: List[TransactionRecord]) -> str:
    if not records:
        return "No transactions found for the specified criteria."

    groups: Dict[str, List[TransactionRecord]] = {}
    for record in records:
        groups.setdefault(record.timestamp.strftime("%Y-%m-%d"), []).append(record)

    lines = ["Transaction History", ""]
    for day, day_records in groups.items():
        lines.append(f"{day}:")
        for record in day_records:
            label = {"swap": "Swap", "transfer": "Transfer"}.get(record.type, "Transaction")
            line = f"  {record.timestamp.strftime('%H:%M')} {label}: {record.amount} {record.from_token}"
            if record.type == "swap" and record.to_token:
                line += f" -> {record.to_token}"
            elif record.counterparty:
                line += f" (counterparty {format_address_short(record.counterparty)})"
            line += " [failed]" if record.failed else " [success]"
            lines.append(line)
        lines.append("")

    failed = sum(1 for r in records if r.failed)
    lines.append(f"Total: {len(records)} transactions, {len(records) - failed} successful")
    if failed:
        lines[-1] += f", {failed} failed"
    return "\n".join(lines)
