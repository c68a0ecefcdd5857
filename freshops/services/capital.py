from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from freshops import kv
from freshops.errors import ValidationError
from freshops.utils import iso_today, to_date

logger = logging.getLogger(__name__)

ENTRY_INITIAL = "initial"
ENTRY_DEPOSIT = "deposit"
ENTRY_WITHDRAWAL = "withdrawal"
ENTRY_TYPES = (ENTRY_INITIAL, ENTRY_DEPOSIT, ENTRY_WITHDRAWAL)


@dataclass(frozen=True)
class CapitalEntry:
    id: str
    date: str
    type: str
    amount: float
    description: str

    @property
    def signed_amount(self) -> float:
        a = abs(float(self.amount))
        return -a if self.type == ENTRY_WITHDRAWAL else a


def list_entries(conn) -> list[CapitalEntry]:
    return [CapitalEntry(**e) for e in (kv.get_blob(conn, kv.CAPITAL_LEDGER_KEY, []) or [])]


def _save_entries(conn, entries: list[CapitalEntry]) -> None:
    kv.put_blob(conn, kv.CAPITAL_LEDGER_KEY, [asdict(e) for e in entries])


def add_entry(conn, entry_type: str, amount, description: str, entry_date: Optional[str] = None) -> CapitalEntry:
    if entry_type not in ENTRY_TYPES:
        raise ValidationError("Entry type must be initial, deposit or withdrawal.")
    try:
        amt = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Enter a valid amount.")
    if amt <= 0:
        raise ValidationError("Enter a valid amount.")
    description = (description or "").strip()
    if not description:
        raise ValidationError("Enter a description.")

    entry = CapitalEntry(
        id=uuid.uuid4().hex,
        date=to_date(entry_date).isoformat() if entry_date else iso_today(),
        type=entry_type,
        amount=amt,
        description=description,
    )
    _save_entries(conn, [entry, *list_entries(conn)])
    logger.info("Capital %s of %.2f recorded", entry_type, amt)
    return entry


def delete_entry(conn, entry_id: str) -> None:
    _save_entries(conn, [e for e in list_entries(conn) if e.id != entry_id])
    logger.info("Capital entry %s removed", entry_id)


def manual_cash(entries: Iterable[CapitalEntry]) -> float:
    return sum(e.signed_amount for e in entries if e.type in ENTRY_TYPES)


@dataclass(frozen=True)
class CapitalPosition:
    manual_cash: float
    collected: float
    cash_in_hand: float
    expected_in: float
    farmer_owed: float
    projected: float


def capital_position(
    entries: Iterable[CapitalEntry],
    collected: float,
    outstanding: float,
    farmer_owed: float,
) -> CapitalPosition:
    cash = manual_cash(entries)
    in_hand = cash + float(collected)
    return CapitalPosition(
        manual_cash=cash,
        collected=float(collected),
        cash_in_hand=in_hand,
        expected_in=float(outstanding),
        farmer_owed=float(farmer_owed),
        projected=in_hand + float(outstanding) - float(farmer_owed),
    )
