# backend/billsplit/services/bill_codec.py
"""
Mapping between Bill objects and their stored / wire shapes.

A stored bill record looks like the mobile app's transaction record:

    {
      "id": "...",
      "description": "Dinner",
      "amount": "33.00",
      "date": "2026-10-01T19:30:00+00:00",
      "participants": "<JSON metadata string>",
      "createdBy": "u1"
    }

The metadata JSON always carries ``type``, ``participants`` and
``splitEqually``; itemized bills add ``items``/``tax``/``tip``/``subtotal``
and category bills add ``roomDetails``, ``ticketDetails`` or ``expenses``.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from billsplit.domain.models import (
    AnalyticsSnapshot,
    Bill,
    BillCategory,
    LineItem,
    Participant,
    Share,
    SplitMode,
)
from billsplit.domain.money import (
    MoneyError,
    cents_to_decimal_str,
    cents_to_str,
    decimal_to_rate,
    parse_amount_to_cents,
)
from billsplit.domain.split_logic import Allocation, derive_category_total


class BillCodecError(ValueError):
    """Raised when a stored bill record cannot be decoded."""


def _percent_str(rate: Decimal) -> str:
    s = format(rate * 100, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


def _money(cents: int) -> str:
    return cents_to_decimal_str(cents)


def _names(bill: Bill) -> Dict[str, str]:
    return {p.id: p.name for p in bill.participants}


def _items_metadata(bill: Bill) -> List[Dict[str, Any]]:
    names = _names(bill)
    line_items = bill.details.get("line_items", ())
    allocations = bill.details.get("item_allocations", ())
    items = []
    for item, alloc in zip(line_items, allocations, strict=True):
        items.append(
            {
                "name": item.label,
                "price": _money(item.amount_cents),
                "quantity": item.quantity,
                "participants": [
                    {"id": pid, "name": names[pid], "share": _money(cents)}
                    for pid, cents in zip(alloc.participants, alloc.amounts_cents, strict=True)
                ],
            }
        )
    return items


def _category_metadata(bill: Bill) -> Dict[str, Any]:
    line_items = bill.details.get("line_items", ())
    if bill.category is BillCategory.ACCOMMODATION:
        # types/costs are keyed by label for the app; rooms keeps every line.
        return {
            "roomDetails": {
                "types": {item.label: item.quantity for item in line_items},
                "costs": {item.label: _money(item.amount_cents) for item in line_items},
                "rooms": [
                    {"name": item.label, "cost": _money(item.amount_cents), "count": item.quantity}
                    for item in line_items
                ],
            }
        }
    if bill.category is BillCategory.ENTERTAINMENT:
        return {
            "ticketDetails": {
                "categories": [
                    {"name": item.label, "price": _money(item.amount_cents), "quantity": item.quantity}
                    for item in line_items
                ]
            }
        }
    return {
        "expenses": [
            {"name": item.label, "amount": _money(item.amount_cents), "quantity": item.quantity}
            for item in line_items
        ]
    }


def bill_to_metadata(bill: Bill) -> Dict[str, Any]:
    names = _names(bill)
    metadata: Dict[str, Any] = {
        "type": bill.category.value,
        "mode": bill.mode.value,
        "participants": [
            {"id": share.participant_id, "name": names[share.participant_id], "amount": _money(share.owed_cents)}
            for share in bill.shares
        ],
        "splitEqually": bill.split_equally,
    }

    if "remainder_payer_id" in bill.details:
        metadata["remainderPayer"] = bill.details["remainder_payer_id"]

    if bill.mode is SplitMode.ITEMIZED:
        metadata["items"] = _items_metadata(bill)
        metadata["tax"] = {
            "percent": _percent_str(bill.details["tax_rate"]),
            "amount": _money(bill.details["tax_cents"]),
        }
        metadata["tip"] = {
            "percent": _percent_str(bill.details["tip_rate"]),
            "amount": _money(bill.details["tip_cents"]),
        }
        metadata["subtotal"] = _money(bill.details["subtotal_cents"])
    elif bill.mode is SplitMode.CATEGORY_WEIGHTED:
        metadata.update(_category_metadata(bill))

    return metadata


def bill_to_record(bill: Bill) -> Dict[str, Any]:
    return {
        "id": bill.id,
        "description": bill.description,
        "amount": _money(bill.total_cents),
        "date": bill.created_at.isoformat(),
        "participants": json.dumps(bill_to_metadata(bill)),
        "createdBy": bill.created_by,
    }


# -- decoding -----------------------------------------------------------------


def _cents(value: Any, what: str) -> int:
    if isinstance(value, bool) or value is None:
        raise BillCodecError(f"{what} is not an amount: {value!r}")
    try:
        return parse_amount_to_cents(str(value))
    except MoneyError as e:
        raise BillCodecError(f"{what} is not an amount: {value!r}") from e


def _parse_date(value: Any) -> datetime:
    if not isinstance(value, str):
        raise BillCodecError("date must be an ISO-8601 string")
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError as e:
        raise BillCodecError(f"invalid date: {value}") from e
    # Older records carry no offset; they were written in UTC.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decode_participants(raw: Any) -> Tuple[List[Participant], List[Share]]:
    if not isinstance(raw, list) or not raw:
        raise BillCodecError("participants must be a non-empty list")
    participants: List[Participant] = []
    shares: List[Share] = []
    for entry in raw:
        if not isinstance(entry, dict) or "id" not in entry:
            raise BillCodecError("each participant must be an object with an id")
        pid = str(entry["id"])
        participants.append(Participant(id=pid, name=str(entry.get("name") or pid)))
        shares.append(Share(participant_id=pid, owed_cents=_cents(entry.get("amount", "0"), f"amount for {pid}")))
    return participants, shares


def _decode_items(raw_items: Any) -> Tuple[List[LineItem], List[Allocation]]:
    if not isinstance(raw_items, list):
        raise BillCodecError("items must be a list")
    line_items: List[LineItem] = []
    allocations: List[Allocation] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise BillCodecError("each item must be an object")
        people = raw.get("participants") or []
        pids = tuple(str(p["id"]) for p in people)
        item = LineItem(
            label=str(raw.get("name", "")),
            amount_cents=_cents(raw.get("price"), "item price"),
            quantity=int(raw.get("quantity", 1)),
            participant_ids=pids,
        )
        line_items.append(item)
        allocations.append(
            Allocation(
                label=item.label,
                total_cents=item.line_total_cents,
                participants=pids,
                amounts_cents=tuple(_cents(p.get("share", "0"), "item share") for p in people),
            )
        )
    return line_items, allocations


def _decode_category_items(category: BillCategory, metadata: Dict[str, Any]) -> List[LineItem]:
    if category is BillCategory.ACCOMMODATION and "roomDetails" in metadata:
        rooms = metadata["roomDetails"]
        if "rooms" in rooms:
            return [
                LineItem(
                    label=str(room["name"]),
                    amount_cents=_cents(room.get("cost", "0"), "room cost"),
                    quantity=int(room.get("count", 1)),
                )
                for room in rooms["rooms"]
            ]
        costs = rooms.get("costs", {})
        return [
            LineItem(label=label, amount_cents=_cents(costs.get(label, "0"), f"cost of {label}"), quantity=int(count))
            for label, count in rooms.get("types", {}).items()
            if int(count) > 0
        ]
    if category is BillCategory.ENTERTAINMENT and "ticketDetails" in metadata:
        return [
            LineItem(
                label=str(tier["name"]),
                amount_cents=_cents(tier.get("price", "0"), "ticket price"),
                quantity=int(tier.get("quantity", 1)),
            )
            for tier in metadata["ticketDetails"].get("categories", [])
        ]
    # Expenses written without a quantity hold the line total in amount.
    return [
        LineItem(
            label=str(exp["name"]),
            amount_cents=_cents(exp.get("amount", "0"), "expense amount"),
            quantity=int(exp.get("quantity", 1)),
        )
        for exp in metadata.get("expenses", [])
    ]


def bill_from_record(record: Dict[str, Any]) -> Bill:
    """
    Decode a stored record back into a Bill.

    A bare JSON list of participants (plain bills) or metadata without a
    ``type`` decodes as a regular bill.
    """
    try:
        metadata = json.loads(record["participants"])
    except (KeyError, TypeError, json.JSONDecodeError) as e:
        raise BillCodecError("participants field is not valid JSON") from e

    if isinstance(metadata, list):
        metadata = {"participants": metadata}
    if not isinstance(metadata, dict):
        raise BillCodecError("participants field must hold an object or a list")

    try:
        category = BillCategory(metadata.get("type", BillCategory.REGULAR.value))
    except ValueError:
        category = BillCategory.REGULAR

    split_equally = bool(metadata.get("splitEqually", False))
    try:
        mode = SplitMode(metadata["mode"]) if "mode" in metadata else (
            SplitMode.EQUAL if split_equally else SplitMode.EXPLICIT
        )
        participants, shares = _decode_participants(metadata.get("participants"))

        details: Dict[str, Any] = {}
        if "remainderPayer" in metadata:
            details["remainder_payer_id"] = str(metadata["remainderPayer"])
        if mode is SplitMode.ITEMIZED:
            line_items, allocations = _decode_items(metadata.get("items", []))
            details.update(
                line_items=tuple(line_items),
                item_allocations=tuple(allocations),
                subtotal_cents=_cents(metadata.get("subtotal", "0"), "subtotal"),
                tax_cents=_cents(metadata.get("tax", {}).get("amount", "0"), "tax"),
                tip_cents=_cents(metadata.get("tip", {}).get("amount", "0"), "tip"),
                tax_rate=decimal_to_rate(metadata.get("tax", {}).get("percent", "0")),
                tip_rate=decimal_to_rate(metadata.get("tip", {}).get("percent", "0")),
            )
        elif mode is SplitMode.CATEGORY_WEIGHTED:
            details["line_items"] = tuple(_decode_category_items(category, metadata))
            details["split_equally"] = split_equally

        bill = Bill(
            id=str(record["id"]),
            description=str(record.get("description", "")),
            total_cents=_cents(record.get("amount"), "bill amount"),
            created_by=str(record.get("createdBy", "")),
            created_at=_parse_date(record.get("date")),
            category=category,
            mode=mode,
            participants=tuple(participants),
            shares=tuple(shares),
            details=details,
        )
    except BillCodecError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise BillCodecError(f"invalid bill record: {e}") from e

    owed = sum(s.owed_cents for s in bill.shares)
    if owed != bill.total_cents:
        raise BillCodecError(f"stored shares sum to {owed} cents but the bill total is {bill.total_cents}")
    if bill.mode is SplitMode.CATEGORY_WEIGHTED:
        derived = derive_category_total(bill.details["line_items"])
        if derived != bill.total_cents:
            raise BillCodecError(f"stored items sum to {derived} cents but the bill total is {bill.total_cents}")
    return bill


# -- API responses ------------------------------------------------------------


def bill_to_json(bill: Bill) -> Dict[str, Any]:
    names = _names(bill)
    body: Dict[str, Any] = {
        "id": bill.id,
        "description": bill.description,
        "category": bill.category.value,
        "mode": bill.mode.value,
        "total_cents": bill.total_cents,
        "total": cents_to_str(bill.total_cents),
        "created_by": bill.created_by,
        "created_at": bill.created_at.isoformat(),
        "currency": "USD",
        "participants": [{"id": p.id, "name": p.name} for p in bill.participants],
        "shares": [
            {"participant_id": s.participant_id, "name": names[s.participant_id], "owed_cents": s.owed_cents}
            for s in bill.shares
        ],
    }
    for key in ("subtotal_cents", "tax_cents", "tip_cents", "remainder_payer_id"):
        if key in bill.details:
            body[key] = bill.details[key]
    return body


def snapshot_to_json(snapshot: AnalyticsSnapshot, *, since: Optional[datetime] = None, until: Optional[datetime] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "category_totals": dict(snapshot.category_totals),
        "monthly_totals": [
            {"period": m.period_label, "year": m.year, "month": m.month, "total_cents": m.total_cents}
            for m in snapshot.monthly_totals
        ],
        "grand_total_cents": snapshot.grand_total_cents,
        "bill_count": snapshot.bill_count,
        "average_cents": snapshot.average_cents,
        "highest_category": snapshot.highest_category,
    }
    if since is not None and until is not None:
        body["window"] = {"since": since.isoformat(), "until": until.isoformat()}
    return body
