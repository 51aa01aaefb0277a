# backend/billsplit/domain/split_logic.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from billsplit.domain.models import LineItem, Participant, Share
from billsplit.domain.money import apply_rate, divide_proportionally, multiply_cents, safe_sum_cents


class SplitLogicError(ValueError):
    """Raised when split inputs are invalid."""

    code = "split_failed"

    def __init__(self, message: str, *, participant_id: Optional[str] = None, item: Optional[str] = None):
        super().__init__(message)
        self.participant_id = participant_id
        self.item = item


class NoParticipants(SplitLogicError):
    code = "no_participants"


class MissingAmount(SplitLogicError):
    code = "missing_amount"


class NegativeRemainder(SplitLogicError):
    code = "negative_remainder"


class UnassignedItem(SplitLogicError):
    code = "unassigned_item"


class UnknownParticipant(SplitLogicError):
    code = "unknown_participant"


@dataclass(frozen=True)
class Allocation:
    """
    Allocation result for a single item split among selected participants.

    amounts_cents is ordered to match the provided participants order.
    """
    label: str
    total_cents: int
    participants: Tuple[str, ...]
    amounts_cents: Tuple[int, ...]


@dataclass(frozen=True)
class SplitOutcome:
    """
    Result of a split strategy. shares follow the request's participant
    order and sum to total_cents.
    """
    total_cents: int
    shares: Tuple[Share, ...]
    subtotal_cents: Optional[int] = None
    tax_cents: int = 0
    tip_cents: int = 0
    item_allocations: Tuple[Allocation, ...] = ()


def _participant_ids(participants: Sequence[Participant]) -> List[str]:
    if not participants:
        raise NoParticipants("at least 1 participant is required")
    return [p.id for p in participants]


def _shares(pids: Sequence[str], amounts: Sequence[int]) -> Tuple[Share, ...]:
    return tuple(Share(participant_id=pid, owed_cents=cents) for pid, cents in zip(pids, amounts, strict=True))


def split_equal(total_cents: int, participants: Sequence[Participant]) -> SplitOutcome:
    """
    Everyone owes the same amount; leftover cents go to the first
    participants in order, so $10.00 / 3 -> 3.34, 3.33, 3.33.
    """
    pids = _participant_ids(participants)
    amounts = divide_proportionally(total_cents, [1] * len(pids))
    return SplitOutcome(total_cents=total_cents, shares=_shares(pids, amounts))


def split_explicit(
    total_cents: int,
    participants: Sequence[Participant],
    explicit_amounts: Mapping[str, int],
    remainder_payer_id: str,
) -> SplitOutcome:
    """
    Every participant except the remainder payer has a fixed amount; the
    remainder payer owes whatever is left of the total.

    Over-specified amounts are rejected rather than clamped.
    """
    pids = _participant_ids(participants)
    if remainder_payer_id not in pids:
        raise UnknownParticipant(
            f"remainder payer {remainder_payer_id} is not a participant",
            participant_id=remainder_payer_id,
        )

    for pid in explicit_amounts:
        if pid not in pids:
            raise UnknownParticipant(f"explicit amount given for unknown participant: {pid}", participant_id=pid)
        if pid == remainder_payer_id:
            raise SplitLogicError(
                f"remainder payer {pid} cannot also have an explicit amount",
                participant_id=pid,
            )

    amounts: Dict[str, int] = {}
    for pid in pids:
        if pid == remainder_payer_id:
            continue
        if pid not in explicit_amounts:
            raise MissingAmount(f"no amount given for participant {pid}", participant_id=pid)
        amounts[pid] = explicit_amounts[pid]

    remainder = total_cents - sum(amounts.values())
    if remainder < 0:
        raise NegativeRemainder(
            f"explicit amounts exceed the total by {-remainder} cents",
            participant_id=remainder_payer_id,
        )
    amounts[remainder_payer_id] = remainder

    return SplitOutcome(total_cents=total_cents, shares=_shares(pids, [amounts[pid] for pid in pids]))


def add_allocation_to_totals(totals_by_participant: Dict[str, int], allocation: Allocation) -> Dict[str, int]:
    """
    Add an Allocation into a running totals dict (cents).
    Mutates and also returns the dict for convenience.
    """
    for pid, cents in zip(allocation.participants, allocation.amounts_cents, strict=True):
        totals_by_participant[pid] = totals_by_participant.get(pid, 0) + cents
    return totals_by_participant


def split_itemized(
    participants: Sequence[Participant],
    line_items: Sequence[LineItem],
    tax_rate: Decimal = Decimal("0"),
    tip_rate: Decimal = Decimal("0"),
) -> SplitOutcome:
    """
    Receipt split.

    Steps:
    - Each line (amount * quantity) is divided equally among the people
      assigned to it, leftover cents to the first listed.
    - tax and tip are computed once on the subtotal (half up to the cent).
    - tax + tip is apportioned in proportion to each person's subtotal.
    """
    pids = _participant_ids(participants)
    known = set(pids)

    subtotals: Dict[str, int] = {pid: 0 for pid in pids}
    allocations: List[Allocation] = []
    for idx, item in enumerate(line_items):
        if not item.participant_ids:
            raise UnassignedItem(f"item {idx} ({item.label}) has no participants", item=item.label)
        for pid in item.participant_ids:
            if pid not in known:
                raise UnknownParticipant(
                    f"item {idx} ({item.label}) references unknown participant id: {pid}",
                    participant_id=pid,
                    item=item.label,
                )

        line_total = multiply_cents(item.amount_cents, item.quantity)
        alloc = Allocation(
            label=item.label,
            total_cents=line_total,
            participants=item.participant_ids,
            amounts_cents=tuple(divide_proportionally(line_total, [1] * len(item.participant_ids))),
        )
        add_allocation_to_totals(subtotals, alloc)
        allocations.append(alloc)

    subtotal = safe_sum_cents(*subtotals.values())
    tax = apply_rate(subtotal, tax_rate)
    tip = apply_rate(subtotal, tip_rate)
    extras = divide_proportionally(tax + tip, [subtotals[pid] for pid in pids])

    amounts = [subtotals[pid] + extra for pid, extra in zip(pids, extras, strict=True)]
    return SplitOutcome(
        total_cents=safe_sum_cents(subtotal, tax, tip),
        shares=_shares(pids, amounts),
        subtotal_cents=subtotal,
        tax_cents=tax,
        tip_cents=tip,
        item_allocations=tuple(allocations),
    )


def derive_category_total(line_items: Sequence[LineItem]) -> int:
    """
    Sum room/ticket/expense buckets into a bill total.
    """
    return safe_sum_cents(*(multiply_cents(item.amount_cents, item.quantity) for item in line_items))


def split_category_weighted(
    participants: Sequence[Participant],
    line_items: Sequence[LineItem],
    *,
    split_equally: bool,
    explicit_amounts: Mapping[str, int],
    remainder_payer_id: str,
) -> SplitOutcome:
    total = derive_category_total(line_items)
    if split_equally:
        outcome = split_equal(total, participants)
    else:
        outcome = split_explicit(total, participants, explicit_amounts, remainder_payer_id)
    return SplitOutcome(total_cents=outcome.total_cents, shares=outcome.shares, subtotal_cents=total)
