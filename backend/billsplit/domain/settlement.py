# backend/billsplit/domain/settlement.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from billsplit.domain.models import Bill, BillCategory, ModelValidationError, SplitMode, SplitRequest
from billsplit.domain.split_logic import (
    SplitOutcome,
    split_category_weighted,
    split_equal,
    split_explicit,
    split_itemized,
)
from billsplit.log import get_logger

logger = get_logger(__name__)


class SettlementInvariantViolation(RuntimeError):
    """Raised when a split outcome does not reconcile with its total."""


def _require_total(request: SplitRequest) -> int:
    if request.total_cents is None:
        raise ModelValidationError(f"total_cents is required for {request.mode.value} splits")
    return request.total_cents


def run_split(request: SplitRequest, remainder_payer_id: str) -> SplitOutcome:
    """
    Dispatch a SplitRequest to the strategy for its mode.
    """
    if request.mode is SplitMode.EQUAL:
        return split_equal(_require_total(request), request.participants)
    if request.mode is SplitMode.EXPLICIT:
        return split_explicit(
            _require_total(request),
            request.participants,
            request.explicit_amounts,
            remainder_payer_id,
        )
    if request.mode is SplitMode.ITEMIZED:
        return split_itemized(request.participants, request.line_items, request.tax_rate, request.tip_rate)
    if request.mode is SplitMode.CATEGORY_WEIGHTED:
        return split_category_weighted(
            request.participants,
            request.line_items,
            split_equally=request.split_equally,
            explicit_amounts=request.explicit_amounts,
            remainder_payer_id=remainder_payer_id,
        )
    raise ValueError(f"unsupported split mode: {request.mode}")


def check_outcome(outcome: SplitOutcome) -> None:
    owed = sum(share.owed_cents for share in outcome.shares)
    if owed != outcome.total_cents:
        raise SettlementInvariantViolation(f"shares sum to {owed} cents but the total is {outcome.total_cents}")
    for share in outcome.shares:
        if share.owed_cents < 0:
            raise SettlementInvariantViolation(f"negative share for participant {share.participant_id}")


def _details(request: SplitRequest, outcome: SplitOutcome, remainder_payer_id: str) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    if request.mode is SplitMode.EXPLICIT or (
        request.mode is SplitMode.CATEGORY_WEIGHTED and not request.split_equally
    ):
        details["remainder_payer_id"] = remainder_payer_id
    if request.mode is SplitMode.ITEMIZED:
        details.update(
            subtotal_cents=outcome.subtotal_cents,
            tax_cents=outcome.tax_cents,
            tip_cents=outcome.tip_cents,
            tax_rate=request.tax_rate,
            tip_rate=request.tip_rate,
            item_allocations=outcome.item_allocations,
        )
    if request.mode in (SplitMode.ITEMIZED, SplitMode.CATEGORY_WEIGHTED):
        details["line_items"] = tuple(request.line_items)
    if request.mode is SplitMode.CATEGORY_WEIGHTED:
        details["split_equally"] = request.split_equally
    return details


def build_bill(
    request: SplitRequest,
    description: str,
    category: BillCategory,
    created_by: str,
    *,
    bill_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Bill:
    """
    Run the split for request and wrap it in an immutable Bill.

    The remainder payer for explicit splits is request.remainder_payer_id,
    falling back to created_by. Raises SettlementInvariantViolation instead
    of returning a bill whose shares do not add up.
    """
    if not isinstance(description, str) or not description.strip():
        raise ModelValidationError("description must be a non-empty string")
    if not isinstance(category, BillCategory):
        raise ModelValidationError("category must be a BillCategory")

    remainder_payer_id = request.remainder_payer_id or created_by
    outcome = run_split(request, remainder_payer_id)

    try:
        check_outcome(outcome)
    except SettlementInvariantViolation:
        logger.error("settlement invariant violated for %s split %r", request.mode.value, description)
        raise

    bill = Bill(
        id=bill_id or str(uuid.uuid4()),
        description=description.strip(),
        total_cents=outcome.total_cents,
        created_by=created_by,
        created_at=created_at or datetime.now(timezone.utc),
        category=category,
        mode=request.mode,
        participants=tuple(request.participants),
        shares=outcome.shares,
        details=_details(request, outcome, remainder_payer_id),
    )
    logger.debug(
        "built %s bill %s: %d participants, total %d cents",
        request.mode.value,
        bill.id,
        len(bill.participants),
        bill.total_cents,
    )
    return bill
