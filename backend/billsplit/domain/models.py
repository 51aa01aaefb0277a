# backend/billsplit/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ModelValidationError(ValueError):
    """Raised when request/response models fail basic validation."""


class SplitMode(str, Enum):
    EQUAL = "equal"
    EXPLICIT = "explicit"
    ITEMIZED = "itemized"
    CATEGORY_WEIGHTED = "category_weighted"


class BillCategory(str, Enum):
    """Category tag stored with every bill (the 'type' of the wire format)."""
    REGULAR = "regular"
    MANUAL_RECEIPT = "manual-receipt"
    SPORTS = "sports"
    ENTERTAINMENT = "entertainment"
    ACCOMMODATION = "accommodation"


@dataclass(frozen=True)
class Participant:
    """
    A person taking part in the split.
    IDs are opaque and only need to be unique within one request.
    """
    id: str
    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ModelValidationError("Participant.id must be a non-empty string")
        if not isinstance(self.name, str) or not self.name.strip():
            raise ModelValidationError("Participant.name must be a non-empty string")


@dataclass(frozen=True)
class LineItem:
    """
    A receipt line, room type, ticket tier or free-form expense.

    amount_cents is the unit price; the line costs amount_cents * quantity.
    participant_ids is only meaningful for itemized splits.
    """
    label: str
    amount_cents: int
    quantity: int = 1
    participant_ids: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.label, str) or not self.label.strip():
            raise ModelValidationError("LineItem.label must be a non-empty string")
        if not isinstance(self.amount_cents, int) or self.amount_cents < 0:
            raise ModelValidationError("LineItem.amount_cents must be an int >= 0")
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise ModelValidationError("LineItem.quantity must be an int >= 1")
        if not isinstance(self.participant_ids, tuple):
            raise ModelValidationError("LineItem.participant_ids must be a tuple")
        if len(set(self.participant_ids)) != len(self.participant_ids):
            raise ModelValidationError(f"LineItem {self.label!r} lists a participant twice")

    @property
    def line_total_cents(self) -> int:
        return self.amount_cents * self.quantity


@dataclass(frozen=True)
class SplitRequest:
    """
    Input to a split strategy.

    total_cents is required for equal/explicit and derived from line_items
    for itemized/category_weighted. Rates are fractions: Decimal("0.10") is 10%.
    remainder_payer_id defaults to the bill creator when None.
    """
    mode: SplitMode
    participants: List[Participant]
    total_cents: Optional[int] = None
    explicit_amounts: Dict[str, int] = field(default_factory=dict)
    line_items: List[LineItem] = field(default_factory=list)
    tax_rate: Decimal = Decimal("0")
    tip_rate: Decimal = Decimal("0")
    split_equally: bool = True
    remainder_payer_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.mode, SplitMode):
            raise ModelValidationError("mode must be a SplitMode")
        if not isinstance(self.participants, list):
            raise ModelValidationError("participants must be a list")

        pids = [p.id for p in self.participants]
        if len(set(pids)) != len(pids):
            raise ModelValidationError("participant ids must be unique")

        if self.total_cents is not None:
            if not isinstance(self.total_cents, int) or self.total_cents < 0:
                raise ModelValidationError("total_cents must be an int >= 0")

        if not isinstance(self.explicit_amounts, dict):
            raise ModelValidationError("explicit_amounts must be a dict")
        for pid, cents in self.explicit_amounts.items():
            if not isinstance(cents, int) or cents < 0:
                raise ModelValidationError(f"explicit amount for {pid} must be an int >= 0")

        if not isinstance(self.line_items, list):
            raise ModelValidationError("line_items must be a list")

        for name in ("tax_rate", "tip_rate"):
            rate = getattr(self, name)
            if not isinstance(rate, Decimal) or not rate.is_finite() or rate < 0:
                raise ModelValidationError(f"{name} must be a Decimal >= 0")


@dataclass(frozen=True)
class Share:
    participant_id: str
    owed_cents: int


@dataclass(frozen=True)
class Bill:
    """
    A settled bill. shares follow the participants order and always sum
    to total_cents (checked by the settlement builder).

    details holds mode-specific metadata (subtotal/tax/tip, line items,
    per-item allocations) used by the storage codec.
    """
    id: str
    description: str
    total_cents: int
    created_by: str
    created_at: datetime
    category: BillCategory
    mode: SplitMode
    participants: Tuple[Participant, ...]
    shares: Tuple[Share, ...]
    details: Mapping[str, Any] = field(default_factory=dict)

    def share_for(self, participant_id: str) -> int:
        for share in self.shares:
            if share.participant_id == participant_id:
                return share.owed_cents
        raise KeyError(participant_id)

    @property
    def split_equally(self) -> bool:
        if self.mode is SplitMode.CATEGORY_WEIGHTED:
            return bool(self.details.get("split_equally", True))
        return self.mode is SplitMode.EQUAL


@dataclass(frozen=True)
class MonthlyTotal:
    period_label: str
    year: int
    month: int
    total_cents: int


@dataclass(frozen=True)
class AnalyticsSnapshot:
    category_totals: Dict[str, int]
    monthly_totals: Tuple[MonthlyTotal, ...]
    grand_total_cents: int
    bill_count: int = 0
    average_cents: int = 0
    highest_category: Optional[str] = None
