from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from billsplit.domain.analytics import MAX_ANALYTICS_MONTHS
from billsplit.domain.models import BillCategory, LineItem, Participant, SplitMode, SplitRequest
from billsplit.domain.money import decimal_to_rate, parse_amount_to_cents


class ApiValidationError(ValueError):
    """Raised when request payload validation fails."""


@dataclass(frozen=True)
class BillPayload:
    request: SplitRequest
    description: str
    category: BillCategory
    created_by: str


def is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (ValueError, TypeError):
        return False
    return True


def _amount(value: object, field_name: str) -> int:
    """InvalidAmount propagates; the route maps it to 400 invalid_amount."""
    if not isinstance(value, str):
        raise ApiValidationError(f"'{field_name}' must be a decimal string such as \"12.34\".")
    return parse_amount_to_cents(value)


def _rate(data: Dict[str, Any], field_name: str) -> Decimal:
    raw = data.get(field_name)
    if raw is None or raw == "":
        return Decimal("0")
    if isinstance(raw, bool) or not isinstance(raw, (str, int)):
        raise ApiValidationError(f"'{field_name}' must be a percentage string such as \"8.25\".")
    return decimal_to_rate(str(raw))


def parse_participants(raw_participants: object) -> List[Participant]:
    if not isinstance(raw_participants, list) or not raw_participants:
        raise ApiValidationError("'participants' must be a non-empty list.")

    participants: List[Participant] = []
    seen: set[str] = set()
    for idx, p in enumerate(raw_participants):
        if not isinstance(p, dict):
            raise ApiValidationError(f"Participant at index {idx} must be an object.")
        pid = p.get("id")
        name = p.get("name")
        if not isinstance(pid, str) or not pid.strip():
            raise ApiValidationError(f"Participant at index {idx} must include a non-empty 'id'.")
        if not isinstance(name, str) or not name.strip():
            raise ApiValidationError(f"Participant at index {idx} must include a non-empty 'name'.")
        if pid in seen:
            raise ApiValidationError("Participant ids must be unique.")
        seen.add(pid)
        participants.append(Participant(id=pid, name=name.strip()))

    return participants


def parse_line_items(raw_items: object, *, require_participants: bool) -> List[LineItem]:
    if not isinstance(raw_items, list):
        raise ApiValidationError("'items' must be a list.")

    items: List[LineItem] = []
    for idx, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, dict):
            raise ApiValidationError(f"Item at index {idx} must be an object.")

        label = raw_item.get("label")
        if not isinstance(label, str) or not label.strip():
            raise ApiValidationError(f"Item at index {idx} must include a non-empty 'label'.")

        quantity = raw_item.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ApiValidationError(f"Item at index {idx} must have 'quantity' as int >= 1.")

        raw_pids = raw_item.get("participant_ids", [])
        if not isinstance(raw_pids, list) or not all(isinstance(pid, str) for pid in raw_pids):
            raise ApiValidationError(f"Item at index {idx} must have 'participant_ids' as a list of strings.")
        if len(set(raw_pids)) != len(raw_pids):
            raise ApiValidationError(f"Item at index {idx} lists a participant twice.")
        # Empty participant lists are left to the split logic (unassigned_item).
        pids = tuple(raw_pids) if require_participants else ()

        items.append(
            LineItem(
                label=label.strip(),
                amount_cents=_amount(raw_item.get("amount"), f"items[{idx}].amount"),
                quantity=quantity,
                participant_ids=pids,
            )
        )

    return items


def parse_explicit_amounts(raw: object) -> Dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ApiValidationError("'explicit_amounts' must be an object mapping participant_id -> amount.")
    return {str(pid): _amount(value, f"explicit_amounts[{pid}]") for pid, value in raw.items()}


def parse_bill_payload(data: object) -> BillPayload:
    if not isinstance(data, dict):
        raise ApiValidationError("Request body must be a JSON object.")

    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        raise ApiValidationError("Missing field 'description'.")

    created_by = data.get("created_by")
    if not isinstance(created_by, str) or not created_by.strip():
        raise ApiValidationError("Missing field 'created_by'.")

    try:
        mode = SplitMode(data.get("mode", SplitMode.EQUAL.value))
    except ValueError:
        raise ApiValidationError(f"Unknown split mode: {data.get('mode')}") from None

    try:
        category = BillCategory(data.get("category", BillCategory.REGULAR.value))
    except ValueError:
        raise ApiValidationError(f"Unknown category: {data.get('category')}") from None

    split_equally = data.get("split_equally", True)
    if not isinstance(split_equally, bool):
        raise ApiValidationError("'split_equally' must be a boolean.")

    remainder_payer_id = data.get("remainder_payer_id")
    if remainder_payer_id is not None and (not isinstance(remainder_payer_id, str) or not remainder_payer_id.strip()):
        raise ApiValidationError("'remainder_payer_id' must be a non-empty string.")

    total_cents: Optional[int] = None
    if mode in (SplitMode.EQUAL, SplitMode.EXPLICIT):
        if "total" not in data:
            raise ApiValidationError(f"Missing field 'total' for {mode.value} split.")
        total_cents = _amount(data["total"], "total")

    line_items: List[LineItem] = []
    if mode in (SplitMode.ITEMIZED, SplitMode.CATEGORY_WEIGHTED):
        if "items" not in data:
            raise ApiValidationError(f"Missing field 'items' for {mode.value} split.")
        line_items = parse_line_items(data["items"], require_participants=mode is SplitMode.ITEMIZED)

    request = SplitRequest(
        mode=mode,
        participants=parse_participants(data.get("participants")),
        total_cents=total_cents,
        explicit_amounts=parse_explicit_amounts(data.get("explicit_amounts")),
        line_items=line_items,
        tax_rate=_rate(data, "tax_percent"),
        tip_rate=_rate(data, "tip_percent"),
        split_equally=split_equally,
        remainder_payer_id=remainder_payer_id,
    )
    return BillPayload(
        request=request,
        description=description.strip(),
        category=category,
        created_by=created_by.strip(),
    )


def parse_datetime_arg(value: Optional[str], field_name: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 query parameter; naive values are taken as UTC.
    """
    if value is None or not value.strip():
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        raise ApiValidationError(f"'{field_name}' must be an ISO-8601 date or datetime.") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_months_arg(value: Optional[str], *, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        months = int(value.strip())
    except ValueError:
        raise ApiValidationError("'months' must be an integer.") from None
    if not 0 <= months <= MAX_ANALYTICS_MONTHS:
        raise ApiValidationError(f"'months' must be between 0 and {MAX_ANALYTICS_MONTHS}.")
    return months


def parse_display_name(data: object) -> str:
    if not isinstance(data, dict):
        raise ApiValidationError("Request body must be a JSON object.")
    display_name = data.get("display_name")
    if not isinstance(display_name, str) or not display_name.strip():
        raise ApiValidationError("Missing field 'display_name'.")
    return display_name.strip()
