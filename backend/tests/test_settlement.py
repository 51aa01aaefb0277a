# backend/tests/test_settlement.py
import dataclasses
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

import billsplit.domain.settlement as settlement
from billsplit.domain.models import (
    BillCategory,
    LineItem,
    ModelValidationError,
    Participant,
    Share,
    SplitMode,
    SplitRequest,
)
from billsplit.domain.settlement import SettlementInvariantViolation, build_bill
from billsplit.domain.split_logic import MissingAmount, SplitOutcome

WHEN = datetime(2026, 10, 1, 19, 30, tzinfo=timezone.utc)

ME = Participant(id="me", name="Me")
SAM = Participant(id="sam", name="Sam")
ALEX = Participant(id="alex", name="Alex")


def test_build_equal_bill():
    request = SplitRequest(mode=SplitMode.EQUAL, participants=[ME, SAM, ALEX], total_cents=1000)
    bill = build_bill(request, " Groceries ", BillCategory.REGULAR, "me", bill_id="b1", created_at=WHEN)

    assert bill.id == "b1"
    assert bill.description == "Groceries"
    assert bill.total_cents == 1000
    assert bill.created_at == WHEN
    assert bill.mode is SplitMode.EQUAL
    assert bill.shares == (Share("me", 334), Share("sam", 333), Share("alex", 333))
    assert bill.details == {}
    assert bill.split_equally is True


def test_explicit_bill_defaults_remainder_payer_to_creator():
    request = SplitRequest(
        mode=SplitMode.EXPLICIT,
        participants=[ME, SAM],
        total_cents=5000,
        explicit_amounts={"sam": 2000},
    )
    bill = build_bill(request, "Dinner", BillCategory.REGULAR, "me", created_at=WHEN)
    assert bill.share_for("me") == 3000
    assert bill.share_for("sam") == 2000
    assert bill.details["remainder_payer_id"] == "me"
    assert bill.split_equally is False


def test_explicit_bill_with_other_remainder_payer():
    request = SplitRequest(
        mode=SplitMode.EXPLICIT,
        participants=[ME, SAM],
        total_cents=5000,
        explicit_amounts={"me": 1500},
        remainder_payer_id="sam",
    )
    bill = build_bill(request, "Dinner", BillCategory.REGULAR, "me", created_at=WHEN)
    assert bill.share_for("sam") == 3500


def test_explicit_bill_surfaces_strategy_errors():
    request = SplitRequest(mode=SplitMode.EXPLICIT, participants=[ME, SAM, ALEX], total_cents=5000,
                           explicit_amounts={"sam": 100})
    with pytest.raises(MissingAmount):
        build_bill(request, "Dinner", BillCategory.REGULAR, "me")


def test_itemized_bill_records_receipt_details():
    request = SplitRequest(
        mode=SplitMode.ITEMIZED,
        participants=[ME, SAM],
        line_items=[LineItem(label="Pizza", amount_cents=3000, participant_ids=("me", "sam"))],
        tax_rate=Decimal("0.10"),
    )
    bill = build_bill(request, "Pizza night", BillCategory.MANUAL_RECEIPT, "me", created_at=WHEN)

    assert bill.total_cents == 3300
    assert bill.details["subtotal_cents"] == 3000
    assert bill.details["tax_cents"] == 300
    assert bill.details["tip_cents"] == 0
    assert len(bill.details["item_allocations"]) == 1
    assert bill.share_for("me") == 1650


def test_category_bill_derives_total():
    request = SplitRequest(
        mode=SplitMode.CATEGORY_WEIGHTED,
        participants=[ME, SAM, ALEX],
        line_items=[LineItem(label="Deluxe", amount_cents=15000, quantity=2), LineItem(label="Standard", amount_cents=8000)],
        total_cents=1,  # ignored, the buckets decide
    )
    bill = build_bill(request, "Beach house", BillCategory.ACCOMMODATION, "me", created_at=WHEN)
    assert bill.total_cents == 38000
    assert bill.details["split_equally"] is True
    assert "remainder_payer_id" not in bill.details


def test_conservation_across_modes():
    requests = [
        SplitRequest(mode=SplitMode.EQUAL, participants=[ME, SAM, ALEX], total_cents=10_001),
        SplitRequest(mode=SplitMode.EXPLICIT, participants=[ME, SAM, ALEX], total_cents=9999,
                     explicit_amounts={"sam": 3333, "alex": 1}),
        SplitRequest(
            mode=SplitMode.ITEMIZED,
            participants=[ME, SAM, ALEX],
            line_items=[
                LineItem(label="A", amount_cents=1999, quantity=3, participant_ids=("me", "sam", "alex")),
                LineItem(label="B", amount_cents=777, participant_ids=("alex",)),
            ],
            tax_rate=Decimal("0.0725"),
            tip_rate=Decimal("0.2"),
        ),
        SplitRequest(
            mode=SplitMode.CATEGORY_WEIGHTED,
            participants=[ME, SAM, ALEX],
            line_items=[LineItem(label="Tickets", amount_cents=4550, quantity=3)],
            split_equally=False,
            explicit_amounts={"sam": 4550, "alex": 4550},
        ),
    ]
    for request in requests:
        bill = build_bill(request, "Any", BillCategory.REGULAR, "me")
        assert sum(s.owed_cents for s in bill.shares) == bill.total_cents
        assert all(s.owed_cents >= 0 for s in bill.shares)


def test_invariant_violation_is_raised_not_persisted(monkeypatch):
    def broken_split(request, remainder_payer_id):
        return SplitOutcome(total_cents=100, shares=(Share("me", 50),))

    monkeypatch.setattr(settlement, "run_split", broken_split)
    request = SplitRequest(mode=SplitMode.EQUAL, participants=[ME], total_cents=100)
    with pytest.raises(SettlementInvariantViolation):
        build_bill(request, "Broken", BillCategory.REGULAR, "me")


def test_negative_share_is_an_invariant_violation(monkeypatch):
    def broken_split(request, remainder_payer_id):
        return SplitOutcome(total_cents=100, shares=(Share("me", 150), Share("sam", -50)))

    monkeypatch.setattr(settlement, "run_split", broken_split)
    request = SplitRequest(mode=SplitMode.EQUAL, participants=[ME, SAM], total_cents=100)
    with pytest.raises(SettlementInvariantViolation):
        build_bill(request, "Broken", BillCategory.REGULAR, "me")


def test_equal_and_explicit_need_a_total():
    request = SplitRequest(mode=SplitMode.EQUAL, participants=[ME])
    with pytest.raises(ModelValidationError):
        build_bill(request, "No total", BillCategory.REGULAR, "me")


def test_description_and_category_are_validated():
    request = SplitRequest(mode=SplitMode.EQUAL, participants=[ME], total_cents=100)
    with pytest.raises(ModelValidationError):
        build_bill(request, "  ", BillCategory.REGULAR, "me")
    with pytest.raises(ModelValidationError):
        build_bill(request, "Lunch", "regular", "me")  # type: ignore[arg-type]


def test_defaults_and_immutability():
    request = SplitRequest(mode=SplitMode.EQUAL, participants=[ME], total_cents=100)
    bill = build_bill(request, "Lunch", BillCategory.REGULAR, "me")
    uuid.UUID(bill.id)
    assert bill.created_at.tzinfo is not None
    with pytest.raises(dataclasses.FrozenInstanceError):
        bill.total_cents = 1  # type: ignore[misc]


def test_split_request_validation():
    with pytest.raises(ModelValidationError):
        SplitRequest(mode=SplitMode.EQUAL, participants=[ME, Participant(id="me", name="Again")], total_cents=1)
    with pytest.raises(ModelValidationError):
        SplitRequest(mode=SplitMode.EQUAL, participants=[ME], total_cents=-1)
    with pytest.raises(ModelValidationError):
        SplitRequest(mode=SplitMode.EXPLICIT, participants=[ME], total_cents=1, explicit_amounts={"me": -5})
    with pytest.raises(ModelValidationError):
        SplitRequest(mode=SplitMode.ITEMIZED, participants=[ME], tax_rate=Decimal("-0.1"))
    with pytest.raises(ModelValidationError):
        LineItem(label="Bad", amount_cents=100, quantity=0)
