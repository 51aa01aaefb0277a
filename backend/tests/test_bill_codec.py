# backend/tests/test_bill_codec.py
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billsplit.domain.models import BillCategory, LineItem, Participant, Share, SplitMode, SplitRequest
from billsplit.domain.settlement import build_bill
from billsplit.services.bill_codec import (
    BillCodecError,
    bill_from_record,
    bill_to_json,
    bill_to_metadata,
    bill_to_record,
)

WHEN = datetime(2026, 10, 1, 19, 30, tzinfo=timezone.utc)
ME = Participant(id="me", name="Me")
SAM = Participant(id="sam", name="Sam")


def receipt_bill():
    request = SplitRequest(
        mode=SplitMode.ITEMIZED,
        participants=[ME, SAM],
        line_items=[LineItem(label="Pizza", amount_cents=3000, participant_ids=("me", "sam"))],
        tax_rate=Decimal("0.10"),
    )
    return build_bill(request, "Pizza night", BillCategory.MANUAL_RECEIPT, "me", bill_id="b1", created_at=WHEN)


def test_itemized_metadata_shape():
    metadata = bill_to_metadata(receipt_bill())

    assert metadata["type"] == "manual-receipt"
    assert metadata["splitEqually"] is False
    assert metadata["participants"] == [
        {"id": "me", "name": "Me", "amount": "16.50"},
        {"id": "sam", "name": "Sam", "amount": "16.50"},
    ]
    assert metadata["items"] == [
        {
            "name": "Pizza",
            "price": "30.00",
            "quantity": 1,
            "participants": [
                {"id": "me", "name": "Me", "share": "15.00"},
                {"id": "sam", "name": "Sam", "share": "15.00"},
            ],
        }
    ]
    assert metadata["tax"] == {"percent": "10", "amount": "3.00"}
    assert metadata["tip"] == {"percent": "0", "amount": "0.00"}
    assert metadata["subtotal"] == "30.00"


def test_accommodation_metadata_has_room_details():
    request = SplitRequest(
        mode=SplitMode.CATEGORY_WEIGHTED,
        participants=[ME, SAM],
        line_items=[LineItem(label="Deluxe", amount_cents=15000, quantity=2)],
    )
    bill = build_bill(request, "Hotel", BillCategory.ACCOMMODATION, "me", created_at=WHEN)
    metadata = bill_to_metadata(bill)

    assert metadata["roomDetails"] == {
        "types": {"Deluxe": 2},
        "costs": {"Deluxe": "150.00"},
        "rooms": [{"name": "Deluxe", "cost": "150.00", "count": 2}],
    }
    assert metadata["splitEqually"] is True


def test_sports_metadata_has_expenses():
    request = SplitRequest(
        mode=SplitMode.CATEGORY_WEIGHTED,
        participants=[ME, SAM],
        line_items=[LineItem(label="Field/Court Rental", amount_cents=6000)],
        split_equally=False,
        explicit_amounts={"sam": 2500},
    )
    bill = build_bill(request, "Five-a-side", BillCategory.SPORTS, "me", created_at=WHEN)
    metadata = bill_to_metadata(bill)

    assert metadata["expenses"] == [{"name": "Field/Court Rental", "amount": "60.00", "quantity": 1}]
    assert metadata["remainderPayer"] == "me"
    assert metadata["splitEqually"] is False


@pytest.mark.parametrize(
    "category, items",
    [
        (BillCategory.ACCOMMODATION, [LineItem(label="Suite", amount_cents=20000, quantity=3)]),
        (BillCategory.ENTERTAINMENT, [LineItem(label="VIP", amount_cents=7550, quantity=2)]),
        (BillCategory.SPORTS, [LineItem(label="Tickets", amount_cents=4000)]),
        (BillCategory.SPORTS, [LineItem(label="Equipment", amount_cents=1250, quantity=2)]),
        (
            BillCategory.ACCOMMODATION,
            [
                LineItem(label="Double", amount_cents=12000, quantity=1),
                LineItem(label="Double", amount_cents=9000, quantity=2),
            ],
        ),
    ],
)
def test_category_bills_survive_storage(category, items):
    request = SplitRequest(mode=SplitMode.CATEGORY_WEIGHTED, participants=[ME, SAM], line_items=items)
    bill = build_bill(request, "Outing", category, "me", bill_id="b2", created_at=WHEN)
    assert bill_from_record(bill_to_record(bill)) == bill


def test_itemized_bill_survives_storage():
    bill = receipt_bill()
    record = bill_to_record(bill)

    assert record["amount"] == "33.00"
    assert record["createdBy"] == "me"
    assert json.loads(record["participants"])["type"] == "manual-receipt"
    assert bill_from_record(record) == bill


def test_legacy_list_record_reads_as_regular():
    record = {
        "id": "42",
        "description": "Taxi",
        "amount": "10.00",
        "date": "2025-03-01T10:00:00.000Z",
        "participants": json.dumps(
            [{"id": 1, "name": "Me", "amount": "5.00"}, {"id": 2, "name": "Sam", "amount": "5.00"}]
        ),
        "createdBy": 1,
    }
    bill = bill_from_record(record)

    assert bill.category is BillCategory.REGULAR
    assert bill.mode is SplitMode.EXPLICIT
    assert bill.shares == (Share("1", 500), Share("2", 500))
    assert bill.created_at == datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_unknown_type_reads_as_regular():
    record = bill_to_record(receipt_bill())
    metadata = json.loads(record["participants"])
    metadata.update(type="picnic", mode="equal")
    record["participants"] = json.dumps(metadata)

    assert bill_from_record(record).category is BillCategory.REGULAR


def test_corrupt_records_are_rejected():
    record = bill_to_record(receipt_bill())

    with pytest.raises(BillCodecError):
        bill_from_record({**record, "participants": "{not json"})
    with pytest.raises(BillCodecError):
        bill_from_record({**record, "amount": "40.00"})
    with pytest.raises(BillCodecError):
        bill_from_record({**record, "date": "yesterday"})
    with pytest.raises(BillCodecError):
        bill_from_record({**record, "participants": json.dumps({"type": "sports", "participants": []})})


def hotel_record():
    request = SplitRequest(
        mode=SplitMode.CATEGORY_WEIGHTED,
        participants=[ME, SAM],
        line_items=[LineItem(label="Twin", amount_cents=8000, quantity=2)],
    )
    return bill_to_record(build_bill(request, "Hotel", BillCategory.ACCOMMODATION, "me", bill_id="b3", created_at=WHEN))


def test_category_items_must_add_up_to_the_amount():
    record = hotel_record()
    metadata = json.loads(record["participants"])
    metadata["roomDetails"]["rooms"][0]["count"] = 3
    record["participants"] = json.dumps(metadata)

    with pytest.raises(BillCodecError, match="items sum to 24000"):
        bill_from_record(record)


def test_room_details_without_rooms_list_still_decode():
    record = hotel_record()
    metadata = json.loads(record["participants"])
    del metadata["roomDetails"]["rooms"]
    record["participants"] = json.dumps(metadata)

    bill = bill_from_record(record)

    assert bill.details["line_items"] == (LineItem(label="Twin", amount_cents=8000, quantity=2),)


def test_expense_without_quantity_holds_line_total():
    record = {
        "id": "7",
        "description": "Padel",
        "amount": "30.00",
        "date": "2026-09-01T09:00:00+00:00",
        "participants": json.dumps(
            {
                "type": "sports",
                "mode": "category_weighted",
                "splitEqually": True,
                "participants": [{"id": "me", "amount": "15.00"}, {"id": "sam", "amount": "15.00"}],
                "expenses": [{"name": "Court", "amount": "30.00"}],
            }
        ),
        "createdBy": "me",
    }

    bill = bill_from_record(record)

    assert bill.details["line_items"] == (LineItem(label="Court", amount_cents=3000, quantity=1),)


def test_naive_dates_read_as_utc():
    record = {**bill_to_record(receipt_bill()), "date": "2026-10-01T19:30:00"}

    assert bill_from_record(record).created_at == WHEN


def test_bill_to_json():
    body = bill_to_json(receipt_bill())

    assert body["id"] == "b1"
    assert body["total_cents"] == 3300
    assert body["total"] == "$33.00"
    assert body["category"] == "manual-receipt"
    assert body["shares"] == [
        {"participant_id": "me", "name": "Me", "owed_cents": 1650},
        {"participant_id": "sam", "name": "Sam", "owed_cents": 1650},
    ]
    assert body["tax_cents"] == 300
    assert body["created_at"] == "2026-10-01T19:30:00+00:00"
