from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

try:
    import psycopg
except ImportError:  # pragma: no cover
    psycopg = None

from billsplit.domain.models import Bill, BillCategory
from billsplit.domain.money import cents_to_decimal_str
from billsplit.log import get_logger
from billsplit.services.bill_codec import bill_from_record, bill_to_record

logger = get_logger(__name__)


@dataclass(frozen=True)
class FriendRecord:
    id: str
    display_name: str


class BillRepository:
    """
    Bills and friends for one owner.

    Bills are stored in the mobile app's record shape: the numeric total
    plus the JSON metadata string produced by the bill codec.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url.strip()

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _connect(self):
        if not self.enabled:
            raise RuntimeError("DATABASE_URL not configured")
        if psycopg is None:
            raise RuntimeError("psycopg is not installed")
        return psycopg.connect(self.database_url)

    def save_bill(self, *, owner_id: str, bill: Bill) -> None:
        record = bill_to_record(bill)
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO bills (id, owner_id, description, total_cents, created_by, created_at, category, metadata)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    bill.id,
                    owner_id,
                    bill.description,
                    bill.total_cents,
                    bill.created_by,
                    bill.created_at,
                    bill.category.value,
                    record["participants"],
                ),
            )
            conn.commit()
        logger.info("saved bill %s (%s, %d cents) for %s", bill.id, bill.category.value, bill.total_cents, owner_id)

    def list_bills(
        self,
        *,
        owner_id: str,
        category: Optional[BillCategory] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[Bill]:
        clauses = ["owner_id = %s"]
        params: list[object] = [owner_id]
        if category is not None:
            clauses.append("category = %s")
            params.append(category.value)
        if since is not None:
            clauses.append("created_at >= %s")
            params.append(since)
        if until is not None:
            clauses.append("created_at <= %s")
            params.append(until)

        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT id::text, description, total_cents, created_by, created_at, metadata
                FROM bills
                WHERE {" AND ".join(clauses)}
                ORDER BY created_at DESC, id ASC
                """,
                tuple(params),
            )
            return [_row_to_bill(row) for row in cur.fetchall()]

    def get_bill(self, *, owner_id: str, bill_id: str) -> Optional[Bill]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id::text, description, total_cents, created_by, created_at, metadata
                FROM bills
                WHERE owner_id = %s AND id = %s
                """,
                (owner_id, bill_id),
            )
            row = cur.fetchone()
            return _row_to_bill(row) if row is not None else None

    def list_friends(self, *, owner_id: str) -> list[FriendRecord]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id::text, display_name
                FROM friends
                WHERE owner_id = %s
                ORDER BY created_at ASC, display_name ASC
                """,
                (owner_id,),
            )
            return [FriendRecord(id=row[0], display_name=row[1]) for row in cur.fetchall()]

    def create_or_get_friend(self, *, owner_id: str, display_name: str) -> FriendRecord:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO friends (owner_id, display_name)
                VALUES (%s, %s)
                ON CONFLICT (owner_id, display_name)
                DO UPDATE SET display_name = EXCLUDED.display_name
                RETURNING id::text, display_name
                """,
                (owner_id, display_name),
            )
            row = cur.fetchone()
            conn.commit()
            return FriendRecord(id=row[0], display_name=row[1])

    def friend_has_bills(self, *, owner_id: str, friend_id: str) -> bool:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT EXISTS(
                    SELECT 1
                    FROM bills
                    WHERE owner_id = %s
                      AND metadata::jsonb -> 'participants' @> jsonb_build_array(jsonb_build_object('id', %s::text))
                )
                """,
                (owner_id, friend_id),
            )
            return bool(cur.fetchone()[0])

    def delete_friend(self, *, owner_id: str, friend_id: str) -> bool:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                DELETE FROM friends
                WHERE owner_id = %s AND id = %s
                """,
                (owner_id, friend_id),
            )
            deleted = cur.rowcount > 0
            conn.commit()
            return deleted


def _row_to_bill(row) -> Bill:
    bill_id, description, total_cents, created_by, created_at, metadata = row
    return bill_from_record(
        {
            "id": bill_id,
            "description": description,
            "amount": cents_to_decimal_str(int(total_cents)),
            "date": created_at.isoformat(),
            "participants": metadata,
            "createdBy": created_by,
        }
    )
