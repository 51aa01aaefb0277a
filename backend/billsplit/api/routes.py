from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from billsplit.api.validators import (
    ApiValidationError,
    is_uuid,
    parse_bill_payload,
    parse_datetime_arg,
    parse_display_name,
    parse_months_arg,
)
from billsplit.db.repository import BillRepository
from billsplit.domain.analytics import AnalyticsError, summarize, trailing_window
from billsplit.domain.models import BillCategory, ModelValidationError
from billsplit.domain.money import MoneyError
from billsplit.domain.settlement import SettlementInvariantViolation, build_bill
from billsplit.domain.split_logic import SplitLogicError
from billsplit.log import get_logger
from billsplit.services.bill_codec import BillCodecError, bill_to_json, snapshot_to_json

logger = get_logger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _json_error(message: str, *, status: int = 400, code: str = "bad_request", **context):
    error = {"code": code, "message": message}
    error.update({k: v for k, v in context.items() if v is not None})
    return jsonify({"error": error}), status


def _repo() -> BillRepository:
    return BillRepository(current_app.config.get("DATABASE_URL", ""))


def _owner_id() -> str:
    return current_app.config.get("BILL_OWNER_ID", "mvp-owner")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _settle_from_request():
    """
    Returns (bill, None) or (None, error_response).
    """
    data = request.get_json(silent=True)
    if data is None:
        return None, _json_error("Request body must be JSON.", status=400)

    try:
        payload = parse_bill_payload(data)
        bill = build_bill(payload.request, payload.description, payload.category, payload.created_by)
    except MoneyError as e:
        return None, _json_error(str(e), status=400, code="invalid_amount")
    except (ApiValidationError, ModelValidationError) as e:
        return None, _json_error(str(e), status=400)
    except SplitLogicError as e:
        return None, _json_error(str(e), status=422, code=e.code, participant_id=e.participant_id, item=e.item)
    except SettlementInvariantViolation:
        return None, _json_error(
            "Internal error: shares do not sum to the bill total.", status=500, code="internal_mismatch"
        )
    return bill, None


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok"}), 200


@api_bp.post("/bills/preview")
def preview_bill_endpoint():
    bill, error = _settle_from_request()
    if error is not None:
        return error
    return jsonify(bill_to_json(bill)), 200


@api_bp.post("/bills")
def create_bill_endpoint():
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    bill, error = _settle_from_request()
    if error is not None:
        return error

    try:
        repo.save_bill(owner_id=_owner_id(), bill=bill)
    except Exception:
        logger.exception("failed to persist bill %s", bill.id)
        return _json_error("Failed to persist bill.", status=500, code="db_error")

    return jsonify(bill_to_json(bill)), 201


@api_bp.get("/bills")
def list_bills_endpoint():
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    category = None
    raw_category = request.args.get("category")
    if raw_category:
        try:
            category = BillCategory(raw_category)
        except ValueError:
            return _json_error(f"Unknown category: {raw_category}", status=400)

    try:
        bills = repo.list_bills(owner_id=_owner_id(), category=category)
    except BillCodecError as e:
        logger.error("stored bill could not be decoded: %s", e)
        return _json_error("A stored bill is corrupt.", status=500, code="corrupt_bill")
    except Exception:
        logger.exception("failed to list bills")
        return _json_error("Failed to load bills.", status=500, code="db_error")

    return jsonify({"bills": [bill_to_json(b) for b in bills]}), 200


@api_bp.get("/bills/<bill_id>")
def get_bill_endpoint(bill_id: str):
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")
    if not is_uuid(bill_id):
        return _json_error("Bill id must be a valid UUID.", status=400)

    try:
        bill = repo.get_bill(owner_id=_owner_id(), bill_id=bill_id)
    except BillCodecError as e:
        logger.error("stored bill %s could not be decoded: %s", bill_id, e)
        return _json_error("The stored bill is corrupt.", status=500, code="corrupt_bill")
    except Exception:
        logger.exception("failed to load bill %s", bill_id)
        return _json_error("Failed to load bill.", status=500, code="db_error")

    if bill is None:
        return _json_error("Bill not found.", status=404, code="not_found")
    return jsonify(bill_to_json(bill)), 200


@api_bp.get("/analytics")
def analytics_endpoint():
    """
    Query params:
      - period: week | month | year (window ending now), or
      - since / until: ISO-8601 (until defaults to now, since to the start of time)
      - months: number of monthly buckets (default ANALYTICS_MONTHS)
    """
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    now = _now()
    try:
        period = request.args.get("period")
        if period:
            since, until = trailing_window(now, period)
        else:
            until = parse_datetime_arg(request.args.get("until"), "until") or now
            since = parse_datetime_arg(request.args.get("since"), "since") or datetime.min.replace(
                tzinfo=timezone.utc
            )
        months = parse_months_arg(
            request.args.get("months"), default=int(current_app.config.get("ANALYTICS_MONTHS", 6))
        )
    except (ApiValidationError, AnalyticsError) as e:
        return _json_error(str(e), status=400)

    try:
        bills = repo.list_bills(owner_id=_owner_id(), since=since, until=until)
    except BillCodecError as e:
        logger.error("stored bill could not be decoded: %s", e)
        return _json_error("A stored bill is corrupt.", status=500, code="corrupt_bill")
    except Exception:
        logger.exception("failed to load bills for analytics")
        return _json_error("Failed to load bills.", status=500, code="db_error")

    try:
        snapshot = summarize(bills, since, until, months=months)
    except AnalyticsError as e:
        return _json_error(str(e), status=400)

    return jsonify(snapshot_to_json(snapshot, since=since, until=until)), 200


@api_bp.get("/friends")
def list_friends_endpoint():
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        rows = repo.list_friends(owner_id=_owner_id())
    except Exception:
        logger.exception("failed to list friends")
        return _json_error("Failed to load friends.", status=500, code="db_error")

    return jsonify({"friends": [{"id": r.id, "display_name": r.display_name} for r in rows]}), 200


@api_bp.post("/friends")
def create_friend_endpoint():
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        display_name = parse_display_name(request.get_json(silent=True))
    except ApiValidationError as e:
        return _json_error(str(e), status=400)

    try:
        row = repo.create_or_get_friend(owner_id=_owner_id(), display_name=display_name)
    except Exception:
        logger.exception("failed to create friend %r", display_name)
        return _json_error("Failed to save friend.", status=500, code="db_error")

    return jsonify({"id": row.id, "display_name": row.display_name}), 200


@api_bp.delete("/friends/<friend_id>")
def delete_friend_endpoint(friend_id: str):
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")
    if not is_uuid(friend_id):
        return _json_error("Friend id must be a valid UUID.", status=400)

    try:
        if repo.friend_has_bills(owner_id=_owner_id(), friend_id=friend_id):
            return _json_error(
                "Friend appears on saved bills and cannot be removed.",
                status=409,
                code="friend_has_bills",
            )
        deleted = repo.delete_friend(owner_id=_owner_id(), friend_id=friend_id)
    except Exception:
        logger.exception("failed to delete friend %s", friend_id)
        return _json_error("Failed to delete friend.", status=500, code="db_error")

    if not deleted:
        return _json_error("Friend not found.", status=404, code="not_found")
    return "", 204
