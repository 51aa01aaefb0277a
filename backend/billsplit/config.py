from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
    BILL_OWNER_ID = os.getenv("BILL_OWNER_ID", "mvp-owner")
    ANALYTICS_MONTHS = _int_env("ANALYTICS_MONTHS", 6)
    LOG_LEVEL = os.getenv("BILLSPLIT_LOG_LEVEL", "INFO")
