# autowebinar_app/utils.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import re
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """UTC sem tzinfo (o banco guarda timestamps naive em UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def only_digits(value) -> str:
    return re.sub(r"\D", "", str(value or ""))


def from_timestamp(ts) -> datetime | None:
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def parse_iso(value) -> datetime | None:
    """Converte datas ISO-8601 dos gateways (ex.: 2025-09-01T10:00:00.000-04:00) para UTC naive."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(dt: datetime | None) -> str | None:
    return dt.isoformat(timespec="seconds") if dt else None
