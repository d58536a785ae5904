"""Identifier and timestamp helpers for the page store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol
import uuid


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], datetime]


class IdFactory(Protocol):
    def __call__(self) -> str:
        ...


def generate_id() -> str:
    return uuid.uuid4().hex


def utc_clock() -> datetime:
    return datetime.now(tz=timezone.utc)


def now_string(clock: Clock = utc_clock) -> str:
    return format_timestamp(clock())


def add_days(clock: Clock, days: int) -> str:
    return format_timestamp(clock() + timedelta(days=int(days)))


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str | None) -> datetime | None:
    """Parse canonical or ISO 8601 timestamps; naive values are read as UTC."""
    raw = str(text or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.strptime(raw, TIMESTAMP_FORMAT)
    except ValueError:
        candidate = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
