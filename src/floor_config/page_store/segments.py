"""Customer segment filtering and caller-side visibility evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from .contracts import SEGMENT_ALL, STATUS_ACTIVE, Floor
from .ids import parse_timestamp


@dataclass(frozen=True)
class EvaluationContext:
    """Caller-supplied context; the store itself never enforces time or status."""

    segment: str = SEGMENT_ALL
    at: datetime | None = None
    include_inactive: bool = False


def floor_matches_segment(floor: Floor, segment: str) -> bool:
    if segment == SEGMENT_ALL:
        return True
    return segment in floor.customer_segments or SEGMENT_ALL in floor.customer_segments


def filter_floors_by_segment(floors: Iterable[Floor], segment: str) -> list[Floor]:
    return [floor for floor in floors if floor_matches_segment(floor, segment)]


def floor_in_window(floor: Floor, at: datetime) -> bool:
    # Blank or unparseable bounds are treated as open.
    start = parse_timestamp(floor.start_time)
    end = parse_timestamp(floor.end_time)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    if start is not None and at < start:
        return False
    if end is not None and at > end:
        return False
    return True


def visible_floors(floors: Iterable[Floor], context: EvaluationContext) -> list[Floor]:
    visible: list[Floor] = []
    for floor in filter_floors_by_segment(floors, context.segment):
        if not context.include_inactive and floor.status != STATUS_ACTIVE:
            continue
        if context.at is not None and not floor_in_window(floor, context.at):
            continue
        visible.append(floor)
    return visible
