"""Read-side adapter that shapes store state for preview renderers."""

from __future__ import annotations

from typing import Any

from .contracts import CHANNEL_LABELS, FLOOR_TYPE_OPTIONS, Floor
from .ordering import sort_by_order
from .segments import EvaluationContext, visible_floors
from .store import FloorConfigStore


CAROUSEL_INTERVAL_MS = 3000

_FLOOR_TYPE_INDEX = {option["value"]: option for option in FLOOR_TYPE_OPTIONS}


def next_carousel_index(current: int, count: int) -> int:
    if count <= 0:
        return 0
    return (int(current) + 1) % count


def floor_preview(floor: Floor) -> dict[str, Any]:
    option = _FLOOR_TYPE_INDEX.get(floor.type, {})
    images = sort_by_order(floor.images)
    return {
        "id": floor.id,
        "name": floor.name,
        "type": floor.type,
        "type_label": option.get("label", floor.type),
        "type_icon": option.get("icon", ""),
        "empty": not images,
        "rotation_interval_ms": CAROUSEL_INTERVAL_MS if len(images) > 1 else None,
        "images": [
            {
                "id": image.id,
                "url": image.url,
                "alt": image.alt,
                "order": image.order,
                "link_url": image.link_url,
                "action": image.action.as_dict(),
            }
            for image in images
        ],
    }


def build_channel_preview(
    store: FloorConfigStore,
    channel: str,
    segment: str,
    context: EvaluationContext | None = None,
) -> dict[str, Any]:
    """Floors a given segment would see on ``channel``, in display order.

    Without a context this mirrors the editor preview: segment filter only.
    With a context, status and time window are also applied.
    """
    floors = store.get_floors_by_segment(channel, segment)
    if context is not None:
        scoped = EvaluationContext(segment=segment, at=context.at, include_inactive=context.include_inactive)
        floors = visible_floors(floors, scoped)
    return {
        "channel": channel,
        "channel_label": CHANNEL_LABELS.get(channel, channel),
        "segment": segment,
        "floors": [floor_preview(floor) for floor in floors],
    }
