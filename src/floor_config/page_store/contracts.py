"""Page store data contracts: page configs, floors, floor images and form records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


CHANNELS: tuple[str, ...] = ("mobile", "web")
FLOOR_TYPES: set[str] = {"banner", "product", "ad", "promotion"}
CUSTOMER_SEGMENTS: set[str] = {"all", "vip", "regular", "new", "custom"}
STATUSES: set[str] = {"active", "inactive"}
ACTION_TYPES: set[str] = {"none", "h5", "native_schema", "program"}

SEGMENT_ALL = "all"
STATUS_ACTIVE = "active"
ACTION_NONE = "none"
ACTION_H5 = "h5"

CHANNEL_LABELS: dict[str, str] = {
    "mobile": "Mobile Banking",
    "web": "Online Banking",
}

CUSTOMER_SEGMENT_OPTIONS: tuple[dict[str, str], ...] = (
    {"value": "all", "label": "All customers", "color": "blue"},
    {"value": "vip", "label": "VIP customers", "color": "gold"},
    {"value": "regular", "label": "Regular customers", "color": "green"},
    {"value": "new", "label": "New customers", "color": "cyan"},
    {"value": "custom", "label": "Custom", "color": "purple"},
)

FLOOR_TYPE_OPTIONS: tuple[dict[str, str], ...] = (
    {"value": "banner", "label": "Carousel banner", "icon": "\U0001F3A0"},
    {"value": "product", "label": "Product picks", "icon": "\U0001F4E6"},
    {"value": "ad", "label": "Marketing ad", "icon": "\U0001F4E2"},
    {"value": "promotion", "label": "Promotion", "icon": "\U0001F389"},
)


class PageStoreContractError(ValueError):
    """Raised when page store payloads fail validation."""


@dataclass(frozen=True)
class ActionConfig:
    type: str = ACTION_NONE
    url: str | None = None
    # Compared but not hashed; equal actions still hash equal.
    params: dict[str, str] = field(default_factory=dict, hash=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ActionConfig":
        mapped = _as_mapping(payload, "action")
        action_type = _require_choice(mapped.get("type") or ACTION_NONE, ACTION_TYPES, "action.type")
        params_raw = mapped.get("params")
        if params_raw in (None, ""):
            params: dict[str, str] = {}
        else:
            params = {str(key): str(value) for key, value in _as_mapping(params_raw, "action.params").items()}
        return cls(type=action_type, url=_optional_string(mapped.get("url")), params=params)

    @classmethod
    def from_link_url(cls, link_url: str | None) -> "ActionConfig":
        url = _optional_string(link_url)
        if url is None:
            return cls()
        return cls(type=ACTION_H5, url=url)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.url is not None:
            payload["url"] = self.url
        if self.params:
            payload["params"] = dict(self.params)
        return payload


@dataclass(frozen=True)
class TimeRange:
    start: str
    end: str

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class StrategyConfig:
    priority: int = 0
    time_range: TimeRange | None = None
    target_tags: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StrategyConfig":
        mapped = _as_mapping(payload, "strategy")
        time_range_raw = mapped.get("timeRange")
        time_range = None
        if time_range_raw is not None:
            range_map = _as_mapping(time_range_raw, "strategy.timeRange")
            time_range = TimeRange(
                start=str(range_map.get("start") or ""),
                end=str(range_map.get("end") or ""),
            )
        tags_raw = mapped.get("targetTags") or []
        if not isinstance(tags_raw, (list, tuple)):
            raise PageStoreContractError("strategy.targetTags must be a list")
        return cls(
            priority=_as_int(mapped.get("priority", 0), "strategy.priority"),
            time_range=time_range,
            target_tags=tuple(str(tag) for tag in tags_raw),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "timeRange": self.time_range.as_dict() if self.time_range is not None else None,
            "targetTags": list(self.target_tags),
        }


@dataclass(frozen=True)
class TrackingConfig:
    click_id: str | None = None
    exposure_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TrackingConfig":
        mapped = _as_mapping(payload, "tracking")
        return cls(
            click_id=_optional_string(mapped.get("clickId")),
            exposure_id=_optional_string(mapped.get("exposureId")),
        )

    def as_dict(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.click_id is not None:
            payload["clickId"] = self.click_id
        if self.exposure_id is not None:
            payload["exposureId"] = self.exposure_id
        return payload


@dataclass(frozen=True)
class FloorImage:
    id: str
    url: str
    alt: str
    order: int
    action: ActionConfig = field(default_factory=ActionConfig)
    strategy: StrategyConfig | None = None
    tracking: TrackingConfig | None = None

    @property
    def link_url(self) -> str:
        if self.action.type == ACTION_H5 and self.action.url:
            return self.action.url
        return ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FloorImage":
        """Build an image, migrating the legacy ``linkUrl`` field to an h5 action."""
        mapped = _as_mapping(payload, "image")
        action_raw = mapped.get("action")
        if action_raw is None:
            action = ActionConfig.from_link_url(mapped.get("linkUrl"))
        else:
            action = ActionConfig.from_payload(action_raw)
        strategy_raw = mapped.get("strategy")
        tracking_raw = mapped.get("tracking")
        return cls(
            id=_require_non_empty_string(mapped.get("id"), "image.id"),
            url=str(mapped.get("url") or ""),
            alt=str(mapped.get("alt") or ""),
            order=_as_int(mapped.get("order"), "image.order"),
            action=action,
            strategy=StrategyConfig.from_payload(strategy_raw) if strategy_raw is not None else None,
            tracking=TrackingConfig.from_payload(tracking_raw) if tracking_raw is not None else None,
        )

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "alt": self.alt,
            "order": self.order,
            "action": self.action.as_dict(),
        }
        if self.strategy is not None:
            payload["strategy"] = self.strategy.as_dict()
        if self.tracking is not None:
            payload["tracking"] = self.tracking.as_dict()
        return payload


@dataclass(frozen=True)
class Floor:
    id: str
    name: str
    type: str
    images: tuple[FloorImage, ...]
    customer_segments: tuple[str, ...]
    priority: int
    start_time: str
    end_time: str
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Floor":
        mapped = _as_mapping(payload, "floor")
        images_raw = mapped.get("images") or []
        if not isinstance(images_raw, list):
            raise PageStoreContractError("floor.images must be a list")
        return cls(
            id=_require_non_empty_string(mapped.get("id"), "floor.id"),
            name=str(mapped.get("name") or ""),
            type=_require_choice(mapped.get("type"), FLOOR_TYPES, "floor.type"),
            images=tuple(FloorImage.from_payload(item) for item in images_raw),
            customer_segments=_normalize_segments(mapped.get("customerSegments"), "floor.customerSegments"),
            priority=_as_int(mapped.get("priority"), "floor.priority"),
            start_time=str(mapped.get("startTime") or ""),
            end_time=str(mapped.get("endTime") or ""),
            status=_require_choice(mapped.get("status"), STATUSES, "floor.status"),
            created_at=str(mapped.get("createdAt") or ""),
            updated_at=str(mapped.get("updatedAt") or ""),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "images": [image.as_dict() for image in self.images],
            "customerSegments": list(self.customer_segments),
            "priority": self.priority,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class PageConfig:
    id: str
    channel: str
    page_name: str
    floors: tuple[Floor, ...]
    created_at: str
    updated_at: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PageConfig":
        mapped = _as_mapping(payload, "page_config")
        floors_raw = mapped.get("floors") or []
        if not isinstance(floors_raw, list):
            raise PageStoreContractError("page_config.floors must be a list")
        return cls(
            id=_require_non_empty_string(mapped.get("id"), "page_config.id"),
            channel=_require_choice(mapped.get("channel"), set(CHANNELS), "page_config.channel"),
            page_name=str(mapped.get("pageName") or ""),
            floors=tuple(Floor.from_payload(item) for item in floors_raw),
            created_at=str(mapped.get("createdAt") or ""),
            updated_at=str(mapped.get("updatedAt") or ""),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "pageName": self.page_name,
            "floors": [floor.as_dict() for floor in self.floors],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class FloorFormData:
    name: str
    type: str
    customer_segments: tuple[str, ...]
    start_time: str
    end_time: str
    status: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FloorFormData":
        mapped = _as_mapping(payload, "floor_form")
        return cls(
            name=str(mapped.get("name") or ""),
            type=_require_choice(mapped.get("type"), FLOOR_TYPES, "floor_form.type"),
            customer_segments=_normalize_segments(
                mapped.get("customerSegments"), "floor_form.customerSegments"
            ),
            start_time=str(mapped.get("startTime") or ""),
            end_time=str(mapped.get("endTime") or ""),
            status=_require_choice(mapped.get("status") or STATUS_ACTIVE, STATUSES, "floor_form.status"),
        )


@dataclass(frozen=True)
class FloorImageFormData:
    url: str
    alt: str = ""
    link_url: str | None = None
    action: ActionConfig | None = None
    strategy: StrategyConfig | None = None
    tracking: TrackingConfig | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FloorImageFormData":
        mapped = _as_mapping(payload, "image_form")
        action_raw = mapped.get("action")
        strategy_raw = mapped.get("strategy")
        tracking_raw = mapped.get("tracking")
        return cls(
            url=str(mapped.get("url") or ""),
            alt=str(mapped.get("alt") or ""),
            link_url=_optional_string(mapped.get("linkUrl")),
            action=ActionConfig.from_payload(action_raw) if action_raw is not None else None,
            strategy=StrategyConfig.from_payload(strategy_raw) if strategy_raw is not None else None,
            tracking=TrackingConfig.from_payload(tracking_raw) if tracking_raw is not None else None,
        )

    def resolved_action(self) -> ActionConfig:
        if self.action is not None:
            return self.action
        return ActionConfig.from_link_url(self.link_url)


def _as_mapping(payload: Any, field_name: str) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise PageStoreContractError(f"{field_name} must be a mapping")
    return dict(payload)


def _require_non_empty_string(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise PageStoreContractError(f"{field_name} must be a non-empty string")
    return text


def _optional_string(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _require_choice(value: Any, choices: set[str], field_name: str) -> str:
    text = _require_non_empty_string(value, field_name)
    if text not in choices:
        raise PageStoreContractError(f"{field_name} must be one of {sorted(choices)}")
    return text


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or value is None:
        raise PageStoreContractError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise PageStoreContractError(f"{field_name} must be an integer") from exc


def _normalize_segments(payload: Any, field_name: str) -> tuple[str, ...]:
    if payload in (None, ""):
        return tuple()
    if not isinstance(payload, (list, tuple)):
        raise PageStoreContractError(f"{field_name} must be a list")
    segments: list[str] = []
    for item in payload:
        segment = _require_choice(item, CUSTOMER_SEGMENTS, field_name)
        if segment not in segments:
            segments.append(segment)
    return tuple(segments)
