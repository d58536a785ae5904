"""Per-channel floor configuration store.

The store owns one immutable tree of ``PageConfig`` values. Every mutation
builds a complete replacement ``PageConfig`` for the touched channel, checks
the dense-ordering invariant, swaps the root tuple under a lock, writes the
new snapshot to the snapshot store (best effort) and then notifies
subscribers synchronously. Readers only ever see a published tuple.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from datetime import datetime
import logging
import threading
from typing import Callable, Iterable, Sequence

from .contracts import (
    ACTION_H5,
    CHANNELS,
    SEGMENT_ALL,
    STATUS_ACTIVE,
    ActionConfig,
    Floor,
    FloorFormData,
    FloorImage,
    FloorImageFormData,
    PageConfig,
)
from .ids import Clock, IdFactory, add_days, format_timestamp, generate_id, utc_clock
from .observability import PageStoreMetrics
from .ordering import is_dense, renumber_orders, renumber_priorities, sort_by_order, sort_by_priority
from .segments import filter_floors_by_segment
from .snapshots import SnapshotStore


logger = logging.getLogger("floor_config.page_store.store")

MUTATION_APPLIED = "APPLIED"
MUTATION_NOOP = "NOOP"
MUTATION_REJECTED = "REJECTED"

REASON_CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
REASON_FLOOR_NOT_FOUND = "FLOOR_NOT_FOUND"
REASON_IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
REASON_REORDER_OMITTED_DROPPED = "REORDER_OMITTED_DROPPED"
REASON_REORDER_PARTIAL_REJECTED = "REORDER_PARTIAL_REJECTED"

REORDER_DROP_OMITTED = "drop_omitted"
REORDER_REJECT_PARTIAL = "reject_partial"
REORDER_POLICIES: set[str] = {REORDER_DROP_OMITTED, REORDER_REJECT_PARTIAL}

DEFAULT_COPY_SUFFIX = " (copy)"
DEFAULT_SEED_VALIDITY_DAYS = 30

_SEED_PAGE_NAMES = {"mobile": "Mobile Banking Home", "web": "Online Banking Home"}
_SEED_FLOOR_NAMES = {"mobile": "Spring Festival Promotion", "web": "Wealth Product Picks"}
_SEED_IMAGE_URLS = {
    "mobile": "https://via.placeholder.com/800x400?text=Mobile+Banner",
    "web": "https://via.placeholder.com/1200x400?text=Web+Banner",
}
_SEED_LINK_URL = "https://example.com/promotion"
_SEED_IMAGE_ALT = "Promotion"

Subscriber = Callable[[tuple[PageConfig, ...]], None]


class PageStoreInvariantError(RuntimeError):
    """Raised when a built tree breaks dense priority/order numbering."""


@dataclass(frozen=True)
class FloorMutationResult:
    status: str
    operation: str
    channel: str
    reason_code: str | None = None
    floor_id: str | None = None
    image_id: str | None = None
    dropped_ids: tuple[str, ...] = ()

    @property
    def applied(self) -> bool:
        return self.status == MUTATION_APPLIED

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "status": self.status,
            "operation": self.operation,
            "channel": self.channel,
        }
        if self.reason_code is not None:
            payload["reason_code"] = self.reason_code
        if self.floor_id is not None:
            payload["floor_id"] = self.floor_id
        if self.image_id is not None:
            payload["image_id"] = self.image_id
        if self.dropped_ids:
            payload["dropped_ids"] = list(self.dropped_ids)
        return payload


_Build = Callable[[PageConfig], tuple[PageConfig | None, FloorMutationResult]]


class FloorConfigStore:
    """Owns the page config tree and exposes query and mutation operations."""

    def __init__(
        self,
        snapshot_store: SnapshotStore | None = None,
        *,
        metrics: PageStoreMetrics | None = None,
        clock: Clock = utc_clock,
        id_factory: IdFactory = generate_id,
        reorder_policy: str = REORDER_DROP_OMITTED,
        seed_validity_days: int = DEFAULT_SEED_VALIDITY_DAYS,
        copy_suffix: str = DEFAULT_COPY_SUFFIX,
    ) -> None:
        if reorder_policy not in REORDER_POLICIES:
            raise ValueError(f"reorder_policy must be one of {sorted(REORDER_POLICIES)}")
        self.snapshot_store = snapshot_store
        self.metrics = metrics or PageStoreMetrics()
        self.reorder_policy = reorder_policy
        self.seed_validity_days = int(seed_validity_days)
        self.copy_suffix = copy_suffix
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        loaded = snapshot_store.load() if snapshot_store is not None else None
        self._page_configs: tuple[PageConfig, ...] = _repair_loaded(loaded or [])

    # ------------------------------------------------------------------ reads

    def page_configs(self) -> tuple[PageConfig, ...]:
        for channel in CHANNELS:
            self._ensure_channel(channel)
        return self._page_configs

    def get_page_config(self, channel: str) -> PageConfig | None:
        return self._ensure_channel(channel)

    def get_floors(self, channel: str) -> list[Floor]:
        config = self._ensure_channel(channel)
        if config is None:
            return []
        return sort_by_priority(config.floors)

    def get_floors_by_segment(self, channel: str, segment: str) -> list[Floor]:
        return filter_floors_by_segment(self.get_floors(channel), segment)

    def get_floor_by_id(self, channel: str, floor_id: str) -> Floor | None:
        config = self._ensure_channel(channel)
        if config is None:
            return None
        return _find_floor(config, floor_id)

    def now(self) -> datetime:
        """Current time from the store clock, for live visibility checks."""
        return self._clock()

    # ------------------------------------------------------------- observers

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ------------------------------------------------------- floor mutations

    def add_floor(self, channel: str, data: FloorFormData) -> FloorMutationResult:
        def build(config: PageConfig) -> tuple[PageConfig | None, FloorMutationResult]:
            now = self._now()
            floor = Floor(
                id=self._id_factory(),
                name=data.name,
                type=data.type,
                images=(),
                customer_segments=tuple(data.customer_segments),
                priority=len(config.floors) + 1,
                start_time=data.start_time,
                end_time=data.end_time,
                status=data.status,
                created_at=now,
                updated_at=now,
            )
            updated = replace(config, floors=config.floors + (floor,), updated_at=now)
            return updated, self._applied("add_floor", config.channel, floor_id=floor.id)

        return self._commit("add_floor", channel, build)

    def update_floor(self, channel: str, floor_id: str, data: FloorFormData) -> FloorMutationResult:
        def build(config: PageConfig) -> tuple[PageConfig | None, FloorMutationResult]:
            floor = _find_floor(config, floor_id)
            if floor is None:
                return None, _noop("update_floor", config.channel, REASON_FLOOR_NOT_FOUND, floor_id=floor_id)
            now = self._now()
            changed = replace(
                floor,
                name=data.name,
                type=data.type,
                customer_segments=tuple(data.customer_segments),
                start_time=data.start_time,
                end_time=data.end_time,
                status=data.status,
                updated_at=now,
            )
            return _swap_floor(config, changed, now), self._applied("update_floor", config.channel, floor_id=floor_id)

        return self._commit("update_floor", channel, build)

    def delete_floor(self, channel: str, floor_id: str) -> FloorMutationResult:
        def build(config: PageConfig) -> tuple[PageConfig | None, FloorMutationResult]:
            if _find_floor(config, floor_id) is None:
                return None, _noop("delete_floor", config.channel, REASON_FLOOR_NOT_FOUND, floor_id=floor_id)
            survivors = [floor for floor in sort_by_priority(config.floors) if floor.id != floor_id]
            updated = replace(config, floors=renumber_priorities(survivors), updated_at=self._now())
            return updated, self._applied("delete_floor", config.channel, floor_id=floor_id)

        return self._commit("delete_floor", channel, build)

    def duplicate_floor(self, channel: str, floor_id: str) -> FloorMutationResult:
        def build(config: PageConfig) -> tuple[PageConfig | None, FloorMutationResult]:
            source = _find_floor(config, floor_id)
            if source is None:
                return None, _noop("duplicate_floor", config.channel, REASON_FLOOR_NOT_FOUND, floor_id=floor_id)
            now = self._now()
            images = tuple(replace(copy.deepcopy(image), id=self._id_factory()) for image in source.images)
            duplicate = replace(
                source,
                id=self._id_factory(),
                name=f"{source.name}{self.copy_suffix}",
                images=images,
                customer_segments=tuple(source.customer_segments),
                priority=len(config.floors) + 1,
                created_at=now,
                updated_at=now,
            )
            updated = replace(config, floors=config.floors + (duplicate,), updated_at=now)
            return updated, self._applied("duplicate_floor", config.channel, floor_id=duplicate.id)

        return self._commit("duplicate_floor", channel, build)

    def reorder_floors(self, channel: str, floor_ids: Sequence[str]) -> FloorMutationResult:
        """Apply a new floor order.

        Unknown and repeated ids are dropped. Floors missing from ``floor_ids``
        are removed under ``drop_omitted`` and make the call a no-change
        ``REJECTED`` result under ``reject_partial``.
        """

        def build(config: PageConfig) -> tuple[PageConfig | None, FloorMutationResult]:
            ordered, dropped, omitted = _resolve_reorder(sort_by_priority(config.floors), floor_ids)
            if omitted and self.reorder_policy == REORDER_REJECT_PARTIAL:
                return None, FloorMutationResult(
                    status=MUTATION_REJECTED,
                    operation="reorder_floors",
                    channel=config.channel,
                    reason_code=REASON_REORDER_PARTIAL_REJECTED,
                    dropped_ids=tuple(omitted),
                )
            now = self._now()
            floors = renumber_priorities(replace(floor, updated_at=now) for floor in ordered)
            updated = replace(config, floors=floors, updated_at=now)
            return updated, self._applied(
                "reorder_floors",
                config.channel,
                reason_code=REASON_REORDER_OMITTED_DROPPED if omitted else None,
                dropped_ids=tuple(dropped + omitted),
            )

        return self._commit("reorder_floors", channel, build)

    # ------------------------------------------------------- image mutations

    def add_image_to_floor(self, channel: str, floor_id: str, data: FloorImageFormData) -> FloorMutationResult:
        created: list[str] = []

        def change(floor: Floor) -> tuple[Floor | None, str | None]:
            image = FloorImage(
                id=self._id_factory(),
                url=data.url,
                alt=data.alt,
                order=len(floor.images) + 1,
                action=data.resolved_action(),
                strategy=data.strategy,
                tracking=data.tracking,
            )
            created.append(image.id)
            return replace(floor, images=floor.images + (image,)), None

        return self._commit_floor_change("add_image_to_floor", channel, floor_id, change, created)

    def update_floor_image(
        self,
        channel: str,
        floor_id: str,
        image_id: str,
        data: FloorImageFormData,
    ) -> FloorMutationResult:
        def change(floor: Floor) -> tuple[Floor | None, str | None]:
            image = _find_image(floor, image_id)
            if image is None:
                return None, REASON_IMAGE_NOT_FOUND
            changed = replace(
                image,
                url=data.url,
                alt=data.alt,
                action=data.resolved_action(),
                strategy=data.strategy,
                tracking=data.tracking,
            )
            images = tuple(changed if item.id == image_id else item for item in floor.images)
            return replace(floor, images=images), None

        return self._commit_floor_change("update_floor_image", channel, floor_id, change, [image_id])

    def delete_floor_image(self, channel: str, floor_id: str, image_id: str) -> FloorMutationResult:
        def change(floor: Floor) -> tuple[Floor | None, str | None]:
            if _find_image(floor, image_id) is None:
                return None, REASON_IMAGE_NOT_FOUND
            survivors = [image for image in sort_by_order(floor.images) if image.id != image_id]
            return replace(floor, images=renumber_orders(survivors)), None

        return self._commit_floor_change("delete_floor_image", channel, floor_id, change, [image_id])

    def reorder_floor_images(self, channel: str, floor_id: str, image_ids: Sequence[str]) -> FloorMutationResult:
        dropped_ids: list[str] = []

        def change(floor: Floor) -> tuple[Floor | None, str | None]:
            ordered, dropped, omitted = _resolve_reorder(sort_by_order(floor.images), image_ids)
            dropped_ids.extend(dropped + omitted)
            if omitted and self.reorder_policy == REORDER_REJECT_PARTIAL:
                return None, REASON_REORDER_PARTIAL_REJECTED
            reason = REASON_REORDER_OMITTED_DROPPED if omitted else None
            return replace(floor, images=renumber_orders(ordered)), reason

        return self._commit_floor_change(
            "reorder_floor_images", channel, floor_id, change, [], dropped_ids=dropped_ids
        )

    # --------------------------------------------------------------- internals

    def _commit_floor_change(
        self,
        operation: str,
        channel: str,
        floor_id: str,
        change: Callable[[Floor], tuple[Floor | None, str | None]],
        image_ids: list[str],
        *,
        dropped_ids: list[str] | None = None,
    ) -> FloorMutationResult:
        def build(config: PageConfig) -> tuple[PageConfig | None, FloorMutationResult]:
            floor = _find_floor(config, floor_id)
            if floor is None:
                return None, _noop(operation, config.channel, REASON_FLOOR_NOT_FOUND, floor_id=floor_id)
            changed, reason = change(floor)
            image_id = image_ids[0] if image_ids else None
            dropped = tuple(dropped_ids or ())
            if changed is None:
                if reason == REASON_REORDER_PARTIAL_REJECTED:
                    return None, FloorMutationResult(
                        status=MUTATION_REJECTED,
                        operation=operation,
                        channel=config.channel,
                        reason_code=reason,
                        floor_id=floor_id,
                        dropped_ids=dropped,
                    )
                return None, _noop(operation, config.channel, reason, floor_id=floor_id, image_id=image_id)
            now = self._now()
            updated = _swap_floor(config, replace(changed, updated_at=now), now)
            return updated, self._applied(
                operation,
                config.channel,
                reason_code=reason,
                floor_id=floor_id,
                image_id=image_id,
                dropped_ids=dropped,
            )

        return self._commit(operation, channel, build)

    def _commit(self, operation: str, channel: str, build: _Build) -> FloorMutationResult:
        if channel not in CHANNELS:
            result = _noop(operation, str(channel), REASON_CHANNEL_NOT_FOUND)
            self._record(result)
            return result
        with self._lock:
            config = self._ensure_locked(channel)
            updated, result = build(config)
            if updated is not None:
                _check_invariants(updated)
                self._publish(updated)
        self._record(result)
        return result

    def _ensure_channel(self, channel: str) -> PageConfig | None:
        if channel not in CHANNELS:
            return None
        existing = _find_config(self._page_configs, channel)
        if existing is not None:
            return existing
        with self._lock:
            return self._ensure_locked(channel)

    def _ensure_locked(self, channel: str) -> PageConfig:
        existing = _find_config(self._page_configs, channel)
        if existing is not None:
            return existing
        seeded = self._seed_page_config(channel)
        logger.info("PageStore seeded channel=%s page_config_id=%s", channel, seeded.id)
        self._publish(seeded)
        return seeded

    def _publish(self, config: PageConfig) -> None:
        current = self._page_configs
        if _find_config(current, config.channel) is None:
            snapshot = current + (config,)
        else:
            snapshot = tuple(config if item.channel == config.channel else item for item in current)
        self._page_configs = snapshot
        self._persist(snapshot)
        self._notify(snapshot)

    def _persist(self, snapshot: tuple[PageConfig, ...]) -> None:
        if self.snapshot_store is None:
            return
        try:
            self.snapshot_store.save(list(snapshot))
        except Exception as exc:
            # The in-memory tree stays authoritative for the session.
            logger.warning("PageStore snapshot persist failed: %s", exc, exc_info=True)
            self.metrics.record_persist_error(exc)
            return
        self.metrics.bump("persist_ok_total")

    def _notify(self, snapshot: tuple[PageConfig, ...]) -> None:
        for callback in list(self._subscribers):
            if self._page_configs is not snapshot:
                # A subscriber mutated the store; the nested publish already
                # delivered the newer tree to every subscriber.
                logger.debug("PageStore skipped stale notification")
                return
            try:
                callback(snapshot)
            except Exception:
                logger.exception("PageStore subscriber failed")
                self.metrics.bump("subscriber_error_total")

    def _record(self, result: FloorMutationResult) -> None:
        if result.status == MUTATION_APPLIED:
            self.metrics.bump("mutation_applied_total")
            logger.info(
                "PageStore %s applied channel=%s floor_id=%s image_id=%s",
                result.operation,
                result.channel,
                result.floor_id,
                result.image_id,
            )
        elif result.status == MUTATION_REJECTED:
            self.metrics.bump("mutation_rejected_total")
            logger.warning(
                "PageStore %s rejected channel=%s reason=%s omitted=%s",
                result.operation,
                result.channel,
                result.reason_code,
                ",".join(result.dropped_ids),
            )
        else:
            self.metrics.bump("mutation_noop_total")
            logger.debug(
                "PageStore %s noop channel=%s reason=%s floor_id=%s image_id=%s",
                result.operation,
                result.channel,
                result.reason_code,
                result.floor_id,
                result.image_id,
            )
        if result.dropped_ids and result.status == MUTATION_APPLIED:
            self.metrics.bump("reorder_dropped_ids_total", len(result.dropped_ids))

    def _applied(
        self,
        operation: str,
        channel: str,
        *,
        reason_code: str | None = None,
        floor_id: str | None = None,
        image_id: str | None = None,
        dropped_ids: tuple[str, ...] = (),
    ) -> FloorMutationResult:
        return FloorMutationResult(
            status=MUTATION_APPLIED,
            operation=operation,
            channel=channel,
            reason_code=reason_code,
            floor_id=floor_id,
            image_id=image_id,
            dropped_ids=dropped_ids,
        )

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _seed_page_config(self, channel: str) -> PageConfig:
        now = self._now()
        image = FloorImage(
            id=self._id_factory(),
            url=_SEED_IMAGE_URLS[channel],
            alt=_SEED_IMAGE_ALT,
            order=1,
            action=ActionConfig(type=ACTION_H5, url=_SEED_LINK_URL),
        )
        floor = Floor(
            id=self._id_factory(),
            name=_SEED_FLOOR_NAMES[channel],
            type="banner",
            images=(image,),
            customer_segments=(SEGMENT_ALL,),
            priority=1,
            start_time=now,
            end_time=add_days(self._clock, self.seed_validity_days),
            status=STATUS_ACTIVE,
            created_at=now,
            updated_at=now,
        )
        return PageConfig(
            id=self._id_factory(),
            channel=channel,
            page_name=_SEED_PAGE_NAMES[channel],
            floors=(floor,),
            created_at=now,
            updated_at=now,
        )


def _noop(
    operation: str,
    channel: str,
    reason_code: str | None,
    *,
    floor_id: str | None = None,
    image_id: str | None = None,
) -> FloorMutationResult:
    return FloorMutationResult(
        status=MUTATION_NOOP,
        operation=operation,
        channel=channel,
        reason_code=reason_code,
        floor_id=floor_id,
        image_id=image_id,
    )


def _find_config(configs: Iterable[PageConfig], channel: str) -> PageConfig | None:
    for config in configs:
        if config.channel == channel:
            return config
    return None


def _find_floor(config: PageConfig, floor_id: str) -> Floor | None:
    for floor in config.floors:
        if floor.id == floor_id:
            return floor
    return None


def _find_image(floor: Floor, image_id: str) -> FloorImage | None:
    for image in floor.images:
        if image.id == image_id:
            return image
    return None


def _swap_floor(config: PageConfig, floor: Floor, now: str) -> PageConfig:
    floors = tuple(floor if item.id == floor.id else item for item in config.floors)
    return replace(config, floors=floors, updated_at=now)


def _resolve_reorder(current: Sequence, requested_ids: Sequence[str]) -> tuple[list, list[str], list[str]]:
    """Split a requested id order into (items in order, unknown/repeated ids, omitted ids)."""
    by_id = {item.id: item for item in current}
    seen: set[str] = set()
    ordered = []
    dropped: list[str] = []
    for item_id in requested_ids:
        item = by_id.get(item_id)
        if item is None or item_id in seen:
            dropped.append(str(item_id))
            continue
        seen.add(item_id)
        ordered.append(item)
    omitted = [item.id for item in current if item.id not in seen]
    return ordered, dropped, omitted


def _check_invariants(config: PageConfig) -> None:
    if not is_dense([floor.priority for floor in config.floors]):
        raise PageStoreInvariantError(f"floor priorities not dense for channel={config.channel}")
    for floor in config.floors:
        if not is_dense([image.order for image in floor.images]):
            raise PageStoreInvariantError(f"image orders not dense for floor_id={floor.id}")


def _repair_loaded(configs: Sequence[PageConfig]) -> tuple[PageConfig, ...]:
    """Keep one config per channel, one floor per id and one image per id within
    a floor, then close any priority/order gaps in loaded data."""
    repaired: list[PageConfig] = []
    seen: set[str] = set()
    for config in configs:
        if config.channel in seen:
            logger.warning("PageStore dropped duplicate page config channel=%s id=%s", config.channel, config.id)
            continue
        seen.add(config.channel)
        unique_floors = []
        for floor in _first_by_id(sort_by_priority(config.floors), f"floor channel={config.channel}"):
            images = _first_by_id(sort_by_order(floor.images), f"image floor_id={floor.id}")
            unique_floors.append(replace(floor, images=renumber_orders(images)))
        floors = renumber_priorities(unique_floors)
        if floors != config.floors:
            logger.info("PageStore renumbered loaded ordering channel=%s", config.channel)
        repaired.append(replace(config, floors=floors))
    return tuple(repaired)


def _first_by_id(items: Sequence, label: str) -> list:
    kept = []
    seen: set[str] = set()
    for item in items:
        if item.id in seen:
            logger.warning("PageStore dropped duplicate %s id=%s", label, item.id)
            continue
        seen.add(item.id)
        kept.append(item)
    return kept
