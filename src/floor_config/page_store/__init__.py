"""Page store: per-channel floor and floor image configuration."""

from .contracts import (
    ACTION_TYPES,
    CHANNELS,
    CUSTOMER_SEGMENTS,
    FLOOR_TYPES,
    STATUSES,
    ActionConfig,
    Floor,
    FloorFormData,
    FloorImage,
    FloorImageFormData,
    PageConfig,
    PageStoreContractError,
    StrategyConfig,
    TimeRange,
    TrackingConfig,
)
from .observability import PageStoreMetrics, build_health_payload
from .segments import EvaluationContext, filter_floors_by_segment, floor_matches_segment, visible_floors
from .snapshots import (
    InMemorySnapshotStore,
    LocalSnapshotStore,
    S3SnapshotStore,
    SnapshotFormatError,
    SnapshotStore,
    build_snapshot_store,
)
from .store import (
    MUTATION_APPLIED,
    MUTATION_NOOP,
    MUTATION_REJECTED,
    REASON_CHANNEL_NOT_FOUND,
    REASON_FLOOR_NOT_FOUND,
    REASON_IMAGE_NOT_FOUND,
    REASON_REORDER_OMITTED_DROPPED,
    REASON_REORDER_PARTIAL_REJECTED,
    REORDER_DROP_OMITTED,
    REORDER_REJECT_PARTIAL,
    FloorConfigStore,
    FloorMutationResult,
    PageStoreInvariantError,
)

__all__ = [
    "ACTION_TYPES",
    "CHANNELS",
    "CUSTOMER_SEGMENTS",
    "FLOOR_TYPES",
    "MUTATION_APPLIED",
    "MUTATION_NOOP",
    "MUTATION_REJECTED",
    "REASON_CHANNEL_NOT_FOUND",
    "REASON_FLOOR_NOT_FOUND",
    "REASON_IMAGE_NOT_FOUND",
    "REASON_REORDER_OMITTED_DROPPED",
    "REASON_REORDER_PARTIAL_REJECTED",
    "REORDER_DROP_OMITTED",
    "REORDER_REJECT_PARTIAL",
    "STATUSES",
    "ActionConfig",
    "EvaluationContext",
    "Floor",
    "FloorConfigStore",
    "FloorFormData",
    "FloorImage",
    "FloorImageFormData",
    "FloorMutationResult",
    "InMemorySnapshotStore",
    "LocalSnapshotStore",
    "PageConfig",
    "PageStoreContractError",
    "PageStoreInvariantError",
    "PageStoreMetrics",
    "S3SnapshotStore",
    "SnapshotFormatError",
    "SnapshotStore",
    "StrategyConfig",
    "TimeRange",
    "TrackingConfig",
    "build_health_payload",
    "build_snapshot_store",
    "filter_floors_by_segment",
    "floor_matches_segment",
    "visible_floors",
]
