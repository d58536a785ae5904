from __future__ import annotations

import json
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from floor_config.page_store import (
    FloorConfigStore,
    FloorFormData,
    FloorImageFormData,
    InMemorySnapshotStore,
    LocalSnapshotStore,
    S3SnapshotStore,
    SnapshotFormatError,
    build_snapshot_store,
)
from floor_config.page_store.snapshots import page_configs_from_document, snapshot_document


def _legacy_browser_document() -> dict[str, object]:
    return {
        "state": {
            "pageConfigs": [
                {
                    "id": "page_mobile",
                    "channel": "mobile",
                    "pageName": "Mobile Banking Home",
                    "floors": [
                        {
                            "id": "floor_b",
                            "name": "second",
                            "type": "promotion",
                            "images": [
                                {"id": "img_2", "url": "2.png", "linkUrl": "https://example.com/2", "alt": "", "order": 3},
                                {"id": "img_1", "url": "1.png", "linkUrl": "", "alt": "", "order": 1},
                            ],
                            "customerSegments": ["vip"],
                            "priority": 3,
                            "startTime": "2026-02-01 00:00:00",
                            "endTime": "2026-03-01 00:00:00",
                            "status": "active",
                            "createdAt": "2026-01-01 00:00:00",
                            "updatedAt": "2026-01-01 00:00:00",
                        },
                        {
                            "id": "floor_a",
                            "name": "first",
                            "type": "banner",
                            "images": [],
                            "customerSegments": ["all"],
                            "priority": 1,
                            "startTime": "2026-02-01 00:00:00",
                            "endTime": "2026-03-01 00:00:00",
                            "status": "inactive",
                            "createdAt": "2026-01-01 00:00:00",
                            "updatedAt": "2026-01-01 00:00:00",
                        },
                    ],
                    "createdAt": "2026-01-01 00:00:00",
                    "updatedAt": "2026-01-01 00:00:00",
                }
            ]
        },
        "version": 0,
    }


def test_phase5_local_snapshot_store_round_trip(tmp_path: Path) -> None:
    snapshots = LocalSnapshotStore(tmp_path / "snapshots")
    assert snapshots.load() is None

    store = FloorConfigStore(snapshots)
    store.page_configs()
    assert snapshots.path.exists()
    assert not snapshots.path.with_suffix(".json.tmp").exists()
    document = json.loads(snapshots.path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert [config["channel"] for config in document["pageConfigs"]] == ["mobile", "web"]

    loaded = snapshots.load()
    assert loaded is not None
    assert list(store.page_configs()) == loaded


def test_phase5_legacy_document_is_migrated_and_gaps_closed() -> None:
    store = FloorConfigStore(InMemorySnapshotStore(_legacy_browser_document()))
    floors = store.get_floors("mobile")
    assert [(floor.id, floor.priority) for floor in floors] == [("floor_a", 1), ("floor_b", 2)]
    images = floors[1].images
    assert [(image.id, image.order) for image in images] == [("img_1", 1), ("img_2", 2)]
    assert images[0].action.type == "none"
    assert images[1].action.type == "h5"
    assert images[1].link_url == "https://example.com/2"


def test_phase5_bare_list_document_is_accepted() -> None:
    configs = page_configs_from_document(_legacy_browser_document()["state"]["pageConfigs"])  # type: ignore[index]
    assert [config.id for config in configs] == ["page_mobile"]


def test_phase5_duplicate_channel_configs_keep_first() -> None:
    document = _legacy_browser_document()
    pages = document["state"]["pageConfigs"]  # type: ignore[index]
    duplicate = dict(pages[0])
    duplicate["id"] = "page_mobile_dup"
    pages.append(duplicate)
    store = FloorConfigStore(InMemorySnapshotStore(document))
    config = store.get_page_config("mobile")
    assert config is not None
    assert config.id == "page_mobile"


def test_phase5_duplicate_floor_ids_keep_first() -> None:
    document = _legacy_browser_document()
    floors = document["state"]["pageConfigs"][0]["floors"]  # type: ignore[index]
    template = floors[1]
    floors[:] = [
        dict(template, id="dup", name="kept", priority=1),
        dict(template, id="dup", name="dropped", priority=2),
        dict(template, id="x", name="x", priority=3),
    ]

    store = FloorConfigStore(InMemorySnapshotStore(document))
    assert [(floor.id, floor.name, floor.priority) for floor in store.get_floors("mobile")] == [
        ("dup", "kept", 1),
        ("x", "x", 2),
    ]

    updated = store.update_floor(
        "mobile",
        "dup",
        FloorFormData(name="renamed", type="ad", customer_segments=("vip",), start_time="", end_time="", status="active"),
    )
    assert updated.status == "APPLIED"
    assert [floor.priority for floor in store.get_floors("mobile")] == [1, 2]

    reordered = store.reorder_floors("mobile", ["x", "dup"])
    assert reordered.status == "APPLIED"
    assert reordered.dropped_ids == ()
    assert [(floor.id, floor.priority) for floor in store.get_floors("mobile")] == [("x", 1), ("dup", 2)]


def test_phase5_duplicate_image_ids_within_a_floor_keep_first() -> None:
    document = _legacy_browser_document()
    images = document["state"]["pageConfigs"][0]["floors"][0]["images"]  # type: ignore[index]
    images.append({"id": "img_1", "url": "dup.png", "linkUrl": "", "alt": "", "order": 2})
    store = FloorConfigStore(InMemorySnapshotStore(document))
    floor = store.get_floor_by_id("mobile", "floor_b")
    assert floor is not None
    assert [(image.id, image.url, image.order) for image in floor.images] == [
        ("img_1", "1.png", 1),
        ("img_2", "2.png", 2),
    ]
    result = store.update_floor_image("mobile", "floor_b", "img_1", FloorImageFormData(url="new.png", alt="n"))
    assert result.status == "APPLIED"
    assert [image.order for image in store.get_floor_by_id("mobile", "floor_b").images] == [1, 2]  # type: ignore[union-attr]


def test_phase5_schema_violations_are_rejected() -> None:
    document = _legacy_browser_document()
    document["state"]["pageConfigs"][0]["floors"][0]["type"] = "carousel"  # type: ignore[index]
    with pytest.raises(SnapshotFormatError, match="schema validation failed"):
        page_configs_from_document(document)
    with pytest.raises(SnapshotFormatError, match="pageConfigs"):
        page_configs_from_document({"floors": []})
    with pytest.raises(SnapshotFormatError):
        page_configs_from_document("not a snapshot")


def test_phase5_corrupt_local_snapshot_raises(tmp_path: Path) -> None:
    snapshots = LocalSnapshotStore(tmp_path)
    snapshots.path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SnapshotFormatError, match="not valid JSON"):
        FloorConfigStore(snapshots)


class _FakeBody:
    def __init__(self, content: str) -> None:
        self._content = content

    def read(self) -> bytes:
        return self._content.encode("utf-8")


class _FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[str, str] = {}
        self.put_calls: list[dict[str, object]] = []

    def get_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _FakeBody(self.objects[Key])}

    def put_object(self, **kwargs):
        self.put_calls.append(kwargs)
        self.objects[str(kwargs["Key"])] = bytes(kwargs["Body"]).decode("utf-8")  # type: ignore[arg-type]
        return {}


def test_phase5_s3_snapshot_store_round_trip() -> None:
    snapshots = S3SnapshotStore("bucket", "floor-config/prod")
    fake = _FakeS3Client()
    snapshots._client = fake  # type: ignore[attr-defined]
    assert snapshots.load() is None

    store = FloorConfigStore(snapshots)
    store.get_page_config("web")
    assert fake.put_calls
    assert fake.put_calls[-1]["Bucket"] == "bucket"
    assert fake.put_calls[-1]["Key"] == "floor-config/prod/floor-storage.json"

    loaded = snapshots.load()
    assert loaded is not None
    assert [config.channel for config in loaded] == ["web"]


def test_phase5_s3_access_errors_propagate() -> None:
    snapshots = S3SnapshotStore("bucket")

    class _DeniedClient:
        def get_object(self, Bucket: str, Key: str) -> dict:
            raise ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject")

    snapshots._client = _DeniedClient()  # type: ignore[attr-defined]
    with pytest.raises(ClientError):
        snapshots.load()


def test_phase5_build_snapshot_store_selects_backend(tmp_path: Path) -> None:
    local = build_snapshot_store(str(tmp_path), "custom.json")
    assert isinstance(local, LocalSnapshotStore)
    assert local.path == tmp_path / "custom.json"
    assert isinstance(build_snapshot_store("memory://"), InMemorySnapshotStore)
    s3 = build_snapshot_store("s3://bucket/prefix")
    assert isinstance(s3, S3SnapshotStore)
    assert s3.object_key == "prefix/floor-storage.json"
    with pytest.raises(ValueError, match="bucket"):
        build_snapshot_store("s3:///prefix")


def test_phase5_in_memory_store_does_not_alias_live_tree() -> None:
    snapshots = InMemorySnapshotStore()
    store = FloorConfigStore(snapshots)
    store.page_configs()
    assert snapshots.document == snapshot_document(store.page_configs())
    snapshots.document["pageConfigs"][0]["floors"] = []  # type: ignore[index]
    assert len(store.get_floors("mobile")) == 1
