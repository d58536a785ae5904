from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from floor_config.page_store import LocalSnapshotStore
from floor_config.page_store.cli import EXIT_OK, EXIT_REJECTED, main
from floor_config.page_store.config import build_store_from_profile, load_profile


def _write_profile(tmp_path: Path, **overrides: object) -> Path:
    wiring: dict[str, object] = {
        "snapshot_root": str(tmp_path / "snapshots"),
        "snapshot_key": "floor-storage.json",
        "reorder_policy": "drop_omitted",
        "metrics_path": str(tmp_path / "metrics" / "last_metrics.json"),
    }
    wiring.update(overrides)
    lines = ["profile_id: test", "page_store:"]
    for key, value in wiring.items():
        lines.append(f"  {key}: {json.dumps(value)}")
    path = tmp_path / "profile.yaml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, object]:
    exit_code = main(list(argv))
    out = capsys.readouterr().out
    return exit_code, json.loads(out)


def test_phase7_profile_expands_environment_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "profile.yaml"
    path.write_text(
        "profile_id: dev\n"
        "page_store:\n"
        "  snapshot_root: ${FLOOR_TEST_ROOT:-runs/default}\n"
        "  s3_region: ${FLOOR_TEST_REGION:-eu-west-2}\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("FLOOR_TEST_ROOT", raising=False)
    monkeypatch.setenv("FLOOR_TEST_REGION", "us-east-1")
    profile = load_profile(path)
    assert profile.profile_id == "dev"
    assert profile.page_store.snapshot_root == "runs/default"
    assert profile.page_store.s3_region == "us-east-1"
    assert profile.page_store.reorder_policy == "drop_omitted"
    assert profile.page_store.seed_validity_days == 30


def test_phase7_profile_missing_required_variable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FLOOR_TEST_REQUIRED", raising=False)
    path = tmp_path / "profile.yaml"
    path.write_text("page_store:\n  snapshot_root: ${FLOOR_TEST_REQUIRED}\n", encoding="utf-8")
    with pytest.raises(ValueError, match="FLOOR_TEST_REQUIRED"):
        load_profile(path)


def test_phase7_profile_rejects_invalid_wiring(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_profile(_write_profile(tmp_path, reorder_policy="shuffle"))
    with pytest.raises(ValidationError):
        load_profile(_write_profile(tmp_path, seed_validity_days=0))


def test_phase7_store_from_profile_uses_wiring(tmp_path: Path) -> None:
    profile = load_profile(_write_profile(tmp_path, reorder_policy="reject_partial", copy_suffix=" v2"))
    store = build_store_from_profile(profile)
    assert isinstance(store.snapshot_store, LocalSnapshotStore)
    assert store.snapshot_store.path == tmp_path / "snapshots" / "floor-storage.json"
    assert store.reorder_policy == "reject_partial"
    assert store.copy_suffix == " v2"
    assert store.metrics.store_id == "page_store::test"


def test_phase7_cli_mutations_persist_between_runs(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    profile = str(_write_profile(tmp_path))
    exit_code, shown = _run(capsys, "show", "--profile", profile, "--channel", "web")
    assert exit_code == EXIT_OK
    assert shown["pageName"] == "Online Banking Home"  # type: ignore[index]

    exit_code, added = _run(
        capsys,
        "add-floor",
        "--profile",
        profile,
        "--channel",
        "web",
        "--name",
        "Wealth week",
        "--type",
        "product",
        "--segment",
        "vip",
        "--segment",
        "new",
    )
    assert exit_code == EXIT_OK
    assert added["status"] == "APPLIED"  # type: ignore[index]
    floor_id = added["floor_id"]  # type: ignore[index]

    exit_code, image = _run(
        capsys,
        "add-image",
        "--profile",
        profile,
        "--channel",
        "web",
        "--floor-id",
        floor_id,
        "--url",
        "https://cdn.example.com/w.png",
        "--link-url",
        "https://example.com/wealth",
    )
    assert exit_code == EXIT_OK
    assert image["image_id"]  # type: ignore[index]

    exit_code, floors = _run(capsys, "floors", "--profile", profile, "--channel", "web", "--segment", "vip")
    assert [floor["priority"] for floor in floors] == [1, 2]  # type: ignore[union-attr]
    assert floors[1]["customerSegments"] == ["vip", "new"]  # type: ignore[index]
    assert floors[1]["images"][0]["action"] == {"type": "h5", "url": "https://example.com/wealth"}  # type: ignore[index]

    metrics = json.loads((tmp_path / "metrics" / "last_metrics.json").read_text(encoding="utf-8"))
    assert metrics["store_id"] == "page_store::test"


def test_phase7_cli_noop_and_rejected_exit_codes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    profile = str(_write_profile(tmp_path, reorder_policy="reject_partial"))
    exit_code, noop = _run(capsys, "delete-floor", "--profile", profile, "--floor-id", "missing")
    assert exit_code == EXIT_OK
    assert noop["status"] == "NOOP"  # type: ignore[index]
    assert noop["reason_code"] == "FLOOR_NOT_FOUND"  # type: ignore[index]

    exit_code, rejected = _run(capsys, "reorder-floors", "--profile", profile, "ghost")
    assert exit_code == EXIT_REJECTED
    assert rejected["status"] == "REJECTED"  # type: ignore[index]
    assert rejected["reason_code"] == "REORDER_PARTIAL_REJECTED"  # type: ignore[index]


def test_phase7_cli_health_and_preview(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    profile = str(_write_profile(tmp_path))
    exit_code, health = _run(capsys, "health", "--profile", profile)
    assert exit_code == EXIT_OK
    assert health["health_state"] == "GREEN"  # type: ignore[index]

    exit_code, preview = _run(capsys, "preview", "--profile", profile, "--segment", "vip")
    assert exit_code == EXIT_OK
    assert preview["channel_label"] == "Mobile Banking"  # type: ignore[index]
    assert [floor["name"] for floor in preview["floors"]] == ["Spring Festival Promotion"]  # type: ignore[index]

    with pytest.raises(SystemExit):
        main(["preview", "--profile", profile, "--at", "whenever"])


def test_phase7_cli_live_preview_hides_expired_floors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    profile = str(_write_profile(tmp_path))
    _run(
        capsys,
        "add-floor",
        "--profile",
        profile,
        "--name",
        "Last year",
        "--start-time",
        "2000-01-01 00:00:00",
        "--end-time",
        "2000-01-31 00:00:00",
    )
    _, editor = _run(capsys, "preview", "--profile", profile)
    assert [floor["name"] for floor in editor["floors"]] == ["Spring Festival Promotion", "Last year"]  # type: ignore[index]

    _, live = _run(capsys, "preview", "--profile", profile, "--live")
    assert [floor["name"] for floor in live["floors"]] == ["Spring Festival Promotion"]  # type: ignore[index]
