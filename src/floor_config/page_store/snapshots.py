"""Snapshot persistence for page configs (local file, S3-compatible, in-memory)."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence
from urllib.parse import urlparse

import yaml
from jsonschema import Draft202012Validator

from .contracts import PageConfig, PageStoreContractError


logger = logging.getLogger("floor_config.page_store.snapshots")

SNAPSHOT_VERSION = 1
DEFAULT_SNAPSHOT_KEY = "floor-storage.json"
SNAPSHOT_SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "page_config_snapshot.schema.yaml"


class SnapshotFormatError(ValueError):
    """Raised when a persisted snapshot cannot be read back into page configs."""


class SnapshotStore(Protocol):
    def load(self) -> list[PageConfig] | None:
        ...

    def save(self, page_configs: Sequence[PageConfig]) -> None:
        ...


class SnapshotValidator:
    def __init__(self, schema_path: Path = SNAPSHOT_SCHEMA_PATH) -> None:
        self.schema_path = schema_path
        self._validator: Draft202012Validator | None = None

    def validate(self, document: Mapping[str, Any]) -> None:
        validator = self._load()
        errors = sorted(validator.iter_errors(dict(document)), key=lambda e: [str(part) for part in e.path])
        if errors:
            messages = "; ".join(
                f"{'/'.join(str(part) for part in error.path) or '<root>'}: {error.message}" for error in errors
            )
            raise SnapshotFormatError(f"snapshot schema validation failed: {messages}")

    def _load(self) -> Draft202012Validator:
        if self._validator is None:
            schema = yaml.safe_load(self.schema_path.read_text(encoding="utf-8"))
            self._validator = Draft202012Validator(schema)
        return self._validator


_DEFAULT_VALIDATOR = SnapshotValidator()


def snapshot_document(page_configs: Sequence[PageConfig]) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "pageConfigs": [config.as_dict() for config in page_configs],
    }


def page_configs_from_document(
    document: Any,
    *,
    validator: SnapshotValidator | None = None,
) -> list[PageConfig]:
    """Decode a snapshot, accepting the current envelope, the browser-persisted
    ``{"state": {...}}`` envelope and a bare list of page configs."""
    normalized = _normalize_envelope(document)
    (validator or _DEFAULT_VALIDATOR).validate(normalized)
    try:
        return [PageConfig.from_payload(item) for item in normalized["pageConfigs"]]
    except PageStoreContractError as exc:
        raise SnapshotFormatError(str(exc)) from exc


def _normalize_envelope(document: Any) -> dict[str, Any]:
    if isinstance(document, list):
        return {"version": 0, "pageConfigs": document}
    if not isinstance(document, Mapping):
        raise SnapshotFormatError("snapshot must be a mapping or a list")
    state = document.get("state")
    if isinstance(state, Mapping) and "pageConfigs" in state:
        return {"version": int(document.get("version") or 0), "pageConfigs": state["pageConfigs"]}
    if "pageConfigs" not in document:
        raise SnapshotFormatError("snapshot missing pageConfigs")
    return dict(document)


def _encode(page_configs: Sequence[PageConfig]) -> str:
    return json.dumps(snapshot_document(page_configs), sort_keys=True, ensure_ascii=True, separators=(",", ":")) + "\n"


def _decode(text: str, location: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotFormatError(f"snapshot at {location} is not valid JSON") from exc


class LocalSnapshotStore:
    def __init__(self, root: Path, key: str = DEFAULT_SNAPSHOT_KEY) -> None:
        self.root = Path(root)
        self.key = key

    @property
    def path(self) -> Path:
        return self.root / self.key

    def load(self) -> list[PageConfig] | None:
        path = self.path
        if not path.exists():
            return None
        return page_configs_from_document(_decode(path.read_text(encoding="utf-8"), str(path)))

    def save(self, page_configs: Sequence[PageConfig]) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(_encode(page_configs), encoding="utf-8")
        os.replace(tmp_path, path)


class S3SnapshotStore:
    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        key: str = DEFAULT_SNAPSHOT_KEY,
        *,
        endpoint_url: str | None = None,
        region_name: str | None = None,
    ) -> None:
        import boto3

        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.key = key
        self._client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region_name)

    @property
    def object_key(self) -> str:
        if not self.prefix:
            return self.key
        return f"{self.prefix}/{self.key}"

    def load(self) -> list[PageConfig] | None:
        from botocore.exceptions import ClientError

        key = self.object_key
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code in {"404", "NoSuchKey", "NotFound"}:
                return None
            raise
        body = response["Body"].read().decode("utf-8")
        return page_configs_from_document(_decode(body, f"s3://{self.bucket}/{key}"))

    def save(self, page_configs: Sequence[PageConfig]) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=self.object_key,
            Body=_encode(page_configs).encode("utf-8"),
            ContentType="application/json",
        )


class InMemorySnapshotStore:
    def __init__(self, document: Any = None) -> None:
        self.document = document
        self.save_count = 0

    def load(self) -> list[PageConfig] | None:
        if self.document is None:
            return None
        return page_configs_from_document(self.document)

    def save(self, page_configs: Sequence[PageConfig]) -> None:
        # Round-trip through JSON so nothing aliases the live tree.
        self.document = json.loads(_encode(page_configs))
        self.save_count += 1


def build_snapshot_store(
    root: str,
    key: str = DEFAULT_SNAPSHOT_KEY,
    *,
    s3_endpoint_url: str | None = None,
    s3_region: str | None = None,
) -> SnapshotStore:
    if root.startswith("s3://"):
        parsed = urlparse(root)
        bucket = parsed.netloc
        prefix = parsed.path.lstrip("/")
        if not bucket:
            raise ValueError("S3 snapshot_root missing bucket")
        return S3SnapshotStore(
            bucket=bucket,
            prefix=prefix,
            key=key,
            endpoint_url=s3_endpoint_url,
            region_name=s3_region,
        )
    if root.startswith("memory://"):
        return InMemorySnapshotStore()
    logger.debug("page store snapshots at %s", Path(root) / key)
    return LocalSnapshotStore(Path(root), key)
