"""Configuration loader for page store profiles."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from .observability import PageStoreMetrics
from .snapshots import DEFAULT_SNAPSHOT_KEY, build_snapshot_store
from .store import (
    DEFAULT_COPY_SUFFIX,
    DEFAULT_SEED_VALIDITY_DAYS,
    REORDER_DROP_OMITTED,
    REORDER_POLICIES,
    FloorConfigStore,
)

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class PageStoreWiring(BaseModel):
    snapshot_root: str = "runs/floor_config"
    snapshot_key: str = DEFAULT_SNAPSHOT_KEY
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    reorder_policy: str = REORDER_DROP_OMITTED
    seed_validity_days: int = DEFAULT_SEED_VALIDITY_DAYS
    copy_suffix: str = DEFAULT_COPY_SUFFIX
    metrics_path: str | None = None
    log_path: str | None = None

    @field_validator("reorder_policy")
    @classmethod
    def _known_policy(cls, value: str) -> str:
        if value not in REORDER_POLICIES:
            raise ValueError(f"reorder_policy must be one of {sorted(REORDER_POLICIES)}")
        return value

    @field_validator("seed_validity_days")
    @classmethod
    def _positive_days(cls, value: int) -> int:
        if value < 1:
            raise ValueError("seed_validity_days must be >= 1")
        return value


class PageStoreProfile(BaseModel):
    profile_id: str = "local"
    page_store: PageStoreWiring = PageStoreWiring()


def _expand_str(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token:
            key, default = token.split(":-", 1)
            actual = os.getenv(key, "")
            return actual if actual.strip() else default
        actual = os.getenv(token, "")
        if not actual.strip():
            raise ValueError(f"missing environment variable: {token}")
        return actual

    return _VAR_PATTERN.sub(replacer, value)


def _expand_payload(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_str(value)
    if isinstance(value, list):
        return [_expand_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _expand_payload(item) for key, item in value.items()}
    return value


def load_profile(path: Path) -> PageStoreProfile:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    expanded = _expand_payload(data)
    return PageStoreProfile(**expanded)


def build_store_from_profile(profile: PageStoreProfile) -> FloorConfigStore:
    wiring = profile.page_store
    snapshot_store = build_snapshot_store(
        wiring.snapshot_root,
        wiring.snapshot_key,
        s3_endpoint_url=wiring.s3_endpoint_url,
        s3_region=wiring.s3_region,
    )
    return FloorConfigStore(
        snapshot_store,
        metrics=PageStoreMetrics(store_id=f"page_store::{profile.profile_id}"),
        reorder_policy=wiring.reorder_policy,
        seed_validity_days=wiring.seed_validity_days,
        copy_suffix=wiring.copy_suffix,
    )
