"""Flask service wrapper exposing the page store to editor and preview UIs."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from flask import Flask, jsonify, request

from .config import build_store_from_profile, load_profile
from .contracts import CHANNELS, FloorFormData, FloorImageFormData, PageStoreContractError
from .ids import parse_timestamp
from .logging_utils import configure_logging
from .observability import build_health_payload
from .preview import build_channel_preview
from .segments import EvaluationContext
from .store import MUTATION_REJECTED, REASON_CHANNEL_NOT_FOUND, FloorConfigStore, FloorMutationResult


def create_app(profile_path: str | None = None, *, store: FloorConfigStore | None = None) -> Flask:
    if store is None:
        if profile_path is None:
            raise ValueError("profile_path or store is required")
        profile = load_profile(Path(profile_path))
        configure_logging(log_path=profile.page_store.log_path)
        store = build_store_from_profile(profile)
    page_store = store

    app = Flask(__name__)

    @app.errorhandler(PageStoreContractError)
    def contract_error(exc: PageStoreContractError) -> Any:
        return jsonify({"error": "CONTRACT_INVALID", "detail": str(exc)}), 400

    @app.get("/channels/<channel>")
    def get_page_config(channel: str) -> Any:
        config = page_store.get_page_config(channel)
        if config is None:
            return _channel_not_found(channel)
        return jsonify(config.as_dict())

    @app.get("/channels/<channel>/floors")
    def get_floors(channel: str) -> Any:
        if channel not in CHANNELS:
            return _channel_not_found(channel)
        segment = request.args.get("segment")
        if segment:
            floors = page_store.get_floors_by_segment(channel, segment)
        else:
            floors = page_store.get_floors(channel)
        return jsonify([floor.as_dict() for floor in floors])

    @app.get("/channels/<channel>/floors/<floor_id>")
    def get_floor(channel: str, floor_id: str) -> Any:
        if channel not in CHANNELS:
            return _channel_not_found(channel)
        floor = page_store.get_floor_by_id(channel, floor_id)
        if floor is None:
            return jsonify({"error": "FLOOR_NOT_FOUND", "floor_id": floor_id}), 404
        return jsonify(floor.as_dict())

    @app.post("/channels/<channel>/floors")
    def add_floor(channel: str) -> Any:
        form = FloorFormData.from_payload(request.get_json(force=True) or {})
        return _result(page_store.add_floor(channel, form))

    @app.put("/channels/<channel>/floors/<floor_id>")
    def update_floor(channel: str, floor_id: str) -> Any:
        form = FloorFormData.from_payload(request.get_json(force=True) or {})
        return _result(page_store.update_floor(channel, floor_id, form))

    @app.delete("/channels/<channel>/floors/<floor_id>")
    def delete_floor(channel: str, floor_id: str) -> Any:
        return _result(page_store.delete_floor(channel, floor_id))

    @app.post("/channels/<channel>/floors/<floor_id>/duplicate")
    def duplicate_floor(channel: str, floor_id: str) -> Any:
        return _result(page_store.duplicate_floor(channel, floor_id))

    @app.post("/channels/<channel>/floors/reorder")
    def reorder_floors(channel: str) -> Any:
        payload = request.get_json(force=True) or {}
        return _result(page_store.reorder_floors(channel, _id_list(payload, "floorIds")))

    @app.post("/channels/<channel>/floors/<floor_id>/images")
    def add_image(channel: str, floor_id: str) -> Any:
        form = FloorImageFormData.from_payload(request.get_json(force=True) or {})
        return _result(page_store.add_image_to_floor(channel, floor_id, form))

    @app.put("/channels/<channel>/floors/<floor_id>/images/<image_id>")
    def update_image(channel: str, floor_id: str, image_id: str) -> Any:
        form = FloorImageFormData.from_payload(request.get_json(force=True) or {})
        return _result(page_store.update_floor_image(channel, floor_id, image_id, form))

    @app.delete("/channels/<channel>/floors/<floor_id>/images/<image_id>")
    def delete_image(channel: str, floor_id: str, image_id: str) -> Any:
        return _result(page_store.delete_floor_image(channel, floor_id, image_id))

    @app.post("/channels/<channel>/floors/<floor_id>/images/reorder")
    def reorder_images(channel: str, floor_id: str) -> Any:
        payload = request.get_json(force=True) or {}
        return _result(page_store.reorder_floor_images(channel, floor_id, _id_list(payload, "imageIds")))

    @app.get("/channels/<channel>/preview")
    def preview(channel: str) -> Any:
        if channel not in CHANNELS:
            return _channel_not_found(channel)
        segment = request.args.get("segment") or "all"
        context = _context_from_args(segment, page_store)
        return jsonify(build_channel_preview(page_store, channel, segment, context))

    @app.get("/health")
    def health() -> Any:
        metrics = page_store.metrics
        return jsonify(build_health_payload(store_id=metrics.store_id, counters=metrics.counters))

    return app


def _result(result: FloorMutationResult) -> Any:
    if result.reason_code == REASON_CHANNEL_NOT_FOUND:
        status_code = 404
    elif result.status == MUTATION_REJECTED:
        status_code = 409
    else:
        status_code = 200
    return jsonify(result.as_dict()), status_code


def _channel_not_found(channel: str) -> Any:
    return jsonify({"error": "CHANNEL_NOT_FOUND", "channel": channel}), 404


def _id_list(payload: Any, field_name: str) -> list[str]:
    ids = payload.get(field_name) if isinstance(payload, dict) else None
    if not isinstance(ids, list):
        raise PageStoreContractError(f"{field_name} must be a list")
    return [str(item) for item in ids]


def _context_from_args(segment: str, store: FloorConfigStore) -> EvaluationContext | None:
    at_raw = request.args.get("at")
    include_inactive = request.args.get("include_inactive") in {"1", "true", "yes"}
    live = request.args.get("live") is not None
    if not at_raw and not include_inactive and not live:
        return None
    at: datetime | None = parse_timestamp(at_raw) if at_raw else None
    if at_raw and at is None:
        raise PageStoreContractError("at must be a timestamp")
    if at is None and live:
        at = store.now()
    return EvaluationContext(segment=segment, at=at, include_inactive=include_inactive)
