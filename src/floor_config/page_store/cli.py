"""CLI for inspecting and editing page store snapshots."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Sequence

from .config import build_store_from_profile, load_profile
from .contracts import CHANNELS, CUSTOMER_SEGMENTS, FLOOR_TYPES, STATUSES, FloorFormData, FloorImageFormData
from .ids import parse_timestamp
from .logging_utils import configure_logging
from .observability import build_health_payload
from .preview import build_channel_preview
from .segments import EvaluationContext
from .store import MUTATION_REJECTED, FloorConfigStore, FloorMutationResult


logger = logging.getLogger("floor_config.page_store.cli")

EXIT_OK = 0
EXIT_REJECTED = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    base = argparse.ArgumentParser(add_help=False)
    base.add_argument("--profile", required=True, help="Path to page store profile YAML")
    base.add_argument("--channel", choices=list(CHANNELS), default="mobile")

    parser = argparse.ArgumentParser(description="Floor configuration page store CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("show", parents=[base], help="Print the page config for a channel")

    floors = subparsers.add_parser("floors", parents=[base], help="List floors in priority order")
    floors.add_argument("--segment", choices=sorted(CUSTOMER_SEGMENTS), default=None)

    for name in ("add-floor", "update-floor"):
        floor_parser = subparsers.add_parser(name, parents=[base], help=f"{name.replace('-', ' ')}")
        if name == "update-floor":
            floor_parser.add_argument("--floor-id", required=True)
        floor_parser.add_argument("--name", required=True)
        floor_parser.add_argument("--type", choices=sorted(FLOOR_TYPES), default="banner")
        floor_parser.add_argument("--segment", action="append", choices=sorted(CUSTOMER_SEGMENTS))
        floor_parser.add_argument("--start-time", default="")
        floor_parser.add_argument("--end-time", default="")
        floor_parser.add_argument("--status", choices=sorted(STATUSES), default="active")

    for name in ("delete-floor", "duplicate-floor"):
        target = subparsers.add_parser(name, parents=[base])
        target.add_argument("--floor-id", required=True)

    reorder_floors = subparsers.add_parser("reorder-floors", parents=[base])
    reorder_floors.add_argument("floor_ids", nargs="+")

    add_image = subparsers.add_parser("add-image", parents=[base])
    add_image.add_argument("--floor-id", required=True)
    add_image.add_argument("--url", required=True)
    add_image.add_argument("--alt", default="")
    add_image.add_argument("--link-url", default=None)
    add_image.add_argument("--action", default=None, help="Action config as JSON")

    delete_image = subparsers.add_parser("delete-image", parents=[base])
    delete_image.add_argument("--floor-id", required=True)
    delete_image.add_argument("--image-id", required=True)

    reorder_images = subparsers.add_parser("reorder-images", parents=[base])
    reorder_images.add_argument("--floor-id", required=True)
    reorder_images.add_argument("image_ids", nargs="+")

    preview = subparsers.add_parser("preview", parents=[base])
    preview.add_argument("--segment", choices=sorted(CUSTOMER_SEGMENTS), default="all")
    preview.add_argument("--at", default=None, help="Evaluate time windows at this timestamp")
    preview.add_argument("--include-inactive", action="store_true")
    preview.add_argument("--live", action="store_true", help="Apply status and time window at the current time")

    subparsers.add_parser("health", parents=[base])

    return parser.parse_args(argv)


def _floor_form(args: argparse.Namespace) -> FloorFormData:
    return FloorFormData.from_payload(
        {
            "name": args.name,
            "type": args.type,
            "customerSegments": args.segment or ["all"],
            "startTime": args.start_time,
            "endTime": args.end_time,
            "status": args.status,
        }
    )


def _image_form(args: argparse.Namespace) -> FloorImageFormData:
    payload: dict[str, Any] = {"url": args.url, "alt": args.alt, "linkUrl": args.link_url}
    if args.action:
        payload["action"] = json.loads(args.action)
    return FloorImageFormData.from_payload(payload)


def run(args: argparse.Namespace, store: FloorConfigStore) -> tuple[int, Any]:
    channel = args.channel
    command = args.command
    if command == "show":
        config = store.get_page_config(channel)
        return EXIT_OK, config.as_dict() if config is not None else None
    if command == "floors":
        if args.segment:
            floors = store.get_floors_by_segment(channel, args.segment)
        else:
            floors = store.get_floors(channel)
        return EXIT_OK, [floor.as_dict() for floor in floors]
    if command == "preview":
        context = None
        if args.at or args.include_inactive or args.live:
            at = parse_timestamp(args.at) if args.at else None
            if args.at and at is None:
                raise SystemExit(f"invalid --at timestamp: {args.at}")
            if at is None and args.live:
                at = store.now()
            context = EvaluationContext(segment=args.segment, at=at, include_inactive=args.include_inactive)
        return EXIT_OK, build_channel_preview(store, channel, args.segment, context)
    if command == "health":
        metrics = store.metrics
        return EXIT_OK, build_health_payload(store_id=metrics.store_id, counters=metrics.counters)

    result: FloorMutationResult
    if command == "add-floor":
        result = store.add_floor(channel, _floor_form(args))
    elif command == "update-floor":
        result = store.update_floor(channel, args.floor_id, _floor_form(args))
    elif command == "delete-floor":
        result = store.delete_floor(channel, args.floor_id)
    elif command == "duplicate-floor":
        result = store.duplicate_floor(channel, args.floor_id)
    elif command == "reorder-floors":
        result = store.reorder_floors(channel, args.floor_ids)
    elif command == "add-image":
        result = store.add_image_to_floor(channel, args.floor_id, _image_form(args))
    elif command == "delete-image":
        result = store.delete_floor_image(channel, args.floor_id, args.image_id)
    elif command == "reorder-images":
        result = store.reorder_floor_images(channel, args.floor_id, args.image_ids)
    else:
        raise SystemExit(f"unknown command: {command}")
    exit_code = EXIT_REJECTED if result.status == MUTATION_REJECTED else EXIT_OK
    return exit_code, result.as_dict()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    profile = load_profile(Path(args.profile))
    configure_logging(level=logging.WARNING, log_path=profile.page_store.log_path)
    store = build_store_from_profile(profile)
    exit_code, payload = run(args, store)
    print(json.dumps(payload, sort_keys=True, ensure_ascii=False, indent=2))
    metrics_path = profile.page_store.metrics_path
    if metrics_path:
        store.metrics.export(Path(metrics_path))
    logger.debug("PageStore CLI command=%s exit_code=%s", args.command, exit_code)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
