from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from alien_risk import __version__
from alien_risk.codec import export_document, export_to_file, import_from_file
from alien_risk.config import LOG_LEVELS, ConfigError, load_settings_if_present
from alien_risk.paths import StorePaths, default_data_dir
from alien_risk.query import FilterCriteria, filter_snapshots, search
from alien_risk.risk_level import (
    MAX_RATING,
    MIN_RATING,
    RISK_CATEGORIES,
    RISK_LEVELS,
    category_label,
    level_label,
)
from alien_risk.snapshot import (
    SNAPSHOT_SOURCES,
    RemoteRecord,
    RiskFormData,
    RiskSnapshot,
    SnapshotValidationError,
)
from alien_risk.stats import compute_stats
from alien_risk.storage import PersistenceError
from alien_risk.store import SnapshotStore

logger = logging.getLogger(__name__)

_RATINGS = tuple(range(MIN_RATING, MAX_RATING + 1))


def _non_blank(value: str) -> str:
    if not value.strip():
        raise argparse.ArgumentTypeError("must be non-empty")
    return value


def _store_from_args(args: argparse.Namespace) -> SnapshotStore:
    return SnapshotStore.open(Path(args.data_dir))


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _format_snapshot_line(snapshot: RiskSnapshot) -> str:
    risk = snapshot.risk
    parts = [
        snapshot.id,
        f"level={risk.risk_level}",
        f"score={risk.risk_score}",
        f"category={risk.category}",
        f"source={snapshot.source}",
        f"created_at={snapshot.created_at.isoformat()}",
        f"title={risk.title!r}",
    ]
    if snapshot.tags:
        parts.append(f"tags={','.join(snapshot.tags)}")
    return " ".join(parts)


def _format_snapshot_detail(snapshot: RiskSnapshot) -> str:
    risk = snapshot.risk
    lines = [
        f"id={snapshot.id}",
        f"title={risk.title}",
        f"category={risk.category} ({category_label(risk.category)})",
        f"likelihood={risk.likelihood} impact={risk.impact}",
        f"score={risk.risk_score} level={risk.risk_level} ({level_label(risk.risk_level)})",
        f"source={snapshot.source}",
        f"created_at={snapshot.created_at.isoformat()}",
        f"updated_at={snapshot.updated_at.isoformat()}",
    ]
    if risk.description:
        lines.append(f"description={risk.description}")
    if risk.remote_id:
        lines.append(f"remote_id={risk.remote_id}")
    lines.append(f"tags={','.join(snapshot.tags) if snapshot.tags else '<none>'}")
    lines.append(f"note={snapshot.note or '<none>'}")
    return "\n".join(lines)


def _emit_snapshots(snapshots: list[RiskSnapshot], *, as_json: bool) -> int:
    if as_json:
        _print_json([s.to_json_dict() for s in snapshots])
        return 0
    if not snapshots:
        print("(no snapshots found)")
        return 0
    for s in snapshots:
        print(_format_snapshot_line(s))
    return 0


def _criteria_from_args(args: argparse.Namespace) -> FilterCriteria:
    return FilterCriteria.from_mapping(
        {
            "category": args.category,
            "level": args.level,
            "source": args.source,
            "date_from": args.date_from,
            "date_to": args.date_to,
        }
    )


def _apply_filters(snapshots: list[RiskSnapshot], args: argparse.Namespace) -> list[RiskSnapshot]:
    try:
        return filter_snapshots(snapshots, _criteria_from_args(args))
    except SnapshotValidationError as e:
        raise SystemExit(f"alien-risk: {e}") from e


def _cmd_list(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    return _emit_snapshots(store.list_all(), as_json=bool(args.json))


def _cmd_show(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    snapshot = store.get_by_id(str(args.snapshot_id))
    if snapshot is None:
        print(f"error=not_found id={args.snapshot_id}", file=sys.stderr)
        return 1
    if args.json:
        _print_json(snapshot.to_json_dict())
    else:
        print(_format_snapshot_detail(snapshot))
    return 0


def _cmd_create(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    form = RiskFormData(
        title=str(args.title),
        category=args.category,
        likelihood=int(args.likelihood),
        impact=int(args.impact),
        description=args.description,
    )
    remote_record = RemoteRecord(id=str(args.remote_id)) if args.remote_id else None
    source = args.source or ("remote" if remote_record is not None else "local")
    try:
        snapshot = store.create(
            form,
            source,
            remote_record,
            tags=args.tag or (),
            note=args.note or "",
        )
    except (PersistenceError, SnapshotValidationError) as e:
        raise SystemExit(f"alien-risk: failed to save snapshot: {e}") from e

    if args.json:
        _print_json(snapshot.to_json_dict())
    else:
        print(_format_snapshot_line(snapshot))
    return 0


def _cmd_update(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    patch: dict[str, Any] = {}
    risk_patch: dict[str, Any] = {}
    for field in ("title", "description", "category", "likelihood", "impact"):
        value = getattr(args, field)
        if value is not None:
            risk_patch[field] = value
    if risk_patch:
        patch["risk"] = risk_patch
    if args.note is not None:
        patch["note"] = args.note
    if args.clear_tags:
        patch["tags"] = []
    elif args.tag:
        patch["tags"] = list(args.tag)

    try:
        snapshot = store.update(str(args.snapshot_id), patch)
    except (PersistenceError, SnapshotValidationError) as e:
        raise SystemExit(f"alien-risk: failed to update snapshot: {e}") from e
    if snapshot is None:
        print(f"error=not_found id={args.snapshot_id}", file=sys.stderr)
        return 1

    if args.json:
        _print_json(snapshot.to_json_dict())
    else:
        print(_format_snapshot_line(snapshot))
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    ids = [str(i) for i in args.snapshot_ids]
    if len(ids) == 1:
        deleted = 1 if store.delete(ids[0]) else 0
    else:
        deleted = store.delete_many(ids)
    print(f"deleted={deleted} requested={len(set(ids))}")
    return 0 if deleted else 1


def _cmd_clear(args: argparse.Namespace) -> int:
    if not args.yes:
        raise SystemExit("alien-risk: refusing to clear the store without --yes")
    store = _store_from_args(args)
    store.clear()
    print("cleared=true")
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    results = search(store.list_all(), str(args.query))
    results = _apply_filters(results, args)
    return _emit_snapshots(results, as_json=bool(args.json))


def _cmd_filter(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    results = _apply_filters(store.list_all(), args)
    return _emit_snapshots(results, as_json=bool(args.json))


def _cmd_stats(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    stats = compute_stats(store.list_all())
    if args.json:
        _print_json(stats.to_json_dict())
        return 0

    print(f"total={stats.total} average_risk_score={stats.average_risk_score:.2f}")
    print("by_level " + " ".join(f"{k}={v}" for k, v in stats.by_level.items()))
    print("by_category " + " ".join(f"{k}={v}" for k, v in stats.by_category.items()))
    print("by_source " + " ".join(f"{k}={v}" for k, v in stats.by_source.items()))
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    if args.output == "-":
        print(export_document(store))
        return 0

    now = store.now()
    if args.output:
        output = Path(args.output).expanduser()
    else:
        output = StorePaths(data_dir=Path(args.data_dir)).export_path(day=now)
    try:
        count = export_to_file(store, output, now=now)
    except PersistenceError as e:
        raise SystemExit(f"alien-risk: {e}") from e
    print(f"exported={count} path={output.as_posix()}")
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    store = _store_from_args(args)
    result = import_from_file(store, Path(args.path).expanduser())
    if args.json:
        _print_json(result.to_json_dict())
    else:
        print(
            f"accepted={'true' if result.accepted else 'false'} "
            f"imported={result.imported_count} rejected={len(result.rejections)}"
        )
        for message in result.rejections:
            print(f"- {message}")
    if not result.accepted and result.rejections:
        return 1
    return 0


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--category", choices=RISK_CATEGORIES, default=None)
    parser.add_argument("--level", choices=RISK_LEVELS, default=None)
    parser.add_argument("--source", choices=SNAPSHOT_SOURCES, default=None)
    parser.add_argument(
        "--from",
        dest="date_from",
        default=None,
        help="Lower createdAt bound, inclusive (YYYY-MM-DD or ISO datetime).",
    )
    parser.add_argument(
        "--to",
        dest="date_to",
        default=None,
        help="Upper createdAt bound, inclusive (a bare date covers the whole day).",
    )


def _add_json_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="alien-risk",
        description="Offline store for risk assessment snapshots.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--data-dir", default=None, help="Override the snapshot data directory.")
    parser.add_argument(
        "--config",
        default=None,
        help="TOML settings file (defaults to config/alien_risk.toml when present).",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Logging verbosity (defaults to the config file value, else WARNING).",
    )

    subparsers = parser.add_subparsers(dest="command")

    list_parser = subparsers.add_parser("list", help="List snapshots, newest first.")
    _add_json_argument(list_parser)
    list_parser.set_defaults(func=_cmd_list)

    show_parser = subparsers.add_parser("show", help="Show one snapshot.")
    show_parser.add_argument("snapshot_id")
    _add_json_argument(show_parser)
    show_parser.set_defaults(func=_cmd_show)

    create_parser = subparsers.add_parser("create", help="Record a new risk snapshot.")
    create_parser.add_argument("--title", type=_non_blank, required=True)
    create_parser.add_argument("--description", default=None)
    create_parser.add_argument("--category", choices=RISK_CATEGORIES, required=True)
    create_parser.add_argument("--likelihood", type=int, choices=_RATINGS, required=True)
    create_parser.add_argument("--impact", type=int, choices=_RATINGS, required=True)
    create_parser.add_argument(
        "--source",
        choices=SNAPSHOT_SOURCES,
        default=None,
        help="Provenance (defaults to remote when --remote-id is given, else local).",
    )
    create_parser.add_argument("--remote-id", default=None, help="Server-side record id.")
    create_parser.add_argument("--tag", action="append", default=None, help="Tag (repeatable).")
    create_parser.add_argument("--note", default=None)
    _add_json_argument(create_parser)
    create_parser.set_defaults(func=_cmd_create)

    update_parser = subparsers.add_parser("update", help="Edit a snapshot in place.")
    update_parser.add_argument("snapshot_id")
    update_parser.add_argument("--title", type=_non_blank, default=None)
    update_parser.add_argument("--description", default=None)
    update_parser.add_argument("--category", choices=RISK_CATEGORIES, default=None)
    update_parser.add_argument("--likelihood", type=int, choices=_RATINGS, default=None)
    update_parser.add_argument("--impact", type=int, choices=_RATINGS, default=None)
    update_parser.add_argument("--note", default=None)
    update_parser.add_argument(
        "--tag",
        action="append",
        default=None,
        help="Replace tags with the given values (repeatable).",
    )
    update_parser.add_argument("--clear-tags", action="store_true", help="Remove all tags.")
    _add_json_argument(update_parser)
    update_parser.set_defaults(func=_cmd_update)

    delete_parser = subparsers.add_parser("delete", help="Delete one or more snapshots.")
    delete_parser.add_argument("snapshot_ids", nargs="+")
    delete_parser.set_defaults(func=_cmd_delete)

    clear_parser = subparsers.add_parser("clear", help="Delete every snapshot.")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm clearing the store.")
    clear_parser.set_defaults(func=_cmd_clear)

    search_parser = subparsers.add_parser(
        "search",
        help="Full-text search over title, description, note and tags (filters narrow the result).",
    )
    search_parser.add_argument("query")
    _add_filter_arguments(search_parser)
    _add_json_argument(search_parser)
    search_parser.set_defaults(func=_cmd_search)

    filter_parser = subparsers.add_parser("filter", help="Filter snapshots by field.")
    _add_filter_arguments(filter_parser)
    _add_json_argument(filter_parser)
    filter_parser.set_defaults(func=_cmd_filter)

    stats_parser = subparsers.add_parser("stats", help="Aggregate counts and mean score.")
    _add_json_argument(stats_parser)
    stats_parser.set_defaults(func=_cmd_stats)

    export_parser = subparsers.add_parser("export", help="Write an export file.")
    export_parser.add_argument(
        "--output",
        default=None,
        help="Destination path ('-' for stdout; defaults to the data dir exports folder).",
    )
    export_parser.set_defaults(func=_cmd_export)

    import_parser = subparsers.add_parser("import", help="Merge snapshots from an export file.")
    import_parser.add_argument("path")
    _add_json_argument(import_parser)
    import_parser.set_defaults(func=_cmd_import)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        return 0

    try:
        settings = load_settings_if_present(Path(args.config) if args.config else None)
    except ConfigError as e:
        raise SystemExit(f"alien-risk: {e}") from e

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.data_dir:
        data_dir = Path(args.data_dir).expanduser()
    else:
        data_dir = settings.data_dir or default_data_dir()
    args.data_dir = data_dir.as_posix()
    logger.debug("Using data dir %s", data_dir)
    return int(args.func(args))
