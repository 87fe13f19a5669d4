from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from feedlog import __version__ as TOOL_VERSION
from feedlog.config import ImportConfig
from feedlog.contracts import build_run_summary, wrap_payload
from feedlog.export import export_backup, parse_backup, sessions_to_csv
from feedlog.importer import commit_sessions
from feedlog.loader import decode_text
from feedlog.models import IMPORTED_SOURCES, CommitResult, ImportResult, Source
from feedlog.pipeline import parse_file
from feedlog.store import SqliteSessionStore
from feedlog.vision import VisionReview, review_response, reviews_to_result

DEFAULT_DB = "feedlog.db"
JSON_SUFFIXES = {".json"}
MAX_LISTED_ERRORS = 20

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_PREVIEW_ISSUES = 3
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class FeedlogArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def load_config() -> ImportConfig:
    try:
        return ImportConfig.from_env()
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def resolve_db(args: argparse.Namespace) -> Path:
    return Path(args.db or os.environ.get("FEEDLOG_DB") or DEFAULT_DB)


def parse_after(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d")
    except ValueError:
        raise CliError(f"--after must be YYYY-MM-DD, got {raw!r}", EXIT_COMMAND_ERROR) from None


# ══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_result_text(title: str, input_path: Path, result: ImportResult) -> str:
    lines = [
        f"feedlog {title}",
        f"File: {input_path.name}",
        f"Format: {result.format.value}",
        f"Sessions: {len(result.sessions)} ({result.feed_count} feeding, {result.pump_count} pumping)",
        f"Errors: {len(result.errors)}",
    ]
    lines.extend(f"- {error}" for error in result.errors[:MAX_LISTED_ERRORS])
    if len(result.errors) > MAX_LISTED_ERRORS:
        lines.append(f"- ... {len(result.errors) - MAX_LISTED_ERRORS} more")
    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in result.warnings)
    return "\n".join(lines) + "\n"


def render_stats_text(db_path: Path, total: int, counts: dict[str, int]) -> str:
    lines = ["feedlog stats", f"Database: {db_path}", f"Sessions: {total}"]
    lines.extend(f"- {source}: {count}" for source, count in sorted(counts.items()))
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# INPUT
# ══════════════════════════════════════════════════════════════════════════════

def parse_input(
    input_path: Path,
    config: ImportConfig,
    store: SqliteSessionStore,
) -> tuple[ImportResult, list[VisionReview] | None]:
    """
    Parse an input file into (result, vision reviews).

    JSON inputs are either a backup or a photo extraction response; the latter
    is checked against ``store`` for duplicates.
    """
    if input_path.suffix.lower() not in JSON_SUFFIXES:
        return parse_file(input_path, config=config), None

    if not input_path.exists():
        raise FileNotFoundError(f"File not found: {input_path}")
    if input_path.stat().st_size > config.max_file_bytes:
        limit_mb = config.max_file_bytes / (1024 * 1024)
        raise ValueError(f"File is too large. Maximum size is {limit_mb:g} MB.")
    text, _, warnings = decode_text(input_path.read_bytes())
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict) and "entries" in data:
        reviews, service_warnings = review_response(data, store, config=config)
        return reviews_to_result(reviews, warnings + service_warnings), reviews
    return parse_backup(text, config=config), None


def result_payload(
    name: str,
    command: str,
    input_path: Path,
    result: ImportResult,
    extra: dict[str, Any] | None = None,
    reviews: list[VisionReview] | None = None,
) -> dict[str, Any]:
    body = {"file": input_path.name, **result.to_dict(), **(extra or {})}
    if reviews is not None:
        body["vision_reviews"] = [review.to_dict() for review in reviews]
    metrics = {
        "sessions": len(result.sessions),
        "errors": len(result.errors),
        **{key: value for key, value in (extra or {}).items() if isinstance(value, int)},
    }
    status = "failed" if result.fatal else ("partial" if result.errors else "ok")
    summary = build_run_summary(
        command=command,
        input_path=input_path,
        status=status,
        metrics=metrics,
        warnings=list(result.warnings),
    )
    return wrap_payload(name, body, summary)


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = FeedlogArgumentParser(prog="feedlog", description="Import feeding and pumping logs.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", help="Parse a file and show what would be imported.")
    preview.add_argument("input", help="Input file path")
    preview.add_argument("--db", help="Session database used to flag duplicate photo entries")
    preview.add_argument("--output", help="Write the JSON preview to this path")
    preview.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    preview.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    preview.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    import_cmd = subparsers.add_parser("import", help="Parse a file and store new sessions.")
    import_cmd.add_argument("input", help="Input file path")
    import_cmd.add_argument("--db", help="Session database path (default: $FEEDLOG_DB or feedlog.db)")
    import_cmd.add_argument("--dry-run", action="store_true", help="Parse and check duplicates without storing")
    import_cmd.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    import_cmd.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    import_cmd.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    export = subparsers.add_parser("export", help="Export stored sessions.")
    export.add_argument("--db", help="Session database path (default: $FEEDLOG_DB or feedlog.db)")
    export.add_argument("--format", choices=["csv", "json"], default="csv", help="Export format")
    export.add_argument("--output", help="Output path (default: stdout)")
    export.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    export.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    stats = subparsers.add_parser("stats", help="Count stored sessions by source.")
    stats.add_argument("--db", help="Session database path (default: $FEEDLOG_DB or feedlog.db)")
    stats.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    stats.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    undo = subparsers.add_parser("undo", help="Delete imported sessions.")
    undo.add_argument("--db", help="Session database path (default: $FEEDLOG_DB or feedlog.db)")
    undo.add_argument(
        "--source",
        action="append",
        choices=[source.value for source in IMPORTED_SOURCES],
        help="Source to delete (repeatable; default: imported, ocr, ai_vision)",
    )
    undo.add_argument("--after", help="Only delete sessions created on or after YYYY-MM-DD")
    undo.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    undo.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    undo.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_preview(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        config = load_config()
        db_path = Path(args.db) if args.db else None
        if db_path is not None and not db_path.exists():
            raise CliError(f"Database not found: {db_path}", EXIT_COMMAND_ERROR)
        with SqliteSessionStore(db_path or ":memory:") as store:
            result, reviews = parse_input(input_path, config, store)
        payload = result_payload("feedlog.preview", "preview", input_path, result, reviews=reviews)
        if args.output:
            write_json(safe_output_path(Path(args.output)), payload)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_result_text("preview", input_path, result).rstrip(), quiet=args.quiet)
            if args.output:
                emit_human(f"Preview written: {args.output}", quiet=args.quiet)
        if result.fatal:
            return EXIT_PARSE_FAILED
        return EXIT_PREVIEW_ISSUES if result.errors else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


class _DryRunRollback(Exception):
    pass


def dry_run_commit(store: SqliteSessionStore, result: ImportResult, config: ImportConfig) -> CommitResult:
    """Run the real commit inside a transaction that is always rolled back."""
    commit = CommitResult()
    try:
        with store.transaction():
            commit = commit_sessions(store, result.sessions, config)
            raise _DryRunRollback()
    except _DryRunRollback:
        pass
    return commit


def run_import(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        config = load_config()
        db_path = resolve_db(args)
        with SqliteSessionStore(db_path) as store:
            result, reviews = parse_input(input_path, config, store)
            if result.fatal:
                payload = result_payload("feedlog.import_summary", "import", input_path, result, reviews=reviews)
                maybe_emit_json_stdout(payload, args.json)
                eprint(result.errors[0])
                return EXIT_PARSE_FAILED

            if args.dry_run:
                commit = dry_run_commit(store, result, config)
            else:
                commit = commit_sessions(store, result.sessions, config)

        imported = commit.imported
        skipped = commit.skipped
        extra = {
            "imported": imported,
            "skipped": skipped,
            "skipped_items": commit.skipped_items,
            "dry_run": bool(args.dry_run),
            "database": str(db_path),
        }
        payload = result_payload("feedlog.import_summary", "import", input_path, result, extra, reviews)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_result_text("import", input_path, result).rstrip(), quiet=args.quiet)
            verb = "Would import" if args.dry_run else "Imported"
            emit_human(f"{verb}: {imported}", quiet=args.quiet)
            emit_human(f"Skipped duplicates: {skipped}", quiet=args.quiet)
            emit_human(f"Database: {db_path}", quiet=args.quiet)
        return EXIT_PARTIAL if result.errors else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_export(args: argparse.Namespace) -> int:
    try:
        db_path = resolve_db(args)
        if not db_path.exists():
            raise CliError(f"Database not found: {db_path}", EXIT_COMMAND_ERROR)
        with SqliteSessionStore(db_path) as store:
            sessions = store.all_sessions()
        payload = sessions_to_csv(sessions) if args.format == "csv" else export_backup(sessions)
        if args.output:
            output_path = safe_output_path(Path(args.output))
            write_text(output_path, payload)
            emit_human(f"Exported {len(sessions)} sessions: {output_path}", quiet=args.quiet)
        else:
            sys.stdout.write(payload if payload.endswith("\n") else payload + "\n")
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_stats(args: argparse.Namespace) -> int:
    try:
        db_path = resolve_db(args)
        if not db_path.exists():
            raise CliError(f"Database not found: {db_path}", EXIT_COMMAND_ERROR)
        with SqliteSessionStore(db_path) as store:
            total = store.count()
            counts = store.count_by_source()
        if args.json:
            summary = build_run_summary(command="stats", metrics={"sessions": total})
            payload = wrap_payload(
                "feedlog.store_stats",
                {"database": str(db_path), "total": total, "by_source": counts},
                summary,
            )
            maybe_emit_json_stdout(payload, True)
        else:
            eprint(render_stats_text(db_path, total, counts).rstrip())
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_undo(args: argparse.Namespace) -> int:
    try:
        db_path = resolve_db(args)
        if not db_path.exists():
            raise CliError(f"Database not found: {db_path}", EXIT_COMMAND_ERROR)
        sources = [Source(value) for value in args.source] if args.source else list(IMPORTED_SOURCES)
        after = parse_after(args.after)
        with SqliteSessionStore(db_path) as store:
            deleted = store.delete_imported(sources, after)
        if args.json:
            summary = build_run_summary(command="undo", metrics={"deleted": deleted})
            payload = wrap_payload(
                "feedlog.undo_summary",
                {"database": str(db_path), "deleted": deleted, "sources": [s.value for s in sources]},
                summary,
            )
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Deleted {deleted} sessions ({', '.join(s.value for s in sources)})", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_version() -> int:
    print(f"feedlog {TOOL_VERSION}")
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "verbose", False))
        if args.command == "preview":
            return run_preview(args)
        if args.command == "import":
            return run_import(args)
        if args.command == "export":
            return run_export(args)
        if args.command == "stats":
            return run_stats(args)
        if args.command == "undo":
            return run_undo(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
