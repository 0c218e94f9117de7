#!/usr/bin/env python3
"""CLI entrypoint for the document master list synchroniser."""
from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from doc_control.master_sync import batch, config, master_store, renderer
from doc_control.master_sync.errors import MasterSyncError

logger = logging.getLogger("doc_control.master_sync.cli")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def resolve_settings(args: argparse.Namespace) -> config.Settings:
    try:
        return config.Settings.resolve(
            store_dir=getattr(args, "store_dir", None),
            batch_policy=getattr(args, "policy", None),
            missing_store=getattr(args, "missing_store", None),
            min_pdf_chars=getattr(args, "min_pdf_chars", None),
            pdf_backends=config.parse_backend_list(getattr(args, "pdf_backends", None)),
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def collect_uploads(paths: Sequence[str]) -> list[batch.UploadedFile]:
    resolved = [Path(path).expanduser().resolve() for path in paths]
    uploads = list(batch.iter_upload_paths(resolved))
    if not uploads:
        raise SystemExit("No supported files found.")
    return uploads


def command_process(args: argparse.Namespace) -> None:
    settings = resolve_settings(args)
    uploads = collect_uploads(args.paths)
    logger.info("Processing %d files against %s", len(uploads), settings.store_dir)
    try:
        result = batch.process_batch(uploads, settings, persist=not args.dry_run)
    except MasterSyncError as exc:
        raise SystemExit(f"Batch failed: {exc}") from exc
    output = Path(args.output or renderer.ATTACHMENT_FILENAME).expanduser().resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.report)
    print_outcome_table(result.outcomes)
    if result.persisted:
        logger.info("Master list updated: %s", result.store.path)
    logger.info("Report written to %s (%d mismatches)", output, len(result.mismatches))


def command_check(args: argparse.Namespace) -> None:
    settings = resolve_settings(args)
    uploads = collect_uploads(args.paths)
    outcomes = batch.extract_uploads(uploads, settings)
    batch.resolve_outcomes(outcomes, settings.batch_policy)
    print_outcome_table(outcomes)


def command_store(args: argparse.Namespace) -> None:
    settings = resolve_settings(args)
    try:
        store = master_store.load_store(settings.store_dir, window=settings.header_scan_rows)
    except MasterSyncError as exc:
        raise SystemExit(str(exc)) from exc
    print("Path:".ljust(12), store.path)
    print("Format:".ljust(12), store.format)
    print("Header row:".ljust(12), store.header_index + 1)
    print("Columns:".ljust(12), ", ".join(store.headers))
    print("Records:".ljust(12), len(store.records))


def command_serve(args: argparse.Namespace) -> None:
    import uvicorn

    from doc_control.master_sync.web import create_app

    app = create_app(resolve_settings(args))
    uvicorn.run(app, host=args.host, port=args.port)


def print_outcome_table(outcomes: Sequence[batch.FileOutcome]) -> None:
    print("File".ljust(50), "Code".ljust(24), "Rev".ljust(5), "Status")
    print("-" * 95)
    for outcome in outcomes:
        print(
            outcome.file[:50].ljust(50),
            outcome.record.code[:24].ljust(24),
            outcome.record.revision_number.ljust(5),
            outcome.status,
        )
    counts = batch.count_statuses(outcomes)
    summary = ", ".join(f"{status}: {count}" for status, count in sorted(counts.items()))
    print("\n" + summary)


def add_store_arguments(parser_obj: argparse.ArgumentParser) -> None:
    parser_obj.add_argument(
        "--store-dir", help="Directory holding the master list (overrides MASTER_SYNC_STORE_DIR)"
    )


def add_batch_arguments(parser_obj: argparse.ArgumentParser) -> None:
    add_store_arguments(parser_obj)
    parser_obj.add_argument("paths", nargs="+", help="Files or folders to upload")
    parser_obj.add_argument(
        "--policy",
        choices=sorted(config.BATCH_POLICIES),
        help="Winner per code within a batch (overrides MASTER_SYNC_BATCH_POLICY)",
    )
    parser_obj.add_argument(
        "--pdf-backends",
        help="Comma-separated PDF extraction backend order (overrides MASTER_SYNC_PDF_BACKENDS)",
    )
    parser_obj.add_argument(
        "--min-pdf-chars",
        type=int,
        help="Characters a PDF backend must yield before stopping (overrides MASTER_SYNC_MIN_PDF_CHARS)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(description="Synchronise documents with the master list")
    parser_obj.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser_obj.add_subparsers(dest="command")

    process_parser = subparsers.add_parser("process", help="Merge uploads into the master list")
    add_batch_arguments(process_parser)
    process_parser.add_argument(
        "--missing-store",
        choices=sorted(config.MISSING_STORE_POLICIES),
        help="Start a new master list or fail when none exists (overrides MASTER_SYNC_MISSING_STORE)",
    )
    process_parser.add_argument("--output", help="Report workbook path")
    process_parser.add_argument(
        "--dry-run", action="store_true", help="Do not write the master list back"
    )
    process_parser.set_defaults(func=command_process)

    check_parser = subparsers.add_parser("check", help="Show extracted metadata only")
    add_batch_arguments(check_parser)
    check_parser.set_defaults(func=command_check)

    store_parser = subparsers.add_parser("store", help="Describe the master list file")
    add_store_arguments(store_parser)
    store_parser.set_defaults(func=command_store)

    serve_parser = subparsers.add_parser("serve", help="Run the upload endpoint")
    add_store_arguments(serve_parser)
    serve_parser.add_argument(
        "--missing-store",
        choices=sorted(config.MISSING_STORE_POLICIES),
        help="Start a new master list or fail when none exists",
    )
    serve_parser.add_argument(
        "--policy", choices=sorted(config.BATCH_POLICIES), help="Winner per code within a batch"
    )
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=3000)
    serve_parser.set_defaults(func=command_serve)

    return parser_obj


def main(argv: list[str] | None = None) -> None:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)
    if not getattr(args, "command", None):
        parser_obj.print_help()
        return
    configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
