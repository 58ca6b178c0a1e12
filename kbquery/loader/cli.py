"""Command line interface for the KB loader."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from kbquery.configuration import (
    ConfigurationError,
    DEFAULT_STORAGE_ROOT_NAME,
    KBQueryConfig,
    load_config_from_file,
    render_default_config,
)
from kbquery.loader.errors import LoaderError
from kbquery.loader.service import run_key_fill, run_load
from kbquery.observability import attach_persistent_observer, get_event_recorder
from kbquery.observability.storage import EventLogStore
from kbquery.reporting import LoadReport, render_summary

CONFIG_ENV_VAR = "KBQUERY_CONFIG"
DATABASE_URL_ENV_VAR = "KBQUERY_DATABASE_URL"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Load KB files into the kbquery database")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=(
            "Path to a config.py defining KBQUERY_CONFIG, or a YAML/JSON/TOML "
            f"loader configuration (default: ${CONFIG_ENV_VAR})"
        ),
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help=f"SQLAlchemy database URL (default: config value or ${DATABASE_URL_ENV_VAR})",
    )
    parser.add_argument(
        "--kb-dir",
        default=None,
        help="Directory containing the KB source files",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Number of records written per database batch",
    )
    parser.add_argument(
        "--keys-only",
        action="store_true",
        help="Only regenerate the keys table from the stored entries",
    )
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Append to existing tables instead of dropping and recreating them",
    )
    parser.add_argument(
        "--event-log",
        default=None,
        help="SQLAlchemy database URL for persisting loader events",
    )
    parser.add_argument(
        "--report-json",
        default=None,
        help="Write the load report as JSON to this path",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: config value, usually INFO)",
    )
    return parser


def _load_config(args: argparse.Namespace) -> KBQueryConfig:
    config_path = args.config or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        raise ConfigurationError(
            f"No configuration given; pass --config or set ${CONFIG_ENV_VAR}"
        )
    config = load_config_from_file(config_path)

    loader = config.loader
    database_url = args.database_url or loader.database_url or os.environ.get(DATABASE_URL_ENV_VAR)
    loader = dataclasses.replace(
        loader,
        database_url=database_url,
        batch_size=args.batch_size if args.batch_size is not None else loader.batch_size,
        reset_schema=loader.reset_schema and not args.no_reset,
    )
    storage = config.storage
    if args.kb_dir:
        storage = dataclasses.replace(storage, kb_dir=Path(args.kb_dir).expanduser().resolve())
    return dataclasses.replace(config, loader=loader, storage=storage).validate()


def _configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {level_name}")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run_config_init(args: list[str]) -> int:
    parser = argparse.ArgumentParser(
        description="Generate a kbquery config.py with default paths",
    )
    parser.add_argument(
        "output",
        nargs="?",
        default="config.py",
        help="Destination file path (default: config.py)",
    )
    parser.add_argument(
        "--root",
        type=str,
        default=None,
        help=(
            "Root storage directory for generated config "
            f"(default: <cwd>/{DEFAULT_STORAGE_ROOT_NAME})"
        ),
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the destination file if it already exists",
    )
    options = parser.parse_args(args)
    output_path = Path(options.output).expanduser()
    if output_path.exists() and not options.force:
        print(
            f"Error: {output_path} already exists. Use --force to overwrite.",
            file=sys.stderr,
        )
        return 1

    storage_root = (
        Path(options.root).expanduser()
        if options.root
        else Path.cwd() / DEFAULT_STORAGE_ROOT_NAME
    )
    output_path.write_text(render_default_config(storage_root))
    print(f"Wrote default configuration to {output_path}")
    return 0


def _run_load(argv: list[str]) -> int:
    args = build_parser().parse_args(argv)
    recorder = get_event_recorder("loader.cli")
    try:
        config = _load_config(args)
        _configure_logging(args.log_level or config.observability.log_level)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    config.storage.ensure_directories()
    event_log_url = args.event_log or config.observability.event_log_url
    detach_observer = None
    event_store = None
    if event_log_url:
        event_store = EventLogStore(event_log_url)
        detach_observer = attach_persistent_observer(get_event_recorder(), event_store)
    recorder.record(
        name="run.start",
        payload={"keys_only": args.keys_only, "source_count": len(config.sources)},
    )
    try:
        if args.keys_only:
            total_keys = run_key_fill(config)
            print(f"Filled {total_keys} keys into {config.database_url}")
            return 0
        result = run_load(config)
    except (LoaderError, ConfigurationError) as exc:
        recorder.record(name="run.error", payload={"error": str(exc)})
        print(f"Load failed: {exc}", file=sys.stderr)
        return 1
    finally:
        if detach_observer:
            detach_observer()
        if event_store:
            event_store.close()

    report = LoadReport.from_result(result)
    print(render_summary(report))
    if args.report_json:
        Path(args.report_json).expanduser().write_text(report.model_dump_json(indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    argv_list = list(argv) if argv is not None else sys.argv[1:]
    if argv_list and argv_list[0] == "config":
        return _run_config_init(argv_list[1:])
    return _run_load(argv_list)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
