from __future__ import annotations

import argparse
import sys

from orasync.config import OracleConfig
from orasync.pipeline import run_init, run_pull


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Also write a daily log file into this directory.",
    )
    parser.add_argument(
        "--log-retention-days",
        type=int,
        default=30,
        help="Delete log files older than this many days (default: 30).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orasync",
        description="Keep a directory tree of Oracle table definitions in sync with live schemas.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    pull_parser = subparsers.add_parser(
        "pull",
        help="Update table files to reflect changes made directly in the database.",
    )
    pull_parser.add_argument(
        "--dir",
        default=".",
        help="Root directory of the definition tree (default: current directory).",
    )
    _add_logging_arguments(pull_parser)

    init_parser = subparsers.add_parser(
        "init",
        help="Create a definition tree for the schemas of an instance.",
    )
    init_parser.add_argument("--dir", required=True, help="Directory to create.")
    init_parser.add_argument("--host", required=True)
    init_parser.add_argument("--port", type=int, default=1521)
    init_parser.add_argument("--service-name", required=True)
    init_parser.add_argument("--username", required=True)
    init_parser.add_argument("--password", required=True)
    init_parser.add_argument(
        "--schema",
        default=None,
        help="Only this schema, written directly into --dir.",
    )
    _add_logging_arguments(init_parser)

    return parser


def _print_summary(result) -> None:
    print(f"added={result.added_count}")
    print(f"modified={result.modified_count}")
    print(f"deleted={result.deleted_count}")
    print(f"created_dirs={result.created_dirs_count}")
    print(f"deleted_dirs={result.deleted_dirs_count}")
    if result.log_file:
        print(f"log_file={result.log_file}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "init":
            oracle_config = OracleConfig(
                host=args.host,
                port=args.port,
                service_name=args.service_name,
                username=args.username,
                password=args.password,
            )
            result = run_init(
                args.dir,
                oracle_config,
                schema=args.schema,
                log_dir=args.log_dir,
                retention_days=args.log_retention_days,
            )
        else:
            result = run_pull(
                args.dir,
                log_dir=args.log_dir,
                retention_days=args.log_retention_days,
            )
    except Exception as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    _print_summary(result)
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
