"""File service CLI.

Usage:
    python -m fileservice serve [--host HOST] [--port PORT]
    python -m fileservice ls <bucket> [--prefix PREFIX] [--dirs]
    python -m fileservice stat <bucket> <key>
    python -m fileservice archive <bucket> <prefix> [--out PATH]
    python -m fileservice rm-prefix <bucket> <prefix>

Every command accepts --config PATH. The bucket "_" selects the configured
default bucket. Results are printed as JSON on stdout; logs go to stderr.

Exit codes:
    0: Success
    1: Storage, configuration or partial failure
    2: Usage error
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from fileservice.config import AppConfig, ConfigError, load_config
from fileservice.logging_config import configure_logging
from fileservice.storage.archive import archive_filename, write_prefix_archive
from fileservice.storage.bulk import delete_prefix
from fileservice.storage.errors import ObjectStorageError
from fileservice.storage.factory import StorageConfigError, create_store
from fileservice.storage.object_store import ObjectStore

DEFAULT_BUCKET_ALIAS = "_"


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _error_result(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def _bucket(args: argparse.Namespace, config: AppConfig) -> str:
    if not args.bucket or args.bucket == DEFAULT_BUCKET_ALIAS:
        return config.storage.bucket
    return str(args.bucket)


def cmd_ls(args: argparse.Namespace, config: AppConfig, store: ObjectStore) -> int:
    bucket = _bucket(args, config)
    if args.dirs:
        records = store.list_directories(bucket, args.prefix)
    else:
        records = store.list(bucket, args.prefix)
    _output_json(
        {"bucket": bucket, "prefix": args.prefix, "objects": [r.to_dict() for r in records]}
    )
    return 0


def cmd_stat(args: argparse.Namespace, config: AppConfig, store: ObjectStore) -> int:
    bucket = _bucket(args, config)
    info = store.get_object_info(bucket, args.key)
    _output_json({"bucket": bucket, "object": info.to_dict()})
    return 0


def cmd_archive(args: argparse.Namespace, config: AppConfig, store: ObjectStore) -> int:
    """Write a ZIP of the prefix to --out (default: <last segment>.zip).

    Exit code 1 if any object had to be skipped.
    """
    bucket = _bucket(args, config)
    out_path = Path(args.out) if args.out else Path(archive_filename(args.prefix))

    with out_path.open("wb") as sink:
        try:
            report = write_prefix_archive(store, bucket, args.prefix, sink)
        except BaseException:
            # A listing failure or cancellation leaves no usable archive
            sink.close()
            out_path.unlink(missing_ok=True)
            raise

    _output_json(
        {
            "bucket": bucket,
            "prefix": args.prefix,
            "out": str(out_path),
            "added": report.added,
            "failed": [{"name": name, "error": error} for name, error in report.failed],
            "truncated": report.truncated,
            "manifest": report.manifest,
        }
    )
    return 0 if report.ok else 1


def cmd_rm_prefix(args: argparse.Namespace, config: AppConfig, store: ObjectStore) -> int:
    bucket = _bucket(args, config)
    result = delete_prefix(store, bucket, args.prefix)
    _output_json({"bucket": bucket, "prefix": args.prefix, **result.to_dict()})
    return 0 if not result.errors else 1


def cmd_serve(args: argparse.Namespace, config: AppConfig) -> int:
    import uvicorn

    from fileservice.api.main import create_app

    host = args.host or config.server.host
    port = args.port or config.server.port
    app = create_app(config)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


STORE_COMMANDS = {
    "ls": cmd_ls,
    "stat": cmd_stat,
    "archive": cmd_archive,
    "rm-prefix": cmd_rm_prefix,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="Config YAML (default: FILESERVICE_CONFIG, then ./config.yaml, ./config/config.yaml)",
    )

    parser = argparse.ArgumentParser(
        prog="fileservice",
        description="Uniform file-object API over multiple object storage backends",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Run the HTTP server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: server.host)")
    serve_parser.add_argument(
        "--port", type=int, default=None, help="Bind port (default: server.port)"
    )

    ls_parser = subparsers.add_parser("ls", parents=[common], help="List objects")
    ls_parser.add_argument("bucket", help='Bucket name ("_" for the default bucket)')
    ls_parser.add_argument("--prefix", default="", help="Only keys starting with PREFIX")
    ls_parser.add_argument(
        "--dirs", action="store_true", default=False, help="List directories instead of objects"
    )

    stat_parser = subparsers.add_parser("stat", parents=[common], help="Show object metadata")
    stat_parser.add_argument("bucket", help='Bucket name ("_" for the default bucket)')
    stat_parser.add_argument("key", help="Object key")

    archive_parser = subparsers.add_parser(
        "archive", parents=[common], help="Download a prefix as a ZIP archive"
    )
    archive_parser.add_argument("bucket", help='Bucket name ("_" for the default bucket)')
    archive_parser.add_argument("prefix", help="Directory prefix to archive")
    archive_parser.add_argument("--out", metavar="PATH", default=None, help="Output file")

    rm_parser = subparsers.add_parser(
        "rm-prefix", parents=[common], help="Delete every object under a prefix"
    )
    rm_parser.add_argument("bucket", help='Bucket name ("_" for the default bucket)')
    rm_parser.add_argument("prefix", help="Key prefix")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except ConfigError as e:
        _output_json(_error_result("CONFIG_ERROR", str(e)))
        return 1

    if args.command == "serve":
        configure_logging(config.log.level, config.log.json_format)
        try:
            return cmd_serve(args, config)
        except StorageConfigError as e:
            _output_json(_error_result("STORAGE_CONFIG_ERROR", str(e)))
            return 1

    configure_logging(config.log.level, config.log.json_format, stream=sys.stderr)
    try:
        store = create_store(config.storage)
        return STORE_COMMANDS[args.command](args, config, store)
    except StorageConfigError as e:
        _output_json(_error_result("STORAGE_CONFIG_ERROR", str(e)))
        return 1
    except ObjectStorageError as e:
        _output_json(_error_result(type(e).__name__, str(e)))
        return 1
    except OSError as e:
        _output_json(_error_result("IO_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
