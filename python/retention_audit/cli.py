#!/usr/bin/env python3
"""
Registry tag retention auditor

Enumerates every repository and tag in a Docker registry, reads each tag's
creation time, and works out which tags a keep-the-newest-N policy would
delete. Nothing is deleted; the plan is written to the reports directory.

Usage examples:
  # Audit using config.yaml / environment variables
  python main.py audit

  # Keep the 5 newest tags per repository, 8 parallel workers
  python main.py audit --retain 5 --max-workers 8

  # Skip some repositories and write flat reports without timestamps
  python main.py audit --exclude base/python --exclude ci/cache --format flat --no-timestamp

  # Show the resolved configuration
  python main.py config
"""

import argparse
import os
import sys
from typing import List, Optional

from retention_audit.config_manager import ConfigurationError, config_manager
from retention_audit.error_utils import ActionableError
from retention_audit.logging_utils import get_logger, log_exception, parse_log_level, setup_logging
from retention_audit.registry_client import TransportError

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Audit a Docker registry and plan tag deletions by a keep-newest-N retention policy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage examples:", 1)[1],
    )
    subparsers = parser.add_subparsers(dest="command")

    audit = subparsers.add_parser("audit", help="Inventory the registry and write the retention plan")
    audit.add_argument("--registry-url", help="Registry host[:port] (default: REGISTRY_URL or config)")
    audit.add_argument("--scheme", choices=["http", "https"], help="Registry URL scheme (default: from config)")
    audit.add_argument("--retain", type=int, metavar="N", help="Number of newest tags to keep per repository")
    audit.add_argument("--max-workers", type=int, metavar="W", help="Repositories inventoried in parallel")
    audit.add_argument(
        "--exclude",
        action="append",
        metavar="REPOSITORY",
        help="Repository to skip entirely (repeatable; replaces the configured list)",
    )
    audit.add_argument("--output-dir", help="Directory for reports (default: from config)")
    audit.add_argument("--format", choices=["grouped", "flat"], help="Shape of the inventory report")
    audit.add_argument("--no-timestamp", action="store_true", help="Do not add a timestamp to report filenames")
    audit.add_argument("--log-file", help="Also write logs to this file")

    subparsers.add_parser("config", help="Print the resolved configuration")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(EXIT_FAILURE)
    return args


def apply_arguments(args: argparse.Namespace) -> None:
    """Fold command-line flags into the configuration.

    Flags backed by an environment variable are applied through it, since the
    environment takes precedence over config.yaml.
    """
    env_flags = {
        "REGISTRY_URL": args.registry_url,
        "REGISTRY_SCHEME": args.scheme,
        "REGISTRY_RETENTION": None if args.retain is None else str(args.retain),
        "REGISTRY_WORKERS": None if args.max_workers is None else str(args.max_workers),
        "REGISTRY_EXCLUDE": None if args.exclude is None else ",".join(args.exclude),
    }
    for name, value in env_flags.items():
        if value is not None:
            os.environ[name] = value

    overrides = {}
    if args.output_dir:
        overrides.setdefault("analysis", {})["output_dir"] = args.output_dir
    if args.format:
        overrides.setdefault("reports", {})["format"] = args.format
    if overrides:
        config_manager.apply_overrides(overrides)


def run_audit(args: argparse.Namespace) -> int:
    from retention_audit.audit import RetentionAuditor

    apply_arguments(args)
    try:
        config_manager.validate_config()
        auditor = RetentionAuditor(config_manager)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return EXIT_CONFIG_ERROR

    try:
        auditor.client.check_auth()
        result = auditor.run(timestamp=not args.no_timestamp)
    except ActionableError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except TransportError as e:
        logger.error(f"❌ Registry audit aborted: {e}")
        return EXIT_FAILURE
    except Exception as e:
        log_exception(logger, "Registry audit failed", e)
        return EXIT_FAILURE
    finally:
        auditor.client.close()

    summary = result.summary
    logger.info("\n" + "=" * 60)
    logger.info("📊 Audit Summary:")
    logger.info(f"   Repositories in catalog: {summary.repositories_total}")
    logger.info(f"   Excluded: {summary.repositories_excluded}")
    logger.info(f"   Inventoried: {summary.repositories_processed}")
    logger.info(f"   Failed: {summary.repositories_failed}")
    logger.info(f"   Tags recorded: {summary.tags_recorded} (skipped: {summary.tags_skipped})")
    logger.info(f"   Tags to retain: {result.retain_count}")
    logger.info(f"   Tags to delete: {result.delete_count}")
    for name, path in result.report_paths.items():
        logger.info(f"   {name}: {path}")
    logger.info("=" * 60)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(
        level=parse_log_level(config_manager.get_log_level()),
        log_file=getattr(args, "log_file", None) or config_manager.get_log_file(),
    )

    if args.command == "config":
        config_manager.print_config()
        return EXIT_OK

    return run_audit(args)


if __name__ == "__main__":
    sys.exit(main())
