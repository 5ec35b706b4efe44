"""Command-line interface for copying contract verifications."""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from .models.migration import MigrationConfig, MigrationOutcome
from .orchestrator import MigrationOrchestrator
from .services.reporter import MigrationReport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="verification-migrator",
        description="Copy verified contract sources from one block explorer to another",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Copy two contracts from Etherscan to a Blockscout instance
  verification-migrator --source-url https://api.etherscan.io/api \\
      --target-url https://blockscout.example.org/api --target-dialect blockscout \\
      0x0000000000000000000000000000000000000001 0x0000000000000000000000000000000000000002

  # Load explorer settings from a file and write a JSON report
  verification-migrator --config migration.json --report report.json 0x...
        """,
    )

    parser.add_argument("addresses", nargs="+", help="Contract addresses to migrate")

    source = parser.add_argument_group("source explorer")
    source.add_argument("--source-url", help="API URL of the source explorer")
    source.add_argument(
        "--source-api-key",
        default=os.environ.get("SOURCE_API_KEY"),
        help="API key for the source explorer (default: $SOURCE_API_KEY)",
    )
    source.add_argument("--source-dialect", choices=["etherscan", "blockscout"])
    source.add_argument("--chain-id", help="Chain id sent as `chainid` to the source explorer")

    target = parser.add_argument_group("target explorer")
    target.add_argument("--target-url", help="API URL of the target explorer")
    target.add_argument(
        "--target-api-key",
        default=os.environ.get("TARGET_API_KEY"),
        help="API key for the target explorer (default: $TARGET_API_KEY)",
    )
    target.add_argument("--target-dialect", choices=["etherscan", "blockscout"])
    target.add_argument(
        "--target-chain-id",
        help="Chain id sent to the target explorer (default: same as --chain-id)",
    )

    run = parser.add_argument_group("batch")
    run.add_argument("--config", help="JSON configuration file; flags override its values")
    run.add_argument("--fail-fast", action="store_true", help="Stop after the first failed contract")
    run.add_argument("--max-workers", type=int, help="Contracts processed concurrently")
    run.add_argument("--max-polls", type=int, help="Status checks before giving up on a submission")
    run.add_argument("--poll-interval", type=float, help="Seconds between status checks")
    run.add_argument(
        "--min-request-interval",
        type=float,
        help="Minimum seconds between requests to one explorer and key",
    )
    run.add_argument("--report", help="Write the JSON report to this path")
    run.add_argument("--progress", action="store_true", help="Show a progress bar")
    run.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser


def build_config(args: argparse.Namespace) -> MigrationConfig:
    """
    Build the migration configuration from a config file and flags.

    Raises:
        ValueError: A required setting is missing or invalid
    """
    data: Dict[str, Any] = {}
    if args.config:
        with open(args.config) as f:
            data = json.load(f)

    source = dict(data.get("source", {}))
    target = dict(data.get("target", {}))
    poll = dict(data.get("poll", {}))

    _override(source, "base_url", args.source_url)
    _override(source, "api_key", args.source_api_key)
    _override(source, "dialect", args.source_dialect)
    _override(source, "chain_id", args.chain_id)
    _override(source, "min_request_interval", args.min_request_interval)

    _override(target, "base_url", args.target_url)
    _override(target, "api_key", args.target_api_key)
    _override(target, "dialect", args.target_dialect)
    _override(target, "chain_id", args.target_chain_id or args.chain_id)
    _override(target, "min_request_interval", args.min_request_interval)

    _override(poll, "max_polls", args.max_polls)
    _override(poll, "interval", args.poll_interval)

    if not source.get("base_url"):
        raise ValueError("A source URL is required (--source-url or config 'source.base_url')")
    if not target.get("base_url"):
        raise ValueError("A target URL is required (--target-url or config 'target.base_url')")

    data = dict(data, source=source, target=target, poll=poll)
    if args.fail_fast:
        data["continue_on_error"] = False
    _override(data, "max_workers", args.max_workers)

    return MigrationConfig.from_dict(data)


def _override(values: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        values[key] = value


def format_outcome(outcome: MigrationOutcome) -> str:
    """Render one outcome as `<address> - <Status>[: reason]`."""
    return f"{outcome.address} - {outcome.describe()}"


def print_report(report: MigrationReport) -> None:
    """Print one line per outcome and a summary."""
    for outcome in report.outcomes:
        print(format_outcome(outcome))
    for address in report.skipped:
        print(f"{address} - Skipped")

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE" if not report.cancelled else "MIGRATION CANCELLED")
    print("=" * 60)
    print(f"Verified: {report.verified}")
    print(f"Already verified: {report.already_verified}")
    print(f"Failed: {report.failed}")
    if report.skipped:
        print(f"Skipped: {len(report.skipped)}")
    if report.duration_seconds is not None:
        print(f"Duration: {report.duration_seconds:.2f} seconds")


def run_migration(config: MigrationConfig, addresses: List[str], show_progress: bool = False) -> MigrationReport:
    """Run the batch, optionally with a progress bar."""
    bar: Optional[tqdm] = None
    if show_progress:
        bar = tqdm(total=len(addresses), desc="Verifying", unit="contract")

    def on_outcome(outcome: MigrationOutcome) -> None:
        if bar is not None:
            bar.set_postfix_str(f"{outcome.address[:10]}… {outcome.status.label}")
            bar.update(1)

    try:
        orchestrator = MigrationOrchestrator(config, on_outcome=on_outcome)
        return orchestrator.run(addresses)
    finally:
        if bar is not None:
            bar.close()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    logger.debug(f"Configuration: {json.dumps(config.to_dict())}")

    report = run_migration(config, args.addresses, show_progress=args.progress)
    print_report(report)

    if args.report:
        report.save(args.report)
        print(f"Report saved to {args.report}")

    if report.cancelled:
        return EXIT_INTERRUPTED
    if report.has_failures:
        return EXIT_FAILURES
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
