#!/usr/bin/env python3
"""Organization Logging Baseline - Main Entry Point.

Runs the logging placement engine for the account the current
credentials belong to, once per governed region (or a single region
given on the command line).
"""

import sys
import logging
import argparse
from typing import Dict, List, Optional

from src.core.config import Configuration, ConfigurationError
from src.core.aws_client import AWSClientManager
from src.logging_baseline.engine import PlacementDecisionEngine
from src.logging_baseline.errors import OrganizationLookupError, ProvisioningError
from src.logging_baseline.models import ExecutionContext
from src.logging_baseline.organization import OrganizationDirectory


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Organization Logging Baseline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Auto-detect config.yaml, all governed regions
  %(prog)s config.yaml              # Use specific configuration file
  %(prog)s --region us-west-2       # Only evaluate one region
  %(prog)s --dry-run                # Show placement decisions only
        """,
    )

    parser.add_argument(
        "config_file",
        nargs="?",
        help="Path to configuration file (default: auto-detect config.yaml)",
    )

    parser.add_argument(
        "--region", help="Only evaluate this region"
    )

    parser.add_argument(
        "--profile", help="AWS profile name to use for credentials"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print placement decisions without provisioning anything",
    )

    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Organization Logging Baseline v1.0.0",
    )

    return parser.parse_args(argv)


def resolve_account_ids(config: Configuration,
                        directory: OrganizationDirectory) -> Dict[str, str]:
    """Use configured account IDs, falling back to Organizations.

    Returns:
        Mapping of lower-cased account email to account ID
    """
    account_ids = config.get_account_ids()
    if account_ids:
        return account_ids
    return directory.list_account_ids_by_email()


def run_region(engine: PlacementDecisionEngine, context: ExecutionContext,
               config: Configuration, account_ids: Dict[str, str],
               dry_run: bool) -> bool:
    """Evaluate one region and print the outcome.

    Returns:
        True if the region succeeded, False otherwise
    """
    accounts_config = config.get_accounts_config()
    global_config = config.get_global_config()
    print(f"\n🌍 {context.account_id} / {context.region}")

    try:
        if dry_run:
            decision = engine.decide(context, accounts_config, global_config, account_ids)
            print(f"   Public access block: {'apply' if decision.apply_public_access_block else 'skip'}")
            print(f"   Access log bucket:   {decision.access_log_bucket_name}")
            print(f"   Central log bucket:  {decision.central_log_bucket_name or 'skip'}")
            return True

        plan = engine.evaluate(context, accounts_config, global_config, account_ids)
    except (ConfigurationError, OrganizationLookupError, ProvisioningError) as e:
        print(f"   ❌ {e}")
        return False

    if plan.public_access_block_applied:
        print("   ✅ Public access block applied")
    print(f"   ✅ Access log bucket: {plan.access_log_bucket.name}")
    if plan.central_log_bucket:
        print(f"   ✅ Central log bucket: {plan.central_log_bucket.name}")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    try:
        args = parse_arguments(argv)

        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

        try:
            config = Configuration(args.config_file)
        except ConfigurationError as e:
            print(f"❌ Configuration error: {e}")
            return 1

        try:
            aws_client = AWSClientManager(
                profile_name=args.profile or config.get_profile_name()
            )
        except Exception as e:
            print(f"❌ AWS client initialization failed: {e}")
            return 1

        account_id = aws_client.get_account_id()
        regions = [args.region] if args.region else config.get_governed_regions()

        directory = OrganizationDirectory(aws_client)
        engine = PlacementDecisionEngine(aws_client, directory)

        try:
            account_ids = resolve_account_ids(config, directory)
        except ProvisioningError as e:
            print(f"❌ Unable to resolve account IDs: {e}")
            return 1

        failures = 0
        for region in regions:
            context = ExecutionContext(account_id=account_id, region=region)
            if not run_region(engine, context, config, account_ids, args.dry_run):
                failures += 1

        if failures:
            print(f"\n❌ {failures} of {len(regions)} region(s) failed")
            return 1

        print(f"\n✅ Logging baseline complete for {len(regions)} region(s)")
        return 0

    except KeyboardInterrupt:
        print("\n\n👋 Operation cancelled by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
