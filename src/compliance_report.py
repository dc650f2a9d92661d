"""
Policy Compliance Report CLI

Command-line entry point: picks the subscription, fetches the latest Azure Policy
states and prints or exports the compliance report.

Usage:
    policy-compliance-report --subscription-id <id> --output-format Console|JSON|CSV
    policy-compliance-report --input-file states.json --subscription-id <id>

When no subscription is given (argument or AZURE_SUBSCRIPTION_ID), the enabled
subscriptions are listed and one is chosen interactively.

Exit codes:
    0   report generated (including "no compliance data")
    1   policy data could not be retrieved, invalid input, or the report
        could not be written
    130 interrupted by the user
"""

import argparse
import functools
import os
import sys
from typing import Any, Callable, List, Optional, Sequence

from azure.core.exceptions import AzureError, ClientAuthenticationError, HttpResponseError
from dotenv import load_dotenv

# Load .env before settings reads its environment overrides
load_dotenv()

from aggregator import utc_now  # noqa: E402
from policy_names import PolicyNameResolver  # noqa: E402
from records import PolicyEvaluationRecord, load_records  # noqa: E402
from renderer import ReportFormat  # noqa: E402
from reporter import ComplianceReporter, format_run_time, status  # noqa: E402
from scanner import AzurePolicyScanner, SubscriptionInfo, build_credential, list_subscriptions  # noqa: E402
from settings import (  # noqa: E402
    APPLICATION_NAME,
    APPLICATION_VERSION,
    LOGS_DIR,
    REPORT_OUTPUT_DIR,
    SUBSCRIPTION_ENV_VAR
)


class SubscriptionSelectionError(Exception):
    """Raised when no subscription could be selected."""


def _output_format(value: str) -> ReportFormat:
    try:
        return ReportFormat.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Return parsed command line arguments."""
    parser = argparse.ArgumentParser(
        description="Report Azure Policy compliance for a subscription."
    )
    parser.add_argument(
        "--subscription-id",
        default=None,
        help=f"Subscription to report on (defaults to ${SUBSCRIPTION_ENV_VAR}, "
             "otherwise prompts for one)"
    )
    parser.add_argument(
        "--output-format",
        type=_output_format,
        default=ReportFormat.CONSOLE,
        metavar="{Console,JSON,CSV}",
        help="Report format (default: Console)"
    )
    parser.add_argument(
        "--input-file",
        default=None,
        help="Read policy states from a YAML/JSON export instead of querying Azure"
    )
    parser.add_argument(
        "--output-dir",
        default=REPORT_OUTPUT_DIR,
        help="Directory for the CSV report (default: %(default)s)"
    )
    parser.add_argument(
        "--log-dir",
        default=LOGS_DIR,
        help="Directory for the JSON-lines event log (disabled when omitted)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{APPLICATION_NAME} {APPLICATION_VERSION}"
    )
    return parser.parse_args(argv)


def prompt_for_subscription(subscriptions: Sequence[SubscriptionInfo],
                            input_func: Callable[[str], str] = input) -> str:
    """
    Show a numbered subscription menu and return the chosen subscription ID.

    Raises:
        SubscriptionSelectionError: If there is nothing to choose from or the
            choice is invalid
    """
    if not subscriptions:
        raise SubscriptionSelectionError("No enabled subscriptions found for the signed-in identity")

    status("\nAvailable subscriptions:\n")
    for i, subscription in enumerate(subscriptions, 1):
        status(f"  {i}. {subscription.display_name} ({subscription.subscription_id})")
    status("")

    choice = input_func(f"Select a subscription (1-{len(subscriptions)}): ").strip()

    if not choice.isdigit() or not 1 <= int(choice) <= len(subscriptions):
        raise SubscriptionSelectionError(
            f"Invalid choice '{choice}'. Enter a number between 1 and {len(subscriptions)}."
        )

    return subscriptions[int(choice) - 1].subscription_id


def resolve_subscription_id(args: argparse.Namespace, credential_factory: Callable[[], Any],
                            input_func: Callable[[str], str] = input) -> str:
    """Subscription from the argument, the environment, or the interactive picker."""
    subscription_id = args.subscription_id or os.getenv(SUBSCRIPTION_ENV_VAR)
    if subscription_id:
        return subscription_id.strip()

    if args.input_file:
        raise SubscriptionSelectionError("--subscription-id is required with --input-file")

    status("🔍 Listing subscriptions...")
    subscriptions = list_subscriptions(credential_factory())
    return prompt_for_subscription(subscriptions, input_func)


def fetch_records(args: argparse.Namespace, subscription_id: str,
                  scanner: Optional[AzurePolicyScanner]) -> List[PolicyEvaluationRecord]:
    """Load records from the input file or query Azure Policy Insights."""
    if args.input_file:
        status(f"📄 Reading policy states from {args.input_file}...")
        return load_records(args.input_file)

    status(f"📡 Retrieving policy states for subscription {subscription_id}...")
    return scanner.list_policy_states()


def main(argv: Optional[List[str]] = None,
         scanner_factory: Optional[Callable[[str], AzurePolicyScanner]] = None,
         credential_factory: Callable[[], Any] = build_credential,
         input_func: Callable[[str], str] = input) -> int:
    """
    CLI entry point used by the policy-compliance-report console script.

    Args:
        argv: Command line arguments (defaults to sys.argv)
        scanner_factory: Builds the scanner for a subscription ID
        credential_factory: Builds the Azure credential; called at most once per run
        input_func: Reads the interactive subscription choice

    Returns:
        Process exit code
    """
    args = parse_args(argv)
    get_credential = functools.lru_cache(maxsize=1)(credential_factory)

    status("=" * 80)
    status(f"{APPLICATION_NAME.upper()} v{APPLICATION_VERSION}")
    status(f"Start Time: {format_run_time(utc_now())}")
    status("=" * 80)

    try:
        subscription_id = resolve_subscription_id(args, get_credential, input_func)
    except SubscriptionSelectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except AzureError as e:
        print(f"Error: Failed to list subscriptions: {e}", file=sys.stderr)
        return 1

    scanner = None
    resolver = PolicyNameResolver()
    if not args.input_file:
        if scanner_factory is not None:
            scanner = scanner_factory(subscription_id)
        else:
            scanner = AzurePolicyScanner(subscription_id, credential=get_credential())
        resolver = PolicyNameResolver(lookup=scanner.get_definition_display_name)

    try:
        records = fetch_records(args, subscription_id, scanner)
    except ClientAuthenticationError as e:
        print(f"Error: Authentication failed: {e}", file=sys.stderr)
        print("  Sign in with 'az login' or set the AZURE_* service principal variables.",
              file=sys.stderr)
        return 1
    except HttpResponseError as e:
        print(f"Error: Failed to retrieve policy data: {e.message}", file=sys.stderr)
        print("  Check that the identity has Reader access to the subscription.",
              file=sys.stderr)
        return 1
    except AzureError as e:
        print(f"Error: Failed to retrieve policy data: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    status(f"✓ Retrieved {len(records)} policy evaluation(s)")

    reporter = ComplianceReporter(
        resolver=resolver,
        output_dir=args.output_dir,
        log_dir=args.log_dir
    )
    try:
        result = reporter.generate(records, subscription_id, args.output_format)
    except OSError as e:
        print(f"Error: Failed to write report: {e}", file=sys.stderr)
        return 1

    print(result.output)
    return result.exit_code


def run() -> None:
    """Console script wrapper translating Ctrl+C into exit code 130."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
