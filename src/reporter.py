"""
Compliance Reporter - Report Driver

Runs one report: aggregate the policy evaluation records once, then hand the
result to the renderer for the requested output format.

An empty record set is a normal outcome (nothing has been evaluated yet, or no
policies are assigned) and produces an informational message instead of a
report.
"""

import json
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

from aggregator import Clock, ComplianceSummary, aggregate, non_compliant_records, utc_now
from policy_names import PolicyNameResolver
from records import PolicyEvaluationRecord
from renderer import (
    ReportFormat,
    csv_filename,
    render_console,
    render_json,
    tabular_rows,
    write_csv
)


def status(message: str) -> None:
    """Print a progress message to stderr, keeping stdout for report content."""
    print(message, file=sys.stderr)
    sys.stderr.flush()


@dataclass
class ReportResult:
    """Outcome of one report run."""

    exit_code: int
    output: str
    summary: Optional[ComplianceSummary] = None
    csv_path: Optional[Path] = None


class ComplianceReporter:
    """
    Orchestrates aggregation and rendering for a single subscription.

    Workflow:
    1. Short-circuit when there are no records
    2. Aggregate the records once
    3. Select non-compliant records, most recent first
    4. Dispatch to the renderer for the requested format
    """

    def __init__(self, resolver: Optional[PolicyNameResolver] = None,
                 output_dir: Union[str, Path] = ".",
                 log_dir: Optional[Union[str, Path]] = None,
                 clock: Optional[Clock] = None):
        """
        Args:
            resolver: Display name resolver; defaults to one without Azure lookup
            output_dir: Directory the CSV report is written to
            log_dir: Directory for the JSON-lines event log (None disables it)
            clock: Source of the current time, used for report timestamps
        """
        self.resolver = resolver or PolicyNameResolver()
        self.output_dir = Path(output_dir)
        self.log_dir = Path(log_dir) if log_dir else None
        self.clock = clock or utc_now
        self.run_id = self.clock().strftime("%Y%m%d_%H%M%S")

        self._renderers: Dict[ReportFormat, Callable[..., ReportResult]] = {
            ReportFormat.CONSOLE: self._render_console,
            ReportFormat.JSON: self._render_json,
            ReportFormat.CSV: self._render_csv
        }

    def generate(self, records: Sequence[PolicyEvaluationRecord], subscription_id: str,
                 output_format: Union[str, ReportFormat] = ReportFormat.CONSOLE) -> ReportResult:
        """
        Generate the compliance report for one subscription.

        Args:
            records: Policy evaluation records fetched for the subscription
            subscription_id: Subscription the records belong to
            output_format: ReportFormat or its name (Console, JSON, CSV)

        Returns:
            ReportResult with exit code 0 and the text to print

        Raises:
            ValueError: If output_format is not a known format
        """
        report_format = ReportFormat.parse(output_format)
        self._log_event("REPORT_STARTED", {
            'subscription_id': subscription_id,
            'format': report_format.value,
            'record_count': len(records)
        })

        if not records:
            self._log_event("REPORT_EMPTY", {'subscription_id': subscription_id})
            message = (
                f"No policy compliance data found for subscription {subscription_id}.\n"
                "Policies may not be assigned yet, or the first compliance evaluation "
                "has not completed."
            )
            return ReportResult(exit_code=0, output=message)

        summary = aggregate(records, now=self.clock)
        non_compliant = non_compliant_records(records)

        result = self._renderers[report_format](summary, non_compliant, subscription_id)

        self._log_event("REPORT_COMPLETED", {
            'subscription_id': subscription_id,
            'format': report_format.value,
            'total': summary.total_count,
            'compliant': summary.compliant_count,
            'non_compliant': summary.non_compliant_count,
            'compliance_rate_percent': summary.compliance_rate_percent,
            'csv_path': str(result.csv_path) if result.csv_path else None
        })
        return result

    def _render_console(self, summary: ComplianceSummary,
                        non_compliant: Sequence[PolicyEvaluationRecord],
                        subscription_id: str) -> ReportResult:
        output = render_console(summary, non_compliant, subscription_id,
                                self.resolver, self.clock())
        return ReportResult(exit_code=0, output=output, summary=summary)

    def _render_json(self, summary: ComplianceSummary,
                     non_compliant: Sequence[PolicyEvaluationRecord],
                     subscription_id: str) -> ReportResult:
        output = render_json(summary, non_compliant, subscription_id,
                             self.resolver, self.clock())
        return ReportResult(exit_code=0, output=output, summary=summary)

    def _render_csv(self, summary: ComplianceSummary,
                    non_compliant: Sequence[PolicyEvaluationRecord],
                    subscription_id: str) -> ReportResult:
        rows = tabular_rows(non_compliant, self.resolver)
        path = write_csv(rows, self.output_dir / csv_filename(subscription_id, self.clock()))
        output = (
            f"✓ Exported {len(rows)} non-compliant policy evaluation(s) to: {path}\n"
            f"  Compliance Rate: {summary.compliance_rate_percent:.1f}% "
            f"({summary.compliant_count} of {summary.total_count} compliant)"
        )
        return ReportResult(exit_code=0, output=output, summary=summary, csv_path=path)

    def _log_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Append a report event to the JSON-lines event log.

        Log format: timestamp (ISO 8601), run ID, event type, event data.
        Does nothing when no log directory is configured.
        """
        if self.log_dir is None:
            return

        log_entry = {
            'timestamp': self.clock().isoformat(),
            'run_id': self.run_id,
            'event_type': event_type,
            'data': data
        }

        log_file = self.log_dir / f"report_{self.run_id}.jsonl"

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(log_entry) + '\n')
        except OSError as e:
            status(f"⚠ Failed to write log entry: {e}")


def format_run_time(value: datetime) -> str:
    """Timestamp shown in CLI status lines."""
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")
