"""
Report Renderer

Produces the three report formats from one aggregated result:
- Console: readable summary with a bounded table of recent non-compliant policies
- JSON: full structured export for automation
- CSV: one row per non-compliant evaluation for spreadsheets

Only the console report limits the number of detail rows. JSON and CSV always
contain every non-compliant record.
"""

import csv
import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Union

from aggregator import ComplianceSummary
from policy_names import PolicyNameResolver
from records import PolicyEvaluationRecord
from settings import (
    CONSOLE_WIDTH,
    CSV_FILENAME_TEMPLATE,
    DETAIL_ROW_LIMIT,
    POLICY_NAME_COLUMN_WIDTH,
    TIMESTAMP_FORMAT
)


class ReportFormat(Enum):
    """Output formats accepted by the CLI."""

    CONSOLE = "Console"
    JSON = "JSON"
    CSV = "CSV"

    @classmethod
    def parse(cls, value: Union[str, "ReportFormat"]) -> "ReportFormat":
        """Return the format named by value, ignoring case."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        valid = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown output format '{value}'. Valid formats: {valid}")


# Short labels for policy effects. Anything else is shown as reported by Azure.
EFFECT_LABELS = {
    'deployifnotexists': "Deploy",
    'auditifnotexists': "Audit",
    'deny': "Deny",
    'append': "Append"
}

CSV_COLUMNS = (
    "PolicyId",
    "DisplayName",
    "Type",
    "ComplianceState",
    "EvaluationTime",
    "ResourceId"
)

OVERFLOW_LINE = "... and {count} more non-compliant policies"

# Editorial guidance appended to every console report. Fixed text, not derived
# from the evaluated records.
NARRATIVE_SECTIONS = (
    ("KEY FINDINGS", (
        "- Non-compliant DeployIfNotExists policies mean a required configuration",
        "  (for example a Microsoft Defender plan or a diagnostic setting) is missing",
        "  and will be deployed automatically when the resource is next updated.",
        "- Audit findings are informational: nothing is blocked or changed, but the",
        "  resource does not meet the assigned standard.",
        "- Deny policies block create and update requests that violate the rule.",
    )),
    ("DEPLOYMENT IMPACT", (
        "- Deployments touching non-compliant resources may take longer while",
        "  DeployIfNotExists remediation runs after the resource write completes.",
        "- Requests that violate a Deny policy fail with RequestDisallowedByPolicy",
        "  and must be corrected before they can succeed.",
        "- Append policies add properties to resources at write time, so deployed",
        "  templates can differ from the resulting resource configuration.",
    )),
    ("RECOMMENDED ACTIONS", (
        "1. Review the non-compliant policies above, starting with the most recent.",
        "2. Create remediation tasks for DeployIfNotExists and Modify assignments",
        "   to bring existing resources into compliance.",
        "3. Confirm the assignment's managed identity has the roles the policy",
        "   definition requires for remediation.",
        "4. Request policy exemptions for resources that are intentionally excluded.",
    )),
    ("ADDITIONAL RESOURCES", (
        "- Azure Policy compliance data: https://learn.microsoft.com/azure/governance/policy/how-to/get-compliance-data",
        "- Remediate non-compliant resources: https://learn.microsoft.com/azure/governance/policy/how-to/remediate-resources",
        "- Export the full list with --output-format JSON or --output-format CSV.",
    )),
)


def format_effect(effect: str) -> str:
    """Map a policy effect to its short label; unknown effects pass through."""
    return EFFECT_LABELS.get(effect, effect)


def format_timestamp(value: datetime) -> str:
    """Human-readable UTC timestamp used in the console report."""
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def detail_row(record: PolicyEvaluationRecord, resolver: PolicyNameResolver) -> Dict[str, str]:
    """
    Build the display row for one non-compliant evaluation.

    Shared by the console table and the CSV export.

    Returns:
        Dictionary keyed by CSV_COLUMNS
    """
    return {
        "PolicyId": record.policy_id,
        "DisplayName": resolver.display_name(record.policy_id),
        "Type": format_effect(record.policy_effect),
        "ComplianceState": record.compliance_state,
        "EvaluationTime": record.evaluation_time.isoformat(),
        "ResourceId": record.resource_id
    }


def _truncate(text: str, width: int) -> str:
    return (text[:width - 3] + "...") if len(text) > width else text


def render_console(summary: ComplianceSummary,
                   non_compliant: Sequence[PolicyEvaluationRecord],
                   subscription_id: str,
                   resolver: PolicyNameResolver,
                   generated_at: datetime) -> str:
    """
    Render the console report.

    Args:
        summary: Aggregated compliance statistics
        non_compliant: Non-compliant records, most recent first
        subscription_id: Subscription the records belong to
        resolver: Display name resolver for this run
        generated_at: Report generation time

    Returns:
        Report text (no trailing newline)
    """
    lines = []
    rule = "=" * CONSOLE_WIDTH
    thin_rule = "-" * CONSOLE_WIDTH

    # Header
    lines.append(rule)
    lines.append("AZURE POLICY COMPLIANCE REPORT")
    lines.append(rule)
    lines.append(f"Generated: {format_timestamp(generated_at)}")
    lines.append(f"Subscription: {subscription_id}")
    lines.append(
        f"Evaluation Period: {format_timestamp(summary.earliest_evaluation_time)}"
        f" to {format_timestamp(summary.latest_evaluation_time)}"
    )
    lines.append(rule)

    # Summary
    lines.append("")
    lines.append("COMPLIANCE SUMMARY")
    lines.append(thin_rule)
    lines.append(f"Total Policy Evaluations:  {summary.total_count}")
    lines.append(f"Compliant:                 {summary.compliant_count}")
    lines.append(f"Non-Compliant:             {summary.non_compliant_count}")
    lines.append(f"Compliance Rate:           {summary.compliance_rate_percent:.1f}%")
    lines.append(f"Non-Compliance Rate:       {summary.non_compliance_rate_percent:.1f}%")

    # Most recent non-compliant policies
    if non_compliant:
        name_width = POLICY_NAME_COLUMN_WIDTH
        lines.append("")
        lines.append(f"MOST RECENT NON-COMPLIANT POLICIES (up to {DETAIL_ROW_LIMIT})")
        lines.append(thin_rule)
        lines.append(f"{'Policy':<{name_width}} {'Type':<8} Evaluated")
        lines.append(thin_rule)

        for record in non_compliant[:DETAIL_ROW_LIMIT]:
            row = detail_row(record, resolver)
            name = _truncate(row["DisplayName"], name_width)
            lines.append(
                f"{name:<{name_width}} {row['Type']:<8} "
                f"{format_timestamp(record.evaluation_time)}"
            )
            lines.append(f"  Resource: {row['ResourceId']}")

        remaining = len(non_compliant) - DETAIL_ROW_LIMIT
        if remaining > 0:
            lines.append("")
            lines.append(OVERFLOW_LINE.format(count=remaining))

    # Static guidance
    for title, body in NARRATIVE_SECTIONS:
        lines.append("")
        lines.append(title)
        lines.append(thin_rule)
        lines.extend(body)

    lines.append("")
    lines.append(rule)
    return "\n".join(lines)


def build_json_report(summary: ComplianceSummary,
                      non_compliant: Sequence[PolicyEvaluationRecord],
                      subscription_id: str,
                      resolver: PolicyNameResolver,
                      generated_at: datetime) -> Dict[str, Any]:
    """Build the structured report object serialized by render_json()."""
    return {
        'subscriptionId': subscription_id,
        'generatedAt': generated_at.isoformat(),
        'evaluationTimeRange': {
            'earliest': summary.earliest_evaluation_time.isoformat(),
            'latest': summary.latest_evaluation_time.isoformat()
        },
        'summary': {
            'totalPolicies': summary.total_count,
            'compliantPolicies': summary.compliant_count,
            'nonCompliantPolicies': summary.non_compliant_count,
            'complianceRatePercent': summary.compliance_rate_percent
        },
        'nonCompliantPolicies': [
            {
                'policyId': record.policy_id,
                'displayName': resolver.display_name(record.policy_id),
                'policyEffect': record.policy_effect,
                'type': format_effect(record.policy_effect),
                'complianceState': record.compliance_state,
                'evaluationTime': record.evaluation_time.isoformat(),
                'resourceId': record.resource_id
            }
            for record in non_compliant
        ]
    }


def render_json(summary: ComplianceSummary,
                non_compliant: Sequence[PolicyEvaluationRecord],
                subscription_id: str,
                resolver: PolicyNameResolver,
                generated_at: datetime) -> str:
    """Render the JSON report covering every non-compliant record."""
    report = build_json_report(summary, non_compliant, subscription_id, resolver, generated_at)
    return json.dumps(report, indent=2)


def tabular_rows(non_compliant: Iterable[PolicyEvaluationRecord],
                 resolver: PolicyNameResolver) -> List[Dict[str, str]]:
    """Return one CSV row per non-compliant record."""
    return [detail_row(record, resolver) for record in non_compliant]


def csv_filename(subscription_id: str, now: datetime) -> str:
    """Name of the CSV artifact for a subscription at a given time."""
    return CSV_FILENAME_TEMPLATE.format(
        subscription_id=subscription_id,
        timestamp=now.strftime(TIMESTAMP_FORMAT)
    )


def write_csv(rows: Iterable[Dict[str, str]], path: Union[str, Path]) -> Path:
    """
    Write rows to a CSV file with a header line.

    Args:
        rows: Rows from tabular_rows()
        path: Destination file; parent directories are created

    Returns:
        Path of the written file
    """
    output_file = Path(path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, 'w', encoding='utf-8', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)

    return output_file
