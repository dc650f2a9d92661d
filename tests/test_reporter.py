"""Tests for the report driver."""

from __future__ import annotations

import csv
import json

import pytest

from policy_names import PolicyNameResolver
from renderer import ReportFormat
from reporter import ComplianceReporter


def test_empty_records_short_circuit(tmp_path, fixed_clock) -> None:
    """No records is a successful run with an informational message and no file."""

    reporter = ComplianceReporter(output_dir=tmp_path, clock=fixed_clock)

    result = reporter.generate([], "sub-1", ReportFormat.CSV)

    assert result.exit_code == 0
    assert result.summary is None
    assert result.csv_path is None
    assert "No policy compliance data found for subscription sub-1" in result.output
    assert list(tmp_path.iterdir()) == []


def test_console_is_default(scenario_records, fixed_clock) -> None:
    result = ComplianceReporter(clock=fixed_clock).generate(scenario_records, "sub-1")

    assert result.exit_code == 0
    assert "AZURE POLICY COMPLIANCE REPORT" in result.output
    assert "Generated: 2024-06-01 08:30:15 UTC" in result.output
    assert result.summary.compliance_rate_percent == 90.0


def test_format_accepts_names(scenario_records, fixed_clock) -> None:
    result = ComplianceReporter(clock=fixed_clock).generate(scenario_records, "sub-1", "json")

    report = json.loads(result.output)
    assert report["generatedAt"] == "2024-06-01T08:30:15+00:00"
    assert [entry["type"] for entry in report["nonCompliantPolicies"]] == ["Deploy", "Deny"]


def test_unknown_format_raises(scenario_records) -> None:
    with pytest.raises(ValueError):
        ComplianceReporter().generate(scenario_records, "sub-1", "xml")


def test_csv_written_to_output_dir(tmp_path, many_non_compliant, fixed_clock) -> None:
    reporter = ComplianceReporter(output_dir=tmp_path, clock=fixed_clock)

    result = reporter.generate(many_non_compliant, "sub-1", ReportFormat.CSV)

    assert result.csv_path == tmp_path / "PolicyCompliance_sub-1_20240601_083015.csv"
    assert str(result.csv_path) in result.output
    with open(result.csv_path, newline="", encoding="utf-8") as fh:
        assert len(list(csv.DictReader(fh))) == 25


def test_resolver_lookup_is_used(scenario_records, fixed_clock) -> None:
    resolver = PolicyNameResolver(lookup=lambda policy_id: f"Name of {policy_id}")
    reporter = ComplianceReporter(resolver=resolver, clock=fixed_clock)

    report = json.loads(reporter.generate(scenario_records, "sub-1", ReportFormat.JSON).output)

    assert report["nonCompliantPolicies"][0]["displayName"] == "Name of defender-for-servers"


def test_event_log(tmp_path, scenario_records, fixed_clock) -> None:
    log_dir = tmp_path / "logs"
    reporter = ComplianceReporter(log_dir=log_dir, clock=fixed_clock)

    reporter.generate(scenario_records, "sub-1")
    reporter.generate([], "sub-1")

    log_file = log_dir / "report_20240601_083015.jsonl"
    events = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert [e["event_type"] for e in events] == [
        "REPORT_STARTED",
        "REPORT_COMPLETED",
        "REPORT_STARTED",
        "REPORT_EMPTY",
    ]
    assert events[1]["data"]["compliance_rate_percent"] == 90.0
    assert all(e["run_id"] == "20240601_083015" for e in events)


def test_event_log_failure_does_not_abort(tmp_path, scenario_records, capsys) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")

    result = ComplianceReporter(log_dir=blocker).generate(scenario_records, "sub-1")

    assert result.exit_code == 0
    assert "Failed to write log entry" in capsys.readouterr().err
