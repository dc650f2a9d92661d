"""Tests for the console, JSON and CSV report renderers."""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone

import pytest

from aggregator import aggregate, non_compliant_records
from policy_names import PolicyNameResolver
from renderer import (
    CSV_COLUMNS,
    NARRATIVE_SECTIONS,
    ReportFormat,
    csv_filename,
    format_effect,
    render_console,
    render_json,
    tabular_rows,
    write_csv,
)


GENERATED_AT = datetime(2024, 6, 1, 8, 30, 15, tzinfo=timezone.utc)


def _console(records, subscription_id: str = "sub-1") -> str:
    return render_console(
        aggregate(records),
        non_compliant_records(records),
        subscription_id,
        PolicyNameResolver(),
        GENERATED_AT,
    )


def _detail_lines(output: str) -> list:
    return [line for line in output.splitlines() if line.startswith("  Resource: ")]


@pytest.mark.parametrize(
    ("effect", "expected"),
    [
        ("deployifnotexists", "Deploy"),
        ("auditifnotexists", "Audit"),
        ("deny", "Deny"),
        ("append", "Append"),
        ("audit", "audit"),
        ("Modify", "Modify"),
        ("DeployIfNotExists", "DeployIfNotExists"),
    ],
)
def test_format_effect(effect: str, expected: str) -> None:
    """Known effects map to short labels; anything else passes through unchanged."""

    assert format_effect(effect) == expected


@pytest.mark.parametrize("value", ["console", "Console", "JSON", "json", " csv "])
def test_report_format_parse(value: str) -> None:
    assert ReportFormat.parse(value).value.lower() == value.strip().lower()


def test_report_format_parse_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="Valid formats: Console, JSON, CSV"):
        ReportFormat.parse("xml")


def test_console_scenario(scenario_records) -> None:
    """Two non-compliant evaluations render as Deploy and Deny rows with no overflow line."""

    output = _console(scenario_records)

    assert "Subscription: sub-1" in output
    assert "Total Policy Evaluations:  20" in output
    assert "Compliant:                 18" in output
    assert "Non-Compliant:             2" in output
    assert "Compliance Rate:           90.0%" in output
    assert "Non-Compliance Rate:       10.0%" in output
    assert len(_detail_lines(output)) == 2

    lines = output.splitlines()
    deploy_line = next(line for line in lines if line.startswith("Microsoft Defender Configuration"))
    deny_line = next(line for line in lines if line.startswith("Security Policy: 01234567"))
    assert " Deploy " in deploy_line
    assert " Deny " in deny_line
    # most recent first
    assert lines.index(deploy_line) < lines.index(deny_line)
    assert "more non-compliant policies" not in output


def test_console_caps_detail_rows(many_non_compliant) -> None:
    output = _console(many_non_compliant)

    assert len(_detail_lines(output)) == 15
    assert "... and 10 more non-compliant policies" in output.splitlines()


def test_console_exactly_fifteen_has_no_overflow(record_factory) -> None:
    records = [record_factory(policy_id=f"p{i}", minutes=i, state="NonCompliant") for i in range(15)]

    output = _console(records)

    assert len(_detail_lines(output)) == 15
    assert "more non-compliant policies" not in output


def test_console_omits_table_when_all_compliant(record_factory) -> None:
    output = _console([record_factory(), record_factory(minutes=5)])

    assert "MOST RECENT NON-COMPLIANT POLICIES" not in output
    assert _detail_lines(output) == []
    assert "Compliance Rate:           100.0%" in output


def test_console_includes_static_sections(record_factory) -> None:
    output = _console([record_factory(state="NonCompliant")])

    for title, body in NARRATIVE_SECTIONS:
        assert title in output
        for line in body:
            assert line in output


def test_console_truncates_long_names(record_factory) -> None:
    resolver = PolicyNameResolver(lookup=lambda policy_id: "N" * 80)
    records = [record_factory(state="NonCompliant")]

    output = render_console(aggregate(records), records, "sub-1", resolver, GENERATED_AT)

    assert ("N" * 47 + "...") in output
    assert ("N" * 51) not in output


def test_json_includes_every_non_compliant_record(many_non_compliant) -> None:
    report = json.loads(render_json(
        aggregate(many_non_compliant),
        non_compliant_records(many_non_compliant),
        "sub-1",
        PolicyNameResolver(),
        GENERATED_AT,
    ))

    assert report["subscriptionId"] == "sub-1"
    assert report["summary"] == {
        "totalPolicies": 30,
        "compliantPolicies": 5,
        "nonCompliantPolicies": 25,
        "complianceRatePercent": 16.7,
    }
    assert len(report["nonCompliantPolicies"]) == 25
    first = report["nonCompliantPolicies"][0]
    assert first["policyId"] == "custom-policy-24"
    assert first["displayName"] == "Security Policy: custom-p"
    assert first["policyEffect"] == "auditifnotexists"
    assert first["type"] == "Audit"
    assert report["evaluationTimeRange"]["earliest"] == "2024-05-01T12:00:00+00:00"
    assert report["evaluationTimeRange"]["latest"] == "2024-05-01T13:44:00+00:00"


def test_tabular_rows_include_every_record(many_non_compliant) -> None:
    rows = tabular_rows(non_compliant_records(many_non_compliant), PolicyNameResolver())

    assert len(rows) == 25
    assert set(rows[0]) == set(CSV_COLUMNS)
    assert {row["Type"] for row in rows} == {"Audit"}


def test_write_csv(tmp_path, scenario_records) -> None:
    rows = tabular_rows(non_compliant_records(scenario_records), PolicyNameResolver())

    path = write_csv(rows, tmp_path / "nested" / "report.csv")

    with open(path, newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        assert tuple(reader.fieldnames) == CSV_COLUMNS
        written = list(reader)

    assert [row["Type"] for row in written] == ["Deploy", "Deny"]
    assert written[0]["DisplayName"] == "Microsoft Defender Configuration"


def test_csv_filename() -> None:
    assert csv_filename("sub-1", GENERATED_AT) == "PolicyCompliance_sub-1_20240601_083015.csv"
