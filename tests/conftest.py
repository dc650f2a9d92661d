"""Shared fixtures for the policy compliance report tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List

import pytest

from records import PolicyEvaluationRecord


BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

RecordFactory = Callable[..., PolicyEvaluationRecord]


def make_record(
    policy_id: str = "e56962a6-4747-49cd-b67b-bf8b01975c4c",
    minutes: int = 0,
    state: str = "Compliant",
    effect: str = "audit",
    resource_id: str = "/subscriptions/sub-1/resourceGroups/rg/providers/Microsoft.Storage/storageAccounts/sa1",
) -> PolicyEvaluationRecord:
    """Build a record evaluated ``minutes`` after BASE_TIME."""

    return PolicyEvaluationRecord(
        policy_id=policy_id,
        evaluation_time=BASE_TIME + timedelta(minutes=minutes),
        resource_id=resource_id,
        compliance_state=state,
        policy_effect=effect,
    )


@pytest.fixture
def record_factory() -> RecordFactory:
    return make_record


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock pinned to 2024-06-01 08:30:15 UTC."""

    moment = datetime(2024, 6, 1, 8, 30, 15, tzinfo=timezone.utc)
    return lambda: moment


@pytest.fixture
def scenario_records() -> List[PolicyEvaluationRecord]:
    """20 evaluations: 18 compliant, 2 non-compliant (deployifnotexists, deny)."""

    records = [make_record(policy_id=f"policy-{i:02d}", minutes=i) for i in range(18)]
    records.append(
        make_record(policy_id="defender-for-servers", minutes=30, state="NonCompliant", effect="deployifnotexists")
    )
    records.append(make_record(policy_id="0123456789abcdef", minutes=20, state="NonCompliant", effect="deny"))
    return records


@pytest.fixture
def many_non_compliant() -> List[PolicyEvaluationRecord]:
    """25 non-compliant evaluations plus 5 compliant ones."""

    records = [
        make_record(policy_id=f"custom-policy-{i:02d}", minutes=i, state="NonCompliant", effect="auditifnotexists")
        for i in range(25)
    ]
    records.extend(make_record(policy_id=f"ok-{i}", minutes=100 + i) for i in range(5))
    return records
