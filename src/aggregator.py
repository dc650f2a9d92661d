"""
Compliance Aggregator

Summarizes a set of policy evaluation records: compliant / non-compliant counts,
compliance rate and the evaluation time range.

Rates are rounded to one decimal place, half away from zero, on the exact
decimal ratio (49 of 400 compliant is 12.25% and reports as 12.3%).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional

from records import COMPLIANT, NON_COMPLIANT, PolicyEvaluationRecord


Clock = Callable[[], datetime]

_ONE_DECIMAL = Decimal("0.1")


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ComplianceSummary:
    """Derived statistics for one report run."""

    total_count: int
    compliant_count: int
    non_compliant_count: int
    compliance_rate_percent: float
    non_compliance_rate_percent: float
    earliest_evaluation_time: datetime
    latest_evaluation_time: datetime


def percentage(part: int, total: int) -> float:
    """
    Calculate part/total as a percentage rounded to one decimal place.

    Ties round away from zero. Returns 0.0 when total is zero.
    """
    if total == 0:
        return 0.0
    exact = Decimal(part) * 100 / Decimal(total)
    return float(exact.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def aggregate(records: Iterable[PolicyEvaluationRecord],
              now: Optional[Clock] = None) -> ComplianceSummary:
    """
    Summarize policy evaluation records in a single pass.

    Records whose compliance_state is neither "Compliant" nor "NonCompliant"
    (e.g. "Exempt", "Unknown") count toward the total only.

    Args:
        records: Policy evaluation records for one subscription
        now: Clock used for the time range when there are no records. The
            resulting bounds are a placeholder, not a real evaluation time.

    Returns:
        ComplianceSummary
    """
    total = 0
    compliant = 0
    non_compliant = 0
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None

    for record in records:
        total += 1
        if record.compliance_state == COMPLIANT:
            compliant += 1
        elif record.compliance_state == NON_COMPLIANT:
            non_compliant += 1

        evaluated = record.evaluation_time
        if earliest is None or evaluated < earliest:
            earliest = evaluated
        if latest is None or evaluated > latest:
            latest = evaluated

    if earliest is None or latest is None:
        earliest = latest = (now or utc_now)()

    rate = percentage(compliant, total)
    complement = float((Decimal(100) - Decimal(str(rate))).quantize(_ONE_DECIMAL)) if total else 0.0

    return ComplianceSummary(
        total_count=total,
        compliant_count=compliant,
        non_compliant_count=non_compliant,
        compliance_rate_percent=rate,
        non_compliance_rate_percent=complement,
        earliest_evaluation_time=earliest,
        latest_evaluation_time=latest
    )


def non_compliant_records(records: Iterable[PolicyEvaluationRecord]) -> List[PolicyEvaluationRecord]:
    """Return the NonCompliant records, most recent evaluation first."""
    return sorted(
        (r for r in records if r.compliance_state == NON_COMPLIANT),
        key=lambda r: r.evaluation_time,
        reverse=True
    )
