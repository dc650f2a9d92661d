"""
Policy Evaluation Records

Defines the record type the report pipeline works on: one policy evaluation of one
resource at one point in time. Records are built either from Azure Policy Insights
SDK models or from plain mappings (REST / PowerShell exports read from disk).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import yaml


COMPLIANT = "Compliant"
NON_COMPLIANT = "NonCompliant"
UNKNOWN_EFFECT = "Unknown"
UNKNOWN_STATE = "Unknown"

# Accepted keys per field, compared case-insensitively. Covers the REST API
# (camelCase), Get-AzPolicyState output (PascalCase) and this tool's own JSON.
_FIELD_KEYS = {
    'policy_id': ('policyDefinitionName', 'policyId'),
    'evaluation_time': ('timestamp', 'evaluationTime'),
    'resource_id': ('resourceId',),
    'compliance_state': ('complianceState',),
    'policy_effect': ('policyDefinitionAction', 'policyEffect'),
}


@dataclass(frozen=True)
class PolicyEvaluationRecord:
    """A single compliance-check result for a resource against a policy."""

    policy_id: str
    evaluation_time: datetime
    resource_id: str
    compliance_state: str
    policy_effect: str = UNKNOWN_EFFECT

    def __post_init__(self) -> None:
        # Naive timestamps are UTC; keeps min/max comparisons well defined
        if self.evaluation_time.tzinfo is None:
            object.__setattr__(
                self, 'evaluation_time',
                self.evaluation_time.replace(tzinfo=timezone.utc)
            )

    @classmethod
    def from_policy_state(cls, state: Any) -> "PolicyEvaluationRecord":
        """
        Build a record from an azure-mgmt-policyinsights PolicyState model.

        Azure SDK Pattern:
        - policy_definition_name holds the definition GUID (built-ins) or name (custom)
        - timestamp is already deserialized to a datetime
        - compliance_state is absent on older API versions, which only set is_compliant

        Args:
            state: PolicyState object returned by policy_states.list_query_results_*

        Returns:
            PolicyEvaluationRecord

        Raises:
            ValueError: If the policy definition name or timestamp is missing
        """
        policy_id = getattr(state, 'policy_definition_name', None)
        if not policy_id:
            raise ValueError("Policy state is missing 'policyDefinitionName'")

        timestamp = getattr(state, 'timestamp', None)
        if timestamp is None:
            raise ValueError(f"Policy state for '{policy_id}' is missing 'timestamp'")

        compliance_state = getattr(state, 'compliance_state', None)
        if not compliance_state:
            is_compliant = getattr(state, 'is_compliant', None)
            if is_compliant is None:
                compliance_state = UNKNOWN_STATE
            else:
                compliance_state = COMPLIANT if is_compliant else NON_COMPLIANT

        return cls(
            policy_id=policy_id,
            evaluation_time=parse_timestamp(timestamp),
            resource_id=getattr(state, 'resource_id', None) or '',
            compliance_state=compliance_state,
            policy_effect=getattr(state, 'policy_definition_action', None) or UNKNOWN_EFFECT
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PolicyEvaluationRecord":
        """
        Build a record from a dictionary.

        Keys are matched case-insensitively, so both the REST API shape
        ("policyDefinitionName", "timestamp", ...) and the PowerShell shape
        ("PolicyDefinitionName", "Timestamp", ...) are accepted.

        Args:
            data: Mapping describing one policy state

        Returns:
            PolicyEvaluationRecord

        Raises:
            ValueError: If the policy identifier or timestamp is missing or invalid
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Policy state must be a mapping, got {type(data).__name__}")

        lowered = {str(key).lower(): value for key, value in data.items()}

        def field(name: str) -> Any:
            for key in _FIELD_KEYS[name]:
                value = lowered.get(key.lower())
                if value is not None:
                    return value
            return None

        policy_id = field('policy_id')
        if not policy_id:
            raise ValueError("Policy state is missing 'policyDefinitionName'")

        timestamp = field('evaluation_time')
        if timestamp is None:
            raise ValueError(f"Policy state for '{policy_id}' is missing 'timestamp'")

        return cls(
            policy_id=str(policy_id),
            evaluation_time=parse_timestamp(timestamp),
            resource_id=str(field('resource_id') or ''),
            compliance_state=str(field('compliance_state') or UNKNOWN_STATE),
            policy_effect=str(field('policy_effect') or UNKNOWN_EFFECT)
        )


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 timestamp (trailing "Z" allowed) into an aware datetime.

    Raises:
        ValueError: If the value is not a recognizable timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}") from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_records(path: Union[str, Path]) -> List[PolicyEvaluationRecord]:
    """
    Load policy evaluation records from a YAML or JSON export.

    The file may contain a list of policy states or a REST-style object with the
    states under "value" (the shape returned by the Policy Insights API).

    Args:
        path: File to read

    Returns:
        List of records in file order

    Raises:
        OSError: If the file cannot be read
        ValueError: If the content is not a policy state export
    """
    input_file = Path(path)

    with open(input_file, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse policy states file {input_file}: {e}") from e

    items: Optional[Any]
    if data is None:
        items = []
    elif isinstance(data, dict):
        items = {str(k).lower(): v for k, v in data.items()}.get('value')
    else:
        items = data

    if not isinstance(items, list):
        raise ValueError(
            f"Policy states file {input_file} must contain a list or an object with a 'value' list"
        )

    return [PolicyEvaluationRecord.from_mapping(item) for item in items]

