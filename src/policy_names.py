"""
Policy Name Resolver

Turns opaque Azure Policy definition identifiers into names a reader can act on.

Resolution order (first success wins):
1. Definition lookup against Azure (display name of the policy definition)
2. Curated table of well-known built-in policy definitions
3. Placeholder "Policy: <id>", which friendly_name() then classifies by keyword
"""

from fnmatch import fnmatchcase
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple


PLACEHOLDER_PREFIX = "Policy: "
FALLBACK_PREFIX = "Security Policy: "
FALLBACK_ID_LENGTH = 8

# Built-in policy definitions that show up in most subscriptions.
# Keys are definition names (GUIDs), stored lowercase.
KNOWN_POLICY_NAMES: Mapping[str, str] = MappingProxyType({
    'e56962a6-4747-49cd-b67b-bf8b01975c4c': "Allowed locations",
    '0a914e76-4921-4c19-b460-a2d36003525a': "Audit resource location matches resource group location",
    'a08ec900-254a-4555-9bf5-e42af04b5c5c': "Allowed resource types",
    'cccc23c7-8427-4f53-ad12-b6a63eb452b3': "Allowed virtual machine size SKUs",
    '871b6d14-10aa-478d-b590-94f262ecfa99': "Require a tag on resources",
    '96670d01-0a4d-4649-9c89-2d3abc0a5025': "Require a tag on resource groups",
    '404c3081-a854-4457-ae30-26a93ef643f9': "Secure transfer to storage accounts should be enabled",
    '34c877ad-507e-4c82-993e-3452a6e0ad3c': "Storage accounts should restrict network access",
    '06a78e20-9358-41c9-923c-fb736d382a4d': "Audit VMs that do not use managed disks",
    '013e242c-8828-4970-87b3-ab247555486d': "Azure Backup should be enabled for Virtual Machines",
    'a4af4a39-4135-47fb-b175-47fbdf85311d': "App Service apps should only be accessible over HTTPS",
    '1e66c121-a66a-4b1f-9b83-0fd99bf0fc2d': "Key vaults should have soft delete enabled",
    '0b60c0b2-2dc2-4e1c-b5c9-abbed971de53': "Key vaults should have deletion protection enabled",
    'e71308d3-144b-4262-b144-efdc3cc90517': "Subnets should be associated with a Network Security Group",
    '22730e10-96f6-4aac-ad84-9383d35b5917': "Management ports should be closed on your virtual machines",
})

# Ordered (pattern, label) pairs; first match wins. Patterns are matched
# against the lowercased identifier. cloud-security-posture is checked ahead
# of the generic security pattern rather than last, where *security* would
# always match first and leave it unreachable.
KEYWORD_CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ('*defender*', "Microsoft Defender Configuration"),
    ('*cloud-security-posture*', "Cloud Security Posture Management"),
    ('*security*', "Security Center Configuration"),
    ('*monitor*', "Azure Monitor Configuration"),
    ('*audit*', "Audit Configuration"),
    ('*log*', "Diagnostic Logging Configuration"),
)

DefinitionLookup = Callable[[str], Optional[str]]


def placeholder_name(policy_id: str) -> str:
    """Return the last-resort display name for an unresolved policy."""
    return f"{PLACEHOLDER_PREFIX}{policy_id}"


def friendly_name(policy_id: str, resolved_display_name: str) -> str:
    """
    Give an unresolved policy a stable, readable label.

    Only the placeholder form produced by resolve_display_name() is rewritten;
    any real display name is returned unchanged.

    Args:
        policy_id: Policy definition identifier
        resolved_display_name: Result of PolicyNameResolver.resolve_display_name()

    Returns:
        Category label for the first matching keyword pattern, otherwise
        "Security Policy: " followed by the first 8 characters of the id
    """
    if resolved_display_name != placeholder_name(policy_id):
        return resolved_display_name

    candidate = policy_id.lower()
    for pattern, label in KEYWORD_CATEGORIES:
        if fnmatchcase(candidate, pattern):
            return label

    return f"{FALLBACK_PREFIX}{policy_id[:FALLBACK_ID_LENGTH]}"


class PolicyNameResolver:
    """
    Resolves policy definition identifiers to display names.

    One resolver is created per report run. Results are memoised on the
    instance so a policy evaluated against many resources is looked up once.
    """

    def __init__(self, lookup: Optional[DefinitionLookup] = None,
                 known_names: Mapping[str, str] = KNOWN_POLICY_NAMES):
        """
        Args:
            lookup: Callable returning the definition display name for an id,
                or None. Usually AzurePolicyScanner.get_definition_display_name.
            known_names: Table of curated names keyed by lowercase id
        """
        self.lookup = lookup
        self.known_names = known_names
        self._resolved: Dict[str, str] = {}

    def resolve_display_name(self, policy_id: str) -> str:
        """
        Resolve a display name through lookup, known table, then placeholder.

        A failing lookup (permissions, network) is treated as "no name" and
        never interrupts the report.
        """
        if self.lookup is not None:
            try:
                display_name = self.lookup(policy_id)
            except Exception:
                display_name = None
            if display_name and display_name.strip():
                return display_name

        known = self.known_names.get(policy_id.lower())
        if known:
            return known

        return placeholder_name(policy_id)

    def display_name(self, policy_id: str) -> str:
        """Return the name shown in reports for policy_id."""
        if policy_id not in self._resolved:
            resolved = self.resolve_display_name(policy_id)
            self._resolved[policy_id] = friendly_name(policy_id, resolved)
        return self._resolved[policy_id]
