"""
Azure Policy Scanner

Reads Azure Policy compliance data for a subscription through the Azure SDK:
- latest policy states (Policy Insights)
- policy definition display names (Resource Manager policy client)
- subscriptions visible to the signed-in identity

Failures of the policy state query propagate as azure.core AzureError; callers
treat them as fatal. Definition lookups are best-effort and their errors are
handled by the name resolver.
"""

import os
from dataclasses import dataclass
from typing import Any, List, Optional

from azure.core.exceptions import ResourceNotFoundError
from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.mgmt.policyinsights import PolicyInsightsClient
from azure.mgmt.resource import PolicyClient, SubscriptionClient

from records import PolicyEvaluationRecord
from settings import POLICY_STATES_RESOURCE, has_service_principal_credentials


@dataclass(frozen=True)
class SubscriptionInfo:
    """Subscription entry offered in the interactive picker."""

    subscription_id: str
    display_name: str
    state: str


def build_credential() -> Any:
    """
    Create the Azure credential used by all clients.

    Azure SDK Pattern:
    - ClientSecretCredential when a service principal is configured through
      AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET
    - DefaultAzureCredential otherwise (Azure CLI login, managed identity, ...)
    - Tokens are cached and refreshed by the credential itself
    """
    if has_service_principal_credentials():
        return ClientSecretCredential(
            tenant_id=os.environ["AZURE_TENANT_ID"],
            client_id=os.environ["AZURE_CLIENT_ID"],
            client_secret=os.environ["AZURE_CLIENT_SECRET"]
        )
    return DefaultAzureCredential()


def list_subscriptions(credential: Any,
                       subscription_client: Optional[SubscriptionClient] = None) -> List[SubscriptionInfo]:
    """
    List enabled subscriptions visible to the credential, sorted by name.

    Raises:
        AzureError: If the subscription list cannot be retrieved
    """
    client = subscription_client or SubscriptionClient(credential=credential)

    subscriptions = []
    for subscription in client.subscriptions.list():
        # SubscriptionState enum member or plain string
        state = getattr(subscription, 'state', None)
        state = str(getattr(state, 'value', state) or '')
        if state.lower() != 'enabled':
            continue
        subscriptions.append(SubscriptionInfo(
            subscription_id=subscription.subscription_id,
            display_name=subscription.display_name or subscription.subscription_id,
            state=state
        ))

    return sorted(subscriptions, key=lambda s: s.display_name.lower())


class AzurePolicyScanner:
    """
    Queries Azure Policy compliance data for one subscription.

    Architecture:
    - PolicyInsightsClient reads policy states (the compliance evaluations)
    - PolicyClient reads policy definitions (for display names)
    - Clients can be injected, which keeps the class usable without Azure access
    """

    def __init__(self, subscription_id: str, credential: Any = None,
                 policy_insights_client: Optional[PolicyInsightsClient] = None,
                 policy_client: Optional[PolicyClient] = None):
        """
        Initialize the scanner for a subscription.

        Args:
            subscription_id: Azure subscription ID to report on
            credential: Azure credential; built from the environment when omitted
                and a client still has to be created
            policy_insights_client: Pre-built Policy Insights client
            policy_client: Pre-built policy definitions client
        """
        self.subscription_id = subscription_id

        if policy_insights_client is None or policy_client is None:
            credential = credential or build_credential()

        self.policy_insights_client = policy_insights_client or PolicyInsightsClient(
            credential=credential,
            subscription_id=subscription_id
        )

        self.policy_client = policy_client or PolicyClient(
            credential=credential,
            subscription_id=subscription_id
        )

    def list_policy_states(self) -> List[PolicyEvaluationRecord]:
        """
        Fetch the latest policy states for the subscription.

        Azure SDK Pattern:
        - list_query_results_for_subscription() returns a paged iterator
        - The SDK follows nextLink continuation automatically

        Returns:
            List of PolicyEvaluationRecord, one per policy/resource evaluation

        Raises:
            AzureError: On authentication, permission or connectivity failures
        """
        states = self.policy_insights_client.policy_states.list_query_results_for_subscription(
            policy_states_resource=POLICY_STATES_RESOURCE,
            subscription_id=self.subscription_id
        )
        return [PolicyEvaluationRecord.from_policy_state(state) for state in states]

    def get_definition_display_name(self, policy_id: str) -> Optional[str]:
        """
        Look up the display name of a policy definition.

        Built-in definitions are tried first, then custom definitions in the
        subscription.

        Args:
            policy_id: Policy definition name (GUID for built-ins)

        Returns:
            Display name, or None when the definition has none

        Raises:
            AzureError: If neither lookup succeeds
        """
        try:
            definition = self.policy_client.policy_definitions.get_built_in(
                policy_definition_name=policy_id
            )
        except ResourceNotFoundError:
            definition = self.policy_client.policy_definitions.get(
                policy_definition_name=policy_id
            )

        return getattr(definition, 'display_name', None)
