"""
Application Configuration Settings

This file stores the configuration values used by the policy compliance report:
Azure query parameters, report layout limits and output locations.

Values that commonly differ between machines (output and log directories) can be
overridden through environment variables, which the CLI also reads from a local
.env file.
"""

import os
from typing import Optional


# =============================================================================
# AZURE CONFIGURATION
# =============================================================================

# Policy Insights exposes "latest" (current state) and "default" (all historical
# evaluations). The report always works on the latest state per resource.
POLICY_STATES_RESOURCE = "latest"

# Environment variables consulted for service principal authentication.
# When any of them is missing the CLI falls back to DefaultAzureCredential
# (Azure CLI login, managed identity, ...).
AZURE_CREDENTIAL_ENV_VARS = (
    "AZURE_TENANT_ID",
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
)

SUBSCRIPTION_ENV_VAR = "AZURE_SUBSCRIPTION_ID"


# =============================================================================
# REPORTING CONFIGURATION
# =============================================================================

# Console report shows at most this many non-compliant policies in detail.
# JSON and CSV exports are never truncated.
DETAIL_ROW_LIMIT = 15

# CSV artifact naming: PolicyCompliance_<subscriptionId>_<yyyyMMdd_HHmmss>.csv
CSV_FILENAME_TEMPLATE = "PolicyCompliance_{subscription_id}_{timestamp}.csv"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Directory the CSV report is written to
REPORT_OUTPUT_DIR = os.getenv("POLICY_REPORT_OUTPUT_DIR", ".")

# Directory for the JSON-lines event log; unset disables the event log
LOGS_DIR: Optional[str] = os.getenv("POLICY_REPORT_LOG_DIR") or None

# Console layout
CONSOLE_WIDTH = 80
POLICY_NAME_COLUMN_WIDTH = 50


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def has_service_principal_credentials() -> bool:
    """Return True when all service principal environment variables are set."""
    return all(os.getenv(name) for name in AZURE_CREDENTIAL_ENV_VARS)


# =============================================================================
# VERSION INFORMATION
# =============================================================================

APPLICATION_VERSION = "1.0.0"
APPLICATION_NAME = "Azure Policy Compliance Report"
