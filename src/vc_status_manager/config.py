"""Status manager configuration.

Defaults may be overridden via environment variables; CLI options and
constructor arguments take precedence over both.
"""

import os

# =============================================================================
# LEDGER
# =============================================================================

TEZOS_RPC: str = os.getenv("TEZOS_RPC") or os.getenv("VUE_APP_TEZOS_RPC") or "http://localhost:8080"
CHAIN: str = os.getenv("STATUS_MANAGER_CHAIN", "main")
CONFIRMATIONS: int = int(os.getenv("STATUS_MANAGER_CONFIRMATIONS", "3"))
INJECTOR_URL: str | None = os.getenv("STATUS_MANAGER_INJECTOR_URL") or None

# =============================================================================
# NETWORK
# =============================================================================

HTTP_TIMEOUT_SECONDS: float = float(os.getenv("STATUS_MANAGER_HTTP_TIMEOUT", "30.0"))
POLL_INTERVAL_SECONDS: float = float(os.getenv("STATUS_MANAGER_POLL_INTERVAL", "2.0"))
CONFIRMATION_TIMEOUT_SECONDS: float = float(
    os.getenv("STATUS_MANAGER_CONFIRMATION_TIMEOUT", "300.0")
)

# =============================================================================
# TZIP-16 METADATA
# =============================================================================

STATUS_MANAGER_METADATA_URL: str = os.getenv(
    "STATUS_MANAGER_METADATA_URL",
    "https://static.gravity.earth/json/status-manager-metadata.json",
)
REVOCATION_MANAGER_METADATA_URL: str = os.getenv(
    "REVOCATION_MANAGER_METADATA_URL",
    "https://static.gravity.earth/json/revocation-manager-metadata.json",
)
