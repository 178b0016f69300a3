"""
Shared constants for the vault deposit alert relay.

Explorer URLs, event-shape conventions and default values used across modules.
"""

# ---------------------------------------------------------------------------
# Block Explorers
# ---------------------------------------------------------------------------

EXPLORER_MAINNET = "https://etherscan.io"
# Host token found in the streaming endpoint URL -> explorer base
EXPLORER_TESTNETS = {
    "sepolia": "https://sepolia.etherscan.io",
    "holesky": "https://holesky.etherscan.io",
}
EXPLORER_LINK_LABEL = "view on Etherscan"

# ---------------------------------------------------------------------------
# Deposit Event Conventions (ERC-4626 Deposit(sender, owner, assets, shares))
# ---------------------------------------------------------------------------

DEFAULT_EVENT_NAME = "Deposit"
AMOUNT_FIELD_NAME = "assets"
AMOUNT_FIELD_INDEX = 2  # positional fallback: third declared field
MAX_INDEXED_FIELDS = 3  # topics[1..3]

# ---------------------------------------------------------------------------
# Alert Presentation
# ---------------------------------------------------------------------------

# Display-name heuristic, not an on-chain fact
SYMBOL_USDT = "USDT"
SYMBOL_DEFAULT = "USDC"

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_HTTP_PORT = 3000
DEFAULT_SUBSCRIPTION_TIMEOUT_SECONDS = 15.0
DEFAULT_TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_TELEGRAM_TIMEOUT_SECONDS = 20
