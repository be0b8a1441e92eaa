"""Application-level constants for chatlink.

This module keeps only cross-cutting identity, endpoint and envelope constants.
Timeout and backoff numbers live in ``timeouts``.
"""

# ============================================================================
# Application identity
# ============================================================================

APP_NAME = "chatlink"
ENV_PREFIX = "CHATLINK_"

# ============================================================================
# Endpoints
# ============================================================================

DEFAULT_BASE_URL = "http://localhost:3000"
TOKENS_PATH = "/api/tokens"
CHAT_PATH = "/api/chat"

# Subject requested from the issuance endpoint when none is configured
DEFAULT_USER_ID = "dev-user"

# ============================================================================
# Credentials
# ============================================================================

DEFAULT_TOKEN_TYPE = "Bearer"

# Lead time before true expiry at which a credential stops being usable
DEFAULT_REFRESH_BUFFER_SEC = 300

# ============================================================================
# Request envelope
# ============================================================================

MESSAGE_ROLES = ("user", "assistant", "system")
MIN_MESSAGES = 1
MAX_MESSAGES = 50
