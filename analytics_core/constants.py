"""
Constants: SDK version, event type names, durable keys and defaults.
"""

SDK_NAME = "analytics-core-python"
SDK_VERSION = "1.0.0"

# ─── Sessions ────────────────────────────────────────────────────
DEFAULT_SESSION_TIMEOUT_SEC = 6.0   # Background longer than this → new session

# ─── Network ─────────────────────────────────────────────────────
DEFAULT_BASE_URL = "https://api.exponea.com"
API_TIMEOUT_UPLOAD = 30        # Seconds per upload request
CONNECT_RETRIES = 2            # Connect-level only, the request never left the device
NETWORK_ERRORS_BEFORE_RESET = 3  # Consecutive failures before the pooled session is rebuilt

# ─── Event type names (as sent to the server) ────────────────────
EVENT_INSTALLATION = "installation"
EVENT_SESSION_START = "session_start"
EVENT_SESSION_END = "session_end"
EVENT_PAYMENT = "payment"
EVENT_CAMPAIGN = "campaign"    # Push opened + push delivered

# Customer property that carries the push notification token.
PUSH_TOKEN_PROPERTY = "push_notification_id"

# ─── Durable key-value keys ──────────────────────────────────────
KEY_SESSION_START = "session_start_time"
KEY_SESSION_END = "session_end_time"
KEY_SESSION_BACKGROUND = "session_background_time"
KEY_INSTALL_TRACKED = "install_tracked_{uuid}"

# ─── Record kinds (durable record engine) ────────────────────────
KIND_EVENT = "events"
KIND_CUSTOMER = "customers"
