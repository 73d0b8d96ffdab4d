"""
Constants, limits, storage keys and activity type names.
"""

CLIENT_VERSION = "1.2.0"

# ─── Activity queue ──────────────────────────────────────────────
QUEUE_CAPACITY = 100           # Oldest queued event is evicted past this
FLUSH_BATCH_SIZE = 10          # Events delivered concurrently per batch
MAX_DELIVERY_ATTEMPTS = 10     # Failed flush deliveries before an event is dropped
ELEMENT_TEXT_LIMIT = 100       # Characters of element text kept on click events

# ─── Network ─────────────────────────────────────────────────────
API_TIMEOUT_SEC = 20           # Per-request transport timeout
CONNECTIVITY_CHECK_SEC = 15    # How often to probe the API host
FLUSH_INTERVAL_SEC = 60        # Periodic queue flush while online

# ─── Storage keys ────────────────────────────────────────────────
SESSION_KEY = "summit_session"
QUEUE_KEY = "summit_activity_queue"
IMS_STATE_KEY = "ims_state"
REDIRECT_KEY = "redirect_after_login"

# ─── Routes ──────────────────────────────────────────────────────
PORTAL_HOME = "/portal"
PORTAL_PREFIX = "/portal"
EMPLOYEE_PREFIX = "/employee"

# ─── Activity types ──────────────────────────────────────────────
PAGE_VIEW = "page_view"
LINK_CLICK = "link_click"
DOCUMENT_VIEW = "document_view"
DOCUMENT_DOWNLOAD = "document_download"
ROLE_SWITCH = "role_switch"

# ─── Defaults for config.json ────────────────────────────────────
DEFAULT_CONFIG = {
    "apiBaseUrl": "https://runtime.adobe.io/api/v1/web/summit-portal",
    "imsClientId": "summit-portal",
    "imsScope": "openid,AdobeID,read_organizations",
    "imsAuthUrl": "https://ims-na1.adobelogin.com/ims/authorize/v2",
    "redirectUri": "http://localhost:8080/auth/callback",
    "trustedOrgId": "",
    "requestTimeoutSec": API_TIMEOUT_SEC,
    "queueCapacity": QUEUE_CAPACITY,
    "batchSize": FLUSH_BATCH_SIZE,
    "flushIntervalSec": FLUSH_INTERVAL_SEC,
    "connectivityCheckSec": CONNECTIVITY_CHECK_SEC,
}
