"""Constants for Scam Watcher."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".scam-watcher"
QUARANTINE_LOG_PATH = CONFIG_DIR / "quarantine_log.json"

# --- Environment ---
ENV_ACCOUNTS_CONFIG_PATH = "ACCOUNTS_CONFIG_PATH"
ENV_ANTHROPIC_API_KEY = "ANTHROPIC_API_KEY"
ENV_ANTHROPIC_MODEL = "ANTHROPIC_MODEL"
ENV_SCAM_THRESHOLD = "SCAM_THRESHOLD"
ENV_BODY_MAX_CHARS = "ANALYZER_BODY_MAX_CHARS"
ENV_IMAP_PORT = "IMAP_PORT"
ENV_IMAP_TLS = "IMAP_TLS"

# --- IMAP ---
WATCHED_MAILBOX = "INBOX"
DEFAULT_IMAP_PORT = 993
SOCKET_TIMEOUT = 30  # seconds
IDLE_CHECK_INTERVAL = 1.0  # seconds between queue drains while in IDLE
FETCH_ITEMS = ["BODY.PEEK[]", "INTERNALDATE"]

# --- Keepalive ---
# Some providers drop IDLE sessions after ~29 minutes of silence.
KEEPALIVE_INTERVAL = 60.0  # seconds

# --- Reconnection backoff ---
MAX_RECONNECT_ATTEMPTS = 5
INITIAL_RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_DELAY = 30.0  # seconds
RECONNECT_JITTER = 1.0  # seconds, uniform [0, jitter)

# --- Classification ---
DEFAULT_SCAM_THRESHOLD = 80.0  # percent
DEFAULT_BODY_MAX_CHARS = 3000
DEFAULT_ANTHROPIC_MODEL = "claude-haiku-4-5-20251001"
ANALYZER_MAX_TOKENS = 300
ANALYZER_TEMPERATURE = 0.2
ANALYZER_RETRY_ATTEMPTS = 3
ANALYSIS_FAILED_REASON = "Analysis failed"

# --- Quarantine folder resolution (priority order, compared lowercase) ---
SPAM_FOLDER_CANDIDATES = [
    "spam",
    "junk",
    "junk e-mail",
    "bulk",
    "[gmail]/spam",
]
FALLBACK_SPAM_FOLDER = "Spam"

# --- Message defaults ---
NO_SUBJECT = "(No subject)"
UNKNOWN_SENDER = "Unknown sender"
