"""Configuration management with environment variables."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Upstream feed configuration
UPSTREAM_DATA_URL = os.getenv("UPSTREAM_DATA_URL", "https://rules2.clearurls.xyz/data.minify.json")

# HTTP client configuration
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30.0"))

# Store configuration
STORE_DIR = Path(os.getenv("STORE_DIR", ".urlsweep"))

# Compiled rules output (JsonRuleSink)
RULES_OUT = os.getenv("RULES_OUT", "")

# Background context (API) configuration
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8765"))
BACKGROUND_URL = os.getenv("BACKGROUND_URL", f"http://{API_HOST}:{API_PORT}")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Browser (Playwright) configuration
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "1").lower() in ("1", "true", "yes", "on")
BROWSER_TIMEOUT = 20000  # milliseconds
TRANSITION_TIMEOUT = 5.0  # seconds to wait for a route transition to settle

# Upstream refresh policy
REFETCH_INTERVAL_MS = 604800000  # 7 days
REFRESH_ALARM_NAME = "refreshUpstream"
REFRESH_PERIOD_MINUTES = 1440  # 24 hours

# Rule compilation
CHUNK_SIZE = 100  # per-rule removeParams limit of the interception host
REMOVAL_PRIORITY = 10
ALLOW_PRIORITY = 100  # must stay above REMOVAL_PRIORITY
REMOVAL_RULE_ID_BASE = 1
CUSTOM_TRACKER_RULE_ID = 5000
ALLOW_RULE_ID_BASE = 10000
ALLOW_RULE_ID_LIMIT = 1000000

RESOURCE_TYPES = [
    "main_frame",
    "sub_frame",
    "xmlhttprequest",
    "ping",
    "script",
    "image",
    "stylesheet",
    "font",
    "object",
    "websocket",
    "other",
]

# Parameter extraction
MIN_TOKEN_LENGTH = 3
TOKEN_STOPLIST = frozenset({"amp", "html", "http"})

# Client scrubber timing (seconds)
POLL_INTERVAL = 0.5
NAVIGATE_FALLBACK_DELAY = 0.05
POPSTATE_DELAY = 0.05

# Hostnames containing any of these are never scrubbed
ALWAYS_EXEMPT_DOMAINS = (
    "accounts.google.com",
    "login.microsoftonline.com",
    "appleid.apple.com",
    "chromewebstore.google.com",
)
