"""
Constants for the incident review system.
"""

from pathlib import Path

MODULE_ROOT = Path(__file__).parent

DEFAULT_CONFIG_PATH = MODULE_ROOT / "data" / "settings.yaml"

DEFAULT_DATABASE_URL = "sqlite:///fire_incidents.db"

# Length of the hex digest sent to Telegram instead of the candidate id
TOKEN_LENGTH = 16

# Street option that switches the reviewer to free-text entry
MANUAL_STREET_OPTION = "Enter manually"

# Offered when the article text mentions no recognisable street
UNKNOWN_STREET_OPTION = "(unknown)"

STATUS_MARKER = "<b>Status:</b>"

# How often to poll the feeds and sweep approved candidates (in seconds)
RSS_POLL_INTERVAL_SECONDS = 5 * 60
SWEEP_INTERVAL_SECONDS = 30

ARTICLE_FETCH_TIMEOUT_SECONDS = 15
ARTICLE_USER_AGENT = "Mozilla/5.0 (compatible; IncidentReviewBot/1.0)"

# Fire-related keywords for filtering feed items
DEFAULT_KEYWORDS = [
    "incendiu",
    "pompieri",
    "fire",
    "пожар",
]
