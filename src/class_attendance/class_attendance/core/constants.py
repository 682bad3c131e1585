"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_MAX_ABSENT = 3
DEFAULT_LATE_TO_ABSENT = 3

CODE_MIN = 1000
CODE_MAX = 9999

CONSECUTIVE_LATE_WARNING = 3
RISK_TOP_LIMIT = 10

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_UPLOAD_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)

DEFAULT_LIST_LIMIT = 200
NOTIFICATION_POLL_SECONDS = 5
