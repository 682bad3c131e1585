import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "class_attendance_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
AUTO_SEED_DB = bool(int(os.getenv("AUTO_SEED_DB", "0")))

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "/tmp/class_attendance_uploads")
UPLOAD_URL_PREFIX = "/uploads"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
# Comma-separated MIME types; empty keeps the built-in allow-list.
ALLOWED_UPLOAD_TYPES = [t.strip() for t in os.getenv("ALLOWED_UPLOAD_TYPES", "").split(",") if t.strip()]

ALLOW_POST_CLOSE_CORRECTIONS = True

NOTIFICATION_POLL_SECONDS = 5
