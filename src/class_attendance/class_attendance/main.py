from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, send_from_directory

from config import get_settings_module

from .database.bootstrap import apply_schema, apply_seed_sql, list_tables

from .common.http import register_error_handlers
from .container import Container, build_container
from .attendance.controller import register as register_attendance
from .effects.controller import register as register_notifications
from .policies.controller import register as register_policies
from .reports.controller import register as register_reports
from .requests.controller import register as register_requests
from .sessions.controller import register as register_sessions

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[3]


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger().setLevel(level)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    _configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    # Several attachments per request; each file is also checked by the service.
    max_upload = int(getattr(settings, "MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    app.config["MAX_CONTENT_LENGTH"] = max_upload * 5

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            settings_module,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )

        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=REPO_ROOT / "database" / "schema.sql")
            logger.info("schema ready (tables=%d)", len(list_tables(db_config)))
        if bool(getattr(settings, "AUTO_SEED_DB", False)):
            apply_seed_sql(db_config, seed_path=REPO_ROOT / "database" / "seed.sql")
            logger.info("demo seed ready")

        container = build_container(settings)

        upload_dir = Path(getattr(settings, "UPLOAD_DIR", "uploads")).resolve()
        url_prefix = str(getattr(settings, "UPLOAD_URL_PREFIX", "/uploads")).rstrip("/")

        @app.route(f"{url_prefix}/<path:filename>", methods=["GET"], endpoint="uploaded_file")
        def uploaded_file(filename: str):
            return send_from_directory(upload_dir, filename)

    register_error_handlers(app)
    register_sessions(app, container)
    register_attendance(app, container)
    register_requests(app, container)
    register_policies(app, container)
    register_reports(app, container)
    register_notifications(app, container)

    return app
