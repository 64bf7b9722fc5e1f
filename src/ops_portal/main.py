from __future__ import annotations

import importlib
import os

from dotenv import load_dotenv
from flask import Flask

from .assets.controller import register as register_assets
from .attendance.controller import register as register_attendance
from .cashbook.controller import register as register_cashbook
from .common.logger import get_logger, setup_logger
from .config import get_settings_module
from .container import Container, build_container
from .database.bootstrap import apply_schema, ensure_demo_users, list_tables
from .email.controller import register as register_email
from .grocery.controller import register as register_grocery
from .maintenance.controller import register as register_maintenance
from .notifications.controller import register as register_notifications
from .purchases.controller import register as register_purchases
from .scrap.controller import register as register_scrap
from .support.controller import register as register_support
from .sync.controller import register as register_sync
from .tasks.controller import register as register_tasks
from .users.controller import register as register_users

log = get_logger(__name__)


def register_routes(app: Flask, container: Container) -> None:
    register_users(app, container)
    register_maintenance(app, container)
    register_purchases(app, container)
    register_assets(app, container)
    register_scrap(app, container)
    register_tasks(app, container)
    register_cashbook(app, container)
    register_attendance(app, container)
    register_support(app, container)
    register_grocery(app, container)
    register_notifications(app, container)
    register_email(app, container)
    register_sync(app, container)


def create_app() -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    setup_logger(level=getattr(settings, "LOG_LEVEL", "INFO"), log_file=getattr(settings, "LOG_FILE", "") or None)

    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["SESSION_DAYS"] = int(getattr(settings, "SESSION_DAYS", 7))

    log.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if bool(getattr(settings, "AUTO_INIT_DB", False)):
        apply_schema(db_config)
        log.info("schema ready (tables=%d)", len(list_tables(db_config)))
    if bool(getattr(settings, "AUTO_SEED_DB", False)):
        ensure_demo_users(db_config)

    container = build_container(db_config=db_config, settings=settings)
    container.hub.start()
    register_routes(app, container)

    return app


def run() -> None:
    app = create_app()
    app.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "5000")),
        debug=app.config["DEBUG"],
        threaded=True,
    )


if __name__ == "__main__":
    run()
