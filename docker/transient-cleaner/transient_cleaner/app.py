import atexit
import logging
import secrets
from typing import Optional

from flask import Flask

from .api import create_api_blueprint
from .config import CleanerConfig
from .engine import CleanupEngine
from .models import SqliteDataStore, SqliteSettingsStore, init_db
from .scheduler import CleanupScheduler
from .tokens import NonceManager


def create_app(config: Optional[CleanerConfig] = None, *, activate: bool = True) -> Flask:
    app = Flask(__name__)
    config = config or CleanerConfig.from_env()

    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    init_db(config.db_path)
    settings_store = SqliteSettingsStore(config.db_path)
    data_store = SqliteDataStore(config.db_path)

    dependency_probe = None
    if config.required_table:

        def dependency_probe() -> bool:
            return data_store.table_exists(config.required_table)

    engine = CleanupEngine(
        settings_store=settings_store,
        data_store=data_store,
        dependency_probe=dependency_probe,
        domain_pattern=config.domain_pattern,
        batch_size=config.batch_size,
    )
    scheduler = CleanupScheduler(
        engine=engine,
        tick_interval_hours=config.tick_interval_hours,
        manual_respects_interval=config.manual_respects_interval,
        datetime_format=config.datetime_format,
    )
    if activate:
        scheduler.activate()
        atexit.register(scheduler.deactivate)

    if not config.admin_key:
        logging.getLogger("transient_cleaner").warning(
            "[CLEANER]: TC_ADMIN_KEY is not set; manual cleanup and settings endpoints are disabled"
        )

    nonces = NonceManager(config.secret_key or secrets.token_hex(32), max_age_seconds=config.nonce_max_age_seconds)
    app.register_blueprint(
        create_api_blueprint(scheduler=scheduler, nonces=nonces, admin_key=config.admin_key),
        url_prefix="/api",
    )
    app.extensions["transient_cleaner_scheduler"] = scheduler
    app.extensions["transient_cleaner_config"] = config

    return app


def main() -> None:
    config = CleanerConfig.from_env()
    app = create_app(config)
    app.run(host="0.0.0.0", port=config.api_port)


if __name__ == "__main__":
    main()
