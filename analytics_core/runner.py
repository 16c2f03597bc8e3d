"""
Factory that wires a production TrackingManager.

File-backed stores under BASE_DIR, HTTPS repository, thread scheduler.
"""

from pathlib import Path

from .config import BASE_DIR, configure_logging, load_config, log
from .constants import SDK_VERSION
from .database import DatabaseManager
from .api import HttpRepository
from .errors import ConfigurationError
from .storage import FileRecordEngine, KeyValueStore
from .tracking import TrackingManager


def create_tracking_manager(config=None, base_dir=BASE_DIR, flushing_mode=None,
                            background_host=None, log_to_file=True):
    """Build a TrackingManager. Loads config.json from ``base_dir`` when no config is given."""
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)
    configure_logging(base_dir / "analytics.log" if log_to_file else None)

    if config is None:
        config = load_config(base_dir / "config.json")
        if config is None:
            raise ConfigurationError(f"No usable config.json in {base_dir}")

    log.info("analytics-core v%s starting (data: %s)", SDK_VERSION, base_dir)

    database = DatabaseManager(FileRecordEngine(base_dir / "records"))
    store = KeyValueStore(base_dir / "state.json")
    repository = HttpRepository(config)

    manager = TrackingManager(
        config, database, repository, store,
        flushing_mode=flushing_mode,
        background_host=background_host,
    )

    pending = len(database.list_events()) + len(database.list_customer_updates())
    if pending:
        log.info("Found %d pending records from a previous run", pending)
    return manager
