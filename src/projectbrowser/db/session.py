from projectbrowser.config.settings import config
from projectbrowser.db.manager import DatabaseManager

_db_manager = None


def get_db_manager() -> DatabaseManager:
    """Return the process-wide manager, creating the schema on first use."""
    global _db_manager
    if _db_manager is None or _db_manager.db_url != config.database_url:
        _db_manager = DatabaseManager(config.database_url)
        _db_manager.init_db()
    return _db_manager
