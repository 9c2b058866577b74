import time
from typing import Callable, Dict, Optional

from projectbrowser.db.repositories.key_value import KeyValueStore

INSTALL_STATE_COLLECTION = "project_browser.install_state"
TIMESTAMP_KEY = "__timestamp"


class InstallState:
    """Per-project install phase, plus the time tracking first started."""

    def __init__(
        self,
        store: KeyValueStore,
        time_source: Callable[[], float] = time.time,
        ttl_seconds: Optional[int] = None,
    ):
        self.store = store
        self.time_source = time_source
        self.ttl_seconds = ttl_seconds

    def set_state(self, project_id: str, phase: str):
        self.store.set_if_not_exists(
            TIMESTAMP_KEY, int(self.time_source()), expire=self.ttl_seconds
        )
        self.store.set(project_id, phase, expire=self.ttl_seconds)

    def to_dict(self) -> Dict[str, str]:
        data = self.store.get_all()
        data.pop(TIMESTAMP_KEY, None)
        return data

    def get_first_updated_time(self) -> Optional[int]:
        return self.store.get(TIMESTAMP_KEY)

    def delete_all(self):
        self.store.delete_all()
