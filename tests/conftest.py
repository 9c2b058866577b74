import pytest

from projectbrowser.db.manager import DatabaseManager
from projectbrowser.db.repositories.key_value import KeyValueFactory


class Clock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path}/state.db")
    manager.init_db()
    return manager


@pytest.fixture
def key_value(db_manager, clock):
    return KeyValueFactory(db_manager, time_source=clock)
