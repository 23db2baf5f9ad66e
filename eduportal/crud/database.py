"""Process-local table storage backing the reference Assessment API."""
import threading
from typing import Dict

from eduportal.models.base import Record


class InMemoryDatabase:
    def __init__(self):
        self.tables: Dict[str, Dict[str, Record]] = {}
        # Guards check-then-create sequences such as one attempt per student
        self.lock = threading.RLock()

    def table(self, name: str) -> Dict[str, Record]:
        return self.tables.setdefault(name, {})

    def reset(self):
        with self.lock:
            self.tables.clear()


database = InMemoryDatabase()


def get_db():
    yield database
