from pydantic import BaseModel
from typing import Dict, List

class SaveReport(BaseModel):
    """Outcome of one batch save, keyed by answer id."""
    saved: List[str] = []
    failed: Dict[str, str] = {}

    @property
    def ok(self) -> bool:
        return not self.failed
