from typing import List

from eduportal.crud.base import CRUDBase
from eduportal.crud.database import InMemoryDatabase
from eduportal.models.answer import Answer

class CRUDAnswer(CRUDBase[Answer]):

    def get_all_by_attempt(self, db: InMemoryDatabase, attempt_id: str) -> List[Answer]:
        return self.filter(db, lambda a: a.attempt_id == attempt_id)


answer = CRUDAnswer(Answer, "answers")
