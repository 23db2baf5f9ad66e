from typing import List

from eduportal.crud.base import CRUDBase
from eduportal.crud.database import InMemoryDatabase
from eduportal.models.question import Question

class CRUDQuestion(CRUDBase[Question]):

    def get_by_assessment(self, db: InMemoryDatabase, assessment_id: str) -> List[Question]:
        return sorted(
            self.filter(db, lambda q: q.assessment_id == assessment_id),
            key=lambda q: q.order,
        )

    def next_order(self, db: InMemoryDatabase, assessment_id: str) -> int:
        questions = self.get_by_assessment(db, assessment_id)
        return questions[-1].order + 1 if questions else 1


question = CRUDQuestion(Question, "questions")
