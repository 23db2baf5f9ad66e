from typing import List, Optional

from eduportal.crud.base import CRUDBase
from eduportal.crud.database import InMemoryDatabase
from eduportal.models.attempt import AssessmentAttempt

class CRUDAttempt(CRUDBase[AssessmentAttempt]):

    def get_by_student_and_assessment(
        self, db: InMemoryDatabase, student_id: str, assessment_id: str
    ) -> Optional[AssessmentAttempt]:
        attempts = self.filter(
            db, lambda a: a.student_id == student_id and a.assessment_id == assessment_id
        )
        return attempts[0] if attempts else None

    def get_all_by_assessment(self, db: InMemoryDatabase, assessment_id: str) -> List[AssessmentAttempt]:
        return sorted(
            self.filter(db, lambda a: a.assessment_id == assessment_id),
            key=lambda a: a.started_at,
            reverse=True,
        )

    def get_all_by_student(self, db: InMemoryDatabase, student_id: str) -> List[AssessmentAttempt]:
        return sorted(
            self.filter(db, lambda a: a.student_id == student_id),
            key=lambda a: a.started_at,
            reverse=True,
        )

    def count_by_assessment(self, db: InMemoryDatabase, assessment_id: str) -> int:
        return len(self.filter(db, lambda a: a.assessment_id == assessment_id))


attempt = CRUDAttempt(AssessmentAttempt, "attempts")
