from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

from eduportal.core.constants import AttemptStatusEnum

class AssessmentAttempt(BaseModel):
    id: str
    assessment_id: str
    assessment_title: str = ""
    student_id: str
    status: AttemptStatusEnum
    started_at: datetime
    completed_at: Optional[datetime] = None
    # None while results are withheld from the student
    score: Optional[float] = None
    max_score: Optional[int] = None
    results_released: bool = False

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatusEnum.COMPLETED

class AttemptStatus(BaseModel):
    has_attempted: bool
    attempt: Optional[AssessmentAttempt] = None
