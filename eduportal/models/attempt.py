from datetime import datetime
from typing import Optional

from pydantic import Field

from eduportal.core.constants import AttemptStatusEnum
from eduportal.models.base import Record, utcnow

class AssessmentAttempt(Record):
    assessment_id: str
    student_id: str
    status: AttemptStatusEnum = AttemptStatusEnum.IN_PROGRESS
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    score: float = 0
    max_score: int = 0
