from typing import Optional

from eduportal.core.constants import QuestionTypeEnum
from eduportal.models.base import Record

class Answer(Record):
    attempt_id: str
    question_id: str
    question_type: QuestionTypeEnum
    selected_option_id: Optional[str] = None
    text_answer: Optional[str] = None
    points_earned: float = 0
    is_correct: bool = False
