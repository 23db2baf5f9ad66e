from typing import List, Optional

from pydantic import BaseModel, Field

from eduportal.core.constants import QuestionTypeEnum
from eduportal.models.base import Record, new_id

class QuestionOption(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str
    is_correct: bool = False
    order: int

class Question(Record):
    assessment_id: str
    question_type: QuestionTypeEnum
    text: str
    points: int
    order: int
    options: List[QuestionOption] = []
    expected_answer: Optional[str] = None

    @property
    def correct_option(self) -> Optional[QuestionOption]:
        return next((o for o in self.options if o.is_correct), None)

    def option(self, option_id: Optional[str]) -> Optional[QuestionOption]:
        if option_id is None:
            return None
        return next((o for o in self.options if o.id == option_id), None)
