from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Annotated, List, Literal, Optional, Union

from eduportal.core.constants import QuestionTypeEnum

class QuestionOptionCreate(BaseModel):
    text: str
    is_correct: bool = False

class QuestionCreate(BaseModel):
    text: str
    question_type: QuestionTypeEnum = QuestionTypeEnum.MULTIPLE_CHOICE
    points: int = Field(default=1, gt=0)
    expected_answer: Optional[str] = None
    options: List[QuestionOptionCreate] = []

    @model_validator(mode="after")
    def check_options(self):
        if self.question_type == QuestionTypeEnum.MULTIPLE_CHOICE:
            if len(self.options) < 2:
                raise ValueError("Multiple-choice questions need at least two options.")
            if sum(1 for o in self.options if o.is_correct) != 1:
                raise ValueError("Multiple-choice questions need exactly one correct option.")
        elif self.options:
            raise ValueError("Free-text questions cannot have options.")
        return self

class QuestionOption(BaseModel):
    id: str
    text: str
    order: int
    # None in student-facing payloads
    is_correct: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)

class QuestionBase(BaseModel):
    id: str
    assessment_id: str
    text: str
    points: int
    order: int

    model_config = ConfigDict(from_attributes=True)

class MultipleChoiceQuestion(QuestionBase):
    question_type: Literal["multiple_choice"] = "multiple_choice"
    options: List[QuestionOption] = []

    def has_option(self, option_id: str) -> bool:
        return any(o.id == option_id for o in self.options)

class FreeTextQuestion(QuestionBase):
    question_type: Literal["free_text"] = "free_text"
    expected_answer: Optional[str] = None

Question = Annotated[Union[MultipleChoiceQuestion, FreeTextQuestion], Field(discriminator="question_type")]
