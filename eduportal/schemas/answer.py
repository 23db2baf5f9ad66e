from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Annotated, List, Literal, Optional, Union

from eduportal.core.constants import QuestionTypeEnum
from eduportal.schemas.question import QuestionOption

class MultipleChoiceResponse(BaseModel):
    kind: Literal["multiple_choice"] = "multiple_choice"
    selected_option_id: str

class FreeTextResponse(BaseModel):
    kind: Literal["free_text"] = "free_text"
    text: str = ""

AnswerResponse = Annotated[Union[MultipleChoiceResponse, FreeTextResponse], Field(discriminator="kind")]

class SubmitAnswer(BaseModel):
    question_id: str
    selected_option_id: Optional[str] = None
    text_answer: Optional[str] = None

    @model_validator(mode="after")
    def one_response_kind(self):
        if self.selected_option_id is not None and self.text_answer is not None:
            raise ValueError("An answer carries either a selected option or text, not both.")
        return self

class SubmitAnswersRequest(BaseModel):
    answers: List[SubmitAnswer]

class AnswerReview(BaseModel):
    id: str
    attempt_id: str
    question_id: str
    question_text: str
    question_type: QuestionTypeEnum
    question_points: int
    question_options: List[QuestionOption] = []
    selected_option_id: Optional[str] = None
    selected_option_text: Optional[str] = None
    text_answer: Optional[str] = None
    # Grading fields below are None while results are withheld from the student
    points_earned: Optional[float] = None
    is_correct: Optional[bool] = None
    correct_option_id: Optional[str] = None
    correct_answer: Optional[str] = None
    expected_answer: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_free_text(self) -> bool:
        return self.question_type == QuestionTypeEnum.FREE_TEXT

class AnswerScoreUpdate(BaseModel):
    score: float = Field(..., ge=0)
