from pydantic import BaseModel, Field
from typing import Optional

class EvaluationRequest(BaseModel):
    question: str
    expected_answer: Optional[str] = None
    student_answer: str = ""
    max_points: int = Field(..., gt=0)

class EvaluationResult(BaseModel):
    suggested_score: int
    feedback: str = ""
    confidence: float = Field(default=0.0, ge=0, le=1)
