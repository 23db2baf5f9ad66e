from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

class AssessmentBase(BaseModel):
    course_id: str
    course_name: str = ""
    title: str
    description: str = ""
    duration_minutes: int = Field(..., gt=0)
    due_date: Optional[datetime] = None

class AssessmentCreate(AssessmentBase):
    pass

class Assessment(AssessmentBase):
    id: str
    teacher_id: str = ""
    is_published: bool = False
    results_released: bool = False
    question_count: int = 0
    total_points: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
