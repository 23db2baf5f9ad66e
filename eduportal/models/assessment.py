from datetime import datetime
from typing import Optional

from eduportal.models.base import Record

class Assessment(Record):
    course_id: str
    course_name: str = ""
    teacher_id: str
    title: str
    description: str = ""
    duration_minutes: int
    due_date: Optional[datetime] = None
    is_published: bool = False
    results_released: bool = False
