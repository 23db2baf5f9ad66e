from datetime import datetime, timezone
from typing import Optional
import uuid

from pydantic import BaseModel, Field


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """In-memory row. Mutated in place by the CRUD layer."""
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
