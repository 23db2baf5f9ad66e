from pydantic import BaseModel

from eduportal.core.constants import NotificationLevelEnum

class Notification(BaseModel):
    """A transient, human-readable message for the person at the keyboard."""
    level: NotificationLevelEnum
    title: str
    message: str = ""
