from pydantic import BaseModel

from eduportal.core.constants import RoleEnum

class UserContext(BaseModel):
    """Caller identity decoded from the bearer token."""
    user_id: str
    role: RoleEnum

    @property
    def is_teacher(self) -> bool:
        return self.role == RoleEnum.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == RoleEnum.STUDENT
