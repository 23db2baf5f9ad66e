from pydantic import BaseModel

from eduportal.core.constants import RoleEnum

class TokenPayload(BaseModel):
    user_id: str
    role: RoleEnum
    jti: str | None = None
    exp: int | None = None
