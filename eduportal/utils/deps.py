from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError

from eduportal.core.security import decode_access_token
from eduportal.crud.database import get_db
from eduportal.schemas.token import TokenPayload
from eduportal.schemas.user import UserContext

http_bearer = HTTPBearer(auto_error=False)

__all__ = ["get_db", "get_current_user_with_context", "require_teacher"]


def get_current_user_with_context(
    credentials: HTTPAuthorizationCredentials = Depends(http_bearer)
) -> UserContext:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        payload = decode_access_token(credentials.credentials)
        token_data = TokenPayload(**payload)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    return UserContext(user_id=token_data.user_id, role=token_data.role)


def require_teacher(context: UserContext = Depends(get_current_user_with_context)) -> UserContext:
    if not context.is_teacher:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action."
        )
    return context
