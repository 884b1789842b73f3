from typing import Dict, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from fee_ledger.auth.schemas import CurrentUser
from fee_ledger.auth.security import decode_access_token


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Resolve the session user, school scope and permissions from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    school_code = payload.get("school_code")
    role_name = payload.get("role")
    if not user_id_str or not school_code or not role_name:
        raise credentials_exception

    try:
        user_id = UUID(str(user_id_str))
    except ValueError:
        raise credentials_exception

    academic_year_id: Optional[UUID] = None
    ay_id_str = payload.get("academic_year_id")
    if ay_id_str:
        try:
            academic_year_id = UUID(str(ay_id_str))
        except ValueError:
            pass

    permissions: Dict[str, Dict[str, bool]] = payload.get("permissions") or {}

    return CurrentUser(
        id=user_id,
        school_code=school_code,
        role=role_name,
        permissions=permissions,
        academic_year_id=academic_year_id,
        academic_year_status=payload.get("academic_year_status"),
    )


CLOSED_ACADEMIC_YEAR_MESSAGE = "This academic year is closed and cannot be modified."


async def require_writable_academic_year(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Dependency: block fee plan and payment writes when the session's academic year is CLOSED."""
    if current_user.academic_year_status == "CLOSED":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=CLOSED_ACADEMIC_YEAR_MESSAGE,
        )
    return current_user
