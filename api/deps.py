from typing import Optional

from fastapi import Header, HTTPException, status

from models import HRRole, UserRole
from services.access import Actor

_ROLES = {r.value for r in UserRole}
_HR_ROLES = {r.value for r in HRRole}


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_hr_role: Optional[str] = Header(None),
) -> Actor:
    """Caller identity as forwarded by the authenticating gateway."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate caller identity",
    )
    if not x_user_id or not x_user_role:
        raise credentials_exception
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise credentials_exception
    if x_user_role not in _ROLES:
        raise credentials_exception
    if x_hr_role is not None and x_hr_role not in _HR_ROLES:
        raise credentials_exception
    hr_role = x_hr_role if x_user_role == UserRole.HR.value else None
    return Actor(id=user_id, role=x_user_role, hr_role=hr_role)
