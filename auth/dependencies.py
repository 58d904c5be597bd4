# Authentication Dependencies for Dexter Settlement API
# Identity is asserted by the upstream gateway through request headers

from fastapi import Header, HTTPException, status
from pydantic import BaseModel
from typing import Optional

from auth.roles import UserType


class Caller(BaseModel):
    """The authenticated account making the request."""
    id: str
    user_type: UserType

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN


async def get_current_caller(
    x_account_id: Optional[str] = Header(None),
    x_account_role: Optional[str] = Header(None),
) -> Caller:
    """
    Resolve the caller from X-Account-Id / X-Account-Role.
    This is the core authentication dependency.
    """
    if not x_account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Account-Id header",
        )

    try:
        user_type = UserType((x_account_role or UserType.BRAND.value).lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown account role '{x_account_role}'",
        )

    return Caller(id=x_account_id, user_type=user_type)
