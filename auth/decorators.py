# Authentication and Authorization Decorators for Dexter Settlement API
# These decorators provide easy-to-use access control for API endpoints

from fastapi import HTTPException, status, Depends

from auth.roles import UserType, Permission, has_any_permission
from auth.dependencies import Caller, get_current_caller


class AuthError(HTTPException):
    """Custom exception for authentication/authorization errors."""

    def __init__(self, detail: str, status_code: int = status.HTTP_403_FORBIDDEN):
        super().__init__(status_code=status_code, detail=detail)


def require_user_type(*allowed_types: UserType):
    """
    Dependency that requires the caller to be one of the specified types.

    Usage:
        @router.post("/{campaign_id}/bids")
        async def place_bid(
            caller: Caller = Depends(require_user_type(UserType.INFLUENCER))
        ):
            ...
    """
    async def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        # Admin can access everything
        if caller.user_type == UserType.ADMIN:
            return caller

        if caller.user_type not in allowed_types:
            allowed_names = ", ".join(t.value for t in allowed_types)
            raise AuthError(
                detail=f"This endpoint requires user type: {allowed_names}",
                status_code=status.HTTP_403_FORBIDDEN
            )

        return caller

    return dependency


def require_permission(*permissions: Permission):
    """
    Dependency that requires the caller to have specific permissions.

    Usage:
        @router.post("/withdraw")
        async def withdraw(
            caller: Caller = Depends(require_permission(Permission.WITHDRAW_FUNDS))
        ):
            ...
    """
    async def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        if not has_any_permission(caller.user_type, list(permissions)):
            raise AuthError(
                detail="You don't have permission to perform this action",
                status_code=status.HTTP_403_FORBIDDEN
            )

        return caller

    return dependency


def require_admin():
    """
    Dependency that requires the caller to be an admin.

    Usage:
        @router.post("/{dispute_id}/resolve")
        async def resolve(caller: Caller = Depends(require_admin())):
            ...
    """
    async def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        if not caller.is_admin:
            raise AuthError(
                detail="Admin access required",
                status_code=status.HTTP_403_FORBIDDEN
            )

        return caller

    return dependency
