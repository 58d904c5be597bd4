import asyncio

import pytest
from fastapi import HTTPException

from auth.decorators import AuthError, require_admin, require_permission, require_user_type
from auth.dependencies import Caller, get_current_caller
from auth.roles import Permission, UserType, get_permissions_for_role, has_any_permission, has_permission


def run(coro):
    return asyncio.run(coro)


def test_admin_has_every_permission():
    assert get_permissions_for_role(UserType.ADMIN) == set(Permission)


@pytest.mark.parametrize("user_type,permission,allowed", [
    (UserType.BRAND, Permission.MANAGE_CAMPAIGNS, True),
    (UserType.BRAND, Permission.PLACE_BIDS, False),
    (UserType.BRAND, Permission.WITHDRAW_FUNDS, True),
    (UserType.INFLUENCER, Permission.PLACE_BIDS, True),
    (UserType.INFLUENCER, Permission.DEPOSIT_FUNDS, False),
    (UserType.INFLUENCER, Permission.RESOLVE_DISPUTES, False),
    (UserType.INFLUENCER, Permission.RAISE_DISPUTES, True),
])
def test_role_permissions(user_type, permission, allowed):
    assert has_permission(user_type, permission) is allowed


def test_has_any_permission():
    assert has_any_permission(UserType.INFLUENCER, [Permission.DEPOSIT_FUNDS, Permission.PLACE_BIDS])
    assert not has_any_permission(UserType.INFLUENCER, [Permission.DEPOSIT_FUNDS, Permission.MANAGE_ESCROW])


def test_caller_from_headers():
    caller = run(get_current_caller(x_account_id="influencer-1", x_account_role="Influencer"))

    assert caller == Caller(id="influencer-1", user_type=UserType.INFLUENCER)
    assert not caller.is_admin


def test_role_defaults_to_brand():
    assert run(get_current_caller(x_account_id="brand-1", x_account_role=None)).user_type == UserType.BRAND


@pytest.mark.parametrize("account_id,role", [(None, "brand"), ("", "brand"), ("brand-1", "superuser")])
def test_bad_identity_is_unauthorized(account_id, role):
    with pytest.raises(HTTPException) as exc:
        run(get_current_caller(x_account_id=account_id, x_account_role=role))
    assert exc.value.status_code == 401


def test_require_user_type_lets_admin_through():
    dependency = require_user_type(UserType.INFLUENCER)

    assert run(dependency(Caller(id="admin-1", user_type=UserType.ADMIN))).is_admin
    with pytest.raises(AuthError):
        run(dependency(Caller(id="brand-1", user_type=UserType.BRAND)))


def test_require_permission_and_admin():
    brand = Caller(id="brand-1", user_type=UserType.BRAND)

    assert run(require_permission(Permission.DEPOSIT_FUNDS)(brand)) is brand
    with pytest.raises(AuthError) as exc:
        run(require_admin()(brand))
    assert exc.value.status_code == 403
