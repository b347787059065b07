"""
Authorization policy: role gates and ownership gates.

Both are FastAPI dependencies layered on get_current_user, so they run after
authentication and before the handler touches the database. Ownership gates
compare the caller's id with a path parameter, which lets them reject a
request regardless of what its body contains.
"""
from typing import Callable, Optional, Sequence

from fastapi import Depends, Request

from errors import AuthorizationError
from security import get_current_user


def check_role(user: dict, roles: Sequence[str]) -> None:
    if user.get("role") not in roles:
        raise AuthorizationError("Insufficient permissions")


def check_owner(user: dict, owner_id: Optional[str], action: str) -> None:
    if user.get("id") != owner_id:
        raise AuthorizationError("You can only %s" % action)


def require_role(*roles: str) -> Callable[..., dict]:
    def dependency(current: dict = Depends(get_current_user)) -> dict:
        check_role(current, roles)
        return current

    return dependency


def require_owner(path_param: str, action: str, roles: Sequence[str] = ()) -> Callable[..., dict]:
    """The caller must be the user named by `path_param` (and hold one of `roles`, if given)."""

    def dependency(request: Request, current: dict = Depends(get_current_user)) -> dict:
        if roles:
            check_role(current, roles)
        check_owner(current, request.path_params.get(path_param), action)
        return current

    return dependency
