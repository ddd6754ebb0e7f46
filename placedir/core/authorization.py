"""
Authorization gate for listing and place mutations.

Pure functions: no I/O, no session state. Every mutating use case asks the
gate with the explicit principal of the request.
"""

from __future__ import annotations

from .entities import Action, Principal, Role
from .errors import Forbidden

OWNER_ACTIONS = {Action.SUBMIT}
OWNER_SCOPED_ACTIONS = {Action.SELF_EDIT, Action.SELF_DELETE}


def can_perform(
    principal: Principal, action: Action, resource_owner_id: str | None = None
) -> bool:
    try:
        role = Role(principal.role)
        action = Action(action)
    except ValueError:
        return False
    if role is Role.ADMIN:
        return True
    if role is Role.OWNER:
        if action in OWNER_ACTIONS:
            return True
        if action in OWNER_SCOPED_ACTIONS:
            return resource_owner_id is not None and resource_owner_id == principal.id
    return False


def require(
    principal: Principal, action: Action, resource_owner_id: str | None = None
) -> None:
    if not can_perform(principal, action, resource_owner_id):
        role = getattr(principal.role, "value", principal.role)
        verb = getattr(action, "value", action)
        raise Forbidden(f"{role} {principal.id!r} may not {verb}")
