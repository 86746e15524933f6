"""
Access guards.

Role checks run as FastAPI dependencies; the per-bus check runs inside the
endpoint once the bus has been loaded.
"""

from typing import Iterable
from fastapi import Depends
from backend.app.models.enums import UserRole
from backend.app.models.bus import Bus
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import BusNotAssignedError, InsufficientPermissionsError


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory admitting only the given roles.

    Usage:
        @router.put("/update")
        async def update(current_user: dict = Depends(require_role([UserRole.DRIVER]))):
            ...
    """
    allowed = {role.value for role in allowed_roles}
    label = ", ".join(sorted(allowed))

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") not in allowed:
            raise InsufficientPermissionsError(f"Access denied. Required role: {label}")
        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])


class BusAccessGuard:
    """
    Keeps drivers to the bus assigned to them.

    Admins, passengers and anonymous callers pass; endpoints decide for
    themselves which roles they admit at all.
    """

    def enforce(self, bus: Bus, current_user: dict = None) -> None:
        if current_user is None or current_user.get("role") != UserRole.DRIVER.value:
            return
        if bus.driver_id != current_user.get("user_id"):
            raise BusNotAssignedError()
