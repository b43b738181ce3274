from __future__ import annotations

from visitcontrol.core.errors import PermissionDeniedError
from visitcontrol.core.models import Rol, User


def has_role(user: User | None, role: Rol) -> bool:
    if user is None or not user.is_active:
        return False
    return Rol(user.rol).nivel >= role.nivel


def require_role(user: User | None, role: Rol) -> None:
    if not has_role(user, role):
        raise PermissionDeniedError(f"Se requiere rol {role.value} o superior")


def can_grant_immediate(user: User | None) -> bool:
    # Immediate authorizations are a supervisor privilege
    return has_role(user, Rol.SUPERVISOR)
