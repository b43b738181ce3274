from __future__ import annotations

import logging
import re
from datetime import date

from werkzeug.security import generate_password_hash

from visitcontrol.access.repositories import Repositories, unit_of_work
from visitcontrol.access.validation import clean_dni
from visitcontrol.core.clock import Clock
from visitcontrol.core.errors import DuplicateError, InvalidArgumentError, InvalidStateError, NotFoundError
from visitcontrol.core.models import (
    Establecimiento,
    Interno,
    InternoEstado,
    Rol,
    SituacionProcesal,
    User,
    Visitante,
    VisitanteEstado,
)
from visitcontrol.core.permissions import require_role

logger = logging.getLogger(__name__)

DNI_PATTERN = re.compile(r"^\d{7,8}$")
LEGAJO_PATTERN = re.compile(r"^[A-Z0-9-]{4,12}$")
EMAIL_PATTERN = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)+$")
PHONE_PATTERN = re.compile(r"^[\d\s()+-]{6,20}$")
MIN_PASSWORD_LENGTH = 8


def _required_name(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if len(value) < 2 or len(value) > 100:
        raise InvalidArgumentError(f"El {label} no es válido")
    return value


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise InvalidArgumentError(f"{label} inválido: {value}") from exc


class Registry:
    """Registration and status changes for visitors, inmates and operators."""

    def __init__(self, repos: Repositories, clock: Clock, min_age: int = 18) -> None:
        self.repos = repos
        self.clock = clock
        self.min_age = min_age

    # Visitors

    def register_visitor(
        self,
        dni: str,
        apellido: str,
        nombre: str,
        fecha_nacimiento: date,
        telefono: str = "",
        email: str = "",
        domicilio: str = "",
    ) -> Visitante:
        dni = clean_dni(dni)
        if not DNI_PATTERN.match(dni):
            raise InvalidArgumentError(f"DNI inválido: debe tener 7 u 8 dígitos ({dni or '-'})")
        apellido = _required_name(apellido, "apellido")
        nombre = _required_name(nombre, "nombre")
        if fecha_nacimiento is None:
            raise InvalidArgumentError("La fecha de nacimiento es obligatoria")
        visitor = Visitante(
            dni=dni,
            apellido=apellido,
            nombre=nombre,
            fecha_nacimiento=fecha_nacimiento,
            telefono=(telefono or "").strip(),
            email=(email or "").strip().lower(),
            domicilio=(domicilio or "").strip(),
            estado=VisitanteEstado.ACTIVO,
        )
        if visitor.edad(self.clock.today()) < self.min_age:
            raise InvalidArgumentError(f"El visitante debe ser mayor de {self.min_age} años")
        if visitor.telefono and not PHONE_PATTERN.match(visitor.telefono):
            raise InvalidArgumentError("El formato del teléfono no es válido")
        if visitor.email and not EMAIL_PATTERN.match(visitor.email):
            raise InvalidArgumentError(f"El email no es válido: {visitor.email}")

        existing = self.repos.visitantes.find_by_dni(dni)
        if existing is not None:
            raise DuplicateError(
                f"Ya existe un visitante registrado con DNI {dni}: {existing.full_name}",
                existing=existing,
            )
        with unit_of_work(self.repos.session):
            self.repos.visitantes.add(visitor)
        logger.info("Visitor %s registered", dni)
        return visitor

    def find_visitor(self, dni: str) -> Visitante:
        dni = clean_dni(dni)
        if not dni:
            raise InvalidArgumentError("DNI no puede estar vacío")
        visitor = self.repos.visitantes.find_by_dni(dni)
        if visitor is None:
            raise NotFoundError(f"Visitante no encontrado con DNI: {dni}")
        return visitor

    def search_visitors(self, text: str, limit: int = 50) -> list[Visitante]:
        return self.repos.visitantes.search(text, limit)

    def set_visitor_status(self, dni: str, estado: VisitanteEstado | str) -> Visitante:
        estado = _parse_enum(VisitanteEstado, estado, "Estado de visitante")
        visitor = self.find_visitor(dni)
        with unit_of_work(self.repos.session):
            visitor.estado = estado
            self.repos.visitantes.update(visitor)
        logger.info("Visitor %s status set to %s", visitor.dni, estado.value)
        return visitor

    # Inmates

    def register_inmate(
        self,
        numero_legajo: str,
        apellido: str,
        nombre: str,
        dni: str,
        establecimiento_id: int,
        pabellon: str,
        piso: int,
        fecha_ingreso: date,
        situacion_procesal: SituacionProcesal | str,
    ) -> Interno:
        legajo = (numero_legajo or "").strip().upper()
        if not LEGAJO_PATTERN.match(legajo):
            raise InvalidArgumentError(f"Número de legajo inválido: {legajo or '-'}")
        apellido = _required_name(apellido, "apellido")
        nombre = _required_name(nombre, "nombre")
        dni = clean_dni(dni)
        if not dni:
            raise InvalidArgumentError("El DNI es obligatorio")
        if fecha_ingreso is None:
            raise InvalidArgumentError("La fecha de ingreso es obligatoria")
        if fecha_ingreso > self.clock.today():
            raise InvalidArgumentError("La fecha de ingreso no puede ser futura")
        situacion = _parse_enum(SituacionProcesal, situacion_procesal, "Situación procesal")
        pabellon = (pabellon or "").strip().upper()
        if not pabellon:
            raise InvalidArgumentError("El pabellón es obligatorio")
        facility = self._facility(establecimiento_id)

        existing = self.repos.internos.find_by_legajo(legajo)
        if existing is not None:
            raise DuplicateError(f"Ya existe un interno con legajo {legajo}: {existing.full_name}", existing=existing)
        inmate = Interno(
            numero_legajo=legajo,
            apellido=apellido,
            nombre=nombre,
            dni=dni,
            establecimiento_id=facility.id,
            pabellon_actual=pabellon,
            piso_actual=int(piso or 0),
            fecha_ingreso=fecha_ingreso,
            situacion_procesal=situacion,
            estado=InternoEstado.ACTIVO,
        )
        with unit_of_work(self.repos.session):
            self.repos.internos.add(inmate)
        logger.info("Inmate %s registered in facility %s", legajo, facility.id)
        return inmate

    def find_inmate(self, numero_legajo: str) -> Interno:
        inmate = self.repos.internos.find_by_legajo(numero_legajo)
        if inmate is None:
            raise NotFoundError(f"Interno no encontrado con legajo: {numero_legajo}")
        return inmate

    def relocate_inmate(self, numero_legajo: str, pabellon: str, piso: int) -> Interno:
        inmate = self.find_inmate(numero_legajo)
        pabellon = (pabellon or "").strip().upper()
        if not pabellon:
            raise InvalidArgumentError("El pabellón es obligatorio")
        with unit_of_work(self.repos.session):
            inmate.pabellon_actual = pabellon
            inmate.piso_actual = int(piso or 0)
            self.repos.internos.update(inmate)
        logger.info("Inmate %s relocated to %s", inmate.numero_legajo, inmate.ubicacion_label)
        return inmate

    def set_inmate_status(
        self,
        numero_legajo: str,
        estado: InternoEstado | str,
        motive: str = "",
        establecimiento_id: int | None = None,
    ) -> Interno:
        estado = _parse_enum(InternoEstado, estado, "Estado de interno")
        motive = (motive or "").strip()
        inmate = self.find_inmate(numero_legajo)
        if estado != InternoEstado.ACTIVO and not motive:
            raise InvalidArgumentError("Debe especificar el motivo del cambio de estado")
        if estado == InternoEstado.TRASLADADO and establecimiento_id is None:
            raise InvalidArgumentError("Debe especificar el establecimiento destino")
        if InternoEstado(inmate.estado) == estado:
            raise InvalidStateError(f"El interno ya está en estado {estado.value}")

        with unit_of_work(self.repos.session):
            note = f"{estado.value}: {motive}" if motive else estado.value
            if estado == InternoEstado.TRASLADADO:
                facility = self._facility(establecimiento_id)
                inmate.establecimiento_id = facility.id
                note = f"Traslado a: {facility.nombre}. Motivo: {motive}"
            inmate.estado = estado
            inmate.observaciones = f"{inmate.observaciones}\n{note}" if inmate.observaciones else note
            self.repos.internos.update(inmate)
        logger.info("Inmate %s status set to %s", inmate.numero_legajo, estado.value)
        return inmate

    def _facility(self, establecimiento_id: int | None) -> Establecimiento:
        facility = self.repos.establecimientos.get(establecimiento_id) if establecimiento_id else None
        if facility is None:
            raise NotFoundError(f"Establecimiento no encontrado con ID: {establecimiento_id}")
        return facility

    # Operators

    def create_user(
        self,
        acting_user: User,
        username: str,
        password: str,
        full_name: str,
        rol: Rol | str,
        establecimiento_id: int | None = None,
    ) -> User:
        require_role(acting_user, Rol.ADMINISTRADOR)
        username = (username or "").strip()
        if not username:
            raise InvalidArgumentError("El nombre de usuario es obligatorio")
        if password is None or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidArgumentError(f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres")
        full_name = (full_name or "").strip()
        if not full_name:
            raise InvalidArgumentError("El nombre completo es obligatorio")
        rol = _parse_enum(Rol, rol, "Rol")
        if self.repos.users.find_by_username(username) is not None:
            raise DuplicateError(f"Ya existe un usuario registrado con el nombre de usuario: {username}")
        if establecimiento_id is not None:
            self._facility(establecimiento_id)

        user = User(
            username=username,
            full_name=full_name,
            password_hash=generate_password_hash(password),
            rol=rol,
            establecimiento_id=establecimiento_id,
            is_active=True,
        )
        with unit_of_work(self.repos.session):
            self.repos.users.add(user)
        logger.info("User %s created with role %s by %s", username, rol.value, acting_user.username)
        return user

    def set_user_active(self, acting_user: User, username: str, active: bool) -> User:
        require_role(acting_user, Rol.ADMINISTRADOR)
        user = self.repos.users.find_by_username(username)
        if user is None:
            raise NotFoundError(f"Usuario no encontrado: {username}")
        if not active and user.id == acting_user.id:
            raise InvalidArgumentError("No puede inactivar su propio usuario")
        with unit_of_work(self.repos.session):
            user.is_active = active
            self.repos.users.update(user)
        logger.info("User %s %s by %s", username, "activated" if active else "deactivated", acting_user.username)
        return user
