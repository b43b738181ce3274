"""Ordered access-control checks run on every check-in attempt.

Every check runs and every failing reason is collected so the operator can
explain a denial in one go. The authorization step is the exception: a
missing authorization is recoverable through an immediate grant when the
operator is privileged and nothing else failed.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from visitcontrol.access.authorizations import AuthorizationResolver
from visitcontrol.access.gates import CapacityGate, VisitingHoursGate
from visitcontrol.access.repositories import Repositories
from visitcontrol.access.restrictions import RestrictionEvaluator
from visitcontrol.core.clock import Clock
from visitcontrol.core.models import (
    Autorizacion,
    AutorizacionEstado,
    Establecimiento,
    Interno,
    InternoEstado,
    Rol,
    TipoRelacion,
    User,
    Visitante,
    VisitanteEstado,
)
from visitcontrol.core.permissions import can_grant_immediate

logger = logging.getLogger(__name__)


def clean_dni(value: str | None) -> str:
    return re.sub(r"[\s.]", "", (value or "").strip())


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    requires_immediate_authorization: bool = False
    operator_can_grant_immediate: bool = False
    visitor: Visitante | None = None
    inmate: Interno | None = None
    operator: User | None = None
    authorization: Autorizacion | None = None
    facility: Establecimiento | None = None

    @property
    def permitted(self) -> bool:
        return not self.errors

    def message(self) -> str:
        if self.permitted:
            return "Ingreso permitido"
        return "Ingreso denegado: " + "; ".join(self.errors)


class AccessValidator:
    def __init__(
        self,
        repos: Repositories,
        clock: Clock,
        resolver: AuthorizationResolver,
        evaluator: RestrictionEvaluator,
        capacity_gate: CapacityGate,
        hours_gate: VisitingHoursGate,
        min_age: int = 18,
    ) -> None:
        self.repos = repos
        self.clock = clock
        self.resolver = resolver
        self.evaluator = evaluator
        self.capacity_gate = capacity_gate
        self.hours_gate = hours_gate
        self.min_age = min_age

    def validate_check_in(
        self,
        visitor_doc: str,
        inmate_file: str,
        operator: User | None,
        lock_facility: bool = False,
    ) -> ValidationResult:
        now = self.clock.now()
        today = now.date()
        result = ValidationResult(operator=operator, operator_can_grant_immediate=can_grant_immediate(operator))

        if operator is None or not operator.is_active:
            result.errors.append("El operador no está habilitado para registrar ingresos")

        # 1. visitor
        dni = clean_dni(visitor_doc)
        visitor = self.repos.visitantes.find_by_dni(dni) if dni else None
        result.visitor = visitor
        if visitor is None:
            result.errors.append(f"No existe un visitante registrado con DNI: {dni or '-'}")
        else:
            if visitor.estado != VisitanteEstado.ACTIVO:
                result.errors.append(
                    f"El visitante no está habilitado. Estado actual: {VisitanteEstado(visitor.estado).value}"
                )
            if visitor.edad(today) < self.min_age:
                result.errors.append(f"El visitante no alcanza la edad mínima de {self.min_age} años")
            if self.repos.visitas.in_progress_for_visitor(visitor.id) is not None:
                result.errors.append("El visitante ya tiene una visita en curso")

        # 2. inmate
        legajo = (inmate_file or "").strip().upper()
        inmate = self.repos.internos.find_by_legajo(legajo) if legajo else None
        result.inmate = inmate
        if inmate is None:
            result.errors.append(f"No existe un interno registrado con legajo: {legajo or '-'}")
        elif inmate.estado != InternoEstado.ACTIVO:
            result.errors.append(
                "El interno no está disponible para recibir visitas. "
                f"Estado actual: {InternoEstado(inmate.estado).value}"
            )
        authorization_slot = len(result.errors)

        # 4. restrictions
        if visitor is not None:
            blocked, reasons = self.evaluator.is_blocked(visitor, inmate, today)
            if blocked:
                result.errors.extend(f"Restricción activa: {reason}" for reason in reasons)

        # 5 and 6. facility gates
        facility = self._resolve_facility(inmate, operator, lock_facility)
        result.facility = facility
        if facility is not None:
            if not self.hours_gate.within_visiting_hours(facility, now):
                result.errors.append(f"Fuera del horario de visitas. {self.hours_gate.describe(facility)}")
            if not self.capacity_gate.within_capacity(facility):
                result.errors.append(
                    f"Capacidad máxima del establecimiento alcanzada ({facility.capacidad_maxima} visitas en curso)"
                )

        # 3. authorization, decided last because the immediate grant depends on every other check
        if visitor is not None and inmate is not None:
            auth_error = self._check_authorization(result, visitor, inmate, today)
            if auth_error:
                result.errors.insert(authorization_slot, auth_error)

        if inmate is not None:
            result.warnings.append(f"Interno ubicado en: {inmate.ubicacion_label}")

        if result.permitted:
            logger.debug("Check-in validation passed for visitor %s -> inmate %s", dni, legajo)
        else:
            logger.debug("Check-in validation failed for visitor %s -> inmate %s: %s", dni, legajo, result.errors)
        return result

    def _check_authorization(self, result: ValidationResult, visitor: Visitante, inmate: Interno, today) -> str | None:
        auth = self.resolver.find_standing(visitor, inmate)
        result.authorization = auth
        if auth is not None:
            if self.resolver.is_valid(auth, today):
                result.warnings.append(f"Autorización tipo: {TipoRelacion(auth.tipo_relacion).value}")
                return None
            if auth.vencida(today):
                result.warnings.append(f"La autorización venció el: {auth.fecha_vencimiento:%d/%m/%Y}")
                if auth.estado == AutorizacionEstado.VIGENTE:
                    return "La autorización está vencida"
            return f"La autorización no está vigente. Estado: {AutorizacionEstado(auth.estado).value}"

        if not result.errors and result.operator_can_grant_immediate:
            result.requires_immediate_authorization = True
            result.warnings.append(
                "ADVERTENCIA: El visitante no tiene autorización previa. "
                f"Como {Rol(result.operator.rol).value} puede otorgar una autorización inmediata."
            )
            result.warnings.append("Autorización: Inmediata (pendiente de confirmación)")
            return None
        return f"No existe autorización para que {visitor.full_name} visite a {inmate.full_name}"

    def _resolve_facility(self, inmate: Interno | None, operator: User | None, lock: bool) -> Establecimiento | None:
        facility_id = None
        if inmate is not None:
            facility_id = inmate.establecimiento_id
        elif operator is not None:
            facility_id = operator.establecimiento_id
        if facility_id is None:
            return None
        if lock:
            return self.repos.establecimientos.lock(facility_id)
        return self.repos.establecimientos.get(facility_id)
