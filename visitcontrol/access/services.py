from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy.orm import Session

from visitcontrol.access.authorizations import AuthorizationResolver, AuthorizationService
from visitcontrol.access.gates import CapacityGate, VisitingHoursGate
from visitcontrol.access.lifecycle import VisitLifecycle
from visitcontrol.access.registry import Registry
from visitcontrol.access.repositories import Repositories, unit_of_work
from visitcontrol.access.restrictions import RestrictionEvaluator, RestrictionService
from visitcontrol.access.validation import AccessValidator, ValidationResult, clean_dni
from visitcontrol.core.clock import Clock
from visitcontrol.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from visitcontrol.core.models import (
    Autorizacion,
    Interno,
    MovimientoAcceso,
    MovimientoAccesoTipo,
    User,
    Visita,
    VisitaEstado,
)

logger = logging.getLogger(__name__)


@dataclass
class CheckInOutcome:
    """Result of a check-in attempt. A denial is a normal outcome, not an error."""

    permitted: bool
    visit: Visita | None = None
    reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    requires_confirmation: bool = False
    immediate_authorization: Autorizacion | None = None

    @property
    def visit_id(self) -> int | None:
        return self.visit.id if self.visit else None


class AccessController:
    def __init__(
        self,
        repos: Repositories,
        clock: Clock,
        validator: AccessValidator,
        resolver: AuthorizationResolver,
        lifecycle: VisitLifecycle,
    ) -> None:
        self.repos = repos
        self.clock = clock
        self.validator = validator
        self.resolver = resolver
        self.lifecycle = lifecycle

    def _operator(self, username: str | None) -> User:
        if not (username or "").strip():
            raise InvalidArgumentError("Debe indicar el operador")
        operator = self.repos.users.find_by_username(username)
        if operator is None:
            raise NotFoundError(f"Operador no encontrado: {username}")
        return operator

    def _visit(self, visit_id: int | None) -> Visita:
        if visit_id is None:
            raise InvalidArgumentError("Debe indicar la visita")
        visit = self.repos.visitas.get_for_update(visit_id)
        if visit is None:
            raise NotFoundError(f"Visita no encontrada: {visit_id}")
        return visit

    def validate(self, visitor_doc: str, inmate_file: str, operator_username: str) -> ValidationResult:
        """Dry run of the check-in checks. Nothing is written."""
        operator = self._operator(operator_username)
        return self.validator.validate_check_in(visitor_doc, inmate_file, operator)

    def check_in(
        self,
        visitor_doc: str,
        inmate_file: str,
        operator_username: str,
        confirm_immediate: bool = False,
    ) -> CheckInOutcome:
        operator = self._operator(operator_username)
        with unit_of_work(self.repos.session):
            result = self.validator.validate_check_in(visitor_doc, inmate_file, operator, lock_facility=True)
            if not result.permitted:
                self._log_denied(result, operator)
                return CheckInOutcome(permitted=False, reasons=list(result.errors), warnings=list(result.warnings))

            immediate = None
            if result.requires_immediate_authorization:
                if not confirm_immediate:
                    return CheckInOutcome(
                        permitted=False,
                        reasons=["Se requiere confirmar una autorización inmediata"],
                        warnings=list(result.warnings),
                        requires_confirmation=True,
                    )
                immediate = self.resolver.create_immediate(result.visitor, result.inmate, operator)
                self.repos.movimientos.log(
                    MovimientoAccesoTipo.AUTORIZACION_INMEDIATA,
                    self.clock.now(),
                    f"Autorización inmediata {result.visitor.dni} -> {result.inmate.numero_legajo}",
                    user_id=operator.id,
                    visitante_id=result.visitor.id,
                )
                # Second pass so the new authorization goes through the same checks
                result = self.validator.validate_check_in(visitor_doc, inmate_file, operator, lock_facility=True)
                if not result.permitted or result.requires_immediate_authorization:
                    raise InvalidStateError("La autorización inmediata no habilitó el ingreso: " + "; ".join(result.errors))

            visit = Visita(
                visitante_id=result.visitor.id,
                interno_id=result.inmate.id,
                establecimiento_id=result.inmate.establecimiento_id,
                fecha_visita=self.clock.today(),
            )
            self.lifecycle.check_in(visit, operator)
            self.repos.visitas.add(visit)
            self.repos.movimientos.log(
                MovimientoAccesoTipo.INGRESO,
                visit.hora_ingreso,
                f"Ingreso {result.visitor.dni} -> {result.inmate.numero_legajo}",
                user_id=operator.id,
                visita_id=visit.id,
                visitante_id=result.visitor.id,
            )
            self.repos.users.touch_last_access(operator, self.clock.now())

        logger.info(
            "Check-in permitted: visit %s, visitor %s -> inmate %s by %s%s",
            visit.id,
            result.visitor.dni,
            result.inmate.numero_legajo,
            operator.username,
            " (immediate authorization)" if immediate else "",
        )
        return CheckInOutcome(
            permitted=True,
            visit=visit,
            warnings=list(result.warnings),
            immediate_authorization=immediate,
        )

    def _log_denied(self, result: ValidationResult, operator: User) -> None:
        self.repos.movimientos.log(
            MovimientoAccesoTipo.INGRESO_DENEGADO,
            self.clock.now(),
            "; ".join(result.errors),
            user_id=operator.id,
            visitante_id=result.visitor.id if result.visitor else None,
        )
        logger.warning(
            "Check-in denied for visitor %s -> inmate %s by %s: %s",
            result.visitor.dni if result.visitor else "-",
            result.inmate.numero_legajo if result.inmate else "-",
            operator.username,
            "; ".join(result.errors),
        )

    def check_out(self, visit_id: int, operator_username: str, notes: str | None = None) -> Visita:
        operator = self._operator(operator_username)
        with unit_of_work(self.repos.session):
            visit = self._visit(visit_id)
            self.lifecycle.check_out(visit, operator, notes)
            self.repos.visitas.update(visit)
            self.repos.movimientos.log(
                MovimientoAccesoTipo.EGRESO,
                visit.hora_egreso,
                f"Egreso visita {visit.id}",
                user_id=operator.id,
                visita_id=visit.id,
                visitante_id=visit.visitante_id,
            )
            self.repos.users.touch_last_access(operator, self.clock.now())
        logger.info("Check-out of visit %s by %s", visit.id, operator.username)
        return visit

    def cancel(self, visit_id: int, motive: str, operator_username: str | None = None) -> Visita:
        operator = self._operator(operator_username) if operator_username else None
        with unit_of_work(self.repos.session):
            visit = self._visit(visit_id)
            self.lifecycle.cancel(visit, motive, operator)
            self.repos.visitas.update(visit)
            self.repos.movimientos.log(
                MovimientoAccesoTipo.CANCELACION,
                self.clock.now(),
                f"Cancelación visita {visit.id}: {motive.strip()}",
                user_id=operator.id if operator else None,
                visita_id=visit.id,
                visitante_id=visit.visitante_id,
            )
            if operator is not None:
                self.repos.users.touch_last_access(operator, self.clock.now())
        logger.info("Visit %s cancelled", visit.id)
        return visit

    def visits_in_progress(self, facility_id: int | None = None) -> list[Visita]:
        return self.repos.visitas.in_progress(facility_id)

    def count_in_progress(self, facility_id: int) -> int:
        return self.repos.visitas.count_in_progress(facility_id)

    def visits_by_visitor(self, visitor_doc: str) -> list[Visita]:
        visitor = self.repos.visitantes.find_by_dni(clean_dni(visitor_doc))
        if visitor is None:
            raise NotFoundError(f"Visitante no encontrado: {visitor_doc}")
        return self.repos.visitas.by_visitor(visitor.id)

    def visits_by_inmate(self, inmate_file: str) -> list[Visita]:
        inmate = self.repos.internos.find_by_legajo(inmate_file)
        if inmate is None:
            raise NotFoundError(f"Interno no encontrado: {inmate_file}")
        return self.repos.visitas.by_inmate(inmate.id)

    def visits_by_date(self, day: date | None = None) -> list[Visita]:
        return self.repos.visitas.by_date(day or self.clock.today())

    def authorized_inmates(self, visitor_doc: str) -> list[Interno]:
        visitor = self.repos.visitantes.find_by_dni(clean_dni(visitor_doc))
        if visitor is None:
            raise NotFoundError(f"Visitante no encontrado: {visitor_doc}")
        return AuthorizationService(self.repos, self.clock).authorized_inmates(visitor)

    def duration(self, visit: Visita) -> timedelta | None:
        return self.lifecycle.duration(visit)

    def recent_movements(self, limit: int = 50) -> list[MovimientoAcceso]:
        return self.repos.movimientos.recent(limit)


@dataclass
class AccessServices:
    controller: AccessController
    authorizations: AuthorizationService
    restrictions: RestrictionService
    registry: Registry


def build_access_services(
    session: Session,
    clock: Clock,
    min_age: int = 18,
    min_motive_length: int = 10,
) -> AccessServices:
    repos = Repositories.from_session(session)
    resolver = AuthorizationResolver(repos, clock)
    validator = AccessValidator(
        repos,
        clock,
        resolver,
        RestrictionEvaluator(repos, clock),
        CapacityGate(repos.visitas),
        VisitingHoursGate(),
        min_age=min_age,
    )
    controller = AccessController(repos, clock, validator, resolver, VisitLifecycle(clock))
    return AccessServices(
        controller=controller,
        authorizations=AuthorizationService(repos, clock),
        restrictions=RestrictionService(repos, clock, min_motive_length),
        registry=Registry(repos, clock, min_age),
    )
