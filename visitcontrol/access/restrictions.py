from __future__ import annotations

import logging
from datetime import date

from visitcontrol.access.repositories import Repositories, unit_of_work
from visitcontrol.core.clock import Clock
from visitcontrol.core.errors import InvalidArgumentError, InvalidStateError
from visitcontrol.core.models import AlcanceRestriccion, Interno, Restriccion, TipoRestriccion, User, Visitante

logger = logging.getLogger(__name__)


def restriction_active(restriction: Restriccion, today: date) -> bool:
    """Active flag set and ``today`` inside [start, end], both ends inclusive."""
    if not restriction.activa:
        return False
    if restriction.fecha_inicio > today:
        return False
    return restriction.fecha_fin is None or restriction.fecha_fin >= today


def restriction_applies_to(restriction: Restriccion, inmate: Interno | None) -> bool:
    if restriction.alcance == AlcanceRestriccion.TODOS:
        return True
    return inmate is not None and restriction.interno_id == inmate.id


class RestrictionEvaluator:
    """Read-only check of a visitor's restrictions against a target inmate."""

    def __init__(self, repos: Repositories, clock: Clock) -> None:
        self.repos = repos
        self.clock = clock

    def is_blocked(
        self,
        visitor: Visitante,
        inmate: Interno | None,
        today: date | None = None,
    ) -> tuple[bool, list[str]]:
        today = today or self.clock.today()
        reasons = [
            r.motivo
            for r in self.repos.restricciones.for_visitor(visitor.id)
            if restriction_active(r, today) and restriction_applies_to(r, inmate)
        ]
        return bool(reasons), reasons


class RestrictionService:
    def __init__(self, repos: Repositories, clock: Clock, min_motive_length: int = 10) -> None:
        self.repos = repos
        self.clock = clock
        self.min_motive_length = min_motive_length

    def _clean_motive(self, motive: str | None) -> str:
        motive = (motive or "").strip()
        if len(motive) < self.min_motive_length:
            raise InvalidArgumentError(f"El motivo debe tener al menos {self.min_motive_length} caracteres")
        return motive

    def create(
        self,
        visitor: Visitante,
        tipo: TipoRestriccion | str,
        motive: str,
        start: date,
        end: date | None = None,
        scope: AlcanceRestriccion | str = AlcanceRestriccion.TODOS,
        inmate: Interno | None = None,
        created_by: User | None = None,
    ) -> Restriccion:
        if visitor is None:
            raise InvalidArgumentError("Debe seleccionar un visitante")
        try:
            tipo = TipoRestriccion(tipo)
            scope = AlcanceRestriccion(scope)
        except ValueError as exc:
            raise InvalidArgumentError(f"Valor de restricción inválido: {exc}") from exc
        motive = self._clean_motive(motive)
        if start is None:
            raise InvalidArgumentError("Debe especificar fecha de inicio")
        if end is not None and end < start:
            raise InvalidArgumentError("La fecha de fin debe ser posterior a la fecha de inicio")
        if scope == AlcanceRestriccion.INTERNO_ESPECIFICO and inmate is None:
            raise InvalidArgumentError("Debe seleccionar un interno para restricción específica")

        restriction = Restriccion(
            visitante_id=visitor.id,
            tipo=tipo,
            motivo=motive,
            fecha_inicio=start,
            fecha_fin=end,
            alcance=scope,
            interno_id=inmate.id if scope == AlcanceRestriccion.INTERNO_ESPECIFICO else None,
            activa=True,
            creado_por_id=created_by.id if created_by else None,
        )
        with unit_of_work(self.repos.session):
            self.repos.restricciones.add(restriction)
        logger.info("Restriction %s created for visitor %s (%s)", restriction.id, visitor.dni, tipo.value)
        return restriction

    def lift(self, restriction: Restriccion, motive: str) -> Restriccion:
        motive = self._clean_motive(motive)
        if not restriction.activa:
            raise InvalidStateError("La restricción ya fue levantada")
        with unit_of_work(self.repos.session):
            today = self.clock.today()
            restriction.activa = False
            restriction.motivo = f"{restriction.motivo}\nLEVANTADA: {motive}"
            # A restriction lifted before it started keeps a zero-length window
            restriction.fecha_fin = max(today, restriction.fecha_inicio)
            self.repos.restricciones.update(restriction)
        logger.info("Restriction %s lifted", restriction.id)
        return restriction

    def extend(self, restriction: Restriccion, new_end: date | None) -> Restriccion:
        if not restriction_active(restriction, self.clock.today()):
            raise InvalidStateError("No se puede extender una restricción inactiva")
        if restriction.fecha_fin is None and new_end is not None:
            raise InvalidArgumentError("La restricción es indefinida; la nueva fecha no puede acortarla")
        if new_end is not None and new_end < restriction.fecha_fin:
            raise InvalidArgumentError("La nueva fecha de fin no puede ser anterior a la actual")
        with unit_of_work(self.repos.session):
            restriction.fecha_fin = new_end
            self.repos.restricciones.update(restriction)
        logger.info("Restriction %s extended to %s", restriction.id, new_end or "indefinite")
        return restriction

    def active_for_visitor(self, visitor: Visitante) -> list[Restriccion]:
        return self.repos.restricciones.find_active_by_scope(visitor.id, self.clock.today())

    def expiring_within(self, days: int) -> list[Restriccion]:
        if days <= 0:
            raise InvalidArgumentError("La cantidad de días debe ser positiva")
        return self.repos.restricciones.find_expiring_within(self.clock.today(), days)
