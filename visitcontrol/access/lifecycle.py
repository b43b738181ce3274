from __future__ import annotations

from datetime import timedelta

from visitcontrol.core.clock import Clock
from visitcontrol.core.errors import InvalidArgumentError, InvalidStateError
from visitcontrol.core.models import User, Visita, VisitaEstado


VISITA_TRANSITIONS: dict[VisitaEstado, set[VisitaEstado]] = {
    VisitaEstado.PROGRAMADA: {VisitaEstado.EN_CURSO, VisitaEstado.CANCELADA},
    VisitaEstado.EN_CURSO: {VisitaEstado.FINALIZADA, VisitaEstado.CANCELADA},
    VisitaEstado.FINALIZADA: set(),
    VisitaEstado.CANCELADA: set(),
}


def visit_state(visit: Visita) -> VisitaEstado:
    # A visit not yet flushed has no state; it counts as scheduled
    if visit.estado is None:
        return VisitaEstado.PROGRAMADA
    return VisitaEstado(visit.estado)


def _transition(visit: Visita, target: VisitaEstado) -> VisitaEstado:
    current = visit_state(visit)
    if target not in VISITA_TRANSITIONS[current]:
        raise InvalidStateError(f"Transicion invalida: {current.value} -> {target.value}")
    visit.estado = target
    return current


def _append_note(visit: Visita, note: str) -> None:
    visit.observaciones = f"{visit.observaciones}\n{note}" if visit.observaciones else note


class VisitLifecycle:
    """Single owner of a visit's state and timestamps."""

    def __init__(self, clock: Clock) -> None:
        self.clock = clock

    def check_in(self, visit: Visita, operator: User | None) -> Visita:
        # Must run before the first flush: an EN_CURSO row always carries hora_ingreso
        now = self.clock.now()
        _transition(visit, VisitaEstado.EN_CURSO)
        visit.hora_ingreso = now
        visit.fecha_visita = visit.fecha_visita or now.date()
        visit.operador_ingreso_id = operator.id if operator else None
        return visit

    def check_out(self, visit: Visita, operator: User | None, notes: str | None = None) -> Visita:
        _transition(visit, VisitaEstado.FINALIZADA)
        visit.hora_egreso = max(self.clock.now(), visit.hora_ingreso)
        visit.operador_egreso_id = operator.id if operator else None
        if notes and notes.strip():
            _append_note(visit, notes.strip())
        return visit

    def cancel(self, visit: Visita, motive: str, operator: User | None = None) -> Visita:
        motive = (motive or "").strip()
        if not motive:
            raise InvalidArgumentError("Debe especificar el motivo de la cancelación")
        previous = _transition(visit, VisitaEstado.CANCELADA)
        if previous == VisitaEstado.EN_CURSO:
            visit.hora_egreso = max(self.clock.now(), visit.hora_ingreso)
            visit.operador_egreso_id = operator.id if operator else None
        _append_note(visit, f"CANCELADA: {motive}")
        return visit

    def duration(self, visit: Visita) -> timedelta | None:
        if visit.hora_ingreso is None:
            return None
        end = visit.hora_egreso or self.clock.now()
        return max(end - visit.hora_ingreso, timedelta(0))
