from __future__ import annotations

from datetime import datetime, time

from visitcontrol.access.gates import CapacityGate, VisitingHoursGate
from visitcontrol.core.extensions import db
from visitcontrol.core.models import Establecimiento, FranjaHoraria


def test_capacity_counts_in_progress_visits(services, facility, fill_facility):
    gate = CapacityGate(services.controller.repos.visitas)
    assert gate.within_capacity(facility)

    fill_facility(9)
    assert gate.within_capacity(facility)

    fill_facility(1)
    assert not gate.within_capacity(facility)


def test_capacity_without_limit_is_unbounded(services, facility, fill_facility):
    facility.capacidad_maxima = None
    db.session.commit()
    fill_facility(12)
    assert CapacityGate(services.controller.repos.visitas).within_capacity(facility)

    facility.capacidad_maxima = 0
    db.session.commit()
    assert CapacityGate(services.controller.repos.visitas).within_capacity(facility)


def test_capacity_ignores_finished_visits(services, controller, facility, fill_facility):
    visits = fill_facility(10)
    controller.check_out(visits[0].id, "operador")
    assert CapacityGate(services.controller.repos.visitas).within_capacity(facility)


def test_visiting_hours_windows_are_inclusive(facility):
    gate = VisitingHoursGate()
    wednesday = datetime(2026, 10, 14)
    assert gate.within_visiting_hours(facility, wednesday.replace(hour=9, minute=0))
    assert gate.within_visiting_hours(facility, wednesday.replace(hour=12, minute=0))
    assert gate.within_visiting_hours(facility, wednesday.replace(hour=15, minute=45))
    assert not gate.within_visiting_hours(facility, wednesday.replace(hour=8, minute=59))
    assert not gate.within_visiting_hours(facility, wednesday.replace(hour=13, minute=0))
    assert not gate.within_visiting_hours(facility, wednesday.replace(hour=17, minute=1))


def test_visiting_hours_respects_enabled_days(facility):
    gate = VisitingHoursGate()
    saturday = datetime(2026, 10, 17, 10, 0)
    sunday = datetime(2026, 10, 18, 10, 0)
    assert gate.within_visiting_hours(facility, saturday)
    assert not gate.within_visiting_hours(facility, sunday)


def test_visiting_hours_closed_when_inactive_or_unconfigured(app):
    gate = VisitingHoursGate()
    closed = Establecimiento(nombre="Unidad sin horario", capacidad_maxima=5)
    db.session.add(closed)
    db.session.commit()
    assert not gate.within_visiting_hours(closed, datetime(2026, 10, 14, 10, 0))

    db.session.add(FranjaHoraria(establecimiento_id=closed.id, hora_inicio=time(8, 0), hora_fin=time(20, 0)))
    db.session.commit()
    db.session.refresh(closed)
    assert gate.within_visiting_hours(closed, datetime(2026, 10, 14, 10, 0))

    closed.activo = False
    db.session.commit()
    assert not gate.within_visiting_hours(closed, datetime(2026, 10, 14, 10, 0))
