from __future__ import annotations

from datetime import datetime

from visitcontrol.access.repositories import VisitaRepository
from visitcontrol.core.models import WEEKDAY_NAMES, Establecimiento


def capacity_limited(facility: Establecimiento) -> bool:
    return facility.capacidad_maxima is not None and facility.capacidad_maxima > 0


class CapacityGate:
    def __init__(self, visitas: VisitaRepository) -> None:
        self.visitas = visitas

    def within_capacity(self, facility: Establecimiento) -> bool:
        if not capacity_limited(facility):
            return True
        # Always a fresh count: the caller holds the facility lock while deciding
        return self.visitas.count_in_progress(facility.id) < facility.capacidad_maxima


class VisitingHoursGate:
    def within_visiting_hours(self, facility: Establecimiento, now: datetime) -> bool:
        if not facility.activo or not facility.franjas:
            return False
        if WEEKDAY_NAMES[now.weekday()] not in facility.dias:
            return False
        current = now.time().replace(microsecond=0)
        return any(f.hora_inicio <= current <= f.hora_fin for f in facility.franjas)

    def describe(self, facility: Establecimiento) -> str:
        days = ", ".join(d for d in WEEKDAY_NAMES if d in facility.dias) or "ninguno"
        return f"Días: {days}. Horario: {facility.horario_label}"
