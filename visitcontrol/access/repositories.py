"""Per-entity repositories and the unit of work used by the access services.

Each repository wraps one SQLAlchemy session. Services never commit on their
own: they run inside ``unit_of_work`` so a failure anywhere rolls the whole
operation back.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from visitcontrol.core.errors import DuplicateError, StorageError
from visitcontrol.core.models import (
    AlcanceRestriccion,
    Autorizacion,
    AutorizacionEstado,
    Establecimiento,
    Interno,
    MovimientoAcceso,
    MovimientoAccesoTipo,
    Restriccion,
    User,
    Visita,
    VisitaEstado,
    Visitante,
)

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(session: Session):
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Storage failure, transaction rolled back: %s", exc)
        raise StorageError(f"Error de base de datos: {exc.__class__.__name__}") from exc
    except Exception:
        session.rollback()
        raise


class _Repository:
    model = None

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, entity_id: int):
        return self.session.get(self.model, entity_id)

    def add(self, entity) -> int:
        self.session.add(entity)
        self.session.flush()
        return entity.id

    def update(self, entity) -> bool:
        self.session.add(entity)
        self.session.flush()
        return True


class EstablecimientoRepository(_Repository):
    model = Establecimiento

    def lock(self, facility_id: int) -> Establecimiento | None:
        # Serialises check-ins per facility: capacity count and insert happen under this row lock
        return self.session.execute(
            select(Establecimiento)
            .where(Establecimiento.id == facility_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()


class UserRepository(_Repository):
    model = User

    def find_by_username(self, username: str) -> User | None:
        return self.session.execute(
            select(User).where(User.username == (username or "").strip())
        ).scalar_one_or_none()

    def touch_last_access(self, user: User, when: datetime) -> None:
        user.last_access_at = when
        self.session.flush()


class VisitanteRepository(_Repository):
    model = Visitante

    def add(self, entity: Visitante) -> int:
        try:
            return super().add(entity)
        except IntegrityError as exc:
            raise DuplicateError(f"Ya existe un visitante con DNI {entity.dni}") from exc

    def find_by_dni(self, dni: str) -> Visitante | None:
        return self.session.execute(select(Visitante).where(Visitante.dni == dni)).scalar_one_or_none()

    def search(self, text: str, limit: int = 50) -> list[Visitante]:
        like = f"%{(text or '').strip()}%"
        return list(
            self.session.execute(
                select(Visitante)
                .where(or_(Visitante.dni.ilike(like), Visitante.apellido.ilike(like), Visitante.nombre.ilike(like)))
                .order_by(Visitante.apellido, Visitante.nombre)
                .limit(limit)
            ).scalars()
        )


class InternoRepository(_Repository):
    model = Interno

    def add(self, entity: Interno) -> int:
        try:
            return super().add(entity)
        except IntegrityError as exc:
            raise DuplicateError(f"Ya existe un interno con legajo {entity.numero_legajo}") from exc

    def find_by_legajo(self, numero_legajo: str) -> Interno | None:
        return self.session.execute(
            select(Interno).where(Interno.numero_legajo == (numero_legajo or "").strip().upper())
        ).scalar_one_or_none()


class AutorizacionRepository(_Repository):
    model = Autorizacion

    def add(self, entity: Autorizacion) -> int:
        try:
            return super().add(entity)
        except IntegrityError as exc:
            # The failed flush leaves the session unusable until it is rolled back
            self.session.rollback()
            existing = self.find_standing(entity.visitante_id, entity.interno_id)
            message = "Ya existe una autorización para este visitante e interno"
            if existing is not None:
                message += f" (autorización {existing.id}, estado: {AutorizacionEstado(existing.estado).value})"
            raise DuplicateError(message, existing=existing) from exc

    def find_standing(self, visitante_id: int, interno_id: int) -> Autorizacion | None:
        return self.session.execute(
            select(Autorizacion).where(
                Autorizacion.visitante_id == visitante_id,
                Autorizacion.interno_id == interno_id,
            )
        ).scalar_one_or_none()

    def for_visitor(self, visitante_id: int) -> list[Autorizacion]:
        return list(
            self.session.execute(
                select(Autorizacion)
                .where(Autorizacion.visitante_id == visitante_id)
                .order_by(Autorizacion.fecha_autorizacion.desc(), Autorizacion.id.desc())
            ).scalars()
        )

    def find_expiring_within(self, today: date, days: int) -> list[Autorizacion]:
        start = datetime.combine(today, time.min)
        end = datetime.combine(today + timedelta(days=days), time.max)
        return list(
            self.session.execute(
                select(Autorizacion)
                .where(
                    Autorizacion.estado == AutorizacionEstado.VIGENTE,
                    Autorizacion.fecha_vencimiento.is_not(None),
                    Autorizacion.fecha_vencimiento >= start,
                    Autorizacion.fecha_vencimiento <= end,
                )
                .order_by(Autorizacion.fecha_vencimiento.asc())
            ).scalars()
        )


class RestriccionRepository(_Repository):
    model = Restriccion

    def for_visitor(self, visitante_id: int) -> list[Restriccion]:
        return list(
            self.session.execute(
                select(Restriccion)
                .where(Restriccion.visitante_id == visitante_id)
                .order_by(Restriccion.fecha_inicio.desc(), Restriccion.id.desc())
            ).scalars()
        )

    def find_active_by_scope(self, visitante_id: int, today: date, interno_id: int | None = None) -> list[Restriccion]:
        conditions = [
            Restriccion.visitante_id == visitante_id,
            Restriccion.activa.is_(True),
            Restriccion.fecha_inicio <= today,
            or_(Restriccion.fecha_fin.is_(None), Restriccion.fecha_fin >= today),
        ]
        if interno_id is not None:
            conditions.append(
                or_(
                    Restriccion.alcance == AlcanceRestriccion.TODOS,
                    Restriccion.interno_id == interno_id,
                )
            )
        return list(
            self.session.execute(
                select(Restriccion).where(*conditions).order_by(Restriccion.fecha_inicio.desc(), Restriccion.id.desc())
            ).scalars()
        )

    def find_expiring_within(self, today: date, days: int) -> list[Restriccion]:
        return list(
            self.session.execute(
                select(Restriccion)
                .where(
                    Restriccion.activa.is_(True),
                    Restriccion.fecha_fin.is_not(None),
                    Restriccion.fecha_fin >= today,
                    Restriccion.fecha_fin <= today + timedelta(days=days),
                )
                .order_by(Restriccion.fecha_fin.asc())
            ).scalars()
        )


class VisitaRepository(_Repository):
    model = Visita

    def add(self, entity: Visita) -> int:
        try:
            return super().add(entity)
        except IntegrityError as exc:
            raise DuplicateError("El visitante ya tiene una visita en curso") from exc

    def get_for_update(self, visita_id: int) -> Visita | None:
        # Overwrite any copy already in the identity map with the locked row
        return self.session.execute(
            select(Visita)
            .where(Visita.id == visita_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def count_in_progress(self, facility_id: int) -> int:
        return self.session.execute(
            select(func.count(Visita.id)).where(
                Visita.establecimiento_id == facility_id,
                Visita.estado == VisitaEstado.EN_CURSO,
            )
        ).scalar_one()

    def in_progress(self, facility_id: int | None = None) -> list[Visita]:
        query = select(Visita).where(Visita.estado == VisitaEstado.EN_CURSO)
        if facility_id is not None:
            query = query.where(Visita.establecimiento_id == facility_id)
        return list(self.session.execute(query.order_by(Visita.hora_ingreso.asc(), Visita.id.asc())).scalars())

    def in_progress_for_visitor(self, visitante_id: int) -> Visita | None:
        return self.session.execute(
            select(Visita).where(
                Visita.visitante_id == visitante_id,
                Visita.estado == VisitaEstado.EN_CURSO,
            )
        ).scalar_one_or_none()

    def by_visitor(self, visitante_id: int) -> list[Visita]:
        return list(
            self.session.execute(
                select(Visita)
                .where(Visita.visitante_id == visitante_id)
                .order_by(Visita.fecha_visita.desc(), Visita.id.desc())
            ).scalars()
        )

    def by_inmate(self, interno_id: int) -> list[Visita]:
        return list(
            self.session.execute(
                select(Visita)
                .where(Visita.interno_id == interno_id)
                .order_by(Visita.fecha_visita.desc(), Visita.id.desc())
            ).scalars()
        )

    def by_date(self, day: date) -> list[Visita]:
        return list(
            self.session.execute(
                select(Visita).where(Visita.fecha_visita == day).order_by(Visita.hora_ingreso.asc(), Visita.id.asc())
            ).scalars()
        )


class MovimientoAccesoRepository(_Repository):
    model = MovimientoAcceso

    def log(
        self,
        tipo: MovimientoAccesoTipo,
        fecha: datetime,
        detalle: str,
        user_id: int | None = None,
        visita_id: int | None = None,
        visitante_id: int | None = None,
    ) -> None:
        self.session.add(
            MovimientoAcceso(
                tipo=tipo,
                fecha=fecha,
                detalle=detalle,
                user_id=user_id,
                visita_id=visita_id,
                visitante_id=visitante_id,
            )
        )

    def recent(self, limit: int = 50) -> list[MovimientoAcceso]:
        return list(
            self.session.execute(
                select(MovimientoAcceso).order_by(MovimientoAcceso.fecha.desc(), MovimientoAcceso.id.desc()).limit(limit)
            ).scalars()
        )


@dataclass
class Repositories:
    session: Session
    establecimientos: EstablecimientoRepository
    users: UserRepository
    visitantes: VisitanteRepository
    internos: InternoRepository
    autorizaciones: AutorizacionRepository
    restricciones: RestriccionRepository
    visitas: VisitaRepository
    movimientos: MovimientoAccesoRepository

    @classmethod
    def from_session(cls, session: Session) -> "Repositories":
        return cls(
            session=session,
            establecimientos=EstablecimientoRepository(session),
            users=UserRepository(session),
            visitantes=VisitanteRepository(session),
            internos=InternoRepository(session),
            autorizaciones=AutorizacionRepository(session),
            restricciones=RestriccionRepository(session),
            visitas=VisitaRepository(session),
            movimientos=MovimientoAccesoRepository(session),
        )
