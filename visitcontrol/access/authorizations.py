from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from visitcontrol.access.repositories import Repositories, unit_of_work
from visitcontrol.core.clock import Clock
from visitcontrol.core.errors import DuplicateError, InvalidArgumentError, InvalidStateError
from visitcontrol.core.models import (
    Autorizacion,
    AutorizacionEstado,
    Interno,
    InternoEstado,
    TipoRelacion,
    User,
    Visitante,
)

logger = logging.getLogger(__name__)


AUTORIZACION_TRANSITIONS: dict[AutorizacionEstado, set[AutorizacionEstado]] = {
    AutorizacionEstado.VIGENTE: {AutorizacionEstado.SUSPENDIDA, AutorizacionEstado.REVOCADA},
    AutorizacionEstado.SUSPENDIDA: {AutorizacionEstado.VIGENTE, AutorizacionEstado.REVOCADA},
    AutorizacionEstado.REVOCADA: set(),
}

IMMEDIATE_EXPIRY_TIME = time(23, 59)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, IMMEDIATE_EXPIRY_TIME)


def authorization_valid(auth: Autorizacion, today: date) -> bool:
    if auth.estado != AutorizacionEstado.VIGENTE:
        return False
    return auth.fecha_vencimiento is None or auth.fecha_vencimiento.date() >= today


def _transition(auth: Autorizacion, target: AutorizacionEstado) -> None:
    current = AutorizacionEstado(auth.estado)
    if target not in AUTORIZACION_TRANSITIONS.get(current, set()):
        raise InvalidStateError(f"Transicion invalida: {current.value} -> {target.value}")
    auth.estado = target


def _prepend_note(auth: Autorizacion, label: str, motive: str) -> None:
    note = f"{label}: {motive}"
    auth.observaciones = f"{note}\n{auth.observaciones}" if auth.observaciones else note


def _require_motive(motive: str | None, action: str) -> str:
    motive = (motive or "").strip()
    if not motive:
        raise InvalidArgumentError(f"Debe proporcionar un motivo para la {action}")
    return motive


class AuthorizationResolver:
    """Standing-authorization lookup used by the check-in pipeline.

    ``create_immediate`` only stages the new row in the current session; the
    caller owns the transaction so the grant and the visit commit together.
    """

    def __init__(self, repos: Repositories, clock: Clock) -> None:
        self.repos = repos
        self.clock = clock

    def find_standing(self, visitor: Visitante, inmate: Interno) -> Autorizacion | None:
        return self.repos.autorizaciones.find_standing(visitor.id, inmate.id)

    def is_valid(self, auth: Autorizacion | None, today: date | None = None) -> bool:
        if auth is None:
            return False
        return authorization_valid(auth, today or self.clock.today())

    def create_immediate(self, visitor: Visitante, inmate: Interno, issued_by: User | None) -> Autorizacion:
        existing = self.find_standing(visitor, inmate)
        if existing is not None:
            raise DuplicateError(
                f"Ya existe una autorización para {visitor.full_name} e {inmate.full_name} "
                f"con estado {AutorizacionEstado(existing.estado).value}",
                existing=existing,
            )
        today = self.clock.today()
        auth = Autorizacion(
            visitante_id=visitor.id,
            interno_id=inmate.id,
            tipo_relacion=TipoRelacion.OTRO,
            descripcion_relacion="Autorización inmediata",
            fecha_autorizacion=today,
            fecha_vencimiento=end_of_day(today + timedelta(days=1)),
            estado=AutorizacionEstado.VIGENTE,
            autorizado_por_id=issued_by.id if issued_by else None,
            observaciones="Autorización inmediata otorgada en control de acceso",
        )
        self.repos.autorizaciones.add(auth)
        logger.info(
            "Immediate authorization %s staged for visitor %s -> inmate %s",
            auth.id,
            visitor.dni,
            inmate.numero_legajo,
        )
        return auth


class AuthorizationService:
    """Management flows for standing authorizations. Each call commits."""

    def __init__(self, repos: Repositories, clock: Clock) -> None:
        self.repos = repos
        self.clock = clock
        self.resolver = AuthorizationResolver(repos, clock)

    def create(
        self,
        visitor: Visitante,
        inmate: Interno,
        relation: TipoRelacion | str,
        expiry: date | None = None,
        notes: str = "",
        issued_by: User | None = None,
        relation_detail: str = "",
    ) -> Autorizacion:
        if visitor is None:
            raise InvalidArgumentError("Debe seleccionar un visitante")
        if inmate is None:
            raise InvalidArgumentError("Debe seleccionar un interno")
        try:
            relation = TipoRelacion(relation)
        except ValueError as exc:
            raise InvalidArgumentError("Tipo de relación inválido") from exc
        today = self.clock.today()
        if expiry is not None and expiry < today:
            raise InvalidArgumentError("La fecha de vencimiento no puede ser anterior a hoy")

        existing = self.resolver.find_standing(visitor, inmate)
        if existing is not None:
            raise DuplicateError(
                f"Ya existe una autorización entre {visitor.full_name} y {inmate.full_name} "
                f"con estado: {AutorizacionEstado(existing.estado).value}. "
                "Puede modificar la autorización existente en lugar de crear una nueva.",
                existing=existing,
            )

        auth = Autorizacion(
            visitante_id=visitor.id,
            interno_id=inmate.id,
            tipo_relacion=relation,
            descripcion_relacion=(relation_detail or "").strip(),
            fecha_autorizacion=today,
            fecha_vencimiento=end_of_day(expiry) if expiry else None,
            estado=AutorizacionEstado.VIGENTE,
            autorizado_por_id=issued_by.id if issued_by else None,
            observaciones=(notes or "").strip(),
        )
        with unit_of_work(self.repos.session):
            self.repos.autorizaciones.add(auth)
        logger.info("Authorization %s created (%s)", auth.id, relation.value)
        return auth

    def suspend(self, auth: Autorizacion, motive: str) -> Autorizacion:
        motive = _require_motive(motive, "suspensión")
        with unit_of_work(self.repos.session):
            _transition(auth, AutorizacionEstado.SUSPENDIDA)
            _prepend_note(auth, "SUSPENDIDA", motive)
            self.repos.autorizaciones.update(auth)
        logger.info("Authorization %s suspended", auth.id)
        return auth

    def revoke(self, auth: Autorizacion, motive: str) -> Autorizacion:
        motive = _require_motive(motive, "revocación")
        with unit_of_work(self.repos.session):
            _transition(auth, AutorizacionEstado.REVOCADA)
            _prepend_note(auth, "REVOCADA", motive)
            self.repos.autorizaciones.update(auth)
        logger.info("Authorization %s revoked", auth.id)
        return auth

    def reactivate(self, auth: Autorizacion) -> Autorizacion:
        # An expired authorization may be reactivated; it stays invalid until renewed
        with unit_of_work(self.repos.session):
            if AutorizacionEstado(auth.estado) != AutorizacionEstado.SUSPENDIDA:
                raise InvalidStateError("Solo se pueden reactivar autorizaciones suspendidas")
            _transition(auth, AutorizacionEstado.VIGENTE)
            self.repos.autorizaciones.update(auth)
        logger.info("Authorization %s reactivated", auth.id)
        return auth

    def renew(self, auth: Autorizacion, new_expiry: date | None) -> Autorizacion:
        current = AutorizacionEstado(auth.estado)
        if current == AutorizacionEstado.SUSPENDIDA:
            raise InvalidStateError("No se puede renovar una autorización suspendida. Primero debe reactivarse.")
        if current == AutorizacionEstado.REVOCADA:
            raise InvalidStateError("No se puede renovar una autorización revocada. Debe crearse una nueva.")
        if new_expiry is not None and new_expiry < self.clock.today():
            raise InvalidArgumentError("La nueva fecha de vencimiento no puede ser anterior a hoy")
        with unit_of_work(self.repos.session):
            auth.fecha_vencimiento = end_of_day(new_expiry) if new_expiry else None
            self.repos.autorizaciones.update(auth)
        logger.info("Authorization %s renewed until %s", auth.id, new_expiry or "indefinite")
        return auth

    def expiring_within(self, days: int) -> list[Autorizacion]:
        if days <= 0:
            raise InvalidArgumentError("La cantidad de días debe ser positiva")
        return self.repos.autorizaciones.find_expiring_within(self.clock.today(), days)

    def authorized_inmates(self, visitor: Visitante) -> list[Interno]:
        today = self.clock.today()
        return [
            auth.interno
            for auth in self.repos.autorizaciones.for_visitor(visitor.id)
            if authorization_valid(auth, today) and auth.interno.estado == InternoEstado.ACTIVO
        ]
