from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from visitcontrol.access.authorizations import authorization_valid
from visitcontrol.core.errors import DuplicateError, InvalidArgumentError, InvalidStateError
from visitcontrol.core.extensions import db
from visitcontrol.core.models import Autorizacion, AutorizacionEstado, TipoRelacion


TODAY = date(2026, 10, 14)


def _auth(estado=AutorizacionEstado.VIGENTE, vencimiento=None) -> Autorizacion:
    return Autorizacion(
        visitante_id=1,
        interno_id=1,
        tipo_relacion=TipoRelacion.MADRE,
        fecha_autorizacion=TODAY - timedelta(days=30),
        fecha_vencimiento=vencimiento,
        estado=estado,
    )


@pytest.mark.parametrize(
    "estado,vencimiento,expected",
    [
        (AutorizacionEstado.VIGENTE, None, True),
        (AutorizacionEstado.VIGENTE, datetime(2026, 10, 14, 23, 59), True),
        (AutorizacionEstado.VIGENTE, datetime(2026, 10, 13, 23, 59), False),
        (AutorizacionEstado.SUSPENDIDA, None, False),
        (AutorizacionEstado.REVOCADA, datetime(2027, 1, 1, 23, 59), False),
    ],
)
def test_authorization_validity(estado, vencimiento, expected):
    assert authorization_valid(_auth(estado, vencimiento), TODAY) is expected


def test_find_standing(services, visitor_by_dni, inmate_by_file):
    resolver = services.controller.resolver
    auth = resolver.find_standing(visitor_by_dni("30111222"), inmate_by_file("L-1001"))
    assert auth is not None
    assert resolver.is_valid(auth)
    assert resolver.find_standing(visitor_by_dni("30111222"), inmate_by_file("L-1002")) is None


def test_create_immediate_expires_tomorrow_end_of_day(services, visitor_by_dni, inmate_by_file, user_by_name):
    auth = services.controller.resolver.create_immediate(
        visitor_by_dni("35444555"),
        inmate_by_file("L-1001"),
        user_by_name("supervisor"),
    )
    db.session.commit()

    assert auth.estado == AutorizacionEstado.VIGENTE
    assert auth.tipo_relacion == TipoRelacion.OTRO
    assert auth.fecha_vencimiento == datetime(2026, 10, 15, 23, 59)
    assert auth.autorizado_por_id == user_by_name("supervisor").id


def test_create_immediate_rejects_existing_pair(services, visitor_by_dni, inmate_by_file, user_by_name):
    with pytest.raises(DuplicateError) as excinfo:
        services.controller.resolver.create_immediate(
            visitor_by_dni("30111222"),
            inmate_by_file("L-1001"),
            user_by_name("supervisor"),
        )
    assert excinfo.value.existing is not None


def test_create_standing_authorization(services, visitor_by_dni, inmate_by_file, user_by_name):
    auth = services.authorizations.create(
        visitor_by_dni("35444555"),
        inmate_by_file("L-1001"),
        TipoRelacion.CONYUGE,
        expiry=TODAY + timedelta(days=90),
        notes="Presentó libreta de matrimonio",
        issued_by=user_by_name("admin"),
    )
    assert auth.id is not None
    assert auth.fecha_vencimiento == datetime(2027, 1, 12, 23, 59)


def test_create_duplicate_names_existing_state(services, visitor_by_dni, inmate_by_file):
    with pytest.raises(DuplicateError, match="VIGENTE"):
        services.authorizations.create(visitor_by_dni("30111222"), inmate_by_file("L-1001"), TipoRelacion.HERMANO_A)


def test_storage_unique_constraint_maps_to_duplicate(services, visitor_by_dni, inmate_by_file):
    repo = services.controller.repos.autorizaciones
    standing = repo.find_standing(visitor_by_dni("30111222").id, inmate_by_file("L-1001").id)
    duplicate = Autorizacion(
        visitante_id=visitor_by_dni("30111222").id,
        interno_id=inmate_by_file("L-1001").id,
        tipo_relacion=TipoRelacion.OTRO,
        fecha_autorizacion=TODAY,
    )
    with pytest.raises(DuplicateError, match="estado: VIGENTE") as excinfo:
        repo.add(duplicate)
    assert excinfo.value.existing.id == standing.id
    db.session.rollback()


def test_create_reports_existing_when_pair_appears_concurrently(services, visitor_by_dni, inmate_by_file, monkeypatch):
    # Another operator inserted the pair after the lookup
    monkeypatch.setattr(services.authorizations.resolver, "find_standing", lambda visitor, inmate: None)

    with pytest.raises(DuplicateError) as excinfo:
        services.authorizations.create(visitor_by_dni("30111222"), inmate_by_file("L-1001"), TipoRelacion.AMIGO)

    existing = excinfo.value.existing
    assert existing is not None
    assert existing.tipo_relacion == TipoRelacion.HERMANO_A
    assert Autorizacion.query.count() == 2


def test_create_rejects_past_expiry(services, visitor_by_dni, inmate_by_file):
    with pytest.raises(InvalidArgumentError):
        services.authorizations.create(
            visitor_by_dni("35444555"),
            inmate_by_file("L-1001"),
            TipoRelacion.AMIGO,
            expiry=TODAY - timedelta(days=1),
        )


def _standing(visitor_by_dni, inmate_by_file):
    return Autorizacion.query.filter_by(
        visitante_id=visitor_by_dni("30111222").id,
        interno_id=inmate_by_file("L-1001").id,
    ).one()


def test_suspend_and_reactivate(services, visitor_by_dni, inmate_by_file):
    auth = _standing(visitor_by_dni, inmate_by_file)

    services.authorizations.suspend(auth, "Incidente en sala de visitas")
    assert auth.estado == AutorizacionEstado.SUSPENDIDA
    assert auth.observaciones.startswith("SUSPENDIDA: Incidente en sala de visitas")

    services.authorizations.reactivate(auth)
    assert auth.estado == AutorizacionEstado.VIGENTE


def test_suspend_requires_motive(services, visitor_by_dni, inmate_by_file):
    with pytest.raises(InvalidArgumentError):
        services.authorizations.suspend(_standing(visitor_by_dni, inmate_by_file), "  ")


def test_reactivate_only_from_suspended(services, visitor_by_dni, inmate_by_file):
    with pytest.raises(InvalidStateError):
        services.authorizations.reactivate(_standing(visitor_by_dni, inmate_by_file))


def test_revoked_is_terminal(services, visitor_by_dni, inmate_by_file):
    auth = _standing(visitor_by_dni, inmate_by_file)
    services.authorizations.revoke(auth, "Falsedad en la declaración de vínculo")
    assert auth.estado == AutorizacionEstado.REVOCADA

    with pytest.raises(InvalidStateError):
        services.authorizations.reactivate(auth)
    with pytest.raises(InvalidStateError):
        services.authorizations.suspend(auth, "otro motivo")
    with pytest.raises(InvalidStateError):
        services.authorizations.revoke(auth, "otro motivo")
    with pytest.raises(InvalidStateError):
        services.authorizations.renew(auth, TODAY + timedelta(days=30))


def test_renew_suspended_requires_reactivation_first(services, visitor_by_dni, inmate_by_file):
    auth = _standing(visitor_by_dni, inmate_by_file)
    services.authorizations.suspend(auth, "Control documental pendiente")
    with pytest.raises(InvalidStateError, match="reactivarse"):
        services.authorizations.renew(auth, TODAY + timedelta(days=30))


def test_renew_sets_new_expiry(services, visitor_by_dni, inmate_by_file):
    auth = _standing(visitor_by_dni, inmate_by_file)
    services.authorizations.renew(auth, TODAY + timedelta(days=10))
    assert auth.fecha_vencimiento == datetime(2026, 10, 24, 23, 59)

    services.authorizations.renew(auth, None)
    assert auth.fecha_vencimiento is None


def test_expired_suspended_authorization_can_be_reactivated_then_renewed(services, visitor_by_dni, inmate_by_file):
    auth = _standing(visitor_by_dni, inmate_by_file)
    auth.fecha_vencimiento = datetime(2026, 10, 1, 23, 59)
    auth.estado = AutorizacionEstado.SUSPENDIDA
    db.session.commit()

    services.authorizations.reactivate(auth)
    assert not services.controller.resolver.is_valid(auth)

    services.authorizations.renew(auth, TODAY + timedelta(days=60))
    assert services.controller.resolver.is_valid(auth)


def test_expiring_within_and_authorized_inmates(services, visitor_by_dni):
    expiring = services.authorizations.expiring_within(200)
    assert [a.tipo_relacion for a in expiring] == [TipoRelacion.ABOGADO]
    assert services.authorizations.expiring_within(30) == []

    inmates = services.authorizations.authorized_inmates(visitor_by_dni("30111222"))
    assert [i.numero_legajo for i in inmates] == ["L-1001"]
