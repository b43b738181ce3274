from __future__ import annotations

from datetime import date, datetime

import pytest

from visitcontrol.core.extensions import db
from visitcontrol.core.models import AutorizacionEstado, TipoRelacion, VisitanteEstado


def _validate(controller, dni, legajo, username):
    return controller.validate(dni, legajo, username)


def test_standing_authorization_is_permitted(controller, fill_facility):
    fill_facility(4)
    result = _validate(controller, "30111222", "L-1001", "operador")
    assert result.permitted
    assert result.errors == []
    assert result.requires_immediate_authorization is False
    assert result.visitor.dni == "30111222"
    assert result.inmate.numero_legajo == "L-1001"
    assert result.operator.username == "operador"
    assert "Autorización tipo: HERMANO_A" in result.warnings


def test_missing_authorization_operator_is_denied(controller):
    result = _validate(controller, "35444555", "L-1001", "operador")
    assert not result.permitted
    assert result.requires_immediate_authorization is False
    assert result.operator_can_grant_immediate is False
    assert any("No existe autorización" in error for error in result.errors)


def test_supervisor_may_grant_immediate(controller, user_by_name):
    result = _validate(controller, "35444555", "L-1001", "supervisor")
    assert result.permitted
    assert result.requires_immediate_authorization is True
    assert result.operator_can_grant_immediate is True

    auth = controller.resolver.create_immediate(result.visitor, result.inmate, user_by_name("supervisor"))
    db.session.commit()

    second = _validate(controller, "35444555", "L-1001", "supervisor")
    assert second.permitted
    assert second.requires_immediate_authorization is False
    assert second.authorization.id == auth.id
    assert auth.fecha_vencimiento == datetime(2026, 10, 15, 23, 59)


def test_specific_restriction_targets_one_inmate(services, controller, visitor_by_dni, inmate_by_file):
    services.authorizations.create(visitor_by_dni("35444555"), inmate_by_file("L-1001"), TipoRelacion.PADRE)
    services.authorizations.create(visitor_by_dni("35444555"), inmate_by_file("L-1002"), TipoRelacion.PADRE)

    unaffected = _validate(controller, "35444555", "L-1001", "operador")
    assert unaffected.permitted

    blocked = _validate(controller, "35444555", "L-1002", "operador")
    assert not blocked.permitted
    assert "Restricción activa: Intento de ingreso de elementos prohibidos" in blocked.errors


def test_full_facility_is_denied(controller, fill_facility):
    fill_facility(10)
    result = _validate(controller, "30111222", "L-1001", "operador")
    assert not result.permitted
    assert any("Capacidad máxima" in error for error in result.errors)


@pytest.mark.parametrize("estado", [VisitanteEstado.SUSPENDIDO, VisitanteEstado.INACTIVO])
@pytest.mark.parametrize("username", ["operador", "supervisor", "admin"])
def test_inactive_visitor_is_always_denied(controller, visitor_by_dni, estado, username):
    visitor = visitor_by_dni("30111222")
    visitor.estado = estado
    db.session.commit()

    result = _validate(controller, "30111222", "L-1001", username)
    assert not result.permitted
    assert any("no está habilitado" in error for error in result.errors)


def test_all_failing_checks_are_reported(controller, clock, fill_facility, visitor_by_dni):
    fill_facility(10)
    clock.current = datetime(2026, 10, 18, 20, 0)
    visitor = visitor_by_dni("35444555")
    visitor.estado = VisitanteEstado.INACTIVO
    db.session.commit()

    result = _validate(controller, "35444555", "L-1002", "supervisor")
    joined = " | ".join(result.errors)
    assert "no está habilitado" in joined
    assert "No existe autorización" in joined
    assert "Intento de ingreso de elementos prohibidos" in joined
    assert "Fuera del horario de visitas" in joined
    assert "Capacidad máxima" in joined
    assert result.requires_immediate_authorization is False


def test_errors_keep_check_order(controller, clock):
    clock.current = datetime(2026, 10, 18, 20, 0)
    result = _validate(controller, "35444555", "L-1002", "operador")
    assert result.errors[0].startswith("No existe autorización")
    assert result.errors[1].startswith("Restricción activa")
    assert result.errors[2].startswith("Fuera del horario")


def test_immediate_grant_not_offered_when_other_checks_fail(controller, clock):
    clock.current = datetime(2026, 10, 14, 13, 0)
    result = _validate(controller, "35444555", "L-1001", "supervisor")
    assert not result.permitted
    assert result.requires_immediate_authorization is False
    assert any("No existe autorización" in error for error in result.errors)


def test_invalid_existing_authorization_is_an_error_even_for_supervisor(controller, visitor_by_dni, inmate_by_file):
    from visitcontrol.core.models import Autorizacion

    auth = Autorizacion.query.filter_by(
        visitante_id=visitor_by_dni("30111222").id,
        interno_id=inmate_by_file("L-1001").id,
    ).one()
    auth.estado = AutorizacionEstado.SUSPENDIDA
    db.session.commit()

    result = _validate(controller, "30111222", "L-1001", "supervisor")
    assert not result.permitted
    assert result.requires_immediate_authorization is False
    assert "La autorización no está vigente. Estado: SUSPENDIDA" in result.errors


def test_expired_authorization_is_reported(controller, visitor_by_dni, inmate_by_file):
    from visitcontrol.core.models import Autorizacion

    auth = Autorizacion.query.filter_by(visitante_id=visitor_by_dni("30111222").id).one()
    auth.fecha_vencimiento = datetime(2026, 10, 13, 23, 59)
    db.session.commit()

    result = _validate(controller, "30111222", "L-1001", "operador")
    assert "La autorización está vencida" in result.errors
    assert "La autorización venció el: 13/10/2026" in result.warnings


def test_unknown_visitor_and_inmate(controller):
    result = _validate(controller, "99.999.999", "X-0000", "operador")
    assert not result.permitted
    assert "No existe un visitante registrado con DNI: 99999999" in result.errors
    assert "No existe un interno registrado con legajo: X-0000" in result.errors


def test_unavailable_inmate_is_denied(controller, services, visitor_by_dni, inmate_by_file):
    services.authorizations.create(visitor_by_dni("30111222"), inmate_by_file("L-1003"), TipoRelacion.HERMANO_A)
    result = _validate(controller, "30111222", "L-1003", "operador")
    assert any("no está disponible" in error for error in result.errors)


def test_underage_visitor_is_denied(controller, services, make_visitor, inmate_by_file):
    minor = make_visitor(dni="45000111", fecha_nacimiento=date(2010, 5, 1))
    services.authorizations.create(minor, inmate_by_file("L-1001"), TipoRelacion.HIJO_A)
    result = _validate(controller, "45000111", "L-1001", "operador")
    assert any("edad mínima" in error for error in result.errors)


def test_visitor_with_visit_in_progress_is_denied(controller):
    controller.check_in("30111222", "L-1001", "operador")
    result = _validate(controller, "30111222", "L-1001", "operador")
    assert "El visitante ya tiene una visita en curso" in result.errors


def test_inactive_operator_is_denied(controller, user_by_name):
    user_by_name("operador").is_active = False
    db.session.commit()
    result = _validate(controller, "30111222", "L-1001", "operador")
    assert not result.permitted
    assert result.operator_can_grant_immediate is False


def test_validation_warns_with_inmate_location(controller):
    result = _validate(controller, "30111222", "L-1001", "operador")
    assert "Interno ubicado en: Pabellón A - Piso 1" in result.warnings


def test_validation_has_no_side_effects(controller):
    from visitcontrol.core.models import Autorizacion, MovimientoAcceso, Visita

    before = (Autorizacion.query.count(), Visita.query.count(), MovimientoAcceso.query.count())
    _validate(controller, "35444555", "L-1001", "supervisor")
    _validate(controller, "35444555", "L-1002", "operador")
    assert (Autorizacion.query.count(), Visita.query.count(), MovimientoAcceso.query.count()) == before
