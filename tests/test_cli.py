from __future__ import annotations

from visitcontrol.core.extensions import db
from visitcontrol.core.models import Establecimiento, Visita, VisitaEstado


def test_seed_demo_skips_when_data_exists(app):
    result = app.test_cli_runner().invoke(args=["seed-demo"])
    assert result.exit_code == 0
    assert "Seed skipped" in result.output


def test_seed_demo_reset(app):
    result = app.test_cli_runner().invoke(args=["seed-demo", "--reset"])
    assert result.exit_code == 0
    assert "Demo data seeded." in result.output
    assert Establecimiento.query.count() == 1


def test_check_in_and_check_out(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["check-in", "--visitor", "30111222", "--inmate", "L-1001", "--operator", "operador"])
    assert result.exit_code == 0, result.output
    assert "Entry permitted" in result.output
    visit = Visita.query.one()
    assert visit.estado == VisitaEstado.EN_CURSO

    result = runner.invoke(args=["visits-in-progress"])
    assert "Fernández, Ana" in result.output
    assert "Total: 1" in result.output

    result = runner.invoke(args=["check-out", str(visit.id), "--operator", "operador"])
    assert result.exit_code == 0, result.output
    assert f"Visit {visit.id} finished" in result.output


def test_check_in_denied_lists_reasons(app):
    result = app.test_cli_runner().invoke(
        args=["check-in", "--visitor", "35444555", "--inmate", "L-1002", "--operator", "operador"]
    )
    assert result.exit_code == 1
    assert "Entry denied" in result.output
    assert "Intento de ingreso de elementos prohibidos" in result.output


def test_check_in_immediate_authorization_flow(app):
    runner = app.test_cli_runner()
    args = ["check-in", "--visitor", "35444555", "--inmate", "L-1001", "--operator", "supervisor"]

    result = runner.invoke(args=args)
    assert result.exit_code == 2
    assert "--confirm-immediate" in result.output

    result = runner.invoke(args=args + ["--confirm-immediate"])
    assert result.exit_code == 0, result.output
    assert "Immediate authorization" in result.output


def test_cancel_visit_errors_are_reported(app):
    runner = app.test_cli_runner()
    runner.invoke(args=["check-in", "--visitor", "30111222", "--inmate", "L-1001", "--operator", "operador"])
    visit_id = Visita.query.one().id

    result = runner.invoke(args=["cancel-visit", str(visit_id), "--motive", "Requisa general"])
    assert result.exit_code == 0
    db.session.expire_all()
    assert db.session.get(Visita, visit_id).estado == VisitaEstado.CANCELADA

    result = runner.invoke(args=["cancel-visit", str(visit_id), "--motive", "Requisa general"])
    assert result.exit_code == 1
    assert "Transicion invalida" in result.output


def test_unknown_operator_is_a_usage_error(app):
    result = app.test_cli_runner().invoke(
        args=["check-in", "--visitor", "30111222", "--inmate", "L-1001", "--operator", "fantasma"]
    )
    assert result.exit_code == 1
    assert "Operador no encontrado" in result.output


def test_access_log_lists_newest_first(app):
    runner = app.test_cli_runner()
    runner.invoke(args=["check-in", "--visitor", "35444555", "--inmate", "L-1002", "--operator", "operador"])
    runner.invoke(args=["check-in", "--visitor", "30111222", "--inmate", "L-1001", "--operator", "operador"])

    result = runner.invoke(args=["access-log", "--limit", "5"])
    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert len(lines) == 2
    assert "\tINGRESO\t" in lines[0]
    assert "\tINGRESO_DENEGADO\t" in lines[1]
