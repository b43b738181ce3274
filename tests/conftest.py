from __future__ import annotations

import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from visitcontrol import create_app
from visitcontrol.access.services import build_access_services
from visitcontrol.core.clock import Clock
from visitcontrol.core.config import Config
from visitcontrol.core.extensions import db
from visitcontrol.core.models import (
    Establecimiento,
    Interno,
    User,
    Visita,
    VisitaEstado,
    Visitante,
    seed_demo_data,
)


# Wednesday, inside the morning visiting window of the demo facility
FIXED_NOW = datetime(2026, 10, 14, 10, 30)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "DEBUG"


class FixedClock(Clock):
    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture
def app(clock):
    app = create_app(TestConfig)
    app.extensions["visitcontrol.clock"] = clock
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session, today=clock.today())
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app, clock):
    return build_access_services(db.session, clock)


@pytest.fixture
def controller(services):
    return services.controller


@pytest.fixture
def facility(app):
    return Establecimiento.query.order_by(Establecimiento.id.asc()).first()


@pytest.fixture
def user_by_name(app):
    def _get(username: str) -> User:
        return User.query.filter_by(username=username).one()

    return _get


@pytest.fixture
def visitor_by_dni(app):
    def _get(dni: str) -> Visitante:
        return Visitante.query.filter_by(dni=dni).one()

    return _get


@pytest.fixture
def inmate_by_file(app):
    def _get(numero_legajo: str) -> Interno:
        return Interno.query.filter_by(numero_legajo=numero_legajo).one()

    return _get


@pytest.fixture
def make_visitor(app):
    counter = {"n": 0}

    def _make(**overrides) -> Visitante:
        counter["n"] += 1
        values = {
            "dni": f"4000{counter['n']:04d}",
            "apellido": "Prueba",
            "nombre": f"Visitante {counter['n']}",
            "fecha_nacimiento": date(1990, 1, 1),
        }
        values.update(overrides)
        visitor = Visitante(**values)
        db.session.add(visitor)
        db.session.commit()
        return visitor

    return _make


@pytest.fixture
def fill_facility(app, clock, make_visitor, inmate_by_file):
    """Put ``count`` other visitors in progress at the inmate's facility."""

    def _fill(count: int, numero_legajo: str = "L-1002") -> list[Visita]:
        inmate = inmate_by_file(numero_legajo)
        visits = []
        for _ in range(count):
            visitor = make_visitor()
            visits.append(
                Visita(
                    visitante_id=visitor.id,
                    interno_id=inmate.id,
                    establecimiento_id=inmate.establecimiento_id,
                    fecha_visita=clock.today(),
                    hora_ingreso=clock.now() - timedelta(minutes=20),
                    estado=VisitaEstado.EN_CURSO,
                )
            )
        db.session.add_all(visits)
        db.session.commit()
        return visits

    return _fill
