from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash

from visitcontrol.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Rol(str, Enum):
    OPERADOR = "OPERADOR"
    SUPERVISOR = "SUPERVISOR"
    ADMINISTRADOR = "ADMINISTRADOR"

    @property
    def nivel(self) -> int:
        return {"OPERADOR": 1, "SUPERVISOR": 2, "ADMINISTRADOR": 3}[self.value]


class VisitanteEstado(str, Enum):
    ACTIVO = "ACTIVO"
    SUSPENDIDO = "SUSPENDIDO"
    INACTIVO = "INACTIVO"


class InternoEstado(str, Enum):
    ACTIVO = "ACTIVO"
    TRASLADADO = "TRASLADADO"
    EGRESADO = "EGRESADO"


class SituacionProcesal(str, Enum):
    PROCESADO = "PROCESADO"
    CONDENADO = "CONDENADO"
    PREVENTIVO = "PREVENTIVO"


class AutorizacionEstado(str, Enum):
    VIGENTE = "VIGENTE"
    SUSPENDIDA = "SUSPENDIDA"
    REVOCADA = "REVOCADA"


class TipoRelacion(str, Enum):
    PADRE = "PADRE"
    MADRE = "MADRE"
    HIJO_A = "HIJO_A"
    HERMANO_A = "HERMANO_A"
    CONYUGE = "CONYUGE"
    CONCUBINO_A = "CONCUBINO_A"
    AMIGO = "AMIGO"
    FAMILIAR = "FAMILIAR"
    ABOGADO = "ABOGADO"
    OTRO = "OTRO"


class TipoRestriccion(str, Enum):
    CONDUCTA = "CONDUCTA"
    JUDICIAL = "JUDICIAL"
    ADMINISTRATIVA = "ADMINISTRATIVA"
    SEGURIDAD = "SEGURIDAD"


class AlcanceRestriccion(str, Enum):
    TODOS = "TODOS"
    INTERNO_ESPECIFICO = "INTERNO_ESPECIFICO"


class VisitaEstado(str, Enum):
    PROGRAMADA = "PROGRAMADA"
    EN_CURSO = "EN_CURSO"
    FINALIZADA = "FINALIZADA"
    CANCELADA = "CANCELADA"


class MovimientoAccesoTipo(str, Enum):
    INGRESO = "INGRESO"
    INGRESO_DENEGADO = "INGRESO_DENEGADO"
    AUTORIZACION_INMEDIATA = "AUTORIZACION_INMEDIATA"
    EGRESO = "EGRESO"
    CANCELACION = "CANCELACION"


WEEKDAY_NAMES = ("LUNES", "MARTES", "MIERCOLES", "JUEVES", "VIERNES", "SABADO", "DOMINGO")


class Establecimiento(db.Model):
    # Facility: capacity limit and visiting-hours configuration
    __tablename__ = "establecimiento"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(150), unique=True, nullable=False)
    direccion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    capacidad_maxima: Mapped[int | None] = mapped_column(nullable=True)
    dias_habilitados: Mapped[str] = mapped_column(
        db.String(80),
        nullable=False,
        default="LUNES,MARTES,MIERCOLES,JUEVES,VIERNES",
    )
    activo: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    franjas = relationship(
        "FranjaHoraria",
        back_populates="establecimiento",
        cascade="all, delete-orphan",
        order_by="FranjaHoraria.hora_inicio",
    )
    internos = relationship("Interno", back_populates="establecimiento")

    @property
    def dias(self) -> set[str]:
        return {d.strip().upper() for d in (self.dias_habilitados or "").split(",") if d.strip()}

    @property
    def horario_label(self) -> str:
        if not self.franjas:
            return "No configurado"
        return ", ".join(f"{f.hora_inicio:%H:%M} a {f.hora_fin:%H:%M}" for f in self.franjas)


class FranjaHoraria(db.Model):
    # One visiting window of a facility, both ends inclusive
    __tablename__ = "franja_horaria"
    __table_args__ = (CheckConstraint("hora_fin >= hora_inicio", name="ck_franja_horas"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    establecimiento_id: Mapped[int] = mapped_column(ForeignKey("establecimiento.id"), nullable=False, index=True)
    hora_inicio: Mapped[time] = mapped_column(nullable=False)
    hora_fin: Mapped[time] = mapped_column(nullable=False)

    establecimiento = relationship("Establecimiento", back_populates="franjas")


class User(db.Model):
    # Operator performing access-control actions
    __tablename__ = "user_account"
    __table_args__ = (Index("ix_user_rol_activo", "rol", "is_active"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(db.String(50), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    rol: Mapped[Rol] = mapped_column(SAEnum(Rol, name="rol"), nullable=False, default=Rol.OPERADOR)
    establecimiento_id: Mapped[int | None] = mapped_column(ForeignKey("establecimiento.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    last_access_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    establecimiento = relationship("Establecimiento")


class Visitante(db.Model):
    __tablename__ = "visitante"
    __table_args__ = (Index("ix_visitante_apellido_nombre", "apellido", "nombre"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    dni: Mapped[str] = mapped_column(db.String(10), unique=True, nullable=False)
    apellido: Mapped[str] = mapped_column(db.String(100), nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(100), nullable=False)
    fecha_nacimiento: Mapped[date] = mapped_column(nullable=False)
    telefono: Mapped[str] = mapped_column(db.String(20), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    domicilio: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    estado: Mapped[VisitanteEstado] = mapped_column(
        SAEnum(VisitanteEstado, name="visitante_estado"),
        nullable=False,
        default=VisitanteEstado.ACTIVO,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    restricciones = relationship("Restriccion", back_populates="visitante")

    @property
    def full_name(self) -> str:
        return f"{self.apellido}, {self.nombre}"

    def edad(self, today: date) -> int:
        years = today.year - self.fecha_nacimiento.year
        if (today.month, today.day) < (self.fecha_nacimiento.month, self.fecha_nacimiento.day):
            years -= 1
        return years


class Interno(db.Model):
    __tablename__ = "interno"
    __table_args__ = (Index("ix_interno_ubicacion", "pabellon_actual", "piso_actual"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    numero_legajo: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    apellido: Mapped[str] = mapped_column(db.String(100), nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(100), nullable=False)
    dni: Mapped[str] = mapped_column(db.String(10), nullable=False, default="")
    establecimiento_id: Mapped[int] = mapped_column(ForeignKey("establecimiento.id"), nullable=False, index=True)
    pabellon_actual: Mapped[str] = mapped_column(db.String(20), nullable=False)
    piso_actual: Mapped[int] = mapped_column(nullable=False, default=0)
    fecha_ingreso: Mapped[date] = mapped_column(nullable=False)
    situacion_procesal: Mapped[SituacionProcesal] = mapped_column(
        SAEnum(SituacionProcesal, name="situacion_procesal"),
        nullable=False,
    )
    estado: Mapped[InternoEstado] = mapped_column(
        SAEnum(InternoEstado, name="interno_estado"),
        nullable=False,
        default=InternoEstado.ACTIVO,
    )
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    establecimiento = relationship("Establecimiento", back_populates="internos")

    @property
    def full_name(self) -> str:
        return f"{self.apellido}, {self.nombre}"

    @property
    def ubicacion_label(self) -> str:
        return f"Pabellón {self.pabellon_actual} - Piso {self.piso_actual}"


class Autorizacion(db.Model):
    # Standing grant for one visitor to visit one inmate
    __tablename__ = "autorizacion"
    __table_args__ = (
        UniqueConstraint("visitante_id", "interno_id", name="uq_autorizacion_visitante_interno"),
        Index("ix_autorizacion_vigencia", "estado", "fecha_vencimiento"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    visitante_id: Mapped[int] = mapped_column(ForeignKey("visitante.id"), nullable=False)
    interno_id: Mapped[int] = mapped_column(ForeignKey("interno.id"), nullable=False, index=True)
    tipo_relacion: Mapped[TipoRelacion] = mapped_column(
        SAEnum(TipoRelacion, name="tipo_relacion"),
        nullable=False,
    )
    descripcion_relacion: Mapped[str] = mapped_column(db.String(100), nullable=False, default="")
    fecha_autorizacion: Mapped[date] = mapped_column(nullable=False)
    fecha_vencimiento: Mapped[datetime | None] = mapped_column(nullable=True)
    estado: Mapped[AutorizacionEstado] = mapped_column(
        SAEnum(AutorizacionEstado, name="autorizacion_estado"),
        nullable=False,
        default=AutorizacionEstado.VIGENTE,
    )
    autorizado_por_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    visitante = relationship("Visitante")
    interno = relationship("Interno")
    autorizado_por = relationship("User")

    def vencida(self, today: date) -> bool:
        return self.fecha_vencimiento is not None and self.fecha_vencimiento.date() < today


class Restriccion(db.Model):
    # Block on a visitor, for every inmate or for one in particular
    __tablename__ = "restriccion"
    __table_args__ = (
        CheckConstraint("fecha_fin IS NULL OR fecha_fin >= fecha_inicio", name="ck_restriccion_fechas"),
        CheckConstraint(
            "alcance <> 'INTERNO_ESPECIFICO' OR interno_id IS NOT NULL",
            name="ck_restriccion_interno_especifico",
        ),
        Index("ix_restriccion_visitante_activa", "visitante_id", "activa"),
        Index("ix_restriccion_vigencia", "fecha_inicio", "fecha_fin"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    visitante_id: Mapped[int] = mapped_column(ForeignKey("visitante.id"), nullable=False)
    tipo: Mapped[TipoRestriccion] = mapped_column(SAEnum(TipoRestriccion, name="tipo_restriccion"), nullable=False)
    motivo: Mapped[str] = mapped_column(db.Text, nullable=False)
    fecha_inicio: Mapped[date] = mapped_column(nullable=False)
    fecha_fin: Mapped[date | None] = mapped_column(nullable=True)
    alcance: Mapped[AlcanceRestriccion] = mapped_column(
        SAEnum(AlcanceRestriccion, name="alcance_restriccion"),
        nullable=False,
        default=AlcanceRestriccion.TODOS,
    )
    interno_id: Mapped[int | None] = mapped_column(ForeignKey("interno.id"), nullable=True)
    activa: Mapped[bool] = mapped_column(nullable=False, default=True)
    creado_por_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    visitante = relationship("Visitante", back_populates="restricciones")
    interno = relationship("Interno")
    creado_por = relationship("User")


class Visita(db.Model):
    __tablename__ = "visita"
    __table_args__ = (
        CheckConstraint(
            "estado <> 'EN_CURSO' OR hora_ingreso IS NOT NULL",
            name="ck_visita_en_curso_con_ingreso",
        ),
        CheckConstraint(
            "hora_egreso IS NULL OR hora_egreso >= hora_ingreso",
            name="ck_visita_egreso_posterior",
        ),
        Index("ix_visita_activas", "estado", "fecha_visita"),
        Index("ix_visita_establecimiento_estado", "establecimiento_id", "estado"),
        Index(
            "ix_visita_visitante_en_curso",
            "visitante_id",
            unique=True,
            sqlite_where=text("estado = 'EN_CURSO'"),
            postgresql_where=text("estado = 'EN_CURSO'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    visitante_id: Mapped[int] = mapped_column(ForeignKey("visitante.id"), nullable=False, index=True)
    interno_id: Mapped[int] = mapped_column(ForeignKey("interno.id"), nullable=False, index=True)
    establecimiento_id: Mapped[int] = mapped_column(ForeignKey("establecimiento.id"), nullable=False)
    fecha_visita: Mapped[date] = mapped_column(nullable=False, index=True)
    hora_ingreso: Mapped[datetime | None] = mapped_column(nullable=True)
    hora_egreso: Mapped[datetime | None] = mapped_column(nullable=True)
    estado: Mapped[VisitaEstado] = mapped_column(
        SAEnum(VisitaEstado, name="visita_estado"),
        nullable=False,
        default=VisitaEstado.PROGRAMADA,
    )
    operador_ingreso_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    operador_egreso_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    visitante = relationship("Visitante")
    interno = relationship("Interno")
    establecimiento = relationship("Establecimiento")
    operador_ingreso = relationship("User", foreign_keys=[operador_ingreso_id])
    operador_egreso = relationship("User", foreign_keys=[operador_egreso_id])


class MovimientoAcceso(db.Model):
    # Audit trail of access-control decisions
    __tablename__ = "movimiento_acceso"
    __table_args__ = (Index("ix_movimiento_acceso_tipo_fecha", "tipo", "fecha"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    tipo: Mapped[MovimientoAccesoTipo] = mapped_column(
        SAEnum(MovimientoAccesoTipo, name="movimiento_acceso_tipo"),
        nullable=False,
    )
    fecha: Mapped[datetime] = mapped_column(nullable=False, index=True)
    detalle: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    visita_id: Mapped[int | None] = mapped_column(ForeignKey("visita.id"), nullable=True)
    visitante_id: Mapped[int | None] = mapped_column(ForeignKey("visitante.id"), nullable=True)

    user = relationship("User")
    visita = relationship("Visita")


def seed_demo_data(session, today: date | None = None) -> None:
    unidad = Establecimiento(
        nombre="Unidad Penitenciaria N° 1",
        direccion="Av. Central 1500",
        capacidad_maxima=10,
        dias_habilitados="LUNES,MARTES,MIERCOLES,JUEVES,VIERNES,SABADO",
    )
    session.add(unidad)
    session.flush()
    session.add_all(
        [
            FranjaHoraria(establecimiento_id=unidad.id, hora_inicio=time(9, 0), hora_fin=time(12, 0)),
            FranjaHoraria(establecimiento_id=unidad.id, hora_inicio=time(14, 0), hora_fin=time(17, 0)),
        ]
    )

    admin = User(
        username="admin",
        full_name="Administrador del Sistema",
        password_hash=generate_password_hash("admin1234"),
        rol=Rol.ADMINISTRADOR,
        establecimiento_id=unidad.id,
    )
    supervisor = User(
        username="supervisor",
        full_name="Gómez, Laura",
        password_hash=generate_password_hash("supervisor1234"),
        rol=Rol.SUPERVISOR,
        establecimiento_id=unidad.id,
    )
    operador = User(
        username="operador",
        full_name="Pérez, Martín",
        password_hash=generate_password_hash("operador1234"),
        rol=Rol.OPERADOR,
        establecimiento_id=unidad.id,
    )
    session.add_all([admin, supervisor, operador])
    session.flush()

    visitantes = [
        Visitante(dni="30111222", apellido="Fernández", nombre="Ana", fecha_nacimiento=date(1985, 3, 14)),
        Visitante(dni="28999000", apellido="López", nombre="Carlos", fecha_nacimiento=date(1979, 11, 2)),
        Visitante(dni="35444555", apellido="Rodríguez", nombre="María", fecha_nacimiento=date(1992, 6, 30)),
        Visitante(
            dni="33222111",
            apellido="Sosa",
            nombre="Julián",
            fecha_nacimiento=date(1988, 1, 9),
            estado=VisitanteEstado.INACTIVO,
        ),
    ]
    session.add_all(visitantes)

    internos = [
        Interno(
            numero_legajo="L-1001",
            apellido="Fernández",
            nombre="Diego",
            dni="25123456",
            establecimiento_id=unidad.id,
            pabellon_actual="A",
            piso_actual=1,
            fecha_ingreso=date(2022, 5, 10),
            situacion_procesal=SituacionProcesal.CONDENADO,
        ),
        Interno(
            numero_legajo="L-1002",
            apellido="Martínez",
            nombre="Raúl",
            dni="26987654",
            establecimiento_id=unidad.id,
            pabellon_actual="B",
            piso_actual=2,
            fecha_ingreso=date(2023, 8, 1),
            situacion_procesal=SituacionProcesal.PROCESADO,
        ),
        Interno(
            numero_legajo="L-1003",
            apellido="Ibáñez",
            nombre="Hugo",
            dni="27555111",
            establecimiento_id=unidad.id,
            pabellon_actual="C",
            piso_actual=0,
            fecha_ingreso=date(2021, 2, 17),
            situacion_procesal=SituacionProcesal.CONDENADO,
            estado=InternoEstado.TRASLADADO,
        ),
    ]
    session.add_all(internos)
    session.flush()

    today = today or date.today()
    session.add_all(
        [
            Autorizacion(
                visitante_id=visitantes[0].id,
                interno_id=internos[0].id,
                tipo_relacion=TipoRelacion.HERMANO_A,
                fecha_autorizacion=today - timedelta(days=120),
                autorizado_por_id=admin.id,
            ),
            Autorizacion(
                visitante_id=visitantes[1].id,
                interno_id=internos[1].id,
                tipo_relacion=TipoRelacion.ABOGADO,
                fecha_autorizacion=today - timedelta(days=30),
                fecha_vencimiento=datetime.combine(today + timedelta(days=180), time(23, 59)),
                autorizado_por_id=admin.id,
            ),
            Restriccion(
                visitante_id=visitantes[2].id,
                tipo=TipoRestriccion.CONDUCTA,
                motivo="Intento de ingreso de elementos prohibidos",
                fecha_inicio=today - timedelta(days=10),
                fecha_fin=today + timedelta(days=20),
                alcance=AlcanceRestriccion.INTERNO_ESPECIFICO,
                interno_id=internos[1].id,
                creado_por_id=supervisor.id,
            ),
        ]
    )
    session.commit()
