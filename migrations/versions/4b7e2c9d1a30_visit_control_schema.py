"""visit control schema

Revision ID: 4b7e2c9d1a30
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4b7e2c9d1a30"
down_revision = None
branch_labels = None
depends_on = None


ROL = sa.Enum("OPERADOR", "SUPERVISOR", "ADMINISTRADOR", name="rol")
VISITANTE_ESTADO = sa.Enum("ACTIVO", "SUSPENDIDO", "INACTIVO", name="visitante_estado")
INTERNO_ESTADO = sa.Enum("ACTIVO", "TRASLADADO", "EGRESADO", name="interno_estado")
SITUACION_PROCESAL = sa.Enum("PROCESADO", "CONDENADO", "PREVENTIVO", name="situacion_procesal")
AUTORIZACION_ESTADO = sa.Enum("VIGENTE", "SUSPENDIDA", "REVOCADA", name="autorizacion_estado")
TIPO_RELACION = sa.Enum(
    "PADRE",
    "MADRE",
    "HIJO_A",
    "HERMANO_A",
    "CONYUGE",
    "CONCUBINO_A",
    "AMIGO",
    "FAMILIAR",
    "ABOGADO",
    "OTRO",
    name="tipo_relacion",
)
TIPO_RESTRICCION = sa.Enum("CONDUCTA", "JUDICIAL", "ADMINISTRATIVA", "SEGURIDAD", name="tipo_restriccion")
ALCANCE_RESTRICCION = sa.Enum("TODOS", "INTERNO_ESPECIFICO", name="alcance_restriccion")
VISITA_ESTADO = sa.Enum("PROGRAMADA", "EN_CURSO", "FINALIZADA", "CANCELADA", name="visita_estado")
MOVIMIENTO_ACCESO_TIPO = sa.Enum(
    "INGRESO",
    "INGRESO_DENEGADO",
    "AUTORIZACION_INMEDIATA",
    "EGRESO",
    "CANCELACION",
    name="movimiento_acceso_tipo",
)


def upgrade():
    op.create_table(
        "establecimiento",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=150), nullable=False),
        sa.Column("direccion", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("capacidad_maxima", sa.Integer(), nullable=True),
        sa.Column(
            "dias_habilitados",
            sa.String(length=80),
            nullable=False,
            server_default="LUNES,MARTES,MIERCOLES,JUEVES,VIERNES",
        ),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nombre"),
    )

    op.create_table(
        "franja_horaria",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("establecimiento_id", sa.Integer(), nullable=False),
        sa.Column("hora_inicio", sa.Time(), nullable=False),
        sa.Column("hora_fin", sa.Time(), nullable=False),
        sa.CheckConstraint("hora_fin >= hora_inicio", name="ck_franja_horas"),
        sa.ForeignKeyConstraint(["establecimiento_id"], ["establecimiento.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_franja_horaria_establecimiento_id", "franja_horaria", ["establecimiento_id"])

    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("rol", ROL, nullable=False),
        sa.Column("establecimiento_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_access_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["establecimiento_id"], ["establecimiento.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_index("ix_user_rol_activo", "user_account", ["rol", "is_active"])

    op.create_table(
        "visitante",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("dni", sa.String(length=10), nullable=False),
        sa.Column("apellido", sa.String(length=100), nullable=False),
        sa.Column("nombre", sa.String(length=100), nullable=False),
        sa.Column("fecha_nacimiento", sa.Date(), nullable=False),
        sa.Column("telefono", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("domicilio", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("estado", VISITANTE_ESTADO, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dni"),
    )
    op.create_index("ix_visitante_apellido_nombre", "visitante", ["apellido", "nombre"])

    op.create_table(
        "interno",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("numero_legajo", sa.String(length=20), nullable=False),
        sa.Column("apellido", sa.String(length=100), nullable=False),
        sa.Column("nombre", sa.String(length=100), nullable=False),
        sa.Column("dni", sa.String(length=10), nullable=False, server_default=""),
        sa.Column("establecimiento_id", sa.Integer(), nullable=False),
        sa.Column("pabellon_actual", sa.String(length=20), nullable=False),
        sa.Column("piso_actual", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fecha_ingreso", sa.Date(), nullable=False),
        sa.Column("situacion_procesal", SITUACION_PROCESAL, nullable=False),
        sa.Column("estado", INTERNO_ESTADO, nullable=False),
        sa.Column("observaciones", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["establecimiento_id"], ["establecimiento.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("numero_legajo"),
    )
    op.create_index("ix_interno_establecimiento_id", "interno", ["establecimiento_id"])
    op.create_index("ix_interno_ubicacion", "interno", ["pabellon_actual", "piso_actual"])

    op.create_table(
        "autorizacion",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("visitante_id", sa.Integer(), nullable=False),
        sa.Column("interno_id", sa.Integer(), nullable=False),
        sa.Column("tipo_relacion", TIPO_RELACION, nullable=False),
        sa.Column("descripcion_relacion", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("fecha_autorizacion", sa.Date(), nullable=False),
        sa.Column("fecha_vencimiento", sa.DateTime(), nullable=True),
        sa.Column("estado", AUTORIZACION_ESTADO, nullable=False),
        sa.Column("autorizado_por_id", sa.Integer(), nullable=True),
        sa.Column("observaciones", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["visitante_id"], ["visitante.id"]),
        sa.ForeignKeyConstraint(["interno_id"], ["interno.id"]),
        sa.ForeignKeyConstraint(["autorizado_por_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("visitante_id", "interno_id", name="uq_autorizacion_visitante_interno"),
    )
    op.create_index("ix_autorizacion_interno_id", "autorizacion", ["interno_id"])
    op.create_index("ix_autorizacion_vigencia", "autorizacion", ["estado", "fecha_vencimiento"])

    op.create_table(
        "restriccion",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("visitante_id", sa.Integer(), nullable=False),
        sa.Column("tipo", TIPO_RESTRICCION, nullable=False),
        sa.Column("motivo", sa.Text(), nullable=False),
        sa.Column("fecha_inicio", sa.Date(), nullable=False),
        sa.Column("fecha_fin", sa.Date(), nullable=True),
        sa.Column("alcance", ALCANCE_RESTRICCION, nullable=False),
        sa.Column("interno_id", sa.Integer(), nullable=True),
        sa.Column("activa", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("creado_por_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("fecha_fin IS NULL OR fecha_fin >= fecha_inicio", name="ck_restriccion_fechas"),
        sa.CheckConstraint(
            "alcance <> 'INTERNO_ESPECIFICO' OR interno_id IS NOT NULL",
            name="ck_restriccion_interno_especifico",
        ),
        sa.ForeignKeyConstraint(["visitante_id"], ["visitante.id"]),
        sa.ForeignKeyConstraint(["interno_id"], ["interno.id"]),
        sa.ForeignKeyConstraint(["creado_por_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_restriccion_visitante_activa", "restriccion", ["visitante_id", "activa"])
    op.create_index("ix_restriccion_vigencia", "restriccion", ["fecha_inicio", "fecha_fin"])

    op.create_table(
        "visita",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("visitante_id", sa.Integer(), nullable=False),
        sa.Column("interno_id", sa.Integer(), nullable=False),
        sa.Column("establecimiento_id", sa.Integer(), nullable=False),
        sa.Column("fecha_visita", sa.Date(), nullable=False),
        sa.Column("hora_ingreso", sa.DateTime(), nullable=True),
        sa.Column("hora_egreso", sa.DateTime(), nullable=True),
        sa.Column("estado", VISITA_ESTADO, nullable=False),
        sa.Column("operador_ingreso_id", sa.Integer(), nullable=True),
        sa.Column("operador_egreso_id", sa.Integer(), nullable=True),
        sa.Column("observaciones", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "estado <> 'EN_CURSO' OR hora_ingreso IS NOT NULL",
            name="ck_visita_en_curso_con_ingreso",
        ),
        sa.CheckConstraint(
            "hora_egreso IS NULL OR hora_egreso >= hora_ingreso",
            name="ck_visita_egreso_posterior",
        ),
        sa.ForeignKeyConstraint(["visitante_id"], ["visitante.id"]),
        sa.ForeignKeyConstraint(["interno_id"], ["interno.id"]),
        sa.ForeignKeyConstraint(["establecimiento_id"], ["establecimiento.id"]),
        sa.ForeignKeyConstraint(["operador_ingreso_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["operador_egreso_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_visita_visitante_id", "visita", ["visitante_id"])
    op.create_index("ix_visita_interno_id", "visita", ["interno_id"])
    op.create_index("ix_visita_fecha_visita", "visita", ["fecha_visita"])
    op.create_index("ix_visita_activas", "visita", ["estado", "fecha_visita"])
    op.create_index("ix_visita_establecimiento_estado", "visita", ["establecimiento_id", "estado"])
    op.create_index(
        "ix_visita_visitante_en_curso",
        "visita",
        ["visitante_id"],
        unique=True,
        sqlite_where=sa.text("estado = 'EN_CURSO'"),
        postgresql_where=sa.text("estado = 'EN_CURSO'"),
    )

    op.create_table(
        "movimiento_acceso",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tipo", MOVIMIENTO_ACCESO_TIPO, nullable=False),
        sa.Column("fecha", sa.DateTime(), nullable=False),
        sa.Column("detalle", sa.Text(), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("visita_id", sa.Integer(), nullable=True),
        sa.Column("visitante_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["visita_id"], ["visita.id"]),
        sa.ForeignKeyConstraint(["visitante_id"], ["visitante.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_movimiento_acceso_fecha", "movimiento_acceso", ["fecha"])
    op.create_index("ix_movimiento_acceso_tipo_fecha", "movimiento_acceso", ["tipo", "fecha"])


def downgrade():
    op.drop_index("ix_movimiento_acceso_tipo_fecha", table_name="movimiento_acceso")
    op.drop_index("ix_movimiento_acceso_fecha", table_name="movimiento_acceso")
    op.drop_table("movimiento_acceso")

    op.drop_index("ix_visita_visitante_en_curso", table_name="visita")
    op.drop_index("ix_visita_establecimiento_estado", table_name="visita")
    op.drop_index("ix_visita_activas", table_name="visita")
    op.drop_index("ix_visita_fecha_visita", table_name="visita")
    op.drop_index("ix_visita_interno_id", table_name="visita")
    op.drop_index("ix_visita_visitante_id", table_name="visita")
    op.drop_table("visita")

    op.drop_index("ix_restriccion_vigencia", table_name="restriccion")
    op.drop_index("ix_restriccion_visitante_activa", table_name="restriccion")
    op.drop_table("restriccion")

    op.drop_index("ix_autorizacion_vigencia", table_name="autorizacion")
    op.drop_index("ix_autorizacion_interno_id", table_name="autorizacion")
    op.drop_table("autorizacion")

    op.drop_index("ix_interno_ubicacion", table_name="interno")
    op.drop_index("ix_interno_establecimiento_id", table_name="interno")
    op.drop_table("interno")

    op.drop_index("ix_visitante_apellido_nombre", table_name="visitante")
    op.drop_table("visitante")

    op.drop_index("ix_user_rol_activo", table_name="user_account")
    op.drop_table("user_account")

    op.drop_index("ix_franja_horaria_establecimiento_id", table_name="franja_horaria")
    op.drop_table("franja_horaria")
    op.drop_table("establecimiento")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_type in (
            MOVIMIENTO_ACCESO_TIPO,
            VISITA_ESTADO,
            ALCANCE_RESTRICCION,
            TIPO_RESTRICCION,
            TIPO_RELACION,
            AUTORIZACION_ESTADO,
            SITUACION_PROCESAL,
            INTERNO_ESTADO,
            VISITANTE_ESTADO,
            ROL,
        ):
            enum_type.drop(bind, checkfirst=True)
