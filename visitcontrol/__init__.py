from __future__ import annotations

import logging

import click
from flask import Flask, current_app

from visitcontrol.core.clock import SystemClock
from visitcontrol.core.config import Config
from visitcontrol.core.errors import AccessControlError
from visitcontrol.core.extensions import db, migrate, use_immediate_transactions
from visitcontrol.core.models import Establecimiento, seed_demo_data

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    db.init_app(app)
    migrate.init_app(app, db)
    with app.app_context():
        use_immediate_transactions(db.engine)

    configure_logging(app)
    app.extensions["visitcontrol.clock"] = SystemClock(app.config.get("FACILITY_TIMEZONE"))

    register_cli(app)
    return app


def configure_logging(app: Flask) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("visitcontrol").setLevel(app.config.get("LOG_LEVEL", "INFO"))


def access_services():
    """Wire the access services for the current app and session."""
    from visitcontrol.access.services import build_access_services

    return build_access_services(
        db.session,
        current_app.extensions["visitcontrol.clock"],
        min_age=current_app.config["VISITOR_MIN_AGE"],
        min_motive_length=current_app.config["RESTRICTION_MIN_MOTIVE_LENGTH"],
    )


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo data: one facility, operators, visitors and inmates."""
        if reset:
            db.session.remove()
            db.drop_all()
            db.create_all()
        if not Establecimiento.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing facilities found.")

    @app.cli.command("check-in")
    @click.option("--visitor", "visitor_doc", required=True, help="Visitor DNI.")
    @click.option("--inmate", "inmate_file", required=True, help="Inmate file number (legajo).")
    @click.option("--operator", "operator_username", required=True, help="Operator username.")
    @click.option("--confirm-immediate", is_flag=True, help="Grant an immediate authorization if one is needed.")
    def check_in(visitor_doc: str, inmate_file: str, operator_username: str, confirm_immediate: bool) -> None:
        """Run the access-control checks and register a visitor entry."""
        controller = access_services().controller
        try:
            outcome = controller.check_in(visitor_doc, inmate_file, operator_username, confirm_immediate)
        except AccessControlError as exc:
            raise click.ClickException(str(exc)) from exc
        for warning in outcome.warnings:
            click.echo(f"  * {warning}")
        if outcome.requires_confirmation:
            click.echo("Immediate authorization required: rerun with --confirm-immediate.")
            raise click.exceptions.Exit(2)
        if not outcome.permitted:
            click.echo("Entry denied:")
            for reason in outcome.reasons:
                click.echo(f"  - {reason}")
            raise click.exceptions.Exit(1)
        if outcome.immediate_authorization is not None:
            click.echo(f"Immediate authorization {outcome.immediate_authorization.id} granted.")
        click.echo(f"Entry permitted: visit {outcome.visit_id} in progress.")

    @app.cli.command("check-out")
    @click.argument("visit_id", type=int)
    @click.option("--operator", "operator_username", required=True, help="Operator username.")
    @click.option("--notes", default=None, help="Notes appended to the visit.")
    def check_out(visit_id: int, operator_username: str, notes: str | None) -> None:
        """Register the exit of an in-progress visit."""
        controller = access_services().controller
        try:
            visit = controller.check_out(visit_id, operator_username, notes)
        except AccessControlError as exc:
            raise click.ClickException(str(exc)) from exc
        minutes = int(controller.duration(visit).total_seconds() // 60)
        click.echo(f"Visit {visit.id} finished after {minutes} min.")

    @app.cli.command("cancel-visit")
    @click.argument("visit_id", type=int)
    @click.option("--motive", required=True, help="Reason for the cancellation.")
    @click.option("--operator", "operator_username", default=None, help="Operator username.")
    def cancel_visit(visit_id: int, motive: str, operator_username: str | None) -> None:
        """Cancel a scheduled or in-progress visit."""
        controller = access_services().controller
        try:
            visit = controller.cancel(visit_id, motive, operator_username)
        except AccessControlError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Visit {visit.id} cancelled.")

    @app.cli.command("visits-in-progress")
    @click.option("--facility-id", type=int, default=None, help="Limit to one facility.")
    def visits_in_progress(facility_id: int | None) -> None:
        """List visits currently in progress."""
        visits = access_services().controller.visits_in_progress(facility_id)
        if not visits:
            click.echo("No visits in progress.")
            return
        for visit in visits:
            click.echo(
                f"{visit.id}\t{visit.hora_ingreso:%H:%M}\t{visit.visitante.full_name}"
                f"\t-> {visit.interno.full_name} ({visit.interno.numero_legajo})"
            )
        click.echo(f"Total: {len(visits)}")

    @app.cli.command("access-log")
    @click.option("--limit", type=int, default=20, show_default=True, help="Number of movements to show.")
    def access_log(limit: int) -> None:
        """Show the latest access movements, newest first."""
        for movement in access_services().controller.recent_movements(limit):
            click.echo(f"{movement.fecha:%Y-%m-%d %H:%M}\t{movement.tipo.value}\t{movement.detalle}")
