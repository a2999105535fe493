import logging

import click
from flask import Flask, jsonify
from flask.cli import with_appcontext
from flask_cors import CORS
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from .config import Config
from .extensions import db, migrate
from .http import ServiceError, jerror
from .models import BlacklistEntry, CapacityConfig, DiningTable
from .monitor import TableMonitor
from .notify import send_notification
from .blueprints.dining import bp as dining_bp
from .blueprints.monitor import bp as monitor_bp
from .blueprints.reservations import bp as reservations_bp
from .blueprints.tables import bp as tables_bp

logger = logging.getLogger(__name__)

DEFAULT_TABLES = [
    ("A1", 4, 90, 15),
    ("A2", 4, 90, 15),
    ("A3", 6, 120, 20),
    ("A4", 2, 60, 10),
    ("B1", 4, 90, 15),
    ("B2", 4, 90, 15),
    ("B3", 8, 150, 25),
    ("B4", 2, 60, 10),
]

DEFAULT_PERIODS = [
    ("lunch", "11:00", "14:00", 60),
    ("dinner", "17:00", "21:00", 80),
]


def create_app(config_object=Config, notifier=send_notification):
    app = Flask(__name__)
    app.config.from_object(config_object)
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    CORS(app)

    db.init_app(app)
    migrate.init_app(app, db)

    app.register_blueprint(tables_bp, url_prefix="/api/tables")
    app.register_blueprint(dining_bp, url_prefix="/api/dining")
    app.register_blueprint(monitor_bp, url_prefix="/api/monitor")
    app.register_blueprint(reservations_bp, url_prefix="/api/reservations")

    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        return jerror(e.status, e.code, e.message)

    @app.errorhandler(ValidationError)
    def validation_error(e: ValidationError):
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        message = errors[0]["msg"] if errors else "Invalid input."
        return jerror(422, "VALIDATION_ERROR", message, details=errors)

    @app.errorhandler(OperationalError)
    def store_unavailable(e: OperationalError):
        db.session.rollback()
        logger.error("Store unavailable: %s", e)
        return jerror(503, "UNAVAILABLE", "The database is unavailable.")

    @app.get("/health")
    def health():
        return jsonify(status="ok")

    app.extensions["table_monitor"] = TableMonitor(app, notifier=notifier)

    @click.command("seed")
    @with_appcontext
    def seed_command():
        """Creates the default tables and capacity periods."""
        existing = set(db.session.scalars(db.select(DiningTable.table_number)))
        created = 0
        for number, capacity, duration, buffer in DEFAULT_TABLES:
            if number in existing:
                continue
            db.session.add(DiningTable(
                table_number=number,
                max_capacity=capacity,
                default_duration=duration,
                buffer_duration=buffer,
            ))
            created += 1
        if db.session.scalar(db.select(db.func.count()).select_from(CapacityConfig)) == 0:
            for name, start, end, capacity in DEFAULT_PERIODS:
                db.session.add(CapacityConfig(period_name=name, start_time=start, end_time=end, max_capacity=capacity))
        db.session.commit()
        print(f"Created {created} tables.")
        print("Database seeded!")

    @click.command("blacklist-add")
    @click.argument("phone")
    @click.option("--name", default=None)
    @click.option("--reason", default=None)
    @with_appcontext
    def blacklist_add_command(phone, name, reason):
        """Blocks a phone number from making reservations."""
        db.session.add(BlacklistEntry(guest_phone=phone.strip(), guest_name=name, reason=reason))
        db.session.commit()
        print(f"Blacklisted {phone}.")

    @click.command("monitor-tick")
    def monitor_tick_command():
        """Runs a single monitor pass and prints what it changed."""
        report = app.extensions["table_monitor"].tick()
        if report is None:
            print("Monitor tick failed; see the log.")
            return
        for number, old, new in report.status_changes:
            print(f"{number}: {old} -> {new}")
        if report.alerted:
            print(f"Timed out: {', '.join(report.alerted)} (notified: {report.notified})")

    app.cli.add_command(seed_command)
    app.cli.add_command(blacklist_add_command)
    app.cli.add_command(monitor_tick_command)

    return app
