from flask import Flask, jsonify
from config import Config
from routes import health_bp, reservations_bp, teacher_bp, admin_bp

from models import db
from flask_migrate import Migrate
from services.errors import ReservationError
from utils.auth_context import load_current_user


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(reservations_bp)
    app.register_blueprint(teacher_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(ReservationError)
    def _reservation_error(exc):
        if exc.status_code >= 409:
            app.logger.info("%s: %s", exc.kind, exc.message)
        return jsonify(error=exc.message, kind=exc.kind), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.user import User, Dependent
from models.venue import Room, Studio
from utils.roles import normalize_role

def register_cli(app):
    @app.cli.command("add-studio")
    @click.argument("room_name")
    @click.argument("studio_name")
    def add_studio(room_name, studio_name):
        """Create a studio under a venue (the venue is created if missing)."""
        room = Room.query.filter_by(name=room_name.strip()).first()
        if not room:
            room = Room(name=room_name.strip())
            db.session.add(room)
            db.session.flush()

        if Studio.query.filter_by(room_id=room.id, name=studio_name.strip()).first():
            click.echo("Studio already exists")
            return

        studio = Studio(room_id=room.id, name=studio_name.strip())
        db.session.add(studio)
        db.session.commit()
        click.echo(f"room_id={room.id} studio_id={studio.id}")

    @app.cli.command("add-user")
    @click.argument("name")
    @click.option("--role", default="STUDENT", show_default=True)
    def add_user(name, role):
        """Register an account id for the identity gateway to hand out."""
        role_name = normalize_role(role)
        if not role_name:
            raise click.BadParameter(f"Unknown role {role}", param_hint="--role")
        user = User(name=name.strip(), role=role_name)
        db.session.add(user)
        db.session.commit()
        click.echo(f"user_id={user.id} role={user.role}")

    @app.cli.command("add-dependent")
    @click.argument("user_id", type=int)
    @click.argument("name")
    @click.argument("age", type=int)
    def add_dependent(user_id, name, age):
        """Attach a dependent (e.g. a child) to a requester account."""
        user = db.session.get(User, user_id)
        if not user:
            click.echo("User not found")
            return
        dep = Dependent(user_id=user.id, name=name.strip(), age=age)
        db.session.add(dep)
        db.session.commit()
        click.echo(f"dependent_id={dep.id}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
