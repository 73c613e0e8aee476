# app/cli.py
import click
from flask import Flask
from flask.cli import AppGroup

from .extensions import db
from .models import User
from .services import events as event_service

events_cli = AppGroup("eventos", help="Tareas programadas de eventos.")


@events_cli.command("transcurrir")
def mark_elapsed_command():
    """Pasa a 'transcurrido' los eventos vigentes cuya fecha ya pasó."""
    elapsed = event_service.mark_elapsed_events()
    click.echo(f"{len(elapsed)} evento(s) marcados como transcurridos.")


@click.command("crear-admin")
@click.argument("email")
@click.option("--nombre", default="Administrador", help="Nombre visible del administrador.")
@click.password_option("--password")
def create_admin_command(email, nombre, password):
    """Crea un usuario administrador si no existe."""
    existing = User.query.filter_by(email=email).first()
    if existing:
        click.echo(f"⚠️ El usuario ya existe: {existing}")
        return

    admin = User(email=email, name=nombre, is_admin=True)
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    click.echo(f"✅ Admin {email} creado correctamente.")


def register_cli(app: Flask) -> None:
    app.cli.add_command(events_cli)
    app.cli.add_command(create_admin_command)
