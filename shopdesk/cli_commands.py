"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-operator: Create a POS operator account
"""

import click
import re
from shopdesk.database import create_all, get_session
from shopdesk.models import AppUser


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('Tablas creadas.', fg='green'))

    @app.cli.command('create-operator')
    @click.option('--email', prompt=True, help='Operator email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Operator password')
    @click.option('--name', 'full_name', default='', help='Name printed on receipts')
    def create_operator(email, password, full_name):
        """Create an operator who can log in to the POS."""
        email = email.strip().lower()
        if not re.match(EMAIL_PATTERN, email):
            click.echo(click.style('Email inválido. Use formato: user@example.com', fg='red'))
            raise SystemExit(1)

        if len(password) < 6:
            click.echo(click.style('La contraseña debe tener al menos 6 caracteres.', fg='red'))
            raise SystemExit(1)

        db_session = get_session()
        if db_session.query(AppUser).filter_by(email=email).first():
            click.echo(click.style(f'Ya existe un operador con el email: {email}', fg='red'))
            raise SystemExit(1)

        user = AppUser(email=email, full_name=full_name or None, active=True)
        user.set_password(password)
        db_session.add(user)
        db_session.commit()

        click.echo(click.style('Operador creado exitosamente.', fg='green', bold=True))
        click.echo(f'   Email: {email}')
        click.echo(f'   ID: {user.id}')
