"""Application entry point."""
import os
import click
from flask.cli import with_appcontext
from dotenv import load_dotenv

# Load environment variables before the config classes read them
load_dotenv()

from qr_attendance import create_app, db  # noqa: E402

app = create_app(os.getenv('FLASK_ENV', 'development'))


@app.cli.command('drop-db')
@with_appcontext
def drop_db():
    """Drop all database tables."""
    if click.confirm('Are you sure you want to drop all tables?'):
        db.drop_all()
        click.echo('Database tables dropped.')


@app.cli.command('seed-instructors')
@with_appcontext
def seed_instructors():
    """Create the default instructor and admin accounts."""
    from qr_attendance.services.auth_service import AuthService

    accounts = [
        ('admin@music.edu', 'System Administrator', 'admin123456', 'admin'),
        ('instructor@music.edu', 'Default Instructor', 'instructor123', 'instructor'),
    ]
    for email, name, password, role in accounts:
        user, error = AuthService.create_staff(email=email, password=password, name=name, role=role)
        if error:
            click.echo(f'Skipped {email}: {error}')
        else:
            click.echo(f'Created {role}: {user.email}')


if __name__ == '__main__':
    # Development server
    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '127.0.0.1')
    debug = os.environ.get('FLASK_ENV') == 'development'

    app.run(host=host, port=port, debug=debug)
