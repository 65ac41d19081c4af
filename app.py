import os
import logging
import click
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from config import config
from extensions import db, migrate, login_manager, csrf, limiter
from utils.errors import AppError


def configure_logging(app):
    """Configure application logging"""
    if not app.debug and not app.testing:
        # Create logs directory if it doesn't exist
        if not os.path.exists('logs'):
            os.mkdir('logs')

        # File handler for errors
        file_handler = RotatingFileHandler(
            'logs/family_tree.log',
            maxBytes=10240000,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s '
            '[in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Family Tree startup')
    else:
        # Development logging to console
        app.logger.setLevel(logging.DEBUG)
        app.logger.info('Family Tree startup (DEBUG mode)')


def _envelope(message, status):
    return jsonify({'success': False, 'message': message, 'data': None}), status


def create_app(config_name=None):
    """Application factory pattern"""

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # Configure logging
    configure_logging(app)

    # SQLite file databases live in instance/
    os.makedirs(os.path.join(app.config['BASE_DIR'], 'instance'), exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # Add security headers
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        headers = app.config.get('SECURITY_HEADERS', {})
        for header, value in headers.items():
            response.headers[header] = value
        return response

    # User loader callback for Flask-Login
    @login_manager.user_loader
    def load_user(user_id):
        from models.users import User
        return db.session.get(User, int(user_id))

    # API clients get JSON instead of a redirect to a login page
    @login_manager.unauthorized_handler
    def unauthorized():
        return _envelope('Authentication required', 401)

    # Import models to ensure they're registered with SQLAlchemy
    with app.app_context():
        import models  # noqa: F401

    # Register blueprints
    from blueprints.auth import auth_bp
    from blueprints.members import members_bp
    from blueprints.users import users_bp
    from blueprints.notifications import notifications_bp

    for blueprint in (auth_bp, members_bp, users_bp, notifications_bp):
        app.register_blueprint(blueprint)
        # JSON API: session cookie is SameSite=Lax, forms are built without CSRF
        csrf.exempt(blueprint)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Register Flask-Admin (must come after db.init_app and all models are loaded)
    from admin_panel import init_admin
    init_admin(app, db)
    # Flask-Admin generates its own form tokens; exempt its blueprint from
    # Flask-WTF's global CSRF so the two don't conflict.
    csrf.exempt(app.blueprints['admin'])

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_commands(app)

    return app


def register_error_handlers(app):
    """Register global error handlers (JSON envelopes)"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f'{type(error).__name__}: {error.message}')
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(403)
    def forbidden_error(error):
        return _envelope('Forbidden', 403)

    @app.errorhandler(404)
    def not_found_error(error):
        return _envelope('Resource not found', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _envelope('Method not allowed', 405)

    @app.errorhandler(413)
    def payload_too_large(error):
        return _envelope('Uploaded file is too large', 413)

    @app.errorhandler(429)
    def rate_limited(error):
        return _envelope(f'Too many requests: {error.description}', 429)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f'Internal Server Error: {error}')
        return _envelope('Internal server error', 500)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        return _envelope(f'CSRF token validation failed: {error.description}', 400)


def register_commands(app):
    """Register Flask CLI commands."""
    from models.users import User, USER_STATUSES, STATUS_ACCEPTED
    from utils.permissions import PERMISSION_ACTIONS, PERMISSION_ENTITIES

    def _find_user(email):
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo(f'ERROR: No user found with email "{email}"', err=True)
        return user

    @app.cli.group()
    def site_admin():
        """Manage site-level admin access to /admin panel."""
        pass

    @site_admin.command('grant')
    @click.argument('email')
    def grant_site_admin(email):
        """Grant /admin panel access to a user by EMAIL."""
        user = _find_user(email)
        if not user:
            return
        if user.is_site_admin:
            click.echo(f'{user.email} already has site admin access.')
            return
        user.is_site_admin = True
        db.session.commit()
        click.echo(f'SUCCESS: {user.email} granted site admin access.')

    @site_admin.command('revoke')
    @click.argument('email')
    def revoke_site_admin(email):
        """Revoke /admin panel access from a user by EMAIL."""
        user = _find_user(email)
        if not user:
            return
        if not user.is_site_admin:
            click.echo(f'{user.email} does not have site admin access.')
            return
        user.is_site_admin = False
        db.session.commit()
        click.echo(f'SUCCESS: Site admin access revoked from {user.email}.')

    @site_admin.command('list')
    def list_site_admins():
        """List all users with site admin access."""
        admins = User.query.filter_by(is_site_admin=True).all()
        if not admins:
            click.echo('No site admins found.')
            return
        click.echo(f'{"ID":<5} {"Email":<40} {"Status":<15} {"Active":<8}')
        click.echo('-' * 70)
        for u in admins:
            click.echo(f'{u.id:<5} {u.email:<40} {u.status:<15} {str(u.is_active):<8}')

    @app.cli.group()
    def users():
        """Manage user accounts, roles and permissions."""
        pass

    @users.command('grant-permission')
    @click.argument('email')
    @click.argument('entity', type=click.Choice(PERMISSION_ENTITIES))
    @click.argument('actions', nargs=-1, required=True, type=click.Choice(PERMISSION_ACTIONS))
    def grant_permission(email, entity, actions):
        """Grant ACTIONS on ENTITY to the user with EMAIL."""
        user = _find_user(email)
        if not user:
            return
        user.grant(entity, *actions)
        db.session.commit()
        click.echo(f'SUCCESS: {user.email} can now {", ".join(actions)} {entity}.')

    @users.command('set-status')
    @click.argument('email')
    @click.argument('status', type=click.Choice(USER_STATUSES))
    def set_status(email, status):
        """Set the account STATUS of the user with EMAIL (no email is sent)."""
        user = _find_user(email)
        if not user:
            return
        user.status = status
        db.session.commit()
        click.echo(f'SUCCESS: {user.email} status set to {status}.')

    @users.command('create-admin')
    @click.argument('email')
    @click.password_option()
    def create_admin(email, password):
        """Create an accepted account with the admin role and /admin access."""
        from blueprints.auth.forms import validate_password_strength

        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo(f'ERROR: A user with email "{email}" already exists', err=True)
            return
        is_valid, error_message = validate_password_strength(password)
        if not is_valid:
            click.echo(f'ERROR: {error_message}', err=True)
            return

        user = User(email=email, status=STATUS_ACCEPTED, is_site_admin=True)
        user.set_password(password)
        user.set_roles(['admin', 'user'])
        db.session.add(user)
        db.session.commit()
        click.echo(f'SUCCESS: Admin account created for {email}.')

    @users.command('make-admin')
    @click.argument('email')
    def make_admin(email):
        """Give the user with EMAIL the admin role."""
        user = _find_user(email)
        if not user:
            return
        if not user.add_role('admin'):
            click.echo(f'{user.email} already has the admin role.')
            return
        db.session.commit()
        click.echo(f'SUCCESS: {user.email} now has the admin role.')


if __name__ == '__main__':
    app = create_app()
    # SECURITY: Only bind to localhost in development
    # Never use 0.0.0.0 with debug mode - it exposes the debugger to the network
    app.run(host='127.0.0.1', port=5000, debug=True)
