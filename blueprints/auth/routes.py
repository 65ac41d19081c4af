"""
Authentication Routes
Registration, login, logout and password reset with security features

  POST /auth/register                 – create a pending account, send welcome email
  POST /auth/login                    – session login (accepted accounts only)
  POST /auth/logout                   – end the session
  GET  /auth/me                       – current user
  POST /auth/forgot-password          – email a reset link
  POST /auth/reset-password/<token>   – set a new password
"""
from datetime import datetime, timezone

from flask import current_app, jsonify
from flask_login import login_user, logout_user, current_user, login_required

from . import auth_bp
from .forms import (
    LoginForm, RegisterForm, ForgotPasswordForm, ResetPasswordForm, first_form_error,
)
from extensions import db, limiter
from models.members import Member
from models.users import User, STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED, ROLE_USER
from services.email_service import send_welcome_email, send_password_reset_email
from utils.errors import ValidationError, ConflictError, AuthorizationError, EmailDeliveryError


def _ok(message, data=None, status=200):
    return jsonify({'success': True, 'message': message, 'data': data}), status


def _fail(message, status):
    return jsonify({'success': False, 'message': message, 'data': None}), status


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("10 per minute")
def register():
    """Create a pending account; an admin accepts or rejects it later."""
    form = RegisterForm(meta={'csrf': False})
    if not form.validate():
        raise ValidationError(first_form_error(form))

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        raise ConflictError('An account with that email already exists.')

    member = None
    if form.member_id.data is not None:
        member = db.session.get(Member, form.member_id.data)
        if member is None:
            raise ValidationError('Member not found')
        if member.user is not None:
            raise ConflictError('This member is already linked to a user account')

    user = User(
        email=email,
        phone=form.phone.data,
        address=form.address.data or None,
        family_branch=form.family_branch.data,
        family_relationship=form.family_relationship.data,
        tenant_id=form.tenant_id.data or None,
        status=STATUS_PENDING,
    )
    user.set_password(form.password.data)
    user.set_roles([ROLE_USER])
    if member is not None:
        user.member = member
        member.is_user = True
    db.session.add(user)
    db.session.commit()

    current_app.logger.info(f'New registration: {user.email} (pending review)')
    send_welcome_email(user)

    return _ok('Registration received; your account is pending review', user.to_dict(), 201)


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(lambda: current_app.config.get("LOGIN_RATE_LIMIT", "10 per minute"))
def login():
    """Session login with lockout after repeated failures"""
    form = LoginForm(meta={'csrf': False})
    if not form.validate():
        raise ValidationError(first_form_error(form))

    email = form.email.data.strip().lower()
    user = User.query.filter_by(email=email).first()

    if user is None:
        # Generic error to prevent user enumeration
        return _fail('Invalid email or password.', 401)

    if user.is_locked():
        minutes_left = int((user.locked_until - datetime.now(timezone.utc).replace(tzinfo=None))
                           .total_seconds() / 60) + 1
        raise AuthorizationError(
            f'Account temporarily locked due to multiple failed login attempts. '
            f'Try again in {minutes_left} minutes.')

    if not user.check_password(form.password.data):
        user.record_failed_login()
        max_attempts = current_app.config.get('MAX_LOGIN_ATTEMPTS', 5)
        remaining = max(0, max_attempts - user.failed_login_attempts)
        if remaining > 0:
            return _fail(f'Invalid email or password. {remaining} attempts remaining before lockout.', 401)
        return _fail('Account locked due to too many failed attempts.', 401)

    if not user.is_active:
        raise AuthorizationError('This account has been deactivated. Please contact support.')
    if user.status == STATUS_REJECTED:
        raise AuthorizationError('Your registration was rejected.')
    if user.status != STATUS_ACCEPTED:
        raise AuthorizationError('Your account is still pending review.')

    login_user(user, remember=bool(form.remember.data))
    user.update_last_login()
    user.reset_failed_logins()
    current_app.logger.info(f'User logged in: {user.email}')

    return _ok('Logged in successfully', user.to_dict())


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """User logout"""
    logout_user()
    return _ok('You have been logged out.')


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return _ok('Current user', current_user.to_dict())


@auth_bp.route('/forgot-password', methods=['POST'])
@limiter.limit("5 per minute")
def forgot_password():
    """Email a reset link; the answer never reveals whether the email exists."""
    form = ForgotPasswordForm(meta={'csrf': False})
    if not form.validate():
        raise ValidationError(first_form_error(form))

    message = 'If the email exists, a reset link has been sent'
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if user is None:
        return _ok(message)

    token = user.generate_reset_token()
    db.session.commit()

    reset_url = f"{current_app.config['FRONTEND_RESET_URL'].rstrip('/')}/{token}"
    try:
        send_password_reset_email(user.email, reset_url)
    except EmailDeliveryError:
        # Already logged by the email service; the token stays valid
        pass
    return _ok(message)


@auth_bp.route('/reset-password/<token>', methods=['POST'])
@limiter.limit("10 per minute")
def reset_password(token):
    form = ResetPasswordForm(meta={'csrf': False})
    if not form.validate():
        raise ValidationError(first_form_error(form))

    user = User.query.filter_by(reset_password_token=token).first()
    if user is None or not user.reset_token_is_valid(token):
        raise ValidationError('Password reset link is invalid or has expired')

    user.set_password(form.password.data)
    user.clear_reset_token()
    user.failed_login_attempts = 0
    user.locked_until = None
    db.session.commit()
    current_app.logger.info(f'Password reset for {user.email}')

    return _ok('Password has been reset successfully')
