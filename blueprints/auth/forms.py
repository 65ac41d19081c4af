"""
Authentication Forms
JSON-bound forms for login, registration and password reset.

Flask-WTF binds JSON request bodies automatically; the forms are built with
``meta={'csrf': False}`` because the API authenticates via the session cookie
and the blueprint is CSRF-exempt.
"""
import re

from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, BooleanField, SelectField, IntegerField
from wtforms.validators import DataRequired, Email, Length, Optional, ValidationError

from models.members import FAMILY_BRANCHES
from models.users import USER_RELATIONSHIPS


def _as_text(value):
    """JSON bodies may send numbers (e.g. phone); forms work on strings."""
    return str(value) if value is not None else value


class LoginForm(FlaskForm):
    """Login form"""
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Email(message='Invalid email address')
    ])
    password = PasswordField('Password', validators=[
        DataRequired(message='Password is required')
    ])
    remember = BooleanField('Remember Me')


class RegisterForm(FlaskForm):
    """Account registration form (account starts pending review)"""
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Email(message='Invalid email address'),
        Length(max=120)
    ])
    password = PasswordField('Password', validators=[
        DataRequired(message='Password is required')
    ])
    phone = StringField('Phone', filters=[_as_text], validators=[
        DataRequired(message='Phone is required'),
        Length(max=30)
    ])
    address = StringField('Address', validators=[Optional(), Length(max=255)])
    family_branch = SelectField('Family Branch', name='familyBranch',
                                choices=[(b, b) for b in FAMILY_BRANCHES],
                                validators=[DataRequired(message='Family branch is required')])
    family_relationship = SelectField('Family Relationship', name='familyRelationship',
                                      choices=[(r, r) for r in USER_RELATIONSHIPS],
                                      validators=[DataRequired(message='Family relationship is required')])
    member_id = IntegerField('Member', name='memberId', validators=[Optional()])
    tenant_id = StringField('Tenant', name='tenantId', validators=[Optional(), Length(max=64)])

    def validate_password(self, field):
        is_valid, error_message = validate_password_strength(field.data or '')
        if not is_valid:
            raise ValidationError(error_message)


class ForgotPasswordForm(FlaskForm):
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Email(message='Invalid email address')
    ])


class ResetPasswordForm(FlaskForm):
    password = PasswordField('Password', validators=[
        DataRequired(message='Password is required')
    ])

    def validate_password(self, field):
        is_valid, error_message = validate_password_strength(field.data or '')
        if not is_valid:
            raise ValidationError(error_message)


def first_form_error(form):
    """Return the first validation message of *form* (for JSON responses)."""
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return 'Invalid request'


def validate_password_strength(password):
    """
    Validate password meets security requirements
    Returns: (is_valid, error_message)
    """
    from flask import current_app

    min_length = current_app.config.get('PASSWORD_MIN_LENGTH', 10)
    require_uppercase = current_app.config.get('PASSWORD_REQUIRE_UPPERCASE', True)
    require_lowercase = current_app.config.get('PASSWORD_REQUIRE_LOWERCASE', True)
    require_digit = current_app.config.get('PASSWORD_REQUIRE_DIGIT', True)
    require_special = current_app.config.get('PASSWORD_REQUIRE_SPECIAL', True)

    errors = []

    if len(password) < min_length:
        errors.append(f"at least {min_length} characters")

    if require_uppercase and not re.search(r'[A-Z]', password):
        errors.append("an uppercase letter")

    if require_lowercase and not re.search(r'[a-z]', password):
        errors.append("a lowercase letter")

    if require_digit and not re.search(r'\d', password):
        errors.append("a number")

    if require_special and not re.search(r'[!@#$%^&*(),.?":{}|<>]', password):
        errors.append("a special character (!@#$%^&*(),.?\":{}|<>)")

    if errors:
        return False, f"Password must contain {', '.join(errors)}"

    return True, None
