"""
User Model for Authentication
User accounts, roles and entity-level permissions
"""
import json
import secrets
from datetime import datetime, timezone

from flask import current_app
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from extensions import db
from utils.permissions import (
    PERMISSION_ACTIONS, ROLE_ADMIN, ROLE_USER, normalize_permissions,
)


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


STATUS_PENDING = 'قيد الانتظار'
STATUS_ACCEPTED = 'مقبول'
STATUS_REJECTED = 'مرفوض'
USER_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED)

# Relationship values a user may register with
USER_RELATIONSHIPS = ('ابن', 'ابنة', 'زوجة', 'زوج', 'حفيد', 'أخرى')


class User(UserMixin, db.Model):
    """User account for authentication"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id', ondelete='SET NULL'),
                          unique=True, nullable=True, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    family_branch = db.Column(db.String(30))
    family_relationship = db.Column(db.String(30))
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    # JSON list of role names, e.g. '["user"]'
    roles = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # Grants access to the /admin panel
    is_site_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    last_login = db.Column(db.DateTime)

    # Login security fields
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime)

    # Password reset
    reset_password_token = db.Column(db.String(64), unique=True, index=True)
    reset_password_expires = db.Column(db.DateTime)

    # Relationships
    member = db.relationship('Member', back_populates='user')
    permission_rows = db.relationship('UserPermission', back_populates='user',
                                      cascade='all, delete-orphan')
    notifications = db.relationship('Notification', foreign_keys='Notification.user_id',
                                    back_populates='user', lazy='dynamic',
                                    cascade='all, delete-orphan')
    sent_notifications = db.relationship('Notification', foreign_keys='Notification.sender_id',
                                         back_populates='sender')

    def set_password(self, password):
        """Hash and set the user's password"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check if provided password matches the hash"""
        return check_password_hash(self.password_hash, password)

    def update_last_login(self):
        """Update the last login timestamp"""
        self.last_login = _utcnow()
        db.session.commit()

    def is_locked(self):
        """Check if account is locked due to failed login attempts"""
        if self.locked_until and self.locked_until > _utcnow():
            return True
        return False

    def record_failed_login(self):
        """Record a failed login attempt and lock if threshold exceeded"""
        self.failed_login_attempts += 1

        max_attempts = current_app.config.get('MAX_LOGIN_ATTEMPTS', 5)
        lockout_duration = current_app.config.get('LOCKOUT_DURATION')

        if self.failed_login_attempts >= max_attempts and lockout_duration:
            self.locked_until = _utcnow() + lockout_duration

        db.session.commit()

    def reset_failed_logins(self):
        """Reset failed login attempts after successful login"""
        self.failed_login_attempts = 0
        self.locked_until = None
        db.session.commit()

    @property
    def is_accepted(self):
        return self.status == STATUS_ACCEPTED

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_roles(self):
        """Return the user's roles as a list (empty when none are set)."""
        if not self.roles:
            return []
        try:
            return list(json.loads(self.roles))
        except (ValueError, TypeError):
            return []

    def set_roles(self, roles):
        self.roles = json.dumps(sorted(set(roles)))

    def add_role(self, role):
        """Add *role*; returns False if the user already had it."""
        roles = self.get_roles()
        if role in roles:
            return False
        roles.append(role)
        self.set_roles(roles)
        return True

    def remove_role(self, role):
        """Remove *role*; returns False if the user did not have it."""
        roles = self.get_roles()
        if role not in roles:
            return False
        roles.remove(role)
        self.set_roles(roles)
        return True

    def has_role(self, role):
        return role in self.get_roles()

    def has_any_role(self, roles):
        current = set(self.get_roles())
        return any(role in current for role in roles)

    @property
    def is_admin(self):
        """True if the user has the 'admin' role."""
        return self.has_role(ROLE_ADMIN)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def get_permissions(self):
        """Return ``{entity: {action: bool}}`` for every stored entity."""
        return {row.entity: row.to_flags() for row in self.permission_rows}

    def set_permissions(self, mapping):
        """Replace the permission mapping.  Raises ``ValueError`` if invalid."""
        normalized = normalize_permissions(mapping)
        existing = {row.entity: row for row in self.permission_rows}
        for entity, row in existing.items():
            if entity not in normalized:
                self.permission_rows.remove(row)
        for entity, flags in normalized.items():
            row = existing.get(entity)
            if row is None:
                row = UserPermission(entity=entity)
                self.permission_rows.append(row)
            for action, value in flags.items():
                setattr(row, f'can_{action}', value)

    def grant(self, entity, *actions):
        """Switch on *actions* for *entity*, keeping other flags."""
        mapping = self.get_permissions()
        flags = mapping.setdefault(entity, {})
        for action in actions:
            flags[action] = True
        self.set_permissions(mapping)

    def has_permission(self, entity, action):
        """Admins always pass; everyone else needs the stored flag."""
        if self.is_admin:
            return True
        if action not in PERMISSION_ACTIONS:
            return False
        for row in self.permission_rows:
            if row.entity == entity:
                return bool(getattr(row, f'can_{action}'))
        return False

    @classmethod
    def with_permission(cls, entity, action, value=True):
        """Query users whose permission row for *entity* has *action* == *value*."""
        if action not in PERMISSION_ACTIONS:
            raise ValueError(f"Unknown permission action '{action}'")
        flag = getattr(UserPermission, f'can_{action}')
        return (
            cls.query
            .join(UserPermission, UserPermission.user_id == cls.id)
            .filter(UserPermission.entity == entity, flag == value)
        )

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def generate_reset_token(self):
        """Issue a one-time reset token valid for PASSWORD_RESET_EXPIRY."""
        self.reset_password_token = secrets.token_urlsafe(32)
        self.reset_password_expires = _utcnow() + current_app.config['PASSWORD_RESET_EXPIRY']
        return self.reset_password_token

    def reset_token_is_valid(self, token):
        return (
            bool(token)
            and self.reset_password_token == token
            and self.reset_password_expires is not None
            and self.reset_password_expires > _utcnow()
        )

    def clear_reset_token(self):
        self.reset_password_token = None
        self.reset_password_expires = None

    def to_dict(self):
        return {
            'id': self.id,
            'tenantId': self.tenant_id,
            'memberId': self.member_id,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'roles': self.get_roles(),
            'familyBranch': self.family_branch,
            'familyRelationship': self.family_relationship,
            'status': self.status,
            'permissions': self.get_permissions(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'lastLogin': self.last_login.isoformat() if self.last_login else None,
        }

    def __repr__(self):
        return f'<User {self.email}>'


class UserPermission(db.Model):
    """Action flags one user holds on one entity."""
    __tablename__ = 'user_permissions'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'entity', name='uq_user_permission_entity'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'),
                        nullable=False, index=True)
    entity = db.Column(db.String(50), nullable=False)
    can_view = db.Column(db.Boolean, default=False, nullable=False)
    can_create = db.Column(db.Boolean, default=False, nullable=False)
    can_update = db.Column(db.Boolean, default=False, nullable=False)
    can_delete = db.Column(db.Boolean, default=False, nullable=False)

    user = db.relationship('User', back_populates='permission_rows')

    def to_flags(self):
        return {action: bool(getattr(self, f'can_{action}')) for action in PERMISSION_ACTIONS}

    def __repr__(self):
        return f'<UserPermission {self.entity} user={self.user_id}>'


__all__ = [
    'User', 'UserPermission', 'STATUS_PENDING', 'STATUS_ACCEPTED',
    'STATUS_REJECTED', 'USER_STATUSES', 'USER_RELATIONSHIPS', 'ROLE_ADMIN', 'ROLE_USER',
]
